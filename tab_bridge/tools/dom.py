"""Python-side model of the serialized DOM snapshot produced by ``DOM_SNAPSHOT_JS``."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from .scripts import DOM_SNAPSHOT_JS

MAX_SNAPSHOT_NODES = 5000


@dataclass(eq=False)
class DomNode:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    text: str = ""
    nth: int = 1
    rect: dict[str, float] = field(default_factory=dict)
    hidden: bool = False
    disabled: bool = False
    value: str | None = None
    checked: bool | None = None
    children: list[DomNode] = field(default_factory=list)
    parent: DomNode | None = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any], parent: DomNode | None = None) -> DomNode:
        node = cls(
            tag=str(data.get("tag") or "").lower(),
            attrs={str(k): str(v) for k, v in (data.get("attrs") or {}).items()},
            text=str(data.get("text") or ""),
            nth=int(data.get("nth") or 1),
            rect=dict(data.get("rect") or {}),
            hidden=bool(data.get("hidden")),
            disabled=bool(data.get("disabled")),
            value=data.get("value"),
            checked=data.get("checked"),
            parent=parent,
        )
        node.children = [cls.from_dict(c, node) for c in data.get("children") or [] if isinstance(c, dict)]
        return node

    def attr(self, name: str) -> str | None:
        return self.attrs.get(name)

    @property
    def id(self) -> str:
        return self.attrs.get("id", "")

    @property
    def classes(self) -> list[str]:
        return [c for c in self.attrs.get("class", "").split() if c]

    def iter(self) -> Iterator[DomNode]:
        """Document-order traversal including self."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def ancestors(self) -> Iterator[DomNode]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def root(self) -> DomNode:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def text_content(self) -> str:
        parts = [self.text] + [c.text_content() for c in self.children]
        return " ".join(p for p in parts if p).strip()

    def find_by_id(self, element_id: str) -> DomNode | None:
        for node in self.iter():
            if node.id == element_id:
                return node
        return None


@dataclass
class DomSnapshot:
    root: DomNode | None
    url: str = ""
    viewport: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_result(cls, data: Any) -> DomSnapshot:
        if not isinstance(data, dict):
            return cls(root=None)
        raw_root = data.get("root")
        return cls(
            root=DomNode.from_dict(raw_root) if isinstance(raw_root, dict) else None,
            url=str(data.get("url") or ""),
            viewport=dict(data.get("viewport") or {}),
        )


def snapshot_args(root_selector: str | None = None, max_nodes: int = MAX_SNAPSHOT_NODES) -> list[Any]:
    return [root_selector, max_nodes]


__all__ = ["DOM_SNAPSHOT_JS", "DomNode", "DomSnapshot", "MAX_SNAPSHOT_NODES", "snapshot_args"]
