"""
Actionable-element discovery over a DOM snapshot.

An actionable is an interactive element (link, button, form control,
ARIA-interactive role, explicit tabindex, contenteditable) that is visible
and enabled. Each one gets a sequential ``labelNumber`` and a CSS selector
that matches exactly that element in the snapshotted document.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from .dom import DomNode, DomSnapshot

logger = logging.getLogger("tab_bridge.actionables")

INTERACTIVE_TAGS = frozenset({"button", "select", "textarea"})
INTERACTIVE_ROLES = frozenset(
    {
        "button",
        "checkbox",
        "combobox",
        "link",
        "listbox",
        "menuitem",
        "menuitemcheckbox",
        "menuitemradio",
        "option",
        "radio",
        "searchbox",
        "slider",
        "spinbutton",
        "switch",
        "tab",
        "textbox",
        "treeitem",
    }
)
DESCRIPTION_MAX = 100

_WS_RE = re.compile(r"\s+")
_IDENT_SAFE = re.compile(r"[A-Za-z0-9_\-\u00a0-\uffff]")


def css_escape(value: str) -> str:
    """Escape an identifier for use in a CSS selector (``CSS.escape`` semantics)."""
    out: list[str] = []
    for i, ch in enumerate(value):
        if ch == "\x00":
            out.append("\ufffd")
        elif ch.isdigit() and (i == 0 or (i == 1 and value[0] == "-")):
            out.append(f"\\{ord(ch):x} ")
        elif i == 0 and ch == "-" and len(value) == 1:
            out.append("\\-")
        elif _IDENT_SAFE.match(ch):
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def is_interactive(node: DomNode) -> bool:
    tag = node.tag
    if tag == "a" and node.attr("href") is not None:
        return True
    if tag in INTERACTIVE_TAGS:
        return True
    if tag == "input":
        return (node.attr("type") or "").lower() != "hidden"
    role = (node.attr("role") or "").strip().lower()
    if role in INTERACTIVE_ROLES:
        return True
    tabindex = node.attr("tabindex")
    if tabindex is not None and not tabindex.strip().startswith("-"):
        return True
    editable = node.attr("contenteditable")
    return editable is not None and editable.lower() != "false"


def is_visible(node: DomNode, viewport: dict[str, Any] | None = None) -> bool:
    if node.hidden:
        return False
    rect = node.rect or {}
    x = float(rect.get("x") or 0)
    y = float(rect.get("y") or 0)
    w = float(rect.get("width") or 0)
    h = float(rect.get("height") or 0)
    if w <= 0 or h <= 0:
        return False
    if x + w <= 0 or y + h <= 0:
        return False
    vw = float((viewport or {}).get("width") or 0)
    vh = float((viewport or {}).get("height") or 0)
    if vw > 0 and x >= vw:
        return False
    if vh > 0 and y >= vh:
        return False
    return True


def is_enabled(node: DomNode) -> bool:
    if node.disabled or node.attr("disabled") is not None:
        return False
    return (node.attr("aria-disabled") or "").lower() != "true"


def describe(node: DomNode) -> str:
    label = (node.attr("aria-label") or "").strip()
    if label:
        return label
    text = _WS_RE.sub(" ", node.text_content()).strip()
    if text:
        return text[:DESCRIPTION_MAX]
    for name in ("placeholder", "title", "alt"):
        value = (node.attr(name) or "").strip()
        if value:
            return value
    if node.value:
        return str(node.value)
    href = node.attr("href")
    if href:
        return f"Link to: {href}"
    return ""


def element_type(node: DomNode) -> str:
    if node.tag == "input":
        return f'input[type="{(node.attr("type") or "text").lower()}"]'
    role = (node.attr("role") or "").strip()
    if role and node.tag not in ("a", "button", "select", "textarea"):
        return f'{node.tag}[role="{role}"]'
    return node.tag


# ─────────────────────────────────────────────────────────────────────────────
# Selector generation
# ─────────────────────────────────────────────────────────────────────────────


def _compound(node: DomNode) -> str:
    classes = node.classes
    if not classes:
        return node.tag
    return node.tag + "".join("." + css_escape(c) for c in classes)


def _matches_compound(node: DomNode, compound: tuple[str, str | None, tuple[str, ...]]) -> bool:
    tag, element_id, classes = compound
    if element_id is not None:
        return node.id == element_id
    if tag and node.tag != tag:
        return False
    node_classes = set(node.classes)
    return all(c in node_classes for c in classes)


def _count_chain(doc: DomNode, chain: list[tuple[str, str | None, tuple[str, ...]]]) -> int:
    count = 0
    for candidate in doc.iter():
        node: DomNode | None = candidate
        ok = True
        for compound in reversed(chain):
            if node is None or not _matches_compound(node, compound):
                ok = False
                break
            node = node.parent
        if ok:
            count += 1
            if count > 1:
                return count
    return count


def _id_unique(doc: DomNode, element_id: str) -> bool:
    return sum(1 for n in doc.iter() if n.id == element_id) == 1


def _class_path(node: DomNode, doc: DomNode) -> str | None:
    """``tag.cls > ... > tag.cls`` walking ancestors until unique or an id anchor is hit."""
    if not node.classes:
        return None
    parts = [_compound(node)]
    chain: list[tuple[str, str | None, tuple[str, ...]]] = [(node.tag, None, tuple(node.classes))]
    if _count_chain(doc, chain) == 1:
        return parts[0]
    for ancestor in node.ancestors():
        if ancestor.id and _id_unique(doc, ancestor.id):
            parts.insert(0, "#" + css_escape(ancestor.id))
            chain.insert(0, ("", ancestor.id, ()))
            return " > ".join(parts) if _count_chain(doc, chain) == 1 else None
        parts.insert(0, _compound(ancestor))
        chain.insert(0, (ancestor.tag, None, tuple(ancestor.classes)))
        if _count_chain(doc, chain) == 1:
            return " > ".join(parts)
    return None


def positional_selector(node: DomNode) -> str:
    if node.id and _id_unique(node.root(), node.id):
        return "#" + css_escape(node.id)
    if node.parent is None:
        return node.tag
    return f"{positional_selector(node.parent)} > {node.tag}:nth-child({node.nth})"


def selector_for(node: DomNode, doc: DomNode | None = None) -> str:
    doc = doc or node.root()
    try:
        if node.id and _id_unique(doc, node.id):
            return "#" + css_escape(node.id)
        path = _class_path(node, doc)
        if path:
            return path
    except Exception as exc:  # noqa: BLE001
        logger.debug("selector generation fell back to positional: %s", exc)
    return positional_selector(node)


def find_actionables(snapshot: DomSnapshot) -> list[dict[str, Any]]:
    doc = snapshot.root
    if doc is None:
        return []
    out: list[dict[str, Any]] = []
    for node in doc.iter():
        if not is_interactive(node) or not is_visible(node, snapshot.viewport) or not is_enabled(node):
            continue
        out.append(
            {
                "labelNumber": len(out),
                "description": describe(node),
                "type": element_type(node),
                "selector": selector_for(node, doc),
            }
        )
    return out


__all__ = [
    "css_escape",
    "describe",
    "element_type",
    "find_actionables",
    "is_enabled",
    "is_interactive",
    "is_visible",
    "positional_selector",
    "selector_for",
]
