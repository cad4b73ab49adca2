"""
Accessibility snapshot built from a DOM snapshot.

Node shape: ``{"role", "name"?, <flattened state properties>?, "children"?}``.
With ``interesting_only`` set, nodes without a role, a name or any property
are elided and their children promoted into the parent.
"""

from __future__ import annotations

import re
from typing import Any

from .dom import DomNode, DomSnapshot

_WS_RE = re.compile(r"\s+")

TAG_ROLES: dict[str, str] = {
    "article": "article",
    "aside": "complementary",
    "body": "document",
    "button": "button",
    "dialog": "dialog",
    "dd": "definition",
    "dt": "term",
    "fieldset": "group",
    "figure": "figure",
    "footer": "contentinfo",
    "form": "form",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "h4": "heading",
    "h5": "heading",
    "h6": "heading",
    "header": "banner",
    "hr": "separator",
    "li": "listitem",
    "main": "main",
    "menu": "list",
    "nav": "navigation",
    "ol": "list",
    "optgroup": "group",
    "option": "option",
    "output": "status",
    "p": "paragraph",
    "progress": "progressbar",
    "table": "table",
    "tbody": "rowgroup",
    "td": "cell",
    "textarea": "textbox",
    "tfoot": "rowgroup",
    "th": "columnheader",
    "thead": "rowgroup",
    "tr": "row",
    "ul": "list",
}

INPUT_ROLES: dict[str, str] = {
    "button": "button",
    "checkbox": "checkbox",
    "email": "textbox",
    "image": "button",
    "number": "spinbutton",
    "password": "textbox",
    "radio": "radio",
    "range": "slider",
    "reset": "button",
    "search": "searchbox",
    "submit": "button",
    "tel": "textbox",
    "text": "textbox",
    "url": "textbox",
}

NAME_FROM_CONTENT = frozenset(
    {
        "button",
        "cell",
        "checkbox",
        "columnheader",
        "heading",
        "link",
        "menuitem",
        "menuitemcheckbox",
        "menuitemradio",
        "option",
        "radio",
        "row",
        "rowheader",
        "switch",
        "tab",
        "tooltip",
        "treeitem",
    }
)

VALUE_ROLES = frozenset({"combobox", "searchbox", "slider", "spinbutton", "textbox"})

# aria-* attribute -> flattened property name, in output order.
ARIA_PROPERTIES = (
    ("aria-expanded", "expanded"),
    ("aria-checked", "checked"),
    ("aria-selected", "selected"),
    ("aria-pressed", "pressed"),
    ("aria-disabled", "disabled"),
    ("aria-required", "required"),
    ("aria-haspopup", "haspopup"),
)


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def _aria_value(raw: str | None) -> Any:
    """Normalize ``"true"``/``"false"`` to booleans; other tokens (``"mixed"``, ``"menu"``) pass through."""
    if raw is None:
        return None
    token = raw.strip()
    if token.lower() == "true":
        return True
    if token.lower() == "false":
        return False
    return token or None


def role_of(node: DomNode) -> str | None:
    explicit = (node.attr("role") or "").strip().split()
    if explicit:
        role = explicit[0].lower()
        return None if role in ("presentation", "none") else role
    tag = node.tag
    if tag == "a":
        return "link" if node.attr("href") is not None else None
    if tag == "img":
        alt = node.attr("alt")
        return None if alt == "" else "img"
    if tag == "input":
        kind = (node.attr("type") or "text").lower()
        if kind == "hidden":
            return None
        return INPUT_ROLES.get(kind, "textbox")
    if tag == "select":
        size = node.attr("size") or ""
        multiple = node.attr("multiple") is not None
        return "listbox" if multiple or (size.isdigit() and int(size) > 1) else "combobox"
    if tag == "section":
        return "region" if (node.attr("aria-label") or node.attr("aria-labelledby")) else None
    return TAG_ROLES.get(tag)


def _label_text(node: DomNode, doc: DomNode) -> str:
    if node.id:
        for other in doc.iter():
            if other.tag == "label" and other.attr("for") == node.id:
                text = _collapse(other.text_content())
                if text:
                    return text
    for ancestor in node.ancestors():
        if ancestor.tag == "label":
            return _collapse(ancestor.text_content())
    return ""


def name_of(node: DomNode, role: str | None, doc: DomNode) -> str:
    label = _collapse(node.attr("aria-label") or "")
    if label:
        return label
    labelledby = (node.attr("aria-labelledby") or "").split()
    if labelledby:
        parts = []
        for ref in labelledby:
            target = doc.find_by_id(ref)
            if target is not None:
                parts.append(_collapse(target.text_content()))
        text = " ".join(p for p in parts if p)
        if text:
            return text
    if node.tag in ("input", "select", "textarea", "meter", "progress", "output"):
        text = _label_text(node, doc)
        if text:
            return text
    for attr in ("alt", "placeholder", "title"):
        value = _collapse(node.attr(attr) or "")
        if value:
            return value
    if role in NAME_FROM_CONTENT:
        return _collapse(node.text_content())
    return ""


def properties_of(node: DomNode, role: str | None) -> dict[str, Any]:
    props: dict[str, Any] = {}
    for attr, key in ARIA_PROPERTIES:
        value = _aria_value(node.attr(attr))
        if value is not None:
            props[key] = value
    if node.tag == "input" and node.checked is not None and "checked" not in props:
        props["checked"] = bool(node.checked)
    if node.disabled and "disabled" not in props:
        props["disabled"] = True
    if node.attr("required") is not None and "required" not in props:
        props["required"] = True
    if role == "heading":
        level = node.attr("aria-level")
        if level and level.strip().isdigit():
            props["level"] = int(level)
        elif len(node.tag) == 2 and node.tag[0] == "h" and node.tag[1].isdigit():
            props["level"] = int(node.tag[1])
    if role in VALUE_ROLES:
        kind = (node.attr("type") or "").lower()
        if node.value not in (None, "") and kind != "password":
            props["value"] = node.value
        elif node.attr("aria-valuenow") is not None:
            props["value"] = node.attr("aria-valuenow")
    return props


def _is_hidden(node: DomNode) -> bool:
    return node.hidden or (node.attr("aria-hidden") or "").lower() == "true"


def _build(node: DomNode, doc: DomNode, interesting_only: bool, is_root: bool) -> list[dict[str, Any]]:
    if _is_hidden(node):
        return []
    children: list[dict[str, Any]] = []
    for child in node.children:
        children.extend(_build(child, doc, interesting_only, False))

    role = role_of(node)
    name = name_of(node, role, doc)
    props = properties_of(node, role)
    entry: dict[str, Any] = {"role": role}
    if name:
        entry["name"] = name
    entry.update(props)

    interesting = bool(role or name or props)
    if interesting_only and not interesting and not is_root:
        if not children:
            return []
        if len(children) == 1:
            return children
        return [{"role": None, "children": children}]
    if children:
        entry["children"] = children
    return [entry]


def build_snapshot(snapshot: DomSnapshot, *, interesting_only: bool = True) -> dict[str, Any] | None:
    root = snapshot.root
    if root is None or _is_hidden(root):
        return None
    nodes = _build(root, root, interesting_only, True)
    return nodes[0] if nodes else None


__all__ = ["build_snapshot", "name_of", "properties_of", "role_of"]
