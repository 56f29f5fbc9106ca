"""
Serializer for MD++ document trees

Writes a parsed tree back to MD++ text. Directive fences are rebuilt from
node metadata; every other block is copied from its source line range, so
parse -> serialize -> parse preserves the directive nesting structure.

Attribute order in rebuilt fences:
    classes (as .tokens, original order) -> #id -> key="value" pairs

Example:
    >>> source = ':::outer{.a .b}\\n:::inner{k=v}\\ntext\\n:::\\n:::'
    >>> tree = Parser().parse(source).tree
    >>> print(Serializer(source).tree_serialize(tree))
    :::outer{.a .b}
    :::inner{k="v"}
    text
    :::
    :::
"""

import re
from typing import Any, List, Mapping, Optional

from markdown_it.tree import SyntaxTreeNode

from ..models.directives import CONTAINER_TOKEN, LEAF_TOKEN

BARE_VALUE_RE = re.compile(r"^[\w.:/-]+$")
CLASS_TOKEN_RE = re.compile(r"^[\w-]+$")


def attributes_serialize(attributes: Mapping[str, str]) -> str:
    """
    Render an attribute mapping as a brace list

    Returns:
        "{...}" or "" when there are no attributes
    """
    parts: List[str] = []
    for token in attributes.get("class", "").split(" "):
        if not token:
            continue
        parts.append(f".{token}" if CLASS_TOKEN_RE.match(token) else f'class="{token}"')

    identifier = attributes.get("id")
    if identifier is not None:
        parts.append(f"#{identifier}" if CLASS_TOKEN_RE.match(identifier) else f'id="{identifier}"')

    for key, value in attributes.items():
        if key in ("class", "id"):
            continue
        if value == "":
            parts.append(key)
        elif '"' in value:
            parts.append(f"{key}='{value}'")
        else:
            parts.append(f'{key}="{value}"')

    return "{" + " ".join(parts) + "}" if parts else ""


def fence_serialize(meta: Mapping[str, Any], markup: str) -> str:
    """Opening fence (or leaf line) for a directive"""
    label = meta.get("label")
    label_text = f"[{label}]" if label is not None else ""
    return f"{markup}{meta['name']}{label_text}{attributes_serialize(meta.get('attributes') or {})}"


class Serializer:
    """
    Tree -> MD++ text

    Attributes:
        source: Text the tree was parsed from
        lines: Source split into lines
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.lines = source.splitlines()

    def source_slice(self, node: SyntaxTreeNode) -> Optional[str]:
        if not node.map:
            return None
        start, end = node.map
        return "\n".join(self.lines[start:end])

    def node_serialize(self, node: SyntaxTreeNode) -> str:
        if node.type == CONTAINER_TOKEN:
            opening = node.nester_tokens.opening if node.nester_tokens else None
            markup = opening.markup if opening is not None and opening.markup else ":::"
            body = self.children_serialize(node.children)
            parts = [fence_serialize(node.meta, markup)]
            if body:
                parts.append(body)
            parts.append(":" * len(markup))
            return "\n".join(parts)

        if node.type == LEAF_TOKEN:
            return fence_serialize(node.meta, "::")

        if node.type == "html_block" and not node.map:
            return node.content.rstrip("\n")

        text = self.source_slice(node)
        if text is not None:
            return text
        return node.content.rstrip("\n")

    def children_serialize(self, children: List[SyntaxTreeNode]) -> str:
        return "\n\n".join(self.node_serialize(child) for child in children)

    def tree_serialize(self, tree: SyntaxTreeNode) -> str:
        """
        Serialize a whole document

        Args:
            tree: Root SyntaxTreeNode

        Returns:
            MD++ text (blocks separated by blank lines)
        """
        return self.children_serialize(tree.children)
