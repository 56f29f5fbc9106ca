"""
Document tree helpers

Small utilities over markdown-it's SyntaxTreeNode used by the compiler and
by plugin tree transforms: finding directive nodes, taking read-only
DirectiveNode views of them, and splicing rendered HTML into the tree.
"""

from typing import Iterator, List, Optional

from markdown_it.token import Token
from markdown_it.tree import SyntaxTreeNode

from ..models.directives import DirectiveKind, DirectiveNode, CONTAINER_TOKEN, LEAF_TOKEN


def nodes_walk(tree: SyntaxTreeNode) -> Iterator[SyntaxTreeNode]:
    """Depth-first, document-order walk (root included)"""
    yield from tree.walk()


def directive_is(node: SyntaxTreeNode) -> bool:
    """True for container and leaf directive nodes"""
    return node.type in (CONTAINER_TOKEN, LEAF_TOKEN)


def directives_find(tree: SyntaxTreeNode, name: Optional[str] = None) -> List[SyntaxTreeNode]:
    """
    Collect directive nodes in document order

    Returns a list (not a generator) so callers may mutate the tree while
    iterating over the result.

    Args:
        tree: Root (or any subtree) to search
        name: Only return directives with this name

    Returns:
        Matching directive nodes, outer before inner
    """
    found = []
    for node in tree.walk():
        if not directive_is(node):
            continue
        if name is None or node.meta.get("name") == name:
            found.append(node)
    return found


def directive_view(node: SyntaxTreeNode) -> DirectiveNode:
    """
    Read-only DirectiveNode view of a directive tree node

    Raises:
        ValueError: If the node is not a directive
    """
    if not directive_is(node):
        raise ValueError(f"Not a directive node: {node.type}")

    meta = node.meta
    kind = DirectiveKind(meta.get("kind", DirectiveKind.CONTAINER.value))
    return DirectiveNode(
        kind=kind,
        name=meta["name"],
        attributes=dict(meta.get("attributes") or {}),
        label=meta.get("label"),
        children=list(node.children) if kind is DirectiveKind.CONTAINER else [],
        line=node.map[0] + 1 if node.map else 1,
        body=node.content if kind is DirectiveKind.CONTAINER else "",
    )


def htmlNode_make(markup: str, source_map: Optional[List[int]] = None) -> SyntaxTreeNode:
    """
    Build a standalone html_block node

    Args:
        markup: HTML emitted verbatim by the renderer
        source_map: Optional [start, end) source line range to carry over

    Returns:
        Non-root SyntaxTreeNode wrapping a single html_block token
    """
    if markup and not markup.endswith("\n"):
        markup += "\n"
    token = Token("html_block", "", 0, content=markup, block=True, map=source_map)
    return SyntaxTreeNode([token], create_root=False)


def node_replace(node: SyntaxTreeNode, replacement: SyntaxTreeNode) -> None:
    """Swap a node for another one at the same position in its parent"""
    parent = node.parent
    if parent is None:
        raise ValueError("Cannot replace the root node")
    children = [replacement if child is node else child for child in parent.children]
    replacement.parent = parent
    parent.children = children


def node_replaceWithHtml(node: SyntaxTreeNode, markup: str) -> SyntaxTreeNode:
    """Replace a node with an html_block carrying its source map"""
    replacement = htmlNode_make(markup, list(node.map) if node.map else None)
    node_replace(node, replacement)
    return replacement


def node_remove(node: SyntaxTreeNode) -> None:
    """Detach a node from its parent"""
    parent = node.parent
    if parent is None:
        raise ValueError("Cannot remove the root node")
    parent.children = [child for child in parent.children if child is not node]


def node_insertChild(parent: SyntaxTreeNode, child: SyntaxTreeNode, index: int = 0) -> None:
    """Insert a child node at the given position"""
    children = list(parent.children)
    children.insert(index, child)
    child.parent = parent
    parent.children = children


def text_collect(node: SyntaxTreeNode) -> str:
    """Concatenate the text/code content below a node"""
    parts = []
    for descendant in node.walk():
        if descendant.type in ("text", "code_inline"):
            parts.append(descendant.content)
        elif descendant.type in ("softbreak", "hardbreak"):
            parts.append("\n")
        elif descendant.type in ("fence", "code_block"):
            parts.append(descendant.content)
    return "".join(parts)


def inlineNodes_find(tree: SyntaxTreeNode) -> List[SyntaxTreeNode]:
    """Collect ``inline`` nodes (paragraph and heading text) in document order"""
    return [node for node in tree.walk() if node.type == "inline"]


def inlineTokens_replace(node: SyntaxTreeNode, tokens: List[Token]) -> None:
    """
    Replace the inline tokens under an ``inline`` node

    The renderer reads the inline token's own children, so the token and
    the tree view are both updated.
    """
    if node.token is None or node.type != "inline":
        raise ValueError(f"Not an inline node: {node.type}")
    node.token.children = tokens
    rebuilt = SyntaxTreeNode(tokens).children
    for child in rebuilt:
        child.parent = node
    node.children = rebuilt


def htmlInline_make(markup: str) -> Token:
    """Inline token emitted verbatim by the renderer"""
    return Token("html_inline", "", 0, content=markup)


def textToken_make(text: str) -> Token:
    return Token("text", "", 0, content=text)
