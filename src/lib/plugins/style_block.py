"""
Document stylesheets

Lets a document carry its own CSS:

    :::style{#theme scoped}
    .card { border: 1px solid #ccc; }
    :::

    :::link-css
    https://cdn.example.com/theme.css
    :::

Inline CSS becomes a <style> element and external sheets a
<link rel="stylesheet">. Only http(s) and relative urls are linked; anything
else is dropped with a security-blocked diagnostic. Every stylesheet is also
reported in RenderResult.styles so hosts that build their own <head> can
place it there.
"""

import html
from typing import List, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from markdown_it.tree import SyntaxTreeNode

from ...models.documents import StyleBlock
from ...models.parser import Diagnostic, DiagnosticKind
from ...models.plugins import TransformContext
from ..log import LOG
from ..plugin import Plugin, TreeTransform
from ..tree import directives_find, node_remove, node_replaceWithHtml


STYLE_NAMES = ("style",)
LINK_NAMES = ("link-css", "linkcss", "css-link")
LINK_SCHEMES = ("", "http", "https")


def css_escape(css: str) -> str:
    """Keep CSS text from closing its <style> element"""
    return css.replace("</", "<\\/")


def url_isSafe(url: str) -> bool:
    """Relative and http(s) urls only"""
    try:
        scheme = urlsplit(url).scheme.lower()
    except ValueError:
        return False
    return scheme in LINK_SCHEMES


def linkUrl_get(node: SyntaxTreeNode) -> Optional[str]:
    """Stylesheet url from the url/href attribute, else the first body line"""
    attributes: Mapping[str, str] = node.meta.get("attributes") or {}
    url = attributes.get("url") or attributes.get("href")
    if url:
        return url.strip()
    for line in node.content.splitlines():
        if line.strip():
            return line.strip()
    return None


def style_render(block: StyleBlock) -> str:
    scoped = ' data-scoped="true"' if block.scoped else ""
    return f'<style id="{html.escape(block.id)}"{scoped}>\n{css_escape(block.content)}\n</style>\n'


def link_render(block: StyleBlock) -> str:
    return f'<link rel="stylesheet" id="{html.escape(block.id)}" href="{html.escape(block.content)}">\n'


class StyleBlockPlugin(Plugin):

    id = "style-block"
    description = "Document CSS through :::style and :::link-css blocks"
    defaults = {
        "allowExternal": True,
    }

    def treeTransforms(self) -> Sequence[TreeTransform]:
        return (self.styles_render,)

    def styles_render(self, tree: SyntaxTreeNode, context: TransformContext) -> None:
        found: List[StyleBlock] = context.data.setdefault("styles", [])
        for node in directives_find(tree):
            name = node.meta.get("name")
            if name not in STYLE_NAMES + LINK_NAMES or not self.attached_is(node, tree):
                continue
            if name in STYLE_NAMES:
                self.style_replace(node, found)
            else:
                self.link_replace(node, found, context)
        LOG(f"{len(found)} document stylesheet(s)", level=3)

    @staticmethod
    def attached_is(node: SyntaxTreeNode, tree: SyntaxTreeNode) -> bool:
        """False once an enclosing block has been replaced"""
        while node.parent is not None:
            if not any(child is node for child in node.parent.children):
                return False
            node = node.parent
        return node is tree

    @staticmethod
    def blockId_make(node: SyntaxTreeNode, found: List[StyleBlock]) -> str:
        attributes: Mapping[str, str] = node.meta.get("attributes") or {}
        return attributes.get("id") or f"mdpp-style-{len(found) + 1}"

    def style_replace(self, node: SyntaxTreeNode, found: List[StyleBlock]) -> None:
        attributes: Mapping[str, str] = node.meta.get("attributes") or {}
        block = StyleBlock(
            id=self.blockId_make(node, found),
            external=False,
            content=node.content.strip("\n"),
            scoped="scoped" in attributes,
        )
        found.append(block)
        node_replaceWithHtml(node, style_render(block))

    def link_replace(
        self, node: SyntaxTreeNode, found: List[StyleBlock], context: TransformContext
    ) -> None:
        line = node.map[0] + 1 if node.map else None
        url = linkUrl_get(node)
        if not url:
            LOG(f"Stylesheet link without a url at line {line}", level=2)
            return

        if not context.settings.get("allowExternal", True) or not url_isSafe(url):
            context.diagnostics.append(Diagnostic(
                kind=DiagnosticKind.SECURITY_BLOCKED,
                message=f"Stylesheet url refused: {url}",
                line=line,
                pluginId=self.id,
            ))
            node_remove(node)
            return

        block = StyleBlock(id=self.blockId_make(node, found), external=True, content=url)
        found.append(block)
        node_replaceWithHtml(node, link_render(block))
