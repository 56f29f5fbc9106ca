"""
AI placeholders

Marks the spots an AI agent is asked to write:

    :::ai-generate{prompt="Summarize the findings" format=list}
    :::

    The company was founded in :ai{prompt="founding year" fallback="19xx"}.

Block placeholders replace their directive with a <div>, inline ones become
a <span>; both carry data-ai-* attributes and show the fallback text (or a
short preview of the prompt) until the agent answers. The placeholders of a
render come back as RenderResult.placeholders, and placeholder_fill() puts
an answer into the rendered HTML.

Inline placeholders inside code spans are left alone.
"""

import re
import json
import html
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from markdown_it.token import Token
from markdown_it.tree import SyntaxTreeNode

from ...models.documents import AIPlaceholder, PlaceholderKind
from ...models.plugins import TransformContext
from ..directives import attributes_parse
from ..log import LOG
from ..plugin import Plugin, TreeTransform
from ..tree import (
    directive_is,
    htmlInline_make,
    inlineTokens_replace,
    node_replaceWithHtml,
    textToken_make,
)


BLOCK_NAMES = ("ai-generate", "ai_generate")
FORMATS = ("paragraph", "list", "table", "inline")

INLINE_RE = re.compile(r":ai(\{[^}\n]*\})")
VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")


def format_coerce(value: Optional[str]) -> str:
    return value if value in FORMATS else "paragraph"


def preview_make(placeholder: AIPlaceholder, width: int) -> str:
    """Text shown until the agent answers"""
    if placeholder.fallback:
        return placeholder.fallback
    prompt = placeholder.prompt
    ellipsis = "..." if len(prompt) > width else ""
    return f"[AI: {prompt[:width]}{ellipsis}]"


def prompt_interpolate(prompt: str, variables: Mapping[str, Any]) -> str:
    """
    Fill {{name}} slots; unknown names are kept as written

    Example:
        >>> prompt_interpolate("Describe {{product}} for {{team}}", {"product": "mdpp"})
        'Describe mdpp for {{team}}'
    """

    def value_get(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        return json.dumps(value) if isinstance(value, (dict, list)) else str(value)

    return VARIABLE_RE.sub(value_get, prompt)


def placeholders_interpolate(
    placeholders: Sequence[AIPlaceholder], variables: Mapping[str, Any]
) -> List[AIPlaceholder]:
    """Copies of the placeholders with their prompts interpolated"""
    return [
        replace(p, prompt=prompt_interpolate(p.prompt, variables), variables=dict(variables))
        for p in placeholders
    ]


def dataAttributes_make(placeholder: AIPlaceholder) -> str:
    escape = html.escape
    parts = [
        f'data-ai-id="{escape(placeholder.id)}"',
        f'data-ai-type="{placeholder.kind.value}"',
        f'data-ai-prompt="{escape(placeholder.prompt)}"',
    ]
    if placeholder.kind is PlaceholderKind.BLOCK:
        parts.append(f'data-ai-format="{placeholder.format}"')
    parts.append(f'data-ai-status="{placeholder.status}"')
    if placeholder.fallback:
        parts.append(f'data-ai-fallback="{escape(placeholder.fallback)}"')
    if placeholder.kind is PlaceholderKind.BLOCK and placeholder.line:
        parts.append(f'data-ai-line="{placeholder.line}"')
    return " ".join(parts)


def block_render(placeholder: AIPlaceholder, width: int = 50) -> str:
    classes = f"mdpp-ai-placeholder mdpp-ai-block mdpp-ai-format-{placeholder.format}"
    return (
        f'<div class="{classes}" {dataAttributes_make(placeholder)}>\n'
        f'<div class="mdpp-ai-pending-content">{html.escape(preview_make(placeholder, width))}</div>\n'
        '</div>\n'
    )


def inline_render(placeholder: AIPlaceholder, width: int = 30) -> str:
    return (
        f'<span class="mdpp-ai-placeholder mdpp-ai-inline" {dataAttributes_make(placeholder)}>'
        f'{html.escape(preview_make(placeholder, width))}</span>'
    )


def placeholder_fill(markup: str, placeholder_id: str, content: str, success: bool = True) -> str:
    """
    Put an agent's answer into rendered HTML

    The placeholder keeps its element and attributes; its status becomes
    "completed" (or "error" when success is False) and the preview is
    replaced by the escaped content.

    Args:
        markup: Rendered document HTML
        placeholder_id: Id of the placeholder to fill
        content: Text produced by the agent
        success: Whether generation succeeded

    Returns:
        Updated HTML (unchanged when the id is not present)
    """
    status = "completed" if success else "error"
    ident = re.escape(html.escape(placeholder_id))
    escaped = html.escape(content)

    def open_update(open_tag: str) -> str:
        return re.sub(r'data-ai-status="[^"]*"', f'data-ai-status="{status}"', open_tag)

    block_re = re.compile(
        rf'(<div class="mdpp-ai-placeholder[^"]*"[^>]*\sdata-ai-id="{ident}"[^>]*>\n)'
        r'<div class="mdpp-ai-pending-content">.*?</div>',
        re.DOTALL,
    )
    inline_re = re.compile(
        rf'(<span class="mdpp-ai-placeholder[^"]*"[^>]*\sdata-ai-id="{ident}"[^>]*>).*?(</span>)',
        re.DOTALL,
    )

    markup = block_re.sub(
        lambda m: f'{open_update(m.group(1))}<div class="mdpp-ai-content">{escaped}</div>', markup
    )
    return inline_re.sub(lambda m: f"{open_update(m.group(1))}{escaped}{m.group(2)}", markup)


def placeholderNodes_walk(node: SyntaxTreeNode) -> Iterator[SyntaxTreeNode]:
    """ai-generate directives and inline nodes, not descending into the former"""
    for child in list(node.children):
        if directive_is(child) and child.meta.get("name") in BLOCK_NAMES:
            yield child
        elif child.type == "inline":
            yield child
        else:
            yield from placeholderNodes_walk(child)


class AIPlaceholderPlugin(Plugin):

    id = "ai-placeholder"
    description = "Placeholders filled in by an AI agent (:::ai-generate, :ai{...})"
    defaults = {
        "blockPreview": 50,
        "inlinePreview": 30,
    }

    @property
    def api(self) -> Mapping[str, Callable[..., Any]]:
        return MappingProxyType({
            "interpolate": placeholders_interpolate,
            "fill": placeholder_fill,
        })

    def treeTransforms(self) -> Sequence[TreeTransform]:
        return (self.placeholders_render,)

    def placeholders_render(self, tree: SyntaxTreeNode, context: TransformContext) -> None:
        found: List[AIPlaceholder] = context.data.setdefault("placeholders", [])
        for node in placeholderNodes_walk(tree):
            if node.type == "inline":
                self.inline_rewrite(node, found, context.settings)
            else:
                self.block_replace(node, found, context.settings)
        LOG(f"{len(found)} AI placeholder(s)", level=3)

    def block_replace(
        self, node: SyntaxTreeNode, found: List[AIPlaceholder], settings: Mapping[str, Any]
    ) -> None:
        attributes = node.meta.get("attributes") or {}
        placeholder = AIPlaceholder(
            id=attributes.get("id") or f"ai-{len(found) + 1}",
            kind=PlaceholderKind.BLOCK,
            prompt=attributes.get("prompt", ""),
            format=format_coerce(attributes.get("format")),
            fallback=attributes.get("fallback") or None,
            line=node.map[0] + 1 if node.map else None,
        )
        found.append(placeholder)
        node_replaceWithHtml(node, block_render(placeholder, int(settings.get("blockPreview", 50))))

    def inline_rewrite(
        self, node: SyntaxTreeNode, found: List[AIPlaceholder], settings: Mapping[str, Any]
    ) -> None:
        children = node.token.children if node.token is not None else None
        if not children or not any(":ai{" in t.content for t in children if t.type == "text"):
            return

        width = int(settings.get("inlinePreview", 30))
        line = node.map[0] + 1 if node.map else None
        rewritten: List[Token] = []
        run: List[Token] = []

        def run_flush() -> None:
            text = "".join(token.content for token in run)
            position = 0
            replaced = False
            for match in INLINE_RE.finditer(text):
                parsed = attributes_parse(match.group(1))
                if parsed is None:
                    continue
                attributes: Dict[str, str] = parsed.attributes
                placeholder = AIPlaceholder(
                    id=attributes.get("id") or f"ai-{len(found) + 1}",
                    kind=PlaceholderKind.INLINE,
                    prompt=attributes.get("prompt", ""),
                    format="inline",
                    fallback=attributes.get("fallback") or None,
                    line=line + breaks if line is not None else None,
                )
                found.append(placeholder)
                if match.start() > position:
                    rewritten.append(textToken_make(text[position:match.start()]))
                rewritten.append(htmlInline_make(inline_render(placeholder, width)))
                position = match.end()
                replaced = True
            if not replaced:
                rewritten.extend(run)
            elif position < len(text):
                rewritten.append(textToken_make(text[position:]))
            run.clear()

        breaks = 0
        for token in children:
            if token.type == "text":
                run.append(token)
                continue
            run_flush()
            rewritten.append(token)
            if token.type in ("softbreak", "hardbreak"):
                breaks += 1
        run_flush()

        inlineTokens_replace(node, rewritten)
