"""
Kroki diagrams

Renders text diagrams through a Kroki server (https://kroki.io).

Usage:
    ```kroki-plantuml
    @startuml
    Alice -> Bob: Hello
    @enduml
    ```

    :::kroki{type=plantuml}
    @startuml
    Alice -> Bob: Hello
    @enduml
    :::

Language tags with the explicit ``kroki-`` prefix are claimed outright.
Bare diagram names (``plantuml``, ``mermaid``) are served only when no other
active plugin claims them, so ```mermaid stays with the mermaid plugin.
"""

import html
import zlib
import base64
from typing import Any, Mapping, Optional, Sequence

from markdown_it.tree import SyntaxTreeNode

from ...models.plugins import TransformContext
from ..log import LOG
from ..plugin import Plugin, TreeTransform
from ..tree import directives_find, node_replaceWithHtml


KROKI_DIAGRAM_TYPES = (
    'blockdiag', 'seqdiag', 'actdiag', 'nwdiag', 'packetdiag', 'rackdiag',
    'bpmn', 'bytefield', 'c4plantuml', 'd2', 'dbml', 'ditaa', 'erd',
    'excalidraw', 'graphviz', 'mermaid', 'nomnoml', 'pikchr', 'plantuml',
    'structurizr', 'svgbob', 'symbolator', 'tikz', 'umlet',
    'vega', 'vegalite', 'wavedrom', 'wireviz',
)

KROKI_PREFIX = "kroki-"


def diagram_encode(source: str) -> str:
    """
    Encode diagram source for a Kroki GET url

    Kroki expects zlib-deflated UTF-8, url-safe base64.

    Example:
        >>> zlib.decompress(base64.urlsafe_b64decode(diagram_encode("a->b"))).decode()
        'a->b'
    """
    compressed = zlib.compress(source.encode("utf-8"), 9)
    return base64.urlsafe_b64encode(compressed).decode("ascii")


def url_make(diagram_type: str, source: str, fmt: str, server: str) -> str:
    return f"{server.rstrip('/')}/{diagram_type}/{fmt}/{diagram_encode(source)}"


def type_extract(language: str) -> Optional[str]:
    """Diagram type for "kroki-<type>" or a bare "<type>" tag"""
    name = language[len(KROKI_PREFIX):] if language.startswith(KROKI_PREFIX) else language
    name = name.lower()
    return name if name in KROKI_DIAGRAM_TYPES else None


def diagram_render(diagram_type: str, source: str, settings: Mapping[str, Any]) -> str:
    """
    Markup for one diagram

    renderMode "api" emits an <img> pointing at the server; "inline" emits
    a placeholder carrying the url for the client to fetch.
    """
    url = url_make(
        diagram_type,
        source,
        settings.get("defaultFormat", "svg"),
        settings.get("serverUrl", "https://kroki.io"),
    )
    css = html.escape(settings.get("containerClass", "mdpp-kroki-diagram"))
    escaped = html.escape(source)

    if settings.get("renderMode", "api") == "api":
        fallback = ""
        if settings.get("showFallback", True):
            fallback = f'\n  <noscript><pre class="kroki-fallback">{escaped}</pre></noscript>'
        return (
            f'<div class="{css}" data-kroki-type="{diagram_type}">\n'
            f'  <img src="{html.escape(url)}" alt="{diagram_type} diagram" loading="lazy" />'
            f'{fallback}\n</div>\n'
        )

    return (
        f'<div class="{css}" data-kroki-type="{diagram_type}" data-kroki-src="{html.escape(url)}">\n'
        f'  <div class="kroki-loading">Loading {diagram_type} diagram...</div>\n'
        f'  <pre class="kroki-source" hidden>{escaped}</pre>\n</div>\n'
    )


class KrokiPlugin(Plugin):

    id = "kroki"
    description = "Diagrams rendered by a Kroki server"
    defaults = {
        "serverUrl": "https://kroki.io",
        "defaultFormat": "svg",
        "renderMode": "api",
        "showFallback": True,
        "containerClass": "mdpp-kroki-diagram",
    }
    languages = tuple(f"{KROKI_PREFIX}{name}" for name in KROKI_DIAGRAM_TYPES)

    def treeTransforms(self) -> Sequence[TreeTransform]:
        return (self.directives_render,)

    def codeBlock_handle(
        self, language: str, code: str, settings: Mapping[str, Any]
    ) -> Optional[str]:
        diagram_type = type_extract(language)
        if diagram_type is None:
            return None
        return diagram_render(diagram_type, code.strip(), settings)

    def directives_render(
        self, tree: SyntaxTreeNode, context: TransformContext
    ) -> Optional[SyntaxTreeNode]:
        """Replace :::kroki{type=...} containers with diagram markup"""
        for node in directives_find(tree, "kroki"):
            diagram_type = (node.meta.get("attributes") or {}).get("type", "plantuml").lower()
            if diagram_type not in KROKI_DIAGRAM_TYPES:
                LOG(f"Unknown Kroki diagram type '{diagram_type}'", level=1)
                node_replaceWithHtml(
                    node,
                    '<div class="mdpp-error mdpp-error-warning">'
                    f'<strong>Unknown Kroki Diagram Type</strong>'
                    f'<p>Type "{html.escape(diagram_type)}" is not supported.</p></div>',
                )
                continue
            node_replaceWithHtml(node, diagram_render(diagram_type, node.content.strip(), context.settings))
        return None
