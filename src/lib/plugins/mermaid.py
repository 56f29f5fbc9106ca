"""
Mermaid diagrams

Fenced ```mermaid blocks are emitted as <pre class="mermaid"> for the
client-side mermaid runtime; diagram layout happens in the browser.
"""

import html
from typing import Any, Mapping, Optional

from ..plugin import Plugin


class MermaidPlugin(Plugin):
    """Claims the bare ``mermaid`` language tag"""

    id = "mermaid"
    description = "Mermaid diagrams from ```mermaid code blocks"
    defaults = {
        "theme": "default",
        "containerClass": "mermaid",
    }
    languages = ("mermaid",)

    def codeBlock_handle(
        self, language: str, code: str, settings: Mapping[str, Any]
    ) -> Optional[str]:
        if language != "mermaid":
            return None

        css = html.escape(settings.get("containerClass", "mermaid"))
        theme = settings.get("theme", "default")
        theme_attr = f' data-theme="{html.escape(theme)}"' if theme != "default" else ""
        body = html.escape(code.rstrip("\n"))
        return f'<pre class="{css}"{theme_attr}>{body}</pre>\n'
