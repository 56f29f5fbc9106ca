"""
KaTeX math

Fenced ```math / ```latex / ```katex blocks become math containers that the
client-side KaTeX runtime typesets. The public api exposes render() so
other plugins can emit the same markup.
"""

import html
from typing import Any, Callable, Mapping, Optional

from ..plugin import Plugin


class KatexPlugin(Plugin):

    id = "katex"
    description = "Math typesetting for ```math, ```latex and ```katex blocks"
    defaults = {
        "displayMode": True,
        "throwOnError": False,
    }
    languages = ("math", "latex", "katex")

    @property
    def api(self) -> Mapping[str, Callable[..., Any]]:
        return {"render": self.render}

    def render(self, latex: str, displayMode: bool = True) -> str:
        """
        Markup for a LaTeX expression

        Args:
            latex: Expression source
            displayMode: Block (True) or inline (False) math

        Returns:
            <div class="math math-display"> or <span class="math math-inline">
        """
        if displayMode:
            return f'<div class="math math-display">{html.escape(latex.strip())}</div>\n'
        return f'<span class="math math-inline">{html.escape(latex.strip())}</span>'

    def codeBlock_handle(
        self, language: str, code: str, settings: Mapping[str, Any]
    ) -> Optional[str]:
        if language not in self.languages:
            return None
        return self.render(code, bool(settings.get("displayMode", True)))
