"""
Compiler for MD++ documents

Runs one render end to end:

    parse -> registry snapshot -> plugin transforms -> AI-context extraction
          -> hidden-context stripping -> script gating -> HTML

A render reads the settings and the plugin set exactly once, at the start,
so concurrent settings changes or plugin (de)activation only affect the
next render.
"""

from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import ParserSettings
from ..models.documents import RenderResult
from ..models.parser import Diagnostic
from ..models.trust import TrustCheck
from .ai_context import aiContext_extract, aiContext_strip, aiContext_stripFromText
from .log import LOG
from .parser import Parser
from .registry import PluginRegistry
from .scripts import scripts_apply, scripts_has
from .trust import ScriptTrustGate, fileIdentity_make


class Compiler:
    """
    Renders MD++ source to HTML with plugins, AI context and script gating

    Responsibilities:
    - Keep a Parser matching the current settings
    - Apply the plugin pipeline from one registry snapshot
    - Extract AI-context records and strip hidden ones from output
    - Consult the trust gate for script-bearing documents
    - Collect diagnostics from every stage

    Attributes:
        projection: Source of the current ParserSettings (SettingsProjection
                    or anything with a ``settings`` attribute)
        registry: Plugin registry
        gate: Script trust gate
    """

    def __init__(
        self,
        projection: Any,
        registry: PluginRegistry,
        gate: Optional[ScriptTrustGate] = None,
    ) -> None:
        self.projection = projection
        self.registry = registry
        self.gate = gate
        self._parser: Optional[Tuple[ParserSettings, Parser]] = None

    def parser_get(self, settings: ParserSettings) -> Parser:
        """Parser configured for a settings snapshot (cached per snapshot)"""
        if self._parser is not None and self._parser[0] is settings:
            return self._parser[1]
        parser = Parser(settings)
        self._parser = (settings, parser)
        return parser

    def trust_consult(self, fileIdentity: Optional[str], source: str) -> Optional[TrustCheck]:
        """Gate answer for a script-bearing tree, None when no gate is set"""
        if self.gate is None:
            return None
        identity = fileIdentity or fileIdentity_make(content=source)
        return self.gate.consult(identity)

    def render(self, source: str, fileIdentity: Optional[str] = None) -> RenderResult:
        """
        Render a document

        Args:
            source: MD++ text
            fileIdentity: Identity for the trust gate; unsaved buffers are
                          identified by their content when omitted

        Returns:
            RenderResult
        """
        settings: ParserSettings = self.projection.settings
        snapshot = self.registry.snapshot()
        parser = self.parser_get(settings)

        LOG(f"Rendering with plugins: {[e.plugin.id for e in snapshot.active]}", level=2)

        text = source
        if not settings.enableDirectives and not settings.showAIContext:
            text = aiContext_stripFromText(source)

        parsed = parser.parse(text)
        diagnostics: List[Diagnostic] = list(parsed.diagnostics)

        data: Dict[str, Any] = {}
        tree = snapshot.render(parsed.tree, diagnostics, data)

        ai_contexts = []
        if settings.enableAIContext:
            # Without the directive grammar the tree has no ai-context nodes
            ai_contexts = aiContext_extract(tree if settings.enableDirectives else source)
        if not settings.showAIContext:
            removed = aiContext_strip(tree)
            LOG(f"Stripped {removed} hidden AI-context block(s)", level=3)

        trust: Optional[TrustCheck] = None
        scripts = []
        if scripts_has(tree):
            if settings.enableScripts:
                trust = self.trust_consult(fileIdentity, source)
                scripts = scripts_apply(tree, trust, diagnostics)
            else:
                scripts = scripts_apply(tree, None, diagnostics, unchecked_reason="scripts disabled")

        html = parser.tree_render(tree, snapshot, parsed.env, diagnostics)

        for diagnostic in diagnostics:
            LOG(diagnostic.describe(), level=2)

        return RenderResult(
            html=html,
            aiContexts=ai_contexts,
            frontmatter=parsed.frontmatter,
            diagnostics=diagnostics,
            scripts=scripts,
            trust=trust,
            placeholders=data.get("placeholders", []),
            styles=data.get("styles", []),
        )
