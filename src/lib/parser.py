"""
Parser for MD++ documents

Builds a markdown-it-py instance configured from ParserSettings, parses
source text into a SyntaxTreeNode document tree, and serializes a (possibly
transformed) tree back to HTML.

The parser operates in two phases:
1. parse(): front matter + block/inline parsing, directive recognition
2. tree_render(): HTML output, with fenced code blocks offered to the
   plugin pipeline and directives rendered as components

Key features:
- CommonMark baseline with GFM extensions gated by enableGfm
- Container (:::name) and leaf (::name) directives with attributes
- YAML front matter
- Heading anchors
- Parse problems reported as diagnostics, never raised

Example:
    >>> parser = Parser(ParserSettings())
    >>> result = parser.parse(':::alert{variant="info"}\\n**Info:** hi\\n:::')
    >>> node = result.tree.children[0]
    >>> node.type, node.meta["attributes"]
    ('container_directive', {'variant': 'info'})
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING

import yaml
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from mdit_py_plugins.anchors import anchors_plugin
from mdit_py_plugins.footnote import footnote_plugin
from mdit_py_plugins.front_matter import front_matter_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

from ..config.settings import ParserSettings, appsettings
from ..models.directives import ComponentSpec, CONTAINER_TOKEN, LEAF_TOKEN
from ..models.parser import Diagnostic, DiagnosticKind, ParseResult
from .ai_context import AI_CONTEXT_NAME, aiContext_renderOpen
from .directives import directive_renderOpen, directives_plugin
from .log import LOG

if TYPE_CHECKING:
    from .registry import PipelineSnapshot


CodeBlockHandler = Callable[[str, str], Optional[str]]
ComponentResolver = Callable[[Mapping[str, Any], Optional[int]], Optional[ComponentSpec]]


class Parser:
    """
    MD++ parser bound to one ParserSettings snapshot

    A Parser is cheap to build; the Compiler makes one per settings version.

    Attributes:
        settings: Settings the markdown-it instance was configured from
        md: Configured MarkdownIt instance
    """

    def __init__(self, settings: Optional[ParserSettings] = None) -> None:
        self.settings = settings or ParserSettings()
        self.md = self.md_build()

    def md_build(self) -> MarkdownIt:
        """
        Configure markdown-it-py from the settings

        Returns:
            MarkdownIt with the enabled extensions and mdpp render rules
        """
        settings = self.settings
        md = MarkdownIt("commonmark", {"html": False, "linkify": settings.feature_isEnabled("enableAutolinks")})

        if settings.feature_isEnabled("enableTables"):
            md.enable("table")
        if settings.feature_isEnabled("enableStrikethrough"):
            md.enable("strikethrough")
        if settings.feature_isEnabled("enableAutolinks"):
            md.enable("linkify")
        if settings.feature_isEnabled("enableTaskLists"):
            md.use(tasklists_plugin)
        if settings.feature_isEnabled("enableFootnotes"):
            md.use(footnote_plugin)
        if settings.feature_isEnabled("enableHeadingAnchors"):
            md.use(anchors_plugin, max_level=appsettings.anchor_max_level)

        md.use(front_matter_plugin)

        if settings.feature_isEnabled("enableDirectives"):
            md.use(directives_plugin)
            md.renderer.rules[f"{CONTAINER_TOKEN}_open"] = self.containerOpen_render
            md.renderer.rules[f"{CONTAINER_TOKEN}_close"] = self.containerClose_render
            md.renderer.rules[LEAF_TOKEN] = self.leaf_render

        self.default_fence = md.renderer.rules["fence"]
        md.renderer.rules["fence"] = self.fence_render

        LOG(f"Parser configured (gfm={settings.enableGfm}, directives={settings.enableDirectives})", level=3)
        return md

    def parse(self, source: str) -> ParseResult:
        """
        Parse MD++ source text

        Args:
            source: Document text (front matter included)

        Returns:
            ParseResult with the document tree, front matter and diagnostics
        """
        env: Dict[str, Any] = {"diagnostics": []}
        tokens = self.md.parse(source, env)
        tree = SyntaxTreeNode(tokens)

        frontmatter = self.frontmatter_read(tree, env["diagnostics"])

        LOG(f"Parsed {len(tokens)} tokens, {len(env['diagnostics'])} diagnostic(s)", level=3)
        return ParseResult(
            tree=tree,
            source=source,
            frontmatter=frontmatter,
            diagnostics=list(env["diagnostics"]),
            env=env,
        )

    def frontmatter_read(
        self, tree: SyntaxTreeNode, diagnostics: List[Diagnostic]
    ) -> Optional[Dict[str, Any]]:
        """
        Load the YAML front matter block, if the document starts with one

        Malformed YAML (or YAML that is not a mapping) is reported as a
        diagnostic and yields None.
        """
        if not tree.children or tree.children[0].type != "front_matter":
            return None

        node = tree.children[0]
        try:
            data = yaml.safe_load(node.content)
        except yaml.YAMLError as error:
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.PARSE_ERROR,
                message=f"Malformed front matter: {error}",
                line=1,
            ))
            return None

        if data is None:
            return None
        if not isinstance(data, dict):
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.PARSE_ERROR,
                message="Front matter must be a mapping",
                line=1,
            ))
            return None
        return data

    def tree_render(
        self,
        tree: SyntaxTreeNode,
        pipeline: Optional["PipelineSnapshot"] = None,
        env: Optional[Dict[str, Any]] = None,
        diagnostics: Optional[List[Diagnostic]] = None,
    ) -> str:
        """
        Serialize a document tree to HTML

        Args:
            tree: Document tree (usually after plugin transforms)
            pipeline: Snapshot offering code-block handlers and components
            env: Environment returned by parse() (footnote state)
            diagnostics: Collector for render-time diagnostics

        Returns:
            HTML string
        """
        if diagnostics is None:
            diagnostics = []

        render_env: Dict[str, Any] = dict(env or {})
        render_env["directiveTags"] = []
        render_env["componentResolve"] = self.componentResolver_make(pipeline, diagnostics)
        if pipeline is not None:
            render_env["codeBlockHandler"] = (
                lambda language, code: pipeline.codeBlock_handle(language, code, diagnostics)
            )

        return self.md.renderer.render(tree.to_tokens(), self.md.options, render_env)

    def componentResolver_make(
        self, pipeline: Optional["PipelineSnapshot"], diagnostics: List[Diagnostic]
    ) -> ComponentResolver:
        """
        Build the directive -> ComponentSpec lookup for one render

        "fw:comp" names are looked up in plugin "fw" only: an unknown or
        inactive plugin is a MISSING_PLUGIN diagnostic, an unknown component
        an UNKNOWN_COMPONENT diagnostic. Bare names are looked up across all
        active plugins. Unresolved directives render as a generic <div>.
        """

        def resolve(meta: Mapping[str, Any], line: Optional[int]) -> Optional[ComponentSpec]:
            name = meta.get("name", "")
            if ":" not in name:
                return pipeline.component_lookup(name) if pipeline is not None else None

            framework, component = name.split(":", 1)
            if pipeline is None or not pipeline.plugin_isActive(framework):
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.MISSING_PLUGIN,
                    message=f"Directive '{name}' needs plugin '{framework}', which is not active",
                    line=line,
                ))
                return None

            spec = pipeline.component_find(framework, component)
            if spec is None:
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.UNKNOWN_COMPONENT,
                    message=f"Component '{component}' not found in plugin '{framework}'",
                    line=line,
                    pluginId=framework,
                ))
            return spec

        return resolve

    def directive_open(self, token: Any, env: Dict[str, Any]) -> str:
        meta = token.meta
        line = token.map[0] + 1 if token.map else None

        if meta.get("name") == AI_CONTEXT_NAME:
            env.setdefault("directiveTags", []).append("div")
            return aiContext_renderOpen(meta)

        resolve = env.get("componentResolve")
        component = resolve(meta, line) if resolve is not None else None
        markup, tag = directive_renderOpen(meta, component)
        env.setdefault("directiveTags", []).append(tag)
        return markup

    def containerOpen_render(self, tokens: List[Any], idx: int, options: Any, env: Dict[str, Any]) -> str:
        return self.directive_open(tokens[idx], env)

    def containerClose_render(self, tokens: List[Any], idx: int, options: Any, env: Dict[str, Any]) -> str:
        tags = env.get("directiveTags") or ["div"]
        return f"</{tags.pop()}>\n"

    def leaf_render(self, tokens: List[Any], idx: int, options: Any, env: Dict[str, Any]) -> str:
        markup = self.directive_open(tokens[idx], env)
        tags = env.get("directiveTags") or ["div"]
        return f"{markup.rstrip()}</{tags.pop()}>\n"

    def fence_render(self, tokens: List[Any], idx: int, options: Any, env: Dict[str, Any]) -> str:
        """Offer a fenced code block to the pipeline before default rendering"""
        token = tokens[idx]
        info = token.info.strip()
        language = info.split(maxsplit=1)[0] if info else ""

        handler = env.get("codeBlockHandler")
        if language and handler is not None:
            rendered = handler(language, token.content)
            if rendered is not None:
                return rendered

        return self.default_fence(tokens, idx, options, env)
