"""
Parser-specific data models

Type-safe structures for parser operations and return values.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from markdown_it.tree import SyntaxTreeNode


class DiagnosticKind(Enum):
    """
    Categories of recoverable problems reported alongside a render

    None of these abort rendering; they are surfaced in RenderResult.diagnostics.
    """
    PARSE_ERROR = "parse-error"              # malformed or unclosed directive fence
    PLUGIN_FAILURE = "plugin-failure"        # a transform or code-block handler raised
    MISSING_PLUGIN = "missing-plugin"        # "fw:comp" names an unknown/inactive plugin
    UNKNOWN_COMPONENT = "unknown-component"  # plugin known, component not
    SECURITY_BLOCKED = "security-blocked"    # script held back by the trust gate, or unsafe stylesheet url


@dataclass(frozen=True)
class Diagnostic:
    """
    A recoverable problem found while parsing or rendering

    Attributes:
        kind: DiagnosticKind category
        message: Human-readable description
        line: 1-based source line, when known
        pluginId: Plugin responsible, for plugin failures
    """
    kind: DiagnosticKind
    message: str
    line: Optional[int] = None
    pluginId: Optional[str] = None

    def describe(self) -> str:
        """One-line description including location and plugin"""
        where = f"line {self.line}: " if self.line else ""
        who = f"[{self.pluginId}] " if self.pluginId else ""
        return f"{self.kind.value}: {who}{where}{self.message}"


@dataclass
class AttributeList:
    """
    Result of parsing a brace-delimited directive attribute list

    Returned by directives.attributes_parse(). A None result (instead of an
    AttributeList) means the attribute syntax was malformed.

    Attributes:
        attributes: Parsed attributes; classes collapsed into "class"

    Example:
        Input: '{.note .wide variant="info" open}'
        Result: AttributeList(attributes={
            "class": "note wide", "variant": "info", "open": ""
        })
    """
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class FenceMatch:
    """
    Result of matching a directive fence line

    Attributes:
        markup: The colon run (":::" or "::")
        name: Directive name
        label: Bracket label or None
        attributes: Parsed attributes
    """
    markup: str
    name: str
    label: Optional[str]
    attributes: Dict[str, str]


@dataclass
class ParseResult:
    """
    Result of parsing an MD++ document

    Attributes:
        tree: Root SyntaxTreeNode of the document
        source: Source text that was parsed (front matter included)
        frontmatter: Parsed YAML front matter, or None
        diagnostics: Recoverable problems found during parsing
        env: markdown-it environment (footnote/reference state for rendering)
    """
    tree: 'SyntaxTreeNode'
    source: str
    frontmatter: Optional[Dict[str, Any]] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    env: Dict[str, Any] = field(default_factory=dict)
