"""
Document-level result models

Records derived from a parsed document: AI-context blocks, script blocks and
the overall render result handed back by the Compiler.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .parser import Diagnostic
from .trust import GateVerdict, TrustCheck


@dataclass(frozen=True)
class AIContextRecord:
    """
    One ai-context block found in a document

    Derived and read-only: recomputed on every extraction call.

    Attributes:
        visible: True only when visibility was explicitly "visible"
        content: Body text between the fences (stripped)
        sourceLine: 1-based line of the opening fence
        metadata: "key: value" lines of the body, keys lower-cased,
                  first occurrence wins
    """
    visible: bool
    content: str
    sourceLine: int
    metadata: Dict[str, str] = field(default_factory=dict)


class ScriptMode(str, Enum):
    """How a script block participates in the document"""
    EXECUTE = "execute"  # :::script - runs for side effects
    OUTPUT = "output"    # :::script:output - result is rendered in place


@dataclass(frozen=True)
class ScriptBlock:
    """
    A script block collected from the document tree

    Attributes:
        id: Stable id (attribute "id" or mdsc-N in document order)
        code: Script source
        mode: EXECUTE or OUTPUT
        lang: Script language (only "js" is understood by the runtime)
        isAsync: Whether the runtime should await the block
        cache: Whether the runtime may cache the block's result
        line: 1-based source line of the opening fence
    """
    id: str
    code: str
    mode: ScriptMode = ScriptMode.EXECUTE
    lang: str = "js"
    isAsync: bool = False
    cache: bool = True
    line: Optional[int] = None


class PlaceholderKind(str, Enum):
    """Where an AI placeholder sits"""
    BLOCK = "block"    # :::ai-generate or ::ai-generate
    INLINE = "inline"  # :ai{...} inside running text


@dataclass(frozen=True)
class AIPlaceholder:
    """
    A spot in the document an AI agent is asked to fill

    Attributes:
        id: Attribute "id" or ai-N in document order
        kind: BLOCK or INLINE
        prompt: Instruction for the agent (may hold {{variable}} slots)
        format: paragraph, list, table or inline
        fallback: Text shown until the agent answers
        status: pending, completed or error
        line: 1-based source line
        variables: Values interpolated into the prompt
    """
    id: str
    kind: PlaceholderKind
    prompt: str
    format: str = "paragraph"
    fallback: Optional[str] = None
    status: str = "pending"
    line: Optional[int] = None
    variables: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StyleBlock:
    """
    A stylesheet contributed by the document

    Attributes:
        id: Attribute "id" or mdpp-style-N in document order
        external: True for :::link-css (content is a url)
        content: CSS text, or the stylesheet url
        scoped: Whether the author asked for scoping
    """
    id: str
    external: bool
    content: str
    scoped: bool = False


@dataclass
class RenderResult:
    """
    Result of rendering one document

    Attributes:
        html: Serialized output markup
        aiContexts: Extracted AI-context records
        frontmatter: Parsed YAML front matter, or None
        diagnostics: Recoverable problems (parse errors, plugin failures, ...)
        scripts: Script blocks cleared for execution (empty unless trusted)
        trust: Trust gate answer, when the document carries scripts
        placeholders: AI placeholders found by the ai-placeholder plugin
        styles: Stylesheets collected by the style-block plugin
    """
    html: str
    aiContexts: List[AIContextRecord] = field(default_factory=list)
    frontmatter: Optional[Dict[str, Any]] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    scripts: List[ScriptBlock] = field(default_factory=list)
    trust: Optional[TrustCheck] = None
    placeholders: List[AIPlaceholder] = field(default_factory=list)
    styles: List[StyleBlock] = field(default_factory=list)

    @property
    def needsPrompt(self) -> bool:
        """True when the caller must ask the user before scripts can run"""
        return self.trust is not None and self.trust.verdict is GateVerdict.PROMPT
