"""
Models package for mdpp

Contains data structures and type definitions for the rendering pipeline.
"""

from .state import ProgramState, pipeline
from .directives import (
    DirectiveKind,
    DirectiveNode,
    ComponentSpec,
    RESERVED_DIRECTIVES,
    CONTAINER_TOKEN,
    LEAF_TOKEN,
)
from .parser import Diagnostic, DiagnosticKind, AttributeList, FenceMatch, ParseResult
from .plugins import PluginState, PluginContext, TransformContext
from .trust import (
    SecurityLevel,
    TrustDecision,
    PromptOutcome,
    GateVerdict,
    TrustRecord,
    TrustCheck,
    TrustStoreEntry,
)
from .documents import (
    AIContextRecord,
    AIPlaceholder,
    PlaceholderKind,
    ScriptBlock,
    ScriptMode,
    StyleBlock,
    RenderResult,
)

__all__ = [
    "ProgramState",
    "pipeline",
    "DirectiveKind",
    "DirectiveNode",
    "ComponentSpec",
    "RESERVED_DIRECTIVES",
    "CONTAINER_TOKEN",
    "LEAF_TOKEN",
    "Diagnostic",
    "DiagnosticKind",
    "AttributeList",
    "FenceMatch",
    "ParseResult",
    "PluginState",
    "PluginContext",
    "TransformContext",
    "SecurityLevel",
    "TrustDecision",
    "PromptOutcome",
    "GateVerdict",
    "TrustRecord",
    "TrustCheck",
    "TrustStoreEntry",
    "AIContextRecord",
    "AIPlaceholder",
    "PlaceholderKind",
    "StyleBlock",
    "ScriptBlock",
    "ScriptMode",
    "RenderResult",
]
