"""
mdpp - Markdown Plus Plus rendering core

Markdown extended with nestable directives, an ordered plugin pipeline,
AI-context metadata and a trust gate for embedded scripts.
"""

__version__ = "1.0.0"

from .lib import (
    Parser,
    Compiler,
    Serializer,
    PluginRegistry,
    Plugin,
    SettingsProjection,
    ScriptTrustGate,
    TrustStore,
    LOG,
    state_connectToLogger,
)

__all__ = [
    "Parser",
    "Compiler",
    "Serializer",
    "PluginRegistry",
    "Plugin",
    "SettingsProjection",
    "ScriptTrustGate",
    "TrustStore",
    "LOG",
    "state_connectToLogger",
    "__version__",
]
