"""
mdpp - Markdown Plus Plus rendering core

Directive grammar, plugin pipeline, AI-context extraction and the script
trust gate.
"""

__version__ = "1.0.0"

from .parser import Parser
from .compiler import Compiler
from .serializer import Serializer
from .registry import PluginRegistry, PipelineSnapshot
from .plugin import Plugin
from .loader import PluginLoader, PluginDefinition, ComponentPlugin
from .projection import SettingsProjection
from .trust import ScriptTrustGate, TrustStore, capabilities_resolve, fileIdentity_make
from .ai_context import aiContext_extract, aiContext_has
from .log import LOG, state_connectToLogger

__all__ = [
    "Parser",
    "Compiler",
    "Serializer",
    "PluginRegistry",
    "PipelineSnapshot",
    "Plugin",
    "PluginLoader",
    "PluginDefinition",
    "ComponentPlugin",
    "SettingsProjection",
    "ScriptTrustGate",
    "TrustStore",
    "capabilities_resolve",
    "fileIdentity_make",
    "aiContext_extract",
    "aiContext_has",
    "LOG",
    "state_connectToLogger",
    "__version__",
]
