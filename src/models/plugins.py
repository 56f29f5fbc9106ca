"""
Plugin lifecycle models

Lifecycle states and the context objects the PluginRegistry hands to plugins.
Settings always arrive as read-only mappings owned by the registry.
"""

from enum import Enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping

from .parser import Diagnostic


class PluginState(Enum):
    """Lifecycle state of a registered plugin"""
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass(frozen=True)
class PluginContext:
    """
    Context passed to Plugin.activate()

    Attributes:
        settings: Initial settings snapshot (defaults merged with supplied keys)
        logger: loguru logger bound to the plugin id
    """
    settings: Mapping[str, Any]
    logger: Any


@dataclass
class TransformContext:
    """
    Context passed to every tree transform

    Attributes:
        pluginId: Id of the plugin owning the transform
        settings: Read-only settings snapshot for this render
        diagnostics: Collector for recoverable problems
        data: Per-render records handed back to the caller, keyed by kind
              (e.g. "placeholders", "styles"); shared by all transforms
    """
    pluginId: str
    settings: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    diagnostics: List[Diagnostic] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
