"""
Error taxonomy for mdpp

Parse-level and plugin-level problems are recovered locally and reported as
Diagnostics; the exceptions below are for failures that affect correctness
or security and must reach the caller.
"""

from typing import Optional


class MdppError(Exception):
    """Base class for mdpp errors"""
    pass


class DirectiveParseError(MdppError):
    """
    Malformed or unclosed directive fence

    Never raised out of a render: the parser degrades to literal text (or
    closes the container at end of document) and records a Diagnostic.
    """

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.line = line


class PluginFailure(MdppError):
    """A plugin transform, code-block handler or hook raised"""

    def __init__(self, plugin_id: str, message: str):
        super().__init__(f"Plugin '{plugin_id}': {message}")
        self.plugin_id = plugin_id


class PluginActivationError(PluginFailure):
    """A plugin's activation hook raised; the plugin stays inactive"""
    pass


class UnknownPluginError(MdppError, KeyError):
    """activate/deactivate/settings_update referenced an unregistered id"""

    def __init__(self, plugin_id: str):
        super().__init__(f"Plugin '{plugin_id}' is not registered")
        self.plugin_id = plugin_id

    def __str__(self) -> str:
        return f"Plugin '{self.plugin_id}' is not registered"


class TrustStoreIOError(MdppError):
    """The persisted trust store could not be read or written"""
    pass


class InvalidSecurityCapability(MdppError):
    """A script asked for a capability outside its resolved allowlist"""

    def __init__(self, capability: str, level: str):
        super().__init__(f"Capability '{capability}' is not available at security level '{level}'")
        self.capability = capability
        self.level = level


class PluginDefinitionError(MdppError):
    """A declarative (JSON/YAML) component plugin definition is invalid"""
    pass
