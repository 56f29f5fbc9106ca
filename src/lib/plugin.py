"""
Plugin contract

Every extension (math, diagrams, callouts, UI component sets) implements
the same explicit interface; the PluginRegistry treats them polymorphically
through it.

A plugin never owns its settings. The registry keeps the current settings
for each plugin and passes a read-only mapping into every call that needs
them (activation context, tree transforms, code-block handler).

Example:
    class ShoutPlugin(Plugin):
        id = "shout"
        defaults = {"suffix": "!"}
        languages = ("shout",)

        def codeBlock_handle(self, language, code, settings):
            if language != "shout":
                return None
            return f"<p>{html.escape(code.upper())}{settings['suffix']}</p>"
"""

from abc import ABC
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from markdown_it.tree import SyntaxTreeNode

from ..models.directives import ComponentSpec
from ..models.plugins import PluginContext, TransformContext


# A transform mutates the tree in place (returning None) or returns a new root
TreeTransform = Callable[[SyntaxTreeNode, TransformContext], Optional[SyntaxTreeNode]]


class Plugin(ABC):
    """
    Base class for mdpp plugins

    Class attributes:
        id: Unique identity within a registry
        description: Human-readable summary
        defaults: Documented default settings; the registry resets to these
                  on deactivation
        languages: Code-block language tags this plugin explicitly claims
        components: Directive components this plugin contributes
    """

    id: str = ""
    description: str = ""
    defaults: Mapping[str, Any] = MappingProxyType({})
    languages: Tuple[str, ...] = ()
    components: Mapping[str, ComponentSpec] = MappingProxyType({})

    @property
    def api(self) -> Mapping[str, Callable[..., Any]]:
        """Functions exposed to other plugins through the registry"""
        return MappingProxyType({})

    def treeTransforms(self) -> Sequence[TreeTransform]:
        """Ordered tree transforms applied on every render"""
        return ()

    def codeBlock_handle(
        self, language: str, code: str, settings: Mapping[str, Any]
    ) -> Optional[str]:
        """
        Render a fenced code block

        Args:
            language: First word of the fence info string
            code: Fence body
            settings: Read-only current settings

        Returns:
            Rendered markup, or None for no-match
        """
        return None

    async def activate(self, context: PluginContext) -> None:
        """Activation hook, called once per Inactive -> Active transition"""
        return None

    async def deactivate(self) -> None:
        """Deactivation hook; must drop any process-wide state"""
        return None

    def settings_onChange(self, partial: Mapping[str, Any]) -> None:
        """Settings-changed hook with the keys that were updated"""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"
