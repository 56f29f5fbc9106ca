"""
Settings projection

One ParserSettings object drives the whole core. settings_apply() projects a
new settings object onto the PluginRegistry and the ScriptTrustGate without
a restart:

    - plugins newly named in enabledPlugins are activated (with their
      pluginSettings), plugins no longer named are deactivated
    - changed pluginSettings of plugins that stay enabled go through
      PluginRegistry.settings_update()
    - enableScripts and scriptSecurityLevel are forwarded to the gate

The new settings become visible to the next render once the projection has
been applied.
"""

from typing import List, Optional

from loguru import logger

from ..config.settings import ParserSettings
from .errors import PluginActivationError
from .log import LOG
from .registry import PluginRegistry
from .trust import ScriptTrustGate


class SettingsProjection:
    """
    Applies ParserSettings to the registry and the trust gate

    Attributes:
        registry: Plugin registry to drive
        gate: Trust gate to drive (optional)
        settings: Settings currently in force
    """

    def __init__(
        self,
        registry: PluginRegistry,
        gate: Optional[ScriptTrustGate] = None,
        settings: Optional[ParserSettings] = None,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.settings = settings or ParserSettings()

    async def settings_apply(self, settings: ParserSettings) -> List[str]:
        """
        Project new settings onto the registry and gate

        Unknown ids in enabledPlugins are logged and skipped. A plugin whose
        activation hook fails is logged and left inactive; the rest of the
        projection still applies.

        Args:
            settings: New settings object

        Returns:
            Ids of the plugins active after the projection, in pipeline order
        """
        previous = self.settings
        registered = set(self.registry.ids)
        wanted = []
        for plugin_id in settings.enabledPlugins:
            if plugin_id in registered:
                wanted.append(plugin_id)
            else:
                logger.warning(f"Unknown plugin '{plugin_id}' in enabledPlugins; skipped")

        for plugin_id in self.registry.ids:
            if plugin_id not in wanted:
                await self.registry.deactivate(plugin_id)

        for plugin_id in wanted:
            overrides = settings.pluginSettings_get(plugin_id)
            try:
                activated = await self.registry.activate(plugin_id, overrides)
            except PluginActivationError as error:
                logger.warning(f"{error}; plugin left inactive")
                continue
            if not activated and overrides != previous.pluginSettings_get(plugin_id):
                self.registry.settings_update(plugin_id, overrides)

        if self.gate is not None:
            self.gate.scripts_enable(settings.enableScripts)
            self.gate.securityLevel_set(settings.scriptSecurityLevel)

        self.settings = settings
        active = [entry.plugin.id for entry in self.registry.snapshot().active]
        LOG(f"Settings applied; active plugins: {active}", level=2)
        return active
