"""
Plugin registry and pipeline

Holds registered plugins, their lifecycle state and their settings, and
composes their tree transforms into one ordered pipeline.

Concurrency model:
    The registry publishes an immutable tuple of PluginEntry records. Every
    write (register, activate, deactivate, settings_update) builds a new
    tuple under a lock and swaps it in. A render takes one PipelineSnapshot
    up front and uses it for its whole duration, so it never observes a
    half-applied change made by a concurrent write for another document.

Order:
    Registration order is pipeline order. Replacing a plugin by re-registering
    its id keeps its position.

Example:
    >>> registry = PluginRegistry()
    >>> asyncio.run(registry.register(MermaidPlugin()))
    >>> asyncio.run(registry.activate("mermaid"))
    True
    >>> registry.codeBlock_handle("mermaid", "graph TD; A-->B")
    '<pre class="mermaid">graph TD; A--&gt;B</pre>\\n'
"""

import copy
import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from loguru import logger
from markdown_it.tree import SyntaxTreeNode

from ..models.directives import ComponentSpec
from ..models.parser import Diagnostic, DiagnosticKind
from ..models.plugins import PluginContext, PluginState, TransformContext
from .errors import PluginActivationError, UnknownPluginError
from .log import LOG, plugin_logger
from .plugin import Plugin


def settings_freeze(settings: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy of a settings mapping"""
    return MappingProxyType(dict(settings))


@dataclass(frozen=True)
class PluginEntry:
    """
    Registry record for one plugin

    Attributes:
        plugin: Plugin instance
        state: INACTIVE or ACTIVE
        settings: Current read-only settings (defaults while inactive)
    """
    plugin: Plugin
    state: PluginState
    settings: Mapping[str, Any]

    @property
    def active(self) -> bool:
        return self.state is PluginState.ACTIVE


class PipelineSnapshot:
    """
    Consistent, read-only view of the registry for one render

    Attributes:
        entries: All registered plugins in registration order
        version: Registry version the snapshot was taken at
    """

    def __init__(self, entries: Tuple[PluginEntry, ...], version: int = 0) -> None:
        self.entries = entries
        self.version = version
        self.active: Tuple[PluginEntry, ...] = tuple(e for e in entries if e.active)

        # Explicit language claims of active plugins
        self.claims: Dict[str, List[str]] = {}
        for entry in self.active:
            for language in entry.plugin.languages:
                self.claims.setdefault(language, []).append(entry.plugin.id)

    def entry_get(self, plugin_id: str) -> Optional[PluginEntry]:
        for entry in self.entries:
            if entry.plugin.id == plugin_id:
                return entry
        return None

    def plugin_isActive(self, plugin_id: str) -> bool:
        entry = self.entry_get(plugin_id)
        return entry is not None and entry.active

    def component_find(self, plugin_id: str, component: str) -> Optional[ComponentSpec]:
        """Component contributed by one active plugin"""
        entry = self.entry_get(plugin_id)
        if entry is None or not entry.active:
            return None
        return entry.plugin.components.get(component)

    def component_lookup(self, component: str) -> Optional[ComponentSpec]:
        """First active plugin (registration order) contributing the component"""
        for entry in self.active:
            spec = entry.plugin.components.get(component)
            if spec is not None:
                return spec
        return None

    def render(
        self,
        tree: SyntaxTreeNode,
        diagnostics: Optional[List[Diagnostic]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> SyntaxTreeNode:
        """
        Apply every active plugin's transforms in registration order

        Transforms run on a copy, so the caller's tree is left untouched and
        rendering the same tree twice gives the same result. Each transform
        sees the tree produced by all prior transforms. A transform that
        raises is logged and recorded as a PLUGIN_FAILURE diagnostic, and the
        tree is restored to its state before that transform ran. The plugin
        stays active.

        Args:
            tree: Parsed document tree
            diagnostics: Collector for plugin failures
            data: Per-render mapping shared by all transforms (records that
                  plugins hand back to the caller)

        Returns:
            Transformed copy of the tree
        """
        if diagnostics is None:
            diagnostics = []
        if data is None:
            data = {}

        tree = copy.deepcopy(tree)

        for entry in self.active:
            context = TransformContext(
                pluginId=entry.plugin.id,
                settings=entry.settings,
                diagnostics=diagnostics,
                data=data,
            )
            for transform in entry.plugin.treeTransforms():
                backup = copy.deepcopy(tree)
                data_backup = copy.deepcopy(data)
                try:
                    result = transform(tree, context)
                except Exception as error:
                    logger.error(f"Tree transform of plugin '{entry.plugin.id}' failed: {error}")
                    diagnostics.append(Diagnostic(
                        kind=DiagnosticKind.PLUGIN_FAILURE,
                        message=f"Tree transform failed: {error}",
                        pluginId=entry.plugin.id,
                    ))
                    tree = backup
                    data.clear()
                    data.update(data_backup)
                    continue
                if result is not None:
                    tree = result

        return tree

    def codeBlock_handle(
        self, language: str, code: str, diagnostics: Optional[List[Diagnostic]] = None
    ) -> Optional[str]:
        """
        Offer a fenced code block to the active plugins

        Plugins are asked in registration order and the first non-None result
        wins. A language explicitly claimed (Plugin.languages) by an active
        plugin is only offered to the plugins that claim it, so a plugin
        matching a shared bare name loses to the explicit owner.

        Args:
            language: Fence language tag
            code: Fence body
            diagnostics: Collector for handler failures

        Returns:
            Rendered markup, or None when no plugin claims the block
        """
        owners = self.claims.get(language)

        for entry in self.active:
            if owners is not None and entry.plugin.id not in owners:
                continue
            try:
                rendered = entry.plugin.codeBlock_handle(language, code, entry.settings)
            except Exception as error:
                logger.error(f"Code block handler of plugin '{entry.plugin.id}' failed: {error}")
                if diagnostics is not None:
                    diagnostics.append(Diagnostic(
                        kind=DiagnosticKind.PLUGIN_FAILURE,
                        message=f"Code block handler failed for '{language}': {error}",
                        pluginId=entry.plugin.id,
                    ))
                continue
            if rendered is not None:
                LOG(f"Code block '{language}' rendered by {entry.plugin.id}", level=3)
                return rendered

        return None


class PluginRegistry:
    """
    Registry of plugins with lifecycle and settings ownership

    Lifecycle: register() adds a plugin Inactive; activate() moves it to
    Active with defaults merged under the supplied settings; deactivate()
    moves it back and resets its settings to defaults.

    settings_update() on an Inactive plugin is a logged no-op that returns
    False; its settings are supplied again on the next activate().
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: Tuple[PluginEntry, ...] = ()
        self._version = 0
        self._pending: Set[str] = set()

    def _publish(self, entries: Tuple[PluginEntry, ...]) -> None:
        self._entries = entries
        self._version += 1

    def _index(self, plugin_id: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.plugin.id == plugin_id:
                return index
        return None

    def _entry_get(self, plugin_id: str) -> PluginEntry:
        index = self._index(plugin_id)
        if index is None:
            raise UnknownPluginError(plugin_id)
        return self._entries[index]

    def _entry_put(self, new_entry: PluginEntry) -> None:
        index = self._index(new_entry.plugin.id)
        entries = list(self._entries)
        if index is None:
            entries.append(new_entry)
        else:
            entries[index] = new_entry
        self._publish(tuple(entries))

    @property
    def ids(self) -> List[str]:
        """Registered ids in pipeline order"""
        return [entry.plugin.id for entry in self._entries]

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> PipelineSnapshot:
        """Take a consistent view for one render"""
        with self._lock:
            return PipelineSnapshot(self._entries, self._version)

    def plugin_get(self, plugin_id: str) -> Plugin:
        with self._lock:
            return self._entry_get(plugin_id).plugin

    def state_get(self, plugin_id: str) -> PluginState:
        with self._lock:
            return self._entry_get(plugin_id).state

    def settings_get(self, plugin_id: str) -> Mapping[str, Any]:
        """Current read-only settings of a plugin"""
        with self._lock:
            return self._entry_get(plugin_id).settings

    def api_get(self, plugin_id: str) -> Mapping[str, Any]:
        """
        Public api of an active plugin

        Raises:
            UnknownPluginError: If the id is not registered
            PluginActivationError: If the plugin is not active
        """
        with self._lock:
            entry = self._entry_get(plugin_id)
        if not entry.active:
            raise PluginActivationError(plugin_id, "api requested while inactive")
        return entry.plugin.api

    async def register(self, plugin: Plugin) -> None:
        """
        Insert a plugin, or replace the one registered under the same id

        A replaced plugin that is Active is deactivated first. The new plugin
        is registered Inactive.
        """
        if not plugin.id:
            raise ValueError(f"Plugin {plugin!r} has no id")

        with self._lock:
            index = self._index(plugin.id)
            previous = self._entries[index] if index is not None else None

        if previous is not None and previous.active:
            LOG(f"Replacing active plugin '{plugin.id}'", level=2)
            await self.deactivate(plugin.id)

        with self._lock:
            self._entry_put(PluginEntry(
                plugin=plugin,
                state=PluginState.INACTIVE,
                settings=settings_freeze(plugin.defaults),
            ))
        LOG(f"Registered plugin '{plugin.id}'", level=2)

    async def unregister(self, plugin_id: str) -> None:
        """Deactivate (if needed) and remove a plugin"""
        with self._lock:
            entry = self._entry_get(plugin_id)
        if entry.active:
            await self.deactivate(plugin_id)
        with self._lock:
            self._publish(tuple(e for e in self._entries if e.plugin.id != plugin_id))
        LOG(f"Unregistered plugin '{plugin_id}'", level=2)

    async def activate(
        self, plugin_id: str, settings: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """
        Transition a plugin Inactive -> Active

        Supplied settings are merged over the plugin's defaults. Activating a
        plugin that is already Active (or whose activation is in flight) does
        nothing, so the activation hook runs once per transition.

        Args:
            plugin_id: Registered id
            settings: Initial settings (supplied keys win over defaults)

        Returns:
            True if this call activated the plugin

        Raises:
            UnknownPluginError: If the id is not registered
            PluginActivationError: If the activation hook raised; the plugin
                                   stays Inactive
        """
        with self._lock:
            entry = self._entry_get(plugin_id)
            if entry.active or plugin_id in self._pending:
                LOG(f"Plugin '{plugin_id}' already active", level=3)
                return False
            self._pending.add(plugin_id)
            merged = settings_freeze({**entry.plugin.defaults, **(settings or {})})

        try:
            await entry.plugin.activate(PluginContext(settings=merged, logger=plugin_logger(plugin_id)))
        except Exception as error:
            logger.error(f"Activation of plugin '{plugin_id}' failed: {error}")
            raise PluginActivationError(plugin_id, f"activation failed: {error}") from error
        finally:
            with self._lock:
                self._pending.discard(plugin_id)

        with self._lock:
            index = self._index(plugin_id)
            current = self._entries[index] if index is not None else None
            superseded = current is None or current.plugin is not entry.plugin
            if not superseded:
                self._entry_put(replace(current, state=PluginState.ACTIVE, settings=merged))

        if superseded:
            LOG(f"Plugin '{plugin_id}' was replaced during activation", level=2)
            await entry.plugin.deactivate()
            return False

        LOG(f"Activated plugin '{plugin_id}'", level=2)
        return True

    async def deactivate(self, plugin_id: str) -> bool:
        """
        Transition a plugin Active -> Inactive

        The entry is published Inactive with its settings reset to defaults
        before the deactivation hook runs. A hook that raises is logged; the
        plugin remains Inactive.

        Returns:
            True if this call deactivated the plugin

        Raises:
            UnknownPluginError: If the id is not registered
        """
        with self._lock:
            entry = self._entry_get(plugin_id)
            if not entry.active:
                return False
            self._entry_put(replace(
                entry,
                state=PluginState.INACTIVE,
                settings=settings_freeze(entry.plugin.defaults),
            ))

        try:
            await entry.plugin.deactivate()
        except Exception as error:
            logger.error(f"Deactivation hook of plugin '{plugin_id}' failed: {error}")

        LOG(f"Deactivated plugin '{plugin_id}'", level=2)
        return True

    def settings_update(self, plugin_id: str, partial: Mapping[str, Any]) -> bool:
        """
        Shallow-merge settings into an active plugin

        Returns:
            True if applied, False if the plugin is Inactive (no-op)

        Raises:
            UnknownPluginError: If the id is not registered
        """
        with self._lock:
            entry = self._entry_get(plugin_id)
            if not entry.active:
                LOG(f"Ignoring settings for inactive plugin '{plugin_id}'", level=2)
                return False
            merged = settings_freeze({**entry.settings, **partial})
            self._entry_put(replace(entry, settings=merged))

        try:
            entry.plugin.settings_onChange(settings_freeze(partial))
        except Exception as error:
            logger.error(f"Settings hook of plugin '{plugin_id}' failed: {error}")

        LOG(f"Updated settings of '{plugin_id}': {sorted(partial)}", level=3)
        return True

    def render(
        self,
        tree: SyntaxTreeNode,
        diagnostics: Optional[List[Diagnostic]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> SyntaxTreeNode:
        """Apply the current pipeline to a tree (see PipelineSnapshot.render)"""
        return self.snapshot().render(tree, diagnostics, data)

    def codeBlock_handle(
        self, language: str, code: str, diagnostics: Optional[List[Diagnostic]] = None
    ) -> Optional[str]:
        """Offer a code block to the current pipeline"""
        return self.snapshot().codeBlock_handle(language, code, diagnostics)
