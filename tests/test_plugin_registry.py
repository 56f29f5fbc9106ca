"""
Plugin registry tests

Tests the plugin lifecycle (register, activate, deactivate, settings),
pipeline ordering, failure isolation and snapshot consistency.
"""

import asyncio

import pytest

from mdpp.lib.errors import PluginActivationError, UnknownPluginError
from mdpp.lib.parser import Parser
from mdpp.lib.plugin import Plugin
from mdpp.lib.plugins import AdmonitionsPlugin, KatexPlugin, builtins_register
from mdpp.lib.registry import PluginRegistry
from mdpp.lib.tree import htmlNode_make, node_insertChild, node_remove
from mdpp.models import DiagnosticKind, PluginState


class RecordingPlugin(Plugin):
    """Counts hook calls and records the settings it was handed"""

    description = "test plugin"
    defaults = {"color": "blue", "size": 1}

    def __init__(self, plugin_id="recorder", journal=None):
        self.id = plugin_id
        self.journal = journal if journal is not None else []
        self.activations = 0
        self.deactivations = 0
        self.changes = []
        self.context = None

    async def activate(self, context):
        self.activations += 1
        self.context = context

    async def deactivate(self):
        self.deactivations += 1

    def settings_onChange(self, partial):
        self.changes.append(dict(partial))

    def treeTransforms(self):
        return (self.order_record,)

    def order_record(self, tree, context):
        self.journal.append(context.pluginId)


class FailingActivationPlugin(Plugin):
    id = "broken"

    async def activate(self, context):
        raise RuntimeError("cannot start")


class FailingDeactivationPlugin(RecordingPlugin):

    async def deactivate(self):
        raise RuntimeError("cannot stop")


class MutateThenFailPlugin(Plugin):
    """Removes the first block, then raises"""

    id = "vandal"

    def treeTransforms(self):
        return (self.tree_damage,)

    def tree_damage(self, tree, context):
        node_remove(tree.children[0])
        raise ValueError("half done")


class BannerPlugin(Plugin):
    """Prepends a banner block"""

    id = "banner"

    def treeTransforms(self):
        return (self.banner_insert,)

    def banner_insert(self, tree, context):
        node_insertChild(tree, htmlNode_make('<div class="banner"></div>'))


class DataThenFailPlugin(Plugin):
    """Writes render data, then raises"""

    id = "scribbler"

    def treeTransforms(self):
        return (self.data_scribble,)

    def data_scribble(self, tree, context):
        context.data["styles"].append("lost")
        context.data["placeholders"] = ["lost"]
        raise ValueError("half done")


def registry_make(*plugins):
    registry = PluginRegistry()
    for plugin in plugins:
        asyncio.run(registry.register(plugin))
    return registry


class TestLifecycle:
    """Test Inactive <-> Active transitions"""

    def test_registered_inactive_with_defaults(self):
        """New plugins start Inactive with their defaults"""
        registry = registry_make(RecordingPlugin())

        assert registry.ids == ["recorder"]
        assert registry.state_get("recorder") is PluginState.INACTIVE
        assert dict(registry.settings_get("recorder")) == {"color": "blue", "size": 1}

    def test_activate_merges_settings(self):
        """Supplied settings win over defaults"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)

        assert asyncio.run(registry.activate("recorder", {"color": "red"})) is True
        assert registry.state_get("recorder") is PluginState.ACTIVE
        assert dict(registry.settings_get("recorder")) == {"color": "red", "size": 1}
        assert dict(plugin.context.settings) == {"color": "red", "size": 1}

    def test_activate_is_idempotent(self):
        """The activation hook runs once per transition"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)

        asyncio.run(registry.activate("recorder"))
        assert asyncio.run(registry.activate("recorder")) is False
        assert plugin.activations == 1

    def test_unknown_id(self):
        """Lifecycle calls on unregistered ids raise"""
        registry = registry_make()
        with pytest.raises(UnknownPluginError):
            asyncio.run(registry.activate("nope"))
        with pytest.raises(KeyError):
            asyncio.run(registry.deactivate("nope"))
        with pytest.raises(UnknownPluginError):
            registry.settings_update("nope", {})

    def test_activation_failure_leaves_inactive(self):
        """A raising activation hook is reported and nothing changes"""
        registry = registry_make(FailingActivationPlugin())

        with pytest.raises(PluginActivationError):
            asyncio.run(registry.activate("broken"))
        assert registry.state_get("broken") is PluginState.INACTIVE

    def test_deactivate_resets_settings(self):
        """Deactivation restores documented defaults"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)
        asyncio.run(registry.activate("recorder", {"color": "red"}))

        assert asyncio.run(registry.deactivate("recorder")) is True
        assert registry.state_get("recorder") is PluginState.INACTIVE
        assert dict(registry.settings_get("recorder")) == {"color": "blue", "size": 1}
        assert plugin.deactivations == 1
        assert asyncio.run(registry.deactivate("recorder")) is False

    def test_deactivation_failure_still_inactive(self):
        """A raising deactivation hook is logged, the plugin is Inactive"""
        registry = registry_make(FailingDeactivationPlugin())
        asyncio.run(registry.activate("recorder"))

        assert asyncio.run(registry.deactivate("recorder")) is True
        assert registry.state_get("recorder") is PluginState.INACTIVE

    def test_reactivation_runs_hook_again(self):
        """Each Inactive -> Active transition calls activate"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)
        asyncio.run(registry.activate("recorder"))
        asyncio.run(registry.deactivate("recorder"))
        asyncio.run(registry.activate("recorder"))
        assert plugin.activations == 2

    def test_unregister(self):
        """Unregistering an active plugin deactivates it first"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)
        asyncio.run(registry.activate("recorder"))
        asyncio.run(registry.unregister("recorder"))

        assert registry.ids == []
        assert plugin.deactivations == 1


class TestSettings:
    """Test registry-owned settings"""

    def test_update_active(self):
        """Partial settings are shallow-merged and the hook sees the delta"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)
        asyncio.run(registry.activate("recorder"))

        assert registry.settings_update("recorder", {"size": 3}) is True
        assert dict(registry.settings_get("recorder")) == {"color": "blue", "size": 3}
        assert plugin.changes == [{"size": 3}]

    def test_update_inactive_is_noop(self):
        """Updating an Inactive plugin changes nothing"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)

        assert registry.settings_update("recorder", {"size": 3}) is False
        assert dict(registry.settings_get("recorder")) == {"color": "blue", "size": 1}
        assert plugin.changes == []

    def test_settings_read_only(self):
        """Plugins cannot mutate the settings they are handed"""
        plugin = RecordingPlugin()
        registry = registry_make(plugin)
        asyncio.run(registry.activate("recorder"))

        with pytest.raises(TypeError):
            plugin.context.settings["color"] = "green"
        with pytest.raises(TypeError):
            registry.settings_get("recorder")["color"] = "green"


class TestReplacement:
    """Test re-registering an id"""

    def test_replace_keeps_position(self):
        """A replacement takes the old plugin's pipeline slot"""
        first = RecordingPlugin("a")
        registry = registry_make(first, RecordingPlugin("b"))
        asyncio.run(registry.activate("a"))

        replacement = RecordingPlugin("a")
        asyncio.run(registry.register(replacement))

        assert registry.ids == ["a", "b"]
        assert registry.plugin_get("a") is replacement
        assert registry.state_get("a") is PluginState.INACTIVE
        assert first.deactivations == 1


class TestPipeline:
    """Test transform composition"""

    def test_registration_order(self):
        """Transforms run in registration order"""
        journal = []
        registry = registry_make(RecordingPlugin("first", journal), RecordingPlugin("second", journal))
        asyncio.run(registry.activate("second"))
        asyncio.run(registry.activate("first"))

        registry.render(Parser().parse("text").tree)
        assert journal == ["first", "second"]

    def test_inactive_plugins_skipped(self):
        """Only Active plugins contribute transforms"""
        journal = []
        registry = registry_make(RecordingPlugin("first", journal), RecordingPlugin("second", journal))
        asyncio.run(registry.activate("second"))

        registry.render(Parser().parse("text").tree)
        assert journal == ["second"]

    def test_failing_transform_isolated(self):
        """A raising transform is rolled back and the pipeline continues"""
        registry = registry_make(MutateThenFailPlugin(), BannerPlugin())
        asyncio.run(registry.activate("vandal"))
        asyncio.run(registry.activate("banner"))

        diagnostics = []
        tree = registry.render(Parser().parse("one\n\ntwo").tree, diagnostics)

        assert [child.type for child in tree.children] == ["html_block", "paragraph", "paragraph"]
        assert len(diagnostics) == 1
        assert diagnostics[0].kind is DiagnosticKind.PLUGIN_FAILURE
        assert diagnostics[0].pluginId == "vandal"
        assert registry.state_get("vandal") is PluginState.ACTIVE

    def test_render_twice_is_deterministic(self):
        """The same tree rendered twice gives the same HTML"""
        registry = registry_make(AdmonitionsPlugin())
        asyncio.run(registry.activate("admonitions"))
        parser = Parser()
        tree = parser.parse(":::note\nhi\n:::").tree
        snapshot = registry.snapshot()

        first = parser.tree_render(snapshot.render(tree), snapshot)
        second = parser.tree_render(snapshot.render(tree), snapshot)

        assert first == second
        assert first.count('class="admonition-title"') == 1

    def test_input_tree_untouched(self):
        """Transforms work on a copy of the caller's tree"""
        registry = registry_make(BannerPlugin())
        asyncio.run(registry.activate("banner"))
        tree = Parser().parse("one").tree

        rendered = registry.render(tree)

        assert [child.type for child in tree.children] == ["paragraph"]
        assert [child.type for child in rendered.children] == ["html_block", "paragraph"]

    def test_failed_transform_data_rolled_back(self):
        """Records written by a failing transform are discarded"""
        registry = registry_make(DataThenFailPlugin())
        asyncio.run(registry.activate("scribbler"))
        data = {"styles": ["kept"]}

        registry.render(Parser().parse("one").tree, [], data)

        assert data == {"styles": ["kept"]}

    def test_snapshot_unaffected_by_later_changes(self):
        """A snapshot keeps the plugin set it was taken with"""
        registry = registry_make(RecordingPlugin("a"))
        asyncio.run(registry.activate("a"))
        snapshot = registry.snapshot()

        asyncio.run(registry.deactivate("a"))

        assert [e.plugin.id for e in snapshot.active] == ["a"]
        assert registry.snapshot().active == ()
        assert registry.snapshot().version > snapshot.version


class TestApi:
    """Test the inter-plugin api"""

    def test_api_of_active_plugin(self):
        """Active plugins expose their api"""
        registry = registry_make(KatexPlugin())
        asyncio.run(registry.activate("katex"))

        render = registry.api_get("katex")["render"]
        assert render("x^2", displayMode=False) == '<span class="math math-inline">x^2</span>'

    def test_api_of_inactive_plugin(self):
        """Inactive plugins expose nothing"""
        registry = registry_make(KatexPlugin())
        with pytest.raises(PluginActivationError):
            registry.api_get("katex")

    def test_builtins(self):
        """Built-in plugins register Inactive in a fixed order"""
        registry = PluginRegistry()
        ids = asyncio.run(builtins_register(registry))

        assert ids == [
            "katex", "mermaid", "kroki", "admonitions",
            "ai-placeholder", "style-block", "material-icons",
        ]
        assert registry.ids == ids
        assert all(registry.state_get(i) is PluginState.INACTIVE for i in ids)
