"""
Code block tests

Tests how fenced code blocks are offered to plugins: first match wins,
explicit language claims, fallback rendering and handler failures.
"""

import asyncio
import base64
import zlib

import pytest

from mdpp.config import ParserSettings
from mdpp.lib.compiler import Compiler
from mdpp.lib.plugin import Plugin
from mdpp.lib.plugins import builtins_register
from mdpp.lib.plugins.kroki import diagram_encode, type_extract, url_make
from mdpp.lib.projection import SettingsProjection
from mdpp.lib.registry import PluginRegistry
from mdpp.models import DiagnosticKind


class ExplodingPlugin(Plugin):
    id = "exploding"
    languages = ("boom",)

    def codeBlock_handle(self, language, code, settings):
        raise RuntimeError("handler crashed")


class GreedyPlugin(Plugin):
    """Answers every language it is offered"""

    id = "greedy"

    def codeBlock_handle(self, language, code, settings):
        return f"<p>greedy:{language}</p>\n"


def compiler_make(plugins, extra=()):
    """Compiler with the built-ins plus extra plugins, enabling ``plugins``"""
    registry = PluginRegistry()
    asyncio.run(builtins_register(registry))
    for plugin in extra:
        asyncio.run(registry.register(plugin))
    projection = SettingsProjection(registry)
    asyncio.run(projection.settings_apply(ParserSettings(enabledPlugins=list(plugins))))
    return Compiler(projection, registry)


class TestBuiltinHandlers:
    """Test the built-in code block handlers"""

    def test_mermaid(self):
        """Mermaid blocks become <pre class="mermaid">"""
        result = compiler_make(["mermaid"]).render("```mermaid\ngraph TD; A-->B\n```")
        assert result.html == '<pre class="mermaid">graph TD; A--&gt;B</pre>\n'

    def test_mermaid_theme(self):
        """A non-default theme is passed to the runtime"""
        registry = PluginRegistry()
        asyncio.run(builtins_register(registry))
        asyncio.run(registry.activate("mermaid", {"theme": "dark"}))

        rendered = registry.codeBlock_handle("mermaid", "graph TD; A-->B\n")
        assert rendered == '<pre class="mermaid" data-theme="dark">graph TD; A--&gt;B</pre>\n'

    @pytest.mark.parametrize("language", ["math", "latex", "katex"])
    def test_math(self, language):
        """All math language tags render display math"""
        result = compiler_make(["katex"]).render(f"```{language}\nx^2 < y\n```")
        assert result.html == '<div class="math math-display">x^2 &lt; y</div>\n'

    def test_kroki_prefixed(self):
        """kroki-<type> blocks become diagram images"""
        result = compiler_make(["kroki"]).render("```kroki-plantuml\nA -> B\n```")
        expected_url = f"https://kroki.io/plantuml/svg/{diagram_encode('A -> B')}"

        assert 'data-kroki-type="plantuml"' in result.html
        assert f'src="{expected_url}"' in result.html

    def test_kroki_url_encoding(self):
        """Diagram source is deflated and url-safe base64 encoded"""
        url = url_make("graphviz", "digraph { a -> b }", "png", "https://kroki.example/")
        prefix = "https://kroki.example/graphviz/png/"
        assert url.startswith(prefix)
        encoded = url[len(prefix):]
        assert zlib.decompress(base64.urlsafe_b64decode(encoded)).decode() == "digraph { a -> b }"

    def test_kroki_type_extract(self):
        """Prefixed and bare diagram names are understood"""
        assert type_extract("kroki-PlantUML") == "plantuml"
        assert type_extract("graphviz") == "graphviz"
        assert type_extract("python") is None

    def test_unclaimed_language_default_fence(self):
        """Blocks no plugin answers keep CommonMark rendering"""
        result = compiler_make(["katex", "mermaid"]).render("```python\nprint(1)\n```")
        assert result.html == '<pre><code class="language-python">print(1)\n</code></pre>\n'

    def test_no_language(self):
        """Blocks without an info string are never offered"""
        result = compiler_make(["greedy"], extra=[GreedyPlugin()]).render("```\nplain\n```")
        assert result.html == "<pre><code>plain\n</code></pre>\n"


class TestDisambiguation:
    """Test which plugin wins a shared language tag"""

    def test_explicit_claim_beats_bare_match(self):
        """mermaid stays with the mermaid plugin while both are active"""
        result = compiler_make(["kroki", "mermaid"]).render("```mermaid\ngraph TD; A-->B\n```")
        assert result.html.startswith('<pre class="mermaid">')

    def test_bare_match_without_claimant(self):
        """With mermaid inactive, kroki serves the bare name"""
        result = compiler_make(["kroki"]).render("```mermaid\ngraph TD; A-->B\n```")
        assert 'data-kroki-type="mermaid"' in result.html

    def test_first_match_wins(self):
        """Unclaimed languages go to the first plugin in pipeline order"""
        result = compiler_make(["greedy", "katex"], extra=[GreedyPlugin()]).render("```text\nx\n```")
        assert result.html == "<p>greedy:text</p>\n"

    def test_claim_excludes_earlier_plugins(self):
        """A claimed language skips earlier unclaiming plugins"""
        registry = PluginRegistry()
        asyncio.run(registry.register(GreedyPlugin()))
        asyncio.run(builtins_register(registry))
        asyncio.run(registry.activate("greedy"))
        asyncio.run(registry.activate("katex"))

        assert registry.codeBlock_handle("math", "x").startswith('<div class="math')
        assert registry.codeBlock_handle("text", "x") == "<p>greedy:text</p>\n"


class TestHandlerFailures:
    """Test that a crashing handler does not break the render"""

    def test_failure_falls_back(self):
        """The block renders as plain code with a PluginFailure diagnostic"""
        result = compiler_make(["exploding"], extra=[ExplodingPlugin()]).render("```boom\nx\n```")

        assert result.html == '<pre><code class="language-boom">x\n</code></pre>\n'
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.PLUGIN_FAILURE]
        assert result.diagnostics[0].pluginId == "exploding"
