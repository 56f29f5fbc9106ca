"""
CLI pipeline tests

Tests ProgramState handling and the CLI stages run against temporary
input and output directories.
"""

import json
from argparse import Namespace

import pytest

from mdpp.__main__ import env_check, html_render, results_report, source_parse
from mdpp.models import ProgramState, pipeline


SCRIPTED = "# Demo\n\n:::script\nconsole.log(1)\n:::\n\n:::ai-context\nowner: docs\n:::\n"


def state_make(tmp_path, source=SCRIPTED, **options):
    """ProgramState for a document written into tmp_path/in"""
    inputdir = tmp_path / "in"
    inputdir.mkdir(exist_ok=True)
    (inputdir / "demo.md").write_text(source)
    values = {
        "inputFile": "demo.md",
        "settingsFile": None,
        "trustStore": str(tmp_path / "trust.yaml"),
        "scriptDecision": None,
        "aiContextFile": None,
        "verbosity": 0,
    }
    values.update(options)
    return ProgramState.state_createFromNamespace(
        Namespace(**values), inputdir=inputdir, outputdir=tmp_path / "out"
    )


class TestProgramState:
    """Test the state bus"""

    def test_from_namespace_ignores_unknown(self):
        """Only ProgramState fields are taken from the namespace"""
        options = Namespace(inputFile="a.md", verbosity=2, json=True, man=False)
        state = ProgramState.state_createFromNamespace(options, inputdir=None, outputdir=None)

        assert state.inputFile == "a.md"
        assert state.verbosity == 2
        assert not hasattr(state, "json")

    def test_copy_is_independent(self):
        """Stages work on copies"""
        state = ProgramState(inputFile="a.md")
        copied = state.copy()
        copied.inputFile = "b.md"
        assert state.inputFile == "a.md"

    def test_pipeline_order(self):
        """Stages run left to right"""
        def first(state):
            state = state.copy()
            state.sourceText += "1"
            return state

        def second(state):
            state = state.copy()
            state.sourceText += "2"
            return state

        assert pipeline(ProgramState(), first, second).sourceText == "12"


class TestStages:
    """Test the CLI stages"""

    def test_missing_input_exits(self, tmp_path):
        """A missing input file stops the run"""
        state = state_make(tmp_path, inputFile="absent.md")
        with pytest.raises(SystemExit):
            env_check(state)

    def test_missing_settings_exits(self, tmp_path):
        """A missing settings file stops the run"""
        state = state_make(tmp_path, settingsFile="absent.yaml")
        with pytest.raises(SystemExit):
            env_check(state)

    def test_render_without_decision(self, tmp_path):
        """Without --scriptDecision the scripts stay blocked"""
        final = pipeline(state_make(tmp_path), env_check, source_parse, html_render, results_report)

        html = (tmp_path / "out" / "demo.html").read_text()
        assert final.renderResult.needsPrompt
        assert "mdsc-blocked" in html
        assert "console.log" not in html
        assert "owner: docs" not in html

    def test_render_allow_permanently(self, tmp_path):
        """allow-permanently runs scripts and writes the trust store"""
        state = state_make(tmp_path, scriptDecision="allow-permanently")
        final = pipeline(state, env_check, source_parse, html_render, results_report)

        html = (tmp_path / "out" / "demo.html").read_text()
        assert 'data-script-code="console.log(1)"' in html
        assert final.renderResult.trust.allowed
        assert (tmp_path / "trust.yaml").exists()

        # A second run trusts the file without being told again
        again = pipeline(state_make(tmp_path), env_check, source_parse, html_render)
        assert again.renderResult.trust.allowed

    def test_settings_file(self, tmp_path):
        """Settings are read from YAML next to the input"""
        state = state_make(tmp_path, settingsFile="mdpp.yaml")
        (tmp_path / "in" / "mdpp.yaml").write_text("enableScripts: false\n")
        final = pipeline(state, env_check, source_parse, html_render)

        assert final.parserSettings.enableScripts is False
        assert final.renderResult.trust is None

    def test_component_plugins(self, tmp_path):
        """--componentPlugins registers and enables the declared frameworks"""
        state = state_make(tmp_path, source=":::ui:card\nBody\n:::\n", componentPlugins="ui.json")
        (tmp_path / "in" / "ui.json").write_text(json.dumps({
            "framework": "ui",
            "components": {"card": {"tag": "section", "classes": ["card"]}},
        }))
        final = pipeline(state, env_check, source_parse, html_render)

        assert "ui" in final.parserSettings.enabledPlugins
        assert '<section class="card" data-directive="ui:card">' in final.renderResult.html
        assert final.renderResult.diagnostics == []

    def test_invalid_component_plugins_exit(self, tmp_path):
        """An invalid definition file stops the run"""
        state = state_make(tmp_path, componentPlugins="ui.json")
        (tmp_path / "in" / "ui.json").write_text('{"framework": "ui"}')
        with pytest.raises(SystemExit):
            pipeline(state, env_check, source_parse)

    def test_ai_context_export(self, tmp_path):
        """Records are written as JSON when requested"""
        state = state_make(tmp_path, aiContextFile="context.json")
        pipeline(state, env_check, source_parse, html_render)

        records = json.loads((tmp_path / "out" / "context.json").read_text())
        assert records == [{
            "visible": False,
            "content": "owner: docs",
            "sourceLine": 7,
            "metadata": {"owner": "docs"},
        }]
