#!/usr/bin/env python3
"""
mdpp - Markdown Plus Plus renderer

Renders MD++ documents (Markdown with nestable directives, AI-context
blocks, plugin code blocks and embedded scripts) to HTML.

As an aside, this codebase leverages the ChRIS "plugin" concept/pattern as
general purpose python app development framework.

Philosophy:
    - Plain Markdown stays plain Markdown
    - Directive markup: :::name{attrs} ... ::: for components and metadata
    - Plugins extend rendering through one explicit contract
    - Scripts never run without a per-file trust decision

Key Features:
    - Container and leaf directives with attributes, arbitrarily nested
    - AI-context blocks extracted out of band, hidden ones stripped
    - Built-in math, mermaid, kroki and admonition plugins, plus AI
      placeholders, document stylesheets and Material icons
    - UI component sets declared in JSON/YAML (--componentPlugins)
    - Persistent "always trust" decisions in a YAML trust store

Usage:
    mdpp inputdir/ outputdir/ --inputFile notes.mdpp

    The rendered document is written to outputdir/<stem>.html.

Examples:
    # Basic rendering
    mdpp . output/ --inputFile notes.md

    # With settings, and trusting the document's scripts for this run
    mdpp . output/ --inputFile demo.mdsc --settingsFile mdpp.yaml --scriptDecision allow

    # Export AI-context records, verbose output
    mdpp . output/ --inputFile notes.mdpp --aiContextFile context.json -vv
"""

import sys
import asyncio
from pathlib import Path
from typing import List, Tuple
from argparse import ArgumentParser, Namespace, ArgumentDefaultsHelpFormatter

from chris_plugin import chris_plugin
from pydantic import TypeAdapter

from .config import appsettings, ParserSettings
from .lib import (
    Compiler,
    PluginRegistry,
    SettingsProjection,
    ScriptTrustGate,
    TrustStore,
    fileIdentity_make,
    __version__,
    LOG,
    state_connectToLogger,
)
from .lib.plugins import builtins_register
from .lib.scripts import fileFormat_detect
from .lib.errors import PluginDefinitionError, TrustStoreIOError
from .lib.loader import PluginLoader
from .models import ProgramState, pipeline, PromptOutcome, AIContextRecord


DISPLAY_TITLE = r"""
               _
   _ __ ___   __| |_ __  _ __
  | '_ ` _ \ / _` | '_ \| '_ \
  | | | | | | (_| | |_) | |_) |
  |_| |_| |_|\__,_| .__/| .__/
                  |_|   |_|

  Markdown Plus Plus renderer
"""

# Define CLI arguments
parser = ArgumentParser(
    description="mdpp - Markdown Plus Plus renderer with directives, plugins and script trust",
    formatter_class=ArgumentDefaultsHelpFormatter,
)

parser.add_argument(
    "--inputFile", required=True, type=str, help="Input MD++ file (relative to inputdir)"
)

parser.add_argument(
    "--settingsFile",
    default=None,
    type=str,
    help="YAML ParserSettings file (relative to inputdir)",
)

parser.add_argument(
    "--trustStore",
    default=None,
    type=str,
    help="Trust store YAML file. Defaults to MDPP_TRUST_STORE_PATH",
)

parser.add_argument(
    "--scriptDecision",
    default=None,
    choices=[outcome.value for outcome in PromptOutcome],
    help="Answer to the script trust prompt for this document",
)

parser.add_argument(
    "--aiContextFile",
    default=None,
    type=str,
    help="Write extracted AI-context records as JSON to this file (in outputdir)",
)

parser.add_argument(
    "--componentPlugins",
    default=None,
    type=str,
    help="Comma-separated JSON/YAML component plugin files (relative to inputdir); "
    "their frameworks are enabled for this run",
)

parser.add_argument(
    "-v",
    "--verbosity",
    action="count",
    default=1,
    help="Increase output verbosity (can be repeated: -v, -vv, -vvv)",
)

parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")


def env_check(inputstate: ProgramState) -> ProgramState:
    """
    Validate environment and resolve all file paths.

    Args:
        inputstate: Initial program state with CLI options

    Returns:
        ProgramState with added fields:
            - inputSourceFile: Resolved path to the input document
            - settingsSourceFile: Resolved settings path, if given
            - htmlOutputdir: Created output directory path
            - envOK: True if environment is valid

    Exits:
        1 if the input or settings file is not found
    """

    state = inputstate.copy()

    if state.verbosity >= 2:
        LOG(DISPLAY_TITLE, level=2)

    LOG("Checking environment...", level=2)

    input_file = state.inputdir / state.inputFile
    if not input_file.exists():
        print(f"Error: Input file not found: {input_file}", file=sys.stderr)
        state.envOK = False
        sys.exit(1)

    state.inputSourceFile = input_file
    LOG(f"Input file: {input_file}", level=2)

    if state.settingsFile:
        settings_file = state.inputdir / state.settingsFile
        if not settings_file.exists():
            print(f"Error: Settings file not found: {settings_file}", file=sys.stderr)
            state.envOK = False
            sys.exit(1)
        state.settingsSourceFile = settings_file
        LOG(f"Settings file: {settings_file}", level=2)

    state.htmlOutputdir = state.outputdir
    state.htmlOutputdir.mkdir(parents=True, exist_ok=True)
    LOG(f"Output directory: {state.htmlOutputdir}", level=2)

    state.envOK = True
    return state


def source_parse(inputstate: ProgramState) -> ProgramState:
    """
    Read the source document and the parser settings.

    Args:
        inputstate: Program state with inputSourceFile path set

    Returns:
        ProgramState with added fields:
            - sourceText: Raw document text
            - parserSettings: ParserSettings (defaults when no file given)
            - pluginDefinitions: ComponentPlugins from --componentPlugins, if any

    Exits:
        1 if the document, settings or plugin definitions cannot be read
    """

    state = inputstate.copy()

    LOG("Reading source file...", level=1)

    try:
        state.sourceText = state.inputSourceFile.read_text(encoding="utf-8")
        LOG(f"Read {len(state.sourceText)} characters from {state.inputSourceFile.name}", level=2)
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading input file: {e}", file=sys.stderr)
        sys.exit(1)

    LOG(f"Document format: {fileFormat_detect(state.sourceText)}", level=2)

    try:
        if state.settingsSourceFile:
            state.parserSettings = ParserSettings.settings_fromYAML(state.settingsSourceFile)
        else:
            state.parserSettings = ParserSettings()
    except (OSError, ValueError) as e:
        print(f"Error reading settings: {e}", file=sys.stderr)
        sys.exit(1)

    if state.componentPlugins:
        loader = PluginLoader()
        try:
            for name in state.componentPlugins.split(","):
                if name.strip():
                    loader.file_load(state.inputdir / name.strip())
        except PluginDefinitionError as e:
            print(f"Error reading component plugins: {e}", file=sys.stderr)
            sys.exit(1)
        state.pluginDefinitions = loader.plugins_make()
        state.parserSettings = state.parserSettings.update(
            enabledPlugins=state.parserSettings.enabledPlugins + loader.frameworks()
        )

    return state


async def core_build(state: ProgramState) -> Tuple[Compiler, ScriptTrustGate]:
    """
    Assemble registry, trust gate and projection for one run.

    Returns:
        Tuple (compiler, gate)
    """
    registry = PluginRegistry()
    await builtins_register(registry)
    for plugin in state.pluginDefinitions:
        await registry.register(plugin)

    store_path = Path(state.trustStore) if state.trustStore else appsettings.trustStore_path()
    gate = ScriptTrustGate(TrustStore(store_path))

    projection = SettingsProjection(registry, gate)
    await projection.settings_apply(state.parserSettings)

    return Compiler(projection, registry, gate), gate


async def decision_apply(gate: ScriptTrustGate, identity: str, answer: str) -> None:
    """Feed the --scriptDecision answer to the gate as the prompt outcome"""

    async def prompt(fileIdentity: str) -> PromptOutcome:
        LOG(f"Answering trust prompt for {fileIdentity}: {answer}", level=2)
        return PromptOutcome(answer)

    await gate.decision_request(identity, prompt)


def html_render(inputstate: ProgramState) -> ProgramState:
    """
    Render the document to HTML and write the outputs.

    Args:
        inputstate: Program state with sourceText and parserSettings

    Returns:
        ProgramState with added fields:
            - renderResult: RenderResult
            - outputFile: Path to the written HTML file

    Exits:
        1 if the trust decision cannot be stored or outputs cannot be written
    """

    state = inputstate.copy()

    LOG("Rendering document...", level=1)

    compiler, gate = asyncio.run(core_build(state))
    identity = fileIdentity_make(path=state.inputSourceFile)

    result = compiler.render(state.sourceText, identity)

    if result.needsPrompt:
        if state.scriptDecision:
            try:
                asyncio.run(decision_apply(gate, identity, state.scriptDecision))
            except TrustStoreIOError as e:
                print(f"Warning: {e}; decision kept for this run only", file=sys.stderr)
            result = compiler.render(state.sourceText, identity)
        else:
            LOG("Document has scripts awaiting a trust decision (see --scriptDecision)", level=1)

    state.renderResult = result
    state.outputFile = state.htmlOutputdir / f"{state.inputSourceFile.stem}.html"

    try:
        state.outputFile.write_text(result.html, encoding="utf-8")
        if state.aiContextFile:
            records_file = state.htmlOutputdir / state.aiContextFile
            records_file.write_bytes(
                TypeAdapter(List[AIContextRecord]).dump_json(result.aiContexts, indent=2)
            )
            LOG(f"AI context written to {records_file}", level=2)
    except OSError as e:
        print(f"Error writing output: {e}", file=sys.stderr)
        sys.exit(1)

    return state


def results_report(inputstate: ProgramState) -> ProgramState:
    """
    Display rendering results to the user.

    Args:
        inputstate: Program state with renderResult populated

    Returns:
        ProgramState unchanged (terminal pipeline stage)

    Exits:
        1 if rendering failed, or in strict mode when diagnostics were raised
    """
    state: ProgramState = inputstate.copy()
    result = state.renderResult
    if result is None:
        print("Error: Rendering failed", file=sys.stderr)
        sys.exit(1)

    for diagnostic in result.diagnostics:
        print(f"  {diagnostic.describe()}", file=sys.stderr)

    if state.verbosity >= 1:
        LOG("\n✓ Rendering complete!", level=1)
        LOG(f"  Output: {state.outputFile}", level=1)
        LOG(f"  AI-context blocks: {len(result.aiContexts)}", level=1)
        LOG(f"  Scripts cleared: {len(result.scripts)}", level=1)
        if result.placeholders:
            LOG(f"  AI placeholders: {len(result.placeholders)}", level=1)
        if result.trust is not None:
            LOG(f"  Script trust: {result.trust.verdict.value} ({result.trust.reason})", level=1)

    if appsettings.strict_mode and result.diagnostics:
        print(f"Error: {len(result.diagnostics)} diagnostic(s) in strict mode", file=sys.stderr)
        sys.exit(1)
    return state


@chris_plugin(
    parser=parser,
    title="mdpp - Markdown Plus Plus renderer",
    category="Utility",
    min_memory_limit="100Mi",
    min_cpu_limit="500m",
)
def main(options: Namespace, inputdir: Path, outputdir: Path):
    """
    Main entry point - render an MD++ document to HTML.

    Orchestrates the full rendering pipeline:
        1. env_check: Validate paths and environment
        2. source_parse: Read the document and settings
        3. html_render: Render through plugins and the trust gate, write HTML
        4. results_report: Display results to user

    Args:
        options: CLI arguments from argparse
        inputdir: Directory containing the source document
        outputdir: Directory where the rendered HTML will be written

    Note:
        This function is wrapped by @chris_plugin which handles CLI
        argument parsing and invokes this function with parsed values.
    """

    state: ProgramState = ProgramState.state_createFromNamespace(
        options=options, inputdir=inputdir, outputdir=outputdir
    )

    # Connect state to logger for entire pipeline
    state_connectToLogger(state)

    # Execute rendering pipeline
    pipeline(state, env_check, source_parse, html_render, results_report)


if __name__ == "__main__":
    main()  # type: ignore  # @chris_plugin decorator transforms signature
