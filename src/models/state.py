"""
State carried through the mdpp CLI stages

Each stage takes a ProgramState, fills in what it produced and hands a
copy on to the next one through pipeline().
"""

from pathlib import Path
from argparse import Namespace
from typing import Any, List, Optional, Type, TypeVar, Callable
from dataclasses import dataclass, field, fields, replace
from functools import reduce


PS = TypeVar("PS", bound="ProgramState")


@dataclass
class ProgramState:
    """
    Everything one CLI run knows, passed stage to stage.

    Fields start as CLI options and are filled in as the stages run:

        - Initial: inputdir, outputdir, verbosity, inputFile, settingsFile,
          trustStore, scriptDecision, aiContextFile, componentPlugins
        - env_check: inputSourceFile, settingsSourceFile, htmlOutputdir, envOK
        - source_parse: sourceText, parserSettings, pluginDefinitions
        - html_render: renderResult, outputFile
        - results_report: (no additions, terminal stage)

    Attributes:
        inputdir: Directory containing the source document
        outputdir: Base output directory for rendered files
        verbosity: Logging verbosity level (1-3)
        inputFile: Input document filename (relative to inputdir)
        settingsFile: Optional YAML settings file (relative to inputdir)
        trustStore: Optional path of the persisted trust store
        scriptDecision: Non-interactive answer to the script trust prompt
        aiContextFile: Optional filename for a JSON dump of AI-context records
        componentPlugins: Comma-separated JSON/YAML component plugin files
        envOK: Environment validation passed
        inputSourceFile: Resolved path to input document
        settingsSourceFile: Resolved settings path, if any
        htmlOutputdir: Final output directory
        sourceText: Raw document text
        parserSettings: ParserSettings in force for this run
        pluginDefinitions: ComponentPlugins built from the componentPlugins files
        renderResult: RenderResult from the Compiler
        outputFile: Path of the written HTML file
    """

    # CLI arguments
    inputdir: Optional[Path] = field(default=None)
    outputdir: Optional[Path] = field(default=None)
    verbosity: int = field(default=1)
    inputFile: str = field(default="")
    settingsFile: Optional[str] = field(default=None)
    trustStore: Optional[str] = field(default=None)
    scriptDecision: Optional[str] = field(default=None)
    aiContextFile: Optional[str] = field(default=None)
    componentPlugins: Optional[str] = field(default=None)

    # Pipeline state
    envOK: bool = field(default=False)
    inputSourceFile: Path = field(default=Path("/"))
    settingsSourceFile: Optional[Path] = field(default=None)
    htmlOutputdir: Path = field(default=Path("/"))
    sourceText: str = field(default="")
    parserSettings: Optional[Any] = field(default=None)  # ParserSettings at runtime
    pluginDefinitions: List[Any] = field(default_factory=list)
    renderResult: Optional[Any] = field(default=None)    # RenderResult at runtime
    outputFile: Optional[Path] = field(default=None)

    @classmethod
    def state_createFromNamespace(
        cls: Type["ProgramState"],
        options: Namespace,
        inputdir: Optional[Path],
        outputdir: Optional[Path],
    ) -> "ProgramState":
        """
        Initial state for a CLI run.

        chris_plugin adds its own entries (json, man, ...) to the namespace;
        only names that are ProgramState fields are carried over.
        """
        known = {f.name for f in fields(cls)}
        carried = {k: v for k, v in vars(options).items() if k in known}
        return cls(**{**carried, "inputdir": inputdir, "outputdir": outputdir})

    def copy(self: PS) -> PS:
        """Shallow copy for a stage to modify"""
        return replace(self)


def pipeline(
    initial_state: ProgramState, *stages: Callable[[ProgramState], ProgramState]
) -> ProgramState:
    """
    Thread a state through stages, each returning the state for the next.

        final = pipeline(state, env_check, source_parse, html_render, results_report)
    """
    return reduce(lambda state, stage: stage(state), stages, initial_state)
