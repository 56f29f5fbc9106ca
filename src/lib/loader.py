"""
Declarative component plugins

UI frameworks that only contribute components do not need Python code: a
JSON or YAML definition names the framework and its components, and the
PluginLoader turns it into a regular Plugin.

    framework: bootstrap
    version: "5.3.0"
    css: [https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css]
    components:
      card:
        tag: div
        classes: [card]
        variants:
          primary: [border-primary]
      alert:
        classes: [alert]
        allowNesting: false

Documents then use :::bootstrap:card{variant=primary} once "bootstrap" is in
enabledPlugins.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..models.directives import ComponentSpec
from .errors import PluginDefinitionError
from .log import LOG
from .plugin import Plugin


class ComponentDefinition(BaseModel):
    """One component of a declarative plugin"""

    model_config = ConfigDict(extra="ignore")

    tag: str = "div"
    classes: List[str] = Field(default_factory=list)
    allowNesting: bool = True
    variants: Dict[str, List[str]] = Field(default_factory=dict)
    description: str = ""

    def spec_make(self) -> ComponentSpec:
        return ComponentSpec(
            tag=self.tag,
            classes=list(self.classes),
            variants={k: list(v) for k, v in self.variants.items()},
            allows_nesting=self.allowNesting,
            description=self.description,
        )


class PluginDefinition(BaseModel):
    """
    A framework's component set

    Attributes:
        framework: Plugin id and directive prefix (e.g. "bootstrap")
        version: Definition version
        author: Optional author
        description: Optional summary
        css: Stylesheet urls the components need
        js: Script urls the components need
        components: Component definitions keyed by name
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    framework: str
    version: str = "1.0.0"
    author: Optional[str] = None
    description: Optional[str] = None
    css: List[str] = Field(default_factory=list)
    js: List[str] = Field(default_factory=list)
    components: Dict[str, ComponentDefinition]

    @field_validator("framework")
    @classmethod
    def framework_check(cls, value: str) -> str:
        if not value or ":" in value or value.strip() != value:
            raise ValueError("framework must be a non-empty name without ':' or spaces")
        return value


class ComponentPlugin(Plugin):
    """Plugin built from a PluginDefinition"""

    def __init__(self, definition: PluginDefinition) -> None:
        self.definition = definition
        self.id = definition.framework
        self.description = definition.description or f"{definition.framework} components"
        self.components = MappingProxyType({
            name: component.spec_make() for name, component in definition.components.items()
        })

    @property
    def api(self) -> Mapping[str, Callable[..., Any]]:
        return MappingProxyType({
            "assets": lambda: {"css": list(self.definition.css), "js": list(self.definition.js)},
        })


class PluginLoader:
    """
    Loads and keeps declarative plugin definitions, keyed by framework

    Loading a framework a second time replaces the earlier definition.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, PluginDefinition] = {}

    def definition_load(self, raw: Any) -> PluginDefinition:
        """
        Validate one definition and keep it

        Args:
            raw: Mapping decoded from JSON or YAML

        Returns:
            The validated PluginDefinition

        Raises:
            PluginDefinitionError: If the definition is not valid
        """
        if not isinstance(raw, Mapping):
            raise PluginDefinitionError("Plugin definition must be a mapping")
        try:
            definition = PluginDefinition.model_validate(dict(raw))
        except ValidationError as error:
            name = raw.get("framework") or "<unnamed>"
            raise PluginDefinitionError(f"Invalid plugin definition '{name}': {error}") from error
        self._definitions[definition.framework] = definition
        LOG(f"Loaded component plugin '{definition.framework}' "
            f"({len(definition.components)} components)", level=2)
        return definition

    def definitions_load(self, raws: Iterable[Any]) -> List[PluginDefinition]:
        return [self.definition_load(raw) for raw in raws]

    def file_load(self, path: Union[str, Path]) -> List[PluginDefinition]:
        """
        Load the definition(s) in a JSON or YAML file

        The file holds one definition or a list of them.

        Raises:
            PluginDefinitionError: If the file cannot be read or decoded
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (OSError, ValueError, yaml.YAMLError) as error:
            raise PluginDefinitionError(f"Cannot read plugin definitions from {path}: {error}") from error

        if isinstance(data, list):
            return self.definitions_load(data)
        return [self.definition_load(data)]

    def definition_get(self, framework: str) -> Optional[PluginDefinition]:
        return self._definitions.get(framework)

    def frameworks(self) -> List[str]:
        return list(self._definitions)

    def has(self, framework: str) -> bool:
        return framework in self._definitions

    def clear(self) -> None:
        self._definitions.clear()

    def plugins_make(self) -> List[ComponentPlugin]:
        """Fresh ComponentPlugin instances for every kept definition"""
        return [ComponentPlugin(definition) for definition in self._definitions.values()]

    async def plugins_register(self, registry) -> List[str]:
        """
        Register a ComponentPlugin per definition (Inactive)

        Returns:
            Registered ids
        """
        plugins = self.plugins_make()
        for plugin in plugins:
            await registry.register(plugin)
        return [plugin.id for plugin in plugins]
