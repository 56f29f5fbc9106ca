"""
Application settings and configuration

Two layers:
    - AppSettings: process-level configuration via environment variables
      using pydantic-settings. All settings use MDPP_ prefix
      (e.g., MDPP_TRUST_STORE_PATH=/tmp/trust.yaml) and can also be loaded
      from a .env file in the working directory.
    - ParserSettings: the settings object the editor's configuration UI
      produces. It decides which grammar extensions, which plugins and which
      script security level are active for a render.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models.trust import SecurityLevel


class AppSettings(BaseSettings):
    """
    Application configuration via environment variables.

    Environment variables use MDPP_ prefix.

    Examples:
        MDPP_TRUST_STORE_PATH=~/.config/mdpp/trust.yaml
        MDPP_STRICT_MODE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="MDPP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Trust store configuration
    trust_store_path: str = Field(
        default="~/.config/mdpp/trust.yaml",
        description="YAML file holding persistent script trust decisions",
    )

    # Rendering configuration
    strict_mode: bool = Field(
        default=False,
        description="Strict mode: treat render diagnostics as errors on the CLI",
    )

    script_id_prefix: str = Field(
        default="mdsc",
        description="Prefix for generated script block ids (mdsc-1, mdsc-2, ...)",
    )

    anchor_max_level: int = Field(
        default=6,
        description="Deepest heading level that receives an anchor id",
    )

    def trustStore_path(self) -> Path:
        """
        Resolve the trust store location.

        Returns:
            Absolute path with ~ expanded
        """
        return Path(self.trust_store_path).expanduser()

    def scriptId_make(self, index: int) -> str:
        """
        Generate an id for the index-th script block of a document.

        Args:
            index: One-based position of the script block in document order

        Returns:
            Script id string (e.g., "mdsc-1")

        Example:
            >>> settings = AppSettings()
            >>> settings.scriptId_make(1)
            'mdsc-1'
        """
        return f"{self.script_id_prefix}-{index}"


# Singleton instance - import this in your code
appsettings = AppSettings()


# GFM sub-options governed by the enableGfm master switch
GFM_FEATURES: List[str] = [
    "enableTables",
    "enableTaskLists",
    "enableStrikethrough",
    "enableAutolinks",
    "enableFootnotes",
]

DEFAULT_PLUGINS: List[str] = ["katex", "mermaid", "admonitions"]


class ParserSettings(BaseModel):
    """
    Editor-facing parser configuration.

    The GFM sub-options are only effective while enableGfm is true; turning
    the master switch off does not clear their stored values.

    Attributes:
        enableGfm: Master switch for GitHub-flavoured extensions
        enableTables, enableTaskLists, enableStrikethrough, enableAutolinks,
        enableFootnotes: GFM sub-options
        enableHeadingAnchors: Add slug ids to headings
        enableDirectives: Recognize ::: / :: directive fences
        enableAIContext: Extract ai-context records
        enableScripts: Allow script blocks to be considered for execution
        scriptSecurityLevel: Capability allowlist for executing scripts
        enabledPlugins: Ordered, de-duplicated plugin ids to activate
        showAIContext: Render hidden ai-context blocks (authoring views only)
        pluginSettings: Per-plugin settings overrides keyed by plugin id
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    enableGfm: bool = True
    enableTables: bool = True
    enableTaskLists: bool = True
    enableStrikethrough: bool = True
    enableAutolinks: bool = True
    enableFootnotes: bool = True

    enableHeadingAnchors: bool = True
    enableDirectives: bool = True
    enableAIContext: bool = True
    enableScripts: bool = True

    scriptSecurityLevel: SecurityLevel = SecurityLevel.STANDARD

    enabledPlugins: List[str] = Field(default_factory=lambda: list(DEFAULT_PLUGINS))

    showAIContext: bool = False
    pluginSettings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @field_validator("enabledPlugins")
    @classmethod
    def enabledPlugins_dedupe(cls, value: List[str]) -> List[str]:
        """Keep first occurrence of each plugin id, preserving order"""
        seen: Dict[str, None] = {}
        for plugin_id in value:
            seen.setdefault(plugin_id, None)
        return list(seen)

    def feature_isEnabled(self, name: str) -> bool:
        """
        Effective value of a feature flag.

        GFM sub-options are AND-ed with the enableGfm master switch.

        Args:
            name: Field name (e.g., "enableTables")

        Returns:
            True if the feature is effectively on
        """
        value = bool(getattr(self, name))
        if name in GFM_FEATURES:
            return self.enableGfm and value
        return value

    def pluginSettings_get(self, plugin_id: str) -> Dict[str, Any]:
        """Settings overrides configured for a plugin (empty if none)"""
        return dict(self.pluginSettings.get(plugin_id, {}))

    def update(self, **changes: Any) -> "ParserSettings":
        """
        Return a copy with the given fields replaced (validated).

        Example:
            >>> ParserSettings().update(enableGfm=False).enableTables
            True
        """
        return type(self).model_validate({**self.model_dump(), **changes})

    @classmethod
    def settings_fromYAML(cls, path: Path) -> "ParserSettings":
        """
        Load settings from a YAML mapping.

        Args:
            path: YAML file; missing keys keep their defaults

        Returns:
            Validated ParserSettings

        Raises:
            ValueError: If the file does not contain a mapping
        """
        data: Optional[Any] = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        return cls.model_validate(data)
