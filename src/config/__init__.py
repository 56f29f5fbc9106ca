"""
Configuration package for mdpp

Provides application settings via environment variables using pydantic-settings,
and the editor-facing ParserSettings model.
"""

from .settings import appsettings, AppSettings, ParserSettings, GFM_FEATURES, DEFAULT_PLUGINS

__all__ = ["appsettings", "AppSettings", "ParserSettings", "GFM_FEATURES", "DEFAULT_PLUGINS"]
