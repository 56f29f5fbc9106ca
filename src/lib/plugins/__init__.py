"""
Built-in plugins shipped with mdpp
"""

from typing import List

from ..plugin import Plugin
from .admonitions import AdmonitionsPlugin
from .ai_placeholder import AIPlaceholderPlugin
from .katex import KatexPlugin
from .kroki import KrokiPlugin
from .material_icons import MaterialIconsPlugin
from .mermaid import MermaidPlugin
from .style_block import StyleBlockPlugin


def builtins_make() -> List[Plugin]:
    """Fresh instances of every built-in plugin, in pipeline order"""
    return [
        KatexPlugin(),
        MermaidPlugin(),
        KrokiPlugin(),
        AdmonitionsPlugin(),
        AIPlaceholderPlugin(),
        StyleBlockPlugin(),
        MaterialIconsPlugin(),
    ]


async def builtins_register(registry) -> List[str]:
    """
    Register all built-in plugins (Inactive)

    Returns:
        Registered ids in pipeline order
    """
    plugins = builtins_make()
    for plugin in plugins:
        await registry.register(plugin)
    return [plugin.id for plugin in plugins]


__all__ = [
    "AIPlaceholderPlugin",
    "AdmonitionsPlugin",
    "KatexPlugin",
    "KrokiPlugin",
    "MaterialIconsPlugin",
    "MermaidPlugin",
    "StyleBlockPlugin",
    "builtins_make",
    "builtins_register",
]
