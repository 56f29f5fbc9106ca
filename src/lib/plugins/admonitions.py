"""
Admonitions (callouts)

Decorates :::note, :::tip, :::warning ... containers with admonition
classes, a title line and an optional icon.

Example:
    :::warning[Careful]
    This deletes files.
    :::

    renders as
    <div class="mdpp-directive mdpp-warning admonition admonition-warning" ...>
    <p class="admonition-title"><span class="admonition-icon" ...>⚠️</span> Careful</p>
    ...
"""

import html
from typing import Sequence

from markdown_it.tree import SyntaxTreeNode

from ...models.directives import CONTAINER_TOKEN
from ...models.plugins import TransformContext
from ..plugin import Plugin, TreeTransform
from ..tree import htmlNode_make, node_insertChild


ADMONITION_ICONS = {
    'note': '📝',
    'tip': '💡',
    'warning': '⚠️',
    'danger': '🚨',
    'info': 'ℹ️',
    'success': '✅',
    'question': '❓',
    'quote': '💬',
    'example': '📋',
    'bug': '🐛',
    'abstract': '📄',
}


class AdmonitionsPlugin(Plugin):

    id = "admonitions"
    description = "Styled callout blocks (:::note, :::tip, :::warning, ...)"
    defaults = {
        "showIcons": True,
        "collapsible": False,
    }

    def treeTransforms(self) -> Sequence[TreeTransform]:
        return (self.admonitions_decorate,)

    def admonitions_decorate(self, tree: SyntaxTreeNode, context: TransformContext) -> None:
        show_icons = bool(context.settings.get("showIcons", True))
        collapsible = bool(context.settings.get("collapsible", False))

        for node in list(tree.walk()):
            if node.type != CONTAINER_TOKEN:
                continue
            kind = node.meta.get("name", "")
            if kind not in ADMONITION_ICONS or node.meta.get("admonition"):
                continue
            node.meta["admonition"] = True

            attributes = node.meta.setdefault("attributes", {})
            classes = [c for c in attributes.get("class", "").split(" ") if c]
            classes.extend(["admonition", f"admonition-{kind}"])
            if collapsible:
                classes.append("admonition-collapsible")
            attributes["class"] = " ".join(dict.fromkeys(classes))

            title = node.meta.get("label") or kind.capitalize()
            node.meta["label"] = None

            icon = ""
            if show_icons:
                icon = f'<span class="admonition-icon" aria-hidden="true">{ADMONITION_ICONS[kind]}</span> '
            node_insertChild(
                node,
                htmlNode_make(f'<p class="admonition-title">{icon}{html.escape(title)}</p>'),
            )
