"""
Material icons

Turns image syntax with an icon scheme into Material Icons glyphs
(https://fonts.google.com/icons):

    ![icon](google:home)
    ![icon](md:search){.outlined .large}
    ![icon {.text-primary}](material:star "round")

Class hints come from a {...} group in the alt text, the image title, and a
{...} group written directly after the image. Size names become a font-size
style, variant names pick the icon font, anything else is passed on as a
class.
"""

import re
import html
from types import MappingProxyType
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from markdown_it.token import Token
from markdown_it.tree import SyntaxTreeNode

from ...models.plugins import TransformContext
from ..plugin import Plugin, TreeTransform
from ..tree import htmlInline_make, inlineNodes_find, inlineTokens_replace, textToken_make


ICON_SCHEME_RE = re.compile(r"^(google|material|md):")
CLASS_GROUP_RE = re.compile(r"\{([^}]+)\}")
TRAILING_GROUP_RE = re.compile(r"^\{([^}\n]+)\}")

ICON_SIZES = {
    'small': 'font-size: 18px;',
    'md-18': 'font-size: 18px;',
    'medium': 'font-size: 24px;',
    'md-24': 'font-size: 24px;',
    'large': 'font-size: 36px;',
    'md-36': 'font-size: 36px;',
    'x-large': 'font-size: 48px;',
    'md-48': 'font-size: 48px;',
}

ICON_VARIANTS = {
    'filled': 'material-icons',
    'outlined': 'material-icons-outlined',
    'round': 'material-icons-round',
    'sharp': 'material-icons-sharp',
    'two-tone': 'material-icons-two-tone',
}


def iconName_get(src: Optional[str]) -> Optional[str]:
    """Icon name for google:/material:/md: urls, else None"""
    if not src or not ICON_SCHEME_RE.match(src):
        return None
    return ICON_SCHEME_RE.sub("", src).strip()


def hints_sort(hints: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split class hints into (classes, styles)"""
    classes: List[str] = []
    styles: List[str] = []
    for hint in hints:
        name = hint.lstrip(".")
        if not name:
            continue
        if name in ICON_SIZES:
            styles.append(ICON_SIZES[name])
        elif name in ICON_VARIANTS:
            classes.append(ICON_VARIANTS[name])
        else:
            classes.append(name)
    return classes, styles


def icon_render(
    name: str,
    classes: Sequence[str] = (),
    styles: Sequence[str] = (),
    defaultStyle: str = "filled",
    customClass: str = "",
) -> str:
    """
    HTML for one icon

    The first variant class in ``classes`` replaces the default variant.
    """
    base = ICON_VARIANTS.get(defaultStyle, "material-icons")
    rest = list(classes)
    variant = next((c for c in rest if c.startswith("material-icons")), None)
    if variant is not None:
        base = variant
        rest.remove(variant)

    class_list = " ".join(c for c in [base, "mdpp-icon", customClass, *rest] if c)
    style = f' style="{" ".join(styles)}"' if styles else ""
    return f'<span class="{html.escape(class_list)}"{style}>{html.escape(name)}</span>'


def icon_renderNamed(name: str, variant: str = "filled", size: str = "medium") -> str:
    """Icon by variant and size name, as exposed to other plugins"""
    styles = [ICON_SIZES[size]] if size in ICON_SIZES else []
    return icon_render(name, styles=styles, defaultStyle=variant)


class MaterialIconsPlugin(Plugin):

    id = "material-icons"
    description = "Material Icons through ![icon](google:name) images"
    defaults = {
        "defaultStyle": "filled",
        "customClass": "",
    }

    @property
    def api(self) -> Mapping[str, Callable[..., Any]]:
        return MappingProxyType({
            "variants": lambda: list(ICON_VARIANTS),
            "sizes": lambda: list(ICON_SIZES),
            "render": icon_renderNamed,
        })

    def treeTransforms(self) -> Sequence[TreeTransform]:
        return (self.icons_render,)

    def icons_render(self, tree: SyntaxTreeNode, context: TransformContext) -> None:
        default_style = str(context.settings.get("defaultStyle", "filled"))
        custom_class = str(context.settings.get("customClass", ""))

        for node in inlineNodes_find(tree):
            children = node.token.children if node.token is not None else None
            if not children or not any(
                t.type == "image" and iconName_get(t.attrGet("src")) for t in children
            ):
                continue

            rewritten: List[Token] = []
            consume_hints = False
            for token in children:
                if consume_hints and token.type == "text":
                    consume_hints = False
                    trailing = TRAILING_GROUP_RE.match(token.content)
                    if trailing:
                        icon = rewritten[-1]
                        icon.meta["hints"].extend(trailing.group(1).split())
                        rest = token.content[trailing.end():]
                        if rest:
                            rewritten.append(textToken_make(rest))
                        continue
                consume_hints = False

                name = iconName_get(token.attrGet("src")) if token.type == "image" else None
                if name is None:
                    rewritten.append(token)
                    continue

                hints: List[str] = []
                alt_group = CLASS_GROUP_RE.search(token.content)
                if alt_group:
                    hints.extend(alt_group.group(1).split())
                title = token.attrGet("title")
                if title:
                    hints.extend(str(title).split())

                icon = htmlInline_make("")
                icon.meta = {"icon": name, "hints": hints}
                rewritten.append(icon)
                consume_hints = True

            for token in rewritten:
                if token.type == "html_inline" and "icon" in token.meta:
                    classes, styles = hints_sort(token.meta["hints"])
                    token.content = icon_render(
                        token.meta["icon"], classes, styles, default_style, custom_class
                    )
            inlineTokens_replace(node, rewritten)
