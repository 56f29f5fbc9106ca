"""
Directive specification and metadata models

Defines the shapes shared by the directive grammar, the tree helpers and the
component plugins: directive kinds, the read-only directive view over a tree
node, and the component specification a UI-framework plugin contributes.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


class DirectiveKind(Enum):
    """
    Kinds of block-level directive

    CONTAINER directives are fenced (:::name ... :::) and may nest.
    LEAF directives are a single line (::name{attrs}) with no body.
    """
    CONTAINER = "container"
    LEAF = "leaf"


# Token types emitted by the directive block rule
CONTAINER_TOKEN: str = "container_directive"
LEAF_TOKEN: str = "leaf_directive"

# Directive names handled by the core rather than by a component plugin
RESERVED_DIRECTIVES: Set[str] = {
    'ai-context',     # :::ai-context{visibility=...} - AI-only metadata
    'script',         # :::script{lang=js} - executable script block
    'script:output',  # :::script:output{lang=js} - script rendering its result
}


def reserved_is(directive_name: str) -> bool:
    """Check if a directive name is handled by the core"""
    return directive_name in RESERVED_DIRECTIVES


@dataclass
class DirectiveNode:
    """
    Read-only view of a directive in the document tree

    Built by ``tree.directive_view()`` from a SyntaxTreeNode whose type is
    ``container_directive`` or ``leaf_directive``.

    Attributes:
        kind: CONTAINER or LEAF
        name: Directive name, possibly namespaced (e.g., "bootstrap:card")
        attributes: Parsed attribute mapping; class tokens are collapsed into
                    a single space-joined "class" entry (order preserved,
                    duplicates removed)
        label: Optional bracket label (":::note[Heads up]")
        children: Child tree nodes (always empty for leaves)
        line: 1-based source line of the opening fence
        body: Raw text between the fences (containers only)

    Example:
        For source ':::alert{variant="info"}\\nHi\\n:::':
        DirectiveNode(kind=CONTAINER, name="alert",
                      attributes={"variant": "info"}, ...)
    """
    kind: DirectiveKind
    name: str
    attributes: Dict[str, str]
    label: Optional[str] = None
    children: List[Any] = field(default_factory=list)
    line: int = 1
    body: str = ""

    @property
    def framework(self) -> Optional[str]:
        """Namespace part of a "framework:component" name, if any"""
        if ':' in self.name:
            return self.name.split(':', 1)[0]
        return None

    @property
    def component(self) -> str:
        """Component part of the name (the whole name when not namespaced)"""
        return self.name.split(':', 1)[-1]

    def classes_list(self) -> List[str]:
        """Class attribute as an ordered list"""
        return [c for c in self.attributes.get('class', '').split(' ') if c]


@dataclass
class ComponentSpec:
    """
    Specification for a UI component contributed by a plugin

    A directive whose (component) name matches renders with this tag and
    these classes instead of the generic directive <div>.

    Attributes:
        tag: HTML tag name to emit
        classes: Classes always applied
        variants: Extra classes keyed by the directive's "variant" attribute
        allows_nesting: Whether the component may contain other directives
        description: Human-readable description
        examples: Example usage strings
    """
    tag: str = "div"
    classes: List[str] = field(default_factory=list)
    variants: Dict[str, List[str]] = field(default_factory=dict)
    allows_nesting: bool = True
    description: str = ""
    examples: List[str] = field(default_factory=list)

    def classes_forVariant(self, variant: Optional[str]) -> List[str]:
        """
        Compute the classes for a given variant

        Args:
            variant: Value of the directive's "variant" attribute, or None

        Returns:
            Base classes followed by the variant's classes (if known)
        """
        classes = list(self.classes)
        if variant and variant in self.variants:
            classes.extend(self.variants[variant])
        return classes
