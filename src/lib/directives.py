"""
Directive grammar extension for markdown-it-py

Recognizes MD++ block directives during the block-parsing phase and
materializes them as directive tokens (and so as directive nodes in the
SyntaxTreeNode document tree).

Syntax:
    :::name[label]{.class #id key="value" key=value flag}
    ... any Markdown, including further directives ...
    :::

    ::name{attrs}            (leaf: single line, no body, no close fence)

Key features:
- Depth-tracked close-fence matching: a bare ":::" closes the innermost
  open container, so nesting needs no extra colons
- Fenced code blocks inside a container are opaque to the matcher
- Malformed fences degrade to ordinary text with a ParseError diagnostic
- Unclosed containers run to the end of their enclosing block and are
  reported, never dropped

Example:
    >>> md = MarkdownIt("commonmark").use(directives_plugin)
    >>> tokens = md.parse(':::alert{variant="info"}\\nHi\\n:::')
    >>> tokens[0].type, tokens[0].meta["attributes"]
    ('container_directive_open', {'variant': 'info'})
"""

import re
import html
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

from markdown_it import MarkdownIt
from markdown_it.rules_block import StateBlock

from ..models.directives import DirectiveKind, ComponentSpec, CONTAINER_TOKEN, LEAF_TOKEN
from ..models.parser import AttributeList, Diagnostic, DiagnosticKind, FenceMatch
from .errors import DirectiveParseError


NAME_PATTERN = r"[A-Za-z][\w-]*(?::[\w-]+)?"

CONTAINER_OPEN_RE = re.compile(
    rf"^(?P<markup>:{{3,}})[ \t]*(?P<name>{NAME_PATTERN})"
    rf"(?:\[(?P<label>[^\]]*)\])?(?P<attrs>\{{.*\}})?[ \t]*$"
)
LEAF_RE = re.compile(
    rf"^(?P<markup>::)(?P<name>{NAME_PATTERN})"
    rf"(?:\[(?P<label>[^\]]*)\])?(?P<attrs>\{{.*\}})?[ \t]*$"
)
CONTAINER_CLOSE_RE = re.compile(r"^:{3,}[ \t]*$")

# Anything shaped like a fence; used to tell "malformed" from "not a directive"
FENCE_LIKE_RE = re.compile(r"^(?::{3,}[ \t]*|::)[A-Za-z]")

CODE_FENCE_RE = re.compile(r"^(?P<marker>`{3,}|~{3,})")

ATTRIBUTE_RE = re.compile(
    r"""
    (?:
        \.(?P<cls>[\w-]+)
      | \#(?P<id>[\w-]+)
      | (?P<key>[A-Za-z_][\w:.-]*)[ \t]*=[ \t]*
        (?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s}"'=]+))
      | (?P<flag>[A-Za-z_][\w:-]*)
    )
    (?=\s|$)
    """,
    re.VERBOSE,
)

# Block rules a directive fence may interrupt
TERMINATES: List[str] = ["paragraph", "reference", "blockquote", "list"]


def attributes_parse(raw: Optional[str]) -> Optional[AttributeList]:
    """
    Parse a brace-delimited attribute list

    Accepts ".class" tokens (collapsed into one "class" attribute, duplicates
    removed, order preserved), "#id", key="value", key='value', key=value
    (unquoted values stop at whitespace or "}") and bare flags (key="").

    Args:
        raw: Attribute text including braces, or None/"" for no attributes

    Returns:
        AttributeList, or None if the syntax is malformed

    Example:
        >>> attributes_parse('{.a .b .a variant=info}').attributes
        {'class': 'a b', 'variant': 'info'}
        >>> attributes_parse('{key="unterminated}') is None
        True
    """
    if not raw:
        return AttributeList()
    if not (raw.startswith('{') and raw.endswith('}')):
        return None

    inner = raw[1:-1]
    classes: Dict[str, None] = {}
    attributes: Dict[str, str] = {}
    pos = 0

    while pos < len(inner):
        if inner[pos].isspace():
            pos += 1
            continue

        match = ATTRIBUTE_RE.match(inner, pos)
        if not match:
            return None

        if match.group('cls'):
            classes.setdefault(match.group('cls'), None)
        elif match.group('id'):
            attributes['id'] = match.group('id')
        elif match.group('key'):
            key = match.group('key')
            value = next(
                v for v in (match.group('dq'), match.group('sq'), match.group('bare'))
                if v is not None
            )
            if key == 'class':
                for token in value.split():
                    classes.setdefault(token, None)
            else:
                attributes[key] = value
        else:
            attributes[match.group('flag')] = ''

        pos = match.end()

    if classes:
        attributes = {'class': ' '.join(classes), **attributes}
    return AttributeList(attributes=attributes)


def fence_parse(line: str) -> Optional[FenceMatch]:
    """
    Match a container open fence or a leaf directive line

    Args:
        line: Source line with block indentation already removed

    Returns:
        FenceMatch, or None if the line is not a directive fence at all

    Raises:
        DirectiveParseError: If the line looks like a fence but its name,
                             label or attribute syntax is malformed
    """
    if not FENCE_LIKE_RE.match(line):
        return None

    pattern = CONTAINER_OPEN_RE if line.startswith(':::') else LEAF_RE
    match = pattern.match(line)
    if not match:
        raise DirectiveParseError(f"Malformed directive fence: {line.strip()}")

    parsed = attributes_parse(match.group('attrs'))
    if parsed is None:
        raise DirectiveParseError(
            f"Malformed attribute list in directive '{match.group('name')}': {match.group('attrs')}"
        )

    return FenceMatch(
        markup=match.group('markup'),
        name=match.group('name'),
        label=match.group('label'),
        attributes=parsed.attributes,
    )


def containerOpen_is(line: str) -> bool:
    """True if the line is a well-formed container open fence"""
    if not line.startswith(':::'):
        return False
    try:
        fence = fence_parse(line)
    except DirectiveParseError:
        return False
    return fence is not None


def diagnostic_add(env: MutableMapping[str, Any], message: str, line: int) -> None:
    """
    Record a ParseError diagnostic in the markdown-it environment

    Block rules run more than once per line (silent lookahead, then for
    real), so identical diagnostics are only kept once.
    """
    diagnostics = env.setdefault("diagnostics", [])
    diagnostic = Diagnostic(kind=DiagnosticKind.PARSE_ERROR, message=message, line=line)
    if diagnostic not in diagnostics:
        diagnostics.append(diagnostic)


def line_get(state: StateBlock, line: int) -> str:
    """Text of a source line with block indentation removed"""
    return state.src[state.bMarks[line] + state.tShift[line]:state.eMarks[line]]


def closeFence_find(state: StateBlock, startLine: int, endLine: int) -> Tuple[int, bool]:
    """
    Find the close fence matching the container opened at startLine

    Scans fence markers left-to-right with a depth counter: well-formed open
    fences increment it, bare colon runs decrement it, and the container
    closes when it reaches zero. Lines inside fenced code are skipped.

    Args:
        state: markdown-it block state
        startLine: Line of the open fence
        endLine: First line past the enclosing block

    Returns:
        Tuple (line, closed): the close-fence line and True, or the line the
        body runs to (end of the enclosing block) and False when unclosed

    Example:
        For lines [":::outer", ":::inner", "x", ":::", ":::"] at startLine 0:
        Returns (4, True)

        Depth tracking: :::outer 1, :::inner 2, ::: 1, ::: 0
    """
    depth = 1
    code_marker: Optional[str] = None
    line = startLine + 1

    while line < endLine:
        start = state.bMarks[line] + state.tShift[line]
        maximum = state.eMarks[line]

        # Non-empty line with negative indent ends the enclosing block
        if start < maximum and state.sCount[line] < state.blkIndent:
            return line, False

        text = state.src[start:maximum]

        if code_marker:
            closing = text.rstrip()
            if len(closing) >= len(code_marker) and set(closing) == {code_marker[0]}:
                code_marker = None
        elif state.sCount[line] - state.blkIndent >= 4:
            pass
        else:
            code = CODE_FENCE_RE.match(text)
            if code:
                code_marker = code.group('marker')
            elif CONTAINER_CLOSE_RE.match(text):
                depth -= 1
                if depth == 0:
                    return line, True
            elif containerOpen_is(text):
                depth += 1

        line += 1

    return endLine, False


def container_rule(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    """Block rule for :::name{attrs} ... ::: containers"""
    if state.sCount[startLine] - state.blkIndent >= 4:
        return False

    text = line_get(state, startLine)
    if not text.startswith(':::'):
        return False

    try:
        fence = fence_parse(text)
    except DirectiveParseError as error:
        diagnostic_add(state.env, str(error), startLine + 1)
        return False

    if fence is None:
        return False

    if silent:
        return True

    close_line, closed = closeFence_find(state, startLine, endLine)
    if not closed:
        diagnostic_add(
            state.env,
            f"Unclosed container directive ':::{fence.name}' opened at line {startLine + 1}",
            startLine + 1,
        )

    old_parent = state.parentType
    old_line_max = state.lineMax
    state.parentType = "container"
    state.lineMax = close_line

    token = state.push(f"{CONTAINER_TOKEN}_open", "div", 1)
    token.markup = fence.markup
    token.block = True
    token.info = fence.name
    token.content = state.getLines(startLine + 1, close_line, state.blkIndent, False)
    token.map = [startLine, close_line + 1 if closed else close_line]
    token.meta = {
        "kind": DirectiveKind.CONTAINER.value,
        "name": fence.name,
        "label": fence.label,
        "attributes": fence.attributes,
        "closed": closed,
    }

    state.md.block.tokenize(state, startLine + 1, close_line)

    token = state.push(f"{CONTAINER_TOKEN}_close", "div", -1)
    token.markup = line_get(state, close_line).strip() if closed else ""
    token.block = True

    state.parentType = old_parent
    state.lineMax = old_line_max
    state.line = close_line + 1 if closed else close_line
    return True


def leaf_rule(state: StateBlock, startLine: int, endLine: int, silent: bool) -> bool:
    """Block rule for ::name{attrs} leaf directives"""
    if state.sCount[startLine] - state.blkIndent >= 4:
        return False

    text = line_get(state, startLine)
    if not text.startswith('::') or text.startswith(':::'):
        return False

    try:
        fence = fence_parse(text)
    except DirectiveParseError as error:
        diagnostic_add(state.env, str(error), startLine + 1)
        return False

    if fence is None:
        return False

    if silent:
        return True

    token = state.push(LEAF_TOKEN, "div", 0)
    token.markup = fence.markup
    token.block = True
    token.info = fence.name
    token.map = [startLine, startLine + 1]
    token.meta = {
        "kind": DirectiveKind.LEAF.value,
        "name": fence.name,
        "label": fence.label,
        "attributes": fence.attributes,
    }

    state.line = startLine + 1
    return True


def directives_plugin(md: MarkdownIt) -> None:
    """
    Install the directive block rules on a MarkdownIt instance

    Both rules run before "fence" and may interrupt paragraphs, references,
    blockquotes and lists.
    """
    md.block.ruler.before("fence", CONTAINER_TOKEN, container_rule, {"alt": TERMINATES})
    md.block.ruler.before("fence", LEAF_TOKEN, leaf_rule, {"alt": TERMINATES})


def cssName_make(name: str) -> str:
    """Class-safe form of a directive name ("bootstrap:card" -> "bootstrap-card")"""
    return re.sub(r"[^\w-]", "-", name)


def directive_renderOpen(
    meta: Dict[str, Any], component: Optional[ComponentSpec] = None
) -> Tuple[str, str]:
    """
    Render the opening tag for a directive

    Non-id attributes are emitted as data-* attributes so that directive
    attributes can never introduce event handlers or inline script.

    Args:
        meta: Directive token meta (name, label, attributes)
        component: ComponentSpec resolved from an active plugin, or None

    Returns:
        Tuple (html, tag) where tag is needed to close the element
    """
    name = meta["name"]
    attributes = dict(meta.get("attributes") or {})

    if component is not None:
        tag = component.tag
        classes = component.classes_forVariant(attributes.get("variant"))
    else:
        tag = "div"
        classes = ["mdpp-directive", f"mdpp-{cssName_make(name)}"]

    classes.extend(c for c in attributes.pop("class", "").split(" ") if c)
    unique_classes = list(dict.fromkeys(classes))

    parts = [f'<{tag}']
    if unique_classes:
        parts.append(f' class="{html.escape(" ".join(unique_classes))}"')
    if "id" in attributes:
        parts.append(f' id="{html.escape(attributes.pop("id"))}"')
    parts.append(f' data-directive="{html.escape(name)}"')
    for key, value in attributes.items():
        parts.append(f' data-{html.escape(cssName_make(key).lower())}="{html.escape(value)}"')
    parts.append('>\n')

    label = meta.get("label")
    if label:
        parts.append(f'<div class="mdpp-directive-label">{html.escape(label)}</div>\n')

    return ''.join(parts), tag
