"""
AI-context extraction

Finds ``:::ai-context`` blocks and turns them into AIContextRecords for an
external AI-assistant integration. Two independent extractors share the same
directive grammar:

    - aiContext_extractFromText(): line scan over raw text, for callers
      that want context without a full parse
    - aiContext_extractFromTree(): walk of an already parsed SyntaxTreeNode

Both treat fenced code as opaque, so a ``:::ai-context`` shown inside a
code sample is not a block.

Visibility is fail-closed: a block is visible only when every place that
states a visibility (the ``visibility`` attribute, the bracket label) says
exactly "visible". The attribute is reported first when both are given.

Example:
    >>> records = aiContext_extract(':::ai-context{visibility=hidden}\\nkey: value\\n:::')
    >>> records[0].visible, records[0].metadata
    (False, {'key': 'value'})
"""

import re
import html
from typing import Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple, Union

from markdown_it.tree import SyntaxTreeNode

from ..models.documents import AIContextRecord
from .directives import CODE_FENCE_RE, CONTAINER_CLOSE_RE, containerOpen_is, fence_parse
from .errors import DirectiveParseError
from .tree import directives_find, node_remove


AI_CONTEXT_NAME = "ai-context"

METADATA_RE = re.compile(r"^[-*]?\s*(\w+):\s*(.+)$")


class TextBlock(NamedTuple):
    """An ai-context block located in raw text (offsets into the source)"""
    line: int
    start: int
    bodyStart: int
    bodyEnd: int
    end: int
    label: Optional[str]
    attributes: Dict[str, str]


def metadata_parse(content: str) -> Dict[str, str]:
    """
    Parse "key: value" lines (optionally bulleted with - or *)

    Keys are lower-cased; the first occurrence of a key wins.
    """
    metadata: Dict[str, str] = {}
    for line in content.splitlines():
        match = METADATA_RE.match(line.strip())
        if match:
            metadata.setdefault(match.group(1).lower(), match.group(2).strip())
    return metadata


def visibility_resolve(attributes: Mapping[str, str], label: Optional[str]) -> str:
    """
    Effective visibility of a block

    "visible" only if each stated value (attribute, then label) is exactly
    "visible"; otherwise the first stated value that is not, or "hidden"
    when neither is given.
    """
    stated = [value for value in (attributes.get("visibility"), (label or "").strip()) if value]
    for value in stated:
        if value != "visible":
            return value
    return "visible" if stated else "hidden"


def record_make(
    attributes: Mapping[str, str], label: Optional[str], body: str, sourceLine: int
) -> AIContextRecord:
    content = body.strip()
    return AIContextRecord(
        visible=visibility_resolve(attributes, label) == "visible",
        content=content,
        sourceLine=sourceLine,
        metadata=metadata_parse(content),
    )


def lines_iterate(source: str, start: int = 0) -> Iterator[Tuple[int, int, int, str]]:
    """
    Lines of ``source`` from offset ``start`` that lie outside fenced code

    Code fence lines are skipped along with their bodies; an unclosed code
    fence runs to the end of the text.

    Yields:
        Tuple (index, offset, end, text): line index counted from ``start``,
        offset of the line, offset of its newline (or len(source)) and the
        line without a trailing carriage return
    """
    code_marker: Optional[str] = None
    index = 0
    position = start
    while position < len(source):
        newline = source.find("\n", position)
        end = len(source) if newline == -1 else newline
        text = source[position:end].rstrip("\r")
        if code_marker:
            closing = text.strip()
            if len(closing) >= len(code_marker) and set(closing) == {code_marker[0]}:
                code_marker = None
        else:
            unindented = text.lstrip(" ")
            code = CODE_FENCE_RE.match(unindented) if len(text) - len(unindented) < 4 else None
            if code:
                code_marker = code.group("marker")
            else:
                yield index, position, end, text
        index += 1
        position = end + 1


def body_locate(source: str, start: int) -> Tuple[int, int]:
    """
    Locate the body of a container whose first body line starts at ``start``

    Returns:
        Tuple (body_end, close_end): start offset of the close fence line and
        the offset just past its text (both len(source) when unclosed)
    """
    depth = 1
    for _, position, end, text in lines_iterate(source, start):
        line = text.strip()
        if CONTAINER_CLOSE_RE.match(line):
            depth -= 1
            if depth == 0:
                return position, end
        elif containerOpen_is(line):
            depth += 1
    return len(source), len(source)


def blocks_scan(source: str) -> Iterator[TextBlock]:
    """
    Every well-formed ai-context open fence in document order

    Nested blocks are yielded after the block that contains them. Fences
    with malformed attribute lists are not blocks, as in the tree parser.
    """
    for index, position, end, text in lines_iterate(source):
        unindented = text.lstrip(" ")
        if len(text) - len(unindented) >= 4 or not unindented.startswith(":::"):
            continue
        try:
            fence = fence_parse(unindented)
        except DirectiveParseError:
            continue
        if fence is None or fence.name != AI_CONTEXT_NAME:
            continue

        body_start = min(end + 1, len(source))
        body_end, close_end = body_locate(source, body_start)
        yield TextBlock(
            line=index + 1,
            start=position,
            bodyStart=body_start,
            bodyEnd=body_end,
            end=close_end,
            label=fence.label,
            attributes=fence.attributes,
        )


def aiContext_extractFromText(source: str) -> List[AIContextRecord]:
    """
    Extract AI-context records with a raw text scan

    Args:
        source: Document text

    Returns:
        Records in document order
    """
    return [
        record_make(block.attributes, block.label, source[block.bodyStart:block.bodyEnd], block.line)
        for block in blocks_scan(source)
    ]


def aiContext_extractFromTree(tree: SyntaxTreeNode) -> List[AIContextRecord]:
    """
    Extract AI-context records from a parsed document tree

    Args:
        tree: Root SyntaxTreeNode produced with the directive grammar enabled

    Returns:
        Records in document order
    """
    records = []
    for node in directives_find(tree, AI_CONTEXT_NAME):
        meta = node.meta
        records.append(record_make(
            meta.get("attributes") or {},
            meta.get("label"),
            node.content,
            node.map[0] + 1 if node.map else 1,
        ))
    return records


def aiContext_extract(document: Union[str, SyntaxTreeNode]) -> List[AIContextRecord]:
    """
    Extract AI-context records from raw text or a parsed tree

    Pure function of its input; records are recomputed on every call.
    """
    if isinstance(document, str):
        return aiContext_extractFromText(document)
    return aiContext_extractFromTree(document)


def aiContext_has(source: str) -> bool:
    """True iff aiContext_extractFromText() would find at least one block"""
    return next(blocks_scan(source), None) is not None


def aiContext_visible(records: List[AIContextRecord]) -> List[AIContextRecord]:
    return [record for record in records if record.visible]


def aiContext_hidden(records: List[AIContextRecord]) -> List[AIContextRecord]:
    return [record for record in records if not record.visible]


def aiContext_format(record: AIContextRecord) -> str:
    """
    Format a record as plain text for display

    Example:
        [Hidden AI Context]
        key: value
        Metadata:
          key: value
    """
    lines = ["[Visible AI Context]" if record.visible else "[Hidden AI Context]", record.content]
    if record.metadata:
        lines.append("Metadata:")
        lines.extend(f"  {key}: {value}" for key, value in record.metadata.items())
    return "\n".join(lines)


def aiContext_strip(tree: SyntaxTreeNode) -> int:
    """
    Remove hidden ai-context blocks from a tree before rendering

    Returns:
        Number of blocks removed
    """
    removed = 0
    for node in directives_find(tree, AI_CONTEXT_NAME):
        meta = node.meta
        if visibility_resolve(meta.get("attributes") or {}, meta.get("label")) == "visible":
            continue
        if node.parent is not None:
            node_remove(node)
            removed += 1
    return removed


def aiContext_stripFromText(source: str) -> str:
    """
    Blank out hidden ai-context blocks in raw text

    For renders without the directive grammar, where the blocks would
    otherwise come out as ordinary paragraphs. Removed blocks are replaced
    by the same number of newlines, so later line numbers do not move.
    """
    parts: List[str] = []
    position = 0

    for block in blocks_scan(source):
        # Nested inside a block that is already gone
        if block.start < position:
            continue
        if visibility_resolve(block.attributes, block.label) == "visible":
            continue

        parts.append(source[position:block.start])
        parts.append("\n" * source.count("\n", block.start, block.end))
        position = block.end

    parts.append(source[position:])
    return "".join(parts)


def aiContext_renderOpen(meta: Mapping) -> str:
    """Opening tag for an ai-context block that is kept in the output"""
    visibility = visibility_resolve(meta.get("attributes") or {}, meta.get("label"))
    state = "visible" if visibility == "visible" else "hidden"
    return (
        f'<div class="mdpp-ai-context mdpp-ai-{state}" data-ai-context="true"'
        f' data-visibility="{html.escape(visibility)}">\n'
    )
