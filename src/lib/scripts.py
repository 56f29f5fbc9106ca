"""
Script blocks (MarkdownScript)

Collects ``:::script`` and ``:::script:output`` containers and renders them
either as runnable blocks for the external script runtime or as suppressed
placeholders, depending on the trust gate's verdict.

Syntax:
    :::script{lang=js async=true}
    const x = 1;
    :::

    :::script:output{id=greeting}
    return `Hello ${name}!`;
    :::

Runnable blocks carry their code percent-encoded in data-script-code so it
never appears as live markup. Suppressed blocks carry no code at all.
"""

import re
import html
from typing import List, Optional, Tuple
from urllib.parse import quote

from markdown_it.tree import SyntaxTreeNode

from ..config.settings import appsettings
from ..models.documents import ScriptBlock, ScriptMode
from ..models.parser import Diagnostic, DiagnosticKind
from ..models.trust import GateVerdict, TrustCheck
from .log import LOG
from .tree import directives_find, directive_is, node_replaceWithHtml


SCRIPT_NAMES = ("script", "script:output")

SCRIPT_FENCE_RE = re.compile(r"^[ \t]{0,3}:{3,}[ \t]*script(?::output)?(?=[\s{\[]|$)", re.MULTILINE)
CONTAINER_FENCE_RE = re.compile(r"^[ \t]{0,3}:{3,}[ \t]*[A-Za-z][\w-]*", re.MULTILINE)
LEAF_FENCE_RE = re.compile(r"^[ \t]{0,3}::[A-Za-z][\w-]*(?::[\w-]+)?[{\[]", re.MULTILINE)

# Characters encodeURIComponent leaves alone
URI_SAFE = "-_.!~*'()"


def fileFormat_detect(source: str) -> str:
    """
    Classify a document

    Returns:
        "mdsc" if it has script blocks, "mdpp" if it uses directives,
        otherwise "md"
    """
    if SCRIPT_FENCE_RE.search(source):
        return "mdsc"
    if CONTAINER_FENCE_RE.search(source) or LEAF_FENCE_RE.search(source):
        return "mdpp"
    return "md"


def boolean_parse(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "")


def scriptNode_is(node: SyntaxTreeNode) -> bool:
    return directive_is(node) and node.meta.get("name") in SCRIPT_NAMES


def scriptAncestor_has(node: SyntaxTreeNode) -> bool:
    """True if the node sits inside another script block (its body is code)"""
    parent = node.parent
    while parent is not None:
        if scriptNode_is(parent):
            return True
        parent = parent.parent
    return False


def scripts_has(tree: SyntaxTreeNode) -> bool:
    return any(scriptNode_is(node) for node in tree.walk())


def scripts_collect(tree: SyntaxTreeNode) -> List[Tuple[SyntaxTreeNode, ScriptBlock]]:
    """
    Collect script blocks in document order

    Blocks without an id attribute get mdsc-1, mdsc-2, ... by position, so
    ids are stable across re-renders of the same text.

    Returns:
        List of (tree node, ScriptBlock)
    """
    collected = []
    counter = 0
    for node in directives_find(tree):
        if not scriptNode_is(node) or scriptAncestor_has(node):
            continue
        attributes = node.meta.get("attributes") or {}
        counter += 1
        block = ScriptBlock(
            id=attributes.get("id") or appsettings.scriptId_make(counter),
            code=node.content.strip(),
            mode=ScriptMode.OUTPUT if node.meta["name"] == "script:output" else ScriptMode.EXECUTE,
            lang=attributes.get("lang", "js"),
            isAsync=boolean_parse(attributes.get("async"), False),
            cache=boolean_parse(attributes.get("cache"), True),
            line=node.map[0] + 1 if node.map else None,
        )
        collected.append((node, block))
    return collected


def scriptBlock_render(block: ScriptBlock) -> str:
    """Runnable block markup for the script runtime"""
    classes = ["mdsc-script-block", f"mdsc-{block.mode.value}"]
    if block.isAsync:
        classes.append("mdsc-async")
    placeholder = "/* Script output will appear here */" if block.mode is ScriptMode.OUTPUT else "/* Script block */"
    line = f' data-script-line="{block.line}"' if block.line else ""
    return (
        f'<div class="{" ".join(classes)}"'
        f' data-script-id="{html.escape(block.id)}"'
        f' data-script-mode="{block.mode.value}"'
        f' data-script-lang="{html.escape(block.lang)}"'
        f' data-script-async="{str(block.isAsync).lower()}"'
        f' data-script-cache="{str(block.cache).lower()}"'
        f' data-script-code="{quote(block.code, safe=URI_SAFE)}"{line}>\n'
        f'<div class="mdsc-placeholder">{placeholder}</div>\n</div>\n'
    )


def scriptBlock_renderSuppressed(block: ScriptBlock, reason: str) -> str:
    """Placeholder for a block whose code may not run"""
    return (
        f'<div class="mdsc-script-block mdsc-blocked"'
        f' data-script-id="{html.escape(block.id)}"'
        f' data-script-mode="{block.mode.value}">\n'
        f'<div class="mdsc-placeholder">/* Script not run: {html.escape(reason)} */</div>\n</div>\n'
    )


def scripts_apply(
    tree: SyntaxTreeNode,
    check: Optional[TrustCheck],
    diagnostics: Optional[List[Diagnostic]] = None,
    unchecked_reason: str = "no trust decision",
) -> List[ScriptBlock]:
    """
    Replace script nodes according to a trust verdict

    Args:
        tree: Document tree (mutated)
        check: Gate answer; None means no gate was consulted (suppress)
        diagnostics: Collector for SECURITY_BLOCKED diagnostics
        unchecked_reason: Placeholder reason when check is None

    Returns:
        Blocks handed to the runtime (empty unless the verdict is ALLOW)
    """
    allowed = check is not None and check.verdict is GateVerdict.ALLOW
    reason = check.reason if check is not None else unchecked_reason
    cleared: List[ScriptBlock] = []

    for node, block in scripts_collect(tree):
        if allowed:
            node_replaceWithHtml(node, scriptBlock_render(block))
            cleared.append(block)
            continue
        node_replaceWithHtml(node, scriptBlock_renderSuppressed(block, reason))
        if diagnostics is not None:
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.SECURITY_BLOCKED,
                message=f"Script block '{block.id}' suppressed ({reason})",
                line=block.line,
            ))

    LOG(f"Script blocks cleared for execution: {len(cleared)}", level=2)
    return cleared
