"""
AI-context tests

Tests extraction from raw text and from parsed trees, visibility
resolution, metadata parsing and formatting.
"""

import pytest

from mdpp.lib.ai_context import (
    aiContext_extract,
    aiContext_extractFromText,
    aiContext_extractFromTree,
    aiContext_format,
    aiContext_has,
    aiContext_hidden,
    aiContext_strip,
    aiContext_stripFromText,
    aiContext_visible,
    metadata_parse,
)
from mdpp.lib.parser import Parser
from mdpp.lib.tree import directives_find
from mdpp.models import AIContextRecord


SAMPLE = """# Notes

Intro paragraph.

:::ai-context{visibility=hidden}
Purpose: internal
audience: maintainers
:::

:::ai-context[visible]
Shown to readers.
:::
"""


class TestExtraction:
    """Test record extraction from text"""

    def test_hidden_block(self):
        """Attribute visibility=hidden yields a hidden record"""
        records = aiContext_extract(":::ai-context{visibility=hidden}\nkey: value\n:::")

        assert records == [AIContextRecord(
            visible=False, content="key: value", sourceLine=1, metadata={"key": "value"}
        )]

    def test_document_order_and_lines(self):
        """Records come back in order with 1-based fence lines"""
        records = aiContext_extract(SAMPLE)

        assert [r.sourceLine for r in records] == [5, 10]
        assert [r.visible for r in records] == [False, True]
        assert records[1].content == "Shown to readers."

    def test_no_blocks(self):
        """Documents without ai-context give an empty list"""
        assert aiContext_extract("# Title\n\n:::note\nx\n:::") == []
        assert aiContext_has("# Title") is False
        assert aiContext_has(SAMPLE) is True

    def test_nested_directives_in_body(self):
        """Nested containers stay inside the record's content"""
        source = ":::ai-context\n:::note\nx\n:::\nkey: v\n:::\n\nAfter"
        records = aiContext_extract(source)

        assert len(records) == 1
        assert records[0].content == ":::note\nx\n:::\nkey: v"
        assert records[0].metadata == {"key": "v"}

    def test_unclosed_block(self):
        """An unclosed block runs to the end of the document"""
        records = aiContext_extract("Intro\n\n:::ai-context\nkey: v")
        assert records[0].content == "key: v"
        assert records[0].sourceLine == 3

    def test_crlf_line_endings(self):
        """Windows line endings are tolerated on the fence line"""
        records = aiContext_extractFromText(":::ai-context{visibility=visible}\r\nx\r\n:::\r\n")
        assert len(records) == 1
        assert records[0].visible is True


class TestVisibility:
    """Test fail-closed visibility"""

    @pytest.mark.parametrize(
        "fence, visible",
        [
            (":::ai-context", False),
            (":::ai-context{visibility=visible}", True),
            (":::ai-context{visibility=hidden}", False),
            (":::ai-context{visibility=Visible}", False),
            (":::ai-context{visibility=public}", False),
            (":::ai-context[visible]", True),
            (":::ai-context[hidden]{visibility=visible}", False),
            (":::ai-context[visible]{visibility=hidden}", False),
            (":::ai-context[visible]{visibility=visible}", True),
            (":::ai-context[public]", False),
        ],
    )
    def test_visibility_resolution(self, fence, visible):
        """Visible only when every stated visibility is exactly "visible" """
        records = aiContext_extract(f"{fence}\nx\n:::")
        assert records[0].visible is visible

    def test_filters(self):
        """visible/hidden helpers partition the records"""
        records = aiContext_extract(SAMPLE)
        assert aiContext_visible(records) == [records[1]]
        assert aiContext_hidden(records) == [records[0]]


class TestMetadata:
    """Test key: value metadata lines"""

    def test_keys_lowercased_first_wins(self):
        """Keys are case-folded and the first occurrence is kept"""
        assert metadata_parse("Author: A\nauthor: B\n- tags: x\n* Level: 2") == {
            "author": "A",
            "tags": "x",
            "level": "2",
        }

    def test_prose_lines_ignored(self):
        """Lines without a key: value shape are not metadata"""
        assert metadata_parse("Just some prose.\n\nMore prose") == {}


class TestTreeExtraction:
    """Test extraction from a parsed tree"""

    def test_tree_matches_text(self):
        """Both extractors agree on the same document"""
        tree = Parser().parse(SAMPLE).tree
        assert aiContext_extractFromTree(tree) == aiContext_extractFromText(SAMPLE)

    def test_dispatch_on_input_type(self):
        """aiContext_extract accepts text or a tree"""
        tree = Parser().parse(SAMPLE).tree
        assert aiContext_extract(tree) == aiContext_extract(SAMPLE)

    def test_strip_hidden(self):
        """Stripping removes hidden blocks and keeps visible ones"""
        tree = Parser().parse(SAMPLE).tree
        removed = aiContext_strip(tree)

        remaining = directives_find(tree, "ai-context")
        assert removed == 1
        assert len(remaining) == 1
        assert remaining[0].meta["label"] == "visible"

    def test_strip_from_text(self):
        """Hidden blocks are blanked out of raw text, line count kept"""
        text = aiContext_stripFromText(SAMPLE)

        assert "Purpose" not in text
        assert "Shown to readers." in text
        assert text.count("\n") == SAMPLE.count("\n")


class TestCodeFences:
    """Test that fenced code samples are not ai-context blocks"""

    SAMPLE_IN_CODE = (
        "Intro\n\n"
        "```md\n:::ai-context{visibility=visible}\nkey: value\n:::\n```\n\n"
        ":::ai-context\nreal: yes\n:::\n"
    )

    def test_extractors_agree(self):
        """Text scan and tree walk skip the same code sample"""
        tree = Parser().parse(self.SAMPLE_IN_CODE).tree
        from_text = aiContext_extractFromText(self.SAMPLE_IN_CODE)

        assert from_text == aiContext_extractFromTree(tree)
        assert [(r.sourceLine, r.metadata) for r in from_text] == [(9, {"real": "yes"})]

    def test_code_only_has_no_context(self):
        """A block shown only as a code sample does not count"""
        source = "~~~\n:::ai-context\nkey: value\n:::\n~~~\n"
        assert aiContext_has(source) is False
        assert aiContext_extract(source) == []

    def test_code_inside_body(self):
        """A bare ::: inside a code fence does not close the block"""
        source = ":::ai-context\n```\n:::\n```\nkey: v\n:::\n\nAfter"
        tree = Parser().parse(source).tree

        records = aiContext_extractFromText(source)
        assert records == aiContext_extractFromTree(tree)
        assert records[0].content == "```\n:::\n```\nkey: v"

    def test_strip_keeps_code_samples(self):
        """Blanking hidden blocks leaves code samples untouched"""
        text = aiContext_stripFromText(self.SAMPLE_IN_CODE)

        assert "```md\n:::ai-context{visibility=visible}\nkey: value\n:::\n```" in text
        assert "real: yes" not in text

    def test_malformed_fence_is_not_a_block(self):
        """has and extract agree on fences the grammar rejects"""
        source = ":::ai-context{visibility=}\nkey: value\n:::"
        assert aiContext_has(source) is False
        assert aiContext_extract(source) == []
        assert aiContext_extractFromTree(Parser().parse(source).tree) == []


class TestFormatting:
    """Test plain-text display of records"""

    def test_format_with_metadata(self):
        """Header, content, then indented metadata"""
        record = AIContextRecord(visible=False, content="key: value", sourceLine=1, metadata={"key": "value"})
        assert aiContext_format(record) == "[Hidden AI Context]\nkey: value\nMetadata:\n  key: value"

    def test_format_visible_without_metadata(self):
        """No metadata section when there is none"""
        record = AIContextRecord(visible=True, content="Shown.", sourceLine=3)
        assert aiContext_format(record) == "[Visible AI Context]\nShown."
