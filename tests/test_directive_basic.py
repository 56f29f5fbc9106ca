"""
Basic directive tests - simplest cases

Tests attribute lists, fence matching, single container and leaf
directives, and plain Markdown passing through untouched.
"""

import pytest

from markdown_it import MarkdownIt

from mdpp.config import ParserSettings
from mdpp.lib.directives import attributes_parse, fence_parse, directive_renderOpen
from mdpp.lib.errors import DirectiveParseError
from mdpp.lib.parser import Parser
from mdpp.lib.tree import directives_find, directive_view
from mdpp.models import DirectiveKind, DiagnosticKind, ComponentSpec


class TestAttributeLists:
    """Test the brace-delimited attribute grammar"""

    def test_empty_attributes(self):
        """No attribute text means an empty mapping"""
        assert attributes_parse(None).attributes == {}
        assert attributes_parse("").attributes == {}
        assert attributes_parse("{}").attributes == {}

    def test_classes_keys_and_flags(self):
        """Classes collapse into one entry, flags get empty values"""
        parsed = attributes_parse('{.note .wide variant="info" open}')
        assert parsed.attributes == {"class": "note wide", "variant": "info", "open": ""}

    def test_duplicate_classes_removed_in_order(self):
        """Repeated classes appear once, first position wins"""
        parsed = attributes_parse("{.a .b .a variant=info}")
        assert parsed.attributes == {"class": "a b", "variant": "info"}

    def test_id_shorthand(self):
        """#id sets the id attribute"""
        assert attributes_parse("{#intro}").attributes == {"id": "intro"}

    def test_single_quoted_value(self):
        """Single quotes allow double quotes inside the value"""
        parsed = attributes_parse("""{title='Say "hi"'}""")
        assert parsed.attributes == {"title": 'Say "hi"'}

    def test_unterminated_quote_is_malformed(self):
        """An unterminated quoted value makes the whole list malformed"""
        assert attributes_parse('{key="unterminated}') is None

    def test_missing_braces_is_malformed(self):
        """Attribute text must be wrapped in braces"""
        assert attributes_parse("variant=info") is None


class TestFenceMatching:
    """Test recognition of open fences and leaf lines"""

    def test_container_fence_with_label(self):
        """Name, label and attributes are all captured"""
        fence = fence_parse(":::note[Heads up]{.x}")
        assert fence.markup == ":::"
        assert fence.name == "note"
        assert fence.label == "Heads up"
        assert fence.attributes == {"class": "x"}

    def test_longer_colon_run(self):
        """Open fences may use more than three colons"""
        fence = fence_parse("::::wide")
        assert fence.markup == "::::"
        assert fence.name == "wide"

    def test_namespaced_name(self):
        """Framework-qualified names are one directive name"""
        assert fence_parse(":::bootstrap:card").name == "bootstrap:card"

    def test_leaf_line(self):
        """Two colons make a leaf directive"""
        fence = fence_parse("::youtube{id=abc}")
        assert fence.markup == "::"
        assert fence.attributes == {"id": "abc"}

    def test_plain_text_is_not_a_fence(self):
        """Lines that do not look like fences are ignored"""
        assert fence_parse("plain text") is None
        assert fence_parse(":::") is None

    def test_trailing_junk_raises(self):
        """A fence-shaped line with trailing text is malformed"""
        with pytest.raises(DirectiveParseError):
            fence_parse(":::note junk")

    def test_bad_attributes_raise(self):
        """Malformed attributes on a fence raise"""
        with pytest.raises(DirectiveParseError):
            fence_parse(':::note{key="x}')


class TestSingleDirectives:
    """Test parsing of one directive in a document"""

    def test_container_directive(self):
        """Container becomes a directive node with attributes"""
        result = Parser().parse(':::alert{variant="info"}\n**Info:** hi\n:::')
        node = result.tree.children[0]

        assert node.type == "container_directive"
        assert node.meta["name"] == "alert"
        assert node.meta["attributes"] == {"variant": "info"}
        assert node.children[0].type == "paragraph"
        assert result.diagnostics == []

    def test_directive_view(self):
        """DirectiveNode view exposes kind, line and body"""
        result = Parser().parse("Intro\n\n:::note[Tip]{.x}\nBody text\n:::")
        view = directive_view(directives_find(result.tree)[0])

        assert view.kind is DirectiveKind.CONTAINER
        assert view.name == "note"
        assert view.label == "Tip"
        assert view.line == 3
        assert view.body == "Body text"
        assert view.classes_list() == ["x"]

    def test_leaf_directive(self):
        """Leaf directive has no body and no close fence"""
        result = Parser().parse("::youtube{#abc}\n\nAfter")
        node = result.tree.children[0]

        assert node.type == "leaf_directive"
        assert directive_view(node).kind is DirectiveKind.LEAF
        assert result.tree.children[1].type == "paragraph"

    def test_container_renders_generic_div(self):
        """Without a component the directive renders as a classed div"""
        parser = Parser()
        result = parser.parse(':::alert{variant="info"}\n**Info:** hi\n:::')
        html = parser.tree_render(result.tree)

        assert html == (
            '<div class="mdpp-directive mdpp-alert" data-directive="alert" data-variant="info">\n'
            "<p><strong>Info:</strong> hi</p>\n"
            "</div>\n"
        )

    def test_leaf_renders_empty_element(self):
        """Leaf directives render as an empty element"""
        parser = Parser()
        html = parser.tree_render(parser.parse("::youtube{#abc}").tree)
        assert html == '<div class="mdpp-directive mdpp-youtube" id="abc" data-directive="youtube"></div>\n'

    def test_label_rendered(self):
        """Bracket labels render as a label element"""
        parser = Parser()
        html = parser.tree_render(parser.parse(":::note[Heads up]\nx\n:::").tree)
        assert '<div class="mdpp-directive-label">Heads up</div>' in html

    def test_attributes_cannot_inject_handlers(self):
        """Non-id attributes are only ever emitted as data-* attributes"""
        markup, tag = directive_renderOpen({"name": "box", "attributes": {"onclick": "alert(1)"}})
        assert tag == "div"
        assert " onclick=" not in markup
        assert 'data-onclick="alert(1)"' in markup

    def test_component_spec_rendering(self):
        """A component supplies tag and variant classes"""
        spec = ComponentSpec(tag="section", classes=["card"], variants={"info": ["card-info"]})
        markup, tag = directive_renderOpen(
            {"name": "ui:card", "attributes": {"variant": "info", "class": "wide"}}, spec
        )
        assert tag == "section"
        assert markup.startswith('<section class="card card-info wide" data-directive="ui:card"')


class TestMalformedDirectives:
    """Test that malformed fences degrade to text"""

    def test_malformed_fence_is_text(self):
        """Bad attributes leave literal text and a ParseError"""
        parser = Parser()
        result = parser.parse(':::note{key="x}\nbody\n:::')

        assert directives_find(result.tree) == []
        assert any(d.kind is DiagnosticKind.PARSE_ERROR for d in result.diagnostics)
        assert ":::note" in parser.tree_render(result.tree)

    def test_diagnostic_line(self):
        """ParseError carries the fence's 1-based line"""
        result = Parser().parse("Text\n\n:::note junk\n")
        errors = [d for d in result.diagnostics if d.kind is DiagnosticKind.PARSE_ERROR]
        assert len(errors) == 1
        assert errors[0].line == 3

    def test_directives_disabled(self):
        """With directives off, fences are plain paragraphs"""
        parser = Parser(ParserSettings(enableDirectives=False))
        result = parser.parse(":::note\nx\n:::")
        assert directives_find(result.tree) == []
        assert result.diagnostics == []


class TestPlainMarkdown:
    """Test that Markdown without directives renders like CommonMark"""

    def test_paragraph_matches_commonmark(self):
        """Plain paragraphs are unchanged"""
        source = "Hello *world*\n\nSecond paragraph"
        parser = Parser(ParserSettings(enableHeadingAnchors=False))
        html = parser.tree_render(parser.parse(source).tree)
        assert html == MarkdownIt("commonmark").render(source)

    def test_raw_html_is_escaped(self):
        """Raw HTML in the source is never passed through"""
        parser = Parser()
        html = parser.tree_render(parser.parse("<script>alert(1)</script>").tree)
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
