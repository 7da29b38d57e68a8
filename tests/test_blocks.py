"""
Tests for block markup parsing, serialization and content rewriters.
"""

import json

import pytest

from driftfix.steps.blocks import (
    Block,
    class_rename_rewriter,
    literal_replace,
    literal_rewriter,
    parse_blocks,
    rename_classes,
    rename_classes_in_html,
    replace_void_blocks,
    serialize_attrs,
    serialize_blocks,
    void_block_rewriter,
    walk_blocks,
)

CONTENT = """<!-- wp:paragraph -->
<p>Hello</p>
<!-- /wp:paragraph -->

<!-- wp:group {"className":"outer  gatherpress--is-not-visible","layout":{"type":"constrained"}} -->
<div class="wp-block-group outer gatherpress--is-not-visible"><!-- wp:gatherpress/rsvp /-->

<!-- wp:gatherpress/add-to-calendar {"align":"wide"} /--></div>
<!-- /wp:group -->"""


@pytest.mark.unit
class TestParse:
    def test_roundtrip_is_lossless(self):
        assert serialize_blocks(parse_blocks(CONTENT)) == CONTENT

    def test_structure(self):
        nodes = parse_blocks(CONTENT)
        blocks = [n for n in nodes if isinstance(n, Block)]
        assert [b.name for b in blocks] == ["core/paragraph", "core/group"]
        group = blocks[1]
        assert group.attrs["layout"] == {"type": "constrained"}
        inner = [b.name for b in walk_blocks(group.inner)]
        assert inner == ["gatherpress/rsvp", "gatherpress/add-to-calendar"]

    def test_void_block(self):
        (block,) = parse_blocks("<!-- wp:gatherpress/rsvp /-->")
        assert block.void
        assert block.attrs == {}

    def test_freeform_html_only(self):
        assert parse_blocks("<p>classic</p>") == ["<p>classic</p>"]

    def test_unbalanced_closer_kept_as_text(self):
        content = "<p>a</p><!-- /wp:paragraph -->"
        nodes = parse_blocks(content)
        assert all(isinstance(n, str) for n in nodes)
        assert serialize_blocks(nodes) == content

    def test_unclosed_block(self):
        content = "<!-- wp:group --><p>x</p>"
        (block,) = parse_blocks(content)
        assert block.name == "core/group"
        assert block.inner == ["<p>x</p>"]

    def test_invalid_attrs_preserved(self):
        content = "<!-- wp:paragraph {not json} /-->"
        (block,) = parse_blocks(content)
        assert not block.attrs_valid
        assert serialize_blocks([block]) == content


@pytest.mark.unit
class TestSerializeAttrs:
    def test_compact(self):
        assert serialize_attrs({"a": 1, "b": "x"}) == '{"a":1,"b":"x"}'

    def test_escapes_markup(self):
        encoded = serialize_attrs({"html": "<b>--&</b>"})
        assert "<" not in encoded
        assert "--" not in encoded
        assert "&" not in encoded
        assert json.loads(encoded) == {"html": "<b>--&</b>"}

    def test_escapes_quotes(self):
        encoded = serialize_attrs({"q": 'say "hi"'})
        assert '\\"' not in encoded
        assert json.loads(encoded) == {"q": 'say "hi"'}

    def test_dirty_block_rerendered(self):
        block = Block("core/group", {"className": "x"}, inner=["<div></div>"], closer="<!-- /wp:group -->", dirty=True)
        assert serialize_blocks([block]) == '<!-- wp:group {"className":"x"} --><div></div><!-- /wp:group -->'


@pytest.mark.unit
class TestRenameClasses:
    CLASS_MAP = {
        "gatherpress--is-not-visible": "gatherpress--is-hidden",
        "gatherpress--open-modal": "gatherpress-modal--trigger-open",
    }

    def test_renames_attr_and_html(self):
        nodes = parse_blocks(CONTENT)
        assert rename_classes(nodes, self.CLASS_MAP) == 2
        out = serialize_blocks(nodes)
        assert "gatherpress--is-not-visible" not in out
        group = next(b for b in walk_blocks(parse_blocks(out)) if b.name == "core/group")
        assert group.attrs["className"] == "outer  gatherpress--is-hidden"
        assert 'class="wp-block-group outer gatherpress--is-hidden"' in out

    def test_whole_tokens_only(self):
        html = '<div class="gatherpress--open-modal-extra x-gatherpress--open-modal"></div>'
        assert rename_classes_in_html(html, self.CLASS_MAP) == (html, 0)

    def test_data_class_attribute_untouched(self):
        html = '<div data-class="gatherpress--open-modal" class="gatherpress--open-modal"></div>'
        out, count = rename_classes_in_html(html, self.CLASS_MAP)
        assert count == 1
        assert out == '<div data-class="gatherpress--open-modal" class="gatherpress-modal--trigger-open"></div>'

    def test_text_outside_class_attribute_untouched(self):
        html = "<p>gatherpress--open-modal</p><a class='gatherpress--open-modal'>x</a>"
        out, count = rename_classes_in_html(html, self.CLASS_MAP)
        assert count == 1
        assert out == "<p>gatherpress--open-modal</p><a class='gatherpress-modal--trigger-open'>x</a>"

    def test_rewriter_is_idempotent(self):
        rewrite = class_rename_rewriter(self.CLASS_MAP)
        once, changes = rewrite(CONTENT)
        assert changes == 2
        assert rewrite(once) == (once, 0)

    def test_untouched_content_returned_as_is(self):
        content = "<!-- wp:paragraph -->\n<p class='plain'>x</p>\n<!-- /wp:paragraph -->"
        assert class_rename_rewriter(self.CLASS_MAP)(content) == (content, 0)


@pytest.mark.unit
class TestReplaceVoidBlocks:
    def test_replaces_nested_attributeless_void(self):
        nodes = parse_blocks(CONTENT)
        assert replace_void_blocks(nodes, "gatherpress/rsvp", "<!-- wp:gatherpress/rsvp -->X<!-- /wp:gatherpress/rsvp -->") == 1
        out = serialize_blocks(nodes)
        assert "<!-- wp:gatherpress/rsvp /-->" not in out
        assert "<!-- wp:gatherpress/rsvp -->X<!-- /wp:gatherpress/rsvp -->" in out

    def test_void_with_attributes_kept(self):
        nodes = parse_blocks(CONTENT)
        assert replace_void_blocks(nodes, "gatherpress/add-to-calendar", "Y") == 0

    def test_rewriter_is_idempotent(self):
        rewrite = void_block_rewriter("gatherpress/rsvp", "<!-- wp:gatherpress/rsvp -->\n<div></div>\n<!-- /wp:gatherpress/rsvp -->")
        once, changes = rewrite(CONTENT)
        assert changes == 1
        assert rewrite(once) == (once, 0)


@pytest.mark.unit
class TestLiteralReplace:
    def test_counts_occurrences(self):
        assert literal_replace("a-b-a", {"a": "c"}) == ("c-b-c", 2)

    def test_no_match(self):
        assert literal_replace("abc", {"x": "y"}) == ("abc", 0)

    def test_rewriter(self):
        assert literal_rewriter({"old": "new"})("old old") == ("new new", 2)
