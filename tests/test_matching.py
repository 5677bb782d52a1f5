"""Tests for pattern matching, the tree walk and match collection."""
import re

import pytest
from bs4 import BeautifulSoup

from microcrawler.matching import (
    NO_MATCH,
    MatchCollector,
    compile_pattern,
    find_all,
    match_element,
    render_text,
    scan_document,
    walk,
)

EMAIL = compile_pattern(preset="email")


def parse(html):
    return BeautifulSoup(html, "html.parser")


class TestCompilePattern:

    def test_email_preset_matches_address(self):
        assert EMAIL.search("E-Mail: regine.zimmermann@elisabethgruppe.de")
        assert find_all(EMAIL, "E-Mail: regine.zimmermann@elisabethgruppe.de") == {
            "regine.zimmermann@elisabethgruppe.de"
        }

    def test_email_preset_ignores_case(self):
        assert find_all(EMAIL, "Mail Info@Example.COM now") == {"Info@Example.COM"}

    def test_preset_name_is_case_insensitive(self):
        assert compile_pattern(preset="EMAIL").pattern == EMAIL.pattern

    def test_raw_source(self):
        assert compile_pattern(source=r"\d{3}").findall("a 123 b") == ["123"]

    def test_requires_exactly_one_input(self):
        with pytest.raises(ValueError):
            compile_pattern()
        with pytest.raises(ValueError):
            compile_pattern(source="x", preset="email")

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown pattern preset"):
            compile_pattern(preset="phone")

    def test_invalid_source(self):
        with pytest.raises(re.error):
            compile_pattern(source="(unclosed")


class TestFindAll:

    def test_distinct_values(self):
        assert find_all(re.compile(r"\d+"), "a 1 b 22 c 1") == {"1", "22"}

    def test_no_match_and_empty_text(self):
        pattern = re.compile(r"\d+")
        assert find_all(pattern, "no digits") == set()
        assert find_all(pattern, "") == set()

    def test_empty_matches_are_dropped(self):
        assert find_all(re.compile(r"x*"), "abc") == set()


class TestWalk:

    def test_pre_order_with_ancestors(self):
        doc = parse("<div><p>a</p><span>b<em>c</em></span></div><ul><li>d</li></ul>")

        visits = list(walk(doc))

        assert [v.element.name for v in visits] == ["div", "p", "span", "em", "ul", "li"]
        ancestors = {v.element.name: [a.name for a in v.ancestors] for v in visits}
        assert ancestors["div"] == []
        assert ancestors["em"] == ["span", "div"]
        assert ancestors["li"] == ["ul"]

    def test_rendered_text_includes_descendants(self):
        doc = parse("<div>Hello <b>big</b> world</div>")

        (div, b) = list(walk(doc))

        assert div.text == "Hello big world"
        assert b.text == "big"

    def test_inline_markup_does_not_split_words(self):
        doc = parse("<p>mail: info@example.<b>com</b> or <i>sales</i>@example.com</p>")

        assert render_text(doc.p) == "mail: info@example.com or sales@example.com"

    def test_block_boundaries_separate_words(self):
        doc = parse("<div><p>one</p><p>two</p>three<br/>four</div>")

        assert render_text(doc.div) == "one two three four"

    def test_script_style_and_comments_are_not_text(self):
        doc = parse("<div>a<script>var x = 1;</script><style>p {}</style><!-- note -->b</div>")

        assert render_text(doc.div) == "ab"

    def test_lxml_document_starts_at_html_element(self):
        doc = BeautifulSoup("<html><body><p>x</p></body></html>", "lxml")

        first = next(walk(doc))

        assert first.element.name == "html"
        assert first.ancestors == ()

    def test_match_element_outcome(self):
        visit = next(walk(parse("<p>write to x@y.org</p>")))

        assert match_element(EMAIL, visit).values == frozenset({"x@y.org"})
        assert match_element(re.compile("zzz"), visit) is NO_MATCH


class TestPendingMatches:

    @staticmethod
    def owned(pending):
        return {entry.element.name: entry.values for entry in pending}

    def test_descendant_supersedes_ancestor(self):
        doc = parse("<div><section><p>mail b@x.io</p></section></div>")

        pending = scan_document(doc, EMAIL)

        assert self.owned(pending) == {"p": {"b@x.io"}}

    def test_ancestor_keeps_values_not_found_below(self):
        doc = parse("<div>Team: a@x.io <p>Lead: b@x.io</p></div>")

        pending = scan_document(doc, EMAIL)

        assert self.owned(pending) == {"div": {"a@x.io"}, "p": {"b@x.io"}}

    def test_value_split_across_inline_tags(self):
        doc = parse("<p>mail: info@example.<b>com</b></p>")

        pending = scan_document(doc, EMAIL)

        assert self.owned(pending) == {"p": {"info@example.com"}}

    def test_siblings_do_not_evict_each_other(self):
        doc = parse("<div><p>a@x.io</p><p>a@x.io</p></div>")

        pending = scan_document(doc, EMAIL)

        assert len(pending) == 2

    def test_non_matching_document(self):
        assert len(scan_document(parse("<div><p>nothing</p></div>"), EMAIL)) == 0


class TestMatchCollector:

    def test_context_is_element_then_nearest_ancestors(self):
        doc = parse("<div>Team: a@x.io <p>Lead: b@x.io</p></div>")
        collector = MatchCollector()

        collector.fold(scan_document(doc, EMAIL))

        records = {r.value: r.contexts for r in collector.records()}
        assert records == {
            "a@x.io": ["Team: a@x.io Lead: b@x.io"],
            "b@x.io": ["Lead: b@x.io", "Team: a@x.io Lead: b@x.io"],
        }

    def test_context_bound_for_deep_element(self):
        doc = parse("<html><body><div><section><p>a@x.io</p></section></div></body></html>")
        collector = MatchCollector()

        collector.fold(scan_document(doc, EMAIL))

        (record,) = collector.records()
        assert len(record.contexts) == 4
        assert record.contexts[0] == "a@x.io"

    def test_root_element_has_single_context(self):
        collector = MatchCollector()

        collector.fold(scan_document(parse("<div>mail a@x.io</div>"), EMAIL))

        (record,) = collector.records()
        assert record.contexts == ["mail a@x.io"]

    def test_records_unique_by_value_across_documents(self):
        collector = MatchCollector()

        collector.fold(scan_document(parse("<p>first a@x.io</p>"), EMAIL))
        collector.fold(scan_document(parse("<p>second a@x.io</p>"), EMAIL))

        assert len(collector) == 1
        (record,) = collector.records()
        assert record.contexts == ["first a@x.io", "second a@x.io"]
