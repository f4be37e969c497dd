"""内容提取器测试"""

import pytest

from article_forge.core.constants import ExtractionMethod
from article_forge.services.article_generation.extractor import (
    ParseKind,
    estimate_section_count,
    parse,
)


class TestParse:
    def test_sentinel_wins_over_delimited_content(self):
        raw = "<<<START>>>\nFinal words.\n<<<END>>>\n<<<ARTICLE_COMPLETE>>>"
        assert parse(raw).kind is ParseKind.COMPLETE

    def test_sentinel_anywhere_in_text(self):
        assert parse("All done here <<<ARTICLE_COMPLETE>>> thanks").kind is ParseKind.COMPLETE
        assert parse("<<<ARTICLE_COMPLETE>>><<<START>>>x<<<END>>>").kind is ParseKind.COMPLETE

    def test_delimited_content_is_trimmed_without_markers(self):
        result = parse("<<<START>>>hello<<<END>>>")
        assert result.kind is ParseKind.CONTENT
        assert result.text == "hello"
        assert result.method is ExtractionMethod.DELIMITED

    def test_delimited_content_ignores_surrounding_chatter(self):
        raw = "Sure! Here it is:\n<<<START>>>\n## Intro\n\nBody text.\n<<<END>>>\nLet me know."
        result = parse(raw)
        assert result.text == "## Intro\n\nBody text."
        assert "<<<" not in result.text

    def test_plain_prose_falls_back_to_raw(self):
        result = parse("just plain prose, no markers")
        assert result.kind is ParseKind.CONTENT
        assert result.text == "just plain prose, no markers"
        assert result.method is ExtractionMethod.FALLBACK_RAW

    def test_plain_prose_is_stripped(self):
        assert parse("\n  spaced out  \n").text == "spaced out"

    @pytest.mark.parametrize(
        "raw",
        [
            "text with a lone <<<START>>> but no end",
            "only an end <<<END>>> marker",
            "<<<END>>> before <<<START>>>",
            "stray >>> fragment",
        ],
    )
    def test_unmatched_delimiters_are_unparseable(self, raw):
        assert parse(raw).kind is ParseKind.UNPARSEABLE

    @pytest.mark.parametrize("raw", ["", "   \n\t", None])
    def test_empty_response_is_unparseable(self, raw):
        assert parse(raw).kind is ParseKind.UNPARSEABLE


class TestEstimateSectionCount:
    def test_counts_numbered_lines(self):
        plan = "Plan:\n1. Intro\n2. Background\n3) Analysis\n4. Conclusion\nTarget: 2000 words"
        assert estimate_section_count(plan) == 4

    def test_falls_back_to_headings(self):
        plan = "# Title\n## Why it matters\n## How it works\nsome prose"
        assert estimate_section_count(plan) == 3

    def test_numbered_lines_take_priority_over_headings(self):
        plan = "## Outline\n1. One\n2. Two"
        assert estimate_section_count(plan) == 2

    def test_no_structure(self):
        assert estimate_section_count("I will write a great article.") == 0
        assert estimate_section_count("") == 0
