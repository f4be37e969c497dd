"""防护规则测试"""

import pytest

from article_forge.exceptions import InvalidInputError
from article_forge.services.article_generation.safety import (
    IterationGuard,
    sanitize_fields,
    validate_outline,
)
from article_forge.utils.text_utils import sanitize_for_storage


class TestSanitize:
    def test_strips_unsafe_control_bytes(self):
        raw = "a\x00b\x01c\x08d\x0be\x0cf\x0eg\x1fh"
        assert sanitize_for_storage(raw) == "abcdefgh"

    def test_keeps_tab_newline_carriage_return(self):
        assert sanitize_for_storage("a\tb\nc\rd") == "a\tb\nc\rd"

    def test_sanitizes_nested_metadata_strings(self):
        cleaned = sanitize_fields({
            "error_message": "bad\x00byte",
            "metadata": {"phase": "writing\x07", "notes": ["x\x02", 3], "count": 2},
            "completed_sections": 4,
        })
        assert cleaned == {
            "error_message": "badbyte",
            "metadata": {"phase": "writing", "notes": ["x", 3], "count": 2},
            "completed_sections": 4,
        }


class TestValidateOutline:
    def test_returns_cleaned_outline(self):
        assert validate_outline("Outline\x00 text") == "Outline text"

    @pytest.mark.parametrize("outline", ["", "   ", "\x00\x01", None])
    def test_rejects_empty_outline(self, outline):
        with pytest.raises(InvalidInputError):
            validate_outline(outline)


class TestIterationGuard:
    def test_exhausts_after_max_iterations(self):
        guard = IterationGuard(3)
        for _ in range(3):
            assert not guard.exhausted
            guard.record()
        assert guard.exhausted
        assert guard.iterations == 3

    def test_rejects_non_positive_cap(self):
        with pytest.raises(ValueError):
            IterationGuard(0)
