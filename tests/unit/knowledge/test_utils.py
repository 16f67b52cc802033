"""
Unit tests for UTF-8 safe truncation and content hashing.
"""

import pytest

from knowledge.core.utils import compute_content_hash, truncate_to_max_bytes


class TestTruncateToMaxBytes:
    """Tests for truncate_to_max_bytes."""

    def test_short_text_unchanged(self):
        """Test text within the limit is returned as is."""
        assert truncate_to_max_bytes("hello", 5) == "hello"
        assert truncate_to_max_bytes("", 0) == ""

    def test_ascii_cut_exactly(self):
        """Test ASCII text is cut at the byte limit."""
        assert truncate_to_max_bytes("abcdef", 4) == "abcd"

    def test_never_splits_multibyte_character(self):
        """Test a cut inside a code point backs up to its start."""
        # "é" is two bytes; limit 2 would split it
        assert truncate_to_max_bytes("héllo", 2) == "h"
        assert truncate_to_max_bytes("héllo", 3) == "hé"

    def test_four_byte_characters(self):
        """Test emoji (4-byte) boundaries."""
        text = "a\U0001F600b"
        for limit in range(1, 5):
            assert truncate_to_max_bytes(text, limit) == "a"
        assert truncate_to_max_bytes(text, 5) == "a\U0001F600"

    @pytest.mark.parametrize("limit", [0, 1, 7, 13, 100, 999])
    def test_result_is_valid_prefix_within_limit(self, limit):
        """Test the result always fits and is a prefix of the input."""
        text = "Grüße, 世界! " * 50
        result = truncate_to_max_bytes(text, limit)
        assert len(result.encode("utf-8")) <= limit
        assert text.startswith(result)

    def test_truncation_logs_warning(self, caplog):
        """Test truncation emits a warning."""
        with caplog.at_level("WARNING", logger="knowledge.core.utils"):
            truncate_to_max_bytes("x" * 20, 10)
        assert "Truncating embedding input from 20 to 10 bytes" in caplog.text

    def test_negative_limit_rejected(self):
        """Test a negative limit is an error."""
        with pytest.raises(ValueError):
            truncate_to_max_bytes("abc", -1)


class TestComputeContentHash:
    """Tests for compute_content_hash."""

    def test_hash_is_sha256_hex(self):
        """Test hash length and determinism."""
        digest = compute_content_hash("hello")
        assert len(digest) == 64
        assert digest == compute_content_hash("hello")
        assert digest != compute_content_hash("hello!")
