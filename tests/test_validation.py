"""Tests for pagesave.core.validation module."""

from __future__ import annotations

import pytest

from pagesave.core.exceptions import InvalidURLError, ValidationError
from pagesave.core.validation import (
    encode_sharp_character,
    sanitize_filename,
    validate_conflict_action,
    validate_server_url,
)


class TestValidateServerUrl:
    def test_strips_trailing_slash(self):
        assert validate_server_url("https://dav.example.org/pages/") == (
            "https://dav.example.org/pages"
        )

    @pytest.mark.parametrize("url", ["", "ftp://example.org", "https://", "example.org"])
    def test_rejects_invalid(self, url):
        with pytest.raises(InvalidURLError):
            validate_server_url(url)


class TestValidateConflictAction:
    def test_normalizes_case(self):
        assert validate_conflict_action(" Overwrite ") == "overwrite"

    def test_rejects_unknown(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_conflict_action("rename")
        assert exc_info.value.field == "filenameConflictAction"


class TestSanitizeFilename:
    def test_replaces_invalid_characters(self):
        assert sanitize_filename('a<b>:c?.html') == "a_b__c_.html"

    def test_custom_replacement(self):
        assert sanitize_filename("what?.html", "-") == "what-.html"

    def test_keeps_sub_folders(self):
        assert sanitize_filename("news\\2026/page.html") == "news/2026/page.html"

    def test_drops_parent_segments(self):
        assert sanitize_filename("../../etc/page.html") == "etc/page.html"

    def test_empty_result(self):
        with pytest.raises(ValidationError):
            sanitize_filename("/../.")


class TestEncodeSharpCharacter:
    def test_encodes_every_sharp(self):
        assert encode_sharp_character("a#b#c.html") == "a%23b%23c.html"

    def test_no_sharp(self):
        assert encode_sharp_character("page.html") == "page.html"
