"""
Tests for input validation: transport hygiene, paths and content.
"""

import pytest
from starlette.datastructures import Headers
from starlette.requests import Request

from obsidian_mcp.models import RequestContext
from obsidian_mcp.validation import (
    BodyTooLargeError,
    PathValidationError,
    check_content_type,
    check_declared_size,
    normalize_note_path,
    read_body,
    sanitize_content,
    validate_arguments,
    validate_path,
)


def make_ctx(method="POST", **headers) -> RequestContext:
    raw = {key.replace("_", "-"): value for key, value in headers.items()}
    return RequestContext(method=method, path="/", headers=Headers(raw))


def make_request(chunks: list[bytes]) -> Request:
    messages = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]

    async def receive():
        return messages.pop(0)

    scope = {"type": "http", "method": "POST", "path": "/", "headers": [], "query_string": b""}
    return Request(scope, receive)


# ============== Tests for validate_path() ==============

class TestValidatePath:
    """Tests for the path deny-list."""

    @pytest.mark.parametrize("path", [
        "../secret.md",
        "notes/../../etc/passwd",
        "x/../y.md",
        "notes/..",
    ])
    def test_traversal_rejected(self, path):
        with pytest.raises(PathValidationError, match="traversal"):
            validate_path(path)

    def test_absolute_rejected(self):
        with pytest.raises(PathValidationError, match="absolute"):
            validate_path("/etc/passwd.md")

    def test_null_byte_rejected(self):
        with pytest.raises(PathValidationError, match="null byte"):
            validate_path("notes/a\x00.md")

    @pytest.mark.parametrize("char", ["~", "$", "`", "|", ";"])
    def test_dangerous_characters_rejected(self, char):
        with pytest.raises(PathValidationError, match="dangerous character"):
            validate_path(f"notes/a{char}b.md")

    @pytest.mark.parametrize("path", ["notes/image.png", "script.sh", "archive.tar.gz"])
    def test_other_extensions_rejected(self, path):
        with pytest.raises(PathValidationError, match=r"only \.md"):
            validate_path(path)

    @pytest.mark.parametrize("path", [
        "note.md",
        "Daily/2024-01-01.md",
        "Projects/",
        "Projects",
        "Inbox/idea",
        "Tom & Jerry.md",
        "",
    ])
    def test_clean_paths_accepted(self, path):
        assert validate_path(path) == path

    def test_validate_arguments_checks_path_and_folder(self):
        validate_arguments({"path": "ok.md", "folder": "Inbox", "query": "../anything"})

        with pytest.raises(PathValidationError):
            validate_arguments({"folder": "../outside"})

    def test_validate_arguments_ignores_non_string_values(self):
        validate_arguments({"path": 42, "folder": None})


class TestNormalizeNotePath:

    def test_extensionless_gets_md(self):
        assert normalize_note_path("Inbox/idea") == "Inbox/idea.md"

    def test_md_unchanged(self):
        assert normalize_note_path("Inbox/idea.md") == "Inbox/idea.md"

    def test_empty_and_folder_unchanged(self):
        assert normalize_note_path("") == ""
        assert normalize_note_path("Inbox/") == "Inbox/"


class TestSanitizeContent:

    def test_strips_null_bytes(self):
        assert sanitize_content("a\x00b\x00") == "ab"

    def test_markdown_untouched(self):
        content = "# Title\n\n<div>html</div> `code` [[link]] & more"

        assert sanitize_content(content) == content


# ============== Tests for transport hygiene ==============

class TestContentType:

    def test_json_accepted(self):
        assert check_content_type(make_ctx(content_type="application/json")) is None

    def test_json_with_charset_accepted(self):
        assert check_content_type(make_ctx(content_type="application/json; charset=utf-8")) is None

    def test_other_type_rejected(self):
        result = check_content_type(make_ctx(content_type="text/plain"))

        assert result.status == 400
        assert result.reason == "invalid_content_type"

    def test_missing_rejected(self):
        assert check_content_type(make_ctx()).status == 400

    def test_get_not_checked(self):
        assert check_content_type(make_ctx(method="GET")) is None


class TestBodySize:

    def test_declared_size_over_limit(self):
        result = check_declared_size(make_ctx(content_length="2048"), limit=1024)

        assert result.status == 413
        assert result.reason == "body_too_large"

    def test_declared_size_within_limit(self):
        assert check_declared_size(make_ctx(content_length="10"), limit=1024) is None

    def test_invalid_content_length(self):
        assert check_declared_size(make_ctx(content_length="abc"), limit=1024).status == 400

    async def test_read_body_within_limit(self):
        body = await read_body(make_request([b'{"a":', b" 1}"]), limit=100)

        assert body == b'{"a": 1}'

    async def test_read_body_stops_once_over_limit(self):
        request = make_request([b"x" * 60, b"x" * 60, b"x" * 60])

        with pytest.raises(BodyTooLargeError):
            await read_body(request, limit=100)
