"""Tests for content type resolution."""

from fetchvault.transfer.pipeline.content_types import (
    EXTENSION_CONTENT_TYPES,
    media_type_from_header,
    resolve_content_type,
)


def test_table_covers_common_extensions():
    assert len(EXTENSION_CONTENT_TYPES) >= 25
    assert EXTENSION_CONTENT_TYPES["zip"] == "application/zip"
    assert EXTENSION_CONTENT_TYPES["pdf"] == "application/pdf"
    assert EXTENSION_CONTENT_TYPES["mp4"] == "video/mp4"


def test_header_parameters_stripped():
    assert media_type_from_header("text/csv; charset=utf-8") == "text/csv"
    assert media_type_from_header("Application/JSON") == "application/json"
    assert media_type_from_header("") is None
    assert media_type_from_header(None) is None


def test_explicit_header_wins():
    assert resolve_content_type("image/png", "archive.zip") == "image/png"


def test_generic_header_falls_back_to_extension():
    assert resolve_content_type("application/octet-stream", "archive.zip") == "application/zip"
    assert resolve_content_type(None, "movie.MKV") == "video/x-matroska"


def test_unknown_extension_is_generic_binary():
    assert resolve_content_type(None, "data.unknownext") == "application/octet-stream"
    assert resolve_content_type(None, "file.bin") == "application/octet-stream"
