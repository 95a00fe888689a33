"""Tests for image_gateway.storage.naming module.

Covers:
    - extension_for_mime: png, webp, jpeg fallback
    - generate_blob_name: format, overrides, uniqueness
"""

import re

import pytest

from image_gateway.storage.naming import extension_for_mime, generate_blob_name


class TestExtensionForMime:
    """Tests for extension_for_mime()."""

    @pytest.mark.parametrize(
        "mime_type,expected",
        [
            ("image/png", "png"),
            ("IMAGE/PNG", "png"),
            ("image/webp", "webp"),
            ("image/jpeg", "jpg"),
            ("image/gif", "jpg"),
            ("", "jpg"),
        ],
    )
    def test_extensions(self, mime_type, expected):
        assert extension_for_mime(mime_type) == expected


class TestGenerateBlobName:
    """Tests for generate_blob_name()."""

    def test_deterministic_with_overrides(self):
        name = generate_blob_name("fal-ref", "image/png", timestamp_ms=1760870400000, uuid_str="a3f2b1")
        assert name == "fal-ref-1760870400000-a3f2b1.png"

    def test_uuid_truncated(self):
        name = generate_blob_name("replicate-edit", "image/jpeg", timestamp_ms=1, uuid_str="abcdef123456")
        assert name == "replicate-edit-1-abcdef.jpg"

    def test_default_format(self):
        name = generate_blob_name("generated", "image/webp")
        assert re.fullmatch(r"generated-\d{13}-[0-9a-f]{6}\.webp", name)

    def test_names_are_unique(self):
        names = {generate_blob_name("fal-ref", "image/png") for _ in range(50)}
        assert len(names) == 50
