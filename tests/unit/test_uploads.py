"""
Unit tests for the upload staging store.
"""

import re
from pathlib import Path

import pytest

from apphost.hosting.uploads import (
    UploadStagingStore,
    file_extension,
    sanitize_file_name,
)
from apphost.http.errors import (
    SecurityViolation,
    UnsupportedImageType,
    UploadNotFound,
    UploadTooLarge,
    ValidationError,
)


@pytest.fixture
def store(content_root: Path) -> UploadStagingStore:
    return UploadStagingStore(content_root)


def staged_files(store: UploadStagingStore) -> list:
    if not store.uploads_dir.exists():
        return []
    return sorted(path.name for path in store.uploads_dir.iterdir())


class TestSanitize:
    """Tests for sanitize_file_name()."""

    @pytest.mark.parametrize("raw,expected", [
        ("icon.png", "icon.png"),
        ("C:\\Users\\me\\icon.PNG", "icon.PNG"),
        ("../../etc/passwd", "passwd"),
        ("my:logo?.png", "my_logo_.png"),
        ("  spaced.gif  ", "spaced.gif"),
        ("", "image"),
        ("   ", "image"),
        (None, "image"),
        ("folder/", "image"),
    ])
    def test_cases(self, raw, expected):
        assert sanitize_file_name(raw) == expected

    @pytest.mark.parametrize("name,expected", [
        ("icon.PNG", ".png"),
        (".svg", ".svg"),
        ("archive.tar.gz", ".gz"),
        ("noext", ""),
        ("trailing.", ""),
    ])
    def test_file_extension(self, name, expected):
        assert file_extension(name) == expected


class TestStage:
    """Tests for UploadStagingStore.stage()."""

    def test_stage_writes_file(self, store, png_bytes):
        upload = store.stage("icon.PNG", png_bytes, owner_app_id="demo")

        assert re.fullmatch(r"[0-9a-f]{64}", upload.identifier)
        assert upload.stored_file_name == f"{upload.identifier}.png"
        assert upload.original_file_name == "icon.PNG"
        assert upload.size_bytes == len(png_bytes)
        assert (store.uploads_dir / upload.stored_file_name).read_bytes() == png_bytes

    def test_creates_uploads_directory(self, store, png_bytes):
        assert not store.uploads_dir.exists()
        store.stage("a.gif", png_bytes)
        assert store.uploads_dir.is_dir()

    def test_identifiers_differ_for_identical_input(self, store, png_bytes):
        first = store.stage("icon.png", png_bytes, "demo")
        second = store.stage("icon.png", png_bytes, "demo")
        assert first.identifier != second.identifier

    def test_too_large(self, content_root, png_bytes):
        store = UploadStagingStore(content_root, max_upload_bytes=10)

        with pytest.raises(UploadTooLarge) as exc_info:
            store.stage("icon.png", png_bytes)

        assert exc_info.value.status == 400
        assert exc_info.value.prefer_json
        assert staged_files(store) == []

    def test_exactly_at_limit(self, content_root, png_bytes):
        store = UploadStagingStore(content_root, max_upload_bytes=len(png_bytes))
        assert store.stage("icon.png", png_bytes).size_bytes == len(png_bytes)

    @pytest.mark.parametrize("name", ["virus.exe", "page.html", "noext", "icon.png.exe"])
    def test_disallowed_extension_leaves_nothing(self, store, png_bytes, name):
        with pytest.raises(UnsupportedImageType):
            store.stage(name, png_bytes)
        assert staged_files(store) == []


class TestPromote:
    """Tests for UploadStagingStore.promote()."""

    def test_promote_consumes_staged_file(self, store, content_root, png_bytes):
        upload = store.stage("icon.png", png_bytes, "demo")

        url = store.promote("demo", upload.identifier, "logo.png")

        assert url == "/demo/logo.png"
        assert (content_root / "demo" / "logo.png").read_bytes() == png_bytes
        assert staged_files(store) == []

    def test_second_promote_fails(self, store, png_bytes):
        upload = store.stage("icon.png", png_bytes, "demo")
        store.promote("demo", upload.identifier, "logo.png")

        with pytest.raises(UploadNotFound) as exc_info:
            store.promote("demo", upload.identifier, "logo.png")
        assert exc_info.value.status == 404

    def test_default_name_uses_staged_extension(self, store, content_root, png_bytes):
        upload = store.stage("photo.JPEG", png_bytes, "demo")

        assert store.promote("demo", upload.identifier) == "/demo/image.jpeg"
        assert (content_root / "demo" / "image.jpeg").exists()

    def test_overwrites_existing_file(self, store, content_root, png_bytes):
        (content_root / "demo" / "logo.png").write_bytes(b"old")
        upload = store.stage("icon.png", png_bytes, "demo")

        store.promote("demo", upload.identifier, "logo.png")

        assert (content_root / "demo" / "logo.png").read_bytes() == png_bytes

    def test_desired_name_is_sanitized_and_encoded(self, store, content_root, png_bytes):
        upload = store.stage("icon.png", png_bytes)

        url = store.promote("my app", upload.identifier, "../my logo.png")

        assert url == "/my%20app/my%20logo.png"
        assert (content_root / "my app" / "my logo.png").exists()

    def test_bad_desired_extension_keeps_staged_file(self, store, png_bytes):
        upload = store.stage("icon.png", png_bytes)

        with pytest.raises(UnsupportedImageType):
            store.promote("demo", upload.identifier, "logo.exe")

        assert staged_files(store) == [upload.stored_file_name]

    def test_unknown_identifier(self, store):
        with pytest.raises(UploadNotFound):
            store.promote("demo", "0" * 64, "logo.png")

    def test_app_dir_must_be_inside_root(self, store, png_bytes):
        upload = store.stage("icon.png", png_bytes)

        with pytest.raises(SecurityViolation) as exc_info:
            store.promote("..", upload.identifier, "logo.png")
        assert exc_info.value.status == 403

    def test_destination_is_a_directory(self, store, content_root, png_bytes):
        (content_root / "demo" / "logo.png").mkdir()
        upload = store.stage("icon.png", png_bytes, "demo")

        with pytest.raises(ValidationError) as exc_info:
            store.promote("demo", upload.identifier, "logo.png")

        assert exc_info.value.status == 400
        assert "logo.png" in exc_info.value.message
        assert staged_files(store) == [upload.stored_file_name]


class TestDeleteAndPurge:
    """Tests for delete() and purge_all()."""

    def test_delete_twice(self, store, png_bytes):
        upload = store.stage("icon.png", png_bytes)

        assert store.delete(upload.identifier) is True
        assert store.delete(upload.identifier) is False
        assert staged_files(store) == []

    @pytest.mark.parametrize("identifier", ["", "   ", "unknown"])
    def test_delete_unknown(self, store, png_bytes, identifier):
        store.stage("icon.png", png_bytes)
        assert store.delete(identifier) is False
        assert len(staged_files(store)) == 1

    def test_delete_without_uploads_directory(self, store):
        assert store.delete("abc") is False

    def test_delete_reports_os_errors_as_false(self, store, png_bytes, monkeypatch):
        upload = store.stage("icon.png", png_bytes)

        def broken_unlink(self, missing_ok=False):
            raise PermissionError("locked")

        monkeypatch.setattr(Path, "unlink", broken_unlink)
        assert store.delete(upload.identifier) is False

    def test_purge_all(self, store, png_bytes):
        store.stage("icon.png", png_bytes)
        (store.uploads_dir / "nested").mkdir()
        (store.uploads_dir / "nested" / "orphan.png").write_bytes(png_bytes)

        store.purge_all()

        assert store.uploads_dir.is_dir()
        assert staged_files(store) == []

    def test_purge_all_creates_directory(self, store):
        store.purge_all()
        assert store.uploads_dir.is_dir()
