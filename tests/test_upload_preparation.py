"""
Tests for image selection checks before upload.
"""

import pytest

from app.services.upload_preparation import ImageFile, prepare_upload, validate_image_file
from app.utils.exceptions import FileSizeExceededError, FileUploadError, UnsupportedFileTypeError


class TestValidateImageFile:

    def test_accepts_image(self, make_file):
        validate_image_file(make_file())

    def test_rejects_non_image_type(self, make_file):
        with pytest.raises(UnsupportedFileTypeError):
            validate_image_file(make_file("notes.txt", "text/plain", b"hello"))

    def test_rejects_missing_type(self):
        with pytest.raises(UnsupportedFileTypeError):
            validate_image_file(ImageFile("photo.jpg", None, b"data"))

    def test_rejects_empty_file(self, make_file):
        with pytest.raises(FileUploadError):
            validate_image_file(make_file(data=b""))

    def test_rejects_oversized_file(self, make_file):
        with pytest.raises(FileSizeExceededError) as exc_info:
            validate_image_file(make_file(data=b"x" * 11), max_size=10)

        assert exc_info.value.status_code == 413


class TestPrepareUpload:

    def test_thumbnail_comes_first(self, make_file):
        thumbnail = make_file("cover.jpg")
        additional = [make_file("a.jpg"), make_file("b.jpg")]

        prepared = prepare_upload(thumbnail, additional)

        assert [f.filename for f in prepared.files] == ["cover.jpg", "a.jpg", "b.jpg"]
        assert len(prepared.files) == 3
        assert prepared.warnings == []

    def test_additional_duplicate_of_thumbnail_is_dropped(self, make_file):
        thumbnail = make_file("cover.jpg")
        additional = [make_file("a.jpg"), make_file("cover.jpg"), make_file("b.jpg")]

        prepared = prepare_upload(thumbnail, additional)

        assert len(prepared.additional) == len(additional) - 1
        assert prepared.dropped == ["cover.jpg"]
        assert len(prepared.warnings) == 1
        assert "cover.jpg" in prepared.warnings[0]

    def test_repeated_additional_files_are_dropped(self, make_file):
        prepared = prepare_upload(None, [make_file("a.jpg"), make_file("a.jpg")])

        assert [f.filename for f in prepared.files] == ["a.jpg"]
        assert prepared.thumbnail is None

    def test_invalid_file_fails_whole_selection(self, make_file):
        with pytest.raises(UnsupportedFileTypeError):
            prepare_upload(make_file("cover.jpg"), [make_file("doc.pdf", "application/pdf", b"%PDF")])

    def test_nothing_selected(self):
        prepared = prepare_upload(None, [])

        assert prepared.files == []
        assert prepared.files == []
