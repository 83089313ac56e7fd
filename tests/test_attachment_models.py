import unittest

from pydantic import ValidationError

from tests.base import _FakeS3Storage  # noqa: F401  (sets test environment)

from app.schemas.attachments import (
    AttachmentMetadata,
    AttachmentResult,
    BatchUploadResult,
    FailedUpload,
    FileAttachment,
    UploadSource,
)
from app.services.attachment_errors import ErrorKind, FileTooLarge, HTTP_STATUS_BY_KIND, error_for_kind
from app.services.storage_policy import FileType


def _in_flight(**overrides) -> FileAttachment:
    fields = dict(
        file_name="photo.final.png",
        file_size=2 * 1024 * 1024,
        mime_type="image/png",
        bucket_id="chat-attachments",
        storage_path="chat-attachments/U1/C1/M1/photo.final_1.png",
        metadata=AttachmentMetadata(hash="ab" * 32),
    )
    fields.update(overrides)
    return FileAttachment.in_flight(**fields)


class FileAttachmentTests(unittest.TestCase):
    def test_derived_fields(self):
        attachment = _in_flight()
        self.assertEqual(attachment.file_type, FileType.IMAGE)
        self.assertTrue(attachment.is_image)
        self.assertEqual(attachment.file_extension, ".png")
        self.assertEqual(attachment.formatted_file_size, "2.0 MB")
        self.assertTrue(attachment.is_uploading)
        self.assertFalse(attachment.has_upload_error)
        self.assertTrue(attachment.id)

    def test_serializes_with_camel_case_keys(self):
        attachment = _in_flight(metadata=AttachmentMetadata(hash="00", original_path="/sdcard/photo.png"))
        payload = attachment.model_dump(mode="json", by_alias=True)
        for key in ["fileName", "fileSize", "mimeType", "bucketId", "storagePath", "isUploaded", "uploadProgress", "fileType"]:
            self.assertIn(key, payload)
        self.assertEqual(payload["metadata"]["originalPath"], "/sdcard/photo.png")
        self.assertEqual(FileAttachment.model_validate(payload).model_dump(), attachment.model_dump())

    def test_file_size_must_be_positive(self):
        with self.assertRaises(ValidationError):
            _in_flight(file_size=0)

    def test_uploaded_requires_full_progress(self):
        with self.assertRaises(ValidationError):
            FileAttachment(
                file_name="a.txt",
                file_size=1,
                mime_type="text/plain",
                bucket_id="b",
                storage_path="b/a.txt",
                is_uploaded=True,
                upload_progress=0.5,
            )

    def test_descriptor_is_immutable(self):
        attachment = _in_flight()
        with self.assertRaises(ValidationError):
            attachment.file_name = "other.png"

    def test_transitions(self):
        attachment = _in_flight()
        halfway = attachment.with_progress(0.5)
        self.assertEqual(halfway.upload_progress, 0.5)
        self.assertEqual(halfway.with_progress(0.2).upload_progress, 0.5)
        self.assertEqual(attachment.upload_progress, 0.0)

        uploaded = halfway.mark_uploaded(public_url="https://cdn.local/x.png")
        self.assertTrue(uploaded.is_uploaded)
        self.assertEqual(uploaded.upload_progress, 1.0)
        self.assertEqual(uploaded.display_url, "https://cdn.local/x.png")
        self.assertEqual(uploaded.id, attachment.id)

        failed = attachment.mark_failed("Failed to upload file: timeout")
        self.assertTrue(failed.has_upload_error)
        self.assertFalse(failed.is_uploaded)

    def test_terminal_states_are_final(self):
        uploaded = _in_flight().mark_uploaded()
        with self.assertRaises(ValueError):
            uploaded.mark_failed("late failure")
        failed = _in_flight().mark_failed("boom")
        with self.assertRaises(ValueError):
            failed.mark_uploaded()
        with self.assertRaises(ValueError):
            failed.with_progress(0.9)

    def test_unknown_mime_is_other(self):
        attachment = _in_flight(file_name="tool", mime_type="application/x-msdownload")
        self.assertEqual(attachment.file_type, FileType.OTHER)
        self.assertEqual(attachment.file_extension, "")


class ResultModelTests(unittest.TestCase):
    def test_batch_summary_and_rate(self):
        ok = _in_flight().mark_uploaded()
        batch = BatchUploadResult(
            total_files=4,
            successful_uploads=[ok],
            failed_uploads=[
                FailedUpload(file_name="a.bin", reason="File type is not supported", error_kind=ErrorKind.INVALID_TYPE),
                FailedUpload(file_name="b.mp4", reason="File size exceeds the maximum limit"),
                FailedUpload(file_name="c.txt", reason="File is empty"),
            ],
        )
        self.assertEqual(batch.success_rate, 0.25)
        self.assertEqual(batch.summary(), "total=4 success=1 failed=3 rate=25.0%")
        self.assertEqual(batch.warnings[1], "b.mp4: File size exceeds the maximum limit")

    def test_attachment_result_constructors(self):
        self.assertTrue(AttachmentResult.cancelled().is_cancelled)
        failure = AttachmentResult.failure("nope")
        self.assertFalse(failure.is_success)
        self.assertFalse(failure.has_warnings)
        success = AttachmentResult.success([], warnings=[])
        self.assertIsNone(success.warnings)

    def test_upload_source_requires_exactly_one_origin(self):
        with self.assertRaises(ValidationError):
            UploadSource()
        with self.assertRaises(ValidationError):
            UploadSource(local_path="/tmp/a.txt", data=b"a")
        self.assertEqual(UploadSource(local_path="C:\\docs\\cv.pdf").name, "cv.pdf")
        self.assertEqual(UploadSource(data=b"a").name, "file")

    def test_error_kinds_map_to_http_status(self):
        self.assertEqual(HTTP_STATUS_BY_KIND[ErrorKind.INVALID_TYPE], 415)
        self.assertEqual(FileTooLarge("too big").status_code, 413)
        error = error_for_kind(ErrorKind.EMPTY, "File is empty")
        self.assertEqual(error.kind, ErrorKind.EMPTY)
        self.assertEqual(error.status_code, 400)
        self.assertEqual(error.message, "File is empty")


if __name__ == "__main__":
    unittest.main()
