import unittest
from unittest.mock import patch

from tests.base import fake_storage

from app.schemas.attachments import AttachmentOutcome, FilePickResult, UploadSource
from app.services.attachment_errors import ErrorKind
from app.services import batch_uploads
from app.services.batch_uploads import LazySource, batch_to_attachment_result, pick_and_upload, upload_many


def _text(name: str, body: bytes = b"hello") -> UploadSource:
    return UploadSource(data=body, display_name=name)


class UploadManyTests(unittest.TestCase):
    def test_partial_failure_keeps_order_and_counts(self):
        files = [_text("a.txt"), _text("bad.bin"), _text("c.txt")]
        item_progress = []
        with fake_storage() as fake:
            batch = upload_many(files, "U1", "C1", "M1", on_item_progress=lambda done, total: item_progress.append((done, total)))

        self.assertEqual(batch.total_files, 3)
        self.assertEqual(batch.success_count, 2)
        self.assertEqual(batch.failure_count, 1)
        self.assertAlmostEqual(batch.success_rate, 2 / 3)
        self.assertTrue(batch.has_failures)
        self.assertFalse(batch.all_successful)
        self.assertEqual([item.file_name for item in batch.successful_uploads], ["a.txt", "c.txt"])
        self.assertEqual(batch.warnings, ["bad.bin: File type is not supported"])
        self.assertEqual(batch.failed_uploads[0].error_kind, ErrorKind.INVALID_TYPE)
        self.assertEqual(item_progress, [(1, 3), (2, 3), (3, 3)])
        self.assertEqual(fake.methods_called().count("put_object"), 2)

        result = batch_to_attachment_result(batch)
        self.assertEqual(result.outcome, AttachmentOutcome.SUCCESS)
        self.assertEqual(len(result.attachments), 2)
        self.assertEqual(result.warnings, ["bad.bin: File type is not supported"])
        self.assertTrue(result.has_warnings)

    def test_all_failures_make_the_batch_fail(self):
        files = [_text("a.bin"), _text("b.exe")]
        with fake_storage() as fake:
            batch = upload_many(files, "U1", "C1", "M1")
        self.assertEqual(batch.success_count, 0)
        self.assertEqual(batch.success_rate, 0.0)
        self.assertEqual(fake.calls, [])

        result = batch_to_attachment_result(batch)
        self.assertEqual(result.outcome, AttachmentOutcome.FAILURE)
        self.assertEqual(
            result.error_message,
            "Failed to upload any files: a.bin: File type is not supported, b.exe: File type is not supported",
        )
        self.assertEqual(result.attachments, [])

    def test_all_successful_batch_has_no_warnings(self):
        with fake_storage():
            batch = upload_many([_text("a.txt"), _text("b.csv", b"x,y\n1,2\n")], "U1", "C1", "M1")
        self.assertTrue(batch.all_successful)
        self.assertEqual(batch.success_rate, 1.0)
        result = batch_to_attachment_result(batch)
        self.assertTrue(result.is_success)
        self.assertIsNone(result.warnings)

    def test_empty_batch(self):
        with fake_storage():
            batch = upload_many([], "U1", "C1", "M1")
        self.assertEqual(batch.total_files, 0)
        self.assertEqual(batch.success_rate, 0.0)
        self.assertEqual(batch_to_attachment_result(batch).outcome, AttachmentOutcome.FAILURE)

    def test_unexpected_error_does_not_abort_the_batch(self):
        real_upload = batch_uploads.upload_attachment

        def _flaky(source, *args, **kwargs):
            if source.name == "boom.txt":
                raise RuntimeError("disk vanished")
            return real_upload(source, *args, **kwargs)

        with fake_storage():
            with patch("app.services.batch_uploads.upload_attachment", side_effect=_flaky):
                batch = upload_many([_text("boom.txt"), _text("ok.txt")], "U1", "C1", "M1")
        self.assertEqual(batch.success_count, 1)
        self.assertEqual(batch.failed_uploads[0].file_name, "boom.txt")
        self.assertEqual(batch.failed_uploads[0].error_kind, ErrorKind.TRANSPORT_FAILURE)
        self.assertIn("disk vanished", batch.failed_uploads[0].reason)

    def test_file_progress_is_tagged_with_file_name(self):
        seen = []
        with fake_storage():
            upload_many([_text("a.txt"), _text("b.txt")], "U1", "C1", "M1", on_file_progress=lambda name, p: seen.append((name, p)))
        self.assertEqual(seen, [("a.txt", 0.0), ("a.txt", 1.0), ("b.txt", 0.0), ("b.txt", 1.0)])

    def test_unauthenticated_batch_fails_every_item(self):
        with fake_storage() as fake:
            batch = upload_many([_text("a.txt")], None, "C1", "M1")
        self.assertEqual(batch.failed_uploads[0].error_kind, ErrorKind.UNAUTHENTICATED)
        self.assertEqual(fake.calls, [])

    def test_lazy_items_are_read_after_the_previous_item_finishes(self):
        events = []

        def _loader(name):
            def _load():
                events.append(("load", name))
                return _text(name)

            return _load

        files = [LazySource("a.txt", _loader("a.txt")), LazySource("b.txt", _loader("b.txt"))]
        with fake_storage():
            batch = upload_many(files, "U1", "C1", "M1", on_item_progress=lambda done, total: events.append(("done", done)))
        self.assertEqual(events, [("load", "a.txt"), ("done", 1), ("load", "b.txt"), ("done", 2)])
        self.assertTrue(batch.all_successful)

    def test_unreadable_lazy_item_is_reported_and_batch_continues(self):
        def _broken():
            raise OSError("stream closed")

        files = [LazySource("gone.txt", _broken), LazySource("ok.txt", lambda: _text("ok.txt"))]
        with fake_storage():
            batch = upload_many(files, "U1", "C1", "M1")
        self.assertEqual([item.file_name for item in batch.successful_uploads], ["ok.txt"])
        self.assertEqual(batch.failed_uploads[0].file_name, "gone.txt")
        self.assertEqual(batch.failed_uploads[0].error_kind, ErrorKind.TRANSPORT_FAILURE)
        self.assertIn("stream closed", batch.failed_uploads[0].reason)


class PickAndUploadTests(unittest.TestCase):
    def test_cancelled_pick(self):
        with fake_storage() as fake:
            result = pick_and_upload(FilePickResult.user_cancelled(), "U1", "C1", "M1")
        self.assertTrue(result.is_cancelled)
        self.assertEqual(fake.calls, [])

    def test_failed_pick(self):
        pick = FilePickResult(success=False, error_message="Permission denied")
        with fake_storage():
            result = pick_and_upload(pick, "U1", "C1", "M1")
        self.assertEqual(result.outcome, AttachmentOutcome.FAILURE)
        self.assertEqual(result.error_message, "Permission denied")

    def test_empty_pick(self):
        with fake_storage():
            result = pick_and_upload(FilePickResult.picked([]), "U1", "C1", "M1")
        self.assertEqual(result.error_message, "No valid files selected")

    def test_picked_files_are_uploaded(self):
        with fake_storage():
            result = pick_and_upload(FilePickResult.picked([_text("a.txt")]), "U1", "C1", "M1")
        self.assertTrue(result.is_success)
        self.assertTrue(result.attachments[0].is_uploaded)


if __name__ == "__main__":
    unittest.main()
