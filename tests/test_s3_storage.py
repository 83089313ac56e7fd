import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from tests.base import client_error

from app.services.s3_storage import S3Storage


class _FakeBody:
    def __init__(self, payload: bytes):
        self.payload = payload
        self.closed = False

    def iter_chunks(self, chunk_size=65536):
        for i in range(0, len(self.payload), chunk_size):
            yield self.payload[i : i + chunk_size]

    def close(self):
        self.closed = True


class S3StorageTests(unittest.TestCase):
    def setUp(self):
        self._patcher = patch("app.services.s3_storage.boto3.client")
        client_factory = self._patcher.start()
        self.client = MagicMock()
        client_factory.return_value = self.client
        self.storage = S3Storage()

    def tearDown(self):
        self._patcher.stop()

    def test_attachment_put_refuses_to_overwrite(self):
        self.storage.put_object("chat-attachments", "chat-attachments/U1/C1/M1/a_1.pdf", b"data", "application/pdf", cache_control="max-age=3600")
        kwargs = self.client.put_object.call_args.kwargs
        self.assertEqual(kwargs["IfNoneMatch"], "*")
        self.assertEqual(kwargs["CacheControl"], "max-age=3600")
        self.assertEqual(kwargs["ContentType"], "application/pdf")
        self.assertEqual(kwargs["Body"], b"data")

    def test_avatar_put_overwrites(self):
        self.storage.put_object("avatars", "avatars/U1/me_1.png", b"png", "image/png", upsert=True)
        kwargs = self.client.put_object.call_args.kwargs
        self.assertNotIn("IfNoneMatch", kwargs)
        self.assertNotIn("CacheControl", kwargs)

    def test_bucket_is_checked_once(self):
        self.storage.put_object("chat-attachments", "k1", b"a", "text/plain")
        self.storage.put_object("chat-attachments", "k2", b"b", "text/plain")
        self.assertEqual(self.client.head_bucket.call_count, 1)
        self.client.create_bucket.assert_not_called()

    def test_missing_public_bucket_is_created_with_read_policy(self):
        self.client.head_bucket.side_effect = client_error("404", 404, "HeadBucket")
        self.storage.ensure_bucket("avatars")
        self.client.create_bucket.assert_called_once_with(Bucket="avatars")
        policy = json.loads(self.client.put_bucket_policy.call_args.kwargs["Policy"])
        self.assertEqual(policy["Statement"][0]["Resource"], ["arn:aws:s3:::avatars/*"])

    def test_missing_private_bucket_gets_no_policy(self):
        self.client.head_bucket.side_effect = client_error("NoSuchBucket", 404, "HeadBucket")
        self.storage.ensure_bucket("chat-attachments")
        self.client.create_bucket.assert_called_once()
        self.client.put_bucket_policy.assert_not_called()

    def test_unexpected_bucket_error_propagates(self):
        self.client.head_bucket.side_effect = client_error("AccessDenied", 403, "HeadBucket")
        with self.assertRaises(Exception):
            self.storage.ensure_bucket("chat-attachments")

    def test_get_object_joins_chunks(self):
        body = _FakeBody(b"x" * 200000)
        self.client.get_object.return_value = {"Body": body}
        self.assertEqual(self.storage.get_object("chat-attachments", "k"), b"x" * 200000)
        self.assertTrue(body.closed)

    def test_delete_objects_returns_failed_keys(self):
        self.client.delete_objects.return_value = {"Errors": [{"Key": "b", "Code": "AccessDenied"}]}
        failed = self.storage.delete_objects("chat-attachments", ["a", "b", ""])
        self.assertEqual(failed, ["b"])
        sent = self.client.delete_objects.call_args.kwargs["Delete"]["Objects"]
        self.assertEqual(sent, [{"Key": "a"}, {"Key": "b"}])

    def test_list_objects_walks_pages(self):
        modified = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "chat-attachments/U1/a", "Size": 3, "LastModified": modified}]},
            {"Contents": [{"Key": "chat-attachments/U1/b", "Size": 4, "LastModified": modified}]},
            {},
        ]
        self.client.get_paginator.return_value = paginator
        items = self.storage.list_objects("chat-attachments", "chat-attachments/U1/")
        paginator.paginate.assert_called_once_with(Bucket="chat-attachments", Prefix="chat-attachments/U1/")
        self.assertEqual([item["size"] for item in items], [3, 4])
        self.assertEqual(items[0]["updated_at"], modified.isoformat())

    def test_signed_url_uses_ttl(self):
        self.client.generate_presigned_url.return_value = "https://s3.local/signed"
        self.assertEqual(self.storage.create_signed_url("chat-attachments", "k", 3600), "https://s3.local/signed")
        self.client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "chat-attachments", "Key": "k"},
            ExpiresIn=3600,
            HttpMethod="GET",
        )

    def test_public_url_quotes_key(self):
        url = self.storage.get_public_url("avatars", "avatars/U1/me 1.png")
        self.assertEqual(url, "http://localhost:9000/avatars/avatars/U1/me%201.png")


if __name__ == "__main__":
    unittest.main()
