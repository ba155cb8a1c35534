import unittest

from chefmarket.storage import InMemoryStorageClient, S3StorageClient


class StorageClientTests(unittest.TestCase):
    def test_in_memory_client_records_signed_paths(self):
        storage = InMemoryStorageClient(base_url="https://files.test")
        url = storage.presign_put("users/1/profile/a.png", "image/png", expires_in=60)
        self.assertEqual(url, "https://files.test/users/1/profile/a.png?op=put&expires=60")
        self.assertEqual(storage.signed_paths, ["users/1/profile/a.png"])
        self.assertEqual(
            storage.public_url("users/1/profile/a.png"),
            "https://files.test/users/1/profile/a.png",
        )

    def test_s3_presigned_put_is_generated_offline(self):
        storage = S3StorageClient(
            bucket="chef-uploads",
            region="us-east-1",
            endpoint="",
            access_key_id="AKIAEXAMPLE",
            secret_access_key="secret",
        )
        url = storage.presign_put("providers/3/documents/id.pdf", "application/pdf", 120)
        self.assertIn("providers/3/documents/id.pdf", url)
        self.assertIn("X-Amz-Expires=120", url)
        self.assertEqual(
            storage.public_url("a/b.png"),
            "https://chef-uploads.s3.us-east-1.amazonaws.com/a/b.png",
        )

    def test_s3_public_base_url_override(self):
        storage = S3StorageClient(
            bucket="chef-uploads",
            region="auto",
            endpoint="https://r2.example.com",
            access_key_id="key",
            secret_access_key="secret",
            public_base_url="https://cdn.example.com/",
        )
        self.assertEqual(storage.public_url("a/b.png"), "https://cdn.example.com/a/b.png")


if __name__ == "__main__":
    unittest.main()
