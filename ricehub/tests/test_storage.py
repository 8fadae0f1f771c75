import unittest
from unittest.mock import MagicMock, patch

from ricehub.storage import CosStorageClient, InMemoryStorageClient


class InMemoryStorageTests(unittest.TestCase):
    def test_upload_and_delete(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("/previews/a.png", b"png", content_type="image/png")
        self.assertEqual(storage.stored_objects, {"/previews/a.png": b"png"})

        storage.delete("/previews/a.png")
        self.assertEqual(storage.stored_objects, {})
        with self.assertRaises(FileNotFoundError):
            storage.delete("/previews/a.png")


class CosStorageTests(unittest.TestCase):
    @patch("ricehub.storage.boto3.client")
    def test_paths_map_to_object_keys(self, mock_client):
        s3 = MagicMock()
        mock_client.return_value = s3

        storage = CosStorageClient(
            bucket="ricehub-1250000000",
            region="ap-guangzhou",
            endpoint="https://cos.ap-guangzhou.myqcloud.com",
            access_key_id="key",
            secret_access_key="secret",
        )
        storage.upload_bytes("/dotfiles/x.zip", b"archive")
        s3.put_object.assert_called_once_with(
            Bucket="ricehub-1250000000",
            Key="dotfiles/x.zip",
            Body=b"archive",
            ContentType="application/octet-stream",
        )
        storage.delete("/dotfiles/x.zip")
        s3.delete_object.assert_called_once_with(
            Bucket="ricehub-1250000000", Key="dotfiles/x.zip"
        )

        _, kwargs = mock_client.call_args
        self.assertEqual(kwargs["region_name"], "ap-guangzhou")
        self.assertEqual(kwargs["config"].signature_version, "s3v4")


if __name__ == "__main__":
    unittest.main()
