from __future__ import annotations

import asyncio
import io
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from starlette.datastructures import Headers, UploadFile

from rep_stock.config import settings
from rep_stock.errors import InvalidArgumentError
from rep_stock.services.image_service import delete_image, save_image


def _upload(filename: str, content_type: str, data: bytes = b'data') -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=filename, headers=Headers({'content-type': content_type}))


class ImageServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.directory = Path(self.tmp.name)

    def test_save_and_delete_round_trip(self) -> None:
        url = asyncio.run(save_image(_upload('Photo.PNG', 'image/png'), directory=self.directory))
        self.assertTrue(url.startswith('/uploads/image-'))
        self.assertTrue(url.endswith('.png'))
        stored = self.directory / url.rsplit('/', 1)[1]
        self.assertEqual(stored.read_bytes(), b'data')

        self.assertTrue(delete_image(url, directory=self.directory))
        self.assertFalse(stored.exists())
        self.assertFalse(delete_image(url, directory=self.directory))

    def test_non_images_are_rejected(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            asyncio.run(save_image(_upload('notes.txt', 'text/plain'), directory=self.directory))
        self.assertEqual(list(self.directory.iterdir()), [])

    def test_uploads_over_the_size_limit_are_rejected(self) -> None:
        with patch.object(settings, 'max_upload_bytes', 4):
            with self.assertRaises(InvalidArgumentError):
                asyncio.run(save_image(_upload('big.png', 'image/png', b'x' * 1024), directory=self.directory))
            self.assertEqual(list(self.directory.iterdir()), [])

            url = asyncio.run(save_image(_upload('small.png', 'image/png', b'xxxx'), directory=self.directory))
        self.assertEqual((self.directory / url.rsplit('/', 1)[1]).read_bytes(), b'xxxx')

    def test_delete_ignores_foreign_and_traversing_urls(self) -> None:
        outside = self.directory.parent / 'keep-me.txt'
        self.assertFalse(delete_image(None, directory=self.directory))
        self.assertFalse(delete_image('https://cdn.example.com/a.png', directory=self.directory))
        self.assertFalse(delete_image(f'/uploads/../{outside.name}', directory=self.directory))


if __name__ == '__main__':
    unittest.main()
