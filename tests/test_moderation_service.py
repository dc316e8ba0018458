import asyncio
import io
import tempfile
import zipfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase, mock

from PIL import Image

from eventgallery.api.schemas import Catalog
from eventgallery.core.config import Settings
from eventgallery.core.errors import NotFoundError, ValidationError
from eventgallery.services import moderation_service
from eventgallery.services.artifact_service import ArtifactGenerator
from eventgallery.services.catalog_cache import CatalogCache
from eventgallery.services.moderation_service import ModerationService, original_name_of
from eventgallery.services.scan_service import scan_catalog


def _jpeg_bytes(color=(180, 90, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (64, 48), color).save(buf, format="JPEG")
    return buf.getvalue()


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (32, 32), (0, 200, 0)).save(buf, format="PNG")
    return buf.getvalue()


def _zip_bytes(entries: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def _mark_encrypted(archive: bytes, name: str) -> bytes:
    """Set the encryption flag on one central directory entry."""
    data = bytearray(archive)
    pos = data.find(b"PK\x01\x02")
    while pos != -1:
        name_len = int.from_bytes(data[pos + 28 : pos + 30], "little")
        if data[pos + 46 : pos + 46 + name_len] == name.encode():
            data[pos + 8] |= 0x01
            return bytes(data)
        pos = data.find(b"PK\x01\x02", pos + 4)
    raise AssertionError(f"{name} not in archive")


class FakeUpload:
    def __init__(self, filename: str, data: bytes):
        self.filename = filename
        self._buf = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


class ModerationServiceTests(IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.settings = Settings(
            media_root=str(base / "media"),
            cache_root=str(base / "cache"),
            config_root=str(base / "config"),
        )
        self.audit_calls = []
        self.notified = []

        async def audit(level, action, message, payload):
            self.audit_calls.append(action)

        async def notifier(result):
            self.notified.append(result.accepted)

        async def loader():
            return Catalog()

        self.cache = CatalogCache(loader, lambda: 0.0)
        self.service = ModerationService.from_settings(self.settings, self.cache, audit=audit, notifier=notifier)

    def tearDown(self):
        self._tmp.cleanup()

    async def _ingest_single(self, name="IMG_0001.jpg") -> str:
        result = await self.service.ingest([FakeUpload(name, _jpeg_bytes())])
        self.assertEqual(result.accepted, 1)
        return result.stored[0]

    async def test_ingest_single_file(self):
        stored = await self._ingest_single("IMG 0001.jpg")
        self.assertEqual(original_name_of(stored), "IMG 0001.jpg")
        pending = self.service.list_pending()
        self.assertEqual(len(pending), 1)
        item = pending[0]
        self.assertEqual(item.name, stored)
        self.assertEqual(item.original_name, "IMG 0001.jpg")
        self.assertEqual(item.folder_path, "")
        self.assertEqual(item.kind, "image")
        self.assertTrue(item.path.startswith("/api/admin/pending-media/"))
        self.assertEqual(self.notified, [1])
        self.assertIn("ingest", self.audit_calls)

    async def test_same_name_twice_gets_distinct_names(self):
        first = await self._ingest_single("dup.jpg")
        second = await self._ingest_single("dup.jpg")
        self.assertNotEqual(first, second)
        self.assertEqual(len(self.service.list_pending()), 2)

    async def test_ingest_zip_extracts_media_only(self):
        archive = _zip_bytes({"a.jpg": _jpeg_bytes(), "b.png": _png_bytes(), "readme.txt": b"hello"})
        result = await self.service.ingest([FakeUpload("photos.zip", archive)])

        self.assertEqual(result.accepted, 2)
        self.assertEqual(result.failed, [])
        pending = self.service.list_pending()
        self.assertEqual(sorted(p.original_name for p in pending), ["a.jpg", "b.png"])
        self.assertEqual({p.folder_path for p in pending}, {"photos"})
        self.assertEqual(list(self.settings.pending_root.rglob("*.zip")), [])
        self.assertEqual(list(self.settings.pending_root.glob(".upload-*")), [])

    async def test_zip_nested_dirs_and_mac_metadata(self):
        archive = _zip_bytes(
            {
                "Day 1/c.jpg": _jpeg_bytes(),
                "__MACOSX/Day 1/._c.jpg": b"meta",
                ".DS_Store": b"meta",
            }
        )
        result = await self.service.ingest([FakeUpload("trip.zip", archive)])
        self.assertEqual(result.accepted, 1)
        pending = self.service.list_pending()
        self.assertEqual(pending[0].folder_path, "trip - Day 1")

    async def test_corrupt_zip_is_reported(self):
        result = await self.service.ingest([FakeUpload("broken.zip", b"definitely not a zip")])
        self.assertEqual(result.accepted, 0)
        self.assertEqual(len(result.failed), 1)
        self.assertEqual(result.failed[0].filename, "broken.zip")
        self.assertEqual(result.failed[0].error, "IOError")
        self.assertEqual(list(self.settings.pending_root.iterdir()), [])
        self.assertEqual(self.notified, [])

    async def test_encrypted_entry_fails_alone(self):
        archive = _mark_encrypted(_zip_bytes({"a.jpg": _jpeg_bytes(), "b.jpg": _jpeg_bytes()}), "b.jpg")
        result = await self.service.ingest([FakeUpload("ok.jpg", _jpeg_bytes()), FakeUpload("enc.zip", archive)])

        self.assertEqual(result.accepted, 2)
        self.assertEqual(sorted(original_name_of(s) for s in result.stored), ["a.jpg", "ok.jpg"])
        self.assertEqual([(f.filename, f.error) for f in result.failed], [("enc.zip:b.jpg", "IOError")])
        self.assertEqual(len(self.service.list_pending()), 2)
        self.assertIn("ingest", self.audit_calls)
        self.assertEqual(self.notified, [2])

    async def test_unreadable_archive_does_not_fail_the_batch(self):
        with mock.patch.object(zipfile, "ZipFile", side_effect=NotImplementedError("compression type 99")):
            result = await self.service.ingest(
                [FakeUpload("odd.zip", b"PK"), FakeUpload("ok.jpg", _jpeg_bytes())]
            )
        self.assertEqual(result.accepted, 1)
        self.assertEqual([(f.filename, f.error) for f in result.failed], [("odd.zip", "IOError")])

    async def test_extraction_recreates_a_pruned_label_folder(self):
        label = self.settings.pending_root / "batch"
        real_name = moderation_service.generate_stored_name

        def name_after_prune(original):
            # an approve of the earlier entry empties and prunes the label folder
            if original == "b.jpg" and label.is_dir():
                for path in label.iterdir():
                    path.unlink()
                label.rmdir()
            return real_name(original)

        archive = _zip_bytes({"a.jpg": _jpeg_bytes(), "b.jpg": _jpeg_bytes()})
        with mock.patch.object(moderation_service, "generate_stored_name", side_effect=name_after_prune):
            result = await self.service.ingest([FakeUpload("batch.zip", archive)])

        self.assertEqual(result.accepted, 2)
        self.assertEqual(result.failed, [])
        self.assertEqual([original_name_of(p.name) for p in label.iterdir()], ["b.jpg"])

    async def test_notifier_failure_keeps_the_ingest(self):
        async def failing_notifier(result):
            raise ConnectionRefusedError("smtp down")

        self.service.notifier = failing_notifier
        with self.assertLogs("eventgallery.moderation", level="WARNING"):
            result = await self.service.ingest([FakeUpload("keep.jpg", _jpeg_bytes())])

        self.assertEqual(result.accepted, 1)
        self.assertEqual(result.failed, [])
        self.assertEqual([p.name for p in self.service.list_pending()], result.stored)
        self.assertIn("ingest", self.audit_calls)

    async def test_disallowed_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            await self.service.ingest([FakeUpload("script.exe", b"MZ")])
        with self.assertRaises(ValidationError):
            await self.service.ingest([])

    async def test_approve_publishes_into_default_folder(self):
        stored = await self._ingest_single()
        dest = await self.service.approve(stored)

        self.assertEqual(dest, self.settings.publish_root / "Validées" / stored)
        self.assertTrue(dest.exists())
        self.assertEqual(self.service.list_pending(), [])
        self.assertEqual(self.cache.invalidations, 1)
        self.assertEqual(self.audit_calls.count("approve"), 1)

        generator = ArtifactGenerator.from_settings(self.settings)
        catalog = await scan_catalog(Path(self.settings.media_root), generator, self.settings)
        names = [f.name for c in catalog.categories for folder in c.folders for f in folder.files]
        self.assertIn(stored, names)

    async def test_approve_zip_item_keeps_folder_label(self):
        archive = _zip_bytes({"a.jpg": _jpeg_bytes()})
        result = await self.service.ingest([FakeUpload("Soirée.zip", archive)])
        dest = await self.service.approve(result.stored[0])
        self.assertEqual(dest.parent, self.settings.publish_root / "Soirée")
        self.assertFalse((self.settings.pending_root / "Soirée").exists())

    async def test_second_approve_is_not_found(self):
        stored = await self._ingest_single()
        await self.service.approve(stored)
        with self.assertRaises(NotFoundError):
            await self.service.approve(stored)

    async def test_concurrent_approve_has_one_winner(self):
        stored = await self._ingest_single()
        results = await asyncio.gather(
            self.service.approve(stored), self.service.approve(stored), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], NotFoundError)

    async def test_reject_deletes_file(self):
        stored = await self._ingest_single()
        await self.service.reject(stored)
        self.assertEqual(self.service.list_pending(), [])
        self.assertFalse((self.settings.publish_root / "Validées").exists())
        with self.assertRaises(NotFoundError):
            await self.service.reject(stored)

    async def test_invalid_names_are_refused(self):
        for bad in ["../escape.jpg", "a/b.jpg", ".hidden.jpg", ""]:
            with self.assertRaises(ValidationError):
                await self.service.approve(bad)

    async def test_batch_approve_reports_failures_and_invalidates_once(self):
        stored = await self._ingest_single()
        result = await self.service.batch_approve([stored, "missing.jpg"])

        self.assertEqual(result.success, [stored])
        self.assertEqual(len(result.failed), 1)
        self.assertEqual(result.failed[0].filename, "missing.jpg")
        self.assertEqual(result.failed[0].error, "NotFound")
        self.assertEqual(self.cache.invalidations, 1)

    async def test_batch_reject_all_missing_does_not_invalidate(self):
        result = await self.service.batch_reject(["nope.jpg", "../bad.jpg"])
        self.assertEqual(result.success, [])
        self.assertEqual([f.error for f in result.failed], ["NotFound", "ValidationError"])
        self.assertEqual(self.cache.invalidations, 0)

    async def test_pending_file_blocks_traversal(self):
        stored = await self._ingest_single()
        self.assertEqual(self.service.pending_file(stored).name, stored)
        with self.assertRaises(ValidationError):
            self.service.pending_file("../../outside.jpg")
        with self.assertRaises(NotFoundError):
            self.service.pending_file("missing.jpg")
