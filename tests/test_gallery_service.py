import io
import tempfile
from pathlib import Path
from unittest import IsolatedAsyncioTestCase

from eventgallery.api.schemas import Catalog
from eventgallery.core.config import Settings
from eventgallery.core.errors import NotFoundError, ValidationError
from eventgallery.services.catalog_cache import CatalogCache
from eventgallery.services.gallery_service import GalleryService


class FakeUpload:
    def __init__(self, filename: str, data: bytes):
        self.filename = filename
        self._buf = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


class GalleryServiceTests(IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.media = Path(self._tmp.name) / "media"
        self.media.mkdir()
        self.settings = Settings(media_root=str(self.media))

        async def loader():
            return Catalog()

        self.cache = CatalogCache(loader, lambda: 0.0)
        self.audit_calls = []

        async def audit(level, action, message, payload):
            self.audit_calls.append(action)

        self.service = GalleryService(self.media, self.cache, self.settings, audit=audit)

    def tearDown(self):
        self._tmp.cleanup()

    async def test_create_and_list_structure(self):
        await self.service.create_category("Photos Professionnelles")
        await self.service.create_folder("Photos Professionnelles", "Portraits")
        (self.media / "Photos Professionnelles" / "Portraits" / "a.jpg").write_bytes(b"x")
        (self.media / "Photos Professionnelles" / "Portraits" / "notes.txt").write_bytes(b"x")

        structure = self.service.structure().structure
        self.assertEqual(len(structure), 1)
        node = structure[0]
        self.assertEqual(node.category, "Photos Professionnelles")
        self.assertTrue(node.is_professional)
        self.assertEqual([(f.name, f.count) for f in node.folders], [("Portraits", 1)])
        self.assertEqual(self.cache.invalidations, 2)
        self.assertEqual(self.audit_calls, ["category_create", "folder_create"])

    async def test_structure_hides_pending(self):
        (self.media / "Photos Invités" / "Pending").mkdir(parents=True)
        (self.media / "Photos Invités" / "Validées").mkdir()
        node = self.service.structure().structure[0]
        self.assertEqual([f.name for f in node.folders], ["Validées"])

    async def test_duplicate_and_invalid_names(self):
        await self.service.create_category("Mariage")
        with self.assertRaises(ValidationError):
            await self.service.create_category("Mariage")
        for bad in ["..", "a/b", ".secret", "Pending"]:
            with self.assertRaises(ValidationError):
                await self.service.create_category(bad)
        with self.assertRaises(NotFoundError):
            await self.service.create_folder("Absent", "Folder")

    async def test_rename_and_delete(self):
        await self.service.create_category("Mariage")
        await self.service.create_folder("Mariage", "Ceremonie")
        await self.service.rename_folder("Mariage", "Ceremonie", "Cérémonie")
        await self.service.rename_category("Mariage", "Mariage 2025")
        self.assertTrue((self.media / "Mariage 2025" / "Cérémonie").is_dir())

        await self.service.delete_folder("Mariage 2025", "Cérémonie")
        self.assertFalse((self.media / "Mariage 2025" / "Cérémonie").exists())
        await self.service.delete_category("Mariage 2025")
        self.assertFalse((self.media / "Mariage 2025").exists())
        self.assertEqual(self.cache.invalidations, 6)

    async def test_guest_category_is_protected(self):
        (self.media / "Photos Invités").mkdir()
        with self.assertRaises(ValidationError):
            await self.service.delete_category("Photos Invités")
        with self.assertRaises(ValidationError):
            await self.service.rename_category("Photos Invités", "Autre")

    async def test_upload_media_into_folder(self):
        await self.service.create_category("Mariage")
        await self.service.create_folder("Mariage", "Soirée")
        before = self.cache.invalidations
        result = await self.service.upload_media(
            "Mariage",
            "Soirée",
            [FakeUpload("a.jpg", b"1"), FakeUpload("a.jpg", b"2"), FakeUpload("virus.exe", b"3")],
        )
        self.assertEqual(result.count, 2)
        self.assertEqual([f.filename for f in result.failed], ["virus.exe"])
        names = sorted(p.name for p in (self.media / "Mariage" / "Soirée").iterdir())
        self.assertEqual(names, ["a-1.jpg", "a.jpg"])
        self.assertEqual(self.cache.invalidations, before + 1)
