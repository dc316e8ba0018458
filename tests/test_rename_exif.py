import importlib.util
import tempfile
from datetime import datetime
from pathlib import Path
from unittest import TestCase

from PIL import ExifTags, Image

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "rename_exif.py"
_module_def = importlib.util.spec_from_file_location("rename_exif", SCRIPT)
rename_exif = importlib.util.module_from_spec(_module_def)
_module_def.loader.exec_module(rename_exif)


def _jpeg(path: Path, stamp=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", (32, 32), (90, 90, 90))
    if stamp is None:
        img.save(path)
        return
    exif = Image.Exif()
    exif[ExifTags.Base.DateTime] = stamp
    img.save(path, exif=exif)


class RenameExifTests(TestCase):
    def test_capture_time_reads_exif(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "a.jpg"
            _jpeg(path, "2025:06:14 15:30:12")
            self.assertEqual(rename_exif.capture_time(path), datetime(2025, 6, 14, 15, 30, 12))

    def test_rename_tree(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _jpeg(root / "Cat" / "F" / "a.jpg", "2025:06:14 15:30:12")
            _jpeg(root / "Cat" / "F" / "20240101-000000-done.jpg", "2025:06:14 15:30:12")
            _jpeg(root / "Cat" / "F" / "nodate.jpg")
            _jpeg(root / "Cat" / "F" / "b.jpg", "2025:06:14 15:30:12")
            (root / "Cat" / "F" / "20250614-153012-b.jpg").write_bytes(b"taken")

            dry = rename_exif.rename_tree(root, dry_run=True)
            self.assertEqual(dry["renamed"], 1)
            self.assertTrue((root / "Cat" / "F" / "a.jpg").exists())

            stats = rename_exif.rename_tree(root)
            self.assertEqual(stats["renamed"], 1)
            self.assertEqual(stats["conflicts"], 1)
            self.assertEqual(stats["no_date"], 1)
            self.assertTrue((root / "Cat" / "F" / "20250614-153012-a.jpg").exists())
            self.assertTrue((root / "Cat" / "F" / "b.jpg").exists())
            self.assertEqual((root / "Cat" / "F" / "20250614-153012-b.jpg").read_bytes(), b"taken")
