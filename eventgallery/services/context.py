from pathlib import Path
from typing import Optional

from eventgallery.api.schemas import Catalog
from eventgallery.core.config import settings as env_settings
from eventgallery.services.activity_service import record_activity
from eventgallery.services.artifact_service import ArtifactGenerator
from eventgallery.services.catalog_cache import CatalogCache
from eventgallery.services.gallery_service import GalleryService
from eventgallery.services.moderation_service import AuditHook, ModerationService, Notifier
from eventgallery.services.notify_service import EmailNotifier
from eventgallery.services.scan_service import directory_signature, scan_catalog


class GalleryContext:
    """Wires the generator, the catalog cache and the services around one Settings instance."""

    def __init__(self, settings, audit: Optional[AuditHook] = record_activity, notifier: Optional[Notifier] = None):
        self.settings = settings
        self.media_root = Path(settings.media_root)
        self.audit = audit
        self.generator = ArtifactGenerator.from_settings(settings)
        self.cache = CatalogCache(
            loader=self._scan,
            signature_fn=lambda: directory_signature(self.media_root),
            ttl_seconds=settings.catalog_ttl_seconds,
        )
        self.moderation = ModerationService.from_settings(
            settings,
            self.cache,
            audit=audit,
            notifier=notifier if notifier is not None else EmailNotifier(settings),
        )
        self.gallery = GalleryService(self.media_root, self.cache, settings, audit=audit)

    async def _scan(self) -> Catalog:
        return await scan_catalog(self.media_root, self.generator, self.settings)

    async def record(self, level: str, action: str, message: str, payload: Optional[dict] = None):
        if self.audit is not None:
            await self.audit(level, action, message, payload or {})


_context: Optional[GalleryContext] = None


def get_context() -> GalleryContext:
    global _context
    if _context is None:
        _context = GalleryContext(env_settings)
    return _context
