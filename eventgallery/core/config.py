from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="EVG_", extra="ignore")

    # storage paths
    media_root: str = Field("media")
    cache_root: str = Field(".cache")
    config_root: str = Field("config")

    # moderation layout
    pending_dir_name: str = "Pending"
    guest_category: str = "Photos Invités"
    approved_folder: str = "Validées"

    # classification
    image_extensions: List[str] = ["jpg", "jpeg", "png", "gif", "webp", "bmp"]
    video_extensions: List[str] = ["mp4", "webm", "mov", "avi", "mkv"]
    archive_extensions: List[str] = ["zip"]
    professional_keywords: List[str] = ["professionnel", "professional", "photographe"]
    professional_match_threshold: int = 100

    # derived artifacts
    thumbnail_size: int = 400
    thumbnail_quality: int = 80
    web_max_edge: int = 2048
    web_quality: int = 85
    artifact_workers: int = 4

    catalog_ttl_seconds: int = 300

    # shared-secret access
    access_code: str = Field("mariage2025", validation_alias=AliasChoices("ACCESS_CODE", "EVG_ACCESS_CODE"))
    admin_code: str = Field("admin2025", validation_alias=AliasChoices("ADMIN_CODE", "EVG_ADMIN_CODE"))
    session_secret: str = Field("change-me", validation_alias=AliasChoices("SESSION_SECRET", "EVG_SESSION_SECRET"))

    # ingest notifications
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_starttls: bool = True
    notify_from: Optional[str] = None
    notify_to: Optional[str] = None

    debug_logging: bool = False

    @property
    def thumbnails_dir(self) -> Path:
        return Path(self.cache_root) / "thumbnails"

    @property
    def web_dir(self) -> Path:
        return Path(self.cache_root) / "web-optimized"

    @property
    def publish_root(self) -> Path:
        return Path(self.media_root) / self.guest_category

    @property
    def pending_root(self) -> Path:
        return self.publish_root / self.pending_dir_name

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.smtp_host and self.notify_to)


APP_VERSION = "0.3.0"

settings = Settings()
