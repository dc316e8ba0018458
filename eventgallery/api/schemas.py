from typing import List, Optional, Literal, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime

MediaKind = Literal["image", "video"]

class MediaFile(BaseModel):
    name: str
    logical_path: str
    kind: MediaKind
    size_bytes: int
    source_modified_at: datetime
    date: datetime
    display_path: str
    thumbnail_path: str
    original_path: str

class Folder(BaseModel):
    name: str
    count: int
    files: List[MediaFile] = Field(default_factory=list)

class Category(BaseModel):
    name: str
    is_professional: bool = False
    folders: List[Folder] = Field(default_factory=list)

class Catalog(BaseModel):
    categories: List[Category] = Field(default_factory=list)

class CatalogOut(Catalog):
    cached: bool = False

class PendingUpload(BaseModel):
    name: str
    original_name: str
    folder_path: str = ""
    kind: MediaKind
    size_bytes: int
    uploaded_at: datetime
    path: str

class PendingList(BaseModel):
    files: List[PendingUpload]
    count: int

class FailedItem(BaseModel):
    filename: str
    error: str
    detail: Optional[str] = None

class IngestResult(BaseModel):
    accepted: int = 0
    stored: List[str] = Field(default_factory=list)
    failed: List[FailedItem] = Field(default_factory=list)

class UploadResponse(BaseModel):
    count: int
    failed: List[FailedItem] = Field(default_factory=list)

class ModerationRequest(BaseModel):
    filename: str

class BatchRequest(BaseModel):
    filenames: List[str]

class ModerationResult(BaseModel):
    success: bool
    filename: str
    destination: Optional[str] = None

class BatchResult(BaseModel):
    success: List[str] = Field(default_factory=list)
    failed: List[FailedItem] = Field(default_factory=list)

class OptimizeStats(BaseModel):
    total: int = 0
    optimized: int = 0
    already_optimized: int = 0
    errors: int = 0

class CleanStats(BaseModel):
    total: int = 0
    deleted: int = 0
    kept: int = 0

class CleanResult(BaseModel):
    thumbnails: CleanStats
    web_optimized: CleanStats

class FolderNode(BaseModel):
    name: str
    count: int

class CategoryNode(BaseModel):
    category: str
    is_professional: bool = False
    folders: List[FolderNode] = Field(default_factory=list)

class GalleryStructure(BaseModel):
    structure: List[CategoryNode]

class CategoryCreate(BaseModel):
    category_name: str

class FolderCreate(BaseModel):
    category: str
    folder_name: str

class CategoryRename(BaseModel):
    category: str
    new_name: str

class FolderRename(BaseModel):
    category: str
    folder: str
    new_name: str

class LoginRequest(BaseModel):
    code: str

class JobQueued(BaseModel):
    job_id: str
    status: str

class JobOut(BaseModel):
    job_id: str
    status: str
    result: Optional[Dict[str, Any]] = None

class ActivityOut(BaseModel):
    ts: datetime
    level: str
    action: str
    message: str
    payload_json: str

    class Config:
        from_attributes = True
