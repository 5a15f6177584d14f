"""Content types and repository interface."""

from .types import (
    ContentType,
    DataSource,
    EDITABLE_TYPES,
    ContentUpdate,
    HeroUpdate,
    CategoriesUpdate,
    SectionsUpdate,
    UiTextUpdate,
    UPDATE_MODELS,
    parse_update,
    document_name,
    SnapshotDocument,
    PreloadMetadata,
    PreloadResult,
)
from .repository import ContentRepository

__all__ = [
    "ContentType",
    "DataSource",
    "EDITABLE_TYPES",
    "ContentUpdate",
    "HeroUpdate",
    "CategoriesUpdate",
    "SectionsUpdate",
    "UiTextUpdate",
    "UPDATE_MODELS",
    "parse_update",
    "document_name",
    "SnapshotDocument",
    "PreloadMetadata",
    "PreloadResult",
    "ContentRepository",
]
