"""
Content Types

Shared types for the sync layer:
- ContentType: selects snapshot document and cache-key prefix
- ContentUpdate variants: one typed payload per editable content type
- SnapshotDocument: versioned JSON document persisted by the SnapshotStore
- PreloadResult: homepage payload assembled by the PreloadAggregator
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ContentType(str, Enum):
    """Content types kept in sync between database, cache and snapshots."""

    HERO = "hero"
    CATEGORIES = "categories"
    SECTIONS = "sections"
    UI_TEXT = "ui-text"
    CAMPAIGNS = "campaigns"
    CATEGORY_STATS = "category-stats"

    @property
    def cache_prefix(self) -> str:
        """Cache-key prefix owned by this content type."""
        return self.value

    @property
    def is_editable(self) -> bool:
        """Whether admin edits for this type arrive through the sync ingress."""
        return self in EDITABLE_TYPES


EDITABLE_TYPES = frozenset({
    ContentType.HERO,
    ContentType.CATEGORIES,
    ContentType.SECTIONS,
    ContentType.UI_TEXT,
})


class DataSource(str, Enum):
    """Tier a value was served from, ordered best to worst."""

    CACHE = "cache"
    DATABASE = "database"
    SNAPSHOT = "snapshot"

    @property
    def rank(self) -> int:
        return _SOURCE_RANK[self]

    @classmethod
    def worst(cls, sources: List["DataSource"]) -> "DataSource":
        """Return the worst tier among sources (cache when empty)."""
        if not sources:
            return cls.CACHE
        return max(sources, key=lambda s: s.rank)


_SOURCE_RANK = {
    DataSource.CACHE: 0,
    DataSource.DATABASE: 1,
    DataSource.SNAPSHOT: 2,
}


# =============================================================================
# UPDATE PAYLOADS
# =============================================================================

def _visible(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [item for item in items if item.get("visible") is not False]


class ContentUpdate(BaseModel):
    """Base class for typed admin edit payloads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    content_type: ClassVar[ContentType]

    @property
    def variant(self) -> Optional[str]:
        """Document variant within the content type (None for single-document types)."""
        return None

    def to_snapshot_payload(self) -> Dict[str, Any]:
        raise NotImplementedError


class HeroUpdate(ContentUpdate):
    """Hero banner slides."""

    content_type: ClassVar[ContentType] = ContentType.HERO

    slides: List[Dict[str, Any]] = Field(default_factory=list)

    def to_snapshot_payload(self) -> Dict[str, Any]:
        return {
            "type": "hero-sections",
            "slides": _visible(self.slides),
        }


class CategoriesUpdate(ContentUpdate):
    """Category menu entries."""

    content_type: ClassVar[ContentType] = ContentType.CATEGORIES

    categories: List[Dict[str, Any]] = Field(default_factory=list)

    def to_snapshot_payload(self) -> Dict[str, Any]:
        return {
            "type": "category-sections",
            "categories": _visible(self.categories),
        }


class SectionsUpdate(ContentUpdate):
    """Homepage section structure and ordering."""

    content_type: ClassVar[ContentType] = ContentType.SECTIONS

    sections: List[Dict[str, Any]] = Field(default_factory=list)
    section_order: List[Dict[str, Any]] = Field(default_factory=list, alias="sectionOrder")

    def to_snapshot_payload(self) -> Dict[str, Any]:
        order = self.section_order
        if not order:
            # Derive ordering from the sections themselves
            order = [
                {"id": s.get("id"), "type": s.get("type"), "order": s.get("order", 0)}
                for s in sorted(self.sections, key=lambda s: s.get("order", 0))
            ]
        return {
            "type": "ui-sections-structure",
            "sections": list(self.sections),
            "sectionOrder": list(order),
        }


class UiTextUpdate(ContentUpdate):
    """Static UI texts for one language."""

    content_type: ClassVar[ContentType] = ContentType.UI_TEXT

    language: str = "ko"
    texts: Dict[str, Any] = Field(default_factory=dict)

    @property
    def language_code(self) -> str:
        # Japanese snapshots are keyed "jp" on the rendering side
        code = self.language.strip().lower()
        return "jp" if code == "ja" else code

    @property
    def variant(self) -> Optional[str]:
        return self.language_code

    def to_snapshot_payload(self) -> Dict[str, Any]:
        return {
            "type": f"static-ui-{self.language_code}",
            "language": self.language_code,
            "texts": dict(self.texts),
        }


UPDATE_MODELS: Dict[ContentType, Type[ContentUpdate]] = {
    model.content_type: model
    for model in (HeroUpdate, CategoriesUpdate, SectionsUpdate, UiTextUpdate)
}

_missing = EDITABLE_TYPES - set(UPDATE_MODELS)
if _missing:
    raise RuntimeError(f"No update model registered for: {sorted(t.value for t in _missing)}")


def parse_update(content_type: Any, data: Any) -> ContentUpdate:
    """
    Validate raw ingress data into the typed update for a content type.

    Raises:
        ValueError: unknown or non-editable type, or data of the wrong shape
    """
    try:
        content_type = ContentType(content_type)
    except ValueError:
        raise ValueError(f"Unknown content type: {content_type!r}")

    model = UPDATE_MODELS.get(content_type)
    if model is None:
        raise ValueError(f"Content type is not editable: {content_type.value}")

    if isinstance(data, ContentUpdate):
        if not isinstance(data, model):
            raise ValueError(
                f"Expected {model.__name__} for {content_type.value}, got {type(data).__name__}"
            )
        return data

    if not isinstance(data, dict):
        raise ValueError(f"Update data for {content_type.value} must be an object")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid {content_type.value} update: {e}") from e


def document_name(content_type: ContentType, variant: Optional[str] = None) -> str:
    """File stem of the snapshot document for a type (and optional variant)."""
    if variant:
        return f"{content_type.value}-{variant}"
    return content_type.value


# =============================================================================
# SNAPSHOT DOCUMENT
# =============================================================================

@dataclass
class SnapshotDocument:
    """Versioned JSON document representing one content type."""
    type: ContentType
    version: int
    payload: Dict[str, Any]
    last_updated: datetime

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "version": self.version,
            "lastUpdated": self.last_updated.isoformat(),
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "SnapshotDocument":
        return cls(
            type=ContentType(data["type"]),
            version=int(data["version"]),
            payload=data.get("payload") or {},
            last_updated=datetime.fromisoformat(data["lastUpdated"]),
        )


# =============================================================================
# PRELOAD RESULT
# =============================================================================

@dataclass
class PreloadMetadata:
    cached: bool
    source: DataSource
    load_time_ms: float
    sources: Dict[str, DataSource] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "cached": self.cached,
            "source": self.source.value,
            "loadTimeMs": round(self.load_time_ms, 2),
            "sources": {name: src.value for name, src in self.sources.items()},
            "failed": list(self.failed),
        }


@dataclass
class PreloadResult:
    """Homepage payload. Constructed per request, never persisted."""
    sections: List[Dict[str, Any]]
    campaigns: List[Dict[str, Any]]
    category_stats: Dict[str, Any]
    metadata: PreloadMetadata

    def to_dict(self) -> Dict:
        return {
            "sections": self.sections,
            "campaigns": self.campaigns,
            "categoryStats": self.category_stats,
            "metadata": self.metadata.to_dict(),
        }
