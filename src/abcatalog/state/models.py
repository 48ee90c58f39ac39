"""Catalog data models: categories, items, media records, and derived aggregates."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Type
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import NotFoundError, RecoverableAnomaly
from .letters import ALPHABET, LETTER_COUNT, letter_index


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid4().hex


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AcquisitionStatus(str, Enum):
    """Whether an item has enough approved visual evidence."""

    PENDING = "pending"
    COLLECTING = "collecting"
    COMPLETE = "complete"
    FAILED = "failed"


class PublicationStatus(str, Enum):
    """Visibility of an item to end users."""

    DRAFT = "draft"
    REVIEW = "review"
    PUBLISHED = "published"


class MediaStatus(str, Enum):
    """Approval state of a single media record."""

    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"
    MANUAL_REVIEW = "manual_review"


class SourceProvider(str, Enum):
    """Origin of a media record."""

    UNSPLASH = "unsplash"
    PIXABAY = "pixabay"
    PEXELS = "pexels"
    WIKIMEDIA = "wikimedia"
    DALLE = "dalle"
    GOOGLE_AI = "google-ai"
    MIDJOURNEY = "midjourney"
    STABLE_DIFFUSION = "stable-diffusion"
    MANUAL = "manual"


_ACQUISITION_ALIASES = {
    "completed": "complete",
    "paused": "pending",
    "in_progress": "collecting",
}
_MEDIA_ALIASES = {"manual-review": "manual_review", "review": "manual_review"}

# field: (lowest, highest, default); None means unbounded or absent.
_ITEM_INT_BOUNDS: Dict[str, Tuple[int, Optional[int], Optional[int]]] = {
    "difficulty": (1, 5, 1),
    "target_count": (1, None, None),
    "search_attempts": (0, None, 0),
    "collected_count": (0, None, 0),
    "approved_count": (0, None, 0),
    "rejected_count": (0, None, 0),
}


def _coerce_enum(enum_type: Type[Enum], value: Any, aliases: Mapping[str, str]) -> Any:
    """Map legacy status strings onto ``enum_type``; unknown values become ``None``."""
    if value is None or isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    normalized = aliases.get(normalized, normalized)
    try:
        return enum_type(normalized)
    except ValueError:
        return None


def _bounded_int(value: Any, low: int, high: Optional[int], default: Optional[int]) -> Any:
    """Return ``value`` as an int clamped to ``[low, high]``, or ``default`` if unreadable."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        number = int(float(value))
    except (OverflowError, ValueError):
        return default
    number = max(number, low)
    if high is not None:
        number = min(number, high)
    return number


QUALITY_WEIGHTS = {
    "technical": 0.25,
    "relevance": 0.35,
    "aesthetic": 0.25,
    "usability": 0.15,
}


class QualityBreakdown(BaseModel):
    """Weighted sub-scores behind an overall quality score."""

    technical: float = Field(ge=0, le=10)
    relevance: float = Field(ge=0, le=10)
    aesthetic: float = Field(ge=0, le=10)
    usability: float = Field(ge=0, le=10)

    def weighted_overall(self) -> float:
        """Return the weighted overall score rounded to one decimal."""
        total = sum(getattr(self, name) * weight for name, weight in QUALITY_WEIGHTS.items())
        return round(total, 1)


class QualityScore(BaseModel):
    """Overall quality score on a 0-10 scale plus its optional breakdown."""

    overall: float = Field(ge=0, le=10)
    breakdown: Optional[QualityBreakdown] = None

    @classmethod
    def from_breakdown(cls, breakdown: QualityBreakdown) -> "QualityScore":
        """Build a score whose overall value is the weighted breakdown."""
        return cls(overall=breakdown.weighted_overall(), breakdown=breakdown)


class MediaMetadata(BaseModel):
    """Technical metadata describing a stored media file."""

    width: int = Field(ge=0)
    height: int = Field(ge=0)
    file_size: int = Field(ge=0)
    format: str


class MediaRecord(BaseModel):
    """One candidate or accepted visual representation of an item."""

    id: str = Field(default_factory=new_id)
    source_provider: SourceProvider = SourceProvider.MANUAL
    source_id: str
    source_url: Optional[str] = None
    file_path: str
    metadata: Optional[MediaMetadata] = None
    quality_score: Optional[QualityScore] = None
    status: MediaStatus = MediaStatus.PENDING
    is_primary: bool = False
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _utc_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        coerced = _coerce_enum(MediaStatus, value, _MEDIA_ALIASES)
        return MediaStatus.PENDING if coerced is None else coerced

    @property
    def is_live(self) -> bool:
        """Return whether the record has not been deleted."""
        return self.deleted_at is None

    @property
    def overall_score(self) -> Optional[float]:
        """Return the overall quality score, if one was computed."""
        return self.quality_score.overall if self.quality_score is not None else None


class Item(BaseModel):
    """A vocabulary entry bucketed under one letter of a category."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    letter: str
    difficulty: int = Field(default=1, ge=1, le=5)
    tags: List[str] = Field(default_factory=list)
    target_count: Optional[int] = Field(default=None, ge=1)
    media: List[MediaRecord] = Field(default_factory=list)
    acquisition_status: Optional[AcquisitionStatus] = AcquisitionStatus.PENDING
    publication_status: Optional[PublicationStatus] = PublicationStatus.DRAFT
    collected_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    search_attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    published_by: Optional[str] = None
    archived_at: Optional[datetime] = None
    load_repairs: Dict[str, str] = Field(default_factory=dict, exclude=True, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _repair_stored_values(cls, data: Any) -> Any:
        # Malformed stored values get safe defaults; each substitution is noted
        # in load_repairs so the next recompute reports it.
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        repairs = dict(data.get("load_repairs") or {})
        if not isinstance(data.get("name"), str):
            repairs["name"] = f"name {data.get('name')!r} replaced with an empty string"
            data["name"] = ""
        if "description" in data and not isinstance(data["description"], str):
            repairs["description"] = "non-text description cleared"
            data["description"] = ""
        if "tags" in data and not isinstance(data["tags"], list):
            repairs["tags"] = "non-list tags cleared"
            data["tags"] = []
        for field, (low, high, default) in _ITEM_INT_BOUNDS.items():
            if field not in data:
                continue
            raw = data[field]
            repaired = _bounded_int(raw, low, high, default)
            if repaired != raw or type(repaired) is not type(raw):
                repairs[field] = f"{field} {raw!r} replaced with {repaired!r}"
                data[field] = repaired
        data["load_repairs"] = repairs
        return data

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _utc_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("letter", mode="before")
    @classmethod
    def _upper_letter(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("acquisition_status", mode="before")
    @classmethod
    def _coerce_acquisition(cls, value: Any) -> Any:
        return _coerce_enum(AcquisitionStatus, value, _ACQUISITION_ALIASES)

    @field_validator("publication_status", mode="before")
    @classmethod
    def _coerce_publication(cls, value: Any) -> Any:
        return _coerce_enum(PublicationStatus, value, {})

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def primary(self) -> Optional[MediaRecord]:
        """Return the primary media record, if any."""
        for record in self.media:
            if record.is_primary and record.is_live:
                return record
        return None

    def live_media(self) -> List[MediaRecord]:
        """Return media records that have not been deleted."""
        return [record for record in self.media if record.is_live]

    def find_media(self, record_id: str) -> MediaRecord:
        """Return the live media record with ``record_id``.

        Raises:
            NotFoundError: If the item holds no such record.
        """
        for record in self.media:
            if record.id == record_id and record.is_live:
                return record
        raise NotFoundError(f"media record {record_id!r} not found on item {self.id!r}")


class CollectionStrategy(BaseModel):
    """Per-category acquisition and quality gate parameters."""

    target_images_per_item: int = Field(default=3, ge=1)
    min_quality_threshold: float = Field(default=7.0, ge=0, le=10)
    auto_approval_threshold: float = Field(default=8.5, ge=0, le=10)
    max_search_attempts: int = Field(default=5, ge=1)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "CollectionStrategy":
        if self.auto_approval_threshold < self.min_quality_threshold:
            raise ValueError("auto_approval_threshold must be >= min_quality_threshold")
        return self


class CategoryAggregate(BaseModel):
    """Counters derived from a category's items and media.

    Always produced by the recalculator; never edited by hand.
    """

    total_items: int = 0
    archived_items: int = 0
    acquisition_counts: Dict[AcquisitionStatus, int] = Field(
        default_factory=lambda: {status: 0 for status in AcquisitionStatus}
    )
    publication_counts: Dict[PublicationStatus, int] = Field(
        default_factory=lambda: {status: 0 for status in PublicationStatus}
    )
    total_media: int = 0
    media_counts: Dict[MediaStatus, int] = Field(
        default_factory=lambda: {status: 0 for status in MediaStatus}
    )
    average_quality: Optional[float] = None
    letters_filled: List[bool] = Field(default_factory=lambda: [False] * LETTER_COUNT)
    filled_letters: int = 0
    anomalies: List[RecoverableAnomaly] = Field(default_factory=list)

    @property
    def completed_items(self) -> int:
        return self.acquisition_counts.get(AcquisitionStatus.COMPLETE, 0)

    @property
    def published_items(self) -> int:
        return self.publication_counts.get(PublicationStatus.PUBLISHED, 0)


def _empty_slots() -> List[List[Item]]:
    return [[] for _ in range(LETTER_COUNT)]


def _fill_slot_letter(letter: str, slot: Any) -> Any:
    """Give stored items without a usable letter the letter of their slot."""
    if not isinstance(slot, list):
        return slot
    filled: List[Any] = []
    for raw in slot:
        if isinstance(raw, Mapping) and not (
            isinstance(raw.get("letter"), str) and raw["letter"].strip()
        ):
            repairs = dict(raw.get("load_repairs") or {})
            repairs["letter"] = f"missing letter taken from slot {letter}"
            raw = {**raw, "letter": letter, "load_repairs": repairs}
        filled.append(raw)
    return filled


class Category(BaseModel):
    """A themed vocabulary collection holding exactly 26 letter slots."""

    id: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")
    name: str
    description: str = ""
    icon: str = ""
    color: str = ""
    group: str = "educational"
    tags: List[str] = Field(default_factory=list)
    strategy: CollectionStrategy = Field(default_factory=CollectionStrategy)
    letters: List[List[Item]] = Field(default_factory=_empty_slots)
    aggregate: CategoryAggregate = Field(default_factory=CategoryAggregate)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("letters", mode="before")
    @classmethod
    def _normalize_slots(cls, value: Any) -> Any:
        # Accept the legacy {"A": [...], ...} shape; absent letters become empty slots.
        if isinstance(value, Mapping):
            unknown = [key for key in value if str(key).upper() not in ALPHABET]
            if unknown:
                raise ValueError(f"unknown letter keys: {unknown}")
            upper = {str(key).upper(): items for key, items in value.items()}
            value = [list(upper.get(letter) or []) for letter in ALPHABET]
        if isinstance(value, list) and len(value) == LETTER_COUNT:
            value = [_fill_slot_letter(ALPHABET[index], slot) for index, slot in enumerate(value)]
        return value

    @field_validator("letters")
    @classmethod
    def _exactly_26_slots(cls, value: List[List[Item]]) -> List[List[Item]]:
        if len(value) != LETTER_COUNT:
            raise ValueError(f"expected {LETTER_COUNT} letter slots, got {len(value)}")
        return value

    def bucket(self, letter: str) -> List[Item]:
        """Return the mutable item list stored under ``letter``."""
        return self.letters[letter_index(letter)]

    def iter_letters(self) -> Iterator[Tuple[str, List[Item]]]:
        """Yield ``(letter, items)`` for all 26 slots in alphabetical order."""
        for index, items in enumerate(self.letters):
            yield ALPHABET[index], items

    def iter_items(self, *, include_archived: bool = False) -> Iterator[Tuple[str, Item]]:
        """Yield ``(letter, item)`` pairs in slot order."""
        for letter, items in self.iter_letters():
            for item in items:
                if include_archived or not item.is_archived:
                    yield letter, item

    def find_item(self, item_id: str) -> Tuple[str, Item]:
        """Return the letter and item for ``item_id``.

        Raises:
            NotFoundError: If no item in the category has that id.
        """
        for letter, item in self.iter_items(include_archived=True):
            if item.id == item_id:
                return letter, item
        raise NotFoundError(f"item {item_id!r} not found in category {self.id!r}")


class AuditEvent(BaseModel):
    """Description of a state change handed to the audit sink."""

    actor: str
    action: str
    resource_type: str = "item"
    resource_id: str
    category_id: Optional[str] = None
    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class CategoryDraft(BaseModel):
    """Operator input for a new category."""

    id: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")
    name: str
    description: str = ""
    icon: str = ""
    color: str = ""
    group: str = "educational"
    tags: List[str] = Field(default_factory=list)
    strategy: Optional[CollectionStrategy] = None


class ItemDraft(BaseModel):
    """Operator or import-pipeline input for a new item."""

    id: Optional[str] = None
    name: str = Field(min_length=1)
    description: str = ""
    difficulty: int = Field(default=1, ge=1, le=5)
    tags: List[str] = Field(default_factory=list)
    target_count: Optional[int] = Field(default=None, ge=1)
    created_at: Optional[datetime] = None


class MediaDraft(BaseModel):
    """Candidate media produced by an acquisition worker."""

    id: Optional[str] = None
    source_provider: SourceProvider = SourceProvider.MANUAL
    source_id: str
    source_url: Optional[str] = None
    file_path: str
    metadata: Optional[MediaMetadata] = None
    quality_score: Optional[QualityScore] = None
    created_at: Optional[datetime] = None


__all__ = [
    "utcnow",
    "new_id",
    "AcquisitionStatus",
    "PublicationStatus",
    "MediaStatus",
    "SourceProvider",
    "QUALITY_WEIGHTS",
    "QualityBreakdown",
    "QualityScore",
    "MediaMetadata",
    "MediaRecord",
    "Item",
    "CollectionStrategy",
    "CategoryAggregate",
    "Category",
    "AuditEvent",
    "CategoryDraft",
    "ItemDraft",
    "MediaDraft",
]
