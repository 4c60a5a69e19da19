"""Pydantic schema definitions for the manga ledger API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_validator,
    model_validator,
)

MAX_DECLARED_VOLUMES = 1000


class APIModel(BaseModel):
    """Base model with conservative defaults."""

    model_config = ConfigDict(extra="forbid")


class SeriesStatus(str, Enum):
    """Reading status of a tracked series."""

    READING = "READING"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"
    DROPPED = "DROPPED"
    PLAN_TO_READ = "PLAN_TO_READ"


class Editorial(str, Enum):
    """Publisher imprint of the edition being collected."""

    PLANETA_COMIC = "PLANETA_COMIC"
    PLANETA_DEAGOSTINI = "PLANETA_DEAGOSTINI"


class Condition(str, Enum):
    NEW = "NEW"
    LIKE_NEW = "LIKE_NEW"
    VERY_GOOD = "VERY_GOOD"
    GOOD = "GOOD"
    ACCEPTABLE = "ACCEPTABLE"
    POOR = "POOR"


class Store(str, Enum):
    """Where a volume was acquired."""

    AMAZON = "AMAZON"
    VINTED = "VINTED"
    WALLAPOP = "WALLAPOP"
    ABACUS = "ABACUS"
    CASA_DEL_LIBRO = "CASA_DEL_LIBRO"
    NA = "NA"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _require_fields(model: BaseModel, names: tuple[str, ...]) -> None:
    for name in names:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


class User(APIModel):
    """Identity owning a collection."""

    id: str
    email: str
    name: str | None = None
    avatar_url: str | None = None
    created_at: datetime


class SeriesFields(APIModel):
    """Optional attributes shared by series create and update payloads."""

    author: str | None = Field(default=None, max_length=255)
    editorial: Editorial | None = None
    total_volumes: int | None = Field(
        default=None,
        ge=0,
        le=MAX_DECLARED_VOLUMES,
        description="Declared number of volumes, unknown when null",
    )
    cover_image: HttpUrl | None = None
    description: str | None = Field(default=None, max_length=2000)
    retail_price: float | None = Field(
        default=None, ge=0, description="Retail price per volume"
    )
    mal_id: int | None = Field(default=None, description="MyAnimeList identifier")

    @field_validator("author", "cover_image", "description", mode="before")
    @classmethod
    def blank_as_null(cls, value: Any) -> Any:
        """Treat empty form fields as absent."""
        return _blank_to_none(value)


class CreateSeriesRequest(SeriesFields):
    """Payload accepted when creating a series."""

    title: str = Field(min_length=1, max_length=255)
    status: SeriesStatus = SeriesStatus.READING
    publishing: bool = False

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value


class CreateSeriesWithVolumesRequest(CreateSeriesRequest):
    """Series payload plus the number of placeholder volumes to generate."""

    declared_total: int | None = Field(
        default=None,
        ge=0,
        le=MAX_DECLARED_VOLUMES,
        description="Defaults to total_volumes when omitted",
    )


class UpdateSeriesRequest(SeriesFields):
    """Partial update model for series attributes.

    Optional attributes may be cleared by sending an explicit null.
    """

    title: str | None = Field(default=None, min_length=1, max_length=255)
    status: SeriesStatus | None = None
    publishing: bool | None = None

    @model_validator(mode="after")
    def ensure_payload(self) -> "UpdateSeriesRequest":
        """Prevent empty payloads since PATCH must change something."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        _require_fields(self, ("title", "status", "publishing"))
        if self.title is not None and not self.title.strip():
            raise ValueError("Title is required")
        return self


class Volume(APIModel):
    """Representation of a stored volume."""

    volume_id: int = Field(description="Primary key for a volume")
    series_id: int
    volume_number: int
    title: str | None = None
    isbn: str | None = None
    owned: bool
    read: bool
    price_paid: float | None = None
    condition: Condition
    store: Store | None = None
    purchase_date: datetime | None = None
    read_date: datetime | None = None
    notes: str | None = None
    cover_image: str | None = None
    created_at: datetime
    updated_at: datetime


class Series(APIModel):
    """Representation of a stored series."""

    series_id: int = Field(description="Primary key for a series")
    user_id: str
    title: str
    author: str | None = None
    editorial: Editorial | None = None
    status: SeriesStatus
    publishing: bool
    total_volumes: int | None = None
    cover_image: str | None = None
    description: str | None = None
    retail_price: float | None = None
    mal_id: int | None = None
    created_at: datetime
    updated_at: datetime


class SeriesDetail(Series):
    """A series together with its volumes ordered by number."""

    volumes: list[Volume] = Field(default_factory=list)


class ListSeriesResponse(APIModel):
    series: list[SeriesDetail]


class VolumeFields(APIModel):
    """Optional attributes shared by volume create and update payloads."""

    title: str | None = Field(default=None, max_length=255)
    isbn: str | None = Field(default=None, max_length=32)
    price_paid: float | None = Field(default=None, ge=0)
    store: Store | None = None
    purchase_date: datetime | None = None
    read_date: datetime | None = None
    notes: str | None = Field(default=None, max_length=1000)
    cover_image: HttpUrl | None = None

    @field_validator("title", "isbn", "notes", "cover_image", mode="before")
    @classmethod
    def blank_as_null(cls, value: Any) -> Any:
        return _blank_to_none(value)


class CreateVolumeRequest(VolumeFields):
    """Payload accepted when adding a single volume to a series."""

    volume_number: int = Field(ge=1)
    owned: bool = False
    read: bool = False
    condition: Condition = Condition.NEW


class UpdateVolumeRequest(VolumeFields):
    """Partial update schema for volumes."""

    volume_number: int | None = Field(default=None, ge=1)
    owned: bool | None = None
    read: bool | None = None
    condition: Condition | None = None

    @model_validator(mode="after")
    def ensure_payload(self) -> "UpdateVolumeRequest":
        """Reject empty updates to keep validation consistent."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        _require_fields(self, ("volume_number", "owned", "read", "condition"))
        return self


VolumeNumber = Annotated[int, Field(ge=1)]


class MarkVolumesOwnedRequest(APIModel):
    volume_numbers: list[VolumeNumber] = Field(min_length=1)
    owned: bool = True


class MarkVolumesReadRequest(APIModel):
    volume_numbers: list[VolumeNumber] = Field(min_length=1)
    read: bool = True


class MarkOwnedUpToRequest(APIModel):
    up_to: int = Field(ge=1, description="Highest volume number to mark owned")


class BulkUpdateResult(APIModel):
    """Outcome of a set-oriented volume update."""

    series_id: int
    updated: int = Field(description="Number of volume rows changed")


class StatusBreakdown(APIModel):
    """Series count per reading status."""

    reading: int = 0
    completed: int = 0
    on_hold: int = 0
    dropped: int = 0
    plan_to_read: int = 0


class SeriesStats(APIModel):
    """Collection-wide aggregates for the dashboard."""

    total_series: int
    total_volumes_owned: int
    total_volumes_read: int
    total_spent: float
    total_retail_value: float
    total_savings: float
    savings_percentage: float
    total_expected_volumes: int
    average_price: float
    by_status: StatusBreakdown
    collection_progress: float
    reading_progress: float


class VolumeStats(APIModel):
    """Aggregates for the volumes of a single series."""

    series_id: int
    owned: int
    read: int
    missing: int
    total: int
    total_spent: float
    total_retail_value: float
    average_price: float
    savings: float
    savings_percentage: float
    owned_progress: float
    read_progress: float


class CatalogEntry(APIModel):
    """A candidate match returned by the metadata catalog."""

    mal_id: int
    title: str
    title_english: str | None = None
    title_japanese: str | None = None
    image_url: str | None = None
    small_image_url: str | None = None
    large_image_url: str | None = None
    volumes: int | None = None
    chapters: int | None = None
    status: str | None = None
    publishing: bool = False
    synopsis: str | None = None
    authors: list[str] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    score: float | None = None


class CatalogSearchResponse(APIModel):
    results: list[CatalogEntry]


SerializedModel = Series | Volume | User


def dict_from_row(row: Any) -> dict[str, Any]:
    """Convert a sqlite Row into a standard dict."""
    return {key: row[key] for key in row.keys()}
