"""Evidentiary payload schemas for unit entries.

Field-submitted payloads arrive from mobile clients and are never trusted:
unknown keys are dropped, non-numeric coordinates are discarded, and enum
values outside the allowed set fall back to their defaults.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PHOTO_TYPES: tuple[str, ...] = (
    "before",
    "during",
    "after",
    "measurement",
    "issue",
    "verification",
    "other",
)
PERFORMER_TIERS: tuple[str, ...] = ("prime", "sub", "sub_of_sub")
WORK_CATEGORIES: tuple[str, ...] = (
    "electrical",
    "civil",
    "overhead",
    "underground",
    "traffic_control",
    "vegetation",
    "inspection",
    "emergency",
    "other",
)

PerformerTier = Literal["prime", "sub", "sub_of_sub"]


def _number_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _text_or_none(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).strip()
    if not text or text.startswith("$"):
        return None
    return text


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GpsFix(_Payload):
    """A device GPS reading."""

    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    altitude: float | None = None
    altitude_accuracy: float | None = Field(default=None, alias="altitudeAccuracy")
    heading: float | None = None
    speed: float | None = None
    captured_at: datetime | None = Field(default=None, alias="capturedAt")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator(
        "latitude",
        "longitude",
        "accuracy",
        "altitude",
        "altitude_accuracy",
        "heading",
        "speed",
        mode="before",
    )
    @classmethod
    def _numeric_only(cls, value: Any) -> float | None:
        return _number_or_none(value)

    @field_validator("captured_at", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> Any:
        if value is None or isinstance(value, (dict, list, bool)):
            return None
        return value

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class UnitPhoto(_Payload):
    """Reference to an uploaded photo held by the file-storage collaborator."""

    url: str | None = None
    storage_key: str | None = Field(default=None, alias="r2Key")
    file_name: str | None = Field(default=None, alias="fileName")
    mime_type: str = Field(default="image/jpeg", alias="mimeType")
    file_size: int | None = Field(default=None, alias="fileSize")
    gps_coordinates: GpsFix | None = Field(default=None, alias="gpsCoordinates")
    captured_at: datetime | None = Field(default=None, alias="capturedAt")
    device_info: str | None = Field(default=None, alias="deviceInfo")
    app_version: str | None = Field(default=None, alias="appVersion")
    photo_type: str = Field(default="after", alias="photoType")
    description: str | None = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator(
        "url",
        "storage_key",
        "file_name",
        "device_info",
        "app_version",
        "description",
        mode="before",
    )
    @classmethod
    def _clean_text(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @field_validator("mime_type", mode="before")
    @classmethod
    def _default_mime(cls, value: Any) -> str:
        return _text_or_none(value) or "image/jpeg"

    @field_validator("file_size", mode="before")
    @classmethod
    def _clean_size(cls, value: Any) -> int | None:
        number = _number_or_none(value)
        return int(number) if number is not None and number >= 0 else None

    @field_validator("gps_coordinates", mode="before")
    @classmethod
    def _clean_gps(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("captured_at", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> Any:
        if value is None or isinstance(value, (dict, list, bool)):
            return None
        return value

    @field_validator("photo_type", mode="before")
    @classmethod
    def _known_photo_type(cls, value: Any) -> str:
        return value if value in PHOTO_TYPES else "after"

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class FieldConditions(_Payload):
    weather: str | None = None
    ground_condition: str | None = Field(default=None, alias="groundCondition")
    access_notes: str | None = Field(default=None, alias="accessNotes")
    safety_notes: str | None = Field(default=None, alias="safetyNotes")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str | None:
        return _text_or_none(value)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class PerformedBy(_Payload):
    """Who performed the work, for prime/sub billing separation."""

    tier: PerformerTier = "prime"
    work_category: str = Field(default="electrical", alias="workCategory")
    foreman_id: int | None = Field(default=None, alias="foremanId")
    foreman_name: str | None = Field(default=None, alias="foremanName")
    sub_contractor_id: int | None = Field(default=None, alias="subContractorId")
    sub_contractor_name: str | None = Field(default=None, alias="subContractorName")
    crew_size: int = Field(default=1, alias="crewSize")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("tier", mode="before")
    @classmethod
    def _known_tier(cls, value: Any) -> str:
        return value if value in PERFORMER_TIERS else "prime"

    @field_validator("work_category", mode="before")
    @classmethod
    def _known_category(cls, value: Any) -> str:
        return value if value in WORK_CATEGORIES else "electrical"

    @field_validator("foreman_id", "sub_contractor_id", mode="before")
    @classmethod
    def _positive_id(cls, value: Any) -> int | None:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            return None
        text = str(value).strip()
        if not text.isdigit() or int(text) <= 0:
            return None
        return int(text)

    @field_validator("foreman_name", "sub_contractor_name", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @field_validator("crew_size", mode="before")
    @classmethod
    def _positive_crew(cls, value: Any) -> int:
        number = _number_or_none(value)
        return int(number) if number is not None and number > 0 else 1

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


__all__ = [
    "FieldConditions",
    "GpsFix",
    "PERFORMER_TIERS",
    "PHOTO_TYPES",
    "PerformedBy",
    "UnitPhoto",
    "WORK_CATEGORIES",
]
