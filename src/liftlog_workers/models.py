"""Session records and analytics documents.

``SetLog``/``ExerciseLog``/``SessionRecord`` are the ingestion boundary:
numeric fields captured on the phone may arrive as strings or be missing,
and are coerced here so that everything downstream works on plain numbers.
``PersonalRecord``/``UserAnalyticsSummary`` are the persisted aggregate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import as_utc, coerce_number, coerce_reps


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds, as exported by the mobile client
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None
    return None


class _CapturedModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SetLog(_CapturedModel):
    set_index: int = 0
    weight: float = 0.0
    reps: int = 0
    rir: float | None = None

    @field_validator("weight", mode="before")
    @classmethod
    def coerce_weight(cls, value: Any) -> float:
        return max(0.0, coerce_number(value))

    @field_validator("reps", "set_index", mode="before")
    @classmethod
    def coerce_count(cls, value: Any) -> int:
        return max(0, coerce_reps(value))

    @field_validator("rir", mode="before")
    @classmethod
    def coerce_rir(cls, value: Any) -> float | None:
        if value is None or value == "":
            return None
        return coerce_number(value)

    @property
    def volume(self) -> float:
        return self.weight * self.reps


class ExerciseLog(_CapturedModel):
    exercise_id: str | None = None
    routine_exercise_id: str | None = None
    name: str = ""
    sets: list[SetLog] = Field(default_factory=list)

    @field_validator("exercise_id", "routine_exercise_id", mode="before")
    @classmethod
    def trim_optional_id(cls, value: Any) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @property
    def volume(self) -> float:
        return sum(s.volume for s in self.sets)


class SessionRecord(_CapturedModel):
    """One completed workout."""

    id: str | None = None
    user_id: str
    routine_id: str | None = None
    routine_name: str | None = None
    day_index: int = 0
    duration_seconds: float = 0.0
    performed_at: datetime | None = None
    notes: str | None = None
    exercises: list[ExerciseLog] = Field(default_factory=list)

    @field_validator("id", "user_id", "routine_id", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    @field_validator("day_index", mode="before")
    @classmethod
    def coerce_day_index(cls, value: Any) -> int:
        return coerce_reps(value)

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def coerce_duration(cls, value: Any) -> float:
        return coerce_number(value)

    @field_validator("performed_at", mode="before")
    @classmethod
    def parse_performed_at(cls, value: Any) -> datetime | None:
        parsed = _parse_timestamp(value)
        return as_utc(parsed) if parsed is not None else None

    @property
    def volume(self) -> float:
        return sum(e.volume for e in self.exercises)


@dataclass(frozen=True)
class ExerciseMax:
    """Best single set (by volume) of one exercise within one session."""

    exercise_name: str
    weight: float
    reps: int

    @property
    def volume(self) -> float:
        return self.weight * self.reps


@dataclass(frozen=True)
class WorkoutAnalyticsInput:
    session_volume: float
    exercise_maxes: tuple[ExerciseMax, ...]
    training_date: str
    performed_at: datetime


class PersonalRecord(BaseModel):
    exercise_name: str
    exercise_key: str
    weight: float
    reps: int
    volume: float
    achieved_at: datetime


class UserAnalyticsSummary(BaseModel):
    """The single persisted aggregate per user (``user_analytics`` row)."""

    user_id: str
    total_volume: float = 0.0
    total_workouts: int = 0
    personal_records: dict[str, PersonalRecord] = Field(default_factory=dict)
    training_dates: list[str] = Field(default_factory=list)
    consistency_score: int = Field(default=0, ge=0, le=100)
    last_training_date: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    def to_document(self) -> dict[str, Any]:
        """JSON-ready body for the ``data`` column (version/updated_at live in columns)."""
        return self.model_dump(mode="json", exclude={"version", "updated_at"})
