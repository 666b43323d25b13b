"""
Typed records for the analytics engine.

Raw report documents are schemaless dicts. ``validation`` converts each one
exactly once into a ``ReportRecord``; everything downstream works on these
typed, already-valid values. Field names are snake_case in Python and
camelCase when dumped (``model_dump(by_alias=True)``), matching the
document-store export.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .utils import to_iso

Category = Literal["recyclable", "illegal_dumping", "hazardous_waste"]
Status = Literal["Pending", "Assigned", "In Progress", "Completed", "Rejected"]


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class DateRange(_Record):
    """Inclusive [start_date, end_date] window, both UTC-aware."""

    start_date: datetime
    end_date: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start_date <= ts <= self.end_date

    def to_dict(self) -> dict:
        return {"startDate": to_iso(self.start_date), "endDate": to_iso(self.end_date)}


class StatusHistoryEntry(_Record):
    status: Status
    timestamp: datetime
    changed_by: Optional[str] = None
    notes: Optional[str] = None


class ReportRecord(_Record):
    id: str
    category: Category
    status: Status
    created_at: datetime
    updated_at: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    assigned_driver: Optional[str] = None
    status_history: tuple[StatusHistoryEntry, ...] = ()

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def history_end(self, now: datetime) -> datetime:
        """End of the terminal (active) history entry: updatedAt, else now."""
        return self.updated_at if self.updated_at is not None else now

    def first_entry(self, status: str) -> Optional[StatusHistoryEntry]:
        for entry in self.status_history:
            if entry.status == status:
                return entry
        return None


class ValidationResult(BaseModel):
    """Outcome of validating one raw record. Computed per call, never stored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)
    warning_reasons: list[str] = Field(default_factory=list)
    record: Optional[ReportRecord] = None

    def add_error(self, reason: str, message: str) -> None:
        self.is_valid = False
        self.errors.append(message)
        if reason not in self.reasons:
            self.reasons.append(reason)

    def add_warning(self, message: str, reason: str | None = None) -> None:
        self.warnings.append(message)
        if reason is not None and reason not in self.warning_reasons:
            self.warning_reasons.append(reason)
