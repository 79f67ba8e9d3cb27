from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import ClassVar, FrozenSet, Optional, Tuple, Union

from .timeutil import parse_date, parse_time, parse_timestamp

ALL_WEEKDAYS: FrozenSet[int] = frozenset(range(1, 8))


class DoseStatus(str, Enum):
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"

    @classmethod
    def parse(cls, value: Union[str, "DoseStatus"]) -> "DoseStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown dose status: {value!r}") from None


class TimingBucket(str, Enum):
    ON_TIME = "on_time"
    MODERATE_DEVIATION = "moderate_deviation"
    LARGE_DEVIATION = "large_deviation"


@dataclass(frozen=True)
class Prescription:
    id: str
    name: str
    dosage: str = ""
    unit: str = ""
    units_per_dose: int = 1
    notes: str = ""
    is_active: bool = True

    @classmethod
    def from_record(cls, rec: dict) -> "Prescription":
        return cls(
            id=str(rec["id"]),
            name=rec["name"],
            dosage=rec.get("dosage") or "",
            unit=rec.get("unit") or "",
            units_per_dose=int(rec.get("units_per_dose") or 1),
            notes=rec.get("notes") or "",
            is_active=bool(rec.get("is_active", True)),
        )


@dataclass(frozen=True)
class DoseSchedule:
    """Weekly recurrence rule: one dose time on a set of ISO weekdays (1=Mon..7=Sun)."""

    prescription_id: str
    dose_time: time
    quantity: int = 1
    days_of_week: FrozenSet[int] = ALL_WEEKDAYS
    is_active: bool = True
    id: Optional[str] = None

    @classmethod
    def from_record(cls, rec: dict) -> "DoseSchedule":
        days = rec.get("days_of_week")
        return cls(
            prescription_id=str(rec["prescription_id"]),
            dose_time=parse_time(rec["dose_time"]),
            quantity=int(rec.get("quantity", 1)),
            days_of_week=ALL_WEEKDAYS if days is None else frozenset(int(d) for d in days),
            is_active=bool(rec.get("is_active", True)),
            id=str(rec["id"]) if rec.get("id") is not None else None,
        )


@dataclass(frozen=True)
class DoseInstant:
    prescription_id: str
    scheduled_at: datetime
    quantity: int = 1
    schedule_id: Optional[str] = None

    @property
    def scheduled_date(self) -> date:
        return self.scheduled_at.date()

    @property
    def scheduled_time(self) -> time:
        return self.scheduled_at.time()


@dataclass(frozen=True)
class MedicationLog:
    prescription_id: str
    scheduled_time: datetime
    status: DoseStatus = DoseStatus.PENDING
    taken_time: Optional[datetime] = None
    quantity_taken: Optional[int] = None
    is_time_corrected: bool = False
    notes: str = ""
    id: Optional[str] = None

    @classmethod
    def from_record(cls, rec: dict, zone=None) -> "MedicationLog":
        taken = rec.get("taken_time")
        qty = rec.get("quantity_taken")
        return cls(
            prescription_id=str(rec["prescription_id"]),
            scheduled_time=parse_timestamp(rec["scheduled_time"], zone),
            status=DoseStatus.parse(rec.get("status") or DoseStatus.PENDING),
            taken_time=parse_timestamp(taken, zone) if taken else None,
            quantity_taken=int(qty) if qty is not None else None,
            is_time_corrected=bool(rec.get("is_time_corrected", False)),
            notes=rec.get("notes") or "",
            id=str(rec["id"]) if rec.get("id") is not None else None,
        )


@dataclass(frozen=True)
class MedicationHistory:
    prescription_id: str
    scheduled_date: date
    scheduled_time: time
    actual_taken_datetime: datetime
    quantity_taken: int = 1
    prescription_name: str = ""
    dosage: str = ""
    is_corrected: bool = False
    notes: str = ""
    id: Optional[str] = None

    @property
    def scheduled_at(self) -> datetime:
        return datetime.combine(self.scheduled_date, self.scheduled_time)

    @classmethod
    def from_record(cls, rec: dict, zone=None) -> "MedicationHistory":
        return cls(
            prescription_id=str(rec["prescription_id"]),
            scheduled_date=parse_date(rec["scheduled_date"]),
            scheduled_time=parse_time(rec["scheduled_time"]),
            actual_taken_datetime=parse_timestamp(rec["actual_taken_datetime"], zone),
            quantity_taken=int(rec.get("quantity_taken") or 1),
            prescription_name=rec.get("prescription_name") or "",
            dosage=rec.get("dosage") or "",
            is_corrected=bool(rec.get("is_corrected", False)),
            notes=rec.get("notes") or "",
            id=str(rec["id"]) if rec.get("id") is not None else None,
        )


# Event sources, in precedence order. Lower priority value wins.


@dataclass(frozen=True)
class HistorySource:
    event: MedicationHistory
    priority: ClassVar[int] = 0
    kind: ClassVar[str] = "history"


@dataclass(frozen=True)
class LogSource:
    event: MedicationLog
    priority: ClassVar[int] = 1
    kind: ClassVar[str] = "log"


EventSource = Union[HistorySource, LogSource]


@dataclass(frozen=True)
class ReconciledDose:
    instant: DoseInstant
    status: DoseStatus
    source: Optional[EventSource] = None
    log: Optional[MedicationLog] = None
    history_matches: Tuple[MedicationHistory, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return len(self.history_matches) > 1

    @property
    def history(self) -> Optional[MedicationHistory]:
        if isinstance(self.source, HistorySource):
            return self.source.event
        return None

    @property
    def actual_taken_at(self) -> Optional[datetime]:
        entry = self.history
        return entry.actual_taken_datetime if entry else None

    def is_future(self, now: datetime) -> bool:
        return self.instant.scheduled_at > now


@dataclass(frozen=True)
class ReconciliationWarning:
    prescription_id: str
    scheduled_at: datetime
    history_ids: Tuple[Optional[str], ...]
    message: str


@dataclass(frozen=True)
class TimingClassification:
    offset_minutes: int
    bucket: TimingBucket
    corrected: bool
    stored_corrected: Optional[bool] = None

    @property
    def flag_mismatch(self) -> bool:
        return self.stored_corrected is not None and self.stored_corrected != self.corrected


@dataclass(frozen=True)
class AdherenceSummary:
    total: int = 0
    taken: int = 0
    missed: int = 0
    pending: int = 0
    skipped: int = 0
    adherence_rate: int = 0
    on_time_rate: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "taken": self.taken,
            "missed": self.missed,
            "pending": self.pending,
            "skipped": self.skipped,
            "adherence_rate": self.adherence_rate,
            "on_time_rate": self.on_time_rate,
        }


@dataclass(frozen=True)
class HistoryStats:
    total: int = 0
    on_time: int = 0
    corrected: int = 0
    on_time_rate: int = 0
    prescription_names: Tuple[str, ...] = field(default_factory=tuple)
