"""Data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal


DoseStatus = Literal["scheduled", "taken", "missed"]
TimelineStatus = Literal["completed", "missed", "upcoming", "pending", "overdue"]


@dataclass
class ReminderDefinition:
    """A recurring weekly reminder for one medication."""

    user_id: str
    medication_id: str
    time_of_day: str  # HH:MM, in the user's timezone
    active_weekdays: set[int]  # Monday=1 .. Sunday=7
    is_active: bool = True
    id: int | None = None


@dataclass
class DoseEvent:
    """A single expected dose, as recorded in the adherence log."""

    user_id: str
    medication_id: str
    scheduled_time: datetime  # UTC
    status: DoseStatus
    taken_time: datetime | None = None  # UTC, only when taken
    notes: str | None = None
    created_at: datetime | None = None
    id: int | None = None


@dataclass
class DoseWindow:
    """Where "now" falls relative to a reminder's time of day."""

    is_due: bool
    is_overdue: bool


@dataclass
class DoseTiming:
    """Banner state for a medication's next dose."""

    is_due: bool
    next_time: str
    is_overdue: bool
    current_reminder_time: str | None = None
    upcoming_reminder_times: List[str] = field(default_factory=list)


@dataclass
class AdherenceSummary:
    """Today's dashboard counts."""

    total_today: int = 0
    completed_today: int = 0
    missed_today: int = 0
    pending_today: int = 0
    inconsistent: bool = False  # pending would have been negative


@dataclass
class AdherenceStats:
    """Adherence over a trailing window for one medication."""

    total_doses: int = 0
    taken_doses: int = 0
    missed_doses: int = 0
    pending_doses: int = 0
    adherence_rate: float = 0.0  # percent
    streak: int = 0
    last_taken: datetime | None = None


@dataclass
class MissedDoseInfo:
    """A dose that was missed, or is overdue and about to be."""

    medication_id: str
    scheduled_time: datetime  # UTC
    reminder_time: str  # HH:MM
    status: Literal["missed", "overdue"]
    overdue_minutes: int | None = None


@dataclass
class RecentDose:
    """Whether the current reminder window already has a taken dose."""

    recently_taken: bool
    taken_time: datetime | None = None


@dataclass
class NextDoseInfo:
    """Next occurrence of a single reminder."""

    time: str  # HH:MM
    date: datetime  # local
    formatted_time: str
    is_today: bool
    is_tomorrow: bool
    minutes_until: int


@dataclass
class TimelineEntry:
    """One reminder's status on a given day."""

    medication_id: str
    reminder_time: str
    scheduled_time: datetime  # UTC
    status: TimelineStatus
