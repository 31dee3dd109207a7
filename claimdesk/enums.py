"""Enum definitions shared by the models, store and scheduler."""

import enum


class CaseStatus(str, enum.Enum):
    new = "New"
    waiting = "Waiting"
    processing = "Processing"
    litigation = "Litigation"
    mediation = "Mediation"
    settled = "Settled"
    judgement = "Judgement"
    completed = "Completed"


# Human-readable labels used in chat messages
STATUS_LABELS = {
    CaseStatus.new: "新案",
    CaseStatus.waiting: "等待中",
    CaseStatus.processing: "處理中",
    CaseStatus.litigation: "訴訟中",
    CaseStatus.mediation: "調解中",
    CaseStatus.settled: "已和解",
    CaseStatus.judgement: "已判決",
    CaseStatus.completed: "已結案",
}

# Statuses the 30-day rule moves to Processing
ESCALATABLE_STATUSES = frozenset({CaseStatus.new, CaseStatus.waiting})


def status_label(status: str | None) -> str:
    """Return the display label for a status, or the raw value if unknown."""
    if not status:
        return "未設定"
    try:
        return STATUS_LABELS[CaseStatus(status)]
    except ValueError:
        return status


class ItineraryStage(str, enum.Enum):
    """Stage tags recorded on an itinerary event once its notice has fired."""

    three_day = "3d"
    one_day = "1d"
    morning = "morning"
    four_hour = "4h"


class HistoryKind(str, enum.Enum):
    system = "system"
    note = "note"


class InboxKind(str, enum.Enum):
    alert = "alert"
    reminder = "reminder"
    itinerary = "itinerary"
    status = "status"
