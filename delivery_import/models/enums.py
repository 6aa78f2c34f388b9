from __future__ import annotations

from enum import Enum

"""Closed value sets for delivery project records.

The values double as the wire/database representation, so they must stay
identical to the member names (the CSV template and exports rely on that).
"""

__all__ = [
    "Stage",
    "Product",
    "Channel",
    "Priority",
    "Status",
    "AuditAction",
    "Outcome",
    "enum_values",
]


class Stage(Enum):
    POC = "POC"
    ONBOARDING = "ONBOARDING"
    PRODUCTION = "PRODUCTION"


class Product(Enum):
    ANALYTICS = "ANALYTICS"
    AI_AGENT = "AI_AGENT"


class Channel(Enum):
    """Delivery channels. Only meaningful for AI_AGENT projects."""
    PSTN = "PSTN"
    WHATSAPP = "WHATSAPP"


class Priority(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Status(Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"


class AuditAction(Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Outcome(Enum):
    """Per-row commit outcome."""
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    FAILED = "FAILED"


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Return member values in declaration order (used in error messages)."""
    return [m.value for m in enum_cls]
