"""
Status Policy: maps a stored status value to one of the three canonical states
and to the card treatment the screens render.
"""

from dataclasses import dataclass, field

OPEN = "open"
NEEDS_FOLLOWUP = "needs_followup"
RESOLVED = "resolved"
CANONICAL_STATUSES: tuple[str, ...] = (OPEN, NEEDS_FOLLOWUP, RESOLVED)

_LABELS = {OPEN: "OPEN", NEEDS_FOLLOWUP: "FOLLOW-UP", RESOLVED: "RESOLVED"}

_GLOW = {
    "high": {
        "box_shadow": "0 0 18px rgba(255, 80, 80, 0.25), 0 0 42px rgba(255, 80, 80, 0.12)",
        "border": "1px solid rgba(255, 80, 80, 0.28)",
    },
    "medium": {
        "box_shadow": "0 0 18px rgba(255, 190, 60, 0.22), 0 0 42px rgba(255, 190, 60, 0.10)",
        "border": "1px solid rgba(255, 190, 60, 0.26)",
    },
    "low": {
        "box_shadow": "0 0 18px rgba(80, 255, 160, 0.18), 0 0 42px rgba(80, 255, 160, 0.08)",
        "border": "1px solid rgba(80, 255, 160, 0.22)",
    },
}

_DEAD = {
    "opacity": "0.35",
    "filter": "grayscale(1) saturate(0.2)",
    "background": "rgba(0,0,0,0.55)",
    "border": "1px solid rgba(255,255,255,0.08)",
    "box_shadow": "none",
}


@dataclass(frozen=True)
class Treatment:
    name: str  # glow-high, glow-medium, glow-low, dead
    style: dict[str, str] = field(default_factory=dict)
    pulse: bool = False


def normalize_status(status: str | None) -> str:
    """Trim + lower-case; anything blank or unrecognised is 'open'."""
    s = (status or "").strip().lower()
    return s if s in CANONICAL_STATUSES else OPEN


def is_resolved(status: str | None) -> bool:
    return normalize_status(status) == RESOLVED


def is_needs_followup(status: str | None) -> bool:
    return normalize_status(status) == NEEDS_FOLLOWUP


def status_label(status: str | None) -> str:
    return _LABELS[normalize_status(status)]


def card_treatment(status: str | None, priority: str | None) -> Treatment:
    if is_resolved(status):
        return Treatment(name="dead", style=dict(_DEAD))
    p = (priority or "").strip().lower()
    level = p if p in ("high", "medium") else "low"
    return Treatment(name=f"glow-{level}", style=dict(_GLOW[level]), pulse=is_needs_followup(status))
