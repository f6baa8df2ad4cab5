"""Levels of engagement (LOE) and the coarse buckets used by the LOE view."""

from __future__ import annotations

from dataclasses import dataclass

STAFF = "staff"
UNKNOWN = "unknown"
STAFF_STATUS = "Staff/Organizer"


@dataclass(frozen=True)
class LOELevel:
    level: int
    key: str
    label: str
    color: str


LOE_LEVELS: tuple[LOELevel, ...] = (
    LOELevel(1, "TeamLeader", "TeamLeader", "#b71c1c"),
    LOELevel(2, "TeamMember", "TeamMember", "#e65100"),
    LOELevel(3, "Member", "Member", "#f57f17"),
    LOELevel(4, "Supporter", "Supporter", "#558b2f"),
)

ALL_BUCKETS: frozenset[str] = frozenset([STAFF, UNKNOWN, *(lvl.key for lvl in LOE_LEVELS)])


def loe_category(status: str | None, is_team_member: bool = False) -> str:
    """Map a free-text LOE status onto a bucket key.

    Roster members are always staff. Otherwise the first level whose number
    ("1." / "1_"), key or label appears in the status wins.
    """
    if is_team_member:
        return STAFF
    if not status or status == "Unknown":
        return UNKNOWN
    lowered = status.lower()
    if "staff" in lowered or "organizer" in lowered:
        return STAFF
    for lvl in LOE_LEVELS:
        if (
            f"{lvl.level}." in lowered
            or f"{lvl.level}_" in lowered
            or lvl.key.lower() in lowered
            or lvl.label.lower() in lowered
        ):
            return lvl.key
    return UNKNOWN


def parse_buckets(values) -> frozenset[str]:
    """Normalize a user-supplied bucket list (case-insensitive keys)."""
    by_lower = {b.lower(): b for b in ALL_BUCKETS}
    selected = set()
    for value in values or ():
        key = by_lower.get(str(value).strip().lower())
        if key is None:
            raise ValueError(f"Unknown engagement level '{value}'. Choose from: {', '.join(sorted(ALL_BUCKETS))}")
        selected.add(key)
    return frozenset(selected)
