"""Chapter and engagement colors."""

from __future__ import annotations

from collections.abc import Mapping

from PIL import ImageColor

RGB = tuple[int, int, int]

CHAPTER_COLORS: dict[str, str] = {
    "Wake": "#dc2626",
    "Durham": "#22c55e",
    "Mecklenburg": "#7c3aed",
    "Guilford": "#ea580c",
    "Forsyth": "#3b82f6",
    "New Hanover": "#be185d",
    "Orange": "#0891b2",
    "Cumberland": "#7c2d12",
    "Unknown": "#6b7280",
    "All Chapters": "#374151",
}

CHAPTER_ALIASES: dict[str, str] = {
    "durham for all": "Durham",
    "durham": "Durham",
    "new hanover for all": "New Hanover",
    "new hanover": "New Hanover",
    "wilmington": "New Hanover",
    "wake": "Wake",
    "wake county": "Wake",
    "mecklenburg": "Mecklenburg",
    "charlotte": "Mecklenburg",
    "guilford": "Guilford",
    "greensboro": "Guilford",
    "forsyth": "Forsyth",
    "winston-salem": "Forsyth",
    "winston salem": "Forsyth",
    "cumberland": "Cumberland",
    "fayetteville": "Cumberland",
    "orange": "Orange",
    "chapel hill": "Orange",
    "carrboro": "Orange",
}

HIGHLIGHT = "#ff6b35"
MULTI_TEAM = "#ff9800"
GOLD = "#ffd700"
DEFAULT_EDGE = "#999999"
DEFAULT_TEAM_EDGE = "#1976d2"
SECTION_LEADER_EDGE = "#7c4dff"
CONSTITUENT_EDGE = "#bbbbbb"
UNKNOWN_FILL = "#cccccc"
UNKNOWN_STROKE = "#999999"


def to_rgb(color: str | RGB) -> RGB:
    if isinstance(color, tuple):
        return color[:3]
    return ImageColor.getrgb(color)[:3]


def chapter_color(chapter: str | None, custom_colors: Mapping[str, str] | None = None) -> str:
    """Primary color for a chapter: custom override, exact, alias, then substring alias."""
    if not chapter:
        return CHAPTER_COLORS["Unknown"]
    if custom_colors and chapter in custom_colors:
        return custom_colors[chapter]
    if chapter in CHAPTER_COLORS:
        return CHAPTER_COLORS[chapter]
    lowered = chapter.strip().lower()
    if lowered in CHAPTER_ALIASES:
        return CHAPTER_COLORS[CHAPTER_ALIASES[lowered]]
    for alias, standard in CHAPTER_ALIASES.items():
        if alias in lowered:
            return CHAPTER_COLORS[standard]
    return CHAPTER_COLORS["Unknown"]


def loe_shade_multiplier(loe_status: str | None) -> float:
    if not loe_status or loe_status == "Unknown":
        return 0.3
    lowered = loe_status.lower()
    if "staff" in lowered or "organizer" in lowered:
        return 1.0
    if "1." in loe_status or "leader" in lowered:
        return 0.85
    if "2." in loe_status or "activist" in lowered:
        return 0.7
    if "3." in loe_status or "member" in lowered:
        return 0.55
    if "4." in loe_status or "supporter" in lowered:
        return 0.4
    if "5." in loe_status or "prospect" in lowered:
        return 0.25
    return 1.0


def loe_shade(base_color: str, loe_status: str | None) -> RGB:
    """Darken a chapter color according to engagement level."""
    factor = loe_shade_multiplier(loe_status)
    r, g, b = to_rgb(base_color)
    return (round(r * factor), round(g * factor), round(b * factor))
