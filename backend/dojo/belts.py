# dojo/belts.py
"""
BJJ belt progression rules.

Pure functions over two fixed tracks (adult and kids). The database keeps a
belt catalog (BeltRank) seeded from BELT_CATALOG below, but every rule here
works on belt *names* so it can be used without a session.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

ADULT_PROGRESSION: List[str] = ["white", "blue", "purple", "brown", "black"]

KIDS_PROGRESSION: List[str] = [
    "kids_white",
    "kids_grey_white",
    "kids_grey",
    "kids_grey_black",
    "kids_yellow_white",
    "kids_yellow",
    "kids_yellow_black",
    "kids_orange_white",
    "kids_orange",
    "kids_orange_black",
    "kids_green_white",
    "kids_green",
    "kids_green_black",
]

# Kids graduate onto the adult track here
KIDS_GRADUATION_BELT = "white"

MAX_STRIPES = 4
MIN_DAYS_ADULT = 180
MIN_DAYS_KIDS = 120
MIN_CLASSES_ADULT = 50
MIN_CLASSES_KIDS = 30

DEFAULT_ACADEMY_AVERAGE_DAYS = 365

BELT_COLORS: Dict[str, str] = {
    "white": "#FFFFFF",
    "blue": "#0066CC",
    "purple": "#6B21A8",
    "brown": "#8B4513",
    "black": "#000000",
    "kids_white": "#FFFFFF",
    "kids_grey_white": "#D3D3D3",
    "kids_grey": "#808080",
    "kids_grey_black": "#5C5C5C",
    "kids_yellow_white": "#FFEB99",
    "kids_yellow": "#FFD700",
    "kids_yellow_black": "#E6C200",
    "kids_orange_white": "#FFB366",
    "kids_orange": "#FF8C00",
    "kids_orange_black": "#E67E00",
    "kids_green_white": "#90EE90",
    "kids_green": "#228B22",
    "kids_green_black": "#1B6B1B",
}

# (start, end)
BELT_GRADIENTS: Dict[str, tuple] = {
    "white": ("#F8F9FA", "#FFFFFF"),
    "blue": ("#0047AB", "#1E90FF"),
    "purple": ("#581C87", "#7C3AED"),
    "brown": ("#654321", "#A0522D"),
    "black": ("#000000", "#1F1F1F"),
    "kids_white": ("#F8F9FA", "#FFFFFF"),
    "kids_grey_white": ("#C0C0C0", "#E8E8E8"),
    "kids_grey": ("#696969", "#A9A9A9"),
    "kids_grey_black": ("#404040", "#707070"),
    "kids_yellow_white": ("#FFE66D", "#FFF5CC"),
    "kids_yellow": ("#FFC107", "#FFE135"),
    "kids_yellow_black": ("#CCA000", "#FFDB58"),
    "kids_orange_white": ("#FF9A4D", "#FFCC99"),
    "kids_orange": ("#FF7F00", "#FFA500"),
    "kids_orange_black": ("#CC6F00", "#FF9500"),
    "kids_green_white": ("#7CCD7C", "#B0F0B0"),
    "kids_green": ("#32CD32", "#3CB371"),
    "kids_green_black": ("#0F5A0F", "#2E8B2E"),
}

DEFAULT_BELT_COLOR = "#6B7280"

_ADULT_TYPICAL_MONTHS = {"white": 12, "blue": 24, "purple": 24, "brown": 18, "black": 0}
_KIDS_MIN_AGE = {"grey": 4, "yellow": 7, "orange": 10, "green": 13}


@dataclass(frozen=True)
class PromotionCheck:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str


# -----------------------------
# Progression
# -----------------------------
def get_next_belt(current_belt_name: str, is_kids_belt: bool) -> Optional[str]:
    """
    Next belt on the member's track, or None at black belt / unknown belt.
    The last kids belt leads onto the adult white belt.
    """
    track = KIDS_PROGRESSION if is_kids_belt else ADULT_PROGRESSION
    if current_belt_name not in track:
        return None

    idx = track.index(current_belt_name)
    if idx < len(track) - 1:
        return track[idx + 1]
    if is_kids_belt:
        return KIDS_GRADUATION_BELT
    return None


def is_valid_promotion(current_belt_name: str, new_belt_name: str, is_kids_belt: bool) -> PromotionCheck:
    next_belt = get_next_belt(current_belt_name, is_kids_belt)
    if not next_belt:
        return PromotionCheck(valid=False, error="Already at highest belt rank")
    if new_belt_name != next_belt:
        return PromotionCheck(valid=False, error=f"Cannot skip belts. Next belt should be {next_belt}")
    return PromotionCheck(valid=True)


def is_eligible_for_promotion(
    days_at_belt: int,
    classes_attended: int,
    current_stripes: int,
    is_kids_belt: bool,
    min_days: Optional[int] = None,
    min_classes: Optional[int] = None,
) -> Eligibility:
    """Thresholds default to the kids or adult minimums for the belt."""
    if min_days is None:
        min_days = MIN_DAYS_KIDS if is_kids_belt else MIN_DAYS_ADULT
    if min_classes is None:
        min_classes = MIN_CLASSES_KIDS if is_kids_belt else MIN_CLASSES_ADULT

    if days_at_belt < min_days:
        return Eligibility(False, f"Need {min_days - days_at_belt} more days at current belt")

    if classes_attended < min_classes:
        return Eligibility(False, f"Need {min_classes - classes_attended} more classes")

    if current_stripes >= MAX_STRIPES:
        return Eligibility(True, "Ready for belt promotion (at max stripes)")

    return Eligibility(True, "Ready for stripe promotion")


def estimated_time_to_next_belt(
    days_at_current_belt: int,
    academy_average_days: int = DEFAULT_ACADEMY_AVERAGE_DAYS,
) -> dict:
    remaining = max(0, academy_average_days - days_at_current_belt)
    pct = min(100.0, (days_at_current_belt / academy_average_days) * 100) if academy_average_days else 100.0
    return {"days": remaining, "percentage": int(round(pct))}


# -----------------------------
# Display helpers
# -----------------------------
def get_belt_color(belt_name: str) -> str:
    return BELT_COLORS.get(belt_name, DEFAULT_BELT_COLOR)


def get_belt_gradient(belt_name: str) -> str:
    start, end = BELT_GRADIENTS.get(belt_name) or (get_belt_color(belt_name), get_belt_color(belt_name))
    return f"linear-gradient(135deg, {start} 0%, {end} 100%)"


def format_belt_rank(belt: str, stripes: int) -> str:
    if stripes > 0:
        return f"{belt} - {stripes} {'Stripe' if stripes == 1 else 'Stripes'}"
    return belt


def format_time_since_promotion(promoted_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    days = (now - promoted_at).days
    months = days // 30
    years = days // 365

    if years > 0:
        return f"{years} {'year' if years == 1 else 'years'} ago"
    if months > 0:
        return f"{months} {'month' if months == 1 else 'months'} ago"
    return f"{days} {'day' if days == 1 else 'days'} ago"


def get_belt_emoji(belt_name: str) -> str:
    # order matters: "kids_grey_white" is shown as white
    for key, emoji in (
        ("white", "⚪"),
        ("blue", "\U0001f535"),
        ("purple", "\U0001f7e3"),
        ("brown", "\U0001f7e4"),
        ("black", "⚫"),
        ("grey", "⚪"),
        ("yellow", "\U0001f7e1"),
        ("orange", "\U0001f7e0"),
        ("green", "\U0001f7e2"),
    ):
        if key in belt_name:
            return emoji
    return "\U0001f94b"


def get_promotion_message(member_name: str, new_belt: str, stripes: int, is_stripe_promotion: bool) -> str:
    if is_stripe_promotion:
        return (
            f"Congratulations {member_name}! You've earned your {stripes} "
            f"{'stripe' if stripes == 1 else 'stripes'}! Keep up the great work!"
        )
    return (
        f"Huge congratulations {member_name}! You've been promoted to {new_belt}! "
        f"{get_belt_emoji(new_belt)} Your dedication and hard work have paid off!"
    )


def sort_belt_history(history: Iterable) -> list:
    """Most recent promotion first. Works on anything with `promoted_at`."""
    return sorted(history, key=lambda h: h.promoted_at, reverse=True)


# -----------------------------
# Seed catalog
# -----------------------------
def _kids_display_name(name: str) -> str:
    parts = name.replace("kids_", "").split("_")
    return "-".join(p.capitalize() for p in parts) + " Belt"


def _build_catalog() -> List[dict]:
    rows: List[dict] = []
    for i, name in enumerate(ADULT_PROGRESSION, start=1):
        start, end = BELT_GRADIENTS[name]
        rows.append(
            {
                "name": name,
                "display_name": f"{name.capitalize()} Belt",
                "color_hex": BELT_COLORS[name],
                "gradient_from": start,
                "gradient_to": end,
                "sort_order": i,
                "is_kids_belt": False,
                "min_age": 16,
                "max_age": None,
                "typical_time_months": _ADULT_TYPICAL_MONTHS[name],
                "max_stripes": 0 if name == "black" else MAX_STRIPES,
            }
        )

    for i, name in enumerate(KIDS_PROGRESSION, start=1):
        start, end = BELT_GRADIENTS[name]
        color_group = name.split("_")[1]
        rows.append(
            {
                "name": name,
                "display_name": _kids_display_name(name),
                "color_hex": BELT_COLORS[name],
                "gradient_from": start,
                "gradient_to": end,
                "sort_order": i,
                "is_kids_belt": True,
                "min_age": _KIDS_MIN_AGE.get(color_group, 4),
                "max_age": 15,
                "typical_time_months": 6,
                "max_stripes": MAX_STRIPES,
            }
        )
    return rows


BELT_CATALOG: List[dict] = _build_catalog()
