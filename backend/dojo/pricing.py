# dojo/pricing.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

# -----------------------------
# Individual list prices (USD / month; drop-in is per visit)
# -----------------------------
MEMBERSHIP_PRICES: Dict[str, int] = {
    "adult": 100,
    "kid": 75,
    "drop-in": 20,
}

FAMILY_BASE_RATE = 150  # first two members together
FAMILY_ADDITIONAL_RATE = 50  # each member after the second


@dataclass(frozen=True)
class FamilyPricing:
    monthly_total: int
    breakdown: List[dict] = field(default_factory=list)
    savings: int = 0
    vs_individual: int = 0
    member_count: int = 0

    def as_dict(self) -> dict:
        return {
            "monthlyTotal": self.monthly_total,
            "breakdown": list(self.breakdown),
            "savings": self.savings,
            "vsIndividual": self.vs_individual,
            "memberCount": self.member_count,
        }


def member_type_for_program(program: str | None) -> str:
    """kids-bjj -> kid, everything else -> adult."""
    return "kid" if "kid" in (program or "").lower() else "adult"


def individual_price(member_type: str) -> int:
    try:
        return MEMBERSHIP_PRICES[member_type]
    except KeyError:
        raise ValueError(f"Invalid member type: {member_type}")


def family_rate(member_count: int) -> int:
    """Tiered rate for a family of `member_count` (2 or more)."""
    return FAMILY_BASE_RATE + FAMILY_ADDITIONAL_RATE * max(0, member_count - 2)


def calculate_family_price(member_types: Sequence[str]) -> FamilyPricing:
    """
    Price a family from its member-type tags.

      0 members  -> 0
      1 member   -> that member's list price (no discount)
      2 members  -> flat 150
      n members  -> 150 + 50 * (n - 2)

    Savings are measured against the sum of individual list prices.
    Raises ValueError on an unknown member type.
    """
    types = list(member_types or [])
    list_prices = [individual_price(t) for t in types]
    vs_individual = sum(list_prices)

    counts: Dict[str, int] = {}
    for t in types:
        counts[t] = counts.get(t, 0) + 1
    breakdown = [
        {"type": t, "count": n, "rate": MEMBERSHIP_PRICES[t]}
        for t, n in counts.items()
    ]

    n = len(types)
    if n == 0:
        total = 0
    elif n == 1:
        total = list_prices[0]
    else:
        total = family_rate(n)

    return FamilyPricing(
        monthly_total=total,
        breakdown=breakdown,
        savings=vs_individual - total,
        vs_individual=vs_individual,
        member_count=n,
    )
