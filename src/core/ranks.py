"""Rank table: maps a point total to a tier name.

No I/O: this module only transforms data.
"""

from __future__ import annotations

# Highest threshold first.
RANK_TABLE: list[tuple[str, int]] = [
    ("Legendary", 10000),
    ("Ruby", 7500),
    ("Platinum", 5000),
    ("Gold", 3000),
    ("Silver", 1500),
    ("Copper", 750),
    ("Iron", 250),
    ("Bronze", 0),
]

LOWEST_RANK = RANK_TABLE[-1][0]


def derive_rank(points: int) -> str:
    """Return the highest tier whose threshold is <= points."""
    if points < 0:
        raise ValueError(f"Points cannot be negative: {points}")
    for name, threshold in RANK_TABLE:
        if points >= threshold:
            return name
    return LOWEST_RANK


def next_rank(points: int) -> tuple[str, int] | None:
    """Return (next tier, points still needed), or None at the top tier."""
    current = derive_rank(points)
    names = [name for name, _ in RANK_TABLE]
    idx = names.index(current)
    if idx == 0:
        return None
    name, threshold = RANK_TABLE[idx - 1]
    return name, threshold - points
