"""Builders for bet picks used across test modules."""

from __future__ import annotations


def pick(position: str = "first", correct: bool | None = True, odd: float = 2.0, boost: bool = False) -> dict:
    return {"position": position, "is_correct": correct, "odd_at_bet": odd, "has_boost": boost}


def podium(*correct: bool, odd: float = 2.0, boost: bool = False) -> list[dict]:
    """Three picks (first/second/third) with the given correctness. ``boost`` applies to the first pick."""
    return [
        pick(position, c, odd=odd, boost=boost and i == 0)
        for i, (position, c) in enumerate(zip(("first", "second", "third"), correct, strict=True))
    ]
