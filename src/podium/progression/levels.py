"""Level formula.

XP required to reach level N is a triangular series:

    xp_for_level(N) = BASE * (N - 1) * N / 2

so level 1 starts at 0, level 2 at BASE, level 3 at 3 * BASE, and each
level costs BASE more than the previous one.
"""

from __future__ import annotations

DEFAULT_BASE_XP = 100

# Upper bound on the linear level search; ~5 billion XP at the default base.
MAX_LEVEL = 10_000


def xp_for_level(level: int, base: int = DEFAULT_BASE_XP) -> int:
    """Total XP needed to reach ``level``. Level 1 (and below) needs 0."""
    if level <= 1:
        return 0
    return base * (level - 1) * level // 2


def compute_level(total_xp: int, base: int = DEFAULT_BASE_XP) -> int:
    """Return the highest level whose threshold ``total_xp`` has reached."""
    level = 1
    while level < MAX_LEVEL and total_xp >= xp_for_level(level + 1, base):
        level += 1
    return level


def xp_for_next_level(total_xp: int, base: int = DEFAULT_BASE_XP) -> int:
    """Total XP threshold of the level after the current one."""
    return xp_for_level(compute_level(total_xp, base) + 1, base)


def xp_to_next_level(total_xp: int, base: int = DEFAULT_BASE_XP) -> int:
    """XP still missing before the next level."""
    return max(0, xp_for_next_level(total_xp, base) - total_xp)


def level_progress(total_xp: int, base: int = DEFAULT_BASE_XP) -> float:
    """Percentage of the current level span already covered, clamped to [0, 100]."""
    level = compute_level(total_xp, base)
    floor = xp_for_level(level, base)
    span = xp_for_level(level + 1, base) - floor
    if span <= 0:
        return 100.0
    return max(0.0, min(100.0, (total_xp - floor) / span * 100))


def level_info(total_xp: int, base: int = DEFAULT_BASE_XP) -> dict:
    """Everything the profile card needs about a user's level."""
    level = compute_level(total_xp, base)
    return {
        "level": level,
        "total_xp": total_xp,
        "current_level_xp": xp_for_level(level, base),
        "next_level_xp": xp_for_level(level + 1, base),
        "xp_to_next_level": xp_to_next_level(total_xp, base),
        "progress": round(level_progress(total_xp, base), 2),
    }
