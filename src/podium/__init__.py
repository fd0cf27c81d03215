"""Podium progression engine: achievements, XP, levels and streaks."""
