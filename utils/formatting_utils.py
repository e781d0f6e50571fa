"""
General formatting utilities for speech.
"""

from __future__ import annotations

from typing import Iterable, Optional


def spoken_list(items: Iterable[str], conjunction: str = "and") -> str:
    """
    Join items the way a person would say them.

    ["9:00 AM"] -> "9:00 AM"
    ["9:00 AM", "10:00 AM"] -> "9:00 AM and 10:00 AM"
    ["9:00 AM", "10:00 AM", "1:30 PM"] -> "9:00 AM, 10:00 AM, and 1:30 PM"
    """
    parts = [p for p in items if p]
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return f"{parts[0]} {conjunction} {parts[1]}"
    return f"{', '.join(parts[:-1])}, {conjunction} {parts[-1]}"


def possessive(name: Optional[str], fallback: str = "your pet") -> str:
    """'Max' -> "Max's", 'Charles' -> "Charles'"."""
    if not name:
        return f"{fallback}'s"
    name = name.strip()
    return f"{name}'" if name.endswith("s") else f"{name}'s"
