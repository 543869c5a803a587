"""
Display colors for companion subjects.
"""

from __future__ import annotations

SUBJECT_COLORS = {
    "science": "#E5D0FF",
    "maths": "#FFDA6E",
    "language": "#BDE7FF",
    "coding": "#FFC8E4",
    "history": "#FFECC8",
    "economics": "#C8FFDF",
}

FALLBACK_COLOR = "#E5E5E5"


def get_subject_color(subject: str | None) -> str:
    return SUBJECT_COLORS.get((subject or "").strip().lower(), FALLBACK_COLOR)
