from __future__ import annotations
import math
from typing import Any

NO_GRADE_LABEL = "학년 정보 없음"
NO_STUDENT_ID_LABEL = "학번 미지정"
UNNAMED_BOOTH = "이름 없는 부스"
UNNAMED_USER = "이름 없는 사용자"


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def format_student_label(grade: int | None, class_number: int | None, student_number: int | None) -> str:
    segments = []
    if _as_int(grade) is not None:
        segments.append(f"{_as_int(grade)}학년")
    if _as_int(class_number) is not None:
        segments.append(f"{_as_int(class_number)}반")
    if _as_int(student_number) is not None:
        segments.append(f"{_as_int(student_number)}번")
    return " ".join(segments) if segments else NO_GRADE_LABEL


def format_student_id(grade: int | None, class_number: int | None, student_number: int | None) -> str | None:
    parts = [_as_int(grade), _as_int(class_number), _as_int(student_number)]
    if any(p is None or p < 0 for p in parts):
        return None
    g, c, n = parts
    return f"{g}{c:02d}{n:02d}"


def describe_student_id(grade, class_number, student_number, fallback: str = NO_STUDENT_ID_LABEL) -> str:
    return format_student_id(grade, class_number, student_number) or fallback


def format_booth_name(name: str | None) -> str:
    trimmed = (name or "").strip()
    return trimmed or UNNAMED_BOOTH


def display_name(user) -> str:
    from ..models import UserRole

    if user.role == UserRole.STUDENT:
        return describe_student_id(user.grade, user.class_number, user.student_number)
    trimmed = (user.nickname or "").strip()
    return trimmed or UNNAMED_USER
