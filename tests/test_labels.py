from __future__ import annotations

from types import SimpleNamespace

from festival.core.labels import (
    describe_student_id, display_name, format_booth_name, format_student_id, format_student_label,
)
from festival.models import UserRole


def test_student_label_joins_segments():
    assert format_student_label(2, 3, 15) == "2학년 3반 15번"
    assert format_student_label(1, None, 4) == "1학년 4번"


def test_student_label_fallback():
    assert format_student_label(None, None, None) == "학년 정보 없음"


def test_student_id_pads_class_and_number():
    assert format_student_id(1, 12, 27) == "11227"
    assert format_student_id(3, 1, 5) == "30105"


def test_student_id_missing_or_negative_part():
    assert format_student_id(1, None, 27) is None
    assert format_student_id(None, 2, 3) is None
    assert format_student_id(1, -2, 3) is None
    assert describe_student_id(None, None, None) == "학번 미지정"


def test_booth_name_fallback():
    assert format_booth_name("  게임존 ") == "게임존"
    assert format_booth_name("   ") == "이름 없는 부스"
    assert format_booth_name(None) == "이름 없는 부스"


def test_display_name_by_role():
    student = SimpleNamespace(role=UserRole.STUDENT, nickname="은하토끼", grade=1, class_number=2, student_number=7)
    manager = SimpleNamespace(role=UserRole.BOOTH_MANAGER, nickname=" 게임존 운영팀 ", grade=None,
                              class_number=None, student_number=None)
    nameless = SimpleNamespace(role=UserRole.ADMIN, nickname="", grade=None, class_number=None, student_number=None)
    assert display_name(student) == "10207"
    assert display_name(manager) == "게임존 운영팀"
    assert display_name(nameless) == "이름 없는 사용자"
