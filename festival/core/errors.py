from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from .clock import to_iso


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    UNAUTHENTICATED = "unauthenticated"
    VALIDATION_FAILED = "validation_failed"
    RATE_LIMITED = "rate_limited"
    UNEXPECTED = "unexpected"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UNEXPECTED: 500,
}


class FestivalError(Exception):
    """Expected domain failure. The HTTP layer turns ``kind`` into a status code."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    default_message = "요청을 처리하지 못했습니다."

    def __init__(self, message: str | None = None, **detail: Any):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def headers(self) -> Dict[str, str] | None:
        return None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "kind": self.kind.value}
        for key, value in self.detail.items():
            payload[key] = to_iso(value) if isinstance(value, datetime) else value
        return payload


# --- not found ---
class BoothNotFound(FestivalError):
    kind = ErrorKind.NOT_FOUND
    default_message = "일치하는 부스 QR을 찾을 수 없습니다."

class StudentNotFound(FestivalError):
    kind = ErrorKind.NOT_FOUND
    default_message = "일치하는 학생 QR을 찾을 수 없습니다."

class PostNotFound(FestivalError):
    kind = ErrorKind.NOT_FOUND
    default_message = "게시글을 찾을 수 없습니다."

class RatingNotFound(FestivalError):
    kind = ErrorKind.NOT_FOUND
    default_message = "수정할 평점을 찾을 수 없습니다."


# --- forbidden ---
class BoothAccessDenied(FestivalError):
    kind = ErrorKind.FORBIDDEN
    default_message = "연결된 부스를 찾을 수 없습니다."

class StudentAccessDenied(FestivalError):
    kind = ErrorKind.FORBIDDEN
    default_message = "학생 계정만 접근할 수 있습니다."

class RoleForbidden(FestivalError):
    kind = ErrorKind.FORBIDDEN
    default_message = "이 작업을 수행할 권한이 없습니다."

class PostDeleteForbidden(FestivalError):
    kind = ErrorKind.FORBIDDEN
    default_message = "게시글을 삭제할 권한이 없습니다."

class RatingEditWindowExpired(FestivalError):
    kind = ErrorKind.FORBIDDEN
    default_message = "평점 수정 가능 시간이 지났습니다."

class RegistrationClosed(FestivalError):
    kind = ErrorKind.FORBIDDEN
    default_message = "현재는 부스 등록을 받지 않고 있습니다."


# --- conflict ---
class DuplicateVisit(FestivalError):
    kind = ErrorKind.CONFLICT
    default_message = "같은 부스는 한 번만 방문할 수 있습니다."

    def __init__(self, last_visited_at: datetime, message: str | None = None):
        self.last_visited_at = last_visited_at
        super().__init__(message, lastVisitedAt=last_visited_at)

class DuplicateAward(FestivalError):
    kind = ErrorKind.CONFLICT
    default_message = "같은 학생에게는 30분 이내에 다시 지급할 수 없습니다."

    def __init__(self, available_at: datetime, message: str | None = None):
        self.available_at = available_at
        super().__init__(message, availableAt=available_at)

class RatingConflict(FestivalError):
    kind = ErrorKind.CONFLICT
    default_message = "이미 이 부스에 대한 평점을 남겼습니다."

class BoothNameTaken(FestivalError):
    kind = ErrorKind.CONFLICT
    default_message = "이미 같은 이름의 부스가 존재합니다. 다른 이름을 선택해주세요."

class NicknameLocked(FestivalError):
    kind = ErrorKind.CONFLICT
    default_message = "닉네임이 이미 확정되어 변경할 수 없습니다."


# --- validation ---
class InvalidInput(FestivalError):
    kind = ErrorKind.VALIDATION_FAILED
    default_message = "올바르지 않은 요청입니다."

class MissingVisitHistory(FestivalError):
    kind = ErrorKind.VALIDATION_FAILED
    default_message = "방문 기록이 있는 부스만 평점을 남길 수 있습니다."


# --- auth / limits / internal ---
class Unauthenticated(FestivalError):
    kind = ErrorKind.UNAUTHENTICATED
    default_message = "로그인이 필요합니다."

class RateLimited(FestivalError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "요청이 너무 많습니다. 잠시 후 다시 시도해주세요."

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message, retryAfterSeconds=retry_after_seconds)

    @property
    def headers(self) -> Dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}

class GenerationExhausted(FestivalError):
    kind = ErrorKind.UNEXPECTED
    default_message = "고유 코드를 생성할 수 없습니다. 잠시 후 다시 시도해주세요."
