from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from uuid import UUID
from datetime import datetime
from typing import Literal

class CamelModel(BaseModel):
    # wire format is camelCase; python side stays snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

# --- auth ---
class CodeLoginRequest(CamelModel):
    code: str = Field(..., min_length=5, max_length=5, pattern=r"^[0-9A-Za-z]{5}$")

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

class SessionUser(CamelModel):
    id: UUID
    role: str
    nickname: str | None = None
    display_name: str
    points: int = 0

class LoginResponse(CamelModel):
    user: SessionUser

# --- visits ---
class RecordVisitRequest(CamelModel):
    booth_token: str = Field(..., min_length=1, max_length=2048)

class BoothVisitLogItem(CamelModel):
    id: UUID
    visited_at: datetime
    booth_id: UUID
    booth_name: str
    student_id: UUID
    student_identifier: str
    student_label: str
    grade: int | None = None
    class_number: int | None = None
    student_number: int | None = None

class BoothRatingStatus(CamelModel):
    booth_id: UUID
    has_rated: bool
    score: int | None = None

class RecordVisitResult(CamelModel):
    visit: BoothVisitLogItem
    total_visit_count: int
    rating_status: BoothRatingStatus

class BoothSummary(CamelModel):
    id: UUID
    name: str
    location: str | None = None
    description: str | None = None
    owner_nickname: str | None = None

class VisitStats(CamelModel):
    total_visits: int
    unique_visitors: int

class BoothVisitsDashboard(CamelModel):
    booth: BoothSummary
    qr_token: str
    stats: VisitStats
    recent_logs: list[BoothVisitLogItem]

class BoothQR(CamelModel):
    qr_token: str
    visit_url: str

# --- points ---
class AwardPointsRequest(CamelModel):
    qr_token: str = Field(..., min_length=1, max_length=2048)

class BoothPointLogItem(CamelModel):
    id: UUID
    points: int
    awarded_at: datetime
    student_id: UUID
    student_nickname: str | None = None
    student_label: str
    grade: int | None = None
    class_number: int | None = None
    student_number: int | None = None

class PointStats(CamelModel):
    total_awards: int
    total_points: int

class BoothPointsDashboard(CamelModel):
    booth: BoothSummary
    stats: PointStats
    recent_logs: list[BoothPointLogItem]

# --- students ---
class StudentPointLogItem(CamelModel):
    id: UUID
    booth_name: str
    points: int
    awarded_at: datetime

class StudentDashboard(CamelModel):
    id: UUID
    nickname: str | None = None
    nickname_locked: bool
    student_identifier: str
    student_label: str
    grade: int | None = None
    class_number: int | None = None
    student_number: int | None = None
    points: int
    visit_count: int
    qr_token: str
    recent_logs: list[StudentPointLogItem]

class StudentQR(CamelModel):
    qr_token: str

class NicknameUpdateRequest(CamelModel):
    nickname: str
    lock: bool = False

class NicknameUpdateResult(CamelModel):
    nickname: str
    nickname_locked: bool

class NicknameSuggestions(CamelModel):
    suggestions: list[str]

# --- posts ---
class PostFeedItem(CamelModel):
    id: UUID
    body: str
    image_url: str | None = None
    created_at: datetime
    author_id: UUID
    booth_name: str
    booth_location: str | None = None
    author_nickname: str
    heart_count: int
    viewer_has_heart: bool

class FeedPage(CamelModel):
    items: list[PostFeedItem]
    next_cursor: UUID | None = None

class ToggleHeartResult(CamelModel):
    hearted: bool
    total_hearts: int

# --- ratings ---
class RatingRequest(CamelModel):
    booth_id: UUID
    score: float = Field(..., ge=1, le=5)
    review: str | None = Field(default=None, max_length=500)

class BoothRatingRead(CamelModel):
    id: UUID
    booth_id: UUID
    student_id: UUID
    score: int
    review: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

class RatingEnvelope(CamelModel):
    rating: BoothRatingRead

# --- leaderboard ---
class BoothLeaderboardEntry(CamelModel):
    id: UUID
    rank: int
    booth_name: str
    total_visits: int
    location: str | None = None
    owner_nickname: str | None = None
    average_rating: float | None = None
    rating_count: int

class BoothLeaderboardResult(CamelModel):
    generated_at: datetime
    total_booths: int
    entries: list[BoothLeaderboardEntry]

class TrendingBoothEntry(CamelModel):
    id: UUID
    rank: int
    booth_name: str
    location: str | None = None
    recent_visit_count: int
    rating_average: float | None = None
    rating_count: int
    rating_scope: Literal["recent", "all"]

class TrendingBoothResult(CamelModel):
    generated_at: datetime
    window_minutes: int
    entries: list[TrendingBoothEntry]
    source: Literal["recent", "history"]

# --- booth public page / profile ---
class BoothPublicProfile(CamelModel):
    id: UUID
    name: str
    location: str | None = None
    description: str | None = None

class BoothPublicRatingStats(CamelModel):
    average_rating: float | None = None
    rating_count: int
    review_count: int

class BoothPublicPage(CamelModel):
    booth: BoothPublicProfile
    stats: BoothPublicRatingStats

class BoothReviewItem(CamelModel):
    id: UUID
    score: int
    review: str
    updated_at: datetime
    student_masked_id: str
    student_label: str

class BoothReviewPage(CamelModel):
    items: list[BoothReviewItem]
    next_cursor: UUID | None = None

class BoothProfile(CamelModel):
    name: str
    location: str | None = None
    description: str | None = None

class BoothProfileUpdateRequest(CamelModel):
    name: str
    location: str | None = Field(default=None, max_length=60)
    description: str | None = Field(default=None, max_length=400)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not 2 <= len(v) <= 40:
            raise ValueError("부스 이름은 2자 이상 40자 이하여야 합니다.")
        return v

    @field_validator("location", "description")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

class BoothProfileEnvelope(CamelModel):
    booth: BoothProfile
    message: str | None = None

# --- self-registration ---
class BoothRegistrationRequest(CamelModel):
    booth_name: str = Field(..., min_length=2, max_length=60)
    location: str | None = Field(default=None, max_length=120)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("booth_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("부스 이름은 2자 이상이어야 합니다.")
        return v

    @field_validator("location", "description")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

class BoothRegistrationResult(CamelModel):
    booth_id: UUID
    booth_name: str
    code: str
    qr_token: str

# --- admin ---
class StudentBatchRequest(CamelModel):
    grade_from: int = Field(..., ge=1, le=12)
    grade_to: int = Field(..., ge=1, le=12)
    class_count: int = Field(..., ge=1, le=99)
    students_per_class: int = Field(..., ge=1, le=99)
    start_number: int = Field(1, ge=1, le=99)

class StudentAccountPreview(CamelModel):
    grade: int
    class_number: int
    student_number: int
    student_id: str
    code: str

class StudentBatchResult(CamelModel):
    batch_id: UUID
    total: int
    preview: list[StudentAccountPreview]

class AdminStats(CamelModel):
    total_awards: int
    total_points_awarded: int
    active_booths: int
    total_posts: int

class AdminRecentPost(CamelModel):
    id: UUID
    created_at: datetime
    booth_name: str
    author_nickname: str
    preview: str

class AdminRecentPointLog(CamelModel):
    id: UUID
    awarded_at: datetime
    booth_name: str
    student_nickname: str | None = None
    student_label: str
    points: int

class AdminWarning(CamelModel):
    id: UUID
    type: str
    severity: Literal["warning", "critical"]
    detected_at: datetime
    available_at: datetime
    booth_name: str
    student_nickname: str | None = None
    student_label: str
    summary: str

class AdminDashboard(CamelModel):
    stats: AdminStats
    recent_posts: list[AdminRecentPost]
    recent_point_logs: list[AdminRecentPointLog]
    warnings: list[AdminWarning]

class FeatureToggleRequest(CamelModel):
    enabled: bool

class FeatureToggleResult(CamelModel):
    key: str
    enabled: bool
