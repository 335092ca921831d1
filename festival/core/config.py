from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    database_url: str = Field(..., alias="DATABASE_URL")
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    public_origin: str = Field("http://localhost:3000", alias="PUBLIC_ORIGIN")
    cors_origins: str = Field(
        "http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS"
    )

    # Session cookie (HS256 needs a key at least as long as the digest)
    session_secret: str = Field(..., alias="SESSION_SECRET", min_length=32)
    session_cookie_name: str = Field("fc_session", alias="SESSION_COOKIE_NAME")
    session_max_age_seconds: int = Field(60 * 60 * 12, alias="SESSION_MAX_AGE_SECONDS")

    # Point awards
    point_award_value: int = Field(1, alias="POINT_AWARD_VALUE")
    point_award_window_minutes: float = Field(30, alias="POINT_AWARD_WINDOW_MINUTES")

    # Dashboards / feed
    booth_recent_visit_limit: int = Field(25, alias="BOOTH_RECENT_VISIT_LIMIT")
    booth_recent_log_limit: int = Field(25, alias="BOOTH_RECENT_LOG_LIMIT")
    student_recent_log_limit: int = Field(10, alias="STUDENT_RECENT_LOG_LIMIT")
    feed_page_default_size: int = Field(8, alias="FEED_PAGE_DEFAULT_SIZE")
    feed_page_max_size: int = Field(24, alias="FEED_PAGE_MAX_SIZE")
    post_body_max_length: int = Field(500, alias="POST_BODY_MAX_LENGTH")
    post_image_max_bytes: int = Field(5 * 1024 * 1024, alias="POST_IMAGE_MAX_BYTES")
    upload_dir: str = Field("uploads", alias="UPLOAD_DIR")

    # Admin dashboard
    admin_active_booth_window_hours: int = Field(24, alias="ADMIN_ACTIVE_BOOTH_WINDOW_HOURS")
    admin_recent_post_limit: int = Field(6, alias="ADMIN_RECENT_POST_LIMIT")
    admin_recent_point_log_limit: int = Field(10, alias="ADMIN_RECENT_POINT_LOG_LIMIT")
    admin_warning_limit: int = Field(6, alias="ADMIN_WARNING_LIMIT")
    student_batch_size_limit: int = Field(1500, alias="STUDENT_BATCH_SIZE_LIMIT")

    # Trending leaderboard
    trending_window_minutes: int = Field(10, alias="TRENDING_WINDOW_MINUTES")
    trending_max_entries: int = Field(3, alias="TRENDING_MAX_ENTRIES")
    trending_rating_weight: float = Field(0.3, alias="TRENDING_RATING_WEIGHT")
    trending_rating_smoothing_weight: float = Field(3, alias="TRENDING_RATING_SMOOTHING_WEIGHT")

    # Ratings can be edited for this long after the visit
    rating_edit_window_minutes: int = Field(30, alias="RATING_EDIT_WINDOW_MINUTES")

    # Rate limiting
    rate_limit_backend: str = Field("memory", alias="RATE_LIMIT_BACKEND")  # memory | redis
    redis_url: str = Field("redis://127.0.0.1:6379/0", alias="REDIS_URL")
    rl_register_booth_max: int = Field(5, alias="RL_REGISTER_BOOTH_MAX")
    rl_register_booth_window_ms: int = Field(60 * 60 * 1000, alias="RL_REGISTER_BOOTH_WINDOW_MS")
    rl_code_login_max: int = Field(10, alias="RL_CODE_LOGIN_MAX")
    rl_code_login_window_ms: int = Field(60 * 1000, alias="RL_CODE_LOGIN_WINDOW_MS")
    rl_visit_max: int = Field(30, alias="RL_VISIT_MAX")
    rl_visit_window_ms: int = Field(60 * 1000, alias="RL_VISIT_WINDOW_MS")
    rl_award_max: int = Field(60, alias="RL_AWARD_MAX")
    rl_award_window_ms: int = Field(60 * 1000, alias="RL_AWARD_WINDOW_MS")

    # NATS
    nats_urls: str = Field("nats://127.0.0.1:4222", alias="NATS_URLS")
    nats_subject_visit: str = Field("festival.visits.recorded", alias="NATS_SUBJECT_VISIT")
    nats_subject_award: str = Field("festival.points.awarded", alias="NATS_SUBJECT_AWARD")
    enable_nats_events: bool = Field(default=False, alias="ENABLE_NATS_EVENTS")

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
