from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    log_level: str = "INFO"
    database_url: str = "sqlite:///./backoffice.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth ----
    auth_mode: str = "dev"  # dev|jwt
    dev_header_user_id: str = "X-User-Id"
    dev_header_user_role: str = "X-User-Role"

    # No literal fallback: must come from the environment when tokens are used.
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    jwt_exp_minutes: int = 60 * 8

    # ---- Approval rules ----
    rejection_reason_min_length: int = 10
    pending_page_size: int = 20

    # ---- Bookings ----
    booking_default_days: int = 7

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")
        mode = (self.auth_mode or "").strip().lower()

        if mode == "jwt" and not self.jwt_secret:
            raise ValueError("SECURITY: jwt_secret must be set when auth_mode=jwt")

        if is_prod:
            if mode == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if not self.jwt_secret:
                raise ValueError("SECURITY: jwt_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
