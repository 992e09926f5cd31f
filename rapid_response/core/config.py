"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. All secrets are injected via environment — never
hard-coded.

To extend: add new fields here and document them in .env.example.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── MongoDB ───────────────────────────────────────────────────
    mongo_uri: str = "mongodb://localhost:27017/rapid_response"
    mongo_db_name: str = "rapid_response"

    # ─── CORS ──────────────────────────────────────────────────────
    # Comma-separated allowed origins (Vite dev server + preview ports).
    cors_origins_str: str = "http://localhost:5173,http://localhost:8080,http://localhost:8081"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── Auth ──────────────────────────────────────────────────────
    # IMPORTANT: Change jwt_secret to a long random string in production.
    # Generate: python -c "import secrets; print(secrets.token_hex(32))"
    jwt_secret: str = "changeme-in-production-use-a-long-random-string"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24 * 7

    # ─── Community verification ────────────────────────────────────
    # Number of distinct community votes that promotes an incident
    # from "unverified" to "verified".
    auto_verify_threshold: int = 3
    # Attempts at the version-checked write before giving up with 409.
    verification_max_retries: int = 5

    # ─── SOS ───────────────────────────────────────────────────────
    sos_rate_limit: str = "10/minute"

    # ─── Email (SMTP) ──────────────────────────────────────────────
    # Email is skipped (with a warning) unless both user and pass are set.
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from_name: str = "Rapid Response Hub"

    # ─── SMS (Twilio) ──────────────────────────────────────────────
    # SMS is skipped (with a warning) unless all three are set.
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    # Upper bound for a single outbound email / SMS call.
    notification_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
    )


# Module-level singleton: import this instead of instantiating Settings()
settings = Settings()
