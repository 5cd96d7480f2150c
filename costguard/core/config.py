"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.03.00"

    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./costguard.db"

    # Bearer token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 12

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Rate limiting (requests per minute per IP, 0 disables)
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_VALIDATE_COST: int = 60

    # Sentry (production error tracking)
    SENTRY_DSN: str = ""

    # Threshold escalation
    AUTO_ESCALATE_VIOLATIONS: bool = True
    ESCALATION_TTL_HOURS_CRITICAL: int = 24
    ESCALATION_TTL_HOURS_HIGH: int = 48
    ESCALATION_TTL_HOURS_MEDIUM: int = 48
    ESCALATION_EXPIRING_SOON_HOURS: int = 12

    # Payout auto-revert
    PAYOUT_AUTO_REVERT_HOURS: int = 48
    PAYOUT_AUTO_REVERT_STATUSES: str = "pending"  # comma-separated, e.g. "pending,intent_marked"

    # Salary deductions for rejected or expired escalations
    SALARY_DEDUCTIONS_ENABLED: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Return list of valid secrets for verification (current + previous)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def auto_revert_statuses(self) -> list[str]:
        return [s.strip() for s in self.PAYOUT_AUTO_REVERT_STATUSES.split(",") if s.strip()]

    def escalation_ttl_hours(self, priority: str) -> int:
        """TTL for a new escalation; critical requests get the shortest window."""
        return {
            "critical": self.ESCALATION_TTL_HOURS_CRITICAL,
            "high": self.ESCALATION_TTL_HOURS_HIGH,
        }.get(priority, self.ESCALATION_TTL_HOURS_MEDIUM)


settings = Settings()
