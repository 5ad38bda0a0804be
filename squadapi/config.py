from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="squadapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Squad Rules Engine"
    PROJECT_NAME: str = "Squad Rules API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = ""
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = ""
    POSTGRES_SCHEMA: str = "squad"

    # Full URL override (sqlite for local runs, etc.)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security (tokens are issued by the external auth system)
    JWT_SECRET_KEY: str = "dev-secret-key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Squad membership service
    SQUAD_SERVICE_URL: str = "http://localhost:8001"
    SQUAD_SERVICE_API_KEY: Optional[str] = None
    SQUAD_SERVICE_TIMEOUT_SECONDS: float = 5.0

    # Stars
    DAILY_LOGIN_REWARDS: List[int] = [10, 15, 20, 25, 35, 40, 50]
    LEDGER_PAGE_MAX: int = 100

    # Powers
    DOUBLE_CHANCE_TTL_HOURS: int = 24
    TARGET_LOCK_GRANT_TTL_HOURS: int = 24
    CHAOS_CARD_TTL_HOURS: int = 24
    STREAK_SHIELD_TTL_HOURS: int = 24 * 7
    TARGET_LOCK_TTL_HOURS: int = 24  # lifetime of the target relation itself

    # Challenges
    CHALLENGE_DURATION_MINUTES: int = 60

    # Judges
    JUDGE_BONUS_STARS: int = 10  # ruling upheld
    JUDGE_PENALTY_STARS: int = 25  # ruling overturned

    # Timezone used to decide what "today" is for daily rewards and judges
    TIMEZONE: str = "UTC"


settings = Settings()
