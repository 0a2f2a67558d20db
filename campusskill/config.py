# campusskill/config.py
from pydantic_settings import BaseSettings
from typing import Optional
from pydantic import Field

class Settings(BaseSettings):
    APP_NAME: str = Field("CampusSkill")
    SECRET_KEY: str = Field("change-me-in-production")
    ALGORITHM: str = Field("HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(30)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(7)

    DATABASE_URL: Optional[str] = None
    SQLALCHEMY_DATABASE_URL: Optional[str] = None
    SQL_ECHO: bool = Field(False)

    LOG_LEVEL: str = Field("INFO")
    CLIENT_URL: str = Field("http://localhost:5173")

    # Marketplace rules
    DEFAULT_TEACHER_CREDITS: int = Field(20, ge=0)
    RATING_POINTS_PER_STAR: int = Field(1, ge=0)
    MESSAGE_MAX_LENGTH: int = Field(2000, gt=0)
    LEADERBOARD_DEFAULT_LIMIT: int = Field(20, gt=0)

    model_config = {
        "env_file": ".env",
        "extra": "allow",
    }

    @property
    def effective_database_url(self) -> str:
        url = self.SQLALCHEMY_DATABASE_URL or self.DATABASE_URL or "sqlite+aiosqlite:///./campusskill.db"
        # Ensure asyncpg is used
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

settings = Settings()
