from decimal import Decimal
from functools import lru_cache
from typing import Dict, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database settings
    DB_URL: Optional[str] = None  # Optional full DB URL
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_NAME: str = "course_billing"

    # API settings
    API_VERSION: str = "v1"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    # Billing defaults, used when an institution has no stored settings
    DEFAULT_VAT_RATE: Decimal = Decimal("10")
    DEFAULT_CREDIT_CARD_RATES: Dict[int, Decimal] = {
        1: Decimal("4"),
        2: Decimal("6.5"),
        3: Decimal("9"),
        4: Decimal("11.5"),
        5: Decimal("14"),
        6: Decimal("16.5"),
        7: Decimal("19"),
        8: Decimal("24.51"),
        9: Decimal("21.5"),
        10: Decimal("24"),
        11: Decimal("26.5"),
        12: Decimal("29"),
    }
    MONEY_TOLERANCE: Decimal = Decimal("0.01")

    # Recurring expenses
    DASHBOARD_WEEK_DAYS: int = 7
    GENERATION_LOOKAHEAD_MONTHS: int = 1

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        validate_default = True

    @property
    def async_db_url(self) -> str:
        """Get asynchronous database URL."""
        if self.DB_URL:
            return self.DB_URL
        return f"mysql+aiomysql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"


@lru_cache()
def get_settings() -> Settings:
    """
    Returns cached Settings instance to avoid reloading .env file on every access
    """
    return Settings()


settings = get_settings()
