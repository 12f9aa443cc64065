import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./library.db")

    # logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # analytics windows
    trend_months: int = int(os.getenv("ANALYTICS_TREND_MONTHS", "12"))
    rollup_months: int = int(os.getenv("ANALYTICS_ROLLUP_MONTHS", "6"))
    top_n: int = int(os.getenv("ANALYTICS_TOP_N", "5"))

    default_page_size: int = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))


settings = Settings()
