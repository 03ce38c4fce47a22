from datetime import date
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    APP_NAME: str = "Esports Genre Rollup"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    ENGINE: str = "pandas"  # "pandas" or "duckdb", checked when a run starts
    MIN_DATE: date = date(2015, 1, 1)
    TOP_N: int = 5
    ROUND_DIGITS: int = 2
    ROUNDING_MODE: Literal["half_even", "half_up"] = "half_even"  # half_even matches the database $round

    class Config:
        env_file = ".env"

@lru_cache
def get_settings() -> Settings:
    return Settings()
