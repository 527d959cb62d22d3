"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields so that
the back-office can start with no configuration at all (a local SQLite
file next to the package).  In a production deployment you should
override these via environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "House Leads Back-Office API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Optional path of a log file; console logging is always enabled.
    log_file: str = os.getenv("LOG_FILE", "")
    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
    algorithm: str = os.getenv("ALGORITHM", "HS256")

    # Path or connection string for the SQLite database.  If a relative
    # path is provided, it will be resolved relative to the project root
    # by the ``db`` module.
    database_url: str = os.getenv("DATABASE_URL", "house_leads.db")

    # Number of marketers/managers kept in the bar-chart performance series.
    chart_top_n: int = int(os.getenv("CHART_TOP_N", "10"))


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.
settings = Settings()
