"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.
"""

import os
import shlex

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "CodeTrack"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3; sqlite is accepted for local runs)
    database_url: str = "postgresql+psycopg://localhost:5432/codetrack_dev"
    db_connect_timeout: int = 10  # seconds

    # Security
    secret_key: str = ""

    # GitHub (repository content fetcher)
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 60.0

    # Tracker binary: extraction and diff tool
    tracker_path: list[str] = ["./todo-tracker"]
    tracker_extract_command: str = "parse"
    tracker_diff_command: str = "diff"
    tracker_default_config: str = "./todo-config.json"
    tracker_timeout: float = 120.0  # wall clock per subprocess call

    # Scan pipeline
    scan_workdir: str = ""  # empty = system temp dir
    keep_scan_artifacts: bool = False
    scan_channel_size: int = 32  # bounded progress queue

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'codetrack_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.secret_key = os.getenv("SECRET_KEY", "")

        self.github_api_url = os.getenv("GITHUB_API_URL", self.github_api_url).rstrip("/")
        self.github_timeout = float(os.getenv("GITHUB_TIMEOUT", str(self.github_timeout)))

        # TRACKER_PATH may carry an interpreter, e.g. "python tools/tracker.py"
        self.tracker_path = shlex.split(os.getenv("TRACKER_PATH", "./todo-tracker"))
        self.tracker_extract_command = os.getenv(
            "TRACKER_EXTRACT_COMMAND", self.tracker_extract_command
        )
        self.tracker_diff_command = os.getenv("TRACKER_DIFF_COMMAND", self.tracker_diff_command)
        self.tracker_default_config = os.getenv(
            "TRACKER_DEFAULT_CONFIG", self.tracker_default_config
        )
        self.tracker_timeout = float(os.getenv("TRACKER_TIMEOUT", str(self.tracker_timeout)))

        self.scan_workdir = os.getenv("SCAN_WORKDIR", "")
        self.keep_scan_artifacts = os.getenv("KEEP_SCAN_ARTIFACTS", "false").lower() == "true"
        self.scan_channel_size = int(
            os.getenv("SCAN_CHANNEL_SIZE", str(self.scan_channel_size))
        )
