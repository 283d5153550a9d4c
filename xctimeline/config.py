# xctimeline/config.py
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="XCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend_name: str = "xctimeline"
    api_prefix: str = "/api"
    cors_origins: List[str] = ["http://localhost:5173"]

    xcresulttool_command: List[str] = ["xcrun", "xcresulttool"]
    backend_timeout_seconds: float = 300.0
    max_workers: int = 4

    attachments_dir_name: str = "attachments"
    database_file_name: str = "database.sqlite3"
    manifest_file_name: str = "manifest.json"

    default_screen_width: float = 402.0
    default_screen_height: float = 874.0

    bundles_root: Path = Field(
        default=Path("artifacts/results"),
        description="Directory the HTTP API resolves result bundle names under",
    )


settings = Settings()


def attachments_dir_for(bundle_path: Path) -> Path:
    """Return the directory attachments of a bundle are exported into."""
    bundle_path = Path(bundle_path)
    return bundle_path.with_name(f"{bundle_path.stem}_{settings.attachments_dir_name}")
