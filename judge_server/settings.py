import tempfile
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    db_path: str = "data/data.db"

    scratch_root: str = Field(default_factory=tempfile.gettempdir)
    # {source} and {binary} are replaced with the workspace paths
    compiler_command: List[str] = ["rustc", "{source}", "-O", "-o", "{binary}"]
    source_filename: str = "main.rs"
    binary_filename: str = "app-bin"
    run_time_limit_seconds: float = 2.0

    ui_dir: str = "ui"
    host: str = "0.0.0.0"
    port: int = 8080

    log_level: str = "INFO"
    log_file: Optional[str] = "logs/judge_server.log"

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    def get_database_url(self) -> str:
        return f"sqlite:///{self.db_path}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
