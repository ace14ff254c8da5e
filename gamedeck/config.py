"""Application configuration via environment variables."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage
    data_dir: str = "/var/lib/gamedeck"
    servers_dir: str = "/var/lib/gamedeck/servers"

    # Service
    port: int = 8080
    log_level: str = "INFO"

    # Job processing
    job_max_concurrency: int = 4
    job_result_ttl_hours: int = 2
    job_stream_queue_size: int = 256
    job_event_history: int = 50

    # BuildTools
    java_executable: str = "java"
    buildtools_jar_url: str = (
        "https://hub.spigotmc.org/jenkins/job/BuildTools/lastSuccessfulBuild/artifact/target/BuildTools.jar"
    )
    buildtools_poll_interval: float = 0.25

    # Version catalog
    catalog_ttl_minutes: int = 10
    vanilla_version_limit: int = 30
    paper_version_limit: int = 20

    # Status probe
    ping_timeout_seconds: float = 3.0
    heartbeat_interval_seconds: float = 2.0

    # Supabase job mirror (disabled unless both are set)
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def logs_dir(self) -> Path:
        return Path(self.data_dir) / "logs"

    @property
    def profiles_dir(self) -> Path:
        return Path(self.data_dir) / "profiles"

    @property
    def backups_dir(self) -> Path:
        return Path(self.data_dir) / "backups"


settings = Settings()
