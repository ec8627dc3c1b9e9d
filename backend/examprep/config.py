from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".examprep" / "data"
    sqlite_filename: str = "examprep.db"
    study_session_size: int = 20
    attempt_idle_minutes: int = 240  # in-progress attempts untouched this long are abandoned
    cas_max_retries: int = 5
    log_level: str = "warning"

    model_config = {"env_prefix": "EXAMPREP_"}


settings = Settings()
