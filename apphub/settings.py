from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load the repository .env early so tools run from any directory see it.
REPO_ROOT = Path(__file__).resolve().parent.parent
_env_path = REPO_ROOT / ".env"

load_dotenv(dotenv_path=_env_path, override=False)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_env_path),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./apphub.db"

    # App aliases
    alias_length: int = 4
    alias_max_attempts: int = 1000

    # Upload flow: commit App/Version/Package in one transaction
    atomic_uploads: bool = False

    # Logging (developer tools)
    log_level: str = "INFO"


settings = Settings()
