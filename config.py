import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        cors_origins: list[str],
        auto_migrate: bool,
        save_debounce_secs: float,
        api_url: str,
        api_timeout_secs: float,
        local_store_path: Path,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.cors_origins = cors_origins
        self.auto_migrate = auto_migrate
        self.save_debounce_secs = save_debounce_secs
        self.api_url = api_url
        self.api_timeout_secs = api_timeout_secs
        self.local_store_path = local_store_path


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Europe/Copenhagen")
    cors_origins = [
        origin.strip()
        for origin in os.getenv("BUDGET_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]
    auto_migrate = _env_flag("BUDGET_AUTO_MIGRATE", "1")
    save_debounce_secs = float(os.getenv("BUDGET_SAVE_DEBOUNCE_SECS", "1.0"))
    api_url = os.getenv("BUDGET_API_URL", "http://localhost:8000/api")
    api_timeout_secs = float(os.getenv("BUDGET_API_TIMEOUT_SECS", "10"))
    local_store_path = Path(
        os.getenv("BUDGET_LOCAL_STORE", str(data_dir / "local_store.json"))
    )
    return Settings(
        database_url=database_url,
        timezone=timezone,
        cors_origins=cors_origins,
        auto_migrate=auto_migrate,
        save_debounce_secs=save_debounce_secs,
        api_url=api_url,
        api_timeout_secs=api_timeout_secs,
        local_store_path=local_store_path,
    )
