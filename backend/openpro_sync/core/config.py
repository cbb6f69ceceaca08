import os
from pathlib import Path

from dotenv import load_dotenv

# .env at the repository root
BASE_DIR = Path(__file__).resolve().parents[3]
env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self) -> None:
        # DB
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL",
            "sqlite:///./openpro_sync.db",
        )

        # OpenPro (upstream)
        self.OPENPRO_BASE_URL: str = os.getenv(
            "OPENPRO_BASE_URL",
            "https://api.open-pro.fr/tarif/multi/v1",
        )
        self.OPENPRO_API_KEY: str = os.getenv("OPENPRO_API_KEY", "")
        self.SUPPLIER_ID: int = int(os.getenv("SUPPLIER_ID", "47186"))
        self.HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

        # Public URL used to build iCal export links
        self.PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

        # Sync
        self.STARTUP_SYNC_ENABLED: bool = _env_bool("STARTUP_SYNC_ENABLED", True)
        self.SYNC_INTERVAL_MINUTES: int = int(os.getenv("SYNC_INTERVAL_MINUTES", "30"))
        self.EXPORT_HORIZON_DAYS: int = int(os.getenv("EXPORT_HORIZON_DAYS", "365"))


settings = Settings()
