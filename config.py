import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        identity_provider: str,
        supabase_url: str,
        supabase_service_key: str,
        token_secret: str,
        token_max_age_secs: int,
        enabled_types: tuple[str, ...],
        fx_base_url: str,
        fx_timeout_secs: float,
        fx_max_age_secs: int,
        cors_origins: tuple[str, ...],
    ) -> None:
        self.database_url = database_url
        self.identity_provider = identity_provider
        self.supabase_url = supabase_url
        self.supabase_service_key = supabase_service_key
        self.token_secret = token_secret
        self.token_max_age_secs = token_max_age_secs
        self.enabled_types = enabled_types
        self.fx_base_url = fx_base_url
        self.fx_timeout_secs = fx_timeout_secs
        self.fx_max_age_secs = fx_max_age_secs
        self.cors_origins = cors_origins


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("UTILITIES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _database_url() -> str:
    url = os.getenv("UTILITIES_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        return f"sqlite:///{_ensure_data_dir() / 'utilities.db'}"
    # Hosted Postgres hands out postgres:// but SQLAlchemy wants postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_url=_database_url(),
        identity_provider=os.getenv("UTILITIES_IDENTITY_PROVIDER", "signed").lower(),
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        token_secret=os.getenv("UTILITIES_TOKEN_SECRET", ""),
        token_max_age_secs=int(os.getenv("UTILITIES_TOKEN_MAX_AGE_SECS", "86400")),
        enabled_types=_split_list(
            os.getenv("UTILITIES_ENABLED_TYPES", "electricity,water,fuel")
        ),
        fx_base_url=os.getenv("UTILITIES_FX_BASE_URL", "https://api.frankfurter.app"),
        fx_timeout_secs=float(os.getenv("UTILITIES_FX_TIMEOUT_SECS", "5")),
        fx_max_age_secs=int(os.getenv("UTILITIES_FX_MAX_AGE_SECS", str(4 * 60 * 60))),
        cors_origins=_split_list(os.getenv("UTILITIES_CORS_ORIGINS", "*")),
    )
