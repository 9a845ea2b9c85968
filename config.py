import os
from functools import lru_cache
from pathlib import Path


DEFAULT_FX_CURRENCIES = (
    "EUR,GBP,CHF,JPY,CNY,AUD,CAD,NZD,SEK,NOK,DKK,PLN,CZK,HUF,TRY,ILS,"
    "INR,SGD,HKD,THB,BRL,MXN,ZAR"
)


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        fx_provider: str,
        fx_base_url: str,
        fx_timeout_secs: float,
        fx_currencies: list[str],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.fx_provider = fx_provider
        self.fx_base_url = fx_base_url
        self.fx_timeout_secs = fx_timeout_secs
        self.fx_currencies = fx_currencies


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTREE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_codes(raw: str) -> list[str]:
    return [code.strip().upper() for code in raw.split(",") if code.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintree.db"
    database_url = os.getenv("FINTREE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTREE_TIMEZONE", "Europe/Berlin")
    fx_provider = os.getenv("FINTREE_FX_PROVIDER", "frankfurter")
    fx_base_url = os.getenv("FINTREE_FX_BASE_URL", "https://api.frankfurter.app")
    fx_timeout_secs = float(os.getenv("FINTREE_FX_TIMEOUT_SECS", "5"))
    fx_currencies = _split_codes(
        os.getenv("FINTREE_FX_CURRENCIES", DEFAULT_FX_CURRENCIES)
    )
    return Settings(
        database_url=database_url,
        timezone=timezone,
        fx_provider=fx_provider,
        fx_base_url=fx_base_url.rstrip("/"),
        fx_timeout_secs=fx_timeout_secs,
        fx_currencies=fx_currencies,
    )
