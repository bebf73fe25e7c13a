import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Picks up a local .env if there is one
load_dotenv()


class Settings(BaseModel):
    data_path: str = os.getenv("BUDGETWATCH_DATA_PATH", "data/store.json")
    seed_path: str = os.getenv("BUDGETWATCH_SEED_PATH", "data/seed.json")
    io_timeout: float = float(os.getenv("BUDGETWATCH_IO_TIMEOUT", "10.0"))
    warning_pct: float = float(os.getenv("BUDGETWATCH_WARNING_PCT", "80"))
    exceeded_pct: float = float(os.getenv("BUDGETWATCH_EXCEEDED_PCT", "100"))
    currency: str = os.getenv("BUDGETWATCH_CURRENCY", "RWF")
    log_level: str = os.getenv("BUDGETWATCH_LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
