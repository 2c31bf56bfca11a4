"""
Runtime configuration for the storefront functions.

Values come from the environment; a local .env file is loaded first so
development setups do not need exported variables.
"""
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    # user-scoped credential, only used to resolve callers
    anon_key: str
    # elevated credential, bypasses per-user access rules
    service_key: str
    jwt_secret: str
    access_token_expire_minutes: int = 60 * 24
    log_level: str = "INFO"
    log_dir: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "storefront"),
        anon_key=os.getenv("DATABASE_ANON_KEY", ""),
        service_key=os.getenv("DATABASE_SERVICE_KEY", ""),
        jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24))),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR", ""),
    )
