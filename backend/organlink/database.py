from __future__ import annotations

from pathlib import Path

import motor.motor_asyncio
from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.errors import ConfigurationError
from pymongo.uri_parser import parse_uri


BASE_DIR = Path(__file__).resolve().parents[1]
ENV_FILES = [BASE_DIR / ".env.local", BASE_DIR / ".env"]


class Settings(BaseSettings):
    mongodb_url: str = "mongodb://localhost:27017/organlink"
    mongo_server_timeout_ms: int = 2000
    mongo_connect_timeout_ms: int = 2000
    mongo_socket_timeout_ms: int = 2000

    model_dir: Path = BASE_DIR / "models_store"
    model_filename: str = "organlink_matching.joblib"
    datasets_dir: Path = BASE_DIR / "datasets"
    default_dataset_filename: str = "Organ_Transplant.csv"

    matching_threshold: float = 0.6
    max_matches: int = 10
    match_expiry_hours: int = 24

    n_estimators: int = 100
    random_seed: int = 42
    synthetic_training_size: int = 1000
    cv_folds: int = 10
    allow_synthetic_bootstrap: bool = False

    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=[str(path) for path in ENV_FILES],
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
        protected_namespaces=(),
    )

    @property
    def model_path(self) -> Path:
        return Path(self.model_dir) / self.model_filename

    @property
    def default_dataset_path(self) -> Path:
        return Path(self.datasets_dir) / self.default_dataset_filename


def get_settings() -> Settings:
    return Settings()


settings = get_settings()
FALLBACK_MONGO_URL = "mongodb://localhost:27017/organlink"


def create_client(config: Settings) -> motor.motor_asyncio.AsyncIOMotorClient:
    connect_kwargs = {
        "serverSelectionTimeoutMS": config.mongo_server_timeout_ms,
        "connectTimeoutMS": config.mongo_connect_timeout_ms,
        "socketTimeoutMS": config.mongo_socket_timeout_ms,
        "tz_aware": True,
    }
    uri = config.mongodb_url
    try:
        return motor.motor_asyncio.AsyncIOMotorClient(uri, **connect_kwargs)
    except ConfigurationError as exc:
        if uri == FALLBACK_MONGO_URL:
            raise
        logger.warning(
            "MongoDB DNS resolution failed for {} ({}). Falling back to local Mongo at {}.",
            uri,
            exc,
            FALLBACK_MONGO_URL,
        )
        return motor.motor_asyncio.AsyncIOMotorClient(FALLBACK_MONGO_URL, **connect_kwargs)


def resolve_database_name(uri: str | None) -> str:
    if uri:
        try:
            parsed = parse_uri(uri)
            if parsed.get("database"):
                return parsed["database"]
        except Exception as exc:  # pragma: no cover - malformed URI
            logger.warning("Unable to parse Mongo URI {} ({}). Using fallback database name.", uri, exc)
    return "organlink"


def get_database(config: Settings) -> motor.motor_asyncio.AsyncIOMotorDatabase:
    client = create_client(config)
    return client.get_database(resolve_database_name(config.mongodb_url))
