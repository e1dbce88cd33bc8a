"""
Store configuration.

Settings can be given explicitly or read from the environment (and a `.env`
file, loaded with python-dotenv) through `StoreConfig.from_env()`:

    MINSTORE_LOG_LEVEL=DEBUG
    MINSTORE_REQUIRE_IDENTITY=true
"""
import logging
import os
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "MINSTORE_"


class StoreConfig(BaseModel):
    log_level: str = Field(default="INFO", description="Level applied to minstore loggers")
    require_identity: bool = Field(
        default=True, description="Reject action input items without an 'id'"
    )

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, dotenv_path: Optional[Union[str, os.PathLike]] = None) -> "StoreConfig":
        load_dotenv(dotenv_path)
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls(**values)


LOGGER_NAMES = (
    "Store",
    "Entity",
    "EntityRegistry",
    "RecordNormalizer",
    "MutationEngine",
    "ActionPipeline",
    "ActionTracer",
    "QueryBuilder",
    "RelationGraph",
)


def configure_logging(config: StoreConfig) -> None:
    """Apply the configured level to every minstore logger."""
    for name in LOGGER_NAMES:
        logging.getLogger(name).setLevel(config.log_level)
