import logging
import os
from pathlib import Path
from typing import Any

import zenconfig
from pydantic import BaseModel, Field

from scrobble_bridge.entities import EntityConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-5.5s [%(name)s] %(message)s"
LEGACY_PROVENANCE = "config.json (top level)"


class HTTPServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default_factory=lambda: int(os.environ.get("PORT", 9078)))
    # Public address, used in provider redirects.
    base_url: str | None = None

    @property
    def url(self) -> str:
        return (self.base_url or f"http://localhost:{self.port}").rstrip("/")


class BridgeConfig(BaseModel, zenconfig.Config):
    http: HTTPServerConfig = Field(default_factory=HTTPServerConfig)
    # Where credentials obtained from providers are kept.
    config_dir: Path = Field(
        default_factory=lambda: Path(os.environ.get("CONFIG_DIR", "config"))
    )
    log_dir: Path | None = Field(
        default_factory=lambda: Path(os.environ.get("LOG_DIR", "logs"))
    )
    sources: list[EntityConfig] = []
    clients: list[EntityConfig] = []
    # Deprecated single source configurations.
    spotify: dict[str, Any] | None = None
    plex: dict[str, Any] | None = None
    logging: dict = Field(
        default_factory=lambda: {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "formatter": {
                    "validate": True,
                    "format": LOG_FORMAT,
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "formatter",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": "INFO",
                "handlers": ["console"],
            },
        }
    )

    def legacy_sources(self) -> list[EntityConfig]:
        legacy = []
        for type_, data in (("spotify", self.spotify), ("plex", self.plex)):
            if data is None:
                continue
            logger.warning(
                "DEPRECATED: the %r top-level property will be removed, use 'sources' instead",
                type_,
            )
            legacy.append(
                EntityConfig(
                    type=type_,
                    name="unnamed",
                    data=data,
                    provenance=LEGACY_PROVENANCE,
                )
            )
        return legacy


def load_config() -> BridgeConfig:
    """Never fails, an unusable file gives the default configuration."""
    try:
        return BridgeConfig.load()
    except FileNotFoundError:
        logger.info("no config file found, using defaults")
    except Exception as e:
        logger.warning("config file exists but could not be parsed: %s", e)
    return BridgeConfig()
