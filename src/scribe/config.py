"""Configuration loading from environment variables and scribe.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".scribe"
_CONFIG_FILENAME = "scribe.toml"


@dataclass
class EngineConfig:
    """Configuration for the generative backend."""

    name: str = "anthropic_api"
    fallback: str | None = None
    model: str | None = None
    max_tokens: int = 1024
    timeout: int = 60


@dataclass
class CurationConfig:
    """Memory curation pipeline knobs."""

    batch_size: int = 5
    curation_window: int = 15
    enhance_window: int = 3
    summary_max_chars: int = 2000
    note_max_chars: int = 200
    refresh_mode: str = "inline"  # inline | deferred
    worker_poll_interval: float = 30.0
    worker_max_attempts: int = 5
    trigger_max_attempts: int = 100  # counter transaction retry budget


@dataclass
class StoreConfig:
    """Document store backend."""

    backend: str = "memory"  # memory | sqlite
    path: Path = _DEFAULT_HOME / "scribe.db"
    max_attempts: int = 5


@dataclass
class ServerConfig:
    """HTTP callable surface."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class ScribeConfig:
    """Top-level Scribe configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    curation: CurationConfig = field(default_factory=CurationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    pid_file: Path = _DEFAULT_HOME / "scribe.pid"
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> ScribeConfig:
    """Load configuration from environment variables and optional scribe.toml.

    Priority: environment variables > scribe.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.scribe/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_HOME / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    curation_data = file_data.get("curation", {})
    store_data = file_data.get("store", {})
    server_data = file_data.get("server", {})

    config = ScribeConfig(
        engine=EngineConfig(
            name=os.getenv("SCRIBE_ENGINE", engine_data.get("name", "anthropic_api")),
            fallback=os.getenv("SCRIBE_FALLBACK", engine_data.get("fallback")),
            model=os.getenv("SCRIBE_MODEL", engine_data.get("model")),
            max_tokens=int(engine_data.get("max_tokens", 1024)),
            timeout=int(os.getenv("SCRIBE_TIMEOUT", engine_data.get("timeout", 60))),
        ),
        curation=CurationConfig(
            batch_size=int(os.getenv("SCRIBE_BATCH_SIZE", curation_data.get("batch_size", 5))),
            curation_window=int(curation_data.get("curation_window", 15)),
            enhance_window=int(curation_data.get("enhance_window", 3)),
            summary_max_chars=int(curation_data.get("summary_max_chars", 2000)),
            note_max_chars=int(curation_data.get("note_max_chars", 200)),
            refresh_mode=os.getenv(
                "SCRIBE_REFRESH_MODE", curation_data.get("refresh_mode", "inline")
            ),
            worker_poll_interval=float(curation_data.get("worker_poll_interval", 30.0)),
            worker_max_attempts=int(curation_data.get("worker_max_attempts", 5)),
            trigger_max_attempts=int(curation_data.get("trigger_max_attempts", 100)),
        ),
        store=StoreConfig(
            backend=os.getenv("SCRIBE_STORE", store_data.get("backend", "memory")),
            path=Path(
                os.getenv("SCRIBE_STORE_PATH", store_data.get("path", str(_DEFAULT_HOME / "scribe.db")))
            ),
            max_attempts=int(store_data.get("max_attempts", 5)),
        ),
        server=ServerConfig(
            host=os.getenv("SCRIBE_HOST", server_data.get("host", "127.0.0.1")),
            port=int(os.getenv("SCRIBE_PORT", server_data.get("port", 8080))),
        ),
        log_level=os.getenv("SCRIBE_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    if config.curation.refresh_mode not in ("inline", "deferred"):
        raise ValueError(f"Unknown refresh_mode: {config.curation.refresh_mode}")
    return config
