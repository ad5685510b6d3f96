from os import getenv
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from kafka_replay.core.errors import ConfigurationError

CONFIG_FILE_IN_CURRENT_DIR = "kafka-replay.yaml"


class Profile(BaseModel):
    brokers: List[str] = Field(default_factory=list)


class KafkaSettings(BaseModel):
    group_id: str = "kafka-replay-record"
    auto_offset_reset: str = "latest"
    fetch_wait_max_ms: int = 50
    socket_timeout_ms: int = 10000
    session_timeout_ms: int = 6000
    auto_commit: bool = True
    poll_timeout: float = 0.5
    flush_timeout: float = 30.0
    metadata_timeout: float = 10.0

    def to_consumer_config(self, brokers: List[str], group_id: Optional[str] = None):
        return {
            "bootstrap.servers": ",".join(brokers),
            "group.id": group_id or self.group_id,
            "auto.offset.reset": self.auto_offset_reset,
            "fetch.wait.max.ms": self.fetch_wait_max_ms,
            "socket.timeout.ms": self.socket_timeout_ms,
            "session.timeout.ms": self.session_timeout_ms,
            "enable.auto.commit": self.auto_commit,
            "enable.partition.eof": True,
        }

    def to_producer_config(self, brokers: List[str]):
        return {
            "bootstrap.servers": ",".join(brokers),
            "socket.timeout.ms": self.socket_timeout_ms,
        }


class Settings(BaseModel):
    default_profile: Optional[str] = None
    profiles: Dict[str, Profile] = Field(default_factory=dict)
    kafka: KafkaSettings = KafkaSettings()

    @classmethod
    def from_yaml(cls, file_path: str | Path) -> "Settings":
        logger.debug(f"Loading config from {file_path}")
        try:
            with Path(file_path).open() as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse config file {file_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file {file_path}: {e}")
        try:
            return cls(**(config_data or {}))
        except (TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid config file {file_path}: {e}")

    def profile(self, name: Optional[str] = None) -> Profile:
        name = name or self.default_profile
        if not name:
            raise ConfigurationError("No profile specified and no default_profile configured")
        try:
            return self.profiles[name]
        except KeyError:
            raise ConfigurationError(f"Profile {name!r} not found in config")


def default_config_path() -> Path:
    return Path.home() / ".kafka-replay" / "config.yaml"


def resolve_config_path(path: Optional[str | Path] = None) -> Path:
    """Explicit path first, then ./kafka-replay.yaml, then ~/.kafka-replay/config.yaml."""
    if path:
        return Path(path)
    local = Path.cwd() / CONFIG_FILE_IN_CURRENT_DIR
    if local.exists():
        return local
    return default_config_path()


def load_config(path: Optional[str | Path] = None) -> Settings:
    resolved = resolve_config_path(path)
    if not resolved.exists():
        logger.debug(f"No config file at {resolved}, using defaults")
        return Settings()
    return Settings.from_yaml(resolved)


def _split_brokers(values) -> List[str]:
    brokers = []
    for value in values:
        brokers.extend(b.strip() for b in value.split(",") if b.strip())
    return brokers


def resolve_brokers(
    flag_brokers: Optional[List[str]], profile: Optional[str], settings: Settings
) -> List[str]:
    """
    Determine the brokers for a command.

    Precedence: --brokers flag, then the selected profile, then KAFKA_BROKERS.
    """
    brokers = _split_brokers(flag_brokers or [])
    if brokers:
        return brokers

    if settings.profiles:
        try:
            selected = settings.profile(profile)
        except ConfigurationError as e:
            if profile:
                raise
            logger.debug(f"Skipping profile lookup: {e}")
        else:
            if selected.brokers:
                return selected.brokers

    env = getenv("KAFKA_BROKERS")
    if env:
        brokers = _split_brokers([env])
        if brokers:
            return brokers

    raise ConfigurationError(
        "No brokers configured; set --brokers, a profile, or KAFKA_BROKERS"
    )

