import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import click

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"

# environment variable -> dotted configuration key
ENV_OVERRIDES = {
    "SOURCE_STORAGE_URL": "source.url",
    "DESTINATION_STORAGE_URL": "destination.url",
    "STORAGE_REGION": "destination.region",
}


@dataclass
class EndpointConfig:
    url: str = ""
    access_key_id: str = ""
    region: str = DEFAULT_REGION


@dataclass
class MigrationConfig:
    concurrency: int = 1
    page_size: int = 1000
    retry_attempts: int = 3
    retry_delay_seconds: int = 1
    # True uploads every object unconditionally; False checks the
    # destination and skips objects that are already there.
    overwrite_existing: bool = True
    default_bucket_public: bool = False
    # None lets archive inference decide whether a project folder wraps the buckets.
    wrapping_root: Optional[bool] = None


@dataclass
class Config:
    source: EndpointConfig = field(default_factory=EndpointConfig)
    destination: EndpointConfig = field(default_factory=EndpointConfig)
    migration: MigrationConfig = field(default_factory=MigrationConfig)

    def validate(self) -> None:
        errors: List[str] = []
        if self.migration.concurrency <= 0:
            errors.append("migration.concurrency must be > 0")
        if self.migration.page_size <= 0:
            errors.append("migration.page_size must be > 0")
        if self.migration.retry_attempts < 0:
            errors.append("migration.retry_attempts must be >= 0")
        if self.migration.retry_delay_seconds < 0:
            errors.append("migration.retry_delay_seconds must be >= 0")
        for name in ("source", "destination"):
            url = getattr(self, name).url
            if url and not url.startswith(("http://", "https://")):
                errors.append(f"{name}.url must start with http:// or https://")
        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


def validate_config(config: Config) -> None:
    config.validate()


def config_to_dict(config: Config) -> dict:
    return asdict(config)


def _endpoint_from_dict(data: dict) -> EndpointConfig:
    return EndpointConfig(
        url=data.get("url", ""),
        access_key_id=data.get("access_key_id", ""),
        region=data.get("region", DEFAULT_REGION),
    )


def config_from_dict(data: dict) -> Config:
    mig_data = data.get("migration", {})
    migration = MigrationConfig(
        concurrency=mig_data.get("concurrency", 1),
        page_size=mig_data.get("page_size", 1000),
        retry_attempts=mig_data.get("retry_attempts", 3),
        retry_delay_seconds=mig_data.get("retry_delay_seconds", 1),
        overwrite_existing=mig_data.get("overwrite_existing", True),
        default_bucket_public=mig_data.get("default_bucket_public", False),
        wrapping_root=mig_data.get("wrapping_root"),
    )

    return Config(
        source=_endpoint_from_dict(data.get("source", {})),
        destination=_endpoint_from_dict(data.get("destination", {})),
        migration=migration,
    )


class ConfigManager:
    """Manages configuration loading, saving, and access for the storage migrator.

    Secret keys are never written to the configuration file; they are read
    from the environment or prompted for at run time.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".storage-migrator"
    DEFAULT_CONFIG_FILE = "config.json"

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path or (
            self.DEFAULT_CONFIG_DIR / self.DEFAULT_CONFIG_FILE
        )
        self._config: Optional[Config] = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = Config()
        return self._config

    def ensure_config_dir(self) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Config:
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                "Run 'storage-migrator config' to create one."
            )

        try:
            raw = self._config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in configuration file {self._config_path}: {e}"
            ) from e

        self._config = config_from_dict(data)

        for env_var, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                self.set(key, value)
                logger.debug("Overriding %s from %s environment variable", key, env_var)

        self._config.validate()
        logger.info("Configuration loaded from %s", self._config_path)
        return self._config

    def save(self) -> None:
        self.ensure_config_dir()
        if self._config is None:
            self._config = Config()
        data = config_to_dict(self._config)
        try:
            self._config_path.write_text(
                json.dumps(data, indent=2) + "\n", encoding="utf-8"
            )
        except OSError as e:
            raise ConfigurationError(f"Failed to write configuration file: {e}") from e
        logger.info("Configuration saved to %s", self._config_path)

    def get(self, key: str, default: Any = None) -> Any:
        if self._config is None:
            try:
                self.load()
            except ConfigurationError:
                self._config = Config()
        obj: Any = self._config
        for segment in key.split("."):
            if not hasattr(obj, segment):
                return default
            obj = getattr(obj, segment)
        return obj

    def set(self, key: str, value: Any) -> None:
        if self._config is None:
            try:
                self.load()
            except ConfigurationError:
                self._config = Config()

        segments = key.split(".")
        obj: Any = self._config
        for segment in segments[:-1]:
            if not hasattr(obj, segment):
                raise ConfigurationError(
                    f"Invalid configuration key: {key} "
                    f"(unknown segment '{segment}')",
                    config_key=key,
                )
            obj = getattr(obj, segment)

        final = segments[-1]
        if not hasattr(obj, final):
            raise ConfigurationError(
                f"Invalid configuration key: {key} (unknown segment '{final}')",
                config_key=key,
            )
        setattr(obj, final, value)

    def get_or_prompt(self, key: str, prompt_text: str, is_secret: bool = False) -> str:
        existing = self.get(key)
        if existing:
            value = click.prompt(prompt_text, default=existing, hide_input=is_secret)
        else:
            value = click.prompt(prompt_text, hide_input=is_secret)
        self.set(key, value)
        return str(value)

    def exists(self) -> bool:
        return self._config_path.exists()
