"""Operator configuration.

Configuration is read from an optional YAML file and then overridden by
command-line options and ``BW_OPERATOR_*`` environment variables (the
latter two are resolved by click in :mod:`bw_operator.cli`).
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from bw_operator.exceptions import ConfigError

ENV_PREFIX = "BW_OPERATOR"
ENV_CONFIG_PATH = f"{ENV_PREFIX}_CONFIG"
DEFAULT_CONFIG_PATH = Path("config") / "config.yaml"

_SECRET_FIELDS = frozenset({"client_id", "client_secret", "password"})


@dataclass(frozen=True, slots=True)
class OperatorConfig:
    """Settings of a running controller.

    Attributes:
        server_url: Bitwarden or Vaultwarden server URL; None keeps the bw default.
        client_id: API key client id used by ``bw login --apikey``.
        client_secret: API key client secret used by ``bw login --apikey``.
        password: Master password used by ``bw unlock``.
        bw_binary: Name or path of the bw binary.
        bw_timeout: Seconds a single bw invocation may take.
        namespace: Namespace to watch, or None for all namespaces.
        requeue_seconds: Delay between periodic reconciliations.
        error_requeue_seconds: Delay before retrying a failed reconciliation.
        workers: Number of reconciliations that may run at the same time.

    """

    server_url: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    password: str | None = None
    bw_binary: str = "bw"
    bw_timeout: float = 60.0
    namespace: str | None = None
    requeue_seconds: float = 10.0
    error_requeue_seconds: float = 5.0
    workers: int = 4

    def __post_init__(self) -> None:
        """Validate numeric settings."""
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        for name in ("bw_timeout", "requeue_seconds", "error_requeue_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> "OperatorConfig":
        """Build a configuration from a mapping of field names to values.

        Dashes in keys are accepted in place of underscores.

        Args:
            values: Mapping of setting names to values.

        Returns:
            The resulting configuration.

        Raises:
            ConfigError: If the mapping contains unknown keys or invalid values.

        """
        known = {f.name for f in fields(cls)}
        normalized = {str(key).replace("-", "_"): value for key, value in values.items()}
        unknown = sorted(set(normalized) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        try:
            return cls(**normalized)
        except TypeError as err:
            raise ConfigError(f"Invalid configuration: {err}") from err

    def merged(self, overrides: dict[str, Any]) -> "OperatorConfig":
        """Return a copy with every override that is not None applied.

        Args:
            overrides: Mapping of setting names to values; None means unset.

        Returns:
            The updated configuration.

        """
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})

    def summary(self) -> dict[str, str]:
        """Return the settings as display strings with credentials masked."""
        items: dict[str, str] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _SECRET_FIELDS:
                items[f.name] = "***" if value else "-"
            else:
                items[f.name] = "-" if value is None else str(value)
        return items


def load_config(path: str | Path | None) -> OperatorConfig:
    """Load the configuration file.

    Args:
        path: Path to a YAML configuration file. When None, the default
            ``config/config.yaml`` is used if it exists.

    Returns:
        The configuration from the file, or the defaults if there is no file.

    Raises:
        ConfigError: If the file is missing, malformed, or not a YAML mapping.

    """
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return OperatorConfig()
        path = DEFAULT_CONFIG_PATH

    try:
        with open(path) as stream:
            data = yaml.safe_load(stream)
    except FileNotFoundError as err:
        raise ConfigError(f"Configuration file '{path}' does not exist") from err
    except yaml.YAMLError as err:
        raise ConfigError(f"Configuration file '{path}' contains malformed YAML: {err}") from err

    if data is None:
        return OperatorConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file '{path}' does not contain a YAML mapping")

    return OperatorConfig.from_mapping(data)
