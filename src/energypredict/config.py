import logging
import os
from typing import Mapping

import attrs
import yaml

DEFAULT_SETTINGS_FILE = os.path.join(os.path.dirname(__file__), 'settings.yaml')

# environment variable -> (settings field, converter)
ENV_OVERRIDES = {
    'ENERGYPREDICT_API_URL': ('api_base_url', str),
    'ENERGYPREDICT_POLL_INTERVAL': ('poll_interval_s', float),
    'ENERGYPREDICT_MAX_ATTEMPTS': ('max_poll_attempts', int),
    'ENERGYPREDICT_REQUEST_TIMEOUT': ('request_timeout_s', float),
    'ENERGYPREDICT_LOG_LEVEL': ('log_level', str),
}


def _positive(instance, attribute, value):
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


def _non_negative(instance, attribute, value):
    if value < 0:
        raise ValueError(f"{attribute.name} must be non-negative, got {value}")


@attrs.frozen
class Settings:
    api_base_url: str = 'http://localhost:4000'
    poll_interval_s: float = attrs.field(default=8.0, converter=float, validator=_positive)
    max_poll_attempts: int = attrs.field(default=15, converter=int, validator=_non_negative)
    request_timeout_s: float = attrs.field(default=30.0, converter=float, validator=_positive)
    export_filename: str = 'energy_prediction.csv'
    log_level: str = 'INFO'


def load_settings_yaml(path: str | os.PathLike | None = None) -> dict:
    yaml_path = DEFAULT_SETTINGS_FILE if path is None else path
    with open(yaml_path, 'r') as f:
        return yaml.safe_load(f) or {}


def load_settings(path: str | os.PathLike | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """
    Load settings from the YAML file, then apply environment overrides.

    Args:
        path: YAML file to read; defaults to the packaged settings.yaml
        environ: mapping to read overrides from; defaults to os.environ

    Returns:
        Settings
    """
    environ = os.environ if environ is None else environ
    values = load_settings_yaml(path)

    unknown = set(values) - {a.name for a in attrs.fields(Settings)}
    if unknown:
        raise ValueError(f"Unknown settings in {path or DEFAULT_SETTINGS_FILE}: {sorted(unknown)}")

    for env_name, (field_name, convert) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == '':
            continue
        try:
            values[field_name] = convert(raw)
        except ValueError:
            raise ValueError(f"{env_name} must be a {convert.__name__}, got {raw!r}")

    return Settings(**values)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
