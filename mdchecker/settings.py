import copy
import os

import structlog
import yaml

from mdchecker.constants import CONFIG_FILE, DEFAULT_SETTINGS

logger = structlog.get_logger("settings")

TRUE_VALUES = ["true", "t", "on", "yes"]

# Environment variable -> (section, key, parser)
ENV_OVERRIDES = {
    "UPDATE_SCHEDULE": ("schedules", "update", "string"),
    "TITLE_UPDATE_SCHEDULE": ("schedules", "title", "string"),
    "DEEP_CHECK_SCHEDULE": ("schedules", "deep", "string"),
    "EXPRESS_HOST": ("http", "host", "string"),
    "EXPRESS_PORT": ("http", "port", "port"),
    "EXPRESS_SOCKET_PATH": ("http", "socket_path", "string"),
    "NO_START_STOP_LOGS": ("logging", "no_start_stop_logs", "boolean"),
    "PUSHOVER_APP_TOKEN": ("push", "app_token", "string"),
    "DATABASE_URL": ("database", "uri", "string"),
    "CONTROL_SOCKET_PATH": ("control", "socket_path", "string"),
}


def process_string(raw):
    if raw is None:
        return None
    raw = str(raw)
    return raw if len(raw) > 0 else None


def process_port(raw):
    raw = process_string(raw)
    if raw is None:
        return None
    try:
        port = int(raw)
    except ValueError:
        return None
    return port if port > 0 else None


def process_boolean(raw, fallback=False):
    raw = process_string(raw)
    if raw is None:
        return fallback
    return raw.lower() in TRUE_VALUES


def merge_settings(base, overrides):
    """Deep merge overrides into a copy of base, section by section"""
    merged = copy.deepcopy(base)
    for section, values in (overrides or {}).items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def apply_env_overrides(settings, environ=None):
    environ = os.environ if environ is None else environ
    for name, (section, key, kind) in ENV_OVERRIDES.items():
        if name not in environ:
            continue
        raw = environ[name]
        if kind == "port":
            value = process_port(raw)
        elif kind == "boolean":
            value = process_boolean(raw, settings[section].get(key, False))
        else:
            value = process_string(raw)
        if value is not None:
            settings.setdefault(section, {})[key] = value
    return settings


# Cache variable
_cached_settings = None


def load_settings(force=False, config_file=None):
    global _cached_settings

    if _cached_settings and not force:
        return _cached_settings

    config_file = config_file or CONFIG_FILE
    file_settings = {}
    if os.path.exists(config_file):
        logger.debug(f"Reading configuration file: {config_file}")
        with open(config_file, "r") as yaml_file:
            file_settings = yaml.safe_load(yaml_file) or {}
    else:
        logger.debug(f"No configuration file at {config_file}, using defaults")

    settings = apply_env_overrides(merge_settings(DEFAULT_SETTINGS, file_settings))

    _cached_settings = settings
    return settings
