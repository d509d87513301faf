import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
BASE_DIR = os.path.dirname(APP_DIR)
CONFIG_DIR = os.environ.get('MDCHECKER_CONFIG_DIR', os.path.join(BASE_DIR, 'config'))
CONFIG_FILE = os.environ.get('MDCHECKER_CONFIG', os.path.join(CONFIG_DIR, 'settings.yaml'))
DB_FILE = os.path.join(CONFIG_DIR, 'mdchecker.db')

MDCHECKER_DB = 'sqlite:///' + DB_FILE

# Epoch durations, all in milliseconds
SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY

MANGADEX_DOMAIN = 'https://mangadex.org'
MANGADEX_API = 'https://api.mangadex.org'
PUSHOVER_API = 'https://api.pushover.net/1'

DEFAULT_SETTINGS = {
    "database": {
        "uri": MDCHECKER_DB,
    },
    "catalog": {
        "api_url": MANGADEX_API,
        "site_url": MANGADEX_DOMAIN,
        "timeout": 15,
        "languages": ["en"],
    },
    "schedules": {
        "update": "*/20 * * * *",
        "title": "10 */6 * * *",
        "deep": "40 */2 * * *",
    },
    "incremental": {
        "page_size": 100,
        "max_requests": 100,
        "safety_margin_ms": MINUTE,
        "fallback_window_ms": DAY,
        "recent_window_ms": WEEK,
    },
    "deep": {
        "batch_size": 200,
        "pause_every": 5,
        "pause_seconds": 1.0,
        "progress_every": 10,
        "stale_after_ms": DAY - MINUTE,
        "recent_window_ms": WEEK,
    },
    "titles": {
        "batch_size": 100,
        "stale_after_ms": 2 * DAY,
    },
    "control": {
        "socket_path": "/tmp/mdchecker.sock",
        "stale_retries": 3,
        "stale_retry_delay": 0.5,
    },
    "push": {
        "app_token": None,
        "api_url": PUSHOVER_API,
        "timeout": 10,
    },
    "http": {
        "host": None,
        "port": None,
        "socket_path": None,
    },
    "logging": {
        "no_start_stop_logs": False,
    },
}

# Job types, as stored in check_run.run_type
JOB_UPDATE_CHECK = 'update-check'
JOB_TITLE_CHECK = 'title-check'
JOB_DEEP_CHECK = 'deep-check'

# Commands accepted over the control socket
CONTROL_COMMANDS = [JOB_TITLE_CHECK, JOB_DEEP_CHECK]

ROLE_ADMIN = 'ADMIN'
