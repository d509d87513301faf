import logging
import os
import sys
import time
from datetime import datetime, timezone

import structlog


# Custom logging formatter to support colors
class ColoredFormatter(logging.Formatter):
    # Define color codes
    COLORS = {
        'DEBUG': '\033[94m',   # Blue
        'INFO': '\033[92m',    # Green
        'WARNING': '\033[93m', # Yellow
        'ERROR': '\033[91m',   # Red
        'CRITICAL': '\033[95m' # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        return super().format(record)


def configure_logging(level=logging.INFO):
    """Configure stdlib logging and structlog for every mdchecker process"""
    formatter = ColoredFormatter(
        '[%(asctime)s.%(msecs)03d] %(levelname)s (%(name)s) %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[handler], force=True)
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def now_ms():
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


def epoch_to_datetime(epoch):
    return datetime.fromtimestamp(epoch / 1000, tz=timezone.utc)


def epoch_to_iso(epoch):
    """ISO timestamp without fractional seconds or offset, as the catalog filters expect"""
    return epoch_to_datetime(epoch).strftime('%Y-%m-%dT%H:%M:%S')


def parse_iso_epoch(value):
    """Parse an ISO-8601 catalog timestamp into epoch milliseconds, or None"""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def get_local_timezone():
    """Returns the local timezone of the system"""
    return datetime.now().astimezone().tzinfo


def format_epoch(epoch, format="%a, %b %d, %Y, %I:%M:%S %p"):
    """Formats an epoch (ms) in the local timezone"""
    if epoch is None or epoch <= 0:
        return "Never"
    return epoch_to_datetime(epoch).astimezone(get_local_timezone()).strftime(format)


def format_duration(duration):
    """Formats a millisecond duration as '1 h 2 m 3 s 4 ms'"""
    hours = duration // (60 * 60 * 1000)
    minutes = (duration // (60 * 1000)) % 60
    seconds = (duration // 1000) % 60
    millis = duration % 1000
    parts = []
    if hours > 0:
        parts.append(f"{hours} h")
    if minutes > 0:
        parts.append(f"{minutes} m")
    if seconds > 0:
        parts.append(f"{seconds} s")
    if millis > 0:
        parts.append(f"{millis} ms")
    return ' '.join(parts)


def ensure_int(value, fallback=0):
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return fallback
