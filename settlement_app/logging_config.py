"""
Logging configuration for the settlement processor.
Supports normal mode (concise) and debug mode (verbose with file output).

Debug mode is ProcessorSettings.debug (SETTLEMENT_DEBUG, .env included) or -v.
"""
import logging
import sys
from pathlib import Path

# Debug log file path
DEBUG_LOG_PATH = Path(__file__).parent.parent / 'settlement_debug.log'

LEVEL_TAGS = {
    logging.DEBUG: ("[D]", "\033[90m", True),
    logging.INFO: ("[I]", "\033[32m", False),
    logging.WARNING: ("[W]", "\033[33m", False),
    logging.ERROR: ("[E]", "\033[31m", True),
    logging.CRITICAL: ("[!]", "\033[31;1m", True),
}


class ConciseFormatter(logging.Formatter):
    """Single-line level tag + message; colour only when writing to a terminal."""

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color
        self._formatters = {}
        for level, (tag, ansi, with_name) in LEVEL_TAGS.items():
            if color:
                tag = f"{ansi}{tag}\033[0m"
            fmt = f"{tag} %(name)s: %(message)s" if with_name else f"{tag} %(message)s"
            self._formatters[level] = logging.Formatter(fmt)

    def format(self, record):
        formatter = self._formatters.get(record.levelno, self._formatters[logging.INFO])
        return formatter.format(record)


class VerboseFormatter(logging.Formatter):
    """Timestamped format for the debug file; the thread shows loop vs signal handler."""
    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(level=logging.INFO, debug: bool = False):
    """
    Configure logging for the processor.
    Call this once at startup, after settings are loaded.

    With debug=True verbose resolver logs are also written to file.
    """
    # Silence noisy third-party loggers
    noisy_loggers = [
        'urllib3', 'requests', 'websockets', 'asyncio',
        'web3', 'web3.providers', 'web3.RequestManager', 'web3.manager',
        'sqlalchemy.engine',
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ConciseFormatter(color=sys.stdout.isatty()))
    root.addHandler(handler)

    app_logger = logging.getLogger('settlement_app')
    app_logger.setLevel(level)

    if debug:
        setup_debug_file_logging()
        app_logger.info(f"Debug logging enabled, verbose logs written to {DEBUG_LOG_PATH}")

    return app_logger


def setup_debug_file_logging(path: Path = DEBUG_LOG_PATH):
    """
    Attach a verbose file handler to the package logger.
    Every settlement_app.* module logs through it at DEBUG level.
    """
    parent_logger = logging.getLogger('settlement_app')
    parent_logger.setLevel(logging.DEBUG)
    if any(getattr(h, 'name', None) == 'settlement_debug_file' for h in parent_logger.handlers):
        return

    file_handler = logging.FileHandler(path, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(VerboseFormatter())
    file_handler.name = 'settlement_debug_file'
    parent_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module. Use: logger = get_logger(__name__)"""
    if name.startswith('settlement_app'):
        return logging.getLogger(name)
    return logging.getLogger(f'settlement_app.{name}')
