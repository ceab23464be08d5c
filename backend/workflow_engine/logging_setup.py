"""
Colored, structured log output for the workflow engine
"""

import logging
import os
import re
import sys
from datetime import datetime
from typing import Optional

from .settings import EngineSettings, get_settings


class ColorCodes:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    RED = '\033[31m'
    WHITE = '\033[37m'
    CYAN = '\033[36m'

    BRIGHT_BLACK = '\033[90m'
    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_MAGENTA = '\033[95m'
    BRIGHT_CYAN = '\033[96m'

    BG_WHITE = '\033[47m'


LEVEL_COLORS = {
    'DEBUG': ColorCodes.BRIGHT_BLACK,
    'INFO': ColorCodes.BRIGHT_BLUE,
    'WARNING': ColorCodes.BRIGHT_YELLOW,
    'ERROR': ColorCodes.BRIGHT_RED,
    'CRITICAL': ColorCodes.RED + ColorCodes.BG_WHITE + ColorCodes.BOLD,
}

SUCCESS_KEYWORDS = ['success', 'completed', 'started', 'running', 'deployed']
ERROR_KEYWORDS = ['error', 'failed', 'failure', 'cancelled', 'skipped', 'timeout']


class EnhancedFormatter(logging.Formatter):
    """Formatter with level colors and highlighted run/node identifiers"""

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        reset = ColorCodes.RESET if self.use_colors else ''

        level_str = f"[{record.levelname:8}]"
        name = record.name
        message = record.getMessage()

        if self.use_colors:
            level_str = f"{LEVEL_COLORS.get(record.levelname, ColorCodes.WHITE)}{level_str}{reset}"
            name = f"{ColorCodes.BRIGHT_CYAN}{name}{reset}"
            message = self._highlight(message)

        formatted = " ".join([
            f"{ColorCodes.DIM if self.use_colors else ''}{timestamp}{reset}",
            level_str,
            f"[{name}]",
            message,
        ])

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted

    def _highlight(self, message: str) -> str:
        # Run and workflow ids, e.g. [exec-3fa2c1d09b7e]
        message = re.sub(
            r'\b((?:exec|wf)-[a-f0-9]+)\b',
            f'{ColorCodes.BRIGHT_MAGENTA}\\1{ColorCodes.RESET}',
            message,
        )
        message = re.sub(
            r"'([^']*)'",
            f"{ColorCodes.BRIGHT_YELLOW}'\\1'{ColorCodes.RESET}",
            message,
        )
        message = re.sub(
            r'\b(\w+)=([^\s,\]}\)]+)',
            f'{ColorCodes.CYAN}\\1{ColorCodes.WHITE}={ColorCodes.BRIGHT_YELLOW}\\2{ColorCodes.RESET}',
            message,
        )
        for keyword in SUCCESS_KEYWORDS:
            message = re.sub(
                rf'\b({keyword})\b',
                f'{ColorCodes.BRIGHT_GREEN}\\1{ColorCodes.RESET}',
                message,
                flags=re.IGNORECASE,
            )
        for keyword in ERROR_KEYWORDS:
            message = re.sub(
                rf'\b({keyword})\b',
                f'{ColorCodes.BRIGHT_RED}\\1{ColorCodes.RESET}',
                message,
                flags=re.IGNORECASE,
            )
        return message


def _colors_enabled() -> bool:
    if os.getenv('NO_COLOR') is not None:
        return False
    if os.getenv('FORCE_COLOR', '').lower() in ('1', 'true', 'yes'):
        return True
    return sys.stderr.isatty() and os.getenv('TERM') != 'dumb'


def configure_logging(
    level: Optional[str] = None,
    use_colors: Optional[bool] = None,
    settings: Optional[EngineSettings] = None,
) -> logging.Logger:
    """
    Attach the enhanced formatter to the ``workflow_engine`` logger.

    The level defaults to ``EngineSettings.log_level``.

    Safe to call repeatedly; existing handlers on that logger are replaced.
    """
    logger = logging.getLogger("workflow_engine")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if use_colors is None:
        use_colors = _colors_enabled()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(EnhancedFormatter(use_colors=use_colors))
    logger.addHandler(handler)

    level_name = (level or (settings or get_settings()).log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger
