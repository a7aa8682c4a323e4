import logging
import os
import sys
from typing import Any

import structlog
from rich.console import Console
from rich.text import Text

# Progress bars, summary tables and log lines all share stderr
console = Console(stderr=True)

LEVEL_STYLES = {
    'debug': 'dim',
    'info': 'green',
    'warning': 'yellow',
    'error': 'bold red',
    'critical': 'bold magenta',
}

# Rendered before any other key so per-image lines line up
LEADING_KEYS = ('input', 'engine', 'image')


class RichConsoleRenderer:
    """
    Print structlog events on the shared console.

    Lines read ``<time> <logger> <level> <event> key=value ...``. Values are
    appended as plain text, so image paths and references containing square
    brackets are never parsed as markup. An ``_style`` key overrides the
    style of the event text.
    """

    def __init__(self, target: Console | None = None):
        self._console = target or console

    def __call__(self, logger, name, event_dict):
        style = event_dict.pop('_style', None)
        level = event_dict.pop('level', 'info')
        timestamp = event_dict.pop('timestamp', '')
        logger_name = event_dict.pop('logger', None)
        event = str(event_dict.pop('event', ''))
        exception = event_dict.pop('exception', None)

        line = Text()
        if timestamp:
            line.append(f"{timestamp} ", style='dim')
        if logger_name:
            line.append(f"{logger_name} ", style='bold')
        line.append(f"{level:<8} ", style=LEVEL_STYLES.get(level, 'white'))
        line.append(event, style=style or '')

        keys = [k for k in LEADING_KEYS if k in event_dict]
        keys += [k for k in event_dict if k not in LEADING_KEYS]
        for key in keys:
            line.append(f" {key}", style='cyan')
            line.append('=')
            line.append(repr(event_dict[key]), style='green')

        if exception:
            line.append(f"\n{exception}", style='red')

        self._console.print(line, highlight=False)
        raise structlog.DropEvent


def drop_style_processor(logger, method_name, event_dict):
    """Strip the console-only '_style' hint from machine-readable output."""
    event_dict.pop('_style', None)
    return event_dict


def setup_logging(level: str = 'INFO', json_format: bool | None = None) -> None:
    """
    Configure structlog for the CLI.

    JSON lines are emitted when *json_format* is set or when
    ``SBOMINDEX_LOG_FORMAT=json``; otherwise events go to the rich console.
    """
    if json_format is None:
        json_format = os.getenv('SBOMINDEX_LOG_FORMAT', '').lower() == 'json'

    logging.basicConfig(format='%(message)s', stream=sys.stderr, level=level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors += [drop_style_processor, structlog.processors.JSONRenderer()]
    else:
        processors.append(RichConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
