import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"

DEFAULT_CONSUMERS: list[dict[str, Any]] = [
    {"type": "console"},
    {"type": "file", "path": "simon-bot.log"},
]


def _console(level: str) -> str:
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    return f"console (stderr, {level})"


def _file(level: str, path: str = "simon-bot.log", rotation: str = "10 MB", retention: int = 3) -> str:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    logger.add(path, level=level, format=FILE_FORMAT, rotation=rotation, retention=retention)
    return f"file ({path}, {level})"


def _json(level: str) -> str:
    # One JSON object per line, for log collectors.
    logger.add(sys.stderr, level=level, serialize=True)
    return f"json (stderr, {level})"


_CONSUMERS: dict[str, Callable[..., str]] = {
    "console": _console,
    "file": _file,
    "json": _json,
}


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Replace every loguru sink with the configured consumers.

    Each consumer entry is ``{"type": ..., "level": ..., **options}``; the
    level falls back to ``level``. Returns one description per registered sink.
    """
    logger.remove()

    descriptions: list[str] = []
    for config in DEFAULT_CONSUMERS if consumers is None else consumers:
        sink_type = config.get("type", "")
        register = _CONSUMERS.get(sink_type)
        if register is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        options = {k: v for k, v in config.items() if k not in ("type", "level")}
        descriptions.append(register(config.get("level", level), **options))

    return descriptions
