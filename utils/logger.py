import logging
from pathlib import Path


VERBOSE_LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def parse_verbose_level(name: str) -> int:
    try:
        return VERBOSE_LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown verbose level '{name}' (expected one of: {', '.join(VERBOSE_LEVELS)})"
        ) from None


def get_logger(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    FUSECUT run-scoped logger.

    Rules:
    - The entry point initializes it ONCE per name
    - Pipeline stages receive it as an argument, they never create their own
    - Optional single log file: <log_dir>/meshing.log

    Args:
        name: Logger suffix (e.g. the output mesh stem)
        log_dir: Directory for the log file, console only if None
        level: Logging level
    """

    logger = logging.getLogger(f"FUSECUT::{name}")

    if logger.handlers:
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger  # already initialized

    logger.setLevel(level)
    logger.propagate = False

    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_dir is not None:
        log_dir = Path(log_dir).resolve()
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_dir / "meshing.log", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
