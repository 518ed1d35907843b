import logging
import sys
from typing import Iterable

# Driver chatter that drowns out allocation/audit lines at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio")


def setup_logging(level: str = "INFO", quiet: Iterable[str] = NOISY_LOGGERS) -> None:
    """
    Configure stdout logging for the API process and the write worker.

    Called once from the app lifespan; repeated calls only adjust levels.
    """
    root_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(root_level)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
