import logging
import os

from rich.console import Console
from rich.logging import RichHandler

# third-party loggers that drown pipeline events at INFO
NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "sqlalchemy.orm": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "urllib3": logging.WARNING,
    "faiss": logging.WARNING,
    "pypdf": logging.ERROR,
}


class CustomLogger:
    """
    Configures the root logger once with a Rich console handler and hands out
    named loggers that share it. LOG_LEVEL overrides the default INFO level.
    """

    _configured = False

    def __init__(self, default_name: str = "rag_chat"):
        self.default_name = default_name
        self._configure()

    @classmethod
    def _configure(cls) -> None:
        if cls._configured:
            return

        level = os.getenv("LOG_LEVEL", "INFO").upper()
        console = Console(force_terminal=True, color_system="truecolor")
        logging.basicConfig(
            level=level,
            format="%(message)s",  # Rich handles formatting
            handlers=[
                RichHandler(
                    console=console,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    show_path=True,
                    log_time_format="%H:%M:%S.%f",
                )
            ],
        )
        for name, noisy_level in NOISY_LOGGERS.items():
            logging.getLogger(name).setLevel(noisy_level)

        cls._configured = True

    def get_logger(self, name: str | None = None) -> logging.Logger:
        return logging.getLogger(name or self.default_name)
