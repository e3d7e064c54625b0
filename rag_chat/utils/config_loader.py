import os
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv


def _package_root() -> Path:
    # parents[0] = utils/, parents[1] = rag_chat/
    return Path(__file__).resolve().parents[1]


def load_config(config_path: str | None = None) -> dict:
    """
    Read the YAML config. Resolution order: explicit argument, CONFIG_PATH env var,
    then the packaged rag_chat/config/config.yaml.
    """
    load_dotenv()
    env_path = os.getenv("CONFIG_PATH", None)

    if config_path is None:
        config_path = env_path or str(_package_root() / "config" / "config.yaml")

    path = Path(config_path)

    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.exists():
        raise FileNotFoundError(f"Config file not found at {path}")
    with open(path, "r", encoding="utf-8") as file:
        return yaml.safe_load(file) or {}


@lru_cache(maxsize=1)
def get_config() -> dict:
    """Process-wide config, read once."""
    return load_config()
