"""Configuration loading helpers for CLI entrypoints."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv

# Configuration directory for global CLI usage
CONFIG_DIR = Path.home() / ".config" / "policyscan"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"


def load_config(
    *,
    config_dir: Path = CONFIG_DIR,
    config_env_file: Path = CONFIG_ENV_FILE,
    cwd: Optional[Path] = None,
    load_env: Callable[[Path], bool] = load_dotenv,
    copy_file: Callable[[Path, Path], object] = shutil.copy,
) -> Optional[Path]:
    """Load .env configuration with fallback to the user config directory.

    Search order:
    1. .env in the current working directory
    2. ~/.config/policyscan/.env

    If neither exists and .env.example ships next to the package, it is
    copied to the user config directory as a starting point.

    Returns:
        The file that was loaded, or None.
    """
    local_env = (cwd or Path.cwd()) / ".env"
    if local_env.is_file():
        load_env(local_env)
        return local_env

    if config_env_file.is_file():
        load_env(config_env_file)
        return config_env_file

    package_dir = Path(__file__).parent.parent
    example_file = package_dir / ".env.example"

    if example_file.is_file():
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            copy_file(example_file, config_env_file)
        except OSError as exc:
            logging.debug("Could not create %s: %s", config_env_file, exc)
            return None
        logging.info(
            "Created config file at %s from .env.example. "
            "Please edit it with your POLICYSCAN_ANALYSIS_URL.",
            config_env_file,
        )
        load_env(config_env_file)
        return config_env_file
    return None
