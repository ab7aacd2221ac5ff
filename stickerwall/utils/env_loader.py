"""Environment variable loading utilities."""

import os
from pathlib import Path
from typing import Dict, Optional

import dotenv

ENV_PREFIX = "STICKERWALL_"


def find_env_file() -> Optional[Path]:
    """Find the .env file in the current directory or one of its parents."""
    current = Path.cwd()

    for path in [current, *current.parents]:
        env_file = path / ".env"
        if env_file.exists():
            return env_file

        # Also check for .env.local
        env_local = path / ".env.local"
        if env_local.exists():
            return env_local

    return None


def load_environment(env_file: Optional[str] = None) -> bool:
    """Load environment variables from a .env file.

    Variables already present in the process environment win over the file.

    Args:
        env_file: Optional path to specific .env file

    Returns:
        True if an environment file was loaded
    """
    env_path = Path(env_file) if env_file else find_env_file()

    if env_path and env_path.exists():
        return dotenv.load_dotenv(env_path, override=False)

    return False


def get_env_var(var_name: str, default: Optional[str] = None) -> Optional[str]:
    """Get a STICKERWALL_ environment variable value.

    Args:
        var_name: Name without the STICKERWALL_ prefix (e.g. "DENSITY")
        default: Default value if variable is not set

    Returns:
        Value of the environment variable or default
    """
    return os.getenv(f"{ENV_PREFIX}{var_name}", default)


def get_prefixed_env() -> Dict[str, str]:
    """Return every STICKERWALL_ variable, keyed by its lowercase suffix."""
    return {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in os.environ.items()
        if key.startswith(ENV_PREFIX) and value != ""
    }
