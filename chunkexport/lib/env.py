"""Environment handling for connection settings.

Job files keep credentials out of YAML by referencing environment
variables (``password: ${DB_PASSWORD}``). The references are resolved
when a connection is opened, after an optional .env file was loaded with
python-dotenv.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import find_dotenv, load_dotenv

from chunkexport.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["expand_connection_options", "expand_env_vars", "load_env_file"]

# ${VAR_NAME} or $VAR_NAME
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load variables from a .env file into ``os.environ``.

    Without ``path``, the nearest .env from the working directory upwards
    is used if there is one. Variables already set in the environment win
    unless ``override`` is true.

    Returns:
        True if a file was loaded

    Raises:
        ConfigurationError: ``path`` was given but does not exist
    """
    if path is None:
        found = find_dotenv(usecwd=True)
        if not found:
            return False
        path = found
    elif not Path(path).is_file():
        raise ConfigurationError(f".env file not found: {path}", field="env_file", value=str(path))

    loaded = load_dotenv(dotenv_path=path, override=override)
    logger.debug("Loaded environment variables from %s", path)
    return loaded


def _unset_variables(value: str) -> list:
    # Only ${VAR} is strict; a bare "$" may be part of a literal password
    return [
        match.group(1)
        for match in ENV_VAR_PATTERN.finditer(value)
        if match.group(1) and match.group(1) not in os.environ
    ]


def expand_env_vars(value: str) -> str:
    """Replace ${VAR} and $VAR with their values; unset variables stay as written.

    Example:
        >>> os.environ["DB_HOST"] = "localhost"
        >>> expand_env_vars("${DB_HOST}:3306")
        'localhost:3306'
    """

    def replacer(match: re.Match) -> str:
        return os.environ.get(match.group(1) or match.group(2), match.group(0))

    return ENV_VAR_PATTERN.sub(replacer, value)


def expand_connection_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Resolve variable references in every string connection option.

    Raises:
        ConfigurationError: An option references an unset ${VAR}.
            The value is not echoed, since it may be a secret.
    """
    result: Dict[str, Any] = {}
    for key, value in options.items():
        if not isinstance(value, str):
            result[key] = value
            continue
        missing = _unset_variables(value)
        if missing:
            raise ConfigurationError(
                f"connection.{key} references unset environment variable(s): "
                f"{', '.join(missing)}",
                field=f"connection.{key}",
                suggestion="Export the variable or put it in the file passed with --env-file",
            )
        result[key] = expand_env_vars(value)
    return result
