"""
Environment configuration for field encryption.

Every value is read from the environment at call time so that adding or
rotating keys takes effect without a restart.
"""

from __future__ import annotations

import os
import re
import warnings
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"
# Discrete per-version keys: ENCRYPTION_KEY_V1, ENCRYPTION_KEY_V2, ...
DISCRETE_KEY_PATTERN = re.compile(r"^ENCRYPTION_KEY_(V\d+)$", re.IGNORECASE)
CURRENT_KEY_ENV = "KMS_KEY_ID"
SEARCH_SALT_ENV = "SEARCH_SALT"
ALLOW_INSECURE_SALT_ENV = "ALLOW_INSECURE_SEARCH_SALT"

VERSION_PATTERN = re.compile(r"^v\d+$")
FALLBACK_KEY_VERSION = "v1"
# Published here, so only usable with ALLOW_INSECURE_SEARCH_SALT set.
FALLBACK_SEARCH_SALT = "fallback-search-salt-32-bytes!!"

_TRUTHY = {"1", "true", "yes", "on"}


def environ_mapping(environ: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    """Return ``environ`` or, when it is None, the live os.environ."""
    return os.environ if environ is None else environ


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def resolve_current_version(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return KMS_KEY_ID if it looks like ``v<digits>``, else ``v1``."""
    candidate = (environ_mapping(environ).get(CURRENT_KEY_ENV) or "").strip()
    if VERSION_PATTERN.match(candidate):
        return candidate
    return FALLBACK_KEY_VERSION


def resolve_search_salt(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the search-token salt.

    Raises:
        ConfigError: If SEARCH_SALT is blank and ALLOW_INSECURE_SEARCH_SALT
            is not set.
    """
    env = environ_mapping(environ)
    salt = env.get(SEARCH_SALT_ENV) or ""
    if salt.strip():
        return salt

    if not is_truthy(env.get(ALLOW_INSECURE_SALT_ENV)):
        raise ConfigError(
            f"{SEARCH_SALT_ENV} is not set. Search tokens need a secret salt; "
            f"generate one with `fieldcrypt generate-salt` or set "
            f"{ALLOW_INSECURE_SALT_ENV}=1 for development and tests."
        )

    warnings.warn(
        f"{SEARCH_SALT_ENV} is empty but {ALLOW_INSECURE_SALT_ENV} is set - "
        "using the published fallback salt is INSECURE outside development.",
        stacklevel=2,
    )
    return FALLBACK_SEARCH_SALT


def load_env_file(path: Optional[Union[str, Path]] = None) -> bool:
    """Load a .env file into os.environ without overriding existing values."""
    if path is None:
        return load_dotenv(find_dotenv(usecwd=True))
    return load_dotenv(Path(path))
