"""Configuration constants, .env loading, and token resolution.

WHY: The client needs a base URL, a user agent, polling defaults, and an
API token. Keeping these in one module makes them easy to find and to
override from the environment, without editing client code.

HOW: python-dotenv reads the project's .env file once on import. The
token is resolved through a prioritized lookup chain (explicit argument,
then the process-level value, then the environment) that the client
evaluates once at construction.

RULES:
- The token is never hardcoded and never logged
- Blank values at any level of the chain are skipped
- PAPAREO_BASE_URL can override the API base URL
- The process-level value comes from .env or set_process_token()
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import dotenv_values, find_dotenv

from papareo import __version__

TOKEN_ENV_VAR = "PAPAREO_TOKEN"

PAPAREO_BASE_URL = os.getenv("PAPAREO_BASE_URL", "https://api.papareo.io/tuhi/")
USER_AGENT = "papareo-client/{}".format(__version__)

DEFAULT_POLL_INTERVAL_S = 1.0
"""Delay between status checks in the long-recording workflow."""

# Values from the project's .env file, kept apart from os.environ so the
# lookup chain can rank them above the process environment.
_process_settings: dict[str, Optional[str]] = dict(
    dotenv_values(find_dotenv(usecwd=True))
)


def set_process_token(token: Optional[str]) -> None:
    """Set (or with None, clear) the process-level token."""
    _process_settings[TOKEN_ENV_VAR] = token


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_token(explicit: Optional[str] = None) -> Optional[str]:
    """Return the first non-blank token from the lookup chain, or None.

    WHY: Callers may pass a token directly, keep it in a .env file next to
    their project, or export it in the shell. The most specific source
    must win.

    HOW: Walks explicit > process-level setting > environment variable.

    RULES:
    - Blank and whitespace-only values are skipped
    - Returns None when no level yields a token
    """
    chain = (
        lambda: explicit,
        lambda: _process_settings.get(TOKEN_ENV_VAR),
        lambda: os.getenv(TOKEN_ENV_VAR),
    )
    for lookup in chain:
        token = _clean(lookup())
        if token:
            return token
    return None


def load_token(explicit: Optional[str] = None) -> str:
    """Resolve the token, raising ValueError when none is configured."""
    token = resolve_token(explicit)
    if not token:
        raise ValueError(
            "Papa Reo API token not configured. "
            "Pass --token, add PAPAREO_TOKEN to a .env file, "
            "or export PAPAREO_TOKEN."
        )
    return token
