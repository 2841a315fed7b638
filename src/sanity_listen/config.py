"""
Environment-driven configuration.

Explicit arguments win; anything left unset is read from ``SANITY_*``
environment variables so the CLI and library callers resolve options the
same way.
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional, Sequence, Tuple

from sanity_listen.listen.options import DEFAULT_API_HOST, DEFAULT_API_VERSION, ListenOptions
from sanity_listen.listen.stream import DEFAULT_TIMEOUT
from sanity_listen.utils.errors import ConfigurationError
from sanity_listen.utils.logging import LoggerFactory

logger = LoggerFactory.get_logger("config")

PROJECT_ID_ENV = "SANITY_PROJECT_ID"
DATASET_ENV = "SANITY_DATASET"
API_VERSION_ENV = "SANITY_API_VERSION"
API_HOST_ENV = "SANITY_API_HOST"
TOKEN_ENV = "SANITY_TOKEN"
TIMEOUT_ENV = "SANITY_LISTEN_TIMEOUT"


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_listen_options(
    *,
    project_id: Optional[str] = None,
    dataset: Optional[str] = None,
    api_version: Optional[str] = None,
    token: Optional[str] = None,
    api_host: Optional[str] = None,
    variables: Optional[Mapping[str, Any]] = None,
    query_params: Sequence[Tuple[str, Any]] = (),
) -> ListenOptions:
    """Build :class:`ListenOptions` from arguments, falling back to the environment.

    Raises:
        ConfigurationError: project id or dataset could not be resolved
    """
    project_id = project_id or _env(PROJECT_ID_ENV)
    if not project_id:
        raise ConfigurationError(
            "Sanity project id not provided", config_key=PROJECT_ID_ENV
        )
    dataset = dataset or _env(DATASET_ENV)
    if not dataset:
        raise ConfigurationError("Sanity dataset not provided", config_key=DATASET_ENV)

    token = token or _env(TOKEN_ENV)
    options = ListenOptions(
        project_id=project_id,
        dataset=dataset,
        api_version=api_version or _env(API_VERSION_ENV) or DEFAULT_API_VERSION,
        token=token,
        api_host=api_host or _env(API_HOST_ENV) or DEFAULT_API_HOST,
        variables=dict(variables or {}),
        query_params=tuple(query_params),
    )
    logger.debug("Resolved listen options", extra_context=options.redacted())
    return options


def resolve_timeout(explicit: Optional[float] = None) -> float:
    """Read timeout in seconds; invalid environment values are ignored."""
    if explicit is not None:
        return explicit

    raw = _env(TIMEOUT_ENV)
    if raw is None:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(raw)
        if timeout <= 0:
            raise ValueError
    except ValueError:
        logger.warning(
            "Ignoring invalid listen timeout",
            extra_context={"variable": TIMEOUT_ENV, "value": raw},
        )
        return DEFAULT_TIMEOUT
    return timeout
