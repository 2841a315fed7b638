"""
Typed listen options and URL construction.

``ListenOptions`` validates the fixed option set the listen endpoint needs and
turns a GROQ filter plus variables into the finished request URL.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from sanity_listen.utils.errors import OptionsValidationError

DEFAULT_API_VERSION = "v2021-10-21"
DEFAULT_API_HOST = "api.sanity.io"

QueryParams = List[Tuple[str, Any]]

_CAMEL_TO_SNAKE = {
    "apiVersion": "api_version",
    "apiHost": "api_host",
    "projectId": "project_id",
    "queryParams": "query_params",
}
_KNOWN_KEYS = frozenset(
    {"api_version", "api_host", "dataset", "project_id", "query_params", "token", "variables"}
)
_IDENTIFIER = re.compile(r"^[A-Za-z0-9_-]+$")


def _format_param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_format_param_value(v) for v in value)
    return str(value)


def query_to_query_params(
    query: str,
    variables: Optional[Mapping[str, Any]] = None,
    query_params: Optional[Iterable[Tuple[str, Any]]] = None,
) -> QueryParams:
    """Build the ordered query-string pairs for a listen request.

    Variables become ``$name`` parameters with JSON-encoded values; extra
    ``query_params`` are appended in order after them.
    """
    params: QueryParams = [("query", query)]
    for name, value in (variables or {}).items():
        params.append((f"${name}", json.dumps(value, separators=(",", ":"))))
    for key, value in query_params or ():
        params.append((str(key), _format_param_value(value)))
    return params


@dataclass(frozen=True)
class ListenOptions:
    """Connection options for one listen subscription."""

    project_id: str
    dataset: str
    api_version: str = DEFAULT_API_VERSION
    token: Optional[str] = None
    query_params: Tuple[Tuple[str, Any], ...] = ()
    variables: Dict[str, Any] = field(default_factory=dict)
    api_host: str = DEFAULT_API_HOST

    def __post_init__(self) -> None:
        for name in ("project_id", "dataset"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise OptionsValidationError(
                    "required non-empty string", field=name, value=value, expected="str"
                )
            if not _IDENTIFIER.match(value):
                raise OptionsValidationError(
                    "may only contain letters, digits, '_' and '-'",
                    field=name,
                    value=value,
                    expected="identifier",
                )
        for name in ("api_version", "api_host"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise OptionsValidationError(
                    "must be a non-empty string", field=name, value=value, expected="str"
                )
        if self.token is not None and not isinstance(self.token, str):
            raise OptionsValidationError(
                "must be a string", field="token", value=self.token, expected="str"
            )
        if not isinstance(self.variables, Mapping):
            raise OptionsValidationError(
                "must be a mapping", field="variables", value=self.variables, expected="dict"
            )
        object.__setattr__(self, "query_params", _coerce_query_params(self.query_params))

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "ListenOptions":
        """Validate a plain mapping of options (camelCase or snake_case keys)."""
        normalized: Dict[str, Any] = {}
        for key, value in options.items():
            name = _CAMEL_TO_SNAKE.get(key, key)
            if name not in _KNOWN_KEYS:
                raise OptionsValidationError("unknown option", field=key, value=value)
            normalized[name] = value
        for required in ("project_id", "dataset"):
            if required not in normalized:
                raise OptionsValidationError("required option missing", field=required)
        if normalized.get("api_version") is None:
            normalized.pop("api_version", None)
        return cls(**normalized)

    @property
    def base_url(self) -> str:
        return f"https://{self.project_id}.{self.api_host}/{self.api_version}"

    def listen_url(self, query: str, *, extra_params: Sequence[Tuple[str, Any]] = ()) -> str:
        """Full listen endpoint URL for ``query``."""
        params = query_to_query_params(
            query, self.variables, list(self.query_params) + list(extra_params)
        )
        return f"{self.base_url}/data/listen/{self.dataset}?{urlencode(params)}"

    def doc_url(self, document_ids: Sequence[str]) -> str:
        """Document endpoint URL returning ``document_ids`` by id."""
        ids = ",".join(quote(doc_id, safe="._-") for doc_id in document_ids)
        return f"{self.base_url}/data/doc/{self.dataset}/{ids}"

    def headers(self, *, accept: str = "text/event-stream") -> Dict[str, str]:
        headers = {"Accept": accept}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def redacted(self) -> Dict[str, Any]:
        """Options as a dict suitable for logging (token hidden)."""
        return {
            "project_id": self.project_id,
            "dataset": self.dataset,
            "api_version": self.api_version,
            "api_host": self.api_host,
            "has_token": bool(self.token),
            "variables": sorted(self.variables),
        }


def _coerce_query_params(value: Any) -> Tuple[Tuple[str, Any], ...]:
    if isinstance(value, Mapping):
        value = list(value.items())
    if not isinstance(value, (list, tuple)):
        raise OptionsValidationError(
            "must be a list of (key, value) pairs",
            field="query_params",
            value=value,
            expected="list[tuple[str, Any]]",
        )
    pairs = []
    for item in value:
        if not isinstance(item, (list, tuple)) or len(item) != 2 or not isinstance(item[0], str):
            raise OptionsValidationError(
                "entries must be (str, value) pairs",
                field="query_params",
                value=item,
                expected="tuple[str, Any]",
            )
        pairs.append((item[0], item[1]))
    return tuple(pairs)
