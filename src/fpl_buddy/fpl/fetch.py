"""Bounded HTTP+JSON retrieval for the FPL API.

Bodies are streamed into a buffer capped at a per-call byte budget. An empty
or truncated body is retried once; every other failure is terminal for the
call and surfaces as a :class:`FetchError` subclass.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import requests  # type: ignore[import-untyped]
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://fantasy.premierleague.com/api"
USER_AGENT = "fpl-buddy/1.0"
_CHUNK_SIZE = 8192

# Field filter: ``True`` keeps a value as-is, a dict keeps only the listed keys
# of an object, and a one-element list applies its element to every array item.
FieldFilter = bool | dict[str, Any] | list[Any]


class FetchError(RuntimeError):
    """Base class for every failed fetch."""


class TransportError(FetchError):
    """Connect/read failure or a non-200 status."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ParseError(FetchError):
    """The body is not a JSON document."""


class TransientParseError(ParseError):
    """Empty or truncated body; worth exactly one retry."""


class DataError(FetchError):
    """The document lacks a field the caller requires."""


class CapacityError(FetchError):
    """The body exceeded its byte budget."""

    def __init__(self, message: str, *, budget: int) -> None:
        super().__init__(message)
        self.budget = budget


def apply_filter(document: Any, selection: FieldFilter) -> Any:
    """Keep only the parts of ``document`` selected by ``selection``."""

    if selection is True:
        return document
    if isinstance(selection, dict):
        if not isinstance(document, dict):
            return None
        return {
            key: apply_filter(document[key], child)
            for key, child in selection.items()
            if key in document
        }
    if isinstance(selection, list) and selection:
        if not isinstance(document, list):
            return None
        return [apply_filter(item, selection[0]) for item in document]
    return None


def _decode(body: bytes) -> Any:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut at the very end means the body was cut off.
        if exc.reason == "unexpected end of data":
            raise TransientParseError(f"truncated UTF-8 body: {exc}") from exc
        raise ParseError(f"body is not valid UTF-8: {exc}") from exc
    if not text.strip():
        raise TransientParseError("empty body")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        # An error at the very end of the text means the document was cut off.
        if exc.pos >= len(text.rstrip()):
            raise TransientParseError(f"incomplete JSON: {exc.msg}") from exc
        raise ParseError(f"malformed JSON at offset {exc.pos}: {exc.msg}") from exc


class FplHttpClient:
    """Minimal FPL API client built on a shared :class:`requests.Session`."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE,
        *,
        connect_timeout: float = 15.0,
        read_timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = (connect_timeout, read_timeout)
        self._session = session or requests.Session()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def fetch_json(
        self, url: str, byte_budget: int, field_filter: FieldFilter | None = None
    ) -> Any:
        """Fetch ``url`` and return the (optionally filtered) JSON document."""

        document = self._fetch_with_retry(url, byte_budget)
        if field_filter is None:
            return document
        return apply_filter(document, field_filter)

    @retry(
        retry=retry_if_exception_type(TransientParseError),
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.2),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _fetch_with_retry(self, url: str, byte_budget: int) -> Any:
        return _decode(self._read_body(url, byte_budget))

    def _read_body(self, url: str, byte_budget: int) -> bytes:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        try:
            response = self._session.get(
                url, headers=headers, timeout=self._timeout, stream=True
            )
        except requests.RequestException as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc

        try:
            if response.status_code != 200:
                raise TransportError(
                    f"GET {url} returned HTTP {response.status_code}",
                    status=response.status_code,
                )
            declared = response.headers.get("Content-Length")
            if declared is not None and declared.isdigit():
                if int(declared) > byte_budget:
                    raise CapacityError(
                        f"{url} declares {declared} bytes, budget {byte_budget}",
                        budget=byte_budget,
                    )

            buffer = bytearray()
            try:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    buffer.extend(chunk)
                    if len(buffer) > byte_budget:
                        raise CapacityError(
                            f"{url} exceeded byte budget {byte_budget}",
                            budget=byte_budget,
                        )
            except requests.RequestException as exc:
                raise TransportError(f"reading {url} failed: {exc}") from exc
            logger.debug("Fetched %s (%d bytes)", url, len(buffer))
            return bytes(buffer)
        finally:
            response.close()


__all__ = [
    "DEFAULT_API_BASE",
    "USER_AGENT",
    "CapacityError",
    "DataError",
    "FetchError",
    "FieldFilter",
    "FplHttpClient",
    "ParseError",
    "TransientParseError",
    "TransportError",
    "apply_filter",
]
