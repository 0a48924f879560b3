# src/contrib_recon/infrastructure/external_apis/transport.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Shared JSON-over-HTTP transport for upstream clients.

This transport is framework-agnostic and provides:

* Async HTTP (httpx) with a per-request timeout and bearer authentication.
* Deterministic mapping of failures to the reconciliation error taxonomy:
    - transport errors, timeouts, 429 and 5xx -> ``TransientFailure``
    - 400/401/403/404/422 and any other non-2xx -> ``PermanentFailure``
    - non-JSON bodies -> ``PermanentFailure``
* JSON decoding with ``Decimal`` for every non-integer number, so monetary
  values never pass through floats.

Retries are *not* performed here; the fetch controller owns the retry loop.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import suppress
from decimal import Decimal
from typing import Any, Final

import httpx
from pydantic import SecretStr

from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.exceptions.reconciliation import PermanentFailure, TransientFailure
from contrib_recon.infrastructure.logging.logger import get_json_logger, get_run_id

logger = get_json_logger(__name__)

_DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "User-Agent": "contrib-recon/0.1",
}

_PERMANENT_STATUSES: Final[frozenset[int]] = frozenset({400, 401, 403, 404, 422})


class JsonTransport:
    """Thin httpx wrapper returning decoded JSON or raising domain failures."""

    def __init__(
        self,
        *,
        source: SourceKind,
        base_url: str,
        timeout_s: float,
        api_token: SecretStr | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            source: Upstream this transport talks to (used in error details).
            base_url: Base URL; trailing slashes are stripped.
            timeout_s: Per-request timeout in seconds.
            api_token: Optional bearer token.
            http: Optional shared ``httpx.AsyncClient``. If omitted, a client
                is created and owned by this instance.
        """
        self._source = source
        self._base_url = base_url.rstrip("/")
        self._timeout = float(timeout_s)
        self._owns_client = http is None
        self._client = http or httpx.AsyncClient(timeout=self._timeout)
        self._headers = dict(_DEFAULT_HEADERS)
        if api_token is not None:
            self._headers["Authorization"] = f"Bearer {api_token.get_secret_value()}"

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance owns it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def get_json(self, path: str, *, params: Mapping[str, Any]) -> Any:
        """GET ``path`` and return the decoded JSON body.

        Raises:
            TransientFailure: On transport errors, timeouts, 429 or 5xx.
            PermanentFailure: On client errors or an undecodable body.
        """
        url = f"{self._base_url}{path}"
        headers = dict(self._headers)
        run_id = get_run_id()
        if run_id:
            headers["X-Run-ID"] = run_id

        try:
            response = await self._client.get(
                url, params=dict(params), headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            raise TransientFailure(
                f"{self._source.value} request timed out",
                details={"source": self._source.value, "path": path},
            ) from exc
        except httpx.RequestError as exc:
            raise TransientFailure(
                f"{self._source.value} transport error",
                details={"source": self._source.value, "path": path, "error": type(exc).__name__},
            ) from exc

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientFailure(
                f"{self._source.value} responded {status}",
                details={"source": self._source.value, "path": path, "status": status},
            )
        if status in _PERMANENT_STATUSES or not 200 <= status < 300:
            details: dict[str, Any] = {"source": self._source.value, "path": path, "status": status}
            with suppress(Exception):
                body = response.json()
                if isinstance(body, dict) and "message" in body:
                    details["message"] = str(body["message"])
            raise PermanentFailure(f"{self._source.value} responded {status}", details=details)

        try:
            return response.json(parse_float=Decimal)
        except ValueError as exc:
            logger.warning(
                "upstream.non_json",
                extra={"source": self._source.value, "path": path, "status": status},
            )
            raise PermanentFailure(
                f"{self._source.value} returned a non-JSON body",
                details={"source": self._source.value, "path": path},
            ) from exc


def payload_error(source: SourceKind, reason: str, **details: Any) -> PermanentFailure:
    """Build the failure raised for a structurally invalid payload."""
    return PermanentFailure(
        f"{source.value} payload invalid: {reason}",
        details={"source": source.value, "reason": reason, **details},
    )


__all__ = ["JsonTransport", "payload_error"]
