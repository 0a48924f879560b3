# src/contrib_recon/infrastructure/external_apis/internal_system/client.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Internal system of record HTTP client.

Endpoint:
    ``GET {base_url}/entities/{entity_ref}/contributions/by-period``
    with query ``start=YYYY-MM`` (inclusive) and ``end=YYYY-MM`` (exclusive).

Payload::

    {
      "currency": "BRL",
      "periods": [
        {"period": "2026-07",
         "lines": [{"rate": "0.11", "remuneration": "1000.00", "contribution": "110.00"}]}
      ]
    }
"""

from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import quote

import httpx
from pydantic import SecretStr

from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.interfaces.gateways.source_clients import PeriodAggregate, RateLine
from contrib_recon.infrastructure.external_apis.parsing import (
    parse_amount,
    parse_period,
    parse_rate,
    payload_currency,
    require_list,
    require_mapping,
)
from contrib_recon.infrastructure.external_apis.transport import JsonTransport

_SOURCE = SourceKind.INTERNAL


class InternalSystemHttpClient:
    """InternalSystemClient implementation over HTTP."""

    def __init__(
        self,
        *,
        base_url: str,
        currency: str,
        timeout_s: float = 10.0,
        api_token: SecretStr | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL of the internal system API.
            currency: Currency assumed when the payload omits one.
            timeout_s: Per-request timeout in seconds.
            api_token: Optional bearer token.
            http: Optional shared ``httpx.AsyncClient``.
        """
        self._currency = currency.upper()
        self._transport = JsonTransport(
            source=_SOURCE,
            base_url=base_url,
            timeout_s=timeout_s,
            api_token=api_token,
            http=http,
        )

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def aggregate_by_period(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[PeriodAggregate]:
        """Return period-grouped aggregates for ``[start, end)``.

        Raises:
            TransientFailure: For retryable transport conditions.
            PermanentFailure: For client errors and malformed payloads.
        """
        body = require_mapping(
            _SOURCE,
            await self._transport.get_json(
                f"/entities/{quote(entity_ref, safe='')}/contributions/by-period",
                params={"start": str(start), "end": str(end)},
            ),
            "body",
        )
        currency = payload_currency(_SOURCE, body, self._currency)

        aggregates: list[PeriodAggregate] = []
        for raw_row in require_list(_SOURCE, body.get("periods"), "periods"):
            row = require_mapping(_SOURCE, raw_row, "periods[]")
            lines = [
                RateLine(
                    rate=parse_rate(_SOURCE, line.get("rate")),
                    remuneration=parse_amount(_SOURCE, line.get("remuneration"), currency),
                    contribution=parse_amount(_SOURCE, line.get("contribution"), currency),
                )
                for line in (
                    require_mapping(_SOURCE, item, "periods[].lines[]")
                    for item in require_list(_SOURCE, row.get("lines"), "periods[].lines")
                )
            ]
            aggregates.append(
                PeriodAggregate(period=parse_period(_SOURCE, row.get("period")), lines=lines)
            )
        return aggregates


__all__ = ["InternalSystemHttpClient"]
