# src/contrib_recon/infrastructure/external_apis/external_portal/client.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""External portal HTTP client.

Endpoint:
    ``GET {base_url}/employers/{entity_ref}/contributions/by-rate``
    with query ``from=YYYY-MM`` (inclusive) and ``to=YYYY-MM`` (exclusive).

Payload::

    {
      "currency": "BRL",
      "rates": [
        {"rate": "0.11",
         "periods": [{"period": "2026-07", "remuneration": "1000.00", "contribution": "110.00"}]}
      ]
    }

The portal is slow and rate limited; callers are expected to keep its
concurrency bound low.
"""

from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import quote

import httpx
from pydantic import SecretStr

from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.interfaces.gateways.source_clients import PeriodLine, RateAggregate
from contrib_recon.infrastructure.external_apis.parsing import (
    parse_amount,
    parse_period,
    parse_rate,
    payload_currency,
    require_list,
    require_mapping,
)
from contrib_recon.infrastructure.external_apis.transport import JsonTransport

_SOURCE = SourceKind.PORTAL


class ExternalPortalHttpClient:
    """ExternalPortalClient implementation over HTTP."""

    def __init__(
        self,
        *,
        base_url: str,
        currency: str,
        timeout_s: float = 30.0,
        api_token: SecretStr | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
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

    async def aggregate_by_rate(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[RateAggregate]:
        """Return rate-grouped aggregates for ``[start, end)``.

        Raises:
            TransientFailure: For retryable transport conditions.
            PermanentFailure: For client errors and malformed payloads.
        """
        body = require_mapping(
            _SOURCE,
            await self._transport.get_json(
                f"/employers/{quote(entity_ref, safe='')}/contributions/by-rate",
                params={"from": str(start), "to": str(end)},
            ),
            "body",
        )
        currency = payload_currency(_SOURCE, body, self._currency)

        aggregates: list[RateAggregate] = []
        for raw_row in require_list(_SOURCE, body.get("rates"), "rates"):
            row = require_mapping(_SOURCE, raw_row, "rates[]")
            lines = [
                PeriodLine(
                    period=parse_period(_SOURCE, line.get("period")),
                    remuneration=parse_amount(_SOURCE, line.get("remuneration"), currency),
                    contribution=parse_amount(_SOURCE, line.get("contribution"), currency),
                )
                for line in (
                    require_mapping(_SOURCE, item, "rates[].periods[]")
                    for item in require_list(_SOURCE, row.get("periods"), "rates[].periods")
                )
            ]
            aggregates.append(RateAggregate(rate=parse_rate(_SOURCE, row.get("rate")), lines=lines))
        return aggregates


__all__ = ["ExternalPortalHttpClient"]
