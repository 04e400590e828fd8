from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import get_settings
from errors import RateProviderUnavailable
from models import CurrencyCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FxRates:
    provider: str
    base: CurrencyCode
    rates: dict[str, Decimal]  # quote per 1 base
    rate_date: Optional[date]
    fetched_at: datetime


def fetch_frankfurter_rates(
    base: CurrencyCode, *, base_url: str, timeout: float
) -> FxRates:
    quotes = ",".join(c.value for c in CurrencyCode if c != base)
    url = f"{base_url.rstrip('/')}/latest?from={base.value}&to={quotes}"
    req = Request(url, headers={"Accept": "application/json"})
    fetched_at = datetime.now(timezone.utc)
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise RateProviderUnavailable(
            f"Failed to fetch exchange rates from Frankfurter for {base.value}"
        ) from exc

    try:
        raw_rates = payload["rates"]
        effective_date = date.fromisoformat(payload["date"])
        rates = {
            code: Decimal(str(value))
            for code, value in raw_rates.items()
            if code in CurrencyCode._value2member_map_
        }
    except (KeyError, TypeError, ValueError, AttributeError, InvalidOperation) as exc:
        raise RateProviderUnavailable("Unexpected exchange rate response") from exc

    rates[base.value] = Decimal("1")
    return FxRates(
        provider="frankfurter",
        base=base,
        rates=rates,
        rate_date=effective_date,
        fetched_at=fetched_at,
    )


class FxRateService:
    """Latest exchange rates per base currency, cached for a maximum age."""

    def __init__(
        self,
        *,
        max_age_secs: Optional[int] = None,
        fetcher: Optional[Callable[[CurrencyCode], FxRates]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self.max_age_secs = (
            settings.fx_max_age_secs if max_age_secs is None else max_age_secs
        )
        self._fetcher = fetcher or (
            lambda base: fetch_frankfurter_rates(
                base,
                base_url=settings.fx_base_url,
                timeout=settings.fx_timeout_secs,
            )
        )
        self._clock = clock
        self._cache: dict[CurrencyCode, tuple[float, FxRates]] = {}

    def _evict_stale(self, now: float) -> None:
        stale = [
            base
            for base, (fetched, _) in self._cache.items()
            if now - fetched >= self.max_age_secs
        ]
        for base in stale:
            del self._cache[base]

    def latest(self, base: CurrencyCode = CurrencyCode.eur) -> FxRates:
        now = self._clock()
        self._evict_stale(now)
        cached = self._cache.get(base)
        if cached:
            return cached[1]
        rates = self._fetcher(base)
        self._cache[base] = (now, rates)
        logger.info(
            f"fx_rates_fetched: base={base.value} provider={rates.provider} "
            f"date={rates.rate_date}"
        )
        return rates

    def rate(self, base: CurrencyCode, quote: CurrencyCode) -> Decimal:
        if base == quote:
            return Decimal("1")
        rates = self.latest(base)
        try:
            return rates.rates[quote.value]
        except KeyError as exc:
            raise RateProviderUnavailable(
                f"No rate for {base.value} to {quote.value}"
            ) from exc

    def convert(
        self, amount: Decimal, base: CurrencyCode, quote: CurrencyCode
    ) -> Decimal:
        return amount * self.rate(base, quote)
