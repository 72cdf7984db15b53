# -*- coding: utf-8 -*-
"""
Exchange Rate Service Module

Rates are quoted in TWD per unit of foreign currency, looked up in order:
1. In-memory cache (valid for 1 hour)
2. FinMind API (when live lookups are enabled)
3. Pre-stored backup rates

A home currency other than TWD is handled by crossing both sides through TWD.
"""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

BASE_CURRENCY = "TWD"


class ExchangeRateService:
    """Foreign currency -> home currency rates with a backup table."""

    FINMIND_API_URL = "https://api.finmindtrade.com/api/v3/data"

    # Cache TTL: 1 hour
    CACHE_TTL = 3600

    REQUEST_TIMEOUT = 10

    # Backup rates, TWD per unit (updated: 2025-11-21)
    BACKUP_RATES = {
        "USD": Decimal("31.50"),
        "EUR": Decimal("33.20"),
        "JPY": Decimal("0.21"),
        "GBP": Decimal("41.40"),
        "HKD": Decimal("4.05"),
        "CNY": Decimal("4.45"),
    }

    def __init__(self, live: bool = True):
        """
        Args:
            live: query FinMind before falling back to BACKUP_RATES
        """
        self.live = live
        self._memory_cache: Dict[str, Tuple[Decimal, float]] = {}
        self._lock = threading.Lock()

    def get_rate_from_finmind(self, currency: str) -> Optional[Decimal]:
        """Latest cash selling rate from FinMind, or None on any failure."""
        params = {
            "dataset": "TaiwanExchangeRate",
            "data_id": currency.upper(),
            "date": "2006-01-01",
        }
        try:
            logger.info(f"Querying FinMind API for {currency}")
            response = requests.get(self.FINMIND_API_URL, params=params, timeout=self.REQUEST_TIMEOUT)

            if response.status_code == 429:
                logger.warning(f"FinMind API rate limit exceeded for {currency}")
                return None

            response.raise_for_status()
            data = response.json()

            if not data.get("data"):
                logger.error(f"Currency {currency} not found in FinMind API")
                return None

            cash_sell = data["data"][-1].get("cash_sell")
            if cash_sell is None:
                logger.error(f"Cash sell rate not found for {currency}")
                return None

            rate = Decimal(str(cash_sell))
            if rate <= 0:
                logger.error(f"FinMind returned no usable cash sell rate for {currency}: {cash_sell}")
                return None

            logger.info(f"Got rate for {currency} from FinMind: {rate}")
            return rate

        except requests.Timeout:
            logger.warning(f"FinMind API timeout for {currency}")
            return None

        except requests.RequestException as e:
            logger.error(f"FinMind API request error: {e}")
            return None

        except (KeyError, ValueError, TypeError, IndexError, InvalidOperation) as e:
            logger.error(f"FinMind API data parsing error: {e}")
            return None

    def twd_rate(self, currency: str) -> Optional[Decimal]:
        """TWD per one unit of ``currency``, or None if no source knows it."""
        currency = currency.upper()
        if currency == BASE_CURRENCY:
            return Decimal("1")

        cached_rate = self._get_cached_rate(currency)
        if cached_rate is not None:
            return cached_rate

        if self.live:
            rate = self.get_rate_from_finmind(currency)
            if rate is not None:
                self._cache_rate(currency, rate)
                return rate

        rate = self.BACKUP_RATES.get(currency)
        if rate is not None:
            logger.warning(f"Using backup rate for {currency}: {rate}")
            return rate

        logger.error(f"No exchange rate available for {currency}")
        return None

    def get_rate(self, currency: str, home_currency: str = BASE_CURRENCY) -> Optional[Decimal]:
        """
        Rate converting one unit of ``currency`` into ``home_currency``.

        Returns:
            The rate, or None when either side has no known TWD rate
        """
        currency = currency.upper()
        home_currency = home_currency.upper()
        if currency == home_currency:
            return Decimal("1")

        foreign = self.twd_rate(currency)
        if foreign is None:
            return None
        if home_currency == BASE_CURRENCY:
            return foreign

        home = self.twd_rate(home_currency)
        if home is None:
            return None
        return (foreign / home).quantize(Decimal("0.000001"))

    def _get_cached_rate(self, currency: str) -> Optional[Decimal]:
        with self._lock:
            entry = self._memory_cache.get(currency)
            if entry is None:
                return None
            rate, cached_at = entry
            if time.time() - cached_at >= self.CACHE_TTL:
                del self._memory_cache[currency]
                return None
        logger.info(f"Cache hit for {currency}: {rate}")
        return rate

    def _cache_rate(self, currency: str, rate: Decimal) -> None:
        with self._lock:
            self._memory_cache[currency] = (rate, time.time())
