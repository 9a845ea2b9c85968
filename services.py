from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from fx_rates import PIVOT_CURRENCY, normalize_currency_code
from models import Currency, FxUsdRate
from schemas import CurrencyIn, FxRateIn

logger = logging.getLogger(__name__)


class FxProviderError(RuntimeError):
    pass


class CurrencyService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_all(self) -> list[Currency]:
        result = await self.session.scalars(select(Currency).order_by(Currency.code))
        return list(result.all())

    async def upsert(self, data: CurrencyIn) -> Currency:
        currency = await self.session.get(Currency, data.code)
        if currency is None:
            currency = Currency(code=data.code)
            self.session.add(currency)
        currency.name = data.name
        currency.symbol = data.symbol
        currency.type = data.type
        await self.session.commit()
        await self.session.refresh(currency)
        return currency


class FxRateService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lookup_latest_rate(
        self, currency_code: str, on_or_before: date
    ) -> Optional[Decimal]:
        code = normalize_currency_code(currency_code)
        stmt = (
            select(FxUsdRate.rate)
            .where(
                FxUsdRate.currency_code == code,
                FxUsdRate.effective_date <= on_or_before,
            )
            .order_by(FxUsdRate.effective_date.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def record_rate(self, data: FxRateIn) -> FxUsdRate:
        existing = await self.session.scalar(
            select(FxUsdRate.id).where(
                FxUsdRate.currency_code == data.currency_code,
                FxUsdRate.effective_date == data.effective_date,
            )
        )
        if existing is not None:
            raise ValueError(
                f"Rate for {data.currency_code} on {data.effective_date} already recorded"
            )
        rate = FxUsdRate(
            currency_code=data.currency_code,
            effective_date=data.effective_date,
            rate=data.rate,
        )
        self.session.add(rate)
        await self.session.commit()
        await self.session.refresh(rate)
        return rate

    async def codes_for_day(self, day: date) -> set[str]:
        result = await self.session.scalars(
            select(FxUsdRate.currency_code)
            .where(FxUsdRate.effective_date == day)
            .distinct()
        )
        return set(result.all())


class FxLoaderService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.client = client
        self.settings = settings or get_settings()
        self.rates = FxRateService(session)

    def expected_codes(self) -> set[str]:
        codes = {normalize_currency_code(code) for code in self.settings.fx_currencies}
        codes.discard(PIVOT_CURRENCY)
        return codes

    async def load_missing_rates_for_day(self, day: date) -> list[str]:
        expected = self.expected_codes()
        missing = sorted(expected - await self.rates.codes_for_day(day))
        if not missing:
            logger.info(f"fx_loader: day={day} status=complete")
            return []

        fetched = await self.fetch_usd_rates(day, missing)
        requested = set(missing)
        to_insert = []
        for raw_code, value in fetched.items():
            code = raw_code.strip().upper()
            if code not in requested or value <= 0:
                continue
            to_insert.append(
                FxUsdRate(currency_code=code, effective_date=day, rate=value)
            )

        if to_insert:
            self.session.add_all(to_insert)
            try:
                await self.session.commit()
            except IntegrityError:
                await self.session.rollback()
                logger.warning(f"fx_loader: day={day} duplicate insert race")
            else:
                logger.info(f"fx_loader: day={day} inserted={len(to_insert)}")

        remaining = sorted(expected - await self.rates.codes_for_day(day))
        if remaining:
            logger.warning(
                f"fx_loader: day={day} partial dataset missing={','.join(remaining)}"
            )
        return remaining

    async def fetch_usd_rates(self, day: date, codes: list[str]) -> dict[str, Decimal]:
        provider = (self.settings.fx_provider or "frankfurter").lower()
        if provider != "frankfurter":
            raise ValueError(f"Unsupported FX provider: {provider}")

        if self.client is not None:
            payload = await self._get_frankfurter(self.client, day, codes)
        else:
            async with httpx.AsyncClient(
                timeout=self.settings.fx_timeout_secs
            ) as client:
                payload = await self._get_frankfurter(client, day, codes)

        try:
            return {
                str(code): Decimal(str(value))
                for code, value in payload["rates"].items()
            }
        except (KeyError, TypeError, AttributeError, ArithmeticError) as exc:
            raise FxProviderError("Unexpected FX provider response") from exc

    async def _get_frankfurter(
        self, client: httpx.AsyncClient, day: date, codes: list[str]
    ) -> dict:
        url = f"{self.settings.fx_base_url}/{day.isoformat()}"
        params = {"from": PIVOT_CURRENCY, "to": ",".join(codes)}
        try:
            resp = await client.get(
                url, params=params, headers={"Accept": "application/json"}
            )
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FxProviderError(
                f"Failed to fetch FX rates from Frankfurter for {day}"
            ) from exc
