from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import Settings
from database import Base
from schemas import FxRateIn
from services import FxLoaderService, FxProviderError, FxRateService


DAY = date(2026, 2, 10)


async def make_session() -> AsyncSession:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _settings(codes: list[str], provider: str = "frankfurter") -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        timezone="Europe/Berlin",
        fx_provider=provider,
        fx_base_url="https://fx.test",
        fx_timeout_secs=1.0,
        fx_currencies=codes,
    )


class Provider:
    def __init__(self, rates: dict, status_code: int = 200) -> None:
        self.rates = rates
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code,
            json={"amount": 1.0, "base": "USD", "date": DAY.isoformat(), "rates": self.rates},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.mark.asyncio
async def test_loads_all_missing_codes() -> None:
    session = await make_session()
    provider = Provider({"EUR": 0.92, "GBP": 0.79})
    loader = FxLoaderService(
        session, client=provider.client(), settings=_settings(["eur", "GBP", "USD"])
    )

    assert loader.expected_codes() == {"EUR", "GBP"}
    assert await loader.load_missing_rates_for_day(DAY) == []

    request = provider.requests[0]
    assert request.url.path == "/2026-02-10"
    assert request.url.params["from"] == "USD"
    assert request.url.params["to"] == "EUR,GBP"

    rates = FxRateService(session)
    assert await rates.lookup_latest_rate("EUR", DAY) == Decimal("0.92")
    assert await rates.lookup_latest_rate("GBP", DAY) == Decimal("0.79")

    assert await loader.load_missing_rates_for_day(DAY) == []
    assert len(provider.requests) == 1
    await session.close()


@pytest.mark.asyncio
async def test_requests_only_codes_missing_for_the_day() -> None:
    session = await make_session()
    await FxRateService(session).record_rate(
        FxRateIn(currency_code="EUR", effective_date=DAY, rate=Decimal("0.92"))
    )
    provider = Provider({"GBP": 0.79})
    loader = FxLoaderService(
        session, client=provider.client(), settings=_settings(["EUR", "GBP"])
    )

    assert await loader.load_missing_rates_for_day(DAY) == []
    assert provider.requests[0].url.params["to"] == "GBP"
    await session.close()


@pytest.mark.asyncio
async def test_partial_payload_reports_remaining_codes() -> None:
    session = await make_session()
    provider = Provider({"EUR": 0.92, "GBP": 0, "JPY": 151.2})
    loader = FxLoaderService(
        session, client=provider.client(), settings=_settings(["EUR", "GBP"])
    )

    assert await loader.load_missing_rates_for_day(DAY) == ["GBP"]

    rates = FxRateService(session)
    assert await rates.codes_for_day(DAY) == {"EUR"}
    assert await rates.lookup_latest_rate("JPY", DAY) is None
    await session.close()


@pytest.mark.asyncio
async def test_provider_http_error_raises() -> None:
    session = await make_session()
    provider = Provider({}, status_code=500)
    loader = FxLoaderService(
        session, client=provider.client(), settings=_settings(["EUR"])
    )

    with pytest.raises(FxProviderError):
        await loader.load_missing_rates_for_day(DAY)
    assert await FxRateService(session).codes_for_day(DAY) == set()
    await session.close()


@pytest.mark.asyncio
async def test_unexpected_payload_raises() -> None:
    session = await make_session()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"base": "USD"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    loader = FxLoaderService(session, client=client, settings=_settings(["EUR"]))

    with pytest.raises(FxProviderError):
        await loader.load_missing_rates_for_day(DAY)
    await session.close()


@pytest.mark.asyncio
async def test_unsupported_provider() -> None:
    session = await make_session()
    loader = FxLoaderService(
        session, client=Provider({}).client(), settings=_settings(["EUR"], "ecb")
    )

    with pytest.raises(ValueError):
        await loader.load_missing_rates_for_day(DAY)
    await session.close()
