from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CurrencyType(str, Enum):
    fiat = "fiat"
    crypto = "crypto"


class Currency(Base):
    __tablename__ = "currencies"

    code: Mapped[str] = mapped_column(String(5), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(10), nullable=False)
    type: Mapped[CurrencyType] = mapped_column(
        SAEnum(CurrencyType), nullable=False, default=CurrencyType.fiat
    )


class FxUsdRate(Base):
    """Units of ``currency_code`` per one USD, effective from ``effective_date``."""

    __tablename__ = "fx_usd_rates"
    __table_args__ = (
        CheckConstraint("rate > 0", name="ck_fx_usd_rates_rate_positive"),
        Index(
            "ix_fx_usd_rates_currency_code_effective_date",
            "currency_code",
            "effective_date",
            unique=True,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    currency_code: Mapped[str] = mapped_column(String(5), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(28, 12), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
