from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fx_rates import PIVOT_CURRENCY, normalize_currency_code
from models import CurrencyType


class CurrencyIn(BaseModel):
    code: str = Field(..., max_length=8)
    name: str = Field(..., min_length=1, max_length=100)
    symbol: str = Field(..., min_length=1, max_length=10)
    type: CurrencyType = CurrencyType.fiat

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        code = normalize_currency_code(value)
        if len(code) > 5:
            raise ValueError(f"Currency code too long: {code}")
        return code


class FxRateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    currency_code: str = Field(..., max_length=8)
    effective_date: date
    rate: Decimal = Field(..., gt=0)

    @field_validator("currency_code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        code = normalize_currency_code(value)
        if code == PIVOT_CURRENCY:
            raise ValueError("USD is the pivot currency and is always 1")
        if len(code) > 5:
            raise ValueError(f"Currency code too long: {code}")
        return code
