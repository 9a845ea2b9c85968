from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Union

Number = Union[Decimal, int, float]

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

PEAK_MIN_SAMPLES = 10
PEAK_QUANTILE = Decimal("0.90")
PEAK_MAD_MULTIPLIER = Decimal("1.2")

STABILITY_MIN_SAMPLES = 4
STABILITY_GOOD_MAX = Decimal("1.0")
STABILITY_AVERAGE_MAX = Decimal("2.0")
STABILITY_SCORE_FLOOR_INDEX = Decimal("4.0")

LIQUID_GOOD_ABOVE_MONTHS = Decimal("6")
LIQUID_AVERAGE_FROM_MONTHS = Decimal("3")
AVERAGE_DAYS_PER_MONTH = Decimal("30.44")
CUSHION_SATURATION_MONTHS = Decimal("12")


class HealthStatus(str, Enum):
    good = "good"
    average = "average"
    poor = "poor"


class StabilityAction(str, Enum):
    keep_routine = "keep_routine"
    smooth_spikes = "smooth_spikes"
    cap_impulse_spend = "cap_impulse_spend"


_STABILITY_ACTIONS = {
    HealthStatus.good: StabilityAction.keep_routine,
    HealthStatus.average: StabilityAction.smooth_spikes,
    HealthStatus.poor: StabilityAction.cap_impulse_spend,
}


@dataclass(frozen=True)
class Stability:
    index: Decimal
    score: int
    status: HealthStatus
    action: StabilityAction


@dataclass(frozen=True)
class PeakDay:
    day: date
    amount: Decimal
    share_percent: Decimal


@dataclass(frozen=True)
class PeakDaysSummary:
    count: int
    total: Decimal
    share_percent: Optional[Decimal]
    month_total: Decimal


@dataclass(frozen=True)
class PeakMetrics:
    summary: PeakDaysSummary
    days: tuple[PeakDay, ...]
    peak_spend_share_percent: Optional[Decimal]
    peak_day_ratio_percent: Optional[Decimal]


@dataclass(frozen=True)
class Liquidity:
    liquid_assets: Decimal
    liquid_months: Decimal
    status: HealthStatus


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _finite(values: Iterable[Number]) -> list[Decimal]:
    # NaN and infinities carry no usable amount and are dropped.
    return [value for value in map(to_decimal, values) if value.is_finite()]


def _sorted(values: Iterable[Number]) -> list[Decimal]:
    return sorted(_finite(values))


def _comparable(value: Optional[Number]) -> Optional[Decimal]:
    if value is None:
        return None
    value = to_decimal(value)
    return None if value.is_nan() else value


def round2(value: Number) -> Decimal:
    value = to_decimal(value)
    if not value.is_finite():
        return value
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def median(values: Iterable[Number]) -> Optional[Decimal]:
    ordered = _sorted(values)
    if not ordered:
        return None
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def quantile(values: Iterable[Number], q: Number) -> Optional[Decimal]:
    """Linear interpolation between order statistics at ``(n - 1) * q``.

    ``q`` is clamped: anything at or below 0 yields the minimum, anything at
    or above 1 yields the maximum.
    """
    ordered = _sorted(values)
    if not ordered:
        return None
    q = to_decimal(q)
    if q.is_nan():
        return None
    if q <= 0:
        return ordered[0]
    if q >= 1:
        return ordered[-1]

    position = (len(ordered) - 1) * q
    lower = int(position.to_integral_value(rounding=ROUND_FLOOR))
    upper = int(position.to_integral_value(rounding=ROUND_CEILING))
    if lower == upper:
        return ordered[lower]

    weight = position - lower
    return ordered[lower] + (ordered[upper] - ordered[lower]) * weight


def peak_threshold(
    positive_daily_totals: Iterable[Number], median_daily: Number
) -> Decimal:
    """Daily total above which a day counts as a spending peak.

    Small samples (fewer than 10 days) use twice the median. Larger samples
    take the higher of the 90th percentile and ``median + 1.2 * MAD``.
    """
    values = _finite(positive_daily_totals)
    median_daily = to_decimal(median_daily)
    if not median_daily.is_finite():
        return median_daily
    fallback = median_daily * 2
    if len(values) < PEAK_MIN_SAMPLES:
        return fallback

    p90 = quantile(values, PEAK_QUANTILE)
    if p90 is None:
        p90 = fallback

    mad = median(abs(value - median_daily) for value in values)
    if mad is None:
        mad = ZERO
    robust = median_daily + PEAK_MAD_MULTIPLIER * mad

    return max(p90, robust)


def stability_index(daily_totals: Iterable[Number]) -> Optional[Decimal]:
    positive = [value for value in _finite(daily_totals) if value > 0]
    if len(positive) < STABILITY_MIN_SAMPLES:
        return None

    mid = median(positive)
    if mid is None or mid <= 0:
        return None

    q1 = quantile(positive, Decimal("0.25"))
    q3 = quantile(positive, Decimal("0.75"))
    if q1 is None or q3 is None:
        return None

    return (q3 - q1) / mid


def stability_status(index: Optional[Number]) -> Optional[HealthStatus]:
    index = _comparable(index)
    if index is None:
        return None
    if index <= STABILITY_GOOD_MAX:
        return HealthStatus.good
    if index <= STABILITY_AVERAGE_MAX:
        return HealthStatus.average
    return HealthStatus.poor


def stability_action(status: Optional[str]) -> Optional[StabilityAction]:
    if status is None:
        return None
    try:
        return _STABILITY_ACTIONS[HealthStatus(status)]
    except ValueError:
        return None


def stability_score(index: Optional[Number]) -> Optional[int]:
    index = _comparable(index)
    if index is None:
        return None

    if index <= STABILITY_GOOD_MAX:
        score = 100 - index * 30
    elif index <= STABILITY_AVERAGE_MAX:
        score = 70 - (index - STABILITY_GOOD_MAX) * 30
    elif index <= STABILITY_SCORE_FLOOR_INDEX:
        score = 40 - (index - STABILITY_AVERAGE_MAX) * 20
    else:
        score = ZERO

    clamped = min(max(score, ZERO), HUNDRED)
    return int(clamped.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def liquid_status(liquid_months: Optional[Number]) -> Optional[HealthStatus]:
    months = _comparable(liquid_months)
    if months is None:
        return None
    # Upper band is strict, middle band inclusive: 6 months is still "average".
    if months > LIQUID_GOOD_ABOVE_MONTHS:
        return HealthStatus.good
    if months >= LIQUID_AVERAGE_FROM_MONTHS:
        return HealthStatus.average
    return HealthStatus.poor


def compute_stability(daily_totals: Iterable[Number]) -> Optional[Stability]:
    index = stability_index(daily_totals)
    if index is None:
        return None
    status = stability_status(index)
    return Stability(
        index=index,
        score=stability_score(index),
        status=status,
        action=stability_action(status),
    )


def _empty_peaks(month_total: Decimal) -> PeakMetrics:
    summary = PeakDaysSummary(
        count=0, total=ZERO, share_percent=None, month_total=month_total
    )
    return PeakMetrics(
        summary=summary,
        days=(),
        peak_spend_share_percent=None,
        peak_day_ratio_percent=None,
    )


def peak_days(
    daily_totals: Mapping[date, Number],
    month_total: Number,
    days_in_month: int,
) -> PeakMetrics:
    month_total = to_decimal(month_total)
    totals = {day: to_decimal(value) for day, value in daily_totals.items()}
    totals = {day: value for day, value in totals.items() if value.is_finite()}
    if not month_total.is_finite() or month_total <= 0 or not totals:
        return _empty_peaks(month_total)

    positive = [value for value in totals.values() if value > 0]
    if not positive:
        return _empty_peaks(month_total)

    median_daily = median(positive)
    if median_daily is None or median_daily <= 0:
        return _empty_peaks(month_total)

    threshold = peak_threshold(positive, median_daily)
    days = sorted(
        (
            PeakDay(
                day=day,
                amount=round2(value),
                share_percent=value / month_total * HUNDRED,
            )
            for day, value in totals.items()
            if value >= threshold
        ),
        key=lambda peak: (-peak.amount, peak.day),
    )

    total = sum((peak.amount for peak in days), ZERO)
    share = total / month_total * HUNDRED if total > 0 else None
    ratio = (
        round2(Decimal(len(days)) / days_in_month * HUNDRED)
        if days_in_month > 0
        else None
    )

    summary = PeakDaysSummary(
        count=len(days), total=total, share_percent=share, month_total=month_total
    )
    return PeakMetrics(
        summary=summary,
        days=tuple(days),
        peak_spend_share_percent=share,
        peak_day_ratio_percent=ratio,
    )


def liquid_months(liquid_assets: Number, average_daily_expense: Number) -> Decimal:
    assets = to_decimal(liquid_assets)
    monthly_expense = to_decimal(average_daily_expense) * AVERAGE_DAYS_PER_MONTH
    if assets.is_nan() or not monthly_expense.is_finite() or monthly_expense <= 0:
        return ZERO
    return max(ZERO, assets / monthly_expense)


def compute_liquidity(liquid_assets: Number, average_daily_expense: Number) -> Liquidity:
    assets = round2(liquid_assets)
    months = liquid_months(assets, average_daily_expense)
    return Liquidity(
        liquid_assets=assets,
        liquid_months=months,
        status=liquid_status(months),
    )


def total_month_score(
    savings_rate: Optional[Number],
    runway_months: Optional[Number],
    stability_points: Optional[Number],
    discretionary_share: Optional[Number],
    peak_spend_share: Optional[Number],
) -> Optional[int]:
    """Unweighted mean of the five normalised month signals.

    Any missing or non-finite signal makes the whole score undefined. The mean is truncated
    toward zero.
    """
    inputs = (
        savings_rate,
        runway_months,
        stability_points,
        discretionary_share,
        peak_spend_share,
    )
    if any(value is None for value in inputs):
        return None
    values = [to_decimal(value) for value in inputs]
    if not all(value.is_finite() for value in values):
        return None

    savings, months, stability, discretionary, peak = values
    normalized = (
        savings * HUNDRED,
        months / CUSHION_SATURATION_MONTHS * HUNDRED,
        stability,
        HUNDRED - discretionary,
        HUNDRED - peak,
    )
    return int(sum(normalized, ZERO) / len(normalized))
