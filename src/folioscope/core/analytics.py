"""Portfolio analytics.

Derives performance, risk and allocation metrics from the caller's current
holdings and the wallet's stored snapshots. Nothing is cached between
calls: every method recomputes from its inputs.
"""

import math
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from folioscope.core.models import (
    AllocationData,
    DiscoveredToken,
    HistoricalSeries,
    PerformanceMetrics,
    PortfolioHealth,
    PortfolioSnapshot,
    PortfolioStats,
    RiskLevel,
    SampleInterval,
    TimePeriod,
    TokenPerformance,
    TrendingTokens,
)
from folioscope.utils.logging import get_logger

if TYPE_CHECKING:
    from folioscope.storage.snapshots import SnapshotStore

logger = get_logger(__name__)

ALLOCATION_COLORS = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#FD79A8",
    "#A29BFE",
    "#6C5CE7",
    "#00B894",
    "#FDCB6E",
)
OTHERS_COLOR = "#95A5A6"

VOLATILITY_WINDOW = 30

# Risk buckets: (max volatility, min diversification score)
LOW_RISK_LIMITS = (1000.0, 70)
MEDIUM_RISK_LIMITS = (5000.0, 40)
HIGH_VOLATILITY = 5000.0
LOW_DIVERSIFICATION = 40
DOMINANT_ALLOCATION = 50.0
MIN_HOLDINGS = 3


def calculate_roi(current_value: float, previous_value: float) -> float:
    """Percentage return from ``previous_value`` to ``current_value``.

    Returns 0 when ``previous_value`` is 0. That is a floor, not a signal
    that history is missing.
    """
    if previous_value == 0:
        return 0.0
    return ((current_value - previous_value) / previous_value) * 100


def calculate_volatility(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two samples."""
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((value - mean) ** 2 for value in values) / len(values)
    return math.sqrt(variance)


def generate_allocation_breakdown(
    holdings: Sequence[DiscoveredToken],
    min_percentage: float = 1.0,
) -> list[AllocationData]:
    """Split total value by token, largest share first.

    Tokens below ``min_percentage`` are summed into a single "Others" row.
    Colours follow the input order.
    """
    total_value = sum(token.usd_value for token in holdings)
    if total_value <= 0:
        return []

    allocations: list[AllocationData] = []
    others_value = 0.0

    for index, token in enumerate(holdings):
        value = token.usd_value
        percentage = (value / total_value) * 100
        if percentage >= min_percentage:
            allocations.append(
                AllocationData(
                    token=token.name,
                    symbol=token.symbol,
                    value=value,
                    percentage=percentage,
                    color=ALLOCATION_COLORS[index % len(ALLOCATION_COLORS)],
                )
            )
        else:
            others_value += value

    if others_value > 0:
        allocations.append(
            AllocationData(
                token="Others",
                symbol="OTHERS",
                value=others_value,
                percentage=(others_value / total_value) * 100,
                color=OTHERS_COLOR,
            )
        )

    allocations.sort(key=lambda item: item.percentage, reverse=True)
    return allocations


def calculate_diversification_score(holdings: Sequence[DiscoveredToken]) -> int:
    """Score from 0 (one asset) to 100 (equal weights) based on the HHI.

    The Herfindahl-Hirschman Index ranges from 1/n for equal shares to 1
    for a single asset; it is rescaled to that range and inverted.
    """
    if len(holdings) < 2:
        return 0

    total_value = sum(token.usd_value for token in holdings)
    if total_value <= 0:
        return 0

    hhi = sum((token.usd_value / total_value) ** 2 for token in holdings)
    min_hhi = 1 / len(holdings)
    normalized = (hhi - min_hhi) / (1 - min_hhi)

    score = round((1 - normalized) * 100)
    return max(0, min(100, score))


def _interval_for(period: TimePeriod, interval: SampleInterval) -> timedelta:
    if interval is SampleInterval.HOURLY:
        return timedelta(hours=1)
    if interval is SampleInterval.DAILY:
        return timedelta(days=1)
    if period is TimePeriod.DAY:
        return timedelta(hours=1)
    if period is TimePeriod.WEEK:
        return timedelta(hours=4)
    return timedelta(days=1)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AnalyticsEngine:
    """Performance and risk metrics over a wallet's snapshot history."""

    def __init__(
        self,
        store: "SnapshotStore",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Snapshot store to read history from.
            clock: Source of the current time.
        """
        self._store = store
        self._clock = clock

    async def calculate_token_performance(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
        period: TimePeriod = TimePeriod.WEEK,
    ) -> list[TokenPerformance]:
        """Pair each holding with its value in the latest and period-start snapshots.

        Tokens are matched by address, ignoring case. Without any snapshot
        the holding's own value is used as the current value. A token absent
        from the period-start snapshot has a previous value of 0.
        """
        target_time = period.start_time(self._clock())
        latest = await self._store.get_latest_snapshot(wallet_address)
        previous = await self._store.get_snapshot_at_time(wallet_address, target_time)

        return [
            self._token_performance(token, latest, previous) for token in holdings
        ]

    @staticmethod
    def _token_performance(
        token: DiscoveredToken,
        latest: PortfolioSnapshot | None,
        previous: PortfolioSnapshot | None,
    ) -> TokenPerformance:
        current_token = latest.find_token(token.address) if latest else None
        previous_token = previous.find_token(token.address) if previous else None

        current_value = (current_token.value if current_token else 0.0) or token.usd_value
        previous_value = previous_token.value if previous_token else 0.0
        change = current_value - previous_value
        change_percent = (change / previous_value) * 100 if previous_value > 0 else 0.0

        if latest is not None and latest.total_value:
            allocation = (current_value / latest.total_value) * 100
        else:
            allocation = 0.0

        return TokenPerformance(
            address=token.address,
            symbol=token.symbol,
            name=token.name,
            current_value=current_value,
            previous_value=previous_value,
            change=change,
            change_percent=change_percent,
            roi=calculate_roi(current_value, previous_value),
            allocation=allocation,
        )

    async def get_top_performers(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
        period: TimePeriod = TimePeriod.WEEK,
        limit: int = 5,
    ) -> list[TokenPerformance]:
        """Best ``limit`` tokens by percentage change."""
        performances = await self.calculate_token_performance(
            wallet_address, holdings, period
        )
        performances.sort(key=lambda perf: perf.change_percent, reverse=True)
        return performances[:limit]

    async def get_worst_performers(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
        period: TimePeriod = TimePeriod.WEEK,
        limit: int = 5,
    ) -> list[TokenPerformance]:
        """Worst ``limit`` tokens by percentage change."""
        performances = await self.calculate_token_performance(
            wallet_address, holdings, period
        )
        performances.sort(key=lambda perf: perf.change_percent)
        return performances[:limit]

    async def calculate_portfolio_stats(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
        period: TimePeriod = TimePeriod.WEEK,
    ) -> PortfolioStats:
        """Aggregate token performance and snapshot volatility.

        Volatility is taken over the last 30 stored snapshots.
        """
        performances = await self.calculate_token_performance(
            wallet_address, holdings, period
        )
        recent = await self._store.get_snapshots(wallet_address, limit=VOLATILITY_WINDOW)

        total_value = sum(perf.current_value for perf in performances)
        total_previous = sum(perf.previous_value for perf in performances)
        total_gains = total_value - total_previous
        total_gains_percent = (
            (total_gains / total_previous) * 100 if total_previous > 0 else 0.0
        )

        ranked = sorted(performances, key=lambda perf: perf.change_percent, reverse=True)
        average_roi = (
            sum(perf.roi for perf in performances) / len(performances)
            if performances
            else 0.0
        )

        return PortfolioStats(
            total_value=total_value,
            total_gains=total_gains,
            total_gains_percent=total_gains_percent,
            best_performer=ranked[0] if ranked else None,
            worst_performer=ranked[-1] if ranked else None,
            token_count=len(holdings),
            average_roi=average_roi,
            volatility=calculate_volatility([s.total_value for s in recent]),
        )

    async def get_historical_values(
        self,
        wallet_address: str,
        period: TimePeriod = TimePeriod.WEEK,
        interval: SampleInterval = SampleInterval.AUTO,
    ) -> HistoricalSeries:
        """Thin the period's snapshots to roughly one per interval.

        Walking oldest to newest, a snapshot is kept when it is at least one
        interval after the previously kept one. Gaps in the stored history
        stay gaps; no points are interpolated.
        """
        now = self._clock()
        step = _interval_for(period, interval)
        snapshots = await self._store.get_snapshots_in_range(
            wallet_address, period.start_time(now), now
        )

        series = HistoricalSeries()
        last_kept: datetime | None = None
        for snapshot in snapshots:
            if last_kept is None or snapshot.timestamp - last_kept >= step:
                series.timestamps.append(snapshot.timestamp)
                series.values.append(snapshot.total_value)
                last_kept = snapshot.timestamp
        return series

    async def identify_trending_tokens(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
        period: TimePeriod = TimePeriod.DAY,
        threshold: float = 10.0,
    ) -> TrendingTokens:
        """Tokens that moved at least ``threshold`` percent either way."""
        performances = await self.calculate_token_performance(
            wallet_address, holdings, period
        )

        rising = sorted(
            (perf for perf in performances if perf.change_percent >= threshold),
            key=lambda perf: perf.change_percent,
            reverse=True,
        )
        falling = sorted(
            (perf for perf in performances if perf.change_percent <= -threshold),
            key=lambda perf: perf.change_percent,
        )
        return TrendingTokens(rising=rising, falling=falling)

    async def calculate_performance(
        self,
        wallet_address: str,
        period: TimePeriod = TimePeriod.WEEK,
    ) -> PerformanceMetrics | None:
        """Change in total value from the period start to the latest snapshot.

        Returns None when there is no latest snapshot or no snapshot at or
        before the period start.
        """
        latest = await self._store.get_latest_snapshot(wallet_address)
        if latest is None:
            return None

        target_time = period.start_time(self._clock())
        previous = await self._store.get_snapshot_at_time(wallet_address, target_time)
        if previous is None:
            return None

        change = latest.total_value - previous.total_value
        change_percent = (
            (change / previous.total_value) * 100 if previous.total_value > 0 else 0.0
        )
        return PerformanceMetrics(
            current_value=latest.total_value,
            previous_value=previous.total_value,
            change=change,
            change_percent=change_percent,
            period=period,
        )

    async def get_portfolio_health(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
    ) -> PortfolioHealth:
        """Risk bucket and recommendations from diversification and 30-day volatility."""
        score = calculate_diversification_score(holdings)
        stats = await self.calculate_portfolio_stats(
            wallet_address, holdings, TimePeriod.MONTH
        )
        volatility = stats.volatility

        if volatility < LOW_RISK_LIMITS[0] and score > LOW_RISK_LIMITS[1]:
            risk_level = RiskLevel.LOW
        elif volatility < MEDIUM_RISK_LIMITS[0] and score > MEDIUM_RISK_LIMITS[1]:
            risk_level = RiskLevel.MEDIUM
        else:
            risk_level = RiskLevel.HIGH

        recommendations: list[str] = []
        if score < LOW_DIVERSIFICATION:
            recommendations.append(
                "Consider diversifying your portfolio across more assets"
            )
        if volatility > HIGH_VOLATILITY:
            recommendations.append(
                "Your portfolio shows high volatility. Consider adding stable assets"
            )

        allocations = generate_allocation_breakdown(holdings)
        if allocations and allocations[0].percentage > DOMINANT_ALLOCATION:
            top = allocations[0]
            recommendations.append(
                f"{top.symbol} makes up {top.percentage:.1f}% of your portfolio. "
                "Consider rebalancing"
            )
        if len(holdings) < MIN_HOLDINGS:
            recommendations.append(
                "Consider adding more tokens to improve diversification"
            )

        logger.debug(
            "Health for {}: score={} volatility={:.2f} risk={}",
            wallet_address,
            score,
            volatility,
            risk_level.value,
        )
        return PortfolioHealth(
            diversification_score=score,
            risk_level=risk_level,
            recommendations=recommendations,
        )
