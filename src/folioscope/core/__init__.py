"""Core domain models and analytics."""

from folioscope.core.analytics import (
    AnalyticsEngine,
    calculate_diversification_score,
    calculate_roi,
    calculate_volatility,
    generate_allocation_breakdown,
)
from folioscope.core.models import (
    AllocationData,
    DatabaseStats,
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
    TokenPrice,
    TokenSnapshot,
    TrendingTokens,
)

__all__ = [
    "AllocationData",
    "AnalyticsEngine",
    "DatabaseStats",
    "DiscoveredToken",
    "HistoricalSeries",
    "PerformanceMetrics",
    "PortfolioHealth",
    "PortfolioSnapshot",
    "PortfolioStats",
    "RiskLevel",
    "SampleInterval",
    "TimePeriod",
    "TokenPerformance",
    "TokenPrice",
    "TokenSnapshot",
    "TrendingTokens",
    "calculate_diversification_score",
    "calculate_roi",
    "calculate_volatility",
    "generate_allocation_breakdown",
]
