"""Portfolio domain models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class TimePeriod(Enum):
    """Lookback window for performance queries."""

    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"
    ALL = "all"

    @property
    def duration(self) -> timedelta | None:
        """Window length, or None for the unbounded ``all`` period."""
        return _PERIOD_DURATIONS[self]

    def start_time(self, now: datetime) -> datetime:
        """Earliest timestamp covered by this period when measured from ``now``."""
        duration = self.duration
        if duration is None:
            return EPOCH
        return now - duration


_PERIOD_DURATIONS: dict[TimePeriod, timedelta | None] = {
    TimePeriod.DAY: timedelta(hours=24),
    TimePeriod.WEEK: timedelta(days=7),
    TimePeriod.MONTH: timedelta(days=30),
    TimePeriod.QUARTER: timedelta(days=90),
    TimePeriod.YEAR: timedelta(days=365),
    TimePeriod.ALL: None,
}


class SampleInterval(Enum):
    """Spacing of resampled chart points."""

    HOURLY = "hourly"
    DAILY = "daily"
    AUTO = "auto"


class RiskLevel(Enum):
    """Coarse portfolio risk bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class TokenPrice:
    """Price quote for a token as returned by the price source."""

    usd: float
    usd_24h_change: float = 0.0
    last_updated_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "usd": self.usd,
            "usd_24h_change": self.usd_24h_change,
            "last_updated_at": self.last_updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenPrice":
        return cls(
            usd=float(data.get("usd") or 0.0),
            usd_24h_change=float(data.get("usd_24h_change") or 0.0),
            last_updated_at=data.get("last_updated_at"),
        )


@dataclass
class DiscoveredToken:
    """A token currently held by a wallet.

    Supplied by the holdings collaborator and treated as ground truth
    for "now". ``balance`` is the raw integer amount as a string.
    """

    address: str
    symbol: str
    name: str
    decimals: int = 18
    balance: str = "0"
    price: float | None = None
    value: float | None = None

    @property
    def usd_value(self) -> float:
        return self.value or 0.0


@dataclass(frozen=True)
class TokenSnapshot:
    """A token position captured inside a portfolio snapshot.

    ``allocation`` is the percentage of the snapshot's total value and is
    fixed when the snapshot is written.
    """

    address: str
    symbol: str
    name: str
    balance: str
    price: float
    value: float
    allocation: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "balance": self.balance,
            "price": self.price,
            "value": self.value,
            "allocation": self.allocation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSnapshot":
        return cls(
            address=data["address"],
            symbol=data["symbol"],
            name=data["name"],
            balance=str(data["balance"]),
            price=float(data["price"]),
            value=float(data["value"]),
            allocation=float(data["allocation"]),
        )


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Immutable valuation of a wallet at one instant."""

    wallet_address: str
    timestamp: datetime
    total_value: float
    token_count: int
    tokens: tuple[TokenSnapshot, ...]
    chain_id: str
    id: int | None = None

    def find_token(self, address: str) -> TokenSnapshot | None:
        """Find a token by address, ignoring case."""
        target = address.lower()
        for token in self.tokens:
            if token.address.lower() == target:
                return token
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "wallet_address": self.wallet_address,
            "timestamp": self.timestamp.isoformat(),
            "total_value": self.total_value,
            "token_count": self.token_count,
            "tokens": [token.to_dict() for token in self.tokens],
            "chain_id": self.chain_id,
        }


@dataclass
class TokenPerformance:
    """Change in a held token's value over a period.

    ``change_percent`` and ``roi`` are 0 when there is no prior value;
    ``is_new_position`` tells that case apart from a flat position.
    """

    address: str
    symbol: str
    name: str
    current_value: float
    previous_value: float
    change: float
    change_percent: float
    roi: float
    allocation: float

    @property
    def is_new_position(self) -> bool:
        return self.previous_value == 0


@dataclass
class PortfolioStats:
    """Aggregate portfolio statistics for a period."""

    total_value: float
    total_gains: float
    total_gains_percent: float
    best_performer: TokenPerformance | None
    worst_performer: TokenPerformance | None
    token_count: int
    average_roi: float
    volatility: float


@dataclass
class AllocationData:
    """One slice of an allocation breakdown."""

    token: str
    symbol: str
    value: float
    percentage: float
    color: str | None = None


@dataclass
class PerformanceMetrics:
    """Portfolio-level change between the latest snapshot and a period start."""

    current_value: float
    previous_value: float
    change: float
    change_percent: float
    period: TimePeriod


@dataclass
class HistoricalSeries:
    """Parallel timestamp/value sequences, oldest first."""

    timestamps: list[datetime] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)


@dataclass
class TrendingTokens:
    """Tokens whose change crossed the trending threshold."""

    rising: list[TokenPerformance] = field(default_factory=list)
    falling: list[TokenPerformance] = field(default_factory=list)


@dataclass
class PortfolioHealth:
    """Diversification and risk summary with plain-text recommendations."""

    diversification_score: int
    risk_level: RiskLevel
    recommendations: list[str] = field(default_factory=list)


@dataclass
class DatabaseStats:
    """Snapshot database summary."""

    total_snapshots: int
    wallets: list[str]
    oldest_snapshot: datetime | None
    newest_snapshot: datetime | None
    size_estimate: int
