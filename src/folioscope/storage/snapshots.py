"""Portfolio snapshot store.

Append-only time series of wallet valuations. Every query is scoped to one
wallet; wallet addresses are compared in lowercase.
"""

import json
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, func, select

from folioscope.core.models import (
    DatabaseStats,
    DiscoveredToken,
    HistoricalSeries,
    PortfolioSnapshot,
    TimePeriod,
    TokenSnapshot,
)
from folioscope.storage.database import Database
from folioscope.storage.models import SnapshotRecord
from folioscope.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CHAIN_ID = "43114"


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _to_snapshot(record: SnapshotRecord) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        id=record.id,
        wallet_address=record.wallet_address,
        timestamp=as_utc(record.timestamp),
        total_value=record.total_value,
        token_count=record.token_count,
        tokens=tuple(TokenSnapshot.from_dict(token) for token in record.tokens),
        chain_id=record.chain_id,
    )


class SnapshotStore:
    """Durable store of portfolio snapshots.

    Snapshots are immutable once created; the only ways to remove them
    are pruning by age and explicit wipes. Writes are committed before the
    creating call returns.
    """

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            db: Database holding the snapshot table.
            clock: Source of the current time for new snapshots and pruning.
        """
        self._db = db
        self._clock = clock

    async def open(self) -> None:
        """Open the underlying database. Safe to call repeatedly."""
        await self._db.open()

    async def create_snapshot(
        self,
        wallet_address: str,
        holdings: Sequence[DiscoveredToken],
        chain_id: str = DEFAULT_CHAIN_ID,
        timestamp: datetime | None = None,
    ) -> PortfolioSnapshot:
        """Record the current valuation of a wallet.

        Args:
            wallet_address: Wallet the holdings belong to.
            holdings: Current token positions.
            chain_id: Chain the holdings were read from.
            timestamp: Snapshot time; defaults to now.

        Returns:
            The stored snapshot with its assigned id.
        """
        total_value = sum(token.usd_value for token in holdings)
        tokens = tuple(
            TokenSnapshot(
                address=token.address,
                symbol=token.symbol,
                name=token.name,
                balance=str(token.balance),
                price=token.price or 0.0,
                value=token.usd_value,
                allocation=(token.usd_value / total_value) * 100 if total_value > 0 else 0.0,
            )
            for token in holdings
        )
        taken_at = as_utc(timestamp or self._clock())
        wallet = wallet_address.lower()

        record = SnapshotRecord(
            wallet_address=wallet,
            timestamp=taken_at,
            total_value=total_value,
            token_count=len(tokens),
            tokens=[token.to_dict() for token in tokens],
            chain_id=chain_id,
        )
        async with self._db.session() as session:
            session.add(record)
            await session.flush()
            snapshot_id = record.id

        logger.debug(
            "Snapshot {} stored for {}: ${:.2f} across {} tokens",
            snapshot_id,
            wallet,
            total_value,
            len(tokens),
        )
        return PortfolioSnapshot(
            id=snapshot_id,
            wallet_address=wallet,
            timestamp=taken_at,
            total_value=total_value,
            token_count=len(tokens),
            tokens=tokens,
            chain_id=chain_id,
        )

    async def get_snapshots(
        self, wallet_address: str, limit: int | None = None
    ) -> list[PortfolioSnapshot]:
        """Get a wallet's snapshots, newest first.

        Args:
            wallet_address: The wallet address.
            limit: Maximum number of snapshots; None for the full history.
        """
        query = (
            select(SnapshotRecord)
            .where(SnapshotRecord.wallet_address == wallet_address.lower())
            .order_by(SnapshotRecord.timestamp.desc(), SnapshotRecord.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)

        async with self._db.session() as session:
            result = await session.execute(query)
            return [_to_snapshot(record) for record in result.scalars().all()]

    async def get_snapshots_in_range(
        self, wallet_address: str, start_time: datetime, end_time: datetime
    ) -> list[PortfolioSnapshot]:
        """Get snapshots with start_time <= timestamp <= end_time, oldest first."""
        query = (
            select(SnapshotRecord)
            .where(
                SnapshotRecord.wallet_address == wallet_address.lower(),
                SnapshotRecord.timestamp >= as_utc(start_time),
                SnapshotRecord.timestamp <= as_utc(end_time),
            )
            .order_by(SnapshotRecord.timestamp.asc(), SnapshotRecord.id.asc())
        )
        async with self._db.session() as session:
            result = await session.execute(query)
            return [_to_snapshot(record) for record in result.scalars().all()]

    async def get_latest_snapshot(self, wallet_address: str) -> PortfolioSnapshot | None:
        """Get the most recent snapshot for a wallet."""
        snapshots = await self.get_snapshots(wallet_address, limit=1)
        return snapshots[0] if snapshots else None

    async def get_snapshot_at_time(
        self, wallet_address: str, target_time: datetime
    ) -> PortfolioSnapshot | None:
        """Get the latest snapshot taken at or before ``target_time``.

        Returns None when the wallet has no history up to that time.
        """
        query = (
            select(SnapshotRecord)
            .where(
                SnapshotRecord.wallet_address == wallet_address.lower(),
                SnapshotRecord.timestamp <= as_utc(target_time),
            )
            .order_by(SnapshotRecord.timestamp.desc(), SnapshotRecord.id.desc())
            .limit(1)
        )
        async with self._db.session() as session:
            result = await session.execute(query)
            record = result.scalar_one_or_none()
            return _to_snapshot(record) if record else None

    async def get_token_history(
        self,
        wallet_address: str,
        token_address: str,
        period: TimePeriod = TimePeriod.WEEK,
    ) -> HistoricalSeries | None:
        """Get one token's value across a wallet's snapshots in a period.

        Returns:
            Oldest-first series, or None if the token appears in no snapshot.
        """
        now = self._clock()
        snapshots = await self.get_snapshots_in_range(
            wallet_address, period.start_time(now), now
        )

        series = HistoricalSeries()
        for snapshot in snapshots:
            token = snapshot.find_token(token_address)
            if token is not None:
                series.timestamps.append(snapshot.timestamp)
                series.values.append(token.value)

        return series if series.timestamps else None

    async def prune_old_snapshots(
        self, wallet_address: str, older_than_days: float = 90
    ) -> int:
        """Delete a wallet's snapshots older than the cutoff.

        Returns:
            Number of snapshots deleted.
        """
        cutoff = as_utc(self._clock()) - timedelta(days=older_than_days)
        async with self._db.session() as session:
            result = await session.execute(
                delete(SnapshotRecord).where(
                    SnapshotRecord.wallet_address == wallet_address.lower(),
                    SnapshotRecord.timestamp < cutoff,
                )
            )
            deleted = result.rowcount or 0

        if deleted:
            logger.info(
                "Pruned {} snapshots older than {} days for {}",
                deleted,
                older_than_days,
                wallet_address.lower(),
            )
        return deleted

    async def clear_wallet_data(self, wallet_address: str) -> int:
        """Delete every snapshot of a wallet."""
        async with self._db.session() as session:
            result = await session.execute(
                delete(SnapshotRecord).where(
                    SnapshotRecord.wallet_address == wallet_address.lower()
                )
            )
            deleted = result.rowcount or 0

        logger.info("Cleared {} snapshots for {}", deleted, wallet_address.lower())
        return deleted

    async def clear_all_data(self) -> int:
        """Delete every snapshot."""
        async with self._db.session() as session:
            result = await session.execute(delete(SnapshotRecord))
            deleted = result.rowcount or 0

        logger.info("Cleared all {} snapshots", deleted)
        return deleted

    async def get_database_stats(self) -> DatabaseStats:
        """Summarize the snapshot table.

        ``size_estimate`` is the total length of the snapshots serialized
        as JSON.
        """
        async with self._db.session() as session:
            totals = await session.execute(
                select(
                    func.count(SnapshotRecord.id),
                    func.min(SnapshotRecord.timestamp),
                    func.max(SnapshotRecord.timestamp),
                )
            )
            total, oldest, newest = totals.one()

            wallets = await session.execute(
                select(SnapshotRecord.wallet_address)
                .distinct()
                .order_by(SnapshotRecord.wallet_address)
            )
            wallet_list = list(wallets.scalars().all())

            records = await session.execute(select(SnapshotRecord))
            size_estimate = sum(
                len(json.dumps(_to_snapshot(record).to_dict()))
                for record in records.scalars()
            )

        return DatabaseStats(
            total_snapshots=int(total or 0),
            wallets=wallet_list,
            oldest_snapshot=as_utc(oldest) if oldest else None,
            newest_snapshot=as_utc(newest) if newest else None,
            size_estimate=size_estimate,
        )
