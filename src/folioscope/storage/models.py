"""SQLAlchemy database models."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SnapshotRecord(Base):
    """Stored portfolio snapshot.

    Rows are written once and never updated. Token positions are kept as a
    JSON list in holdings order.
    """

    __tablename__ = "portfolio_snapshots"
    __table_args__ = (
        Index("ix_portfolio_snapshots_wallet_timestamp", "wallet_address", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(64), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    total_value: Mapped[float] = mapped_column(Float)
    token_count: Mapped[int] = mapped_column(Integer)
    tokens: Mapped[list[dict[str, Any]]] = mapped_column(JSON)
    chain_id: Mapped[str] = mapped_column(String(20))
