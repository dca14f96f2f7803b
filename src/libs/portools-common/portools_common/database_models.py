# src/libs/portools-common/portools_common/database_models.py
from sqlalchemy import (
    BigInteger, Column, DateTime, Integer,
    JSON, String, func,
)

from .db_base import Base


class Portfolio(Base):
    """The persisted portfolio; `lots` holds the JSON form of each Lot."""
    __tablename__ = 'portfolios'

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    lots = Column(JSON, nullable=False, default=list)
    correlation_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PortfolioSummary(Base):
    """One derived summary document per (portfolio, view kind)."""
    __tablename__ = 'portfolio_summaries'

    portfolio_id = Column(BigInteger, primary_key=True, autoincrement=False)
    view_kind = Column(String, primary_key=True)
    document = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ChangeFeedCheckpoint(Base):
    """Last durably stored change feed position for a consumer."""
    __tablename__ = 'change_feed_checkpoints'

    consumer_id = Column(String, primary_key=True)
    position = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class OutboxEvent(Base):
    __tablename__ = 'outbox_events'

    id = Column(Integer, primary_key=True, autoincrement=True)
    aggregate_type = Column(String, nullable=False, index=True)
    aggregate_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    topic = Column(String, nullable=False)
    status = Column(String, default='PENDING', nullable=False, index=True)
    correlation_id = Column(String, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    last_attempted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
