from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text,
    BigInteger, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# ============================================================================
# Session store
# ============================================================================

class SessionRecord(Base):
    """
    One play session, append-only.

    Timestamps are stored as epoch milliseconds so day ranges are plain
    integer comparisons.
    """
    __tablename__ = 'session_records'

    id = Column(Integer, primary_key=True)
    player = Column(String(42), nullable=False, index=True)  # lowercase 0x address
    points = Column(Integer, nullable=False, default=0)
    bonus_hits = Column(Integer, nullable=False, default=0)
    penalty_hits = Column(Integer, nullable=False, default=0)
    timestamp_ms = Column(BigInteger, nullable=False, index=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('bonus_hits >= 0', name='non_negative_bonus_hits'),
        CheckConstraint('penalty_hits >= 0', name='non_negative_penalty_hits'),
    )

    def __repr__(self):
        return f"<SessionRecord(player='{self.player}', points={self.points}, ts={self.timestamp_ms})>"

class QuarantinedSession(Base):
    """Session rows rejected at the boundary, kept for inspection."""
    __tablename__ = 'quarantined_sessions'

    id = Column(Integer, primary_key=True)
    raw_payload = Column(Text, nullable=False)  # JSON of the rejected input
    reason = Column(String(500), nullable=False)
    received_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<QuarantinedSession(id={self.id}, reason='{self.reason}')>"

# ============================================================================
# Prize ledger (database-backed adapter)
# ============================================================================

class PrizeDay(Base):
    """One committed registration for a day."""
    __tablename__ = 'prize_days'

    day_id = Column(Integer, primary_key=True, autoincrement=False)
    total_players = Column(Integer, nullable=False, default=0)
    tx_hash = Column(String(66), nullable=False)
    registered_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<PrizeDay(day_id={self.day_id}, total_players={self.total_players})>"

class PrizeWinner(Base):
    """Write-once winner slot. Empty slots have no row."""
    __tablename__ = 'prize_winners'

    id = Column(Integer, primary_key=True)
    day_id = Column(Integer, nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    player = Column(String(42), nullable=False)

    __table_args__ = (
        CheckConstraint('rank >= 1 AND rank <= 3', name='winner_rank_range'),
        UniqueConstraint('day_id', 'rank', name='uq_winner_day_rank'),
        UniqueConstraint('day_id', 'player', name='uq_winner_day_player'),
    )

    def __repr__(self):
        return f"<PrizeWinner(day_id={self.day_id}, rank={self.rank}, player='{self.player}')>"

class PrizeClaim(Base):
    """Claim flag for a winner slot, flips to claimed exactly once."""
    __tablename__ = 'prize_claims'

    id = Column(Integer, primary_key=True)
    day_id = Column(Integer, nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    claimed = Column(Boolean, nullable=False, default=False)
    claimed_by = Column(String(42), nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    tx_hash = Column(String(66), nullable=True)

    __table_args__ = (
        UniqueConstraint('day_id', 'rank', name='uq_claim_day_rank'),
    )

    def __repr__(self):
        return f"<PrizeClaim(day_id={self.day_id}, rank={self.rank}, claimed={self.claimed})>"

# ============================================================================
# Credit ledger (database-backed adapter)
# ============================================================================

class CreditBalance(Base):
    """Balance of one player on one credit ledger deployment."""
    __tablename__ = 'credit_balances'

    id = Column(Integer, primary_key=True)
    player = Column(String(42), nullable=False, index=True)
    contract_version = Column(String(50), nullable=False)
    balance = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('balance >= 0', name='non_negative_credit_balance'),
        UniqueConstraint('player', 'contract_version', name='uq_credit_player_version'),
    )

    def __repr__(self):
        return f"<CreditBalance(player='{self.player}', version='{self.contract_version}', balance={self.balance})>"

class MigrationEvent(Base):
    """
    Append-only log of credits migrated into a deployment.

    No uniqueness on (player, source, target): duplicates are an anomaly that
    must stay visible to the reconciler.
    """
    __tablename__ = 'credit_migration_events'

    id = Column(Integer, primary_key=True)
    player = Column(String(42), nullable=False)
    amount = Column(BigInteger, nullable=False)
    source_version = Column(String(50), nullable=False)
    target_version = Column(String(50), nullable=False)
    tx_hash = Column(String(66), nullable=False)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('amount > 0', name='positive_migration_amount'),
        Index('ix_migration_player_pair', 'player', 'source_version', 'target_version'),
    )

    def __repr__(self):
        return (f"<MigrationEvent(player='{self.player}', amount={self.amount}, "
                f"{self.source_version}->{self.target_version})>")

class MigrationHold(Base):
    """Player whose migrations are blocked until an operator reviews them."""
    __tablename__ = 'credit_migration_holds'

    id = Column(Integer, primary_key=True)
    player = Column(String(42), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now())
    released = Column(Boolean, nullable=False, default=False)
    released_at = Column(DateTime, nullable=True)
    release_note = Column(Text, nullable=True)

    def __repr__(self):
        return f"<MigrationHold(player='{self.player}', released={self.released})>"
