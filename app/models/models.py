"""
Database models for the market match store.

``MarketMatch`` is the canonical record per external match id; upserts via
``MarketMatchRepository`` are its only mutation path. ``SyncMetadata`` keeps
one row per (source, status) describing the most recent sync run.
"""
from sqlalchemy import Column, String, Float, Integer, DateTime, Boolean, Text, JSON, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class MarketMatch(Base):
    """Canonical match record reconciled from the upstream market feed."""
    __tablename__ = "market_matches"

    id = Column(String(36), primary_key=True)
    match_id = Column(String(100), unique=True, nullable=False, index=True)  # external id, immutable

    # Descriptive
    home_team = Column(String(255), nullable=False)
    away_team = Column(String(255), nullable=False)
    league = Column(String(255), nullable=False)
    home_team_id = Column(String(100), nullable=True)
    away_team_id = Column(String(100), nullable=True)
    home_team_logo = Column(Text, nullable=True)
    away_team_logo = Column(Text, nullable=True)
    league_id = Column(String(100), nullable=True)
    league_country = Column(String(100), nullable=True)
    league_flag_url = Column(Text, nullable=True)
    league_flag_emoji = Column(String(16), nullable=True)

    # Lifecycle
    status = Column(String(16), nullable=False, index=True)  # UPCOMING, LIVE, FINISHED, CANCELLED, POSTPONED
    kickoff_date = Column(DateTime, nullable=False, index=True)

    # Market snapshot
    consensus_odds = Column(JSON(none_as_null=True), nullable=True)  # {home, draw, away} decimal odds
    is_consensus_odds = Column(Boolean, nullable=False, default=False)
    all_bookmakers = Column(JSON(none_as_null=True), nullable=True)
    primary_book = Column(String(100), nullable=True)
    book_count = Column(Integer, nullable=False, default=0)

    # Model snapshot
    v1_model = Column(JSON(none_as_null=True), nullable=True)
    v2_model = Column(JSON(none_as_null=True), nullable=True)

    # Live-only
    current_score = Column(JSON(none_as_null=True), nullable=True)
    elapsed_minutes = Column(Integer, nullable=True)
    period = Column(String(32), nullable=True)
    live_statistics = Column(JSON(none_as_null=True), nullable=True)
    momentum = Column(JSON(none_as_null=True), nullable=True)

    # Finished-only
    final_result = Column(JSON(none_as_null=True), nullable=True)
    match_statistics = Column(JSON(none_as_null=True), nullable=True)
    venue = Column(String(255), nullable=True)
    referee = Column(String(255), nullable=True)
    attendance = Column(Integer, nullable=True)

    # Provider market probabilities (parlay generator input)
    additional_markets = Column(JSON(none_as_null=True), nullable=True)

    # Sync bookkeeping
    last_synced_at = Column(DateTime, nullable=False, index=True)
    next_sync_at = Column(DateTime, nullable=True, index=True)  # null once terminal
    sync_priority = Column(String(8), nullable=False, default="low")
    sync_error_count = Column(Integer, nullable=False, default=0)
    last_sync_error = Column(Text, nullable=True)
    sync_count = Column(Integer, nullable=False, default=0)

    raw_payload = Column(JSON(none_as_null=True), nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('ix_market_matches_status_synced', 'status', 'last_synced_at'),
        Index('ix_market_matches_status_kickoff', 'status', 'kickoff_date'),
    )

    def __repr__(self) -> str:
        return f"<MarketMatch {self.match_id} {self.home_team} vs {self.away_team} [{self.status}]>"


class SyncMetadata(Base):
    """Outcome of the most recent sync run for one (source, data_type) pair.

    ``data_type`` holds the fetch status (live, upcoming, completed).
    """
    __tablename__ = "sync_metadata"

    id = Column(String(36), primary_key=True)
    source = Column(String(32), nullable=False)
    data_type = Column(String(32), nullable=False)
    last_sync_started_at = Column(DateTime, nullable=True)
    last_sync_completed_at = Column(DateTime, nullable=True, index=True)
    last_sync_status = Column(String(16), nullable=True, index=True)  # success, partial, failed, cancelled
    records_processed = Column(Integer, nullable=False, default=0)
    records_synced = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    sync_duration_ms = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint('source', 'data_type', name='uq_sync_metadata_source_type'),
    )
