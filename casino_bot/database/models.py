from datetime import datetime
from typing import Optional
from sqlalchemy import BigInteger, Integer, String, DateTime, ForeignKey, Text, CheckConstraint, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .session import Base
from casino_bot.utils import utc_now


class DiceRollRequest(Base):
    """Rendezvous row with the external roll service, one per game."""
    __tablename__ = "dice_roll_requests"
    __table_args__ = (
        Index("ix_dice_roll_requests_status_requested", "status", "requested_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)  # pending, processing, completed, error
    roll_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


# Settlement ledger schema. Balances here are managed by the wallet subsystem,
# not by the in-process game ledger.

class Wallet(Base):
    __tablename__ = "wallets"
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    external_address: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)
    referral_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True)
    referred_by_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class UserBalance(Base):
    __tablename__ = "user_balances"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_balances_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("wallets.user_id", ondelete="CASCADE"), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class Bet(Base):
    __tablename__ = "bets"
    __table_args__ = (
        Index("ix_bets_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("wallets.user_id", ondelete="CASCADE"), index=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, index=True)
    game_type: Mapped[str] = mapped_column(String(32))
    bet_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    wager: Mapped[int] = mapped_column(BigInteger)
    payout: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="active")  # active, won, lost, refunded
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
