"""
Currency Ledger.

Owns per-user balances and per-(user, chat) statistics. Every balance
change goes through ``Ledger.adjust_balance``, which never suspends: under
the asyncio event loop the read-check-write sequence cannot interleave
with another adjustment, so concurrent debits can never push a balance
below zero.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from casino_bot.services.store import MemoryStore
from casino_bot.utils import utc_now

logger = logging.getLogger(__name__)


class TransactionKind(str, Enum):
    """Why a balance moved."""
    BET = "bet"
    WIN = "win"
    REFUND = "refund"
    CASHOUT = "cashout"
    JACKPOT = "jackpot"


@dataclass
class ChatStats:
    """Per-chat statistics for one user."""
    games_played: int = 0
    total_wagered: int = 0
    net: int = 0


@dataclass
class Account:
    """A player's credit account."""
    user_id: int
    display_name: str
    balance: int
    created_at: datetime
    last_played_at: Optional[datetime] = None
    chat_stats: Dict[int, ChatStats] = field(default_factory=dict)

    def stats_for(self, chat_id: int) -> ChatStats:
        return self.chat_stats.setdefault(chat_id, ChatStats())


@dataclass
class JournalEntry:
    """One committed balance adjustment."""
    user_id: int
    delta: int
    kind: TransactionKind
    balance_after: int
    chat_id: Optional[int]
    game_id: Optional[str]
    at: datetime


@dataclass
class AdjustResult:
    """Result of a balance adjustment."""
    success: bool
    balance: int
    message: str = ""
    error_code: Optional[str] = None


class Ledger:
    """
    In-memory currency ledger.

    Accounts are created on first contact with a fixed starting balance and
    are never deleted.
    """

    DEFAULT_STARTING_BALANCE: int = 1000

    def __init__(
        self,
        starting_balance: Optional[int] = None,
        store: Optional[MemoryStore[int, Account]] = None,
        on_account_created: Optional[Callable[[Account], None]] = None,
        now_func: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            starting_balance: Balance granted to new accounts.
            store: Account table, a fresh in-memory one by default.
            on_account_created: Called once for every newly created account.
            now_func: Clock, ``utc_now`` by default.
        """
        self.starting_balance = (
            self.DEFAULT_STARTING_BALANCE if starting_balance is None else starting_balance
        )
        self._accounts: MemoryStore[int, Account] = store if store is not None else MemoryStore()
        self._on_account_created = on_account_created
        self._now = now_func or utc_now
        self._journal: List[JournalEntry] = []

    @property
    def journal(self) -> List[JournalEntry]:
        return list(self._journal)

    def get_account(self, user_id: int) -> Optional[Account]:
        return self._accounts.get(user_id)

    def get_or_create_account(self, user_id: int, display_name: str) -> Account:
        """
        Return the existing account, refreshing its display name, or create one.

        Args:
            user_id: Player identity
            display_name: Current display name

        Returns:
            The player's Account
        """
        account = self._accounts.get(user_id)
        if account is not None:
            if display_name and account.display_name != display_name:
                account.display_name = display_name
            return account

        account = Account(
            user_id=user_id,
            display_name=display_name or str(user_id),
            balance=self.starting_balance,
            created_at=self._now(),
        )
        self._accounts.set(user_id, account)
        logger.info(f"[LEDGER] New account {user_id} ({account.display_name}) with {account.balance}")
        if self._on_account_created is not None:
            self._on_account_created(account)
        return account

    def get_balance(self, user_id: int) -> int:
        account = self._accounts.get(user_id)
        return account.balance if account else 0

    def adjust_balance(
        self,
        user_id: int,
        delta: int,
        kind: TransactionKind,
        chat_id: Optional[int] = None,
        game_id: Optional[str] = None,
    ) -> AdjustResult:
        """
        Apply ``balance + delta`` if the result is non-negative.

        A rejected adjustment leaves the account, its stats and the journal
        untouched.

        Args:
            user_id: Player identity (account must exist)
            delta: Signed amount; negative for a debit
            kind: Transaction kind used to bucket statistics
            chat_id: Chat the transaction belongs to
            game_id: Associated game, for the journal

        Returns:
            AdjustResult with the resulting balance
        """
        account = self._accounts.get(user_id)
        if account is None:
            logger.warning(f"[LEDGER] adjust_balance for unknown account {user_id} ({kind.value})")
            return AdjustResult(
                success=False,
                balance=0,
                message="Account not found.",
                error_code="NOT_FOUND",
            )

        proposed = account.balance + delta
        if proposed < 0:
            logger.info(
                f"[LEDGER] Insufficient funds: user={user_id} balance={account.balance} "
                f"delta={delta} kind={kind.value} game={game_id}"
            )
            return AdjustResult(
                success=False,
                balance=account.balance,
                message=f"Insufficient balance. You have {account.balance} credits.",
                error_code="INSUFFICIENT_FUNDS",
            )

        now = self._now()
        account.balance = proposed
        account.last_played_at = now

        if chat_id is not None:
            stats = account.stats_for(chat_id)
            if kind == TransactionKind.BET:
                stats.games_played += 1
                stats.total_wagered += -delta
            stats.net += delta

        self._journal.append(JournalEntry(
            user_id=user_id,
            delta=delta,
            kind=kind,
            balance_after=proposed,
            chat_id=chat_id,
            game_id=game_id,
            at=now,
        ))
        logger.debug(
            f"[LEDGER] user={user_id} {kind.value} {delta:+d} -> {proposed} game={game_id}"
        )
        return AdjustResult(success=True, balance=proposed)
