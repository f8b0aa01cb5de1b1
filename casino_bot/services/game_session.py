"""
Game session model shared by every game type.

A GameSession lives in the process-wide game table from start until its
terminal transition, which removes it and releases the chat.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from casino_bot.utils import utc_now


class GameType(str, Enum):
    """Types of games available."""
    COINFLIP = "coinflip"
    RPS = "rps"
    DICE_ESCALATOR = "dice_escalator"
    OVER_UNDER_7 = "over_under_7"
    DUEL = "duel"
    DICE_21 = "dice21"
    LADDER = "ladder"
    SEVENS_OUT = "sevens_out"
    SLOTS = "slots"


class GameStatus(str, Enum):
    """Lifecycle states across all game types."""
    # Two-player games
    WAITING_OPPONENT = "waiting_opponent"
    PLAYING = "playing"
    WAITING_CHOICES = "waiting_choices"
    # Dice Escalator
    PLAYER_TURN = "player_turn_prompt_action"
    WAITING_FOR_ROLL = "waiting_for_roll"
    PLAYER_CASHED_OUT = "player_cashed_out"
    BOT_TURN = "bot_turn_resolving"
    PLAYER_BUST = "game_over_player_bust"
    GAME_OVER = "game_over"
    # Sevens Out
    POINT_PHASE = "point_phase"
    # Single-round house games
    AWAITING_PLAYER = "awaiting_player"
    ROLLING = "rolling"
    RESOLVED = "resolved"


# Waiting on an external actor; the reaper may reclaim these
STALE_STATUSES = frozenset({
    GameStatus.WAITING_OPPONENT,
    GameStatus.WAITING_CHOICES,
    GameStatus.WAITING_FOR_ROLL,
    GameStatus.AWAITING_PLAYER,
})

# Waiting on the player to act; reclaimed after a longer period without any action
IDLE_STATUSES = frozenset({
    GameStatus.PLAYER_TURN,
    GameStatus.POINT_PHASE,
})

GAME_TITLES = {
    GameType.COINFLIP: "Coinflip",
    GameType.RPS: "Rock Paper Scissors",
    GameType.DICE_ESCALATOR: "Dice Escalator",
    GameType.OVER_UNDER_7: "Over/Under 7",
    GameType.DUEL: "High Roller Duel",
    GameType.DICE_21: "Dice 21",
    GameType.LADDER: "Greed's Ladder",
    GameType.SEVENS_OUT: "Sevens Out",
    GameType.SLOTS: "Slots",
}


@dataclass
class Participant:
    """A player seated in a game."""
    user_id: int
    name: str
    choice: Optional[str] = None  # side for coinflip, hand for rps, pick for over/under
    charged: bool = False


@dataclass
class GameSession:
    """One live game instance."""
    game_id: str
    game_type: GameType
    chat_id: int
    initiator_id: int
    bet: int
    status: GameStatus
    participants: List[Participant] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    message_id: Optional[int] = None
    last_action_at: Optional[datetime] = None
    # Dice Escalator and Dice 21
    score: int = 0
    house_score: int = 0
    roll_attempt: int = 0
    # Sevens Out
    point: Optional[int] = None

    @property
    def initiator(self) -> Participant:
        return self.participants[0]

    def participant(self, user_id: int) -> Optional[Participant]:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def charged_participants(self) -> List[Participant]:
        return [p for p in self.participants if p.charged]


@dataclass
class ActionResult:
    """Result of a player action on a game."""
    success: bool
    message: str = ""
    game: Optional[GameSession] = None
    error_code: Optional[str] = None

    @classmethod
    def fail(cls, error_code: str, message: str) -> "ActionResult":
        return cls(success=False, message=message, error_code=error_code)
