import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application configuration read from environment variables."""

    # Telegram
    bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    # Database
    database_url: str = os.getenv(
        "DATABASE_URL", "sqlite+aiosqlite:///./data/casino.db"
    )

    # Betting limits and accounts
    min_bet: int = int(os.getenv("MIN_BET", "5"))
    max_bet: int = int(os.getenv("MAX_BET", "1000"))
    starting_balance: int = int(os.getenv("STARTING_BALANCE", "1000"))

    # Game timers
    join_timeout_seconds: float = float(os.getenv("JOIN_TIMEOUT_SECONDS", "60"))
    house_turn_delay_seconds: float = float(
        os.getenv("HOUSE_TURN_DELAY_SECONDS", "1.5")
    )

    # Roll oracle polling: 30 attempts x 2s = 60s ceiling
    roll_poll_interval_seconds: float = float(
        os.getenv("ROLL_POLL_INTERVAL_SECONDS", "2")
    )
    roll_poll_max_attempts: int = int(os.getenv("ROLL_POLL_MAX_ATTEMPTS", "30"))

    # Dice Escalator rules
    bust_value: int = int(os.getenv("BUST_VALUE", "1"))
    house_max_rolls: int = int(os.getenv("HOUSE_MAX_ROLLS", "3"))

    # Progressive jackpot fed by Dice Escalator bets
    jackpot_contribution_percent: float = float(
        os.getenv("JACKPOT_CONTRIBUTION_PERCENT", "0.01")
    )
    jackpot_target_score: int = int(os.getenv("JACKPOT_TARGET_SCORE", "120"))

    # Staleness reaper
    reaper_interval_minutes: int = int(os.getenv("REAPER_INTERVAL_MINUTES", "15"))
    stale_game_multiplier: int = int(os.getenv("STALE_GAME_MULTIPLIER", "5"))
    stale_session_multiplier: int = int(os.getenv("STALE_SESSION_MULTIPLIER", "20"))

    # Anti-spam
    command_cooldown_seconds: float = float(
        os.getenv("COMMAND_COOLDOWN_SECONDS", "1")
    )

    # Development stand-in for the external roll service
    local_roll_worker_enabled: bool = _env_bool("LOCAL_ROLL_WORKER_ENABLED")

    # Misc
    timezone: str = os.getenv("TIMEZONE", "UTC")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir: str = os.getenv("LOG_DIR", "logs")


settings = Settings()
