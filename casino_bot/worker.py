"""
Local roll worker.

Development stand-in for the external roll service: fulfils pending
``dice_roll_requests`` rows with a die value. Disabled unless
LOCAL_ROLL_WORKER_ENABLED is set; in production the rows are answered by
a separate process.
"""

import logging
import random
from typing import Callable, Optional

from casino_bot.services.roll_oracle import DIE_MAX, DIE_MIN, RollRequestStore, RollStoreError

logger = logging.getLogger(__name__)

# Rows fulfilled per run
BATCH_SIZE = 50


async def fulfil_pending_rolls(
    store: RollRequestStore,
    randint: Optional[Callable[[int, int], int]] = None,
    batch_size: int = BATCH_SIZE,
) -> int:
    """
    Complete every pending roll request with a value in 1-6.

    Returns:
        Number of rows completed
    """
    randint = randint or random.randint
    try:
        pending = await store.list_pending(limit=batch_size)
    except RollStoreError as e:
        logger.error(f"[ROLL_WORKER] Could not list pending rolls: {e}")
        return 0

    completed = 0
    for request in pending:
        value = randint(DIE_MIN, DIE_MAX)
        try:
            await store.complete(request.game_id, value)
        except RollStoreError as e:
            logger.error(f"[ROLL_WORKER] Could not complete {request.game_id}: {e}")
            continue
        completed += 1
        logger.debug(f"[ROLL_WORKER] {request.game_id} -> {value}")

    if completed:
        logger.info(f"[ROLL_WORKER] Fulfilled {completed} roll request(s)")
    return completed
