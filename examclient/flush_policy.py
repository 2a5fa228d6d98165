"""
Answer flush policy.

Decides when locally buffered answers are synchronized with the server.
"""

from .models import ExamConfig
from .reducer import SessionState, remaining_inventory


def should_flush(buffered: int, remaining: int, config: ExamConfig) -> bool:
    """
    Non-forced flush trigger.

    Args:
        buffered: Answers recorded but not yet acknowledged
        remaining: Items still available locally (current + queued)
        config: Thresholds for batching

    Returns:
        True if the buffered answers should be sent now
    """
    if buffered <= 0 or buffered % config.flush_multiple != 0:
        return False
    return remaining <= config.inventory_cutoff or buffered >= config.batch_size


def needs_forced_flush(
    previous: SessionState,
    current: SessionState,
    config: ExamConfig,
    time_expired: bool = False,
    violation_limit_reached: bool = False,
) -> bool:
    """
    Check whether an answer transition requires sending everything now.

    Args:
        previous: Snapshot before the answer was recorded
        current: Snapshot after the answer was recorded
        config: Thresholds for batching
        time_expired: The exam timer reached zero
        violation_limit_reached: Proctoring violations hit the limit
    """
    if previous.stop or time_expired or violation_limit_reached:
        return True
    if not current.question_queue:
        return True
    return remaining_inventory(current) <= config.inventory_cutoff
