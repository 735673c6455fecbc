"""Time helpers. All persisted timestamps are epoch milliseconds."""
import time

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
