"""
Exam countdown timer.

Ticks once per interval while running and not paused. Reaching zero
stops the timer and calls the expiry callback once.
"""

import threading
from typing import Callable, Optional


class ExamTimer:
    """Countdown clock with pause/resume."""

    def __init__(
        self,
        duration_seconds: int,
        on_expire: Optional[Callable[[], None]] = None,
        tick_interval: float = 1.0,
        session_logger=None,
    ):
        self.duration_seconds = duration_seconds
        self.on_expire = on_expire
        self.tick_interval = tick_interval
        self.session_logger = session_logger

        self.time_remaining = duration_seconds
        self.running = False
        self.paused = False
        self.expired = False

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def reset(self, duration_seconds: Optional[int] = None):
        """Stop the clock and rewind it to the full duration."""
        self.stop()
        with self._lock:
            if duration_seconds is not None:
                self.duration_seconds = duration_seconds
            self.time_remaining = self.duration_seconds
            self.paused = False
            self.expired = False

    def start(self, background: bool = True):
        """
        Start counting down.

        Args:
            background: Drive ticks from a daemon thread. Without it the
                        owner is expected to call tick() itself.
        """
        with self._lock:
            if self.running or self.expired:
                return
            self.running = True

        if background:
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()

    def stop(self):
        """Stop ticking. The remaining time is kept."""
        with self._lock:
            self.running = False
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None

    def pause(self):
        with self._lock:
            if not self.running or self.paused:
                return
            self.paused = True
        if self.session_logger:
            self.session_logger("TIMER_PAUSED", f"Remaining: {self.format_remaining()}")

    def resume(self):
        with self._lock:
            if not self.paused:
                return
            self.paused = False
        if self.session_logger:
            self.session_logger("TIMER_RESUMED", f"Remaining: {self.format_remaining()}")

    def tick(self) -> bool:
        """
        Advance the clock by one second.

        Returns:
            True if this tick made the timer expire
        """
        with self._lock:
            if not self.running or self.paused or self.time_remaining <= 0:
                return False
            self.time_remaining -= 1
            if self.time_remaining > 0:
                return False
            self.running = False
            self.expired = True

        self._stop_event.set()
        if self.session_logger:
            self.session_logger("EXAM_TIMEOUT", "Exam time finished - auto-stopping")
        if self.on_expire:
            self.on_expire()
        return True

    def _run(self):
        """Background ticking loop."""
        while not self._stop_event.wait(self.tick_interval):
            if not self.running:
                break
            self.tick()

    def format_remaining(self) -> str:
        """Format remaining time as HH:MM:SS."""
        total_seconds = max(int(self.time_remaining), 0)
        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        seconds = total_seconds % 60
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
