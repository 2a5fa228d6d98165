"""
Proctoring Violation Monitor

Watches tab focus and fullscreen state during an exam and applies the
escalation policy: the first violations raise a blocking warning that
the student must remedy, the last one terminates the exam.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .timer import ExamTimer


TAB = "tab"
FULLSCREEN = "fullscreen"


class EnvironmentObserver(ABC):
    """
    Source of proctoring signals (browser window, terminal, test double).

    Implementations call the registered handlers whenever focus or
    fullscreen state changes.
    """

    @abstractmethod
    def on_focus_change(self, handler: Callable[[bool], None]):
        pass

    @abstractmethod
    def on_fullscreen_change(self, handler: Callable[[bool], None]):
        pass

    @abstractmethod
    def is_fullscreen(self) -> bool:
        pass

    @abstractmethod
    def request_fullscreen(self) -> bool:
        pass


class StaticEnvironment(EnvironmentObserver):
    """Environment without proctoring signals: always focused and fullscreen."""

    def on_focus_change(self, handler):
        pass

    def on_fullscreen_change(self, handler):
        pass

    def is_fullscreen(self) -> bool:
        return True

    def request_fullscreen(self) -> bool:
        return True


class SyntheticEnvironment(EnvironmentObserver):
    """Environment driven by explicit event injection."""

    def __init__(self, fullscreen: bool = False, allow_fullscreen: bool = True):
        self.fullscreen = fullscreen
        self.allow_fullscreen = allow_fullscreen
        self.focus_handlers: List[Callable[[bool], None]] = []
        self.fullscreen_handlers: List[Callable[[bool], None]] = []

    def on_focus_change(self, handler):
        self.focus_handlers.append(handler)

    def on_fullscreen_change(self, handler):
        self.fullscreen_handlers.append(handler)

    def is_fullscreen(self) -> bool:
        return self.fullscreen

    def request_fullscreen(self) -> bool:
        if not self.allow_fullscreen:
            return False
        self.set_fullscreen(True)
        return True

    def blur(self):
        for handler in list(self.focus_handlers):
            handler(False)

    def focus(self):
        for handler in list(self.focus_handlers):
            handler(True)

    def set_fullscreen(self, value: bool, notify: bool = True):
        """Change fullscreen state; notify=False mimics a browser that skips the event."""
        self.fullscreen = value
        if notify:
            for handler in list(self.fullscreen_handlers):
                handler(value)


class ViolationMonitor:
    """Counts proctoring violations and escalates to termination."""

    def __init__(
        self,
        observer: EnvironmentObserver,
        timer: ExamTimer,
        on_terminate: Optional[Callable[[], None]] = None,
        max_violations: int = 3,
        poll_interval: float = 2.0,
        is_active: Optional[Callable[[], bool]] = None,
        session_logger=None,
    ):
        self.observer = observer
        self.timer = timer
        self.on_terminate = on_terminate
        self.max_violations = max_violations
        self.poll_interval = poll_interval
        self.is_active = is_active or (lambda: True)
        self.session_logger = session_logger

        self.violation_count = 0
        self.warning: Optional[str] = None
        self.terminated = False
        self.fullscreen_entered = False

        # kind of the violation currently being handled; blocks double counting
        self._handling: Optional[str] = None
        self._last_fullscreen = False
        self._lock = threading.RLock()
        self._attached = False
        self._polling = False
        self._poll_thread: Optional[threading.Thread] = None
        self._poll_stop = threading.Event()

    def attach(self, poll: bool = True):
        """Register with the observer and start the fullscreen safety poll."""
        if not self._attached:
            self.observer.on_focus_change(self.handle_focus_change)
            self.observer.on_fullscreen_change(self.handle_fullscreen_change)
            self._attached = True
        self._last_fullscreen = self.observer.is_fullscreen()
        if self._last_fullscreen:
            self.fullscreen_entered = True

        if poll and not self._polling:
            self._polling = True
            self._poll_stop.clear()
            self._poll_thread = threading.Thread(target=self._poll_background, daemon=True)
            self._poll_thread.start()

    def detach(self):
        """Stop the safety poll."""
        self._polling = False
        self._poll_stop.set()
        if self._poll_thread and self._poll_thread.is_alive() and self._poll_thread is not threading.current_thread():
            self._poll_thread.join(timeout=2.0)
        self._poll_thread = None

    def reset(self):
        """Forget all violations (new attempt)."""
        with self._lock:
            self.violation_count = 0
            self.warning = None
            self.terminated = False
            self._handling = None

    @property
    def is_blocking(self) -> bool:
        """True while a warning requires the student to remedy the condition."""
        return self.warning is not None and not self.terminated

    @property
    def limit_reached(self) -> bool:
        return self.violation_count >= self.max_violations

    def request_fullscreen(self) -> bool:
        """Ask the environment for fullscreen; a refusal counts as a violation."""
        granted = self.observer.request_fullscreen()
        if granted:
            self.handle_fullscreen_change(True)
        else:
            self.on_fullscreen_error()
        return granted

    def handle_focus_change(self, has_focus: bool):
        with self._lock:
            if self.terminated:
                return
            if not has_focus:
                if not self.is_active() or self.timer.paused or self._handling is not None:
                    return
                self._handling = TAB
                terminate = self._record_violation(TAB)
            else:
                terminate = False
                self._clear_tab_violation()
        if terminate:
            self._fire_terminate()

    def _clear_tab_violation(self):
        if self._handling == TAB:
            self._handling = None
        if self.warning == TAB and not self.limit_reached:
            self.warning = None
            self.timer.resume()
            self._log("VIOLATION_CLEARED", f"Focus regained ({self.violation_count}/{self.max_violations})")

    def handle_fullscreen_change(self, is_fullscreen: bool):
        with self._lock:
            self._last_fullscreen = is_fullscreen
            if self.terminated:
                return
            if is_fullscreen:
                self.fullscreen_entered = True
                if self._handling == FULLSCREEN:
                    self._handling = None
                if self.warning == FULLSCREEN and not self.limit_reached:
                    self.warning = None
                    self._log("VIOLATION_CLEARED", f"Fullscreen restored ({self.violation_count}/{self.max_violations})")
                return

            # leaving fullscreen before it was ever granted is the consent flow
            if not self.fullscreen_entered or not self.is_active() or self._handling is not None:
                return
            self._handling = FULLSCREEN
            terminate = self._record_violation(FULLSCREEN)
        if terminate:
            self._fire_terminate()

    def on_fullscreen_error(self):
        """Fullscreen was refused by the environment."""
        with self._lock:
            if self.terminated or not self.is_active() or self._handling is not None:
                return
            self._handling = FULLSCREEN
            terminate = self._record_violation(FULLSCREEN, "Fullscreen request denied")
        if terminate:
            self._fire_terminate()

    def poll_fullscreen(self):
        """Catch fullscreen changes the environment did not report."""
        current = self.observer.is_fullscreen()
        if current != self._last_fullscreen:
            self.handle_fullscreen_change(current)

    def _poll_background(self):
        while not self._poll_stop.wait(self.poll_interval):
            if not self._polling:
                break
            self.poll_fullscreen()

    def _record_violation(self, kind: str, details: str = "") -> bool:
        """Count a violation. Returns True when it reached the limit."""
        self.violation_count += 1
        event = "VIOLATION_TAB" if kind == TAB else "VIOLATION_FULLSCREEN"
        self._log(event, details or f"Violation {self.violation_count}/{self.max_violations}")

        if self.limit_reached:
            self.terminated = True
            self.warning = None
            self.timer.stop()
            self._log("VIOLATION_LIMIT", f"{self.violation_count} violations - terminating exam")
            return True

        self.warning = kind
        if kind == TAB:
            self.timer.pause()
        return False

    def _fire_terminate(self):
        # called without holding the lock; termination talks to the backend
        if self.on_terminate:
            self.on_terminate()

    def _log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)
