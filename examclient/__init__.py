"""
Adaptive Exam Session Client

This package contains the client side of an adaptive (CAT) exam:
- models: Served items, answer records and server payloads
- reducer: Pure session state transitions
- session: Exam session coordinator (flushing, finishing, proctoring)
- timer / violations: Countdown clock and proctoring monitor
- api: REST client for the exam backend
"""

__version__ = "1.0.0"
