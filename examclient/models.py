"""
Data models for the exam backend schema.

Provides type-safe structures for served items, answer records, server
payloads and the client configuration.
"""

from dataclasses import dataclass, asdict
from typing import Optional, List, Any, Tuple


OPTION_LETTERS = ("a", "b", "c", "d", "e")


class InvalidStartPayload(ValueError):
    """Raised when the exam start payload cannot be used to run a session."""


@dataclass(frozen=True)
class MediaAsset:
    """A media file attached to a question (image, audio...)."""
    url: str
    kind: str = "image"
    alt_text: Optional[str] = None

    @staticmethod
    def from_dict(data: dict) -> 'MediaAsset':
        return MediaAsset(
            url=data['url'],
            kind=data.get('kind') or data.get('type') or 'image',
            alt_text=data.get('alt_text'),
        )


@dataclass(frozen=True)
class Item:
    """A question served by the backend."""
    id: int
    position: int
    question_text: str
    options: Tuple[str, str, str, str, str]
    media: Tuple[MediaAsset, ...] = ()
    category: Optional[str] = None
    is_scored: Optional[bool] = None

    @staticmethod
    def from_dict(data: dict) -> 'Item':
        """Create an Item object from a dictionary."""
        missing = [k for k in ('id', 'question_text') if k not in data]
        missing += [f"option_{x}_text" for x in OPTION_LETTERS if f"option_{x}_text" not in data]
        if missing:
            raise InvalidStartPayload(f"Item is missing fields: {', '.join(missing)}")

        return Item(
            id=data['id'],
            position=data.get('position') or 0,
            question_text=data['question_text'],
            options=tuple(data[f"option_{x}_text"] for x in OPTION_LETTERS),
            media=tuple(MediaAsset.from_dict(m) for m in data.get('media') or []),
            category=data.get('category'),
            is_scored=data.get('is_scored'),
        )

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'position': self.position,
            'question_text': self.question_text,
        }
        for letter, text in zip(OPTION_LETTERS, self.options):
            data[f"option_{letter}_text"] = text
        if self.media:
            data['media'] = [asdict(m) for m in self.media]
        return data


@dataclass(frozen=True)
class AnswerRecord:
    """An answer recorded locally, waiting to be flushed to the server."""
    item_id: int
    selected_option: int  # 1..5
    response_time_ms: int
    served_at: str
    answered_at: str

    @property
    def key(self) -> Tuple[int, str, int]:
        """Identity used to match server acknowledgments."""
        return (self.item_id, self.answered_at, self.selected_option)

    def to_dict(self) -> dict:
        return asdict(self)


def _parse_inventory(raw: Any) -> List[Item]:
    if not isinstance(raw, list):
        raise InvalidStartPayload("question_inventory must be a list")
    return [Item.from_dict(item) for item in raw]


@dataclass(frozen=True)
class StartPayload:
    """Response of POST /exam/start."""
    exam_attempt_id: int
    theta: float
    se_theta: float
    learning_rate: float
    pilot_start_pos: int
    question_inventory: Tuple[Item, ...]

    @staticmethod
    def from_dict(data: dict) -> 'StartPayload':
        """
        Create a StartPayload from the server (or a saved) response.

        Raises:
            InvalidStartPayload: If the attempt id or inventory is missing
        """
        if not isinstance(data, dict) or not data.get('exam_attempt_id'):
            raise InvalidStartPayload("Start payload has no exam_attempt_id")
        if 'question_inventory' not in data:
            raise InvalidStartPayload("Start payload has no question_inventory")

        return StartPayload(
            exam_attempt_id=data['exam_attempt_id'],
            theta=float(data.get('theta') if data.get('theta') is not None else 0.0),
            se_theta=float(data.get('se_theta') if data.get('se_theta') is not None else 1.0),
            learning_rate=float(data.get('learning_rate') if data.get('learning_rate') is not None else 0.5),
            pilot_start_pos=data.get('pilot_start_pos') or 0,
            question_inventory=tuple(_parse_inventory(data['question_inventory'])),
        )


@dataclass(frozen=True)
class BatchResult:
    """Response of POST /exam/answer-batch."""
    exam_attempt_id: Optional[int]
    theta: float
    se: float
    learning_rate: float
    position: int
    stop: bool
    question_inventory: Tuple[Item, ...] = ()

    @staticmethod
    def from_dict(data: dict) -> 'BatchResult':
        return BatchResult(
            exam_attempt_id=data.get('exam_attempt_id'),
            theta=float(data['theta']),
            se=float(data['se']),
            learning_rate=float(data.get('learning_rate', 0.5)),
            position=int(data['position']),
            stop=bool(data['stop']),
            question_inventory=tuple(_parse_inventory(data.get('question_inventory') or [])),
        )


@dataclass(frozen=True)
class FinishResult:
    """Response of POST /exam/finish."""
    theta_hat: Optional[float]
    se_theta: Optional[float]
    completed_at: str
    raw_score: Optional[float] = None

    @staticmethod
    def from_dict(data: dict) -> 'FinishResult':
        return FinishResult(
            theta_hat=data.get('theta_hat'),
            se_theta=data.get('se_theta'),
            completed_at=data['completed_at'],
            raw_score=data.get('raw_score'),
        )


@dataclass(frozen=True)
class ExamState:
    """Server-side view of an attempt (GET /exam/{id}/state)."""
    exam_attempt_id: int
    started_at: str
    completed_at: Optional[str]
    position: int
    raw_score: Optional[float]
    theta_hat: Optional[float]
    se_theta: Optional[float]
    is_report_unlocked: bool

    @staticmethod
    def from_dict(data: dict) -> 'ExamState':
        return ExamState(
            exam_attempt_id=data['exam_attempt_id'],
            started_at=data['started_at'],
            completed_at=data.get('completed_at'),
            position=data.get('position', 0),
            raw_score=data.get('raw_score'),
            theta_hat=data.get('theta_hat'),
            se_theta=data.get('se_theta'),
            is_report_unlocked=bool(data.get('is_report_unlocked', False)),
        )


@dataclass(frozen=True)
class ExamResults:
    """Final report of an attempt (GET /exam/{id}/report)."""
    exam_attempt_id: int
    raw_score: float
    theta_hat: float
    se_theta: float
    completed_at: str
    total_items: int
    items_scored: int
    scaled_score: Optional[float] = None

    @staticmethod
    def from_dict(data: dict) -> 'ExamResults':
        return ExamResults(
            exam_attempt_id=data['exam_attempt_id'],
            raw_score=data['raw_score'],
            theta_hat=data['theta_hat'],
            se_theta=data['se_theta'],
            completed_at=data['completed_at'],
            total_items=data['total_items'],
            items_scored=data['items_scored'],
            scaled_score=data.get('scaled_score'),
        )


@dataclass
class ExamConfig:
    """
    Client configuration for an exam session.

    Attributes:
        api_base: Base URL of the exam backend
        request_timeout_seconds: Timeout for each HTTP request
        exam_duration_seconds: Countdown length
        batch_size: Batch size announced to the server, also the buffered
                    count that allows a flush regardless of inventory
        flush_multiple: Buffered answers are flushed in multiples of this
        inventory_cutoff: Remaining local items at or below which a flush
                          is due
        max_violations: Proctoring violations that terminate the exam
        fullscreen_poll_seconds: Interval of the fullscreen safety poll
        proctoring_enabled: Whether the violation monitor is attached
    """
    api_base: str = "http://localhost:8000"
    request_timeout_seconds: float = 30.0
    exam_duration_seconds: int = 12600
    batch_size: int = 6
    flush_multiple: int = 3
    inventory_cutoff: int = 3
    max_violations: int = 3
    fullscreen_poll_seconds: float = 2.0
    proctoring_enabled: bool = True

    @staticmethod
    def from_dict(data: dict) -> 'ExamConfig':
        """Create ExamConfig from dictionary."""
        known = {k: v for k, v in data.items() if not k.startswith('_')}
        return ExamConfig(
            api_base=known.get('api_base', "http://localhost:8000"),
            request_timeout_seconds=float(known.get('request_timeout_seconds', 30.0)),
            exam_duration_seconds=int(known.get('exam_duration_seconds', 12600)),
            batch_size=int(known.get('batch_size', 6)),
            flush_multiple=int(known.get('flush_multiple', 3)),
            inventory_cutoff=int(known.get('inventory_cutoff', 3)),
            max_violations=int(known.get('max_violations', 3)),
            fullscreen_poll_seconds=float(known.get('fullscreen_poll_seconds', 2.0)),
            proctoring_enabled=bool(known.get('proctoring_enabled', True)),
        )

    def validate(self) -> tuple[bool, str]:
        """
        Validate configuration consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not self.api_base.startswith(("http://", "https://")):
            return False, f"api_base must be an http(s) URL, got '{self.api_base}'"

        if any(x < 1 for x in [self.batch_size, self.flush_multiple, self.max_violations]):
            return False, "batch_size, flush_multiple and max_violations must be at least 1"

        if self.inventory_cutoff < 0:
            return False, "inventory_cutoff must be non-negative"

        if self.batch_size % self.flush_multiple != 0:
            return False, f"batch_size ({self.batch_size}) must be a multiple of flush_multiple ({self.flush_multiple})"

        if self.exam_duration_seconds < 1 or self.exam_duration_seconds > 8 * 3600:
            return False, "Exam duration must be between 1 second and 8 hours"

        if self.request_timeout_seconds <= 0 or self.fullscreen_poll_seconds <= 0:
            return False, "Timeouts and poll intervals must be positive"

        return True, ""

    @staticmethod
    def default() -> 'ExamConfig':
        """Return default configuration."""
        return ExamConfig()
