"""
REST client for the adaptive exam backend.

Thin JSON-over-HTTPS wrapper: each method posts or gets one endpoint and
parses the response into a model object. HTTP errors are raised as
ApiError carrying the backend's `detail` message; transport failures as
NetworkError.
"""

from typing import List, Optional

import requests

from .models import (
    AnswerRecord,
    BatchResult,
    ExamResults,
    ExamState,
    FinishResult,
    InvalidStartPayload,
    StartPayload,
)


API_PREFIX = "/api/v1"
UNEXPECTED_ERROR = "An unexpected error occurred"


class ApiError(Exception):
    """Error returned by the exam backend."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class NetworkError(ApiError):
    """The backend could not be reached."""


class ApiClient:
    """Client for the exam endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({"Content-Type": "application/json"})
        self.token = token

    def set_token(self, token: str):
        self.token = token

    def clear_token(self):
        self.token = None

    def _request(self, method: str, path: str, payload: Optional[dict] = None, prefix: str = API_PREFIX) -> dict:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = f"{self.base_url}{prefix}{path}"
        try:
            response = self.http.request(method, url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f"Request timeout: {e}") from e
        except requests.ConnectionError as e:
            raise NetworkError(f"Network Error: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(str(e)) from e

        if not response.ok:
            raise _error_from_response(response)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(UNEXPECTED_ERROR, status_code=response.status_code) from e

    # Exam endpoints

    def start_exam(self) -> StartPayload:
        """Start a new attempt and receive the first item inventory."""
        return _parse(StartPayload, self._request("POST", "/exam/start"))

    def submit_answer_batch(
        self,
        exam_attempt_id: int,
        answers: List[AnswerRecord],
        batch_size: int,
        learning_rate: float,
        current_position: int,
    ) -> BatchResult:
        """Send buffered answers; the server answers with a new ability estimate."""
        payload = {
            "exam_attempt_id": exam_attempt_id,
            "answers": [a.to_dict() for a in answers],
            "batch_size": batch_size,
            "learning_rate": learning_rate,
            "current_position": current_position,
        }
        return _parse(BatchResult, self._request("POST", "/exam/answer-batch", payload))

    def finish_exam(self, exam_attempt_id: int) -> FinishResult:
        data = self._request("POST", "/exam/finish", {"exam_attempt_id": exam_attempt_id})
        return _parse(FinishResult, data)

    def get_exam_state(self, exam_attempt_id: int) -> ExamState:
        return _parse(ExamState, self._request("GET", f"/exam/{exam_attempt_id}/state"))

    def get_exam_results(self, exam_attempt_id: int) -> ExamResults:
        return _parse(ExamResults, self._request("GET", f"/exam/{exam_attempt_id}/report"))

    def health_check(self) -> dict:
        # Health check lives at the root, not under the API prefix
        return self._request("GET", "/health", prefix="")


def _parse(model, data):
    """Build a model from a response body, rejecting malformed bodies as ApiError."""
    try:
        return model.from_dict(data)
    except InvalidStartPayload as e:
        # only a start response is fatal to the session; anywhere else it is a bad reply
        if model is StartPayload:
            raise
        raise ApiError(f"Malformed response from server: {e}") from e
    except (KeyError, TypeError, ValueError) as e:
        raise ApiError(f"Malformed response from server: {e}") from e


def _error_from_response(response: requests.Response) -> ApiError:
    try:
        data = response.json()
    except ValueError:
        return ApiError(UNEXPECTED_ERROR, status_code=response.status_code)

    if not isinstance(data, dict) or not isinstance(data.get("detail"), str):
        return ApiError(UNEXPECTED_ERROR, status_code=response.status_code)
    return ApiError(data["detail"], status_code=response.status_code, error_code=data.get("error_code"))


def handle_api_error(error: BaseException) -> str:
    """Convert an exception into the message shown to the student."""
    if isinstance(error, Exception) and str(error):
        return str(error)
    return UNEXPECTED_ERROR


def is_network_error(error: BaseException) -> bool:
    if isinstance(error, NetworkError):
        return True
    message = str(error)
    return any(marker in message for marker in ("Network Error", "timeout", "ECONNREFUSED"))
