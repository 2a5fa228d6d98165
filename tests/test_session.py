"""
Tests for the exam session coordinator.

Runs the session in foreground mode against FakeApi so that flushes
happen on the calling thread and the timer is driven with tick().
"""

import time
from unittest.mock import MagicMock, Mock

import pytest

from conftest import FakeApi, make_item, make_item_dict, make_payload
from examclient.api import ApiClient
from examclient.models import BatchResult, ExamConfig
from examclient.session import ACTIVE, COMPLETE, UNINITIALIZED, ExamSession
from examclient.violations import SyntheticEnvironment


def make_session(api, clock, **kwargs):
    kwargs.setdefault("observer", SyntheticEnvironment(fullscreen=True))
    return ExamSession(api, clock=clock, **kwargs)


def client_with_bad_batch_item():
    """ApiClient whose answer-batch reply carries an item without option E."""
    item = make_item_dict(900, 11)
    del item["option_e_text"]
    bodies = {
        "/exam/answer-batch": {
            "exam_attempt_id": 1, "theta": 0.2, "se": 0.6, "learning_rate": 0.5,
            "position": 2, "stop": False, "question_inventory": [item],
        },
        "/exam/finish": {"theta_hat": 0.2, "se_theta": 0.6, "completed_at": "2026-10-19T10:00:00+00:00"},
    }

    def respond(method, url, **kwargs):
        response = MagicMock()
        response.ok = True
        response.status_code = 200
        response.json.return_value = next(body for path, body in bodies.items() if url.endswith(path))
        return response

    http = MagicMock()
    http.request.side_effect = respond
    return ApiClient("https://exam.example.org", session=http), http


def calls_to(http, path):
    return [c for c in http.request.call_args_list if c.args[1].endswith(path)]


def answer_n(session, n, option=1):
    records = []
    for _ in range(n):
        records.append(session.record_answer(option, 1500))
    return records


class TestInitialization:
    """Test session start."""

    def test_uninitialized_session(self, fake_api, clock):
        session = make_session(fake_api, clock)

        assert session.status == UNINITIALIZED
        assert session.current_question is None
        assert session.record_answer(1, 100) is None

    def test_initialize_starts_timer_and_monitor(self, fake_api, clock):
        session = make_session(fake_api, clock)

        assert session.initialize(make_payload(3)) is True

        assert session.status == ACTIVE
        assert session.current_question.id == 100
        assert session.remaining_inventory == 3
        assert session.timer.running is True
        assert session.timer.time_remaining == ExamConfig.default().exam_duration_seconds

    def test_same_attempt_is_initialized_once(self, fake_api, clock):
        logger = Mock()
        session = make_session(fake_api, clock, session_logger=logger)
        session.initialize(make_payload(10))
        answer_n(session, 2)
        state = session.state

        assert session.initialize(make_payload(10)) is False

        assert session.state is state
        assert len(session.state.answered_queue) == 2
        logger.assert_any_call("EXAM_REINIT_IGNORED", "Attempt 1 already initialized")

    def test_new_attempt_reinitializes(self, fake_api, clock):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(10))
        answer_n(session, 2)

        assert session.initialize(make_payload(4, attempt_id=2, first_id=500)) is True

        assert session.state.attempt_id == 2
        assert session.current_question.id == 500
        assert session.state.answered_queue == ()

    def test_start_new_attempt_uses_backend(self, fake_api, clock):
        session = make_session(fake_api, clock)

        payload = session.start_new_attempt()

        assert payload.exam_attempt_id == 1
        assert session.remaining_inventory == 6

    def test_empty_inventory_finishes_immediately(self, fake_api, clock):
        on_finished = Mock()
        session = make_session(fake_api, clock, on_finished=on_finished)

        session.initialize(make_payload(0))

        assert fake_api.finish_calls == [1]
        assert session.status == COMPLETE
        on_finished.assert_called_once_with(session.finish_result)


class TestRecordAnswer:
    """Test answering questions."""

    def test_record_builds_answer_from_clock(self, fake_api, clock):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(10))

        record = session.record_answer(3, 1500)

        assert record.item_id == 100
        assert record.selected_option == 3
        assert record.response_time_ms == 1500
        assert record.answered_at == "2026-10-19T09:00:01+00:00"
        assert record.served_at == "2026-10-19T08:59:59.500000+00:00"
        assert session.current_question.id == 101

    @pytest.mark.parametrize("option", [0, 6, -1])
    def test_invalid_option_raises(self, fake_api, clock, option):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(3))

        with pytest.raises(ValueError):
            session.record_answer(option, 100)

    def test_position_and_queue_grow_per_answer(self, fake_api, clock):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(20))

        answer_n(session, 2)

        assert session.state.position == 2
        assert len(session.state.answered_queue) == 2
        assert fake_api.batch_calls == []

    def test_locked_while_warning_is_shown(self, fake_api, clock):
        env = SyntheticEnvironment(fullscreen=True)
        session = make_session(fake_api, clock, observer=env)
        session.initialize(make_payload(10))

        env.blur()

        assert session.is_interaction_locked is True
        assert session.record_answer(1, 100) is None
        assert session.state.position == 0

        env.focus()
        assert session.record_answer(1, 100) is not None


class TestFlushing:
    """Test batching answers to the backend."""

    def test_six_item_exam(self, clock):
        api = FakeApi(stop_after=6)
        session = make_session(api, clock)
        session.initialize(make_payload(6))

        answer_n(session, 2)
        assert api.batch_calls == []

        # third answer leaves 3 items: eligible and forced
        answer_n(session, 1)
        assert len(api.batch_calls) == 1
        assert len(api.batch_calls[0]["answers"]) == 3
        assert session.state.answered_queue == ()

        answer_n(session, 3)

        assert sum(len(call["answers"]) for call in api.batch_calls) == 6
        assert session.state.answered_queue == ()
        assert session.state.stop is True
        assert api.finish_calls == [1]
        assert session.status == COMPLETE

    def test_full_batch_is_sent(self, fake_api, clock):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(20))

        answer_n(session, 5)
        assert fake_api.batch_calls == []

        answer_n(session, 1)

        call = fake_api.batch_calls[0]
        assert len(call["answers"]) == 6
        assert call["exam_attempt_id"] == 1
        assert call["batch_size"] == 6
        assert call["learning_rate"] == 0.5
        assert call["current_position"] == 20

    def test_new_items_are_queued(self, clock):
        api = FakeApi(new_items=[make_item(300, 21), make_item(301, 22)])
        session = make_session(api, clock)
        session.initialize(make_payload(20))

        answer_n(session, 6)

        assert session.remaining_inventory == 16
        assert session.state.question_queue[-1].id == 301

    def test_server_position_is_authoritative(self, fake_api, clock):
        fake_api.submit_answer_batch = Mock(return_value=BatchResult(
            exam_attempt_id=1, theta=0.8, se=0.4, learning_rate=0.35, position=12, stop=False,
        ))
        session = make_session(fake_api, clock)
        session.initialize(make_payload(20))

        answer_n(session, 6)

        assert session.state.position == 12
        assert session.state.theta == 0.8
        assert session.state.learning_rate == 0.35

    def test_failed_flush_keeps_answers(self, fake_api, clock):
        logger = Mock()
        fake_api.fail_batches = 1
        session = make_session(fake_api, clock, session_logger=logger)
        session.initialize(make_payload(20))

        answer_n(session, 6)

        assert len(session.state.answered_queue) == 6
        assert session.error == "Network Error: connection refused"
        assert session.error_is_network is True
        assert session.is_flushing is False
        events = [call.args[0] for call in logger.call_args_list]
        assert "FLUSH_FAILED" in events

        assert session.flush_answers(force=True) is True
        assert session.state.answered_queue == ()
        assert len(fake_api.batch_calls[-1]["answers"]) == 6

        session.clear_error()
        assert session.error is None

    def test_unforced_flush_respects_heuristic(self, fake_api, clock):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(20))
        answer_n(session, 2)

        assert session.flush_answers() is False
        assert fake_api.batch_calls == []

        assert session.flush_answers(force=True) is True
        assert len(fake_api.batch_calls) == 1

    def test_answer_recorded_mid_flight_survives(self, fake_api, clock):
        session = make_session(fake_api, clock)
        session.initialize(make_payload(20))
        answer_n(session, 2)
        fake_api.on_submit = lambda: session.record_answer(4, 700)

        session.flush_answers(force=True)

        # the replayed request was not forced and one answer is below the threshold
        assert len(fake_api.batch_calls) == 1
        assert len(session.state.answered_queue) == 1
        assert session.state.answered_queue[0].selected_option == 4

    def test_coalesced_forced_request_is_replayed(self, fake_api, clock):
        logger = Mock()
        session = make_session(fake_api, clock, session_logger=logger)
        session.initialize(make_payload(20))
        answer_n(session, 2)

        def mid_flight():
            session.record_answer(4, 700)
            session.flush_answers(force=False)
            session.flush_answers(force=True)

        fake_api.on_submit = mid_flight

        session.flush_answers(force=True)

        assert len(fake_api.batch_calls) == 2
        assert len(fake_api.batch_calls[1]["answers"]) == 1
        assert session.state.answered_queue == ()
        events = [call.args[0] for call in logger.call_args_list]
        assert events.count("FLUSH_COALESCED") == 3

    def test_malformed_batch_reply_keeps_answers(self, clock):
        api, http = client_with_bad_batch_item()
        session = make_session(api, clock)
        session.initialize(make_payload(20))

        records = answer_n(session, 6)

        assert records[-1] is not None
        assert len(calls_to(http, "/exam/answer-batch")) == 1
        assert session.error.startswith("Malformed response from server")
        assert session.is_flushing is False
        assert len(session.state.answered_queue) == 6
        assert session.status == ACTIVE


class TestFinishing:
    """Test finalizing the attempt."""

    def test_auto_finish_happens_once(self, clock):
        api = FakeApi(stop_after=1)
        on_finished = Mock()
        session = make_session(api, clock, on_finished=on_finished)
        session.initialize(make_payload(1))

        answer_n(session, 1)
        session.flush_answers(force=True)

        assert api.finish_calls == [1]
        assert session.finish() is None
        assert api.finish_calls == [1]
        on_finished.assert_called_once()
        assert session.finish_result.theta_hat == 0.42
        assert session.timer.running is False

    def test_failed_auto_finish_can_be_retried_manually(self, clock):
        api = FakeApi(stop_after=1)
        api.fail_finish = 1
        session = make_session(api, clock)
        session.initialize(make_payload(1))

        answer_n(session, 1)

        assert api.finish_calls == [1]
        assert session.status == ACTIVE
        assert session.error == "Service unavailable"

        session.flush_answers(force=True)
        assert api.finish_calls == [1]

        result = session.finish()

        assert result.se_theta == 0.3
        assert api.finish_calls == [1, 1]
        assert session.status == COMPLETE

    def test_last_question_flag(self, clock):
        api = FakeApi(stop_after=3)
        session = make_session(api, clock)
        session.initialize(make_payload(5))

        answer_n(session, 3)

        assert session.state.stop is True
        assert session.remaining_inventory == 2
        assert session.is_last_question is False

        answer_n(session, 1)
        assert session.is_last_question is True

    def test_answers_after_completion_are_ignored(self, clock):
        api = FakeApi(stop_after=1)
        session = make_session(api, clock)
        session.initialize(make_payload(1))
        answer_n(session, 1)

        assert session.record_answer(2, 100) is None

    def test_session_events_are_logged(self, clock):
        api = FakeApi(stop_after=1)
        logger = Mock()
        session = make_session(api, clock, session_logger=logger)
        session.initialize(make_payload(1))
        answer_n(session, 1)

        events = [call.args[0] for call in logger.call_args_list]
        assert events[0] == "EXAM_START"
        for event in ("ANSWER_RECORDED", "FLUSH_SENT", "FINISH_START", "SESSION_FINISH"):
            assert event in events


class TestTermination:
    """Test timer expiry and violation limit."""

    def test_timer_expiry_flushes_then_finishes(self, fake_api, clock):
        config = ExamConfig(exam_duration_seconds=5)
        session = make_session(fake_api, clock, config=config)
        session.initialize(make_payload(10))
        answer_n(session, 2)
        assert fake_api.batch_calls == []

        for _ in range(5):
            session.timer.tick()

        assert len(fake_api.batch_calls) == 1
        assert len(fake_api.batch_calls[0]["answers"]) == 2
        assert fake_api.finish_calls == [1]
        assert session.status == COMPLETE

    def test_paused_timer_does_not_expire(self, fake_api, clock):
        env = SyntheticEnvironment(fullscreen=True)
        config = ExamConfig(exam_duration_seconds=2)
        session = make_session(fake_api, clock, config=config, observer=env)
        session.initialize(make_payload(10))

        env.blur()
        for _ in range(5):
            session.timer.tick()

        assert fake_api.finish_calls == []
        assert session.timer.time_remaining == 2

    def test_three_tab_switches_finish_the_exam(self, fake_api, clock):
        env = SyntheticEnvironment(fullscreen=True)
        session = make_session(fake_api, clock, observer=env)
        session.initialize(make_payload(10))
        answer_n(session, 1)

        env.blur()
        env.focus()
        assert session.violation_count == 1
        assert session.timer.paused is False
        assert session.status == ACTIVE

        for _ in range(2):
            env.blur()
            env.focus()

        assert session.violation_count == 3
        assert len(fake_api.batch_calls) == 1
        assert fake_api.finish_calls == [1]
        assert session.status == COMPLETE

    def test_violations_not_counted_after_completion(self, fake_api, clock):
        env = SyntheticEnvironment(fullscreen=True)
        session = make_session(fake_api, clock, observer=env)
        session.initialize(make_payload(0))

        env.blur()

        assert session.violation_count == 0

    def test_timer_expiry_finishes_after_malformed_batch_reply(self, clock):
        api, http = client_with_bad_batch_item()
        session = make_session(api, clock, config=ExamConfig(exam_duration_seconds=2))
        session.initialize(make_payload(10))
        answer_n(session, 2)

        session.timer.tick()
        session.timer.tick()

        assert len(calls_to(http, "/exam/answer-batch")) == 1
        assert len(calls_to(http, "/exam/finish")) == 1
        assert session.is_flushing is False
        assert session.status == COMPLETE

    def test_terminate_finishes_when_flush_raises(self, fake_api, clock):
        fake_api.submit_answer_batch = Mock(side_effect=RuntimeError("decoder crashed"))
        session = make_session(fake_api, clock, config=ExamConfig(exam_duration_seconds=1))
        session.initialize(make_payload(10))
        answer_n(session, 1)

        with pytest.raises(RuntimeError):
            session.timer.tick()

        assert fake_api.finish_calls == [1]
        assert session.status == COMPLETE
        assert session.is_flushing is False

    def test_proctoring_can_be_disabled(self, fake_api, clock):
        env = SyntheticEnvironment(fullscreen=True)
        config = ExamConfig(proctoring_enabled=False)
        session = make_session(fake_api, clock, config=config, observer=env)
        session.initialize(make_payload(10))

        env.blur()

        assert session.monitor is None
        assert session.violation_count == 0
        assert session.record_answer(1, 100) is not None


class TestBackgroundMode:
    """Test the threaded flush path."""

    def test_background_flush_finishes(self, clock):
        api = FakeApi(stop_after=1)
        session = ExamSession(api, clock=clock, background=True)
        session.initialize(make_payload(1))

        session.record_answer(1, 100)

        deadline = time.time() + 5.0
        while session.status != COMPLETE and time.time() < deadline:
            time.sleep(0.01)
        session.close()

        assert session.status == COMPLETE
        assert api.finish_calls == [1]
