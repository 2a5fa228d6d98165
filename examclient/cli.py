#!/usr/bin/env python3
"""
Adaptive Exam Client CLI

Student-facing terminal application for taking an adaptive exam.
Starts an attempt, serves questions, sends answers in batches and
submits the exam when the backend stops it or time runs out.
"""

import argparse
import getpass
import json
import sys
import time
from pathlib import Path
from typing import Optional

from .api import ApiClient, ApiError, handle_api_error
from .config_loader import load_config
from .credentials import load_token
from .messages import MESSAGES
from .models import ExamConfig, FinishResult, InvalidStartPayload, OPTION_LETTERS, StartPayload
from .session import ACTIVE, COMPLETE, ExamSession
from .session_log import SessionLog
from .violations import StaticEnvironment, TAB


class ExamRunner:
    """Main CLI application controller."""

    def __init__(self, input_fn=input, output_fn=print):
        self.config: Optional[ExamConfig] = None
        self.api: Optional[ApiClient] = None
        self.session: Optional[ExamSession] = None
        self.session_log: Optional[SessionLog] = None
        self.messages = MESSAGES
        self.input = input_fn
        self.output = output_fn

        self._shown_question_id = None
        self._shown_at = 0.0
        self._exited = False

    def _msg(self, key: str, **kwargs) -> str:
        template = self.messages.get(key, key)
        return template.format(**kwargs)

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Adaptive Exam Client",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument("--config", help="Path to client configuration file (default: config.json)")
        parser.add_argument("--api-base", help="Exam backend URL (overrides the configuration)")
        parser.add_argument("--token", help="Bearer token for the exam backend")
        parser.add_argument("--token-file", help="Encrypted token file created with tools/store_token.py")
        parser.add_argument("--key-file", help="Key file for --token-file (default: ask for a password)")
        parser.add_argument("--start-data", help="Start from a saved exam start response (JSON file)")
        parser.add_argument("--report", type=int, metavar="ATTEMPT_ID", help="Print the report of a finished attempt and exit")
        parser.add_argument("--log", help="Session log file (default: exam_session.log in the current directory)")
        return parser

    def _resolve_token(self, args) -> Optional[str]:
        if args.token:
            return args.token
        if not args.token_file:
            return None
        if args.key_file:
            return load_token(args.token_file, key=Path(args.key_file).read_bytes().strip())
        password = getpass.getpass("Enter token password: ")
        return load_token(args.token_file, password=password)

    def run(self, argv=None) -> int:
        """Main application entry point."""
        args = self.build_parser().parse_args(argv)

        try:
            config_path = Path(args.config) if args.config else None
            self.config = load_config(config_path)
            if args.api_base:
                self.config.api_base = args.api_base
            src = args.config if args.config else "config.json (default)"
            self.output(f"✓ {self._msg('config_default', src=src)}")
        except ValueError as e:
            self.output(self._msg("config_error", error=e))
            return 1

        try:
            token = self._resolve_token(args)
        except (OSError, ValueError) as e:
            self.output(self._msg("token_error", error=e))
            return 1

        self.api = ApiClient(self.config.api_base, token=token, timeout=self.config.request_timeout_seconds)

        if args.report is not None:
            return self.cmd_report(args.report)

        self.output(self._msg("header"))
        self.output(self._msg("title"))
        self.output(self._msg("header"))

        self.output(self._msg("backend_check", url=self.config.api_base))
        try:
            self.api.health_check()
        except ApiError as e:
            self.output(self._msg("backend_error", error=handle_api_error(e)))
            return 1
        self.output(f"✓ {self._msg('backend_ok')}")

        log_path = Path(args.log) if args.log else Path.cwd() / "exam_session.log"
        self.session_log = SessionLog(log_path)
        self.session = ExamSession(
            self.api,
            config=self.config,
            observer=StaticEnvironment(),
            session_logger=self.session_log.log,
            on_finished=self._on_finished,
            background=True,
        )

        try:
            payload = self._load_start_payload(args.start_data)
        except InvalidStartPayload as e:
            self.output(self._msg("start_invalid", error=e))
            return 1
        except ApiError as e:
            self.output(self._msg("start_error", error=handle_api_error(e)))
            return 1

        self.session.initialize(payload)
        self.output(f"✓ {self._msg('start_ok', attempt_id=payload.exam_attempt_id, count=len(payload.question_inventory), time=self.session.timer.format_remaining())}")

        try:
            self.command_loop()
        finally:
            self.session.close()
        return 0

    def _load_start_payload(self, start_data: Optional[str]) -> StartPayload:
        if not start_data:
            self.output(self._msg("start_loading"))
            return self.api.start_exam()

        self.output(self._msg("start_from_file", path=start_data))
        try:
            with open(start_data, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidStartPayload(str(e))
        return StartPayload.from_dict(data)

    def command_loop(self):
        """Main interactive command loop."""
        self.output("\n" + self._msg("header"))
        self.output(self._msg("cmd_help_text"))
        self.output(self._msg("header") + "\n")

        while self.session.status != COMPLETE and not self._exited:
            self._show_pending_notices()
            self._show_question_if_new()

            try:
                cmd_line = self.input("exam> ").strip().lower()
            except (KeyboardInterrupt, EOFError):
                self.output("")
                self.cmd_exit()
                break

            if self.session.status == COMPLETE:
                break
            self.handle_command(cmd_line)

    def handle_command(self, cmd_line: str):
        if not cmd_line:
            return
        if cmd_line in OPTION_LETTERS:
            self.cmd_answer(OPTION_LETTERS.index(cmd_line) + 1)
        elif cmd_line.isdigit():
            self.cmd_answer(int(cmd_line))
        elif cmd_line == "show":
            self._shown_question_id = None
        elif cmd_line == "time":
            self.output(self._msg("time_left", time=self.session.timer.format_remaining()))
        elif cmd_line == "status":
            self.cmd_status()
        elif cmd_line == "retry":
            self.session.clear_error()
            self.session.request_flush(force=True)
        elif cmd_line == "finish":
            self.cmd_finish()
        elif cmd_line == "exit":
            self.cmd_exit()
        elif cmd_line == "help":
            self.output(self._msg("cmd_help_text"))
        else:
            self.output(self._msg("unknown_command", cmd=cmd_line))

    def _show_pending_notices(self):
        session = self.session
        if session.error:
            self.output(self._msg("error_banner", error=session.error))
            if session.error_is_network:
                self.output(self._msg("retry_hint"))
            session.clear_error()
        if session.warning:
            key = "warning_tab" if session.warning == TAB else "warning_fullscreen"
            self.output(self._msg(key, count=session.violation_count, max=self.config.max_violations))

    def _show_question_if_new(self):
        question = self.session.current_question
        if question is None:
            self.output(self._msg("waiting"))
            return
        if question.id == self._shown_question_id:
            return

        self._shown_question_id = question.id
        self._shown_at = time.monotonic()
        number = question.position or self.session.state.position + 1
        last = self._msg("question_last") if self.session.is_last_question else ""

        self.output("")
        self.output(self._msg("question_header", number=number, last=last))
        self.output(question.question_text)
        for media in question.media:
            self.output(f"  [{media.kind}] {media.url}")
        self.output("")
        for letter, text in zip(OPTION_LETTERS, question.options):
            self.output(f"  {letter.upper()}) {text}")
        self.output("")

    def cmd_answer(self, option: int):
        if not 1 <= option <= 5:
            self.output(self._msg("unknown_command", cmd=str(option)))
            return
        if self.session.is_interaction_locked:
            self.output(self._msg("locked") if self.session.status != ACTIVE else self._msg("answer_ignored"))
            return
        response_time_ms = int((time.monotonic() - self._shown_at) * 1000)
        if self.session.record_answer(option, response_time_ms) is None:
            self.output(self._msg("answer_ignored"))

    def cmd_status(self):
        state = self.session.state
        self.output(self._msg(
            "status",
            position=state.position,
            queued=len(state.question_queue),
            buffered=len(state.answered_queue),
            violations=self.session.violation_count,
            max_violations=self.config.max_violations,
        ))
        self.output(self._msg("time_left", time=self.session.timer.format_remaining()))

    def cmd_finish(self):
        """Submit the exam on request."""
        try:
            confirm = self.input(self._msg("finish_confirm")).strip().lower()
        except (KeyboardInterrupt, EOFError):
            self.output("")
            confirm = "n"
        if confirm != 'y':
            self.output(self._msg("finish_continue"))
            return

        self.output(self._msg("finish_processing"))
        if self.session.state.answered_queue:
            self.session.flush_answers(force=True)
            self.session.wait_for_flush(self.config.request_timeout_seconds)
        if self.session.finish() is None and self.session.status != COMPLETE:
            self.output(self._msg("finish_failed", error=self.session.error or "unknown error"))
            self.session.clear_error()

    def cmd_exit(self):
        """Leave the session without submitting."""
        self.output(self._msg("exit_message"))
        if self.session_log:
            self.session_log.log("SESSION_EXIT", "User left the session without submitting")
        self._exited = True

    def cmd_report(self, attempt_id: int) -> int:
        try:
            state = self.api.get_exam_state(attempt_id)
            if state.completed_at is None:
                self.output(self._msg("report_pending", attempt_id=attempt_id, position=state.position))
                return 1
            results = self.api.get_exam_results(attempt_id)
        except ApiError as e:
            self.output(self._msg("report_error", error=handle_api_error(e)))
            return 1

        self.output(self._msg("report_header", attempt_id=attempt_id))
        self.output(self._msg(
            "report_body",
            raw_score=results.raw_score,
            theta_hat=f"{results.theta_hat:.3f}",
            se_theta=f"{results.se_theta:.3f}",
            scaled_score=results.scaled_score if results.scaled_score is not None else "n/a",
            total_items=results.total_items,
            items_scored=results.items_scored,
            completed_at=results.completed_at,
        ))
        return 0

    def _on_finished(self, result: FinishResult):
        self.output("\n" + self._msg("header"))
        self.output(self._msg("exam_complete"))
        self.output(self._msg(
            "result_line",
            theta=result.theta_hat if result.theta_hat is not None else 0,
            se=result.se_theta if result.se_theta is not None else 1,
            completed=result.completed_at,
        ))
        self.output(self._msg("header"))


def main():
    """Entry point for the exam client."""
    runner = ExamRunner()
    sys.exit(runner.run())


if __name__ == "__main__":
    main()
