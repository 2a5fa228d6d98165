"""User-facing message templates for the terminal exam runner."""

MESSAGES = {
    "header": "=" * 60,
    "title": "Adaptive Exam Client",
    "config_default": "Configuration loaded from {src}",
    "config_error": "Error: {error}",
    "token_error": "Error: Could not read token file: {error}",
    "backend_check": "Checking exam backend at {url}...",
    "backend_ok": "Backend reachable",
    "backend_error": "Error: Exam backend unreachable: {error}",
    "start_loading": "Starting a new exam attempt...",
    "start_from_file": "Loading exam data from {path}...",
    "start_invalid": "Unable to load exam: {error}\nThe exam data could not be loaded. Please try starting a new exam.",
    "start_error": "Error: Could not start the exam: {error}",
    "start_ok": "Attempt {attempt_id} started - {count} questions ready, time allowed {time}",
    "cmd_help_text": (
        "Commands:\n"
        "  1-5 or a-e   answer the current question\n"
        "  show         show the current question again\n"
        "  time         show remaining time\n"
        "  status       show progress\n"
        "  retry        resend buffered answers after an error\n"
        "  finish       submit the exam now\n"
        "  exit         leave without submitting\n"
        "  help         show this help"
    ),
    "question_header": "Question {number}{last}",
    "question_last": " (last question)",
    "waiting": "Processing responses... (type 'status' or press Enter to refresh)",
    "locked": "Please wait, the exam is being submitted...",
    "unknown_command": "Unknown command '{cmd}'. Type 'help' for the list of commands.",
    "answer_ignored": "Answer not accepted right now.",
    "error_banner": "Error: {error}",
    "retry_hint": "Your answers are kept. Check your connection and type 'retry' to send them again.",
    "time_left": "Time remaining: {time}",
    "status": "Position {position} | queued {queued} | unsent answers {buffered} | violations {violations}/{max_violations}",
    "warning_tab": "WARNING: You left the exam window ({count}/{max}). Return to the exam to continue.",
    "warning_fullscreen": "WARNING: You left fullscreen ({count}/{max}). Return to fullscreen to continue.",
    "finish_confirm": "Submit the exam now? You cannot change your answers afterwards. (y/n): ",
    "finish_continue": "Continuing exam.",
    "finish_processing": "Submitting exam...",
    "finish_failed": "Could not submit the exam: {error}. Type 'finish' to try again.",
    "exam_complete": "Exam Complete!",
    "result_line": "Ability estimate: {theta} (SE {se}) | completed at {completed}",
    "exit_message": "Session left without submitting. The attempt cannot be resumed.",
    "report_header": "Report for attempt {attempt_id}",
    "report_body": (
        "  Raw score: {raw_score}\n"
        "  Ability estimate: {theta_hat} (SE {se_theta})\n"
        "  Scaled score: {scaled_score}\n"
        "  Items: {total_items} ({items_scored} scored)\n"
        "  Completed at: {completed_at}"
    ),
    "report_pending": "Attempt {attempt_id} is not finished yet (position {position}). The report is available once the exam is submitted.",
    "report_error": "Error: Could not load report: {error}",
}
