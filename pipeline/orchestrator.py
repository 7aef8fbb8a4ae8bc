from __future__ import annotations

import logging
import tempfile
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import github
from analyzers.codenotify_runner import Report, run_codenotify
from config import Settings
from pipeline.checkout import checkout
from pipeline.comments import reconcile_comment
from pipeline.errors import StageError
from pipeline.events import PullRequestEvent
from pipeline.runlog import RunRecord, run_url
from pipeline.sensitive import Sensitive, with_credentials

log = logging.getLogger("codenotify.pipeline")

STATUS_CONTEXT = "Codenotify.run"

Handler = Callable[[Settings, PullRequestEvent, "github.GitHubClient", Sensitive, RunRecord], str]


@dataclass
class RunOutcome:
    state: str  # success | error
    run_id: Optional[str] = None
    comment: Optional[str] = None
    error: Optional[str] = None


def _elapsed(started: float) -> str:
    return f"{time.monotonic() - started:.1f}s"


def _describe(prefix: str, started: float) -> str:
    suffix = f" in {_elapsed(started)}"
    return prefix[: 140 - len(suffix)] + suffix


def _failure_summary(err: Exception) -> str:
    if isinstance(err, StageError):
        return f"Failed to {err.summary}"
    return "Something went wrong"


def workspace_prefix(event: PullRequestEvent) -> str:
    return f"codenotify.run-{event.node_id or event.number}-{int(time.time())}-"


def checkout_and_run(settings: Settings, event: PullRequestEvent, token: Sensitive, record: RunRecord) -> Report:
    """
    Check out the pull request into a fresh workspace and run codenotify.

    The workspace is removed and the run log written on every exit path.
    """
    try:
        with tempfile.TemporaryDirectory(prefix=workspace_prefix(event)) as td:
            try:
                remote_url = with_credentials(event.clone_url, token)
            except ValueError as e:
                raise StageError("parse clone URL", e) from e

            try:
                checkout(record, td, remote_url, event.head_sha, event.commits, timeout_s=settings.command_timeout_s)
            except StageError as e:
                raise StageError("checkout pull request", e) from e

            try:
                return run_codenotify(
                    record,
                    settings.codenotify_bin_path,
                    td,
                    event.base_sha,
                    event.head_sha,
                    author=event.author,
                    subscriber_threshold=settings.subscriber_threshold,
                    timeout_s=settings.command_timeout_s,
                )
            except Exception as e:
                raise StageError("run Codenotify", e) from e
    finally:
        record.flush(token)


def handle_pull_request_open(settings, event, client, token, record) -> str:
    report = checkout_and_run(settings, event, token, record)
    return reconcile_comment(client, event, report, update_existing=False)


def handle_pull_request_synchronize(settings, event, client, token, record) -> str:
    report = checkout_and_run(settings, event, token, record)
    return reconcile_comment(client, event, report, update_existing=True)


HANDLERS: Dict[str, Handler] = {
    "opened": handle_pull_request_open,
    "ready_for_review": handle_pull_request_open,
    "synchronize": handle_pull_request_synchronize,
    "reopened": handle_pull_request_synchronize,
}


def report_commit_status(settings: Settings, event: PullRequestEvent, handler: Handler) -> RunOutcome:
    """
    Run one handler wrapped in a pending -> success|error commit status.

    Without a token there is no way to post a status, so credential failures
    are only logged.
    """
    started = time.monotonic()

    try:
        token = github.create_installation_token(settings, event.installation_id)
    except Exception as e:
        log.error("Failed to create GitHub client for %s: %s", event.html_url or event.full_name, e)
        return RunOutcome(state="error", error=str(e))

    client = github.GitHubClient(token, base_url=settings.github_api, timeout_s=settings.http_timeout_s)

    def create_status(state: str, description: str, target_url: Optional[str] = None) -> None:
        try:
            client.create_status(
                event.owner, event.repo, event.head_sha,
                state=state,
                description=_describe(description, started),
                context=STATUS_CONTEXT,
                target_url=target_url,
            )
        except Exception as e:
            log.error("Failed to create commit status on pull request %s: %s", event.html_url, e)

    create_status("pending", "Running Codenotify")

    record = RunRecord.start(settings.logs_root_dir)
    target_url = run_url(settings.external_url, record.run_id)
    try:
        comment = handler(settings, event, client, token, record)
    except Exception as e:
        record.flush(token)
        detail = token.redact(str(e).encode("utf-8")).decode("utf-8", errors="replace")
        log.error("Failed to run handler for pull request %s (run=%s): %s", event.html_url, record.run_id, detail)
        create_status("error", _failure_summary(e), target_url)
        return RunOutcome(state="error", run_id=record.run_id, error=detail)

    record.flush(token)
    create_status("success", "Codenotify ran successfully", target_url)
    return RunOutcome(state="success", run_id=record.run_id, comment=comment)


def dispatch_run(settings: Settings, event: PullRequestEvent, handler: Handler) -> Optional[RunOutcome]:
    """
    The background task for one webhook delivery. Outcomes are logged, never
    retried, and never raised.
    """
    try:
        outcome = report_commit_status(settings, event, handler)
    except Exception:
        log.exception("run for %s#%d crashed", event.full_name, event.number)
        return None
    log.info(
        "run=%s %s#%d action=%s state=%s comment=%s",
        outcome.run_id, event.full_name, event.number, event.action, outcome.state, outcome.comment,
    )
    return outcome
