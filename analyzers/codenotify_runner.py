from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from typing import List, Literal

from pipeline.commands import GIT_ENV, run_command
from pipeline.errors import CommandError
from pipeline.runlog import RunRecord

# Printed by codenotify when no rule matches the diff.
NO_NOTIFICATIONS = "No notifications."

# Embedded in every markdown report; identifies the bot's comment.
REPORT_MARKER = "<!-- codenotify:CODENOTIFY report -->"

NOTIFY_FILENAME = "CODENOTIFY"

ReportKind = Literal["empty", "notifications"]

# --------------------------------- Public API ---------------------------------

@dataclass(frozen=True)
class Report:
    kind: ReportKind
    text: str = ""

    @property
    def empty(self) -> bool:
        return self.kind == "empty"


def parse_report(output: str) -> Report:
    """
    Classify codenotify output. This is the only place that looks at the
    "no notifications" phrase.
    """
    if not (output or "").strip() or NO_NOTIFICATIONS in output:
        return Report(kind="empty")
    return Report(kind="notifications", text=output)


def has_report_marker(body: str) -> bool:
    return REPORT_MARKER in (body or "")


def codenotify_args(
    bin_path: str,
    repo_path: str,
    base_ref: str,
    head_ref: str,
    author: str,
    subscriber_threshold: int = 10,
) -> List[str]:
    args = [
        bin_path,
        "--cwd", repo_path,
        "--baseRef", base_ref,
        "--headRef", head_ref,
    ]
    if author:
        args += ["--author", "@" + author.lstrip("@")]
    args += [
        "--format=markdown",
        f"--filename={NOTIFY_FILENAME}",
        f"--subscriber-threshold={subscriber_threshold}",
        "--verbose",
    ]
    return args


def run_codenotify(
    record: RunRecord,
    bin_path: str,
    repo_path: str,
    base_ref: str,
    head_ref: str,
    author: str = "",
    subscriber_threshold: int = 10,
    timeout_s: int = 600,
) -> Report:
    """
    Run codenotify against a prepared checkout and return its parsed report.

    Raises CommandError on a non-zero exit; stdout and stderr are in the run
    transcript either way. Only stdout becomes the report.
    """
    exe = _ensure_codenotify_available(record, bin_path)
    args = codenotify_args(exe, repo_path, base_ref, head_ref, author, subscriber_threshold)
    # codenotify shells out to git, so the prompt guard applies here too.
    result = run_command(record, args, env=GIT_ENV, timeout_s=timeout_s)
    return parse_report(result.stdout)

# --------------------------------- Internals ----------------------------------

def _ensure_codenotify_available(record: RunRecord, bin_path: str) -> str:
    """Return the codenotify executable path or raise."""
    if os.sep in bin_path and os.access(bin_path, os.X_OK):
        return bin_path
    exe = shutil.which(bin_path)
    if not exe:
        msg = f"codenotify binary not found at {bin_path!r}; point CODENOTIFY_BIN_PATH at it."
        record.append_command([bin_path])
        record.append_output(msg)
        raise CommandError(cmd=bin_path, exit_code=127, output=msg)
    return exe
