from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from pipeline.errors import CommandError
from pipeline.runlog import Arg, RunRecord, render_command
from pipeline.sensitive import Sensitive

log = logging.getLogger("codenotify.commands")

# Never let git block on an interactive credential prompt.
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


@dataclass
class CommandResult:
    stdout: str
    stderr: str


def _argv(args: Sequence[Arg]) -> List[str]:
    return [a.reveal() if isinstance(a, Sensitive) else str(a) for a in args]


def run_command(
    record: RunRecord,
    args: Sequence[Arg],
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[str] = None,
    timeout_s: int = 600,
) -> CommandResult:
    """
    Run a command to completion, appending its command line and output to the
    run transcript. Raise CommandError on a non-zero exit, a timeout, or a
    missing executable; the output is recorded before raising.

    `env` is merged over the current process environment for this call only.
    """
    shown = render_command(args)
    record.append_command(args)

    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    try:
        proc = subprocess.run(
            _argv(args),
            cwd=cwd,
            text=True,
            capture_output=True,
            check=False,
            timeout=timeout_s,
            env=full_env,
        )
    except subprocess.TimeoutExpired as e:
        output = "\n".join(_text(x) for x in (e.stdout, e.stderr) if x)
        record.append_output(output)
        raise CommandError(cmd=shown, exit_code=124, output=f"timed out after {timeout_s}s\n{output}")
    except OSError as e:
        record.append_output(str(e))
        raise CommandError(cmd=shown, exit_code=127, output=str(e))

    combined = (proc.stdout or "") + (proc.stderr or "")
    record.append_output(combined)
    if proc.returncode != 0:
        log.warning("run=%s command %r exited %d", record.run_id, shown, proc.returncode)
        raise CommandError(cmd=shown, exit_code=proc.returncode, output=combined)
    return CommandResult(stdout=proc.stdout or "", stderr=proc.stderr or "")


def _text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
