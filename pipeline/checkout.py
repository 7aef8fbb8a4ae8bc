from __future__ import annotations

from typing import List

from pipeline.commands import GIT_ENV, run_command
from pipeline.errors import CommandError, StageError
from pipeline.runlog import RunRecord
from pipeline.sensitive import Sensitive

_FETCH = ["-c", "protocol.version=2", "fetch", "--no-tags", "--prune", "--no-recurse-submodules", "--quiet"]


def checkout_steps(repo_path: str, remote_url: Sensitive, head_sha: str, commits: int) -> List[tuple]:
    """Return (stage, argv) for each checkout step, in execution order."""
    return [
        ("init", ["git", "init", repo_path]),
        ("add remote", ["git", "-C", repo_path, "remote", "add", "origin", remote_url]),
        ("fetch origin", ["git", "-C", repo_path, *_FETCH, "--depth=1", "origin", head_sha]),
        # Deepening by the PR's commit count reaches the base without fetching unrelated history.
        ("fetch deepen", ["git", "-C", repo_path, *_FETCH, f"--deepen={commits}"]),
    ]


def checkout(
    record: RunRecord,
    repo_path: str,
    remote_url: Sensitive,
    head_sha: str,
    commits: int,
    timeout_s: int = 600,
) -> None:
    """
    Materialize just enough history of the pull request to diff base..head.

    Steps run strictly in order; the first failure aborts with a StageError
    naming the step. A wrong commit count is passed through as-is.
    """
    for stage, args in checkout_steps(repo_path, remote_url, head_sha, commits):
        try:
            run_command(record, args, env=GIT_ENV, timeout_s=timeout_s)
        except CommandError as e:
            raise StageError(stage, e) from e
