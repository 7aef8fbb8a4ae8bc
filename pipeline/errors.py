from __future__ import annotations

from dataclasses import dataclass
from typing import List


class StageError(Exception):
    """A pipeline failure attributed to the stage that produced it."""

    def __init__(self, stage: str, cause: object):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause

    @property
    def stages(self) -> List[str]:
        """Stage names from the outermost to the innermost wrapper."""
        out = [self.stage]
        cause = self.cause
        while isinstance(cause, StageError):
            out.append(cause.stage)
            cause = cause.cause
        return out

    @property
    def summary(self) -> str:
        return ": ".join(self.stages)


@dataclass
class CommandError(Exception):
    cmd: str
    exit_code: int
    output: str

    def __str__(self) -> str:
        return (
            f"running command {self.cmd!r} (exit={self.exit_code})\n"
            f"OUTPUT (truncated):\n{(self.output or '').strip()[:800]}"
        )
