from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from pipeline.sensitive import Sensitive

log = logging.getLogger("codenotify.runlog")

# Crockford base32, as used by ULIDs.
_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
RUN_ID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")

Arg = Union[str, Sensitive]


def new_run_id(now: Optional[float] = None) -> str:
    """
    Return a ULID: 48 bits of millisecond timestamp followed by 80 random bits,
    encoded as 26 Crockford base32 characters. Ids sort by creation time.
    """
    ms = int((time.time() if now is None else now) * 1000) & ((1 << 48) - 1)
    value = (ms << 80) | int.from_bytes(secrets.token_bytes(10), "big")
    chars = []
    for _ in range(26):
        chars.append(_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def log_path_by_run_id(root_dir: Path, run_id: str) -> Path:
    return Path(root_dir) / "runs" / f"{run_id}.log"


def run_url(external_url: str, run_id: str) -> str:
    return f"{external_url.rstrip('/')}/runs/{run_id}"


def render_command(args: Iterable[Arg]) -> str:
    # Sensitive arguments format as the placeholder.
    return " ".join(str(a) for a in args)


@dataclass
class RunRecord:
    """Everything that happened during one run, owned by that run only."""

    run_id: str
    logs_root: Path
    transcript: bytearray = field(default_factory=bytearray)
    flushed: bool = False

    @classmethod
    def start(cls, logs_root: Path) -> "RunRecord":
        return cls(run_id=new_run_id(), logs_root=Path(logs_root))

    @property
    def log_path(self) -> Path:
        return log_path_by_run_id(self.logs_root, self.run_id)

    def append_command(self, args: Iterable[Arg]) -> None:
        self.transcript += (render_command(args) + "\n").encode("utf-8")

    def append_output(self, output: Union[str, bytes]) -> None:
        if isinstance(output, str):
            output = output.encode("utf-8", errors="replace")
        self.transcript += output
        self.transcript += b"\n"

    def flush(self, secret: Optional[Sensitive]) -> Optional[Path]:
        """
        Redact the secret from the transcript and write it to the log file.
        Only the first call writes.
        """
        if self.flushed:
            return None
        self.flushed = True

        data = bytes(self.transcript)
        if secret is not None:
            data = secret.redact(data)

        path = self.log_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            log.error("Failed to write log file %s: %s", path, e)
            return None
        log.info("run=%s log written to %s (%d bytes)", self.run_id, path, len(data))
        return path


def read_run_log(root_dir: Path, run_id: str) -> Optional[bytes]:
    """Return the persisted transcript, or None if it does not exist."""
    if not RUN_ID_RE.match(run_id or ""):
        return None
    path = log_path_by_run_id(root_dir, run_id)
    if not path.is_file():
        return None
    return path.read_bytes()
