from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PullRequestEvent:
    """The parts of a `pull_request` webhook payload a run needs."""

    action: str
    installation_id: int
    owner: str
    repo: str
    clone_url: str
    number: int
    head_sha: str
    base_sha: str
    commits: int
    draft: bool
    node_id: str
    html_url: str
    author: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PullRequestEvent":
        """Build an event from a decoded payload. Raise ValueError if malformed."""
        try:
            pr = payload["pull_request"]
            repo = payload["repository"]
            return cls(
                action=str(payload["action"]),
                installation_id=int(payload["installation"]["id"]),
                owner=str(repo["owner"]["login"]),
                repo=str(repo["name"]),
                clone_url=str(repo["clone_url"]),
                number=int(pr.get("number") or payload["number"]),
                head_sha=str(pr["head"]["sha"]),
                base_sha=str(pr["base"]["sha"]),
                commits=int(pr.get("commits") or 0),
                draft=bool(pr.get("draft")),
                node_id=str(pr.get("node_id") or ""),
                html_url=str(pr.get("html_url") or ""),
                author=str(((pr.get("user") or {}).get("login")) or ""),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"malformed pull_request payload: {e!r}") from e


def installation_id_of(payload: Dict[str, Any]) -> Optional[int]:
    inst = payload.get("installation")
    if not isinstance(inst, dict) or not inst.get("id"):
        return None
    try:
        return int(inst["id"])
    except (TypeError, ValueError):
        return None
