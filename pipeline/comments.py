from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from analyzers.codenotify_runner import Report, has_report_marker
from pipeline.errors import StageError
from pipeline.events import PullRequestEvent

log = logging.getLogger("codenotify.comments")

# Only the first page is scanned. A report comment pushed beyond it is
# treated as absent and a new one is created.
SCAN_LIMIT = 100


def find_report_comment(client, event: PullRequestEvent) -> Optional[Dict[str, Any]]:
    """Return the first comment on page one carrying the report marker."""
    try:
        comments = client.list_issue_comments(event.owner, event.repo, event.number, page=1, per_page=SCAN_LIMIT)
    except Exception as e:
        raise StageError("list comments", e) from e

    for comment in comments[:SCAN_LIMIT]:
        if has_report_marker(comment.get("body") or ""):
            return comment
    return None


def _create(client, event: PullRequestEvent, report: Report) -> str:
    try:
        comment = client.create_issue_comment(event.owner, event.repo, event.number, report.text)
    except Exception as e:
        raise StageError("create comment", e) from e
    log.info("Created comment %s", comment.get("html_url"))
    return "created"


def reconcile_comment(client, event: PullRequestEvent, report: Report, update_existing: bool) -> str:
    """
    Publish the report so the pull request carries at most one report comment.

    Returns "created", "updated" or "skipped". An empty report neither
    creates nor edits anything.
    """
    if report.empty:
        log.info("No notifications for %s#%d", event.full_name, event.number)
        return "skipped"

    if not update_existing:
        return _create(client, event, report)

    existing = find_report_comment(client, event)
    if existing is None:
        return _create(client, event, report)

    try:
        client.edit_issue_comment(event.owner, event.repo, int(existing["id"]), report.text)
    except Exception as e:
        raise StageError("edit comment", e) from e
    log.info("Edited comment %s", existing.get("html_url"))
    return "updated"
