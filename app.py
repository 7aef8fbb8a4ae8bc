"""
Codenotify as a service.

A small FastAPI app that listens for GitHub `pull_request` webhooks on
"/-/webhook". For each opened/synchronized pull request it, in the background,
  1) exchanges the GitHub App identity for an installation token,
  2) marks the head commit "pending",
  3) shallow-fetches just the pull request's commits into a temp directory,
  4) runs `codenotify` to work out who wants to hear about the changed files,
  5) writes a redacted transcript of the run to "<logs>/runs/<run id>.log",
  6) creates or updates the single report comment on the pull request,
  7) marks the commit "success" or "error", linking to "/runs/<run id>".

The webhook itself answers 202 as soon as the run is dispatched.
"""

import json
import time
import logging
import os
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from config import load_settings
from pipeline.events import PullRequestEvent, installation_id_of
from pipeline.orchestrator import HANDLERS, dispatch_run
from pipeline.runlog import read_run_log
from verify import SignatureError, verify_signature

# ---------------- App / Logging ----------------
app = FastAPI(title="Codenotify.run", version="1.0.0")
log = logging.getLogger("codenotify.webhook")
logging.basicConfig(level=os.getenv("LOGLEVEL", "INFO"))
BOOT_TS = time.time()

# ---------------- Config ----------------
settings = load_settings()

RUN_LOG_GONE = "The run log no longer exists"

# ---------------- Startup / Health ----------------

@app.on_event("startup")
def _startup_log() -> None:
    log.info("Codenotify as a Service!")
    log.info("Available on %s", settings.external_url)
    log.info("run logs under %s; codenotify=%s", settings.logs_root_dir, settings.codenotify_bin_path)
    log.info("webhook secrets configured: %d", len(settings.webhook_secrets))


@app.get("/", include_in_schema=False)
def index() -> RedirectResponse:
    return RedirectResponse(settings.homepage_url)


@app.get("/health", include_in_schema=False)
async def health() -> Dict[str, Any]:
    return {"ok": True, "service": "codenotify.run", "uptime_s": int(time.time() - BOOT_TS)}

# ---------------- Run logs ----------------

@app.get("/runs/{run_id}", response_class=PlainTextResponse)
async def run_log(run_id: str) -> PlainTextResponse:
    data = read_run_log(settings.logs_root_dir, run_id)
    if data is None:
        return PlainTextResponse(RUN_LOG_GONE)
    return PlainTextResponse(data)

# ---------------- Webhook ----------------

def _ok(message: str, **extra: Any) -> Dict[str, Any]:
    return {"ok": True, "message": message, **extra}


@app.post("/-/webhook")
async def webhook(
    request: Request,
    background: BackgroundTasks,
    x_github_event: str = Header("", alias="X-GitHub-Event"),
    x_github_delivery: Optional[str] = Header(None, alias="X-GitHub-Delivery"),
    x_hub_signature_256: Optional[str] = Header(None, alias="X-Hub-Signature-256"),
    x_hub_signature: Optional[str] = Header(None, alias="X-Hub-Signature"),
):
    body: bytes = await request.body()

    if not settings.webhook_secrets:
        log.warning("no webhook secrets configured; accepting delivery=%s without verification", x_github_delivery)
    else:
        try:
            verify_signature(body, x_hub_signature_256 or x_hub_signature, settings.webhook_secrets)
        except SignatureError as e:
            log.warning("delivery=%s rejected: %s", x_github_delivery, e.detail)
            if e.status_code != 401 or not settings.allow_unverified:
                raise HTTPException(status_code=e.status_code, detail=e.detail)
            log.warning("continuing despite signature mismatch (ALLOW_UNVERIFIED_WEBHOOKS=1)")

    log.debug("delivery=%s event=%s len=%d", x_github_delivery, x_github_event, len(body))

    if x_github_event == "ping":
        return {"ok": True, "pong": True}

    if x_github_event != "pull_request":
        return _ok(f"Event {x_github_event!r} has been received but nothing to do", ignored_event=x_github_event)

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Failed to decode payload: {e}")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Failed to decode payload: not an object")

    if installation_id_of(payload) is None:
        raise HTTPException(status_code=400, detail="No installation or installation ID")
    action = payload.get("action")
    if not action:
        raise HTTPException(status_code=400, detail="No action")
    if not isinstance(action, str):
        raise HTTPException(status_code=400, detail="Failed to decode payload: action is not a string")
    if not isinstance(payload.get("pull_request"), dict):
        raise HTTPException(status_code=400, detail="Failed to decode payload: pull_request is not an object")

    if payload["pull_request"].get("draft"):
        return _ok("Skip draft pull request", skipped="draft")

    handler = HANDLERS.get(action)
    if handler is None:
        return _ok(f"Event {x_github_event!r} with action {action!r} has been received but nothing to do", ignored=action)

    try:
        event = PullRequestEvent.from_payload(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    background.add_task(dispatch_run, settings, event, handler)
    log.info("delivery=%s dispatched %s#%d action=%s head=%s", x_github_delivery, event.full_name, event.number, action, event.head_sha[:7])

    return JSONResponse(
        status_code=202,
        content={
            "ok": True,
            "event": "pull_request",
            "action": action,
            "pr": event.number,
            "head": event.head_sha,
            "base": event.base_sha,
        },
    )
