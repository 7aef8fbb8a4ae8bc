import os
import time
import logging
from typing import Any, Dict, List, Optional

import certifi
import jwt  # PyJWT
import requests

from config import Settings, read_private_key
from pipeline.errors import StageError
from pipeline.sensitive import Sensitive

log = logging.getLogger("codenotify.github")

GITHUB_API = "https://api.github.com"
USER_AGENT = "codenotify.run"


def _ca_bundle() -> str:
    return (
        os.getenv("REQUESTS_CA_BUNDLE")
        or os.getenv("SSL_CERT_FILE")
        or certifi.where()
    )


def create_app_jwt(app_id: str, private_key: str) -> str:
    if not app_id:
        raise RuntimeError("GITHUB_APP_ID is missing")
    now = int(time.time())
    payload = {"iat": now - 60, "exp": now + 540, "iss": app_id}
    token = jwt.encode(payload, private_key, algorithm="RS256")
    return token.decode() if isinstance(token, (bytes, bytearray)) else token


def create_installation_token(settings: Settings, installation_id: int) -> Sensitive:
    """
    Exchange the App identity for a token scoped to one installation.

    Not retried: a failed issuance fails the run.
    """
    try:
        app_jwt = create_app_jwt(settings.app_id, read_private_key(settings))
    except Exception as e:
        raise StageError("new transport", e) from e

    url = f"{settings.github_api}/app/installations/{installation_id}/access_tokens"
    try:
        r = requests.post(
            url,
            headers={
                "Authorization": f"Bearer {app_jwt}",
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
            },
            timeout=settings.http_timeout_s,
            verify=_ca_bundle(),
        )
        if r.status_code >= 400:
            log.error("POST %s -> %s %s: %s", url, r.status_code, r.reason, r.text[:800])
        r.raise_for_status()
        token = (r.json() or {}).get("token")
    except (requests.RequestException, ValueError) as e:
        raise StageError("create installation access token", e) from e

    if not token:
        raise StageError("create installation access token", "empty token returned")
    return Sensitive(token)


class GitHubClient:
    """The few REST endpoints a run needs, authenticated as an installation."""

    def __init__(self, token: Sensitive, base_url: str = GITHUB_API, timeout_s: int = 25):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token.reveal()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        })

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        r = self.session.request(method, url, timeout=self.timeout_s, verify=_ca_bundle(), **kwargs)
        if r.status_code >= 400:
            log.error("%s %s -> %s %s: %s", method, url, r.status_code, r.reason, (r.text or "")[:800])
        r.raise_for_status()
        return r

    def create_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        state: str,
        description: str,
        context: str,
        target_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        # state ∈ {error, failure, pending, success}
        payload = {"state": state, "context": context, "description": description[:140]}
        if target_url:
            payload["target_url"] = target_url
        return self._request("POST", f"/repos/{owner}/{repo}/statuses/{sha}", json=payload).json()

    def list_issue_comments(self, owner: str, repo: str, number: int, page: int = 1, per_page: int = 100) -> List[Dict[str, Any]]:
        r = self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues/{number}/comments",
            params={"page": page, "per_page": per_page},
        )
        return r.json() or []

    def create_issue_comment(self, owner: str, repo: str, number: int, body: str) -> Dict[str, Any]:
        return self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/comments", json={"body": body}).json()

    def edit_issue_comment(self, owner: str, repo: str, comment_id: int, body: str) -> Dict[str, Any]:
        return self._request("PATCH", f"/repos/{owner}/{repo}/issues/comments/{comment_id}", json={"body": body}).json()
