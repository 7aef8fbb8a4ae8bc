import json
import hmac
import hashlib
from importlib import reload

from fastapi.testclient import TestClient

from conftest import TOKEN, FakeGitHub, pr_payload


def _sign(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class _Proc:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_webhook_smoke(monkeypatch, tmp_path):
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", "testsecret")
    monkeypatch.setenv("SERVER_LOGS_ROOT_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("SERVER_EXTERNAL_URL", "https://codenotify.example")

    import app as appmod
    reload(appmod)

    import github
    from analyzers import codenotify_runner as cn
    from pipeline import commands
    from pipeline.sensitive import Sensitive

    # --- Hard stubs: no network, no git, no codenotify ---
    gh = FakeGitHub([{"id": 7, "body": f"{cn.REPORT_MARKER}\nold", "html_url": "https://example/c/7"}])
    monkeypatch.setattr(github, "create_installation_token", lambda *a, **k: Sensitive(TOKEN), raising=True)
    monkeypatch.setattr(github, "GitHubClient", lambda *a, **k: gh, raising=True)
    monkeypatch.setattr(cn.shutil, "which", lambda name: f"/usr/local/bin/{name}")

    report = f"{cn.REPORT_MARKER}\n| Notify | File(s) |\n|-|-|\n| @bob | docs/ |\n"

    def fake_run(argv, **kwargs):
        if argv[0].endswith("codenotify"):
            return _Proc(0, report, "")
        return _Proc(0, "", "")

    monkeypatch.setattr(commands.subprocess, "run", fake_run)

    client = TestClient(appmod.app)
    body = json.dumps(pr_payload("synchronize")).encode()
    headers = {
        "X-GitHub-Event": "pull_request",
        "X-GitHub-Delivery": "smoke-123",
        "X-Hub-Signature-256": _sign("testsecret", body),
        "Content-Type": "application/json",
    }

    resp = client.post("/-/webhook", content=body, headers=headers)
    assert resp.status_code == 202, resp.text

    # background task has run by the time TestClient returns
    assert [s["state"] for s in gh.statuses] == ["pending", "success"]
    assert gh.edited == [7]
    assert gh.created == []

    run_path = gh.statuses[-1]["target_url"].replace("https://codenotify.example", "")
    log_resp = client.get(run_path)
    assert log_resp.status_code == 200
    assert "fetch" in log_resp.text
    assert TOKEN not in log_resp.text
