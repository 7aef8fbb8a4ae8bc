import os
import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_HOMEPAGE = "https://github.com/codenotify/codenotify.run"


def bool_env(name: str, default: bool = False) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return v.lower() in {"1","true","yes","on"}


def int_env(name: str, default: int) -> int:
    v = (os.environ.get(name) or "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {v!r}")


@dataclass(frozen=True)
class Settings:
    external_url: str
    logs_root_dir: Path
    app_id: str
    client_id: str
    client_secret: str
    private_key: str
    codenotify_bin_path: str
    github_api: str = "https://api.github.com"
    webhook_secrets: Tuple[str, ...] = ()
    allow_unverified: bool = False
    http_timeout_s: int = 25
    command_timeout_s: int = 600
    subscriber_threshold: int = 10
    homepage_url: str = DEFAULT_HOMEPAGE


def _load_private_key() -> str:
    # Accept any of: PEM inline, base64 inline, or path to PEM file
    key_pem = (os.environ.get("GITHUB_APP_PRIVATE_KEY") or "").replace("\\n", "\n").strip()
    key_b64 = (os.environ.get("GITHUB_APP_PRIVATE_KEY_B64") or "").strip()
    key_path = (os.environ.get("GITHUB_APP_PRIVATE_KEY_PATH") or "").strip()

    if not key_pem and key_b64:
        key_pem = base64.b64decode(key_b64).decode("utf-8").strip()
    if not key_pem and key_path:
        key_pem = Path(key_path).read_text(encoding="utf-8").strip()
    return key_pem


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """Read the process configuration once. The result is never mutated."""
    if env_file:
        load_dotenv(dotenv_path=env_file)

    secret = (os.getenv("GITHUB_WEBHOOK_SECRET") or "").strip()
    secrets = tuple(s.strip() for s in (os.getenv("GITHUB_WEBHOOK_SECRETS") or secret).split(",") if s.strip())

    return Settings(
        external_url=(os.getenv("SERVER_EXTERNAL_URL") or "http://localhost:8000").rstrip("/"),
        logs_root_dir=Path(os.getenv("SERVER_LOGS_ROOT_DIR") or "data/logs"),
        app_id=(os.getenv("GITHUB_APP_ID") or "").strip(),
        client_id=(os.getenv("GITHUB_APP_CLIENT_ID") or "").strip(),
        client_secret=(os.getenv("GITHUB_APP_CLIENT_SECRET") or "").strip(),
        private_key=_load_private_key(),
        codenotify_bin_path=(os.getenv("CODENOTIFY_BIN_PATH") or "codenotify").strip(),
        github_api=(os.getenv("GITHUB_API") or "https://api.github.com").rstrip("/"),
        webhook_secrets=secrets,
        allow_unverified=bool_env("ALLOW_UNVERIFIED_WEBHOOKS"),
        http_timeout_s=int_env("HTTP_TIMEOUT_S", 25),
        command_timeout_s=int_env("COMMAND_TIMEOUT_S", 600),
        subscriber_threshold=int_env("CODENOTIFY_SUBSCRIBER_THRESHOLD", 10),
        homepage_url=(os.getenv("HOMEPAGE_URL") or DEFAULT_HOMEPAGE).strip(),
    )


def read_private_key(settings: Settings) -> str:
    key = settings.private_key
    if not key.startswith("-----BEGIN") or "PRIVATE KEY" not in key:
        raise RuntimeError("GITHUB_APP_PRIVATE_KEY[_PATH|_B64] is not a valid PEM private key")
    return key
