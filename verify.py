import hmac, hashlib
from typing import Optional, Sequence


class SignatureError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def hmac_signature(secret: str, body: bytes, algo: str = "sha256") -> str:
    algo = algo.lower()
    h = {"sha256": hashlib.sha256, "sha1": hashlib.sha1}[algo]
    return f"{algo}=" + hmac.new(secret.encode("utf-8"), body, h).hexdigest()


def verify_signature(body: bytes, provided: Optional[str], secrets: Sequence[str]) -> None:
    """Raise SignatureError unless `provided` matches the body under one of `secrets`."""
    if not provided:
        raise SignatureError(400, "Signature required")
    if provided.startswith("sha256="):
        algo = "sha256"
    elif provided.startswith("sha1="):
        algo = "sha1"
    else:
        raise SignatureError(400, "Unsupported signature prefix")
    if not any(hmac.compare_digest(provided, hmac_signature(sec, body, algo)) for sec in secrets):
        raise SignatureError(401, "Invalid signature")
