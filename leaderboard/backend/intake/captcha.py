from typing import Optional

import requests
import structlog

from leaderboard.config import Settings

log = structlog.get_logger()


def verify_captcha(token: Optional[str], ip: Optional[str], settings: Settings) -> bool:
    """Verify a Cloudflare Turnstile token. Without a configured secret every token passes."""
    if not settings.turnstile_secret_key:
        log.warning("turnstile_secret_missing", detail="skipping verification")
        return True
    if not token:
        return False

    form = {"secret": settings.turnstile_secret_key, "response": token}
    if ip and ip != "unknown":
        form["remoteip"] = ip

    try:
        resp = requests.post(settings.turnstile_verify_url, data=form, timeout=settings.http_timeout_sec)
        result = resp.json()
    except (requests.RequestException, ValueError) as exc:
        log.error("turnstile_verify_error", error=str(exc))
        return False

    success = bool(result.get("success")) if isinstance(result, dict) else False
    if not success:
        log.warning("turnstile_verify_failed", codes=result.get("error-codes") if isinstance(result, dict) else None)
    return success
