import requests

from leaderboard.backend.intake import captcha
from leaderboard.backend.intake.security import sanitize_for_logging
from leaderboard.config import Settings

SETTINGS = Settings(turnstile_secret_key="secret")


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


def test_skipped_without_secret():
    assert captcha.verify_captcha(None, None, Settings()) is True


def test_missing_token_fails():
    assert captcha.verify_captcha("", "1.2.3.4", SETTINGS) is False


def test_success_sends_secret_and_ip(monkeypatch):
    seen = {}

    def fake_post(url, data=None, timeout=None):
        seen.update(url=url, data=data)
        return FakeResponse({"success": True})

    monkeypatch.setattr(captcha.requests, "post", fake_post)
    assert captcha.verify_captcha("tok", "1.2.3.4", SETTINGS) is True
    assert seen["data"] == {"secret": "secret", "response": "tok", "remoteip": "1.2.3.4"}
    assert seen["url"] == SETTINGS.turnstile_verify_url


def test_failure_and_transport_errors(monkeypatch):
    monkeypatch.setattr(
        captcha.requests, "post", lambda url, data=None, timeout=None: FakeResponse({"success": False, "error-codes": ["x"]})
    )
    assert captcha.verify_captcha("tok", "unknown", SETTINGS) is False

    monkeypatch.setattr(captcha.requests, "post", lambda url, data=None, timeout=None: FakeResponse(ValueError("html")))
    assert captcha.verify_captcha("tok", None, SETTINGS) is False

    def boom(url, data=None, timeout=None):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(captcha.requests, "post", boom)
    assert captcha.verify_captcha("tok", None, SETTINGS) is False


def test_sanitize_for_logging_redacts_and_truncates():
    text = sanitize_for_logging({"ip": "203.0.113.7", "email": "a@b.io"})
    assert "203.0.113.7" not in text and "a@b.io" not in text
    assert sanitize_for_logging("x" * 600).endswith("... [truncated]")
