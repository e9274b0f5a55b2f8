import re
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests
import structlog

from leaderboard.config import Settings

log = structlog.get_logger()

MODEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+(?:/[A-Za-z0-9._-]+)?$")

# Registry fields carried into the submission params.
MODEL_INFO_FIELDS = ("id", "author", "sha", "lastModified", "library_name", "pipeline_tag", "tags")

COULD_NOT_VERIFY = "Could not verify the model on Hugging Face. Please try again later."


@dataclass
class ModelValidation:
    valid: bool
    identifier: Optional[str] = None
    error: Optional[str] = None
    model_info: Optional[Dict[str, Any]] = None


def validate_model_id(model_id: Any, settings: Settings, session: Optional[requests.Session] = None) -> ModelValidation:
    """Check a Hugging Face model id for format, existence and public availability."""
    if not isinstance(model_id, str) or not model_id.strip():
        return ModelValidation(valid=False, error="Model ID is required")

    model_id = model_id.strip()
    if not MODEL_ID_PATTERN.match(model_id):
        return ModelValidation(
            valid=False, error="Invalid model ID format. Expected format: 'owner/model-name'"
        )

    http = session or requests
    url = f"{settings.hf_api_base}/models/{model_id}"
    try:
        resp = http.get(url, headers={"Accept": "application/json"}, timeout=settings.http_timeout_sec)
    except requests.RequestException as exc:
        log.warning("registry_request_failed", model_id=model_id, error=str(exc))
        return ModelValidation(valid=False, error=COULD_NOT_VERIFY)

    if resp.status_code == 404:
        return ModelValidation(valid=False, error=f'Model "{model_id}" not found on Hugging Face')
    if resp.status_code in (401, 403):
        return ModelValidation(valid=False, error=f'Model "{model_id}" is private or requires authentication')
    if not resp.ok:
        log.warning("registry_unexpected_status", model_id=model_id, status=resp.status_code)
        return ModelValidation(valid=False, error=COULD_NOT_VERIFY)

    try:
        info = resp.json()
    except ValueError as exc:
        log.warning("registry_bad_json", model_id=model_id, error=str(exc))
        return ModelValidation(valid=False, error=COULD_NOT_VERIFY)
    if not isinstance(info, dict):
        log.warning("registry_bad_json", model_id=model_id, error="not an object")
        return ModelValidation(valid=False, error=COULD_NOT_VERIFY)

    if info.get("disabled"):
        return ModelValidation(valid=False, error=f'Model "{model_id}" has been disabled')
    if info.get("private") or info.get("gated"):
        return ModelValidation(valid=False, error=f'Model "{model_id}" is private or requires authentication')

    model_info = {key: info[key] for key in MODEL_INFO_FIELDS if key in info}
    return ModelValidation(valid=True, identifier=model_id, model_info=model_info)


def validate_file_url(url: Any, settings: Settings) -> ModelValidation:
    """Only model files hosted on the trusted domain are accepted."""
    if not isinstance(url, str) or not url.strip():
        return ModelValidation(valid=False, error="GGUF URL is required")

    url = url.strip()
    try:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
    except ValueError:
        return ModelValidation(valid=False, error="Invalid URL format")

    if parsed.scheme not in ("http", "https") or not host:
        return ModelValidation(valid=False, error="Invalid URL format")

    trusted = settings.trusted_file_host.lower()
    if host != trusted and not host.endswith("." + trusted):
        return ModelValidation(valid=False, error=f"GGUF files must be hosted on Hugging Face ({trusted})")

    if not parsed.path.lower().endswith(settings.model_file_extension):
        return ModelValidation(valid=False, error=f"URL must point to a {settings.model_file_extension} file")

    return ModelValidation(valid=True, identifier=url)
