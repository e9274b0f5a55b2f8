"""Pull readable failure causes out of vLLM / benchmark logs.

Patterns run from most to least specific; each category reports at most once.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

MAX_RAW_LINE = 500
MAX_MESSAGE = 200


@dataclass
class ExtractedError:
    category: str
    message: str
    raw_line: str
    suggestion: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        out = asdict(self)
        out["rawLine"] = out.pop("raw_line")
        return out


@dataclass(frozen=True)
class ErrorPattern:
    pattern: re.Pattern
    category: str
    message: Callable[[re.Match], str]
    suggestion: Optional[str] = None


ERROR_PATTERNS: List[ErrorPattern] = [
    ErrorPattern(
        re.compile(r"Free memory on device \(([^)]+)\).*is less than desired GPU memory utilization \(([^,]+), ([^)]+)\)"),
        "VRAM Error",
        lambda m: f"Not enough free GPU memory at startup. Available: {m.group(1)}, Required: {m.group(3)}",
        "Try reducing gpu_memory_utilization.",
    ),
    ErrorPattern(
        re.compile(
            r"(\d+\.?\d*)\s*GiB KV cache is needed, which is larger than the available KV cache memory "
            r"\((\d+\.?\d*)\s*GiB\)[\s\S]*?maximum model length is (\d+)"
        ),
        "KV Cache Error",
        lambda m: (
            f"Model needs {m.group(1)} GiB KV cache but only {m.group(2)} GiB is available. "
            f"Max supported context length: {m.group(3)} tokens."
        ),
        "Try reducing max_model_len or increasing gpu_memory_utilization.",
    ),
    ErrorPattern(
        re.compile(
            r"(\d+\.?\d*)\s*GiB KV cache is needed, which is larger than the available KV cache memory "
            r"\((\d+\.?\d*)\s*GiB\)"
        ),
        "KV Cache Error",
        lambda m: f"Model needs {m.group(1)} GiB KV cache but only {m.group(2)} GiB is available.",
        "Try reducing max_model_len or increasing gpu_memory_utilization.",
    ),
    ErrorPattern(
        re.compile(r"CUDA out of memory", re.I),
        "CUDA OOM",
        lambda m: "GPU ran out of memory during model loading or inference.",
        "Try a smaller model, reduce max_model_len, or use quantization.",
    ),
    ErrorPattern(
        re.compile(r"OutOfMemoryError", re.I),
        "Out of Memory",
        lambda m: "System ran out of memory.",
        "The model may be too large for the available resources.",
    ),
    ErrorPattern(
        re.compile(r"Model.*not found|Repository Not Found|404.*model", re.I),
        "Model Not Found",
        lambda m: "The specified model could not be found.",
        "Check that the model ID is correct and the model is publicly accessible.",
    ),
    ErrorPattern(
        re.compile(r"Access to model (\S+) is restricted"),
        "Gated Model",
        lambda m: f"Access to model {m.group(1)} is restricted. Authentication required.",
        "This model is gated on Hugging Face. Only publicly accessible models can be evaluated.",
    ),
    ErrorPattern(
        re.compile(r"Access.*denied|401|403.*Unauthorized", re.I),
        "Access Denied",
        lambda m: "Access to the model was denied.",
        "The model may be gated or private. Ensure it's publicly accessible.",
    ),
    ErrorPattern(
        re.compile(r"Connection.*refused|ECONNREFUSED", re.I),
        "Connection Error",
        lambda m: "Failed to connect to a required service.",
        "This may be a temporary infrastructure issue. Try resubmitting.",
    ),
    ErrorPattern(
        re.compile(r"Timeout|timed out", re.I),
        "Timeout",
        lambda m: "Operation timed out.",
        "The model may be too slow or there was a network issue.",
    ),
]

ERROR_LINE_PATTERNS = [
    re.compile(r"^.*ValueError:.*$", re.M),
    re.compile(r"^.*RuntimeError:.*$", re.M),
    re.compile(r"^.*Error:.*$", re.M),
    re.compile(r"^.*Exception:.*$", re.M),
    re.compile(r"^.*ERROR.*$", re.M),
]

_ANSI = re.compile(r"\x1b\[[0-9;]*m")
_PROCESS_PREFIX = re.compile(r"\[0;36m\([^)]+\)\[0;0m\s*")
_TIMESTAMP_PREFIX = re.compile(r"^\s*\[[^\]]+\]\s*")
_ERROR_KIND = re.compile(r"^.*?(ValueError|RuntimeError|Error|Exception):", re.I)


def extract_error_line(text: str) -> Optional[str]:
    for pattern in ERROR_LINE_PATTERNS:
        match = pattern.search(text)
        if match:
            line = _ANSI.sub("", match.group(0))
            line = _PROCESS_PREFIX.sub("", line)
            return _TIMESTAMP_PREFIX.sub("", line).strip()
    return None


def extract_errors(text: str) -> List[ExtractedError]:
    if not text:
        return []

    errors: List[ExtractedError] = []
    seen_messages = set()
    seen_categories = set()

    for entry in ERROR_PATTERNS:
        if entry.category in seen_categories:
            continue
        match = entry.pattern.search(text)
        if not match:
            continue
        message = entry.message(match)
        if message in seen_messages:
            continue
        seen_messages.add(message)
        seen_categories.add(entry.category)
        raw = extract_error_line(text) or match.group(0)
        errors.append(ExtractedError(entry.category, message, raw[:MAX_RAW_LINE], entry.suggestion))

    if errors:
        return errors

    raw = extract_error_line(text)
    if raw and len(raw) > 10:
        clean = _ERROR_KIND.sub(r"\1:", raw).strip()
        if len(clean) > 10:
            message = clean[:MAX_MESSAGE] + "..." if len(clean) > MAX_MESSAGE else clean
            errors.append(ExtractedError("Error", message, raw[:MAX_RAW_LINE]))
    return errors


def _is_stderr(stream: str) -> bool:
    return (stream or "").lower() in ("stderr", "error")


def extract_errors_from_logs(logs: Iterable[Mapping[str, str]]) -> List[ExtractedError]:
    """stderr entries are scanned first; messages are de-duplicated across entries."""
    ordered = sorted(logs, key=lambda entry: 0 if _is_stderr(entry.get("stream", "")) else 1)

    found: List[ExtractedError] = []
    seen = set()
    for entry in ordered:
        for error in extract_errors(entry.get("data", "")):
            if error.message in seen:
                continue
            seen.add(error.message)
            found.append(error)
    return found
