from .engine_params import ParamSanitizer, VLLM_PARAMS_SCHEMA, VLLM_REQUIRED_PARAMS
from .ip import client_ip, hash_ip, normalize_ip
from .pipeline import IntakeOutcome, IntakeRequest, SubmissionIntake
from .queue_order import model_display_name, order_queue, queue_view
from .rate_limit import RateLimiter, RateLimitResult

__all__ = [
    "ParamSanitizer",
    "VLLM_PARAMS_SCHEMA",
    "VLLM_REQUIRED_PARAMS",
    "client_ip",
    "hash_ip",
    "normalize_ip",
    "IntakeOutcome",
    "IntakeRequest",
    "SubmissionIntake",
    "model_display_name",
    "order_queue",
    "queue_view",
    "RateLimiter",
    "RateLimitResult",
]
