"""Whitelist of vLLM engine arguments and environment variables a submitter may set.

The sanitizer is permissive by omission: anything not in the schema, or not matching
its field's constraints, is dropped without error. Server-required entries are merged
in afterwards and always win.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

ArgValue = Union[str, int, float, None]

_DROP = object()
_TEXT_DISALLOWED = re.compile(r"[^A-Za-z0-9_./-]")


@dataclass(frozen=True)
class NumberField:
    arg: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    default: Optional[float] = None


@dataclass(frozen=True)
class SelectField:
    arg: str
    options: Tuple[str, ...]
    default: Optional[str] = None


@dataclass(frozen=True)
class TextField:
    arg: str
    default: None = None


@dataclass(frozen=True)
class BooleanField:
    """Presence flag such as ``--enforce-eager``: emitted without a value, or not at all."""

    arg: str
    default: Optional[bool] = None


@dataclass(frozen=True)
class EnvVarField:
    options: Tuple[str, ...]
    default: Optional[str] = None


EngineField = Union[NumberField, SelectField, TextField, BooleanField]


@dataclass(frozen=True)
class EngineParamsSchema:
    version: str
    engine_params: Mapping[str, EngineField]
    env_vars: Mapping[str, EnvVarField]


@dataclass(frozen=True)
class RequiredParams:
    args: Tuple[Tuple[str, ArgValue], ...] = ()
    env_vars: Mapping[str, str] = field(default_factory=dict)


@dataclass
class EngineConfiguration:
    args: List[Tuple[str, ArgValue]] = field(default_factory=list)
    env_vars: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "args": [{"arg": arg, "value": value} for arg, value in self.args],
            "envVars": dict(self.env_vars),
        }

    def is_empty(self) -> bool:
        return not self.args and not self.env_vars


_ONE_ZERO = ("1", "0")

VLLM_PARAMS_SCHEMA = EngineParamsSchema(
    version="vllm-0.11",
    engine_params={
        "gpu-memory-utilization": NumberField("--gpu-memory-utilization", 0.5, 0.98, default=0.92),
        "max-model-len": NumberField("--max-model-len", 16000, 65536, default=32768),
        "dtype": SelectField("--dtype", ("auto", "float16", "bfloat16")),
        "quantization": SelectField(
            "--quantization",
            (
                "aqlm",
                "awq",
                "awq_marlin",
                "bitsandbytes",
                "compressed-tensors",
                "deepspeedfp",
                "experts_int8",
                "fbgemm_fp8",
                "fp8",
                "gguf",
                "gptq",
                "gptq_marlin",
                "gptq_marlin_24",
                "marlin",
                "modelopt",
                "neuron_quant",
                "qqq",
                "tpu_int8",
            ),
        ),
        "kv-cache-dtype": SelectField("--kv-cache-dtype", ("auto", "fp8", "fp8_e4m3", "fp8_e5m2")),
        "tokenizer": TextField("--tokenizer"),
        "tokenizer-mode": SelectField("--tokenizer-mode", ("auto", "slow", "mistral")),
        "enforce-eager": BooleanField("--enforce-eager"),
        "enable-prefix-caching": BooleanField("--enable-prefix-caching"),
        "max-num-seqs": NumberField("--max-num-seqs", 1, 1024),
        "max-num-batched-tokens": NumberField("--max-num-batched-tokens", 1, 131072),
        "max-parallel-loading-workers": NumberField("--max-parallel-loading-workers", 1, 32),
        "enable-expert-parallel": BooleanField("--enable-expert-parallel"),
        "disable-custom-all-reduce": BooleanField("--disable-custom-all-reduce"),
    },
    env_vars={
        "VLLM_ATTENTION_BACKEND": EnvVarField(("FLASH_ATTN", "XFORMERS", "FLASHINFER", "TRITON_MLA")),
        "VLLM_USE_V1": EnvVarField(_ONE_ZERO),
        "VLLM_USE_TRITON_FLASH_ATTN": EnvVarField(_ONE_ZERO),
        "VLLM_DISABLE_FLASHINFER": EnvVarField(_ONE_ZERO),
        "VLLM_USE_FLASHINFER_SAMPLER": EnvVarField(_ONE_ZERO),
        "VLLM_USE_TRTLLM_ATTENTION": EnvVarField(_ONE_ZERO),
        "VLLM_WORKER_MULTIPROC_METHOD": EnvVarField(("spawn", "fork")),
    },
)

# Never shown to submitters.
VLLM_REQUIRED_PARAMS = RequiredParams(
    args=(),
    env_vars={
        "NCCL_NET_PLUGIN": "none",
        "NCCL_TUNER_PLUGIN": "none",
    },
)


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _coerce(field_def: EngineField, value: Any, *, null_means_present: bool) -> Any:
    """Return the sanitized value for ``field_def`` or ``_DROP``."""
    if isinstance(field_def, BooleanField):
        if value is True or (null_means_present and value is None):
            return None
        return _DROP

    if isinstance(field_def, NumberField):
        if not _is_finite_number(value):
            return _DROP
        if field_def.minimum is not None and value < field_def.minimum:
            value = field_def.minimum
        if field_def.maximum is not None and value > field_def.maximum:
            value = field_def.maximum
        return value

    if isinstance(field_def, SelectField):
        if isinstance(value, str) and value in field_def.options:
            return value
        return _DROP

    if isinstance(field_def, TextField):
        if not isinstance(value, str):
            return _DROP
        cleaned = _TEXT_DISALLOWED.sub("", value.strip())
        return cleaned or _DROP

    return _DROP


class ParamSanitizer:
    def __init__(self, schema: EngineParamsSchema = VLLM_PARAMS_SCHEMA, required: RequiredParams = VLLM_REQUIRED_PARAMS):
        self.schema = schema
        self.required = required
        self._by_arg: Dict[str, EngineField] = {field_def.arg: field_def for field_def in schema.engine_params.values()}

    def sanitize(self, payload: Any) -> EngineConfiguration:
        """
        Reduce an untrusted payload to the schema whitelist.

        Accepts ``{"args": [{"arg": ..., "value": ...}], "envVars": {...}}`` or the legacy
        flat mapping (``gpu_memory_utilization``, ``enforce_eager``, ``ENV_VARS``...).
        Unknown keys and invalid values are dropped. Repeated args keep the first accepted one.
        """
        if isinstance(payload, EngineConfiguration):
            payload = payload.as_dict()
        if not isinstance(payload, Mapping):
            return EngineConfiguration()

        if "args" in payload or "envVars" in payload:
            config = self._sanitize_args(payload.get("args"))
            config.env_vars = self._sanitize_env(payload.get("envVars"))
        else:
            config = self._sanitize_legacy(payload)
            config.env_vars = self._sanitize_env(payload.get("ENV_VARS"))
        return config

    def _sanitize_args(self, items: Any) -> EngineConfiguration:
        config = EngineConfiguration()
        if not isinstance(items, list):
            return config

        seen = set()
        for item in items:
            if not isinstance(item, Mapping):
                continue
            arg = item.get("arg")
            if not isinstance(arg, str) or arg in seen:
                continue
            field_def = self._by_arg.get(arg)
            if field_def is None:
                continue
            value = _coerce(field_def, item.get("value"), null_means_present=True)
            if value is _DROP:
                continue
            seen.add(arg)
            config.args.append((arg, value))
        return config

    def _sanitize_legacy(self, payload: Mapping) -> EngineConfiguration:
        config = EngineConfiguration()
        seen = set()
        for key, value in payload.items():
            if not isinstance(key, str) or value is None:
                continue
            field_def = self.schema.engine_params.get(key.replace("_", "-"))
            if field_def is None or field_def.arg in seen:
                continue
            value = _coerce(field_def, value, null_means_present=False)
            if value is _DROP:
                continue
            seen.add(field_def.arg)
            config.args.append((field_def.arg, value))
        return config

    def _sanitize_env(self, env: Any) -> Dict[str, str]:
        if not isinstance(env, Mapping):
            return {}
        out: Dict[str, str] = {}
        for key, value in env.items():
            field_def = self.schema.env_vars.get(key)
            if field_def is None or not isinstance(value, str):
                continue
            if value in field_def.options:
                out[key] = value
        return out

    def merge_with_required(self, config: EngineConfiguration) -> EngineConfiguration:
        required_names = {arg for arg, _ in self.required.args}
        args = [(arg, value) for arg, value in config.args if arg not in required_names]
        args.extend(self.required.args)
        env_vars = {**config.env_vars, **self.required.env_vars}
        return EngineConfiguration(args=args, env_vars=env_vars)

    def default_configuration(self) -> EngineConfiguration:
        config = EngineConfiguration()
        for field_def in self.schema.engine_params.values():
            if field_def.default is None:
                continue
            if isinstance(field_def, BooleanField):
                if field_def.default:
                    config.args.append((field_def.arg, None))
            else:
                config.args.append((field_def.arg, field_def.default))
        for key, field_def in self.schema.env_vars.items():
            if field_def.default is not None:
                config.env_vars[key] = field_def.default
        return config
