import math
import random

from leaderboard.backend.intake.engine_params import (
    VLLM_PARAMS_SCHEMA,
    EngineConfiguration,
    EngineParamsSchema,
    EnvVarField,
    NumberField,
    ParamSanitizer,
    RequiredParams,
    SelectField,
)

sanitizer = ParamSanitizer()


def _args(config):
    return dict(config.args)


def test_clamps_gpu_memory_utilization():
    config = sanitizer.sanitize({"args": [{"arg": "--gpu-memory-utilization", "value": 1.5}]})
    assert _args(config) == {"--gpu-memory-utilization": 0.98}

    low = sanitizer.sanitize({"args": [{"arg": "--gpu-memory-utilization", "value": 0.1}]})
    assert _args(low) == {"--gpu-memory-utilization": 0.5}


def test_legacy_snake_case_payload_is_clamped_too():
    config = sanitizer.sanitize({"gpu_memory_utilization": 1.5, "max_model_len": 1000})
    assert _args(config) == {"--gpu-memory-utilization": 0.98, "--max-model-len": 16000}


def test_numbers_must_be_finite_and_not_bool():
    items = [
        {"arg": "--max-num-seqs", "value": math.inf},
        {"arg": "--max-num-seqs", "value": math.nan},
        {"arg": "--max-num-seqs", "value": True},
        {"arg": "--max-num-seqs", "value": "64"},
    ]
    assert sanitizer.sanitize({"args": items}).args == []


def test_boolean_flags():
    config = sanitizer.sanitize(
        {
            "args": [
                {"arg": "--enforce-eager", "value": None},
                {"arg": "--enable-prefix-caching", "value": False},
                {"arg": "--enable-expert-parallel", "value": "true"},
                {"arg": "--disable-custom-all-reduce", "value": True},
            ]
        }
    )
    assert config.args == [("--enforce-eager", None), ("--disable-custom-all-reduce", None)]

    legacy = sanitizer.sanitize({"enforce_eager": True, "enable_prefix_caching": False})
    assert legacy.args == [("--enforce-eager", None)]


def test_select_requires_declared_option():
    config = sanitizer.sanitize(
        {
            "args": [
                {"arg": "--dtype", "value": "float32"},
                {"arg": "--quantization", "value": "awq"},
                {"arg": "--kv-cache-dtype", "value": None},
            ]
        }
    )
    assert config.args == [("--quantization", "awq")]


def test_text_is_stripped_to_safe_characters():
    config = sanitizer.sanitize({"args": [{"arg": "--tokenizer", "value": "  org/tok; rm -rf $HOME  "}]})
    assert config.args == [("--tokenizer", "org/tokrm-rfHOME")]

    empty = sanitizer.sanitize({"args": [{"arg": "--tokenizer", "value": " ;;; "}]})
    assert empty.args == []


def test_unknown_keys_are_silently_dropped():
    config = sanitizer.sanitize(
        {
            "args": [{"arg": "--trust-remote-code", "value": None}, {"arg": "--dtype", "value": "auto"}],
            "envVars": {"LD_PRELOAD": "/tmp/x.so", "VLLM_USE_V1": "1", "VLLM_ATTENTION_BACKEND": "EVIL"},
            "temperature": 2.0,
        }
    )
    assert config.args == [("--dtype", "auto")]
    assert config.env_vars == {"VLLM_USE_V1": "1"}


def test_repeated_args_keep_first():
    config = sanitizer.sanitize(
        {"args": [{"arg": "--dtype", "value": "bad"}, {"arg": "--dtype", "value": "auto"}, {"arg": "--dtype", "value": "float16"}]}
    )
    assert config.args == [("--dtype", "auto")]


def test_non_mapping_payloads_give_empty_config():
    for payload in (None, [], "x", 3, {"args": "nope", "envVars": ["a"]}):
        assert sanitizer.sanitize(payload).is_empty()


def _random_value(rng):
    return rng.choice(
        [None, True, False, 0, -3, 0.7, 1.5, 1e9, math.inf, math.nan, "auto", "fp8", " org/x ", "", "1", "spawn", [], {}]
    )


def _random_payload(rng):
    known_args = [field_def.arg for field_def in VLLM_PARAMS_SCHEMA.engine_params.values()]
    arg_names = known_args + ["--unknown", "--trust-remote-code", 7, None]
    env_names = list(VLLM_PARAMS_SCHEMA.env_vars) + ["PATH", "NCCL_NET_PLUGIN"]
    if rng.random() < 0.3:
        legacy_keys = [k.replace("-", "_") for k in VLLM_PARAMS_SCHEMA.engine_params] + ["max_concurrent", "seed"]
        payload = {rng.choice(legacy_keys): _random_value(rng) for _ in range(rng.randint(0, 8))}
        payload["ENV_VARS"] = {rng.choice(env_names): _random_value(rng) for _ in range(rng.randint(0, 4))}
        return payload
    return {
        "args": [{"arg": rng.choice(arg_names), "value": _random_value(rng)} for _ in range(rng.randint(0, 10))],
        "envVars": {rng.choice(env_names): rng.choice(["1", "0", "FLASHINFER", "fork", 1, None]) for _ in range(rng.randint(0, 5))},
        rng.choice(["extra", "generation"]): _random_value(rng),
    }


def test_fuzz_never_emits_unknown_keys_and_is_idempotent():
    rng = random.Random(1234)
    allowed_args = {field_def.arg for field_def in VLLM_PARAMS_SCHEMA.engine_params.values()}
    allowed_env = set(VLLM_PARAMS_SCHEMA.env_vars)

    for _ in range(500):
        payload = _random_payload(rng)
        once = sanitizer.sanitize(payload)
        assert {arg for arg, _ in once.args} <= allowed_args
        assert set(once.env_vars) <= allowed_env
        assert sanitizer.sanitize(once) == once
        assert sanitizer.sanitize(once.as_dict()) == once


def test_merge_required_entries_win():
    required = RequiredParams(args=(("--dtype", "bfloat16"),), env_vars={"VLLM_USE_V1": "0", "NCCL_NET_PLUGIN": "none"})
    merging = ParamSanitizer(VLLM_PARAMS_SCHEMA, required)
    user = merging.sanitize(
        {"args": [{"arg": "--dtype", "value": "float16"}, {"arg": "--enforce-eager", "value": None}], "envVars": {"VLLM_USE_V1": "1"}}
    )

    merged = merging.merge_with_required(user)
    assert merged.args == [("--enforce-eager", None), ("--dtype", "bfloat16")]
    assert merged.env_vars == {"VLLM_USE_V1": "0", "NCCL_NET_PLUGIN": "none"}


def test_default_required_params_add_nccl_env():
    merged = sanitizer.merge_with_required(EngineConfiguration())
    assert merged.env_vars == {"NCCL_NET_PLUGIN": "none", "NCCL_TUNER_PLUGIN": "none"}
    assert merged.args == []


def test_injected_schema():
    schema = EngineParamsSchema(
        version="test-1",
        engine_params={"threads": NumberField("--threads", 1, 4), "mode": SelectField("--mode", ("a", "b"))},
        env_vars={"FLAG": EnvVarField(("on",))},
    )
    custom = ParamSanitizer(schema, RequiredParams())
    config = custom.sanitize({"args": [{"arg": "--threads", "value": 9}, {"arg": "--dtype", "value": "auto"}], "envVars": {"FLAG": "on"}})
    assert config.as_dict() == {"args": [{"arg": "--threads", "value": 4}], "envVars": {"FLAG": "on"}}


def test_default_configuration():
    defaults = sanitizer.default_configuration()
    assert _args(defaults) == {"--gpu-memory-utilization": 0.92, "--max-model-len": 32768}
    assert sanitizer.sanitize(defaults) == defaults
