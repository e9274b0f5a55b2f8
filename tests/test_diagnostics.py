from leaderboard.backend.tools.diagnostics import extract_error_line, extract_errors, extract_errors_from_logs


def test_kv_cache_error_with_max_len():
    text = (
        "INFO loading\n"
        "ValueError: 12.5 GiB KV cache is needed, which is larger than the available KV cache memory (8.25 GiB). "
        "Based on the available memory, the estimated maximum model length is 21000."
    )
    errors = extract_errors(text)
    assert errors[0].category == "KV Cache Error"
    assert "21000 tokens" in errors[0].message
    assert errors[0].raw_line.startswith("ValueError:")
    assert [e.category for e in errors].count("KV Cache Error") == 1


def test_gated_model():
    errors = extract_errors("OSError: Access to model google/gemma-3-4b-it is restricted. You must be authenticated.")
    assert errors[0].category == "Gated Model"
    assert "google/gemma-3-4b-it" in errors[0].message


def test_generic_fallback_cleans_prefixes():
    text = "\x1b[31m[07:26:59] worker crashed: KeyError: 'lm_head.weight'\x1b[0m"
    errors = extract_errors(text)
    assert len(errors) == 1
    assert errors[0].category == "Error"
    assert errors[0].message == "Error: 'lm_head.weight'"
    assert errors[0].raw_line == "worker crashed: KeyError: 'lm_head.weight'"


def test_nothing_found():
    assert extract_errors("") == []
    assert extract_errors("all good, finished in 3m") == []
    assert extract_error_line("no problems here") is None


def test_logs_prefer_stderr_and_dedupe():
    logs = [
        {"stream": "stdout", "data": "torch.cuda.OutOfMemoryError: CUDA out of memory."},
        {"stream": "stderr", "data": "Connection refused by 10.0.0.1"},
        {"stream": "stdout", "data": "CUDA out of memory again"},
    ]
    errors = extract_errors_from_logs(logs)
    assert errors[0].category == "Connection Error"
    messages = [e.message for e in errors]
    assert len(messages) == len(set(messages))
    assert "GPU ran out of memory during model loading or inference." in messages
    assert errors[0].as_dict()["rawLine"]
