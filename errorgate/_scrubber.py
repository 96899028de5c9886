import re

SENSITIVE_PATTERN = re.compile(
    r"password|passwd|secret|token|api_key|apikey|access_key|auth|credential|private",
    re.IGNORECASE,
)

FILTERED = "[filtered]"
MAX_VARS = 50
MAX_REPR = 200


def scrub_mapping(data):
    """Redact sensitive keys in event data, recursing into nested dicts."""
    if not isinstance(data, dict):
        return data
    result = {}
    for key, value in data.items():
        if isinstance(key, str) and SENSITIVE_PATTERN.search(key):
            result[key] = FILTERED
        elif isinstance(value, dict):
            result[key] = scrub_mapping(value)
        else:
            result[key] = value
    return result


def scrub_vars(local_vars):
    """Filter f_locals: skip dunders, redact sensitive keys, repr+truncate values."""
    result = {}
    for key, value in local_vars.items():
        if len(result) >= MAX_VARS:
            break
        if key.startswith("__") and key.endswith("__"):
            continue
        if SENSITIVE_PATTERN.search(key):
            result[key] = FILTERED
            continue
        try:
            r = repr(value)
        except Exception:
            r = f"<{type(value).__name__}>"
        result[key] = r[:MAX_REPR]
    return result
