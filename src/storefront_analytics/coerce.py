"""
Defensive parsing of values read back from the key-value store.

The REST store returns loosely typed replies: counters may arrive as ints,
numeric strings or bytes, hashes as dicts or flat lists, and a missing key
as None. Everything read by the reporter passes through here so that
malformed data degrades to zero/empty instead of raising.
"""

import json
import math
from typing import Any


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def to_int(value: Any) -> int:
    """Coerce a stored counter to int. None, junk and NaN become 0."""
    # Strict: "12abc" is junk (0), unlike a prefix parse that would read 12
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return 0 if math.isnan(value) or math.isinf(value) else int(value)

    text = _text(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return 0
    return 0 if math.isnan(number) or math.isinf(number) else int(number)


def to_hash(raw: Any) -> dict[str, Any]:
    """Normalize a hash reply (dict or flat [field, value, ...] list) to a dict."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return {_text(k): v for k, v in raw.items()}
    if isinstance(raw, (list, tuple)):
        pairs = list(raw)
        return {_text(pairs[i]): pairs[i + 1] for i in range(0, len(pairs) - 1, 2)}
    return {}


def to_counter_map(raw: Any) -> dict[str, int]:
    """Coerce a hash of counters, skipping empty keys and non-positive counts."""
    counters = {}
    for key, value in to_hash(raw).items():
        count = to_int(value)
        if key and count > 0:
            counters[key] = count
    return counters


def to_str_list(raw: Any) -> list[str]:
    """Coerce a set/list reply to a list of strings, dropping None members."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [_text(item) for item in raw if item is not None]
    return [_text(raw)]


def from_json(value: Any, default: Any = None) -> Any:
    """Parse a JSON string, returning `default` if it is missing or invalid."""
    if value is None:
        return default
    try:
        return json.loads(_text(value))
    except (TypeError, ValueError):
        return default
