"""
JSON encoding of session value maps.

A session is persisted as a single JSON object mapping keys to values.
Scalars (str, int, float, bool, None) are encoded natively and decoded
back to native Python values. Structured values (objects and arrays) are
decoded as RawFragment instances that keep the raw JSON text exactly as
it appears in the stored record; they are written back verbatim.
"""

import json
import logging
import re
from typing import Any, Union

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"[ \t\n\r]*")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


# NaN and Infinity are rejected like any other invalid token
_decoder = json.JSONDecoder(parse_constant=_reject_constant)


class RawFragment:
    """
    Raw JSON text of a structured session value.

    Instances are immutable and compare equal when their raw text is
    identical. Use decode() to obtain the parsed object.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: Union[str, bytes]):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if not raw or raw[0] not in "{[":
            raise ValueError("RawFragment must hold a JSON object or array")
        # Reject text that would corrupt the surrounding record
        _decoder.decode(raw)
        self._raw = raw

    @property
    def raw(self) -> str:
        return self._raw

    def decode(self) -> Any:
        """Parse the fragment into dicts and lists."""
        return _decoder.decode(self._raw)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RawFragment):
            return self._raw == other._raw
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._raw)

    def __str__(self) -> str:
        return self._raw

    def __repr__(self) -> str:
        return f"RawFragment({self._raw!r})"


SessionValue = Union[str, int, float, bool, None, list, dict, RawFragment]


def _default(obj: Any) -> Any:
    # RawFragment nested inside a dict or list
    if isinstance(obj, RawFragment):
        return obj.decode()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_value(value: SessionValue) -> str:
    """
    Encode one session value as JSON text.

    Raises:
        TypeError: If the value is not JSON serializable.
        ValueError: If the value contains NaN or infinity.
    """
    if isinstance(value, RawFragment):
        return value.raw
    return json.dumps(
        value,
        default=_default,
        allow_nan=False,
        ensure_ascii=False,
        separators=(",", ":"),
    )


def encode_values(values: dict[str, SessionValue]) -> str:
    """
    Encode a whole session value map as one JSON object.

    Keys are emitted in sorted order so that equal maps produce equal blobs.

    Raises:
        TypeError: If a key is not a string or a value is not serializable.
        ValueError: If a value contains NaN or infinity.
    """
    parts = []
    for key in sorted(values, key=_key_sort):
        if not isinstance(key, str):
            raise TypeError(f"Session keys must be str, not {type(key).__name__}")
        parts.append(f"{json.dumps(key, ensure_ascii=False)}:{encode_value(values[key])}")
    return "{" + ",".join(parts) + "}"


def _key_sort(key: Any) -> str:
    return key if isinstance(key, str) else repr(key)


def _skip_whitespace(text: str, idx: int) -> int:
    return _WHITESPACE.match(text, idx).end()


def split_fragments(blob: str) -> dict[str, str]:
    """
    Split a JSON object into its keys and the raw JSON text of each value.

    A top-level ``null`` is treated as an empty object. Later duplicates of
    a key replace earlier ones.

    Raises:
        ValueError: If the blob is not a well-formed JSON object.
    """
    end = len(blob)
    idx = _skip_whitespace(blob, 0)

    if blob.startswith("null", idx) and _skip_whitespace(blob, idx + 4) == end:
        return {}
    if blob[idx:idx + 1] != "{":
        raise ValueError("Session record is not a JSON object")

    fragments: dict[str, str] = {}
    idx = _skip_whitespace(blob, idx + 1)
    if blob[idx:idx + 1] == "}":
        idx += 1
    else:
        while True:
            if blob[idx:idx + 1] != '"':
                raise ValueError(f"Expected a key at position {idx}")
            key, idx = _decoder.raw_decode(blob, idx)

            idx = _skip_whitespace(blob, idx)
            if blob[idx:idx + 1] != ":":
                raise ValueError(f"Expected ':' at position {idx}")
            idx = _skip_whitespace(blob, idx + 1)

            start = idx
            _, idx = _decoder.raw_decode(blob, idx)
            fragments[key] = blob[start:idx]

            idx = _skip_whitespace(blob, idx)
            separator = blob[idx:idx + 1]
            idx += 1
            if separator == "}":
                break
            if separator != ",":
                raise ValueError(f"Expected ',' or '}}' at position {idx - 1}")
            idx = _skip_whitespace(blob, idx)

    if _skip_whitespace(blob, idx) != end:
        raise ValueError(f"Unexpected data after session record at position {idx}")
    return fragments


def decode_value(raw: str) -> SessionValue:
    """
    Decode the raw JSON text of one value.

    Objects and arrays are kept as RawFragment; everything else is parsed
    into a native scalar.
    """
    if raw[:1] in ("{", "["):
        return RawFragment(raw)
    return _decoder.decode(raw)


def decode_values(blob: Union[str, bytes, None]) -> dict[str, SessionValue]:
    """
    Decode a persisted session record into a value map.

    An empty or missing blob decodes to an empty map. A value that fails
    to decode is logged and stored as None; the rest of the map is kept.

    Raises:
        ValueError: If the blob as a whole is not a JSON object.
    """
    if not blob:
        return {}
    if isinstance(blob, bytes):
        blob = blob.decode("utf-8")

    values: dict[str, SessionValue] = {}
    for key, raw in split_fragments(blob).items():
        try:
            values[key] = decode_value(raw)
        except ValueError as e:
            logger.warning("Failed to decode session value", extra={
                "extra_data": {"key": key, "error": str(e)}
            })
            values[key] = None
    return values
