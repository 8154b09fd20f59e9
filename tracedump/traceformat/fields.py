"""
Event Field Decoding
Turns raw event payload bytes into Python values according to the event format.
"""

from typing import Any, Dict, List, Union

from tracedump.core.errors import EventDecodeError
from tracedump.traceformat.header import EventFormat, FieldFormat

INT_SIZES = (1, 2, 4, 8)

FieldValue = Union[int, str, bytes, List[int]]


def _slice(payload: bytes, start: int, size: int, field: FieldFormat, event_name: str) -> bytes:
    if start < 0 or start + size > len(payload):
        raise EventDecodeError(
            f"{event_name}: field '{field.name}' spans bytes {start}..{start + size} "
            f"beyond the {len(payload)}-byte payload"
        )
    return bytes(payload[start:start + size])


def _decode_string(data: bytes) -> str:
    return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _decode_array(field: FieldFormat, data: bytes, byteorder: str) -> FieldValue:
    if field.is_string:
        return _decode_string(data)

    elem_size = field.size // field.array_len if field.array_len else 1
    if field.data_loc or field.array_len == 0 or elem_size not in INT_SIZES:
        return data

    return [
        int.from_bytes(data[i:i + elem_size], byteorder, signed=field.signed)
        for i in range(0, len(data) - elem_size + 1, elem_size)
    ]


def decode_field(
    field: FieldFormat,
    payload: bytes,
    byteorder: str,
    event_name: str = "event",
) -> FieldValue:
    """Decode a single field from an event payload."""
    if field.data_loc:
        loc = int.from_bytes(_slice(payload, field.offset, 4, field, event_name), byteorder)
        offset, length = loc & 0xFFFF, loc >> 16
        data = _slice(payload, offset, length, field, event_name)
        return _decode_string(data) if field.is_string else data

    if field.array_len == 0:
        # Trailing dynamic array: everything up to the end of the payload
        data = _slice(payload, field.offset, max(len(payload) - field.offset, 0), field, event_name)
        return _decode_array(field, data, byteorder)

    data = _slice(payload, field.offset, field.size, field, event_name)

    if field.is_array:
        return _decode_array(field, data, byteorder)
    if field.size in INT_SIZES:
        return int.from_bytes(data, byteorder, signed=field.signed)
    return data


def decode_event_fields(event_format: EventFormat, payload: bytes, byteorder: str) -> Dict[str, Any]:
    """Decode all non-common fields of an event, in format order."""
    return {
        f.name: decode_field(f, payload, byteorder, event_format.name)
        for f in event_format.fields
    }


def decode_common_pid(event_format: EventFormat, payload: bytes, byteorder: str) -> int:
    field = event_format.get_field("common_pid")
    if field is None:
        return -1
    return decode_field(field, payload, byteorder, event_format.name)


def render_value(value: Any) -> str:
    """Text rendering used by the human-readable printer."""
    if isinstance(value, bytes):
        return "0x" + value.hex() if value else "0x"
    if isinstance(value, list):
        return "{" + ",".join(str(v) for v in value) + "}"
    return str(value)
