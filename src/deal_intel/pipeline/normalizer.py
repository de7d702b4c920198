"""
Shape normalization for prioritization tool-call payloads.

Models do not always honour the declared tool schema. The payload can come
back as:
- the wrapped object ``{"deals": [...]}`` (canonical)
- a JSON-encoded string of any shape below
- the canonical object nested under one other key, e.g. ``{"result": {"deals": [...]}}``
- a bare list of deal entries
- a single deal entry object

Plain-content answers often arrive inside a Markdown ```json fence; the fence
is stripped before decoding.

normalize_priority_payload() walks a small chain of shape detectors, unwraps
one layer per step and stops at the canonical ``{"deals": [...]}`` dict.
Schema validation happens afterwards, in the prioritizer.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import MalformedModelResponseError

MAX_UNWRAP_STEPS = 4

_CODE_FENCE = re.compile(r'^```[a-zA-Z]*\s*\n(?P<body>.*?)\n?```$', re.DOTALL)


class PayloadShape(str, Enum):
    """Recognized payload shapes."""

    WRAPPED = 'wrapped'
    NESTED = 'nested'
    JSON_STRING = 'json_string'
    BARE_LIST = 'bare_list'
    SINGLE_OBJECT = 'single_object'
    UNKNOWN = 'unknown'


@dataclass
class NormalizedPayload:
    """Canonical payload plus the shapes encountered on the way."""

    data: dict[str, list[Any]]
    shapes: list[PayloadShape] = field(default_factory=list)

    @property
    def was_repaired(self) -> bool:
        return self.shapes != [PayloadShape.WRAPPED]


def detect_shape(payload: Any) -> PayloadShape:
    """Classify a raw payload."""
    if isinstance(payload, str):
        return PayloadShape.JSON_STRING
    if isinstance(payload, dict):
        if 'deals' in payload:
            return PayloadShape.WRAPPED
        # a deal entry has several required fields, never a single key
        if len(payload) == 1 and isinstance(next(iter(payload.values())), (dict, list, str)):
            return PayloadShape.NESTED
        return PayloadShape.SINGLE_OBJECT
    if isinstance(payload, list):
        return PayloadShape.BARE_LIST
    return PayloadShape.UNKNOWN


def strip_code_fence(payload: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    text = payload.strip()
    match = _CODE_FENCE.match(text)
    return match.group('body') if match else text


def unwrap_json_string(payload: str) -> Any:
    """Decode a JSON-encoded payload, tolerating a Markdown code fence."""
    try:
        return json.loads(strip_code_fence(payload))
    except json.JSONDecodeError as exc:
        raise MalformedModelResponseError(
            f'Model payload is not valid JSON: {exc.msg}',
            context={'position': exc.pos, 'preview': payload[:200]},
        ) from exc


def unwrap_wrapped(payload: dict[str, Any]) -> Any:
    """Return the value under ``deals``."""
    return payload['deals']


def unwrap_nested(payload: dict[str, Any]) -> Any:
    """Return the value under the only key."""
    return next(iter(payload.values()))


def wrap_bare_list(payload: list[Any]) -> dict[str, list[Any]]:
    return {'deals': payload}


def wrap_single_object(payload: dict[str, Any]) -> dict[str, list[Any]]:
    return {'deals': [payload]}


def normalize_priority_payload(payload: Any) -> NormalizedPayload:
    """
    Normalize a raw tool-call payload into ``{"deals": [...]}``.

    Args:
        payload: Raw arguments from the model (string, dict or list)

    Returns:
        NormalizedPayload with the canonical dict and the shape trail

    Raises:
        MalformedModelResponseError: When no canonical shape is reached
    """
    shapes: list[PayloadShape] = []
    current = payload

    for _ in range(MAX_UNWRAP_STEPS):
        shape = detect_shape(current)
        shapes.append(shape)

        if shape is PayloadShape.JSON_STRING:
            current = unwrap_json_string(current)
        elif shape is PayloadShape.WRAPPED:
            inner = unwrap_wrapped(current)
            if isinstance(inner, list):
                return NormalizedPayload(data=wrap_bare_list(inner), shapes=shapes)
            if inner is None:
                break
            # {"deals": "<json>"} or {"deals": {...single entry...}}
            current = inner
        elif shape is PayloadShape.NESTED:
            current = unwrap_nested(current)
        elif shape is PayloadShape.BARE_LIST:
            return NormalizedPayload(data=wrap_bare_list(current), shapes=shapes)
        elif shape is PayloadShape.SINGLE_OBJECT:
            return NormalizedPayload(data=wrap_single_object(current), shapes=shapes)
        else:
            break

    raise MalformedModelResponseError(
        'Model payload could not be normalized to {"deals": [...]}',
        context={
            'shapes': [s.value for s in shapes],
            'payload_type': type(current).__name__,
        },
    )
