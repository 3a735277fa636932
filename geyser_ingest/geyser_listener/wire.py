"""
JSON wire mapping for the Geyser subscribe stream.

Frames follow the proto3 JSON mapping of the Yellowstone SubscribeRequest /
SubscribeUpdate messages: camelCase keys, bytes as base64, 64-bit integers as
strings, enums by name, timestamps as RFC 3339. Both camelCase and snake_case
keys are accepted on input.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from datetime import datetime, timezone
from typing import Any

from geyser_ingest.core.exceptions import ProtocolError
from geyser_ingest.geyser_listener.models import (
    InboundUpdate,
    SubscribeRequest,
    TransactionMessage,
    TransactionMeta,
    TransactionPayload,
    TransactionUpdate,
)

# Oneof members of SubscribeUpdate.update_oneof (JSON names)
KNOWN_UPDATE_TAGS = (
    "account",
    "slot",
    "transaction",
    "transactionStatus",
    "block",
    "ping",
    "pong",
    "blockMeta",
    "entry",
)

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def _snake(name: str) -> str:
    return re.sub(r"([A-Z])", lambda m: "_" + m.group(1).lower(), name)


def _get(obj: dict[str, Any], name: str, default: Any = None) -> Any:
    """Look up a field by its JSON (camelCase) name, falling back to the proto field name."""
    if name in obj:
        return obj[name]
    return obj.get(_snake(name), default)


def _b64(value: Any) -> bytes:
    """Decode a base64 bytes field; malformed input decodes to b'' so the codec rejects it."""
    if not value:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, TypeError, ValueError):
        return b""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp (nanosecond precision is truncated to micros)."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    match = _RFC3339.match(str(value).strip())
    if not match:
        raise ProtocolError(f"invalid createdAt timestamp: {value!r}")
    frac = (match.group("frac") or "")[:6].ljust(6, "0")
    tz = match.group("tz")
    tz = "+00:00" if tz == "Z" else tz
    return datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 in UTC (inverse of parse_timestamp)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_transaction_info(info: dict[str, Any]) -> TransactionPayload:
    message = None
    inner = _get(info, "transaction")
    if isinstance(inner, dict):
        raw_message = _get(inner, "message")
        if isinstance(raw_message, dict):
            keys = _get(raw_message, "accountKeys") or []
            message = TransactionMessage(account_keys=tuple(_b64(k) for k in keys))

    meta = None
    raw_meta = _get(info, "meta")
    if isinstance(raw_meta, dict):
        # proto3 JSON omits zero-valued fields
        fee = _get(raw_meta, "fee")
        meta = TransactionMeta(fee=0 if fee is None else fee, err=_get(raw_meta, "err"))

    return TransactionPayload(
        signature=_b64(_get(info, "signature")),
        message=message,
        meta=meta,
        is_vote=bool(_get(info, "isVote", False)),
    )


def _optional_int(value: Any) -> int | None:
    """Slot and pong id are only logged; a malformed value becomes None instead of failing the update."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_transaction_update(body: dict[str, Any]) -> TransactionUpdate:
    info = _get(body, "transaction")
    return TransactionUpdate(
        transaction=_parse_transaction_info(info) if isinstance(info, dict) else None,
        slot=_optional_int(_get(body, "slot")),
    )


def parse_update(frame: str | bytes | dict[str, Any]) -> InboundUpdate:
    """
    Map one inbound frame to an InboundUpdate.

    Raises ProtocolError when the frame is not a JSON object or the timestamp is malformed.
    Tags other than transaction/ping/pong come back as UNKNOWN with raw_kind set.
    """
    if isinstance(frame, (str, bytes, bytearray)):
        try:
            frame = json.loads(frame)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"frame is not valid JSON: {e}") from e
    if not isinstance(frame, dict):
        raise ProtocolError(f"frame must be a JSON object, got {type(frame).__name__}")

    created_at = parse_timestamp(_get(frame, "createdAt"))
    filters = tuple(str(f) for f in (_get(frame, "filters") or ()))

    tag = next((t for t in KNOWN_UPDATE_TAGS if _get(frame, t) is not None), None)
    if tag == "transaction":
        body = _get(frame, "transaction")
        if not isinstance(body, dict):
            raise ProtocolError("transaction update body must be an object")
        return InboundUpdate.for_transaction(_parse_transaction_update(body), created_at, filters)
    if tag == "ping":
        return InboundUpdate.ping(created_at, filters)
    if tag == "pong":
        body = _get(frame, "pong") or {}
        pong_id = _get(body, "id") if isinstance(body, dict) else None
        return InboundUpdate.pong(_optional_int(pong_id), created_at)
    return InboundUpdate.unknown(tag, created_at)


def request_to_dict(request: SubscribeRequest) -> dict[str, Any]:
    """Proto3 JSON form of a SubscribeRequest; unset fields are omitted."""
    body: dict[str, Any] = {}
    if request.transactions:
        body["transactions"] = {
            name: {
                key: value
                for key, value in (
                    ("vote", f.vote),
                    ("failed", f.failed),
                    ("signature", f.signature),
                    ("accountInclude", list(f.account_include)),
                    ("accountExclude", list(f.account_exclude)),
                    ("accountRequired", list(f.account_required)),
                )
                if value is not None
            }
            for name, f in request.transactions.items()
        }
    if request.commitment is not None:
        body["commitment"] = request.commitment.wire_name
    if request.ping is not None:
        body["ping"] = {"id": request.ping.id}
    return body


def encode_request(request: SubscribeRequest) -> str:
    """Serialize a SubscribeRequest to one text frame."""
    return json.dumps(request_to_dict(request), separators=(",", ":"))
