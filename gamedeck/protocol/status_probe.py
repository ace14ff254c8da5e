"""Minimal client for the game server's status ("server list ping") protocol.

The probe is advisory telemetry: every transport, timeout or parse failure
yields ``None`` and callers treat repeated ``None`` as "offline".
"""

import asyncio
import json
import logging
import struct
from typing import Any, Optional

from pydantic import BaseModel

from gamedeck.protocol.varint import encode_varint, read_varint

logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL_VERSION = 47
DEFAULT_TIMEOUT_SECONDS = 3.0
NEXT_STATE_STATUS = 1
PACKET_ID = 0x00

# Upper bound for a status response; real servers stay far below this.
MAX_RESPONSE_BYTES = 2 * 1024 * 1024


class StatusInfo(BaseModel):
    protocol: int = 0
    version: str = "Unknown"
    motd: str = ""
    players_online: int = 0
    players_max: int = 0


class ProtocolError(ValueError):
    """Malformed frame in a status response."""


def _string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return encode_varint(len(raw)) + raw


def _frame(payload: bytes) -> bytes:
    return encode_varint(len(payload)) + payload


def build_handshake(host: str, port: int, protocol_version: int = DEFAULT_PROTOCOL_VERSION) -> bytes:
    payload = (
        encode_varint(PACKET_ID)
        + encode_varint(protocol_version)
        + _string(host)
        + struct.pack(">H", port & 0xFFFF)
        + encode_varint(NEXT_STATE_STATUS)
    )
    return _frame(payload)


def build_status_request() -> bytes:
    return _frame(encode_varint(PACKET_ID))


def extract_motd(description: Any) -> str:
    """Flatten a plain or rich-text description into its visible text."""
    if isinstance(description, str):
        return description
    if not isinstance(description, dict):
        return ""
    parts = []
    text = description.get("text")
    if isinstance(text, str):
        parts.append(text)
    extra = description.get("extra")
    if isinstance(extra, list):
        for fragment in extra:
            if isinstance(fragment, dict) and isinstance(fragment.get("text"), str):
                parts.append(fragment["text"])
            elif isinstance(fragment, str):
                parts.append(fragment)
    return "".join(parts)


def _int_field(section: Any, key: str) -> int:
    if isinstance(section, dict) and isinstance(section.get(key), int):
        return section[key]
    return 0


def parse_status(payload: str) -> StatusInfo:
    doc = json.loads(payload)
    if not isinstance(doc, dict):
        raise ProtocolError("Status payload is not a JSON object")
    version = doc.get("version")
    name = version.get("name") if isinstance(version, dict) else None
    players = doc.get("players")
    return StatusInfo(
        protocol=_int_field(version, "protocol"),
        version=name if isinstance(name, str) else "Unknown",
        motd=extract_motd(doc.get("description", "")),
        players_online=_int_field(players, "online"),
        players_max=_int_field(players, "max"),
    )


async def _exchange(host: str, port: int) -> StatusInfo:
    reader, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(build_handshake(host, port))
        writer.write(build_status_request())
        await writer.drain()

        packet_length = await read_varint(reader)
        if packet_length <= 0 or packet_length > MAX_RESPONSE_BYTES:
            raise ProtocolError(f"Bad packet length {packet_length}")
        packet_id = await read_varint(reader)
        if packet_id != PACKET_ID:
            raise ProtocolError(f"Unexpected packet id {packet_id}")
        json_length = await read_varint(reader)
        if json_length > MAX_RESPONSE_BYTES:
            raise ProtocolError(f"Bad payload length {json_length}")
        raw = await reader.readexactly(json_length) if json_length else b""
        return parse_status(raw.decode("utf-8"))
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


async def probe(host: str, port: int, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Optional[StatusInfo]:
    """Ask a server for its status. Returns None if it does not answer properly in time."""
    try:
        return await asyncio.wait_for(_exchange(host, port), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug("Status probe to %s:%s timed out after %ss", host, port, timeout)
    except (OSError, asyncio.IncompleteReadError, ValueError) as exc:
        # ValueError covers VarIntError, ProtocolError, JSON and UTF-8 decoding.
        logger.debug("Status probe to %s:%s failed: %s", host, port, exc)
    return None
