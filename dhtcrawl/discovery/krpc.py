"""KRPC wire helpers (BEP 5) used by the crawler.

Bencode encoding/decoding of query and reply messages, conversion of
compact peer/node addresses to ``ip:port`` strings, and parsing of
destination addresses. Every decode helper returns ``None`` when the input
cannot be used; the caller decides what "absent" means at that point.
"""

from __future__ import annotations

import ipaddress
import os
import struct
from dataclasses import dataclass
from typing import Any, Iterator

import bencodepy
from bencodepy.exceptions import DecodingError

from dhtcrawl.utils.exceptions import BencodeError, InvalidInfoHashError

ID_LENGTH = 20
TRANSACTION_ID_LENGTH = 2
COMPACT_IPV4_LENGTH = 6
COMPACT_IPV6_LENGTH = 18
# 20 byte node id followed by a compact IPv4 address
COMPACT_NODE_LENGTH = ID_LENGTH + COMPACT_IPV4_LENGTH

# Errors a bencode decoder can surface on hostile input
_DECODE_ERRORS = (
    DecodingError,
    ValueError,
    TypeError,
    IndexError,
    KeyError,
    RecursionError,
)


@dataclass
class DecodedMessage:
    """Fields of an inbound KRPC message the crawler cares about."""

    transaction_id: int
    values: list[Any] | None = None
    nodes: bytes | None = None


def generate_node_id() -> bytes:
    """Generate a random 160-bit node ID."""
    while True:
        node_id = os.urandom(ID_LENGTH)
        # Ensure it's not all zeros or all ones
        if node_id not in (b"\x00" * ID_LENGTH, b"\xff" * ID_LENGTH):
            return node_id


def normalize_info_hash(info_hash: str) -> str:
    """Return ``info_hash`` as lowercase hex, raising if it is not 160 bits."""
    if not isinstance(info_hash, str):
        msg = "Info hash must be a hex string"
        raise InvalidInfoHashError(msg, {"info_hash": repr(info_hash)})
    value = info_hash.strip().lower()
    try:
        raw = bytes.fromhex(value)
    except ValueError as e:
        msg = "Info hash must be 40 hex characters"
        raise InvalidInfoHashError(msg, {"info_hash": info_hash}) from e
    if len(raw) != ID_LENGTH:
        msg = "Info hash must be 40 hex characters"
        raise InvalidInfoHashError(msg, {"info_hash": info_hash})
    return value


def transaction_id_to_bytes(transaction_id: int) -> bytes:
    """Pack a transaction id into its 2 byte big-endian wire form."""
    return struct.pack("!H", transaction_id)


def transaction_id_from_bytes(value: Any) -> int | None:
    """Read a 2 byte big-endian transaction id, ``None`` if malformed."""
    if not isinstance(value, (bytes, bytearray)) or len(value) != TRANSACTION_ID_LENGTH:
        return None
    return struct.unpack("!H", bytes(value))[0]


def encode_get_peers(transaction_id: int, node_id: bytes, info_hash: bytes) -> bytes:
    """Build and bencode a ``get_peers`` query."""
    message = {
        b"t": transaction_id_to_bytes(transaction_id),
        b"y": b"q",
        b"q": b"get_peers",
        b"a": {
            b"id": node_id,
            b"info_hash": info_hash,
        },
    }
    try:
        return bencodepy.encode(message)
    except Exception as e:
        msg = "Failed to encode get_peers query"
        raise BencodeError(msg, {"transaction_id": transaction_id}) from e


def decode_message(data: bytes) -> DecodedMessage | None:
    """Decode an inbound datagram.

    Returns ``None`` for anything that is not a bencoded dictionary with a
    well formed 2 byte transaction id. ``values`` and ``nodes`` are only set
    when the reply carries them with the expected types.
    """
    try:
        message = bencodepy.decode(data)
    except _DECODE_ERRORS:
        return None
    if not isinstance(message, dict):
        return None

    transaction_id = transaction_id_from_bytes(message.get(b"t"))
    if transaction_id is None:
        return None

    decoded = DecodedMessage(transaction_id=transaction_id)
    response = message.get(b"r")
    if isinstance(response, dict):
        values = response.get(b"values")
        if isinstance(values, list):
            decoded.values = values
        nodes = response.get(b"nodes")
        if isinstance(nodes, (bytes, bytearray)):
            decoded.nodes = bytes(nodes)
    return decoded


def decode_compact_address(data: Any) -> str | None:
    """Convert a compact IPv4 (6 byte) or IPv6 (18 byte) address to a string.

    IPv4 addresses are rendered ``ip:port`` and IPv6 ``[ip]:port``. Returns
    ``None`` for any other input.
    """
    if not isinstance(data, (bytes, bytearray)):
        return None
    data = bytes(data)
    if len(data) == COMPACT_IPV4_LENGTH:
        ip = str(ipaddress.IPv4Address(data[:4]))
        port = struct.unpack("!H", data[4:])[0]
        return f"{ip}:{port}"
    if len(data) == COMPACT_IPV6_LENGTH:
        ip = str(ipaddress.IPv6Address(data[:16]))
        port = struct.unpack("!H", data[16:])[0]
        return f"[{ip}]:{port}"
    return None


def iter_compact_nodes(blob: bytes) -> Iterator[bytes]:
    """Yield the compact address part of each complete 26 byte node record.

    A trailing partial record is ignored.
    """
    end = len(blob) - len(blob) % COMPACT_NODE_LENGTH
    for offset in range(0, end, COMPACT_NODE_LENGTH):
        yield blob[offset + ID_LENGTH : offset + COMPACT_NODE_LENGTH]


def parse_address(address: str) -> tuple[str, int] | None:
    """Split ``host:port`` (or ``[ipv6]:port``) into its parts.

    Returns ``None`` unless the port is numeric and in the range 1-65535.
    """
    if not isinstance(address, str):
        return None
    host, sep, port_str = address.rpartition(":")
    if not sep or not host or not (port_str.isascii() and port_str.isdigit()):
        return None
    port = int(port_str)
    if not 0 < port < 65536:
        return None
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not host:
        return None
    return host, port


def is_ip_literal(host: str) -> bool:
    """Return True if ``host`` is an IPv4 or IPv6 address rather than a name."""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True
