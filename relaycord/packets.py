"""
Created by Epic at 9/2/20

Builders and codecs for the gateway envelope: {"op": int, "d": any, "s"?: int, "t"?: str}
"""
from sys import platform

from ujson import dumps, loads

from .opcodes import Opcode

__all__ = ("encode", "decode", "identify")


def encode(opcode: int, data, sequence=None, event_name=None) -> str:
    """
    Serializes a gateway command. "s" and "t" are only written for DISPATCH frames.
    """
    payload = {"op": int(opcode), "d": data}
    if opcode == Opcode.DISPATCH:
        payload["s"] = sequence
        payload["t"] = event_name
    return dumps(payload)


def decode(raw) -> dict:
    """
    Parses an inbound frame.
    :raises ValueError: if the frame isn't a JSON object with an "op" field
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    data = loads(raw)
    if not isinstance(data, dict) or "op" not in data:
        raise ValueError(f"Not a gateway envelope: {raw!r}")
    data.setdefault("d", None)
    data.setdefault("s", None)
    data.setdefault("t", None)
    return data


def identify(token: str, intents: int, *, shard=None):
    payload = {
        "token": token,
        "properties": {
            "$os": platform,
            "$browser": "relaycord",
            "$device": "relaycord"
        },
        "compress": False,
        "intents": intents
    }
    if shard is not None:
        payload["shard"] = list(shard)
    return payload
