# apitester/actions/crypto.py
"""
Message authentication code action.

Config:
    macType:      "hmac" or "cmac" (case-insensitive)
    algorithm:    hash name for HMAC ("sha256", "sha1", ...);
                  cipher name for CMAC ("aes", "aes-128-cbc", "aes-256", ...)
    key, data:    strings, decoded per keyEncoding / dataEncoding
                  ("utf8" default, "hex", "base64")
    encoding:     output encoding, "hex" (default), "base64" or "base64url"
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
from typing import Any, Mapping

from cryptography.hazmat.primitives import cmac
from cryptography.hazmat.primitives.ciphers import algorithms

from apitester.actions.base import AbstractAction, ActionContext
from apitester.suite_types import UnsupportedMacTypeError

_AES_RE = re.compile(r"^aes(?:-?(128|192|256))?(?:-[a-z0-9]+)?$")


def decode_input(value: Any, encoding: str) -> bytes:
    """Turn a config string into bytes."""
    if isinstance(value, bytes):
        return value
    text = value if isinstance(value, str) else str(value)
    enc = (encoding or "utf8").lower().replace("-", "")
    if enc in ("utf8", "utf", "binary", "latin1"):
        return text.encode("latin-1" if enc in ("binary", "latin1") else "utf-8")
    if enc == "hex":
        try:
            return bytes.fromhex(text)
        except ValueError:
            raise ValueError(f"invalid hex input: {text!r}")
    if enc == "base64":
        try:
            return base64.b64decode(text, validate=True)
        except binascii.Error:
            raise ValueError("invalid base64 input")
    raise ValueError(f"unsupported input encoding {encoding!r}")


def encode_output(raw: bytes, encoding: str) -> str:
    enc = (encoding or "hex").lower()
    if enc == "hex":
        return raw.hex()
    if enc == "base64":
        return base64.b64encode(raw).decode("ascii")
    if enc == "base64url":
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
    raise ValueError(f"unsupported output encoding {encoding!r}")


def compute_hmac(algorithm: str, key: bytes, data: bytes) -> bytes:
    name = (algorithm or "").lower().replace("-", "")
    if name not in hashlib.algorithms_available:
        raise ValueError(f"unsupported HMAC algorithm {algorithm!r}")
    return hmac.new(key, data, name).digest()


def compute_cmac(algorithm: str, key: bytes, data: bytes) -> bytes:
    m = _AES_RE.match((algorithm or "").lower())
    if not m:
        raise ValueError(f"unsupported CMAC algorithm {algorithm!r}")
    if m.group(1) and len(key) * 8 != int(m.group(1)):
        raise ValueError(f"{algorithm} needs a {m.group(1)}-bit key, got {len(key) * 8} bits")
    c = cmac.CMAC(algorithms.AES(key))
    c.update(data)
    return c.finalize()


class MacAction(AbstractAction):
    """HMAC or AES-CMAC over `data` under `key`."""

    @property
    def name(self) -> str:
        return "mac"

    def perform(self, config: Mapping[str, Any], context: ActionContext) -> str:
        mac_type = str(config.get("macType") or "").lower()
        if mac_type not in ("hmac", "cmac"):
            raise UnsupportedMacTypeError(config.get("macType"))

        for required in ("algorithm", "key", "data"):
            if config.get(required) is None:
                raise ValueError(f"mac action requires '{required}'")

        key = decode_input(config["key"], config.get("keyEncoding", "utf8"))
        data = decode_input(config["data"], config.get("dataEncoding", "utf8"))

        if mac_type == "hmac":
            raw = compute_hmac(config["algorithm"], key, data)
        else:
            raw = compute_cmac(config["algorithm"], key, data)

        return encode_output(raw, config.get("encoding", "hex"))
