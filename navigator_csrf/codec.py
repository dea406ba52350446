"""
CSRF Codec — Authenticated encoding of cookie values.

A sealed value is built in layers:
- Serialize: value → bytes (orjson by default, raw bytes optionally)
- Encrypt (optional): HKDF(block_key, "navigator-csrf-block") → AEAD
  → [nonce 12B][ciphertext + tag 16B], cookie name as associated data
- Sign: HMAC-SHA256(hash_key, "name|timestamp|b64(payload)")
- Output: unpadded urlsafe-b64("timestamp|b64(payload)|mac")

The cookie name takes part in the MAC but is not part of the output, so a
value sealed for one cookie cannot be replayed under another name.

Security Note:
    Never log keys, payloads or sealed values.
"""
import os
import time
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import orjson
from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .exceptions import DecodeError, EncodingError

logger = logging.getLogger("navigator.csrf")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32
DEFAULT_MAX_AGE = 86400 * 30
DEFAULT_MAX_LENGTH = 4096

_BYTES_WRAPPER_KEY = "__csrf_bytes_b64__"

CIPHERS: dict[str, type] = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


# ---------------------------------------------------------------------------
# Base64 helpers
# ---------------------------------------------------------------------------

def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    """Decode unpadded urlsafe base64, rejecting non-canonical input.

    Raises:
        ValueError: On characters outside the alphabet, a bad length, or an
            encoding that does not re-encode to the same text.
    """
    if len(data) % 4 == 1:
        raise ValueError("invalid base64 length")
    padded = data + b"=" * (-len(data) % 4)
    decoded = base64.b64decode(padded, altchars=b"-_", validate=True)
    if _b64encode(decoded) != data:
        raise ValueError("non-canonical base64")
    return decoded


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte key from ``seed`` using HKDF-SHA256."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------

class JSONSerializer:
    """orjson serializer; bytes are wrapped in a base64 envelope."""

    def dumps(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            wrapped = {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
            return orjson.dumps(wrapped)
        return orjson.dumps(value)

    def loads(self, data: bytes) -> Any:
        parsed = orjson.loads(data)
        if isinstance(parsed, dict) and _BYTES_WRAPPER_KEY in parsed and len(parsed) == 1:
            return base64.b64decode(parsed[_BYTES_WRAPPER_KEY], validate=True)
        return parsed


class RawSerializer:
    """Pass-through serializer for values that are already bytes."""

    def dumps(self, value: Any) -> bytes:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(
                f"RawSerializer only accepts bytes, got {type(value).__name__}"
            )
        return bytes(value)

    def loads(self, data: bytes) -> Any:
        return data


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------

class TokenCodec(ABC):
    """Authenticated encoding capability used by token stores."""

    @abstractmethod
    def encode(self, name: str, value: Any) -> str:
        """Seal ``value`` for the cookie ``name``.

        Raises:
            EncodingError: If the value cannot be sealed.
        """

    @abstractmethod
    def decode(self, name: str, sealed: str) -> Any:
        """Verify and unseal a value previously sealed for ``name``.

        Raises:
            DecodeError: On any integrity, expiry or format failure.
        """


class SecureCookieCodec(TokenCodec):
    """HMAC-signed, optionally encrypted cookie codec.

    Args:
        hash_key: Key for HMAC-SHA256 signing. Encoding fails without it.
        block_key: Optional key enabling payload encryption.
        max_age: Maximum age in seconds of a sealed value (0 disables).
        min_age: Minimum age in seconds of a sealed value (0 disables).
        max_length: Maximum length of a sealed value (0 disables).
        serializer: Object with ``dumps``/``loads``; defaults to JSON.
        cipher_backend: ``"aesgcm"`` or ``"chacha20"``.
        clock: Callable returning the current UNIX time.
    """

    def __init__(
        self,
        hash_key: Optional[bytes],
        block_key: Optional[bytes] = None,
        *,
        max_age: int = DEFAULT_MAX_AGE,
        min_age: int = 0,
        max_length: int = DEFAULT_MAX_LENGTH,
        serializer: Any = None,
        cipher_backend: str = "aesgcm",
        clock: Callable[[], float] = time.time,
    ):
        if max_age < 0 or min_age < 0 or max_length < 0:
            raise ValueError("max_age, min_age and max_length must not be negative")
        if cipher_backend not in CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {cipher_backend}")
        self._hash_key = hash_key
        self._aead = None
        if block_key:
            self._aead = CIPHERS[cipher_backend](
                derive_key(block_key, "navigator-csrf-block")
            )
        self._max_age = max_age
        self._min_age = min_age
        self._max_length = max_length
        self._serializer = serializer or JSONSerializer()
        self._clock = clock

    @property
    def max_age(self) -> int:
        return self._max_age

    def __repr__(self) -> str:
        return (
            f"<SecureCookieCodec encrypted={self._aead is not None} "
            f"max_age={self._max_age}>"
        )

    def _mac(self, name: str, timestamp: bytes, payload: bytes) -> hmac.HMAC:
        h = hmac.HMAC(self._hash_key, hashes.SHA256())
        h.update(name.encode("utf-8") + b"|" + timestamp + b"|" + payload)
        return h

    def _encrypt(self, name: str, plaintext: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, name.encode("utf-8"))

    def _decrypt(self, name: str, ciphertext: bytes) -> bytes:
        if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
            raise DecodeError("the value could not be decrypted")
        nonce = ciphertext[:NONCE_SIZE]
        try:
            return self._aead.decrypt(
                nonce, ciphertext[NONCE_SIZE:], name.encode("utf-8"),
            )
        except InvalidTag:
            raise DecodeError("the value could not be decrypted") from None

    def encode(self, name: str, value: Any) -> str:
        if not self._hash_key:
            raise EncodingError("hash key is not set")
        try:
            payload = self._serializer.dumps(value)
        except (TypeError, ValueError) as err:
            raise EncodingError(f"serialization failed: {err}") from err
        if self._aead is not None:
            payload = self._encrypt(name, payload)
        timestamp = str(int(self._clock())).encode("ascii")
        b64 = _b64encode(payload)
        mac = self._mac(name, timestamp, b64).finalize()
        sealed = _b64encode(b"|".join((timestamp, b64, mac))).decode("ascii")
        if self._max_length and len(sealed) > self._max_length:
            raise EncodingError("the value is too long")
        return sealed

    def decode(self, name: str, sealed: str) -> Any:
        if not self._hash_key:
            raise DecodeError("hash key is not set")
        if not sealed:
            raise DecodeError("the value is empty")
        if self._max_length and len(sealed) > self._max_length:
            raise DecodeError("the value is too long")
        try:
            raw = _b64decode(sealed.encode("ascii"))
        except ValueError:
            raise DecodeError("the value is not valid base64") from None
        parts = raw.split(b"|", 2)
        if len(parts) != 3:
            raise DecodeError("the value is not valid")
        timestamp, b64, mac = parts
        try:
            self._mac(name, timestamp, b64).verify(mac)
        except InvalidSignature:
            raise DecodeError("the value is not valid") from None
        if not timestamp.isdigit():
            raise DecodeError("invalid timestamp")
        issued = int(timestamp)
        now = int(self._clock())
        if self._min_age and issued > now - self._min_age:
            raise DecodeError("timestamp is too new")
        if self._max_age and issued < now - self._max_age:
            raise DecodeError("expired timestamp")
        try:
            payload = _b64decode(b64)
        except ValueError:
            raise DecodeError("the value is not valid base64") from None
        if self._aead is not None:
            payload = self._decrypt(name, payload)
        try:
            return self._serializer.loads(payload)
        except (TypeError, ValueError) as err:
            raise DecodeError("the value could not be deserialized") from err


class MultiCodec(TokenCodec):
    """Chain of codecs supporting key rotation.

    Values are always sealed with the first (current) codec; decoding tries
    each codec in order so cookies issued under a retired key stay valid
    until they expire.
    """

    def __init__(self, *codecs: TokenCodec):
        if not codecs:
            raise ValueError("MultiCodec requires at least one codec")
        self._codecs = codecs

    def encode(self, name: str, value: Any) -> str:
        return self._codecs[0].encode(name, value)

    def decode(self, name: str, sealed: str) -> Any:
        error: Optional[DecodeError] = None
        for idx, codec in enumerate(self._codecs):
            try:
                value = codec.decode(name, sealed)
            except DecodeError as err:
                error = err
                continue
            if idx > 0:
                logger.debug(
                    "CSRF cookie %s decoded with rotated codec #%d", name, idx,
                )
            return value
        raise error


def codecs_from_pairs(*key_pairs: Optional[bytes], **kwargs) -> MultiCodec:
    """Build a MultiCodec from a flat ``hash, block, hash, block...`` list.

    A trailing hash key without a block key gets signing only. Extra keyword
    arguments are passed to every ``SecureCookieCodec``.
    """
    if not key_pairs:
        raise ValueError("At least one hash key is required")
    codecs = []
    for i in range(0, len(key_pairs), 2):
        hash_key = key_pairs[i]
        block_key = key_pairs[i + 1] if i + 1 < len(key_pairs) else None
        codecs.append(SecureCookieCodec(hash_key, block_key, **kwargs))
    return MultiCodec(*codecs)
