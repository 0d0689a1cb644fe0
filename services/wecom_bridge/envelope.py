"""AES-256-CBC envelope codec for WeCom callback payloads.

Plaintext layout, before padding::

    [16 random bytes][4-byte big-endian length L][L message bytes][receive id]

The IV is the first 16 bytes of the key. WeCom mandates this, so it is kept
as-is for wire compatibility.
"""

import base64
import binascii
import os
import struct
from typing import Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from services.wecom_bridge.errors import FormatError
from services.wecom_bridge.models import DecryptedEnvelope

AES_BLOCK_SIZE = 16
# WeCom pads to 32-byte blocks, not the AES block size
PAD_BLOCK_SIZE = 32
RANDOM_PREFIX_SIZE = 16
HEADER_SIZE = RANDOM_PREFIX_SIZE + 4


def pkcs7_pad(data: bytes, block_size: int = PAD_BLOCK_SIZE) -> bytes:
    pad_length = block_size - (len(data) % block_size)
    return data + bytes([pad_length] * pad_length)


def pkcs7_unpad(data: bytes, block_size: int = PAD_BLOCK_SIZE) -> bytes:
    """Strip padding by the last-byte rule; leave data alone if the byte is out of range."""
    if not data:
        return data
    pad_length = data[-1]
    if pad_length < 1 or pad_length > block_size:
        return data
    return data[:-pad_length]


class EnvelopeCodec:
    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError(f"AES-256 key must be 32 bytes, got {len(key)}")
        self._key = key
        self._iv = key[:AES_BLOCK_SIZE]

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    def decrypt(self, ciphertext_b64: str) -> DecryptedEnvelope:
        try:
            encrypted = base64.b64decode(ciphertext_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise FormatError(f"Malformed ciphertext: {e}", error="ciphertext_not_base64")

        if not encrypted or len(encrypted) % AES_BLOCK_SIZE:
            raise FormatError(
                f"Ciphertext length {len(encrypted)} is not a multiple of {AES_BLOCK_SIZE}",
                error="ciphertext_misaligned",
            )

        decryptor = self._cipher().decryptor()
        plain = pkcs7_unpad(decryptor.update(encrypted) + decryptor.finalize())

        if len(plain) < HEADER_SIZE:
            raise FormatError("Decrypted envelope is truncated", error="envelope_truncated")

        (msg_len,) = struct.unpack(">I", plain[RANDOM_PREFIX_SIZE:HEADER_SIZE])
        msg_end = HEADER_SIZE + msg_len
        if msg_end > len(plain):
            raise FormatError(
                f"Declared message length {msg_len} exceeds envelope", error="envelope_length_mismatch"
            )

        try:
            message = plain[HEADER_SIZE:msg_end].decode("utf-8")
            receive_id = plain[msg_end:].decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"Envelope is not valid UTF-8: {e}", error="envelope_not_utf8")

        return DecryptedEnvelope(message=message, receive_id=receive_id)

    def encrypt(self, message: str, receive_id: str, prefix: Optional[bytes] = None) -> str:
        if prefix is None:
            prefix = os.urandom(RANDOM_PREFIX_SIZE)
        if len(prefix) != RANDOM_PREFIX_SIZE:
            raise ValueError(f"prefix must be {RANDOM_PREFIX_SIZE} bytes")

        body = message.encode("utf-8")
        plain = prefix + struct.pack(">I", len(body)) + body + receive_id.encode("utf-8")

        encryptor = self._cipher().encryptor()
        ciphertext = encryptor.update(pkcs7_pad(plain)) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode("ascii")
