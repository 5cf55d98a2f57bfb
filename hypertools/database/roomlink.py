"""
Room links — shareable tokens carrying a store's key pair.

A room link is the z-base-32 encoding (no padding) of
``discovery_key(32) || discovery_encryption_key(32)``.
"""
import base64
import binascii

from ..exceptions import RoomLinkError
from ..identity.keys import KEY_LENGTH, DerivedKeySet

ROOM_LINK_SIZE = 2 * KEY_LENGTH

_RFC4648_ALPHABET = b"ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_ZBASE32_ALPHABET = b"ybndrfg8ejkmcpqxot1uwisza345h769"
_TO_ZBASE32 = bytes.maketrans(_RFC4648_ALPHABET, _ZBASE32_ALPHABET)
_FROM_ZBASE32 = bytes.maketrans(_ZBASE32_ALPHABET, _RFC4648_ALPHABET)
_ZBASE32_CHARS = frozenset(_ZBASE32_ALPHABET)


def z32_encode(data: bytes) -> str:
    """Encode bytes as unpadded z-base-32."""
    return base64.b32encode(data).rstrip(b"=").translate(_TO_ZBASE32).decode("ascii")


def z32_decode(text: str) -> bytes:
    """Decode unpadded z-base-32.

    Raises:
        RoomLinkError: If ``text`` has characters outside the alphabet or an
            impossible length.
    """
    try:
        raw = text.strip().lower().encode("ascii")
    except UnicodeEncodeError as err:
        raise RoomLinkError("Room link contains non-ASCII characters") from err
    if not raw or any(c not in _ZBASE32_CHARS for c in raw):
        raise RoomLinkError("Room link is not z-base-32")
    padded = raw.translate(_FROM_ZBASE32) + b"=" * (-len(raw) % 8)
    try:
        return base64.b32decode(padded)
    except binascii.Error as err:
        raise RoomLinkError("Room link has an invalid length") from err


def encode_key_pair(key: bytes, encryption_key: bytes) -> str:
    if len(key) != KEY_LENGTH or len(encryption_key) != KEY_LENGTH:
        raise RoomLinkError(f"Room keys must be {KEY_LENGTH} bytes each")
    return z32_encode(key + encryption_key)


def encode_room_link(keys: DerivedKeySet) -> str:
    """Room link for the store opened with ``keys``."""
    return encode_key_pair(keys.discovery_public_key, keys.discovery_encryption_key)


def decode_room_link(link: str) -> tuple[bytes, bytes]:
    """Split a room link into ``(key, encryption_key)``.

    Raises:
        RoomLinkError: If the link does not decode to exactly 64 bytes.
    """
    decoded = z32_decode(link)
    if len(decoded) != ROOM_LINK_SIZE:
        raise RoomLinkError(
            f"Room link must decode to {ROOM_LINK_SIZE} bytes, got {len(decoded)}"
        )
    return decoded[:KEY_LENGTH], decoded[KEY_LENGTH:]
