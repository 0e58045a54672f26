"""
Codec - AES-256-GCM encryption of the serialized record collection.

Ciphertext layout is ``nonce (12) || tag (16) || ciphertext``.
"""

import json
import os
from typing import Any, Iterable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import CorruptData
from .schema import serialize_record

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
PBKDF2_ITERATIONS = 100000


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive encryption key from passphrase using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode('utf-8'))


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt data using AES-256-GCM."""
    if len(key) != KEY_SIZE:
        raise ValueError(f"key must be {KEY_SIZE} bytes, got {len(key)}")

    nonce = os.urandom(NONCE_SIZE)
    encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
    ciphertext = encryptor.update(plaintext) + encryptor.finalize()

    return nonce + encryptor.tag + ciphertext


def decrypt(encrypted_data: bytes, key: bytes) -> bytes:
    """Decrypt data using AES-256-GCM.

    Any failure to authenticate (wrong key, truncation, tampering, input that
    was never ciphertext) raises CorruptData.
    """
    if len(key) != KEY_SIZE:
        raise CorruptData(f"key must be {KEY_SIZE} bytes, got {len(key)}")
    if len(encrypted_data) < NONCE_SIZE + TAG_SIZE:
        raise CorruptData("Encrypted data too short")

    nonce = encrypted_data[:NONCE_SIZE]
    tag = encrypted_data[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
    ciphertext = encrypted_data[NONCE_SIZE + TAG_SIZE:]

    decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
    try:
        return decryptor.update(ciphertext) + decryptor.finalize()
    except InvalidTag as e:
        raise CorruptData("Ciphertext failed authentication (wrong key or corrupted data)") from e


def encode_json(data: Any, pretty: bool = False) -> bytes:
    """Serialize a JSON-safe structure to UTF-8 bytes."""
    if pretty:
        return json.dumps(data, indent=2, ensure_ascii=False).encode('utf-8')
    return json.dumps(data, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def encode_records(records: Iterable, pretty: bool = False) -> bytes:
    """Serialize records (Record models or wire dicts) as a JSON array."""
    items = [r if isinstance(r, dict) else serialize_record(r) for r in records]
    return encode_json(items, pretty=pretty)


def decode_json(plaintext: bytes) -> Any:
    """Parse decrypted bytes, refusing anything that is not well-formed JSON."""
    try:
        return json.loads(plaintext.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptData(f"Decrypted payload is not valid JSON: {e}") from e
