"""
Key manager - derives and persists the per-installation secret that encrypts
the record collection. There is no fixed fallback key.
"""

import hashlib
import os
import secrets
import socket
import threading
import time
import uuid
from typing import Optional

from .config import SECRET_KEY
from .codec import KEY_SIZE
from .db import IRecordSubstrate
from .errors import CorruptData


def _installation_fingerprint() -> bytes:
    """Host-specific entropy mixed into a newly generated secret."""
    parts = [
        socket.gethostname(),
        format(uuid.getnode(), 'x'),
        str(os.getpid()),
    ]
    return "|".join(parts).encode('utf-8')


def generate_secret() -> bytes:
    """Hash installation fingerprint, wall-clock time and random bytes into a 32-byte key."""
    digest = hashlib.sha256()
    digest.update(_installation_fingerprint())
    digest.update(str(time.time_ns()).encode('ascii'))
    digest.update(secrets.token_bytes(32))
    return digest.digest()


class KeyManager:
    """Owns the installation secret stored in the substrate."""

    def __init__(self, substrate: IRecordSubstrate, key_name: str = SECRET_KEY):
        self.substrate = substrate
        self.key_name = key_name
        self._secret: Optional[bytes] = None
        self._lock = threading.Lock()

    def get_or_create_key(self) -> bytes:
        """
        Return the installation secret, generating and persisting it on first use.

        Raises:
            StorageUnavailable: If the substrate cannot be read or written
            CorruptData: If a stored secret has the wrong length
        """
        with self._lock:
            if self._secret is not None:
                return self._secret

            stored = self.substrate.get(self.key_name)
            if stored is None:
                stored = generate_secret()
                self.substrate.set(self.key_name, stored)
            elif len(stored) != KEY_SIZE:
                raise CorruptData(f"Stored secret has {len(stored)} bytes, expected {KEY_SIZE}")

            self._secret = stored
            return self._secret

    def fingerprint(self) -> str:
        """Short, non-reversible identifier of the secret for diagnostics."""
        return hashlib.sha256(self.get_or_create_key()).hexdigest()[:12]
