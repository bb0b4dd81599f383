"""
auth/vault.py -- Password custody: hashing, verification, classification.

Security design decisions:
  KDF: scrypt (memory-hard) via the cryptography package, N=2^14, r=8, p=1,
       64-byte key, fresh 16-byte salt per hash. Parameters are fixed so that
       records written by the previous system verify unchanged.

  Record format: "scrypt$<base64 salt>$<base64 key>". The scheme tag makes the
       record self-describing, so is_hashed() is a prefix check with no
       cryptographic work.

  Legacy plaintext: anything without the scheme tag. verify_password() still
       accepts it so that the login route can upgrade the record on the first
       successful login; once upgraded the plaintext is never compared again.

  Comparison: hmac.compare_digest for both schemes. Never short-circuit on the
       first differing byte.

  Failure semantics: a missing or malformed record is a verification failure,
       never an exception. Callers treat False uniformly as "bad credentials".

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import secrets
from typing import Optional

from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from auth.models import HASHED_SCHEME, LEGACY_SCHEME, CredentialRecord

_SALT_BYTES = 16
_KEY_BYTES = 64
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1

_PREFIX = f"{HASHED_SCHEME}$"


def _derive(plain: str, salt: bytes, length: int) -> bytes:
    kdf = Scrypt(salt=salt, length=length, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)
    return kdf.derive(plain.encode("utf-8"))


def hash_password(plain: str) -> str:
    """Return a self-describing scrypt record for the given plaintext."""
    salt = secrets.token_bytes(_SALT_BYTES)
    key = _derive(plain, salt, _KEY_BYTES)
    return encode_record(CredentialRecord(scheme=HASHED_SCHEME, salt=salt, key=key))


def encode_record(record: CredentialRecord) -> str:
    """Serialize a CredentialRecord back to its stored text form."""
    if record.scheme == HASHED_SCHEME:
        salt = base64.b64encode(record.salt).decode("ascii")
        key = base64.b64encode(record.key).decode("ascii")
        return f"{HASHED_SCHEME}${salt}${key}"
    return record.value


def parse_record(stored: Optional[str]) -> Optional[CredentialRecord]:
    """Parse stored credential text. Returns None for empty or malformed hashed records.

    Malformed means: wrong segment count, undecodable base64, or an empty
    salt/key. Legacy plaintext always parses.
    """
    raw = stored or ""
    if not raw:
        return None
    if not raw.startswith(_PREFIX):
        return CredentialRecord(scheme=LEGACY_SCHEME, value=raw)
    parts = raw.split("$")
    if len(parts) != 3:
        return None
    try:
        salt = base64.b64decode(parts[1], validate=True)
        key = base64.b64decode(parts[2], validate=True)
    except (binascii.Error, ValueError):
        return None
    if not salt or not key:
        return None
    return CredentialRecord(scheme=HASHED_SCHEME, salt=salt, key=key)


def verify_password(plain: str, stored: Optional[str]) -> bool:
    """Return True if plain matches the stored record (hashed or legacy)."""
    record = parse_record(stored)
    if record is None:
        return False
    try:
        if record.scheme == HASHED_SCHEME:
            actual = _derive(plain, record.salt, len(record.key))
            return hmac.compare_digest(actual, record.key)
        return hmac.compare_digest(plain.encode("utf-8"), record.value.encode("utf-8"))
    except (UnicodeEncodeError, ValueError):
        return False


def is_hashed(stored: Optional[str]) -> bool:
    """Classify by scheme tag only. No decoding, no KDF."""
    return (stored or "").startswith(_PREFIX)

