"""
vaultless - Derivation Engine

Turns a master secret plus a site context into a reproducible password.
Nothing is stored: the same inputs always give the same output, and any
change to an input gives an unrelated one.

Pipeline:
    1. Master secret -> PBKDF2-HMAC-SHA256 (200k rounds) -> IKM (32 bytes)
       salt = "<salt label>|<domain>"
    2. IKM -> HKDF-SHA256 -> 128-byte stream
       info = "<domain>|<user>|<counter>|<install seed>|<user seed>"
    3. Stream -> rejection sampler -> one symbol per accepted byte
    4. Symbols -> mode-specific layout (default, alphanumsym, base64url, uuid4)

Why two KDFs?
    - PBKDF2 is the slow part: it is the only thing standing between an
      offline attacker and the master secret
    - HKDF is the cheap part: it binds user, counter and the per-install
      seeds without paying the stretching cost again
"""

import hashlib
from dataclasses import dataclass
from typing import List, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config
from .errors import EntropyExhausted, InvalidRequest
from .seeds import InstallSeeds


# =============================================================================
# Request
# =============================================================================

@dataclass(frozen=True)
class DerivationRequest:
    """Everything a derivation depends on. Never persisted."""

    master: str
    domain: str
    user: str = ""
    counter: int = 1
    length: int = config.DEFAULT_LENGTH
    mode: str = config.MODE_DEFAULT
    salt_label: str = config.SALT_TRUSTED
    seeds: InstallSeeds = InstallSeeds.empty()

    def validate(self) -> None:
        if not isinstance(self.counter, int) or self.counter < 1:
            raise InvalidRequest(f"Counter must be an integer >= 1 (got {self.counter!r})")
        if not isinstance(self.mode, str):
            raise InvalidRequest(f"Mode must be a string (got {self.mode!r})")
        if self.mode == config.MODE_UUID4:
            return
        if not isinstance(self.length, int) or not config.MIN_LENGTH <= self.length <= config.MAX_LENGTH:
            raise InvalidRequest(
                f"Length must be between {config.MIN_LENGTH} and {config.MAX_LENGTH} (got {self.length!r})"
            )


# =============================================================================
# Key Derivation
# =============================================================================

def stretch_master(master: str, salt_label: str, domain: str) -> bytes:
    """
    Stretch the master secret into site-specific key material.

    The salt label picks the derivation "universe" (trusted, decoy,
    expired, custom override) and the domain makes the IKM site-specific,
    so one leaked site password says nothing about another.

    Returns:
        32-byte IKM
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=config.IKM_SIZE,
        salt=f"{salt_label}|{domain}".encode("utf-8"),
        iterations=config.PBKDF2_ITERATIONS,
    )
    return kdf.derive(master.encode("utf-8"))


def expand_stream(ikm: bytes, domain: str, user: str, counter: int, seeds: InstallSeeds) -> bytes:
    """
    Expand IKM into the pseudorandom byte stream consumed by the sampler.

    128 bytes is enough for the worst case (64 symbols from an 85-symbol
    charset plus four distinct position picks) with room for rejections.
    """
    info = f"{domain}|{user or ''}|{counter}|{seeds.install_seed}|{seeds.user_seed}"
    h = HKDF(
        algorithm=hashes.SHA256(),
        length=config.STREAM_SIZE,
        salt=None,
        info=info.encode("utf-8"),
    )
    return h.derive(ikm)


# =============================================================================
# Unbiased Selection
# =============================================================================

class EntropyStream:
    """Read-once view over derived bytes. The cursor only moves forward."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.cursor = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.cursor

    def take(self, n: int) -> bytes:
        if self.remaining < n:
            raise EntropyExhausted(f"Need {n} bytes, {self.remaining} left in stream")
        chunk = self.data[self.cursor:self.cursor + n]
        self.cursor += n
        return chunk

    def pick(self, n: int) -> int:
        return pick_uniform(self, n)


def pick_uniform(stream: EntropyStream, n: int) -> int:
    """
    Pick an index in [0, n) without modulo bias.

    Bytes at or above the largest multiple of n below 256 are thrown
    away; the first byte under that bound is reduced mod n. Each byte is
    looked at once.

    Raises:
        EntropyExhausted: stream ran dry before a byte was accepted
    """
    if not 1 <= n <= 256:
        raise ValueError(f"Cannot pick uniformly among {n} symbols")
    bound = (256 // n) * n
    while stream.cursor < len(stream.data):
        b = stream.data[stream.cursor]
        stream.cursor += 1
        if b < bound:
            return b % n
    raise EntropyExhausted("Not enough entropy bytes")


# =============================================================================
# Output Assembly
# =============================================================================

def format_uuid4(stream: EntropyStream) -> str:
    """Canonical 8-4-4-4-12 UUID from 16 stream bytes, version 4, RFC variant."""
    raw = bytearray(stream.take(16))
    raw[6] = (raw[6] & 0x0F) | 0x40
    raw[8] = (raw[8] & 0x3F) | 0x80
    h = raw.hex()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def assemble(stream: EntropyStream, length: int, mode: str) -> str:
    """
    Lay out a password of exactly ``length`` symbols (uuid4 ignores length).

    alphanumsym: four distinct positions are chosen first and receive one
    lowercase, uppercase, digit and symbol in that order.
    base64url: one position is forced to '-' or '_'.
    Every other position is filled from the mode's full charset.
    """
    if mode == config.MODE_UUID4:
        return format_uuid4(stream)

    out: List[Optional[str]] = [None] * length

    if mode == config.MODE_ALPHANUMSYM:
        positions: List[int] = []
        while len(positions) < len(config.REQUIRED_CLASSES) and len(positions) < length:
            p = stream.pick(length)
            if p not in positions:
                positions.append(p)
        for charset, p in zip(config.REQUIRED_CLASSES, positions):
            out[p] = charset[stream.pick(len(charset))]
    elif mode == config.MODE_BASE64URL:
        p = stream.pick(length)
        out[p] = config.BASE64URL_SPECIALS[stream.pick(len(config.BASE64URL_SPECIALS))]

    charset = config.BASE64URL_CHARSET if mode == config.MODE_BASE64URL else config.FULL_CHARSET
    for i in range(length):
        if out[i] is None:
            out[i] = charset[stream.pick(len(charset))]

    return "".join(out)


def derive_password(request: DerivationRequest) -> str:
    """
    Derive the password for one request.

    Deterministic across calls and restarts given the same seeds. Takes a
    few hundred milliseconds because of the stretching step.

    Raises:
        InvalidRequest: length/counter out of range
        EntropyExhausted: stream ran out; nothing partial is returned
    """
    request.validate()
    ikm = stretch_master(request.master, request.salt_label, request.domain)
    stream = EntropyStream(
        expand_stream(ikm, request.domain, request.user, request.counter, request.seeds)
    )
    return assemble(stream, request.length, request.mode)


# =============================================================================
# Visual Fingerprint
# =============================================================================

def passmoji(password: str) -> str:
    """
    Map a password to one emoji so a typo in the master secret is visible
    at a glance without showing the password itself.
    """
    if not password:
        return ""
    digest = hashlib.sha256((password + config.VISUALIZATION_SALT).encode("utf-8")).digest()
    return config.PASSMOJI_EMOJIS[digest[0] % len(config.PASSMOJI_EMOJIS)]
