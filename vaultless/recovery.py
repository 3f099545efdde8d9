"""
vaultless - Recovery Module (Shamir Secret Sharing)

Losing the install seeds silently changes every derived password, so they
can be split into k-of-n mnemonic shares (SLIP-0039):
- Any k shares rebuild both seeds
- Fewer than k shares reveal nothing

The printed kit carries a short fingerprint of the seeds so a restored
install can be checked against the paper copy without exposing them.
"""

import time
import uuid
from typing import List, Optional

from cryptography.hazmat.primitives import hashes
from shamir_mnemonic import shamir

from .seeds import InstallSeeds

MAX_SHARES = 16  # SLIP-0039 member limit per group


def pack_seeds(seeds: InstallSeeds) -> bytes:
    """Two UUID seeds -> 32 bytes (SLIP-0039 wants an even length >= 16)."""
    try:
        return uuid.UUID(seeds.install_seed).bytes + uuid.UUID(seeds.user_seed).bytes
    except (ValueError, AttributeError, TypeError) as e:
        raise ValueError(f"Install seeds are not UUIDs and cannot be packed: {e}")


def unpack_seeds(secret: bytes) -> InstallSeeds:
    if len(secret) != 32:
        raise ValueError(f"Expected 32 bytes of seed material, got {len(secret)}")
    return InstallSeeds(str(uuid.UUID(bytes=secret[:16])), str(uuid.UUID(bytes=secret[16:])))


def seed_fingerprint(seeds: InstallSeeds) -> str:
    """First 8 bytes of SHA-256 over the packed seeds, as 4 hex groups."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(pack_seeds(seeds))
    hexed = digest.finalize()[:8].hex().upper()
    return "-".join(hexed[i:i + 4] for i in range(0, len(hexed), 4))


def generate_seed_shares(seeds: InstallSeeds, k: int, n: int) -> List[str]:
    """
    Split the install seeds into n shares (need k to recover).

    Raises:
        ValueError: threshold outside 2 <= k <= n <= 16
    """
    if not 2 <= k <= n:
        raise ValueError(f"Threshold must satisfy 2 <= k <= n (got k={k}, n={n})")
    if n > MAX_SHARES:
        raise ValueError(f"At most {MAX_SHARES} shares are supported (got n={n})")

    groups = shamir.generate_mnemonics(
        group_threshold=1,
        groups=[(k, n)],
        master_secret=pack_seeds(seeds),
    )
    return groups[0]


def combine_seed_shares(shares: List[str]) -> InstallSeeds:
    """
    Rebuild the install seeds from k shares.

    Raises:
        ValueError: shares invalid, mismatched or too few
    """
    try:
        secret = shamir.combine_mnemonics(shares)
    except Exception as e:
        raise ValueError(f"Failed to combine shares: {e}")
    return unpack_seeds(secret)


def print_recovery_kit(shares: List[str], k: int,
                       seeds: Optional[InstallSeeds] = None,
                       created_at: Optional[int] = None) -> str:
    """Format shares for printing on paper."""
    n = len(shares)
    rule = "=" * 70
    lines = [rule, "vaultless INSTALL SEED RECOVERY KIT", rule, ""]

    if created_at is not None:
        installed = time.strftime("%Y-%m-%d %H:%M UTC", time.gmtime(created_at))
        lines.append(f"Seeds created:  {installed}")
    if seeds is not None:
        lines.append(f"Fingerprint:    {seed_fingerprint(seeds)}")
    lines.append(f"Shares:         any {k} of {n}")
    lines += [
        "",
        "These shares rebuild the two install seeds mixed into every password.",
        "A reinstall without them derives a different password for every site.",
        "The master secret is not in this kit; remember it separately.",
        "Keep the shares in different places.",
        "",
        rule,
    ]

    for i, share in enumerate(shares, 1):
        lines += ["", f"SHARE {i}/{n}", "-" * 70, share, "-" * 70]

    lines += [
        "",
        "Restoring: run vaultless_main.py, choose 'Recover install seeds',",
        f"enter {k} shares, then compare the fingerprint above.",
        "",
    ]
    return "\n".join(lines)
