"""
vaultless - Deterministic "vaultless" password generator

Nothing to steal: passwords are re-derived on demand from a master secret
the user remembers, the site being visited and two per-install seeds.

Key Features:
- Deterministic: same inputs, same password, on every run
- Strong stretching: PBKDF2-HMAC-SHA256 (200k rounds) + HKDF
- Unbiased: rejection sampling, no modulo bias
- Policy-driven: per-URL allow/deny, trusted vs decoy contexts, rotation
- TOCTOU-safe fill: passwords expire in 20s and never follow a navigation

Components:
- crypto.py: Derivation engine (one file!)
- policy.py: Policy engine (rules, trust, salt labels, rotation counters)
- cache.py: Per-tab session cache
- broker.py: Background broker (typed command dispatcher)
- seeds.py / recovery.py: Install seeds and their Shamir backup
- browser.py: In-memory tab registry and page-context agent

Usage:
    python vaultless_main.py           # Interactive menu
    python attack_demo.py              # Attacks the design defeats
"""

__version__ = "0.1.0"
__author__ = "vaultless Team"
