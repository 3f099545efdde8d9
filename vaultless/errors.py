"""
Error taxonomy.

Every failure names its condition with a stable ``code`` so callers (and
the message wire) can tell an expired fill from a context mismatch without
parsing text. Nothing here is ever downgraded into a generic failure.
"""

from typing import Any, Dict


class VaultlessError(Exception):
    """Base exception with a stable machine-readable code."""

    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": False, "code": self.code, "error": self.message}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class PolicyLoadError(VaultlessError):
    """Policy document missing or unparseable."""
    code = "policy_load_failed"


class AccessDenied(VaultlessError):
    code = "access_denied"


class ContextMismatch(VaultlessError):
    """Domain changed between snapshot and use (generate or fill time)."""
    code = "context_mismatch"


class EntropyExhausted(VaultlessError):
    """Derivation stream ran out; the request must be derived again."""
    code = "entropy_exhausted"


class NothingToFill(VaultlessError):
    code = "nothing_to_fill"


class FillExpired(VaultlessError):
    code = "fill_expired"


class MissingInstallSeeds(VaultlessError):
    code = "missing_install_seeds"


class InvalidRequest(VaultlessError):
    code = "invalid_request"


class FillRefused(VaultlessError):
    """The page-context agent declined to inject."""
    code = "fill_refused"
