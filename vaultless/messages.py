"""
Typed messages between the UI, the broker and the page-context agent.

One dataclass per request kind and one per result kind; every result
carries ``ok`` and serializes with ``as_dict()`` for the wire.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from . import config
from .errors import VaultlessError
from .policy import PolicyDecision


# =============================================================================
# Requests (UI -> broker)
# =============================================================================

@dataclass(frozen=True)
class GetPolicy:
    url: str


@dataclass(frozen=True)
class Generate:
    master: str = field(repr=False)
    tab_id: int
    url: str
    domain: str
    user: str = ""
    counter: int = 1
    length: int = config.DEFAULT_LENGTH
    mode: str = config.MODE_DEFAULT


@dataclass(frozen=True)
class Fill:
    tab_id: int


@dataclass(frozen=True)
class ForgetTab:
    """The UI saw the tab navigate or lose focus after generation."""
    tab_id: int


@dataclass(frozen=True)
class PasteCleared:
    """Page agent wiped the clipboard after a paste."""


@dataclass(frozen=True)
class ResetMasterSecret:
    """Page agent saw focus move into a new-password field."""


# =============================================================================
# Broker -> page agent
# =============================================================================

@dataclass(frozen=True)
class FillCommand:
    password: str = field(repr=False)
    username: str
    domain: str
    trust: str


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class PolicyResult:
    decision: PolicyDecision
    ok: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.decision.as_dict(), ok=True)


@dataclass(frozen=True)
class GenerationContext:
    tab_id: int
    domain: str
    url: str
    expires_at: float
    trust: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tab_id": self.tab_id,
            "domain": self.domain,
            "url": self.url,
            "expires_at": self.expires_at,
            "trust": self.trust,
        }


@dataclass(frozen=True)
class Generated:
    password: str = field(repr=False)
    ctx: GenerationContext
    ok: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": True, "password": self.password, "ctx": self.ctx.as_dict()}


@dataclass(frozen=True)
class Filled:
    remaining: int
    next_hint: Optional[str] = None
    ok: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": True, "remaining": self.remaining, "next_hint": self.next_hint}


@dataclass(frozen=True)
class Forgotten:
    removed: bool
    ok: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": True, "removed": self.removed}


@dataclass(frozen=True)
class Relayed:
    event: str
    ok: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": True, "event": self.event}


@dataclass(frozen=True)
class Failure:
    code: str
    error: str
    remaining: Optional[int] = None
    ok: bool = False

    @classmethod
    def from_error(cls, e: VaultlessError) -> "Failure":
        return cls(code=e.code, error=e.message)

    def as_dict(self) -> Dict[str, Any]:
        d = {"ok": False, "code": self.code, "error": self.error}
        if self.remaining is not None:
            d["remaining"] = self.remaining
        return d
