"""
vaultless - Policy Engine

Answers, for one URL at one moment:
- may a password be generated here (ALLOW / DENY)?
- is this a vetted context (TRUSTED) or a decoy one (UNTRUSTED)?
- which salt label does the derivation use?
- which rotation counter is in effect?

Patterns are globs ("*" any run, "?" one character, everything else
literal, whole-string match) unless they start with "^", in which case
they are case-insensitive regular expressions searched in the value.

Policy document (JSON):
    {
      "mode": "DENY+ALLOW+EXCEPT" | "ALLOW+DENY+EXCEPT",
      "rules": {"allow": [...], "deny": [...], "except": [...]},
      "trusted_contexts": [...],
      "overrides": [{"pattern": "...", "salt": "..."}],
      "license_status": "ACTIVE" | "EXPIRED",
      "license_expiry": "2027-01-01T00:00:00Z",
      "created_at": "2026-01-01T00:00:00Z"
    }
"""

import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from . import config
from .context import normalize_domain
from .errors import PolicyLoadError

logger = logging.getLogger(__name__)


# =============================================================================
# Policy Document
# =============================================================================

@dataclass(frozen=True)
class SaltOverride:
    pattern: str
    salt: str


_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: Any) -> Optional[float]:
    """ISO-8601 string (trailing Z allowed) or epoch seconds -> epoch seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise PolicyLoadError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # Older fromisoformat only takes exactly 3 or 6 fractional digits
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise PolicyLoadError(f"Invalid timestamp: {value!r}")
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    raise PolicyLoadError(f"Invalid timestamp: {value!r}")


def _patterns(data: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    values = data.get(key) or []
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise PolicyLoadError(f"'{key}' must be a list of strings")
    return tuple(values)


@dataclass(frozen=True)
class PolicyDocument:
    """Loaded once, never mutated; replaced wholesale by PolicyEngine.reload()."""

    mode: str = config.POLICY_MODE_DEFAULT_ALLOW
    allow: Tuple[str, ...] = ()
    deny: Tuple[str, ...] = ()
    except_: Tuple[str, ...] = ()
    trusted_contexts: Tuple[str, ...] = ()
    overrides: Tuple[SaltOverride, ...] = ()
    license_status: str = ""
    license_expiry: Optional[float] = None
    created_at: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyDocument":
        if not isinstance(data, Mapping):
            raise PolicyLoadError("Policy document must be a JSON object")

        mode = data.get("mode", config.POLICY_MODE_DEFAULT_ALLOW)
        if mode not in (config.POLICY_MODE_DEFAULT_DENY, config.POLICY_MODE_DEFAULT_ALLOW):
            raise PolicyLoadError(f"Unknown policy mode: {mode!r}")

        rules = data.get("rules") or {}
        if not isinstance(rules, Mapping):
            raise PolicyLoadError("'rules' must be an object")

        overrides = []
        for entry in data.get("overrides") or []:
            if not isinstance(entry, Mapping) or not isinstance(entry.get("pattern"), str) \
                    or not isinstance(entry.get("salt"), str):
                raise PolicyLoadError(f"Invalid override entry: {entry!r}")
            overrides.append(SaltOverride(entry["pattern"], entry["salt"]))

        doc = cls(
            mode=mode,
            allow=_patterns(rules, "allow"),
            deny=_patterns(rules, "deny"),
            except_=_patterns(rules, "except"),
            trusted_contexts=_patterns(data, "trusted_contexts"),
            overrides=tuple(overrides),
            license_status=str(data.get("license_status") or ""),
            license_expiry=parse_timestamp(data.get("license_expiry")),
            created_at=parse_timestamp(data.get("created_at")),
        )
        doc.compile()
        return doc

    def compile(self) -> None:
        """Compile every pattern now so a bad regex fails the load, not a lookup."""
        patterns = self.allow + self.deny + self.except_ + self.trusted_contexts
        for pattern in patterns + tuple(o.pattern for o in self.overrides):
            try:
                pattern_to_regex(pattern)
            except re.error as e:
                raise PolicyLoadError(f"Invalid pattern {pattern!r}: {e}")


def load_policy(path: str) -> PolicyDocument:
    """
    Read and validate a policy file.

    Raises:
        PolicyLoadError: missing file, bad JSON, or bad structure
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise PolicyLoadError(f"Cannot load policy from {path}: {e}")
    return PolicyDocument.from_dict(data)


# =============================================================================
# Pattern Matching
# =============================================================================

@lru_cache(maxsize=512)
def pattern_to_regex(pattern: str) -> "re.Pattern":
    if pattern.startswith(config.REGEX_ANCHOR):
        return re.compile(pattern, re.IGNORECASE)
    body = "".join(
        ".*" if c == "*" else "." if c == "?" else re.escape(c)
        for c in pattern
    )
    return re.compile(f"^{body}$", re.IGNORECASE | re.DOTALL)


def matches(pattern: str, value: str) -> bool:
    return pattern_to_regex(pattern).search(value) is not None


def matches_any(patterns: Iterable[str], value: str) -> bool:
    return any(matches(p, value) for p in patterns)


def evaluate_access(doc: PolicyDocument, url: str) -> str:
    """
    Run the three rule sets in the mode's fixed order. Only "did any
    pattern in this set match" matters.

    DENY+ALLOW+EXCEPT: start DENY, allow -> ALLOW, deny -> DENY, except -> ALLOW
    ALLOW+DENY+EXCEPT: start ALLOW, deny -> DENY, allow -> ALLOW, except -> DENY
    """
    if doc.mode == config.POLICY_MODE_DEFAULT_DENY:
        action = config.ACTION_DENY
        if matches_any(doc.allow, url):
            action = config.ACTION_ALLOW
        if matches_any(doc.deny, url):
            action = config.ACTION_DENY
        if matches_any(doc.except_, url):
            action = config.ACTION_ALLOW
    else:
        action = config.ACTION_ALLOW
        if matches_any(doc.deny, url):
            action = config.ACTION_DENY
        if matches_any(doc.allow, url):
            action = config.ACTION_ALLOW
        if matches_any(doc.except_, url):
            action = config.ACTION_DENY
    return action


def select_salt(doc: PolicyDocument, domain: str, url: str, trusted: bool, expired: bool) -> str:
    """expired label > first matching override (domain or url) > trust default."""
    if expired:
        return config.SALT_EXPIRED
    for entry in doc.overrides:
        if matches(entry.pattern, domain) or matches(entry.pattern, url):
            return entry.salt
    return config.SALT_TRUSTED if trusted else config.SALT_DECOY


def rotation_counter(at: Optional[float], created_at: Optional[float]) -> int:
    """90-day epochs since release, rounded up, never below 1."""
    if at is None or created_at is None:
        return 1
    days = (at - created_at) / config.SECONDS_PER_DAY
    epoch = config.ROTATION_EPOCH_DAYS
    return max(1, math.floor((days + epoch - 1) / epoch))


# =============================================================================
# Decision
# =============================================================================

@dataclass(frozen=True)
class PolicyDecision:
    action: str
    trust: str
    salt: str
    domain: str
    auto_counter: int = 1
    is_expired: bool = False
    expiration_counter: int = 1

    @property
    def allowed(self) -> bool:
        return self.action == config.ACTION_ALLOW

    @property
    def trusted(self) -> bool:
        return self.trust == config.TRUSTED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "trust": self.trust,
            "salt": self.salt,
            "domain": self.domain,
            "auto_counter": self.auto_counter,
            "is_expired": self.is_expired,
            "expiration_counter": self.expiration_counter,
        }


def suggested_counter(decision: PolicyDecision, target_hint: Optional[str] = None) -> int:
    """
    Counter a UI should preset. A "new-password" field on a live license
    gets one past the expiration epoch so the new password is fresh.
    """
    if not decision.is_expired and target_hint and "new-password" in target_hint.lower():
        return max(decision.auto_counter, decision.expiration_counter + 1)
    return decision.auto_counter


def clamp_counter(decision: PolicyDecision, requested: int) -> int:
    """Counters are >= 1; an expired license only allows rotating backwards."""
    counter = max(1, int(requested))
    if decision.is_expired:
        counter = min(counter, decision.auto_counter)
    return counter


# =============================================================================
# Engine
# =============================================================================

PolicySource = Union[str, Mapping[str, Any], PolicyDocument, None]


@dataclass
class PolicyEngine:
    """
    Owns the one policy document of the background process.

    The document is loaded lazily on first use and only replaced through
    reload(). If it cannot be loaded the engine fails open: ALLOW, TRUSTED,
    default salt, counters at 1. No rule is enforced until a reload
    succeeds; every such evaluation is logged at warning level.
    """

    source: PolicySource = None
    _document: Optional[PolicyDocument] = field(default=None, init=False, repr=False)
    _loaded: bool = field(default=False, init=False, repr=False)
    load_error: Optional[PolicyLoadError] = field(default=None, init=False, repr=False)

    @property
    def document(self) -> Optional[PolicyDocument]:
        if not self._loaded:
            self._load()
        return self._document

    def reload(self, source: PolicySource = None) -> Optional[PolicyDocument]:
        if source is not None:
            self.source = source
        self._loaded = False
        self._document = None
        self.load_error = None
        return self.document

    def _load(self) -> None:
        self._loaded = True
        try:
            if isinstance(self.source, PolicyDocument):
                self.source.compile()
                self._document = self.source
            elif isinstance(self.source, Mapping):
                self._document = PolicyDocument.from_dict(self.source)
            else:
                self._document = load_policy(self.source or config.DEFAULT_POLICY_PATH)
        except PolicyLoadError as e:
            self.load_error = e
            logger.error("Failed to load policy, failing open: %s", e)

    def evaluate(self, url: str, now: Optional[float] = None) -> PolicyDecision:
        now = time.time() if now is None else now
        domain = normalize_domain(url)
        doc = self.document

        if doc is None:
            logger.warning("No policy loaded; allowing %s with default salt", domain)
            return PolicyDecision(
                action=config.ACTION_ALLOW,
                trust=config.TRUSTED,
                salt=config.SALT_TRUSTED,
                domain=domain,
            )

        action = evaluate_access(doc, url)

        is_expired = doc.license_status == config.LICENSE_EXPIRED or (
            doc.license_expiry is not None and now > doc.license_expiry
        )
        trusted = matches_any(doc.trusted_contexts, url)

        decision = PolicyDecision(
            action=action,
            trust=config.TRUSTED if trusted else config.UNTRUSTED,
            salt=select_salt(doc, domain, url, trusted, is_expired),
            domain=domain,
            auto_counter=rotation_counter(now, doc.created_at),
            is_expired=is_expired,
            expiration_counter=rotation_counter(doc.license_expiry, doc.created_at),
        )
        logger.debug("Policy evaluation: url=%s action=%s trust=%s domain=%s",
                     url, decision.action, decision.trust, domain)
        return decision
