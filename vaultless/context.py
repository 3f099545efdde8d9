"""
Site context helpers: URL -> domain, and the cheap warnings a UI shows
before anyone types a master secret.

Domain normalization is deliberately naive (one leading "www." stripped,
no public-suffix awareness).
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from . import config

logger = logging.getLogger(__name__)


def normalize_domain(url: str) -> str:
    """
    Derive the domain a password is bound to.

    https://www.Example.com/login -> example.com
    file:///tmp/mockup.html       -> mockup.html
    anything unparsable           -> unknown
    """
    try:
        u = urlsplit(url or "")
        if u.scheme == "file":
            return u.path.split("/")[-1] or "localfile"
        host = u.hostname
    except ValueError:
        return config.UNKNOWN_DOMAIN
    if not u.scheme or not host:
        return config.UNKNOWN_DOMAIN
    return re.sub(r"^www\.", "", host)


def phishing_warning(domain: str) -> Optional[str]:
    if not domain or domain == config.UNKNOWN_DOMAIN:
        return None
    if config.PUNYCODE_MARKER in domain:
        return "Punycode/IDN detected"
    if len(domain) > config.PHISHING_MAX_HOST_LENGTH:
        return "Unusually long hostname"
    if domain.count("-") >= config.PHISHING_MAX_HYPHENS:
        return "Excessive hyphens"
    return None


@dataclass(frozen=True)
class SiteContext:
    domain: str
    status: str            # ok | insecure | suspicious | error
    message: Optional[str]
    url: str


def site_context(url: str) -> SiteContext:
    """Classify a page before generation: protocol first, then phishing hints."""
    domain = normalize_domain(url)
    if domain == config.UNKNOWN_DOMAIN:
        return SiteContext(domain, "error", "Invalid URL", url)

    u = urlsplit(url)
    if u.scheme not in ("https", "file") and u.hostname not in config.LOCAL_HOSTS:
        return SiteContext(domain, "insecure", "Insecure Protocol (HTTP)", url)

    warning = phishing_warning(domain)
    if warning:
        logger.debug("Phishing heuristic tripped for %s: %s", domain, warning)
        return SiteContext(domain, "suspicious", f"PHISHING RISK: {warning}", url)

    return SiteContext(domain, "ok", None, url)


def validate_master_secret(master: str) -> Optional[str]:
    """Return a complaint about a weak master secret, or None if acceptable."""
    if len(master) < config.MASTER_MIN_LENGTH:
        return f"Master secret must be at least {config.MASTER_MIN_LENGTH} characters."
    if not re.search(r"[A-Za-z]", master):
        return "Master secret should contain letters."
    if not re.search(r"[^A-Za-z]", master):
        return "Master secret must contain numbers or special characters."
    return None
