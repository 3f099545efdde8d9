"""
vaultless - Background Broker

The long-lived side of the system. It owns the policy engine and the
session cache, and handles one request at a time to completion:

    UI --Generate--> policy check -> derive -> cache[tab] -> Generated
    UI --Fill------> cache[tab] -> re-check tab's current URL -> page agent

Why re-check on fill?
    A password derived for bank.com sits in the cache for a few seconds.
    If the tab navigated to attacker.com meanwhile, injecting it there
    would hand it over. Fill therefore re-resolves the tab's URL and
    refuses if the domain moved.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Union

from . import config
from .cache import SessionCache
from .crypto import DerivationRequest, derive_password
from .errors import AccessDenied, ContextMismatch, VaultlessError
from .messages import (
    Failure,
    Fill,
    FillCommand,
    Filled,
    ForgetTab,
    Forgotten,
    Generate,
    GenerationContext,
    Generated,
    GetPolicy,
    PasteCleared,
    PolicyResult,
    Relayed,
    ResetMasterSecret,
)
from .policy import PolicyEngine
from .seeds import InstallSeeds, resolve_seeds

logger = logging.getLogger(__name__)


class Tabs(Protocol):
    def current_url(self, tab_id: int) -> str: ...


class Agent(Protocol):
    def fill(self, tab_id: int, command: FillCommand) -> Union[Filled, Failure]: ...


SeedSource = Union[InstallSeeds, Callable[[], Optional[InstallSeeds]], None]


class Broker:
    """
    Typed command dispatcher.

    Usage:
        broker = Broker(PolicyEngine("policy.json"), SeedStore().load, tabs, agent)
        result = broker.dispatch(Generate(master, 5, url, domain))
        if result.ok:
            broker.dispatch(Fill(5))
    """

    def __init__(self, policy: PolicyEngine, seeds: SeedSource, tabs: Tabs, agent: Agent,
                 cache: Optional[SessionCache] = None, clock: Callable[[], float] = time.time,
                 strict_seeds: bool = config.STRICT_SEEDS):
        self.policy = policy
        self.seeds = seeds
        self.tabs = tabs
        self.agent = agent
        self.clock = clock
        self.cache = cache if cache is not None else SessionCache(clock=clock)
        self.strict_seeds = strict_seeds
        self._listeners: List[Callable[[str], None]] = []
        self._handlers: Dict[type, Callable] = {
            GetPolicy: self.get_policy,
            Generate: self.generate,
            Fill: self.fill,
            ForgetTab: self.forget_tab,
            PasteCleared: self.relay,
            ResetMasterSecret: self.relay,
        }

    def subscribe(self, listener: Callable[[str], None]) -> None:
        """Register a UI callback for relayed page events."""
        self._listeners.append(listener)

    def dispatch(self, request):
        handler = self._handlers.get(type(request))
        if handler is None:
            return Failure("unknown_request", f"Unknown message: {type(request).__name__}")
        logger.debug("Dispatching %s", type(request).__name__)
        try:
            return handler(request)
        except VaultlessError as e:
            return Failure.from_error(e)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def get_policy(self, request: GetPolicy) -> PolicyResult:
        return PolicyResult(self.policy.evaluate(request.url, self.clock()))

    def generate(self, request: Generate) -> Generated:
        """
        Raises:
            AccessDenied: policy says DENY
            ContextMismatch: caller's domain is stale
            MissingInstallSeeds: strict mode and no seeds
            EntropyExhausted: derivation stream ran out
        """
        decision = self.policy.evaluate(request.url, self.clock())
        if not decision.allowed:
            raise AccessDenied("Access Denied by Policy")
        if decision.domain != request.domain:
            raise ContextMismatch(
                f"Context Mismatch: Domain changed (was {request.domain}, now {decision.domain})"
            )

        password = derive_password(DerivationRequest(
            master=request.master,
            domain=decision.domain,
            user=request.user or "",
            counter=max(1, int(request.counter)),
            length=max(config.MIN_LENGTH, min(config.MAX_LENGTH, int(request.length))),
            mode=request.mode,
            salt_label=decision.salt,
            seeds=resolve_seeds(self._load_seeds(), strict=self.strict_seeds),
        ))

        self.cache.purge_expired()
        entry = self.cache.put(request.tab_id, decision.domain, request.url, password,
                               request.user, decision.trust)
        logger.info("Generated password for %s (%s) on tab %s",
                    decision.domain, decision.trust, request.tab_id)
        return Generated(
            password=password,
            ctx=GenerationContext(
                tab_id=request.tab_id,
                domain=decision.domain,
                url=request.url,
                expires_at=entry.expires_at,
                trust=decision.trust,
            ),
        )

    def fill(self, request: Fill):
        """
        Hand the cached password to the page agent if the tab is still on
        the domain it was generated for. The agent's reply is returned as is.

        Raises:
            NothingToFill, FillExpired: from the cache
            ContextMismatch: tab navigated to another domain
        """
        entry = self.cache.claim(request.tab_id)

        url_now = self.tabs.current_url(request.tab_id)
        decision_now = self.policy.evaluate(url_now, self.clock())
        if decision_now.domain != entry.domain:
            self.cache.discard(request.tab_id)
            logger.warning("Refusing fill on tab %s: %s -> %s",
                           request.tab_id, entry.domain, decision_now.domain)
            raise ContextMismatch(
                f"Refusing: context changed (was {entry.domain}, now {decision_now.domain})"
            )

        response = self.agent.fill(request.tab_id, FillCommand(
            password=entry.password,
            username=entry.user,
            domain=entry.domain,
            trust=entry.trust,
        ))
        # Confirmation fields keep the entry alive until its deadline
        if response.ok and response.remaining == 0:
            self.cache.discard(request.tab_id)
        return response

    def forget_tab(self, request: ForgetTab) -> Forgotten:
        return Forgotten(self.cache.discard(request.tab_id))

    def relay(self, request) -> Relayed:
        event = type(request).__name__
        for listener in list(self._listeners):
            listener(event)
        return Relayed(event)

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _load_seeds(self) -> Optional[InstallSeeds]:
        if callable(self.seeds):
            return self.seeds()
        return self.seeds
