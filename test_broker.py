"""
vaultless - Broker / Session Cache Tests

Run with: python test_broker.py  (or pytest)

This script both proves correctness and shows how the fill-side attacks fail:
- TOCTOU: tab navigates between generate and fill (refused, nothing sent)
- Stale UI snapshot: caller's domain disagrees with the URL (refused)
- Expiry: fill after the 20s window (refused, entry removed)
- Frames: page agent refuses inside an iframe
"""

from vaultless import config
from vaultless.broker import Broker
from vaultless.browser import FormField, FormPage, PageAgent, TabRegistry
from vaultless.cache import SessionCache
from vaultless.crypto import DerivationRequest, derive_password
from vaultless.errors import FillExpired, NothingToFill
from vaultless.messages import (
    Failure,
    Fill,
    Filled,
    ForgetTab,
    Generate,
    Generated,
    GetPolicy,
    PasteCleared,
    ResetMasterSecret,
)
from vaultless.policy import PolicyEngine
from vaultless.seeds import InstallSeeds


SEEDS = InstallSeeds("0f8e6d3c-1a2b-4c5d-8e9f-101112131415", "a1b2c3d4-e5f6-4a7b-9c8d-e0f1a2b3c4d5")
MASTER = "CorrectHorseBatteryStaple!"

POLICY = {
    "mode": "ALLOW+DENY+EXCEPT",
    "rules": {"allow": [], "deny": ["https://blocked.com*"], "except": []},
    "trusted_contexts": ["https://*"],
    "overrides": [],
}


class FakeClock:
    def __init__(self, now: float = 1_800_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def login_page() -> FormPage:
    return FormPage(
        password_fields=[FormField(name="pw", autocomplete="current-password")],
        username_field=FormField(name="email"),
    )


def make_broker(seeds=SEEDS, strict_seeds=True, policy=None):
    clock = FakeClock()
    tabs = TabRegistry()
    agent = PageAgent()
    broker = Broker(PolicyEngine(policy or POLICY), seeds, tabs, agent,
                    clock=clock, strict_seeds=strict_seeds)
    return broker, clock, tabs, agent


def generate(broker, tabs, tab_id, url, domain=None, **kw):
    tabs.open(tab_id, url)
    domain = domain or broker.dispatch(GetPolicy(url)).decision.domain
    return broker.dispatch(Generate(master=MASTER, tab_id=tab_id, url=url, domain=domain, **kw))


def test_generate_and_fill():
    print("Testing generate -> fill...")
    broker, clock, tabs, agent = make_broker()
    page = login_page()
    agent.load(1, page)

    result = generate(broker, tabs, 1, "https://www.shop.com/login", user="alice@example.com")
    assert isinstance(result, Generated) and result.ok
    assert result.ctx.domain == "shop.com"
    assert result.ctx.trust == "TRUSTED"
    assert result.ctx.expires_at == clock.now + config.FILL_TTL_SECONDS
    assert len(result.password) == config.DEFAULT_LENGTH
    assert 1 in broker.cache

    expected = derive_password(DerivationRequest(
        master=MASTER, domain="shop.com", user="alice@example.com",
        salt_label=config.SALT_TRUSTED, seeds=SEEDS,
    ))
    assert result.password == expected, "Broker must derive with policy domain and salt"

    filled = broker.dispatch(Fill(1))
    assert isinstance(filled, Filled) and filled.remaining == 0 and filled.next_hint is None
    assert page.password_fields[0].value == result.password
    assert page.username_field.value == "alice@example.com"
    assert 1 not in broker.cache, "Entry consumed after the last field"
    print("  [OK] Password injected once, entry removed")


def test_toctou_navigation():
    print("  [Attack] Tab 5 navigates bank.com -> attacker.com before fill...")
    broker, clock, tabs, agent = make_broker()
    agent.load(5, login_page())

    assert generate(broker, tabs, 5, "https://bank.com").ok
    tabs.navigate(5, "https://attacker.com")

    result = broker.dispatch(Fill(5))
    assert isinstance(result, Failure)
    assert result.code == "context_mismatch"
    assert "bank.com" in result.error and "attacker.com" in result.error
    assert agent.received == [], "No fill message may reach the page"
    assert broker.dispatch(Fill(5)).code == "nothing_to_fill", "Entry dropped on mismatch"
    print("  [OK] Context mismatch refused, nothing dispatched")


def test_same_domain_navigation_still_fills():
    print("Testing navigation within the same domain...")
    broker, clock, tabs, agent = make_broker()
    agent.load(2, login_page())
    generate(broker, tabs, 2, "https://bank.com/start")
    tabs.navigate(2, "https://www.bank.com/login")
    assert broker.dispatch(Fill(2)).ok
    print("  [OK] Domain, not URL, is the binding")


def test_stale_snapshot_on_generate():
    print("  [Attack] UI sends a stale domain with a new URL...")
    broker, clock, tabs, agent = make_broker()
    result = generate(broker, tabs, 3, "https://attacker.com", domain="bank.com")
    assert isinstance(result, Failure) and result.code == "context_mismatch"
    assert 3 not in broker.cache
    print("  [OK] Generation refused, nothing cached")


def test_access_denied():
    print("Testing policy denial...")
    broker, clock, tabs, agent = make_broker()
    result = generate(broker, tabs, 4, "https://blocked.com/login")
    assert isinstance(result, Failure) and result.code == "access_denied"
    assert len(broker.cache) == 0
    print("  [OK] DENY surfaces as access_denied")


def test_expiry():
    print("  [Attack] Fill 21s after generation...")
    broker, clock, tabs, agent = make_broker()
    agent.load(6, login_page())
    generate(broker, tabs, 6, "https://bank.com")
    clock.advance(21)

    assert broker.dispatch(Fill(6)).code == "fill_expired"
    assert 6 not in broker.cache
    assert broker.dispatch(Fill(6)).code == "nothing_to_fill"
    assert agent.received == []
    print("  [OK] Expired entry refused and removed")


def test_decoy_context():
    print("Testing decoy generation in untrusted context...")
    broker, clock, tabs, agent = make_broker()
    agent.load(7, login_page())
    real = generate(broker, tabs, 7, "https://site.com/login")
    decoy = generate(broker, tabs, 8, "http://site.com/login")
    assert decoy.ok and decoy.ctx.trust == "UNTRUSTED"
    assert decoy.ctx.domain == real.ctx.domain
    assert decoy.password != real.password, "Untrusted context must not get the real password"
    assert len(decoy.password) == len(real.password)
    print("  [OK] Same shape, different password")


def test_confirmation_sequence():
    print("Testing multi-field (change password) fill...")
    broker, clock, tabs, agent = make_broker()
    page = FormPage(password_fields=[
        FormField(name="old", autocomplete="current-password"),
        FormField(name="new", autocomplete="new-password"),
        FormField(name="confirm", autocomplete="new-password"),
    ])
    agent.load(9, page)

    old = generate(broker, tabs, 9, "https://site.com/account", counter=1)
    first = broker.dispatch(Fill(9))
    assert first.ok and first.remaining == 2 and first.next_hint == "new-password"
    assert page.password_fields[0].value == old.password
    assert 9 in broker.cache, "Entry kept while fields remain"

    new = generate(broker, tabs, 9, "https://site.com/account", counter=2)
    assert new.password != old.password
    assert len(broker.cache) == 1, "Regenerating overwrites the tab's entry"

    second = broker.dispatch(Fill(9))
    assert second.ok and second.remaining == 0
    assert page.password_fields[1].value == page.password_fields[2].value == new.password
    assert 9 not in broker.cache
    print("  [OK] Current, then new + confirm in one step")


def test_agent_refusals():
    print("Testing page agent refusals...")
    broker, clock, tabs, agent = make_broker()
    agent.load(10, FormPage(password_fields=[FormField()], top_level=False))
    generate(broker, tabs, 10, "https://site.com")
    result = broker.dispatch(Fill(10))
    assert isinstance(result, Failure) and result.code == "fill_refused"
    assert page_value(agent, 10) == ""

    agent.load(11, FormPage(password_fields=[FormField(value="already")]))
    generate(broker, tabs, 11, "https://site.com")
    result = broker.dispatch(Fill(11))
    assert not result.ok and result.remaining == 0
    print("  [OK] Frames refused; nothing empty to fill reported")


def test_agent_page_queries():
    print("Testing page agent field discovery...")
    agent = PageAgent()
    agent.load(1, FormPage(
        password_fields=[FormField(name="pw", autocomplete="current-password", value="x"),
                         FormField(autocomplete="new-password")],
        username_field=FormField(name="email", value="bob@example.com"),
    ))
    info = agent.describe(1)
    assert info["username"] == "bob@example.com"
    assert info["pw_fields"] == ["current-password (pw)", "new-password"]
    assert agent.highlight(1) == "new-password", "First empty field is the target"
    assert agent.highlight(2) == "password"
    assert agent.describe(2) == {"username": "", "pw_fields": []}
    print("  [OK] Field hints and next target")


def page_value(agent, tab_id):
    return agent.pages[tab_id].password_fields[0].value


def test_missing_seeds():
    print("Testing missing install seeds...")
    broker, clock, tabs, agent = make_broker(seeds=lambda: None)
    result = generate(broker, tabs, 12, "https://site.com")
    assert isinstance(result, Failure) and result.code == "missing_install_seeds"

    relaxed, clock, tabs, agent = make_broker(seeds=None, strict_seeds=False)
    assert generate(relaxed, tabs, 12, "https://site.com").ok
    print("  [OK] Strict by default, degrade only when asked")


def test_forget_and_relay():
    print("Testing tab invalidation and relayed events...")
    broker, clock, tabs, agent = make_broker()
    generate(broker, tabs, 13, "https://site.com")
    assert broker.dispatch(ForgetTab(13)).removed is True
    assert broker.dispatch(ForgetTab(13)).removed is False
    assert broker.dispatch(Fill(13)).code == "nothing_to_fill"

    events = []
    broker.subscribe(events.append)
    assert broker.dispatch(PasteCleared()).ok
    assert broker.dispatch(ResetMasterSecret()).ok
    assert events == ["PasteCleared", "ResetMasterSecret"]

    unknown = broker.dispatch("FILL")
    assert isinstance(unknown, Failure) and unknown.code == "unknown_request"
    print("  [OK] ForgetTab clears, relays reach listeners")


def test_bad_regex_policy_does_not_escape_dispatch():
    print("Testing dispatch under a policy with a malformed regex...")
    broker, clock, tabs, agent = make_broker(policy={"rules": {"deny": ["^https://(bank"]}})
    result = broker.dispatch(GetPolicy("https://bank.com"))
    assert result.ok and result.decision.action == "ALLOW"
    assert broker.policy.load_error is not None
    assert generate(broker, tabs, 16, "https://bank.com").ok
    print("  [OK] Load failure surfaces on the engine, dispatch keeps answering")


def test_length_and_counter_clamped():
    print("Testing length/counter clamping...")
    broker, clock, tabs, agent = make_broker()
    assert len(generate(broker, tabs, 15, "https://site.com", length=0).password) == config.MIN_LENGTH
    assert len(generate(broker, tabs, 15, "https://site.com", length=3).password) == config.MIN_LENGTH
    assert len(generate(broker, tabs, 15, "https://site.com", length=500).password) == config.MAX_LENGTH

    low = generate(broker, tabs, 15, "https://site.com", counter=0).password
    one = generate(broker, tabs, 15, "https://site.com", counter=1).password
    assert low == one, "Counter below 1 is clamped to 1"
    print("  [OK] Out-of-range values clamped, never defaulted")


def test_wire_shapes():
    print("Testing wire serialization...")
    broker, clock, tabs, agent = make_broker()
    policy = broker.dispatch(GetPolicy("https://site.com")).as_dict()
    assert policy["ok"] and policy["action"] == "ALLOW" and policy["domain"] == "site.com"

    generated = generate(broker, tabs, 14, "https://site.com").as_dict()
    assert generated["ok"] and generated["ctx"]["tab_id"] == 14
    assert generated["password"] not in repr(broker.cache.get(14)), "Password never in repr"

    failure = broker.dispatch(Fill(99)).as_dict()
    assert failure == {"ok": False, "code": "nothing_to_fill", "error": "Nothing to fill (expired/cleared)"}
    print("  [OK] Results serialize for the message wire")


def test_cache_directly():
    print("Testing session cache...")
    clock = FakeClock()
    cache = SessionCache(ttl=20, clock=clock)
    cache.put(1, "a.com", "https://a.com", "pw1", "", "TRUSTED")
    cache.put(1, "a.com", "https://a.com", "pw2", "", "TRUSTED")
    assert len(cache) == 1 and cache.claim(1).password == "pw2"

    cache.put(2, "b.com", "https://b.com", "pw", "", "TRUSTED", ttl=5)
    clock.advance(6)
    try:
        cache.claim(2)
        assert False, "Should be expired"
    except FillExpired:
        pass
    try:
        cache.claim(2)
        assert False, "Should be gone"
    except NothingToFill:
        pass

    clock.advance(20)
    assert cache.purge_expired() == 1 and len(cache) == 0
    print("  [OK] Overwrite, expiry, purge")


def run_all_tests():
    print("=" * 70)
    print("vaultless - Broker Attack Demo + Test Suite")
    print("=" * 70)
    print()

    tests = [
        test_generate_and_fill,
        test_toctou_navigation,
        test_same_domain_navigation_still_fills,
        test_stale_snapshot_on_generate,
        test_access_denied,
        test_expiry,
        test_decoy_context,
        test_confirmation_sequence,
        test_agent_refusals,
        test_agent_page_queries,
        test_missing_seeds,
        test_forget_and_relay,
        test_bad_regex_policy_does_not_escape_dispatch,
        test_length_and_counter_clamped,
        test_wire_shapes,
        test_cache_directly,
    ]

    failed = []
    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
