"""
vaultless - Attack Demonstration

Run: python attack_demo.py

What it shows (and why attacks fail):
1) Tab navigates to another site between generate and fill (TOCTOU).
2) UI sends a stale domain snapshot for a new URL.
3) Fill is attempted after the 20-second window.
4) Untrusted (decoy) context gets a plausible but useless password.
5) Login form embedded in a frame.
6) Same master secret on another install derives different passwords.
"""

from vaultless.broker import Broker
from vaultless.browser import FormField, FormPage, PageAgent, TabRegistry
from vaultless.messages import Fill, Generate, GetPolicy
from vaultless.policy import PolicyEngine
from vaultless.seeds import InstallSeeds


LINE = "=" * 70
MASTER = "CorrectHorseBatteryStaple!"
POLICY = {
    "mode": "ALLOW+DENY+EXCEPT",
    "rules": {"allow": [], "deny": [], "except": []},
    "trusted_contexts": ["https://*"],
}


class Clock:
    def __init__(self):
        self.now = 1_800_000_000.0

    def __call__(self):
        return self.now


def section(title: str):
    print(f"\n{LINE}\n{title}\n{LINE}")


def login_page(top_level=True):
    return FormPage(password_fields=[FormField(name="pw")], top_level=top_level)


def main():
    clock = Clock()
    tabs = TabRegistry()
    agent = PageAgent()
    seeds = InstallSeeds.generate()
    broker = Broker(PolicyEngine(POLICY), seeds, tabs, agent, clock=clock)

    def generate(tab_id, url, domain=None):
        tabs.open(tab_id, url)
        domain = domain or broker.dispatch(GetPolicy(url)).decision.domain
        return broker.dispatch(Generate(master=MASTER, tab_id=tab_id, url=url, domain=domain))

    # 1) TOCTOU
    section("Attack 1: Navigation between generate and fill")
    agent.load(1, login_page())
    generate(1, "https://bank.com/login")
    tabs.navigate(1, "https://attacker.com/login")
    result = broker.dispatch(Fill(1))
    print(f"Expected failure: {result.error}")
    print(f"Messages delivered to the page: {len(agent.received)}")

    # 2) Stale snapshot
    section("Attack 2: Stale domain snapshot")
    result = generate(2, "https://attacker.com", domain="bank.com")
    print(f"Expected failure: {result.error}")

    # 3) Expiry
    section("Attack 3: Late fill (after 20 seconds)")
    agent.load(3, login_page())
    generate(3, "https://bank.com")
    clock.now += 21
    print(f"Expected failure: {broker.dispatch(Fill(3)).error}")
    print(f"Retry: {broker.dispatch(Fill(3)).error}")

    # 4) Decoy
    section("Attack 4: Untrusted context")
    real = generate(4, "https://site.com/login")
    decoy = generate(5, "http://site.com/login")
    print(f"Trusted ({real.ctx.trust}) and untrusted ({decoy.ctx.trust}) outputs differ: "
          f"{real.password != decoy.password}")
    print("Both look like ordinary passwords; the page cannot tell which one it got.")

    # 5) Frames
    section("Attack 5: Login form inside a frame")
    agent.load(6, login_page(top_level=False))
    generate(6, "https://bank.com")
    print(f"Expected failure: {broker.dispatch(Fill(6)).error}")

    # 6) Cross-install
    section("Attack 6: Same master secret, different install")
    other = Broker(PolicyEngine(POLICY), InstallSeeds.generate(), tabs, PageAgent(), clock=clock)
    theirs = other.dispatch(Generate(master=MASTER, tab_id=4, url="https://site.com/login", domain="site.com"))
    print(f"Passwords differ across installs: {theirs.password != real.password}")

    print(f"\n{LINE}\nAll attacks failed as expected.\n{LINE}")


if __name__ == "__main__":
    main()
