"""
vaultless - Interactive Menu

Thin foreground UI over the broker.
Features:
- Initialize install seeds (once per install)
- Inspect the policy decision for a URL
- Generate a password for a URL (show / copy to clipboard)
- Fill it into a simulated login page
- Create a seed recovery kit / recover seeds
"""

import getpass
import logging
import os
import sys

import pyperclip

from vaultless import config
from vaultless.broker import Broker
from vaultless.browser import FormField, FormPage, PageAgent, TabRegistry
from vaultless.context import site_context, validate_master_secret
from vaultless.crypto import passmoji
from vaultless.messages import Fill, ForgetTab, Generate, GetPolicy
from vaultless.policy import PolicyEngine, clamp_counter, suggested_counter
from vaultless.recovery import combine_seed_shares, generate_seed_shares, print_recovery_kit, seed_fingerprint
from vaultless.seeds import SeedStore

TAB_ID = 1


class Session:
    """Menu state: one simulated tab, one broker."""

    def __init__(self, policy_path=config.DEFAULT_POLICY_PATH, seed_path=config.DEFAULT_SEED_DB):
        self.policy_path = policy_path
        self.store = SeedStore(seed_path)
        self.tabs = TabRegistry()
        self.agent = PageAgent()
        self.broker = Broker(PolicyEngine(policy_path), self.store.load, self.tabs, self.agent)
        self.last = None


def clear_screen():
    os.system("cls" if os.name == "nt" else "clear")


def pause():
    input("\nPress Enter to continue...")


def ask_int(prompt, default):
    raw = input(f"{prompt} [{default}]: ").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        print(f"Not a number, using {default}.")
        return default


def cmd_init_seeds(s):
    clear_screen()
    print("=== Initialize Install Seeds ===\n")
    existed = s.store.load() is not None
    s.store.initialize()
    if existed:
        print(f"Seeds already exist at {s.store.db_path} (left untouched).")
    else:
        print(f"✓ Seeds created at {s.store.db_path}")
        print("Create a recovery kit next: losing the seeds changes every password.")
    pause()


def cmd_show_policy(s):
    clear_screen()
    print("=== Policy for URL ===\n")
    url = input("URL: ").strip()
    site = site_context(url)
    d = s.broker.dispatch(GetPolicy(url)).decision
    print(f"\n  Domain:     {d.domain}")
    print(f"  Action:     {d.action}")
    print(f"  Trust:      {d.trust}{'  [DECOY MODE]' if not d.trusted else ''}")
    print(f"  Counter:    {d.auto_counter} (expiry epoch {d.expiration_counter})")
    print(f"  License:    {'EXPIRED' if d.is_expired else 'active'}")
    if site.message:
        print(f"  Warning:    {site.message}")
    pause()


def cmd_generate(s):
    clear_screen()
    print("=== Generate Password ===\n")
    url = input("URL: ").strip()
    site = site_context(url)
    if site.status == "error":
        print(site.message)
        pause()
        return
    if site.message:
        print(f"WARNING: {site.message}\n")

    decision = s.broker.dispatch(GetPolicy(url)).decision
    if not decision.allowed:
        print("Access Denied: site blocked by policy.")
        pause()
        return
    if decision.is_expired:
        print("LICENSE EXPIRED: manual rotation restricted.")

    hint = input("Target field hint (e.g. new-password) [none]: ").strip() or None
    user = input("Username (optional): ").strip()
    counter = clamp_counter(decision, ask_int("Counter", suggested_counter(decision, hint)))
    length = ask_int("Length", config.DEFAULT_LENGTH)
    mode = input(f"Mode {list(config.MODES)} [{config.MODE_DEFAULT}]: ").strip() or config.MODE_DEFAULT

    master = getpass.getpass("Master secret: ")
    complaint = validate_master_secret(master)
    if complaint:
        print(complaint)
        pause()
        return

    s.tabs.open(TAB_ID, url)
    print("\nGenerating..." if decision.trusted else "\nGenerating Decoy...")
    result = s.broker.dispatch(Generate(
        master=master, tab_id=TAB_ID, url=url, domain=decision.domain,
        user=user, counter=counter, length=length, mode=mode,
    ))
    del master

    if not result.ok:
        print(f"ERROR: {result.error}")
        s.last = None
        pause()
        return

    s.last = result
    emoji = "🚫" if decision.is_expired else passmoji(result.password)
    label = "DECOY Password generated" if not decision.trusted else "Password generated"
    print(f"\n✓ {label} for {result.ctx.domain} ({emoji})")
    print("Fill it within 20 seconds (option 4).")

    print("\nOptions:")
    print("  1) Show password")
    print("  2) Copy to clipboard (without showing)")
    print("  0) Nothing")
    choice = input("\n> ").strip()
    if choice == "1":
        print(f"\n  Password: {result.password}")
    elif choice == "2":
        pyperclip.copy(result.password)
        print("\n✓ Copied to clipboard!")
    pause()


def cmd_fill(s):
    clear_screen()
    print("=== Fill Simulated Page ===\n")
    if not s.last:
        print("Generate a password first.")
        pause()
        return
    if TAB_ID not in s.agent.pages:
        s.agent.load(TAB_ID, FormPage(
            password_fields=[FormField(name="password", autocomplete="new-password"),
                             FormField(name="confirm", autocomplete="new-password")],
            username_field=FormField(name="email"),
        ))
    moved = input(f"Navigate the tab elsewhere first? URL [{s.tabs.current_url(TAB_ID)}]: ").strip()
    if moved:
        s.tabs.navigate(TAB_ID, moved)

    result = s.broker.dispatch(Fill(TAB_ID))
    if not result.ok:
        print(f"Fill refused: {result.error}")
        s.last = None
    elif result.remaining > 0:
        print(f"✓ Filled. {result.remaining} field(s) remaining ({result.next_hint}).")
    else:
        print("✓ All fields filled.")
        s.last = None
        s.agent.pages.pop(TAB_ID, None)
    pause()


def cmd_recovery_create(s):
    clear_screen()
    print("=== Create Seed Recovery Kit ===\n")
    seeds = s.store.load()
    if seeds is None:
        print("No seeds yet. Initialize them first.")
        pause()
        return
    k = ask_int("Threshold", 3)
    n = ask_int("Total shares", 5)
    out = input("Output file [seed_recovery_kit.txt]: ").strip() or "seed_recovery_kit.txt"
    try:
        kit = print_recovery_kit(generate_seed_shares(seeds, k, n), k,
                                 seeds=seeds, created_at=s.store.created_at())
    except ValueError as e:
        print(f"ERROR: {e}")
        pause()
        return
    with open(out, "w", encoding="utf-8") as f:
        f.write(kit)
    print(f"\n✓ Saved to: {out}")
    pause()


def cmd_recover(s):
    clear_screen()
    print("=== Recover Install Seeds ===\n")
    print("Enter recovery shares (one per line). Empty line when done.\n")
    shares = []
    while True:
        line = input(f"Share {len(shares) + 1}: ").strip()
        if not line:
            break
        shares.append(" ".join(line.split()))
    if len(shares) < 2:
        print("\nERROR: Need at least 2 shares")
        pause()
        return
    try:
        seeds = combine_seed_shares(shares)
        s.store.restore(seeds)
    except ValueError as e:
        print(f"\nERROR: {e}")
        pause()
        return
    print(f"\n✓ Seeds restored to {s.store.db_path}")
    print(f"  Fingerprint: {seed_fingerprint(seeds)} (compare with the kit)")
    pause()


def cmd_change_policy(s):
    path = input(f"Policy file [{s.policy_path}]: ").strip() or s.policy_path
    s.policy_path = path
    s.broker.policy.reload(path)
    if s.broker.policy.load_error:
        print(f"WARNING: {s.broker.policy.load_error.message} (failing open)")
    else:
        print("✓ Policy reloaded.")
    pause()


def print_menu(s):
    print("vaultless - Interactive Menu")
    print("=" * 40)
    print(f"Policy: {s.policy_path}")
    print(f"Seeds:  {s.store.db_path} ({'present' if s.store.load() else 'MISSING'})")
    print("\n 1) Initialize install seeds")
    print(" 2) Show policy for URL")
    print(" 3) Generate password")
    print(" 4) Fill simulated page")
    print(" 5) Create seed recovery kit")
    print(" 6) Recover install seeds")
    print(" 7) Change / reload policy file")
    print(" 0) Exit")


def main_menu():
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    s = Session()
    commands = {
        "1": cmd_init_seeds,
        "2": cmd_show_policy,
        "3": cmd_generate,
        "4": cmd_fill,
        "5": cmd_recovery_create,
        "6": cmd_recover,
        "7": cmd_change_policy,
    }
    while True:
        clear_screen()
        print_menu(s)
        c = input("\n> ").strip()
        if c == "0":
            s.broker.dispatch(ForgetTab(TAB_ID))
            print("\nGoodbye!")
            break
        if c in commands:
            commands[c](s)


if __name__ == "__main__":
    try:
        main_menu()
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)
