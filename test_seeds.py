"""
vaultless - Install Seed Tests

Run with: python test_seeds.py  (or pytest)

Covers write-once storage, restore, strict/relaxed resolution and the
Shamir recovery kit for the seeds.
"""

import os
import tempfile

from vaultless.crypto import DerivationRequest, derive_password
from vaultless.errors import MissingInstallSeeds
from vaultless.recovery import (
    combine_seed_shares,
    generate_seed_shares,
    pack_seeds,
    print_recovery_kit,
    seed_fingerprint,
)
from vaultless.seeds import InstallSeeds, SeedStore, resolve_seeds


def test_store_writes_once():
    print("Testing seed store...")
    with tempfile.TemporaryDirectory() as tmp:
        store = SeedStore(os.path.join(tmp, "nested", "seeds.db"))
        assert store.load() is None
        assert store.created_at() is None

        first = store.initialize()
        assert first.is_complete
        second = store.initialize()
        assert first == second, "Seeds are generated exactly once"
        assert SeedStore(store.db_path).load() == first, "Survives reopening"
        stamp = store.created_at()
        assert isinstance(stamp, int) and stamp > 0
        store.initialize()
        assert store.created_at() == stamp, "Creation time is not rewritten"
    print("  [OK] Generated once, read back unchanged")


def test_restore():
    print("Testing restore...")
    seeds = InstallSeeds.generate()
    with tempfile.TemporaryDirectory() as tmp:
        store = SeedStore(os.path.join(tmp, "seeds.db"))
        store.restore(seeds)
        assert store.load() == seeds
        store.restore(seeds)  # idempotent

        try:
            store.restore(InstallSeeds.generate())
            assert False, "Must not overwrite different seeds"
        except ValueError:
            pass
    print("  [OK] Restore into empty store; no silent overwrite")


def test_resolve_seeds():
    print("Testing missing-seed policy...")
    seeds = InstallSeeds.generate()
    assert resolve_seeds(seeds, strict=True) is seeds

    for missing in (None, InstallSeeds("", ""), InstallSeeds("x", "")):
        try:
            resolve_seeds(missing, strict=True)
            assert False, f"Strict mode should refuse {missing}"
        except MissingInstallSeeds:
            pass

    assert resolve_seeds(None, strict=False) == InstallSeeds.empty()
    assert resolve_seeds(InstallSeeds("x", ""), strict=False) == InstallSeeds("x", "")
    print("  [OK] Strict refuses, relaxed degrades to empty strings")


def test_seeds_change_output():
    print("Testing cross-install separation...")
    a, b = InstallSeeds.generate(), InstallSeeds.generate()
    pw_a = derive_password(DerivationRequest(master="same master 1", domain="site.com", seeds=a))
    pw_b = derive_password(DerivationRequest(master="same master 1", domain="site.com", seeds=b))
    assert pw_a != pw_b, "Another install must derive different passwords"
    print("  [OK] Same master, different install, different password")


def test_recovery():
    print("Testing Recovery (Shamir Secret Sharing)...")
    seeds = InstallSeeds.generate()
    assert len(pack_seeds(seeds)) == 32

    shares = generate_seed_shares(seeds, k=3, n=5)
    assert len(shares) == 5, "Should generate 5 shares"
    print("  [OK] Share generation works")

    assert combine_seed_shares([shares[0], shares[2], shares[4]]) == seeds
    assert combine_seed_shares([shares[1], shares[3], shares[4]]) == seeds
    print("  [OK] Any k shares work")

    try:
        combine_seed_shares([shares[0], shares[1]])
        assert False, "Should require at least k shares"
    except ValueError:
        print("  [OK] Insufficient shares rejected")

    kit = print_recovery_kit(shares, 3, seeds=seeds, created_at=1_767_225_600)
    assert all(s in kit for s in shares)
    assert "any 3 of 5" in kit
    assert "Seeds created:  2026-01-01 00:00 UTC" in kit
    assert seed_fingerprint(seeds) in kit
    assert seeds.install_seed not in kit and seeds.user_seed not in kit, "Kit never prints raw seeds"
    assert "Fingerprint" not in print_recovery_kit(shares, 3)

    fp = seed_fingerprint(seeds)
    assert len(fp) == 19 and fp.count("-") == 3
    assert seed_fingerprint(combine_seed_shares(shares[:3])) == fp
    assert seed_fingerprint(InstallSeeds.generate()) != fp

    for k, n in ((4, 3), (1, 3), (2, 17)):
        try:
            generate_seed_shares(seeds, k, n)
            assert False, f"Should reject k={k}, n={n}"
        except ValueError:
            pass

    try:
        pack_seeds(InstallSeeds("not-a-uuid", "also-not"))
        assert False, "Non-UUID seeds cannot be packed"
    except ValueError:
        pass
    print("  [OK] Parameter and format checks")


def run_all_tests():
    print("=" * 70)
    print("vaultless - Install Seed Tests")
    print("=" * 70)
    print()

    tests = [
        test_store_writes_once,
        test_restore,
        test_resolve_seeds,
        test_seeds_change_output,
        test_recovery,
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
