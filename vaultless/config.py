"""
Configuration constants for vaultless.

Everything tunable lives here so the engines stay pure functions of their
inputs. Values marked "wire" change every derived password if edited.
"""

import os


# =============================================================================
# Key Derivation (wire)
# =============================================================================

PBKDF2_ITERATIONS = 200_000   # Key stretching cost; never lower this
IKM_SIZE = 32                 # 256-bit intermediate key material
STREAM_SIZE = 128             # 1024 bits of HKDF output per derivation


# =============================================================================
# Output Formats (wire)
# =============================================================================

MIN_LENGTH = 12
MAX_LENGTH = 64
DEFAULT_LENGTH = 20

MODE_DEFAULT = "default"
MODE_ALPHANUMSYM = "alphanumsym"
MODE_BASE64URL = "base64url"
MODE_UUID4 = "uuid4"
MODES = (MODE_DEFAULT, MODE_ALPHANUMSYM, MODE_BASE64URL, MODE_UUID4)

LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()-_=+[]{};:,.?"
FULL_CHARSET = LOWERCASE + UPPERCASE + DIGITS + SYMBOLS
BASE64URL_CHARSET = LOWERCASE + UPPERCASE + DIGITS + "-_"
BASE64URL_SPECIALS = "-_"

# Order matters: first pre-selected position gets lowercase, then upper, ...
REQUIRED_CLASSES = (LOWERCASE, UPPERCASE, DIGITS, SYMBOLS)


# =============================================================================
# Salt Labels (wire)
# =============================================================================

SALT_TRUSTED = "vaultless"
SALT_DECOY = "vaultless-decoy"
SALT_EXPIRED = "vaultless-expired"


# =============================================================================
# Policy
# =============================================================================

REGEX_ANCHOR = "^"                        # Patterns starting with this are raw regexes
POLICY_MODE_DEFAULT_DENY = "DENY+ALLOW+EXCEPT"
POLICY_MODE_DEFAULT_ALLOW = "ALLOW+DENY+EXCEPT"
LICENSE_EXPIRED = "EXPIRED"
ROTATION_EPOCH_DAYS = 90
SECONDS_PER_DAY = 86400

ACTION_ALLOW = "ALLOW"
ACTION_DENY = "DENY"
TRUSTED = "TRUSTED"
UNTRUSTED = "UNTRUSTED"
UNKNOWN_DOMAIN = "unknown"

DEFAULT_POLICY_PATH = os.environ.get(
    "VAULTLESS_POLICY",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "policy.example.json"),
)


# =============================================================================
# Session Cache
# =============================================================================

FILL_TTL_SECONDS = 20         # Bounds the TOCTOU window, not derivation cost


# =============================================================================
# Install State
# =============================================================================

VAULTLESS_HOME = os.environ.get("VAULTLESS_HOME", os.path.join(os.path.expanduser("~"), ".vaultless"))
DEFAULT_SEED_DB = os.path.join(VAULTLESS_HOME, "seeds.db")
STRICT_SEEDS = True           # Missing seeds are fatal unless explicitly relaxed


# =============================================================================
# UI Heuristics
# =============================================================================

MASTER_MIN_LENGTH = 6
PHISHING_MAX_HOST_LENGTH = 40
PHISHING_MAX_HYPHENS = 4
PUNYCODE_MARKER = "xn--"
LOCAL_HOSTS = ("localhost", "127.0.0.1")

PASSMOJI_EMOJIS = (
    "🔑", "❤️", "💡", "🌟", "🍀", "🚀", "🌈", "🐶", "🍕", "🎉",
    "🎶", "🌍", "🔥", "💧", "⚡", "🌱", "🍎", "💰", "👑", "🗿",
)
VISUALIZATION_SALT = "vaultless-visual-v1"


# =============================================================================
# Logging
# =============================================================================

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
LOG_LEVEL = os.environ.get("VAULTLESS_LOG_LEVEL", "WARNING")
