"""
Configuration for storefront analytics.
"""
import hashlib
import logging
import os
import secrets
import warnings
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Passkey security constants
MIN_PASSKEY_LENGTH = 16

DEFAULT_GEO_TIMEOUT_SECONDS = 5.0
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7  # 7 days


class PasskeyTooShortError(ValueError):
    """Raised when a passkey doesn't meet minimum length requirements."""
    pass


def validate_passkey_strength(passkey: str) -> None:
    """Validate passkey meets security requirements.

    Raises:
        PasskeyTooShortError: If passkey is shorter than MIN_PASSKEY_LENGTH
    """
    if len(passkey) < MIN_PASSKEY_LENGTH:
        raise PasskeyTooShortError(
            f"Passkey must be at least {MIN_PASSKEY_LENGTH} characters. "
            f"Got {len(passkey)} characters."
        )


def hash_passkey(passkey: str, validate: bool = True) -> str:
    """Hash an admin passkey using PBKDF2-SHA256.

    Returns a string in format: pbkdf2:iterations:salt_hex:hash_hex

    Generate the value for ANALYTICS_PASSKEY with:

        from storefront_analytics.config import hash_passkey
        print(hash_passkey("your-secret-passkey"))

    Raises:
        PasskeyTooShortError: If validate=True and passkey is too short
    """
    if validate:
        validate_passkey_strength(passkey)

    salt = os.urandom(16)
    iterations = 100_000
    dk = hashlib.pbkdf2_hmac("sha256", passkey.encode(), salt, iterations)
    return f"pbkdf2:{iterations}:{salt.hex()}:{dk.hex()}"


def verify_passkey(stored: str, provided: str) -> bool:
    """Verify a passkey using timing-safe comparison.

    Handles both hashed (pbkdf2:...) and legacy plaintext passkeys.
    """
    if stored.startswith("pbkdf2:"):
        try:
            _, iterations_str, salt_hex, hash_hex = stored.split(":")
            iterations = int(iterations_str)
            salt = bytes.fromhex(salt_hex)
            expected_hash = bytes.fromhex(hash_hex)

            dk = hashlib.pbkdf2_hmac("sha256", provided.encode(), salt, iterations)
            return secrets.compare_digest(dk, expected_hash)
        except (ValueError, TypeError):
            return False
    else:
        return secrets.compare_digest(stored.encode(), provided.encode())


@dataclass
class AnalyticsConfig:
    """Configuration for a single analytics instance."""

    # Key-value store (Upstash-compatible REST API)
    kv_rest_url: str
    kv_rest_token: str

    # Admin gate for the reporting endpoint
    passkey: str | None = None
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS

    # Geolocation
    geo_timeout_seconds: float = DEFAULT_GEO_TIMEOUT_SECONDS

    # Reporting
    top_n: int = 10
    default_days: int = 7
    max_days: int = 365

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "AnalyticsConfig":
        """Build a config from KV_REST_API_URL / KV_REST_API_TOKEN and friends."""
        env = os.environ if environ is None else environ
        timeout = env.get("ANALYTICS_GEO_TIMEOUT")
        try:
            geo_timeout = float(timeout) if timeout else DEFAULT_GEO_TIMEOUT_SECONDS
        except ValueError:
            logger.warning(f"Ignoring invalid ANALYTICS_GEO_TIMEOUT={timeout!r}")
            geo_timeout = DEFAULT_GEO_TIMEOUT_SECONDS

        return cls(
            kv_rest_url=env.get("KV_REST_API_URL", ""),
            kv_rest_token=env.get("KV_REST_API_TOKEN", ""),
            passkey=env.get("ANALYTICS_PASSKEY") or None,
            geo_timeout_seconds=geo_timeout,
        )

    @property
    def has_auth(self) -> bool:
        """Check if the admin passkey is configured."""
        return bool(self.passkey)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_days < 1:
            raise ValueError("max_days must be at least 1")
        if not 1 <= self.default_days <= self.max_days:
            raise ValueError(f"default_days must be between 1 and {self.max_days}")
        self._validate_passkey()

    def _validate_passkey(self) -> None:
        """Warn about plaintext or short passkeys."""
        if not self.passkey:
            return

        if self.passkey.startswith("pbkdf2:"):
            logger.debug("Using hashed admin passkey")
        else:
            warnings.warn(
                "Using a plaintext admin passkey is deprecated. "
                "Use hash_passkey() to generate a hashed passkey:\n"
                "  from storefront_analytics.config import hash_passkey\n"
                "  print(hash_passkey('your-passkey'))",
                DeprecationWarning,
                stacklevel=3
            )
            if len(self.passkey) < MIN_PASSKEY_LENGTH:
                logger.warning(
                    f"Admin passkey is shorter than recommended "
                    f"{MIN_PASSKEY_LENGTH} characters"
                )

    @property
    def is_passkey_hashed(self) -> bool:
        """Check if the passkey is properly hashed."""
        return bool(self.passkey and self.passkey.startswith("pbkdf2:"))

    def check_passkey(self, provided: str) -> bool:
        """Return True if `provided` matches the configured admin passkey."""
        if not self.passkey:
            return False
        return verify_passkey(self.passkey, provided)
