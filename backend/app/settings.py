from dataclasses import dataclass

from pydantic import BaseModel
import os


def _env_int(name: str, default: int) -> int:
    try:
        v = os.getenv(name, "")
        if v is None or str(v).strip() == "":
            return int(default)
        return int(str(v).strip())
    except Exception:
        return int(default)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() == "true"


class Settings(BaseModel):
    # Site origin(s), comma-separated.
    # Example: "https://www.yoursite.com,https://yoursite.com"
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    # Bump this when the privacy/cookie policy changes: every stored consent
    # recorded under another version is invalidated.
    CONSENT_POLICY_VERSION: str = os.getenv("CONSENT_POLICY_VERSION", "1.0").strip() or "1.0"

    # Lifetime of the cookieConsent cookie (~6 months).
    CONSENT_FLAG_TTL_DAYS: int = _env_int("CONSENT_FLAG_TTL_DAYS", 183)

    # Visits older than this are dropped from the visit ledger.
    CONSENT_RETENTION_MONTHS: int = _env_int("CONSENT_RETENTION_MONTHS", 18)

    # If true, a record from an older policy version also voids an unexpired cookie.
    VERSION_BUMP_CLEARS_FLAG: bool = _env_bool("VERSION_BUMP_CLEARS_FLAG", False)

    # JSON file holding per-session consent records and visit ledgers.
    # App Service Linux: /home is writable & persistent.
    CONSENT_STORE_PATH: str = (os.getenv("CONSENT_STORE_PATH", "") or "").strip() or "/home/consent_store.json"

    # Optional: simple shared secret for the admin revoke endpoint.
    # If empty, revoke is open (not recommended for production). Visitor reset never needs it.
    CONSENT_ADMIN_TOKEN: str = os.getenv("CONSENT_ADMIN_TOKEN", "")

    CONSENT_DEBUG: bool = _env_bool("CONSENT_DEBUG", False)

    # Banner copy
    CONSENT_BANNER_TEXT: str = os.getenv(
        "CONSENT_BANNER_TEXT",
        "This site uses necessary cookies for site security and functionality. "
        "We do not use tracking cookies for analytics or advertising.",
    )
    CONSENT_OK_BUTTON: str = os.getenv("CONSENT_OK_BUTTON", "OK")
    CONSENT_VIEW_BUTTON: str = os.getenv("CONSENT_VIEW_BUTTON", "View Cookies")
    CONSENT_POLICY_LINK: str = os.getenv("CONSENT_POLICY_LINK", "privacy.html#cookie-policy")


settings = Settings()


@dataclass(frozen=True)
class ConsentConfig:
    """Knobs injected into the consent components (no global lookups inside them)."""

    policy_version: str = "1.0"
    flag_ttl_days: int = 183
    retention_months: int = 18
    version_bump_clears_flag: bool = False
    debug: bool = False

    @classmethod
    def from_settings(cls, s: Settings) -> "ConsentConfig":
        return cls(
            policy_version=s.CONSENT_POLICY_VERSION,
            flag_ttl_days=s.CONSENT_FLAG_TTL_DAYS,
            retention_months=s.CONSENT_RETENTION_MONTHS,
            version_bump_clears_flag=s.VERSION_BUMP_CLEARS_FLAG,
            debug=s.CONSENT_DEBUG,
        )
