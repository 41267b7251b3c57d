from __future__ import annotations

import re

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .consent_routes import router as consent_router
from .settings import settings


app = FastAPI(title="Cookie Consent API")

# ----------------------------
# CORS
# ----------------------------
# CORS_ALLOW_ORIGINS can be:
#   - comma-separated list of exact origins (e.g. https://example.org,https://www.example.org)
#   - entries with wildcards (e.g. https://*.azurestaticapps.net)
#   - or a single "*" to allow all. The cookieConsent cookie is then NOT sent
#     cross-origin, because credentials cannot be combined with a wildcard.
cors_env = (settings.CORS_ALLOW_ORIGINS or "").strip()


def _split_cors_origins(raw: str) -> list[str]:
    """Split + normalize CORS origins from an env var.

    Supports comma and/or whitespace separation.
    Removes trailing slashes (browser Origin never includes a trailing slash).
    De-dupes while preserving order.
    """
    if not raw:
        return []
    out: list[str] = []
    seen: set[str] = set()
    for t in re.split(r"[\s,]+", raw.strip()):
        t = t.strip()
        if not t:
            continue
        if t != "*" and t.endswith("/"):
            t = t.rstrip("/")
        if t not in seen:
            out.append(t)
            seen.add(t)
    return out


def _cors_options(raw: str) -> dict:
    items = _split_cors_origins(raw)
    if len(items) == 1 and items[0] == "*":
        return {"allow_origins": ["*"], "allow_origin_regex": None, "allow_credentials": False}

    literal = [o for o in items if "*" not in o]
    wildcard = [o for o in items if "*" in o]
    regex = None
    if wildcard:
        regex = "|".join("^" + re.escape(w).replace("\\*", ".*") + "$" for w in wildcard)
    if not literal and not regex:
        print("[CORS] WARNING: CORS_ALLOW_ORIGINS is empty. Browser requests from other origins will be blocked.")
    return {"allow_origins": literal, "allow_origin_regex": regex, "allow_credentials": True}


app.add_middleware(
    CORSMiddleware,
    allow_methods=["*"],
    allow_headers=["*"],
    **_cors_options(cors_env),
)

# ----------------------------
# Routes
# ----------------------------
app.include_router(consent_router)


@app.get("/")
def root():
    """
    Minimal root endpoint.

    Platform health probes call "/" by default; returning 200 here avoids false
    "container failed to start" alerts.
    """
    return {"ok": True, "service": "Cookie Consent API"}


@app.get("/health")
@app.get("/healthz")
def health():
    """Liveness probe. No storage access, so it stays fast during partial outages."""
    return {"ok": True}


@app.get("/ready")
def ready():
    return {"ok": True, "policy_version": settings.CONSENT_POLICY_VERSION}
