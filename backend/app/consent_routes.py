from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response

from .consent_policy import ConsentManager, ConsentNotifier, build_consent_manager
from .flags import RequestCookieJar
from .models import BannerContent, ConsentRecordOut, ConsentSessionRequest, ConsentStatus, PageLoadResponse
from .settings import ConsentConfig, settings
from .storage import JsonFileStorage, KeyValueStorage

router = APIRouter(prefix="/consent", tags=["consent"])

_storage = JsonFileStorage(settings.CONSENT_STORE_PATH)
_config = ConsentConfig.from_settings(settings)

# Other modules subscribe here to react to "consent accepted".
consent_notifier = ConsentNotifier(debug=settings.CONSENT_DEBUG)


def get_storage() -> KeyValueStorage:
    return _storage


def get_consent_config() -> ConsentConfig:
    return _config


def _check_admin(token: str | None):
    if settings.CONSENT_ADMIN_TOKEN:
        if not token or token != settings.CONSENT_ADMIN_TOKEN:
            raise HTTPException(status_code=401, detail="Missing/invalid CONSENT_ADMIN_TOKEN")


def _manager(
    session_id: str,
    request: Request,
    response: Response,
    storage: KeyValueStorage,
    config: ConsentConfig,
) -> ConsentManager:
    return build_consent_manager(
        storage.scoped(session_id),
        RequestCookieJar(request, response),
        config,
        notifier=consent_notifier,
        context=session_id,
    )


def _status(session_id: str, manager: ConsentManager) -> ConsentStatus:
    rec = manager.store.get_record()
    return ConsentStatus(
        session_id=session_id,
        has_consented=manager.has_consented(),
        policy_version=manager.config.policy_version,
        frequent_visitor=manager.ledger.is_frequent_visitor(),
        record=ConsentRecordOut(accepted=rec.accepted, date=rec.date, version=rec.version) if rec else None,
        visits=manager.ledger.visits(),
    )


@router.post("/page-load", response_model=PageLoadResponse)
def page_load(
    payload: ConsentSessionRequest,
    request: Request,
    response: Response,
    storage: KeyValueStorage = Depends(get_storage),
    config: ConsentConfig = Depends(get_consent_config),
):
    """
    Call once per page load: records the visit, then says whether to show the banner.
    A silent renewal refreshes the cookieConsent cookie on this response.
    """
    manager = _manager(payload.session_id, request, response, storage, config)
    verdict = manager.page_load()
    banner = None
    if verdict.show_banner:
        banner = BannerContent(
            text=settings.CONSENT_BANNER_TEXT,
            ok_button=settings.CONSENT_OK_BUTTON,
            view_button=settings.CONSENT_VIEW_BUTTON,
            policy_link=settings.CONSENT_POLICY_LINK,
        )
    return PageLoadResponse(
        session_id=payload.session_id,
        verdict=verdict.value,
        show_banner=verdict.show_banner,
        renewed=manager.renewed,
        banner=banner,
    )


@router.post("/accept", response_model=ConsentStatus)
def accept(
    payload: ConsentSessionRequest,
    request: Request,
    response: Response,
    storage: KeyValueStorage = Depends(get_storage),
    config: ConsentConfig = Depends(get_consent_config),
):
    manager = _manager(payload.session_id, request, response, storage, config)
    manager.accept()
    return _status(payload.session_id, manager)


@router.post("/reset", response_model=ConsentStatus)
def reset(
    payload: ConsentSessionRequest,
    request: Request,
    response: Response,
    storage: KeyValueStorage = Depends(get_storage),
    config: ConsentConfig = Depends(get_consent_config),
):
    """Visitor settings action: clears this browser's cookie and the session's record."""
    manager = _manager(payload.session_id, request, response, storage, config)
    manager.reset()
    return _status(payload.session_id, manager)


@router.post("/revoke/{session_id}", response_model=ConsentStatus)
def revoke(
    session_id: str,
    request: Request,
    response: Response,
    x_admin_token: str | None = Header(default=None),
    storage: KeyValueStorage = Depends(get_storage),
    config: ConsentConfig = Depends(get_consent_config),
):
    """
    Admin variant of reset for any session. Only the stored record can be cleared;
    a cookie already held by the visitor's browser keeps suppressing until it expires.
    """
    _check_admin(x_admin_token)
    manager = _manager(session_id, request, response, storage, config)
    manager.store.clear_record()
    return _status(session_id, manager)


@router.get("/status/{session_id}", response_model=ConsentStatus)
def get_status(
    session_id: str,
    request: Request,
    response: Response,
    storage: KeyValueStorage = Depends(get_storage),
    config: ConsentConfig = Depends(get_consent_config),
):
    manager = _manager(session_id, request, response, storage, config)
    return _status(session_id, manager)
