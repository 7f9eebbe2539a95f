from __future__ import annotations

import logging
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse

from pelakor.auth.deps import get_api, get_app_session, get_session_store
from pelakor.core.api import ApiClient, ApiError
from pelakor.core.rbac import home_route
from pelakor.core.schemas import User
from pelakor.core.session import AppSession, CookieSessionStore
from pelakor.core.validation import ValidationError

router = APIRouter()
logger = logging.getLogger("pelakor.auth")


def _safe_next_url(next_url: str | None) -> str:
    if not next_url:
        return ""

    parsed = urlparse(next_url)
    if parsed.scheme or parsed.netloc:
        return ""

    path = parsed.path or "/"
    if not path.startswith("/"):
        path = "/" + path.lstrip("/")
    if path.startswith("//"):
        return ""
    if path in ("/login", "/logout"):
        return ""

    if parsed.query:
        path = f"{path}?{parsed.query}"
    return path


@router.get("/login")
def login_page(request: Request, redirect_url: str = "", session: AppSession = Depends(get_app_session)):
    if session.is_authenticated:
        return RedirectResponse(home_route((session.user or {}).get("role")), status_code=303)
    return request.app.state.templates.TemplateResponse(
        request,
        "auth/login.html",
        {"request": request, "next_url": _safe_next_url(redirect_url), "identifier": ""},
    )


@router.post("/login")
def login(
    request: Request,
    identifier: str = Form(""),
    password: str = Form(""),
    redirect_url: str = Form(""),
    api: ApiClient = Depends(get_api),
    session: AppSession = Depends(get_app_session),
    store: CookieSessionStore = Depends(get_session_store),
):
    target_url = _safe_next_url(redirect_url)

    def _fail(message: str):
        return request.app.state.templates.TemplateResponse(
            request,
            "auth/login.html",
            {"request": request, "error": message, "next_url": target_url, "identifier": identifier},
            status_code=400,
        )

    try:
        result = api.login(identifier, password)
    except ValidationError as exc:
        return _fail(exc.message)
    except ApiError as exc:
        return _fail(exc.message)

    if not isinstance(result, dict) or not result.get("success") or not result.get("token"):
        message = (result or {}).get("message") if isinstance(result, dict) else None
        return _fail(message or "Login gagal. Periksa kembali NIP/Email dan password Anda.")

    user = User.model_validate(result.get("user") or {}).to_session()
    session.sign_in(result["token"], user)
    session.save(store)
    logger.info("Login ok nip=%s role=%s", user.get("nip"), user.get("role"))

    target = target_url or f"{home_route(user.get('role'))}?welcome=1"
    return store.apply(RedirectResponse(target, status_code=303))


@router.post("/logout")
def logout(session: AppSession = Depends(get_app_session), store: CookieSessionStore = Depends(get_session_store)):
    session.sign_out()
    session.save(store)
    return store.apply(RedirectResponse("/login", status_code=303))
