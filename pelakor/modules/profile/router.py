from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from pelakor.auth.deps import get_api, get_app_session, get_current_user, get_session_store
from pelakor.core.api import ApiClient
from pelakor.core.rbac import require
from pelakor.core.schemas import User, unwrap
from pelakor.core.session import THEMES, AppSession, CookieSessionStore

router = APIRouter(prefix="/profil", tags=["profil"])

THEME_LABELS = {"light": "Terang", "dark": "Gelap", "system": "Ikuti Sistem"}


@router.get("", response_class=HTMLResponse)
def page(
    request: Request,
    api: ApiClient = Depends(get_api),
    session: AppSession = Depends(get_app_session),
    user=Depends(get_current_user),
):
    profile = User.model_validate(unwrap(api.get_current_user()))
    return request.app.state.templates.TemplateResponse(
        request,
        "profile.html",
        {
            "request": request,
            "user": user,
            "profile": profile,
            "theme": session.theme,
            "themes": [(t, THEME_LABELS[t]) for t in THEMES],
        },
    )


@router.post("/tema")
def set_theme(
    theme: str = Form(...),
    session: AppSession = Depends(get_app_session),
    store: CookieSessionStore = Depends(get_session_store),
    user=Depends(get_current_user),
):
    require(theme in THEMES, "Tema tidak dikenal", 400)
    session.theme = theme
    session.save(store)
    return store.apply(RedirectResponse("/profil", status_code=303))
