from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from pelakor.auth.deps import get_api, get_current_user
from pelakor.core.api import ApiClient
from pelakor.core.rbac import Perm, has_perm, home_route
from pelakor.core.schemas import laporan_list
from pelakor.modules.laporan.service import newest_first, status_counts
from pelakor.utils.dates import format_date_long, greeting

router = APIRouter(tags=["dashboard"])

RECENT_LIMIT = 5


@router.get("/")
def index(user=Depends(get_current_user)):
    return RedirectResponse(home_route(user.get("role")), status_code=303)


@router.get("/home", response_class=HTMLResponse)
def home(request: Request, welcome: int = 0, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    items = newest_first(laporan_list(api.get_laporan()))
    arsip_total = None
    if has_perm(user, Perm.EXECUTIVE_DASHBOARD):
        arsip_total = len(laporan_list(api.get_laporan_selesai()))

    return request.app.state.templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "request": request,
            "user": user,
            "welcome": bool(welcome),
            "greeting": greeting(),
            "today": format_date_long(date.today(), weekday=True),
            "counts": status_counts(items),
            "recent": items[:RECENT_LIMIT],
            "arsip_total": arsip_total,
        },
    )