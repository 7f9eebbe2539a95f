from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from pelakor.auth.deps import get_api, get_current_user
from pelakor.core.api import ApiClient, ApiError, form_error
from pelakor.core.rbac import Perm, has_perm, require, role_of
from pelakor.core.schemas import Laporan, disposisi_list, laporan_list, unwrap, user_list
from pelakor.core.validation import ValidationError
from pelakor.core.workflow import StatusLaporan, can_transition
from pelakor.modules.laporan.service import history_or_empty, newest_first

router = APIRouter(prefix="/disposisi", tags=["disposisi"])
logger = logging.getLogger("pelakor.disposisi")

ACTION_SETUJUI = "setujui"
ACTION_TOLAK = "tolak"


def _form_context(api: ApiClient, laporan_id: int) -> dict:
    laporan = Laporan.model_validate(unwrap(api.get_laporan_detail(laporan_id)))
    return {
        "laporan": laporan,
        "subbag_users": user_list(api.get_subbag_umum()),
        "history": disposisi_list(history_or_empty("disposisi", api.get_disposisi_history, laporan_id)),
    }


@router.get("", response_class=HTMLResponse)
def page(request: Request, ok: str = "", api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.DISPOSISI))
    items = newest_first(laporan_list(api.get_laporan_diajukan()))
    return request.app.state.templates.TemplateResponse(
        request,
        "disposisi/index.html",
        {"request": request, "user": user, "items": items, "ok": ok},
    )


@router.get("/{laporan_id}", response_class=HTMLResponse)
def form_page(request: Request, laporan_id: int, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.DISPOSISI))
    ctx = _form_context(api, laporan_id)
    return request.app.state.templates.TemplateResponse(
        request,
        "disposisi/form.html",
        {"request": request, "user": user, "form": {}, **ctx},
    )


@router.post("/{laporan_id}")
def decide(
    request: Request,
    laporan_id: int,
    action: str = Form(...),
    nip_penanggung_jawab: str = Form(""),
    catatan_disposisi: str = Form(""),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.DISPOSISI))
    require(action in (ACTION_SETUJUI, ACTION_TOLAK), "Aksi disposisi tidak valid", 400)
    valid = action == ACTION_SETUJUI
    ctx = _form_context(api, laporan_id)

    target = StatusLaporan.DIPROSES if valid else StatusLaporan.DITOLAK
    require(
        can_transition(ctx["laporan"].status_laporan, target, role_of(user)),
        "Laporan ini sudah tidak menunggu disposisi",
        409,
    )

    try:
        api.post_disposisi(
            laporan_id,
            valid=valid,
            catatan_disposisi=catatan_disposisi,
            nip_penanggung_jawab=nip_penanggung_jawab if valid else None,
        )
    except (ValidationError, ApiError) as exc:
        form = {"nip_penanggung_jawab": nip_penanggung_jawab, "catatan_disposisi": catatan_disposisi}
        return request.app.state.templates.TemplateResponse(
            request,
            "disposisi/form.html",
            {"request": request, "user": user, "form": form, "error": form_error(exc), **ctx},
            status_code=400,
        )

    logger.info("Disposisi laporan=%s valid=%s by nip=%s", laporan_id, valid, user.get("nip"))
    return RedirectResponse(f"/disposisi?ok={'disetujui' if valid else 'ditolak'}", status_code=303)
