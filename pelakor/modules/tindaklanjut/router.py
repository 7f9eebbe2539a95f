from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse

from pelakor.auth.deps import get_api, get_current_user
from pelakor.core.api import ApiClient, ApiError, form_error
from pelakor.core.rbac import Perm, has_perm, require, role_of
from pelakor.core.schemas import Laporan, TindakLanjutHistory, laporan_list, tindak_lanjut_list, unwrap
from pelakor.core.validation import ValidationError
from pelakor.core.workflow import (
    TINDAK_LANJUT_STATUSES,
    StatusLaporan,
    can_transition,
    default_tindak_lanjut_status,
    is_final,
    parse_status,
    tindak_lanjut_options,
)
from pelakor.modules.laporan.service import history_or_empty, newest_first
from pelakor.utils.uploads import to_upload

router = APIRouter(prefix="/tindak-lanjut", tags=["tindak-lanjut"])
logger = logging.getLogger("pelakor.tindaklanjut")

MSG_CLOSED = "Laporan ini sudah selesai ditangani dan tidak dapat ditindaklanjuti lagi"


def _get_laporan(api: ApiClient, laporan_id: int) -> Laporan:
    return Laporan.model_validate(unwrap(api.get_laporan_detail(laporan_id)))


def _history(api: ApiClient, laporan_id: int) -> list[TindakLanjutHistory]:
    return tindak_lanjut_list(history_or_empty("tindak lanjut", api.get_tindak_lanjut_history, laporan_id))


def _require_status(laporan: Laporan, status: str, user) -> None:
    # blank or unknown values are left to form validation
    if status in TINDAK_LANJUT_STATUSES:
        require(
            can_transition(laporan.status_laporan, status, role_of(user)),
            "Status tindak lanjut tidak dapat dipilih untuk laporan ini",
            409,
        )


def _find_entry(api: ApiClient, laporan_id: int, id_tindak_lanjut: int) -> TindakLanjutHistory:
    for entry in _history(api, laporan_id):
        if entry.id_tindak_lanjut == id_tindak_lanjut:
            return entry
    require(False, "Catatan tindak lanjut tidak ditemukan", 404)


@router.get("", response_class=HTMLResponse)
def page(request: Request, ok: str = "", api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    items = newest_first(laporan_list(api.get_tindak_lanjut()))
    return request.app.state.templates.TemplateResponse(
        request,
        "tindaklanjut/index.html",
        {
            "request": request,
            "user": user,
            "diproses": [x for x in items if parse_status(x.status_laporan) == StatusLaporan.DIPROSES],
            "ditindaklanjuti": [x for x in items if parse_status(x.status_laporan) == StatusLaporan.DITINDAKLANJUTI],
            "ok": ok,
        },
    )


@router.get("/riwayat", response_class=HTMLResponse)
def riwayat(request: Request, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    items = newest_first(laporan_list(api.get_tindak_lanjut()))
    handled = [x for x in items if parse_status(x.status_laporan) != StatusLaporan.DIPROSES]
    return request.app.state.templates.TemplateResponse(
        request,
        "tindaklanjut/riwayat.html",
        {"request": request, "user": user, "items": handled},
    )


@router.get("/{laporan_id}", response_class=HTMLResponse)
def form_page(request: Request, laporan_id: int, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    laporan = _get_laporan(api, laporan_id)
    return request.app.state.templates.TemplateResponse(
        request,
        "tindaklanjut/form.html",
        {
            "request": request,
            "user": user,
            "laporan": laporan,
            "history": _history(api, laporan_id),
            "options": tindak_lanjut_options(laporan.status_laporan),
            "form": {"status": default_tindak_lanjut_status(laporan.status_laporan)},
        },
    )


@router.post("/{laporan_id}")
def submit(
    request: Request,
    laporan_id: int,
    catatan_tindak_lanjut: str = Form(""),
    status: str = Form(""),
    lampiran: UploadFile | None = File(None),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    laporan = _get_laporan(api, laporan_id)
    require(not is_final(laporan.status_laporan), MSG_CLOSED, 409)
    _require_status(laporan, status, user)

    try:
        api.post_tindak_lanjut(laporan_id, catatan=catatan_tindak_lanjut, status=status, lampiran=to_upload(lampiran))
    except (ValidationError, ApiError) as exc:
        return request.app.state.templates.TemplateResponse(
            request,
            "tindaklanjut/form.html",
            {
                "request": request,
                "user": user,
                "laporan": laporan,
                "history": _history(api, laporan_id),
                "options": tindak_lanjut_options(laporan.status_laporan),
                "form": {"status": status, "catatan_tindak_lanjut": catatan_tindak_lanjut},
                "error": form_error(exc),
            },
            status_code=400,
        )

    logger.info("Tindak lanjut laporan=%s status=%s by nip=%s", laporan_id, status, user.get("nip"))
    return RedirectResponse("/tindak-lanjut?ok=tersimpan", status_code=303)


@router.get("/entri/{id_tindak_lanjut}/edit", response_class=HTMLResponse)
def entry_edit_page(
    request: Request,
    id_tindak_lanjut: int,
    laporan_id: int,
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    laporan = _get_laporan(api, laporan_id)
    require(not is_final(laporan.status_laporan), MSG_CLOSED, 409)
    entry = _find_entry(api, laporan_id, id_tindak_lanjut)
    return request.app.state.templates.TemplateResponse(
        request,
        "tindaklanjut/entry_edit.html",
        {
            "request": request,
            "user": user,
            "laporan": laporan,
            "entry": entry,
            "options": tindak_lanjut_options(laporan.status_laporan),
            "form": {"catatan_tindak_lanjut": entry.catatan_tindak_lanjut or "", "status": entry.status_tindak_lanjut or ""},
        },
    )


@router.post("/entri/{id_tindak_lanjut}/edit")
def entry_edit_save(
    request: Request,
    id_tindak_lanjut: int,
    laporan_id: int = Form(...),
    catatan_tindak_lanjut: str = Form(""),
    status: str = Form(""),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    laporan = _get_laporan(api, laporan_id)
    require(not is_final(laporan.status_laporan), MSG_CLOSED, 409)
    _require_status(laporan, status, user)
    try:
        api.update_tindak_lanjut(id_tindak_lanjut, catatan=catatan_tindak_lanjut, status=status)
    except (ValidationError, ApiError) as exc:
        return request.app.state.templates.TemplateResponse(
            request,
            "tindaklanjut/entry_edit.html",
            {
                "request": request,
                "user": user,
                "laporan": laporan,
                "entry": TindakLanjutHistory(id_tindak_lanjut=id_tindak_lanjut),
                "options": tindak_lanjut_options(laporan.status_laporan),
                "form": {"catatan_tindak_lanjut": catatan_tindak_lanjut, "status": status},
                "error": form_error(exc),
            },
            status_code=400,
        )
    return RedirectResponse(f"/tindak-lanjut/{laporan_id}", status_code=303)


@router.post("/entri/{id_tindak_lanjut}/hapus")
def entry_delete(
    id_tindak_lanjut: int,
    laporan_id: int = Form(...),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.TINDAK_LANJUT))
    laporan = _get_laporan(api, laporan_id)
    require(not is_final(laporan.status_laporan), MSG_CLOSED, 409)
    api.delete_tindak_lanjut(id_tindak_lanjut)
    return RedirectResponse(f"/tindak-lanjut/{laporan_id}", status_code=303)
