from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse

from pelakor.auth.deps import get_api, get_current_user
from pelakor.core.api import ApiClient, ApiError, form_error
from pelakor.core.rbac import Perm, has_perm, require, role_of
from pelakor.core.schemas import Laporan, laporan_list, unwrap
from pelakor.core.validation import ValidationError, validate_laporan
from pelakor.core.workflow import STATUS_LABELS, allowed_actions, can_delete, can_edit
from pelakor.modules.laporan.service import filter_laporan, load_histories, newest_first
from pelakor.utils.uploads import to_upload

router = APIRouter(prefix="/laporan", tags=["laporan"])


def _get_laporan(api: ApiClient, laporan_id: int) -> Laporan:
    return Laporan.model_validate(unwrap(api.get_laporan_detail(laporan_id)))


@router.get("", response_class=HTMLResponse)
def page(
    request: Request,
    status: str = "",
    q: str = "",
    ok: str = "",
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    items = newest_first(laporan_list(api.get_laporan()))
    return request.app.state.templates.TemplateResponse(
        request,
        "laporan/index.html",
        {
            "request": request,
            "user": user,
            "items": filter_laporan(items, status, q),
            "total": len(items),
            "status": status,
            "q": q,
            "ok": ok,
            "status_choices": [(s.value, label) for s, label in STATUS_LABELS.items()],
        },
    )


@router.get("/baru", response_class=HTMLResponse)
def create_page(request: Request, user=Depends(get_current_user)):
    require(has_perm(user, Perm.SUBMIT_LAPORAN))
    return request.app.state.templates.TemplateResponse(
        request,
        "laporan/form.html",
        {"request": request, "user": user, "form": {}, "laporan": None},
    )


@router.post("/baru")
def create(
    request: Request,
    judul_laporan: str = Form(""),
    isi_laporan: str = Form(""),
    kategori: str = Form(""),
    lampiran: UploadFile | None = File(None),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.SUBMIT_LAPORAN))
    form = {"judul_laporan": judul_laporan, "isi_laporan": isi_laporan, "kategori": kategori}
    try:
        # the create form insists on one of the fixed categories
        validate_laporan(judul_laporan, isi_laporan, kategori, require_kategori=True)
        api.create_laporan(judul_laporan, isi_laporan, kategori, lampiran=to_upload(lampiran))
    except (ValidationError, ApiError) as exc:
        return request.app.state.templates.TemplateResponse(
            request,
            "laporan/form.html",
            {"request": request, "user": user, "form": form, "laporan": None, "error": form_error(exc)},
            status_code=400,
        )
    return RedirectResponse("/laporan?ok=dibuat", status_code=303)


@router.get("/{laporan_id}", response_class=HTMLResponse)
def detail(request: Request, laporan_id: int, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    laporan = _get_laporan(api, laporan_id)
    disposisi, tindak_lanjut = load_histories(api, laporan_id)
    return request.app.state.templates.TemplateResponse(
        request,
        "laporan/detail.html",
        {
            "request": request,
            "user": user,
            "laporan": laporan,
            "actions": allowed_actions(role_of(user), laporan.status_laporan),
            "disposisi_history": disposisi,
            "tindak_lanjut_history": tindak_lanjut,
        },
    )


@router.get("/{laporan_id}/edit", response_class=HTMLResponse)
def edit_page(request: Request, laporan_id: int, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    laporan = _get_laporan(api, laporan_id)
    require(can_edit(user, laporan), "Laporan hanya dapat diubah selama berstatus Diajukan")
    form = {"judul_laporan": laporan.judul_laporan, "isi_laporan": laporan.isi_laporan, "kategori": laporan.kategori or ""}
    return request.app.state.templates.TemplateResponse(
        request,
        "laporan/form.html",
        {"request": request, "user": user, "form": form, "laporan": laporan},
    )


@router.post("/{laporan_id}/edit")
def edit_save(
    request: Request,
    laporan_id: int,
    judul_laporan: str = Form(""),
    isi_laporan: str = Form(""),
    kategori: str = Form(""),
    lampiran: UploadFile | None = File(None),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    laporan = _get_laporan(api, laporan_id)
    require(can_edit(user, laporan), "Laporan hanya dapat diubah selama berstatus Diajukan")
    form = {"judul_laporan": judul_laporan, "isi_laporan": isi_laporan, "kategori": kategori}
    try:
        api.update_laporan(laporan_id, judul_laporan, isi_laporan, kategori, lampiran=to_upload(lampiran))
    except (ValidationError, ApiError) as exc:
        return request.app.state.templates.TemplateResponse(
            request,
            "laporan/form.html",
            {"request": request, "user": user, "form": form, "laporan": laporan, "error": form_error(exc)},
            status_code=400,
        )
    return RedirectResponse(f"/laporan/{laporan_id}", status_code=303)


@router.post("/{laporan_id}/hapus")
def delete(laporan_id: int, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    laporan = _get_laporan(api, laporan_id)
    require(can_delete(user, laporan), "Laporan hanya dapat dihapus selama berstatus Diajukan")
    api.delete_laporan(laporan_id)
    return RedirectResponse("/laporan?ok=dihapus", status_code=303)
