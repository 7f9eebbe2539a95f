from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, Response

from pelakor.auth.deps import get_api, get_current_user
from pelakor.core.api import ApiClient
from pelakor.core.rbac import Perm, has_perm, require
from pelakor.core.schemas import Laporan, laporan_list, unwrap
from pelakor.modules.laporan.service import load_histories, newest_first
from pelakor.utils.pdf_report import (
    ArchiveExportError,
    ArchiveOptions,
    EmptyArchiveError,
    export_archive,
    get_backend,
)

router = APIRouter(prefix="/arsip", tags=["arsip"])

MSG_NO_DATA = "Tidak ada laporan selesai pada periode yang dipilih."


def _parse_date(value: str, label: str) -> date | None:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        require(False, f"Format {label} tidak valid (YYYY-MM-DD)", 400)


def _period(start_date: str, end_date: str) -> tuple[date | None, date | None]:
    start = _parse_date(start_date, "tanggal mulai")
    end = _parse_date(end_date, "tanggal akhir")
    if start and end:
        require(start <= end, "Tanggal mulai tidak boleh setelah tanggal akhir", 400)
    return start, end


def _index(
    request: Request,
    user,
    items: list[Laporan],
    start_date: str,
    end_date: str,
    notice: str | None = None,
    error: str | None = None,
    status_code: int = 200,
):
    return request.app.state.templates.TemplateResponse(
        request,
        "arsip/index.html",
        {
            "request": request,
            "user": user,
            "items": items,
            "start_date": start_date,
            "end_date": end_date,
            "notice": notice,
            "error": error,
        },
        status_code=status_code,
    )


@router.get("", response_class=HTMLResponse)
def page(
    request: Request,
    start_date: str = "",
    end_date: str = "",
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.VIEW_ARSIP))
    start, end = _period(start_date, end_date)
    items = newest_first(laporan_list(api.get_laporan_selesai(start, end)))
    return _index(request, user, items, start_date, end_date)


@router.get("/export")
def export(
    request: Request,
    start_date: str = "",
    end_date: str = "",
    format: str = "pdf",
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.EXPORT_ARSIP))
    require(format in ("pdf", "html"), "Format ekspor tidak dikenal", 400)
    start, end = _period(start_date, end_date)
    items = newest_first(laporan_list(api.get_laporan_selesai(start, end)))

    options = ArchiveOptions(start_date=start, end_date=end)
    try:
        archive = export_archive(items, options, get_backend(format))
    except EmptyArchiveError:
        return _index(request, user, items, start_date, end_date, notice=MSG_NO_DATA)
    except ArchiveExportError as exc:
        return _index(request, user, items, start_date, end_date, error=exc.message, status_code=500)

    if format == "html":
        return HTMLResponse(archive.content.decode("utf-8"))
    return Response(
        content=archive.content,
        media_type=archive.media_type,
        headers={"Content-Disposition": f'attachment; filename="{archive.filename}"'},
    )


@router.get("/{laporan_id}", response_class=HTMLResponse)
def detail(request: Request, laporan_id: int, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.VIEW_ARSIP))
    laporan = Laporan.model_validate(unwrap(api.get_laporan_detail(laporan_id)))
    disposisi, tindak_lanjut = load_histories(api, laporan_id)
    return request.app.state.templates.TemplateResponse(
        request,
        "arsip/detail.html",
        {
            "request": request,
            "user": user,
            "laporan": laporan,
            "disposisi_history": disposisi,
            "tindak_lanjut_history": tindak_lanjut,
        },
    )
