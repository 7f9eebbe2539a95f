from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from pelakor.auth.deps import get_api, get_current_user
from pelakor.core.api import ApiClient, ApiError, form_error
from pelakor.core.rbac import ROLE_LABELS, Perm, has_perm, require
from pelakor.core.schemas import User, clean_unit_kerja, unwrap, user_list
from pelakor.core.validation import ValidationError, validate_user_form

router = APIRouter(prefix="/pengguna", tags=["pengguna"])
logger = logging.getLogger("pelakor.users")

MSG_DUPLICATE = "NIP atau email sudah terdaftar"
MSG_SAVE_FAILED = "Gagal menyimpan pengguna"


def _save_error(exc: Exception) -> str:
    if isinstance(exc, ApiError):
        if exc.status == 409:
            return MSG_DUPLICATE
        if exc.status == 400:
            return exc.message or "Data tidak valid. Periksa kembali input Anda."
    return form_error(exc) or MSG_SAVE_FAILED


def _me(api: ApiClient) -> User:
    return User.model_validate(unwrap(api.get_current_user()))


def _form_page(request: Request, user, form: dict, *, is_edit: bool, error: str | None = None, status_code: int = 200):
    return request.app.state.templates.TemplateResponse(
        request,
        "users/form.html",
        {
            "request": request,
            "user": user,
            "form": form,
            "is_edit": is_edit,
            "roles": [(r.value, label) for r, label in ROLE_LABELS.items()],
            "error": error,
        },
        status_code=status_code,
    )


def _user_form(
    nama: str = Form(""),
    nip: str = Form(""),
    email: str = Form(""),
    jabatan: str = Form(""),
    unit_kerja: str = Form(""),
    role: str = Form(""),
    password: str = Form(""),
) -> dict[str, str]:
    return {
        "nama": nama,
        "nip": nip,
        "email": email,
        "jabatan": jabatan,
        "unit_kerja": unit_kerja,
        "role": role,
        "password": password,
    }


@router.get("", response_class=HTMLResponse)
def page(request: Request, q: str = "", ok: str = "", api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.MANAGE_USERS))
    me = _me(api)
    unit = clean_unit_kerja(me.unit_kerja)
    # only colleagues of the same unit, never the signed-in user
    users = [u for u in user_list(api.get_users()) if u.unit_kerja_clean == unit and u.nip != me.nip]
    needle = q.strip().lower()
    if needle:
        users = [u for u in users if needle in u.nama.lower() or needle in u.nip or needle in (u.email or "").lower()]
    return request.app.state.templates.TemplateResponse(
        request,
        "users/index.html",
        {"request": request, "user": user, "users": users, "unit_kerja": unit, "q": q, "ok": ok},
    )


@router.get("/baru", response_class=HTMLResponse)
def create_page(request: Request, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.MANAGE_USERS))
    form = {"unit_kerja": _me(api).unit_kerja_clean}
    return _form_page(request, user, form, is_edit=False)


@router.post("/baru")
def create(
    request: Request,
    form: dict = Depends(_user_form),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.MANAGE_USERS))
    try:
        api.create_user(validate_user_form(form, is_edit=False))
    except (ValidationError, ApiError) as exc:
        form.pop("password", None)
        return _form_page(request, user, form, is_edit=False, error=_save_error(exc), status_code=400)
    logger.info("User created nip=%s by nip=%s", form["nip"], user.get("nip"))
    return RedirectResponse("/pengguna?ok=ditambahkan", status_code=303)


@router.get("/{user_nip}/edit", response_class=HTMLResponse)
def edit_page(request: Request, user_nip: str, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.MANAGE_USERS))
    target = User.model_validate(unwrap(api.get_user_detail(user_nip)))
    form = target.model_dump(include={"nama", "nip", "email", "jabatan", "role"})
    form["unit_kerja"] = target.unit_kerja_clean
    return _form_page(request, user, form, is_edit=True)


@router.post("/{user_nip}/edit")
def edit_save(
    request: Request,
    user_nip: str,
    form: dict = Depends(_user_form),
    api: ApiClient = Depends(get_api),
    user=Depends(get_current_user),
):
    require(has_perm(user, Perm.MANAGE_USERS))
    # nip is immutable once created
    form["nip"] = user_nip
    try:
        api.update_user(user_nip, validate_user_form(form, is_edit=True))
    except (ValidationError, ApiError) as exc:
        form.pop("password", None)
        return _form_page(request, user, form, is_edit=True, error=_save_error(exc), status_code=400)
    return RedirectResponse("/pengguna?ok=diperbarui", status_code=303)


@router.post("/{user_nip}/hapus")
def delete(user_nip: str, api: ApiClient = Depends(get_api), user=Depends(get_current_user)):
    require(has_perm(user, Perm.MANAGE_USERS))
    require(user_nip != str(user.get("nip") or ""), "Tidak dapat menghapus akun sendiri", 400)
    api.delete_user(user_nip)
    logger.info("User deleted nip=%s by nip=%s", user_nip, user.get("nip"))
    return RedirectResponse("/pengguna?ok=dihapus", status_code=303)
