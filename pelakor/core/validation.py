"""Client-side form validation.

Every check here runs before any request is sent to the backend. A failed
check raises :class:`ValidationError` carrying the message shown to the user.
"""

from __future__ import annotations

import re
from typing import Any

from pelakor.core.workflow import TINDAK_LANJUT_STATUSES

JUDUL_MAX = 100
JUDUL_EDIT_MAX = 200
ISI_MAX = 500
ISI_EDIT_MAX = 2000
KATEGORI_EDIT_MAX = 100
CATATAN_DISPOSISI_MAX = 300
CATATAN_TINDAK_LANJUT_MAX = 500
NIP_MIN_DIGITS = 8

KATEGORI_OPTIONS: dict[str, str] = {
    "konsumsi": "Makan & Minum",
    "kebutuhan": "Kebutuhan",
    "kerusakan": "Kerusakan",
    "lainnya": "Lainnya",
}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_RE = re.compile(r"^\d+$")


class ValidationError(ValueError):
    """Raised when user input is rejected before reaching the network."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def require(condition: Any, message: str) -> None:
    if not condition:
        raise ValidationError(message)


def _clean(value: str | None) -> str:
    return (value or "").strip()


def validate_login(identifier: str | None, password: str | None) -> tuple[str, str]:
    ident = _clean(identifier)
    require(ident and _clean(password), "NIP/Email dan password wajib diisi.")
    return ident, password or ""


def validate_laporan(
    judul_laporan: str | None,
    isi_laporan: str | None,
    kategori: str | None = None,
    *,
    require_kategori: bool = False,
    edit: bool = False,
) -> dict[str, str]:
    """Normalize the report form; returns the trimmed fields that will be sent."""
    judul = _clean(judul_laporan)
    isi = _clean(isi_laporan)
    kat = _clean(kategori)

    require(judul and isi, "Judul dan Deskripsi wajib diisi")
    if require_kategori:
        require(kat, "Pilih kategori laporan")
        require(kat in KATEGORI_OPTIONS, "Kategori laporan tidak valid")

    judul_max = JUDUL_EDIT_MAX if edit else JUDUL_MAX
    isi_max = ISI_EDIT_MAX if edit else ISI_MAX
    require(len(judul) <= judul_max, f"Judul maksimal {judul_max} karakter")
    require(len(isi) <= isi_max, f"Deskripsi maksimal {isi_max} karakter")
    if edit:
        require(len(kat) <= KATEGORI_EDIT_MAX, f"Kategori maksimal {KATEGORI_EDIT_MAX} karakter")

    data = {"judul_laporan": judul, "isi_laporan": isi}
    if kat:
        data["kategori"] = kat
    return data


def validate_disposisi(valid: bool, catatan_disposisi: str | None, nip_penanggung_jawab: str | None) -> dict[str, Any]:
    """Build the disposition payload.

    Approving requires a responsible party; approving and rejecting both
    require a rationale note.
    """
    nip = _clean(nip_penanggung_jawab)
    catatan = _clean(catatan_disposisi)

    if valid:
        require(nip, "Pilih penanggung jawab terlebih dahulu")
    require(catatan, "Catatan disposisi wajib diisi")
    require(len(catatan) <= CATATAN_DISPOSISI_MAX, f"Catatan maksimal {CATATAN_DISPOSISI_MAX} karakter")

    if valid:
        return {"nip_penanggung_jawab": nip, "catatan_disposisi": catatan, "valid": True}
    return {"catatan_disposisi": catatan, "valid": False}


def validate_tindak_lanjut(catatan: str | None, status: str | None) -> dict[str, str]:
    text = _clean(catatan)
    st = _clean(status)
    require(text, "Catatan tindak lanjut wajib diisi")
    require(len(text) <= CATATAN_TINDAK_LANJUT_MAX, f"Catatan maksimal {CATATAN_TINDAK_LANJUT_MAX} karakter")
    require(st in TINDAK_LANJUT_STATUSES, "Status tindak lanjut tidak valid")
    return {"catatan_tindak_lanjut": text, "status": st}


def validate_user_form(form: dict[str, Any], *, is_edit: bool) -> dict[str, str]:
    """Validate the user management form.

    Returns the payload for create/update. ``nip`` is dropped on update since
    it is immutable once created; ``password`` is only sent when filled in.
    """
    nama = _clean(form.get("nama"))
    nip = _clean(form.get("nip"))
    email = _clean(form.get("email"))
    jabatan = _clean(form.get("jabatan"))
    unit_kerja = _clean(form.get("unit_kerja"))
    role = _clean(form.get("role"))
    password = _clean(form.get("password"))

    require(nama, "Nama wajib diisi")
    require(nip, "NIP wajib diisi")
    require(email, "Email wajib diisi")
    require(jabatan, "Jabatan wajib diisi")
    require(unit_kerja, "Unit kerja wajib diisi")
    require(role, "Role wajib dipilih")
    if not is_edit:
        require(password, "Password wajib diisi")
    require(_EMAIL_RE.match(email), "Format email tidak valid")
    require(_DIGITS_RE.match(nip), "NIP harus berupa angka")
    require(len(nip) >= NIP_MIN_DIGITS, f"NIP minimal {NIP_MIN_DIGITS} digit")

    data = {
        "nama": nama,
        "nip": nip,
        "email": email.lower(),
        "jabatan": jabatan,
        "unit_kerja": unit_kerja,
        "role": role,
    }
    if password:
        data["password"] = password
    if is_edit:
        data.pop("nip")
    return data
