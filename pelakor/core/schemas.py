from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from pelakor.core.rbac import role_label
from pelakor.core.workflow import status_color, status_label

_UNIT_KERJA_RE = re.compile(r'^\{"?(.*?)"?\}$')


def clean_unit_kerja(unit_kerja: Any) -> str:
    """Unwrap the array-literal form the backend stores, e.g. ``{"Bagian Umum"}``."""
    if not unit_kerja:
        return ""
    return _UNIT_KERJA_RE.sub(r"\1", str(unit_kerja))


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class Laporan(_ApiModel):
    id_laporan: int
    judul_laporan: str = ""
    isi_laporan: str = ""
    kategori: str | None = None
    lampiran: str | None = None
    status_laporan: str = "diajukan"
    nip_pelapor: str | None = None
    pelapor: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    # present on disposition/archive listings
    catatan_disposisi: str | None = None
    tanggal_disposisi: str | None = None
    tanggal_tindak_lanjut: list[str] | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_nik(cls, data: Any) -> Any:
        if isinstance(data, dict) and "nip_pelapor" not in data and "nik_pelapor" in data:
            data = {**data, "nip_pelapor": data["nik_pelapor"]}
        if isinstance(data, dict) and data.get("nip_pelapor") is not None:
            data = {**data, "nip_pelapor": str(data["nip_pelapor"])}
        if isinstance(data, dict) and isinstance(data.get("tanggal_tindak_lanjut"), str):
            data = {**data, "tanggal_tindak_lanjut": [data["tanggal_tindak_lanjut"]]}
        return data

    @property
    def status_label(self) -> str:
        return status_label(self.status_laporan)

    @property
    def status_color(self) -> str:
        return status_color(self.status_laporan)


class DisposisiHistory(_ApiModel):
    id: int | None = None
    status_disposisi: str | None = None
    catatan_disposisi: str | None = None
    kabbag_umum: str | None = None
    penanggung_jawab: str | None = None
    created_at: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_actor(cls, data: Any) -> Any:
        if isinstance(data, dict) and "kabbag_umum" not in data and "kabbag" in data:
            data = {**data, "kabbag_umum": data["kabbag"]}
        return data


class TindakLanjutHistory(_ApiModel):
    id_tindak_lanjut: int | None = None
    catatan_tindak_lanjut: str | None = None
    status_tindak_lanjut: str | None = None
    lampiran: str | None = None
    created_at: str | None = None
    penindak: str | None = None
    jabatan: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        if "id_tindak_lanjut" not in out and "id" in out:
            out["id_tindak_lanjut"] = out["id"]
        if "catatan_tindak_lanjut" not in out and "catatan" in out:
            out["catatan_tindak_lanjut"] = out["catatan"]
        if "status_tindak_lanjut" not in out and "status_tindaklanjut" in out:
            out["status_tindak_lanjut"] = out["status_tindaklanjut"]
        return out

    @property
    def status_label(self) -> str:
        return status_label(self.status_tindak_lanjut)


class User(_ApiModel):
    nama: str = ""
    nip: str = ""
    email: str | None = None
    role: str | None = None
    jabatan: str | None = None
    unit_kerja: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        # nip is the single identifier; some endpoints still answer with nik
        if not out.get("nip") and out.get("nik"):
            out["nip"] = out["nik"]
        out.pop("nik", None)
        out.pop("password", None)
        if out.get("nip") is not None:
            out["nip"] = str(out["nip"])
        if isinstance(out.get("unit_kerja"), list):
            out["unit_kerja"] = ", ".join(str(x) for x in out["unit_kerja"])
        return out

    @property
    def unit_kerja_clean(self) -> str:
        return clean_unit_kerja(self.unit_kerja)

    @property
    def role_label(self) -> str:
        return role_label(self.role)

    @property
    def initials(self) -> str:
        return "".join(w[0] for w in self.nama.split() if w)[:2].upper()

    def to_session(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def _rows(data: Any) -> list[Any]:
    # some list endpoints wrap rows as {"data": [...]}
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    if isinstance(data, list):
        return data
    return []


def laporan_list(data: Any) -> list[Laporan]:
    return [Laporan.model_validate(x) for x in _rows(data)]


def disposisi_list(data: Any) -> list[DisposisiHistory]:
    return [DisposisiHistory.model_validate(x) for x in _rows(data)]


def tindak_lanjut_list(data: Any) -> list[TindakLanjutHistory]:
    return [TindakLanjutHistory.model_validate(x) for x in _rows(data)]


def user_list(data: Any) -> list[User]:
    return [User.model_validate(x) for x in _rows(data)]


def unwrap(data: Any) -> Any:
    """Single-object endpoints answer either the object or {"data": object}."""
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        return data["data"]
    return data
