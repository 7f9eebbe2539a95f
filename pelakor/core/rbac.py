from __future__ import annotations

import enum
from typing import Any, Mapping

from fastapi import HTTPException


class Role(str, enum.Enum):
    BUPATI = "bupati"
    WAKIL_BUPATI = "wakil_bupati"
    SEKDA = "sekda"
    ASISTEN = "asisten"
    STAF_AHLI = "staf_ahli"

    KABBAG_UMUM = "kabbag_umum"
    SUBBAG_UMUM = "subbag_umum"
    PEGAWAI = "pegawai"
    OPD = "opd"


ROLE_LABELS = {
    Role.BUPATI: "Bupati",
    Role.WAKIL_BUPATI: "Wakil Bupati",
    Role.SEKDA: "Sekretaris Daerah",
    Role.ASISTEN: "Asisten",
    Role.STAF_AHLI: "Staf Ahli",
    Role.KABBAG_UMUM: "Kepala Bagian Umum",
    Role.SUBBAG_UMUM: "Sub Bagian Umum",
    Role.PEGAWAI: "Pegawai",
    Role.OPD: "OPD",
}

EXECUTIVE_ROLES = (Role.BUPATI, Role.WAKIL_BUPATI, Role.SEKDA, Role.ASISTEN, Role.STAF_AHLI)


class Perm(str, enum.Enum):
    SUBMIT_LAPORAN = "laporan.submit"
    DISPOSISI = "disposisi.decide"
    TINDAK_LANJUT = "tindaklanjut.act"
    VIEW_ARSIP = "arsip.view"
    EXPORT_ARSIP = "arsip.export"
    MANAGE_USERS = "users.manage"
    EXECUTIVE_DASHBOARD = "dashboard.executive"


_EXECUTIVE_PERMS = frozenset({Perm.VIEW_ARSIP, Perm.EXPORT_ARSIP, Perm.EXECUTIVE_DASHBOARD})

# Single routing/permission table: every view asks this instead of comparing role strings.
ROLE_PERMS: dict[Role, frozenset[Perm]] = {
    Role.PEGAWAI: frozenset({Perm.SUBMIT_LAPORAN}),
    Role.OPD: frozenset({Perm.SUBMIT_LAPORAN}),
    Role.KABBAG_UMUM: frozenset({Perm.DISPOSISI, Perm.VIEW_ARSIP, Perm.EXPORT_ARSIP, Perm.MANAGE_USERS}),
    Role.SUBBAG_UMUM: frozenset({Perm.TINDAK_LANJUT}),
    **{r: _EXECUTIVE_PERMS for r in EXECUTIVE_ROLES},
}

ROLE_HOME: dict[Role, str] = {
    Role.PEGAWAI: "/home",
    Role.OPD: "/laporan",
    Role.KABBAG_UMUM: "/disposisi",
    Role.SUBBAG_UMUM: "/tindak-lanjut",
    **{r: "/home" for r in EXECUTIVE_ROLES},
}


def require(condition: bool, msg: str = "Akses ditolak", status_code: int = 403) -> None:
    """Small helper used across routers.

    Defaults to 403 (permission denied). For validation errors or not-found cases,
    pass `status_code=400/404`.
    """
    if not condition:
        raise HTTPException(status_code=status_code, detail=msg)


def parse_role(value: Any) -> Role | None:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip())
    except ValueError:
        return None


def role_of(user: Mapping[str, Any] | None) -> Role | None:
    if not user:
        return None
    return parse_role(user.get("role"))


def role_label(value: Any) -> str:
    role = parse_role(value)
    if role is None:
        return str(value or "-")
    return ROLE_LABELS[role]


def has_perm(user: Mapping[str, Any] | None, perm: Perm) -> bool:
    role = role_of(user)
    if role is None:
        return False
    return perm in ROLE_PERMS.get(role, frozenset())


def home_route(value: Any) -> str:
    # unknown roles land on the employee home
    role = parse_role(value)
    if role is None:
        return ROLE_HOME[Role.PEGAWAI]
    return ROLE_HOME[role]
