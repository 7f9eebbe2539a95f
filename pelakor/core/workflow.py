"""Report lifecycle / state machine.

This module centralizes the status rules that every screen relies on:

1) The closed set of report statuses and their labels
2) Which transitions exist, which action triggers them and which role may request them
3) Content editability (edit/delete) per status

The backend stays the only authority on legality; these rules decide which
actions a view offers and reject impossible requests before they are sent.
The next status is never computed here: after a mutating call the view
re-reads the report from the server.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping

from pelakor.core.rbac import Role, parse_role


class StatusLaporan(str, enum.Enum):
    DIAJUKAN = "diajukan"
    DIPROSES = "diproses"
    DITINDAKLANJUTI = "ditindaklanjuti"
    SELESAI = "selesai"
    DITOLAK = "ditolak"


STATUS_LABELS = {
    StatusLaporan.DIAJUKAN: "Diajukan",
    StatusLaporan.DIPROSES: "Diproses",
    StatusLaporan.DITINDAKLANJUTI: "Ditindaklanjuti",
    StatusLaporan.SELESAI: "Selesai",
    StatusLaporan.DITOLAK: "Ditolak",
}

STATUS_COLORS = {
    StatusLaporan.DIAJUKAN: "#1565C0",
    StatusLaporan.DIPROSES: "#FF9800",
    StatusLaporan.DITINDAKLANJUTI: "#2196F3",
    StatusLaporan.SELESAI: "#4CAF50",
    StatusLaporan.DITOLAK: "#D32F2F",
}

FINAL_STATUSES = (StatusLaporan.SELESAI, StatusLaporan.DITOLAK)

Action = str  # "disposisi" | "tolak" | "tindak_lanjut"

# Choices offered by the follow-up form, in display order.
TINDAK_LANJUT_STATUSES = ("ditolak", "ditindaklanjuti", "selesai")

TINDAK_LANJUT_LABELS = {
    "ditolak": "Tolak Laporan",
    "ditindaklanjuti": "Sedang Ditindaklanjuti",
    "selesai": "Selesai Ditangani",
}


@dataclass(frozen=True, slots=True)
class Transition:
    """One transition edge in the state machine."""

    from_status: StatusLaporan
    action: Action
    to_status: StatusLaporan
    roles: tuple[Role, ...]


# ---- State machine configuration ----


TRANSITIONS: tuple[Transition, ...] = (
    # disposisi by the division head
    Transition(StatusLaporan.DIAJUKAN, "disposisi", StatusLaporan.DIPROSES, (Role.KABBAG_UMUM,)),
    Transition(StatusLaporan.DIAJUKAN, "tolak", StatusLaporan.DITOLAK, (Role.KABBAG_UMUM,)),
    # tindak lanjut by the assigned sub-division
    Transition(StatusLaporan.DIPROSES, "tindak_lanjut", StatusLaporan.DITINDAKLANJUTI, (Role.SUBBAG_UMUM,)),
    Transition(StatusLaporan.DIPROSES, "tindak_lanjut", StatusLaporan.SELESAI, (Role.SUBBAG_UMUM,)),
    Transition(StatusLaporan.DIPROSES, "tindak_lanjut", StatusLaporan.DITOLAK, (Role.SUBBAG_UMUM,)),
    # progress updates keep the report in ditindaklanjuti until it is closed
    Transition(StatusLaporan.DITINDAKLANJUTI, "tindak_lanjut", StatusLaporan.DITINDAKLANJUTI, (Role.SUBBAG_UMUM,)),
    Transition(StatusLaporan.DITINDAKLANJUTI, "tindak_lanjut", StatusLaporan.SELESAI, (Role.SUBBAG_UMUM,)),
    Transition(StatusLaporan.DITINDAKLANJUTI, "tindak_lanjut", StatusLaporan.DITOLAK, (Role.SUBBAG_UMUM,)),
)


def parse_status(value: Any) -> StatusLaporan | None:
    if isinstance(value, StatusLaporan):
        return value
    try:
        return StatusLaporan(str(value or "").strip().lower())
    except ValueError:
        return None


def status_label(value: Any) -> str:
    st = parse_status(value)
    if st is None:
        return str(value or "-")
    return STATUS_LABELS[st]


def status_color(value: Any) -> str:
    st = parse_status(value)
    if st is None:
        return "#9E9E9E"
    return STATUS_COLORS[st]


def is_final(value: Any) -> bool:
    return parse_status(value) in FINAL_STATUSES


def get_transition(from_status: Any, to_status: Any) -> Transition:
    src, dst = parse_status(from_status), parse_status(to_status)
    for t in TRANSITIONS:
        if t.from_status == src and t.to_status == dst:
            return t
    raise KeyError("unknown transition")


def can_transition(from_status: Any, to_status: Any, role: Any) -> bool:
    """Single validation entry point: may ``role`` request ``from -> to``?"""
    try:
        t = get_transition(from_status, to_status)
    except KeyError:
        return False
    return parse_role(role) in t.roles


def allowed_actions(role: Any, status: Any) -> list[Action]:
    r, st = parse_role(role), parse_status(status)
    actions: list[Action] = []
    for t in TRANSITIONS:
        if t.from_status == st and r in t.roles and t.action not in actions:
            actions.append(t.action)
    return actions


def tindak_lanjut_options(status: Any) -> list[str]:
    """Follow-up statuses the sub-division may pick for a report in ``status``."""
    st = parse_status(status)
    targets = {t.to_status.value for t in TRANSITIONS if t.from_status == st and t.action == "tindak_lanjut"}
    return [s for s in TINDAK_LANJUT_STATUSES if s in targets]


def default_tindak_lanjut_status(status: Any) -> str:
    if parse_status(status) == StatusLaporan.DIPROSES:
        return StatusLaporan.DITINDAKLANJUTI.value
    return StatusLaporan.SELESAI.value


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _is_submitter(user: Mapping[str, Any] | None, laporan: Any) -> bool:
    pelapor = _field(laporan, "nip_pelapor")
    if not pelapor or not user:
        # Listings scoped to the caller omit the submitter; the backend still checks ownership.
        return True
    return str(pelapor) == str(user.get("nip") or "")


def can_edit(user: Mapping[str, Any] | None, laporan: Any) -> bool:
    """Title/body/category stay editable by the submitter only while diajukan."""
    if parse_status(_field(laporan, "status_laporan")) != StatusLaporan.DIAJUKAN:
        return False
    return _is_submitter(user, laporan)


def can_delete(user: Mapping[str, Any] | None, laporan: Any) -> bool:
    return can_edit(user, laporan)
