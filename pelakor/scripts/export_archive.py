"""Command line access to the archive export.

    python -m pelakor.scripts.export_archive login --identifier 198701012010011001
    python -m pelakor.scripts.export_archive export --start 2026-01-01 --end 2026-06-30
    python -m pelakor.scripts.export_archive logout
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from datetime import date

from pelakor.core.api import ApiClient, ApiError
from pelakor.core.config import settings
from pelakor.core.rbac import Perm, has_perm
from pelakor.core.schemas import User, laporan_list
from pelakor.core.session import AppSession, FileSessionStore, SessionStore
from pelakor.core.validation import ValidationError
from pelakor.utils.pdf_report import (
    ArchiveExportError,
    ArchiveOptions,
    EmptyArchiveError,
    export_archive,
    get_backend,
)

logger = logging.getLogger("pelakor.cli")


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"tanggal tidak valid: {value} (YYYY-MM-DD)") from None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pelakor-export", description="Ekspor arsip laporan PELAKOR")
    p.add_argument("--session-file", default=None, help="lokasi file sesi (default: SESSION_FILE)")
    sub = p.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="masuk dan simpan token")
    login.add_argument("--identifier", required=True, help="NIP atau email")
    login.add_argument("--password", default=None, help="dibaca dari prompt bila tidak diberikan")

    export = sub.add_parser("export", help="unduh arsip laporan selesai")
    export.add_argument("--start", type=_iso_date, default=None)
    export.add_argument("--end", type=_iso_date, default=None)
    export.add_argument("--format", choices=("pdf", "html"), default="pdf")
    export.add_argument("--title", default=None)
    export.add_argument("--out", default=None, help="folder tujuan (default: EXPORT_DIR)")

    sub.add_parser("logout", help="hapus sesi tersimpan")
    return p


def cmd_login(args: argparse.Namespace, store: SessionStore, api: ApiClient) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    result = api.login(args.identifier, password)
    if not isinstance(result, dict) or not result.get("success") or not result.get("token"):
        print("Login gagal. Periksa kembali NIP/Email dan password Anda.", file=sys.stderr)
        return 1

    session = AppSession.load(store)
    user = User.model_validate(result.get("user") or {})
    session.sign_in(result["token"], user.to_session())
    session.save(store)
    print(f"Selamat datang, {user.nama} ({user.role_label})")
    return 0


def cmd_export(args: argparse.Namespace, store: SessionStore, api: ApiClient) -> int:
    session = AppSession.load(store)
    if not session.is_authenticated:
        print("Belum login. Jalankan perintah 'login' terlebih dahulu.", file=sys.stderr)
        return 1
    if not has_perm(session.user, Perm.EXPORT_ARSIP):
        print("Akses ditolak: peran Anda tidak dapat mengekspor arsip.", file=sys.stderr)
        return 1
    if args.start and args.end and args.start > args.end:
        print("Tanggal mulai tidak boleh setelah tanggal akhir.", file=sys.stderr)
        return 1

    api.token = session.token
    items = laporan_list(api.get_laporan_selesai(args.start, args.end))
    options = ArchiveOptions(start_date=args.start, end_date=args.end)
    if args.title:
        options.title = args.title

    try:
        archive = export_archive(items, options, get_backend(args.format))
    except EmptyArchiveError as exc:
        print(exc.message)
        return 0

    path = archive.save(args.out or settings.EXPORT_DIR)
    print(f"{len(items)} laporan diekspor ke {path}")
    return 0


def cmd_logout(args: argparse.Namespace, store: SessionStore, api: ApiClient) -> int:
    session = AppSession.load(store)
    session.sign_out()
    session.save(store)
    print("Sesi dihapus.")
    return 0


COMMANDS = {"login": cmd_login, "export": cmd_export, "logout": cmd_logout}


def main(argv: list[str] | None = None, api: ApiClient | None = None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    store = FileSessionStore(args.session_file)
    api = api or ApiClient()
    try:
        return COMMANDS[args.command](args, store, api)
    except (ApiError, ValidationError, ArchiveExportError) as exc:
        print(exc.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
