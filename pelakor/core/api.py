"""PELAKOR backend API client.

All outbound HTTP calls to the PELAKOR REST API go through `ApiClient`.
Routers never call `requests` directly.

  - Bearer token attached when the session holds one
  - Timeout: 30 s (REQUEST_TIMEOUT_SECONDS)
  - Every failure surfaces as one `ApiError(message, status)`
  - No retry, no cache, no de-duplication of in-flight requests

Testability: pass a mock `session` to ApiClient() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, BinaryIO

import requests

from pelakor.core.config import settings
from pelakor.core.validation import (
    validate_disposisi,
    validate_laporan,
    validate_login,
    validate_tindak_lanjut,
)

logger = logging.getLogger("pelakor.api")

MSG_SERVER_ERROR = "Terjadi kesalahan pada server"
MSG_FETCH_FAILED = "Gagal memuat data"
MSG_TIMEOUT = "Waktu permintaan habis. Periksa koneksi Anda dan coba lagi."
MSG_NETWORK = "Tidak dapat terhubung ke server. Periksa koneksi internet Anda."
MSG_UNEXPECTED = "Terjadi kesalahan yang tidak terduga"

# (filename, file object, content type) as accepted by requests' `files=`
Upload = tuple[str, BinaryIO, str]


class ApiError(Exception):
    """Raised for every failed API call.

    status is the HTTP status for server rejections, 408 for a timeout,
    0 when the server could not be reached and 500 for anything else.
    """

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.message = message
        self.status = status

    def __repr__(self) -> str:
        return f"ApiError(status={self.status}, message={self.message!r})"


def form_error(exc: Exception) -> str:
    """Message shown when a form is re-rendered; an expired session still propagates."""
    if isinstance(exc, ApiError) and exc.status == 401:
        raise exc
    return getattr(exc, "message", None) or str(exc)


def get_file_url(file_path: str | None, base_url: str | None = None) -> str | None:
    """Resolve a server-stored attachment path to an absolute URL."""
    base = (settings.api_base_url() if base_url is None else base_url.rstrip("/"))
    if not file_path or not base:
        return None
    return f"{base}{file_path}"


def _iso(d: date | str | None) -> str | None:
    if d is None or d == "":
        return None
    if isinstance(d, date):
        return d.isoformat()
    return str(d)


class ApiClient:
    """Thin typed wrapper over the PELAKOR REST API.

    One instance per request/session; the token is whatever the caller's
    session holds at construction time.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = (settings.api_base_url() if base_url is None else base_url.rstrip("/"))
        self.token = token
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def close(self) -> None:
        """Release the HTTP session's connection pool."""
        if self._session is not None:
            self._session.close()
            self._session = None

    # ── Core request dispatcher ──────────────────────────────────────────────

    def _headers(self, multipart: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        # multipart boundary is set by requests itself
        if not multipart:
            headers["Content-Type"] = "application/json"
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def fetch(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        json: Any = None,
        files: list[tuple[str, Any]] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Execute one request and return the decoded JSON body (None on 204).

        Raises:
            ApiError: for every failure, see the class docstring.
        """
        url = f"{self.base_url}{endpoint}"
        kwargs: dict[str, Any] = {"headers": self._headers(files is not None), "timeout": self.timeout}
        if json is not None:
            kwargs["json"] = json
        if files is not None:
            kwargs["files"] = files
        query = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        if query:
            kwargs["params"] = query

        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning("API timeout method=%s endpoint=%s after %ss", method, endpoint, self.timeout)
            raise ApiError(MSG_TIMEOUT, 408) from None
        except requests.ConnectionError as exc:
            logger.warning("API unreachable method=%s endpoint=%s error=%s", method, endpoint, exc)
            raise ApiError(MSG_NETWORK, 0) from None
        except Exception:
            logger.exception("API request failed method=%s endpoint=%s", method, endpoint)
            raise ApiError(MSG_UNEXPECTED, 500) from None

        # 3xx counts as a failure too; only 2xx is success
        if not 200 <= resp.status_code < 300:
            try:
                body = resp.json()
            except ValueError:
                body = {"message": MSG_SERVER_ERROR}
            message = body.get("message") if isinstance(body, dict) else None
            logger.info("API rejected method=%s endpoint=%s status=%s", method, endpoint, resp.status_code)
            raise ApiError(message or MSG_FETCH_FAILED, resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning("API answered non-JSON body method=%s endpoint=%s", method, endpoint)
            raise ApiError(MSG_SERVER_ERROR, 500) from None

    # ── AUTH ─────────────────────────────────────────────────────────────────

    def login(self, identifier: str, password: str) -> dict:
        """POST /api/auth/login -> {success, token, user}"""
        ident, pwd = validate_login(identifier, password)
        return self.fetch("/api/auth/login", "POST", json={"identifier": ident, "password": pwd})

    # ── LAPORAN ──────────────────────────────────────────────────────────────

    def get_laporan(self) -> Any:
        """GET /api/laporan - reports visible to the caller's role."""
        return self.fetch("/api/laporan")

    def get_laporan_detail(self, id_laporan: int | str) -> Any:
        return self.fetch(f"/api/laporan/{id_laporan}")

    def create_laporan(
        self,
        judul_laporan: str,
        isi_laporan: str,
        kategori: str | None = None,
        lampiran: Upload | None = None,
    ) -> Any:
        """POST /api/laporan as multipart; kategori and lampiran only when given."""
        data = validate_laporan(judul_laporan, isi_laporan, kategori)
        parts: list[tuple[str, Any]] = [(k, (None, v)) for k, v in data.items()]
        if lampiran:
            parts.append(("lampiran", lampiran))
        return self.fetch("/api/laporan", "POST", files=parts)

    def update_laporan(
        self,
        id_laporan: int | str,
        judul_laporan: str,
        isi_laporan: str,
        kategori: str | None = None,
        lampiran: Upload | None = None,
    ) -> Any:
        """PUT /api/laporan/:id (server accepts it only while status is diajukan)."""
        data = validate_laporan(judul_laporan, isi_laporan, kategori, edit=True)
        if lampiran:
            parts: list[tuple[str, Any]] = [(k, (None, v)) for k, v in data.items()]
            parts.append(("lampiran", lampiran))
            return self.fetch(f"/api/laporan/{id_laporan}", "PUT", files=parts)
        payload = {
            "judul_laporan": data["judul_laporan"],
            "isi_laporan": data["isi_laporan"],
            "kategori": data.get("kategori"),
        }
        return self.fetch(f"/api/laporan/{id_laporan}", "PUT", json=payload)

    def delete_laporan(self, id_laporan: int | str) -> Any:
        return self.fetch(f"/api/laporan/{id_laporan}", "DELETE")

    def get_laporan_selesai(self, start_date: date | str | None = None, end_date: date | str | None = None) -> Any:
        """GET /api/laporan/selesai - archive of completed reports."""
        params = {"startDate": _iso(start_date), "endDate": _iso(end_date)}
        return self.fetch("/api/laporan/selesai", params=params)

    # ── DISPOSISI ────────────────────────────────────────────────────────────

    def get_laporan_diajukan(self) -> Any:
        """GET /api/disposisi - reports waiting for a decision (kabbag_umum only)."""
        return self.fetch("/api/disposisi")

    def post_disposisi(
        self,
        laporan_id: int | str,
        *,
        valid: bool,
        catatan_disposisi: str | None,
        nip_penanggung_jawab: str | None = None,
    ) -> Any:
        payload = validate_disposisi(valid, catatan_disposisi, nip_penanggung_jawab)
        return self.fetch(f"/api/disposisi/{laporan_id}", "POST", json=payload)

    def get_disposisi_history(self, laporan_id: int | str) -> Any:
        return self.fetch(f"/api/disposisi/{laporan_id}")

    # ── TINDAK LANJUT ────────────────────────────────────────────────────────

    def get_tindak_lanjut(self) -> Any:
        """GET /api/tindaklanjut - reports assigned to the caller."""
        return self.fetch("/api/tindaklanjut")

    def post_tindak_lanjut(
        self,
        laporan_id: int | str,
        *,
        catatan: str | None,
        status: str | None,
        lampiran: Upload | None = None,
    ) -> Any:
        data = validate_tindak_lanjut(catatan, status)
        parts: list[tuple[str, Any]] = [(k, (None, v)) for k, v in data.items()]
        if lampiran:
            parts.append(("lampiran", lampiran))
        return self.fetch(f"/api/tindaklanjut/{laporan_id}", "POST", files=parts)

    def get_tindak_lanjut_history(self, laporan_id: int | str) -> Any:
        return self.fetch(f"/api/tindaklanjut/{laporan_id}")

    def update_tindak_lanjut(self, id_tindak_lanjut: int | str, *, catatan: str | None, status: str | None) -> Any:
        payload = validate_tindak_lanjut(catatan, status)
        return self.fetch(f"/api/tindaklanjut/{id_tindak_lanjut}", "PUT", json=payload)

    def delete_tindak_lanjut(self, id_tindak_lanjut: int | str) -> Any:
        return self.fetch(f"/api/tindaklanjut/{id_tindak_lanjut}", "DELETE")

    # ── USERS ────────────────────────────────────────────────────────────────

    def get_users(self, role: str | None = None, jabatan: str | None = None) -> Any:
        return self.fetch("/api/users", params={"role": role, "jabatan": jabatan})

    def get_users_by_role(self, role: str) -> Any:
        return self.fetch(f"/api/users/by-role/{role}")

    def get_subbag_umum(self) -> Any:
        """Responsible-party choices for the disposition form."""
        return self.fetch("/api/users/subbag-umum")

    def get_kabbag_users(self) -> Any:
        return self.fetch("/api/users/kabbag")

    def get_pegawai_users(self) -> Any:
        return self.fetch("/api/users/pegawai")

    def get_bagian_list(self) -> Any:
        return self.fetch("/api/users/bagian")

    def get_users_by_bagian(self, bagian: str) -> Any:
        return self.fetch(f"/api/users/by-bagian/{bagian}")

    def get_current_user(self) -> Any:
        return self.fetch("/api/users/me")

    def get_user_detail(self, nip: str) -> Any:
        return self.fetch(f"/api/users/{nip}")

    def create_user(self, data: dict[str, Any]) -> Any:
        return self.fetch("/api/users", "POST", json=data)

    def update_user(self, nip: str, data: dict[str, Any]) -> Any:
        payload = {k: v for k, v in data.items() if k != "nip"}
        if not payload.get("password"):
            payload.pop("password", None)
        return self.fetch(f"/api/users/{nip}", "PUT", json=payload)

    def delete_user(self, nip: str) -> Any:
        return self.fetch(f"/api/users/{nip}", "DELETE")
