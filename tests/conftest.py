"""Shared fixtures.

Outbound HTTP never leaves the process: the API client gets a MagicMock
requests session, and route tests swap the `get_api` dependency for a
MagicMock(spec=ApiClient).
"""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pelakor.auth.deps import get_api
from pelakor.core.api import ApiClient
from pelakor.core.session import SESSION_COOKIE, serializer
from pelakor.main import app

BASE_URL = "http://api.test"

USERS = {
    "pegawai": {"nama": "Rina Pegawai", "nip": "198701012010011001", "role": "pegawai", "jabatan": "Staf"},
    "opd": {"nama": "Dinas PU", "nip": "198801012010011002", "role": "opd"},
    "kabbag_umum": {
        "nama": "Budi Kabbag",
        "nip": "197501012000031001",
        "role": "kabbag_umum",
        "jabatan": "Kepala Bagian Umum",
        "unit_kerja": '{"Bagian Umum"}',
    },
    "subbag_umum": {"nama": "Sari Subbag", "nip": "198001012005012001", "role": "subbag_umum"},
    "bupati": {"nama": "Pak Bupati", "nip": "196501011990031001", "role": "bupati"},
}


def make_laporan(id_laporan=1, status="diajukan", **extra):
    row = {
        "id_laporan": id_laporan,
        "judul_laporan": f"Laporan {id_laporan}",
        "isi_laporan": "AC ruang rapat rusak",
        "kategori": "kerusakan",
        "status_laporan": status,
        "nip_pelapor": USERS["pegawai"]["nip"],
        "pelapor": USERS["pegawai"]["nama"],
        "created_at": "2026-10-01T08:00:00Z",
        "updated_at": "2026-10-05T10:00:00Z",
    }
    row.update(extra)
    return row


# ── API client with a mocked requests session ───────────────────────────────


@pytest.fixture
def http():
    """MagicMock standing in for requests.Session."""
    return MagicMock()


@pytest.fixture
def make_response():
    def _make(status=200, body=None, content=None):
        resp = MagicMock()
        resp.status_code = status
        if body is None and content is None:
            resp.content = b""
            resp.json.side_effect = ValueError("no body")
        elif body is None:
            resp.content = content
            resp.json.side_effect = ValueError("not json")
        else:
            resp.content = json.dumps(body).encode()
            resp.json.return_value = body
        return resp

    return _make


@pytest.fixture
def client_api(http):
    return ApiClient(base_url=BASE_URL, token="tok-123", session=http)


# ── Web app ─────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_api():
    api = MagicMock(spec=ApiClient)
    app.dependency_overrides[get_api] = lambda: api
    yield api
    app.dependency_overrides.pop(get_api, None)


@pytest.fixture
def web(fake_api):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def login_as(web):
    """Put a signed session cookie for the given role on the test client."""

    def _login(role, token="tok-123", theme="system"):
        user = USERS[role]
        cookie = serializer.dumps({"userToken": token, "userData": json.dumps(user), "themePreference": theme})
        web.cookies.set(SESSION_COOKIE, cookie)
        return user

    return _login
