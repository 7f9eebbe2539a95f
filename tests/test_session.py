import json

from starlette.responses import Response

from pelakor.core.session import (
    SESSION_COOKIE,
    AppSession,
    CookieSessionStore,
    FileSessionStore,
    serializer,
)

from conftest import USERS


def test_file_store_round_trip(tmp_path):
    store = FileSessionStore(tmp_path / "pelakor" / "session.json")
    session = AppSession.load(store)
    assert not session.is_authenticated
    assert session.theme == "system"

    session.sign_in("tok-1", USERS["kabbag_umum"])
    session.theme = "dark"
    session.save(store)

    raw = json.loads((tmp_path / "pelakor" / "session.json").read_text())
    assert raw["userToken"] == "tok-1"
    assert json.loads(raw["userData"])["role"] == "kabbag_umum"

    again = AppSession.load(store)
    assert again.is_authenticated
    assert again.user["nip"] == USERS["kabbag_umum"]["nip"]
    assert again.theme == "dark"


def test_sign_out_keeps_theme(tmp_path):
    store = FileSessionStore(tmp_path / "session.json")
    session = AppSession(token="tok-1", user=USERS["pegawai"], theme="light")
    session.sign_out()
    session.save(store)

    again = AppSession.load(store)
    assert again.token is None
    assert again.user is None
    assert again.theme == "light"


def test_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert FileSessionStore(path).read() == {}


def test_file_store_clear(tmp_path):
    store = FileSessionStore(tmp_path / "session.json")
    store.write({"themePreference": "dark"})
    store.clear()
    store.clear()
    assert store.read() == {}


def test_unknown_theme_falls_back_to_system(tmp_path):
    store = FileSessionStore(tmp_path / "session.json")
    store.write({"themePreference": "neon"})
    assert AppSession.load(store).theme == "system"


def test_cookie_store_rejects_tampered_cookie():
    good = serializer.dumps({"userToken": "tok-1"})
    assert CookieSessionStore(good).read() == {"userToken": "tok-1"}
    assert CookieSessionStore(good + "x").read() == {}


def test_cookie_store_applies_staged_write():
    store = CookieSessionStore()
    AppSession(token="tok-1", user=USERS["pegawai"]).save(store)
    resp = store.apply(Response())
    cookie = resp.headers["set-cookie"]
    assert cookie.startswith(f"{SESSION_COOKIE}=")
    assert "httponly" in cookie.lower()


def test_cookie_store_clear_deletes_cookie():
    store = CookieSessionStore(serializer.dumps({"userToken": "tok-1"}))
    store.clear()
    cookie = store.apply(Response()).headers["set-cookie"]
    assert cookie.startswith(f'{SESSION_COOKIE}=""')


def test_untouched_cookie_store_sets_nothing():
    resp = CookieSessionStore().apply(Response())
    assert "set-cookie" not in resp.headers
