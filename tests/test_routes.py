"""Web flows through the FastAPI app with the backend client mocked out.

`fake_api` replaces the `get_api` dependency; `login_as` plants a signed
session cookie for a role.
"""

from unittest.mock import patch

from pelakor.core.api import ApiError
from pelakor.core.session import SESSION_COOKIE
from pelakor.modules.arsip.router import MSG_NO_DATA
from pelakor.utils.pdf_report import PdfArchiveBackend

from conftest import USERS, make_laporan


def _location(resp):
    return resp.headers["location"]


# ── Session / auth ───────────────────────────────────────────────────────────


class TestAuth:
    def test_anonymous_page_redirects_to_login(self, web):
        resp = web.get("/home", follow_redirects=False)
        assert resp.status_code == 303
        assert _location(resp) == "/login?redirect_url=%2Fhome"

    def test_anonymous_fetch_request_gets_json_401(self, web):
        resp = web.get("/laporan", headers={"X-Requested-With": "fetch"})
        assert resp.status_code == 401
        assert resp.json()["login_url"] == "/login?redirect_url=%2Flaporan"

    def test_login_page_renders(self, web):
        resp = web.get("/login?redirect_url=/arsip")
        assert resp.status_code == 200
        assert 'value="/arsip"' in resp.text

    def test_login_success_routes_by_role(self, web, fake_api):
        fake_api.login.return_value = {"success": True, "token": "tok-9", "user": USERS["kabbag_umum"]}

        resp = web.post("/login", data={"identifier": "kabbag@pemkab.go.id", "password": "pw"}, follow_redirects=False)

        assert resp.status_code == 303
        assert _location(resp) == "/disposisi?welcome=1"
        assert SESSION_COOKIE in resp.headers["set-cookie"]
        fake_api.login.assert_called_once_with("kabbag@pemkab.go.id", "pw")

    def test_login_honours_safe_redirect(self, web, fake_api):
        fake_api.login.return_value = {"success": True, "token": "tok-9", "user": USERS["bupati"]}
        resp = web.post(
            "/login",
            data={"identifier": "x", "password": "pw", "redirect_url": "/arsip?start_date=2026-01-01"},
            follow_redirects=False,
        )
        assert _location(resp) == "/arsip?start_date=2026-01-01"

    def test_login_ignores_external_redirect(self, web, fake_api):
        fake_api.login.return_value = {"success": True, "token": "tok-9", "user": USERS["opd"]}
        resp = web.post(
            "/login",
            data={"identifier": "x", "password": "pw", "redirect_url": "https://evil.example/"},
            follow_redirects=False,
        )
        assert _location(resp) == "/laporan?welcome=1"

    def test_login_failure_rerenders_form(self, web, fake_api):
        fake_api.login.side_effect = ApiError("NIP/Email atau password salah", 401)
        resp = web.post("/login", data={"identifier": "198701012010011001", "password": "salah"})
        assert resp.status_code == 400
        assert "NIP/Email atau password salah" in resp.text
        assert 'value="198701012010011001"' in resp.text

    def test_login_unsuccessful_body(self, web, fake_api):
        fake_api.login.return_value = {"success": False}
        resp = web.post("/login", data={"identifier": "x", "password": "pw"})
        assert resp.status_code == 400
        assert "Login gagal" in resp.text

    def test_logged_in_user_skips_login_page(self, web, login_as):
        login_as("subbag_umum")
        resp = web.get("/login", follow_redirects=False)
        assert _location(resp) == "/tindak-lanjut"

    def test_logout_clears_cookie(self, web, login_as):
        login_as("pegawai")
        resp = web.post("/logout", follow_redirects=False)
        assert _location(resp) == "/login"
        assert resp.headers["set-cookie"].startswith(f"{SESSION_COOKIE}=")

    def test_backend_401_ends_session(self, web, fake_api, login_as):
        login_as("pegawai")
        fake_api.get_laporan.side_effect = ApiError("Token tidak valid", 401)

        resp = web.get("/laporan", follow_redirects=False)

        assert resp.status_code == 303
        assert _location(resp) == "/login?redirect_url=%2Flaporan"
        assert resp.headers["set-cookie"].startswith(f'{SESSION_COOKIE}=""')


# ── Role scoping ─────────────────────────────────────────────────────────────


class TestRoleScoping:
    def test_root_redirects_to_role_home(self, web, login_as):
        login_as("kabbag_umum")
        assert _location(web.get("/", follow_redirects=False)) == "/disposisi"

    def test_pegawai_cannot_open_disposisi(self, web, fake_api, login_as):
        login_as("pegawai")
        resp = web.get("/disposisi")
        assert resp.status_code == 403
        fake_api.get_laporan_diajukan.assert_not_called()

    def test_subbag_cannot_open_archive(self, web, login_as):
        login_as("subbag_umum")
        assert web.get("/arsip").status_code == 403

    def test_kabbag_cannot_submit_reports(self, web, login_as):
        login_as("kabbag_umum")
        assert web.get("/laporan/baru").status_code == 403

    def test_executive_dashboard_shows_archive_total(self, web, fake_api, login_as):
        login_as("bupati")
        fake_api.get_laporan.return_value = [make_laporan(1), make_laporan(2, "diproses")]
        fake_api.get_laporan_selesai.return_value = [make_laporan(3, "selesai")]

        resp = web.get("/home?welcome=1")

        assert resp.status_code == 200
        assert "Arsip Selesai" in resp.text
        assert "Selamat datang, Pak Bupati" in resp.text

    def test_non_executive_dashboard_skips_archive(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        fake_api.get_laporan.return_value = [make_laporan(1)]
        resp = web.get("/home")
        assert resp.status_code == 200
        assert "Arsip Selesai" not in resp.text
        fake_api.get_laporan_selesai.assert_not_called()


# ── Reports ──────────────────────────────────────────────────────────────────


class TestLaporan:
    def test_create_sends_validated_report(self, web, fake_api, login_as):
        login_as("pegawai")
        resp = web.post(
            "/laporan/baru",
            data={"judul_laporan": "AC rusak", "isi_laporan": "Ruang rapat lantai 2", "kategori": "kerusakan"},
            follow_redirects=False,
        )
        assert _location(resp) == "/laporan?ok=dibuat"
        fake_api.create_laporan.assert_called_once_with("AC rusak", "Ruang rapat lantai 2", "kerusakan", lampiran=None)

    def test_create_without_category_never_calls_backend(self, web, fake_api, login_as):
        login_as("pegawai")
        resp = web.post("/laporan/baru", data={"judul_laporan": "AC rusak", "isi_laporan": "Ruang rapat"})
        assert resp.status_code == 400
        assert "Pilih kategori laporan" in resp.text
        fake_api.create_laporan.assert_not_called()

    def test_detail_survives_missing_history(self, web, fake_api, login_as):
        login_as("pegawai")
        fake_api.get_laporan_detail.return_value = {"data": make_laporan(5, "diproses")}
        fake_api.get_disposisi_history.side_effect = ApiError("Gagal memuat data", 500)
        fake_api.get_tindak_lanjut_history.return_value = []

        resp = web.get("/laporan/5")

        assert resp.status_code == 200
        assert "Laporan 5" in resp.text
        assert "Belum ada disposisi." in resp.text

    def test_edit_refused_once_processed(self, web, fake_api, login_as):
        login_as("pegawai")
        fake_api.get_laporan_detail.return_value = make_laporan(5, "diproses")
        resp = web.post("/laporan/5/edit", data={"judul_laporan": "Baru", "isi_laporan": "Isi"})
        assert resp.status_code == 403
        fake_api.update_laporan.assert_not_called()

    def test_delete_while_submitted(self, web, fake_api, login_as):
        login_as("pegawai")
        fake_api.get_laporan_detail.return_value = make_laporan(5)
        resp = web.post("/laporan/5/hapus", follow_redirects=False)
        assert _location(resp) == "/laporan?ok=dihapus"
        fake_api.delete_laporan.assert_called_once_with(5)

    def test_backend_error_renders_error_page(self, web, fake_api, login_as):
        login_as("pegawai")
        fake_api.get_laporan.side_effect = ApiError("Tidak dapat terhubung ke server.", 0)
        resp = web.get("/laporan")
        assert resp.status_code == 502
        assert "Coba Lagi" in resp.text


    def _detail(self, fake_api, status):
        fake_api.get_laporan_detail.return_value = make_laporan(5, status)
        fake_api.get_disposisi_history.return_value = []
        fake_api.get_tindak_lanjut_history.return_value = []

    def test_detail_offers_disposisi_while_submitted(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        self._detail(fake_api, "diajukan")
        assert 'href="/disposisi/5"' in web.get("/laporan/5").text

        self._detail(fake_api, "diproses")
        assert 'href="/disposisi/5"' not in web.get("/laporan/5").text

    def test_detail_offers_follow_up_to_subbag_only(self, web, fake_api, login_as):
        login_as("subbag_umum")
        self._detail(fake_api, "ditindaklanjuti")
        text = web.get("/laporan/5").text
        assert 'href="/tindak-lanjut/5"' in text
        assert 'href="/disposisi/5"' not in text

    def test_pegawai_detail_has_no_workflow_buttons(self, web, fake_api, login_as):
        login_as("pegawai")
        self._detail(fake_api, "diproses")
        text = web.get("/laporan/5").text
        assert 'href="/tindak-lanjut/5"' not in text
        assert 'href="/disposisi/5"' not in text

    def test_expired_session_on_history_read_ends_session(self, web, fake_api, login_as):
        login_as("pegawai")
        self._detail(fake_api, "diproses")
        fake_api.get_tindak_lanjut_history.side_effect = ApiError("Token tidak valid", 401)

        resp = web.get("/laporan/5", follow_redirects=False)

        assert resp.status_code == 303
        assert _location(resp).startswith("/login")


# ── Disposition / follow-up ──────────────────────────────────────────────────


class TestWorkflowRoutes:
    def _setup_disposisi(self, fake_api, status):
        fake_api.get_laporan_detail.return_value = make_laporan(7, status)
        fake_api.get_disposisi_history.return_value = []
        fake_api.get_subbag_umum.return_value = [USERS["subbag_umum"]]

    def test_approve_disposisi(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        self._setup_disposisi(fake_api, "diajukan")

        resp = web.post(
            "/disposisi/7",
            data={"action": "setujui", "nip_penanggung_jawab": USERS["subbag_umum"]["nip"], "catatan_disposisi": "Segera"},
            follow_redirects=False,
        )

        assert _location(resp) == "/disposisi?ok=disetujui"
        fake_api.post_disposisi.assert_called_once_with(
            7, valid=True, catatan_disposisi="Segera", nip_penanggung_jawab=USERS["subbag_umum"]["nip"]
        )

    def test_reject_disposisi_drops_responsible_party(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        self._setup_disposisi(fake_api, "diajukan")

        web.post(
            "/disposisi/7",
            data={"action": "tolak", "nip_penanggung_jawab": "123", "catatan_disposisi": "Bukan wewenang"},
            follow_redirects=False,
        )

        fake_api.post_disposisi.assert_called_once_with(
            7, valid=False, catatan_disposisi="Bukan wewenang", nip_penanggung_jawab=None
        )

    def test_disposisi_on_processed_report_conflicts(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        self._setup_disposisi(fake_api, "diproses")
        resp = web.post("/disposisi/7", data={"action": "setujui", "nip_penanggung_jawab": "1", "catatan_disposisi": "x"})
        assert resp.status_code == 409
        fake_api.post_disposisi.assert_not_called()

    def test_tindak_lanjut_on_closed_report_conflicts(self, web, fake_api, login_as):
        login_as("subbag_umum")
        fake_api.get_laporan_detail.return_value = make_laporan(8, "selesai")
        resp = web.post("/tindak-lanjut/8", data={"catatan_tindak_lanjut": "x", "status": "selesai"})
        assert resp.status_code == 409
        fake_api.post_tindak_lanjut.assert_not_called()

    def test_tindak_lanjut_submit(self, web, fake_api, login_as):
        login_as("subbag_umum")
        fake_api.get_laporan_detail.return_value = make_laporan(8, "diproses")
        resp = web.post(
            "/tindak-lanjut/8",
            data={"catatan_tindak_lanjut": "Teknisi dipanggil", "status": "ditindaklanjuti"},
            follow_redirects=False,
        )
        assert _location(resp) == "/tindak-lanjut?ok=tersimpan"
        fake_api.post_tindak_lanjut.assert_called_once_with(
            8, catatan="Teknisi dipanggil", status="ditindaklanjuti", lampiran=None
        )


    def test_expired_session_on_disposisi_history(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        self._setup_disposisi(fake_api, "diajukan")
        fake_api.get_disposisi_history.side_effect = ApiError("Token tidak valid", 401)

        resp = web.get("/disposisi/7", follow_redirects=False)

        assert resp.status_code == 303
        assert _location(resp).startswith("/login")

    def _setup_entry(self, fake_api, status):
        fake_api.get_laporan_detail.return_value = make_laporan(8, status)
        fake_api.get_tindak_lanjut_history.return_value = [
            {"id_tindak_lanjut": 3, "catatan_tindak_lanjut": "Teknisi dipanggil", "status_tindak_lanjut": "ditindaklanjuti"}
        ]

    def test_entry_edit_page(self, web, fake_api, login_as):
        login_as("subbag_umum")
        self._setup_entry(fake_api, "ditindaklanjuti")

        resp = web.get("/tindak-lanjut/entri/3/edit?laporan_id=8")

        assert resp.status_code == 200
        assert "Teknisi dipanggil" in resp.text
        assert 'value="selesai"' in resp.text

    def test_entry_edit_save(self, web, fake_api, login_as):
        login_as("subbag_umum")
        self._setup_entry(fake_api, "ditindaklanjuti")

        resp = web.post(
            "/tindak-lanjut/entri/3/edit",
            data={"laporan_id": "8", "catatan_tindak_lanjut": "Unit AC diganti", "status": "selesai"},
            follow_redirects=False,
        )

        assert _location(resp) == "/tindak-lanjut/8"
        fake_api.update_tindak_lanjut.assert_called_once_with(3, catatan="Unit AC diganti", status="selesai")

    def test_entry_edit_on_closed_report_conflicts(self, web, fake_api, login_as):
        login_as("subbag_umum")
        self._setup_entry(fake_api, "selesai")
        resp = web.post(
            "/tindak-lanjut/entri/3/edit",
            data={"laporan_id": "8", "catatan_tindak_lanjut": "x", "status": "selesai"},
        )
        assert resp.status_code == 409
        fake_api.update_tindak_lanjut.assert_not_called()

    def test_entry_delete(self, web, fake_api, login_as):
        login_as("subbag_umum")
        self._setup_entry(fake_api, "diproses")

        resp = web.post("/tindak-lanjut/entri/3/hapus", data={"laporan_id": "8"}, follow_redirects=False)

        assert _location(resp) == "/tindak-lanjut/8"
        fake_api.delete_tindak_lanjut.assert_called_once_with(3)

    def test_entry_delete_on_closed_report_conflicts(self, web, fake_api, login_as):
        login_as("subbag_umum")
        self._setup_entry(fake_api, "ditolak")
        resp = web.post("/tindak-lanjut/entri/3/hapus", data={"laporan_id": "8"})
        assert resp.status_code == 409
        fake_api.delete_tindak_lanjut.assert_not_called()


# ── Archive ──────────────────────────────────────────────────────────────────


class TestArsip:
    def test_export_with_no_data_shows_notice(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        fake_api.get_laporan_selesai.return_value = []

        with patch.object(PdfArchiveBackend, "render") as render:
            resp = web.get("/arsip/export?format=pdf&start_date=2026-01-01&end_date=2026-01-31")

        render.assert_not_called()

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert MSG_NO_DATA in resp.text

    def test_export_pdf_download(self, web, fake_api, login_as):
        login_as("bupati")
        fake_api.get_laporan_selesai.return_value = [make_laporan(1, "selesai"), make_laporan(2, "selesai")]

        resp = web.get("/arsip/export?format=pdf")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"].startswith('attachment; filename="laporan_')
        assert resp.content.startswith(b"%PDF")

    def test_export_print_page(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        fake_api.get_laporan_selesai.return_value = [make_laporan(1, "selesai")]
        resp = web.get("/arsip/export?format=html")
        assert resp.status_code == 200
        assert "window.print()" in resp.text

    def test_period_passed_to_backend(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        fake_api.get_laporan_selesai.return_value = []
        web.get("/arsip?start_date=2026-01-01&end_date=2026-06-30")

        start, end = fake_api.get_laporan_selesai.call_args.args
        assert (start.isoformat(), end.isoformat()) == ("2026-01-01", "2026-06-30")

    def test_inverted_period_rejected(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        resp = web.get("/arsip/export?start_date=2026-06-30&end_date=2026-01-01")
        assert resp.status_code == 400
        fake_api.get_laporan_selesai.assert_not_called()


# ── Users / profile ──────────────────────────────────────────────────────────


class TestUsers:
    def test_list_is_scoped_to_own_unit(self, web, fake_api, login_as):
        me = login_as("kabbag_umum")
        fake_api.get_current_user.return_value = {"data": me}
        fake_api.get_users.return_value = [
            me,
            {"nama": "Sari Subbag", "nip": "198001012005012001", "role": "subbag_umum", "unit_kerja": "Bagian Umum"},
            {"nama": "Orang Lain", "nip": "199001012015011001", "role": "pegawai", "unit_kerja": '{"Bagian Hukum"}'},
        ]

        resp = web.get("/pengguna")

        assert resp.status_code == 200
        assert "Sari Subbag" in resp.text
        assert "Orang Lain" not in resp.text
        assert f"/pengguna/{me['nip']}/edit" not in resp.text

    def test_cannot_delete_own_account(self, web, fake_api, login_as):
        me = login_as("kabbag_umum")
        resp = web.post(f"/pengguna/{me['nip']}/hapus")
        assert resp.status_code == 400
        fake_api.delete_user.assert_not_called()

    def test_duplicate_user_message(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        fake_api.create_user.side_effect = ApiError("duplicate key", 409)
        resp = web.post(
            "/pengguna/baru",
            data={
                "nama": "Baru",
                "nip": "199001012015011009",
                "email": "baru@pemkab.go.id",
                "jabatan": "Staf",
                "unit_kerja": "Bagian Umum",
                "role": "pegawai",
                "password": "rahasia",
            },
        )
        assert resp.status_code == 400
        assert "NIP atau email sudah terdaftar" in resp.text

    NEW_USER = {
        "nama": "Baru",
        "nip": "199001012015011009",
        "email": "Baru@Pemkab.go.id",
        "jabatan": "Staf",
        "unit_kerja": "Bagian Umum",
        "role": "pegawai",
        "password": "rahasia",
    }

    def test_create_user(self, web, fake_api, login_as):
        login_as("kabbag_umum")

        resp = web.post("/pengguna/baru", data=self.NEW_USER, follow_redirects=False)

        assert _location(resp) == "/pengguna?ok=ditambahkan"
        fake_api.create_user.assert_called_once_with({**self.NEW_USER, "email": "baru@pemkab.go.id"})

    def test_edit_page_shows_readonly_nip(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        fake_api.get_user_detail.return_value = {"data": {**self.NEW_USER, "unit_kerja": '{"Bagian Umum"}'}}

        resp = web.get("/pengguna/199001012015011009/edit")

        assert resp.status_code == 200
        assert 'action="/pengguna/199001012015011009/edit"' in resp.text
        assert 'value="Bagian Umum"' in resp.text
        fake_api.get_user_detail.assert_called_once_with("199001012015011009")

    def test_edit_keeps_nip_and_skips_blank_password(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        form = {**self.NEW_USER, "nip": "111111111111111111", "nama": "Baru Sekali", "password": ""}

        resp = web.post("/pengguna/199001012015011009/edit", data=form, follow_redirects=False)

        assert _location(resp) == "/pengguna?ok=diperbarui"
        fake_api.update_user.assert_called_once_with(
            "199001012015011009",
            {
                "nama": "Baru Sekali",
                "email": "baru@pemkab.go.id",
                "jabatan": "Staf",
                "unit_kerja": "Bagian Umum",
                "role": "pegawai",
            },
        )

    def test_delete_other_user(self, web, fake_api, login_as):
        login_as("kabbag_umum")
        resp = web.post("/pengguna/199001012015011009/hapus", follow_redirects=False)
        assert _location(resp) == "/pengguna?ok=dihapus"
        fake_api.delete_user.assert_called_once_with("199001012015011009")

    def test_theme_change_persists_in_cookie(self, web, login_as):
        login_as("pegawai")
        resp = web.post("/profil/tema", data={"theme": "dark"}, follow_redirects=False)
        assert _location(resp) == "/profil"
        assert resp.headers["set-cookie"].startswith(f"{SESSION_COOKIE}=")

    def test_unknown_theme_rejected(self, web, login_as):
        login_as("pegawai")
        assert web.post("/profil/tema", data={"theme": "neon"}).status_code == 400
