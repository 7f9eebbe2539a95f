from __future__ import annotations

import logging
import time
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse
from starlette.templating import Jinja2Templates

from pelakor.core.api import ApiError, get_file_url
from pelakor.core.config import STATIC_DIR, TEMPLATES_DIR, settings
from pelakor.core.rbac import Perm, has_perm, role_label
from pelakor.core.session import SESSION_COOKIE
from pelakor.core.validation import KATEGORI_OPTIONS, ValidationError
from pelakor.core.workflow import TINDAK_LANJUT_LABELS, can_delete, can_edit, is_final, status_color, status_label
from pelakor.utils.dates import format_date, format_date_long, format_datetime, format_datetime_short

from pelakor.auth.router import router as auth_router
from pelakor.modules.dashboard.router import router as dashboard_router
from pelakor.modules.laporan.router import router as laporan_router
from pelakor.modules.disposisi.router import router as disposisi_router
from pelakor.modules.tindaklanjut.router import router as tindaklanjut_router
from pelakor.modules.arsip.router import router as arsip_router
from pelakor.modules.users.router import router as users_router
from pelakor.modules.profile.router import router as profile_router


logger = logging.getLogger("pelakor")

GENERIC_ERROR = "Terjadi kesalahan yang tidak terduga"


def _is_fetch_request(request: Request) -> bool:
    return (request.headers.get("x-requested-with") or "").lower() == "fetch"


def _request_path_with_query(request: Request) -> str:
    path = request.url.path or "/"
    query = request.url.query or ""
    return f"{path}?{query}" if query else path


def _login_redirect_url(request: Request) -> str:
    next_url = quote(_request_path_with_query(request), safe="")
    return f"/login?redirect_url={next_url}"


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return ("text/html" in accept) or (accept in ("", "*/*"))


def _session_expired(request: Request):
    login_url = _login_redirect_url(request)
    if _is_fetch_request(request):
        resp = JSONResponse(
            status_code=401,
            content={"detail": "Session expired", "login_url": login_url},
        )
        resp.headers["X-Login-Url"] = login_url
    else:
        resp = RedirectResponse(login_url, status_code=303)
    resp.delete_cookie(SESSION_COOKIE)
    return resp


def _error_page(request: Request, status_code: int, detail: str):
    # retry goes back to the page that failed; only GETs can be retried as-is
    retry_url = _request_path_with_query(request) if request.method == "GET" else None
    return templates.TemplateResponse(
        request,
        "error.html",
        {"request": request, "status_code": status_code, "detail": detail, "retry_url": retry_url},
        status_code=status_code,
    )


templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

# RBAC / lifecycle helpers available in templates
templates.env.globals["has_perm"] = has_perm
templates.env.globals["Perm"] = Perm
templates.env.globals["can_edit"] = can_edit
templates.env.globals["can_delete"] = can_delete
templates.env.globals["is_final"] = is_final
templates.env.globals["file_url"] = get_file_url
templates.env.globals["KATEGORI_OPTIONS"] = KATEGORI_OPTIONS
templates.env.globals["TINDAK_LANJUT_LABELS"] = TINDAK_LANJUT_LABELS
templates.env.globals["settings"] = settings
templates.env.filters["status_label"] = status_label
templates.env.filters["status_color"] = status_color
templates.env.filters["role_label"] = role_label
templates.env.filters["tanggal"] = format_date
templates.env.filters["tanggal_panjang"] = format_date_long
templates.env.filters["waktu"] = format_datetime
templates.env.filters["waktu_singkat"] = format_datetime_short

app = FastAPI(title=settings.APP_NAME)
app.state.templates = templates


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    resp.headers["X-Process-Time-ms"] = f"{(time.perf_counter() - start) * 1000:.2f}"
    return resp


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    resp = await call_next(request)
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["X-Frame-Options"] = "SAMEORIGIN"
    resp.headers["Referrer-Policy"] = "same-origin"
    resp.headers["Permissions-Policy"] = "geolocation=(), camera=(), microphone=()"
    return resp


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    # backend rejected the token: the stored session is no longer usable
    if exc.status == 401:
        return _session_expired(request)

    status_code = exc.status if 400 <= exc.status < 600 else 502
    if _is_fetch_request(request) or not _wants_html(request):
        return JSONResponse(status_code=status_code, content={"detail": exc.message, "status": exc.status})
    return _error_page(request, status_code, exc.message)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    if _is_fetch_request(request) or not _wants_html(request):
        return JSONResponse(status_code=400, content={"detail": exc.message})
    return _error_page(request, 400, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exc_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 401:
        return _session_expired(request)

    if _wants_html(request) and not _is_fetch_request(request):
        return _error_page(request, exc.status_code, str(exc.detail))

    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_exc_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception", exc_info=exc)

    if _wants_html(request) and not _is_fetch_request(request):
        return _error_page(request, 500, GENERIC_ERROR)

    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Static assets
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

# Routers
app.include_router(auth_router)
app.include_router(dashboard_router)
app.include_router(laporan_router)
app.include_router(disposisi_router)
app.include_router(tindaklanjut_router)
app.include_router(arsip_router)
app.include_router(users_router)
app.include_router(profile_router)


@app.on_event("startup")
def on_startup():
    if not settings.api_base_url():
        logger.error("API_BASE_URL is not configured; every backend call will fail")


@app.get("/health", response_class=JSONResponse)
def health():
    return {"status": "ok", "app": settings.APP_NAME, "api_configured": bool(settings.api_base_url())}

