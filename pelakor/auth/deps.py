from typing import Any, Iterator

from fastapi import Depends, HTTPException, Request

from pelakor.core.api import ApiClient
from pelakor.core.session import SESSION_COOKIE, AppSession, CookieSessionStore


def get_session_store(request: Request) -> CookieSessionStore:
    return CookieSessionStore(request.cookies.get(SESSION_COOKIE))


def get_app_session(store: CookieSessionStore = Depends(get_session_store)) -> AppSession:
    return AppSession.load(store)


def get_current_user(request: Request, session: AppSession = Depends(get_app_session)) -> dict[str, Any]:
    request.state.theme = session.theme
    if not session.token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not session.user:
        raise HTTPException(status_code=401, detail="Invalid session")
    return session.user


def get_api(session: AppSession = Depends(get_app_session)) -> Iterator[ApiClient]:
    api = ApiClient(token=session.token)
    try:
        yield api
    finally:
        api.close()
