# src/status_board/session.py

import threading
import time
import typing
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

SESSION_COOKIE_NAME = "session_id"


class Session:
    """
    One browser's server-side session. Only its id travels in the cookie.
    """

    def __init__(self, session_id: str, data: dict):
        self.session_id = session_id
        self.data = data
        self.deleted = False

    def flash(self, key: str, value: typing.Any) -> None:
        """Stores a value that is removed the first time it is taken."""
        self.data.setdefault("_flash", {})[key] = value

    def take_flash(self, key: str, default: typing.Any = None) -> typing.Any:
        flashed = self.data.get("_flash", {})
        value = flashed.pop(key, default)
        if not flashed:
            self.data.pop("_flash", None)
        return value

    def delete(self) -> None:
        self.data.clear()
        self.deleted = True


class InMemorySessionStore:
    """
    Process-local session storage with a per-entry lifetime.
    Sessions only carry pending logins, so losing them on restart just means
    logging in again.
    """

    def __init__(self, max_age: int):
        self.max_age = max_age
        self._sessions: typing.Dict[str, typing.Tuple[float, dict]] = {}
        self._lock = threading.Lock()

    def load(self, session_id: typing.Optional[str]) -> Session:
        now = time.monotonic()
        with self._lock:
            self._purge_expired(now)
            if session_id and session_id in self._sessions:
                _, data = self._sessions[session_id]
                return Session(session_id, data)
            session_id = str(uuid.uuid4())
            data: dict = {}
            self._sessions[session_id] = (now, data)
            return Session(session_id, data)

    def save(self, session: Session) -> None:
        with self._lock:
            if session.deleted or not session.data:
                self._sessions.pop(session.session_id, None)
            else:
                self._sessions[session.session_id] = (time.monotonic(), session.data)

    def _purge_expired(self, now: float) -> None:
        expired = [sid for sid, (ts, _) in self._sessions.items() if now - ts > self.max_age]
        for sid in expired:
            del self._sessions[sid]


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, store: InMemorySessionStore, secure: bool = False):
        super().__init__(app)
        self.store = store
        self.secure = secure

    async def dispatch(self, request: Request, call_next) -> Response:
        session = self.store.load(request.cookies.get(SESSION_COOKIE_NAME))
        request.state.session = session
        response: Response = await call_next(request)
        self.store.save(session)

        if session.deleted or not session.data:
            if SESSION_COOKIE_NAME in request.cookies:
                response.delete_cookie(
                    SESSION_COOKIE_NAME, path="/", secure=self.secure, httponly=True, samesite="lax"
                )
        else:
            # Lax so the cookie survives the top-level redirect back from the provider
            response.set_cookie(
                SESSION_COOKIE_NAME,
                session.session_id,
                max_age=self.store.max_age,
                path="/",
                httponly=True,
                secure=self.secure,
                samesite="lax",
            )
        return response


def get_session(request: Request) -> Session:
    return request.state.session
