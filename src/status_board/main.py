# src/status_board/main.py

import logging
import typing

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from .config import Settings, get_settings
from .errors import StatusBoardError
from .flow import FlowCoordinator
from .identity import IdentityVerifier
from .provider import ProviderClient
from .session import InMemorySessionStore, Session, SessionMiddleware, get_session
from .status_store import StatusStore, now_timestamp, parse_timestamp
from .token_store import CookieTokenSerializer, SignedCookieTokenStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# --- Dependencies ---
def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_flow(request: Request) -> FlowCoordinator:
    return request.app.state.flow


def get_status_store(request: Request) -> StatusStore:
    return request.app.state.status_store


def get_token_store(request: Request) -> SignedCookieTokenStore:
    # One store per request: it stages cookie writes until the response is built
    return SignedCookieTokenStore(
        provider=request.app.state.provider,
        serializer=request.app.state.token_serializer,
        cookies=request.cookies,
    )


def resolve_update_timestamp(settings: Settings, requested: typing.Optional[str]) -> str:
    if requested is not None:
        return parse_timestamp(requested)
    if settings.STATUS_UPDATE_TIMESTAMP:
        return parse_timestamp(settings.STATUS_UPDATE_TIMESTAMP)
    return now_timestamp()


# --- Authentication Routes ---
@router.get("/login")
async def login(
        session: Session = Depends(get_session),
        flow: FlowCoordinator = Depends(get_flow),
):
    authorization_uri = flow.start_login(session)
    return RedirectResponse(url=authorization_uri, status_code=status.HTTP_302_FOUND)


@router.get("/logout")
async def logout(
        session: Session = Depends(get_session),
        flow: FlowCoordinator = Depends(get_flow),
        tokens: SignedCookieTokenStore = Depends(get_token_store),
):
    flow.logout(session, tokens)
    return tokens.apply(RedirectResponse(url="/", status_code=status.HTTP_302_FOUND))


@router.get("/callback")
async def callback(
        request: Request,
        session: Session = Depends(get_session),
        flow: FlowCoordinator = Depends(get_flow),
        tokens: SignedCookieTokenStore = Depends(get_token_store),
):
    await flow.handle_callback(session, str(request.url), tokens)
    return tokens.apply(RedirectResponse(url="/", status_code=status.HTTP_302_FOUND))


# --- API Routes ---
@router.get("/me")
async def me(
        flow: FlowCoordinator = Depends(get_flow),
        tokens: SignedCookieTokenStore = Depends(get_token_store),
):
    resolution = await flow.resolve_identity(tokens)
    if not resolution.ok:
        return tokens.apply(JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"message": resolution.failure},
        ))
    return tokens.apply(JSONResponse(content=resolution.identity.model_dump(by_alias=True)))


@router.get("/status")
async def read_status(store: StatusStore = Depends(get_status_store)):
    return await run_in_threadpool(store.read)


@router.api_route("/status/{key}", methods=["GET", "POST"])
async def update_status(
        key: str,
        request: Request,
        timestamp: typing.Optional[str] = Query(None, description="ISO-8601 value to write; defaults to now"),
        settings: Settings = Depends(get_app_settings),
        flow: FlowCoordinator = Depends(get_flow),
        store: StatusStore = Depends(get_status_store),
        tokens: SignedCookieTokenStore = Depends(get_token_store),
):
    resolution = await flow.resolve_identity(tokens)
    if not resolution.ok:
        if request.method == "GET":
            return tokens.apply(RedirectResponse(url="/api/login", status_code=status.HTTP_302_FOUND))
        # POST stays silent: no body, nothing written
        return tokens.apply(Response(status_code=status.HTTP_401_UNAUTHORIZED))

    # Errors below are answered here so a cookie refreshed above still reaches the browser
    try:
        value = resolve_update_timestamp(settings, timestamp)
        record = await run_in_threadpool(store.update, key, value)
    except StatusBoardError as e:
        if e.status_code >= 500:
            raise
        return tokens.apply(JSONResponse(status_code=e.status_code, content={"message": e.message}))

    logger.info("%s updated status key %s", resolution.identity.first_name, key)
    if request.method == "GET":
        return tokens.apply(RedirectResponse(url="/", status_code=status.HTTP_302_FOUND))
    return tokens.apply(JSONResponse(content=record))


# Registered explicitly so the static mount at "/" never answers these methods with a 404
@router.api_route(
    "/status/{key}",
    methods=["PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    include_in_schema=False,
)
async def status_method_not_allowed(key: str):
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method Not Allowed",
        headers={"Allow": "GET, POST"},
    )


# --- Error Handlers ---
async def status_board_error_handler(request: Request, exc: StatusBoardError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "internal server error"},
    )


# --- App Factory ---
def create_app(settings: typing.Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Status Board BFF",
        description="OAuth2 login against the identity provider and a shared status record.",
        version="0.1.0",
    )

    provider = ProviderClient(settings)
    app.state.settings = settings
    app.state.provider = provider
    app.state.flow = FlowCoordinator(provider, IdentityVerifier(provider))
    app.state.token_serializer = CookieTokenSerializer(settings)
    app.state.status_store = StatusStore(settings.STATUS_FILE_PATH, settings.STATUS_KEYS)
    app.state.session_store = InMemorySessionStore(max_age=settings.SESSION_MAX_AGE)

    app.add_middleware(
        SessionMiddleware,
        store=app.state.session_store,
        secure=settings.cookie_secure,
    )
    app.add_exception_handler(StatusBoardError, status_board_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)

    # --- Static Files ---
    if settings.STATIC_DIR.is_dir():
        app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")
    else:
        logger.warning("Static directory %s not found; serving the API only", settings.STATIC_DIR)

    @app.on_event("startup")
    async def startup_event():
        logger.info("--- Status Board BFF Starting Up ---")
        logger.info("Client ID: %s", settings.CLIENT_ID)
        logger.info("Redirect URI: %s (secure cookies: %s)", settings.REDIRECT_URI, settings.cookie_secure)
        logger.info("Authorization endpoint: %s", settings.AUTHORIZATION_ENDPOINT)
        logger.info("Status file: %s (keys: %s)", settings.STATUS_FILE_PATH, ", ".join(settings.STATUS_KEYS))
        if settings.STATUS_UPDATE_TIMESTAMP:
            logger.info("Status updates default to fixed timestamp %s", settings.STATUS_UPDATE_TIMESTAMP)

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "status_board.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    run()
