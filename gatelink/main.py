import logging
import os
from typing import List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from gatelink.auth import AdminTokenStore, get_token_store, require_admin
from gatelink.config import Settings, get_settings
from gatelink.database import make_engine
from gatelink.errors import ErrorCode, GateError
from gatelink.log import configure_logging
from gatelink.registry import AdRegistry, Clock, LinkRegistry, utcnow
from gatelink.schemas import (
    AdCreate,
    AdminLoginRequest,
    AdminLoginResponse,
    AdResponse,
    ErrorResponse,
    FinalUrlResponse,
    InitSessionResponse,
    LinkCreate,
    LinkResponse,
    VerifyStepRequest,
    VerifyStepResponse,
)
from gatelink.seed import seed_demo_data
from gatelink.sessions import SessionStateMachine
from gatelink.storage import MemoryStorage, SqlStorage, Storage

logger = logging.getLogger(__name__)

NOT_FOUND = {404: {"model": ErrorResponse}}
EXPIRED = {410: {"model": ErrorResponse}}


def get_links(request: Request) -> LinkRegistry:
    return request.app.state.links


def get_ads(request: Request) -> AdRegistry:
    return request.app.state.ads


def get_sessions(request: Request) -> SessionStateMachine:
    return request.app.state.sessions


public_router = APIRouter(prefix="/api", tags=["public"])
login_router = APIRouter(prefix="/api/admin", tags=["admin"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@public_router.get("/health")
def health():
    return {"status": "ok"}


@public_router.post("/links/{link_id}/init", response_model=InitSessionResponse, responses=NOT_FOUND)
def init_session(link_id: str, sessions: SessionStateMachine = Depends(get_sessions)):
    """
    Начинает проверку по ссылке (шаг 1).
    Сессия живёт 30 минут, счётчик просмотров ссылки увеличивается.
    """
    session = sessions.init(link_id)
    return InitSessionResponse(session_id=session.id, step=session.step, expires_at=session.expires_at)


@public_router.post(
    "/session/verify",
    response_model=VerifyStepResponse,
    responses={400: {"model": ErrorResponse}, **NOT_FOUND, **EXPIRED},
)
def verify_step(payload: VerifyStepRequest, sessions: SessionStateMachine = Depends(get_sessions)):
    """
    Отмечает шаг как пройденный и возвращает номер следующего.
    """
    next_step = sessions.advance(payload.session_id, payload.step)
    return VerifyStepResponse(success=True, next_step=next_step, message="Verification successful")


@public_router.get(
    "/session/{session_id}/final",
    response_model=FinalUrlResponse,
    responses={403: {"model": ErrorResponse}, **NOT_FOUND, **EXPIRED},
)
def get_final_url(session_id: str, sessions: SessionStateMachine = Depends(get_sessions)):
    """
    Возвращает оригинальный URL, если шаги 2 и 3 пройдены.
    """
    return FinalUrlResponse(url=sessions.resolve(session_id))


@public_router.get("/ads/public", response_model=List[AdResponse])
def list_public_ads(ads: AdRegistry = Depends(get_ads)):
    return ads.list_active()


@login_router.post("/login", response_model=AdminLoginResponse, responses={401: {"model": ErrorResponse}})
def admin_login(payload: AdminLoginRequest, tokens: AdminTokenStore = Depends(get_token_store)):
    """
    Выдаёт токен администратора в обмен на пароль.
    """
    token, expires_at = tokens.login(payload.password)
    return AdminLoginResponse(success=True, token=token, expires_at=expires_at)


@admin_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def admin_logout(token: str = Depends(require_admin), tokens: AdminTokenStore = Depends(get_token_store)):
    tokens.revoke(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/links", response_model=List[LinkResponse])
def list_links(links: LinkRegistry = Depends(get_links)):
    return links.list()


@admin_router.post(
    "/links",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
def create_link(link_data: LinkCreate, links: LinkRegistry = Depends(get_links)):
    """
    Создает защищённую ссылку.
    Если предоставлен `id`, используется он.
    Если нет, генерируется случайный.
    """
    return links.create(str(link_data.original_url), link_data.title, link_id=link_data.id)


@admin_router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_link(link_id: str, links: LinkRegistry = Depends(get_links)):
    links.delete(link_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/ads", response_model=List[AdResponse])
def list_ads(ads: AdRegistry = Depends(get_ads)):
    return ads.list()


@admin_router.post("/ads", response_model=AdResponse, status_code=status.HTTP_201_CREATED)
def create_ad(ad_data: AdCreate, ads: AdRegistry = Depends(get_ads)):
    return ads.create(ad_data.placement, ad_data.content)


@admin_router.delete("/ads/{ad_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_ad(ad_id: int, ads: AdRegistry = Depends(get_ads)):
    ads.delete(ad_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "path", "query")]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": first.get("msg", "Invalid input"),
            "code": ErrorCode.VALIDATION_ERROR.value,
            "field": ".".join(loc) or None,
        },
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error", "code": ErrorCode.INTERNAL.value},
    )


def build_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "memory":
        return MemoryStorage()
    return SqlStorage(make_engine(settings.database_url))


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    clock: Clock = utcnow,
) -> FastAPI:
    if settings is None:
        # so warnings raised while reading settings reach the JSON handler
        configure_logging(os.getenv("GATELINK_LOG_LEVEL", "INFO"))
        settings = get_settings()
    configure_logging(settings.log_level)
    storage = storage if storage is not None else build_storage(settings)

    links = LinkRegistry(storage, clock=clock)
    ads = AdRegistry(storage)

    app = FastAPI(
        title="Gatelink",
        description="Ссылки, открывающиеся после пошаговой проверки",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.links = links
    app.state.ads = ads
    app.state.sessions = SessionStateMachine(storage, links, clock=clock, ttl=settings.session_ttl)
    app.state.admin_tokens = AdminTokenStore(settings.admin_password, settings.admin_token_ttl, clock=clock)

    app.include_router(public_router)
    app.include_router(login_router)
    app.include_router(admin_router)

    app.add_exception_handler(GateError, gate_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    if settings.seed_demo:
        seed_demo_data(links, ads)

    return app


def run():
    uvicorn.run(
        "gatelink.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
