"""FastAPI application serving snippets and the shadcn registry endpoint."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pastecn.config import AppConfig
from pastecn.errors import ApiErrorCode, CreateSnippetError, SnippetError
from pastecn.models import CreateSnippetInput, CreateSnippetInputFile
from pastecn.security.auth import (
    BearerAuthError,
    Credential,
    PasswordCredential,
    SessionCredential,
    extract_bearer_token,
    get_client_ip,
    verify_bearer_auth,
)
from pastecn.security.sessions import (
    create_unlock_session,
    session_duration_seconds,
    unlock_cookie_name,
)
from pastecn.services.analytics import AnalyticsSink, LoggingAnalytics, emit
from pastecn.services.ratelimit import RateLimiter, SlidingWindowRateLimiter
from pastecn.snippets.access import (
    PRIVATE_CACHE_CONTROL,
    AccessState,
    cache_control_for,
    decide_access,
)
from pastecn.snippets.create import create_snippet
from pastecn.snippets.mapper import is_expired, to_public_registry_json, to_snippet_metadata
from pastecn.storage.blob import BlobStore, FilesystemBlobStore, StorageError
from pastecn.storage.repository import ContentCache, SnippetReader, SnippetRepository
from pastecn.utils.validation import strip_json_suffix, validate_id

LOGGER = logging.getLogger(__name__)

WWW_AUTHENTICATE = 'Bearer realm="pastecn"'
WWW_AUTHENTICATE_INVALID = 'Bearer realm="pastecn", error="invalid_token"'
PASSWORD_ENV_VAR = "PASTECN_PASSWORD"


class FilePayload(BaseModel):
    path: str
    content: str
    target: str | None = None


class CreateSnippetPayload(BaseModel):
    name: str = ""
    type: str = ""
    files: List[FilePayload] = []
    password: str | None = None
    expiresIn: str | None = None


class UnlockPayload(BaseModel):
    password: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Services:
    config: AppConfig
    repository: SnippetRepository
    rate_limiter: RateLimiter
    analytics: AnalyticsSink
    clock: Callable[[], datetime]


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_reader(services: Services = Depends(get_services)) -> SnippetReader:
    return SnippetReader(services.repository)


def _error_response(error: SnippetError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error.status_code, headers=error.headers or None)


def _not_found() -> SnippetError:
    return SnippetError(ApiErrorCode.NOT_FOUND, "Snippet not found")


def _invalid_id() -> SnippetError:
    return SnippetError(ApiErrorCode.INVALID_ID, "Invalid snippet ID format")


def _registry_setup(config: AppConfig, snippet_id: str) -> Dict[str, Any]:
    return {
        "setup": {
            "env": {PASSWORD_ENV_VAR: "<password>"},
            "componentsJson": {
                "registries": {
                    "@pastecn": {
                        "url": f"{config.base_url}/r/{{name}}",
                        "headers": {"Authorization": f"Bearer ${{{PASSWORD_ENV_VAR}}}"},
                    }
                }
            },
            "command": f"npx shadcn@latest add @pastecn/{snippet_id}",
        }
    }


def _request_credential(
    authorization: Optional[str],
    cookies: Mapping[str, str],
    snippet_id: str,
    secret: str,
) -> Optional[Credential]:
    password = extract_bearer_token(authorization)
    if password is not None:
        return PasswordCredential(password)
    token = cookies.get(unlock_cookie_name(snippet_id))
    if token:
        return SessionCredential(token, secret)
    return None


router = APIRouter()


@router.post("/api/v1/snippets", status_code=201)
async def create_snippet_route(
    payload: CreateSnippetPayload,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
) -> JSONResponse:
    snippet_input = CreateSnippetInput(
        name=payload.name,
        type=payload.type,
        files=[
            CreateSnippetInputFile(path=entry.path, content=entry.content, target=entry.target)
            for entry in payload.files
        ],
        password=payload.password,
        expires_in=payload.expiresIn,
    )
    try:
        result = await asyncio.to_thread(
            create_snippet,
            snippet_input,
            repository=services.repository,
            base_url=services.config.base_url,
            now=services.clock(),
            allow_test_expirations=services.config.allow_test_expirations,
            max_content_bytes=services.config.max_content_bytes,
        )
    except CreateSnippetError as exc:
        background_tasks.add_task(
            emit,
            services.analytics,
            "snippet_create_error",
            source="api",
            error_code=exc.code.value,
            status_code=exc.status_code,
        )
        return _error_response(exc)

    background_tasks.add_task(
        emit,
        services.analytics,
        "snippet_created",
        source="api",
        file_count=len(snippet_input.files),
        is_protected=bool(snippet_input.password),
        expires_in=snippet_input.expires_in or "never",
    )
    return JSONResponse(result.to_dict(), status_code=201)


@router.get("/api/v1/snippets/{snippet_id}")
async def get_snippet_route(
    snippet_id: str,
    background_tasks: BackgroundTasks,
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
    reader: SnippetReader = Depends(get_reader),
) -> JSONResponse:
    """Read a snippet; protected ones need ``Authorization: Bearer <password>``."""

    def fail(error: SnippetError, reason: str) -> JSONResponse:
        background_tasks.add_task(
            emit, services.analytics, "snippet_get_error", source="api", error_code=reason
        )
        return _error_response(error)

    if not validate_id(snippet_id):
        return fail(_invalid_id(), ApiErrorCode.INVALID_ID.value)

    document = await asyncio.to_thread(reader.document, snippet_id)
    now = services.clock()
    status = reader.expiration_status(snippet_id, now)
    if not status.exists:
        return fail(_not_found(), ApiErrorCode.NOT_FOUND.value)
    if status.expired:
        # Reported exactly like a missing snippet.
        return fail(_not_found(), ApiErrorCode.EXPIRED.value)

    metadata = reader.metadata(snippet_id)
    if metadata is None:
        return fail(_not_found(), ApiErrorCode.NOT_FOUND.value)

    if metadata.is_protected:
        auth = await asyncio.to_thread(verify_bearer_auth, authorization, snippet_id, reader)
        if not auth.success:
            background_tasks.add_task(
                emit,
                services.analytics,
                "snippet_unauthorized",
                source="api",
                reason=auth.error.value.lower() if auth.error else "unknown",
            )
            if auth.error is BearerAuthError.NO_AUTH_HEADER:
                return _error_response(
                    SnippetError(
                        ApiErrorCode.AUTH_REQUIRED,
                        "This snippet is password-protected. "
                        "Provide Authorization: Bearer <password> header.",
                        headers={"WWW-Authenticate": WWW_AUTHENTICATE},
                    )
                )
            if auth.error is BearerAuthError.NO_PASSWORD_HASH:
                return _error_response(
                    SnippetError(ApiErrorCode.INTERNAL_ERROR, "Internal server error")
                )
            return _error_response(
                SnippetError(
                    ApiErrorCode.INVALID_PASSWORD,
                    "Invalid password",
                    headers={"WWW-Authenticate": WWW_AUTHENTICATE_INVALID},
                )
            )

    snippet = reader.snippet(snippet_id)
    if snippet is None or document is None:
        return _error_response(_not_found())

    background_tasks.add_task(
        emit,
        services.analytics,
        "snippet_accessed",
        source="api",
        file_count=len(snippet.files),
        is_protected=snippet.is_protected,
    )
    return JSONResponse(
        snippet.to_dict(),
        headers={"Cache-Control": cache_control_for(document, now)},
    )


@router.get("/r/{raw_id}")
async def registry_item_route(
    raw_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
    reader: SnippetReader = Depends(get_reader),
) -> JSONResponse:
    """Registry item consumed by ``npx shadcn add <url>``."""
    snippet_id = strip_json_suffix(raw_id)
    if not validate_id(snippet_id):
        return _error_response(_invalid_id())

    credential = _request_credential(
        authorization, request.cookies, snippet_id, services.config.session_secret
    )
    document = await asyncio.to_thread(reader.document, snippet_id)
    decision = await asyncio.to_thread(
        decide_access, snippet_id, document, now=services.clock(), credential=credential
    )

    if decision.state in (AccessState.NOT_FOUND, AccessState.EXPIRED):
        return _error_response(_not_found())

    if decision.state is AccessState.AUTH_REQUIRED:
        background_tasks.add_task(
            emit, services.analytics, "snippet_unauthorized", source="registry", reason="no_credentials"
        )
        return _error_response(
            SnippetError(
                ApiErrorCode.AUTH_REQUIRED,
                "This snippet is password-protected. Configure the registry with an "
                "Authorization: Bearer <password> header.",
                headers={"WWW-Authenticate": WWW_AUTHENTICATE},
                details=_registry_setup(services.config, snippet_id),
            )
        )

    if decision.state is AccessState.AUTH_INVALID:
        background_tasks.add_task(
            emit, services.analytics, "snippet_unauthorized", source="registry", reason="invalid_credentials"
        )
        return _error_response(
            SnippetError(
                ApiErrorCode.INVALID_PASSWORD,
                "Invalid password",
                headers={"WWW-Authenticate": WWW_AUTHENTICATE_INVALID},
            )
        )

    assert document is not None
    background_tasks.add_task(
        emit,
        services.analytics,
        "registry_accessed",
        source="registry",
        file_count=len(document.files),
        is_protected=document.is_protected,
    )
    return JSONResponse(
        to_public_registry_json(document),
        headers={"Cache-Control": decision.cache_control or PRIVATE_CACHE_CONTROL},
    )


@router.get("/api/snippets/{snippet_id}")
async def snippet_metadata_route(
    snippet_id: str,
    services: Services = Depends(get_services),
    reader: SnippetReader = Depends(get_reader),
) -> JSONResponse:
    """Content-free snippet description for the viewer page."""
    if not validate_id(snippet_id):
        return _error_response(_invalid_id())

    now = services.clock()
    document = await asyncio.to_thread(reader.document, snippet_id)
    if document is None or is_expired(document, now):
        return _error_response(_not_found())

    metadata = to_snippet_metadata(snippet_id, document)
    return JSONResponse(
        metadata.to_dict(),
        headers={"Cache-Control": cache_control_for(document, now)},
    )


@router.post("/api/snippets/{snippet_id}/unlock")
async def unlock_snippet_route(
    snippet_id: str,
    payload: UnlockPayload,
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    reader: SnippetReader = Depends(get_reader),
) -> JSONResponse:
    """Exchange a password for an unlock session cookie."""
    if not validate_id(snippet_id):
        return _error_response(_invalid_id())
    if not payload.password:
        return _error_response(SnippetError(ApiErrorCode.VALIDATION_ERROR, "Password is required"))

    client_ip = get_client_ip(
        request.headers,
        request.client.host if request.client else None,
        trust_proxy_headers=services.config.trust_proxy_headers,
    )
    limit = services.rate_limiter.check(f"{snippet_id}:{client_ip}")
    if limit.limited:
        LOGGER.info("Unlock attempts for snippet %s rate limited", snippet_id)
        background_tasks.add_task(emit, services.analytics, "unlock_rate_limited", source="web")
        minutes = max(1, math.ceil(limit.retry_after / 60))
        return _error_response(
            SnippetError(
                ApiErrorCode.RATE_LIMITED,
                f"Too many attempts. Please try again in {minutes} minutes.",
                headers={"Retry-After": str(limit.retry_after)},
            )
        )

    document = await asyncio.to_thread(reader.document, snippet_id)
    decision = await asyncio.to_thread(
        decide_access,
        snippet_id,
        document,
        now=services.clock(),
        credential=PasswordCredential(payload.password),
    )

    if decision.state in (AccessState.NOT_FOUND, AccessState.EXPIRED) or (
        document is not None and not document.is_protected
    ):
        return _error_response(
            SnippetError(ApiErrorCode.NOT_FOUND, "Snippet not found or not protected")
        )

    if not decision.granted:
        background_tasks.add_task(
            emit, services.analytics, "unlock_failed", source="web", reason="invalid_password"
        )
        return _error_response(SnippetError(ApiErrorCode.INVALID_PASSWORD, "Invalid password"))

    config = services.config
    token = create_unlock_session(
        snippet_id,
        secret=config.session_secret,
        duration_hours=config.session_duration_hours,
    )
    response = JSONResponse(
        {"success": True, "token": token},
        headers={"Cache-Control": PRIVATE_CACHE_CONTROL},
    )
    response.set_cookie(
        unlock_cookie_name(snippet_id),
        token,
        max_age=session_duration_seconds(config.session_duration_hours),
        path="/",
        secure=config.secure_cookies,
        httponly=True,
        samesite="lax",
    )
    background_tasks.add_task(emit, services.analytics, "unlock_success", source="web")
    return response


@router.get("/api/snippets/{snippet_id}/content")
async def snippet_content_route(
    snippet_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    reader: SnippetReader = Depends(get_reader),
) -> JSONResponse:
    """File contents for the viewer, gated by the unlock cookie."""
    if not validate_id(snippet_id):
        return _error_response(_invalid_id())

    token = request.cookies.get(unlock_cookie_name(snippet_id))
    credential = SessionCredential(token, services.config.session_secret) if token else None
    document = await asyncio.to_thread(reader.document, snippet_id)
    decision = decide_access(snippet_id, document, now=services.clock(), credential=credential)

    if decision.state in (AccessState.NOT_FOUND, AccessState.EXPIRED):
        return _error_response(_not_found())
    if not decision.granted:
        background_tasks.add_task(
            emit,
            services.analytics,
            "content_unauthorized",
            source="web",
            reason="no_session" if credential is None else "invalid_session",
        )
        return _error_response(
            SnippetError(ApiErrorCode.AUTH_REQUIRED, "Unauthorized - valid session required")
        )

    assert document is not None
    content = [{"path": entry.path, "content": entry.content} for entry in document.files]
    background_tasks.add_task(
        emit, services.analytics, "content_accessed", source="web", file_count=len(content)
    )
    return JSONResponse({"content": content}, headers={"Cache-Control": PRIVATE_CACHE_CONTROL})


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"Invalid request: {location} {message}" if location else f"Invalid request: {message}"


def create_app(
    config: AppConfig | None = None,
    *,
    store: BlobStore | None = None,
    rate_limiter: RateLimiter | None = None,
    analytics: AnalyticsSink | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    config = config if config is not None else AppConfig()
    if store is None:
        store = FilesystemBlobStore(config.resolve_data_dir(Path.cwd()))
    if rate_limiter is None:
        rate_limiter = SlidingWindowRateLimiter(
            max_attempts=config.unlock_max_attempts,
            window_seconds=config.unlock_window_seconds,
        )

    app = FastAPI(title="pastecn", version="0.1.0")
    app.state.services = Services(
        config=config,
        repository=SnippetRepository(store, ContentCache()),
        rate_limiter=rate_limiter,
        analytics=analytics if analytics is not None else LoggingAnalytics(),
        clock=clock or _utcnow,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.exception_handler(SnippetError)
    async def snippet_error_handler(request: Request, exc: SnippetError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        LOGGER.exception("Storage failure on %s %s", request.method, request.url.path)
        return _error_response(SnippetError(ApiErrorCode.INTERNAL_ERROR, "Internal server error"))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(
            SnippetError(ApiErrorCode.VALIDATION_ERROR, _describe_validation_error(exc))
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        if config.uses_default_secret:
            LOGGER.warning("UNLOCK_SESSION_SECRET is not set; using the development secret")

    return app


app = create_app()
