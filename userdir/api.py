"""FastAPI application exposing the user directory endpoints."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import Settings, load_settings
from .errors import BadRequestError, DirectoryError, UnauthenticatedError
from .models import CallerIdentity, Gender, UserRecord, utcnow
from .operations import (
    EMPTY_REQUEST_MESSAGE,
    ChangeLoginRequest,
    ChangePasswordRequest,
    CreateUserRequest,
    UpdateInfoRequest,
    UserDirectory,
)
from .security import (
    Authenticator,
    BearerTokenAuthenticator,
    HeaderCredentialsAuthenticator,
    TokenIssuer,
    verify_credentials,
)
from .store import InMemoryRecordStore, RecordStore

logger = logging.getLogger("userdir.api")

LOGIN_PATTERN = r"^[a-zA-Z0-9]+$"
NAME_PATTERN = r"^[a-zA-Zа-яА-Я]+$"

INVALID_CREDENTIALS_MESSAGE = "Invalid login or password, or the user has been deleted."


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(CamelModel):
    token: str


class UserCreatePayload(CamelModel):
    login: str = Field(..., pattern=LOGIN_PATTERN)
    password: str = Field(..., pattern=LOGIN_PATTERN)
    name: str = Field(..., pattern=NAME_PATTERN)
    gender: int = Field(default=int(Gender.FEMALE), ge=0, le=2)
    birthday: Optional[date] = None
    admin: bool = False


class UserUpdateInfoPayload(CamelModel):
    target_login: str = Field(..., min_length=1)
    name: str = Field(..., pattern=NAME_PATTERN)
    gender: int = Field(default=int(Gender.FEMALE), ge=0, le=2)
    birthday: Optional[date] = None


class UserChangePasswordPayload(CamelModel):
    target_login: str = Field(..., min_length=1)
    new_password: str = Field(..., pattern=LOGIN_PATTERN)


class UserChangeLoginPayload(CamelModel):
    target_login: str = Field(..., min_length=1)
    new_login: str = Field(..., pattern=LOGIN_PATTERN)


class UserDeletePayload(CamelModel):
    soft_delete: bool


class CreatedUserView(CamelModel):
    login: str
    name: str
    gender: int
    birthday: Optional[date]
    admin: bool


class CreateUserResponse(CamelModel):
    message: str
    created_user: CreatedUserView


class UpdatedInfoView(CamelModel):
    login: str
    name: str
    gender: int
    birthday: Optional[date]


class UpdateInfoResponse(CamelModel):
    message: str
    updated: UpdatedInfoView


class LoginChangeView(CamelModel):
    old_login: str
    new_login: str


class ChangeLoginResponse(CamelModel):
    message: str
    updated_user: LoginChangeView


class MessageResponse(CamelModel):
    message: str


class ActiveUserView(CamelModel):
    login: str
    name: str
    gender: int
    birthday: Optional[date]
    created_on: datetime


class ActiveUsersResponse(CamelModel):
    message: str
    users: Optional[List[ActiveUserView]] = None


class UserProfileResponse(CamelModel):
    name: str
    gender: int
    birthday: Optional[date]
    is_active: bool


class SelfProfileResponse(CamelModel):
    login: str
    name: str
    gender: int
    birthday: Optional[date]
    is_active: bool


class OlderUserView(CamelModel):
    login: str
    name: str
    birthday: Optional[date]


class OlderUsersResponse(CamelModel):
    message: str
    users: Optional[List[OlderUserView]] = None


def _active_user_view(record: UserRecord) -> ActiveUserView:
    return ActiveUserView(
        login=record.login,
        name=record.name,
        gender=int(record.gender),
        birthday=record.birthday,
        created_on=record.created_on,
    )


def _older_user_view(record: UserRecord) -> OlderUserView:
    return OlderUserView(login=record.login, name=record.name, birthday=record.birthday)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts: List[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else str(message))
    return "; ".join(parts) or "Invalid request."


def register_exception_handlers(app: FastAPI) -> None:
    """Render directory errors and validation failures as JSON responses."""

    @app.exception_handler(DirectoryError)
    async def _directory_error(request: Request, exc: DirectoryError) -> Response:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
        if exc.message is None:
            return Response(status_code=exc.status_code, headers=headers)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": _format_validation_errors(exc)},
        )


def register_api_routes(
    app: FastAPI,
    directory: UserDirectory,
    *,
    issuer: TokenIssuer,
    current_caller: Callable[..., Optional[CallerIdentity]],
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    store = directory.store

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/auth/login", response_model=TokenResponse)
    async def login(payload: Optional[LoginRequest] = Body(default=None)) -> TokenResponse:
        if payload is None:
            raise BadRequestError("Empty request body.")

        record = verify_credentials(store, payload.login, payload.password)
        if record is None or not record.is_active:
            logger.warning("Failed login attempt for %s", payload.login)
            raise UnauthenticatedError(INVALID_CREDENTIALS_MESSAGE)

        logger.info("Issued token for %s", record.login)
        return TokenResponse(token=issuer.issue(record))

    @app.post("/api/users/create", response_model=CreateUserResponse)
    async def create_user(
        payload: Optional[UserCreatePayload] = Body(default=None),
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> CreateUserResponse:
        request = None
        if payload is not None:
            request = CreateUserRequest(
                login=payload.login,
                password=payload.password,
                name=payload.name,
                gender=Gender(payload.gender),
                birthday=payload.birthday,
                admin=payload.admin,
            )
        record = directory.create_user(caller, request)
        return CreateUserResponse(
            message="User created successfully.",
            created_user=CreatedUserView(
                login=record.login,
                name=record.name,
                gender=int(record.gender),
                birthday=record.birthday,
                admin=record.admin,
            ),
        )

    @app.put("/api/users/update-1/info", response_model=UpdateInfoResponse)
    async def update_info(
        payload: Optional[UserUpdateInfoPayload] = Body(default=None),
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> UpdateInfoResponse:
        request = None
        if payload is not None:
            request = UpdateInfoRequest(
                target_login=payload.target_login,
                name=payload.name,
                gender=Gender(payload.gender),
                birthday=payload.birthday,
            )
        record = directory.update_info(caller, request)
        return UpdateInfoResponse(
            message="Information updated successfully.",
            updated=UpdatedInfoView(
                login=record.login,
                name=record.name,
                gender=int(record.gender),
                birthday=record.birthday,
            ),
        )

    @app.put("/api/users/update-1/password", response_model=str)
    async def change_password(
        payload: Optional[UserChangePasswordPayload] = Body(default=None),
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> str:
        request = None
        if payload is not None:
            request = ChangePasswordRequest(
                target_login=payload.target_login,
                new_password=payload.new_password,
            )
        directory.change_password(caller, request)
        return "Password changed successfully."

    @app.put("/api/users/update-1/login", response_model=ChangeLoginResponse)
    async def change_login(
        payload: Optional[UserChangeLoginPayload] = Body(default=None),
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> ChangeLoginResponse:
        request = None
        if payload is not None:
            request = ChangeLoginRequest(target_login=payload.target_login, new_login=payload.new_login)
        change = directory.change_login(caller, request)
        return ChangeLoginResponse(
            message="Login changed successfully.",
            updated_user=LoginChangeView(old_login=change.old_login, new_login=change.new_login),
        )

    @app.get(
        "/api/users/read/active",
        response_model=ActiveUsersResponse,
        response_model_exclude_unset=True,
    )
    async def active_users(
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> ActiveUsersResponse:
        records = directory.active_users(caller)
        if not records:
            return ActiveUsersResponse(message="No active users.")
        return ActiveUsersResponse(
            message=f"Active users found: {len(records)}",
            users=[_active_user_view(record) for record in records],
        )

    @app.get("/api/users/read/by-login/{login}", response_model=UserProfileResponse)
    async def user_by_login(
        login: str,
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> UserProfileResponse:
        record = directory.user_by_login(caller, login)
        return UserProfileResponse(
            name=record.name,
            gender=int(record.gender),
            birthday=record.birthday,
            is_active=record.is_active,
        )

    @app.get("/api/users/read/self", response_model=SelfProfileResponse)
    async def read_self(
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> SelfProfileResponse:
        record = directory.self_profile(caller)
        return SelfProfileResponse(
            login=record.login,
            name=record.name,
            gender=int(record.gender),
            birthday=record.birthday,
            is_active=True,
        )

    @app.get(
        "/api/users/read/older-than/{age}",
        response_model=OlderUsersResponse,
        response_model_exclude_unset=True,
    )
    async def users_older_than(
        age: int,
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> OlderUsersResponse:
        records = directory.users_older_than(caller, age)
        if not records:
            return OlderUsersResponse(message=f"No users older than {age}.")
        return OlderUsersResponse(
            message=f"Users older than {age} found: {len(records)}",
            users=[_older_user_view(record) for record in records],
        )

    @app.delete("/api/users/delete/{login}", response_model=MessageResponse)
    async def delete_user(
        login: str,
        payload: Optional[UserDeletePayload] = Body(default=None),
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> MessageResponse:
        if payload is None:
            raise BadRequestError(EMPTY_REQUEST_MESSAGE)
        directory.delete_user(caller, login, soft_delete=payload.soft_delete)
        if payload.soft_delete:
            return MessageResponse(message=f"User '{login}' soft-deleted.")
        return MessageResponse(message=f"User '{login}' permanently deleted.")

    @app.put("/api/users/restore/{login}", response_model=MessageResponse)
    async def restore_user(
        login: str,
        caller: Optional[CallerIdentity] = Depends(current_caller),
    ) -> MessageResponse:
        directory.restore_user(caller, login)
        return MessageResponse(message=f"User '{login}' restored successfully.")


def build_authenticator(settings: Settings, store: RecordStore, issuer: TokenIssuer) -> Authenticator:
    if settings.auth_mode == "header":
        return HeaderCredentialsAuthenticator(store)
    return BearerTokenAuthenticator(store, issuer)


def create_app(
    *,
    settings: Settings | None = None,
    store: RecordStore | None = None,
    clock: Callable[[], datetime] = utcnow,
    seed_admin: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application for the user directory."""

    settings = settings or load_settings()
    record_store = store if store is not None else InMemoryRecordStore()

    if seed_admin and isinstance(record_store, InMemoryRecordStore):
        record_store.seed_admin(
            login=settings.admin_login,
            password=settings.admin_password,
            name=settings.admin_name,
        )

    directory = UserDirectory(record_store, clock=clock)
    issuer = TokenIssuer(
        settings.jwt_secret,
        ttl=timedelta(minutes=settings.token_ttl_minutes),
        clock=clock,
    )
    authenticator = build_authenticator(settings, record_store, issuer)

    app = FastAPI(
        title="User Directory API",
        version="1.0.0",
        description="Create, update, revoke, restore and query directory users.",
    )
    app.state.settings = settings
    app.state.store = record_store
    app.state.directory = directory
    app.state.issuer = issuer

    async def current_caller(request: Request) -> Optional[CallerIdentity]:
        return await authenticator(request)

    register_exception_handlers(app)
    register_api_routes(app, directory, issuer=issuer, current_caller=current_caller)

    logger.info("User directory API configured (auth_mode=%s)", settings.auth_mode)
    return app


__all__ = ["build_authenticator", "create_app", "register_api_routes", "register_exception_handlers"]
