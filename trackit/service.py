"""HTTP API for managing work orders and dispatching due-soon reminders."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from .clock import Clock, SystemClock
from .config import TrackitConfig, load_config, resolve_config_path
from .database import Database, SqliteUserDirectory, SqliteWorkOrderLedger
from .dueparse import parse_due
from .errors import (
    AlreadyExistsError,
    InvalidInputError,
    InvalidTransitionError,
    NotConfiguredError,
    NotFoundError,
    NotOwnerError,
    TrackitError,
)
from .models import CloseReason, Priority, Stage, User, WorkOrder
from .notifications import build_gateway
from .ports import NotificationGateway
from .security import PasswordDigest
from .users import UserRegistry, validate_password_strength
from .workorders import WorkOrderManager, window_tag

logger = logging.getLogger("trackit.service")


class RegisterUserRequest(BaseModel):
    username: str = Field(..., max_length=64)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(..., max_length=256)


class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str]
    created_at: datetime


class WorkOrderCreateRequest(BaseModel):
    summary: str = Field(..., max_length=200)
    details: Optional[str] = Field(default=None, max_length=4000)
    due: str = Field(..., description="Due time, ISO-8601 or a relaxed form such as '+2h' or 'tomorrow 09:00'")
    priority: Optional[Priority] = None


class StageChangeRequest(BaseModel):
    stage: Stage


class CloseRequest(BaseModel):
    reason: CloseReason = CloseReason.RESOLVED


class WorkOrderResponse(BaseModel):
    id: int
    creator_user_id: int
    summary: str
    details: Optional[str]
    due_at: datetime
    priority: Priority
    stage: Stage
    closed: bool
    closed_at: Optional[datetime]
    closed_reason: Optional[CloseReason]
    created_at: datetime
    updated_at: datetime


class WorkOrderListResponse(BaseModel):
    work_orders: List[WorkOrderResponse]


class PrioritySuggestionResponse(BaseModel):
    due_at: datetime
    priority: Priority


class DueNotificationRequest(BaseModel):
    window_hours: Optional[float] = Field(default=None, gt=0, le=24 * 30)
    email: Optional[str] = Field(default=None, max_length=255)


class DueNotificationResponse(BaseModel):
    sent: int
    window_tag: str


def _work_order_to_response(order: WorkOrder) -> WorkOrderResponse:
    return WorkOrderResponse(
        id=int(order.id or 0),
        creator_user_id=order.creator_user_id,
        summary=order.summary,
        details=order.details,
        due_at=order.due_at,
        priority=order.priority,
        stage=order.stage,
        closed=order.closed,
        closed_at=order.closed_at,
        closed_reason=order.closed_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def _http_error(exc: TrackitError) -> HTTPException:
    if isinstance(exc, NotOwnerError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (AlreadyExistsError, InvalidTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, NotConfiguredError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unexpected error")


def _build_auth_dependency(registry: UserRegistry):
    basic_security = HTTPBasic(auto_error=False)

    def dependency(credentials: HTTPBasicCredentials | None = Depends(basic_security)) -> User:
        if credentials is not None:
            result = registry.login(credentials.username, credentials.password)
            if result.success and result.user is not None:
                return result.user

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return dependency


def register_api_routes(
    app: FastAPI,
    registry: UserRegistry,
    manager: WorkOrderManager,
    *,
    current_user: Callable[..., User],
    clock: Clock,
    config: TrackitConfig,
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    def parse_due_text(text: str) -> datetime:
        return parse_due(text, now=clock.now(), tz=config.timezone)

    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def register_user(request: RegisterUserRequest) -> UserResponse:
        try:
            validate_password_strength(request.password)
            user_id = registry.register(request.username, request.email, request.password)
        except TrackitError as exc:
            raise _http_error(exc) from exc

        user = registry.lookup(request.username)
        if user is None:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="User not persisted")
        return UserResponse(id=user_id, username=user.username, email=user.email, created_at=user.created_at)

    @app.get("/v1/work-orders", response_model=WorkOrderListResponse)
    def list_work_orders(user: User = Depends(current_user)) -> WorkOrderListResponse:
        orders = manager.list_open(int(user.id or 0))
        return WorkOrderListResponse(work_orders=[_work_order_to_response(order) for order in orders])

    @app.post("/v1/work-orders", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED)
    def create_work_order(
        request: WorkOrderCreateRequest,
        user: User = Depends(current_user),
    ) -> WorkOrderResponse:
        user_id = int(user.id or 0)
        try:
            due_at = parse_due_text(request.due)
            work_order_id = manager.add(user_id, request.summary, request.details, due_at, request.priority)
            order = manager.get(work_order_id, user_id)
        except TrackitError as exc:
            raise _http_error(exc) from exc
        return _work_order_to_response(order)

    @app.get("/v1/work-orders/{work_order_id}", response_model=WorkOrderResponse)
    def get_work_order(work_order_id: int, user: User = Depends(current_user)) -> WorkOrderResponse:
        try:
            order = manager.get(work_order_id, int(user.id or 0))
        except TrackitError as exc:
            raise _http_error(exc) from exc
        return _work_order_to_response(order)

    @app.post("/v1/work-orders/{work_order_id}/stage", response_model=WorkOrderResponse)
    def change_stage(
        work_order_id: int,
        request: StageChangeRequest,
        user: User = Depends(current_user),
    ) -> WorkOrderResponse:
        try:
            order = manager.change_stage(work_order_id, int(user.id or 0), request.stage)
        except TrackitError as exc:
            raise _http_error(exc) from exc
        return _work_order_to_response(order)

    @app.post("/v1/work-orders/{work_order_id}/close", response_model=WorkOrderResponse)
    def close_work_order(
        work_order_id: int,
        request: CloseRequest,
        user: User = Depends(current_user),
    ) -> WorkOrderResponse:
        try:
            order = manager.close(work_order_id, int(user.id or 0), request.reason)
        except TrackitError as exc:
            raise _http_error(exc) from exc
        return _work_order_to_response(order)

    @app.get("/v1/priority-suggestion", response_model=PrioritySuggestionResponse)
    def suggest_priority(
        due_at: str = Query(..., min_length=1),
        user: User = Depends(current_user),
    ) -> PrioritySuggestionResponse:
        try:
            due = parse_due_text(due_at)
        except TrackitError as exc:
            raise _http_error(exc) from exc
        return PrioritySuggestionResponse(due_at=due, priority=manager.suggest_priority(due))

    @app.post("/v1/notifications/due", response_model=DueNotificationResponse)
    def dispatch_due_notifications(
        request: DueNotificationRequest,
        user: User = Depends(current_user),
    ) -> DueNotificationResponse:
        window = timedelta(hours=request.window_hours) if request.window_hours else config.default_window
        recipient = request.email or user.email
        try:
            sent = manager.send_due_notifications(int(user.id or 0), recipient, window)
        except TrackitError as exc:
            raise _http_error(exc) from exc
        return DueNotificationResponse(sent=sent, window_tag=window_tag(window))


def create_app(
    *,
    database: Database | None = None,
    gateway: NotificationGateway | None = None,
    clock: Clock | None = None,
    config: TrackitConfig | None = None,
    digest: PasswordDigest | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    Collaborators that are not supplied are built from ``config``, which in
    turn defaults to :func:`~trackit.config.load_config` on ``TRACKIT_CONFIG``.
    """

    app_config = config or load_config(resolve_config_path(os.getenv("TRACKIT_CONFIG")))
    db = database or Database(app_config.database_path)
    db.initialize()

    app_clock = clock or SystemClock()
    owned_gateway = build_gateway(app_config.notifications) if gateway is None else None
    app_gateway = gateway if gateway is not None else owned_gateway
    if app_gateway is None:
        logger.warning("Email notifications are not configured; due-soon dispatch is disabled")

    registry = UserRegistry(SqliteUserDirectory(db), digest, clock=app_clock)
    manager = WorkOrderManager(
        SqliteWorkOrderLedger(db),
        app_gateway,
        clock=app_clock,
        display_timezone=app_config.timezone,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owned_gateway is not None:
            owned_gateway.close()
            logger.debug("Email gateway closed")

    app = FastAPI(
        title="Trackit API",
        version="0.1.0",
        description="Work orders with due-soon email reminders.",
        lifespan=lifespan,
    )
    app.state.database = db
    app.state.registry = registry
    app.state.manager = manager
    app.state.gateway = app_gateway

    current_user = _build_auth_dependency(registry)
    register_api_routes(
        app,
        registry,
        manager,
        current_user=current_user,
        clock=app_clock,
        config=app_config,
    )
    return app


__all__ = ["create_app", "register_api_routes"]
