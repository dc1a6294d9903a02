from __future__ import annotations

import logging
import os
import secrets
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

import staffplan.db as app_db
from staffplan.db import get_db
from staffplan.eligibility import is_user_active_in_month, month_from_index
from staffplan.errors import (
    EligibilityViolation,
    NoCapacityAvailable,
    PersistenceUnavailable,
    PositionNotFound,
    RecordNotFound,
    StaffPlanError,
    StaleMergeDataLoss,
    StaleWriteConflict,
)
from staffplan.grid import Grid, PositionOption, available_positions, build_grid
from staffplan.models import SessionRecord, SystemUser
from staffplan.repository import PlanRepository, TableStore, backend_name
from staffplan.schemas import COLLECTIONS, SCHEMA_VERSION, LockState, MonthlyAllocationItem, PositionLine
from staffplan.security import MIN_PASSWORD_LENGTH, hash_password, verify_password
from staffplan.store import AllocationStore
from staffplan.workdays import parse_month_key

logger = logging.getLogger(__name__)

app = FastAPI(title="Staff Allocation Planner")

SESSION_COOKIE_NAME = "session_id"
SESSION_MAX_AGE_SECONDS = 14 * 24 * 60 * 60

Role = Literal["admin", "editor", "senior", "viewer"]
EDITOR_ROLES = frozenset({"admin", "editor", "senior"})
PAYROLL_ROLES = frozenset({"admin", "senior"})
TRUTHY = frozenset({"1", "true", "yes", "on"})


@app.middleware("http")
async def disable_cache_for_auth_and_api(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api/") or path.startswith("/auth/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthPayload(BaseModel):
    email: str
    password: str


class UserCreatePayload(BaseModel):
    email: str
    name: str = ""
    temporary_password: str
    role: Role = "viewer"


class UserPatchPayload(BaseModel):
    role: Role | None = None
    temporary_password: str | None = None
    is_active: bool | None = None


class UserOut(BaseModel):
    id: int
    email: str
    name: str
    role: Role
    is_active: bool
    created_at: datetime

    @classmethod
    def from_orm_user(cls, user: SystemUser) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at,
        )


class MainDataPayload(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    projects: list[dict[str, Any]] | None = None
    users: list[dict[str, Any]] | None = None
    allocations: list[dict[str, Any]] | None = None
    positions: list[dict[str, Any]] | None = None
    entities: list[dict[str, Any]] | None = None
    deletions: dict[str, list[str]] | None = None
    allow_deletions: bool = False


class SaveAck(ApiModel):
    ok: bool = True
    last_modified: str
    counts: dict[str, int]


class MonthlyAllocationPayload(ApiModel):
    month_key: str
    items: list[MonthlyAllocationItem]


class LockStatePayload(ApiModel):
    month_key: str
    is_locked: bool
    locked_by: str | None = None


class AllocationCreatePayload(ApiModel):
    user_id: str
    project_id: str
    month_index: int
    position_name: str
    amount: float | None = Field(default=None, gt=0)


class AllocationPatchPayload(ApiModel):
    percentage: float = Field(ge=0)


class PositionLinesPayload(ApiModel):
    allocation_mode: Literal["percentage", "days"] | None = None
    lines: list[PositionLine]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_valid_email(email: str) -> str:
    normalized = normalize_email(email)
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid email is required")
    return normalized


def ensure_password_strength(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )


def request_is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        first_proto = forwarded_proto.split(",")[0].strip().lower()
        if first_proto:
            return first_proto == "https"
    return request.url.scheme == "https"


def set_session_cookie(response: Response, request: Request, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def clear_session_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def create_session(db: Session, user_id: int) -> str:
    session_id = secrets.token_urlsafe(32)
    db.add(
        SessionRecord(
            session_id=session_id,
            user_id=user_id,
            expires_at=utcnow() + timedelta(seconds=SESSION_MAX_AGE_SECONDS),
        )
    )
    db.commit()
    return session_id


def get_session_user(db: Session, session_id: str | None) -> SystemUser | None:
    if not session_id:
        return None
    session = db.get(SessionRecord, session_id)
    if session is None:
        return None
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    user = db.get(SystemUser, session.user_id)
    if expires_at <= utcnow() or user is None or not user.is_active:
        db.delete(session)
        db.commit()
        return None
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> SystemUser:
    user = get_session_user(db, request.cookies.get(SESSION_COOKIE_NAME))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def get_editor_user(current_user: SystemUser = Depends(get_current_user)) -> SystemUser:
    if current_user.role not in EDITOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Edit access required")
    return current_user


def get_payroll_user(current_user: SystemUser = Depends(get_current_user)) -> SystemUser:
    if current_user.role not in PAYROLL_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Payroll lock access required")
    return current_user


def get_admin_user(current_user: SystemUser = Depends(get_current_user)) -> SystemUser:
    if current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def ensure_active_admin_remains(db: Session, target_user: SystemUser, patch: UserPatchPayload) -> None:
    next_role = patch.role if patch.role is not None else target_user.role
    next_is_active = patch.is_active if patch.is_active is not None else target_user.is_active
    if target_user.role != "admin" or not target_user.is_active:
        return
    if next_role == "admin" and next_is_active:
        return
    active_admins = db.scalar(
        select(func.count(SystemUser.id)).where(SystemUser.role == "admin", SystemUser.is_active.is_(True))
    ) or 0
    if active_admins <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one active admin must remain")


def as_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (RecordNotFound, PositionNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, NoCapacityAvailable):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, EligibilityViolation):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, StaleWriteConflict):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "stale_write",
                "message": str(exc),
                "clientLastModified": exc.client_last_modified,
                "currentLastModified": exc.current_last_modified,
            },
        )
    if isinstance(exc, StaleMergeDataLoss):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "stale_merge",
                "message": str(exc),
                "collection": exc.collection,
                "existingCount": exc.existing_count,
            },
        )
    if isinstance(exc, PersistenceUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def ensure_month_key(month_key: str | None) -> str:
    if not month_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="monthKey is required")
    try:
        year, month = parse_month_key(month_key)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return f"{year}-{month}"


def open_store(db: Session) -> AllocationStore:
    repository = PlanRepository(db)
    try:
        document = repository.get_main_data()
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc
    return AllocationStore.from_document(document, persist=repository.persist_callback())


def flag_enabled(value: str | None) -> bool:
    return (value or "").strip().lower() in TRUTHY


@app.get("/auth/bootstrap/status")
def auth_bootstrap_status(db: Session = Depends(get_db)) -> dict[str, bool]:
    if not os.getenv("BOOTSTRAP_TOKEN", ""):
        return {"enabled": False}
    existing_users = db.scalar(select(func.count(SystemUser.id))) or 0
    return {"enabled": existing_users == 0}


@app.post("/auth/bootstrap", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def auth_bootstrap(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    bootstrap_token: str | None = Header(default=None, alias="X-Bootstrap-Token"),
) -> UserOut:
    configured_token = os.getenv("BOOTSTRAP_TOKEN", "")
    if not configured_token:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bootstrap token is not configured")
    if bootstrap_token is None or not secrets.compare_digest(bootstrap_token, configured_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid bootstrap token")
    existing_users = db.scalar(select(func.count(SystemUser.id))) or 0
    if existing_users > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Bootstrap is only allowed before the first user exists")
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    user = SystemUser(email=email, name=email.split("@", 1)[0], password_hash=hash_password(payload.password), role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    set_session_cookie(response, request, create_session(db, user.id))
    return UserOut.from_orm_user(user)


@app.post("/auth/login", response_model=UserOut)
def auth_login(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> UserOut:
    email = ensure_valid_email(payload.email)
    user = db.scalar(select(SystemUser).where(SystemUser.email == email))
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    set_session_cookie(response, request, create_session(db, user.id))
    return UserOut.from_orm_user(user)


@app.post("/auth/logout")
def auth_logout(request: Request, response: Response, db: Session = Depends(get_db)) -> dict[str, bool]:
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        session = db.get(SessionRecord, session_id)
        if session is not None:
            db.delete(session)
            db.commit()
    clear_session_cookie(response, request)
    return {"ok": True}


@app.get("/auth/me", response_model=UserOut)
def auth_me(current_user: SystemUser = Depends(get_current_user)) -> UserOut:
    return UserOut.from_orm_user(current_user)


@app.get("/api/admin/users", response_model=list[UserOut])
def admin_list_users(_: SystemUser = Depends(get_admin_user), db: Session = Depends(get_db)) -> list[UserOut]:
    users = db.scalars(select(SystemUser).order_by(SystemUser.created_at.asc(), SystemUser.id.asc())).all()
    return [UserOut.from_orm_user(user) for user in users]


@app.post("/api/admin/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    payload: UserCreatePayload,
    _: SystemUser = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> UserOut:
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.temporary_password)
    if db.scalar(select(SystemUser).where(SystemUser.email == email)) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    user = SystemUser(
        email=email,
        name=payload.name or email.split("@", 1)[0],
        password_hash=hash_password(payload.temporary_password),
        role=payload.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.patch("/api/admin/users/{user_id}", response_model=UserOut)
def admin_patch_user(
    user_id: int,
    payload: UserPatchPayload,
    _: SystemUser = Depends(get_admin_user),
    db: Session = Depends(get_db),
) -> UserOut:
    user = db.get(SystemUser, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if payload.role is None and payload.temporary_password is None and payload.is_active is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    ensure_active_admin_remains(db, user, payload)
    if payload.role is not None:
        user.role = payload.role
    if payload.is_active is not None:
        user.is_active = payload.is_active
    if payload.temporary_password:
        ensure_password_strength(payload.temporary_password)
        user.password_hash = hash_password(payload.temporary_password)
    db.commit()
    db.refresh(user)
    return UserOut.from_orm_user(user)


@app.get("/api/main-data")
def get_main_data(_: SystemUser = Depends(get_current_user), db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        return PlanRepository(db).get_main_data()
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc


@app.post("/api/main-data", response_model=SaveAck)
def save_main_data(
    payload: MainDataPayload,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
    allow_deletions_header: str | None = Header(default=None, alias="X-Allow-Deletions"),
    client_last_modified: str | None = Header(default=None, alias="X-Client-Last-Modified"),
    bypass_concurrency: str | None = Header(default=None, alias="X-Bypass-Concurrency"),
) -> SaveAck:
    allow_deletions = payload.allow_deletions or flag_enabled(allow_deletions_header)
    body = payload.model_dump(by_alias=True, exclude_unset=True)
    body.pop("allowDeletions", None)
    try:
        merged = PlanRepository(db).save_main_data(
            body,
            allow_deletions=allow_deletions,
            client_last_modified=client_last_modified or None,
            bypass_concurrency=flag_enabled(bypass_concurrency),
        )
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return SaveAck(
        last_modified=merged["lastModified"],
        counts={name: len(merged.get(name) or []) for name in COLLECTIONS},
    )


@app.get("/api/monthly-allocation")
def get_monthly_allocation(
    month_key: str | None = Query(default=None, alias="monthKey"),
    _: SystemUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    key = ensure_month_key(month_key)
    try:
        items = PlanRepository(db).get_monthly_allocation(key)
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc
    return {"monthKey": key, "items": [item.to_json() for item in items]}


@app.post("/api/monthly-allocation")
def set_monthly_allocation(
    payload: MonthlyAllocationPayload,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    key = ensure_month_key(payload.month_key)
    repository = PlanRepository(db)
    try:
        if repository.get_lock_state(key).is_locked:
            raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=f"Payroll month {key} is locked")
        repository.set_monthly_allocation(key, payload.items)
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc
    return {"ok": True, "monthKey": key, "itemsCount": len(payload.items)}


@app.get("/api/lock-state")
def get_lock_state(
    month_key: str | None = Query(default=None, alias="monthKey"),
    _: SystemUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    key = ensure_month_key(month_key)
    try:
        state = PlanRepository(db).get_lock_state(key)
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc
    return {"monthKey": key, **state.model_dump(by_alias=True)}


@app.post("/api/lock-state")
def set_lock_state(
    payload: LockStatePayload,
    current_user: SystemUser = Depends(get_payroll_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    key = ensure_month_key(payload.month_key)
    try:
        state: LockState = PlanRepository(db).set_lock_state(key, payload.is_locked, payload.locked_by or current_user.email)
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc
    return {"monthKey": key, **state.model_dump(by_alias=True)}


@app.post("/api/storage/init")
def init_storage(_: SystemUser = Depends(get_admin_user)) -> dict[str, Any]:
    app_db.Base.metadata.create_all(bind=app_db.engine)
    logger.info("Storage tables initialised on %s", backend_name(app_db.DATABASE_URL))
    return {"ok": True, "tables": sorted(app_db.Base.metadata.tables)}


@app.get("/api/storage/status")
def storage_status(_: SystemUser = Depends(get_current_user), db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        counts = TableStore(db).count_rows()
    except PersistenceUnavailable as exc:
        raise as_http_error(exc) from exc
    return {"backend": backend_name(app_db.DATABASE_URL), "schemaVersion": SCHEMA_VERSION, "rows": counts}


@app.post("/api/allocations", status_code=status.HTTP_201_CREATED)
def create_allocation(
    payload: AllocationCreatePayload,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    store = open_store(db)
    try:
        allocation = store.add_allocation(
            payload.user_id, payload.project_id, payload.month_index, payload.position_name, payload.amount
        )
    except (StaffPlanError, ValueError) as exc:
        raise as_http_error(exc) from exc
    return allocation.to_json()


@app.patch("/api/allocations/{allocation_id}")
def edit_allocation(
    allocation_id: str,
    payload: AllocationPatchPayload,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    store = open_store(db)
    try:
        allocation = store.edit_allocation_amount(allocation_id, payload.percentage)
    except (StaffPlanError, ValueError) as exc:
        raise as_http_error(exc) from exc
    return allocation.to_json()


@app.delete("/api/allocations/{allocation_id}")
def delete_allocation(
    allocation_id: str,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    store = open_store(db)
    try:
        store.remove_allocation(allocation_id)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return {"ok": True}


@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: str,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    store = open_store(db)
    try:
        store.delete_project(project_id)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return {"ok": True}


@app.delete("/api/users/{user_id}")
def delete_user(
    user_id: str,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    store = open_store(db)
    try:
        store.delete_user(user_id)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return {"ok": True}


@app.get("/api/projects/{project_id}/positions")
def get_position_lines(
    project_id: str,
    _: SystemUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    store = open_store(db)
    try:
        project = store.get_project(project_id)
        lines = store.position_lines(project_id)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return {"allocationMode": project.allocation_mode, "lines": [line.to_json() for line in lines]}


@app.put("/api/projects/{project_id}/positions")
def put_position_lines(
    project_id: str,
    payload: PositionLinesPayload,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    store = open_store(db)
    try:
        positions = store.save_position_lines(project_id, payload.lines, payload.allocation_mode)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return {"positions": [position.to_json() for position in positions]}


@app.delete("/api/projects/{project_id}/position-lines/{line_id}")
def delete_position_line(
    project_id: str,
    line_id: str,
    _: SystemUser = Depends(get_editor_user),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    store = open_store(db)
    try:
        store.get_project(project_id)
        store.delete_position_line(line_id, project_id=project_id)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    return {"ok": True}


@app.get("/api/grid", response_model=Grid)
def get_grid(
    start_year: int | None = Query(default=None, alias="startYear"),
    start_month: int | None = Query(default=None, alias="startMonth", ge=0, le=11),
    project_id: str | None = Query(default=None, alias="projectId"),
    _: SystemUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Grid:
    store = open_store(db)
    today = date.today()
    year = start_year if start_year is not None else (store.start_year or today.year)
    month = start_month if start_month is not None else (
        store.start_month if store.start_month is not None else today.month - 1
    )
    return build_grid(store, year, month, project_id)


@app.get("/api/cells/{user_id}/{month_index}/positions", response_model=list[PositionOption])
def get_cell_positions(
    user_id: str,
    month_index: int,
    project_id: str | None = Query(default=None, alias="projectId"),
    _: SystemUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[PositionOption]:
    store = open_store(db)
    try:
        user = store.get_user(user_id)
    except StaffPlanError as exc:
        raise as_http_error(exc) from exc
    if not is_user_active_in_month(user, month_index):
        year, month = month_from_index(month_index)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"User {user_id} is not active in {year}-{month}",
        )
    return available_positions(store, user_id, month_index, project_id)


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
