"""
FastAPI application for the CloudCast workspace.

A backend-for-frontend serving one client session: sign-in, guarded page
resolution, organization onboarding and the global-admin views.

Run with:
    uvicorn cloudcast.api.app:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, EmailStr, Field

from cloudcast.auth.guard import GuardAction, RouteGuard
from cloudcast.config import get_settings
from cloudcast.core.models import MembershipRole
from cloudcast.directory import (
    AuthFailure,
    ConflictError,
    DirectoryClient,
    DirectoryUnavailable,
    InMemoryDirectoryClient,
    RecordNotFound,
    load_seed,
)
from cloudcast.integrations.sentry import init_sentry
from cloudcast.services import (
    AdminDirectory,
    CreationFailed,
    InvalidCode,
    InvalidTransition,
    MembershipError,
    NotAuthorized,
    NotSignedIn,
    SessionStore,
)

logger = logging.getLogger(__name__)


# =============================================================================
# App State
# =============================================================================


class AppState:
    """Application state - initialized at startup."""

    directory: DirectoryClient
    store: SessionStore
    guard: RouteGuard
    admin: AdminDirectory


state = AppState()


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    if init_sentry(settings):
        logger.info("Sentry error tracking enabled")

    directory = InMemoryDirectoryClient(settings)
    if settings.seed_file:
        counts = await load_seed(directory, settings.seed_file)
        logger.info(f"Seeded directory: {counts}")

    state.directory = directory
    state.store = SessionStore(directory, settings)
    state.guard = RouteGuard(state.store)
    state.admin = AdminDirectory(state.store)

    logger.info(f"CloudCast API starting in {settings.environment} mode")
    async with state.store:
        yield

    logger.info("CloudCast API shutting down")


# =============================================================================
# App Setup
# =============================================================================


app = FastAPI(
    title="CloudCast API",
    description="Access control and organization onboarding for the CloudCast workspace",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error mapping
# =============================================================================


_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (AuthFailure, 401),
    (NotSignedIn, 401),
    (NotAuthorized, 403),
    (InvalidCode, 404),
    (RecordNotFound, 404),
    (CreationFailed, 409),
    (InvalidTransition, 409),
    (ConflictError, 409),
    (MembershipError, 400),
    (DirectoryUnavailable, 503),
]


async def _error_response(request: Request, exc: Exception) -> JSONResponse:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


for _error_type, _ in _STATUS_BY_ERROR:
    app.add_exception_handler(_error_type, _error_response)


# =============================================================================
# Request/Response Models
# =============================================================================


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class CreateOrganizationRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None


class JoinRequestBody(BaseModel):
    code: str


class ReviewRequest(BaseModel):
    approve: bool


class InviteRequest(BaseModel):
    email: EmailStr
    role: MembershipRole = MembershipRole.MEMBER


def _me() -> dict[str, Any]:
    store = state.store
    return {
        "authenticated": store.is_authenticated,
        "loading": store.loading,
        "principal": store.principal.model_dump() if store.principal else None,
        "profile": store.profile.model_dump(mode="json") if store.profile else None,
        "email_domain_valid": store.email_domain_valid,
        "memberships": [m.model_dump(mode="json") for m in store.memberships],
    }


# =============================================================================
# Health
# =============================================================================


@app.get("/health")
async def health():
    return {"status": "ok"}


# =============================================================================
# Auth
# =============================================================================


@app.post("/auth/sign-in")
async def sign_in(req: SignInRequest):
    await state.store.sign_in(req.email, req.password)
    await state.store.settled()
    return _me()


@app.post("/auth/sign-out")
async def sign_out():
    await state.store.sign_out()
    return {"status": "signed_out"}


@app.post("/auth/refresh")
async def refresh():
    await state.directory.refresh_session()
    await state.store.settled()
    return _me()


@app.get("/auth/me")
async def me():
    return _me()


# =============================================================================
# Pages
# =============================================================================


@app.get("/pages/{page_path:path}")
async def resolve_page(page_path: str):
    """Run the route guard for a page the UI wants to render."""
    path = "/" + page_path.strip("/") if page_path.strip("/") else "/"
    outcome = await state.guard.resolve(path)

    if outcome.action == GuardAction.REDIRECT:
        return RedirectResponse(outcome.location, status_code=307)
    if outcome.action == GuardAction.LOADING:
        return JSONResponse(status_code=202, content={"status": "loading", "path": path})
    return {"render": path}


# =============================================================================
# Organizations
# =============================================================================


@app.get("/organizations/memberships")
async def list_memberships():
    memberships = await state.store.membership.fetch_organization_memberships()
    return {
        "memberships": [m.model_dump(mode="json") for m in memberships],
        "join_codes": state.store.membership.admin_join_codes(),
    }


@app.post("/organizations", status_code=201)
async def create_organization(req: CreateOrganizationRequest):
    org_id = await state.store.membership.create_organization(req.name, req.description)
    return {"organization_id": org_id}


@app.post("/organizations/join")
async def join_organization(req: JoinRequestBody):
    joined = await state.store.membership.join_organization_with_code(req.code)
    return {"joined": joined}


@app.get("/organizations/joinable")
async def joinable_organizations():
    orgs = await state.store.membership.list_joinable_organizations()
    return {"organizations": [o.model_dump(mode="json") for o in orgs]}


@app.post("/organizations/{organization_id}/join-requests")
async def request_to_join(organization_id: str):
    request = await state.store.membership.request_to_join(organization_id)
    if request is None:
        return {"already_member": True}
    return request.model_dump(mode="json")


@app.get("/organizations/{organization_id}/join-requests")
async def list_join_requests(organization_id: str):
    requests = await state.store.membership.list_join_requests(organization_id)
    return {"join_requests": [r.model_dump(mode="json") for r in requests]}


@app.post("/join-requests/{request_id}/review")
async def review_join_request(request_id: str, req: ReviewRequest):
    request = await state.store.membership.review_join_request(request_id, req.approve)
    return request.model_dump(mode="json")


@app.post("/organizations/{organization_id}/invites", status_code=201)
async def create_invite(organization_id: str, req: InviteRequest):
    invite = await state.store.membership.create_invite(organization_id, req.email, req.role)
    return invite.model_dump(mode="json")


@app.post("/organizations/{organization_id}/join-code")
async def regenerate_join_code(organization_id: str):
    code = await state.store.membership.regenerate_join_code(organization_id)
    return {"join_code": code}


# =============================================================================
# Admin
# =============================================================================


@app.get("/admin/organizations")
async def admin_organizations():
    orgs = await state.admin.list_organizations()
    return {"organizations": [o.model_dump(mode="json") for o in orgs]}


@app.get("/admin/profiles")
async def admin_profiles():
    profiles = await state.admin.list_profiles()
    return {"profiles": [p.model_dump(mode="json") for p in profiles]}


@app.post("/admin/organizations", status_code=201)
async def admin_create_organization(req: CreateOrganizationRequest):
    org = await state.admin.create_organization(req.name, req.description)
    return org.model_dump(mode="json")
