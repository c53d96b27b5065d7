"""Admin login/logout/status routes."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from policymap.dependencies import NO_CACHE_HEADERS, get_access_gate, get_store
from policymap.schemas.admin import AuthResult, LoginRequest
from policymap.services.access_gate import AccessGate
from policymap.services.record_store import ProposalStore

router = APIRouter(prefix="/api/auth")


@router.post("/login", response_model=AuthResult)
def login(
    payload: LoginRequest,
    request: Request,
    gate: AccessGate = Depends(get_access_gate),
    store: ProposalStore = Depends(get_store),
) -> JSONResponse:
    """Open an admin session; 401 on bad credentials, 429 while locked."""

    result = gate.login(request.session, payload.username, payload.password)
    if result.success:
        store.record_event("Login", "Admin logged in")
    body = AuthResult(
        success=result.success,
        message=result.message,
        lockedUntil=result.locked_until,
        attempts=None if result.success else result.attempts,
    )
    return JSONResponse(
        status_code=result.status_code,
        content=body.model_dump(exclude_none=True),
        headers=NO_CACHE_HEADERS,
    )


@router.post("/logout", response_model=AuthResult)
def logout(
    request: Request,
    gate: AccessGate = Depends(get_access_gate),
    store: ProposalStore = Depends(get_store),
) -> JSONResponse:
    was_logged_in = gate.is_authorized(request.session)
    gate.logout(request.session)
    if was_logged_in:
        store.record_event("Logout", "Admin logged out")
    body = AuthResult(success=True, message="Logged out")
    return JSONResponse(content=body.model_dump(exclude_none=True), headers=NO_CACHE_HEADERS)


@router.get("/status")
def status(request: Request, gate: AccessGate = Depends(get_access_gate)) -> dict:
    return gate.status(request.session)
