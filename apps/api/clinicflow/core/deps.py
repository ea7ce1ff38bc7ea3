"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from clinicflow.core.security import decode_session_token
from clinicflow.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "clinicflow_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def get_request_context(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Get the request context: user_id, org_id, role.

    This is the PRIMARY auth dependency for every tenant-scoped endpoint.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: Unknown role or organization
    """
    # Import here to avoid circular imports
    import jwt

    from clinicflow.db.enums import Role
    from clinicflow.db.models import Organization
    from clinicflow.schemas.auth import RequestContext, TokenPayload

    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        raise HTTPException(status_code=401, detail="Invalid session")

    if not Role.has_value(payload.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{payload.role}'. Contact administrator.",
        )

    org = db.query(Organization).filter(Organization.id == payload.org_id).first()
    if not org:
        raise HTTPException(status_code=403, detail="Organization not found")

    return RequestContext(
        user_id=payload.sub,
        org_id=payload.org_id,
        role=Role(payload.role),
    )


def require_roles(allowed_roles):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/x", dependencies=[Depends(require_roles(ROLES_CAN_MANAGE_AUTOMATION))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        ctx = get_request_context(request, db)
        if ctx.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{ctx.role.value}' not authorized for this action",
            )
        return ctx
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )
