"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from clinicflow.db.enums import Role


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    org_id: UUID
    role: str


class RequestContext(BaseModel):
    """
    Tenant and actor context for an authenticated request.

    Returned by the get_request_context dependency; every service call
    takes its org_id from here.
    """
    user_id: UUID
    org_id: UUID
    role: Role
