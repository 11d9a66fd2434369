from uuid import UUID

from pydantic import BaseModel

from hoa_backend.core.enums import UserRole


class CurrentUser(BaseModel):
    """Authenticated caller, resolved per request and passed explicitly to services."""

    id: UUID
    role: UserRole
    full_name: str
