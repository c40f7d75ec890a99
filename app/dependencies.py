"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.documents import DocumentRenderer, get_document_renderer
from app.core.exceptions import ForbiddenException, UnauthorizedException
from app.core.mail import MailTransport, get_mail_transport
from app.core.security import decode_access_token
from app.database import get_db, get_session_factory
from app.schemas.users import Principal
from app.services.notification_service import NotificationDispatcher
from app.services.user_service import UserService

# Security
security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> UUID:
    """
    Extract and validate user ID from JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        User ID from token

    Raises:
        UnauthorizedException: If token is missing, invalid or expired
    """
    if credentials is None:
        raise UnauthorizedException("Not authenticated")

    payload = decode_access_token(credentials.credentials)

    if payload is None:
        raise UnauthorizedException("Could not validate credentials")

    user_id_str = payload.get("sub")
    if user_id_str is None or not isinstance(user_id_str, str):
        raise UnauthorizedException("Could not validate credentials")

    try:
        return UUID(user_id_str)
    except ValueError:
        raise UnauthorizedException("Invalid user ID format")


async def get_current_user(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Principal:
    """
    Load the acting principal from the database.

    Raises:
        UnauthorizedException: If the user does not exist
        ForbiddenException: If the user is inactive
    """
    user = await UserService.get_user_by_id(db, user_id)

    if not user:
        raise UnauthorizedException("User not found")

    if not user["is_active"]:
        raise ForbiddenException("User account is deactivated")

    return Principal.model_validate(user)


async def require_staff(
    current_user: Annotated[Principal, Depends(get_current_user)],
) -> Principal:
    """Allow only clinic staff (vets and admins)."""
    if not current_user.is_staff:
        raise ForbiddenException("Staff role required", error_code="STAFF_ONLY")
    return current_user


def get_notification_dispatcher(
    transport: Annotated[MailTransport, Depends(get_mail_transport)],
) -> NotificationDispatcher:
    """Dispatcher bound to the configured mail transport."""
    return NotificationDispatcher(transport)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
CurrentUser = Annotated[Principal, Depends(get_current_user)]
StaffUser = Annotated[Principal, Depends(require_staff)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
Renderer = Annotated[DocumentRenderer, Depends(get_document_renderer)]
