"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session, sessionmaker

from roomcast.core.security import decode_access_token
from roomcast.core.settings import settings
from roomcast.db.session import get_db, get_session_factory
from roomcast.services.ai_chat import AiChatService
from roomcast.services.ai_providers import AiConnector, get_ai_connectors
from roomcast.services.broadcast import BroadcastCoalescer, get_coalescer
from roomcast.services.chat_keys import AiProvider
from roomcast.services.errors import (
    ChatError,
    ForbiddenError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    StorageUnavailableError,
    UnauthorizedError,
    ValidationError,
)
from roomcast.services.history import HistoryService
from roomcast.services.ingress import MessageIngress
from roomcast.services.message_store import MessageStore
from roomcast.services.rate_limit import RateLimiter, get_ai_rate_limiter, get_login_rate_limiter
from roomcast.services.realtime import SessionRegistry, get_session_registry
from roomcast.services.users import UserDirectory

# HTTP Bearer scheme; missing credentials are reported as 401 below
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
SessionFactoryDep = Annotated[sessionmaker[Session], Depends(get_session_factory)]
CoalescerDep = Annotated[BroadcastCoalescer, Depends(get_coalescer)]
RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
ConnectorsDep = Annotated[dict[AiProvider, AiConnector], Depends(get_ai_connectors)]
LoginLimiterDep = Annotated[RateLimiter, Depends(get_login_rate_limiter)]
AiLimiterDep = Annotated[RateLimiter, Depends(get_ai_rate_limiter)]

_STATUS_BY_ERROR: tuple[tuple[type[ChatError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ProviderError, status.HTTP_502_BAD_GATEWAY),
    (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def http_error(err: ChatError) -> HTTPException:
    """Translate a domain exception into the matching HTTP error.

    Args:
        err: Exception raised by a service

    Returns:
        HTTPException carrying the exception message as ``detail``
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(err, error_type):
            return HTTPException(status_code=status_code, detail=str(err))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(err))


def get_user_directory(db: SessionDep) -> UserDirectory:
    return UserDirectory(db)


UsersDep = Annotated[UserDirectory, Depends(get_user_directory)]


def get_current_nickname(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    users: UsersDep,
) -> str:
    """Resolve the authenticated nickname from the bearer token.

    Args:
        credentials: HTTP Bearer token credentials, if any were sent
        users: User directory bound to the request session

    Returns:
        The stored nickname of the authenticated user

    Raises:
        HTTPException: If the token is missing or invalid, or the user is unknown
    """
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        nickname = decode_access_token(credentials.credentials)
    except UnauthorizedError as err:
        raise http_error(err) from err

    user = users.find(nickname)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user.nickname


# Type alias for current user dependency
CurrentUserDep = Annotated[str, Depends(get_current_nickname)]


def get_message_store(db: SessionDep) -> MessageStore:
    return MessageStore(db)


StoreDep = Annotated[MessageStore, Depends(get_message_store)]


def get_message_ingress(
    store: StoreDep,
    users: UsersDep,
    coalescer: CoalescerDep,
) -> MessageIngress:
    return MessageIngress(store, users, coalescer, settings.max_attachment_bytes)


def get_history_service(store: StoreDep, users: UsersDep) -> HistoryService:
    return HistoryService(store, users)


def get_ai_chat_service(
    store: StoreDep,
    coalescer: CoalescerDep,
    connectors: ConnectorsDep,
) -> AiChatService:
    return AiChatService(store, coalescer, connectors)


IngressDep = Annotated[MessageIngress, Depends(get_message_ingress)]
HistoryDep = Annotated[HistoryService, Depends(get_history_service)]
AiChatDep = Annotated[AiChatService, Depends(get_ai_chat_service)]


def admit(limiter: RateLimiter, identity: str) -> None:
    """Consult admission control before any work is done for ``identity``.

    Raises:
        HTTPException: 429 when the identity has used up its quota
    """
    if not limiter.allow(identity):
        raise http_error(RateLimitedError("Too many requests, try later"))
