import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Generator, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from messagely import guard
from messagely.accounts import AccountDirectory
from messagely.config import Settings, get_settings
from messagely.credentials import CredentialStore
from messagely.errors import MessagelyError, UnauthenticatedError, ValidationError
from messagely.ledger import MessageLedger
from messagely.logging_utils import RequestLoggingMiddleware, setup_logging
from messagely.metrics import get_metrics, get_metrics_content_type
from messagely.notifier import LogNotifier, Notifier, SMSNotifier
from messagely.schemas import (
    ErrorResponse,
    HealthResponse,
    IncomingMessagesResponse,
    LoginRequest,
    MessageCreate,
    MessageReceiptResponse,
    MessageResponse,
    MessageSend,
    OutgoingMessagesResponse,
    ReadReceiptResponse,
    TokenResponse,
    UserListResponse,
    UserResponse,
)
from messagely.security import TokenService
from messagely.storage import Database
from messagely.validation import parse_model

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or invalid credentials"},
    403: {"model": ErrorResponse, "description": "Not permitted"},
    404: {"model": ErrorResponse, "description": "Not found"},
}


# =============================================================================
# Dependencies
# =============================================================================

def get_db(request: Request) -> Generator[Session, None, None]:
    yield from request.app.state.database.get_db()


def get_directory(request: Request, db: Session = Depends(get_db)) -> AccountDirectory:
    return AccountDirectory(db, request.app.state.credentials)


def get_ledger(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> MessageLedger:
    # Notifications run after the response has been sent
    return MessageLedger(db, notifier=request.app.state.notifier, dispatch=background_tasks.add_task)


def get_current_username(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None:
        raise UnauthenticatedError("Authentication required")
    username = request.app.state.tokens.decode_access_token(credentials.credentials)
    request.state.username = username
    return username


async def json_body(request: Request) -> Any:
    """Parse the raw request body as JSON; the core validates its shape."""
    raw_body = await request.body()
    logger.debug(f"Request body size: {len(raw_body)} bytes")
    try:
        return json.loads(raw_body)
    except ValueError as e:
        # JSONDecodeError, or UnicodeDecodeError for non-UTF-8 bytes
        logger.info(f"Invalid JSON: {e}")
        raise ValidationError("Request body must be valid JSON")


# =============================================================================
# Auth Routes
# =============================================================================

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", response_model=TokenResponse, responses={409: {"model": ErrorResponse}})
def register(
    request: Request,
    body: Any = Depends(json_body),
    directory: AccountDirectory = Depends(get_directory),
) -> TokenResponse:
    """
    Register a user and log them in.

    {username, password, first_name, last_name, phone} => {token}
    """
    user = directory.register(body)
    token = request.app.state.tokens.create_access_token(user.username)
    return TokenResponse(token=token)


@auth_router.post("/login", response_model=TokenResponse, responses={401: {"model": ErrorResponse}})
def login(
    request: Request,
    body: Any = Depends(json_body),
    directory: AccountDirectory = Depends(get_directory),
) -> TokenResponse:
    """{username, password} => {token}"""
    credentials = parse_model(LoginRequest, body)
    if not directory.authenticate(credentials.username, credentials.password):
        raise UnauthenticatedError()

    directory.touch_login(credentials.username)
    token = request.app.state.tokens.create_access_token(credentials.username)
    return TokenResponse(token=token)


# =============================================================================
# User Routes
# =============================================================================

users_router = APIRouter(prefix="/users", tags=["users"], responses=ERROR_RESPONSES)


@users_router.get("", response_model=UserListResponse)
def list_users(
    username: str = Depends(get_current_username),
    directory: AccountDirectory = Depends(get_directory),
) -> UserListResponse:
    """Basic info on all users, ordered by username."""
    return UserListResponse(users=directory.list())


@users_router.get("/{username}", response_model=UserResponse)
def get_user(
    username: str,
    current_username: str = Depends(get_current_username),
    directory: AccountDirectory = Depends(get_directory),
) -> UserResponse:
    guard.ensure_self(current_username, username)
    return UserResponse(user=directory.get(username))


@users_router.get("/{username}/to", response_model=IncomingMessagesResponse)
def messages_to(
    username: str,
    current_username: str = Depends(get_current_username),
    directory: AccountDirectory = Depends(get_directory),
) -> IncomingMessagesResponse:
    guard.ensure_self(current_username, username)
    return IncomingMessagesResponse(messages=directory.messages_to(username))


@users_router.get("/{username}/from", response_model=OutgoingMessagesResponse)
def messages_from(
    username: str,
    current_username: str = Depends(get_current_username),
    directory: AccountDirectory = Depends(get_directory),
) -> OutgoingMessagesResponse:
    guard.ensure_self(current_username, username)
    return OutgoingMessagesResponse(messages=directory.messages_from(username))


# =============================================================================
# Message Routes
# =============================================================================

messages_router = APIRouter(prefix="/messages", tags=["messages"], responses=ERROR_RESPONSES)


@messages_router.get("/{message_id}", response_model=MessageResponse)
def get_message(
    message_id: int,
    current_username: str = Depends(get_current_username),
    ledger: MessageLedger = Depends(get_ledger),
) -> MessageResponse:
    """Message detail, for its sender or recipient only."""
    message = ledger.get(message_id)
    guard.ensure_can_view(current_username, message)
    return MessageResponse(message=message)


@messages_router.post("", response_model=MessageReceiptResponse)
def send_message(
    body: Any = Depends(json_body),
    current_username: str = Depends(get_current_username),
    ledger: MessageLedger = Depends(get_ledger),
) -> MessageReceiptResponse:
    """
    {to_username, body} => {message: {id, from_username, to_username, body, sent_at}}

    The sender is always the authenticated user.
    """
    outgoing = parse_model(MessageSend, body)
    receipt = ledger.create(
        MessageCreate(from_username=current_username, to_username=outgoing.to_username, body=outgoing.body)
    )
    return MessageReceiptResponse(message=receipt)


@messages_router.post("/{message_id}/read", response_model=ReadReceiptResponse)
def mark_read(
    message_id: int,
    current_username: str = Depends(get_current_username),
    ledger: MessageLedger = Depends(get_ledger),
) -> ReadReceiptResponse:
    """Mark a message read: => {message: {id, read_at}}. Recipient only."""
    message = ledger.get(message_id)
    guard.ensure_can_mark_read(current_username, message)
    return ReadReceiptResponse(message=ledger.mark_read(message_id))


# =============================================================================
# Health Check and Metrics Routes
# =============================================================================

ops_router = APIRouter()


@ops_router.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@ops_router.get("/health/ready", response_model=HealthResponse)
def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. SECRET_KEY is set (non-empty)
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not request.app.state.settings.SECRET_KEY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="SECRET_KEY not configured")

    if not request.app.state.database.check_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Database not reachable or schema not applied")

    return HealthResponse(status="ready")


@ops_router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# =============================================================================
# Application Factory
# =============================================================================

async def handle_messagely_error(request: Request, exc: MessagelyError) -> JSONResponse:
    """Render a domain error as {"detail": ...} with its status code."""
    if exc.status_code >= 500:
        logger.error(f"Unhandled domain error: {exc.message}")
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


def build_notifier(settings: Settings, database: Database) -> Notifier:
    if settings.sms_enabled:
        logger.info("SMS notifications enabled")
        return SMSNotifier(
            session_factory=database.SessionLocal,
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_FROM_NUMBER,
        )
    return LogNotifier()


def create_app(settings: Optional[Settings] = None, notifier: Optional[Notifier] = None) -> FastAPI:
    """
    Build an application with its own database, credential store and tokens.

    Args:
        settings: configuration; read from the environment when omitted
        notifier: overrides the notifier chosen from settings
    """
    settings = settings or get_settings()
    database = Database(settings.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        - Startup: create tables
        - Shutdown: release pooled connections
        """
        database.init_db()
        yield
        database.dispose()

    app = FastAPI(
        title="Messagely API",
        description="Direct messaging between registered users",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.credentials = CredentialStore(rounds=settings.BCRYPT_ROUNDS)
    app.state.tokens = TokenService(
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    )
    app.state.notifier = notifier or build_notifier(settings, database)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(MessagelyError, handle_messagely_error)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(messages_router)
    app.include_router(ops_router)
    return app


settings = get_settings()
setup_logging(settings.LOG_LEVEL)
app = create_app(settings)
