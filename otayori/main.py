import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from otayori.config import settings
from otayori.errors import AuthError, NotFoundError, setup_exception_handlers
from otayori.logging_utils import RequestLoggingMiddleware, log_request_data, setup_logging
from otayori.metrics import get_metrics, get_metrics_content_type
from otayori.schemas import (
    ErrorResponse,
    HealthResponse,
    MessageSubmitRequest,
    MessageSubmitResponse,
    StaffMessageResponse,
    SuccessResponse,
    TeacherLogEntry,
    ThemeCreateRequest,
    ThemeResponse,
    TokenResponse,
    VerifyTokenResponse,
)
from otayori.services import MessageService, ThemeService, TokenService
from otayori.storage import Store, check_db_health, get_store, init_db
from otayori.utils import get_client_ip


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

STATIC_DIR = Path(settings.STATIC_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    logger.info(f"Serving pages from {STATIC_DIR.resolve()}")
    yield


app = FastAPI(
    title="Otayori Box API",
    description="お便り submission backend for the school radio program",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
setup_exception_handlers(app)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    500: {"model": ErrorResponse, "description": "Storage failure"},
}


# =============================================================================
# Service Dependencies
# =============================================================================

def get_token_service(request: Request, store: Store = Depends(get_store)) -> TokenService:
    base_url = settings.PUBLIC_BASE_URL or str(request.base_url)
    return TokenService(store, base_url=base_url, staff_path=settings.STAFF_PAGE_PATH)


def get_theme_service(store: Store = Depends(get_store)) -> ThemeService:
    return ThemeService(store, timezone_name=settings.TIMEZONE)


def get_message_service(store: Store = Depends(get_store)) -> MessageService:
    return MessageService(store)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    schema is applied, 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# Teacher Routes
# =============================================================================

@app.get("/api/teacher/get-current-token", response_model=TokenResponse, responses=ERROR_RESPONSES)
def get_current_token(service: TokenService = Depends(get_token_service)) -> TokenResponse:
    """Current staff URL and token, or nulls when none was issued."""
    return service.get_current()


@app.post("/api/teacher/generate-url", response_model=TokenResponse, responses=ERROR_RESPONSES)
def generate_url(service: TokenService = Depends(get_token_service)) -> TokenResponse:
    """
    Issue a new staff token.

    The previous token (if any) is invalidated immediately.
    """
    return service.issue()


@app.get("/api/teacher/logs", response_model=List[TeacherLogEntry], responses=ERROR_RESPONSES)
def teacher_logs(service: MessageService = Depends(get_message_service)) -> List[TeacherLogEntry]:
    """Submission log of every message, newest first."""
    return service.list_logs_for_teacher()


@app.get(
    "/api/verify-token/{token}",
    response_model=VerifyTokenResponse,
    responses={401: {"description": "Invalid token"}, 500: {"model": ErrorResponse}},
)
def verify_token(
    token: str,
    request: Request,
    service: TokenService = Depends(get_token_service),
) -> VerifyTokenResponse:
    valid = service.verify(token)
    log_request_data(request, token_valid=valid)
    if not valid:
        raise AuthError(valid=False)
    return VerifyTokenResponse(valid=True)


# =============================================================================
# Staff Routes
# =============================================================================

@app.get("/api/staff/themes", response_model=List[ThemeResponse], responses=ERROR_RESPONSES)
def staff_themes(service: ThemeService = Depends(get_theme_service)) -> List[ThemeResponse]:
    """All active themes, newest first."""
    return service.list_for_staff()


@app.post("/api/staff/themes", response_model=ThemeResponse, responses=ERROR_RESPONSES)
def create_theme(
    body: ThemeCreateRequest,
    request: Request,
    service: ThemeService = Depends(get_theme_service),
) -> ThemeResponse:
    theme = service.create(body)
    log_request_data(request, theme_id=theme.id)
    return theme


@app.delete(
    "/api/staff/themes/{theme_id}",
    response_model=SuccessResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "Theme not found"}},
)
def deactivate_theme(
    theme_id: str,
    request: Request,
    service: ThemeService = Depends(get_theme_service),
) -> SuccessResponse:
    log_request_data(request, theme_id=theme_id)
    service.deactivate(theme_id)
    return SuccessResponse(success=True)


@app.get("/api/staff/messages", response_model=List[StaffMessageResponse], responses=ERROR_RESPONSES)
def staff_messages(service: MessageService = Depends(get_message_service)) -> List[StaffMessageResponse]:
    """Every message with its theme title, newest first."""
    return service.list_for_staff()


@app.put("/api/staff/messages/{message_id}/read", response_model=SuccessResponse, responses=ERROR_RESPONSES)
def mark_message_read(
    message_id: str,
    request: Request,
    service: MessageService = Depends(get_message_service),
) -> SuccessResponse:
    log_request_data(request, message_id=message_id)
    service.mark_read(message_id)
    return SuccessResponse(success=True)


# =============================================================================
# Student Routes
# =============================================================================

@app.get("/api/student/themes", response_model=List[ThemeResponse], responses=ERROR_RESPONSES)
def student_themes(service: ThemeService = Depends(get_theme_service)) -> List[ThemeResponse]:
    """Themes currently open for submissions."""
    return service.list_for_students()


@app.post("/api/student/messages", response_model=MessageSubmitResponse, responses=ERROR_RESPONSES)
def submit_message(
    body: MessageSubmitRequest,
    request: Request,
    service: MessageService = Depends(get_message_service),
) -> MessageSubmitResponse:
    result = service.submit(body, client_ip=get_client_ip(request))
    log_request_data(request, message_id=result.id)
    return result


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


# =============================================================================
# Pages
# =============================================================================

def _page(filename: str) -> FileResponse:
    path = STATIC_DIR / filename
    if not path.is_file():
        raise NotFoundError("ページが見つかりません")
    return FileResponse(path, media_type="text/html")


@app.get("/", include_in_schema=False)
async def student_page() -> FileResponse:
    return _page("student.html")


@app.get("/teacher", include_in_schema=False)
async def teacher_page() -> FileResponse:
    return _page("teacher.html")


@app.get("/staff", include_in_schema=False)
async def staff_page() -> FileResponse:
    return _page("staff.html")


# Everything else in STATIC_DIR (css/js, staff.html) is served from the root.
# Mounted last so the API and page routes above take precedence.
if STATIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=STATIC_DIR), name="static")
