"""
Service layer: access token, theme and message operations.

Input is validated here before any store call; the store reports engine
failures as StorageError which is passed through untouched.
"""

import logging
import uuid
from datetime import date
from typing import List, Optional

from otayori.errors import NotFoundError, ValidationError
from otayori.logging_utils import mask_token
from otayori.metrics import record_message_submission, record_token_rotation
from otayori.schemas import (
    MessageSubmitRequest,
    MessageSubmitResponse,
    StaffMessageResponse,
    TeacherLogEntry,
    ThemeCreateRequest,
    ThemeResponse,
    TokenResponse,
)
from otayori.storage import Store
from otayori.utils import (
    build_staff_url,
    format_school_class,
    is_blank,
    parse_date,
    parse_identifier,
    today_in,
)

logger = logging.getLogger(__name__)

SUBMIT_ACK_MESSAGE = "お便りを送信しました"


# =============================================================================
# Access Token Service
# =============================================================================

class TokenService:
    """Issues, reads and verifies the single shared staff token."""

    def __init__(self, store: Store, base_url: str, staff_path: str):
        self.store = store
        self.base_url = base_url
        self.staff_path = staff_path

    def _url_for(self, token: str) -> str:
        return build_staff_url(self.base_url, self.staff_path, token)

    def issue(self) -> TokenResponse:
        """
        Rotate the token.

        Every previously issued token stops being valid immediately.
        """
        token = str(uuid.uuid4())
        access_token = self.store.replace_token(token)
        record_token_rotation()
        logger.info(f"Issued new staff token {mask_token(access_token.token)}")
        return TokenResponse(url=self._url_for(access_token.token), token=access_token.token)

    def get_current(self) -> TokenResponse:
        access_token = self.store.get_current_token()
        if access_token is None:
            logger.debug("No staff token has been issued")
            return TokenResponse(url=None, token=None)
        return TokenResponse(url=self._url_for(access_token.token), token=access_token.token)

    def verify(self, candidate: str) -> bool:
        if is_blank(candidate):
            return False
        valid = self.store.find_active_token(candidate) is not None
        logger.info(f"Token verification for {mask_token(candidate)}: {'valid' if valid else 'invalid'}")
        return valid


# =============================================================================
# Theme Service
# =============================================================================

class ThemeService:

    def __init__(self, store: Store, timezone_name: str):
        self.store = store
        self.timezone_name = timezone_name

    def create(self, request: ThemeCreateRequest) -> ThemeResponse:
        if is_blank(request.title):
            raise ValidationError("テーマのタイトルは必須です")

        start_date = parse_date(request.start_date, "開始日")
        end_date = parse_date(request.end_date, "終了日")

        theme = self.store.create_theme(
            title=request.title,
            description=request.description,
            start_date=start_date,
            end_date=end_date,
        )
        return ThemeResponse.model_validate(theme)

    def list_for_staff(self) -> List[ThemeResponse]:
        """All active themes, open or not."""
        return [ThemeResponse.model_validate(t) for t in self.store.list_active_themes()]

    def list_for_students(self, today: Optional[date] = None) -> List[ThemeResponse]:
        """Active themes whose window contains today (in the configured timezone)."""
        today = today or today_in(self.timezone_name)
        themes = self.store.list_active_themes(open_on=today)
        logger.debug(f"{len(themes)} theme(s) open on {today.isoformat()}")
        return [ThemeResponse.model_validate(t) for t in themes]

    def deactivate(self, theme_id) -> None:
        """
        Soft-delete a theme.

        Deactivating an already inactive theme succeeds again.
        """
        parsed_id = parse_identifier(theme_id, "テーマID")
        if not self.store.deactivate_theme(parsed_id):
            raise NotFoundError("テーマが見つかりません")


# =============================================================================
# Message Service
# =============================================================================

class MessageService:

    def __init__(self, store: Store):
        self.store = store

    def submit(self, request: MessageSubmitRequest, client_ip: Optional[str] = None) -> MessageSubmitResponse:
        if is_blank(request.radio_name) or is_blank(request.content):
            record_message_submission("validation_error")
            raise ValidationError("ラジオネームとお便り内容は必須です")

        theme_id = None
        if not is_blank(request.theme_id):
            try:
                theme_id = parse_identifier(request.theme_id, "テーマID")
            except ValidationError:
                record_message_submission("validation_error")
                raise

        message = self.store.create_message(
            sender_name=None if is_blank(request.sender_name) else request.sender_name,
            radio_name=request.radio_name,
            school_class=format_school_class(request.school_year, request.school_class),
            theme_id=theme_id,
            content=request.content,
            share_name=request.share_name,
            share_class=request.share_class,
            share_theme=request.share_theme,
            ip_address=client_ip,
        )
        record_message_submission("created")
        return MessageSubmitResponse(success=True, id=message.id, message=SUBMIT_ACK_MESSAGE)

    def list_for_staff(self) -> List[StaffMessageResponse]:
        return [
            StaffMessageResponse.model_validate(message).model_copy(update={"theme_title": title})
            for message, title in self.store.list_messages_with_theme_title()
        ]

    def mark_read(self, message_id) -> None:
        """Unknown ids are accepted and change nothing."""
        parsed_id = parse_identifier(message_id, "お便りID")
        self.store.mark_message_read(parsed_id)

    def list_logs_for_teacher(self) -> List[TeacherLogEntry]:
        """Audit view of every message, share flags notwithstanding."""
        return [
            TeacherLogEntry.model_validate(message).model_copy(update={"theme_title": title})
            for message, title in self.store.list_messages_with_theme_title()
        ]
