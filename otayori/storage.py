import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date
from typing import Generator, Iterator, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import and_, create_engine, inspect, or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from otayori.config import settings
from otayori.errors import StorageError
from otayori.models import AccessToken, Base, Message, Theme
from otayori.utils import utc_now_iso

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("themes", "messages", "access_token")

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and all tables exist, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            existing = set(inspect(conn).get_table_names())
        missing = [name for name in REQUIRED_TABLES if name not in existing]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Store Interface
# =============================================================================

class Store(ABC):
    """
    Persistence capability set used by the services.

    One implementation exists per storage engine. Implementations raise
    StorageError for any failure of the underlying engine; "not found" is
    reported through return values, never through exceptions.
    """

    # Themes

    @abstractmethod
    def create_theme(
        self,
        title: str,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Theme:
        """Insert an active theme and return it with its generated id."""

    @abstractmethod
    def list_active_themes(self, open_on: Optional[date] = None) -> List[Theme]:
        """
        Active themes, newest first.

        When ``open_on`` is given only themes whose date window contains that
        day are returned (null bounds are open-ended).
        """

    @abstractmethod
    def get_theme(self, theme_id: int) -> Optional[Theme]:
        """Theme by id regardless of its active flag."""

    @abstractmethod
    def deactivate_theme(self, theme_id: int) -> bool:
        """Set is_active=false. Returns False when the theme does not exist."""

    # Messages

    @abstractmethod
    def create_message(
        self,
        radio_name: str,
        content: str,
        sender_name: Optional[str] = None,
        school_class: Optional[str] = None,
        theme_id: Optional[int] = None,
        share_name: bool = False,
        share_class: bool = False,
        share_theme: bool = False,
        ip_address: Optional[str] = None,
    ) -> Message:
        """Insert an unread message and return it with its generated id."""

    @abstractmethod
    def list_messages_with_theme_title(self) -> List[Tuple[Message, Optional[str]]]:
        """
        Every message paired with its theme title, newest first.

        The title is None when the message has no theme or the theme is unknown.
        """

    @abstractmethod
    def mark_message_read(self, message_id: int) -> bool:
        """Set is_read=true. Returns False when the message does not exist."""

    # Access token

    @abstractmethod
    def replace_token(self, token: str) -> AccessToken:
        """Delete every access token and insert ``token`` as the active one, atomically."""

    @abstractmethod
    def get_current_token(self) -> Optional[AccessToken]:
        """The most recently created active token, if any."""

    @abstractmethod
    def find_active_token(self, token: str) -> Optional[AccessToken]:
        """The active token row equal to ``token``, if any."""


# =============================================================================
# SQLAlchemy Implementation
# =============================================================================

class SqlStore(Store):
    """Store backed by a SQLAlchemy session (SQLite by default)."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, failure_message: str) -> Iterator[None]:
        """Roll back and convert engine errors into StorageError."""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{failure_message}: {e}")
            raise StorageError(failure_message) from e

    # Themes

    def create_theme(self, title, description=None, start_date=None, end_date=None) -> Theme:
        logger.info(f"Creating theme: title={title!r}")
        logger.debug(f"Theme window: start={start_date}, end={end_date}")

        with self._guard("テーマ作成に失敗しました"):
            theme = Theme(
                title=title,
                description=description,
                start_date=start_date,
                end_date=end_date,
                created_at=utc_now_iso(),
                is_active=True,
            )
            self.db.add(theme)
            self.db.commit()
            self.db.refresh(theme)

        logger.info(f"Theme created: id={theme.id}")
        return theme

    def list_active_themes(self, open_on=None) -> List[Theme]:
        logger.debug(f"Querying active themes, open_on={open_on}")

        with self._guard("テーマ取得に失敗しました"):
            query = self.db.query(Theme).filter(Theme.is_active.is_(True))

            if open_on is not None:
                query = query.filter(
                    and_(
                        or_(Theme.start_date.is_(None), Theme.start_date <= open_on),
                        or_(Theme.end_date.is_(None), Theme.end_date >= open_on),
                    )
                )

            themes = query.order_by(Theme.created_at.desc(), Theme.id.desc()).all()

        logger.debug(f"Retrieved {len(themes)} themes")
        return themes

    def get_theme(self, theme_id: int) -> Optional[Theme]:
        with self._guard("テーマ取得に失敗しました"):
            return self.db.get(Theme, theme_id)

    def deactivate_theme(self, theme_id: int) -> bool:
        logger.info(f"Deactivating theme: id={theme_id}")

        with self._guard("テーマ削除に失敗しました"):
            theme = self.db.get(Theme, theme_id)
            if theme is None:
                logger.info(f"Theme not found: id={theme_id}")
                return False
            theme.is_active = False
            self.db.commit()

        logger.info(f"Theme deactivated: id={theme_id}")
        return True

    # Messages

    def create_message(
        self,
        radio_name,
        content,
        sender_name=None,
        school_class=None,
        theme_id=None,
        share_name=False,
        share_class=False,
        share_theme=False,
        ip_address=None,
    ) -> Message:
        logger.info(f"Creating message: radio_name={radio_name!r}, theme_id={theme_id}")

        with self._guard("お便り送信に失敗しました"):
            message = Message(
                sender_name=sender_name,
                radio_name=radio_name,
                school_class=school_class,
                theme_id=theme_id,
                content=content,
                share_name=share_name,
                share_class=share_class,
                share_theme=share_theme,
                ip_address=ip_address,
                created_at=utc_now_iso(),
                is_read=False,
            )
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)

        logger.info(f"Message created: id={message.id}")
        return message

    def list_messages_with_theme_title(self) -> List[Tuple[Message, Optional[str]]]:
        logger.debug("Querying messages joined with theme titles")

        with self._guard("お便り取得に失敗しました"):
            rows = (
                self.db.query(Message, Theme.title)
                .outerjoin(Theme, Message.theme_id == Theme.id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .all()
            )

        logger.debug(f"Retrieved {len(rows)} messages")
        return [(message, title) for message, title in rows]

    def mark_message_read(self, message_id: int) -> bool:
        logger.info(f"Marking message read: id={message_id}")

        with self._guard("既読化に失敗しました"):
            updated = (
                self.db.query(Message)
                .filter(Message.id == message_id)
                .update({Message.is_read: True}, synchronize_session=False)
            )
            self.db.commit()

        if not updated:
            logger.info(f"Message not found, nothing marked: id={message_id}")
        return bool(updated)

    # Access token

    def replace_token(self, token: str) -> AccessToken:
        logger.info("Replacing staff access token")

        # Delete and insert share one transaction: a failed insert rolls the delete back
        with self._guard("URL生成に失敗しました"):
            removed = self.db.query(AccessToken).delete(synchronize_session=False)
            logger.debug(f"Removed {removed} previous token(s)")

            access_token = AccessToken(
                token=token,
                created_at=utc_now_iso(),
                is_active=True,
            )
            self.db.add(access_token)
            self.db.commit()
            self.db.refresh(access_token)

        return access_token

    def get_current_token(self) -> Optional[AccessToken]:
        with self._guard("トークン取得に失敗しました"):
            return (
                self.db.query(AccessToken)
                .filter(AccessToken.is_active.is_(True))
                .order_by(AccessToken.created_at.desc(), AccessToken.id.desc())
                .first()
            )

    def find_active_token(self, token: str) -> Optional[AccessToken]:
        with self._guard("トークン検証エラー"):
            return (
                self.db.query(AccessToken)
                .filter(AccessToken.token == token, AccessToken.is_active.is_(True))
                .first()
            )


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> Store:
    """Dependency returning a Store bound to the request's session."""
    return SqlStore(db)
