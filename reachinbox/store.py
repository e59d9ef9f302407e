"""Postgres-backed account and message store (async SQLAlchemy)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    select,
    text,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import DatabaseConfig
from .interfaces import MessageStore
from .models import Account, AccountConfig, AttachmentMeta, Category, Message

logger = structlog.get_logger()

CATEGORY_SEED: list[dict[str, str]] = [
    {"name": Category.INTERESTED.value, "description": "Shows genuine interest or a business opportunity", "color": "#10B981"},
    {"name": Category.MEETING_BOOKED.value, "description": "Confirms or schedules a meeting", "color": "#3B82F6"},
    {"name": Category.NOT_INTERESTED.value, "description": "Declines or responds negatively", "color": "#EF4444"},
    {"name": Category.SPAM.value, "description": "Unsolicited or automated promotional content", "color": "#6B7280"},
    {"name": Category.OUT_OF_OFFICE.value, "description": "Automated out-of-office reply", "color": "#F59E0B"},
]


class Base(DeclarativeBase):
    pass


class EmailAccountRecord(Base):
    __tablename__ = "email_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    host: Mapped[str] = mapped_column(String(255), nullable=False)
    port: Mapped[int] = mapped_column(Integer, nullable=False, default=993)
    secure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    password: Mapped[str] = mapped_column(Text, nullable=False)
    folders: Mapped[list] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class EmailRecord(Base):
    __tablename__ = "emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    account_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("email_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    folder: Mapped[str] = mapped_column(String(255), nullable=False)
    uid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    from_email: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    from_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    to_emails: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cc_emails: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    bcc_emails: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    received_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    body_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    body_html: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ai_category: Mapped[str | None] = mapped_column(String(50), index=True)
    ai_confidence: Mapped[float | None] = mapped_column(Float)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_important: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CategoryRecord(Base):
    __tablename__ = "ai_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str | None] = mapped_column(String(7))


def _make_engine(config: DatabaseConfig) -> AsyncEngine:
    if config.url.startswith("sqlite"):
        return create_async_engine(config.url, echo=False)
    return create_async_engine(
        config.url,
        echo=False,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_pre_ping=True,
    )


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class SqlMessageStore(MessageStore):
    """Durable store for accounts and messages.

    Created once at startup; :meth:`start` creates the schema and seeds
    the category table.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine = _make_engine(config)
        self._session = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def start(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with self._session() as session:
            stmt = self._insert(CategoryRecord).values(CATEGORY_SEED)
            await session.execute(stmt.on_conflict_do_nothing(index_elements=["name"]))
            await session.commit()
        logger.info("store_started", dialect=self._engine.dialect.name)

    async def close(self) -> None:
        await self._engine.dispose()

    def _insert(self, table: type[Base]) -> Any:
        if self._engine.dialect.name == "sqlite":
            return sqlite.insert(table)
        return postgresql.insert(table)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def insert_account(self, config: AccountConfig) -> int:
        record = EmailAccountRecord(
            name=config.name,
            host=config.host,
            port=config.port,
            secure=config.secure,
            username=config.username,
            password=config.password.get_secret_value(),
            folders=list(config.folders),
            is_active=config.is_active,
        )
        async with self._session() as session:
            session.add(record)
            await session.commit()
            return record.id

    async def load_active_accounts(self) -> list[Account]:
        async with self._session() as session:
            result = await session.execute(
                select(EmailAccountRecord)
                .where(EmailAccountRecord.is_active.is_(True))
                .order_by(EmailAccountRecord.id)
            )
            return [
                Account(
                    id=row.id,
                    name=row.name,
                    host=row.host,
                    port=row.port,
                    secure=row.secure,
                    username=row.username,
                    password=row.password,
                    folders=row.folders,
                    is_active=row.is_active,
                )
                for row in result.scalars()
            ]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def upsert_message(self, message: Message) -> None:
        """Insert *message*; on a repeated id only the labels are updated."""
        values = {
            "message_id": message.id,
            "account_id": message.account_id,
            "folder": message.folder,
            "uid": message.uid,
            "subject": message.subject,
            "from_email": message.from_email,
            "from_name": message.from_name,
            "to_emails": message.to_emails,
            "cc_emails": message.cc_emails,
            "bcc_emails": message.bcc_emails,
            "date": message.date,
            "received_date": message.received_date,
            "size": message.size,
            "flags": message.flags,
            "body_text": message.body_text,
            "body_html": message.body_html,
            "attachments": [a.model_dump() for a in message.attachments],
            "ai_category": message.ai_category.value if message.ai_category else None,
            "ai_confidence": message.ai_confidence,
            "is_read": message.is_read,
            "is_important": message.is_important,
            "created_at": message.created_at,
            "updated_at": message.updated_at,
        }
        stmt = self._insert(EmailRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["message_id"],
            set_={
                "ai_category": stmt.excluded.ai_category,
                "ai_confidence": stmt.excluded.ai_confidence,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self._session() as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("message_upserted", message_id=message.id)

    async def message_exists(self, message_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                select(EmailRecord.id).where(EmailRecord.message_id == message_id).limit(1)
            )
            return result.first() is not None

    async def get_message(self, message_id: str) -> Message | None:
        async with self._session() as session:
            result = await session.execute(
                select(EmailRecord).where(EmailRecord.message_id == message_id)
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        account_name = await self._account_name(row.account_id)
        return Message(
            id=row.message_id,
            account_id=row.account_id,
            account_name=account_name,
            folder=row.folder,
            uid=row.uid,
            subject=row.subject,
            from_email=row.from_email,
            from_name=row.from_name,
            to_emails=row.to_emails,
            cc_emails=row.cc_emails,
            bcc_emails=row.bcc_emails,
            date=_aware(row.date),
            received_date=_aware(row.received_date),
            size=row.size,
            flags=row.flags,
            body_text=row.body_text,
            body_html=row.body_html,
            attachments=[AttachmentMeta.model_validate(a) for a in row.attachments],
            ai_category=Category(row.ai_category) if row.ai_category else None,
            ai_confidence=row.ai_confidence,
            is_read=row.is_read,
            is_important=row.is_important,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )

    async def _account_name(self, account_id: int) -> str:
        async with self._session() as session:
            name = await session.scalar(
                select(EmailAccountRecord.name).where(EmailAccountRecord.id == account_id)
            )
        return name or ""

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.warning("store_ping_failed", error=str(exc))
            return False
