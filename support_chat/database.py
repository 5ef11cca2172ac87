"""Support Chat — transcript store on SQLAlchemy.

Conversations and their messages live in two tables. Messages reference their
conversation with a cascading foreign key, and are always read back in
creation order (created_at, then insertion id as a tiebreak).
"""

from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import UnknownConversation
from .models import Message, Sender

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DBConversation(Base):
    __tablename__ = "conversations"
    # AUTOINCREMENT: ids of deleted conversations are never handed out again.
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    messages = relationship(
        "DBMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DBMessage(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("sender IN ('user', 'assistant')", name="ck_messages_sender"),
        Index("idx_messages_conversation_id", "conversation_id"),
        Index("idx_messages_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender = Column(Text, nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    conversation = relationship("DBConversation", back_populates="messages")


def create_db_engine(database_url: str) -> Engine:
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database.
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def _to_message(row: DBMessage) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender=Sender(row.sender),
        text=row.text,
        created_at=row.created_at,
    )


class TranscriptStore:
    """Durable ordered log of conversations, keyed by conversation id."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def create_conversation(self) -> int:
        db = self._session_factory()
        try:
            conversation = DBConversation()
            db.add(conversation)
            db.commit()
            return conversation.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def append_message(self, conversation_id: int, sender: Sender, text: str) -> Message:
        if not text:
            raise ValueError("Message text must not be empty")
        db = self._session_factory()
        try:
            conversation = db.get(DBConversation, conversation_id)
            if conversation is None:
                raise UnknownConversation(conversation_id)
            now = _utcnow()
            row = DBMessage(
                conversation_id=conversation_id,
                sender=Sender(sender).value,
                text=text,
                created_at=now,
            )
            db.add(row)
            conversation.updated_at = now
            db.commit()
            db.refresh(row)
            return _to_message(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_messages(self, conversation_id: int) -> List[Message]:
        db = self._session_factory()
        try:
            if db.get(DBConversation, conversation_id) is None:
                raise UnknownConversation(conversation_id)
            rows = (
                db.query(DBMessage)
                .filter(DBMessage.conversation_id == conversation_id)
                .order_by(DBMessage.created_at.asc(), DBMessage.id.asc())
                .all()
            )
            return [_to_message(row) for row in rows]
        finally:
            db.close()

    def conversation_exists(self, conversation_id: int) -> bool:
        db = self._session_factory()
        try:
            return db.get(DBConversation, conversation_id) is not None
        finally:
            db.close()

    def delete_conversation(self, conversation_id: int) -> bool:
        """Remove a conversation and all of its messages."""
        db = self._session_factory()
        try:
            conversation = db.get(DBConversation, conversation_id)
            if conversation is None:
                return False
            db.delete(conversation)
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
