# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐      ┌──────────────────────┐
# │  documents       │      │  document_texts      │
# ├──────────────────┤      ├──────────────────────┤
# │ id (PK)          │─1:1─▶│ document_id (PK, FK) │
# │ owner_id         │      │ extracted_text       │
# │ name             │      │ language             │
# │ size             │      │ page_count           │
# │ storage_path     │      │ referenced_documents │
# │ status           │      └──────────────────────┘
# │ language         │      ┌──────────────────────┐
# │ error_message    │─1:N─▶│  analyses            │
# │ analysis_id      │      │ india_law_score ...  │
# └──────────────────┘      └──────────────────────┘
#          │                ┌──────────────────────┐     ┌────────────────┐
#          └──────────1:1──▶│  qa_sessions         │─1:N▶│ chat_messages  │
#                           │ (document_id, owner) │     │ position, role │
#                           └──────────────────────┘     └────────────────┘
#
# DESIGN DECISIONS:
#
# 1. Opaque string ids (uuid4 hex). Clients treat them as tokens.
#
# 2. owner_id on every owned table. The store filters and checks it on
#    every read and write; no query is ever issued without it.
#
# 3. JSON columns for the analysis payload (risks, recommendations,
#    category scores). They are written once and read whole. On PostgreSQL
#    they are JSONB; on SQLite (tests) plain JSON.
#
# 4. Chat messages are rows, not a JSON array on the session, so an
#    append is an INSERT and existing messages are never rewritten.
# =============================================================================

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, JSON everywhere else
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return uuid.uuid4().hex


# Python-side timestamps: loaded objects outlive their session
# (expire_on_commit=False), so every value must be known at flush time.
def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class DocumentStatus(str, enum.Enum):
    """
    Tracks the processing pipeline state for a document.

    State machine:
        PROCESSING → EXTRACTED → COMPLETED
             │            │
             └────────────┴──→ ERROR

    COMPLETED and ERROR are terminal for the upload pipeline.
    """

    PROCESSING = "processing"  # Stored, waiting for / running extraction
    EXTRACTED = "extracted"    # Text persisted, analysis running
    COMPLETED = "completed"    # Analysis persisted
    ERROR = "error"            # Something went wrong (see error_message)


class RiskLevel(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Document(Base):
    """
    An uploaded file plus its processing status and metadata.

    Mutated only by the lifecycle manager. `owner_id` is set at creation
    and never changes.
    """

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # Original filename as uploaded by the user (e.g., "vendor_agreement.pdf")
    name: Mapped[str] = mapped_column(String(500), nullable=False)

    # File size in bytes
    size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Blob store path: users/{owner}/uploads/{timestamp}-{name}
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        Enum(
            DocumentStatus,
            values_callable=_enum_values,
            native_enum=False,
            length=20,
        ),
        nullable=False,
        default=DocumentStatus.PROCESSING,
    )

    # Detected language, known once extraction succeeds
    language: Mapped[str | None] = mapped_column(String(16), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Most recent analysis (re-analysis moves this forward)
    analysis_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name='{self.name}', status={self.status})>"


class DocumentText(Base):
    """Text extracted from a document. Exists only if extraction succeeded."""

    __tablename__ = "document_texts"

    document_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("documents.id", ondelete="CASCADE"),
        primary_key=True,
    )
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    extracted_text: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(16), nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Names of other documents the text refers to ("GCC", "Safety Manual")
    referenced_documents: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
    )

    extracted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class Analysis(Base):
    """
    One compliance analysis run for a document.

    Re-analysis inserts a new row; existing rows are never updated.
    The JSON columns hold the wire (camelCase) shape of each item.
    """

    __tablename__ = "analyses"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    document_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # 0–100, see app.agents.compliance.compute_compliance_score
    india_law_score: Mapped[int] = mapped_column(Integer, nullable=False)

    # {"high": int, "medium": int, "low": int}; sums to len(risks)
    risk_summary: Mapped[dict] = mapped_column(JSONType, nullable=False)

    # [{"category": "GST", "score": 80}, ...]
    category_scores: Mapped[list] = mapped_column(JSONType, nullable=False)

    risks: Mapped[list] = mapped_column(JSONType, nullable=False)
    recommendations: Mapped[list] = mapped_column(JSONType, nullable=False)
    knowledge_base_citations: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list,
    )

    # Wall-clock time of the analysis step
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    model: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Analysis(id={self.id}, doc_id={self.document_id}, "
            f"score={self.india_law_score})>"
        )


class QASession(Base):
    """The question/answer transcript of one user on one document."""

    __tablename__ = "qa_sessions"
    __table_args__ = (
        UniqueConstraint("document_id", "owner_id", name="uq_qa_session_document_owner"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    document_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # lazy="selectin": sessions are always returned with their messages
    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ChatMessage.position",
    )


class ChatMessage(Base):
    """A single immutable message in a Q&A session."""

    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("qa_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )

    # 0-based order within the session
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    role: Mapped[MessageRole] = mapped_column(
        Enum(MessageRole, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(16), nullable=False)
    citations: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    session: Mapped["QASession"] = relationship("QASession", back_populates="messages")


# =============================================================================
# Authentication
# =============================================================================
#
# api_keys: Bearer token credentials. Each key belongs to exactly one user;
# the user id becomes the owner of everything created with the key.
#
# DESIGN DECISION: SHA-256 for key hashing (not bcrypt). API keys are
# 32-byte random tokens; too much entropy for rainbow tables.
# =============================================================================


class ApiKey(Base):
    """An API key authenticating requests on behalf of one user."""

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Human-readable label (e.g., "web-client")
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Owner identity used for all record scoping
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # First 8 chars of the key for identification in logs
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    # SHA-256 hash of the full key; plaintext is never stored
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ApiKey(id={self.id}, name='{self.name}', "
            f"prefix='{self.key_prefix}', active={self.is_active})>"
        )


# =============================================================================
# Indexes
# =============================================================================

# GET /api/documents: owner's documents, newest first
document_owner_uploaded_idx = Index(
    "idx_document_owner_uploaded",
    Document.owner_id,
    Document.uploaded_at,
)

# Latest analysis for a document
analysis_document_created_idx = Index(
    "idx_analysis_document_created",
    Analysis.document_id,
    Analysis.created_at,
)

chat_message_session_position_idx = Index(
    "idx_chat_message_session_position",
    ChatMessage.session_id,
    ChatMessage.position,
    unique=True,
)
