from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ConversationDeletion(Base):
    """Per-user visibility cutoff for one conversation. Never hard-deleted."""

    __tablename__ = "message_conversation_deletions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "conversation_id", name="mcd_user_conversation_unique"),
        Index("mcd_user_deleted_at_idx", "user_id", "deleted_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ConversationDeletion user_id={self.user_id} "
            f"conversation_id={self.conversation_id!r} deleted_at={self.deleted_at}>"
        )
