from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Owner of the thread: the student/guest for student threads, the referral
    # user for referral threads, otherwise the staff sender.
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    sender: Mapped[str] = mapped_column(String(50), nullable=False)
    sender_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    recipient_role: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    conversation_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Originating side (student / guest / referral user).
    is_read: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=False)
    student_read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Staff side.
    counselor_is_read: Mapped[bool | None] = mapped_column(
        Boolean, nullable=True, default=False, index=True
    )
    counselor_read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    # Set only on legacy soft-deleted rows; excluded from every read path.
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sender_user: Mapped["User | None"] = relationship(  # noqa: F821
        "User", foreign_keys=[sender_id], lazy="joined"
    )
    recipient_user: Mapped["User | None"] = relationship(  # noqa: F821
        "User", foreign_keys=[recipient_id], lazy="joined"
    )

    __table_args__ = (
        Index("ix_messages_user_id_created_at", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Message id={self.id} sender={self.sender!r} sender_id={self.sender_id} "
            f"recipient_role={self.recipient_role!r} recipient_id={self.recipient_id}>"
        )
