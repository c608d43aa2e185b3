from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, String, text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chat_sync.infrastructure.db.base import Base


class ConversationModel(Base):
    __tablename__ = "conversations"

    # direct: "<uid>_<uid>" (sorted), group: "group_<hex>"
    id: Mapped[str] = mapped_column(String(300), primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="direct")
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    last_sequence: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )

    participants = relationship("ParticipantModel", back_populates="conversation", lazy="selectin")
    messages = relationship("MessageModel", back_populates="conversation", lazy="noload")

    __table_args__ = (
        CheckConstraint("last_sequence >= 0", name="ck_conversations_sequence_non_negative"),
    )
