"""Refresh session data models.

A refresh session maps an opaque refresh token to the identity that owns it and to the instant
it stops being exchangeable. Rows are replaced on rotation and deleted on sign-out.
"""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from prepdeck.auth.model.base import Base


class RefreshSession(Base):
    """Server-side record for a single refresh token."""

    __tablename__ = "refresh_sessions"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    guid: Mapped[str] = mapped_column(
        String(512), ForeignKey("identities.guid", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("idx_refresh_sessions_guid", "guid"),
        Index("idx_refresh_sessions_expires", "expires_at"),
    )
