"""Identity data models for PrepDeck users.

Provides the SQLAlchemy model for durable user records. An identity is keyed by a ULID guid and
by a unique, lower-cased email address.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from prepdeck.auth.model.base import Base, as_utc, guidpk, str320, str128


class Identity(Base):
    """User identity with optional password credential and Google linkage.

    Identities created through Google sign-in have no password hash and can only authenticate
    through the federated bridge.
    """

    __tablename__ = "identities"

    guid: Mapped[guidpk]
    email: Mapped[str320]
    name: Mapped[str128]
    password_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    federated_subject: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("idx_identities_email", "email", unique=True),
        Index("idx_identities_federated_subject", "federated_subject", unique=True),
    )

    def public_view(self) -> Dict[str, Any]:
        """Projection that is safe to return to clients; never includes the password hash."""
        created_at = as_utc(self.created_at)
        return {
            "id": self.guid,
            "email": self.email,
            "name": self.name,
            "isVerified": self.is_verified,
            "createdAt": created_at.isoformat() if created_at else None,
        }
