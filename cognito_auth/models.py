"""
SQLAlchemy model for the local user record bound to a Cognito identity.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class LocalUser(Base):
    """email, cognito_sub and email_verified are written once, at auto-provisioning."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Unique at the storage layer: this is what makes find-or-create atomic
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    cognito_sub: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "cognitoSub": self.cognito_sub,
            "emailVerified": self.email_verified,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
