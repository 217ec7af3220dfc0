"""
Local user store: lookup by email and insert. Each call runs in its own short session.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from cognito_auth.errors import DuplicateUser
from cognito_auth.models import LocalUser

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def find_by_email(self, email: str) -> LocalUser | None:
        with self.session_factory() as db:
            return db.scalars(select(LocalUser).where(LocalUser.email == email).limit(1)).first()

    def create(self, *, email: str, cognito_sub: str | None, email_verified: bool = False) -> LocalUser:
        """Insert a user. Raises DuplicateUser if the email is already taken (unique constraint)."""
        with self.session_factory() as db:
            user = LocalUser(email=email, cognito_sub=cognito_sub, email_verified=email_verified)
            db.add(user)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise DuplicateUser(f"User with email {email!r} already exists") from e
            db.refresh(user)
            return user
