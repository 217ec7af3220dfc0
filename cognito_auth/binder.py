"""
Bind a verified Cognito identity to a local user, creating the user on first login.
"""
import logging

from cognito_auth.errors import DuplicateUser, MissingEmail
from cognito_auth.models import LocalUser
from cognito_auth.store import UserStore
from cognito_auth.tokens import ExternalIdentity

logger = logging.getLogger(__name__)


class IdentityBinder:
    def __init__(self, store: UserStore):
        self.store = store

    def resolve(self, identity: ExternalIdentity) -> LocalUser:
        """
        Find the user by exact email, or create it from the identity.
        Existing users are returned as stored; repeat logins never update them.
        Two concurrent first logins for one email: the loser of the insert race
        hits the unique constraint and returns the winner's row.
        """
        if not identity.email:
            raise MissingEmail(f"Identity {identity.subject} has no email claim")

        user = self.store.find_by_email(identity.email)
        if user is not None:
            return user

        try:
            user = self.store.create(
                email=identity.email,
                cognito_sub=identity.subject,
                email_verified=identity.email_verified,
            )
        except DuplicateUser:
            user = self.store.find_by_email(identity.email)
            if user is None:
                raise
            logger.debug("Concurrent first login for %s; using existing user id=%s", identity.email, user.id)
            return user

        logger.info("Provisioned local user id=%s for sub=%s", user.id, identity.subject)
        return user
