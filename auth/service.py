"""
auth/service.py -- AuthService: the login / signup / verification / reset flows.

Each public method is a short linear pipeline. The first failing step raises
an AuthError subclass and nothing after it runs; in particular a failed
password check never creates a session record. Steps are strictly
sequential: every store write is committed before the next step starts.

Not transactional across steps (matches the deployed behaviour):
  signup -- the identity and its default role are committed before the
       verification mail is sent. If the mail fails the caller gets a 500 and
       the identity stays; POST /resend-verification is the recovery path.

Action tokens are not single-use. A verification or reset link keeps working
until it expires. Re-consuming a verification link is harmless (the flag is
already True); a reset link can set the password again, which is why a reset
also revokes the user's live sessions when REVOKE_SESSIONS_ON_PASSWORD_RESET
is on.

Password hashing runs bcrypt, which is CPU-bound. Route handlers calling this
service are plain `def` functions, so FastAPI runs them in its thread pool
and a slow hash never blocks the event loop.

Layer rule: no imports from api/. Routes translate HTTP into these calls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import AuthenticationError, ConflictError, MailError, NotFoundError, ValidationError
from auth.mailer import Mailer, password_reset_message, verification_message
from auth.models import Role, User
from auth.passwords import dummy_hash, hash_password, verify_password
from auth.roles import RoleStore
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenCodec, TokenError, TokenKind
from core.config import Settings

logger = logging.getLogger("sessiongate.auth")

# Profile fields a user may change about themselves via PUT /user.
_PROFILE_FIELDS = ("username", "email", "name", "phone_number")


class AuthService:
    """Composes the stores, token codec, hasher, and mailer.

    One instance lives on app.state for the life of the process. It holds no
    per-request state.
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        roles: RoleStore,
        tokens: TokenCodec,
        mailer: Mailer,
        settings: Settings,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.roles = roles
        self.tokens = tokens
        self.mailer = mailer
        self.settings = settings

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, identifier: str, password: str, by_email: bool = False) -> str:
        """Verify credentials, then issue and record a session token.

        Runs bcrypt whether or not the account exists so response time does
        not reveal which usernames are registered. Unknown user and wrong
        password produce the same error.
        """
        if not identifier or not password:
            raise ValidationError("Username and password are required")

        user = self.users.get_by_email(identifier) if by_email else self.users.get_by_username(identifier)
        if user is None:
            verify_password(password, dummy_hash())
            logger.info("Login failed: unknown account %r", identifier)
            raise AuthenticationError("Invalid username or password")
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed: bad password for user_id=%s", user.id)
            raise AuthenticationError("Invalid username or password")

        issued = datetime.now(timezone.utc)
        token = self.tokens.issue_session_token(user.id, user.username, user.email_verified, now=issued)
        self.sessions.create(token, user.id, expires_at=issued + timedelta(seconds=self.tokens.session_ttl))
        logger.info("Login succeeded for user_id=%s", user.id)
        return token

    def logout(self, token: str, user_id: int) -> bool:
        """Revoke the presented session token. Idempotent."""
        revoked = self.sessions.revoke(token, user_id)
        logger.info("Logout user_id=%s (revoked=%s)", user_id, revoked)
        return revoked

    def logout_all(self, user_id: int) -> int:
        count = self.sessions.revoke_all_for_user(user_id)
        logger.info("Revoked %d session(s) for user_id=%s", count, user_id)
        return count

    # ------------------------------------------------------------------
    # Signup and email verification
    # ------------------------------------------------------------------

    def signup(self, username: str, email: str, password: str, accepted_terms: bool = True) -> User:
        if not username or not email or not password:
            raise ValidationError("Username, email and password are required")
        if self.users.get_by_email(email) is not None:
            raise ConflictError("User already registered")

        user_id = self.users.create_user(
            User(
                username=username,
                email=email,
                hashed_password=hash_password(password),
                email_verified=False,
                accepted_terms=accepted_terms,
            )
        )
        role = self.roles.ensure_roles([self.settings.default_role])[0]
        self.roles.assign(user_id, role.id)
        user = self._require_user(user_id)
        logger.info("Registered user_id=%s", user_id)

        try:
            self._send_verification(user)
        except MailError:
            logger.warning("Verification mail failed after signup; user_id=%s kept unverified", user_id)
            raise
        return user

    def resend_verification(self, email: str) -> None:
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        if user.email_verified:
            raise ValidationError("User is already verified")
        self._send_verification(user)

    def verify_email(self, token: str) -> User:
        """Consume a verify-email token and mark the matching identity verified.

        The (user_id, email) pair in the token must still match the stored
        identity, so a link minted before an email change is rejected.
        """
        try:
            claims = self.tokens.verify_action_token(token, TokenKind.VERIFY_EMAIL)
        except TokenError as exc:
            logger.info("Verification link rejected: %s (%s)", type(exc).__name__, exc.detail)
            raise ValidationError("Invalid or expired verification link", detail=exc.message) from exc

        user = self.users.get_by_id_and_email(claims["user_id"], claims["email"])
        if user is None:
            raise ValidationError("Invalid verification link")
        if not user.email_verified:
            self.users.update_user(user.id, email_verified=True)
            user.email_verified = True
        logger.info("Email verified for user_id=%s", user.id)
        return user

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> None:
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        token = self.tokens.issue_action_token(
            TokenKind.RESET_PASSWORD, {"user_id": user.id, "username": user.username}
        )
        subject, body = password_reset_message(f"{self.settings.base_url}/reset-password/{token}")
        self.mailer.send(user.email, subject, body)

    def reset_password(self, token: str, new_password: str) -> None:
        try:
            claims = self.tokens.verify_action_token(token, TokenKind.RESET_PASSWORD)
        except TokenError as exc:
            logger.info("Reset link rejected: %s (%s)", type(exc).__name__, exc.detail)
            raise ValidationError("Invalid or expired token", detail=exc.message) from exc

        user = self.users.get_by_id_and_username(claims["user_id"], claims["username"])
        if user is None:
            raise ValidationError("Invalid or expired token")
        if not new_password:
            raise ValidationError("New password is required")

        self.users.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("Password reset for user_id=%s", user.id)
        if self.settings.revoke_sessions_on_password_reset:
            self.logout_all(user.id)

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self._require_user(user_id)
        if not verify_password(current_password, user.hashed_password):
            raise ValidationError("Current password is incorrect")
        if not new_password:
            raise ValidationError("New password is required")
        self.users.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("Password changed for user_id=%s", user.id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int) -> User:
        return self._require_user(user_id)

    def update_profile(self, user_id: int, **changes) -> User:
        """Apply the non-empty profile fields in changes.

        A new email address is unverified: email_verified drops to False and
        the user must consume a fresh verification link.
        """
        user = self._require_user(user_id)
        updates = {k: v for k, v in changes.items() if k in _PROFILE_FIELDS and v}
        if "email" in updates and updates["email"] != user.email:
            updates["email_verified"] = False
        elif "email" in updates:
            del updates["email"]
        if updates:
            self.users.update_user(user_id, **updates)
        return self._require_user(user_id)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, name: str, description: str | None = None) -> Role:
        if not name:
            raise ValidationError("Role Name is required")
        role = self.roles.create(name, description)
        logger.info("Created role %r (id=%s)", role.name, role.id)
        return role

    def assign_role(self, user_id: int, role_id: int) -> None:
        self.roles.assign(user_id, role_id)
        logger.info("Assigned role_id=%s to user_id=%s", role_id, user_id)

    def get_user_roles(self, user_id: int) -> list[str]:
        return self.roles.roles_of(user_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_user(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _send_verification(self, user: User) -> None:
        token = self.tokens.issue_action_token(TokenKind.VERIFY_EMAIL, {"user_id": user.id, "email": user.email})
        subject, body = verification_message(f"{self.settings.base_url}/verification/{token}")
        self.mailer.send(user.email, subject, body)
