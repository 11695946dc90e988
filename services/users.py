"""
services/users.py -- Authentication, registration, profile, and refresh tokens.

UserService extends BaseService[User] with the account lifecycle:

  authenticate      email + password -> JWT + new refresh token
  refresh_token     rotate a refresh token (single use) -> JWT + successor
  revoke_token      revoke a refresh token without a successor
  create_user       register; email must be unused among active users
  update_user       replace-with-cascade (see below)
  delete_user       physical delete with its tokens and workspaces
  get_user_by_id / get_users / is_email_used / get_active_user_by_email

Every method validates first (core.validation.Validator) and raises
core.errors exceptions; none return error codes.

Refresh token rotation:
  The presented token is revoked with a conditional UPDATE
  (WHERE revoked_at IS NULL) inside the same transaction that inserts its
  successor. Two concurrent rotations of one token cannot both succeed --
  the loser sees rowcount 0 and gets NotFoundError. Presenting an already
  rotated token is indistinguishable from presenting an unknown one, unless
  revoke_chain_on_reuse is on, in which case the whole descendant chain is
  revoked too.

Replace-with-cascade (update_user):
  The user row is not updated in place. One transaction loads the old row
  with its tokens, deletes it, inserts a replacement that merges the new
  email/password over the old values, then re-points refresh tokens and
  workspaces at the new id. Any failure rolls the whole sequence back, and
  the deferred foreign keys refuse a commit that leaves a dependent pointing
  at the deleted row.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.tokens import (
    MAX_PASSWORD_BYTES,
    create_access_token,
    generate_refresh_token,
    hash_password,
    verify_credentials,
    verify_password,
)
from core.config import get_settings
from core.errors import BadRequestError, ConflictError, InternalServerError, NotFoundError
from core.models import EMAIL_PATTERN, AuthResult, RefreshToken, User, utcnow_iso
from core.validation import Validator
from db import schema
from db.context import DataContext
from services.base import BaseService

logger = logging.getLogger("taledynamic.users")

_users = schema.users
_tokens = schema.refresh_tokens
_workspaces = schema.workspaces


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _check_password_length(v: Validator, password: str) -> None:
    v.check(len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES, "Password is too long.")


class UserService(BaseService[User]):
    def __init__(self, context: DataContext, revoke_chain_on_reuse: Optional[bool] = None) -> None:
        super().__init__(context, context.users)
        if revoke_chain_on_reuse is None:
            revoke_chain_on_reuse = get_settings().revoke_chain_on_reuse
        self.revoke_chain_on_reuse = revoke_chain_on_reuse

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str, ip_address: str) -> AuthResult:
        """Log in with email and password.

        Raises NotFoundError for an unknown email, a wrong password, or an
        inactive account -- the three cases are deliberately indistinguishable.
        """
        v = Validator()
        v.require(email, "Email is not set.")
        v.require(password, "Password is not set.")
        v.raise_if_invalid()

        email = normalize_email(email)
        with self.context.connect() as conn:
            user = self.repository.find_one(conn, _users.c.email == email, active_only=True)
        if not verify_credentials(user, password):
            logger.info("Authentication failed for %s from %s", email, ip_address)
            raise NotFoundError("User is not found.")

        refresh = generate_refresh_token(ip_address)
        refresh.user_id = user.id
        with self.context.transaction() as conn:
            self.context.refresh_tokens.insert(conn, refresh)
            user.refresh_tokens = self._load_tokens(conn, user.id)

        logger.info("User %d authenticated from %s", user.id, ip_address)
        return AuthResult(
            user=user,
            jwt_token=create_access_token(user.id, user.email),
            refresh_token=refresh.token,
        )

    def refresh_token(self, token: str, ip_address: str) -> AuthResult:
        """Exchange a refresh token for a JWT and a successor token.

        Raises NotFoundError without changing anything when the token is
        unknown, revoked, expired, or owned by an inactive user.
        """
        v = Validator()
        v.require(token, "Token is not set.")
        v.raise_if_invalid()

        replacement: Optional[RefreshToken] = None
        with self.context.transaction() as conn:
            user, current = self._find_token_owner(conn, token)
            if current.is_active:
                candidate = generate_refresh_token(ip_address)
                candidate.user_id = user.id
                if self._revoke(conn, current, ip_address, replaced_by=candidate.token):
                    self.context.refresh_tokens.insert(conn, candidate)
                    replacement = candidate
            elif self.revoke_chain_on_reuse and current.replaced_by_token:
                self._revoke_descendants(conn, current, ip_address)
            if replacement is not None:
                user.refresh_tokens = self._load_tokens(conn, user.id)

        if replacement is None:
            logger.info("Refresh rejected: token for user %d is not active", user.id)
            raise NotFoundError("Token is not active.")

        logger.info("Refresh token rotated for user %d from %s", user.id, ip_address)
        return AuthResult(
            user=user,
            jwt_token=create_access_token(user.id, user.email),
            refresh_token=replacement.token,
        )

    def revoke_token(self, token: str, ip_address: str) -> bool:
        """Revoke a refresh token without issuing a successor.

        Returns True on success. Raises NotFoundError when the token is
        unknown or already inactive.
        """
        v = Validator()
        v.require(token, "Token is not set.")
        v.raise_if_invalid()

        with self.context.transaction() as conn:
            user, current = self._find_token_owner(conn, token)
            revoked = current.is_active and self._revoke(conn, current, ip_address)

        if not revoked:
            raise NotFoundError("Token is not active.")
        logger.info("Refresh token revoked for user %d from %s", user.id, ip_address)
        return True

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def create_user(self, email: str, password: str, confirm_password: str, ip_address: str = "") -> User:
        """Register a new active user with an initial refresh token.

        Raises ConflictError (a BadRequestError) if an active user already
        holds the email; nothing is inserted in that case.
        """
        v = Validator()
        if v.require(email, "Email is not set."):
            v.check(re.match(EMAIL_PATTERN, email.strip()) is not None, "Email is not valid.")
        if v.require(password, "Password is not set.") and v.require(confirm_password, "Password is not confirmed."):
            v.check(password == confirm_password, "Passwords do not match.")
            _check_password_length(v, password)
        v.raise_if_invalid()

        email = normalize_email(email)
        user = User(email=email, hashed_password=hash_password(password))
        try:
            with self.context.transaction() as conn:
                if self.repository.count(conn, _users.c.email == email, active_only=True):
                    raise ConflictError("User with the same email already exists.")
                user_id = self.repository.insert(conn, user)
                initial = generate_refresh_token(ip_address)
                initial.user_id = user_id
                self.context.refresh_tokens.insert(conn, initial)
                created = self.repository.get(conn, user_id)
                if created is None:
                    raise InternalServerError("User not found after write.")
                created.refresh_tokens = self._load_tokens(conn, user_id)
        except IntegrityError as exc:
            # A concurrent registration won the partial unique index.
            raise ConflictError("User with the same email already exists.") from exc

        logger.info("User %d created", created.id)
        return created

    def update_user(
        self,
        user_id: int,
        email: Optional[str] = None,
        password: Optional[str] = None,
        confirm_password: Optional[str] = None,
        current_password: Optional[str] = None,
    ) -> User:
        """Change email and/or password by replacing the user row.

        Fields left as None keep their old values. When current_password is
        given it must match the stored hash. Returns the replacement user,
        which has a new id; refresh tokens and workspaces follow it.
        """
        v = Validator()
        v.require(user_id, "UserId is default.")
        v.check(bool(email) or bool(password), "Email or password must be set.")
        if email:
            v.check(re.match(EMAIL_PATTERN, email.strip()) is not None, "Email is not valid.")
        if password:
            v.check(password == confirm_password, "Passwords do not match.")
            _check_password_length(v, password)
        v.raise_if_invalid()

        new_hash = hash_password(password) if password else None
        try:
            with self.context.transaction() as conn:
                # (a) load the old user with its refresh tokens
                old = self.repository.get(conn, user_id, active_only=True)
                if old is None:
                    raise NotFoundError("User is not found.")
                if current_password is not None and not verify_password(current_password, old.hashed_password):
                    raise BadRequestError("Current password is incorrect.")
                new_email = normalize_email(email) if email else old.email
                if new_email != old.email and self.repository.count(
                    conn, _users.c.email == new_email, _users.c.id != old.id, active_only=True
                ):
                    raise ConflictError("User with the same email already exists.")
                old.refresh_tokens = self._load_tokens(conn, old.id)

                # (b) detach the dependents
                detached, old.refresh_tokens = old.refresh_tokens, []

                # (c) delete the old row
                self.repository.delete(conn, old.id)

                # (d) build the replacement, merging only the provided fields
                replacement = User(
                    email=new_email,
                    hashed_password=new_hash or old.hashed_password,
                    is_active=True,
                    created_at=old.created_at,
                    refresh_tokens=detached,
                )

                # (e) insert it
                new_id = self.repository.insert(conn, replacement)

                # (f) re-point tokens and workspaces at the new row
                self._reattach_tokens(conn, old.id, new_id)
                moved = self._reassign_workspaces(conn, old.id, new_id)

                updated = self.repository.get(conn, new_id)
                if updated is None:
                    raise InternalServerError("User not found after write.")
                updated.refresh_tokens = self._load_tokens(conn, new_id)
        except IntegrityError as exc:
            # A concurrent update or registration took the new email first.
            raise ConflictError("User with the same email already exists.") from exc
        # (g) committed

        logger.info("User %d replaced by %d (%d workspaces moved)", old.id, new_id, moved)
        return updated

    def delete_user(self, user_id: int) -> bool:
        """Physically delete a user with its refresh tokens and workspaces.

        Returns False if the user did not exist.
        """
        v = Validator()
        v.require(user_id, "UserId is default.")
        v.raise_if_invalid()

        deleted = self.delete(user_id)
        if deleted:
            logger.info("User %d deleted", user_id)
        return deleted

    def deactivate_user(self, user_id: int) -> None:
        """Soft-delete a user and revoke every refresh token still active."""
        v = Validator()
        v.require(user_id, "UserId is default.")
        v.raise_if_invalid()

        with self.context.transaction() as conn:
            if not self.repository.update(conn, user_id, is_active=False):
                raise NotFoundError("User is not found.")
            for token in self._load_tokens(conn, user_id):
                if token.is_active:
                    self._revoke(conn, token, "")
        logger.info("User %d deactivated", user_id)

    # ------------------------------------------------------------------
    # Queries (active users only)
    # ------------------------------------------------------------------

    def get_user_by_id(self, user_id: int) -> User:
        v = Validator()
        v.require(user_id, "UserId is default.")
        v.raise_if_invalid()

        with self.context.connect() as conn:
            user = self.repository.get(conn, user_id, active_only=True)
        if user is None:
            raise NotFoundError("User is not found.")
        return user

    def get_users(self) -> list[User]:
        with self.context.connect() as conn:
            return self.repository.find_all(conn, active_only=True)

    def is_email_used(self, email: str) -> bool:
        """Return True if an active user holds this email. Read-only."""
        v = Validator()
        v.require(email, "Email is not set.")
        v.raise_if_invalid()

        with self.context.connect() as conn:
            return self.repository.count(conn, _users.c.email == normalize_email(email), active_only=True) > 0

    def get_active_user_by_email(self, email: str) -> User:
        v = Validator()
        v.require(email, "Email is not set.")
        v.raise_if_invalid()

        with self.context.connect() as conn:
            user = self.repository.find_one(conn, _users.c.email == normalize_email(email), active_only=True)
        if user is None:
            raise NotFoundError("User is not found.")
        return user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _delete_dependents(self, conn: Connection, entity_id: int) -> None:
        self.context.refresh_tokens.delete_where(conn, _tokens.c.user_id == entity_id)
        self.context.workspaces.delete_where(conn, _workspaces.c.user_id == entity_id)

    def _load_tokens(self, conn: Connection, user_id: int) -> list[RefreshToken]:
        return self.context.refresh_tokens.find_all(conn, _tokens.c.user_id == user_id)

    def _find_token_owner(self, conn: Connection, token: str) -> tuple[User, RefreshToken]:
        """Look up a refresh token by value and its active owner.

        O(1) through the unique index on refresh_tokens.token.
        """
        current = self.context.refresh_tokens.find_one(conn, _tokens.c.token == token)
        user = self.repository.get(conn, current.user_id, active_only=True) if current else None
        if current is None or user is None:
            raise NotFoundError("User with token is not found.")
        return user, current

    def _revoke(
        self,
        conn: Connection,
        token: RefreshToken,
        ip_address: str,
        replaced_by: Optional[str] = None,
    ) -> bool:
        """Mark a token revoked. Returns False if another request got there first."""
        values: dict = {"revoked_at": utcnow_iso(), "revoked_by_ip": ip_address}
        if replaced_by is not None:
            values["replaced_by_token"] = replaced_by
        touched = self.context.refresh_tokens.update_where(
            conn,
            _tokens.c.id == token.id,
            _tokens.c.revoked_at.is_(None),
            **values,
        )
        return touched == 1

    def _revoke_descendants(self, conn: Connection, reused: RefreshToken, ip_address: str) -> int:
        """Revoke every still-active token that descends from a reused one."""
        revoked = 0
        seen: set[str] = set()
        next_value = reused.replaced_by_token
        while next_value and next_value not in seen:
            seen.add(next_value)
            child = self.context.refresh_tokens.find_one(conn, _tokens.c.token == next_value)
            if child is None:
                break
            if child.is_active and self._revoke(conn, child, ip_address):
                revoked += 1
            next_value = child.replaced_by_token
        logger.warning(
            "Reuse of rotated refresh token %d from %s; revoked %d descendant(s)",
            reused.id,
            ip_address,
            revoked,
        )
        return revoked

    def _reattach_tokens(self, conn: Connection, old_id: int, new_id: int) -> int:
        return self.context.refresh_tokens.update_where(conn, _tokens.c.user_id == old_id, user_id=new_id)

    def _reassign_workspaces(self, conn: Connection, old_id: int, new_id: int) -> int:
        return self.context.workspaces.update_where(conn, _workspaces.c.user_id == old_id, user_id=new_id)
