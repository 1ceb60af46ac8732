# Auth provider: email/password accounts, Google sign-in and bearer tokens that stay valid until sign-out.
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quizhub.errors import AuthError, AuthFailure
from quizhub.models import Account, AuthSession, utcnow
from quizhub.security import (
    generate_salt,
    generate_session_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger("quizhub.auth")

MIN_PASSWORD_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

GoogleVerifier = Callable[[str], Dict[str, Any]]


@dataclass(frozen=True)
class Identity:
    uid: str
    display_name: Optional[str]
    email: Optional[str]


@dataclass(frozen=True)
class SignInResult:
    identity: Identity
    token: str


# Verifies Google ID tokens and returns their claims.
class GoogleTokenVerifier:

    def __init__(self, client_id: Optional[str] = None) -> None:
        self.client_id = client_id
        self._request = google_requests.Request()

    def __call__(self, token: str) -> Dict[str, Any]:
        # Raises ValueError for expired, malformed or foreign tokens.
        return google_id_token.verify_oauth2_token(token, self._request, self.client_id)


def _identity(account: Account) -> Identity:
    return Identity(uid=account.id, display_name=account.display_name, email=account.email)


def _normalize_email(email: str) -> str:
    cleaned = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(cleaned):
        raise AuthError(AuthFailure.INVALID_EMAIL)
    return cleaned


class AuthProvider:
    def __init__(
        self,
        session_factory: sessionmaker,
        google_verifier: Optional[GoogleVerifier] = None,
    ) -> None:
        self._session_factory = session_factory
        self.google_verifier = google_verifier or GoogleTokenVerifier()

    def create_user_with_email(
        self, email: str, password: str, display_name: Optional[str] = None
    ) -> SignInResult:
        address = _normalize_email(email)
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(
                AuthFailure.WEAK_PASSWORD,
                f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            )
        salt = generate_salt()
        account = Account(
            email=address,
            display_name=(display_name or "").strip() or None,
            password_hash=hash_password(password, salt),
            password_salt=salt,
            created_at=utcnow(),
        )
        with self._session_factory() as db:
            db.add(account)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise AuthError(AuthFailure.EMAIL_ALREADY_IN_USE)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Creating account for %s failed", address)
                raise AuthError(AuthFailure.NETWORK_REQUEST_FAILED) from exc
            logger.info("Account %s created", account.id)
            return self._issue(db, account)

    def sign_in_with_email(self, email: str, password: str) -> SignInResult:
        address = _normalize_email(email)
        with self._session_factory() as db:
            try:
                account = db.query(Account).filter(Account.email == address).first()
            except SQLAlchemyError as exc:
                logger.exception("Looking up account %s failed", address)
                raise AuthError(AuthFailure.NETWORK_REQUEST_FAILED) from exc
            if not account or not account.password_hash:
                raise AuthError(AuthFailure.INVALID_CREDENTIAL)
            if not verify_password(password or "", account.password_salt, account.password_hash):
                raise AuthError(AuthFailure.INVALID_CREDENTIAL)
            return self._issue(db, account)

    # Creates the account on first use, or links the Google subject to an
    # existing account with the same email.
    def sign_in_with_google(self, token: Optional[str]) -> SignInResult:
        if not token:
            raise AuthError(AuthFailure.POPUP_CLOSED, "federated sign-in was cancelled")
        try:
            claims = self.google_verifier(token)
        except ValueError as exc:
            logger.warning("Rejected Google ID token: %s", exc)
            raise AuthError(AuthFailure.INVALID_CREDENTIAL) from exc
        subject = claims.get("sub")
        if not subject:
            raise AuthError(AuthFailure.INVALID_CREDENTIAL, "token has no subject")
        email = (claims.get("email") or "").strip().lower() or None
        name = claims.get("name")

        with self._session_factory() as db:
            try:
                account = db.query(Account).filter(Account.google_subject == subject).first()
                if not account and email:
                    account = db.query(Account).filter(Account.email == email).first()
                    if account:
                        account.google_subject = subject
                if not account:
                    account = Account(
                        email=email,
                        display_name=name,
                        google_subject=subject,
                        created_at=utcnow(),
                    )
                    db.add(account)
                if name and not account.display_name:
                    account.display_name = name
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Google sign-in for subject %s failed", subject)
                raise AuthError(AuthFailure.NETWORK_REQUEST_FAILED) from exc
            return self._issue(db, account)

    def sign_out(self, token: str) -> None:
        with self._session_factory() as db:
            try:
                row = db.get(AuthSession, token)
                if row and row.revoked_at is None:
                    row.revoked_at = utcnow()
                    db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Revoking a session token failed")
                raise AuthError(AuthFailure.NETWORK_REQUEST_FAILED) from exc

    # Resolve a bearer token to its identity, or None if unknown or revoked.
    def resolve(self, token: str) -> Optional[Identity]:
        with self._session_factory() as db:
            try:
                row = db.get(AuthSession, token)
                if not row or row.revoked_at is not None:
                    return None
                account = db.get(Account, row.account_id)
            except SQLAlchemyError as exc:
                logger.exception("Resolving a session token failed")
                raise AuthError(AuthFailure.NETWORK_REQUEST_FAILED) from exc
            return _identity(account) if account else None

    def _issue(self, db: Session, account: Account) -> SignInResult:
        token = generate_session_token()
        db.add(AuthSession(token=token, account_id=account.id, created_at=utcnow()))
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Issuing a session for %s failed", account.id)
            raise AuthError(AuthFailure.NETWORK_REQUEST_FAILED) from exc
        db.refresh(account)
        return SignInResult(identity=_identity(account), token=token)
