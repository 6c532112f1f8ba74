"""Account identity: email/password and Google sign-in over the users table."""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import bcrypt
import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from ac_store.events import ListenerSet, Subscription
from ac_store.models import User

log = logging.getLogger("shop.identity")

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
MIN_PASSWORD_LENGTH = 6

ALL_USERS = None  # listener topic


class AuthError(Exception):
    """Sign-in/registration failure; ``str(err)`` is safe to show the user."""


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    display_name: str = ""

    @classmethod
    def from_user(cls, u: User) -> "Identity":
        return cls(uid=str(u.id), email=u.email, display_name=u.display_name or "")


@dataclass(frozen=True)
class AuthState:
    identity: Optional[Identity] = None
    loading: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


def verify_google_id_token(id_token: str) -> dict:
    """Ask Google to decode an ID token. Returns the token claims."""
    try:
        r = requests.get(GOOGLE_TOKENINFO_URL, params={"id_token": id_token}, timeout=5)
    except requests.RequestException as e:
        raise AuthError("Could not reach Google. Please try again.") from e
    if not r.ok:
        raise AuthError("Google sign-in was rejected.")
    return r.json()


class IdentityProvider:
    """Owns account records and broadcasts identity changes.

    Listeners registered with ``subscribe`` are called as
    ``listener(uid, identity_or_none)`` after every sign-in, registration and
    sign-out.
    """

    def __init__(
        self,
        engine,
        google_client_id: Optional[str] = None,
        verifier: Callable[[str], dict] = verify_google_id_token,
    ):
        self.engine = engine
        self.google_client_id = google_client_id
        self._verify = verifier
        self._listeners: ListenerSet = ListenerSet()

    def subscribe(self, listener: Callable[[str, Optional[Identity]], None]) -> Subscription:
        return self._listeners.add(ALL_USERS, listener)

    def _changed(self, uid: str, identity: Optional[Identity]) -> None:
        self._listeners.emit(ALL_USERS, uid, identity)

    def load(self, uid) -> Optional[Identity]:
        try:
            pk = int(uid)
        except (TypeError, ValueError):
            return None
        with Session(self.engine) as db:
            u = db.get(User, pk)
            return Identity.from_user(u) if u else None

    def resolve(self, uid) -> AuthState:
        return AuthState(identity=self.load(uid) if uid else None, loading=False)

    # ---------- operations ----------
    def sign_in(self, email: str, secret: str) -> Identity:
        email = (email or "").strip().lower()
        if not email or not secret:
            raise AuthError("Email and password required.")
        with Session(self.engine) as db:
            u = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if not u or not u.password_hash or not bcrypt.checkpw(secret.encode(), u.password_hash.encode()):
                raise AuthError("Invalid email or password.")
            identity = Identity.from_user(u)
        log.info(f"sign-in uid={identity.uid}")
        self._changed(identity.uid, identity)
        return identity

    def register(self, email: str, secret: str, display_name: Optional[str] = None) -> Identity:
        email = (email or "").strip().lower()
        if not email or not secret:
            raise AuthError("Email and password required.")
        if len(secret) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.")
        with Session(self.engine) as db:
            exists = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if exists:
                raise AuthError("An account with this email already exists.")
            pw_hash = bcrypt.hashpw(secret.encode(), bcrypt.gensalt()).decode()
            u = User(email=email, password_hash=pw_hash)
            db.add(u); db.commit()
            pk = u.id
        name = (display_name or "").strip()
        if name:
            self._update_profile(pk, display_name=name)
        # re-read: the profile update happened in a separate transaction
        identity = self.load(pk)
        log.info(f"registered uid={identity.uid}")
        self._changed(identity.uid, identity)
        return identity

    def _update_profile(self, pk: int, display_name: str) -> None:
        with Session(self.engine) as db:
            u = db.get(User, pk)
            u.display_name = display_name
            db.commit()

    def sign_in_with_federated_provider(self, id_token: str) -> Identity:
        if not self.google_client_id:
            raise AuthError("Google sign-in is not configured.")
        if not id_token:
            raise AuthError("Missing Google credential.")
        claims = self._verify(id_token)
        if claims.get("aud") != self.google_client_id:
            raise AuthError("Google sign-in was rejected.")
        if str(claims.get("email_verified", "")).lower() != "true" or not claims.get("email"):
            raise AuthError("Your Google account email is not verified.")
        sub = claims.get("sub")
        email = claims["email"].strip().lower()
        with Session(self.engine) as db:
            u = db.execute(select(User).where(User.google_sub == sub)).scalar_one_or_none()
            if not u:
                u = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if not u:
                u = User(email=email)
                db.add(u)
            u.google_sub = sub
            if not u.display_name and claims.get("name"):
                u.display_name = claims["name"]
            db.commit()
            identity = Identity.from_user(u)
        log.info(f"google sign-in uid={identity.uid}")
        self._changed(identity.uid, identity)
        return identity

    def sign_out(self, identity: Optional[Identity]) -> None:
        if identity is None:
            return
        log.info(f"sign-out uid={identity.uid}")
        self._changed(identity.uid, None)
