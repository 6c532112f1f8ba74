"""Per-user shipping addresses with live snapshot subscriptions."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ac_store.events import ListenerSet, Subscription
from ac_store.models import Address

log = logging.getLogger("shop.addresses")


class AddressType(str, Enum):
    HOME = "Home"
    WORK = "Work"
    OTHER = "Other"

    def __str__(self) -> str:
        return self.value


class AddressError(Exception):
    """Invalid address input; the message is shown to the user."""


@dataclass(frozen=True)
class SavedAddress:
    id: str
    user_id: str
    type: AddressType
    line1: str
    city: str
    state: str
    zip_code: str
    country: str
    line2: Optional[str] = None
    is_default: bool = False

    @classmethod
    def from_row(cls, a: Address) -> "SavedAddress":
        return cls(
            id=str(a.id), user_id=str(a.user_id), type=AddressType(a.type),
            line1=a.line1, line2=a.line2 or None, city=a.city, state=a.state,
            zip_code=a.zip_code, country=a.country, is_default=bool(a.is_default),
        )

    def one_line(self) -> str:
        parts = [self.line1, self.line2, f"{self.city}, {self.state} {self.zip_code}", self.country]
        return ", ".join(p for p in parts if p)


Snapshot = list[SavedAddress]

REQUIRED_FIELDS = ("line1", "city", "state", "zip_code", "country")


class AddressDirectory:
    """Address book backed by the ``addresses`` table.

    ``subscribe`` delivers the full snapshot for one user immediately and again
    after every change to that user's addresses.
    """

    def __init__(self, engine):
        self.engine = engine
        self._listeners: ListenerSet = ListenerSet()
        self._error_listeners: ListenerSet = ListenerSet()

    def list(self, user_id) -> Snapshot:
        with Session(self.engine) as db:
            rows = db.execute(
                select(Address).where(Address.user_id == int(user_id)).order_by(Address.id)
            ).scalars().all()
            return [SavedAddress.from_row(a) for a in rows]

    def subscribe(
        self,
        user_id,
        listener: Callable[[Snapshot], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        topic = str(user_id)
        sub = self._listeners.add(topic, listener)
        err_sub = self._error_listeners.add(topic, on_error) if on_error else None

        def cancel():
            sub.unsubscribe()
            if err_sub:
                err_sub.unsubscribe()

        handle = Subscription(cancel)
        try:
            snapshot = self.list(user_id)
        except Exception as e:
            log.exception(f"Error fetching addresses for user {user_id}")
            if on_error:
                on_error(e)
        else:
            listener(snapshot)
        return handle

    def subscriber_count(self, user_id) -> int:
        return self._listeners.count(str(user_id))

    def _publish(self, user_id) -> None:
        topic = str(user_id)
        if not self._listeners.count(topic):
            return
        try:
            snapshot = self.list(user_id)
        except Exception as e:
            log.exception(f"Error fetching addresses for user {user_id}")
            self._error_listeners.emit(topic, e)
            return
        self._listeners.emit(topic, snapshot)

    # ---------- mutations ----------
    def add(self, user_id, *, type="Home", line1="", line2=None, city="", state="",
            zip_code="", country="India", is_default=False) -> SavedAddress:
        fields = {"line1": line1, "city": city, "state": state, "zip_code": zip_code, "country": country}
        fields = {k: (v or "").strip() for k, v in fields.items()}
        missing = [k for k in REQUIRED_FIELDS if not fields[k]]
        if missing:
            raise AddressError(f"Missing required address fields: {', '.join(missing)}.")
        try:
            kind = AddressType(type)
        except ValueError:
            raise AddressError(f"Unknown address type: {type}.")
        with Session(self.engine) as db:
            if is_default:
                for other in db.execute(select(Address).where(Address.user_id == int(user_id))).scalars():
                    other.is_default = False
            row = Address(user_id=int(user_id), type=kind.value, line2=(line2 or "").strip() or None,
                          is_default=bool(is_default), **fields)
            db.add(row); db.commit()
            saved = SavedAddress.from_row(row)
        self._publish(user_id)
        return saved

    def set_default(self, user_id, address_id) -> None:
        with Session(self.engine) as db:
            rows = db.execute(select(Address).where(Address.user_id == int(user_id))).scalars().all()
            if not any(str(a.id) == str(address_id) for a in rows):
                raise AddressError("Address not found.")
            for a in rows:
                a.is_default = str(a.id) == str(address_id)
            db.commit()
        self._publish(user_id)

    def remove(self, user_id, address_id) -> None:
        with Session(self.engine) as db:
            row = db.get(Address, int(address_id))
            if not row or row.user_id != int(user_id):
                raise AddressError("Address not found.")
            db.delete(row); db.commit()
        self._publish(user_id)
