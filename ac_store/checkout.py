# ac_store/checkout.py
# Checkout state machine. transition() is pure; orchestrator.py does the side effects.
#
#   IDLE --ProductLoaded--> READY --PaymentRequested--> AWAITING_PAYMENT
#   AWAITING_PAYMENT --PaymentFailed | PaymentCancelled | PaymentInitFailed--> READY
#   AWAITING_PAYMENT | READY --PaymentSucceeded--> RESOLVED
# A failed attempt leaves the widget open; READY still takes its success.
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, Union

from ac_store.addresses import SavedAddress
from ac_store.catalog import Product
from ac_store.gateway import GatewayKey, UnconfiguredKey
from ac_store.identity import Identity

CURRENCY_CODE = "INR"
MINOR_UNITS = 100
MISSING_NOTE = "N/A"


class CheckoutPhase(str, Enum):
    IDLE = "idle"
    READY = "ready"
    AWAITING_PAYMENT = "awaiting_payment"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    variant: str = "destructive"  # or "default"

    def to_dict(self) -> dict:
        return {"title": self.title, "description": self.description, "variant": self.variant}


class CheckoutError(Enum):
    NOT_AUTHENTICATED = Notice("Login Required", "Please log in to proceed.")
    NO_ADDRESS_SELECTED = Notice("Address Required", "Please select or add a shipping address.")
    PRODUCT_UNAVAILABLE = Notice("Error", "Product details not available.")
    GATEWAY_NOT_LOADED = Notice("Payment Gateway Loading", "Please wait for the payment gateway to load or try refreshing.")
    GATEWAY_MISCONFIGURED = Notice("Configuration Error", "Razorpay Key ID not configured.")
    GATEWAY_INIT_FAILED = Notice("Payment Error", "Could not initialize payment gateway.")
    PAYMENT_CANCELLED = Notice("Payment Canceled", "Your payment process was canceled.")

    @property
    def notice(self) -> Notice:
        return self.value


SCRIPT_LOAD_FAILED = Notice("Error", "Could not load payment gateway. Please try again later.")
ADDRESSES_FAILED = Notice("Error", "Could not fetch addresses.")


def payment_failed_notice(code: str, description: str) -> Notice:
    return Notice("Payment Failed", f"{description or 'An unknown error occurred.'} (Code: {code})")


def payment_success_notice(payment_id: str) -> Notice:
    return Notice("Payment Successful!", f"Payment ID: {payment_id}. Your order is confirmed.", variant="default")


@dataclass(frozen=True)
class CheckoutState:
    gateway_key: GatewayKey = UnconfiguredKey("not set")
    phase: CheckoutPhase = CheckoutPhase.IDLE
    product: Optional[Product] = None
    product_missing: bool = False
    script_loaded: bool = False
    identity: Optional[Identity] = None
    addresses: tuple[SavedAddress, ...] = ()
    addresses_loading: bool = False
    selected_address_id: Optional[str] = None
    notice: Optional[Notice] = None
    payment_id: Optional[str] = None

    @property
    def selected_address(self) -> Optional[SavedAddress]:
        for a in self.addresses:
            if a.id == self.selected_address_id:
                return a
        return None

    @property
    def can_pay(self) -> bool:
        return self.phase is CheckoutPhase.READY and precondition_error(self) is None


# ---------- events ----------
@dataclass(frozen=True)
class ProductLoaded:
    product: Optional[Product]


@dataclass(frozen=True)
class ScriptLoadFinished:
    ok: bool


@dataclass(frozen=True)
class IdentityChanged:
    identity: Optional[Identity]


@dataclass(frozen=True)
class AddressesSnapshot:
    user_id: str
    addresses: tuple[SavedAddress, ...]


@dataclass(frozen=True)
class AddressesFailed:
    user_id: str


@dataclass(frozen=True)
class AddressSelected:
    address_id: str


@dataclass(frozen=True)
class PaymentRequested:
    pass


@dataclass(frozen=True)
class PaymentInitFailed:
    pass


@dataclass(frozen=True)
class PaymentSucceeded:
    payment_id: str


@dataclass(frozen=True)
class PaymentFailed:
    code: str
    description: str


@dataclass(frozen=True)
class PaymentCancelled:
    pass


CheckoutEvent = Union[
    ProductLoaded, ScriptLoadFinished, IdentityChanged, AddressesSnapshot, AddressesFailed,
    AddressSelected, PaymentRequested, PaymentInitFailed, PaymentSucceeded, PaymentFailed,
    PaymentCancelled,
]


def default_address_id(addresses) -> Optional[str]:
    for a in addresses:
        if a.is_default:
            return a.id
    return addresses[0].id if addresses else None


def precondition_error(state: CheckoutState) -> Optional[CheckoutError]:
    # order: login, address, product, script, key
    if state.identity is None:
        return CheckoutError.NOT_AUTHENTICATED
    if state.addresses and not state.selected_address_id:
        return CheckoutError.NO_ADDRESS_SELECTED
    if state.product is None:
        return CheckoutError.PRODUCT_UNAVAILABLE
    if not state.script_loaded:
        return CheckoutError.GATEWAY_NOT_LOADED
    if not state.gateway_key.configured:
        return CheckoutError.GATEWAY_MISCONFIGURED
    return None


def transition(state: CheckoutState, event: CheckoutEvent) -> CheckoutState:
    awaiting = state.phase is CheckoutPhase.AWAITING_PAYMENT

    if isinstance(event, ProductLoaded):
        if state.phase is not CheckoutPhase.IDLE:
            return state
        return replace(state, phase=CheckoutPhase.READY, product=event.product,
                       product_missing=event.product is None)

    if isinstance(event, ScriptLoadFinished):
        return replace(state, script_loaded=event.ok,
                       notice=state.notice if event.ok else SCRIPT_LOAD_FAILED)

    if isinstance(event, IdentityChanged):
        old, new = state.identity, event.identity
        if old is not None and new is not None and old.uid == new.uid:
            return replace(state, identity=new)
        return replace(state, identity=new, addresses=(), selected_address_id=None,
                       addresses_loading=new is not None)

    if isinstance(event, AddressesSnapshot):
        if state.identity is None or state.identity.uid != event.user_id:
            return state
        addresses = tuple(event.addresses)
        return replace(state, addresses=addresses, addresses_loading=False,
                       selected_address_id=default_address_id(addresses))

    if isinstance(event, AddressesFailed):
        if state.identity is None or state.identity.uid != event.user_id:
            return state
        return replace(state, addresses_loading=False, notice=ADDRESSES_FAILED)

    if isinstance(event, AddressSelected):
        if awaiting or not any(a.id == event.address_id for a in state.addresses):
            return state
        return replace(state, selected_address_id=event.address_id)

    if isinstance(event, PaymentRequested):
        if state.phase is not CheckoutPhase.READY:
            return state
        error = precondition_error(state)
        if error is not None:
            return replace(state, notice=error.notice)
        return replace(state, phase=CheckoutPhase.AWAITING_PAYMENT, notice=None)

    if not isinstance(event, (PaymentSucceeded, PaymentFailed, PaymentCancelled, PaymentInitFailed)):
        raise TypeError(f"unknown checkout event: {event!r}")
    if isinstance(event, PaymentSucceeded):
        if state.phase not in (CheckoutPhase.AWAITING_PAYMENT, CheckoutPhase.READY):
            return state
        return replace(state, phase=CheckoutPhase.RESOLVED, payment_id=event.payment_id,
                       notice=payment_success_notice(event.payment_id))
    if not awaiting:
        return state
    if isinstance(event, PaymentFailed):
        return replace(state, phase=CheckoutPhase.READY,
                       notice=payment_failed_notice(event.code, event.description))
    if isinstance(event, PaymentCancelled):
        return replace(state, phase=CheckoutPhase.READY, notice=CheckoutError.PAYMENT_CANCELLED.notice)
    return replace(state, phase=CheckoutPhase.READY, notice=CheckoutError.GATEWAY_INIT_FAILED.notice)


# ---------- payment session configuration ----------
def amount_in_minor_units(price: int) -> int:
    if isinstance(price, bool) or not isinstance(price, int) or price < 0:
        raise ValueError(f"price must be a non-negative integer, got {price!r}")
    return price * MINOR_UNITS


@dataclass(frozen=True)
class PaymentSessionConfig:
    key: str
    amount: int
    currency: str
    name: str
    description: str
    handler: Callable[[dict], Any]
    prefill: dict
    notes: dict
    theme: dict
    modal: dict

    def to_options(self) -> dict:
        return {
            "key": self.key,
            "amount": self.amount,
            "currency": self.currency,
            "name": self.name,
            "description": self.description,
            "prefill": dict(self.prefill),
            "notes": dict(self.notes),
            "theme": dict(self.theme),
        }


def build_session_config(
    state: CheckoutState,
    *,
    merchant_name: str,
    theme_color: str,
    handler: Callable[[dict], Any],
    ondismiss: Callable[[], Any],
) -> PaymentSessionConfig:
    product, identity, key = state.product, state.identity, state.gateway_key
    if product is None or identity is None or not key.configured:
        raise ValueError("payment session needs a product, an identity and a configured key")
    if state.addresses and not state.selected_address_id:
        raise ValueError("payment session needs a selected address")
    address = state.selected_address
    return PaymentSessionConfig(
        key=key.value,
        amount=amount_in_minor_units(product.price),
        currency=CURRENCY_CODE,
        name=merchant_name,
        description=f"Order for {product.brand} {product.model}",
        handler=handler,
        prefill={"name": identity.display_name or "", "email": identity.email or ""},
        notes={
            "address": address.line1 if address else MISSING_NOTE,
            "productId": product.id,
            "userId": identity.uid,
        },
        theme={"color": theme_color},
        modal={"ondismiss": ondismiss},
    )


def state_to_dict(state: CheckoutState) -> dict:
    return {
        "phase": state.phase.value,
        "product_id": state.product.id if state.product else None,
        "product_missing": state.product_missing,
        "script_loaded": state.script_loaded,
        "authenticated": state.identity is not None,
        "addresses": [
            {"id": a.id, "type": str(a.type), "line1": a.line1, "line2": a.line2, "city": a.city,
             "state": a.state, "zip_code": a.zip_code, "country": a.country, "is_default": a.is_default}
            for a in state.addresses
        ],
        "addresses_loading": state.addresses_loading,
        "selected_address_id": state.selected_address_id,
        "can_pay": state.can_pay,
        "notice": state.notice.to_dict() if state.notice else None,
        "payment_id": state.payment_id,
    }
