# ac_store/gateway.py
# Razorpay checkout widget: key, script tag lifecycle, server-side session handle.
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Union

log = logging.getLogger("shop.gateway")

GATEWAY_SCRIPT_ID = "razorpay-checkout-script"
GATEWAY_SCRIPT_SRC = "https://checkout.razorpay.com/v1/checkout.js"
PLACEHOLDER_KEY = "YOUR_RAZORPAY_KEY_ID"

PAYMENT_FAILED_EVENT = "payment.failed"


# ---------- key configuration ----------
@dataclass(frozen=True)
class ConfiguredKey:
    value: str
    configured = True


@dataclass(frozen=True)
class UnconfiguredKey:
    reason: str
    configured = False


GatewayKey = Union[ConfiguredKey, UnconfiguredKey]


def parse_gateway_key(raw) -> GatewayKey:
    value = (raw or "").strip()
    if not value:
        return UnconfiguredKey("RAZORPAY_KEY_ID is not set")
    if value == PLACEHOLDER_KEY:
        return UnconfiguredKey("RAZORPAY_KEY_ID is still the placeholder value")
    return ConfiguredKey(value)


# ---------- script lifecycle ----------
@dataclass(eq=False)
class ScriptNode:
    id: str
    src: str
    is_async: bool = True
    parent: Optional["PageDocument"] = None


class PageDocument:
    """Scripts of one rendered page; base.html emits them."""

    def __init__(self):
        self._body = []

    def get_element_by_id(self, element_id):
        for node in self._body:
            if node.id == element_id:
                return node
        return None

    def append(self, node):
        if node.parent is not None:
            node.parent.remove(node)
        self._body.append(node)
        node.parent = self

    def remove(self, node):
        if node.parent is not self:
            raise ValueError(f"script {node.id!r} is not a child of this document")
        self._body.remove(node)
        node.parent = None

    @property
    def scripts(self):
        return list(self._body)


class GatewayScript:
    def __init__(self, script_id=GATEWAY_SCRIPT_ID, src=GATEWAY_SCRIPT_SRC):
        self.script_id = script_id
        self.src = src
        self._document = None
        self._inserted = False

    def mount(self, document) -> bool:
        """True when the script was already on the page."""
        self._document = document
        if document.get_element_by_id(self.script_id) is not None:
            self._inserted = False
            return True
        document.append(ScriptNode(id=self.script_id, src=self.src))
        self._inserted = True
        return False

    def teardown(self) -> bool:
        # only our own node, only while still attached; repeat calls are no-ops
        document, self._document = self._document, None
        if not self._inserted or document is None:
            return False
        self._inserted = False
        node = document.get_element_by_id(self.script_id)
        if node is None or node.parent is not document:
            return False
        document.remove(node)
        return True


# ---------- outcomes ----------
@dataclass(frozen=True)
class PaymentSuccess:
    payment_id: str


@dataclass(frozen=True)
class PaymentFailure:
    code: str
    description: str


@dataclass(frozen=True)
class PaymentDismissed:
    pass


@dataclass(frozen=True)
class PaymentInitError:
    message: str = ""


PaymentOutcome = Union[PaymentSuccess, PaymentFailure, PaymentDismissed, PaymentInitError]


def parse_outcome(payload) -> PaymentOutcome:
    """Read the page's report of a widget callback.

    ``{"status": "success", "razorpay_payment_id": ...}``,
    ``{"status": "failed", "error": {"code": ..., "description": ...}}``,
    ``{"status": "dismissed"}`` or ``{"status": "init_error", "message": ...}``
    (the widget could not be built or opened).
    """
    status = (payload or {}).get("status")
    if status == "success":
        payment_id = payload.get("razorpay_payment_id")
        if not payment_id:
            raise ValueError("success report without razorpay_payment_id")
        return PaymentSuccess(str(payment_id))
    if status == "failed":
        error = payload.get("error") or {}
        return PaymentFailure(code=str(error.get("code") or ""), description=str(error.get("description") or ""))
    if status == "dismissed":
        return PaymentDismissed()
    if status == "init_error":
        return PaymentInitError(str(payload.get("message") or ""))
    raise ValueError(f"unknown payment outcome status: {status!r}")


# ---------- session ----------
class PaymentSession:
    """One opened widget. A failed attempt leaves the widget open, so only
    success, dismissal or an init error settle the session."""

    def __init__(self, config):
        self.id = secrets.token_urlsafe(8)
        self.config = config
        self._handlers = {}
        self.opened = False
        self.outcome = None

    def on(self, event, callback):
        self._handlers[event] = callback

    def open(self):
        if self.opened:
            raise RuntimeError("payment session already opened")
        self.opened = True

    def options(self) -> dict:
        return self.config.to_options()

    @property
    def settled(self) -> bool:
        return self.outcome is not None

    def deliver(self, outcome: PaymentOutcome) -> bool:
        if not self.opened:
            raise RuntimeError("payment session was never opened")
        if self.settled:
            log.info(f"session {self.id}: ignoring {type(outcome).__name__}, already settled")
            return False
        if isinstance(outcome, PaymentFailure):
            handler = self._handlers.get(PAYMENT_FAILED_EVENT)
            if handler:
                handler({"error": {"code": outcome.code, "description": outcome.description}})
            return True
        self.outcome = outcome
        if isinstance(outcome, PaymentSuccess):
            self.config.handler({"razorpay_payment_id": outcome.payment_id})
        elif isinstance(outcome, PaymentDismissed):
            self.config.modal["ondismiss"]()
        return True


class GatewayBridge:
    def create_session(self, config) -> PaymentSession:
        return PaymentSession(config)
