# ac_store/orchestrator.py
# One CheckoutOrchestrator per checkout page view, kept in CheckoutVisits.
import logging
import secrets
import time
from typing import Optional

from ac_store.addresses import Snapshot
from ac_store.checkout import (
    AddressSelected, AddressesFailed, AddressesSnapshot, CheckoutPhase, CheckoutState,
    IdentityChanged, PaymentCancelled, PaymentFailed, PaymentInitFailed, PaymentRequested,
    PaymentSucceeded, ProductLoaded, ScriptLoadFinished, build_session_config, transition,
)
from ac_store.events import Subscription
from ac_store.gateway import (
    PAYMENT_FAILED_EVENT, GatewayScript, PageDocument, PaymentInitError,
    PaymentOutcome, PaymentSession,
)
from ac_store.identity import Identity

log = logging.getLogger("shop.checkout")

VISIT_TTL = 30 * 60  # seconds


class CheckoutOrchestrator:
    """Side effects of one checkout view. Success is not verified with the gateway
    and no order is recorded."""

    def __init__(
        self,
        product_id: str,
        *,
        lookup_product,
        directory,
        bridge,
        gateway_key,
        merchant_name,
        theme_color,
        on_success=lambda payment_id: None,
        notify=lambda msg: None,
    ):
        self.product_id = product_id
        self._lookup = lookup_product
        self._directory = directory
        self._bridge = bridge
        self._merchant_name = merchant_name
        self._theme_color = theme_color
        self._on_success = on_success
        self._notify = notify
        self._script = GatewayScript()
        self._address_sub: Optional[Subscription] = None
        self._address_uid: Optional[str] = None
        self.session: Optional[PaymentSession] = None
        self.state = CheckoutState(gateway_key=gateway_key)
        self.mounted = False

    def _dispatch(self, event):
        before = self.state
        self.state = transition(before, event)
        if self.state.phase is not before.phase:
            log.info(f"checkout {self.product_id}: {before.phase.value} -> {self.state.phase.value} on {type(event).__name__}")
        return self.state

    # ---------- lifecycle ----------
    def mount(self, document: PageDocument, identity: Optional[Identity]):
        self.mounted = True
        if self._script.mount(document):
            self._dispatch(ScriptLoadFinished(True))
        self._dispatch(ProductLoaded(self._lookup(self.product_id)))
        self.sync_identity(identity)
        return self.state

    def script_finished(self, ok: bool):
        if not ok:
            log.warning("payment gateway script failed to load")
        return self._dispatch(ScriptLoadFinished(ok))

    def unmount(self):
        # an open payment session is left alone
        self._close_address_subscription()
        self._script.teardown()
        self.mounted = False

    # ---------- identity & addresses ----------
    def sync_identity(self, identity: Optional[Identity]):
        current = self.state.identity
        if current is not None and identity is not None and current.uid == identity.uid:
            return self._dispatch(IdentityChanged(identity))
        self._close_address_subscription()
        self._dispatch(IdentityChanged(identity))
        if identity is not None and self.mounted:
            uid = identity.uid
            self._address_uid = uid
            self._address_sub = self._directory.subscribe(
                uid,
                lambda snapshot: self._on_snapshot(uid, snapshot),
                on_error=lambda e: self._on_snapshot_error(uid),
            )
        return self.state

    def _close_address_subscription(self):
        sub, self._address_sub = self._address_sub, None
        self._address_uid = None
        if sub is not None:
            sub.unsubscribe()

    def _is_current(self, uid: str) -> bool:
        identity = self.state.identity
        return identity is not None and identity.uid == uid and self._address_uid == uid

    def _on_snapshot(self, uid: str, snapshot: Snapshot):
        if not self._is_current(uid):
            log.debug(f"dropping stale address snapshot for uid={uid}")
            return
        self._dispatch(AddressesSnapshot(uid, tuple(snapshot)))

    def _on_snapshot_error(self, uid: str):
        if self._is_current(uid):
            self._dispatch(AddressesFailed(uid))

    def select_address(self, address_id: str):
        return self._dispatch(AddressSelected(str(address_id)))

    # ---------- payment ----------
    def begin_payment(self) -> Optional[PaymentSession]:
        # None means refused; state.notice says why
        if self._dispatch(PaymentRequested()).phase is not CheckoutPhase.AWAITING_PAYMENT:
            return None
        try:
            config = build_session_config(
                self.state,
                merchant_name=self._merchant_name,
                theme_color=self._theme_color,
                handler=self._handle_success,
                ondismiss=self._handle_dismiss,
            )
            session = self._bridge.create_session(config)
            session.on(PAYMENT_FAILED_EVENT, self._handle_failure)
            session.open()
        except Exception:
            log.exception("Error initializing Razorpay")
            self._dispatch(PaymentInitFailed())
            return None
        if self.session is not None and not self.session.settled:
            log.info(f"checkout {self.product_id}: session {self.session.id} superseded by {session.id}")
        self.session = session
        return session

    def deliver_outcome(self, outcome: PaymentOutcome, session_id: Optional[str] = None):
        session = self.session
        if session is None:
            log.warning(f"payment outcome {type(outcome).__name__} with no open session")
            return self.state
        if session_id is not None and session_id != session.id:
            log.warning(f"checkout {self.product_id}: dropping {type(outcome).__name__} from superseded session {session_id}")
            return self.state
        if session.deliver(outcome) and isinstance(outcome, PaymentInitError):
            log.error(f"Razorpay widget failed to open: {outcome.message}")
            self._dispatch(PaymentInitFailed())
        return self.state

    def _handle_success(self, response: dict):
        payment_id = response["razorpay_payment_id"]
        self._dispatch(PaymentSucceeded(payment_id))
        identity = self.state.identity
        self._notify(f"Payment {payment_id} received for product {self.product_id} from user {identity.uid if identity else '?'}")
        self._on_success(payment_id)

    def _handle_failure(self, response: dict):
        error = response.get("error") or {}
        log.error(f"Razorpay payment failed: {error}")
        self._dispatch(PaymentFailed(str(error.get("code", "")), str(error.get("description", ""))))
        self._notify(f"Payment failed for product {self.product_id}: {error.get('code')} {error.get('description')}")

    def _handle_dismiss(self):
        self._dispatch(PaymentCancelled())


class CheckoutVisits:
    """In-memory registry of live orchestrators, keyed by an unguessable visit id."""

    def __init__(self, factory, ttl=VISIT_TTL, clock=time.time):
        self._factory = factory
        self._ttl = ttl
        self._clock = clock
        self._visits: dict[str, tuple[float, CheckoutOrchestrator]] = {}

    def open(self, product_id: str, document: PageDocument, identity: Optional[Identity]) -> tuple[str, CheckoutOrchestrator]:
        self.expire()
        visit_id = secrets.token_urlsafe(16)
        orch = self._factory(product_id)
        orch.mount(document, identity)
        self._visits[visit_id] = (self._clock(), orch)
        return visit_id, orch

    def get(self, visit_id: str) -> Optional[CheckoutOrchestrator]:
        entry = self._visits.get(visit_id)
        if entry is None:
            return None
        if self._clock() - entry[0] > self._ttl:
            self.close(visit_id)
            return None
        self._visits[visit_id] = (self._clock(), entry[1])
        return entry[1]

    def close(self, visit_id: str) -> bool:
        entry = self._visits.pop(visit_id, None)
        if entry is None:
            return False
        entry[1].unmount()
        return True

    def expire(self) -> int:
        now = self._clock()
        stale = [k for k, (seen, _) in self._visits.items() if now - seen > self._ttl]
        for k in stale:
            self.close(k)
        return len(stale)

    def identity_changed(self, uid: str, identity: Optional[Identity]):
        """Identity-provider listener: push sign-outs into that user's open visits."""
        for _, orch in list(self._visits.values()):
            current = orch.state.identity
            if current is not None and current.uid == uid:
                orch.sync_identity(identity)

    def __len__(self) -> int:
        return len(self._visits)
