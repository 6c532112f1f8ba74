# ac_store/app.py
import os, logging, smtplib
from datetime import date
from email.mime.text import MIMEText
from urllib.parse import urlparse, urljoin

import requests
from flask import Flask, render_template, request, redirect, url_for, flash, abort, jsonify, g
from sqlalchemy import create_engine
from dotenv import load_dotenv
from flask_login import (
    LoginManager, login_user, login_required, logout_user, current_user, UserMixin
)
from pydantic import ValidationError

from ac_store.models import Base
from ac_store.catalog import CATALOG, SERVICES, get_product
from ac_store.enrichment import DescriptionService
from ac_store.llm import get_provider
from ac_store.identity import AuthError, AuthState, Identity, IdentityProvider
from ac_store.addresses import AddressDirectory, AddressError, AddressType
from ac_store.booking import BookingRequest, appointments_for, book_appointment
from ac_store.checkout import CheckoutPhase, state_to_dict
from ac_store.gateway import GatewayBridge, PageDocument, parse_gateway_key, parse_outcome
from ac_store.orchestrator import CheckoutOrchestrator, CheckoutVisits


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///ac_store.db")
SITE_NAME = os.getenv("SITE_NAME", "Classic-Solution")
CURRENCY  = os.getenv("CURRENCY", "INR")
SECRET    = os.getenv("FLASK_SECRET_KEY", "dev-key")
LOG_FILE  = os.getenv("LOG_FILE", "app.log")

RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
PAYMENT_THEME_COLOR = os.getenv("PAYMENT_THEME_COLOR", "#2563EB")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
DESCRIPTION_MODEL = os.getenv("DESCRIPTION_MODEL", "deepseek")
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")

SLACK_WEBHOOK_URL = os.getenv("SLACK_WEBHOOK_URL")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
ALERT_EMAIL_TO = os.getenv("ALERT_EMAIL_TO")

app = Flask(__name__, static_folder="static", template_folder="templates")
app.secret_key = SECRET

# ---------- DB ----------
engine = create_engine(DATABASE_URL, future=True)
Base.metadata.create_all(engine)

# ---------- Logging & notify ----------
log = logging.getLogger("shop")
log.setLevel(logging.INFO)
fh = logging.FileHandler(LOG_FILE)
fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
ch = logging.StreamHandler()
ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
log.addHandler(fh); log.addHandler(ch)

def notify(msg: str):
    try:
        if SLACK_WEBHOOK_URL:
            requests.post(SLACK_WEBHOOK_URL, json={"text": msg}, timeout=5)
    except Exception as e:
        log.warning(f"Slack notify failed: {e}")
    try:
        if SMTP_HOST and ALERT_EMAIL_TO:
            m = MIMEText(msg)
            m["Subject"] = f"[{SITE_NAME}] {msg[:60]}"
            m["From"] = SMTP_USER or "noreply@localhost"
            m["To"] = ALERT_EMAIL_TO
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=5) as s:
                s.starttls()
                if SMTP_USER and SMTP_PASS:
                    s.login(SMTP_USER, SMTP_PASS)
                s.send_message(m)
    except Exception as e:
        log.warning(f"Email notify failed: {e}")

def format_money(amount: int) -> str:
    return f"₹{amount:,}" if CURRENCY.upper() == "INR" else f"{amount:,} {CURRENCY}"

# ---------- Payment gateway ----------
GATEWAY_KEY = parse_gateway_key(RAZORPAY_KEY_ID)
if not GATEWAY_KEY.configured:
    log.error(f"Razorpay checkout disabled: {GATEWAY_KEY.reason}")

# ---------- Services ----------
def description_provider():
    if not OPENROUTER_API_KEY:
        log.info("OPENROUTER_API_KEY not set; product pages use template descriptions")
        return None
    return get_provider(model=DESCRIPTION_MODEL, api_key=OPENROUTER_API_KEY, site_name=SITE_NAME)

identity_provider = IdentityProvider(engine, google_client_id=GOOGLE_CLIENT_ID)
directory = AddressDirectory(engine)
describer = DescriptionService(description_provider())
bridge = GatewayBridge()

def payment_confirmed(payment_id: str):
    flash(f"Payment ID: {payment_id}. Your order is confirmed.", "success")

def new_orchestrator(product_id: str) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        product_id,
        lookup_product=get_product,
        directory=directory,
        bridge=bridge,
        gateway_key=GATEWAY_KEY,
        merchant_name=SITE_NAME,
        theme_color=PAYMENT_THEME_COLOR,
        on_success=payment_confirmed,
        notify=notify,
    )

visits = CheckoutVisits(new_orchestrator)
identity_provider.subscribe(visits.identity_changed)

# ---------- Auth ----------
login_manager = LoginManager(app)
login_manager.login_view = "login"

class LoginUser(UserMixin):
    def __init__(self, identity: Identity):
        self.id = identity.uid
        self.email = identity.email
        self.identity = identity

@login_manager.user_loader
def load_user(user_id):
    identity = identity_provider.load(user_id)
    return LoginUser(identity) if identity else None

def current_identity():
    if hasattr(current_user, "is_authenticated") and current_user.is_authenticated:
        return current_user.identity
    return None

@app.before_request
def bind_page():
    g.document = PageDocument()
    g.auth = AuthState(identity=current_identity(), loading=False)

@app.context_processor
def inject_globals():
    return {
        "SITE_NAME": SITE_NAME,
        "format_money": format_money,
        "auth": g.get("auth", AuthState()),
        "document": g.get("document"),
        "GOOGLE_CLIENT_ID": GOOGLE_CLIENT_ID,
    }

def is_safe_url(target):
    ref_url = urlparse(request.host_url)
    test_url = urlparse(urljoin(request.host_url, target))
    return test_url.scheme in ("http", "https") and ref_url.netloc == test_url.netloc

def next_url(default: str) -> str:
    target = request.values.get("next")
    return target if target and is_safe_url(target) else default

# --------------------------- AUTH ROUTES ---------------------------
@app.get("/login")
def login():
    return render_template("login.html")

@app.post("/login")
def login_post():
    email = request.form.get("email", "")
    try:
        identity = identity_provider.sign_in(email, request.form.get("password", ""))
    except AuthError as e:
        notify(f"Failed login attempt for {email.strip().lower()}")
        return (render_template("login.html", error=str(e)), 401)
    login_user(LoginUser(identity))
    flash("Welcome back!", "success")
    return redirect(next_url(url_for("products")))

@app.get("/register")
def register():
    return render_template("register.html")

@app.post("/register")
def register_post():
    try:
        identity = identity_provider.register(
            request.form.get("email", ""),
            request.form.get("password", ""),
            request.form.get("name"),
        )
    except AuthError as e:
        return (render_template("register.html", error=str(e)), 400)
    login_user(LoginUser(identity))
    flash("Your account has been created.", "success")
    return redirect(next_url(url_for("products")))

@app.post("/auth/google")
def google_sign_in():
    try:
        identity = identity_provider.sign_in_with_federated_provider(request.form.get("credential", ""))
    except AuthError as e:
        return (render_template("login.html", error=str(e)), 401)
    login_user(LoginUser(identity))
    flash("Welcome!", "success")
    return redirect(next_url(url_for("products")))

@app.get("/logout")
@login_required
def logout():
    identity = current_identity()
    logout_user()
    identity_provider.sign_out(identity)
    flash("You have been successfully logged out.", "success")
    return redirect(url_for("products"))

# --------------------------- CATALOG ---------------------------
@app.get("/")
def index():
    return redirect(url_for("products"))

@app.get("/products")
async def products():
    items = await describer.describe_all(CATALOG)
    return render_template("products.html", products=items)

@app.get("/products/<product_id>")
async def product(product_id):
    p = get_product(product_id)
    if not p:
        return render_template("product_missing.html"), 404
    p = await describer.describe(p)
    return render_template("product.html", p=p)

# --------------------------- CHECKOUT ---------------------------
@app.get("/checkout/<product_id>")
def checkout(product_id):
    visit_id, orch = visits.open(product_id, g.document, current_identity())
    if orch.state.product_missing:
        visits.close(visit_id)
        return render_template("product_missing.html"), 404
    return render_template(
        "checkout.html",
        visit_id=visit_id,
        state=orch.state,
        gateway_configured=GATEWAY_KEY.configured,
        address_types=[t.value for t in AddressType],
    )

def visit_or_404(visit_id) -> CheckoutOrchestrator:
    orch = visits.get(visit_id)
    if orch is None:
        resp = jsonify(error="Checkout session expired. Please reload the page.")
        resp.status_code = 404
        abort(resp)
    orch.sync_identity(current_identity())
    return orch

def state_response(orch: CheckoutOrchestrator, status=200, **extra):
    return jsonify(state=state_to_dict(orch.state), **extra), status

@app.get("/checkout/visit/<visit_id>/state")
def checkout_state(visit_id):
    return state_response(visit_or_404(visit_id))

@app.post("/checkout/visit/<visit_id>/script")
def checkout_script(visit_id):
    orch = visit_or_404(visit_id)
    data = request.get_json(silent=True) or {}
    orch.script_finished(bool(data.get("loaded")))
    return state_response(orch)

@app.post("/checkout/visit/<visit_id>/address")
def checkout_address(visit_id):
    orch = visit_or_404(visit_id)
    data = request.get_json(silent=True) or {}
    orch.select_address(str(data.get("address_id", "")))
    return state_response(orch)

@app.post("/checkout/visit/<visit_id>/pay")
def checkout_pay(visit_id):
    orch = visit_or_404(visit_id)
    session = orch.begin_payment()
    if session is None:
        extra = {}
        if orch.state.identity is None:
            extra["login_url"] = url_for("login", next=url_for("checkout", product_id=orch.product_id))
        return state_response(orch, 409, **extra)
    return state_response(orch, options=session.options(), session_id=session.id)

@app.post("/checkout/visit/<visit_id>/outcome")
def checkout_outcome(visit_id):
    orch = visit_or_404(visit_id)
    payload = request.get_json(silent=True) or {}
    try:
        outcome = parse_outcome(payload)
    except ValueError as e:
        return jsonify(error=str(e)), 400
    orch.deliver_outcome(outcome, session_id=payload.get("session_id"))
    if orch.state.phase is CheckoutPhase.RESOLVED:
        resp = state_response(orch, redirect=url_for("account"))
        visits.close(visit_id)
        return resp
    return state_response(orch)

@app.post("/checkout/visit/<visit_id>/close")
def checkout_close(visit_id):
    return jsonify(closed=visits.close(visit_id))

# --------------------------- ACCOUNT ---------------------------
@app.get("/account")
@login_required
def account():
    uid = current_user.id
    return render_template(
        "account.html",
        addresses=directory.list(uid),
        appointments=appointments_for(engine, uid),
        address_types=[t.value for t in AddressType],
    )

ADDRESS_FIELDS = ("type", "line1", "line2", "city", "state", "zip_code", "country")

@app.post("/account/addresses")
@login_required
def address_add():
    data = request.get_json(silent=True) if request.is_json else request.form
    data = data or {}
    fields = {k: data.get(k) for k in ADDRESS_FIELDS if data.get(k) is not None}
    is_default = str(data.get("is_default", "")).lower() in ("1", "true", "on", "yes")
    try:
        saved = directory.add(current_user.id, is_default=is_default, **fields)
    except AddressError as e:
        if request.is_json:
            return jsonify(error=str(e)), 400
        flash(str(e), "danger")
        return redirect(next_url(url_for("account")))
    if request.is_json:
        return jsonify(address_id=saved.id), 201
    flash("New address successfully saved.", "success")
    return redirect(next_url(url_for("account")))

@app.post("/account/addresses/<int:address_id>/default")
@login_required
def address_default(address_id):
    try:
        directory.set_default(current_user.id, address_id)
    except AddressError as e:
        flash(str(e), "danger")
    return redirect(url_for("account"))

@app.post("/account/addresses/<int:address_id>/delete")
@login_required
def address_delete(address_id):
    try:
        directory.remove(current_user.id, address_id)
        flash("Address removed.", "success")
    except AddressError as e:
        flash(str(e), "danger")
    return redirect(url_for("account"))

# --------------------------- SERVICES ---------------------------
@app.get("/services")
def services():
    return render_template("services.html", services=SERVICES, form={"service_type": request.args.get("service", "")},
                           today=date.today().isoformat())

@app.post("/services/book")
def services_book():
    form = request.form.to_dict()
    try:
        req = BookingRequest(**form)
    except ValidationError as e:
        for err in e.errors():
            field = ".".join(str(p) for p in err["loc"]) or "form"
            flash(f"{field}: {err['msg']}", "danger")
        return (render_template("services.html", services=SERVICES, form=form,
                                today=date.today().isoformat()), 400)
    identity = current_identity()
    try:
        appointment_id = book_appointment(engine, req, user_id=identity.uid if identity else None)
    except Exception as e:
        log.exception("Booking failed")
        notify(f"Service booking failed for {req.email}: {e}")
        flash("Could not book your appointment. Please try again.", "danger")
        return (render_template("services.html", services=SERVICES, form=form,
                                today=date.today().isoformat()), 500)
    notify(f"New booking #{appointment_id}: {req.service_type} on {req.booking_date} {req.booking_time}")
    flash(f"Appointment booked for {req.service_type} on {req.booking_date} at {req.booking_time}.", "success")
    return redirect(url_for("services"))

# --------------------------- 404 ---------------------------
@app.errorhandler(404)
def not_found(e):
    return render_template("404.html"), 404

if __name__ == "__main__":
    # single-threaded: checkout visits are mutated without locks
    app.run(host="0.0.0.0", port=3000, debug=True, threaded=False)
