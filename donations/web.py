"""Public donation form, administrator login and the donation listing."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .auth import (
    InvalidCredentials,
    authenticate,
    login_session,
    logout_session,
    session_user_id,
)
from .config import Settings, load_settings
from .database import Database, StoreError, resolve_database_path
from .models import Donation, User
from .rate_limit import LoginAttemptTracker
from .validation import (
    InvalidPayload,
    DonationSubmission,
    is_api_request,
    submission_from_form,
    submission_from_json,
    validate_donation,
)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

SESSION_COOKIE_NAME = "donations_session"
LOCKED_OUT_MESSAGE = "Too many login attempts. Please try again later."

logger = logging.getLogger("donations.web")


def _client_id(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return request.client.host


def _format_amount(value: float) -> str:
    return f"{value:,.2f}"


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    session_secret: Optional[str] = None,
    login_attempts: Optional[LoginAttemptTracker] = None,
) -> FastAPI:
    """Create the donation web application."""

    if settings is None:
        settings = load_settings()

    if database is None:
        db_path = settings.database_path or resolve_database_path(None)
        database = Database(db_path)
    # Schema bootstrap is idempotent and must precede any query.
    database.initialize()

    if session_secret is None:
        session_secret = settings.session_secret
    if not session_secret:
        raise RuntimeError("DONATIONS_SESSION_SECRET must be configured to serve the donation desk")

    if login_attempts is None:
        login_attempts = LoginAttemptTracker(
            max_attempts=settings.max_login_attempts,
            lockout_seconds=settings.lockout_seconds,
        )

    app = FastAPI(
        title="Donation Desk",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.database = database
    app.state.settings = settings
    app.state.login_attempts = login_attempts

    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.session_secure,
        same_site="lax",
        max_age=settings.session_max_age,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.proxy_hosts)

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters["amount"] = _format_amount

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        logger.error("Store failure while serving %s %s: %s", request.method, request.url.path, exc)
        if is_api_request(request.headers.get("content-type")):
            return JSONResponse(
                {"error": "Internal server error."},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return PlainTextResponse(
            "The service is temporarily unavailable.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    def _flash(request: Request, key: str, value: object) -> None:
        request.session[key] = value

    def _consume(request: Request, key: str, default):
        value = request.session.pop(key, default)
        if isinstance(value, type(default)):
            return value
        return default

    def _get_current_user(request: Request) -> Optional[User]:
        user_id = session_user_id(request.session)
        if user_id is None:
            return None
        return database.get_user(user_id)

    def _redirect(request: Request, name: str) -> RedirectResponse:
        return RedirectResponse(
            request.url_for(name),
            status_code=status.HTTP_303_SEE_OTHER,
        )

    def _locked_out(client_id: str) -> PlainTextResponse:
        logger.warning("Login attempts from %s are locked out", client_id)
        return PlainTextResponse(LOCKED_OUT_MESSAGE, status_code=status.HTTP_429_TOO_MANY_REQUESTS)

    # ------------------------------------------------------------------
    # Donations
    # ------------------------------------------------------------------
    @app.get("/", name="home")
    async def home(request: Request):
        return RedirectResponse(request.url_for("donation_form"), status_code=status.HTTP_302_FOUND)

    @app.get("/donate", response_class=HTMLResponse, name="donation_form")
    async def donation_form(request: Request):
        success = _consume(request, "success", "")
        errors: Dict[str, str] = _consume(request, "errors", {})
        old: Dict[str, str] = _consume(request, "old", {})
        return templates.TemplateResponse(
            request,
            "donation.html",
            {"success": success, "errors": errors, "old": old},
        )

    async def _submit_json(request: Request) -> JSONResponse:
        try:
            submission = submission_from_json(await request.body())
        except InvalidPayload:
            logger.warning("Rejected donation request with an unparsable JSON body")
            return JSONResponse(
                {"error": "Invalid JSON payload."},
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        errors = validate_donation(submission)
        if errors:
            return JSONResponse(
                {"errors": errors},
                status_code=422,
            )

        try:
            donation = database.insert_donation(submission)
        except StoreError:
            logger.exception("Failed to save donation submitted through the API")
            return JSONResponse(
                {"error": "Failed to save donation."},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.info("Recorded donation #%s through the API", donation.id)
        return JSONResponse(
            {"message": "Donation successful."},
            status_code=status.HTTP_201_CREATED,
        )

    async def _submit_form(request: Request):
        form = await request.form()
        submission: DonationSubmission = submission_from_form(form)

        errors = validate_donation(submission)
        if errors:
            _flash(request, "errors", errors)
            _flash(
                request,
                "old",
                {
                    "name": submission.name,
                    "bank_info": submission.bank_info,
                    "amount": submission.amount,
                    "description": submission.description,
                },
            )
            return _redirect(request, "donation_form")

        try:
            donation = database.insert_donation(submission)
        except StoreError:
            logger.exception("Failed to save donation submitted through the form")
            return PlainTextResponse(
                "Failed to save donation.",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.info("Recorded donation #%s through the form", donation.id)
        _flash(request, "success", f"Thank you for your donation, {submission.name}!")
        return _redirect(request, "donation_form")

    @app.post("/donate", name="submit_donation")
    async def submit_donation(request: Request):
        if is_api_request(request.headers.get("content-type")):
            return await _submit_json(request)
        return await _submit_form(request)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if _get_current_user(request) is not None:
            return _redirect(request, "admin")

        client_id = _client_id(request)
        if login_attempts.check(client_id):
            return _locked_out(client_id)

        errors: Dict[str, str] = _consume(request, "login_errors", {})
        old: Dict[str, str] = _consume(request, "login_old", {})
        return templates.TemplateResponse(
            request,
            "login.html",
            {"errors": errors, "old": old},
        )

    @app.post("/login", name="process_login")
    async def process_login(request: Request):
        if _get_current_user(request) is not None:
            return _redirect(request, "admin")

        # Prune, check and record in one step; every admitted submission counts.
        client_id = _client_id(request)
        if not login_attempts.acquire(client_id):
            return _locked_out(client_id)

        form = await request.form()
        username = str(form.get("username") or "").strip()
        password = str(form.get("password") or "")

        errors: Dict[str, str] = {}
        if not username:
            errors["username"] = "Username is required."
        if not password:
            errors["password"] = "Password is required."

        if not errors:
            try:
                user = authenticate(database, username, password)
            except InvalidCredentials as exc:
                logger.warning("Failed login attempt for %s from %s", username, client_id)
                errors["general"] = exc.message
            else:
                login_session(request.session, user)
                logger.info("User %s signed in", user.id)
                return _redirect(request, "admin")

        _flash(request, "login_errors", errors)
        _flash(request, "login_old", {"username": username})
        return _redirect(request, "show_login")

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        logout_session(request.session)
        return _redirect(request, "show_login")

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    @app.get("/admin", response_class=HTMLResponse, name="admin")
    async def admin(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        donations: List[Donation] = database.list_donations_by_recency()
        return templates.TemplateResponse(
            request,
            "admin.html",
            {"user": user, "donations": donations},
        )

    return app


__all__ = ["create_app", "LOCKED_OUT_MESSAGE", "SESSION_COOKIE_NAME"]
