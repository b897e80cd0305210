from __future__ import annotations
import sys

import asyncio
import logging
import os
from typing import Any, Dict, Optional, Tuple

import httpx
import redis.asyncio as redis
import uvicorn
from werkzeug.security import check_password_hash, generate_password_hash

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, ORJSONResponse

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import config, messages
from .cashier import CashierAdapter, HmacCashier
from .helpers import ct_equal, new_session_id
from .infra.sql import Database
from .model.db import Base
from .model.orders import EventOutcome, OrderRepository, order_to_dict
from .model.inquiries import InquiryRepository, inquiry_to_dict
from .model.suggestions import SuggestionRepository, suggestion_to_dict
from .model.adminsession import (
        AdminSessionStore, new_store, BACKEND as SESSION_BACKEND
)
from .notify import ChannelNotifier, Notifier
from .notify import events
from .schemas import (
    AdminMessage, InquiryReply, InquirySubmission, InvalidKind,
    InvalidRequest, LoginRequest, OrderSubmission, RecordId, StatusUpdate,
    SuggestionSubmission, parse,
)
from .uploads import ScreenshotStorage

logger = logging.getLogger(__name__)

# ----------------------------
# Wiring
# ----------------------------
database = Database(config.DATABASE_URL)

screenshots = ScreenshotStorage(
    config.UPLOAD_DIR, config.MAX_UPLOAD_BYTES, config.ALLOWED_IMAGE_TYPES
)

# never keep the plaintext around for comparisons
ADMIN_PASSWORD_HASH = config.ADMIN_PASSWORD_HASH or generate_password_hash(
    config.ADMIN_PASSWORD, method=config.ADMIN_HASH_METHOD
)

cashier: Optional[CashierAdapter] = (
    HmacCashier(config.CASHIER_WEBHOOK_SECRET)
    if config.CASHIER_WEBHOOK_SECRET else None
)

app = FastAPI(
    title="Trip STORE",
    default_response_class=ORJSONResponse,
)
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SESSION_SECRET,
    max_age=config.SESSION_TTL_SECONDS,
    same_site="none" if config.PRODUCTION else "lax",
    https_only=config.PRODUCTION,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def get_db() -> AsyncSession:
    async with database.session() as session:
        yield session


def orders_repo(db: AsyncSession = Depends(get_db)) -> OrderRepository:
    return OrderRepository(db, database.gated)


def inquiries_repo(db: AsyncSession = Depends(get_db)) -> InquiryRepository:
    return InquiryRepository(db, database.gated)


def suggestions_repo(
    db: AsyncSession = Depends(get_db),
) -> SuggestionRepository:
    return SuggestionRepository(db, database.gated)


async def admin_sessions() -> AdminSessionStore:
    if SESSION_BACKEND == "redis":
        yield new_store(r=app.state.redis,
                        ttl_seconds=config.SESSION_TTL_SECONDS)
    else:
        async with database.session() as session:
            yield new_store(db=session, gated=database.gated,
                            ttl_seconds=config.SESSION_TTL_SECONDS)


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_cashier() -> Optional[CashierAdapter]:
    return cashier


# ---
# startup / shutdown
# ---
@app.on_event("startup")
async def _say_hello():
    print('\n' * 2)
    print('=' * 50)
    print('Trip STORE backend is starting up...')
    print(f'   - Database:         {database.url.split("://")[0]}')
    print(f'   - Admin sessions:   {SESSION_BACKEND}')
    print(f'   - Uploads:          {screenshots.directory}')
    print('=' * 50)
    print('\n' * 2)


@app.on_event("startup")
async def _db_init():
    await database.create_schema(Base.metadata)
    screenshots.ensure_dir()
    if SESSION_BACKEND != "redis":
        async with database.session() as session:
            store = new_store(db=session, gated=database.gated,
                              ttl_seconds=config.SESSION_TTL_SECONDS)
            dropped = await store.expire()
        if dropped:
            logger.info("dropped %d expired admin sessions", dropped)


@app.on_event("startup")
async def _http_client_start():
    app.state.http = httpx.AsyncClient(timeout=5.0)


@app.on_event("startup")
async def _redis_start():
    if SESSION_BACKEND == "redis":
        REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379")
        app.state.redis = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
            retry_on_timeout=True,
        )


@app.on_event("startup")
async def _notifier_start():
    notifier = ChannelNotifier(
        http=app.state.http,
        smtp_host=config.SMTP_HOST,
        smtp_port=config.SMTP_PORT,
        smtp_user=config.SMTP_USER,
        smtp_pass=config.SMTP_PASS,
        from_name=config.SMTP_FROM_NAME,
        staff_email=config.NOTIFY_EMAIL,
        telegram_token=config.TELEGRAM_BOT_TOKEN,
        telegram_chat_id=config.TELEGRAM_CHAT_ID,
    )
    if not notifier.email_enabled:
        logger.warning("SMTP not configured: email notifications disabled")
    if not notifier.telegram_enabled:
        logger.info("Telegram not configured: chat notifications disabled")
    app.state.notifier = notifier


@app.on_event("shutdown")
async def _http_client_stop():
    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
        app.state.http = None


@app.on_event("shutdown")
async def _redis_stop():
    r = getattr(app.state, "redis", None)
    if r is not None:
        await r.close()
        app.state.redis = None


@app.on_event("shutdown")
async def _db_stop():
    await database.dispose()


# ----------------------------
# Error responses
# ----------------------------
def _fail(status_code: int, message: str, **extra: Any) -> ORJSONResponse:
    return ORJSONResponse(
        {"success": False, "message": message, **extra},
        status_code=status_code,
    )


@app.exception_handler(InvalidRequest)
async def _invalid_request(request: Request, exc: InvalidRequest):
    return _fail(400, exc.message, error=exc.kind.value)


@app.exception_handler(RequestValidationError)
async def _invalid_params(request: Request, exc: RequestValidationError):
    return _fail(400, messages.INVALID_VALUE,
                 error=InvalidKind.INVALID_VALUE.value)


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    resp = _fail(exc.status_code, str(exc.detail))
    if exc.headers:
        resp.headers.update(exc.headers)
    return resp


@app.exception_handler(SQLAlchemyError)
async def _db_error(request: Request, exc: SQLAlchemyError):
    logger.exception("datastore error on %s %s",
                     request.method, request.url.path, exc_info=exc)
    return _fail(500, messages.DATABASE_ERROR)


@app.exception_handler(Exception)
async def _server_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s",
                     request.method, request.url.path, exc_info=exc)
    return _fail(500, messages.SERVER_ERROR)


# ----------------------------
# Helpers
# ----------------------------
def _is_json(request: Request) -> bool:
    return "application/json" in request.headers.get("content-type", "")


async def read_payload(request: Request) -> Dict[str, Any]:
    """JSON or form body as a plain dict (files dropped)."""
    if _is_json(request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise InvalidRequest(InvalidKind.MALFORMED_BODY,
                                 messages.MALFORMED_BODY)
        return body
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


async def read_order_form(
    request: Request,
) -> Tuple[Dict[str, Any], Optional[UploadFile]]:
    if _is_json(request):
        return await read_payload(request), None
    screenshots.reject_oversized(request.headers.get("content-length"))
    form = await request.form()
    upload = form.get("screenshot")
    if not isinstance(upload, UploadFile) or not upload.filename:
        upload = None
    fields = {k: v for k, v in form.items() if isinstance(v, str)}
    return fields, upload


async def require_admin(
    request: Request,
    store: AdminSessionStore = Depends(admin_sessions),
) -> str:
    sid = request.session.get("sid")
    record = await store.get(sid) if sid else None
    if not record:
        request.session.pop("sid", None)
        raise HTTPException(status_code=403, detail=messages.UNAUTHORIZED)
    return record["username"]


@app.get("/api/health")
async def health():
    return {"ok": True}


# ----------------------------
# Customer submissions
# ----------------------------
@app.post("/api/order")
async def submit_order(
    request: Request,
    background: BackgroundTasks,
    repo: OrderRepository = Depends(orders_repo),
    notifier: Notifier = Depends(get_notifier),
):
    fields, upload = await read_order_form(request)
    sub = parse(OrderSubmission, fields)

    if upload is None and config.REQUIRE_SCREENSHOT:
        raise InvalidRequest(InvalidKind.MISSING_FIELD,
                             messages.SCREENSHOT_REQUIRED, "screenshot")

    # everything is validated before the first byte hits the disk
    image = (
        await screenshots.read_image(upload) if upload is not None else None
    )
    screenshot = await screenshots.write(*image) if image else None

    try:
        order = await repo.add(
            name=sub.name,
            player_id=sub.player_id,
            email=sub.email,
            uc_amount=sub.uc_amount,
            bundle=sub.bundle,
            total_amount=str(sub.total_amount),
            transaction_id=sub.transaction_id,
            screenshot=screenshot,
        )
    except SQLAlchemyError:
        logger.exception("order insert failed")
        screenshots.remove(screenshot)
        raise HTTPException(status_code=500, detail=messages.SAVE_FAILED)

    background.add_task(notifier.dispatch, events.new_order(order))
    return {"success": True, "id": order.id}


@app.post("/api/inquiry")
async def submit_inquiry(
    request: Request,
    background: BackgroundTasks,
    repo: InquiryRepository = Depends(inquiries_repo),
    notifier: Notifier = Depends(get_notifier),
):
    sub = parse(InquirySubmission, await read_payload(request))
    inquiry = await repo.add(name=sub.name, email=sub.email,
                             message=sub.message)
    background.add_task(notifier.dispatch, events.new_inquiry(inquiry))
    return {"success": True, "id": inquiry.id}


@app.post("/api/suggestion")
async def submit_suggestion(
    request: Request,
    background: BackgroundTasks,
    repo: SuggestionRepository = Depends(suggestions_repo),
    notifier: Notifier = Depends(get_notifier),
):
    sub = parse(SuggestionSubmission, await read_payload(request))
    suggestion = await repo.add(name=sub.name, contact=sub.contact,
                                message=sub.message)
    background.add_task(notifier.dispatch, events.new_suggestion(suggestion))
    return {"success": True, "id": suggestion.id}


# ----------------------------
# Cashier webhook
# ----------------------------
@app.post("/api/cashier/webhook")
async def cashier_webhook(
    request: Request,
    background: BackgroundTasks,
    repo: OrderRepository = Depends(orders_repo),
    notifier: Notifier = Depends(get_notifier),
    adapter: Optional[CashierAdapter] = Depends(get_cashier),
):
    if adapter is None:
        raise HTTPException(503, detail=messages.WEBHOOK_DISABLED)

    payload = await request.body()
    event = adapter.verify_webhook(payload, dict(request.headers))
    order_id, idem = adapter.event_ids(event)
    if order_id is None:
        raise HTTPException(400, detail="missing metadata.order_id")

    status = adapter.target_status(event)
    if status is None:
        # event type we don't act on
        return {"ok": True, "ignored": True}

    outcome, order = await repo.apply_payment_event(order_id, status, idem)
    if outcome is EventOutcome.NOT_FOUND:
        raise HTTPException(404, detail=messages.ORDER_NOT_FOUND)
    if outcome is EventOutcome.REPLAY:
        return {"ok": True, "idempotent": True}

    background.add_task(notifier.dispatch, events.status_changed(order))
    return {"ok": True, "order_status": order.status}


# ----------------------------
# Admin: session
# ----------------------------
@app.post("/api/admin/login")
async def admin_login(
    request: Request,
    store: AdminSessionStore = Depends(admin_sessions),
):
    try:
        creds = parse(LoginRequest, await read_payload(request))
    except InvalidRequest:
        raise HTTPException(401, detail=messages.BAD_CREDENTIALS)

    # evaluate both so timing doesn't tell which one was wrong
    ok_user = ct_equal(creds.username, config.ADMIN_USERNAME)
    ok_pass = check_password_hash(ADMIN_PASSWORD_HASH, creds.password)
    if not (ok_user and ok_pass):
        raise HTTPException(401, detail=messages.BAD_CREDENTIALS)

    previous = request.session.get("sid")
    if previous:
        await store.destroy(previous)

    sid = new_session_id()
    await store.set(sid, creds.username)
    request.session.clear()
    request.session["sid"] = sid
    return {"success": True}


@app.post("/api/admin/logout")
async def admin_logout(
    request: Request,
    _admin: str = Depends(require_admin),
    store: AdminSessionStore = Depends(admin_sessions),
):
    await store.destroy(request.session["sid"])
    request.session.clear()
    return {"success": True}


@app.get("/api/admin/me")
async def admin_me(admin: str = Depends(require_admin)):
    return {"success": True, "username": admin}


# ----------------------------
# Admin: listings
# ----------------------------
@app.get("/api/admin/orders")
async def admin_orders(
    _admin: str = Depends(require_admin),
    repo: OrderRepository = Depends(orders_repo),
):
    rows = await repo.list_all()
    return {"success": True, "data": [order_to_dict(o) for o in rows]}


@app.get("/api/admin/inquiries")
async def admin_inquiries(
    _admin: str = Depends(require_admin),
    repo: InquiryRepository = Depends(inquiries_repo),
):
    rows = await repo.list_all()
    return {"success": True, "data": [inquiry_to_dict(i) for i in rows]}


@app.get("/api/admin/suggestions")
async def admin_suggestions(
    _admin: str = Depends(require_admin),
    repo: SuggestionRepository = Depends(suggestions_repo),
):
    rows = await repo.list_all()
    return {"success": True, "data": [suggestion_to_dict(s) for s in rows]}


# ----------------------------
# Admin: orders
# ----------------------------
@app.post("/api/admin/update-status")
async def admin_update_status(
    request: Request,
    background: BackgroundTasks,
    _admin: str = Depends(require_admin),
    repo: OrderRepository = Depends(orders_repo),
    notifier: Notifier = Depends(get_notifier),
):
    upd = parse(StatusUpdate, await read_payload(request))
    order = await repo.set_status(upd.id, upd.status)
    if order is None:
        raise HTTPException(404, detail=messages.ORDER_NOT_FOUND)
    background.add_task(notifier.dispatch, events.status_changed(order))
    return {"success": True, "status": order.status}


async def _delete_order(order_id: int, repo: OrderRepository):
    order = await repo.delete(order_id)
    if order is None:
        raise HTTPException(404, detail=messages.ORDER_NOT_FOUND)
    if order.screenshot:
        screenshots.remove(order.screenshot)
    return {"success": True}


@app.delete("/api/admin/orders/{order_id}")
async def admin_delete_order(
    order_id: int,
    _admin: str = Depends(require_admin),
    repo: OrderRepository = Depends(orders_repo),
):
    return await _delete_order(order_id, repo)


@app.delete("/api/admin/delete-order")
async def admin_delete_order_legacy(
    request: Request,
    _admin: str = Depends(require_admin),
    repo: OrderRepository = Depends(orders_repo),
):
    rid = parse(RecordId, {**request.query_params,
                           **await read_payload(request)})
    return await _delete_order(rid.id, repo)


@app.get("/api/admin/orders/{order_id}/screenshot")
async def admin_order_screenshot(
    order_id: int,
    _admin: str = Depends(require_admin),
    repo: OrderRepository = Depends(orders_repo),
):
    order = await repo.get(order_id)
    if order is None or not order.screenshot:
        raise HTTPException(404, detail=messages.NO_SCREENSHOT)
    path = screenshots.path_for(order.screenshot)
    if path is None or not os.path.isfile(path):
        raise HTTPException(404, detail=messages.FILE_NOT_FOUND)
    return FileResponse(path, headers={"Cache-Control": "private, no-store"})


# ----------------------------
# Admin: inquiries & suggestions
# ----------------------------
async def _delete_inquiry(inquiry_id: int, repo: InquiryRepository):
    if not await repo.delete(inquiry_id):
        raise HTTPException(404, detail=messages.INQUIRY_NOT_FOUND)
    return {"success": True}


async def _delete_suggestion(suggestion_id: int, repo: SuggestionRepository):
    if not await repo.delete(suggestion_id):
        raise HTTPException(404, detail=messages.SUGGESTION_NOT_FOUND)
    return {"success": True}


@app.delete("/api/admin/inquiries/{inquiry_id}")
async def admin_delete_inquiry(
    inquiry_id: int,
    _admin: str = Depends(require_admin),
    repo: InquiryRepository = Depends(inquiries_repo),
):
    return await _delete_inquiry(inquiry_id, repo)


@app.delete("/api/admin/delete-inquiry")
async def admin_delete_inquiry_legacy(
    request: Request,
    _admin: str = Depends(require_admin),
    repo: InquiryRepository = Depends(inquiries_repo),
):
    rid = parse(RecordId, {**request.query_params,
                           **await read_payload(request)})
    return await _delete_inquiry(rid.id, repo)


@app.delete("/api/admin/suggestions/{suggestion_id}")
async def admin_delete_suggestion(
    suggestion_id: int,
    _admin: str = Depends(require_admin),
    repo: SuggestionRepository = Depends(suggestions_repo),
):
    return await _delete_suggestion(suggestion_id, repo)


@app.delete("/api/admin/delete-suggestion")
async def admin_delete_suggestion_legacy(
    request: Request,
    _admin: str = Depends(require_admin),
    repo: SuggestionRepository = Depends(suggestions_repo),
):
    rid = parse(RecordId, {**request.query_params,
                           **await read_payload(request)})
    return await _delete_suggestion(rid.id, repo)


@app.post("/api/admin/reply-inquiry")
async def admin_reply_inquiry(
    request: Request,
    _admin: str = Depends(require_admin),
    repo: InquiryRepository = Depends(inquiries_repo),
    notifier: Notifier = Depends(get_notifier),
):
    body = parse(InquiryReply, await read_payload(request))
    inquiry = await repo.get(body.inquiry_id)
    if inquiry is None:
        raise HTTPException(404, detail=messages.INQUIRY_NOT_FOUND)

    note = events.admin_reply(
        to=body.email or inquiry.email,
        message=body.message or inquiry.message,
        reply=body.reply,
    )
    # the one synchronous channel call: the admin sees the failure
    try:
        await notifier.send_email(note.recipient, note.subject, note.html)
    except Exception:
        logger.exception("reply to inquiry %s failed", inquiry.id)
        raise HTTPException(500, detail=messages.REPLY_FAILED)

    await repo.mark_replied(inquiry.id)
    return {"success": True}


@app.post("/api/admin/send-message")
async def admin_send_message(
    request: Request,
    background: BackgroundTasks,
    _admin: str = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    msg = parse(AdminMessage, await read_payload(request))
    background.add_task(
        notifier.dispatch,
        events.broadcast(msg.email, msg.subject, msg.message),
    )
    return {"success": True}


# ----------------------------
# Entry point
# ----------------------------
async def _check_datastore() -> None:
    try:
        await database.ping()
    finally:
        await database.dispose()


def main() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_check_datastore())
    except Exception:
        logger.exception("cannot open datastore at %s", config.DATABASE_URL)
        sys.exit(1)
    uvicorn.run(app, host=config.HOST, port=config.PORT,
                proxy_headers=config.PRODUCTION)
