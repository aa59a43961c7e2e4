from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
from starlette.staticfiles import StaticFiles

from ..advisor import BusinessAdvisor
from ..config import load_advisor_settings, load_store_settings
from ..errors import AuthError, ValidationError
from ..logging import get_logger
from ..parser import parse_product_payload, parse_transaction_request
from ..paths import find_project_root
from ..preferences import PreferenceStore
from ..reports import dashboard_metrics, export_csv, export_filename, filter_history, filter_inventory, history_view
from ..session import SessionRegistry, ShopSession, store_repository_factory
from ..store.auth import AuthClient
from ..store.schema import SETUP_MESSAGE


LOG = get_logger("web")

DEFAULT_STATIC_SUBDIR = os.path.join("frontend", "dist")


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body


def build_registry(project_root: str) -> SessionRegistry:
    """Wire the Supabase-backed registry from env/.env settings."""
    store = load_store_settings(project_root)
    if store is None:
        raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set (env or .env)")
    advisor = BusinessAdvisor(load_advisor_settings(project_root))
    auth = AuthClient(store.url, store.anon_key, timeout=store.timeout)
    return SessionRegistry(auth, store_repository_factory(store), advisor)


def create_app(
    root_dir: Optional[str] = None,
    *,
    registry: Optional[SessionRegistry] = None,
    preferences: Optional[PreferenceStore] = None,
    static_dir: Optional[str] = None,
    allow_origins: Optional[List[str]] = None,
    serve_static: bool = True,
) -> Starlette:
    """Create a Starlette app exposing the shop API and optional frontend."""

    project_root = find_project_root(root_dir)
    sessions = registry or build_registry(project_root)
    prefs = preferences or PreferenceStore(project_root)

    resolved_static_dir: Optional[str] = None
    if serve_static:
        candidate = os.path.abspath(os.path.join(project_root, static_dir or DEFAULT_STATIC_SUBDIR))
        if os.path.isdir(candidate):
            resolved_static_dir = candidate
            LOG.info("Serving static frontend from %s", resolved_static_dir)
        else:
            LOG.warning("Frontend build not found at %s; API will run without static assets.", candidate)
    else:
        LOG.info("Static frontend serving disabled (API only mode).")

    async def _session(request: Request) -> ShopSession:
        session = await run_in_threadpool(sessions.get, _bearer_token(request))
        if session is None:
            raise HTTPException(status_code=401, detail="Not signed in")
        return session

    async def _ready(request: Request) -> ShopSession:
        session = await _session(request)
        if session.controller.setup_required:
            raise HTTPException(status_code=503, detail=SETUP_MESSAGE)
        return session

    def _session_payload(session: ShopSession) -> Dict[str, Any]:
        return {
            "user": session.user.as_dict(),
            "setupRequired": session.controller.setup_required,
        }

    # ---------- errors ----------
    async def http_error(_: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)

    async def validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse({"detail": str(exc)}, status_code=400)

    async def auth_error(_: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse({"detail": exc.message}, status_code=401 if (exc.status or 400) < 500 else 502)

    # ---------- auth ----------
    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    async def sign_in(request: Request) -> JSONResponse:
        body = await _json_body(request)
        session = await run_in_threadpool(
            sessions.sign_in, str(body.get("email") or ""), str(body.get("password") or "")
        )
        payload = _session_payload(session)
        payload["token"] = session.auth.access_token
        return JSONResponse(payload)

    async def sign_up(request: Request) -> JSONResponse:
        body = await _json_body(request)
        session = await run_in_threadpool(
            sessions.sign_up,
            str(body.get("email") or ""),
            str(body.get("password") or ""),
            str(body.get("name") or ""),
            str(body.get("shopName") or ""),
        )
        if session is None:
            return JSONResponse({"pendingConfirmation": True}, status_code=202)
        payload = _session_payload(session)
        payload["token"] = session.auth.access_token
        return JSONResponse(payload, status_code=201)

    async def sign_out(request: Request) -> JSONResponse:
        token = _bearer_token(request)
        if token:
            await run_in_threadpool(sessions.sign_out, token)
        return JSONResponse({"signedOut": True})

    async def current_session(request: Request) -> JSONResponse:
        return JSONResponse(_session_payload(await _session(request)))

    async def reload_session(request: Request) -> JSONResponse:
        session = await _session(request)
        ok = await run_in_threadpool(session.controller.load)
        payload = _session_payload(session)
        payload["loaded"] = ok
        return JSONResponse(payload, status_code=200 if not session.controller.setup_required else 503)

    # ---------- dashboard ----------
    async def dashboard(request: Request) -> JSONResponse:
        session = await _ready(request)
        return JSONResponse(dashboard_metrics(session.controller.snapshot))

    # ---------- inventory ----------
    async def list_products(request: Request) -> JSONResponse:
        session = await _ready(request)
        products = filter_inventory(session.controller.snapshot.inventory, request.query_params.get("search"))
        return JSONResponse({"items": [p.as_dict() for p in products], "total": len(products)})

    async def add_product(request: Request) -> JSONResponse:
        session = await _ready(request)
        product = parse_product_payload(await _json_body(request))
        stored = await run_in_threadpool(session.controller.add_product, product)
        return JSONResponse(
            {"product": stored.as_dict() if stored else None, "synced": stored is not None},
            status_code=201 if stored else 202,
        )

    async def update_product(request: Request) -> JSONResponse:
        session = await _ready(request)
        existing = session.controller.snapshot.find_product(request.path_params["product_id"])
        if existing is None:
            raise HTTPException(status_code=404, detail="Product not found")
        product = parse_product_payload(await _json_body(request), existing=existing)
        synced = await run_in_threadpool(session.controller.update_product, product)
        return JSONResponse({"product": product.as_dict(), "synced": synced})

    async def delete_product(request: Request) -> JSONResponse:
        session = await _ready(request)
        product_id = request.path_params["product_id"]
        if session.controller.snapshot.find_product(product_id) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        synced = await run_in_threadpool(session.controller.delete_product, product_id)
        return JSONResponse({"deleted": product_id, "synced": synced})

    # ---------- transactions ----------
    async def list_transactions(request: Request) -> JSONResponse:
        session = await _ready(request)
        txs = session.controller.snapshot.transactions
        return JSONResponse({"items": [t.as_dict() for t in txs], "total": len(txs)})

    async def add_transaction(request: Request) -> JSONResponse:
        session = await _ready(request)
        tx = parse_transaction_request(await _json_body(request), session.controller.snapshot.inventory)
        stored = await run_in_threadpool(session.controller.add_transaction, tx)
        return JSONResponse(
            {"transaction": (stored or tx).as_dict(), "synced": stored is not None},
            status_code=201 if stored else 202,
        )

    # ---------- history ----------
    def _history_filters(request: Request) -> Dict[str, Any]:
        qp = request.query_params
        return {
            "type_filter": qp.get("type") or "ALL",
            "date_range": qp.get("range") or "ALL",
            "search": qp.get("search") or None,
        }

    async def history(request: Request) -> JSONResponse:
        session = await _ready(request)
        return JSONResponse(history_view(session.controller.snapshot.transactions, **_history_filters(request)))

    async def history_export(request: Request) -> Response:
        session = await _ready(request)
        rows = filter_history(session.controller.snapshot.transactions, **_history_filters(request))
        return Response(
            export_csv(rows),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
        )

    # ---------- advisor ----------
    async def advisor_messages(request: Request) -> JSONResponse:
        session = await _session(request)
        return JSONResponse({"messages": [m.as_dict() for m in session.conversation.messages]})

    async def advisor_send(request: Request) -> JSONResponse:
        session = await _session(request)
        body = await _json_body(request)
        query = str(body.get("query") or "")
        if not query.strip():
            raise HTTPException(status_code=400, detail="query is required")
        reply = await run_in_threadpool(session.conversation.send, query, session.controller.snapshot)
        return JSONResponse({"reply": reply.as_dict() if reply else None})

    # ---------- preferences ----------
    async def get_theme(_: Request) -> JSONResponse:
        return JSONResponse({"theme": prefs.get_theme()})

    async def set_theme(request: Request) -> JSONResponse:
        body = await _json_body(request)
        return JSONResponse({"theme": prefs.set_theme(str(body.get("theme") or ""))})

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/auth/signin", sign_in, methods=["POST"]),
        Route("/api/auth/signup", sign_up, methods=["POST"]),
        Route("/api/auth/signout", sign_out, methods=["POST"]),
        Route("/api/session", current_session, methods=["GET"]),
        Route("/api/session/reload", reload_session, methods=["POST"]),
        Route("/api/dashboard", dashboard, methods=["GET"]),
        Route("/api/products", list_products, methods=["GET"]),
        Route("/api/products", add_product, methods=["POST"]),
        Route("/api/products/{product_id:str}", update_product, methods=["PUT"]),
        Route("/api/products/{product_id:str}", delete_product, methods=["DELETE"]),
        Route("/api/transactions", list_transactions, methods=["GET"]),
        Route("/api/transactions", add_transaction, methods=["POST"]),
        Route("/api/history", history, methods=["GET"]),
        Route("/api/history/export", history_export, methods=["GET"]),
        Route("/api/advisor", advisor_messages, methods=["GET"]),
        Route("/api/advisor", advisor_send, methods=["POST"]),
        Route("/api/preferences/theme", get_theme, methods=["GET"]),
        Route("/api/preferences/theme", set_theme, methods=["PUT"]),
    ]

    app = Starlette(
        debug=False,
        routes=routes,
        exception_handlers={
            HTTPException: http_error,
            ValidationError: validation_error,
            AuthError: auth_error,
        },
    )

    origins = allow_origins or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if resolved_static_dir:
        app.mount("/", StaticFiles(directory=resolved_static_dir, html=True), name="frontend")
    elif serve_static:
        async def missing_frontend(_: Request) -> JSONResponse:
            return JSONResponse(
                {"detail": "Frontend build missing. Build the UI into frontend/dist/ or run with --api-only."},
                status_code=503,
            )

        app.add_route("/", missing_frontend, methods=["GET"])
        app.add_route("/{path:path}", missing_frontend, methods=["GET"])

    return app


__all__ = ["create_app", "build_registry"]
