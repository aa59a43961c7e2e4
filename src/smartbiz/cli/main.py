from __future__ import annotations

import argparse
import getpass
import os
import sys
from typing import Sequence

from ..config import load_store_settings
from ..errors import AuthError, ValidationError
from ..logging import get_logger
from ..paths import expand_abs
from ..reports import export_csv, export_filename, filter_history
from ..session import store_repository_factory
from ..state import ShopStateController
from ..store.auth import AuthClient
from ..store.schema import SETUP_MESSAGE, SETUP_SQL

LOG = get_logger("cli-main")


def _serve(ns: argparse.Namespace) -> int:
    from ..web import create_app
    import uvicorn

    try:
        app = create_app(
            root_dir=os.getcwd(),
            static_dir=ns.static_dir,
            allow_origins=ns.allow_origins,
            serve_static=not ns.api_only,
        )
    except RuntimeError as e:
        LOG.error(str(e))
        return 2

    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def _schema(_: argparse.Namespace) -> int:
    print(SETUP_SQL.strip())
    return 0


def _export(ns: argparse.Namespace) -> int:
    settings = load_store_settings(os.getcwd())
    if settings is None:
        LOG.error("SUPABASE_URL and SUPABASE_ANON_KEY must be set (env or .env)")
        return 2
    password = ns.password or os.environ.get("SMARTBIZ_PASSWORD") or getpass.getpass("Password: ")

    auth = AuthClient(settings.url, settings.anon_key, timeout=settings.timeout)
    try:
        session = auth.sign_in(ns.email, password)
    except AuthError as e:
        LOG.error(f"Sign-in failed: {e.message}")
        return 1

    controller = ShopStateController(store_repository_factory(settings)(session))
    if not controller.load():
        LOG.error(SETUP_MESSAGE if controller.setup_required else "Could not load transactions.")
        return 1

    try:
        rows = filter_history(
            controller.snapshot.transactions,
            type_filter=ns.type,
            date_range=ns.range,
            search=ns.search,
        )
    except ValidationError as e:
        LOG.error(str(e))
        return 2

    out = expand_abs(ns.output or export_filename())
    os.makedirs(os.path.dirname(out) or ".", exist_ok=True)
    with open(out, "w", encoding="utf-8", newline="") as f:
        f.write(export_csv(rows))
    LOG.info(f"Wrote {len(rows)} transaction(s) to {out}")
    print(out)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="smartbiz",
        description="SmartBiz shop manager: API server and maintenance utilities.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the shop API and optional frontend server.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--log-level", default="info")
    serve.add_argument("--static-dir", help="Override static frontend directory relative to project root")
    serve.add_argument("--api-only", action="store_true", help="Serve JSON API without static frontend")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve.set_defaults(handler=_serve)

    schema = subparsers.add_parser("schema", help="Print the SQL that creates the tables and RLS policies.")
    schema.set_defaults(handler=_schema)

    export = subparsers.add_parser("export", help="Sign in and write the transaction history as CSV.")
    export.add_argument("--email", required=True)
    export.add_argument("--password", help="Defaults to SMARTBIZ_PASSWORD or an interactive prompt")
    export.add_argument("--type", default="ALL", choices=["ALL", "SALE", "EXPENSE"])
    export.add_argument("--range", default="ALL", choices=["ALL", "TODAY", "WEEK", "MONTH"])
    export.add_argument("--search")
    export.add_argument("--output", help="CSV path (default: transactions-YYYY-MM-DD.csv)")
    export.set_defaults(handler=_export)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.debug(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
