#!/usr/bin/env python3
import argparse
import json
import os

import uvicorn

from .config import CONFIG_PATH, DB_PATH, load_config
from .main import create_app
from .services import PosServices


def main(argv=None):
    parser = argparse.ArgumentParser(prog="bookpos-agent", description="Offline-first bookstore POS agent")
    parser.add_argument("--init-db", action="store_true", help="Initialize local SQLite schema and exit")
    parser.add_argument(
        "--db",
        default=os.environ.get("BOOKPOS_DB_PATH", DB_PATH),
        help="SQLite DB path (default: ./bookpos.sqlite).",
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("BOOKPOS_CONFIG_PATH", CONFIG_PATH),
        help="Config JSON path (default: ./bookpos.config.json).",
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("BOOKPOS_HOST", "127.0.0.1"),
        help="HTTP host to bind (default: 127.0.0.1). Use 0.0.0.0 only if you explicitly want LAN exposure.",
    )
    parser.add_argument("--port", type=int, default=int(os.environ.get("BOOKPOS_PORT", "7070")), help="HTTP port (default: 7070)")
    parser.add_argument(
        "--sync-once",
        action="store_true",
        help="Pull the catalog, push pending sales, merge server history, print the report and exit",
    )
    args = parser.parse_args(argv)

    db_path = os.path.abspath(args.db)
    config_path = os.path.abspath(args.config)
    services = PosServices(load_config(config_path), db_path=db_path, config_path=config_path)

    if args.init_db:
        services.init_db()
        print("ok")
        return 0

    if args.sync_once:
        services.init_db()
        report = services.sync.sync_now()
        print(json.dumps(report, indent=2, default=str))
        return 0 if report.get("ok") else 1

    app = create_app(services)
    # Print localhost for convenience when bound locally; otherwise print the explicit host.
    public_host = "localhost" if args.host in {"127.0.0.1", "localhost"} else args.host
    print(f"Bookpos agent running on http://{public_host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
