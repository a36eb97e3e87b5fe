import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from adapters.base import AdapterError
from adapters.factory import get_adapter
from adapters.odbc_driver import load_tdv_config
from adapters.tdv import ConnectionDescriptor
from utils.logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a row-capped query against a TDV server.")
    parser.add_argument("query", nargs="?", help="SQL to run (omit with --test or --schema)")
    parser.add_argument("--driver", default="tdv", help="Driver id")
    parser.add_argument("--host", help="Host/server/IP address (default: localhost)")
    parser.add_argument("--port", help="Port (default: 9401)")
    parser.add_argument("--domain", help="Domain (default: composite)")
    parser.add_argument("--database", help="Datasource name")
    parser.add_argument("--username", help="Database username")
    parser.add_argument("--password", help="Database password")
    parser.add_argument("--max-rows", type=int, help="Maximum rows to return")
    parser.add_argument("--maxrows-override", help="Per-connection row cap that takes priority over --max-rows")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--test", action="store_true", help="Run the connection probe query")
    mode.add_argument("--schema", action="store_true", help="Print the datasource schema")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not (args.query or args.test or args.schema):
        parser.error("a query is required unless --test or --schema is given")

    configure_logging(level=args.log_level)
    try:
        config = load_tdv_config()
        descriptor = ConnectionDescriptor(
            host=args.host,
            port=args.port,
            domain=args.domain,
            database=args.database,
            username=args.username,
            password=args.password,
            maxrows_override=args.maxrows_override,
            max_rows=args.max_rows if args.max_rows is not None else config.default_max_rows,
        )
        adapter = get_adapter(args.driver, descriptor, config=config)
        if args.schema:
            payload: Dict[str, Any] = adapter.get_schema()
        elif args.test:
            payload = adapter.test_connection().to_dict()
        else:
            payload = adapter.run_query(args.query).to_dict()
    except AdapterError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.pretty:
        print(json.dumps(payload, indent=2, default=str))
    else:
        print(json.dumps(payload, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
