import argparse
import contextlib
import json
import logging
import sys

from core.config import VARIANTS, settings
from core.errors import IngestionError
from pipeline.orchestrator import Auditor

log = logging.getLogger(__name__)


def _print(obj):
    print(json.dumps(obj, indent=2, default=str))


def cmd_audit(args):
    auditor = Auditor(variant=args.variant)
    try:
        with contextlib.ExitStack() as stack:
            in_stream = stack.enter_context(open(args.input, newline="")) if args.input else sys.stdin
            out_stream = stack.enter_context(open(args.output, "w")) if args.output else sys.stdout
            written = auditor.run(in_stream, out_stream)
    except (IngestionError, OSError) as exc:
        log.error("%s", exc)
        raise SystemExit(1) from exc
    log.info("wrote %d records", written)


def cmd_check(args):
    auditor = Auditor(variant=args.variant)
    _print(auditor.audit(args.hostname).to_doc())


def cmd_config(args):
    _print(settings.model_dump())


def main():
    parser = argparse.ArgumentParser(description="HTTP/HTTPS redirect-chain TLS auditor")
    sub = parser.add_subparsers()

    p_audit = sub.add_parser("audit", help="Audit hostnames from CSV, write JSON lines")
    p_audit.add_argument("--input", "-i", help="CSV file, first column is the hostname (default stdin)")
    p_audit.add_argument("--output", "-o", help="JSON lines file (default stdout)")
    p_audit.add_argument("--variant", choices=sorted(VARIANTS), default=None, help="policy set to run")
    p_audit.set_defaults(func=cmd_audit)

    p_check = sub.add_parser("check", help="Audit a single hostname")
    p_check.add_argument("hostname")
    p_check.add_argument("--variant", choices=sorted(VARIANTS), default=None)
    p_check.set_defaults(func=cmd_check)

    p_config = sub.add_parser("config", help="Show effective settings")
    p_config.set_defaults(func=cmd_config)

    args = parser.parse_args()
    logging.basicConfig(
        level=settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
