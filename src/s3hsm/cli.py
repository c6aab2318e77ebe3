"""s3hsm CLI - HSM storage tier connector for S3-compatible object stores.

Usage:
    s3hsm store <key> <path> [bucket] [--encrypt | --no-encrypt] [options]
    s3hsm retrieve <path> <location> [options]
    s3hsm purge <location> [options]

"put", "get" and "remove" are accepted as aliases of the three commands.

Exit codes:
    0: Success
    1: Backend, location or local file failure
    2: Configuration or usage error
    N: Injected failure with --fail N
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from typing import Any

from s3hsm.config import load_faults, load_settings
from s3hsm.errors import EXIT_CONFIG, EXIT_FAILURE, HsmConnectorError
from s3hsm.faults import inject_faults
from s3hsm.logging_config import configure_logging, enable_trace_logging
from s3hsm.storage.factory import connect
from s3hsm.transfer import ConnectFn, TransferOrchestrator

logger = logging.getLogger(__name__)


def cmd_store(orchestrator: TransferOrchestrator, args: argparse.Namespace) -> int:
    """Upload a file and print its location on stdout."""
    location = orchestrator.store(args.key, args.path, bucket=args.bucket, encrypt=args.encrypt)
    print(location.encode())
    return 0


def cmd_retrieve(orchestrator: TransferOrchestrator, args: argparse.Namespace) -> int:
    """Download the object named by a location into a file."""
    orchestrator.retrieve(args.location, args.path)
    return 0


def cmd_purge(orchestrator: TransferOrchestrator, args: argparse.Namespace) -> int:
    """Delete the object named by a location."""
    orchestrator.purge(args.location)
    return 0


def _common_options() -> argparse.ArgumentParser:
    """Options shared by every command. All default to None so that unset
    options never override the config file or environment."""
    common = argparse.ArgumentParser(add_help=False)

    conn = common.add_argument_group("connection")
    conn.add_argument("--config", metavar="PATH", help="YAML configuration file")
    conn.add_argument("--backend", help="Backend type: s3 or filesystem")
    conn.add_argument("--endpoint", metavar="HOST[:PORT]", help="Object store endpoint")
    conn.add_argument("--region", help="Signing region")
    conn.add_argument("--access-key", help="Access key id")
    conn.add_argument("--secret-key", help="Secret access key")
    conn.add_argument(
        "--use-ssl",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Talk HTTPS to the endpoint",
    )
    conn.add_argument("--signature-version", help="Request signing protocol: v2 or v4")
    conn.add_argument(
        "--base-dir", metavar="PATH", help="Base directory of the filesystem backend"
    )
    conn.add_argument(
        "--trace",
        action="store_true",
        default=None,
        help="Log every backend request and response",
    )

    diag = common.add_argument_group("diagnostics")
    diag.add_argument("--log-file", metavar="PATH", help="Write diagnostics to PATH")
    diag.add_argument("--log-level", default="INFO", help="Diagnostic log level")

    faults = common.add_argument_group("fault injection")
    faults.add_argument(
        "--sleep", type=float, metavar="SECONDS", help="Sleep before running the command"
    )
    faults.add_argument(
        "--fail", type=int, metavar="CODE", help="Exit with CODE instead of running the command"
    )
    return common


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="s3hsm",
        description="s3hsm - HSM storage tier connector for S3-compatible object stores",
    )
    common = _common_options()
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    store_parser = subparsers.add_parser(
        "store", aliases=["put"], parents=[common], help="Upload a file, print its location"
    )
    store_parser.add_argument("key", help="Object key (e.g. the HSM file id)")
    store_parser.add_argument("path", help="Local file to upload")
    store_parser.add_argument("bucket", nargs="?", default=None, help="Target bucket")
    store_parser.add_argument(
        "--encrypt",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Encrypt the object with a fresh per-object key",
    )
    store_parser.set_defaults(handler=cmd_store)

    retrieve_parser = subparsers.add_parser(
        "retrieve", aliases=["get"], parents=[common], help="Download an object to a file"
    )
    retrieve_parser.add_argument("path", help="Local file to write")
    retrieve_parser.add_argument("location", help="Location printed by store")
    retrieve_parser.set_defaults(handler=cmd_retrieve)

    purge_parser = subparsers.add_parser(
        "purge", aliases=["remove"], parents=[common], help="Delete an object"
    )
    purge_parser.add_argument("location", help="Location printed by store")
    purge_parser.set_defaults(handler=cmd_purge)

    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Turn command-line options into a settings overrides mapping."""
    return {
        "connection": {
            "backend": args.backend,
            "endpoint": args.endpoint,
            "region": args.region,
            "access_key": args.access_key,
            "secret_key": args.secret_key,
            "use_ssl": args.use_ssl,
            "signature_version": args.signature_version,
            "base_dir": args.base_dir,
            "trace": args.trace,
        },
        "faults": {
            "sleep": args.sleep,
            "fail": args.fail,
        },
    }


def main(
    argv: list[str] | None = None,
    *,
    connect_fn: ConnectFn = connect,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Backend, location or local file failure
        2: Configuration or usage error
        N: Injected failure
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help(sys.stderr)
        return EXIT_CONFIG

    try:
        diagnostics = configure_logging(args.log_level, args.log_file)
        overrides = _overrides(args)
        inject_faults(load_faults(args.config, overrides), sleep_fn)

        settings = load_settings(args.config, overrides)
        if settings.connection.trace:
            enable_trace_logging()

        orchestrator = TransferOrchestrator(settings, connect_fn=connect_fn, logger=diagnostics)
        return int(args.handler(orchestrator, args))

    except HsmConnectorError as e:
        print(f"s3hsm: {e}", file=sys.stderr)
        return e.exit_code

    except Exception as e:
        # Fail-closed: unexpected errors still end the process non-zero
        logger.exception("Unexpected error")
        print(f"s3hsm: internal error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
