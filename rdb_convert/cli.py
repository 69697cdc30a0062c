"""Command line entry point: rdb-convert"""

import argparse
import logging
import sys

import redis

from .errors import RDBError
from .export_from_redis import connect, export_database
from .options import ParseOptions, UnsupportedEncodingPolicy
from .parser import parse_file
from .report import document_to_json, format_report


def build_arg_parser():
    parser = argparse.ArgumentParser(
        prog="rdb-convert",
        description="Decode Redis RDB snapshots to JSON or a key length report",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_flags = argparse.ArgumentParser(add_help=False)
    parse_flags.add_argument("--lenient-checksum", action="store_true",
                             help="Report a checksum mismatch instead of failing")
    parse_flags.add_argument("--skip-unsupported", action="store_true",
                             help="Skip keys with unsupported encodings instead of failing")
    parse_flags.add_argument("--max-value-bytes", type=int, default=None,
                             help="Fail on any single key/value larger than this")
    parse_flags.add_argument("--max-entries", type=int, default=None,
                             help="Fail on files with more keys than this")

    json_cmd = subparsers.add_parser("json", parents=[parse_flags], help="Convert an RDB file to JSON")
    json_cmd.add_argument("rdb_file")
    json_cmd.add_argument("output_file", nargs="?")
    json_cmd.add_argument("--pretty", action="store_true", help="Pretty print JSON output")
    json_cmd.add_argument("--simple", action="store_true",
                          help="Simple format (values only, no metadata)")

    report_cmd = subparsers.add_parser("report", parents=[parse_flags],
                                       help="Print keys sorted by length")
    report_cmd.add_argument("rdb_file")

    live_cmd = subparsers.add_parser("export-live", help="Export a running server through DUMP")
    live_cmd.add_argument("output_file", nargs="?")
    live_cmd.add_argument("--host", default="localhost")
    live_cmd.add_argument("--port", type=int, default=6379)
    live_cmd.add_argument("--db", type=int, default=0)
    live_cmd.add_argument("--password", default=None)
    live_cmd.add_argument("--pretty", action="store_true", help="Pretty print JSON output")
    live_cmd.add_argument("--max-value-bytes", type=int, default=None)
    live_cmd.add_argument("--skip-unsupported", action="store_true",
                          help="Skip keys with unsupported encodings instead of failing")
    return parser


def options_from_args(args):
    return ParseOptions(
        strict_checksum=not args.lenient_checksum,
        max_value_bytes=args.max_value_bytes,
        max_total_entries=args.max_entries,
        unsupported_encoding_policy=(
            UnsupportedEncodingPolicy.SKIP if args.skip_unsupported
            else UnsupportedEncodingPolicy.FAIL
        ),
    )


def write_output(text, output_file):
    if output_file:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(text)
        print(f"\nExported to {output_file}", file=sys.stderr)
    else:
        print(text)


def run(args):
    if args.command == "export-live":
        client = connect(args.host, args.port, args.db, args.password)
        policy = (
            UnsupportedEncodingPolicy.SKIP if args.skip_unsupported
            else UnsupportedEncodingPolicy.FAIL
        )
        document = export_database(
            client, args.db, max_value_bytes=args.max_value_bytes,
            unsupported_encoding_policy=policy,
        )
        write_output(document_to_json(document, pretty=args.pretty), args.output_file)
    else:
        document = parse_file(args.rdb_file, options_from_args(args))
        if args.command == "json":
            write_output(
                document_to_json(document, pretty=args.pretty, simple=args.simple),
                args.output_file,
            )
        else:
            print(format_report(document))
    if document.skipped:
        print(f"Skipped {len(document.skipped)} keys with unsupported encodings", file=sys.stderr)


def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        run(args)
    except redis.exceptions.ConnectionError as e:
        print(f"Redis connection error: {e}. Check that the server is running.", file=sys.stderr)
        return 1
    except (RDBError, OSError) as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1
    return 0
