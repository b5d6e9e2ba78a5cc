"""Command-line interface for codefactory.

Usage:
    codefactory factory list
    codefactory factory show <name> [--json]
    codefactory manifest list
    codefactory manifest add <id> <factory> <output> [--param k=v]... [--depends-on <id>]...
    codefactory manifest update <id> [--param k=v]... [--output <path>] [--factory <name>]
                                     [--depends-on <id>]... [--no-deps]
    codefactory manifest remove <id> [--force]
    codefactory manifest order
    codefactory validate
    codefactory build [--dry-run]
    codefactory create <factory> [<output>] [--param k=v]... [--dry-run]
    codefactory sync <file-or-dir>... [--dry-run]
"""

import argparse
import logging
import sys

from codefactory.cli.build import cmd_build, cmd_create, cmd_sync, cmd_validate
from codefactory.cli.factory import cmd_factory_list, cmd_factory_show
from codefactory.cli.manifest import (
    cmd_manifest_add,
    cmd_manifest_list,
    cmd_manifest_order,
    cmd_manifest_remove,
    cmd_manifest_update,
)
from codefactory.errors import CodeFactoryError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codefactory",
        description="Generate code from templates and sync hand edits back",
    )
    parser.add_argument(
        "--manifest", default=None,
        help="Path to the manifest (default: $CODEFACTORY_MANIFEST or ./codefactory.manifest.json)",
    )
    parser.add_argument(
        "--factories", default=None,
        help="Template directory (default: $CODEFACTORY_FACTORIES_DIR or ./factories)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # factory
    fac = sub.add_parser("factory", help="Inspect available factories")
    fac_sub = fac.add_subparsers(dest="subcommand")
    fac_sub.add_parser("list", help="List factories")
    show = fac_sub.add_parser("show", help="Show a factory's parameters")
    show.add_argument("name")
    show.add_argument("--json", action="store_true", help="Print the catalog entry as JSON")

    # manifest
    man = sub.add_parser("manifest", help="Manifest operations")
    man_sub = man.add_subparsers(dest="subcommand")
    man_sub.add_parser("list", help="List generation calls")

    add = man_sub.add_parser("add", help="Add a generation call")
    add.add_argument("id")
    add.add_argument("factory")
    add.add_argument("output", help="Output file path")
    add.add_argument("--param", action="append", metavar="KEY=VALUE", help="Parameter (JSON or string)")
    add.add_argument("--depends-on", action="append", default=None, metavar="ID")

    upd = man_sub.add_parser("update", help="Update a generation call")
    upd.add_argument("id")
    upd.add_argument("--param", action="append", metavar="KEY=VALUE", help="Parameter to merge")
    upd.add_argument("--output", default=None, help="New output path")
    upd.add_argument("--factory", default=None, help="New factory name")
    upd.add_argument("--depends-on", action="append", default=None, metavar="ID",
                     help="Replace dependencies")
    upd.add_argument("--no-deps", action="store_true", help="Clear all dependencies")

    rm = man_sub.add_parser("remove", help="Remove a generation call")
    rm.add_argument("id")
    rm.add_argument("--force", action="store_true", help="Remove even if other calls depend on it")

    man_sub.add_parser("order", help="Print the build order")

    # top-level
    sub.add_parser("validate", help="Validate the manifest against the factories")

    bld = sub.add_parser("build", help="Build every manifest call in dependency order")
    bld.add_argument("--dry-run", action="store_true", help="Preview without writing")

    cr = sub.add_parser("create", help="Create a new file from a factory")
    cr.add_argument("factory")
    cr.add_argument("output", nargs="?", default=None,
                    help="Output path (default: the factory's outputPath)")
    cr.add_argument("--param", action="append", metavar="KEY=VALUE", help="Parameter (JSON or string)")
    cr.add_argument("--dry-run", action="store_true", help="Preview without writing")

    syn = sub.add_parser("sync", help="Re-render files from their edited regions")
    syn.add_argument("paths", nargs="+", help="Files or directories to sync")
    syn.add_argument("--dry-run", action="store_true", help="Preview without writing")

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    dispatch = {
        ("factory", "list"): cmd_factory_list,
        ("factory", "show"): cmd_factory_show,
        ("manifest", "list"): cmd_manifest_list,
        ("manifest", "add"): cmd_manifest_add,
        ("manifest", "update"): cmd_manifest_update,
        ("manifest", "remove"): cmd_manifest_remove,
        ("manifest", "order"): cmd_manifest_order,
        ("validate", ""): cmd_validate,
        ("build", ""): cmd_build,
        ("create", ""): cmd_create,
        ("sync", ""): cmd_sync,
    }

    subcommand: str | None = getattr(args, "subcommand", None)
    handler = dispatch.get((args.command, subcommand or ""))
    if handler is None:
        parser.parse_args([args.command, "--help"])
        return 0

    try:
        return handler(args)
    except (CodeFactoryError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
