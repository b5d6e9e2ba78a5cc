"""Build, create, sync and validate CLI commands."""

import argparse

from codefactory.cli.common import open_manifest, open_registry, parse_params, resolve_manifest_path
from codefactory.factories.validator import validate_manifest
from codefactory.manifest.loader import save_manifest
from codefactory.paths import marker_attr, project_root
from codefactory.producer import Producer


def _producer(args: argparse.Namespace, with_manifest: bool = True) -> Producer:
    return Producer(
        open_registry(args),
        manifest=open_manifest(args) if with_manifest else None,
        marker_attr=marker_attr(),
        dry_run=getattr(args, "dry_run", False),
        root=project_root(),
    )


def cmd_validate(args: argparse.Namespace) -> int:
    result = validate_manifest(open_manifest(args), open_registry(args))
    print(result.summary())
    return 0 if result.passed else 1


def cmd_build(args: argparse.Namespace) -> int:
    producer = _producer(args)
    result = producer.build_manifest()
    print(result.summary())
    if not args.dry_run:
        save_manifest(producer.manifest, resolve_manifest_path(args))
    return 0 if result.success else 1


def cmd_create(args: argparse.Namespace) -> int:
    producer = _producer(args, with_manifest=False)
    path = producer.create_file(args.factory, parse_params(args.param), args.output)
    prefix = "[DRY RUN] " if args.dry_run else ""
    print(f"  {prefix}Created {path}")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    producer = _producer(args)
    result = producer.sync_all(args.paths)
    print(result.summary())
    if not args.dry_run and len(producer.manifest):
        save_manifest(producer.manifest, resolve_manifest_path(args))
    return 0 if result.success else 1
