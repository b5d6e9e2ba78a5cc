"""Manifest CLI commands."""

import argparse
import json

from codefactory.cli.common import open_manifest, parse_params, resolve_manifest_path
from codefactory.manifest.loader import save_manifest
from codefactory.manifest.store import GenerationCall


def cmd_manifest_list(args: argparse.Namespace) -> int:
    store = open_manifest(args)
    calls = store.list()
    if not calls:
        print("Manifest is empty.")
        return 0

    print(f"\n  {'Id':<28} {'Factory':<24} {'Output':<36} Depends on")
    print(f"  {'─' * 100}")
    for call in calls:
        deps = ", ".join(call.depends_on) or "-"
        print(f"  {call.id:<28} {call.factory:<24} {call.output_path:<36} {deps}")
    print(f"\n  {len(calls)} call(s)")
    if store.last_generated:
        print(f"  Last generated: {store.last_generated}")
    return 0


def cmd_manifest_add(args: argparse.Namespace) -> int:
    store = open_manifest(args)
    call = store.add(GenerationCall(
        id=args.id,
        factory=args.factory,
        output_path=args.output,
        params=parse_params(args.param),
        depends_on=args.depends_on or [],
    ))
    save_manifest(store, resolve_manifest_path(args))
    print(f"  Added '{call.id}' ({call.factory} -> {call.output_path})")
    return 0


def cmd_manifest_update(args: argparse.Namespace) -> int:
    store = open_manifest(args)
    depends_on = None
    if args.no_deps:
        depends_on = []
    elif args.depends_on is not None:
        depends_on = args.depends_on
    call = store.update(
        args.id,
        params=parse_params(args.param),
        output_path=args.output,
        depends_on=depends_on,
        factory=args.factory,
    )
    save_manifest(store, resolve_manifest_path(args))
    print(f"  Updated '{call.id}'")
    print(f"  {json.dumps(call.to_dict(), indent=2)}")
    return 0


def cmd_manifest_remove(args: argparse.Namespace) -> int:
    store = open_manifest(args)
    dependents = store.dependents_of(args.id)
    store.remove(args.id, force=args.force)
    save_manifest(store, resolve_manifest_path(args))
    print(f"  Removed '{args.id}'")
    if dependents:
        print(f"  WARNING: still referenced by {', '.join(dependents)}; update them")
    return 0


def cmd_manifest_order(args: argparse.Namespace) -> int:
    store = open_manifest(args)
    for i, call in enumerate(store.get_execution_order(), 1):
        print(f"  {i:>3}. {call.id}")
    return 0
