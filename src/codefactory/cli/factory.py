"""Factory CLI commands."""

import argparse
import json

from codefactory.cli.common import open_registry


def cmd_factory_list(args: argparse.Namespace) -> int:
    registry = open_registry(args)
    entries = registry.list()
    if not entries:
        print("No factories found.")
        return 0

    width = max(len(e["name"]) for e in entries) + 2
    print(f"\n  {'Name':<{width}} Description")
    print(f"  {'─' * (width + 40)}")
    for entry in entries:
        print(f"  {entry['name']:<{width}} {entry['description']}")
    print(f"\n  {len(entries)} factory(ies)")
    return 0


def cmd_factory_show(args: argparse.Namespace) -> int:
    registry = open_registry(args)
    factory = registry.get(args.name)
    if factory is None:
        print(f"ERROR: Factory '{args.name}' not found")
        return 1

    entry = factory.catalog_entry()
    if args.json:
        print(json.dumps(entry, indent=2))
        return 0

    print(f"\n  {factory.name}")
    print(f"  {'─' * max(len(factory.name), 40)}")
    print(f"  {factory.description}")
    if factory.output_path:
        print(f"  Output:      {factory.output_path}")
    print("  Params:")
    for name, definition in factory.params.items():
        flag = "required" if definition.required else f"default={definition.default!r}"
        print(f"    {name + ':':<20}{definition.type:<20}{flag}")
    if entry["unrecoverable"]:
        print(f"  Not recoverable on sync: {', '.join(entry['unrecoverable'])}")
    print()
    return 0
