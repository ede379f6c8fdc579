#!/usr/bin/env python3
"""
Inspect a module: its connectors, distinct variants and expanded rules.

Usage:
    python scripts/inspect_module.py --name bar --part 0,0,0 --part 1,0,0
    python scripts/inspect_module.py --name floor --part 0,0,0 --type 2=floor --type 5=floor --mirror
    python scripts/inspect_module.py --name corner --part 0,0,0 --part 1,0,0 --part 0,1,0 --output corner.json
"""
import sys
import json
import argparse
import logging
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voxel_wfc import (
    OUTER_MODULE_NAME,
    Module,
    VariantConfig,
    collect_rules,
    generate_variants,
    to_solver_rules,
)


def _parse_part(text):
    values = [int(v) for v in text.split(",")]
    if len(values) != 3:
        raise argparse.ArgumentTypeError(f"Part must be x,y,z: {text}")
    return tuple(values)


def _parse_diagonal(text):
    values = [float(v) for v in text.split(",")]
    if len(values) != 3:
        raise argparse.ArgumentTypeError(f"Diagonal must be x,y,z: {text}")
    return tuple(values)


def _parse_type(text):
    index, _, connector_type = text.partition("=")
    if not connector_type:
        raise argparse.ArgumentTypeError(f"Type must be index=type: {text}")
    return int(index), connector_type


def main():
    parser = argparse.ArgumentParser(
        description="Inspect a voxel module, its variants and its rules.",
    )
    parser.add_argument("--name", required=True, help="Module name")
    parser.add_argument(
        "--part", action="append", type=_parse_part, required=True,
        help="Part offset x,y,z (repeat for multi-part modules)",
    )
    parser.add_argument(
        "--diagonal", type=_parse_diagonal, default=(1.0, 1.0, 1.0),
        help="Part size x,y,z (default: 1,1,1)",
    )
    parser.add_argument(
        "--type", action="append", type=_parse_type, default=[],
        help="Connector type as index=type (repeatable)",
    )
    parser.add_argument(
        "--mirror", action="store_true",
        help="Include mirrored variants",
    )
    parser.add_argument(
        "--output", default=None,
        help="Write a JSON summary to this path",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    module = Module(args.name, args.part, args.diagonal, connector_types=dict(args.type))
    print(module)
    if not module.is_valid:
        sys.exit(1)

    for connector in module.connectors:
        print(f"  connector {connector.index:3d} {str(connector.direction):>2}  {connector.connector_type}")

    variant_set = generate_variants(module, VariantConfig(allow_mirror=args.mirror))
    print(f"\n{len(variant_set)} distinct variants")
    for variant in variant_set.variants:
        parts = " ".join(str(p) for p in variant.parts)
        print(f"  {variant.name}: {parts}")

    outer, _ = Module.empty_single(OUTER_MODULE_NAME)
    universe = variant_set.variants + [outer]
    expansion = collect_rules(universe, allowed=[])
    solver_rules = to_solver_rules(expansion.explicit, universe)
    print(f"\n{len(expansion)} explicit rules, {len(solver_rules)} solver rules")
    for issue in expansion.issues:
        print(f"  {issue}")

    if args.output:
        summary = {
            "module": module.name,
            "parts": [list(p.as_tuple()) for p in module.parts],
            "connector_types": {str(k): v for k, v in module.connector_types.items()},
            "variants": [
                {
                    "name": v.name,
                    "parts": [list(p.as_tuple()) for p in v.parts],
                    "diagonal": list(v.part_diagonal),
                }
                for v in variant_set.variants
            ],
            "rules": [[r.source_module, r.source_connector, r.target_module, r.target_connector]
                      for r in expansion.explicit],
            "solver_rules": [[r.axis, r.low_part, r.high_part] for r in solver_rules],
        }
        with open(args.output, "w") as f:
            json.dump(summary, f, indent=2)
        print(f"\nSummary saved to {args.output}")


if __name__ == "__main__":
    main()
