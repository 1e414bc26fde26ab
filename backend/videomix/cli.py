"""
Videomix CLI - operator commands.

Commands:
- plan: print the mix plans a project would produce (nothing is rendered)
- estimate: price an output count for a project's settings
- sweep: run the restart sweep against the database
- serve: run the HTTP service

Exit Codes:
- 0: Success
- 1: Validation error (settings, source material)
- 4: System error (catalog, database)
"""

import argparse
import json
import os
import sys
from typing import NoReturn

import uvicorn

from videomix.catalog import CatalogError
from videomix.config import EngineConfig
from videomix.jobs import sweep_interrupted_jobs
from videomix.main import build_service
from videomix.mixing import MixingError
from videomix.persistence import PersistenceError
from videomix.service import MixService


def _service(args: argparse.Namespace, require_catalog: bool = True) -> MixService:
    if args.catalog_dir:
        os.environ["VIDEOMIX_CATALOG_DIR"] = args.catalog_dir
    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(4)
    if require_catalog and not config.catalog_dir:
        print("ERROR: No catalog directory (use --catalog-dir or VIDEOMIX_CATALOG_DIR)", file=sys.stderr)
        sys.exit(4)
    return build_service(config)


def cmd_plan(args: argparse.Namespace) -> NoReturn:
    service = _service(args)
    try:
        settings = service.load_settings(args.project_id)
        if args.count:
            settings = settings.with_output_count(args.count)
        plans = service.preview_plans(args.project_id, settings)
    except MixingError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)
    except CatalogError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(4)

    rows = [
        {
            "index": plan.index,
            "clips": list(plan.clip_ids),
            "speeds": list(plan.speeds),
            "duration": round(plan.target_duration, 3),
            "transitions": [
                entry.transition_into_next.value if entry.transition_into_next else None
                for entry in plan.entries
            ],
            "warnings": list(plan.warnings),
        }
        for plan in plans
    ]
    if args.json:
        print(json.dumps(rows, indent=2))
    else:
        print(f"{len(plans)} of {settings.output_count} requested mix(es) achievable")
        for row in rows:
            speeds = ", ".join(f"{speed:g}x" for speed in row["speeds"])
            print(f"  #{row['index']:>3}  {' -> '.join(row['clips'])}  [{speeds}]  {row['duration']:g}s")
    sys.exit(0)


def cmd_estimate(args: argparse.Namespace) -> NoReturn:
    service = _service(args)
    try:
        settings = service.load_settings(args.project_id)
        count = args.count if args.count is not None else len(service.preview_plans(args.project_id, settings))
        estimate = service.estimate_credits(count, settings)
    except MixingError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)
    except CatalogError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(4)
    print(json.dumps(estimate.model_dump(mode="json"), indent=2))
    sys.exit(0)


def cmd_sweep(args: argparse.Namespace) -> NoReturn:
    service = _service(args, require_catalog=False)
    try:
        swept = sweep_interrupted_jobs(service.registry, service.ledger)
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(4)
    print(f"✓ Sweep complete: {len(swept)} interrupted job(s) failed")
    for job_id in swept:
        print(f"  {job_id}")
    sys.exit(0)


def cmd_serve(args: argparse.Namespace) -> NoReturn:
    if args.catalog_dir:
        os.environ["VIDEOMIX_CATALOG_DIR"] = args.catalog_dir
    uvicorn.run("videomix.main:create_app", factory=True, host=args.host, port=args.port)
    sys.exit(0)


def main() -> NoReturn:
    parser = argparse.ArgumentParser(prog="videomix", description="Videomix operator commands")
    parser.add_argument("--catalog-dir", help="Directory of <project>.json manifests")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_plan = subparsers.add_parser("plan", help="Preview a project's mix plans")
    parser_plan.add_argument("project_id")
    parser_plan.add_argument("--count", type=int, help="Override outputCount")
    parser_plan.add_argument("--json", action="store_true", help="Print plans as JSON")
    parser_plan.set_defaults(func=cmd_plan)

    parser_estimate = subparsers.add_parser("estimate", help="Price a project's mixes")
    parser_estimate.add_argument("project_id")
    parser_estimate.add_argument("--count", type=int, help="Output count (default: achievable count)")
    parser_estimate.set_defaults(func=cmd_estimate)

    parser_sweep = subparsers.add_parser("sweep", help="Fail jobs interrupted by a restart")
    parser_sweep.set_defaults(func=cmd_sweep)

    parser_serve = subparsers.add_parser("serve", help="Run the HTTP service")
    parser_serve.add_argument("--host", default="127.0.0.1")
    parser_serve.add_argument("--port", type=int, default=8085)
    parser_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
