from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from engine.builder import MetadataBuilder
from engine.config import load_engine_config
from engine.errors import MetadataEngineError
from schemas.complexity_ir import features_for
from schemas.context_ir import ResultContext


def _parse_features(items: Optional[List[str]]) -> Dict[str, object]:
    features: Dict[str, object] = {}
    for item in items or []:
        if "=" not in item:
            raise argparse.ArgumentTypeError(f"feature must be name=value, got {item!r}")
        name, value = item.split("=", 1)
        features[name.strip()] = value.strip()
    return features


def _split_history(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _emit(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _cmd_estimate(builder: MetadataBuilder, args: argparse.Namespace) -> int:
    features = features_for(args.tool, _parse_features(args.feature))
    estimate = builder.estimator.estimate(args.tool, features, args.timeout_ms)
    _emit(estimate.model_dump(mode="json"))
    return 0


def _cmd_suggest(builder: MetadataBuilder, args: argparse.Namespace) -> int:
    ctx = ResultContext(
        num_outputs=args.outputs,
        has_branches=args.branches,
        complexity=args.complexity,
    )
    suggestions = builder.suggestions.suggest(args.tool, ctx, args.timeout_ms)
    _emit([item.model_dump(mode="json") for item in suggestions])
    return 0


def _cmd_presets(builder: MetadataBuilder, args: argparse.Namespace) -> int:
    matches = builder.matcher.match(_split_history(args.history), args.tool)
    _emit([item.model_dump(mode="json") for item in matches])
    return 0


def _cmd_stats(builder: MetadataBuilder, args: argparse.Namespace) -> int:
    store = builder.store
    tools = [args.tool] if args.tool else (store.tools() if store else [])
    rows = []
    for tool in tools:
        samples = store.query_samples(tool) if store else []
        mean = sum(s.duration_ms for s in samples) / len(samples) if samples else 0.0
        rows.append({"tool": tool, "samples": len(samples), "mean_duration_ms": round(mean, 1)})
    _emit(rows)
    return 0


def _cmd_prune(builder: MetadataBuilder, args: argparse.Namespace) -> int:
    removed = builder.apply_retention(args.max_age_days, args.max_samples)
    _emit({"removed": removed})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect tool timing and suggestion metadata")
    parser.add_argument("--config", type=Path, default=None, help="Engine config YAML")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    estimate = sub.add_parser("estimate", help="Predict duration for a tool call")
    estimate.add_argument("--tool", required=True)
    estimate.add_argument("--feature", action="append", help="Complexity feature name=value")
    estimate.add_argument("--timeout-ms", type=int, default=None)
    estimate.set_defaults(func=_cmd_estimate)

    suggest = sub.add_parser("suggest", help="List next-tool suggestions")
    suggest.add_argument("--tool", required=True)
    suggest.add_argument("--outputs", type=int, default=0)
    suggest.add_argument("--branches", action="store_true")
    suggest.add_argument(
        "--complexity", choices=["simple", "moderate", "complex"], default="moderate"
    )
    suggest.add_argument("--timeout-ms", type=int, default=None)
    suggest.set_defaults(func=_cmd_suggest)

    presets = sub.add_parser("presets", help="Match a tool history against presets")
    presets.add_argument("--history", default="", help="Comma-separated prior tools")
    presets.add_argument("--tool", default=None, help="Tool just invoked")
    presets.set_defaults(func=_cmd_presets)

    stats = sub.add_parser("stats", help="Sample counts per tool")
    stats.add_argument("--tool", default=None)
    stats.set_defaults(func=_cmd_stats)

    prune = sub.add_parser("prune", help="Apply sample retention")
    prune.add_argument("--max-age-days", type=float, default=None)
    prune.add_argument("--max-samples", type=int, default=None)
    prune.set_defaults(func=_cmd_prune)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_engine_config(args.config)
        builder = MetadataBuilder.from_config(config)
        if args.command == "prune" and args.max_age_days is None and args.max_samples is None:
            args.max_age_days = config.retention.max_age_days
            args.max_samples = config.retention.max_samples_per_tool
        return args.func(builder, args)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except MetadataEngineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
