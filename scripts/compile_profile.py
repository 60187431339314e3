"""Compile a personalization quiz JSON file, or apply a section update to a stored profile."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import compiler
import env_validation
from schemas import SECTION_NAMES
from weight_table import WeightTableRegistry


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to a full profile JSON document, or to the section data when --section is given.",
    )
    parser.add_argument(
        "--section",
        type=str,
        default=None,
        help=f"Replace a single section ({', '.join(SECTION_NAMES)}) of the profile given by --prior.",
    )
    parser.add_argument(
        "--prior",
        type=str,
        default=None,
        help="Path to the stored profile JSON (required with --section).",
    )
    parser.add_argument(
        "--no-recompute",
        action="store_true",
        help="Keep the stored computedProfile when applying a section update.",
    )
    parser.add_argument(
        "--weights",
        type=str,
        default=None,
        help="Optional path to an alternate derivation weight table.",
    )
    parser.add_argument(
        "--insights",
        action="store_true",
        help="Print personalization insights instead of the profile document.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Optional path to write the JSON result instead of stdout.",
    )
    return parser.parse_args(argv)


def _load_json(path: str) -> Any:
    with Path(path).open("r", encoding="utf-8") as fh:
        return json.load(fh)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        env_validation.validate_environment()
        logging.basicConfig(level=env_validation.log_level(), format="%(levelname)s %(name)s: %(message)s")
        weights = WeightTableRegistry(args.weights).table if args.weights else None
        document = _load_json(args.input)
        prior = _load_json(args.prior) if args.prior else None
    except (OSError, ValueError, env_validation.EnvironmentError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.section and prior is None:
        print("error: --section requires --prior", file=sys.stderr)
        return 2

    try:
        if args.section:
            user_id = prior.get("userId") if isinstance(prior, dict) else None
            profile = compiler.reconcile(
                user_id,
                args.section,
                document,
                recompute_profile=not args.no_recompute,
                prior_profile=prior,
                weights=weights,
            )
        else:
            profile = compiler.compile_profile(document, weights=weights)
        result = compiler.summarize(profile) if args.insights else profile.to_document()
    except compiler.PersonalizationError as exc:
        print(json.dumps(exc.to_dict(), indent=2, ensure_ascii=False), file=sys.stderr)
        return 1

    payload = json.dumps(result, indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
    print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
