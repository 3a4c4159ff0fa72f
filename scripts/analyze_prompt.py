#!/usr/bin/env python3
"""Run the trustflow analysis pipeline on a prompt from the command line.

Usage:
    python scripts/analyze_prompt.py "Review this oil and gas lease agreement"
    python scripts/analyze_prompt.py --file request.txt --metric royalty-rate=0.3
    python scripts/analyze_prompt.py --classify-only "HIPAA compliance review"
    python scripts/analyze_prompt.py --list-use-cases

Options:
    --use-case ID       Bind to this use case instead of inferring one
    --metadata JSON     Document metadata, e.g. '{"source": "upload", "hash": "abc"}'
    --metric NAME=VAL   Numeric fact checked against use-case thresholds (repeatable)
    --strict            Fail when classification is ambiguous
    --classify-only     Print the classification and stop
    --log-level LEVEL   Logging level (default: $TRUSTFLOW_LOG_LEVEL or INFO)

Prints the response as JSON. Exit code is 0 for success or partial, 1 otherwise.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from trustflow.classifier import PromptClassifier  # noqa: E402
from trustflow.errors import TrustflowError  # noqa: E402
from trustflow.pipeline import AnalysisPipeline, AnalysisRequest  # noqa: E402
from trustflow.usecases import get_use_case_catalog  # noqa: E402

logger = logging.getLogger("trustflow.cli")


def _parse_metrics(values: list[str]) -> dict[str, float]:
    metrics: dict[str, float] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep:
            raise ValueError(f"Metric must be NAME=VALUE: {item}")
        metrics[name.strip()] = float(raw)
    return metrics


def _read_prompt(args: argparse.Namespace) -> str:
    if args.file:
        return Path(args.file).read_text()
    if args.prompt:
        return " ".join(args.prompt)
    return sys.stdin.read()


def main() -> int:
    parser = argparse.ArgumentParser(description="Classify and analyze a prompt")
    parser.add_argument("prompt", nargs="*", help="Prompt text (default: read stdin)")
    parser.add_argument("--file", type=str, help="Read the prompt from a file")
    parser.add_argument("--use-case", type=str, help="Explicit use-case id")
    parser.add_argument("--metadata", type=str, default="{}", help="Document metadata as JSON")
    parser.add_argument("--metric", action="append", default=[], help="NAME=VALUE metric")
    parser.add_argument("--strict", action="store_true", help="Fail on ambiguous classification")
    parser.add_argument("--classify-only", action="store_true", help="Only classify the prompt")
    parser.add_argument("--list-use-cases", action="store_true", help="List catalog use cases")
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("TRUSTFLOW_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.list_use_cases:
        summaries = get_use_case_catalog().list_summaries()
        print(json.dumps([s.model_dump() for s in summaries], indent=2))
        return 0

    try:
        metadata = json.loads(args.metadata)
        metrics = _parse_metrics(args.metric)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    prompt = _read_prompt(args).strip()
    if not prompt:
        print("Error: empty prompt", file=sys.stderr)
        return 2

    if args.classify_only:
        try:
            result = PromptClassifier().classify(prompt, strict=args.strict)
        except TrustflowError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return 0

    request = AnalysisRequest(
        prompt=prompt,
        use_case_id=args.use_case,
        metadata=metadata,
        metrics=metrics,
        strict=args.strict,
    )
    response = AnalysisPipeline().run(request)
    print(json.dumps(response.model_dump(mode="json"), indent=2))
    logger.info(f"Session {response.session_id} finished: {response.status}")
    return 0 if response.status in ("success", "partial") else 1


if __name__ == "__main__":
    sys.exit(main())
