"""
Operator CLI adapter for structgen.

Architectural role:
- Runs one orchestration against the configured catalog from a terminal.
- Delegates all provider work to `structgen.core.engine.Orchestrator`.

Subcommands:
- `structured PROMPT` generates and recovers one structured document.
- `image PROMPT` generates one image reference.
- `catalog [--kind chat|image]` lists ordered candidates.

`structured` and `image` accept `--provider`/`--model` to name a candidate
that is tried before the usual order.

Output:
- Results are printed to stdout as one JSON object.
- Terminal errors print `tag: message` to stderr and exit with status 1.

Configuration:
- Read from the environment (and `.env`) via `OrchestratorConfig.from_env`.
"""

import argparse
import json
import logging
import sys

from structgen.catalog.types import GenerationKind
from structgen.config import OrchestratorConfig
from structgen.core.engine import Orchestrator
from structgen.core.errors import OrchestratorError
from structgen.core.types import ADVENTURE_SHAPE, GenerationRequest, ResponseKind, Tuning


SHAPES = {"adventure": ADVENTURE_SHAPE}


def build_orchestrator(config: OrchestratorConfig) -> Orchestrator:
    return Orchestrator.from_config(config)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="structgen",
        description="Resilient structured and image generation over a provider catalog",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    structured = sub.add_parser("structured", help="Generate a structured JSON document")
    structured.add_argument("prompt", help="User prompt")
    structured.add_argument("--system", default=None, help="System instruction")
    structured.add_argument("--text", action="store_true",
                            help="Allow a plain-text result when no JSON is produced")
    structured.add_argument("--shape", choices=sorted(SHAPES), default=None,
                            help="Target shape used to score candidates")
    structured.add_argument("--temperature", type=float, default=None)
    structured.add_argument("--max-tokens", type=int, default=None)

    image = sub.add_parser("image", help="Generate one image")
    image.add_argument("prompt", help="Image prompt")

    for command in (structured, image):
        command.add_argument("--provider", default=None,
                             help="Provider id to try first")
        command.add_argument("--model", default=None,
                             help="Model id to try first")

    catalog = sub.add_parser("catalog", help="List ordered candidates")
    catalog.add_argument("--kind", choices=[k.value for k in GenerationKind], default="chat")

    return parser


def _request_from_args(args: argparse.Namespace) -> GenerationRequest:
    fields = {"prompt": args.prompt}
    if getattr(args, "system", None):
        fields["system_instruction"] = args.system
    if getattr(args, "text", False):
        fields["response_kind"] = ResponseKind.TEXT
    if getattr(args, "shape", None):
        fields["target_shape"] = SHAPES[args.shape]
    if getattr(args, "provider", None):
        fields["preferred_provider_id"] = args.provider
    if getattr(args, "model", None):
        fields["preferred_model_id"] = args.model

    temperature = getattr(args, "temperature", None)
    max_tokens = getattr(args, "max_tokens", None)
    if temperature is not None or max_tokens is not None:
        fields["tuning"] = Tuning(temperature=temperature, max_tokens=max_tokens)

    return GenerationRequest(**fields)


def _run(args: argparse.Namespace, orchestrator: Orchestrator) -> dict:
    if args.command == "catalog":
        snapshot = orchestrator.registry.catalog(GenerationKind(args.kind))
        return {
            "kind": snapshot.kind.value,
            "candidates": [
                {
                    "provider": c.provider.name,
                    "model": c.model.model_name,
                    "priority": c.provider.priority,
                    "cost_rate": c.model.cost_rate,
                }
                for c in snapshot
            ],
        }

    request = _request_from_args(args)

    if args.command == "image":
        result = orchestrator.generate_image_sync(request)
        return {
            "url": result.url,
            "provider": result.provider_used,
            "model": result.model_used,
            "cost": result.cost,
            "attempts": result.attempts,
            "prompt_used": result.prompt_used,
        }

    document = orchestrator.generate_structured_sync(request)
    attempt = document.attempt
    return {
        "value": document.value,
        "strategy": document.strategy.value,
        "confidence": document.confidence,
        "provider": attempt.provider_name if attempt else None,
        "model": attempt.model_name if attempt else None,
        "cost": attempt.cost if attempt else 0.0,
    }


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint.

    Error handling:
        - `argparse` handles invalid option combinations (exit status 2).
        - Invalid environment configuration and orchestration errors print
          `tag: message` to stderr and return 1.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = OrchestratorConfig.from_env()
    except ValueError as exc:
        print(f"ConfigurationMissing: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    orchestrator = build_orchestrator(config)
    try:
        output = _run(args, orchestrator)
    except OrchestratorError as exc:
        print(f"{exc.tag}: {exc}", file=sys.stderr)
        return 1
    finally:
        orchestrator.close()

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
