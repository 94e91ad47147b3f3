from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from .ingest.service import DocumentError, DocumentLoader
from .orchestrator import AI_DISABLED, PipelineConfig, cinematify_book, cinematify_text
from .providers.errors import ConfigurationError, ProviderError
from .providers.model import ProviderName


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Turn a novel or chapter into screenplay-style cinematic blocks."
    )
    parser.add_argument("input", type=Path, help="Path to a .txt, .md, .html or .pdf file")
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional path to pipeline configuration JSON/YAML",
    )
    parser.add_argument(
        "--provider",
        choices=[AI_DISABLED] + [name.value for name in ProviderName],
        help="Model provider (overrides config and CINEMATIFIER_PROVIDER)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip model calls and use the deterministic offline engine",
    )
    parser.add_argument(
        "--chapters",
        action="store_true",
        help="Split the input into chapters and cinematify each in turn",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Where to write the result JSON (defaults to stdout)",
    )
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for whole responses instead of parsing streamed output",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig.from_file(args.config) if args.config else PipelineConfig.from_env()
    updates: dict[str, object] = {}
    if args.provider:
        updates["provider"] = args.provider
    if args.offline:
        updates["provider"] = AI_DISABLED
    if args.no_stream:
        updates["use_streaming"] = False
    return config.model_copy(update=updates) if updates else config


def _report_progress(fraction: float, message: str) -> None:
    logging.getLogger("cinematifier.cli").info("[%3.0f%%] %s", fraction * 100, message)


async def _run(args: argparse.Namespace, config: PipelineConfig) -> dict:
    document = DocumentLoader().load(args.input)
    if args.chapters:
        book = await cinematify_book(document.text, config, title=document.title, on_progress=_report_progress)
        return book.to_wire()
    result = await cinematify_text(document.text, config, on_progress=_report_progress)
    return result.to_wire()


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = resolve_config(args)
        payload = asyncio.run(_run(args, config))
    except (ConfigurationError, DocumentError, ProviderError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        print(f"error: {exc.filename}: file not found", file=sys.stderr)
        return 1

    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
        print(f"Wrote cinematified output to {args.output}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
