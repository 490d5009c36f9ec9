"""Command line interface for elementary assertions."""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import load_settings
from .errors import ElementaryAssertionsError, EnricherUnavailableError, InputContractError
from .io import dump_yaml, parse_document, read_document, read_text, source_input_for_file, write_text
from .render import FORMATS, LAYOUTS, render_elementary_assertions
from .run import Enricher, run_elementary_assertions, run_from_relations
from .validate import validate_elementary_assertions

logger = logging.getLogger(__name__)

DEFAULT_ENRICHER = "linguistic_enricher:run_pipeline"
DEV_DIAGNOSTIC_FLAGS = (
    "--diagnose-wiki-upstream",
    "--diagnose-wti-wiring",
    "--diagnose-coverage-audit",
)
RENDER_FLAGS = (
    ("--segments", "true"),
    ("--mentions", "true"),
    ("--coverage", "true"),
    ("--debug-ids", "false"),
    ("--normalize-determiners", "true"),
    ("--render-uncovered-delta", "false"),
)


def enforce_dev_flag_policy(args: Sequence[str]) -> None:
    """Reject developer-only diagnostic flags on every public subcommand."""

    used = [flag for flag in DEV_DIAGNOSTIC_FLAGS if flag in args]
    if not used:
        return
    if "--dev" not in args:
        raise InputContractError(f"Diagnostic flags require --dev: {', '.join(used)}")
    raise InputContractError(
        f"Diagnostic flags are developer-only and not available in the public CLI: {', '.join(used)}"
    )


def parse_strict_boolean(value: str, flag: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise InputContractError(f"Invalid value for {flag}: expected true|false.")


def resolve_enricher(reference: str) -> Enricher:
    """Import ``module:function`` and return the callable."""

    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise EnricherUnavailableError(f"Invalid enricher reference {reference!r}: expected module:function")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise EnricherUnavailableError(f"Unable to load upstream enricher {reference}: {exc}") from exc
    enricher = getattr(module, attr, None)
    if not callable(enricher):
        raise EnricherUnavailableError(f"Upstream enricher {reference} is not callable")
    return enricher


def _emit(text: str, out: Optional[Path]) -> None:
    if out is not None:
        write_text(out, text)
    else:
        sys.stdout.write(text)


def _handle_run(args: argparse.Namespace) -> None:
    provided = [value for value in (args.text, args.in_path, args.relations) if value is not None]
    if len(provided) > 1:
        raise InputContractError("Exactly one of --text, --in, or --relations is required; multiple provided.")
    if not provided:
        raise InputContractError("Exactly one of --text, --in, or --relations is required; none provided.")

    settings = load_settings(args.config)
    endpoint = args.wti_endpoint or settings.wti.endpoint
    wti_timeout_ms = args.wti_timeout_ms or settings.wti.timeout_ms

    if args.relations is not None:
        raw = read_text(args.relations, "relations input file")
        relations_doc = parse_document(raw, args.relations.suffix, "relations input file")
        document = run_from_relations(
            relations_doc,
            source_inputs=[source_input_for_file(args.relations, "seed.relations.yaml", raw)],
            wti_endpoint=endpoint,
            windows=settings.heuristics,
            suppress_default_relations_source=True,
        )
    else:
        source_inputs: List[Dict[str, Any]] = []
        if args.in_path is not None:
            text = read_text(args.in_path, "input file")
            source_inputs.append(source_input_for_file(args.in_path, "seed.txt", text))
        else:
            text = args.text
        document = run_elementary_assertions(
            text,
            resolve_enricher(args.enricher),
            wti_endpoint=endpoint,
            timeout_ms=args.timeout_ms,
            wti_timeout_ms=wti_timeout_ms,
            source_inputs=source_inputs,
            windows=settings.heuristics,
            health_path=settings.wti.health_path,
        )
    _emit(dump_yaml(document), args.out)


def _handle_validate(args: argparse.Namespace) -> None:
    document = read_document(args.in_path, "input file")
    validate_elementary_assertions(document, strict=args.strict)
    print("ok")


def _handle_render(args: argparse.Namespace) -> None:
    document = read_document(args.in_path, "input file")
    options: Dict[str, Any] = {"format": args.format, "layout": args.layout}
    for flag, _ in RENDER_FLAGS:
        dest = flag.lstrip("-").replace("-", "_")
        options[dest] = parse_strict_boolean(getattr(args, dest), flag)
    _emit(render_elementary_assertions(document, options), args.out)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="elementary-assertions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Derive elementary assertions")
    run_parser.add_argument("--text", help="Input text")
    run_parser.add_argument("--in", dest="in_path", type=Path, help="Path to a UTF-8 text file")
    run_parser.add_argument("--relations", type=Path, help="Path to a relations document (YAML or JSON)")
    run_parser.add_argument("--out", type=Path, help="Output YAML path")
    run_parser.add_argument("--timeout-ms", type=float, help="Upstream enricher timeout in milliseconds")
    run_parser.add_argument("--wti-endpoint", help="wikipedia-title-index endpoint URL")
    run_parser.add_argument("--wti-timeout-ms", type=float, help="Health check timeout in milliseconds")
    run_parser.add_argument("--config", type=Path, help="YAML settings file")
    run_parser.add_argument(
        "--enricher",
        default=DEFAULT_ENRICHER,
        help="Upstream enricher as module:function (default: %(default)s)",
    )
    run_parser.set_defaults(func=_handle_run)

    validate_parser = sub.add_parser("validate", help="Validate an elementary assertions document")
    validate_parser.add_argument("--in", dest="in_path", type=Path, required=True, help="Document path")
    validate_parser.add_argument("--strict", action="store_true", help="Also check diagnostics semantics")
    validate_parser.set_defaults(func=_handle_validate)

    render_parser = sub.add_parser("render", help="Render an elementary assertions document")
    render_parser.add_argument("--in", dest="in_path", type=Path, required=True, help="Document path")
    render_parser.add_argument("--out", type=Path, help="Output path")
    render_parser.add_argument("--format", choices=FORMATS, default="txt")
    render_parser.add_argument("--layout", choices=LAYOUTS, default="compact")
    for flag, default in RENDER_FLAGS:
        render_parser.add_argument(flag, default=default, metavar="true|false")
    render_parser.set_defaults(func=_handle_render)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    try:
        if argv and argv[0] in ("run", "validate", "render"):
            enforce_dev_flag_policy(argv[1:])
        args = parser.parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )
        if not getattr(args, "func", None):
            parser.print_help()
            return
        args.func(args)
    except ElementaryAssertionsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = [
    "DEFAULT_ENRICHER",
    "build_parser",
    "enforce_dev_flag_policy",
    "main",
    "parse_strict_boolean",
    "resolve_enricher",
]
