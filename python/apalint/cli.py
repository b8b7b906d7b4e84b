import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from apalint import __version__
from apalint.config import EngineSettings
from apalint.errors import ApalintError
from apalint.fixes import apply_fix
from apalint.ingest import extract_docx
from apalint.models import Issue, Severity
from apalint.rules.engine import ComplianceEngine
from apalint.rules.scoring import compliance_score, severity_counts


def _configure_logging(verbose: bool):
    # Logs go to stderr; stdout carries command output only.
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(stream=sys.stderr, level=level, force=True)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _read_docx(path: Path) -> bytes:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "rb") as f:
        return f.read()


def handle_extract(args, settings: EngineSettings):
    payload = extract_docx(
        _read_docx(args.input),
        filename=args.input.name,
        strict=args.strict or settings.strict_extraction,
        batch_size=settings.extraction_batch_size,
    )
    output = json.dumps(payload, indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"Extracted {payload['metadata']['paragraph_count']} paragraphs to {args.output}", file=sys.stderr)
    else:
        print(output)


def _print_issue(issue: Issue):
    where = f"¶{issue.paragraph_index}" if issue.paragraph_index is not None else "document"
    fix = f" [fix: {issue.fix_action.value}]" if issue.fix_action else ""
    print(f"[{issue.severity.value}] {issue.category.value}: {issue.title} ({where}){fix}")
    print(f"    {issue.description}")


def handle_check(args, settings: EngineSettings):
    data = _read_docx(args.input)
    payload = extract_docx(
        data,
        filename=args.input.name,
        strict=settings.strict_extraction,
        batch_size=settings.extraction_batch_size,
    )
    for warning in payload["warnings"]:
        print(f"Warning: {warning}", file=sys.stderr)

    engine = ComplianceEngine(settings=settings, disabled=args.disable or ())
    issues = engine.validate(payload["text"], payload["structure"], payload["formatting"])
    score = compliance_score(issues, settings.weights)
    counts = severity_counts(issues)

    if args.json:
        print(json.dumps({
            "score": score,
            "counts": counts,
            "degraded": payload["degraded"],
            "issues": [issue.model_dump(mode="json") for issue in issues],
        }, indent=2, ensure_ascii=False))
    else:
        for issue in issues:
            _print_issue(issue)
        summary = ", ".join(f"{n} {severity}" for severity, n in counts.items())
        print(f"Score: {score}/100 ({summary})", file=sys.stderr)

    if counts[Severity.CRITICAL.value]:
        sys.exit(1)


def handle_fix(args, settings: EngineSettings):
    data = _read_docx(args.input)

    fix_value = {}
    if args.original is not None:
        fix_value["original_text"] = args.original
    if args.replacement is not None:
        fix_value["replacement_text"] = args.replacement
    if args.value is not None:
        fix_value["value"] = args.value

    result = apply_fix(data, args.action, fix_value or None, targets=settings.targets)

    output_path = args.output or args.input.with_name(f"{args.input.stem}_fixed.docx")
    with open(output_path, "wb") as f:
        f.write(result)
    print(f"✅ Applied {args.action}, saved to {output_path}", file=sys.stderr)


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="apalint", description="apalint: APA 7 compliance checks for DOCX files")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_extract = subparsers.add_parser("extract", help="Extract text, formatting and structure as JSON")
    p_extract.add_argument("input", type=Path, help="Input DOCX file")
    p_extract.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_extract.add_argument("--strict", action="store_true", help="Fail on malformed XML instead of degrading")
    p_extract.set_defaults(func=handle_extract)

    p_check = subparsers.add_parser("check", help="Report APA issues and a compliance score")
    p_check.add_argument("input", type=Path, help="Input DOCX file")
    p_check.add_argument("--json", action="store_true", help="Output issues as JSON")
    p_check.add_argument("--disable", nargs="+", metavar="RULE", help="Rule names to skip")
    p_check.set_defaults(func=handle_check)

    p_fix = subparsers.add_parser("fix", help="Apply one automated fix")
    p_fix.add_argument("input", type=Path, help="Input DOCX file")
    p_fix.add_argument("action", help="Fix identifier, e.g. fixFont or addCitationComma")
    p_fix.add_argument("--original", help="Text to replace (text fixes)")
    p_fix.add_argument("--replacement", help="Replacement text (text fixes)")
    p_fix.add_argument("--value", help="Target value for formatting fixes, or the page for addPageNumber")
    p_fix.add_argument("-o", "--output", type=Path, help="Output DOCX path (default: <input>_fixed.docx)")
    p_fix.set_defaults(func=handle_fix)

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        settings = EngineSettings.from_env()
    except ValueError as e:
        print(f"Error: invalid APALINT_* setting: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        args.func(args, settings)
    except (ApalintError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
