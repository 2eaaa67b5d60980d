"""
Diagnostic: run the reducer + signal extractors only (no LLM).
Reports which signals were found, which rule produced each, and the prompt
that would be sent, for local HTML files or live URLs.

Usage: python diagnostics.py [FILE_OR_URL ...]   (defaults to data/*.html)
"""

import asyncio
import sys
from pathlib import Path

from extractor import build_prompt
from fetcher import fetch_product_page
from parser import extract_signals, reduce_markup

DATA_DIR = Path(__file__).parent / "data"
SIGNAL_FIELDS = ["title", "price", "sizes", "colors", "description", "category"]


def _load(source: str) -> str:
    if source.startswith(("http://", "https://")):
        return asyncio.run(fetch_product_page(source))
    return Path(source).read_text(encoding="utf-8")


def diagnose(source: str) -> dict:
    html = _load(source)
    markup = reduce_markup(html)
    context = extract_signals(markup, source)

    report = {
        "source": source,
        "raw_chars": len(html),
        "reduced_chars": len(markup),
        "filled": [],
        "missing": [],
        "fields": {},
        "prompt": build_prompt(context, markup),
    }
    for name in SIGNAL_FIELDS:
        val = getattr(context, name)
        if val:
            report["filled"].append(name)
            rule = context.sources.get(name, "options")
            report["fields"][name] = f"{val} [{rule}]"
        else:
            report["missing"].append(name)
    return report


def main():
    sources = sys.argv[1:] or [str(p) for p in sorted(DATA_DIR.glob("*.html"))]
    if not sources:
        print(f"Nothing to diagnose: pass files/URLs or put *.html under {DATA_DIR}")
        return

    print(f"Diagnosing {len(sources)} page(s) (reducer + extractors only, NO LLM)\n")

    reports = []
    for source in sources:
        report = diagnose(source)
        reports.append(report)

        print(f"{'=' * 70}")
        print(f"  {report['source']}")
        print(f"{'=' * 70}")
        print(f"  Markup: {report['raw_chars']} -> {report['reduced_chars']} chars")

        print(f"\n  Found ({len(report['filled'])}/{len(SIGNAL_FIELDS)}):")
        for name in report["filled"]:
            print(f"    {name}: {report['fields'][name][:150]}")
        if report["missing"]:
            print(f"\n  MISSING: {report['missing']}")

        print(f"\n  Prompt ({len(report['prompt'])} chars):")
        for line in report["prompt"].splitlines()[:12]:
            print(f"    {line[:120]}")
        print()

    # Summary table
    print(f"\n{'=' * 70}")
    print("SUMMARY: Signal coverage")
    print(f"{'=' * 70}")
    print(f"{'Field':<14} ", end="")
    for r in reports:
        print(f"{Path(r['source']).name[:12]:<14}", end="")
    print()
    print("-" * 70)
    for name in SIGNAL_FIELDS:
        print(f"{name:<14} ", end="")
        for r in reports:
            print(f"{'OK' if name in r['filled'] else 'MISSING':<14}", end="")
        print()


if __name__ == "__main__":
    main()
