# scripts/fetch_subject.py
"""
Quick manual fetcher for a single subject page.

Usage:

  python scripts/fetch_subject.py --id 1292052 --verbose
  python scripts/fetch_subject.py -i 1292052 --no-cache --out page.html

Notes:
- Designed to work from repo root without installing the package (adds project root to sys.path).
- Prints a human summary and a final single-line RESULT that scripts can parse.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# --- make src/ importable when running from repo root ------------------------------------------------
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.exceptions import SubjectFetchError  # noqa: E402
from src.fetch import MemoryCacheStore, SubjectPageScraper  # noqa: E402
from src.subjects.page import parse_subject_page  # noqa: E402
from src.subjects.service import call_with_retry, classify, http_status_for  # noqa: E402


async def _run(subject_id: str, *, use_cache: bool) -> str:
    store = None if use_cache else MemoryCacheStore()
    scraper = SubjectPageScraper(store)
    try:
        return await call_with_retry(lambda: scraper.get_html(subject_id))
    finally:
        await scraper.fetcher.aclose()


def main() -> int:
    ap = argparse.ArgumentParser(description="Fetch a subject page with pacing and challenge resolution.")
    ap.add_argument("-i", "--id", required=True, help="Subject id, e.g. 1292052")
    ap.add_argument("--no-cache", action="store_true", help="Use a throwaway in-memory cache")
    ap.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    ap.add_argument("-o", "--out", help="Write the resolved HTML to this file")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    subject_id: str = args.id.strip()
    out_path: Path | None = Path(args.out) if args.out else None

    start_wall = time.time()
    try:
        html = asyncio.run(_run(subject_id, use_cache=not args.no_cache))
    except SubjectFetchError as e:
        elapsed = time.time() - start_wall
        print(
            "RESULT "
            f"status={http_status_for(e)} "
            f"kind={classify(e).value} "
            f"bytes=0 "
            f"elapsed_s={elapsed:.3f}"
        )
        if args.verbose:
            print(f"[cli] Error .........: {e.message}")
        return 1

    elapsed = time.time() - start_wall

    if args.verbose:
        try:
            page = parse_subject_page(html, subject_id)
            print(f"[cli] Title .........: {page.title}")
            print(f"[cli] Year ..........: {page.year or '-'}")
            print(f"[cli] Canonical .....: {page.url or '-'}")
        except SubjectFetchError as e:
            print(f"[cli] Parse .........: ERROR ({e.message})")
        print(f"[cli] Elapsed (s) ...: {elapsed:.3f}")

    # Always print a final single-line RESULT for scripts to parse.
    print(
        "RESULT "
        f"status=200 "
        f"kind=ok "
        f"bytes={len(html.encode('utf-8'))} "
        f"elapsed_s={elapsed:.3f}"
    )

    if out_path:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(html, encoding="utf-8")
        if args.verbose:
            print(f"[cli] Wrote body -> {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
