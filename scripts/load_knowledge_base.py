#!/usr/bin/env python3
"""
Load Indian legal reference texts into the knowledge base.

Every .txt / .md file under the given directory becomes one source; the
file name (without extension) is its title and shows up as the citation.
Loading a file again replaces its chunks.

Usage:
    KNOWLEDGE_BASE_ENABLED=true CHROMA_PERSIST_DIR=data/chroma \\
        uv run python scripts/load_knowledge_base.py data/legal_reference

Layout example:
    data/legal_reference/
        CGST Act 2017 Section 9.md
        Code on Wages 2019.txt
        DPDP Act 2023.md
"""

import argparse
import logging
import sys
from pathlib import Path

from app.config import get_settings
from app.services.knowledge_base import ChromaKnowledgeBase, build_knowledge_base

SOURCE_SUFFIXES = {".txt", ".md"}


def main():
    parser = argparse.ArgumentParser(description="Load legal reference files into Chroma.")
    parser.add_argument("directory", type=Path)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    settings = get_settings()
    knowledge_base = build_knowledge_base(settings)
    if not isinstance(knowledge_base, ChromaKnowledgeBase):
        print("KNOWLEDGE_BASE_ENABLED is false; nothing to load into.", file=sys.stderr)
        sys.exit(1)

    files = sorted(p for p in args.directory.rglob("*") if p.suffix.lower() in SOURCE_SUFFIXES)
    if not files:
        print(f"No .txt or .md files under {args.directory}", file=sys.stderr)
        sys.exit(1)

    total = 0
    for path in files:
        count = knowledge_base.add_source(path.stem, path.read_text(encoding="utf-8"))
        print(f"  {path.name}: {count} chunks")
        total += count

    print(f"Loaded {len(files)} sources ({total} chunks) into '{settings.knowledge_base_collection}'")


if __name__ == "__main__":
    main()
