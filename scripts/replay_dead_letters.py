#!/usr/bin/env python3
"""Re-apply webhook events whose persistence failed."""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from wahub.database import dispose_engine, get_session_factory
from wahub.ingestion import IngestionPipeline


async def replay(limit: int) -> int:
    pipeline = IngestionPipeline(get_session_factory())
    try:
        return await pipeline.replay_dead_letters(limit=limit)
    finally:
        await dispose_engine()


def main():
    parser = argparse.ArgumentParser(description="Replay dead-lettered webhook events")
    parser.add_argument("--limit", type=int, default=100, help="Maximum events to replay")

    args = parser.parse_args()

    replayed = asyncio.run(replay(args.limit))
    print(f"Replayed {replayed} event(s)")


if __name__ == "__main__":
    main()
