"""Draw the monthly Seoul trip raffle winner.

Intended usage: run once by an operator after the period's drawing time has
passed (last day of the month, 23:59:59 UTC).

Example::
    python tooling/scripts/draw_raffle.py --month 2026-09

Re-running for a period that already has a winner exits non-zero and never
draws a second winner.
"""

# meta: script: raffle-draw

from __future__ import annotations

import argparse
import asyncio
import random
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Draw the raffle winner for a month")
    parser.add_argument(
        "--month",
        required=True,
        help="Raffle period to draw, in YYYY-MM format.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed the selection RNG (reproducible dry rehearsals only).",
    )
    return parser.parse_args()


async def _run(month: str, seed: int | None) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from kiss_loyalty.db.session import async_session  # type: ignore import-position
    from kiss_loyalty.services.raffle import DrawingEngine  # type: ignore import-position

    rng = random.Random(seed) if seed is not None else None
    async with async_session() as session:
        engine = DrawingEngine(session, rng=rng)
        result = await engine.draw_winner(month)
        return {
            "winner_id": str(result.winner.id),
            "account_id": str(result.winner.account_id),
            "winning_tickets": result.winning_ticket_count,
            "total_tickets": result.total_tickets,
            "participants": result.participants,
            "odds": round(result.odds * 100, 2),
        }


def main() -> int:
    args = parse_args()
    try:
        summary = asyncio.run(_run(args.month, args.seed))
    except RuntimeError as error:
        logger.error("Raffle draw failed", month=args.month, error=str(error))
        return 1

    logger.success("Raffle winner drawn", month=args.month, **summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
