"""Compare every account's stored balance with the balance implied by its ledger.

Example::
    python tooling/scripts/reconcile_balances.py

The script is read-only; drifted accounts are logged and the exit status is
non-zero when any are found so it can gate a job runner.
"""

# meta: script: ledger-reconcile

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile account balances against the points ledger")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Only check the first N accounts (oldest first).",
    )
    return parser.parse_args()


async def _run(limit: int | None) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from kiss_loyalty.db.session import async_session  # type: ignore import-position
    from kiss_loyalty.services.loyalty import LedgerService  # type: ignore import-position

    checked = 0
    drifted = 0
    async with async_session() as session:
        service = LedgerService(session)
        account_ids = await service.list_account_ids()
        if limit is not None:
            account_ids = account_ids[:limit]
        for account_id in account_ids:
            report = await service.reconcile_account(account_id)
            checked += 1
            if not report.is_consistent:
                drifted += 1
                logger.warning(
                    "Account balance drift",
                    account_id=str(account_id),
                    recorded_balance=report.recorded_balance,
                    ledger_balance=report.ledger_balance,
                    recorded_lifetime=report.recorded_lifetime,
                    ledger_lifetime=report.ledger_lifetime,
                )
    return {"checked": checked, "drifted": drifted}


def main() -> int:
    args = parse_args()
    if args.limit is not None and args.limit <= 0:
        logger.error("Limit must be positive", limit=args.limit)
        return 1

    summary = asyncio.run(_run(args.limit))
    logger.success("Balance reconciliation completed", **summary)
    return 1 if summary["drifted"] else 0


if __name__ == "__main__":
    sys.exit(main())
