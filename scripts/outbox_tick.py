# scripts/outbox_tick.py
"""
Outbox worker "tick".

Request handlers try each notification once right after their commit;
whatever is still pending (provider down, not configured, ...) is picked
up here. Run it from cron or a CronJob every minute or so.

Flow:
1. Load up to --limit pending outbox messages, oldest first.
2. Try each once; failures bump `attempts` and stay pending until
   OUTBOX_MAX_ATTEMPTS, then become `failed`.
"""

from __future__ import annotations

import argparse
import logging

from app.db.session import session_scope
from app.logging_config import configure_logging
from app.services.calendar_client import get_calendar_client
from app.services.outbox_service import (
    OutboxDispatcher,
    optional_email_client,
    optional_sms_client,
)

logger = logging.getLogger("app.scripts.outbox_tick")


def run_once(limit: int | None = None) -> int:
    with session_scope() as db:
        dispatcher = OutboxDispatcher(
            db,
            calendar_client=get_calendar_client(),
            email_client=optional_email_client(),
            sms_client=optional_sms_client(),
        )
        delivered = dispatcher.dispatch(limit=limit)

    logger.info("[outbox_tick] Delivered %s messages", delivered)
    return delivered


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Max messages to attempt in this tick (defaults to OUTBOX_BATCH_SIZE)",
    )
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    run_once(limit=args.limit)


if __name__ == "__main__":
    main()
