"""
Command line entry point for operating the credit oracle.

    python -m credit_oracle.cli score 0xabc... --user-id user-42
    python -m credit_oracle.cli sweep --batch-size 20
    python -m credit_oracle.cli run-scheduler
"""
import argparse
import json
import logging
import signal
import sys
import threading

from credit_oracle.config.settings import get_settings
from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import OracleError
from credit_oracle.db.database import create_session_factory, init_db
from credit_oracle.services.oracle_service import build_oracle_service
from credit_oracle.services.scheduler import ScoreUpdateScheduler

logger = logging.getLogger("credit_oracle")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="credit-oracle", description="Credit score oracle operations")
    parser.add_argument("--timeout", type=float, default=None, help="Overall deadline in seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    p = sub.add_parser("score", help="Compute and store the score for an address")
    p.add_argument("address")
    p.add_argument("--user-id", default=None)
    p.add_argument("--publish", action="store_true", help="Publish after scoring")

    p = sub.add_parser("publish", help="Publish the stored score to the oracle")
    p.add_argument("address")

    p = sub.add_parser("show", help="Show the stored score")
    p.add_argument("address")

    p = sub.add_parser("history", help="Show score history, newest first")
    p.add_argument("address")
    p.add_argument("--limit", type=int, default=10)

    p = sub.add_parser("deactivate", help="Stop scoring an address")
    p.add_argument("address")

    sub.add_parser("stats", help="Aggregate statistics")
    sub.add_parser("pending", help="Oracle updates awaiting confirmation")

    p = sub.add_parser("sweep", help="Run one scheduled update sweep")
    p.add_argument("--batch-size", type=int, default=None)

    sub.add_parser("run-scheduler", help="Run sweeps until interrupted")
    p = sub.add_parser("health", help="Component health and provider status")
    p.add_argument("--refresh", action="store_true", help="Ignore cached provider health")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    session_factory = create_session_factory(settings.database_url)
    if settings.auto_create_tables or args.command == "init-db":
        init_db(bind=session_factory.kw["bind"])
    if args.command == "init-db":
        return 0

    service = build_oracle_service(settings, session_factory=session_factory)
    ctx = RequestContext.with_timeout(args.timeout) if args.timeout else RequestContext.background()

    try:
        if args.command == "score":
            _print(service.calculate_and_update_score(args.address, args.user_id, ctx).model_dump())
            if args.publish:
                _print(service.publish_score_to_blockchain(args.address).model_dump())
        elif args.command == "publish":
            _print(service.publish_score_to_blockchain(args.address).model_dump())
        elif args.command == "show":
            _print(service.get_score(args.address).model_dump())
        elif args.command == "history":
            _print([h.model_dump() for h in service.get_score_history(args.address, args.limit)])
        elif args.command == "deactivate":
            service.deactivate_score(args.address)
            print(f"Deactivated {args.address}")
        elif args.command == "stats":
            _print(service.get_stats().model_dump())
        elif args.command == "pending":
            _print([u.model_dump() for u in service.get_pending_oracle_updates()])
        elif args.command == "sweep":
            summary = service.process_scheduled_updates(args.batch_size or settings.scheduler_batch_size, ctx)
            _print(summary.model_dump())
        elif args.command == "run-scheduler":
            scheduler = ScoreUpdateScheduler(
                service, settings.scheduler_batch_size, settings.scheduler_interval_seconds
            )
            stop = threading.Event()
            signal.signal(signal.SIGINT, lambda *_: stop.set())
            signal.signal(signal.SIGTERM, lambda *_: stop.set())
            scheduler.run_forever(stop)
        elif args.command == "health":
            if args.refresh:
                service.aggregator.clear_provider_status()
            _print({"components": service.health_check(ctx), "providers": service.provider_status(ctx)})
    except OracleError as e:
        logger.error(str(e))
        _print(e.to_dict())
        return 1
    finally:
        service.aggregator.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
