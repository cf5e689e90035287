"""notiq CLI"""

import argparse
import asyncio
import json
import os
import sys
from datetime import datetime

from notiq import __version__


def _parse_query(items: list[str]) -> dict[str, str]:
    """key=value 목록 -> dict"""
    query = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"invalid query '{item}', expected key=value")
        query[key] = value
    return query


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def run_command(args: argparse.Namespace) -> None:
    """서브커맨드 실행"""
    from cache.main import ResponseCache
    from cache.model import CacheConfig
    from common.config import load_config
    from database.registry import DatabaseRegistry
    from worker.base import load_handlers
    from worker.executor import Executor
    from worker.model import QueueConfig
    from worker.queue import JobQueue, new_lock_owner

    config = load_config()
    queue_config = QueueConfig(**config.get("queue", {}))
    cache_config = CacheConfig(**config.get("cache", {}))
    await DatabaseRegistry.init_from_config(config, sorted({queue_config.database, cache_config.database}))

    load_handlers()
    queue = JobQueue(queue_config)
    cache = ResponseCache(cache_config)

    try:
        if args.command == "enqueue":
            payload = json.loads(args.payload) if args.payload else None
            not_before = datetime.fromisoformat(args.not_before) if args.not_before else None
            job_id = await queue.enqueue(
                args.type, payload, max_attempts=args.max_attempts, not_before=not_before
            )
            print(job_id)

        elif args.command == "list":
            jobs, total = await queue.get_list(
                status=args.status, job_type=args.type, limit=args.limit, offset=args.offset
            )
            for job in jobs:
                print(
                    f"{job.id}  {job.type:<32} {job.status.value:<10} "
                    f"{job.attempts}/{job.max_attempts}  {job.next_attempt_at.isoformat()}"
                )
            print(f"({len(jobs)} of {total})")

        elif args.command == "status":
            if args.job_id:
                _print_json((await queue.get(args.job_id)).model_dump(mode="json"))
            else:
                _print_json(await queue.counts())

        elif args.command == "reset":
            job = await queue.reset(args.job_id)
            print(f"{job.id} -> {job.status.value}")

        elif args.command == "process":
            executor = Executor(queue, new_lock_owner("cli"))
            processed = 0
            for _ in range(args.count):
                if await executor.run_once() is None:
                    break
                processed += 1
            print(f"Processed {processed} job(s)")

        elif args.command == "cache-stats":
            _print_json(await cache.stats())

        elif args.command == "cache-purge":
            print(f"Purged {await cache.purge_expired()} expired entries")

        elif args.command == "cache-invalidate":
            deleted = await cache.invalidate(args.path_prefix, **_parse_query(args.query))
            print(f"Invalidated {deleted} entries")

    finally:
        await DatabaseRegistry.close_all()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notiq",
        description="notiq - 알림 잡 큐 / 응답 캐시 관리 도구"
    )
    parser.add_argument("-c", "--config-dir", help="설정 디렉토리 (NOTIQ_CONFIG_DIR)")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # enqueue
    enqueue_parser = subparsers.add_parser("enqueue", help="Enqueue a notification job")
    enqueue_parser.add_argument("type", help="Job type")
    enqueue_parser.add_argument("-p", "--payload", help="JSON payload")
    enqueue_parser.add_argument("-m", "--max-attempts", type=int, help="Max attempts (1-20)")
    enqueue_parser.add_argument("--not-before", help="ISO datetime, not processed before this")

    # list
    list_parser = subparsers.add_parser("list", help="List jobs (newest first)")
    list_parser.add_argument("-s", "--status", choices=["PENDING", "PROCESSING", "SENT", "FAILED"])
    list_parser.add_argument("-t", "--type", help="Job type filter")
    list_parser.add_argument("-n", "--limit", type=int, default=20)
    list_parser.add_argument("--offset", type=int, default=0)

    # status
    status_parser = subparsers.add_parser("status", help="Show a job, or counts per status")
    status_parser.add_argument("job_id", nargs="?", help="Job id")

    # reset
    reset_parser = subparsers.add_parser("reset", help="Reset a FAILED job to PENDING")
    reset_parser.add_argument("job_id", help="Job id")

    # process
    process_parser = subparsers.add_parser("process", help="Claim and process ready jobs")
    process_parser.add_argument("-n", "--count", type=int, default=1, help="Max jobs to process")

    # cache
    subparsers.add_parser("cache-stats", help="Show cache entry counts")
    subparsers.add_parser("cache-purge", help="Delete expired cache entries")
    invalidate_parser = subparsers.add_parser("cache-invalidate", help="Delete cache entries by path prefix")
    invalidate_parser.add_argument("path_prefix", help="Path prefix, e.g. /api/liquidity/")
    invalidate_parser.add_argument(
        "-q", "--query", action="append", default=[], help="key=value the cached query must match"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    from common.exception import NotiqError
    from database import DatabaseError

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if args.config_dir:
        os.environ["NOTIQ_CONFIG_DIR"] = args.config_dir

    try:
        asyncio.run(run_command(args))
    except (NotiqError, DatabaseError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    except (ValueError, argparse.ArgumentTypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
