"""CLI entry point: run the API server or a single worker tick."""

import argparse
import asyncio
import json
import os


def _serve(args: argparse.Namespace) -> None:
    if args.local:
        os.environ["RENDERQ_LOCAL_MODE"] = "1"

    import uvicorn

    uvicorn.run("renderq.main:app", host=args.host, port=args.port)


async def _run_tick(kind: str, batch_size: int | None) -> dict:
    from renderq.config import settings
    from renderq.db.engine import create_db_engine, create_session_factory
    from renderq.logging_config import configure_logging

    configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)
    engine = create_db_engine()
    redis = None
    if not settings.local_mode:
        import redis.asyncio as aioredis
        redis = aioredis.from_url(settings.redis_url, decode_responses=True)

    try:
        session_factory = create_session_factory(engine)
        if kind == "dispatch":
            from renderq.workers.dispatcher import run_dispatch_tick

            report = await run_dispatch_tick(session_factory, batch_size=batch_size, redis=redis)
        else:
            from renderq.workers.reclaimer import run_reclaim_tick

            report = await run_reclaim_tick(session_factory, redis=redis)
        return report.as_dict()
    finally:
        if redis is not None:
            await redis.aclose()
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, no Redis required",
    )

    parser = argparse.ArgumentParser(
        prog="renderq",
        description="RenderQ: quota-gated render job queue",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", parents=[common], help="Run the API server")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")

    dispatch = sub.add_parser("dispatch", parents=[common], help="Run one dispatcher tick and print the report")
    dispatch.add_argument("--batch-size", type=int, default=None, help="Jobs to claim (default: from settings)")

    sub.add_parser("reclaim", parents=[common], help="Run one stuck-job reclaim tick and print the report")

    args = parser.parse_args(argv)

    if args.command == "serve":
        _serve(args)
        return

    if args.local:
        os.environ["RENDERQ_LOCAL_MODE"] = "1"
    report = asyncio.run(_run_tick(args.command, getattr(args, "batch_size", None)))
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
