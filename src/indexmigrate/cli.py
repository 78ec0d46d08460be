"""
Command line entry point.

Usage:
    indexmigrate run --registry myapp.migrations:registry
    indexmigrate finalize --registry myapp.migrations:registry
    indexmigrate status --registry myapp.migrations:registry

Connection settings default to environment variables:
    ES_URL: Elasticsearch URL (default: http://localhost:9200)
    ES_USERNAME / ES_PASSWORD: Basic auth credentials (optional)
    REDIS_URL: Redis URL for the write gate, cache and lock (default: redis://localhost:6379)
    DATABASE_URL: SQLAlchemy async URL when --lock-backend=postgresql

Migration settings are read with ``MigrationConfig.from_env()`` and can be
overridden with --index-prefix, --cache-prefix and --lock-timeout.

Exit codes:
    0: success
    1: a migration failed and was rolled back
    2: infrastructure error (lock, write gate or search engine unavailable)
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import importlib
import json
import logging
import os
import sys
from collections.abc import Sequence
from contextlib import AsyncExitStack
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from indexmigrate.cache import RedisCacheInvalidator
from indexmigrate.config import MigrationConfig
from indexmigrate.exceptions import IndexMigrateError
from indexmigrate.locks import (
    LockAcquisitionError,
    LockManager,
    PostgreSQLLockManager,
    RedisLockManager,
)
from indexmigrate.migrations import MigrationManager, MigrationRegistry
from indexmigrate.search import ElasticsearchIndexClient
from indexmigrate.write_gate import RedisWriteGate, WriteGateError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_MIGRATION_FAILED = 1
EXIT_INFRASTRUCTURE_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="indexmigrate",
        description="Apply and finalize versioned search index migrations.",
    )
    parser.add_argument(
        "command",
        choices=["run", "finalize", "status"],
        help="run: apply outstanding migrations; finalize: delete superseded "
        "indices and unblock writes; status: show migration state",
    )
    parser.add_argument(
        "--registry",
        required=True,
        help="Import path of the MigrationRegistry, as 'module:attribute'",
    )
    parser.add_argument("--es-url", default=os.getenv("ES_URL", "http://localhost:9200"))
    parser.add_argument("--es-username", default=os.getenv("ES_USERNAME"))
    parser.add_argument("--es-password", default=os.getenv("ES_PASSWORD"))
    parser.add_argument("--redis-url", default=os.getenv("REDIS_URL", "redis://localhost:6379"))
    parser.add_argument(
        "--lock-backend",
        choices=["redis", "postgresql"],
        default="redis",
        help="Backend of the fleet-wide migration lock (default: redis)",
    )
    parser.add_argument("--database-url", default=os.getenv("DATABASE_URL"))
    parser.add_argument("--index-prefix", help="Override the configured index prefix")
    parser.add_argument("--cache-prefix", help="Override the configured cache prefix")
    parser.add_argument(
        "--lock-timeout",
        type=float,
        help="Seconds to wait for the migration lock (default: wait forever)",
    )
    parser.add_argument(
        "--finalize",
        action="store_true",
        help="With 'run': finalize immediately after a successful run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def load_registry(path: str) -> MigrationRegistry:
    """
    Import a MigrationRegistry from ``module:attribute``.

    The attribute may be the registry itself or a zero-argument callable
    returning one.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Registry path must look like 'module:attribute', got {path!r}")

    target: Any = importlib.import_module(module_name)
    for part in attribute.split("."):
        target = getattr(target, part)

    if not isinstance(target, MigrationRegistry) and callable(target):
        target = target()
    if not isinstance(target, MigrationRegistry):
        raise TypeError(f"{path!r} is not a MigrationRegistry")
    return target


def build_config(args: argparse.Namespace) -> MigrationConfig:
    config = MigrationConfig.from_env()
    overrides: dict[str, Any] = {}

    if args.index_prefix is not None:
        overrides["index_prefix"] = args.index_prefix
    if args.cache_prefix is not None:
        overrides["cache_prefix"] = args.cache_prefix
    if args.lock_timeout is not None:
        overrides["lock_timeout"] = args.lock_timeout

    return dataclasses.replace(config, **overrides) if overrides else config


async def run_command(args: argparse.Namespace) -> int:
    registry = load_registry(args.registry)
    config = build_config(args)

    async with AsyncExitStack() as stack:
        client = ElasticsearchIndexClient.from_url(
            args.es_url,
            username=args.es_username,
            password=args.es_password,
        )
        stack.push_async_callback(client.close)

        redis = Redis.from_url(args.redis_url)
        stack.push_async_callback(redis.aclose)

        lock_manager: LockManager
        if args.lock_backend == "postgresql":
            if not args.database_url:
                raise ValueError("--database-url is required with --lock-backend=postgresql")
            engine = create_async_engine(args.database_url)
            stack.push_async_callback(engine.dispose)
            lock_manager = PostgreSQLLockManager(
                async_sessionmaker(engine, expire_on_commit=False),
                enable_tracing=config.enable_tracing,
            )
        else:
            lock_manager = RedisLockManager(
                redis,
                default_ttl=config.lock_ttl,
                enable_tracing=config.enable_tracing,
            )

        manager = MigrationManager(
            registry=registry,
            client=client,
            lock_manager=lock_manager,
            write_gate=RedisWriteGate(redis),
            cache=RedisCacheInvalidator(redis),
            config=config,
        )

        if args.command == "status":
            status = await manager.status()
            _print(status.to_dict())
            return EXIT_OK

        if args.command == "finalize":
            finalized = await manager.finalize()
            _print(finalized.to_dict())
            return EXIT_OK

        result = await manager.run()
        _print(result.to_dict())
        if not result.succeeded:
            return EXIT_MIGRATION_FAILED

        if args.finalize:
            finalized = await manager.finalize()
            _print(finalized.to_dict())
        return EXIT_OK


def _print(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger("elastic_transport").setLevel(logging.WARNING)

    try:
        return asyncio.run(run_command(args))
    except (LockAcquisitionError, WriteGateError, IndexMigrateError) as e:
        logger.error("%s failed: %s", args.command, e)
        return EXIT_INFRASTRUCTURE_ERROR
    except KeyboardInterrupt:
        logger.warning("%s interrupted", args.command)
        return EXIT_INFRASTRUCTURE_ERROR


__all__ = ["build_parser", "load_registry", "main"]
