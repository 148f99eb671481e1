import argparse
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from kvbench.strategies import DEFAULT_WORKERS

STORES = ("redis", "tcp", "memory")
DEFAULT_RECORD_COUNT = 1000


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""
    pass


@dataclass(frozen=True)
class BenchmarkConfig:
    record_count: int = DEFAULT_RECORD_COUNT
    store: str = "redis"
    host: str = "localhost"
    port: Optional[int] = None
    db: int = 0
    workers: int = DEFAULT_WORKERS
    verbose: bool = False


def positive_int(value, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < 1:
        raise ConfigError(f"{name} must be a positive integer, got {number}")
    return number


def build_parser(env: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kvbench",
        description="Compare sequential, pipelined and parallel SET/GET against a key-value store.",
    )
    parser.add_argument("--record-count", default=env.get("KVBENCH_RECORD_COUNT", DEFAULT_RECORD_COUNT),
                        help="number of key/value pairs written per trial")
    parser.add_argument("--store", default=env.get("KVBENCH_STORE", "redis"), choices=STORES)
    parser.add_argument("--host", default=env.get("KVBENCH_HOST", "localhost"))
    parser.add_argument("--port", default=env.get("KVBENCH_PORT"),
                        help="defaults to 6379 for redis and 8000 for tcp")
    parser.add_argument("--db", default=env.get("KVBENCH_REDIS_DB", 0), help="redis database number")
    parser.add_argument("--workers", default=env.get("KVBENCH_WORKERS", DEFAULT_WORKERS),
                        help="thread pool size for the parallel strategy")
    parser.add_argument("--verbose", action="store_true", help="also print per-trial timings and the target store")
    return parser


def load_config(argv: Optional[Sequence[str]] = None, env: Optional[Mapping[str, str]] = None) -> BenchmarkConfig:
    """Read configuration from the environment, overridden by command line flags."""
    env = os.environ if env is None else env
    parser = build_parser(env)
    args = parser.parse_args(argv)
    try:
        if args.store not in STORES:
            raise ConfigError(f"unknown store backend {args.store!r}")
        try:
            db = int(args.db)
        except (TypeError, ValueError):
            raise ConfigError(f"db must be an integer, got {args.db!r}")
        return BenchmarkConfig(
            record_count=positive_int(args.record_count, "record count"),
            store=args.store,
            host=args.host,
            port=positive_int(args.port, "port") if args.port not in (None, "") else None,
            db=db,
            workers=positive_int(args.workers, "workers"),
            verbose=args.verbose,
        )
    except ConfigError as e:
        parser.error(str(e))
