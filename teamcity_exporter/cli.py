#!/usr/bin/env python3
"""
TeamCity Exporter - command line entry point

Startup order: logging, configuration (exit 1 on ConfigurationError),
fingerprint store, Prometheus registry, then one scheduler per instance and
the HTTP listener in a single event loop. SIGINT/SIGTERM stop the listener
and every scheduler.

Usage:
    teamcity-exporter --config config.yaml
    teamcity-exporter --config config.yaml --web.listen-address :9107 --log.json
    teamcity-exporter --config config.yaml --once    # one cycle, print metrics
"""

import argparse
import asyncio
import contextlib
import signal
import sys
from collections.abc import Sequence

import uvicorn
from prometheus_client import CollectorRegistry, generate_latest

from teamcity_exporter import __version__
from teamcity_exporter.api.app import create_app
from teamcity_exporter.api.exposition import StoreCollector
from teamcity_exporter.collectors.instance_scheduler import InstanceScheduler
from teamcity_exporter.core.logging_config import get_logger, setup_logging
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.instance import Instance
from teamcity_exporter.secure_config import ConfigurationError, ExporterSettings, get_config

logger = get_logger(__name__)


class ExporterServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM handling to the exporter"""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Unset flags stay None so environment settings apply.

    Returns:
        Namespace: Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="teamcity-exporter",
        description="Prometheus exporter for TeamCity build statistics",
    )

    parser.add_argument("--config", dest="config_path", default=None, help="Path to the YAML configuration file")
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=None,
        help="Address to listen on for HTTP requests (default: 0.0.0.0:9107)",
    )
    parser.add_argument(
        "--web.telemetry-path",
        dest="metrics_path",
        default=None,
        help="Path under which to expose metrics (default: /metrics)",
    )
    parser.add_argument("--log.level", dest="log_level", default=None, help="Log level (default: INFO)")
    parser.add_argument(
        "--log.json", dest="log_json", action="store_true", default=None, help="Write logs as JSON lines"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run one cycle per instance, print the metrics and exit"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


async def run_once(instances: Sequence[Instance], store: FingerprintStore) -> None:
    """Run a single cycle for every instance concurrently"""

    async def one(instance: Instance) -> None:
        scheduler = InstanceScheduler(instance, store)
        async with scheduler.client:
            await scheduler.run_once()

    await asyncio.gather(*(one(instance) for instance in instances))


async def serve(
    settings: ExporterSettings,
    instances: Sequence[Instance],
    store: FingerprintStore,
    registry: CollectorRegistry,
) -> None:
    """Run the HTTP listener and every instance scheduler until a stop signal"""
    schedulers = [InstanceScheduler(instance, store) for instance in instances]
    app = create_app(registry, metrics_path=settings.metrics_path, schedulers=schedulers)

    host, port = settings.host_and_port()
    server = ExporterServer(uvicorn.Config(app, host=host, port=port, log_config=None, access_log=False))

    def request_shutdown() -> None:
        logger.info("Shutdown requested, stopping schedulers and HTTP listener")
        server.should_exit = True
        for scheduler in schedulers:
            scheduler.stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt instead
            pass

    logger.info(
        "Starting TeamCity exporter",
        extra={
            "extra_fields": {
                "version": __version__,
                "listen_address": f"{host}:{port}",
                "metrics_path": settings.metrics_path,
                "instances": [instance.name for instance in instances],
            }
        },
    )

    scheduler_tasks = [
        asyncio.create_task(scheduler.run(), name=f"scheduler-{scheduler.instance.name}") for scheduler in schedulers
    ]
    try:
        await server.serve()
    finally:
        for scheduler in schedulers:
            scheduler.stop()
        await asyncio.gather(*scheduler_tasks, return_exceptions=True)


def main(argv: Sequence[str] | None = None) -> int:
    """
    Entry point of the teamcity-exporter console script.

    Returns:
        Process exit code
    """
    args = parse_arguments(argv)

    try:
        settings = get_config().get_exporter_settings(
            config_path=args.config_path,
            listen_address=args.listen_address,
            metrics_path=args.metrics_path,
            log_level=args.log_level,
            log_json=args.log_json,
        )
    except ConfigurationError as e:
        logger.error(f"Invalid exporter settings: {e}")
        return 1

    setup_logging(level=settings.log_level, json_output=settings.log_json)

    try:
        instances = get_config().load_instances(settings.config_path)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}", extra={"extra_fields": {"config": settings.config_path}})
        return 1

    store = FingerprintStore()
    registry = CollectorRegistry()
    registry.register(StoreCollector(store))

    if args.once:
        asyncio.run(run_once(instances, store))
        sys.stdout.write(generate_latest(registry).decode("utf-8"))
        return 0

    try:
        asyncio.run(serve(settings, instances, store, registry))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
