# blackswan/service.py
"""
BlackSwan Oracle Service
BSO v1

Polls the analytics API for the BlackSwan and MarketPeak scores and pushes
changes to the on-chain oracle contract from the dev wallet. Serves a small
status API alongside.

Usage:
  python3 -m blackswan.service              # run forever (scheduler + HTTP)
  python3 -m blackswan.service --once       # run one update cycle, then exit
  python3 -m blackswan.service --port 9000  # override PORT

Configuration comes from the environment (or .env); see blackswan/config.py.
"""

import argparse
import logging
import signal
import sys

import uvicorn

from blackswan import SERVICE_NAME, __version__
from blackswan.chain import build_client
from blackswan.config import load_settings
from blackswan.errors import ConfigError, StartupConnectivityError
from blackswan.feeds.scores import ScoreSource
from blackswan.orchestrator import UpdateOrchestrator
from blackswan.publisher import ContentPublisher
from blackswan.scheduler import Scheduler
from blackswan.server import create_app

log = logging.getLogger("blackswan.service")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level="INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


class OracleServer(uvicorn.Server):
    """uvicorn server that stops the polling timer as soon as a signal lands."""

    def __init__(self, config, scheduler):
        super().__init__(config)
        self.scheduler = scheduler

    def handle_exit(self, sig, frame):
        log.info(f"Received {signal.Signals(sig).name} signal")
        self.scheduler.cancel()
        super().handle_exit(sig, frame)


class OracleService:
    """Owns the orchestrator, its scheduler and the HTTP server for one process."""

    def __init__(self, settings, client=None, source=None, publisher=None):
        self.settings = settings
        self.client = client or build_client(settings)
        self.source = source or ScoreSource(settings.api_endpoint, timeout=settings.api_timeout)
        if publisher is None and settings.ipfs_enabled:
            publisher = ContentPublisher.from_settings(settings)
        self.orchestrator = UpdateOrchestrator(
            self.source,
            self.client,
            publisher=publisher,
            data_source=settings.api_endpoint,
        )
        self.scheduler = Scheduler(self.orchestrator, settings.poll_interval)
        self.app = create_app(
            self.orchestrator,
            settings,
            wallet_address=self.client.address,
            scheduler=self.scheduler,
        )

    def connect(self):
        self.client.connect()

    def run_once(self):
        return self.orchestrator.run_cycle()

    def serve(self, port=None):
        port = port or self.settings.port
        log.info(f"{SERVICE_NAME} v{__version__} starting...")
        log.info(f"API Endpoint: {self.settings.api_endpoint}")
        log.info(f"IPFS publishing: {'enabled' if self.orchestrator.publishing else 'disabled'}")
        log.info(f"Listening on :{port}")
        config = uvicorn.Config(self.app, host="0.0.0.0", port=port, log_config=None)
        OracleServer(config, self.scheduler).run()


def main(argv=None):
    parser = argparse.ArgumentParser(description="BlackSwan oracle updater")
    parser.add_argument("--once", action="store_true", help="run a single update cycle and exit")
    parser.add_argument("--port", type=int, default=None, help="HTTP port (overrides PORT)")
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging()
        for problem in e.problems:
            log.error(problem)
        log.error("Please check your .env file and ensure all required variables are set.")
        return 1

    setup_logging(settings.log_level)
    log.info("Environment variables validated successfully")

    try:
        service = OracleService(settings)
        service.connect()
    except StartupConnectivityError as e:
        log.error(str(e))
        return 1

    if args.once:
        outcome = service.run_once()
        print(f"Result: {outcome.result.value}")
        if outcome.mode is not None:
            print(f"  Mode:    {outcome.mode.value}")
        if outcome.tx_hash:
            print(f"  Tx:      {outcome.tx_hash}")
        if outcome.error:
            print(f"  Error:   {outcome.error}")
        return 0 if outcome.ok else 1

    service.serve(args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
