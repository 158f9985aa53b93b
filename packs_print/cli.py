"""
Command line entry point: run the HTTP API with the print service attached.
"""

import argparse
import logging
import os
import signal
import sys

from packs_print import create_app
from packs_print.core.logging import configure_logging
from packs_print.printing.service import ensure_service

logger = logging.getLogger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Packs Print label printer service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--host",
        default=os.environ.get("PACKSPRINT_HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PACKSPRINT_PORT", "5000")),
        help="Port to bind to (default: 5000)",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=float(os.environ.get("PACKSPRINT_SHUTDOWN_TIMEOUT", "120")),
        help="Seconds to wait for queued jobs on shutdown (default: 120)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging()
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.info("Starting Packs Print on http://%s:%d", args.host, args.port)
    service = ensure_service()
    app = create_app(service=service, configure_logs=False)

    def _shutdown(signum, _frame):
        logger.info("Received %s", signal.Signals(signum).name)
        drained = service.shutdown(timeout=args.shutdown_timeout)
        sys.exit(0 if drained else 1)

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    app.run(host=args.host, port=args.port, debug=False, use_reloader=False)
    return 0
