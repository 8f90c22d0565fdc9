"""Main entry point for the push gateway agent."""
import argparse
import logging
import os
import signal
import sys
from typing import Optional

from pushagent.config import USAGE, parse_agent_argument
from pushagent.errors import MalformedArgument, MalformedIdentity
from pushagent.labels import ProcessIdentity, derive_labels
from pushagent.scheduler import ExitHandler, PushScheduler

logger = logging.getLogger(__name__)

ARGS_ENV = "PUSHGW_AGENT_ARGS"


def setup_logging(log_level: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def terminate_process(code: int, message: str):
    """Terminate the whole process; the only place the agent exits from a background thread."""
    print(message, file=sys.stderr)
    sys.stderr.flush()
    os._exit(code)


def premain(agent_argument: Optional[str], on_exit: ExitHandler = terminate_process) -> PushScheduler:
    """
    Start the agent inside the current process.

    Parses the argument, derives labels and starts the push scheduler on a
    background thread. Returns the running scheduler without waiting for it.
    Exits with status 1 on a malformed argument or process identity.
    """
    try:
        config = parse_agent_argument(agent_argument)
    except MalformedArgument as e:
        print(USAGE, file=sys.stderr)
        print(e, file=sys.stderr)
        sys.exit(e.exit_code)

    try:
        identity = ProcessIdentity.current()
    except MalformedIdentity as e:
        print(e, file=sys.stderr)
        sys.exit(e.exit_code)

    labels = derive_labels(config, identity)

    scheduler = PushScheduler(config, identity, labels)
    scheduler.start(on_exit)
    return scheduler


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Push gateway agent - periodically push runtime metrics to a Prometheus push gateway",
        epilog=USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "agent_argument",
        nargs="?",
        default=os.getenv(ARGS_ENV),
        help=f"[host:]<port>:<config file>:<interval>[:options] (default: ${ARGS_ENV})"
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: $LOG_LEVEL or INFO)"
    )

    args = parser.parse_args()

    setup_logging(args.log_level)

    logger.info("=" * 60)
    logger.info("Push Gateway Agent")
    logger.info("=" * 60)

    scheduler = premain(args.agent_argument)

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, interrupting push scheduler...")
        scheduler.interrupt()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # The scheduler thread terminates the process; wait for it
    while scheduler.thread.is_alive():
        scheduler.thread.join(timeout=1.0)

    sys.exit(scheduler.exit_code or 1)


if __name__ == "__main__":
    main()
