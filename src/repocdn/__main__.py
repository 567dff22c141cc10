"""repocdn command line entry point."""

import argparse
import sys

from repocdn.config import Config
from repocdn.exceptions import ConfigError
from repocdn.observability import configure_logging, get_logger
from repocdn.service import RepoCDN

logger = get_logger("repocdn")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="repocdn",
        description="CDN proxy serving files stored in a GitHub repository",
    )
    parser.add_argument(
        "--config",
        "-c",
        help="YAML or JSON configuration file (default: read environment variables)",
    )
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to listen on")
    args = parser.parse_args(argv)

    try:
        config = Config.from_file(args.config) if args.config else Config.from_env()
        configure_logging(config.logging.level, config.logging.format)
        config.validate_required()
    except ConfigError as e:
        logger.error("Invalid configuration", error=e)
        return 2

    logger.info(
        "Starting repocdn",
        context={
            "repo": config.store.repo,
            "owner": config.store.owner,
            "cdn_domain": config.cdn.domain,
            "port": args.port or config.server.port,
        },
    )
    RepoCDN(config).serve(host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
