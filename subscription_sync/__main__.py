"""Run the service: python -m subscription_sync [--host H] [--port P] [--reload]

The expiry sweep is triggered over HTTP (POST /api/jobs/expiry-sweep) because
profile records live in the serving process.
"""

import argparse
import os
import sys

import uvicorn

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="subscription-sync",
        description="Keeps profile subscription status consistent with Stripe",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")))
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=os.getenv("LOG_LEVEL", "INFO"))
    parser.add_argument("--log-format", choices=["json", "console"], default=os.getenv("LOG_FORMAT", "json"))
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH"),
        help="billing.yaml to load instead of config/billing.yaml",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Restart on code changes (development only)",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()

    # The app reads these when it is imported by uvicorn
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    if args.config:
        os.environ["CONFIG_PATH"] = args.config

    if args.log_format == "console":
        print(f"subscription-sync listening on {args.host}:{args.port} (log level {args.log_level})")

    try:
        uvicorn.run(
            "subscription_sync.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
