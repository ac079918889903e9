"""
Receipt Dispatch server entry point.

Usage:
    python app.py --host 0.0.0.0 --port 3000
    python app.py --init-config    # write a default config file and exit
"""

import argparse
import logging

from receipt_dispatch import create_app
from receipt_dispatch.core.config import write_default_config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Serve the Receipt Dispatch print API")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=3000, help="Port to listen on (default: 3000)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write the default settings to the config path (if missing) and exit",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.init_config:
        print(write_default_config())
        return
    app = create_app()
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    scheduler = app.extensions["receipt_dispatch"]["scheduler"]
    try:
        # Requests block on their job; threaded keeps the server responsive
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    main()
