"""notesauth entry point.

Runs either the OAuth authorization server or the MCP resource server.
"""

import argparse
import logging
import sys

from pydantic import ValidationError

from notesauth import __version__
from notesauth.config import get_settings
from notesauth.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="notesauth - OAuth 2.1 + PKCE demo for a notes MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  notesauth auth                     Start the authorization server (AUTH_PORT)
  notesauth resource                 Start the MCP resource server (RESOURCE_PORT)
  notesauth auth --dev               Authorization server with auto-reload
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="server", required=True)
    for name, help_text in (
        ("auth", "Run the OAuth authorization server"),
        ("resource", "Run the MCP resource server"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
        sub.add_argument("--port", type=int, default=None, help="Port to bind (default: from settings)")
        sub.add_argument("--dev", action="store_true", help="Auto-reload on source changes")
        sub.add_argument("--log-level", type=str, default="INFO", help="Log level (default: INFO)")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    try:
        get_settings()
    except ValidationError as e:
        logger.error("Invalid configuration:\n%s", e)
        sys.exit(1)

    from notesauth.api.serve import run_auth_server, run_resource_server

    runner = run_auth_server if args.server == "auth" else run_resource_server
    try:
        runner(host=args.host, port=args.port, dev=args.dev, log_level=args.log_level)
    except KeyboardInterrupt:
        logger.info("👋 notesauth stopped.")


if __name__ == "__main__":
    main()
