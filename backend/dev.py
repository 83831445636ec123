#!/usr/bin/env python
"""
Quick Launch Development Server for TraktBridge

Starts the proxy with uvicorn auto-reload on the traktbridge package.

Usage:
    python backend/dev.py                    # Start with defaults
    python backend/dev.py --port 8080        # Custom port
    python backend/dev.py --verbose          # DEBUG logging, error details in responses
    python backend/dev.py --json-logs        # One JSON object per log line

Environment Variables Set:
    DEBUG=true       - When --verbose is used
    LOG_LEVEL=DEBUG  - When --verbose is used
    LOG_FORMAT=json  - When --json-logs is used
"""

import os
import sys
import argparse


def main():
    """Parse arguments and launch uvicorn development server."""
    parser = argparse.ArgumentParser(
        description="Start TraktBridge in development mode with auto-reload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python backend/dev.py                     Start dev server on default port 8000
  python backend/dev.py --port 8080         Start on custom port 8080
  python backend/dev.py --verbose           Enable debug logging
  python backend/dev.py --env-file=.env.dev Read settings from another env file
        """
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Server port (default: 8000)"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Server host (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON log lines"
    )
    parser.add_argument(
        "--env-file",
        help="Env file holding credentials and the rotated refresh token (default: .env)"
    )

    args = parser.parse_args()

    # Make traktbridge importable from the reload subprocess
    backend_root = os.path.abspath(os.path.dirname(__file__))
    if backend_root not in sys.path:
        sys.path.insert(0, backend_root)
    os.environ["PYTHONPATH"] = backend_root + os.pathsep + os.environ.get("PYTHONPATH", "")

    if args.verbose:
        os.environ["DEBUG"] = "true"
        os.environ["LOG_LEVEL"] = "DEBUG"
    if args.json_logs:
        os.environ["LOG_FORMAT"] = "json"
    if args.env_file:
        os.environ["ENV_FILE"] = os.path.abspath(args.env_file)

    print("=" * 60)
    print("TraktBridge - Development Mode")
    print("=" * 60)
    print(f"Server: http://{args.host}:{args.port}")
    print(f"Log Level: {'DEBUG' if args.verbose else 'INFO'}")
    print(f"Log Format: {'json' if args.json_logs else 'text'}")
    print("=" * 60)
    print("\nPress CTRL+C to stop the server\n")

    try:
        import uvicorn
        os.chdir(backend_root)
        uvicorn.run(
            "traktbridge.main:app",
            host=args.host,
            port=args.port,
            reload=True,
            reload_dirs=["traktbridge"],
            log_level="debug" if args.verbose else "info",
        )
    except KeyboardInterrupt:
        print("\n\nShutting down development server...")
        sys.exit(0)
    except Exception as e:
        print(f"\n\nError starting development server: {e}")
        print("\nTroubleshooting:")
        print(f"  1. Check if port {args.port} is already in use")
        print("  2. Verify uvicorn is installed: pip install uvicorn[standard]")
        print("  3. Check APP_CLIENT_ID, APP_CLIENT_SECRET and REFRESH_TOKEN in your env file")
        sys.exit(1)


if __name__ == "__main__":
    main()
