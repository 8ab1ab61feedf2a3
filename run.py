#!/usr/bin/env python3
"""
SHXDW Bank Entry Point

    python run.py            start the HTTP API (default port 8090)
    python run.py dashboard  live top-balances monitor; press Enter to exit
"""

import argparse
import sys
import threading

import uvicorn

from shxdw_bank.config import get_config
from shxdw_bank.dashboard import DashboardSnapshot, render_text
from shxdw_bank.logging_config import setup_logging
from shxdw_bank.service import BankingSystem


def run_server(host: str, port: int, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "shxdw_bank.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


def run_dashboard():
    system = BankingSystem()
    stop = threading.Event()

    def wait_for_enter():
        sys.stdin.readline()
        stop.set()

    def draw(snapshot: DashboardSnapshot):
        # Clear screen and home the cursor
        sys.stdout.write("\x1b[2J\x1b[H")
        sys.stdout.write("LIVE DB MONITOR (press Enter to exit)\n\n")
        sys.stdout.write(render_text(snapshot) + "\n")
        sys.stdout.flush()

    threading.Thread(target=wait_for_enter, daemon=True).start()
    try:
        system.dashboard.run(draw, stop)
    finally:
        system.close()


def main():
    config = get_config()
    parser = argparse.ArgumentParser(description="SHXDW Bank ledger")
    parser.add_argument("command", nargs="?", default="serve", choices=["serve", "dashboard"])
    parser.add_argument("--host", default=config.api_host)
    parser.add_argument("--port", type=int, default=config.api_port)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    setup_logging(config.log_level, config.log_format, log_file=config.log_file)

    if args.command == "dashboard":
        run_dashboard()
        return

    print("Starting SHXDW Bank ledger...")
    print(f"API available at: http://{args.host}:{args.port}")
    print(f"Documentation at: http://{args.host}:{args.port}/docs")
    try:
        run_server(args.host, args.port, debug=args.debug)
    except KeyboardInterrupt:
        print("\nShutting down SHXDW Bank...")


if __name__ == "__main__":
    main()
