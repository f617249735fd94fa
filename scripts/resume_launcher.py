#!/usr/bin/env python3
"""
resume_launcher.py - Drive a multi-session index build to completion

Intended for cron/launchd. Each session runs ``starindex resume``; the CLI
exits with code 3 when it stopped at a checkpoint (page limit or rate
limit), in which case the launcher waits and runs another session.

Usage:
    /path/to/venv/bin/python /path/to/scripts/resume_launcher.py [--sessions N]
"""

import argparse
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# Determine paths relative to this script
SCRIPT_DIR = Path(__file__).parent.resolve()
PROJECT_ROOT = SCRIPT_DIR.parent
CONFIG_FILE = PROJECT_ROOT / "config" / "starindex.yaml"
LOG_DIR = PROJECT_ROOT / "logs"
ENV_FILE = PROJECT_ROOT / ".env"

EXIT_RESUME_NEEDED = 3
SESSION_TIMEOUT_SECONDS = 3600


def setup_logging() -> Path:
    """Create log directory and return log file path."""
    LOG_DIR.mkdir(exist_ok=True)
    return LOG_DIR / f"index_build_{datetime.now().strftime('%Y-%m-%d')}.log"


def log(message: str, level: str = "INFO", log_file: Path = None):
    """Write timestamped log message."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    formatted = f"[{timestamp}] [{level}] {message}"
    print(formatted)
    if log_file:
        with open(log_file, "a") as f:
            f.write(formatted + "\n")


def run_session(log_file: Path) -> int:
    """Run one resume session of the index build."""
    cmd = [
        sys.executable,
        "-m", "starindex.cli",
        "resume",
        "--config", str(CONFIG_FILE),
    ]

    log(f"Running: {' '.join(cmd)}", "INFO", log_file)

    try:
        result = subprocess.run(
            cmd,
            cwd=str(PROJECT_ROOT),
            capture_output=True,
            text=True,
            timeout=SESSION_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired:
        log("Session timed out", "ERROR", log_file)
        return 1

    for line in result.stdout.strip().splitlines():
        log(line, "OUTPUT", log_file)
    for line in result.stderr.strip().splitlines():
        log(line, "STDERR", log_file)

    return result.returncode


def main() -> int:
    parser = argparse.ArgumentParser(description="Run index build sessions until done")
    parser.add_argument("--sessions", type=int, default=10, help="Maximum sessions")
    parser.add_argument(
        "--pause", type=float, default=300.0, help="Seconds to wait between sessions"
    )
    args = parser.parse_args()

    log_file = setup_logging()

    if not CONFIG_FILE.exists():
        log(f"Config not found at {CONFIG_FILE}", "ERROR", log_file)
        return 2

    if load_dotenv(ENV_FILE):
        log("Environment variables loaded from .env", "INFO", log_file)

    exit_code = EXIT_RESUME_NEEDED
    for session in range(1, args.sessions + 1):
        log(f"Session {session}/{args.sessions}", "INFO", log_file)
        exit_code = run_session(log_file)

        if exit_code != EXIT_RESUME_NEEDED:
            break
        if session < args.sessions:
            time.sleep(args.pause)

    if exit_code == 0:
        log("Index build completed", "INFO", log_file)
    elif exit_code == EXIT_RESUME_NEEDED:
        log("Session budget used up; build still checkpointed", "WARN", log_file)
    else:
        log(f"Index build failed with exit code {exit_code}", "ERROR", log_file)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
