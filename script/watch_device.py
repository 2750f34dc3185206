"""
watch_device.py

Runs the break watcher against an Android phone attached over adb and
reports breaks to a Weak Link API server.

    python script/watch_device.py --api http://localhost:5000 \
        --token "$WEAKLINK_TOKEN" --user-id 2 --group-id 1 [--serial emulator-5554]

The watch-list is fetched once at start (and again on SIGHUP). Stop with
Ctrl-C.
"""

import argparse
import logging
import signal
import threading
from pathlib import Path

from config import Config
from weaklink.app_watcher import AppWatcher, WatcherSettings, WatcherState
from weaklink.client import WeakLinkClient
from weaklink.probes import AdbForegroundProbe
from weaklink.session import Session
from weaklink.watchlist import WatchListResolver


def _setup_logging(log_dir: Path) -> None:
    log_dir.mkdir(exist_ok=True)
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "watcher.log"),
            logging.StreamHandler(),
        ],
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Weak Link device watcher")
    parser.add_argument("--api", required=True, help="API base URL")
    parser.add_argument("--token", required=True, help="JWT access token")
    parser.add_argument("--user-id", type=int, required=True)
    parser.add_argument("--group-id", type=int, required=True)
    parser.add_argument("--serial", help="adb device serial")
    parser.add_argument("--log-dir", default="logs")
    args = parser.parse_args(argv)

    _setup_logging(Path(args.log_dir))
    logger = logging.getLogger("watch_device")

    settings = WatcherSettings.from_config(Config)
    client = WeakLinkClient(args.api, args.token, timeout=settings.store_timeout)
    resolver = WatchListResolver(client.tracked_apps)
    session = Session(user_id=args.user_id, token=args.token)

    watcher = AppWatcher(
        session,
        args.group_id,
        AdbForegroundProbe(serial=args.serial, timeout=settings.probe_timeout),
        resolver,
        client.append_event,
        settings=settings,
    )

    stop = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop.set()

    def _refresh(signum, frame):
        apps = resolver.refetch(args.group_id)
        logger.info(f"Watch-list refreshed: {len(apps)} apps")

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _refresh)

    state = watcher.start()
    if resolver.last_error:
        logger.warning(resolver.last_error)
    logger.info(f"Watcher {state.value}")
    if state is WatcherState.IDLE:
        logger.info("Nothing to watch for this group")
        watcher.stop()
        return 1

    try:
        while not stop.wait(1.0):
            if watcher.setup_message:
                logger.warning(watcher.setup_message)
                break
            if watcher.state is WatcherState.IDLE:
                logger.info("Watch-list is empty now, nothing left to watch")
                break
    finally:
        watcher.stop()
        logger.info(
            f"Watcher stopped: emitted={watcher.events_emitted} dropped={watcher.events_dropped}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
