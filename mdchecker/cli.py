"""
mdchecker command line: worker, web and trigger
"""
import argparse
import signal
import sys
import threading

import structlog

from mdchecker.constants import CONTROL_COMMANDS, JOB_DEEP_CHECK, JOB_TITLE_CHECK
from mdchecker.control_plane import (
    EVENT_ALREADY_RUNNING,
    EVENT_FAILURE,
    EVENT_NO_ITEMS,
    EVENT_SUCCESS,
    EVENT_UNSUPPORTED,
    ControlClient,
)
from mdchecker.exceptions import ControlPlaneException
from mdchecker.settings import load_settings
from mdchecker.utils import configure_logging

logger = structlog.get_logger("main")

CLEAR_LINE = "\r\u001b[K"

COMMAND_NAMES = {
    JOB_TITLE_CHECK: "Title Check",
    JOB_DEEP_CHECK: "Deep Check",
}


def wait_for_shutdown():
    """Block until SIGINT or SIGTERM"""
    stop = threading.Event()

    def handle_signal(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    while not stop.is_set():
        stop.wait(1)


def run_worker(settings):
    from mdchecker.app import create_app
    from mdchecker.control_plane import ControlServer
    from mdchecker.db import shutdown_db
    from mdchecker.jobs import JobScheduler, RunCoordinator

    quiet = settings["logging"]["no_start_stop_logs"]
    app = create_app(settings)
    coordinator = RunCoordinator.from_settings(app, settings)
    scheduler = JobScheduler(coordinator, settings["schedules"])
    server = ControlServer.from_settings(coordinator, settings)

    scheduler.start()
    server.start()
    if not quiet:
        logger.info("Update checker started")

    wait_for_shutdown()

    if not quiet:
        logger.info("Shutdown signal received; shutting down")
    scheduler.shutdown()
    server.stop()
    shutdown_db(app)
    if not quiet:
        logger.info("Shutdown complete")
    return 0


def run_web(settings):
    from mdchecker.app import create_app

    http = settings["http"]
    app = create_app(settings)
    if http["socket_path"]:
        logger.info(f"Server running on unix socket {http['socket_path']}")
        app.run(host=f"unix://{http['socket_path']}", debug=False, use_reloader=False)
    elif http["port"]:
        host = http["host"] or "127.0.0.1"
        logger.info(f"Server running on {host}:{http['port']}")
        app.run(host=host, port=http["port"], debug=False, use_reloader=False)
    else:
        logger.error("No valid HTTP configuration found")
        return 1
    return 0


def run_trigger(settings, command, out=sys.stdout, err=sys.stderr):
    """Force a run through the control socket. Exit code 0 on success or no-items, 1 otherwise."""
    if command not in CONTROL_COMMANDS:
        err.write(f'You must provide a valid command\nSupported commands are {", ".join(CONTROL_COMMANDS)}.\n')
        return 1

    name = COMMAND_NAMES[command]
    client = ControlClient(settings["control"]["socket_path"])
    try:
        call = client.trigger(command)
        for progress in call.progress():
            out.write(f"{CLEAR_LINE}Progress: {progress}")
            out.flush()
        result = call.result()
    except (OSError, ControlPlaneException) as e:
        err.write(f"{CLEAR_LINE}Could not reach the update checker: {e}\n")
        return 1

    if result.event == EVENT_UNSUPPORTED:
        err.write(f'{CLEAR_LINE}Command "{command}" is unsupported\n')
        return 1
    if result.event == EVENT_ALREADY_RUNNING:
        err.write(f"{CLEAR_LINE}A {name} is already running\n")
        return 1
    if result.event == EVENT_FAILURE:
        err.write(f"{CLEAR_LINE}The {name} failed with code {result.data}\n")
        return 1
    if result.event == EVENT_NO_ITEMS:
        out.write(f"{CLEAR_LINE}The {name} did not have any items to run\n")
        return 0
    if result.event == EVENT_SUCCESS:
        if command == JOB_TITLE_CHECK:
            out.write(f"{CLEAR_LINE}The {name} fetched {result.data} title(s)\n")
        else:
            out.write(f"{CLEAR_LINE}The {name} checked {result.data} series\n")
        return 0
    return 1


def build_parser():
    parser = argparse.ArgumentParser(prog="mdchecker", description="MangaDex update checker")
    parser.add_argument("--config", help="Path to settings.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("worker", help="Run scheduled jobs and the control socket")
    subparsers.add_parser("web", help="Run the HTTP query API")
    trigger = subparsers.add_parser("trigger", help="Force a job run")
    trigger.add_argument("job", help=f"One of: {', '.join(CONTROL_COMMANDS)}")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = load_settings(force=True, config_file=args.config)

    if args.command == "trigger":
        return run_trigger(settings, args.job)

    configure_logging()
    if args.command == "worker":
        return run_worker(settings)
    return run_web(settings)


if __name__ == "__main__":
    sys.exit(main())
