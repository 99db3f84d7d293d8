# pvs6_logger/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="pvs6-logger",
        description="SunPower PVS6 telemetry logger"
    )

    parser.add_argument(
        "--config",
        default="pvs6_logger.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress stdout output (service-friendly)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Long-running service
    sub.add_parser("run", help="Poll the PVS6 (and weather, if enabled) on schedule until stopped")

    # Single device cycle
    cmd_poll = sub.add_parser(
        "poll-once",
        help="Run one device cycle now and print the reconciled snapshot",
    )
    cmd_poll.add_argument(
        "--payload-file",
        help="Decode a saved DeviceList response instead of polling the PVS6",
    )
    cmd_poll.add_argument(
        "--dry-run",
        action="store_true",
        help="Reconcile but do not write to the store",
    )

    sub.add_parser("show-latest", help="Print the latest stored reading per device")

    sub.add_parser("next-fire", help="Print when each configured schedule will next fire")

    cmd_maint = sub.add_parser("maintain-db", help="Prune old heartbeat rows from the store")
    cmd_maint.add_argument(
        "--heartbeat-days",
        type=int,
        help="Override [retention] heartbeat_days",
    )
    cmd_maint.add_argument(
        "--no-vacuum",
        action="store_true",
        help="Skip VACUUM after pruning",
    )

    return parser
