# pvs6_logger/main.py

import asyncio
import configparser

from .cli import build_parser
from .config import Config
from .logging import ConsoleLog, StructuredLog

from .services import state_maintenance
from .services.device_poller import FilePoller, PVS6Poller
from .services.latest_state import read_latest
from .services.notifiers.healthchecks import HealthchecksNotifier
from .services.output_formatter import emit_human, emit_json
from .services.payload_decoder import PayloadDecoder
from .services.poll_cycle import DeviceCycle, WeatherCycle, run_forever
from .services.scheduler import ClockAlignedSchedule
from .services.store import ConnectionPool, TelemetryStore
from .services.weather_client import WeatherClient


def open_store(store_cfg) -> TelemetryStore:
    pool = ConnectionPool(store_cfg.path, size=store_cfg.pool_size)
    return TelemetryStore(pool)


def build_device_cycle(app_cfg, store, log, *, payload_file=None, dry_run=False, structured_log=None):
    if payload_file:
        poller = FilePoller(payload_file, log.getChild("poller"))
    else:
        poller = PVS6Poller(app_cfg.pvs6, log.getChild("poller"))
    return DeviceCycle(
        poller,
        PayloadDecoder(log.getChild("decoder")),
        store,
        log.getChild("devices"),
        notifier=HealthchecksNotifier(app_cfg.healthchecks, log.getChild("healthchecks")),
        structured_log=structured_log,
        dry_run=dry_run,
    )


async def run_service(app_cfg, store, log, structured_log=None) -> None:
    device_schedule = ClockAlignedSchedule.from_config(
        app_cfg.pvs6.schedule,
        name="devices",
        log=log.getChild("scheduler"),
    )
    device_cycle = build_device_cycle(app_cfg, store, log, structured_log=structured_log)
    tasks = [asyncio.create_task(run_forever(device_schedule, device_cycle, log.getChild("devices")))]

    weather_client = WeatherClient(app_cfg.weather, log.getChild("weather"))
    if weather_client.enabled:
        weather_schedule = ClockAlignedSchedule.from_config(
            app_cfg.weather.schedule,
            name="weather",
            log=log.getChild("scheduler"),
        )
        weather_cycle = WeatherCycle(weather_client, store, log.getChild("weather"))
        tasks.append(asyncio.create_task(run_forever(weather_schedule, weather_cycle, log.getChild("weather"))))
    else:
        log.info("Weather polling disabled")

    try:
        await asyncio.gather(*tasks)
    finally:
        weather_client.close()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_cfg = Config.load(args.config)
    except (FileNotFoundError, ValueError, configparser.Error) as exc:
        log = ConsoleLog(level="DEBUG" if args.debug else "INFO", quiet=args.quiet).setup()
        log.error("Configuration error: %s", exc)
        raise SystemExit(2)

    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )

    if args.command == "next-fire":
        schedules = [ClockAlignedSchedule.from_config(app_cfg.pvs6.schedule, name="devices", log=log.getChild("scheduler"))]
        if app_cfg.weather.enabled:
            schedules.append(
                ClockAlignedSchedule.from_config(app_cfg.weather.schedule, name="weather", log=log.getChild("scheduler"))
            )
        for schedule in schedules:
            print(f"{schedule.name}: {schedule.first_fire().isoformat()} (every {schedule.total_seconds}s)")
        return

    store = open_store(app_cfg.store)
    try:
        if args.command == "run":
            log.info("Starting PVS6 logger; store at %s", store.pool.path)
            try:
                asyncio.run(run_service(app_cfg, store, log, structured_logger))
            except KeyboardInterrupt:
                log.info("Interrupted; shutting down")

        elif args.command == "poll-once":
            cycle = build_device_cycle(
                app_cfg,
                store,
                log,
                payload_file=args.payload_file,
                dry_run=args.dry_run,
                structured_log=structured_logger,
            )
            result = cycle.run_once()
            if not args.quiet:
                report = None if args.dry_run else result.report
                if args.json:
                    emit_json(result.snapshot, report=report)
                else:
                    emit_human(result.snapshot, report=report)
            if not result.ok:
                raise SystemExit(1)

        elif args.command == "show-latest":
            snapshot = read_latest(store, log.getChild("latest_state"))
            weather = store.latest_weather()
            if args.json:
                emit_json(snapshot, weather=weather)
            else:
                emit_human(snapshot, weather=weather)

        elif args.command == "maintain-db":
            days = args.heartbeat_days if args.heartbeat_days is not None else app_cfg.retention.heartbeat_days
            vacuum = app_cfg.retention.vacuum_after_prune and not args.no_vacuum
            removed = state_maintenance.prune(store, days, vacuum=vacuum)
            log.info("Database maintenance complete (%d heartbeat rows older than %s days removed)", removed, days)

        else:
            raise ValueError(f"Unsupported command: {args.command}")
    finally:
        store.close()


if __name__ == "__main__":
    main()
