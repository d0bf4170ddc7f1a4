"""validator-updater CLI.

    validator-updater run [--once] [--interval SECONDS]
    validator-updater config show|set-vmm-url|set-env|remove-env|list-env|get-env
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config_api import ConfigApiClient
from .errors import PlatformConfigError, UpdaterError
from .lifecycle import RetryPolicy, VmLifecycle
from .platform_config import DEFAULT_CLI_VMM_URL, PlatformConfig
from .reconciler import Reconciler, ReconcilerState
from .settings import UpdaterSettings, log_settings_sources
from .vmm import VmmClient

logger = logging.getLogger(__name__)

LOG_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=LOG_LEVEL_MAP.get(level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    # httpx logs every request at INFO; the RPC layer already does.
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ── run ──────────────────────────────────────────────────────────────────────


async def _run_updater(settings: UpdaterSettings, once: bool, interval: float) -> int:
    logger.info(f"Connecting to VMM at: {settings.vmm_url}")

    async with (
        ConfigApiClient(settings.config_api_url, timeout=settings.http_timeout) as config_api,
        VmmClient(settings.vmm_url, timeout=settings.http_timeout) as vmm,
    ):
        lifecycle = VmLifecycle(
            vmm,
            stop_timeout=settings.stop_timeout,
            stop_settle=settings.stop_settle,
            remove_grace=settings.remove_grace,
            remove_policy=RetryPolicy(
                max_attempts=settings.remove_attempts, delay=settings.remove_retry_delay
            ),
        )
        reconciler = Reconciler(
            config_api,
            vmm,
            lifecycle,
            platform_config_path=settings.platform_config_path,
            vm_name=settings.vm_name,
        )

        if once:
            try:
                await reconciler.run_cycle(ReconcilerState())
            except UpdaterError as e:
                logger.error(f"Update check failed: {e}")
                return 1
            except Exception:
                logger.exception("Update check failed with unexpected error")
                return 1
            return 0

        await reconciler.run_forever(interval)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    settings = UpdaterSettings.from_env()
    configure_logging(settings.log_level)
    log_settings_sources()

    interval = args.interval if args.interval is not None else settings.poll_interval
    try:
        return asyncio.run(_run_updater(settings, args.once, interval))
    except KeyboardInterrupt:
        print("stopped", file=sys.stderr)
        return 130


# ── config ───────────────────────────────────────────────────────────────────


def _load_for_edit(path: str) -> PlatformConfig:
    try:
        return PlatformConfig.load(path)
    except PlatformConfigError:
        return PlatformConfig(dstack_vmm_url=DEFAULT_CLI_VMM_URL)


def cmd_config(args: argparse.Namespace) -> int:
    path = args.config_path or UpdaterSettings.from_env().platform_config_path
    config = _load_for_edit(path)

    if args.config_command == "show":
        print("Current Platform Configuration:")
        print(f"  VMM URL: {config.dstack_vmm_url or '(not set)'}")
        print("  Environment Variables:")
        if not config.env:
            print("    (none)")
        for key, value in (config.env or {}).items():
            print(f"    {key} = {value}")

    elif args.config_command == "set-vmm-url":
        config.dstack_vmm_url = args.url
        config.save(path)
        print(f"✓ VMM URL set to: {args.url}")

    elif args.config_command == "set-env":
        config.ensure_env_map()[args.key] = args.value
        config.save(path)
        print(f"✓ Environment variable set: {args.key} = {args.value}")

    elif args.config_command == "remove-env":
        if config.env is None:
            raise UpdaterError("No environment variables configured")
        if args.key not in config.env:
            raise UpdaterError(f"Environment variable '{args.key}' not found")
        del config.env[args.key]
        config.save(path)
        print(f"✓ Environment variable removed: {args.key}")

    elif args.config_command == "list-env":
        if not config.env:
            print("No environment variables configured")
        else:
            print("Environment Variables:")
            for key, value in config.env.items():
                print(f"  {key} = {value}")

    elif args.config_command == "get-env":
        if not config.env or args.key not in config.env:
            raise UpdaterError(f"Environment variable '{args.key}' not found")
        print(config.env[args.key])

    return 0


# ── parser ───────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="validator-updater",
        description="Validator VM auto-updater and configuration manager",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Start the auto-updater service")
    run_parser.add_argument(
        "--once", action="store_true", help="Run a single reconciliation cycle, then exit"
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between cycles (default: POLL_INTERVAL or 5)",
    )

    config_parser = subparsers.add_parser("config", help="Manage platform configuration")
    config_parser.add_argument(
        "--config-path",
        default=None,
        help="Platform config file (default: PLATFORM_CONFIG_PATH)",
    )
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)

    config_sub.add_parser("show", help="Show current configuration")

    vmm_url_parser = config_sub.add_parser("set-vmm-url", help="Set VMM URL")
    vmm_url_parser.add_argument("url", help="VMM URL (e.g., http://10.0.2.2:16850/)")

    set_env_parser = config_sub.add_parser("set-env", help="Set an environment variable")
    set_env_parser.add_argument("key", help="Environment variable key")
    set_env_parser.add_argument("value", help="Environment variable value")

    remove_env_parser = config_sub.add_parser("remove-env", help="Remove an environment variable")
    remove_env_parser.add_argument("key", help="Environment variable key to remove")

    config_sub.add_parser("list-env", help="List all environment variables")

    get_env_parser = config_sub.add_parser("get-env", help="Get an environment variable value")
    get_env_parser.add_argument("key", help="Environment variable key")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        if args.command == "run":
            return cmd_run(args)
        elif args.command == "config":
            return cmd_config(args)
    except UpdaterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
