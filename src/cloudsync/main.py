"""Command line entry point.

Usage:
    cloudsync setup                      Configure the remote (and a first sync folder)
    cloudsync mount | unmount            Browse the remote through a cached mount
    cloudsync sync                       Sync every destination
    cloudsync sync <name>                Sync one destination
    cloudsync sync ls                    List destinations
    cloudsync sync add <name> --local PATH --remote PATH
    cloudsync sync rm <name>             Remove a destination and its state
    cloudsync resync <name> [local|remote|newer]
    cloudsync install <name> [--mode local|remote|newer]
    cloudsync uninstall <name>
    cloudsync status
"""

import argparse
import getpass
import signal
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .config.loader import ConfigLoader, ConfigurationError
from .config.schema import ReconcileMode, RemoteConnection, build_webdav_url
from .config.settings import AppSettings, get_settings
from .core import BaselineRequiredError, Components, EngineError, RunOutcome, build_components
from .remote import ConnectivityError, MountError, MountManager
from .scheduler import SchedulerError
from .status import StatusReporter
from .utils.logging import get_logger, setup_logging


EXIT_OK = 0
EXIT_ENGINE_FAILURE = 1
EXIT_CONFIGURATION = 2
EXIT_CONNECTIVITY = 3
EXIT_SCHEDULER = 4

OUTCOME_EXIT_CODES = {
    RunOutcome.SUCCESS: EXIT_OK,
    RunOutcome.SKIPPED: EXIT_OK,
    RunOutcome.FAILED: EXIT_ENGINE_FAILURE,
    RunOutcome.ERROR: EXIT_CONFIGURATION,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudsync",
        description="Scheduled bidirectional sync between local folders and an OpenCloud/WebDAV remote",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s setup
  %(prog)s sync add ableton --local ~/Music/Ableton --remote Music/Ableton
  %(prog)s install ableton --mode newer
  %(prog)s resync ableton remote
  %(prog)s status
        """
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only show errors")

    commands = parser.add_subparsers(dest="command", metavar="command")
    commands.required = True

    commands.add_parser("setup", help="Configure the remote and an optional sync folder")
    commands.add_parser("mount", help="Mount the remote for browsing")
    commands.add_parser("unmount", aliases=["umount"], help="Unmount the remote")

    sync = commands.add_parser(
        "sync",
        help="Sync all destinations, one destination, or manage destinations (ls, add, rm)",
    )
    sync.add_argument("target", nargs="?", help="Destination name, or one of: ls, add, rm")
    sync.add_argument("name", nargs="?", help="Destination name for add/rm")
    sync.add_argument("--local", help="Local folder (sync add)")
    sync.add_argument("--remote", help="Folder relative to the remote root (sync add)")

    resync = commands.add_parser("resync", help="Re-establish a destination's baseline")
    resync.add_argument("name")
    resync.add_argument(
        "mode",
        nargs="?",
        default=ReconcileMode.NEWER.value,
        choices=[m.value for m in ReconcileMode],
        help="local: local is source of truth; remote: remote is source of truth; "
             "newer: newer file wins, losers kept as backups (default)",
    )

    install = commands.add_parser("install", help="Run sync for a destination every interval")
    install.add_argument("name")
    install.add_argument(
        "--mode",
        choices=[m.value for m in ReconcileMode],
        help="Resync with this mode before installing (required for a new destination)",
    )

    uninstall = commands.add_parser("uninstall", help="Remove a destination's periodic sync")
    uninstall.add_argument("name")

    status = commands.add_parser("status", help="Show remote, mount and sync status")
    status.add_argument("--offline", action="store_true", help="Skip the remote connection check")

    return parser


def setup_signal_handlers() -> None:
    """Turn termination signals into SystemExit so scoped locks are released."""
    def signal_handler(signum, frame):
        raise SystemExit(128 + signum)

    signal.signal(signal.SIGTERM, signal_handler)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, signal_handler)


class CLI:
    """Dispatches parsed arguments to the orchestrator and reporters."""

    def __init__(
        self,
        components: Components,
        prompt: Callable[[str], str] = input,
        secret_prompt: Callable[[str], str] = getpass.getpass,
        interactive: Optional[bool] = None,
        out=None,
    ):
        self.components = components
        self.orchestrator = components.orchestrator
        self.prompt = prompt
        self.secret_prompt = secret_prompt
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self.out = out or sys.stdout
        self.logger = get_logger("cloudsync")

    def run(self, args: argparse.Namespace) -> int:
        handler = getattr(self, f"cmd_{args.command.replace('umount', 'unmount')}")
        return handler(args)

    def echo(self, message: str = "") -> None:
        print(message, file=self.out)

    def cmd_sync(self, args: argparse.Namespace) -> int:
        target = args.target

        if target is None:
            outcomes = self.orchestrator.sync_all()
            return max((OUTCOME_EXIT_CODES[o] for o in outcomes.values()), default=EXIT_OK)

        if target == "ls":
            registry = self.components.registry
            for name in sorted(registry.list()):
                destination = registry.get(name)
                self.echo(f"{name}\t{destination.local_path}\t{self.components.remote.spec(destination.remote_path)}")
            return EXIT_OK

        if target == "rm":
            if not args.name:
                raise ConfigurationError("Usage: cloudsync sync rm <name>")
            self.components.registry.remove(args.name)
            return EXIT_OK

        if target == "add":
            if not args.name:
                raise ConfigurationError("Usage: cloudsync sync add <name> --local PATH --remote PATH")
            destination = self.components.registry.add_or_update(args.name, args.local, args.remote)
            if not self.components.baselines.has_baseline(destination):
                self.logger.info(
                    f"Next: cloudsync install {destination.name} --mode [local|remote|newer]"
                )
            return EXIT_OK

        if args.name:
            raise ConfigurationError(f"Unexpected argument: {args.name}")
        return OUTCOME_EXIT_CODES[self.orchestrator.sync(target)]

    def cmd_resync(self, args: argparse.Namespace) -> int:
        outcome = self.orchestrator.resync(args.name, ReconcileMode(args.mode))
        return OUTCOME_EXIT_CODES[outcome]

    def cmd_install(self, args: argparse.Namespace) -> int:
        mode = ReconcileMode(args.mode) if args.mode else None
        try:
            outcome = self.orchestrator.install(args.name, mode)
        except BaselineRequiredError:
            if not self.interactive:
                raise
            outcome = self.orchestrator.install(args.name, self.ask_mode(args.name))
        if outcome is RunOutcome.SKIPPED:
            # Busy lock: nothing was installed, so this is not a success.
            return EXIT_ENGINE_FAILURE
        return OUTCOME_EXIT_CODES[outcome]

    def cmd_uninstall(self, args: argparse.Namespace) -> int:
        self.orchestrator.uninstall(args.name)
        return EXIT_OK

    def cmd_status(self, args: argparse.Namespace) -> int:
        components = self.components
        reporter = StatusReporter(
            settings=components.settings,
            remote=components.remote,
            registry=components.registry,
            lock=components.lock,
            failures=components.failures,
            baselines=components.baselines,
            schedule_manager=components.schedule_manager,
            remote_client=components.remote_client,
            mount_manager=MountManager(components.settings, components.remote),
        )
        self.out.write(reporter.render(reporter.collect(check_connectivity=not args.offline)))
        return EXIT_OK

    def cmd_mount(self, args: argparse.Namespace) -> int:
        remote = self.components.remote_client.require_configured(self.components.remote)
        self.components.remote_client.ensure_reachable(remote)
        MountManager(self.components.settings, remote).mount()
        return EXIT_OK

    def cmd_unmount(self, args: argparse.Namespace) -> int:
        MountManager(self.components.settings, self.components.remote).unmount()
        return EXIT_OK

    def cmd_setup(self, args: argparse.Namespace) -> int:
        settings = self.components.settings
        current = self.components.remote

        server = self.prompt("Enter OpenCloud server URL (e.g., cloud.example.com): ").strip()
        username = self.prompt("Enter username: ").strip()
        password = self.secret_prompt("Enter password: ")
        mount_point = self.prompt(f"Enter mount point [{current.mount_point}]: ").strip() or current.mount_point
        cache_size = self.prompt(f"Enter local cache size limit in GB [{current.cache_size_gb}]: ").strip()

        if not server or not username or not password:
            raise ConfigurationError("Server URL, username, and password are required")

        try:
            remote = RemoteConnection(
                name=current.name,
                url=build_webdav_url(server),
                username=username,
                vendor=current.vendor,
                mount_point=mount_point,
                cache_size_gb=int(cache_size) if cache_size else current.cache_size_gb,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid setup values: {e}")

        self.components.remote_client.configure(remote, password)
        ConfigLoader().save_remote(remote, settings.remote_file)
        self.logger.info("Testing connection...", url=remote.url)
        self.components.remote_client.ensure_reachable(remote)
        self.logger.info("Connection test passed")

        self.echo()
        self.echo("Bidirectional sync keeps a local folder synced with a remote folder.")
        self.echo("(Leave empty to skip sync setup)")
        local = self.prompt("Enter local folder to sync (e.g., ~/Music/AbletonProjects): ").strip()
        if local:
            remote_path = self.prompt("Enter remote folder to sync (e.g., Projects/Ableton): ").strip()
            default_name = Path(local).expanduser().name or "default"
            name = self.prompt(f"Enter a name for this sync [{default_name}]: ").strip() or default_name
            self.components.registry.add_or_update(name, local, remote_path)
            self.logger.info(f"Next: cloudsync install {name} --mode [local|remote|newer]")
        return EXIT_OK

    def ask_mode(self, name: str) -> ReconcileMode:
        self.echo(f"'{name}' has never been synced. Choose which side wins on the first sync:")
        for mode in ReconcileMode:
            self.echo(f"  {mode.value:<7} {mode.description}")
        while True:
            answer = self.prompt("Mode [local/remote/newer]: ").strip().lower()
            try:
                return ReconcileMode(answer)
            except ValueError:
                self.echo(f"Invalid mode: {answer}")


def main(
    argv: Optional[List[str]] = None,
    settings: Optional[AppSettings] = None,
    components: Optional[Components] = None,
    **cli_kwargs,
) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    settings = settings or get_settings()

    log_level = "ERROR" if args.quiet else ("DEBUG" if args.verbose else None)
    setup_logging(log_level=log_level, settings=settings)
    logger = get_logger("cloudsync")

    setup_signal_handlers()

    try:
        components = components or build_components(settings)
        return CLI(components, **cli_kwargs).run(args)
    except EngineError as e:
        logger.error(str(e))
        return EXIT_ENGINE_FAILURE
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_CONFIGURATION
    except ConnectivityError as e:
        logger.error(str(e))
        return EXIT_CONNECTIVITY
    except MountError as e:
        logger.error(str(e))
        return EXIT_CONNECTIVITY
    except SchedulerError as e:
        logger.error(str(e))
        return EXIT_SCHEDULER
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
