import argparse
import sys
from pathlib import Path

from capture_bridge import api
from capture_bridge.__version__ import __version__
from capture_bridge.android.adb import AdbChannel
from capture_bridge.config.settings import load_config
from capture_bridge.logging import LoggerFactory, setup_logging
from capture_bridge.remote.scanner import NO_TARGET


def build_parser():
    parser = argparse.ArgumentParser(
        prog="capture-bridge",
        description="Discover capture targets and inject the capture layer on Android devices",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable very verbose trace output")
    parser.add_argument("--settings", type=Path, help="Path to settings.json")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("devices", help="List connected devices and forward their ports")

    targets = commands.add_parser("targets", help="List live capture targets on a host")
    targets.add_argument("host")

    for name, help_text in (
        ("inject", "Inject the capture layer into an installed package"),
        ("launch", "Launch a package with the capture layer enabled"),
        ("check", "Check whether a package can load the capture layer"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("host")
        command.add_argument("package")

    server = commands.add_parser("server", help="Install and start the remote server")
    server.add_argument("host")
    return parser


def _print_progress(fraction):
    print(f"\r{int(fraction * 100):3d}%", end="", flush=True)
    if fraction >= 1.0:
        print()


def run_command(args, config, channel):
    if args.command == "devices":
        devices = api.enumerate_android_devices(config=config, channel=channel)
        for device in devices:
            print(f"{device.host}\t{device.format_label()}")
        return 0 if devices else 1

    if args.command == "targets":
        found = []
        ident = api.enumerate_remote_targets(args.host, 0, config=config, channel=channel)
        while ident != NO_TARGET:
            found.append(ident)
            print(ident)
            ident = api.enumerate_remote_targets(args.host, ident, config=config, channel=channel)
        return 0 if found else 1

    if args.command == "inject":
        job = api.run_injection(
            args.host, args.package, _print_progress, config=config, channel=channel
        )
        if not job.succeeded:
            print()
            print(f"Injection failed: {job.outcome.describe()}", file=sys.stderr)
            return 1
        print(f"Capture layer added to {job.package}")
        return 0

    if args.command == "launch":
        port = api.start_package_for_capture(
            args.host, args.package, config=config, channel=channel
        )
        if not port:
            print(f"{args.package} did not start listening", file=sys.stderr)
            return 1
        print(port)
        return 0

    if args.command == "check":
        present = api.check_capture_layer_present(
            args.host, args.package, config=config, channel=channel
        )
        print("present" if present else "missing")
        return 0 if present else 1

    if args.command == "server":
        started = api.start_android_remote_server(args.host, config=config, channel=channel)
        return 0 if started else 1

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, trace=args.trace)
    log = LoggerFactory.for_system()
    config = load_config(args.settings)
    log.debug(f"capture-bridge {__version__} using install dir {config.install_dir}")
    channel = AdbChannel(config)
    return run_command(args, config, channel)


if __name__ == "__main__":
    sys.exit(main())
