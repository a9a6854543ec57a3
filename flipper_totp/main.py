"""
Command Line Entry Point

Usage:
    flipper-totp list
    flipper-totp list --json
    flipper-totp add "My Service" --secret JBSWY3DPEHPK3PXP --digits 6 --duration 30
    flipper-totp update 2 --name "Other name"
    flipper-totp delete 2
    flipper-totp move 3 1
    flipper-totp timezone
    flipper-totp timezone --set 2

Examples:
    # Use a custom configuration and expose Prometheus metrics
    flipper-totp --config config/client.yaml --metrics-port 9090 list
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from flipper_totp import __version__
from flipper_totp.communication import EventBus, ProtocolEvent
from flipper_totp.logging.logger import configure_logging, get_logger
from flipper_totp.monitoring import start_metrics_server
from flipper_totp.protocol.client import TotpAppClient
from flipper_totp.utils import ClientSettings, ConfigLoader
from flipper_totp.utils.config_loader import CONFIG_PATH_ENV

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog='flipper-totp',
        description='Manage TOTP tokens on a Flipper Zero',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--config',
        default=os.getenv(CONFIG_PATH_ENV, str(DEFAULT_CONFIG_DIR / 'client.yaml')),
        help='Client configuration file (default: config/client.yaml)'
    )
    parser.add_argument(
        '--log-config',
        default=str(DEFAULT_CONFIG_DIR / 'logging.yaml'),
        help='Logging configuration file (default: config/logging.yaml)'
    )
    parser.add_argument(
        '--metrics-port',
        type=int,
        help='Expose Prometheus metrics on this port'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('wait', help='Wait until the authenticator app responds')

    list_parser = commands.add_parser('list', help='List tokens')
    list_parser.add_argument('--json', action='store_true', help='Print records as JSON')

    add_parser = commands.add_parser('add', help='Add a token')
    add_parser.add_argument('name')
    add_parser.add_argument('--secret', required=True)
    add_parser.add_argument('--algorithm', default='sha1')
    add_parser.add_argument('--encoding', default='base32')
    add_parser.add_argument('--digits', type=int, default=6)
    add_parser.add_argument('--duration', type=int, default=30)

    update_parser = commands.add_parser('update', help='Update a token')
    update_parser.add_argument('index', type=int)
    update_parser.add_argument('--name')
    update_parser.add_argument('--algorithm')
    update_parser.add_argument('--digits', type=int)
    update_parser.add_argument('--duration', type=int)

    delete_parser = commands.add_parser('delete', help='Delete a token')
    delete_parser.add_argument('index', type=int)

    move_parser = commands.add_parser('move', help='Move a token')
    move_parser.add_argument('index', type=int)
    move_parser.add_argument('new_index', type=int)

    tz_parser = commands.add_parser('timezone', help='Show or set the timezone offset')
    tz_parser.add_argument('--set', type=float, dest='offset')

    return parser.parse_args(argv)


def load_settings(config_path: str) -> ClientSettings:
    """Settings from the config file, or defaults when it does not exist"""
    if not Path(config_path).exists():
        return ClientSettings()
    return ClientSettings.from_config(ConfigLoader.load_with_env_override(config_path))


def format_table(records: List[dict]) -> str:
    """Render records as an aligned plain-text table"""
    if not records:
        return "No tokens"

    headers = list(records[0].keys())
    widths = [
        max(len(header), *(len(record.get(header, '')) for record in records))
        for header in headers
    ]
    lines = ["  ".join(header.ljust(width) for header, width in zip(headers, widths))]
    lines.append("  ".join("-" * width for width in widths))
    for record in records:
        lines.append("  ".join(record.get(header, '').ljust(width) for header, width in zip(headers, widths)))
    return "\n".join(line.rstrip() for line in lines)


async def run_command(args: argparse.Namespace, client: TotpAppClient) -> int:
    """Run the selected subcommand; returns the process exit code"""
    await client.wait_for_app()

    if args.command == 'wait':
        print("Authenticator is ready")
        return 0

    if args.command == 'list':
        records = await client.list_tokens()
        print(json.dumps(records, indent=2) if args.json else format_table(records))
        return 0

    if args.command == 'add':
        ok = await client.add_token(
            args.name, args.secret,
            algorithm=args.algorithm,
            digits=args.digits,
            duration=args.duration,
            secret_encoding=args.encoding
        )
    elif args.command == 'update':
        ok = await client.update_token(
            args.index,
            name=args.name,
            algorithm=args.algorithm,
            digits=args.digits,
            duration=args.duration
        )
    elif args.command == 'delete':
        ok = await client.delete_token(args.index)
    elif args.command == 'move':
        ok = await client.move_token(args.index, args.new_index)
    elif args.command == 'timezone':
        if args.offset is None:
            offset = await client.get_timezone()
            print(offset if offset is not None else "Unknown")
            return 0
        ok = await client.set_timezone(args.offset)
    else:
        raise ValueError(f"Unknown command: {args.command}")

    print("✓ Done" if ok else "✗ Device rejected or cancelled the request")
    return 0 if ok else 1


async def run(args: argparse.Namespace) -> int:
    logger = get_logger(__name__)
    settings = load_settings(args.config)

    bus = EventBus()
    bus.subscribe(ProtocolEvent.CONNECTING, lambda client: print("Waiting for Flipper Zero..."))
    bus.subscribe(
        ProtocolEvent.CONNECTED,
        lambda client: logger.info("Connected", extra={'device_id': client.session.transport.path})
    )
    bus.subscribe(
        ProtocolEvent.PIN_REQUESTED,
        lambda client: print("Enter the PIN on your Flipper Zero to continue")
    )

    async with TotpAppClient(event_bus=bus, settings=settings) as client:
        return await run_command(args, client)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    configure_logging(args.log_config)

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except (TimeoutError, ConnectionError, ValueError) as e:
        print(f"\n✗ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
