"""
trafficlens CLI - Main entry point.

Reads the persisted usage ledger for listings and sends MQTT commands to a
running telemetry service.
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from trafficlens_usage import SortField, SortOrder, UsageEntry, UsageStore, sort_entries, summarize
from .mqtt_client import MQTTCommandClient

DEFAULT_LEDGER = "./data/usage.json"

_UNITS = ["B", "kB", "MB", "GB", "TB", "PB"]


def format_bytes(num_bytes: int) -> str:
    """Decimal units, one fraction digit above bytes (1500 -> '1.5 kB')."""
    value = float(num_bytes)
    for unit in _UNITS:
        if abs(value) < 1000 or unit == _UNITS[-1]:
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1000
    return f"{num_bytes} B"


def format_duration(seconds: float) -> str:
    """Two most significant units: '2d 3h', '4h 10m', '5m 7s', '42s'."""
    total = int(max(0.0, seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _format_time(epoch: Optional[float]) -> str:
    if epoch is None:
        return "-"
    return datetime.fromtimestamp(epoch).strftime("%Y-%m-%d %H:%M:%S")


def render_table(entries: List[UsageEntry]) -> str:
    headers = ["SOURCE", "UPLOAD", "DOWNLOAD", "TOTAL", "DURATION", "LAST SEEN"]
    rows = [
        [
            e.source_identifier,
            format_bytes(e.upload),
            format_bytes(e.download),
            format_bytes(e.total),
            format_duration(e.duration),
            _format_time(e.last_seen),
        ]
        for e in entries
    ]
    widths = [
        max(len(headers[i]), *(len(r[i]) for r in rows)) if rows else len(headers[i])
        for i in range(len(headers))
    ]
    lines = ["  ".join(h.ljust(w) for h, w in zip(headers, widths))]
    for row in rows:
        lines.append("  ".join(c.ljust(w) for c, w in zip(row, widths)))
    return "\n".join(lines)


def render_summary(entries: List[UsageEntry]) -> str:
    stats = summarize(entries)
    if stats.count == 0:
        return "No usage recorded."

    span = stats.latest_last_seen - stats.earliest_first_seen
    return "\n".join([
        f"Sources:   {stats.count}",
        f"Upload:    {format_bytes(stats.total_upload)}",
        f"Download:  {format_bytes(stats.total_download)}",
        f"Total:     {format_bytes(stats.total_combined)}",
        f"Span:      {format_duration(span)} "
        f"({_format_time(stats.earliest_first_seen)} .. {_format_time(stats.latest_last_seen)})",
    ])


def show_ledger(
    ledger_path: Path,
    field: str = SortField.TOTAL.value,
    order: str = SortOrder.DESC.value,
    show_all: bool = False,
) -> str:
    """
    Render the persisted ledger.

    Rows are listed when the persisted details flag is on or ``show_all``
    is set; the summary is always included.
    """
    state = UsageStore(ledger_path).load()
    entries = list(state.entries.values())

    parts = []
    if entries and (state.details_expanded or show_all):
        parts.append(render_table(sort_entries(entries, field, order)))
        parts.append("")
    parts.append(render_summary(entries))
    return "\n".join(parts)


def build_command(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate a control subcommand into its MQTT payload."""
    if args.command == 'clear':
        return {'command': 'clear_usage'}

    if args.command == 'remove':
        return {'command': 'remove_entry', 'source': args.source}

    if args.command == 'set-endpoint':
        command: Dict[str, Any] = {'command': 'update_endpoint'}
        if args.host is not None:
            command['host'] = args.host
        if args.api_port is not None:
            command['port'] = args.api_port
        if args.secret is not None:
            command['secret'] = args.secret or None
        if args.secure is not None:
            command['secure'] = args.secure
        return command

    if args.command == 'details':
        return {'command': 'set_details', 'expanded': args.state == 'on'}

    if args.command == 'status':
        return {'command': 'status'}

    raise ValueError(f"Not a control command: {args.command}")


def send_command(
    command: Dict[str, Any],
    service_id: str = "home",
    broker: str = "localhost",
    port: int = 1883
) -> None:
    topic = f"trafficlens/control/{service_id}/commands"

    client = MQTTCommandClient(broker=broker, port=port)
    client.send_command(topic, command, qos=1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="trafficlens CLI - Inspect usage and control the telemetry service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Read the persisted ledger
  trafficlens-cli show --sort download --order desc --all
  trafficlens-cli summary --ledger ./data/usage.json

  # Control a running service
  trafficlens-cli clear
  trafficlens-cli remove 10.0.0.5
  trafficlens-cli set-endpoint --host 192.168.1.1 --api-port 9090 --secret s3cret
  trafficlens-cli details on
  trafficlens-cli status
"""
    )

    parser.add_argument(
        "--service-id",
        default="home",
        help="Target service ID (default: home)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    show = subparsers.add_parser('show', help='List usage entries from the ledger file')
    show.add_argument('--ledger', default=DEFAULT_LEDGER, help='Ledger file path')
    show.add_argument(
        '--sort',
        default=SortField.TOTAL.value,
        choices=[f.value for f in SortField],
        help='Sort field (default: total)'
    )
    show.add_argument(
        '--order',
        default=SortOrder.DESC.value,
        choices=[o.value for o in SortOrder],
        help='Sort order (default: desc)'
    )
    show.add_argument('--all', action='store_true', help='List rows even when details are collapsed')

    summary = subparsers.add_parser('summary', help='Print ledger totals')
    summary.add_argument('--ledger', default=DEFAULT_LEDGER, help='Ledger file path')

    subparsers.add_parser('clear', help='Clear every usage entry')

    remove = subparsers.add_parser('remove', help='Remove one source from the ledger')
    remove.add_argument('source', help='Source identifier (e.g. 10.0.0.5)')

    set_endpoint = subparsers.add_parser('set-endpoint', help='Change the controller endpoint')
    set_endpoint.add_argument('--host', help='Controller host')
    set_endpoint.add_argument('--api-port', dest='api_port', type=int, help='Controller API port')
    set_endpoint.add_argument('--secret', help='API secret (empty string clears it)')
    set_endpoint.add_argument(
        '--secure',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Use wss/https'
    )

    details = subparsers.add_parser('details', help='Expand or collapse the per-source listing')
    details.add_argument('state', choices=['on', 'off'])

    subparsers.add_parser('status', help='Ask the service to publish its status')

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'show':
            print(show_ledger(Path(args.ledger), args.sort, args.order, args.all))

        elif args.command == 'summary':
            state = UsageStore(Path(args.ledger)).load()
            print(render_summary(list(state.entries.values())))

        else:
            send_command(build_command(args), args.service_id, args.broker, args.port)

    except (OSError, ValueError, RuntimeError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
