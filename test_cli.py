"""
Test trafficlens CLI
====================

Ledger listings and command payloads; nothing is sent to a broker.

Usage:
    pytest test_cli.py
"""

import tempfile
from pathlib import Path

import pytest

from trafficlens_cli.cli import build_command, build_parser, format_bytes, format_duration, main, show_ledger
from trafficlens_usage import UsageDelta, UsageLedger, UsageStore


def write_ledger(path, details_expanded=False):
    ledger = UsageLedger(store=UsageStore(path))
    ledger.apply_deltas([UsageDelta("10.0.0.5", 300, 50)], now=1000.0)
    ledger.apply_deltas([UsageDelta("10.0.0.7", 1500, 2_000_000)], now=1000.0)
    ledger.apply_deltas([UsageDelta("10.0.0.5", 0, 0)], now=1090.0)
    ledger.set_details_expanded(details_expanded)


def test_format_bytes():
    assert format_bytes(0) == "0 B"
    assert format_bytes(999) == "999 B"
    assert format_bytes(1500) == "1.5 kB"
    assert format_bytes(2_000_000) == "2.0 MB"
    print("✓ Byte sizes in decimal units")


def test_format_duration():
    assert format_duration(42) == "42s"
    assert format_duration(307) == "5m 7s"
    assert format_duration(4 * 3600 + 600) == "4h 10m"
    assert format_duration(2 * 86400 + 3 * 3600) == "2d 3h"
    print("✓ Durations use the two largest units")


def test_show_respects_details_flag():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "usage.json"

        write_ledger(path, details_expanded=False)
        collapsed = show_ledger(path)
        assert "SOURCE" not in collapsed
        assert "Sources:   2" in collapsed

        forced = show_ledger(path, show_all=True)
        assert "10.0.0.5" in forced

        write_ledger(path, details_expanded=True)
        expanded = show_ledger(path, field="total", order="desc")
        lines = expanded.splitlines()
        assert lines[0].startswith("SOURCE")
        assert lines[1].startswith("10.0.0.7")
        assert lines[2].startswith("10.0.0.5")
        assert "1m 30s" in lines[2]
    print("✓ Rows listed only when details are expanded (or --all)")


def test_show_empty_ledger():
    with tempfile.TemporaryDirectory() as tmp:
        assert show_ledger(Path(tmp) / "missing.json") == "No usage recorded."
    print("✓ Missing ledger renders as empty")


def test_summary_command_prints_totals(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "usage.json"
        write_ledger(path)
        main(["summary", "--ledger", str(path)])

    out = capsys.readouterr().out
    assert "Sources:   2" in out
    assert "Total:" in out


@pytest.mark.parametrize("argv,expected", [
    (["clear"], {'command': 'clear_usage'}),
    (["remove", "10.0.0.5"], {'command': 'remove_entry', 'source': "10.0.0.5"}),
    (["details", "on"], {'command': 'set_details', 'expanded': True}),
    (["details", "off"], {'command': 'set_details', 'expanded': False}),
    (["status"], {'command': 'status'}),
    (["set-endpoint", "--host", "192.168.1.1", "--api-port", "9090"],
     {'command': 'update_endpoint', 'host': "192.168.1.1", 'port': 9090}),
    (["set-endpoint", "--secret", "", "--secure"],
     {'command': 'update_endpoint', 'secret': None, 'secure': True}),
])
def test_control_command_payloads(argv, expected):
    args = build_parser().parse_args(argv)
    assert build_command(args) == expected


def test_unreadable_ledger_exits_nonzero():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "usage.json"
        path.write_text("[]")
        with pytest.raises(SystemExit) as exc:
            main(["show", "--ledger", str(path)])
        assert exc.value.code == 1
    print("✓ Corrupt ledger reported as an error")


def main_tests():
    print("\n" + "=" * 60)
    print("CLI TESTS")
    print("=" * 60)

    test_format_bytes()
    test_format_duration()
    test_show_respects_details_flag()
    test_show_empty_ledger()
    test_unreadable_ledger_exits_nonzero()

    print("\n✅ ALL CLI TESTS PASSED")


if __name__ == "__main__":
    main_tests()
