"""
Usage Store
===========

JSON file persistence for the usage ledger.

Layout::

    {
        "schema_version": "1.0",
        "entries": {"10.0.0.5": {...UsageEntry...}},
        "details_expanded": false
    }

Writes go to a sibling temp file and are moved into place with os.replace(),
so a reader never observes a half-written ledger.
"""

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from trafficlens_usage.models import UsageEntry

SCHEMA_VERSION = "1.0"


@dataclass
class LedgerState:
    """Everything persisted alongside the entries."""
    entries: Dict[str, UsageEntry] = field(default_factory=dict)
    details_expanded: bool = False
    # source -> reason, for entries skipped at load time
    rejected: Dict[str, str] = field(default_factory=dict)


class UsageStore:
    """
    Reads and atomically rewrites the ledger file.

    Errors are raised to the caller (the ledger decides what is fatal).
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> LedgerState:
        """
        Read the persisted ledger.

        Returns:
            LedgerState, empty when the file does not exist yet
            (entries that fail validation are listed in ``rejected``)

        Raises:
            ValueError: If the file exists but is not a valid ledger
            OSError: If the file cannot be read
        """
        if not self.path.exists():
            return LedgerState()

        with open(self.path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Ledger file is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Ledger file must contain a JSON object")

        raw_entries = data.get("entries") or {}
        if not isinstance(raw_entries, dict):
            raise ValueError("Ledger 'entries' must be an object")

        entries = {}
        rejected = {}
        for source, raw in raw_entries.items():
            if not isinstance(raw, dict):
                rejected[source] = "entry must be an object"
                continue
            try:
                entry = UsageEntry.from_dict({**raw, "source_identifier": source})
            except ValueError as e:
                rejected[source] = str(e)
                continue
            entries[entry.source_identifier] = entry

        return LedgerState(
            entries=entries,
            details_expanded=bool(data.get("details_expanded", False)),
            rejected=rejected,
        )

    def save(self, state: LedgerState) -> None:
        """
        Replace the ledger file with ``state``.

        Raises:
            OSError: If the temp file cannot be written or moved into place
        """
        payload = {
            "schema_version": SCHEMA_VERSION,
            "entries": {
                source: entry.to_dict() for source, entry in state.entries.items()
            },
            "details_expanded": state.details_expanded,
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
