"""
Append-only record storage for draft rooms.

Uses JSONL (JSON Lines): one file per room, each line a complete JSON
object {"kind": ..., "data": ...}. Bids and auction results are written as
they happen; phase changes and resets are written as markers so the log
reads as the room's history.
"""

import csv
import json
import logging
from pathlib import Path
from typing import List, Optional

from .draft_event import AuctionResult, Bid
from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

KIND_BID = 'bid'
KIND_RESULT = 'result'
KIND_PHASE = 'phase'
KIND_RESET = 'reset'


class DraftEventStore:
    """Append-only log of one room's bids, results and markers."""

    def __init__(self, filepath: Path):
        """
        Initialize event store.

        Args:
            filepath: Path to JSONL file for record storage
        """
        self.filepath = Path(filepath)
        self.filepath.parent.mkdir(parents=True, exist_ok=True)

    def append_record(self, kind: str, data: dict) -> None:
        """
        Append a single record to the log.

        Raises:
            PersistenceError: If the write fails
        """
        line = json.dumps({'kind': kind, 'data': data})
        try:
            with open(self.filepath, 'a', encoding='utf-8') as f:
                f.write(line + '\n')
        except OSError as e:
            raise PersistenceError(f"Failed to append {kind} record to {self.filepath}: {e}") from e

        logger.debug(f"Appended {kind} record to {self.filepath.name}")

    def append_bid(self, bid: Bid) -> None:
        self.append_record(KIND_BID, bid.to_dict())

    def append_result(self, result: AuctionResult) -> None:
        self.append_record(KIND_RESULT, result.to_dict())

    def load_records(self, kind: Optional[str] = None) -> List[dict]:
        """
        Load records from file, optionally filtered by kind.

        Returns:
            List of {"kind", "data"} dicts in write order; empty if the file
            doesn't exist. Records after the last reset marker only.
        """
        if not self.filepath.exists():
            logger.debug(f"Event store file does not exist: {self.filepath}")
            return []

        records = []
        with open(self.filepath, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    record = json.loads(line)
                    record_kind = record['kind']
                except (json.JSONDecodeError, KeyError, TypeError) as e:
                    logger.error(
                        f"Failed to parse record at line {line_num}: {e}\n"
                        f"Line content: {line}"
                    )
                    continue

                if record_kind == KIND_RESET:
                    records = []
                records.append(record)

        if kind is not None:
            records = [r for r in records if r['kind'] == kind]

        logger.debug(f"Loaded {len(records)} records from {self.filepath}")
        return records

    def load_bids(self) -> List[Bid]:
        return [Bid.from_dict(r['data']) for r in self.load_records(KIND_BID)]

    def load_results(self) -> List[AuctionResult]:
        return [AuctionResult.from_dict(r['data']) for r in self.load_records(KIND_RESULT)]

    def get_record_count(self) -> int:
        """Number of non-empty lines in the file (reset markers included)."""
        if not self.filepath.exists():
            return 0

        with open(self.filepath, 'r', encoding='utf-8') as f:
            return sum(1 for line in f if line.strip())

    def export_to_csv(self, output_path: Path) -> int:
        """
        Export auction results to CSV format.

        Args:
            output_path: Path for CSV output file

        Returns:
            Number of results written
        """
        results = self.load_results()
        if not results:
            logger.warning("No results to export")
            return 0

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow([
                'order', 'target_id', 'winner_team_id',
                'final_price', 'is_auto_assignment', 'timestamp'
            ])

            for result in results:
                writer.writerow([
                    result.order,
                    result.target_id,
                    result.winner_team_id,
                    result.final_price,
                    result.is_auto_assignment,
                    result.timestamp.isoformat()
                ])

        logger.info(f"Exported {len(results)} results to {output_path}")
        return len(results)

    def clear(self) -> None:
        """
        Delete the log file.

        WARNING: This deletes the whole history. Use with caution.
        """
        if self.filepath.exists():
            self.filepath.unlink()
            logger.warning(f"Cleared event store: {self.filepath}")


def create_room_filepath(base_dir: Path, room_id: str) -> Path:
    """
    Generate the event store path for a room.

    Args:
        base_dir: Base directory for event stores
        room_id: Room identifier

    Returns:
        Path for event store file
    """
    return Path(base_dir) / f"draft_{room_id}.jsonl"
