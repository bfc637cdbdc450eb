"""Performance data ingestion from the stats spreadsheet.

The spreadsheet has a header row; columns are located by header name, so
reordering or adding columns in the sheet doesn't break ingestion.
"""

import logging
import re
from collections import OrderedDict
from pathlib import Path
from typing import Any

import openpyxl
import polars as pl
import requests

from .config import get_config, get_sheets_api_key
from .constants import COL_MATCH, COL_PLAYER, COL_TEAM, COL_TOTAL_POINTS, COL_WEEK
from .errors import SheetError
from .models import PerformanceRow

logger = logging.getLogger('apl.sheets')

SHEETS_API_BASE = 'https://sheets.googleapis.com/v4/spreadsheets'

PERFORMANCE_SCHEMA = {
    'week': pl.Int64,
    'match_id': pl.Utf8,
    'player_name': pl.Utf8,
    'team': pl.Utf8,
    'total_points': pl.Float64,
}

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')
_LEADING_FLOAT = re.compile(r'^\s*([+-]?(\d+(\.\d*)?|\.\d+))')


class SheetsClient:
    """Read-only client for the Google Sheets values API."""

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout: int = 30,
    ):
        self.api_key = api_key or get_sheets_api_key()
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_tab(self, sheet_id: str, tab: str, cell_range: str) -> list[list[Any]]:
        """
        Fetch the raw value grid of a tab.

        Args:
            sheet_id: Spreadsheet id
            tab: Tab name (e.g., 'Player_Performance')
            cell_range: A1 range within the tab (e.g., 'A1:V1000')

        Returns:
            List of rows, header row first

        Raises:
            SheetError: If the request fails, returns a non-2xx status, or the
                range holds no values
        """
        url = f'{SHEETS_API_BASE}/{sheet_id}/values/{tab}!{cell_range}'
        params = {'key': self.api_key} if self.api_key else {}

        logger.info(f'Fetching {tab}!{cell_range} from sheet {sheet_id}')
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SheetError(f'Failed to fetch sheet {sheet_id}: {e}') from e

        if not response.ok:
            raise SheetError(
                f'Sheets API returned {response.status_code} for {sheet_id}: {response.text}'
            )
        values = response.json().get('values') or []
        if not values:
            raise SheetError(f'No data found in {tab}!{cell_range} of sheet {sheet_id}')
        return values


def rows_to_records(values: list[list[Any]]) -> list[dict[str, Any]]:
    """
    Map a value grid to dicts keyed by the (trimmed) header row.

    Short rows are padded with None, as the Sheets API drops trailing
    empty cells.
    """
    if not values:
        return []

    headers = [str(h).strip() if h is not None else '' for h in values[0]]
    records = []
    for row in values[1:]:
        records.append(
            {header: (row[i] if i < len(row) else None) for i, header in enumerate(headers)}
        )
    return records


def load_workbook_records(path: Path | str, tab: str) -> list[dict[str, Any]]:
    """Read a tab of an .xlsx export of the stats sheet into header-keyed records."""
    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        if tab not in wb.sheetnames:
            raise SheetError(f'Tab {tab!r} not found in {path}')
        values = [list(row) for row in wb[tab].iter_rows(values_only=True)]
    finally:
        wb.close()
    return rows_to_records(values)


def parse_int(value: Any) -> int | None:
    """Leading integer of a cell value ('3', 3, 3.0, ' 3 ' -> 3); None if absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def parse_points(value: Any) -> float:
    """Leading number of a cell value, 0 when it has none."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_FLOAT.match(str(value))
    return float(match.group(1)) if match else 0.0


def _cell_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip() if value is not None else ''


def parse_performance_rows(records: list[dict[str, Any]]) -> list[PerformanceRow]:
    """
    Convert sheet records to PerformanceRow objects.

    Rows without a week, match or player, or whose week isn't a positive
    integer, are skipped.
    """
    rows = []
    skipped = 0
    for record in records:
        week = parse_int(record.get(COL_WEEK))
        match_id = _cell_text(record.get(COL_MATCH))
        player_name = _cell_text(record.get(COL_PLAYER))

        if not week or week < 1 or not match_id or not player_name:
            skipped += 1
            continue

        rows.append(
            PerformanceRow(
                week=week,
                match_id=match_id,
                player_name=player_name,
                team=_cell_text(record.get(COL_TEAM)),
                total_points=parse_points(record.get(COL_TOTAL_POINTS)),
            )
        )

    if skipped:
        logger.debug(f'Skipped {skipped} incomplete performance rows')
    return rows


def performance_frame(rows: list[PerformanceRow]) -> pl.DataFrame:
    """Build a DataFrame of performance rows."""
    return pl.DataFrame(
        {
            'week': [r.week for r in rows],
            'match_id': [r.match_id for r in rows],
            'player_name': [r.player_name for r in rows],
            'team': [r.team for r in rows],
            'total_points': [r.total_points for r in rows],
        },
        schema=PERFORMANCE_SCHEMA,
    )


def weeks_in(frame: pl.DataFrame) -> list[int]:
    """Sorted distinct week numbers present in the frame."""
    return frame.get_column('week').unique().sort().to_list()


def rows_for_week(frame: pl.DataFrame, week: int) -> list[PerformanceRow]:
    """Rows of one week, in sheet order."""
    week_frame = frame.filter(pl.col('week') == week)
    return [PerformanceRow(**record) for record in week_frame.iter_rows(named=True)]


def player_week_totals(frame: pl.DataFrame) -> pl.DataFrame:
    """Per-player totals for each week: points summed, matches counted."""
    return (
        frame.group_by(['week', 'player_name'], maintain_order=True)
        .agg(
            pl.col('total_points').sum().alias('total_points'),
            pl.col('match_id').n_unique().alias('matches'),
        )
        .sort(['week', 'total_points'], descending=[False, True], maintain_order=True)
    )


def group_by_week(rows: list[PerformanceRow]) -> 'OrderedDict[int, list[PerformanceRow]]':
    """Group rows by week, keeping first-seen week order."""
    groups: OrderedDict[int, list[PerformanceRow]] = OrderedDict()
    for row in rows:
        groups.setdefault(row.week, []).append(row)
    return groups


def group_by_match(rows: list[PerformanceRow]) -> 'OrderedDict[str, list[PerformanceRow]]':
    """Group rows by match id, keeping first-seen match order."""
    groups: OrderedDict[str, list[PerformanceRow]] = OrderedDict()
    for row in rows:
        groups.setdefault(row.match_id, []).append(row)
    return groups


def fetch_performance_rows(
    sheet_id: str, week: int | None = None, client: SheetsClient | None = None
) -> list[PerformanceRow]:
    """Fetch and parse the performance tab, optionally restricted to one week."""
    config = get_config()
    client = client or SheetsClient()
    values = client.fetch_tab(sheet_id, config.performance_tab, config.performance_range)
    rows = parse_performance_rows(rows_to_records(values))
    logger.info(f'Fetched {len(rows)} performance rows from sheet {sheet_id}')

    if week is not None:
        rows = rows_for_week(performance_frame(rows), week)
    return rows


def fetch_cap_records(sheet_id: str, client: SheetsClient | None = None) -> list[dict[str, Any]]:
    """Fetch the cap points tab as header-keyed records."""
    config = get_config()
    client = client or SheetsClient()
    values = client.fetch_tab(sheet_id, config.cap_points_tab, config.cap_points_range)
    return rows_to_records(values)
