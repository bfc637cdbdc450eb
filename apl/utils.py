"""Utility functions for file I/O, timestamps and name matching."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar('T', bound=BaseModel)
logger = logging.getLogger('apl.utils')


def load_json(
    path: Path | str,
    schema: type[T] | None = None,
) -> Any | T:
    """
    Load JSON file with optional schema validation.

    Args:
        path: Path to JSON file (str or Path object)
        schema: Optional Pydantic model to validate against

    Returns:
        Parsed JSON (validated if schema provided)

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If JSON is malformed
        ValueError: If schema validation fails

    Example:
        from apl.schemas import LeagueConfig
        config = load_json('data/league_config.json', schema=LeagueConfig)
    """
    path = Path(path)

    logger.debug(f'Loading JSON from: {path}')

    if not path.exists():
        logger.error(f'File not found: {path}')
        raise FileNotFoundError(f'File not found: {path}')

    try:
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f'Invalid JSON in {path}: {e.msg} at position {e.pos}')
        raise json.JSONDecodeError(f'Invalid JSON in {path}: {e.msg}', e.doc, e.pos) from e

    if schema:
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            logger.error(f'Schema validation failed for {path}: {e}')
            raise ValueError(f'Schema validation failed for {path}:\n{e}') from e

    return data


def save_json(
    path: Path | str,
    data: Any,
    indent: int = 2,
    create_dirs: bool = True,
) -> None:
    """
    Save data as a JSON file.

    The file is written to a sibling temp file first and moved into place,
    so readers never observe a half-written document.

    Args:
        path: Path to write to (str or Path object)
        data: Data to serialize (JSON-serializable or Pydantic model)
        indent: Indentation level (default: 2 spaces)
        create_dirs: Create parent directories if they don't exist (default: True)

    Raises:
        TypeError: If data is not JSON-serializable
        OSError: If file cannot be written
    """
    path = Path(path)

    if create_dirs:
        path.parent.mkdir(parents=True, exist_ok=True)

    json_data = to_document(data) if isinstance(data, BaseModel) else data

    tmp_path = path.with_name(f'.{path.name}.tmp')
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(json_data, f, indent=indent, ensure_ascii=False)
        tmp_path.replace(path)
        logger.debug(f'Saved JSON to: {path}')
    except TypeError as e:
        tmp_path.unlink(missing_ok=True)
        logger.error(f'Data is not JSON-serializable: {e}')
        raise TypeError(f'Data is not JSON-serializable: {e}') from e


def to_document(model: BaseModel) -> dict[str, Any]:
    """Dump a pydantic model the way documents are stored (camelCase, JSON types)."""
    return model.model_dump(by_alias=True, mode='json')


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return utc_now().isoformat()


def normalize_name(name: str | None) -> str:
    """Match key for player names: trimmed and lowercased."""
    return (name or '').strip().lower()
