"""League configuration and deployment settings."""

import logging
import os
from functools import lru_cache
from pathlib import Path

from .schemas import LeagueConfig
from .utils import load_json

logger = logging.getLogger('apl.config')

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'data' / 'league_config.json'


@lru_cache(maxsize=1)
def get_config() -> LeagueConfig:
    """
    Load league configuration from data/league_config.json.

    The path can be overridden with $APL_CONFIG. Configuration is cached
    after first load.

    Falls back to the built-in defaults when the file is missing (e.g.
    when the package is installed without the repository's data/ dir).

    Returns:
        LeagueConfig object with validated settings

    Raises:
        ValueError: If the config file has invalid structure

    Example:
        from apl.config import get_config
        config = get_config()
        print(f"Team size: {config.team_size}")
    """
    config_path = Path(os.environ.get('APL_CONFIG', DEFAULT_CONFIG_PATH))
    if not config_path.exists():
        logger.warning(f'Config file {config_path} not found, using defaults')
        return LeagueConfig()
    return load_json(config_path, schema=LeagueConfig)


def get_team_size() -> int:
    """Get the number of players in a fantasy team."""
    return get_config().team_size


def get_transfers_per_tournament() -> int:
    """Get the number of transfers a user starts a tournament with."""
    return get_config().transfers_per_tournament


def get_default_batch_size() -> int:
    """Get the default number of users processed per sync batch."""
    return get_config().default_batch_size


def clear_config_cache() -> None:
    """
    Clear the configuration cache.

    Use this if the config file is modified during runtime
    and you need to reload it.
    """
    get_config.cache_clear()


def get_data_dir() -> Path:
    """Root directory of the JSON file store."""
    return Path(os.environ.get('APL_DATA_DIR', 'data/store'))


def get_sheet_id() -> str | None:
    """Default spreadsheet id holding the performance and cap tabs."""
    return os.environ.get('PLAYER_STATS_SHEET_ID')


def get_sheets_api_key() -> str | None:
    return os.environ.get('GOOGLE_SHEETS_API_KEY')


def get_rapid_api_key() -> str | None:
    return os.environ.get('RAPID_API_KEY')


def get_cron_secret() -> str | None:
    """Bearer token accepted by the scheduled match refresh job."""
    return os.environ.get('CRON_SECRET')


def get_github_settings() -> dict[str, str | None]:
    """GitHub repository used as the document store by serverless handlers."""
    return {
        'owner': os.environ.get('REPO_OWNER') or os.environ.get('GITHUB_OWNER'),
        'repo': os.environ.get('GITHUB_REPO'),
        'branch': os.environ.get('GITHUB_BRANCH', 'main'),
        'token': os.environ.get('GITHUB_TOKEN'),
    }
