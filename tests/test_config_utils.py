"""Unit tests for configuration, JSON helpers and logging setup."""

import json
import logging

import pytest

from apl.config import get_config, get_data_dir, get_github_settings, get_team_size
from apl.logging_config import setup_logging
from apl.schemas import LeagueConfig, RosterPlayer
from apl.utils import load_json, normalize_name, save_json, to_document


@pytest.fixture
def reset_logging():
    yield
    root = logging.getLogger('apl')
    root.handlers = []
    root.setLevel(logging.NOTSET)


class TestConfig:
    """Tests for league configuration loading."""

    def test_repository_config(self):
        config = get_config()
        assert config.team_size == 11
        assert config.performance_tab == 'Player_Performance'

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv('APL_CONFIG', str(tmp_path / 'missing.json'))
        assert get_config() == LeagueConfig()

    def test_override_file(self, tmp_path, monkeypatch):
        path = tmp_path / 'league.json'
        path.write_text(json.dumps({'team_size': 12, 'leaderboard_weeks': 3}))
        monkeypatch.setenv('APL_CONFIG', str(path))

        assert get_team_size() == 12
        assert get_config().leaderboard_weeks == 3
        assert get_config().transfers_per_tournament == 2

    def test_unknown_key_rejected(self, tmp_path, monkeypatch):
        path = tmp_path / 'league.json'
        path.write_text(json.dumps({'squad_size': 12}))
        monkeypatch.setenv('APL_CONFIG', str(path))

        with pytest.raises(ValueError, match='Schema validation failed'):
            get_config()

    def test_env_settings(self, monkeypatch):
        monkeypatch.setenv('APL_DATA_DIR', '/srv/apl')
        monkeypatch.setenv('GITHUB_OWNER', 'apl-league')
        monkeypatch.delenv('REPO_OWNER', raising=False)
        monkeypatch.delenv('GITHUB_BRANCH', raising=False)

        assert str(get_data_dir()) == '/srv/apl'
        settings = get_github_settings()
        assert settings['owner'] == 'apl-league'
        assert settings['branch'] == 'main'


class TestJsonHelpers:
    """Tests for load_json / save_json."""

    def test_save_and_load_model(self, tmp_path):
        player = RosterPlayer(id='p1', name='Virat Kohli', role='batsman', is_captain=True)
        path = tmp_path / 'nested' / 'player.json'

        save_json(path, player)

        data = load_json(path)
        assert data['isCaptain'] is True
        assert load_json(path, schema=RosterPlayer) == player
        assert not list(path.parent.glob('.*.tmp'))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_json(tmp_path / 'nope.json')

    def test_malformed_json(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text('{"a": ')
        with pytest.raises(json.JSONDecodeError):
            load_json(path)

    def test_unserializable_data(self, tmp_path):
        path = tmp_path / 'out.json'
        with pytest.raises(TypeError):
            save_json(path, {'when': object()})
        assert not path.exists()

    def test_to_document_uses_aliases(self):
        doc = to_document(RosterPlayer(id='p1', name='A', role='bowler', is_vice_captain=True))
        assert doc['isViceCaptain'] is True
        assert 'is_vice_captain' not in doc


class TestNormalizeName:
    def test_trims_and_lowercases(self):
        assert normalize_name('  Virat KOHLI ') == 'virat kohli'

    def test_none(self):
        assert normalize_name(None) == ''


class TestLogging:
    """Tests for logging setup."""

    def test_console_only(self, tmp_path, monkeypatch, reset_logging):
        monkeypatch.setenv('APL_LOG_DIR', str(tmp_path / 'logs'))
        logger = setup_logging(level=logging.DEBUG, log_to_file=False)

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not (tmp_path / 'logs').exists()

    def test_file_handler(self, tmp_path, monkeypatch, reset_logging):
        monkeypatch.setenv('APL_LOG_DIR', str(tmp_path / 'logs'))
        logger = setup_logging()
        logging.getLogger('apl.sync').info('hello')

        assert len(logger.handlers) == 2
        files = list((tmp_path / 'logs').glob('apl_*.log'))
        assert len(files) == 1
        logger.handlers[0].flush()
        assert 'apl.sync - INFO' in files[0].read_text()

    def test_setup_replaces_handlers(self, reset_logging):
        setup_logging(log_to_file=False)
        logger = setup_logging(level=logging.WARNING, log_to_file=False)
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
