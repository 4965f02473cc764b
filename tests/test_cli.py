"""Test the command line interface"""

import logging
import pytest
from click.testing import CliRunner

import demotape.config.settings as settings_module
from demotape.config.settings import Settings
from demotape.main import _status_label, cli
from demotape.storage.models import TrackView


@pytest.fixture
def cli_settings(temp_dir, monkeypatch):
    """Settings rooted in a temporary directory, installed as the global settings"""
    monkeypatch.delenv('DROPBOX_ACCESS_TOKEN', raising=False)
    settings = Settings(str(temp_dir / "missing.yaml"))
    settings.storage.document_root = str(temp_dir / "docs")
    settings.security.token_storage_path = str(temp_dir / "token.json")
    settings.logging.console_output = False
    monkeypatch.setattr(settings_module, 'settings', settings)
    yield settings
    for handler in logging.getLogger().handlers[:]:
        handler.close()
        logging.getLogger().removeHandler(handler)


@pytest.fixture
def runner():
    return CliRunner()


class TestCli:
    """Test CLI commands that work offline"""

    def test_help_banner(self, runner, cli_settings):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Demotape" in result.output

    def test_version(self, runner, cli_settings):
        result = runner.invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert "Demotape v0.1.0" in result.output

    def test_config_show(self, runner, cli_settings, temp_dir):
        result = runner.invoke(cli, ['config', 'show'])
        assert result.exit_code == 0
        assert str(temp_dir / "docs") in result.output

    def test_playlists_empty(self, runner, cli_settings):
        result = runner.invoke(cli, ['playlists'])
        assert result.exit_code == 0
        assert "No playlists cached yet" in result.output

    def test_clean_dry_run_then_clean(self, runner, cli_settings, temp_dir):
        docs = temp_dir / "docs"
        docs.mkdir()
        (docs / "old_1.mp3").write_bytes(b"x")
        (docs / "keep.txt").write_bytes(b"x")

        result = runner.invoke(cli, ['clean', '--dry-run'])
        assert result.exit_code == 0
        assert "old_1.mp3" in result.output
        assert (docs / "old_1.mp3").exists()

        result = runner.invoke(cli, ['clean'])
        assert result.exit_code == 0
        assert "Deleted 1 files" in result.output
        assert not (docs / "old_1.mp3").exists()
        assert (docs / "keep.txt").exists()

    def test_auth_status_logged_out(self, runner, cli_settings):
        result = runner.invoke(cli, ['auth', 'status'])
        assert result.exit_code == 0
        assert "Not authenticated" in result.output


class TestStatusLabel:
    """Test track status labels in playlist listings"""

    def test_labels(self):
        assert _status_label(TrackView(name="a.mp3", index=0, download_status=None)) == "not downloaded"
        assert _status_label(TrackView(name="a.mp3", index=0, download_status=42)) == "42%"
        assert _status_label(TrackView(name="a.mp3", index=0, download_status=100)) == "downloaded"


class TestConfigSet:
    """Test persisting configuration changes"""

    def test_set_writes_config(self, runner, cli_settings, temp_dir):
        cli_settings.security.config_directory = str(temp_dir / "cfg")
        result = runner.invoke(cli, ['config', 'set', '--root-folder', '/Saved', '--concurrency', '4', '--no-purge'])
        assert result.exit_code == 0
        assert "Configuration updated" in result.output

        reloaded = Settings(str(temp_dir / "cfg" / "config.yaml"))
        assert reloaded.sync.root_folder == '/Saved'
        assert reloaded.download.concurrency == 4
        assert reloaded.sync.purge_after_delete is False

    def test_set_without_options(self, runner, cli_settings, temp_dir):
        cli_settings.security.config_directory = str(temp_dir / "cfg")
        result = runner.invoke(cli, ['config', 'set'])
        assert result.exit_code == 0
        assert "No changes specified" in result.output
        assert not (temp_dir / "cfg").exists()
