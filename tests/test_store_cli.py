"""
Tests for the pi-apps command line.
"""

import io
import json

import pytest

from store import cli
from store.app_catalog import AppCatalog
from store.app_status import AppStatus, get_app_status, set_app_status
from store.installer import AppManager


@pytest.fixture
def env(monkeypatch, store_config):
    monkeypatch.setenv("PI_APPS_DIR", str(store_config.directory))
    monkeypatch.setenv("PI_APPS_PACKAGE_MANAGER", "apt")
    monkeypatch.setenv("PI_APPS_UNSUPPORTED_DELAY", "0")
    return store_config


@pytest.fixture
def fake_manager(monkeypatch, env, fake_backend):
    manager = AppManager(
        env,
        catalog=AppCatalog(env, bits=64),
        backend=fake_backend,
        output=io.StringIO(),
        internet_check=lambda: True,
    )
    monkeypatch.setattr(cli, "get_manager", lambda: manager)
    return manager


class TestParser:

    @pytest.mark.unit
    def test_no_command_prints_help(self, env, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out

    @pytest.mark.unit
    def test_create_requires_description(self, env):
        with pytest.raises(SystemExit):
            cli.main(["create", "App"])


class TestQueries:

    @pytest.mark.unit
    def test_list(self, env, make_app, capsys):
        make_app("Zoom")
        make_app("VLC", packages="vlc")
        assert cli.main(["list"]) == 0
        assert capsys.readouterr().out.splitlines() == ["VLC", "Zoom"]

    @pytest.mark.unit
    def test_list_bad_filter(self, env, capsys):
        assert cli.main(["list", "nonsense"]) == 1
        assert "Valid filters" in capsys.readouterr().err

    @pytest.mark.unit
    def test_info_json(self, env, make_app, capsys):
        make_app("Zoom", extra={"website": "https://zoom.us\n"})
        assert cli.main(["info", "Zoom", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["name"] == "Zoom"
        assert data["website"] == "https://zoom.us"

    @pytest.mark.unit
    def test_info_missing_app(self, env, capsys):
        assert cli.main(["info", "Nope"]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    @pytest.mark.unit
    def test_status(self, env, make_app, capsys):
        make_app("Zoom")
        make_app("VLC")
        set_app_status("Zoom", AppStatus.INSTALLED, env)
        assert cli.main(["status", "Zoom"]) == 0
        assert capsys.readouterr().out == "installed\n"
        cli.main(["status", "Zoom", "VLC"])
        assert capsys.readouterr().out == "Zoom: installed\nVLC: uninstalled\n"

    @pytest.mark.unit
    def test_search_no_results(self, env, make_app, capsys):
        make_app("Zoom")
        assert cli.main(["search", "spreadsheet"]) == 0
        assert "No apps found" in capsys.readouterr().out

    @pytest.mark.unit
    def test_diagnose_json(self, env, tmp_path, capsys):
        log = tmp_path / "install-fail-Zoom.log"
        log.write_text("E: Could not get lock /var/lib/dpkg/lock-frontend\n")
        assert cli.main(["diagnose", str(log), "--json"]) == 0
        assert json.loads(capsys.readouterr().out)["error_type"] == "system"

    @pytest.mark.unit
    def test_logs(self, env, capsys):
        (env.logs_dir / "install-fail-Zoom.log").write_text("x\n")
        assert cli.main(["logs"]) == 0
        assert "Installing Zoom failed." in capsys.readouterr().out
        assert cli.main(["logs", "--delete-all"]) == 0
        assert list(env.logs_dir.iterdir()) == []


@pytest.mark.integration
class TestActions:

    def test_install_and_uninstall(self, fake_manager, env, make_app):
        make_app("Zoom")
        assert cli.main(["install", "Zoom"]) == 0
        assert get_app_status("Zoom", env) == "installed"
        assert cli.main(["uninstall", "Zoom"]) == 0
        assert get_app_status("Zoom", env) == "uninstalled"

    def test_failed_install_prints_log(self, fake_manager, env, make_app, capsys):
        make_app("Zoom", install="#!/bin/bash\nexit 1\n")
        assert cli.main(["install", "Zoom"]) == 1
        err = capsys.readouterr().err
        assert "Error: Failed to install Zoom (exit code 1)" in err
        assert "install-fail-Zoom.log" in err

    def test_multi_install_splits_newlines(self, fake_manager, env, make_app):
        make_app("A")
        make_app("B")
        assert cli.main(["multi-install", "A\nB"]) == 0
        assert get_app_status("A", env) == "installed"
        assert get_app_status("B", env) == "installed"


class TestCatalogEdits:

    @pytest.mark.unit
    def test_category(self, env, make_app):
        make_app("Zoom")
        assert cli.main(["category", "Zoom", "Office"]) == 0
        assert env.category_overrides_file.read_text() == "Zoom|Office\n"

    @pytest.mark.unit
    def test_create(self, env, capsys):
        assert cli.main(["create", "New App", "-d", "Something new", "-p", "curl", "wget"]) == 0
        install = env.app_dir("New App") / "install"
        assert "install_packages curl wget" in install.read_text()

    @pytest.mark.unit
    def test_create_with_version(self, env, capsys):
        assert cli.main(["create", "Pinned", "-d", "desc", "--app-version", "2.0"]) == 0
        assert "version=2.0" in (env.app_dir("Pinned") / "install").read_text()

    @pytest.mark.unit
    def test_create_existing(self, env, make_app, capsys):
        make_app("Zoom")
        assert cli.main(["create", "Zoom", "-d", "dup"]) == 1

    @pytest.mark.unit
    def test_import_folder(self, env, tmp_path, capsys):
        from conftest import write_app
        source = write_app(tmp_path / "elsewhere", "Shared")
        assert cli.main(["import", str(source)]) == 0
        assert "Imported Shared" in capsys.readouterr().out
        assert env.app_dir("Shared").is_dir()
