"""
Tests for AppManager.

App scripts are real bash scripts run in a temporary pi-apps directory;
package commands come from FakeBackend.
"""

import io

import pytest

from common.exceptions import (
    AppActionError, AppNotFoundError, AppStateError, BatchActionError,
    InternetError, ScriptNotFoundError,
)
from store.app_catalog import AppCatalog
from store.app_status import AppStatus, get_app_status, set_app_status
from store.installer import Action, AppManager

from conftest import FakeBackend, write_app


@pytest.fixture
def manager(store_config, fake_backend):
    return AppManager(
        store_config,
        catalog=AppCatalog(store_config, bits=64),
        backend=fake_backend,
        output=io.StringIO(),
        internet_check=lambda: True,
    )


def _log(store_config, name):
    return (store_config.logs_dir / name).read_text()


class TestAction:

    @pytest.mark.unit
    def test_wording(self):
        assert Action.INSTALL.gerund == "installing"
        assert Action.UNINSTALL.past == "uninstalled"
        assert Action.UPDATE.gerund == "updating"
        assert Action.REFRESH.past == "refreshed"


@pytest.mark.integration
class TestScriptApps:

    def test_install_success(self, manager, store_config, make_app):
        make_app("Zoom")
        assert manager.install("Zoom") is True

        assert get_app_status("Zoom", store_config) == "installed"
        log = _log(store_config, "install-success-Zoom.log")
        assert log.startswith("OS: ")
        assert "Installing Zoom...\n" in log
        assert "installed\n" in log
        assert "Installed Zoom successfully." in log
        assert not (store_config.logs_dir / "install-incomplete-Zoom.log").exists()
        assert "installed" in manager.output.getvalue()

    def test_script_environment(self, manager, store_config, make_app):
        make_app("Zoom", install='#!/bin/bash\necho "app=$app"\necho "dir=$PI_APPS_DIR"\npwd\n')
        manager.install("Zoom")

        log = _log(store_config, "install-success-Zoom.log")
        assert "app=Zoom" in log
        assert f"dir={store_config.directory}" in log
        assert str(store_config.app_dir("Zoom")) in log

    def test_escape_codes_kept_on_terminal_only(self, manager, store_config, make_app):
        make_app("Zoom", install="#!/bin/bash\nprintf '\\033[31mred\\033[0m\\n'\n")
        manager.install("Zoom")

        assert "\x1b[31mred" in manager.output.getvalue()
        log = _log(store_config, "install-success-Zoom.log")
        assert "red" in log
        assert "\x1b" not in log

    def test_internet_failure_marks_failed(self, manager, store_config, make_app):
        make_app("Zoom", install="#!/bin/bash\necho 'Could not resolve host: github.com'\nexit 1\n")

        with pytest.raises(AppActionError) as exc_info:
            manager.install("Zoom")

        error = exc_info.value
        assert error.exit_code == 1
        assert error.error_type == "internet"
        assert error.captions
        assert error.log_path.endswith("install-fail-Zoom.log")
        assert get_app_status("Zoom", store_config) == "failed"

        log = _log(store_config, "install-fail-Zoom.log")
        assert "Failed to install Zoom!" in log
        assert "Need help? Copy the ENTIRE terminal output" in log

    def test_unknown_failure_marks_corrupted(self, manager, store_config, make_app):
        make_app("Zoom", install="#!/bin/bash\necho 'make: *** [all] Error 2'\nexit 3\n")

        with pytest.raises(AppActionError) as exc_info:
            manager.install("Zoom")

        assert exc_info.value.exit_code == 3
        assert exc_info.value.error_type == "unknown"
        assert get_app_status("Zoom", store_config) == "corrupted"

    def test_log_name_numbered_when_taken(self, manager, store_config, make_app):
        make_app("Zoom")
        (store_config.logs_dir / "install-incomplete-Zoom.log").write_text("interrupted\n")

        manager.install("Zoom")
        assert (store_config.logs_dir / "install-success-Zoom.log1").is_file()
        assert (store_config.logs_dir / "install-incomplete-Zoom.log").is_file()

    def test_uninstall_removes_status(self, manager, store_config, make_app):
        make_app("Zoom")
        set_app_status("Zoom", AppStatus.INSTALLED, store_config)

        assert manager.uninstall("Zoom") is True
        assert not (store_config.status_dir / "Zoom").exists()
        assert "removed" in _log(store_config, "uninstall-success-Zoom.log")

    def test_corrupted_app_can_be_uninstalled(self, manager, store_config, make_app):
        make_app("Zoom")
        set_app_status("Zoom", AppStatus.CORRUPTED, store_config)
        assert manager.uninstall("Zoom") is True

    def test_disabled_app_is_skipped(self, manager, store_config, make_app):
        make_app("Zoom")
        set_app_status("Zoom", AppStatus.DISABLED, store_config)

        assert manager.install("Zoom") is False
        assert list(store_config.logs_dir.iterdir()) == []
        assert "IT IS DISABLED" in manager.output.getvalue()

    def test_offline_install_refused(self, store_config, make_app, fake_backend):
        make_app("Zoom")
        manager = AppManager(
            store_config,
            catalog=AppCatalog(store_config, bits=64),
            backend=fake_backend,
            output=io.StringIO(),
            internet_check=lambda: False,
        )
        with pytest.raises(InternetError):
            manager.install("Zoom")
        assert get_app_status("Zoom", store_config) == "uninstalled"

    def test_state_errors(self, manager, store_config, make_app):
        make_app("Zoom")
        with pytest.raises(AppStateError):
            manager.uninstall("Zoom")
        set_app_status("Zoom", AppStatus.INSTALLED, store_config)
        with pytest.raises(AppStateError):
            manager.install("Zoom")

    def test_missing_app(self, manager):
        with pytest.raises(AppNotFoundError):
            manager.manage_app(Action.INSTALL, "Nope")

    def test_no_script_for_this_cpu(self, store_config, make_app, fake_backend):
        app_dir = make_app("Only64")
        (app_dir / "install").rename(app_dir / "install-64")
        manager = AppManager(
            store_config,
            catalog=AppCatalog(store_config, bits=32),
            backend=fake_backend,
            output=io.StringIO(),
            internet_check=lambda: True,
        )

        with pytest.raises(ScriptNotFoundError):
            manager.install("Only64")

        log = _log(store_config, "install-fail-Only64.log")
        assert "WARNING: Only64 is only available for 64-bit systems." in log
        assert not (store_config.logs_dir / "install-incomplete-Only64.log").exists()

    def test_progress_callback(self, manager, make_app):
        make_app("Zoom")
        seen = []
        manager.set_progress_callback(lambda percent, message: seen.append(percent))
        manager.install("Zoom")
        assert seen[0] == 5
        assert seen[-1] == 100


@pytest.mark.integration
class TestPackageApps:

    def test_install_and_uninstall(self, manager, store_config, make_app, fake_backend):
        make_app("VLC", packages="vlc")

        manager.install("VLC")
        assert fake_backend.commands == [["install", "vlc"]]
        assert get_app_status("VLC", store_config) == "installed"
        assert "install vlc" in _log(store_config, "install-success-VLC.log")

        manager.uninstall("VLC")
        assert fake_backend.commands[-1] == ["remove", "vlc"]
        assert get_app_status("VLC", store_config) == "uninstalled"

    def test_failure_refreshes_status(self, store_config, make_app):
        make_app("VLC", packages="vlc")
        backend = FakeBackend(available=["vlc"], succeed=False)
        manager = AppManager(
            store_config,
            catalog=AppCatalog(store_config, bits=64),
            backend=backend,
            output=io.StringIO(),
            internet_check=lambda: True,
        )

        with pytest.raises(AppActionError) as exc_info:
            manager.install("VLC")

        assert exc_info.value.exit_code == 100
        assert exc_info.value.error_type == "system"
        assert get_app_status("VLC", store_config) == "uninstalled"

    def test_unavailable_packages(self, manager, make_app):
        make_app("Broken", packages="not-a-package")
        with pytest.raises(ScriptNotFoundError):
            manager.install("Broken")


@pytest.mark.integration
class TestUpdateAndRefresh:

    def test_update_script_used_when_present(self, manager, store_config, make_app):
        make_app("Zoom", extra={"update": '#!/bin/bash\necho "updating with $script_input"\n'})
        set_app_status("Zoom", AppStatus.INSTALLED, store_config)

        manager.update("Zoom")
        assert "updating with update" in _log(store_config, "update-success-Zoom.log")
        assert get_app_status("Zoom", store_config) == "installed"

    def test_update_without_script_reinstalls(self, manager, store_config, make_app):
        make_app("Zoom")
        set_app_status("Zoom", AppStatus.INSTALLED, store_config)

        manager.update("Zoom")
        assert (store_config.logs_dir / "uninstall-success-Zoom.log").is_file()
        assert (store_config.logs_dir / "install-success-Zoom.log").is_file()
        assert get_app_status("Zoom", store_config) == "installed"

    def test_refresh_copies_files(self, manager, store_config, make_app):
        make_app("Zoom")
        write_app(store_config.update_dir, "Zoom", description="Fresh description")

        assert manager.refresh("Zoom") is False
        assert store_config.app_dir("Zoom").joinpath("description").read_text() == "Fresh description\n"

    def test_refresh_reinstalls_changed_app(self, manager, store_config, make_app):
        make_app("Zoom")
        set_app_status("Zoom", AppStatus.INSTALLED, store_config)
        write_app(store_config.update_dir, "Zoom", install="#!/bin/bash\necho version two\n")

        assert manager.refresh("Zoom") is True
        assert "version two" in _log(store_config, "install-success-Zoom.log")
        assert get_app_status("Zoom", store_config) == "installed"

    def test_refresh_missing_in_clone(self, manager, make_app):
        make_app("Zoom")
        with pytest.raises(AppNotFoundError):
            manager.refresh("Zoom")


@pytest.mark.integration
class TestBatches:

    def test_validate_apps(self, manager, store_config, make_app):
        make_app("A")
        make_app("B")
        set_app_status("B", AppStatus.INSTALLED, store_config)
        assert manager.validate_apps(Action.INSTALL, ["A", "B", "Missing", " "]) == ["A"]
        assert manager.validate_apps(Action.UNINSTALL, ["A", "B"]) == ["B"]

    def test_multi_install_collects_failures(self, manager, store_config, make_app):
        make_app("Good")
        make_app("Bad", install="#!/bin/bash\nexit 1\n")
        make_app("AlsoGood")

        with pytest.raises(BatchActionError) as exc_info:
            manager.multi_install(["Good", "Bad", "AlsoGood"])

        assert exc_info.value.failed_apps == ["Bad"]
        assert get_app_status("Good", store_config) == "installed"
        assert get_app_status("AlsoGood", store_config) == "installed"

    def test_multi_uninstall(self, manager, store_config, make_app):
        make_app("A")
        make_app("B")
        set_app_status("A", AppStatus.INSTALLED, store_config)
        set_app_status("B", AppStatus.INSTALLED, store_config)
        assert manager.multi_uninstall(["A", "B"]) == ["A", "B"]

    def test_manage_app_rejects_refresh(self, manager, make_app):
        make_app("Zoom")
        with pytest.raises(ValueError):
            manager.manage_app(Action.REFRESH, "Zoom")

    def test_multi_refresh_copies_without_running_scripts(self, manager, store_config, make_app):
        make_app("Zoom")
        set_app_status("Zoom", AppStatus.INSTALLED, store_config)
        write_app(store_config.update_dir, "Zoom", description="Fresh description")
        write_app(store_config.update_dir, "Fresh")

        assert manager.multi_manage(Action.REFRESH, ["Zoom", "Fresh"]) == ["Zoom", "Fresh"]

        assert list(store_config.logs_dir.iterdir()) == []
        assert get_app_status("Zoom", store_config) == "installed"
        assert store_config.app_dir("Zoom").joinpath("description").read_text() == "Fresh description\n"
        assert store_config.app_dir("Fresh").is_dir()

    def test_remove_deprecated_app(self, manager, store_config, make_app):
        make_app("Old")
        set_app_status("Old", AppStatus.INSTALLED, store_config)

        assert manager.remove_deprecated_app("Old", removal_bits=32) is False
        assert manager.remove_deprecated_app("Old") is True
        assert not store_config.app_dir("Old").exists()
        assert not (store_config.status_dir / "Old").exists()
        assert (store_config.logs_dir / "uninstall-success-Old.log").is_file()
