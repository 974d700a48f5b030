"""
Tests for the app scaffolder and its templates.
"""

import os
import stat

import pytest

from common.exceptions import AppExistsError, TemplateNotFoundError, TemplateRenderError
from store.app_status import AppType, app_type
from store.createapp import AppScaffolder, TemplateLoader


@pytest.fixture
def scaffolder(store_config):
    return AppScaffolder(store_config, TemplateLoader())


class TestTemplateLoader:

    @pytest.mark.unit
    def test_packaged_templates_render(self):
        text = TemplateLoader().render("packages.j2", packages=["vlc", "mpv"])
        assert text == "vlc mpv\n"

    @pytest.mark.unit
    def test_user_templates_take_priority(self, tmp_path):
        (tmp_path / "packages.j2").write_text("custom {{ packages | length }}\n")
        loader = TemplateLoader(additional_paths=[tmp_path])
        assert loader.render("packages.j2", packages=["a", "b"]) == "custom 2\n"

    @pytest.mark.unit
    def test_missing_template(self):
        with pytest.raises(TemplateNotFoundError):
            TemplateLoader().render("nope.j2")

    @pytest.mark.unit
    def test_render_error(self, tmp_path):
        (tmp_path / "broken.j2").write_text("{{ missing.attribute }}\n")
        with pytest.raises(TemplateRenderError):
            TemplateLoader(additional_paths=[tmp_path]).render("broken.j2")


class TestAppScaffolder:

    @pytest.mark.unit
    def test_standard_app(self, scaffolder, store_config):
        app_dir = scaffolder.create(
            "My App",
            "Does things\nA longer explanation.",
            website="https://example.org",
            credits="Someone",
            packages=["curl"],
        )

        assert app_dir == store_config.app_dir("My App")
        assert (app_dir / "description").read_text() == "Does things\nA longer explanation.\n"
        assert (app_dir / "website").read_text() == "https://example.org\n"
        assert (app_dir / "credits").read_text() == "Someone\n"

        install = (app_dir / "install").read_text()
        assert install.startswith("#!/bin/bash\n")
        assert "git_clone https://example.org" in install
        assert "install_packages curl" in install
        assert "purge_packages" in (app_dir / "uninstall").read_text()
        assert os.stat(app_dir / "install").st_mode & stat.S_IXUSR
        assert app_type("My App", store_config) == AppType.STANDARD

    @pytest.mark.unit
    def test_split_compat(self, scaffolder):
        app_dir = scaffolder.create("Split", "desc", compat="32-and-64")
        assert (app_dir / "install-32").is_file()
        assert (app_dir / "install-64").is_file()
        assert not (app_dir / "install").exists()

    @pytest.mark.unit
    def test_version_pinned_in_install_scripts(self, scaffolder):
        app_dir = scaffolder.create("Pinned", "desc", compat="32-and-64", version=" 1.2.3 ")
        for script in ("install-32", "install-64"):
            assert "\nversion=1.2.3\n" in (app_dir / script).read_text()

        plain = scaffolder.create("Unpinned", "desc")
        assert "version=" not in (plain / "install").read_text()

    @pytest.mark.unit
    def test_package_app(self, scaffolder, store_config):
        app_dir = scaffolder.create("Player", "Plays", kind="package", packages=["vlc"])
        assert (app_dir / "packages").read_text() == "vlc\n"
        assert not (app_dir / "install").exists()
        assert app_type("Player", store_config) == AppType.PACKAGE

    @pytest.mark.unit
    def test_icon_copied(self, scaffolder, tmp_path):
        icon = tmp_path / "icon.png"
        icon.write_bytes(b"\x89PNG data")
        app_dir = scaffolder.create("Iconic", "desc", icon=icon)
        assert (app_dir / "icon-64.png").read_bytes() == b"\x89PNG data"
        assert (app_dir / "icon-24.png").read_bytes() == b"\x89PNG data"

    @pytest.mark.unit
    def test_existing_app(self, scaffolder, make_app):
        make_app("Zoom")
        with pytest.raises(AppExistsError):
            scaffolder.create("Zoom", "desc")

    @pytest.mark.unit
    @pytest.mark.parametrize("name", ["", "  ", "a/b", ".", ".."])
    def test_bad_names(self, scaffolder, name):
        with pytest.raises(ValueError):
            scaffolder.create(name, "desc")

    @pytest.mark.unit
    def test_bad_options(self, scaffolder):
        with pytest.raises(ValueError):
            scaffolder.create("X", "desc", compat="128")
        with pytest.raises(ValueError):
            scaffolder.create("X", "desc", kind="package")
        with pytest.raises(ValueError):
            scaffolder.create("X", "desc", kind="flatpak")
