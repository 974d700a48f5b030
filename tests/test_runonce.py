"""
Tests for runonce snippets.
"""

import pytest

from common.exceptions import RunonceError
from store.runonce import has_run, runonce, script_hash


@pytest.mark.integration
class TestRunonce:

    def test_runs_once(self, store_config):
        marker = store_config.directory / "count"
        script = f'echo x >> "{marker}"'

        assert runonce(script, store_config) is True
        assert runonce(script, store_config) is False
        assert marker.read_text() == "x\n"
        assert has_run(script, store_config)

    def test_hash_recorded(self, store_config):
        runonce("true", store_config)
        hashes = store_config.runonce_hashes_file.read_text().splitlines()
        assert hashes == [script_hash("true")]

    def test_failure_not_recorded(self, store_config):
        with pytest.raises(RunonceError):
            runonce("exit 4", store_config)
        assert not has_run("exit 4", store_config)

    def test_runs_in_pi_apps_dir(self, store_config):
        runonce('pwd > where; echo "$PI_APPS_DIR" >> where', store_config)
        lines = (store_config.directory / "where").read_text().splitlines()
        assert lines == [str(store_config.directory)] * 2

    @pytest.mark.unit
    def test_hash_is_sha1(self):
        assert script_hash("") == "da39a3ee5e6b4b0d3255bfef95601890afd80709"
