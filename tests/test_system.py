"""
Tests for CPU bitness and connectivity checks.
"""

import httpx
import pytest
from unittest.mock import MagicMock, patch

from store.system import bits_for_machine, check_internet, system_bits


class TestBits:

    @pytest.mark.unit
    @pytest.mark.parametrize("machine,bits", [
        ("aarch64", 64), ("x86_64", 64), ("armv7l", 32), ("armv6l", 32), ("sparc", None),
    ])
    def test_bits_for_machine(self, machine, bits):
        assert bits_for_machine(machine) == bits

    @pytest.mark.unit
    def test_getconf_wins(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=0, stdout="32\n", stderr="")
        with patch("platform.machine", return_value="aarch64"):
            assert system_bits() == 32

    @pytest.mark.unit
    def test_falls_back_to_machine(self, mock_subprocess):
        mock_subprocess.side_effect = OSError("no getconf")
        with patch("platform.machine", return_value="armv7l"):
            assert system_bits() == 32


class TestCheckInternet:

    @pytest.mark.unit
    def test_online(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        assert check_internet("https://github.com", client=client) is True

    @pytest.mark.unit
    def test_server_error_counts_as_offline(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        assert check_internet("https://github.com", client=client) is False

    @pytest.mark.unit
    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        assert check_internet("https://github.com", client=client) is False

    @pytest.mark.unit
    def test_uses_head(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            return httpx.Response(200)

        check_internet("https://github.com", client=httpx.Client(transport=httpx.MockTransport(handler)))
        assert methods == ["HEAD"]
