"""
Smoke tests for speaker discovery
"""

import pytest
from unittest.mock import Mock, patch

from soundtouch_cloud.discovery import SoundTouchListener, discover_speakers, SERVICE_TYPE
from soundtouch_cloud.models import DiscoveryResult


class TestDiscoveryResult:
    """DiscoveryResult properties"""

    def test_is_complete(self):
        assert DiscoveryResult(ip="192.168.1.100", port=8090, instance_name="Kitchen").is_complete is True
        assert DiscoveryResult(port=8090, instance_name="Kitchen").is_complete is False
        assert DiscoveryResult(ip="192.168.1.100", instance_name="Kitchen").is_complete is False

    def test_device_id_prefers_mac(self):
        result = DiscoveryResult(ip="192.168.1.100", port=8090, instance_name="Kitchen",
                                 txt_records={"MAC": "AABBCCDDEEFF"})
        assert result.device_id == "AABBCCDDEEFF"
        assert DiscoveryResult(instance_name="Kitchen").device_id == "Kitchen"

    def test_to_descriptor(self):
        result = DiscoveryResult(ip="192.168.1.100", port=8090, instance_name="Kitchen",
                                 txt_records={"MAC": "AABB"})
        descriptor = result.to_descriptor("acct")

        assert descriptor.id == "AABB"
        assert descriptor.name == "Kitchen"
        assert descriptor.host == "192.168.1.100"
        assert descriptor.account_id == "acct"


class TestSoundTouchListener:
    """Listener bookkeeping"""

    def test_add_service_records_result(self):
        info = Mock()
        info.parsed_addresses.return_value = ["192.168.1.50"]
        info.port = 8090
        info.properties = {b"MAC": b"AABB", b"": b"ignored"}
        zeroconf = Mock()
        zeroconf.get_service_info.return_value = info

        listener = SoundTouchListener()
        listener.add_service(zeroconf, SERVICE_TYPE, f"Kitchen.{SERVICE_TYPE}")

        [result] = listener.snapshot()
        assert result.ip == "192.168.1.50"
        assert result.instance_name == "Kitchen"
        assert result.txt_records == {"MAC": "AABB"}

    def test_add_service_without_info(self):
        zeroconf = Mock()
        zeroconf.get_service_info.return_value = None

        listener = SoundTouchListener()
        listener.add_service(zeroconf, SERVICE_TYPE, f"Kitchen.{SERVICE_TYPE}")
        assert listener.snapshot() == []

    def test_wait_returns_on_timeout(self):
        listener = SoundTouchListener()
        listener.wait_for_accumulation(0.05)
        assert listener.snapshot() == []


class TestDiscoverSpeakers:
    """discover_speakers wiring"""

    @patch('soundtouch_cloud.discovery.ServiceBrowser')
    @patch('soundtouch_cloud.discovery.Zeroconf')
    def test_only_complete_results_returned(self, mock_zeroconf, mock_browser):
        mock_listener = Mock()
        mock_listener.snapshot.return_value = [
            DiscoveryResult(ip="192.168.1.100", port=8090, instance_name="Kitchen"),
            DiscoveryResult(instance_name="Broken"),
        ]

        with patch('soundtouch_cloud.discovery.SoundTouchListener', return_value=mock_listener):
            results = discover_speakers(timeout_s=0.1)

        assert [r.instance_name for r in results] == ["Kitchen"]
        mock_browser.return_value.cancel.assert_called_once()
        mock_zeroconf.return_value.close.assert_called_once()

    @patch('soundtouch_cloud.discovery.Zeroconf', side_effect=OSError("no multicast"))
    def test_network_failure_returns_empty(self, mock_zeroconf):
        assert discover_speakers(timeout_s=0.1) == []
