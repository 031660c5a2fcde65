"""
Tests for XML parsing and rendering
"""

import pytest
from xml.etree import ElementTree

from soundtouch_cloud.errors import MalformedInput
from soundtouch_cloud.models import (
    ContentReference, Device, NowPlaying, PlayStatus, Preset, Recent, ZoneMember,
)
from soundtouch_cloud import xml_codec

PRESETS_DOCUMENT = """
<presets>
  <preset id="3" createdOn="10" updatedOn="20">
    <ContentItem source="INTERNET_RADIO" type="station" location="http://c.example/" sourceAccount="">
      <itemName>Gamma</itemName>
    </ContentItem>
  </preset>
  <preset id="1" createdOn="1" updatedOn="2">
    <ContentItem source="TUNEIN" location="/v1/playback/station/s1" stationId="s1">
      <itemName>Alpha</itemName>
      <containerArt>http://art.example/a.png</containerArt>
    </ContentItem>
  </preset>
  <preset id="bogus">
    <ContentItem source="AUX" location="" />
  </preset>
</presets>
"""


class TestParse:
    """Parsing request bodies"""

    @pytest.mark.parametrize("document", [None, "", "   ", "<volume>", "not xml"])
    def test_malformed(self, document):
        with pytest.raises(MalformedInput):
            xml_codec.parse(document)

    def test_wrong_root(self):
        with pytest.raises(MalformedInput):
            xml_codec.parse("<bass>1</bass>", "volume")

    def test_parse_content_item(self):
        root = xml_codec.parse(
            '<ContentItem source="INTERNET_RADIO" location="http://x/" stationId="s5" sourceAccount="me">'
            '<itemName>Jazz</itemName><containerArt>http://art</containerArt></ContentItem>'
        )
        content = xml_codec.parse_content_item(root)
        assert content == ContentReference(
            source="INTERNET_RADIO", location="http://x/", station_id="s5",
            name="Jazz", type="station", art="http://art", source_account="me",
        )

    def test_parse_content_item_requires_element(self):
        with pytest.raises(MalformedInput):
            xml_codec.parse_content_item(xml_codec.parse("<select />"))

    def test_parse_presets_sorts_and_skips_bad_ids(self):
        presets = xml_codec.parse_presets(PRESETS_DOCUMENT)

        assert [p.id for p in presets] == ["1", "3"]
        assert presets[0].station_id == "s1"
        assert presets[0].art == "http://art.example/a.png"
        assert presets[1].created_on == 10
        assert presets[1].updated_on == 20

    def test_parse_presets_caps_at_six(self):
        items = "".join(
            f'<preset id="{i}"><ContentItem source="AUX" location="" /></preset>' for i in range(1, 9)
        )
        assert len(xml_codec.parse_presets(f"<presets>{items}</presets>")) == 6

    def test_parse_presets_normalizes_slot_ids(self):
        items = "".join(
            f'<preset id="{slot_id}"><ContentItem source="AUX" location=""><itemName>{slot_id}</itemName></ContentItem></preset>'
            for slot_id in ("06", "0", "7", "²", " 2 ")
        )
        presets = xml_codec.parse_presets(f"<presets>{items}</presets>")
        assert [(p.id, p.name) for p in presets] == [("2", "2"), ("6", "06")]

    def test_parse_key(self):
        assert xml_codec.parse_key('<key state="release" sender="Gabbo">PRESET_1</key>') == (
            "PRESET_1", "release", "Gabbo")

    def test_parse_key_defaults(self):
        assert xml_codec.parse_key("<key>PLAY</key>") == ("PLAY", "press", "Gabbo")

    def test_parse_int_value(self):
        assert xml_codec.parse_int_value("<volume> 42 </volume>", "volume") == 42
        with pytest.raises(MalformedInput):
            xml_codec.parse_int_value("<volume>loud</volume>", "volume")

    def test_parse_device_info(self):
        document = (
            '<info deviceID="AABBCC"><name>Kitchen</name>'
            '<networkInfo><ipAddress>10.0.0.7</ipAddress></networkInfo></info>'
        )
        assert xml_codec.parse_device_info(document) == ("AABBCC", "Kitchen", "10.0.0.7")

    def test_parse_device_info_requires_id(self):
        with pytest.raises(MalformedInput):
            xml_codec.parse_device_info("<info><name>Kitchen</name></info>")

    def test_parse_zone_members(self):
        master, members = xml_codec.parse_zone_members(
            '<zone master="M"><member role="MASTER" ipaddress="10.0.0.1">M</member>'
            '<member ipaddress="10.0.0.2">S1</member></zone>'
        )
        assert master == "M"
        assert members == [("MASTER", "10.0.0.1", "M"), ("SLAVE", "10.0.0.2", "S1")]


class TestRender:
    """Rendering responses"""

    def test_presets_render_parses_back(self):
        presets = [Preset(id="2", name="Jazz", source="INTERNET_RADIO", location="http://j/",
                          station_id="s2", created_on=5, updated_on=6)]
        assert xml_codec.parse_presets(xml_codec.render_presets(presets)) == presets

    def test_now_playing_standby(self):
        root = ElementTree.fromstring(xml_codec.render_now_playing(None, "dev1"))
        assert root.get("source") == "STANDBY"
        assert root.findtext("playStatus") == "STOP_STATE"

    def test_now_playing_playing(self):
        now_playing = NowPlaying(source="INTERNET_RADIO", location="http://j/", name="Jazz",
                                 play_status=PlayStatus.PAUSE_STATE)
        root = ElementTree.fromstring(xml_codec.render_now_playing(now_playing, "dev1"))

        assert root.get("deviceID") == "dev1"
        assert root.find("ContentItem").get("location") == "http://j/"
        assert root.findtext("ContentItem/itemName") == "Jazz"
        assert root.findtext("playStatus") == "PAUSE_STATE"

    def test_recents(self):
        recent = Recent(content=ContentReference(source="SPOTIFY", location="spotify:x", name="Mix"), utc_time=99)
        root = ElementTree.fromstring(xml_codec.render_recents([recent], "dev1"))

        node = root.find("recent")
        assert node.get("utcTime") == "99"
        assert node.find("ContentItem").get("isPresetable") == "true"

    def test_volume(self):
        root = ElementTree.fromstring(xml_codec.render_volume(Device(id="dev1", name="K", volume=40)))
        assert root.findtext("actualvolume") == "40"

    def test_zone(self):
        members = [ZoneMember("M", "MASTER", "10.0.0.1"), ZoneMember("S1", "SLAVE", "10.0.0.2")]
        root = ElementTree.fromstring(xml_codec.render_zone("M", members))

        assert root.get("master") == "M"
        assert [(m.get("role"), m.get("ipaddress"), m.text) for m in root.findall("member")] == [
            ("MASTER", "10.0.0.1", "M"), ("SLAVE", "10.0.0.2", "S1")]

    def test_empty_zone(self):
        assert ElementTree.fromstring(xml_codec.render_zone(None, [])).get("master") is None

    def test_default_sources(self):
        root = ElementTree.fromstring(xml_codec.render_sources("dev1"))
        sources = [item.get("source") for item in root.findall("sourceItem")]
        assert "INTERNET_RADIO" in sources
        assert "SPOTIFY" in sources

    def test_error_escapes_text(self):
        assert ElementTree.fromstring(xml_codec.render_error("a < b")).text == "a < b"

    def test_info_declares_encoding(self):
        assert xml_codec.render_info(Device(id="dev1", name="K")).startswith("<?xml")
