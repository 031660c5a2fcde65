"""
Factory presets given to seed devices that have none stored
"""

from typing import List

from .models import ContentReference, Preset, Source, now_ms

DEFAULT_PRESET_CONTENT = (
    ContentReference(
        source=Source.INTERNET_RADIO.value,
        type="station",
        name="BBC Radio 1",
        location="http://stream.live.vc.bbcmedia.co.uk/bbc_radio_one",
        art="https://cdn-profiles.tunein.com/s24939/images/logog.png",
    ),
    ContentReference(
        source=Source.SPOTIFY.value,
        type="playlist",
        name="Chill Vibes",
        location="spotify:playlist:37i9dQZF1DX4WYpdgoIcn6",
        source_account="spotify_user",
        art="https://i.scdn.co/image/ab67706f00000002724554ed6bed6f051d9b0bfc",
    ),
    ContentReference(
        source=Source.INTERNET_RADIO.value,
        type="station",
        name="Jazz Radio",
        location="http://jazz-wr01.ice.infomaniak.ch/jazz-wr01-128.mp3",
        art="https://cdn-profiles.tunein.com/s8379/images/logog.png",
    ),
    ContentReference(
        source=Source.SPOTIFY.value,
        type="playlist",
        name="Discover Weekly",
        location="spotify:user:spotify:playlist:37i9dQZEVXcQ9COmYvdajy",
        source_account="spotify_user",
        art="https://i.scdn.co/image/ab67706f00000002724554ed6bed6f051d9b0bfc",
    ),
    ContentReference(
        source=Source.INTERNET_RADIO.value,
        type="station",
        name="Classical Radio",
        location="http://stream.live.vc.bbcmedia.co.uk/bbc_radio_three",
        art="https://cdn-profiles.tunein.com/s24941/images/logog.png",
    ),
    ContentReference(
        source=Source.SPOTIFY.value,
        type="playlist",
        name="Rock Classics",
        location="spotify:playlist:37i9dQZF1DWXRqgorJj26U",
        source_account="spotify_user",
        art="https://i.scdn.co/image/ab67706f00000002724554ed6bed6f051d9b0bfc",
    ),
)


def default_presets() -> List[Preset]:
    created = now_ms()
    return [
        Preset.from_content(str(slot), content, created, created)
        for slot, content in enumerate(DEFAULT_PRESET_CONTENT, start=1)
    ]
