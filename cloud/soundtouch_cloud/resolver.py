"""
Stream resolution: turn a content reference into a playable location
"""

import logging
import re
from dataclasses import replace
from typing import Optional

from .errors import MalformedInput, ResolutionIncomplete, UnresolvableReference
from .logging_utils import log_resolution
from .models import ContentReference, Source, is_radio_source

logger = logging.getLogger(__name__)

# e.g. "/v1/playback/station/s47530" from legacy cloud presets
STATION_PATH = re.compile(r"/station/(s\d+)")
HTTP_URL = re.compile(r"^https?://\S+$", re.IGNORECASE)
URL_ATTRIBUTE = re.compile(r'url="([^"]+)"')
GUIDE_ID_ATTRIBUTE = re.compile(r'guide_id="([^"]+)"')
URI_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:\S+$")


def extract_stream_url(response_text: Optional[str]) -> Optional[str]:
    """
    Pull a stream URL out of a directory answer.

    Tried in order: the first bare http(s) line, then a url="..." attribute.
    An answer that only carries guide_id attributes needs another request.

    Raises:
        ResolutionIncomplete: Only a guide id was found
    """
    if not response_text:
        return None

    for line in response_text.splitlines():
        line = line.strip()
        if HTTP_URL.match(line):
            logger.debug(f"Extracted stream URL from plain text: {line}")
            return line

    match = URL_ATTRIBUTE.search(response_text)
    if match:
        url = match.group(1).replace("&amp;", "&")
        logger.debug(f"Extracted stream URL from OPML: {url}")
        return url

    match = GUIDE_ID_ATTRIBUTE.search(response_text)
    if match:
        raise ResolutionIncomplete(f"Directory returned guide id {match.group(1)} without a stream URL")

    return None


def station_id_from_location(location: Optional[str]) -> Optional[str]:
    if not location:
        return None
    match = STATION_PATH.search(location)
    return match.group(1) if match else None


def is_concrete_uri(location: Optional[str]) -> bool:
    return bool(location) and bool(URI_SCHEME.match(location))


class StreamResolver:
    """
    Resolve content references, calling the radio directory at most once.

    The resolver holds no device state, so a slow lookup never blocks the
    registry or zone coordinator.
    """

    def __init__(self, directory):
        """
        Args:
            directory: Object with lookup_station(station_id) -> str
        """
        self.directory = directory

    def resolve(self, content: ContentReference) -> ContentReference:
        """
        Resolve a reference to something playable; display fields are kept.

        Raises:
            MalformedInput: Reference has no source, location or station id
            ResolutionFailed: Directory lookup failed (caller may retry)
            ResolutionIncomplete: Directory needs a second round trip
            UnresolvableReference: No way to reach a playable location
        """
        if content.is_empty:
            raise MalformedInput("Content reference needs a source, location or station id")

        source = content.source
        if source and not is_radio_source(source):
            log_resolution(logger, "passthrough", source, content.location)
            return content

        station_id = content.station_id
        if not station_id and is_radio_source(source):
            station_id = station_id_from_location(content.location)
            if station_id:
                logger.debug(f"Extracted station ID from location: {station_id}")

        if station_id:
            stream_url = extract_stream_url(self.directory.lookup_station(station_id))
            if stream_url:
                source = source or Source.INTERNET_RADIO.value
                log_resolution(logger, "directory", source, stream_url, station_id=station_id)
                return replace(content, source=source, location=stream_url, station_id=station_id)
            logger.warning(f"No stream URL in directory answer for {station_id}")

        if is_concrete_uri(content.location):
            log_resolution(logger, "direct", source, content.location)
            return content

        raise UnresolvableReference(
            f"Unable to resolve stream: source={source!r} location={content.location!r}"
        )
