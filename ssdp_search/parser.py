"""
SSDP search response parser.

Turns a raw HTTP-over-UDP search response into an SSDPService. Malformed
or unrelated datagrams (NOTIFY, other M-SEARCH queries) yield None.
"""

import logging
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional, Protocol

from .models import SSDPService

logger = logging.getLogger("ssdp.parser")

STATUS_LINE = re.compile(r"^HTTP/1\.[01]\s+200(\s|$)", re.IGNORECASE)
MAX_AGE = re.compile(r"max-age\s*=\s*(\d+)", re.IGNORECASE)

# Headers mapped onto SSDPService fields
KNOWN_HEADERS = {"ST", "LOCATION", "USN", "SERVER", "CACHE-CONTROL", "DATE"}


class ServiceParser(Protocol):
    """Protocol for response parsers consumed by a search session."""

    def parse(self, data: bytes) -> Optional[SSDPService]:
        """Return the parsed service, or None if data is not a usable response."""
        ...


class SSDPServiceParser:
    """Parser for SSDP M-SEARCH responses."""

    def parse(self, data: bytes) -> Optional[SSDPService]:
        try:
            response = data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Dropping response that is not valid UTF-8")
            return None

        lines = response.split("\r\n")
        if len(lines) == 1:
            # Some devices terminate lines with a bare LF
            lines = response.split("\n")

        if not STATUS_LINE.match(lines[0].strip()):
            logger.debug("Dropping datagram with status line %r", lines[0][:40])
            return None

        headers = self._parse_headers(lines[1:])

        search_target = headers.get("ST")
        location = headers.get("LOCATION")
        if not search_target or not location:
            logger.debug("Dropping response without ST or LOCATION")
            return None

        cache_control = headers.get("CACHE-CONTROL")

        return SSDPService(
            search_target=search_target,
            location=location,
            unique_service_name=headers.get("USN"),
            server=headers.get("SERVER"),
            cache_control=cache_control,
            max_age=self._parse_max_age(cache_control),
            date=self._parse_date(headers.get("DATE")),
            other_headers={k: v for k, v in headers.items() if k not in KNOWN_HEADERS},
        )

    @staticmethod
    def _parse_headers(lines: list[str]) -> dict[str, str]:
        headers: dict[str, str] = {}
        for line in lines:
            if ":" not in line:
                continue
            key, value = line.split(":", 1)
            key = key.strip().upper()
            if key:
                headers[key] = value.strip()
        return headers

    @staticmethod
    def _parse_max_age(cache_control: Optional[str]) -> Optional[int]:
        if not cache_control:
            return None
        match = MAX_AGE.search(cache_control)
        return int(match.group(1)) if match else None

    @staticmethod
    def _parse_date(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
