"""
Data models for discovered SSDP services.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class SSDPService:
    """
    A service that answered an M-SEARCH.

    Identity is the (ST, LOCATION, USN, SERVER) tuple. Per-response values
    such as DATE and CACHE-CONTROL change between answers from the same
    device and take no part in equality.
    """

    search_target: str
    location: str
    unique_service_name: Optional[str] = None
    server: Optional[str] = None

    cache_control: Optional[str] = field(default=None, compare=False)
    max_age: Optional[int] = field(default=None, compare=False)
    date: Optional[datetime] = field(default=None, compare=False)
    other_headers: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "search_target": self.search_target,
            "location": self.location,
            "unique_service_name": self.unique_service_name,
            "server": self.server,
            "cache_control": self.cache_control,
            "max_age": self.max_age,
            "date": self.date.isoformat() if self.date else None,
            "other_headers": dict(self.other_headers),
        }

    def __str__(self) -> str:
        usn = f" ({self.unique_service_name})" if self.unique_service_name else ""
        return f"{self.search_target} at {self.location}{usn}"
