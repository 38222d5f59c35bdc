from __future__ import annotations

import locale
import platform
import time
from dataclasses import dataclass

from journey.core.rng import RNG
from journey.features.events.schema import DeviceInfo, UserSegmentation
from journey.features.events.service import EventService

SEGMENTS: tuple[str, ...] = ("high_value", "mobile_user", "enterprise", "small_business")


@dataclass(frozen=True)
class DeviceProfile:
    user_agent: str
    platform: str
    language: str
    screen_resolution: str = "unknown"
    viewport: str = "unknown"
    color_depth: int = 24
    time_zone: str = "UTC"

    @classmethod
    def from_host(cls) -> DeviceProfile:
        """
        Best available description of the machine running the harness.
        """
        try:
            lang = locale.getlocale()[0] or "en_US"
        except ValueError:
            # unparseable LC_* setting
            lang = "en_US"
        return cls(
            user_agent=f"python/{platform.python_version()} ({platform.system()})",
            platform=platform.system() or "unknown",
            language=lang.replace("_", "-"),
            time_zone=time.tzname[0] if time.tzname else "UTC",
        )


class SegmentationService:
    def __init__(self, *, events: EventService, rng: RNG) -> None:
        self._events = events
        self._rng = rng

    def track_device_info(self, device: DeviceProfile | None = None) -> DeviceProfile:
        profile = device or DeviceProfile.from_host()
        self._events.emit(
            DeviceInfo(
                user_agent=profile.user_agent,
                platform=profile.platform,
                language=profile.language,
                screen_resolution=profile.screen_resolution,
                viewport=profile.viewport,
                color_depth=profile.color_depth,
                time_zone=profile.time_zone,
            )
        )
        return profile

    def track_custom_segment(self) -> str:
        # simulated behavioral segmentation
        segment = self._rng.choice(SEGMENTS)
        self._events.emit(UserSegmentation(segment=segment))
        return segment
