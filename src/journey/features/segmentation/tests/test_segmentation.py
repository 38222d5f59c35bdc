from __future__ import annotations

from journey.core.rng import RNG
from journey.core.types import SessionContext
from journey.features.events.service import EventService
from journey.features.segmentation.service import SEGMENTS, DeviceProfile, SegmentationService
from journey.features.sinks.service import RecordingSink


def make_segmentation(seed: int = 3):
    sink = RecordingSink()
    events = EventService(sink=sink, context=SessionContext("session_1", "user_1", 0))
    return SegmentationService(events=events, rng=RNG(seed)), sink


def test_device_info_from_explicit_profile():
    svc, sink = make_segmentation()
    device = DeviceProfile(
        user_agent="Mozilla/5.0",
        platform="MacIntel",
        language="en-US",
        screen_resolution="1920x1080",
        viewport="1280x720",
        color_depth=30,
        time_zone="Europe/Berlin",
    )

    assert svc.track_device_info(device) is device

    rec = sink.named("DeviceInfo")[0]
    assert rec.properties["screenResolution"] == "1920x1080"
    assert rec.properties["colorDepth"] == "30"
    assert rec.properties["timeZone"] == "Europe/Berlin"
    assert rec.properties["sessionId"] == "session_1"


def test_device_info_defaults_to_host_description():
    svc, sink = make_segmentation()

    profile = svc.track_device_info()

    assert profile.platform
    assert profile.user_agent.startswith("python/")
    assert sink.names() == ["DeviceInfo"]


def test_custom_segment_is_one_of_the_known_segments():
    svc, sink = make_segmentation()

    seen = {svc.track_custom_segment() for _ in range(100)}

    assert seen <= set(SEGMENTS)
    assert len(seen) > 1
    assert all(r.properties["assignmentReason"] == "behavioral_analysis" for r in sink.records)
