"""Tests for the live recognition loop."""

import pytest

from rollcall.core.errors import AcquisitionError, ModelLoadError, TransientDetectionError
from rollcall.core.profiles import DetectorProfile, get_profile_params
from rollcall.core.types import EnrolledIdentity
from rollcall.processing.debounce import HighlightTimer
from rollcall.processing.live import LiveRecognizer

from conftest import (
    FakeCamera,
    FakeExtractor,
    FakeNotifier,
    FakeStore,
    make_identity,
    make_observation,
    make_service,
)


class Clock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


def build(extractor=None, gallery=None, camera=None, factory=None, fake_timer=None):
    extractor = extractor or FakeExtractor()
    store = FakeStore(gallery if gallery is not None else [make_identity("s1", seed=1)])
    notifier = FakeNotifier()
    camera = camera or FakeCamera()
    clock = Clock()
    timer = HighlightTimer(notifier.clear_highlight, timer_factory=fake_timer) if fake_timer else None
    live = LiveRecognizer(
        camera=camera,
        service=make_service(factory or (lambda profile: extractor)),
        store=store,
        notifier=notifier,
        highlight_timer=timer,
        clock=clock,
    )
    return live, camera, store, notifier, clock


def process_one(live):
    """Advance one processing slot (skip_frames frames), return the processed result."""
    skip = get_profile_params(live.profile).skip_frames
    results = [live.step() for _ in range(skip)]
    return results[0]


def face_of(seed):
    return [make_observation(seed=seed)]


class TestStart:
    def test_start_acquires_camera_and_gallery(self):
        live, camera, _, _, _ = build()
        live.start("default")
        assert camera.starts == 1
        assert live.profile is DetectorProfile.DEFAULT
        assert [i.id for i in live.gallery] == ["s1"]

    def test_camera_failure_is_surfaced(self):
        live, _, _, notifier, _ = build(camera=FakeCamera(fail=True))
        with pytest.raises(AcquisitionError):
            live.start()
        assert notifier.errors
        assert live.running is False

    def test_model_failure_is_surfaced(self):
        def failing(profile):
            raise ModelLoadError("no model")

        live, camera, _, notifier, _ = build(factory=failing)
        with pytest.raises(ModelLoadError):
            live.start()
        assert notifier.errors
        assert camera.starts == 0

    def test_gallery_filters_other_descriptor_models(self):
        gallery = [make_identity("s1", seed=1), make_identity("old", seed=2, model="FaceNet")]
        live, _, _, _, _ = build(gallery=gallery)
        live.start()
        assert [i.id for i in live.gallery] == ["s1"]


class TestRecognition:
    def test_frame_skip_cadence(self):
        extractor = FakeExtractor()
        live, camera, _, _, _ = build(extractor=extractor)
        live.start("default")
        for _ in range(10):
            live.step()
        assert extractor.calls == 2
        assert camera.reads == 2
        assert camera.grabs == 8

    def test_match_highlights_and_logs_once(self):
        extractor = FakeExtractor(default=face_of(1))
        live, _, store, notifier, clock = build(extractor=extractor)
        live.start()

        for i in range(10):
            clock.now = i * 200
            match = process_one(live)
            assert match.accepted is True

        assert notifier.highlights == ["s1"]
        assert notifier.logged == ["s1"]
        assert [e.identity_id for e in store.events] == ["s1"]
        assert store.events[0].timestamp == 0

    def test_logs_again_after_cooldown(self):
        extractor = FakeExtractor(default=face_of(1))
        live, _, store, notifier, clock = build(extractor=extractor)
        live.start()

        process_one(live)
        clock.now = 29999
        process_one(live)
        clock.now = 30001
        process_one(live)
        assert len(store.events) == 2
        assert notifier.highlights == ["s1"]

    def test_unknown_face_does_nothing(self):
        extractor = FakeExtractor(default=face_of(99))
        live, _, store, notifier, _ = build(extractor=extractor)
        live.start()
        match = process_one(live)
        assert match.accepted is False
        assert notifier.highlights == []
        assert store.events == []

    def test_only_first_observation_is_matched(self):
        extractor = FakeExtractor(default=face_of(99) + face_of(1))
        live, _, store, _, _ = build(extractor=extractor)
        live.start()
        assert process_one(live).accepted is False

    def test_transient_error_skips_frame(self):
        extractor = FakeExtractor(script=[TransientDetectionError("glitch")], default=face_of(1))
        live, _, store, _, _ = build(extractor=extractor)
        live.start()
        assert process_one(live) is None
        assert process_one(live).accepted is True

    def test_persistence_failure_is_not_fatal(self):
        extractor = FakeExtractor(default=face_of(1))
        live, _, store, notifier, _ = build(extractor=extractor)
        store.fail_log = True
        live.start()

        match = process_one(live)
        assert match.accepted is True
        assert notifier.highlights == ["s1"]
        assert notifier.logged == []
        assert notifier.errors

    def test_failed_log_is_retried_next_frame(self):
        extractor = FakeExtractor(default=face_of(1))
        live, _, store, notifier, clock = build(extractor=extractor)
        store.fail_log = True
        live.start()
        process_one(live)

        store.fail_log = False
        clock.now = 400
        process_one(live)
        assert [(e.identity_id, e.timestamp) for e in store.events] == [("s1", 400)]
        assert notifier.logged == ["s1"]

    def test_highlight_arms_timer(self, fake_timer):
        extractor = FakeExtractor(default=face_of(1))
        live, _, _, notifier, _ = build(extractor=extractor, fake_timer=fake_timer)
        live.start()
        process_one(live)

        assert len(fake_timer.created) == 1
        fake_timer.created[0].fire()
        assert notifier.cleared == 1

    def test_gallery_hot_reload(self):
        extractor = FakeExtractor(default=face_of(5))
        live, _, store, notifier, _ = build(extractor=extractor)
        live.start()
        assert process_one(live).accepted is False

        store.add(make_identity("s5", seed=5))
        assert process_one(live).identity.id == "s5"
        assert notifier.logged == ["s5"]


class TestStop:
    def test_no_extraction_after_stop(self):
        extractor = FakeExtractor()
        live, camera, _, _, _ = build(extractor=extractor)
        live.start()
        live.step()
        live.stop()

        for _ in range(10):
            assert live.step() is None
        assert extractor.calls == 1
        assert camera.releases == 1

    def test_run_releases_camera_on_stop(self, fake_timer):
        extractor = FakeExtractor(default=face_of(1))
        live, camera, _, _, _ = build(extractor=extractor, fake_timer=fake_timer)
        live.start()
        frames = []

        def on_frame(recognizer, match):
            frames.append(match)
            if len(frames) == 12:
                recognizer.stop()

        live.run(on_frame=on_frame)
        assert len(frames) == 12
        assert camera.releases == 1
        assert fake_timer.created[0].cancelled is True

    def test_run_releases_camera_on_error(self):
        live, camera, _, _, _ = build()
        live.start()

        def explode(recognizer, match):
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            live.run(on_frame=explode)
        assert camera.releases == 1


class TestSwitchProfile:
    def _tracking_factory(self, log):
        def factory(profile):
            log.append(f"create:{profile.value}")
            extractor = FakeExtractor(name=profile.value)
            original_close = extractor.close

            def close():
                log.append(f"close:{profile.value}")
                original_close()

            extractor.close = close
            return extractor
        return factory

    def test_switch_disposes_old_before_new(self):
        log = []
        live, camera, _, _, _ = build(factory=self._tracking_factory(log))
        live.start("default")
        live.switch_profile("lowlight")

        assert log == ["create:default", "close:default", "create:lowlight"]
        assert live.profile is DetectorProfile.LOWLIGHT
        assert camera.releases == 1
        assert camera.starts == 2

    def test_switch_during_run_applies_next_step(self):
        log = []
        live, camera, _, _, _ = build(factory=self._tracking_factory(log))
        live.start("default")
        frames = []

        def on_frame(recognizer, match):
            frames.append(match)
            if len(frames) == 1:
                recognizer.switch_profile("fast")
            elif len(frames) == 3:
                recognizer.stop()

        live.run(on_frame=on_frame)
        assert log == ["create:default", "close:default", "create:fast"]
        assert live.profile is DetectorProfile.FAST
        assert camera.releases == 2

    def test_switch_keeps_cooldown_history(self):
        live, _, store, notifier, clock = build(
            factory=lambda profile: FakeExtractor(default=face_of(1), name=profile.value)
        )
        live.start("default")
        process_one(live)

        clock.now = 5000
        live.switch_profile("fast")
        process_one(live)

        assert [(e.identity_id, e.timestamp) for e in store.events] == [("s1", 0)]
        # Sau khi đổi profile vẫn highlight lại, chỉ không ghi sự kiện
        assert notifier.highlights == ["s1", "s1"]

        clock.now = 30000
        process_one(live)
        assert [e.timestamp for e in store.events] == [0, 30000]


class TestGalleryDimensions:
    def test_mismatched_entry_dropped_on_load(self, make_embedding):
        bad = EnrolledIdentity(
            id="bad", name="Bad", group="g", school_id="1",
            descriptor=make_embedding(3, dim=64), descriptor_model="MobileFaceNet",
        )
        extractor = FakeExtractor(default=face_of(1))
        live, _, store, notifier, _ = build(
            extractor=extractor, gallery=[make_identity("s1", seed=1), bad],
        )
        live.start()
        assert [i.id for i in live.gallery] == ["s1"]

        assert process_one(live).identity.id == "s1"
        assert notifier.errors == []
        assert [e.identity_id for e in store.events] == ["s1"]

    def test_query_mismatch_reported_once(self, make_embedding):
        query = make_observation(descriptor=make_embedding(1, dim=64))
        extractor = FakeExtractor(default=[query])
        live, _, _, notifier, _ = build(extractor=extractor)
        live.start()

        for _ in range(3):
            assert process_one(live) is None
        assert len(notifier.errors) == 1
