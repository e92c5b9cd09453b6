# rollcall/processing/live.py
"""
Live Recognition Loop.

Mỗi frame (theo nhịp skip của profile):
    camera -> extractor -> MatchEngine -> RecognitionDebouncer -> notifier / store

Chỉ một lần extract chạy tại một thời điểm (loop đồng bộ). `stop()` set một
Event được kiểm tra trước mỗi lần extract, nên sau khi dừng sẽ không có frame
nào được đưa vào extractor nữa.

Usage:
    live = LiveRecognizer(camera, service, store, notifier)
    live.start("default")
    live.run(on_frame=show)        # tới khi live.stop()
"""
import time
import logging
import threading
from collections import Counter
from typing import Callable, List, Optional

import numpy as np

from ..core.errors import (
    AcquisitionError,
    DescriptorMismatchError,
    ModelLoadError,
    PersistenceError,
    TransientDetectionError,
)
from ..core.profiles import get_profile_params, resolve_profile
from ..core.types import EnrolledIdentity, FaceObservation
from .debounce import Action, ActionKind, HighlightTimer, RecognitionDebouncer
from .frame_skip import create_frame_skip
from .matching import MatchEngine, MatchResult

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _consistent_dimension(gallery: List[EnrolledIdentity]) -> List[EnrolledIdentity]:
    """
    Giữ các descriptor có dimension phổ biến nhất trong gallery.

    Một entry lệch dimension sẽ làm mọi lần match lỗi, nên bị bỏ (một warning).
    """
    if not gallery:
        return gallery
    sizes = Counter(np.asarray(i.descriptor).size for i in gallery)
    dim = sizes.most_common(1)[0][0]
    kept = [i for i in gallery if np.asarray(i.descriptor).size == dim]
    if len(kept) < len(gallery):
        dropped = [i.name for i in gallery if np.asarray(i.descriptor).size != dim]
        logger.warning(
            f"⚠️ Bỏ qua {len(dropped)} học sinh có descriptor khác dimension {dim}: "
            f"{', '.join(dropped)} (cần đăng ký lại)"
        )
    return kept


class LiveRecognizer:
    """
    Vòng nhận diện cho một camera.

    Args:
        camera: FrameSource (start/read/grab/release)
        service: ExtractorService
        store: Persistence (load_gallery, log_recognition_event, version)
        notifier: highlight / clear_highlight / event_logged / error
        engine: MatchEngine (threshold)
        debouncer: RecognitionDebouncer (cooldown)
        highlight_timer: HighlightTimer; mặc định 5s gọi notifier.clear_highlight
        clock: function() -> timestamp ms
    """

    def __init__(
        self,
        camera,
        service,
        store,
        notifier,
        engine: Optional[MatchEngine] = None,
        debouncer: Optional[RecognitionDebouncer] = None,
        highlight_timer: Optional[HighlightTimer] = None,
        clock: Callable[[], int] = _now_ms
    ):
        self.camera = camera
        self.service = service
        self.store = store
        self.notifier = notifier
        self.engine = engine or MatchEngine()
        self.debouncer = debouncer or RecognitionDebouncer()
        self.highlight_timer = highlight_timer or HighlightTimer(notifier.clear_highlight)
        self._clock = clock

        self.gallery: List[EnrolledIdentity] = []
        self._gallery_version = None
        self._mismatch_reported = False

        self.frame = None
        self.last_observation: Optional[FaceObservation] = None
        self.last_match: Optional[MatchResult] = None

        self._extractor = None
        self._frame_skip = None
        self._frame_count = 0
        self._camera_held = False
        self._looping = False
        self._pending_profile = None
        self._stop = threading.Event()

    @property
    def running(self) -> bool:
        return self._camera_held and not self._stop.is_set()

    @property
    def profile(self):
        return self.service.current_profile

    def get_stats(self):
        """FrameSkipStats của profile hiện tại (None nếu chưa start)."""
        return self._frame_skip.get_stats() if self._frame_skip is not None else None

    # === LIFECYCLE ===

    def start(self, profile="default"):
        """
        Lấy extractor cho profile rồi mở camera.

        Raises:
            ModelLoadError, AcquisitionError: Đã báo qua notifier, không giữ camera
        """
        profile = resolve_profile(profile)
        self._stop.clear()

        try:
            self._extractor = self.service.init(profile)
        except ModelLoadError as e:
            self.notifier.error(f"Không load được model ({profile.value}): {e}")
            raise

        if not self._camera_held:
            try:
                self.camera.start()
            except AcquisitionError as e:
                self.notifier.error(f"Không mở được camera: {e}")
                raise
            self._camera_held = True

        self._frame_skip = create_frame_skip(get_profile_params(profile).skip_frames)
        self._frame_count = 0
        self.reload_gallery()
        logger.info(f"▶️ Live recognition ({profile.value}), {len(self.gallery)} học sinh")

    def stop(self):
        """Dừng loop. Từ thread khác: loop tự release khi thoát."""
        self._stop.set()
        if not self._looping:
            self._teardown()

    def switch_profile(self, profile):
        """
        Đổi profile: dừng xử lý, dispose extractor cũ, khởi tạo lại.

        Trong lúc `run()` đang chạy thì được áp dụng ở vòng lặp kế tiếp.
        """
        profile = resolve_profile(profile)
        if self._looping:
            self._pending_profile = profile
            return
        self._apply_profile(profile)

    def _apply_profile(self, profile):
        logger.info(f"🔄 Đổi profile -> {profile.value}")
        self._release_camera()
        self._extractor = None
        self.debouncer.clear_frame()
        self.service.switch_profile(profile)
        self.start(profile)

    def _teardown(self):
        self._release_camera()
        self.highlight_timer.cancel()

    def _release_camera(self):
        if self._camera_held:
            self._camera_held = False
            self.camera.release()

    # === GALLERY ===

    def reload_gallery(self):
        """Load gallery khớp descriptor model của extractor hiện tại."""
        model = self._extractor.descriptor_model if self._extractor else ""
        self._gallery_version = self.store.version
        self.gallery = _consistent_dimension(self.store.load_gallery(model))
        self._mismatch_reported = False

    def _reload_gallery_if_changed(self):
        if self.store.version != self._gallery_version:
            self.reload_gallery()
            logger.info(f"🔄 Gallery reloaded: {len(self.gallery)} học sinh")

    # === LOOP ===

    def step(self) -> Optional[MatchResult]:
        """
        Xử lý một frame.

        Returns:
            MatchResult của frame đã extract, None nếu bị bỏ qua
        """
        if self._pending_profile is not None:
            profile, self._pending_profile = self._pending_profile, None
            self._apply_profile(profile)

        if not self._camera_held or self._stop.is_set():
            return None

        frame_count = self._frame_count
        self._frame_count += 1
        if not self._frame_skip.should_process(frame_count):
            self.camera.grab()  # Chỉ advance buffer, không decode
            return None

        frame = self.camera.read()
        if frame is None:
            return None
        self.frame = frame

        self._reload_gallery_if_changed()

        start = time.time()
        try:
            observations = self._extractor.detect(frame)
        except TransientDetectionError as e:
            logger.debug(f"Bỏ qua frame: {e}")
            return None
        self._frame_skip.update(time.time() - start)

        if self._stop.is_set():
            return None

        # Chỉ lấy khuôn mặt đầu tiên
        observation = observations[0] if observations else None
        descriptor = observation.descriptor if observation is not None else None
        try:
            match = self.engine.match(descriptor, self.gallery)
        except DescriptorMismatchError as e:
            # Báo một lần cho mỗi lần load gallery
            if not self._mismatch_reported:
                self._mismatch_reported = True
                logger.error(f"❌ {e}")
                self.notifier.error(str(e))
            return None

        self.last_observation = observation
        self.last_match = match

        now_ms = self._clock()
        for action in self.debouncer.on_observed(match.identity_id, now_ms):
            self._dispatch(action, match, now_ms)
        return match

    def run(self, on_frame: Optional[Callable] = None):
        """
        Lặp `step()` tới khi `stop()`. Camera luôn được release khi thoát.

        Args:
            on_frame: function(recognizer, match) gọi sau mỗi frame
        """
        self._looping = True
        try:
            while not self._stop.is_set() and self._camera_held:
                match = self.step()
                if on_frame is not None and self.frame is not None:
                    on_frame(self, match)
        finally:
            self._looping = False
            self._teardown()
            logger.info("⏹️ Live recognition stopped")

    def _dispatch(self, action: Action, match: MatchResult, now_ms: int):
        identity = match.identity
        if action.kind is ActionKind.HIGHLIGHT:
            self.notifier.highlight(identity, match.score)
            self.highlight_timer.arm()
            return

        try:
            event = self.store.log_recognition_event(
                identity_id=identity.id,
                school_id=identity.school_id,
                timestamp=now_ms,
                score=match.score,
            )
        except PersistenceError as e:
            logger.error(f"❌ Không ghi được sự kiện cho {identity.name}: {e}")
            self.debouncer.event_failed(identity.id, now_ms)
            self.notifier.error(f"Không ghi được sự kiện: {e}")
            return
        logger.info(f"✅ {identity.name} ({identity.group}) - {match.score:.2f}")
        self.notifier.event_logged(event, identity)
