"""Shared fixtures for rollcall tests.

All embeddings are synthetic and cameras/extractors are fakes — NO ML models needed.
"""

import itertools

import numpy as np
import pytest

from rollcall.core.errors import AcquisitionError, PersistenceError
from rollcall.core.model_factory import ExtractorService
from rollcall.core.types import EnrolledIdentity, FaceObservation, RecognitionEvent
from rollcall.recognition.extractor import DescriptorExtractor

FRAME_WIDTH = 640
FRAME_HEIGHT = 480
MESH_POINTS = 478


def _embedding(seed: int = 0, dim: int = 128) -> np.ndarray:
    rng = np.random.default_rng(seed)
    v = rng.standard_normal(dim).astype(np.float32)
    return v / np.linalg.norm(v)


@pytest.fixture
def make_embedding():
    """Factory fixture for generating deterministic L2-normalized embeddings."""
    return _embedding


def make_observation(
    box=(192, 100, 256, 256),
    confidence=0.95,
    yaw=0.0,
    pitch=0.0,
    descriptor="auto",
    mesh_points=MESH_POINTS,
    seed=0,
) -> FaceObservation:
    """A face that passes every quality check by default (width ratio 0.4)."""
    landmarks = np.zeros((mesh_points, 3), dtype=np.float32)
    if mesh_points > 238:
        landmarks[4][2] = yaw
    if mesh_points > 360:
        landmarks[131][1] = pitch
    if isinstance(descriptor, str):
        descriptor = _embedding(seed)
    return FaceObservation(box=box, confidence=confidence, landmarks=landmarks, descriptor=descriptor)


@pytest.fixture
def observation():
    return make_observation


class FakeCamera:
    """FrameSource that counts acquisitions and releases."""

    def __init__(self, fail=False, width=FRAME_WIDTH, height=FRAME_HEIGHT):
        self.fail = fail
        self.width = width
        self.height = height
        self.starts = 0
        self.releases = 0
        self.reads = 0
        self.grabs = 0
        self.is_open = False

    def start(self):
        if self.fail:
            raise AcquisitionError("camera busy")
        self.starts += 1
        self.is_open = True
        return self

    def read(self):
        if not self.is_open:
            return None
        self.reads += 1
        return np.full((self.height, self.width, 3), 127, dtype=np.uint8)

    def grab(self):
        if not self.is_open:
            return False
        self.grabs += 1
        return True

    def release(self):
        self.releases += 1
        self.is_open = False


class FakeExtractor(DescriptorExtractor):
    """
    Returns scripted observations per call.

    `script` is a list; each item is a list of observations or an exception
    instance to raise. After the script runs out, `default` is returned.
    """

    def __init__(self, script=None, default=None, descriptor_model="MobileFaceNet", name="fake"):
        self.script = list(script or [])
        self.default = default if default is not None else []
        self.descriptor_model = descriptor_model
        self.name = name
        self.calls = 0
        self.closed = False

    def detect(self, frame):
        self.calls += 1
        if self.script:
            item = self.script.pop(0)
        else:
            item = self.default
        if isinstance(item, Exception):
            raise item
        return list(item)

    def close(self):
        self.closed = True


class FakeStore:
    """In-memory persistence collaborator."""

    def __init__(self, gallery=None):
        self.identities = list(gallery or [])
        self.events = []
        self.fail_enroll = False
        self.fail_log = False
        self.enroll_calls = []
        self._ids = itertools.count(1)
        self._version = 0

    def enroll(self, name, group, school_id, descriptor, photo=b"", descriptor_model=""):
        self.enroll_calls.append(name)
        if self.fail_enroll:
            raise PersistenceError("disk full")
        identity = EnrolledIdentity(
            id=f"s{next(self._ids)}", name=name, group=group, school_id=school_id,
            descriptor=descriptor, photo=photo, descriptor_model=descriptor_model,
        )
        self.add(identity)
        return identity

    def add(self, identity):
        self.identities.append(identity)
        self._version += 1

    def load_gallery(self, descriptor_model):
        return [i for i in self.identities if i.descriptor_model == descriptor_model]

    @property
    def version(self):
        return self._version

    def log_recognition_event(self, identity_id, school_id, timestamp, score=0.0):
        if self.fail_log:
            raise PersistenceError("db locked")
        event = RecognitionEvent(
            id=len(self.events) + 1, identity_id=identity_id,
            school_id=school_id, timestamp=timestamp, score=score,
        )
        self.events.append(event)
        return event


class FakeNotifier:
    def __init__(self):
        self.highlights = []
        self.cleared = 0
        self.logged = []
        self.errors = []

    def highlight(self, identity, score):
        self.highlights.append(identity.id)

    def clear_highlight(self):
        self.cleared += 1

    def event_logged(self, event, identity):
        self.logged.append(identity.id)

    def error(self, message):
        self.errors.append(message)


class FakeTimer:
    """Stand-in for threading.Timer that fires only when told to."""

    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


@pytest.fixture
def fake_timer():
    FakeTimer.created = []
    return FakeTimer


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store():
    return FakeStore()


def make_identity(identity_id="s1", seed=0, name="An", group="10A1", model="MobileFaceNet"):
    return EnrolledIdentity(
        id=identity_id, name=name, group=group, school_id="1",
        descriptor=_embedding(seed), descriptor_model=model,
    )


@pytest.fixture
def identity():
    return make_identity


def make_service(extractor_factory):
    """ExtractorService whose factory builds fakes: extractor_factory(profile)."""
    return ExtractorService(extractor_factory)
