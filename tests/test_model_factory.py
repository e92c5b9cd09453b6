"""Tests for ExtractorService lifecycle and create_extractor wiring."""

import pytest

from rollcall.core.errors import ModelLoadError
from rollcall.core.model_factory import ExtractorService, create_extractor
from rollcall.core.profiles import DetectorProfile
from rollcall.core.settings import Settings

from conftest import FakeExtractor


class Recorder:
    def __init__(self):
        self.log = []
        self.instances = []

    def __call__(self, profile):
        self.log.append(f"create:{profile.value}")
        extractor = FakeExtractor(name=profile.value)
        original_close = extractor.close

        def close():
            self.log.append(f"close:{profile.value}")
            original_close()

        extractor.close = close
        self.instances.append(extractor)
        return extractor


class TestExtractorService:
    def test_lazy_until_init(self):
        factory = Recorder()
        service = ExtractorService(factory)
        assert service.extractor is None
        assert service.current_profile is None
        assert factory.log == []

    def test_init_same_profile_reuses_instance(self):
        factory = Recorder()
        service = ExtractorService(factory)
        first = service.init("default")
        second = service.init(DetectorProfile.DEFAULT)
        assert first is second
        assert factory.log == ["create:default"]

    def test_init_other_profile_disposes_first(self):
        factory = Recorder()
        service = ExtractorService(factory)
        service.init("default")
        service.init("multi")
        assert factory.log == ["create:default", "close:default", "create:multi"]
        assert factory.instances[0].closed is True

    def test_switch_profile_disposes_before_create(self):
        factory = Recorder()
        service = ExtractorService(factory)
        service.init("default")
        extractor = service.switch_profile("fast")
        assert factory.log == ["create:default", "close:default", "create:fast"]
        assert service.extractor is extractor
        assert service.current_profile is DetectorProfile.FAST

    def test_dispose_is_idempotent(self):
        factory = Recorder()
        service = ExtractorService(factory)
        service.init("default")
        service.dispose()
        service.dispose()
        assert factory.log == ["create:default", "close:default"]
        assert service.extractor is None

    def test_factory_error_wrapped(self):
        def broken(profile):
            raise OSError("file missing")

        service = ExtractorService(broken)
        with pytest.raises(ModelLoadError):
            service.init("default")
        assert service.extractor is None

    def test_failed_switch_leaves_nothing_alive(self):
        calls = []

        def factory(profile):
            calls.append(profile)
            if profile is DetectorProfile.FAST:
                raise ModelLoadError("int8 model missing")
            return FakeExtractor()

        service = ExtractorService(factory)
        old = service.init("default")
        with pytest.raises(ModelLoadError):
            service.switch_profile("fast")
        assert old.closed is True
        assert service.extractor is None

    def test_unknown_profile(self):
        service = ExtractorService(Recorder())
        with pytest.raises(ValueError):
            service.init("turbo")


class TestCreateExtractor:
    def test_missing_models_raise_model_load_error(self, tmp_path):
        settings = Settings(
            BASE_DIR=str(tmp_path),
            CONFIG_PATH=str(tmp_path / "none.json"),
            IS_PI=False,
        )
        with pytest.raises(ModelLoadError):
            create_extractor(DetectorProfile.DEFAULT, settings)
