# rollcall/core/profiles.py
"""
Bảng preset cấu hình detector.

Mỗi profile là một giá trị của enum DetectorProfile, ánh xạ tới một
ProfileParams immutable. Không merge dict động.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union


class ModelVariant(Enum):
    """Biến thể model của face detector."""
    INT8 = "int8"
    FLOAT32 = "float32"


class DetectorProfile(Enum):
    """Các preset có sẵn."""
    DEFAULT = "default"         # Cân bằng
    FAST = "fast"               # Nhanh, cho máy yếu
    SENSITIVE = "sensitive"     # Nhạy, chấp nhận mặt nghiêng
    LOWLIGHT = "lowlight"       # Thiếu sáng
    MULTI = "multi"             # Nhiều khuôn mặt
    ENROLLMENT = "enrollment"   # Chất lượng cao, dùng khi đăng ký


@dataclass(frozen=True)
class ProfileParams:
    """
    Tham số của một profile.

    Attributes:
        rotation: Xoay crop theo đường nối hai mắt trước khi embed
        max_faces: Số mặt tối đa mỗi frame
        skip_frames: Chỉ xử lý 1 trong mỗi N frame
        min_detection_confidence: Ngưỡng của detector
        min_descriptor_confidence: Dưới ngưỡng này không trích xuất descriptor
        model_variant: Model của face detector
        equalize: Histogram equalization trước khi embed (thiếu sáng)
    """
    rotation: bool
    max_faces: int
    skip_frames: int
    min_detection_confidence: float
    min_descriptor_confidence: float
    model_variant: ModelVariant
    equalize: bool = True


PROFILES: Mapping[DetectorProfile, ProfileParams] = MappingProxyType({
    DetectorProfile.DEFAULT: ProfileParams(
        rotation=False, max_faces=1, skip_frames=5,
        min_detection_confidence=0.7, min_descriptor_confidence=0.8,
        model_variant=ModelVariant.FLOAT32,
    ),
    DetectorProfile.FAST: ProfileParams(
        rotation=False, max_faces=1, skip_frames=10,
        min_detection_confidence=0.5, min_descriptor_confidence=0.7,
        model_variant=ModelVariant.INT8, equalize=False,
    ),
    DetectorProfile.SENSITIVE: ProfileParams(
        rotation=True, max_faces=1, skip_frames=2,
        min_detection_confidence=0.6, min_descriptor_confidence=0.9,
        model_variant=ModelVariant.FLOAT32,
    ),
    DetectorProfile.LOWLIGHT: ProfileParams(
        rotation=False, max_faces=1, skip_frames=5,
        min_detection_confidence=0.7, min_descriptor_confidence=0.8,
        model_variant=ModelVariant.FLOAT32,
    ),
    DetectorProfile.MULTI: ProfileParams(
        rotation=False, max_faces=5, skip_frames=5,
        min_detection_confidence=0.5, min_descriptor_confidence=0.8,
        model_variant=ModelVariant.FLOAT32,
    ),
    DetectorProfile.ENROLLMENT: ProfileParams(
        rotation=False, max_faces=1, skip_frames=1,
        min_detection_confidence=0.8, min_descriptor_confidence=0.9,
        model_variant=ModelVariant.FLOAT32,
    ),
})


def resolve_profile(profile: Union[str, DetectorProfile]) -> DetectorProfile:
    """
    Chuyển tên profile (str) thành DetectorProfile.

    Raises:
        ValueError: Tên không có trong bảng
    """
    if isinstance(profile, DetectorProfile):
        return profile
    try:
        return DetectorProfile(profile.strip().lower())
    except ValueError:
        names = ", ".join(p.value for p in DetectorProfile)
        raise ValueError(f"Profile không tồn tại: {profile!r} (có: {names})") from None


def get_profile_params(profile: Union[str, DetectorProfile]) -> ProfileParams:
    """Lấy ProfileParams của một profile."""
    return PROFILES[resolve_profile(profile)]
