# rollcall/core/errors.py
"""
Các exception của hệ thống.

Validation (không có mặt, nhiều mặt, sai tư thế, sai kích thước) KHÔNG phải
exception - đó là kết quả bình thường của QualityGate (xem Feedback).
"""


class RollcallError(Exception):
    """Base exception cho toàn bộ package."""


class AcquisitionError(RollcallError):
    """Camera không mở được hoặc bị từ chối quyền truy cập."""


class ModelLoadError(RollcallError):
    """Extractor không khởi tạo được cho profile yêu cầu."""


class TransientDetectionError(RollcallError):
    """Một lần extract thất bại - bỏ qua frame, loop tiếp tục."""


class PersistenceError(RollcallError):
    """Lưu học sinh hoặc ghi sự kiện nhận diện thất bại."""


class DescriptorMismatchError(RollcallError):
    """So sánh hai descriptor khác số chiều (khác cấu hình extractor)."""
