# rollcall/core/tflite_helper.py
"""
Helper load TFLite interpreter.
Tự động chọn giữa tflite_runtime (nhẹ, cho Pi) và tensorflow.lite (PC).
"""
import os
import logging

from .errors import ModelLoadError

logger = logging.getLogger(__name__)

# Log runtime đã chọn một lần
_logged_runtime = False


def _interpreter_class():
    """Trả về (Interpreter class, tên runtime)."""
    try:
        from tflite_runtime.interpreter import Interpreter
        return Interpreter, "tflite_runtime"
    except ImportError:
        pass

    try:
        import tensorflow as tf
        return tf.lite.Interpreter, "tensorflow.lite"
    except ImportError:
        pass

    raise ModelLoadError(
        "Không tìm thấy TFLite interpreter! Cài đặt một trong hai:\n"
        "  - pip install tflite-runtime  (nhẹ, cho Pi)\n"
        "  - pip install tensorflow      (đầy đủ, cho PC)"
    )


def get_interpreter(model_path: str, num_threads: int = 4):
    """
    Tạo TFLite Interpreter đã allocate tensors.

    Raises:
        ModelLoadError: Không có runtime, không có file, hoặc model hỏng
    """
    global _logged_runtime

    if not os.path.exists(model_path):
        raise ModelLoadError(f"Không tìm thấy model: {model_path}")

    interpreter_cls, runtime = _interpreter_class()
    if not _logged_runtime:
        logger.info(f"[TFLite] Sử dụng {runtime} (threads={num_threads})")
        _logged_runtime = True

    try:
        interpreter = interpreter_cls(model_path=model_path, num_threads=num_threads)
        interpreter.allocate_tensors()
    except (ValueError, RuntimeError) as e:
        raise ModelLoadError(f"Không load được model {model_path}: {e}") from e
    return interpreter
