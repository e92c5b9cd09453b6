# rollcall/recognition/recognition.py
"""
Face Embedding - MobileFaceNet (TFLite)
=======================================
Input:  [1, 112, 112, 3] (int8 quantized hoặc float32 trong [-1, 1])
Output: [1, D] embedding, dequantize + L2 normalize

Thread-safe: Lock cho TFLite inference.
"""
import os
import logging
import threading
from typing import Optional

import cv2
import numpy as np

from ..core.tflite_helper import get_interpreter

logger = logging.getLogger(__name__)

INPUT_HEIGHT = 112
INPUT_WIDTH = 112
EMBEDDING_DIM = 128

# Mesh index của khóe mắt ngoài (trái / phải) - dùng để xoay thẳng mặt
LEFT_EYE_INDEX = 33
RIGHT_EYE_INDEX = 263


class FaceEmbedder:
    """
    Trích xuất descriptor từ ảnh khuôn mặt.

    Args:
        model_path: Đường dẫn model TFLite
        enable_histogram_eq: Cân bằng histogram kênh Y trước khi embed
        num_threads: Số threads cho TFLite
    """

    def __init__(self, model_path, enable_histogram_eq=True, num_threads=4):
        self._inference_lock = threading.Lock()

        self.model_path = model_path
        self.model_name = os.path.splitext(os.path.basename(model_path))[0]
        self.enable_histogram_eq = enable_histogram_eq

        self.interpreter = get_interpreter(model_path, num_threads=num_threads)
        self.input_details = self.interpreter.get_input_details()
        self.output_details = self.interpreter.get_output_details()

        self._input_dtype = self.input_details[0]['dtype']
        raw_shape = self.input_details[0].get('shape', [1, INPUT_HEIGHT, INPUT_WIDTH, 3])
        input_shape = tuple(int(dim) for dim in raw_shape)
        self.input_height = input_shape[1] if len(input_shape) >= 3 else INPUT_HEIGHT
        self.input_width = input_shape[2] if len(input_shape) >= 3 else INPUT_WIDTH

        output_shape = self.output_details[0].get('shape', [1, EMBEDDING_DIM])
        self._embedding_dim = int(output_shape[-1]) if len(output_shape) >= 2 else EMBEDDING_DIM

        # Quantization parameters
        self._input_scale, self._input_zero_point = _quant_params(self.input_details[0], 1.0 / 127.5, 0)
        self._output_scale, self._output_zero_point = _quant_params(self.output_details[0], 1.0, 0)

        self._input_index = self.input_details[0]['index']
        self._output_index = self.output_details[0]['index']

        logger.info(f"[Embedder] Model: {model_path} (dim={self._embedding_dim}, "
                    f"dtype={np.dtype(self._input_dtype).name})")

    def _preprocess(self, face_img):
        """
        Pipeline:
        1. Resize về 112x112
        2. BGR -> RGB
        3. (Optional) Histogram equalization
        4. Normalize về [-1, 1], quantize nếu model INT8
        """
        img = cv2.resize(face_img, (self.input_width, self.input_height))
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

        if self.enable_histogram_eq:
            img_yuv = cv2.cvtColor(img, cv2.COLOR_RGB2YUV)
            img_yuv[:, :, 0] = cv2.equalizeHist(img_yuv[:, :, 0])
            img = cv2.cvtColor(img_yuv, cv2.COLOR_YUV2RGB)

        if self._input_dtype == np.uint8:
            return img[np.newaxis].astype(np.uint8)

        img_float = (img.astype(np.float32) - 127.5) / 127.5
        if self._input_dtype == np.int8:
            img_q = np.clip(
                img_float / self._input_scale + self._input_zero_point,
                -128, 127
            ).astype(np.int8)
            return img_q[np.newaxis]
        return img_float[np.newaxis]

    def _dequantize(self, output):
        if output.dtype in (np.int8, np.uint8):
            return (output.astype(np.float32) - self._output_zero_point) * self._output_scale
        return output.astype(np.float32)

    def get_embedding(self, face_img) -> Optional[np.ndarray]:
        """
        Embedding L2-normalized, shape (D,). None nếu crop rỗng.
        """
        if face_img is None or face_img.size == 0:
            return None

        img = self._preprocess(face_img)

        with self._inference_lock:
            self.interpreter.set_tensor(self._input_index, img)
            self.interpreter.invoke()
            output = self.interpreter.get_tensor(self._output_index)
            emb = np.array(self._dequantize(output)[0], dtype=np.float32, copy=True)

        return emb / (np.linalg.norm(emb) + 1e-10)

    @property
    def embedding_dim(self):
        return self._embedding_dim


def _quant_params(detail, default_scale, default_zero_point):
    quant = detail.get('quantization_parameters', {})
    scales = quant.get('scales')
    zero_points = quant.get('zero_points')
    scale = float(scales[0]) if scales is not None and len(scales) > 0 else default_scale
    zero_point = int(zero_points[0]) if zero_points is not None and len(zero_points) > 0 else default_zero_point
    return scale, zero_point


def align_face(frame, box, landmarks):
    """
    Crop khuôn mặt, xoay để đường nối hai mắt nằm ngang.

    Không đủ landmarks thì trả về crop thẳng.
    """
    x, y, w, h = box
    if landmarks is None or len(landmarks) <= max(LEFT_EYE_INDEX, RIGHT_EYE_INDEX):
        return frame[y:y + h, x:x + w]

    left = landmarks[LEFT_EYE_INDEX]
    right = landmarks[RIGHT_EYE_INDEX]
    angle = float(np.degrees(np.arctan2(right[1] - left[1], right[0] - left[0])))

    center = (x + w / 2.0, y + h / 2.0)
    matrix = cv2.getRotationMatrix2D(center, angle, 1.0)
    rotated = cv2.warpAffine(frame, matrix, (frame.shape[1], frame.shape[0]), flags=cv2.INTER_LINEAR)
    return rotated[y:y + h, x:x + w]
