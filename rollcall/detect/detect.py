# rollcall/detect/detect.py
"""
Face Detection - Ultra-Light-Fast RFB-320 (TFLite, không postprocessing).

Hỗ trợ hai biến thể model:
- INT8:    input int8 [1, 240, 320, 3], output int8 (dequantize)
- FLOAT32: input float32 [1, 240, 320, 3] trong [-1, 1]

Output: boxes [1, 4420, 4] (encoded theo priors), scores [1, 4420, 2].
"""
import logging
import threading
from math import ceil
from typing import List, Tuple

import cv2
import numpy as np

from ..core.tflite_helper import get_interpreter

logger = logging.getLogger(__name__)

INPUT_SIZE = (320, 240)  # (width, height)
NMS_IOU_THRESHOLD = 0.3
CENTER_VARIANCE = 0.1
SIZE_VARIANCE = 0.2

# Default quantization (được cập nhật từ model nếu có)
INPUT_SCALE = 0.0078125
INPUT_ZERO_POINT = -1


class UltraLightFaceDetector:
    """
    Face detector SSD-style. Thread-safe.

    Args:
        model_path: File .tflite
        conf_threshold: Ngưỡng score của class "face"
        max_faces: Giữ tối đa N box có score cao nhất sau NMS
        num_threads: Số threads cho TFLite
    """

    def __init__(self, model_path, conf_threshold=0.7, max_faces=1, num_threads=4):
        self._inference_lock = threading.Lock()

        self.model_path = model_path
        self.conf_threshold = conf_threshold
        self.max_faces = max_faces

        # ModelLoadError propagate lên ExtractorService
        self.interpreter = get_interpreter(model_path, num_threads=num_threads)
        self.input_details = self.interpreter.get_input_details()
        self.output_details = self.interpreter.get_output_details()

        self._input_index = self.input_details[0]['index']
        self._input_dtype = self.input_details[0]['dtype']
        self._output_indices = [d['index'] for d in self.output_details]

        self._input_scale = INPUT_SCALE
        self._input_zero_point = INPUT_ZERO_POINT
        inp_quant = self.input_details[0].get('quantization_parameters', {})
        if inp_quant.get('scales') is not None and len(inp_quant['scales']) > 0:
            self._input_scale = float(inp_quant['scales'][0])
        if inp_quant.get('zero_points') is not None and len(inp_quant['zero_points']) > 0:
            self._input_zero_point = int(inp_quant['zero_points'][0])

        self._output_params = []
        for out_detail in self.output_details:
            quant_params = out_detail.get('quantization_parameters', {})
            scale = quant_params.get('scales', [1.0])
            zp = quant_params.get('zero_points', [0])
            self._output_params.append({
                'scale': float(scale[0]) if len(scale) > 0 else 1.0,
                'zero_point': int(zp[0]) if len(zp) > 0 else 0
            })

        self._priors = generate_priors(INPUT_SIZE)

        logger.info(f"[Detector] Loaded: {model_path} (dtype={np.dtype(self._input_dtype).name}, "
                    f"priors={len(self._priors)})")

    def _preprocess(self, frame):
        """Resize 320x240, BGR -> RGB, normalize [-1, 1], quantize nếu INT8."""
        img = cv2.resize(frame, INPUT_SIZE)
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
        img_float = (img.astype(np.float32) - 127.5) / 127.5

        if self._input_dtype == np.int8:
            img_q = np.clip(
                np.round(img_float / self._input_scale + self._input_zero_point),
                -128, 127
            ).astype(np.int8)
            return np.expand_dims(img_q, axis=0)

        return np.expand_dims(img_float, axis=0)

    def _dequantize_output(self, output, param_idx):
        """float = (int8 - zero_point) * scale"""
        if output.dtype in (np.int8, np.uint8):
            params = self._output_params[param_idx]
            return (output.astype(np.float32) - params['zero_point']) * params['scale']
        return output.astype(np.float32)

    def detect_faces(self, frame) -> List[Tuple[Tuple[int, int, int, int], float]]:
        """
        Detect faces trong frame BGR.

        Returns:
            List (box [x, y, w, h], confidence), score giảm dần
        """
        h_img, w_img = frame.shape[:2]
        img_input = self._preprocess(frame)

        with self._inference_lock:
            self.interpreter.set_tensor(self._input_index, img_input)
            self.interpreter.invoke()
            out_0 = np.array(self.interpreter.get_tensor(self._output_indices[0])[0], copy=True)
            out_1 = np.array(self.interpreter.get_tensor(self._output_indices[1])[0], copy=True)

        out_0 = self._dequantize_output(out_0, 0)
        out_1 = self._dequantize_output(out_1, 1)

        # boxes có shape [..., 4], scores có shape [..., 2]
        if out_0.shape[-1] == 4:
            boxes_enc, scores = out_0, out_1
        else:
            boxes_enc, scores = out_1, out_0

        return decode_detections(
            boxes_enc, scores[:, 1], self._priors, (w_img, h_img),
            self.conf_threshold, self.max_faces
        )


def decode_detections(boxes_enc, scores, priors, image_size, conf_threshold, max_faces):
    """
    Decode box theo priors, lọc score, NMS, giữ top `max_faces`.

    Args:
        boxes_enc: (N, 4) offsets
        scores: (N,) score class "face"
        priors: (N, 4) (cx, cy, w, h) normalized
        image_size: (width, height) của frame gốc
    """
    w_img, h_img = image_size
    mask = scores > conf_threshold
    if not np.any(mask):
        return []

    scores_f = scores[mask]
    boxes_f = boxes_enc[mask]
    priors_f = priors[mask]

    boxes = np.concatenate([
        priors_f[:, :2] + boxes_f[:, :2] * CENTER_VARIANCE * priors_f[:, 2:],
        priors_f[:, 2:] * np.exp(boxes_f[:, 2:] * SIZE_VARIANCE)
    ], axis=1)

    # (cx, cy, w, h) -> (x_min, y_min, x_max, y_max), scale về pixel
    boxes[:, :2] -= boxes[:, 2:] / 2
    boxes[:, 2:] += boxes[:, :2]
    boxes[:, [0, 2]] *= w_img
    boxes[:, [1, 3]] *= h_img

    rects = boxes.astype(int)
    xywh = [[int(r[0]), int(r[1]), int(r[2] - r[0]), int(r[3] - r[1])] for r in rects]
    keep = cv2.dnn.NMSBoxes(xywh, scores_f.tolist(), conf_threshold, NMS_IOU_THRESHOLD)

    results = []
    for i in np.array(keep).flatten():
        x_min, y_min, x_max, y_max = rects[i]
        x = max(0, int(x_min))
        y = max(0, int(y_min))
        w = min(int(x_max) - x, w_img - x)
        h = min(int(y_max) - y, h_img - y)
        if w <= 0 or h <= 0:
            continue
        results.append(((x, y, w, h), float(scores_f[i])))

    results.sort(key=lambda r: r[1], reverse=True)
    return results[:max_faces]


def generate_priors(input_size):
    """Anchor boxes (priors) cho RFB-320."""
    width, height = input_size

    feature_map_sizes = [
        (ceil(height / 8), ceil(width / 8)),
        (ceil(height / 16), ceil(width / 16)),
        (ceil(height / 32), ceil(width / 32)),
        (ceil(height / 64), ceil(width / 64))
    ]
    min_sizes = [[10, 16, 24], [32, 48], [64, 96], [128, 176, 256]]

    total = sum(fh * fw * len(ms) for (fh, fw), ms in zip(feature_map_sizes, min_sizes))
    priors = np.empty((total, 4), dtype=np.float32)

    idx = 0
    for k, (fh, fw) in enumerate(feature_map_sizes):
        for y in range(fh):
            cy = (y + 0.5) / fh
            for x in range(fw):
                cx = (x + 0.5) / fw
                for min_size in min_sizes[k]:
                    priors[idx] = [cx, cy, min_size / width, min_size / height]
                    idx += 1

    return priors
