from __future__ import annotations

import asyncio
import logging
import numpy as np
import cv2
import mediapipe as mp

from ..config import AnalysisConfig
from ..errors import ModelLoadFailed
from ..schemas.analysis import BoundingBox, FaceDetection, LoadedImage, Point2D
from ..util.assets import ensure_model_assets

logger = logging.getLogger(__name__)

# FaceMesh (478) index for each point of the 68-point scheme, in 68-point order.
MESH_TO_68 = (
    # 0-16 jaw, subject's right ear -> chin -> left ear
    127, 234, 93, 132, 58, 172, 136, 150, 152, 379, 365, 397, 288, 361, 323, 454, 356,
    # 17-21 right brow, 22-26 left brow
    70, 63, 105, 66, 107,
    336, 296, 334, 293, 300,
    # 27-30 nose bridge (nasion -> tip)
    168, 197, 5, 4,
    # 31-35 nose base, wing to wing
    98, 97, 2, 326, 327,
    # 36-41 right eye, 42-47 left eye
    33, 160, 158, 133, 153, 144,
    362, 385, 387, 263, 373, 380,
    # 48-59 outer lip (51 upper lip top, 57 lower lip bottom)
    61, 39, 37, 0, 267, 269, 291, 405, 314, 17, 84, 181,
    # 60-67 inner lip
    78, 82, 13, 312, 308, 317, 14, 87,
)


def mesh_to_68(mesh: list, w: int, h: int) -> list[Point2D]:
    """Project normalized FaceMesh landmarks onto the 68-point scheme in pixels."""
    return [Point2D(x=float(mesh[i].x) * w, y=float(mesh[i].y) * h) for i in MESH_TO_68]


class MediaPipeFaceDetector:
    """FaceDetector backed by MediaPipe Tasks.

    The coarse pass is BlazeFace on a copy scaled to ``input_size``; the
    landmark pass is FaceLandmarker on the full image.
    """

    def __init__(self, cfg: AnalysisConfig | None = None):
        self.cfg = cfg or AnalysisConfig()
        self._faces = None
        self._landmarker = None
        self._load_lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._faces is not None and self._landmarker is not None

    async def load(self) -> None:
        async with self._load_lock:
            if self.loaded:
                return
            try:
                await asyncio.to_thread(self._build)
            except ModelLoadFailed:
                logger.error("model assets unavailable", exc_info=True)
                raise
            except Exception as e:
                logger.error("model load failed: %s", e, exc_info=True)
                raise ModelLoadFailed(f"{type(e).__name__}: {e}") from e
            logger.info("face models loaded from %s", self.cfg.model_dir)

    def _build(self) -> None:
        paths = ensure_model_assets(self.cfg)
        det_path, lm_path = paths["face_detector"], paths["face_landmarker"]

        BaseOptions = mp.tasks.BaseOptions
        vision = mp.tasks.vision

        det_opts = vision.FaceDetectorOptions(
            base_options=BaseOptions(model_asset_path=str(det_path)),
            running_mode=vision.RunningMode.IMAGE,
            min_detection_confidence=self.cfg.min_confidence,
        )
        faces = vision.FaceDetector.create_from_options(det_opts)

        lm_opts = vision.FaceLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(lm_path)),
            running_mode=vision.RunningMode.IMAGE,
            num_faces=1,
        )
        self._landmarker = vision.FaceLandmarker.create_from_options(lm_opts)
        self._faces = faces

    @staticmethod
    def _to_mp_image(rgb: np.ndarray) -> mp.Image:
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))

    def _require_loaded(self) -> None:
        if not self.loaded:
            raise RuntimeError("MediaPipeFaceDetector used before load()")

    def find_all_faces(self, image: LoadedImage, cfg: AnalysisConfig) -> list[BoundingBox]:
        self._require_loaded()
        rgb = image.pixels
        h, w = rgb.shape[:2]
        scale = min(1.0, float(cfg.input_size) / float(max(w, h)))
        if scale < 1.0:
            rgb = cv2.resize(rgb, (max(1, int(w * scale)), max(1, int(h * scale))), interpolation=cv2.INTER_AREA)

        res = self._faces.detect(self._to_mp_image(rgb))
        boxes: list[BoundingBox] = []
        for det in getattr(res, "detections", None) or []:
            cats = getattr(det, "categories", None) or []
            conf = float(cats[0].score) if cats else None
            if conf is not None and conf < cfg.min_confidence:
                continue
            bb = det.bounding_box
            boxes.append(BoundingBox(
                x=bb.origin_x / scale, y=bb.origin_y / scale,
                width=bb.width / scale, height=bb.height / scale,
                score=conf,
            ))
        logger.debug("coarse pass: %d face(s) at input scale %.3f", len(boxes), scale)
        return boxes

    def find_single_face_with_landmarks(self, image: LoadedImage, cfg: AnalysisConfig) -> FaceDetection | None:
        self._require_loaded()
        res = self._landmarker.detect(self._to_mp_image(image.pixels))
        meshes = getattr(res, "face_landmarks", None) or []
        if not meshes or len(meshes[0]) <= max(MESH_TO_68):
            return None
        w, h = image.width, image.height
        pts = mesh_to_68(meshes[0], w, h)
        xs = [p.x for p in pts]
        ys = [p.y for p in pts]
        box = BoundingBox(x=min(xs), y=min(ys), width=max(xs) - min(xs), height=max(ys) - min(ys))
        return FaceDetection(boxes=[box], landmarks=pts)
