"""
ChArUco Detection Module

Detects ArUco markers in a frame and interpolates the ChArUco board corners
between them using OpenCV's ArUco module.
"""

import cv2
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


def empty_corners() -> np.ndarray:
    return np.empty((0, 1, 2), dtype=np.float32)


def empty_ids() -> np.ndarray:
    return np.empty((0, 1), dtype=np.int32)


@dataclass
class FrameDetection:
    """Markers and board corners found in one frame."""

    image: np.ndarray
    marker_corners: List[np.ndarray]        # 1x4x2 per marker
    marker_ids: np.ndarray                  # Nx1 int32
    rejected: List[np.ndarray] = field(default_factory=list)
    charuco_corners: np.ndarray = field(default_factory=empty_corners)  # Mx1x2
    charuco_ids: np.ndarray = field(default_factory=empty_ids)          # Mx1

    @property
    def num_markers(self) -> int:
        return len(self.marker_ids)

    @property
    def num_corners(self) -> int:
        return len(self.charuco_ids)

    @property
    def has_markers(self) -> bool:
        return self.num_markers > 0

    @property
    def image_size(self) -> Tuple[int, int]:
        """Image size as (width, height)."""
        return (self.image.shape[1], self.image.shape[0])


class CharucoFrameDetector:
    """
    Per-frame ChArUco detector.

    Runs marker detection, the optional refind strategy and corner
    interpolation against a single board.
    """

    def __init__(
        self,
        board: cv2.aruco.CharucoBoard,
        detector_params: Optional[cv2.aruco.DetectorParameters] = None,
        refind_strategy: bool = False
    ):
        """
        Initialize the detector.

        Args:
            board: ChArUco board to look for
            detector_params: Marker detector parameters (OpenCV defaults if None)
            refind_strategy: Try to recover missed markers using the board layout
        """
        self.board = board
        self.refind_strategy = refind_strategy

        self.aruco_dict = board.getDictionary()
        if detector_params is not None:
            self.aruco_params = detector_params
        else:
            self.aruco_params = cv2.aruco.DetectorParameters()

        self.detector = cv2.aruco.ArucoDetector(
            self.aruco_dict, self.aruco_params
        )
        self.charuco_detector = cv2.aruco.CharucoDetector(
            board, cv2.aruco.CharucoParameters(), self.aruco_params
        )

    def detect(self, frame: np.ndarray) -> FrameDetection:
        """
        Detect markers and interpolate board corners.

        Args:
            frame: Input image (BGR or grayscale)

        Returns:
            FrameDetection for the frame
        """
        corners, ids, rejected = self.detector.detectMarkers(frame)

        if self.refind_strategy and ids is not None and len(ids) > 0:
            corners, ids, rejected, _ = self.detector.refineDetectedMarkers(
                frame, self.board, corners, ids, rejected
            )

        detection = FrameDetection(
            image=frame,
            marker_corners=list(corners) if ids is not None else [],
            marker_ids=(
                ids.reshape(-1, 1).astype(np.int32)
                if ids is not None else empty_ids()
            ),
            rejected=list(rejected) if rejected is not None else []
        )

        if detection.has_markers:
            detection.charuco_corners, detection.charuco_ids = \
                self._interpolate(self.charuco_detector, detection)

        logger.debug(
            f"Detected {detection.num_markers} markers, "
            f"{detection.num_corners} corners"
        )
        return detection

    def interpolate_corners(
        self,
        detection: FrameDetection,
        camera_matrix: np.ndarray,
        dist_coeffs: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Re-interpolate board corners from stored markers using a camera estimate.

        Args:
            detection: Frame with detected markers
            camera_matrix: 3x3 camera intrinsic matrix
            dist_coeffs: Distortion coefficients

        Returns:
            Tuple of (charuco_corners, charuco_ids), empty if nothing found
        """
        if not detection.has_markers:
            return empty_corners(), empty_ids()

        charuco_params = cv2.aruco.CharucoParameters()
        charuco_params.cameraMatrix = camera_matrix
        charuco_params.distCoeffs = dist_coeffs
        charuco_detector = cv2.aruco.CharucoDetector(
            self.board, charuco_params, self.aruco_params
        )
        return self._interpolate(charuco_detector, detection)

    @staticmethod
    def _interpolate(
        charuco_detector: cv2.aruco.CharucoDetector,
        detection: FrameDetection
    ) -> Tuple[np.ndarray, np.ndarray]:
        # Passing markers in skips a second marker detection pass
        charuco_corners, charuco_ids, _, _ = charuco_detector.detectBoard(
            detection.image,
            markerCorners=list(detection.marker_corners),
            markerIds=detection.marker_ids
        )

        if charuco_corners is None or charuco_ids is None or len(charuco_ids) == 0:
            return empty_corners(), empty_ids()

        return (
            charuco_corners.reshape(-1, 1, 2).astype(np.float32),
            charuco_ids.reshape(-1, 1).astype(np.int32)
        )

    @staticmethod
    def draw_detection(
        frame: np.ndarray,
        detection: FrameDetection
    ) -> np.ndarray:
        """
        Draw detected markers and board corners on a copy of the frame.

        Args:
            frame: Input frame
            detection: Detection to draw

        Returns:
            BGR frame with drawings
        """
        if frame.ndim == 2:
            output = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        else:
            output = frame.copy()

        if detection.has_markers:
            cv2.aruco.drawDetectedMarkers(output, detection.marker_corners)

        if detection.num_corners > 0:
            cv2.aruco.drawDetectedCornersCharuco(
                output, detection.charuco_corners, detection.charuco_ids
            )

        return output
