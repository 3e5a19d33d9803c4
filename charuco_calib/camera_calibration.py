"""
Camera Calibration Module

Provides camera intrinsic calibration from ChArUco board detections.
Runs a marker-only calibration first, then re-interpolates the board
corners with that estimate and solves again on the ChArUco corners.
"""

import cv2
import numpy as np
import time
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging

from .board import CharucoBoardConfig, top_right_corner_index
from .detection import CharucoFrameDetector, FrameDetection
from .yaml_io import load_yaml_document

logger = logging.getLogger(__name__)

MIN_MARKER_FRAMES = 1
MIN_CHARUCO_FRAMES = 4
MIN_CORNERS_PER_FRAME = 4

# Flag bits reported in the output file, in report order
FLAG_NAMES = (
    (cv2.CALIB_USE_INTRINSIC_GUESS, "+use_intrinsic_guess"),
    (cv2.CALIB_FIX_ASPECT_RATIO, "+fix_aspectRatio"),
    (cv2.CALIB_FIX_PRINCIPAL_POINT, "+fix_principal_point"),
    (cv2.CALIB_ZERO_TANGENT_DIST, "+zero_tangent_dist"),
)


class CalibrationError(RuntimeError):
    """Not enough data to calibrate."""


def flags_description(flags: int) -> str:
    """Human readable summary of calibration flags ("" when none are set)."""
    if flags == 0:
        return ""
    return "flags: " + "".join(name for bit, name in FLAG_NAMES if flags & bit)


@dataclass
class CalibrationResult:
    """Output of a two-phase ChArUco calibration."""

    camera_matrix: np.ndarray
    dist_coeffs: np.ndarray
    reprojection_error: float
    aruco_reprojection_error: float
    image_size: Tuple[int, int]
    flags: int = 0
    aspect_ratio: float = 1.0
    num_frames: int = 0
    rvecs: List[np.ndarray] = field(default_factory=list)
    tvecs: List[np.ndarray] = field(default_factory=list)


def _same_corner_set(charuco_ids: Sequence[np.ndarray]) -> bool:
    first = np.asarray(charuco_ids[0]).flatten()
    return all(
        np.array_equal(np.asarray(ids).flatten(), first)
        for ids in charuco_ids[1:]
    )


def calibrate_camera_charuco(
    charuco_corners: Sequence[np.ndarray],
    charuco_ids: Sequence[np.ndarray],
    board: cv2.aruco.CharucoBoard,
    image_size: Tuple[int, int],
    camera_matrix: Optional[np.ndarray],
    dist_coeffs: Optional[np.ndarray],
    flags: int = 0,
    fixed_point: int = -1
):
    """
    Calibrate a camera from interpolated ChArUco corners.

    Builds the object points of every detected corner from the board layout
    and hands them to cv2.calibrateCameraRO. Object point release around
    ``fixed_point`` is only used when all frames saw the same corners and no
    intrinsic guess is given; otherwise the standard method runs.

    Args:
        charuco_corners: Per-frame Mx1x2 corner positions
        charuco_ids: Per-frame Mx1 board corner ids
        board: ChArUco board the corners belong to
        image_size: (width, height)
        camera_matrix: Initial 3x3 camera matrix or None
        dist_coeffs: Initial distortion coefficients or None
        flags: OpenCV calibration flags
        fixed_point: Index of the fixed object point for release

    Returns:
        Tuple of (rms_error, camera_matrix, dist_coeffs, rvecs, tvecs)
    """
    if len(charuco_ids) == 0 or len(charuco_ids) != len(charuco_corners):
        raise ValueError(
            f"Need matching non-empty corner and id lists, got "
            f"{len(charuco_corners)} corner sets and {len(charuco_ids)} id sets"
        )

    chessboard_corners = np.asarray(board.getChessboardCorners(), dtype=np.float32)

    obj_points: List[np.ndarray] = []
    img_points: List[np.ndarray] = []
    for corners, ids in zip(charuco_corners, charuco_ids):
        ids = np.asarray(ids).flatten()
        corners = np.asarray(corners, dtype=np.float32).reshape(-1, 2)

        if len(ids) == 0 or len(ids) != len(corners):
            raise ValueError(
                f"Frame has {len(corners)} corners and {len(ids)} ids"
            )
        if ids.min() < 0 or ids.max() >= len(chessboard_corners):
            raise ValueError(
                f"Corner id out of range 0..{len(chessboard_corners) - 1}"
            )

        obj_points.append(chessboard_corners[ids])
        img_points.append(corners)

    for i, points in enumerate(obj_points):
        logger.debug(f"Frame {i}: {len(points)} object points")

    # Release needs identical views and no intrinsic guess
    if not _same_corner_set(charuco_ids) or flags & cv2.CALIB_USE_INTRINSIC_GUESS:
        fixed_point = -1

    if camera_matrix is not None:
        camera_matrix = np.array(camera_matrix, dtype=np.float64)
    if dist_coeffs is not None:
        dist_coeffs = np.array(dist_coeffs, dtype=np.float64)

    ret, mtx, dist, rvecs, tvecs, _ = cv2.calibrateCameraRO(
        obj_points,
        img_points,
        image_size,
        fixed_point,
        camera_matrix,
        dist_coeffs,
        flags=flags
    )
    return ret, mtx, dist, rvecs, tvecs


class CharucoCalibration:
    """Accumulates ChArUco frames and runs the two-phase calibration."""

    def __init__(
        self,
        board: cv2.aruco.CharucoBoard,
        config: CharucoBoardConfig,
        flags: int = 0,
        aspect_ratio: float = 1.0,
        initial_camera_matrix: Optional[np.ndarray] = None,
        initial_dist_coeffs: Optional[np.ndarray] = None
    ):
        """
        Initialize calibration handler.

        Args:
            board: ChArUco board
            config: Board layout the board was built from
            flags: OpenCV calibration flags
            aspect_ratio: fx/fy used when CALIB_FIX_ASPECT_RATIO is set
            initial_camera_matrix: Prior camera matrix (intrinsic guess)
            initial_dist_coeffs: Prior distortion coefficients
        """
        self.board = board
        self.config = config
        self.flags = flags
        self.aspect_ratio = aspect_ratio
        self.initial_camera_matrix = initial_camera_matrix
        self.initial_dist_coeffs = initial_dist_coeffs

        # Marker id -> 4x3 object corners
        self._marker_points = {
            int(marker_id): np.asarray(points, dtype=np.float32).reshape(4, 3)
            for marker_id, points in zip(
                np.asarray(board.getIds()).flatten(), board.getObjPoints()
            )
        }

        # Storage for captured frames
        self.frames: List[FrameDetection] = []
        self.image_size: Optional[Tuple[int, int]] = None

        # Second pass corners, parallel to self.frames
        self.charuco_corners: List[np.ndarray] = []
        self.charuco_ids: List[np.ndarray] = []

        # Calibration results
        self.camera_matrix: Optional[np.ndarray] = None
        self.dist_coeffs: Optional[np.ndarray] = None
        self.aruco_reprojection_error: float = -1.0
        self.reprojection_error: float = -1.0

    @property
    def num_frames(self) -> int:
        return len(self.frames)

    def add_frame(self, detection: FrameDetection) -> bool:
        """
        Add a detected frame to the calibration dataset.

        Args:
            detection: Frame detection

        Returns:
            True if the frame had markers and was added
        """
        if not detection.has_markers:
            logger.debug("Frame has no markers, not added")
            return False

        self.frames.append(detection)
        self.image_size = detection.image_size

        logger.info(
            f"Added calibration frame {len(self.frames)} "
            f"({detection.num_markers} markers)"
        )
        return True

    def _match_markers(
        self,
        detection: FrameDetection
    ) -> Tuple[np.ndarray, np.ndarray]:
        obj_points = []
        img_points = []
        for corners, marker_id in zip(
            detection.marker_corners, detection.marker_ids.flatten()
        ):
            points = self._marker_points.get(int(marker_id))
            if points is None:
                continue
            obj_points.append(points)
            img_points.append(np.asarray(corners, dtype=np.float32).reshape(4, 2))

        if not obj_points:
            return np.empty((0, 3), np.float32), np.empty((0, 2), np.float32)
        return np.concatenate(obj_points), np.concatenate(img_points)

    def _initial_guess(self) -> Tuple[np.ndarray, np.ndarray]:
        if self.initial_camera_matrix is not None:
            camera_matrix = np.array(self.initial_camera_matrix, dtype=np.float64)
        else:
            camera_matrix = np.eye(3, dtype=np.float64)
            if self.flags & cv2.CALIB_FIX_ASPECT_RATIO:
                camera_matrix[0, 0] = self.aspect_ratio

        if self.initial_dist_coeffs is not None:
            dist_coeffs = np.array(self.initial_dist_coeffs, dtype=np.float64).reshape(1, -1)
        else:
            dist_coeffs = np.zeros((1, 5), dtype=np.float64)

        return camera_matrix, dist_coeffs

    def calibrate_aruco(self) -> float:
        """
        Estimate the camera from marker corners only.

        Returns:
            Marker reprojection error in pixels
        """
        obj_points = []
        img_points = []
        for detection in self.frames:
            obj, img = self._match_markers(detection)
            if len(obj) > 0:
                obj_points.append(obj)
                img_points.append(img)

        if len(obj_points) < MIN_MARKER_FRAMES or self.image_size is None:
            raise CalibrationError("Not enough captures for calibration")

        camera_matrix, dist_coeffs = self._initial_guess()

        logger.info(f"Calibrating from markers in {len(obj_points)} frames...")

        ret, mtx, dist, _, _ = cv2.calibrateCamera(
            obj_points,
            img_points,
            self.image_size,
            camera_matrix,
            dist_coeffs,
            flags=self.flags
        )

        self.camera_matrix = mtx
        self.dist_coeffs = dist
        self.aruco_reprojection_error = float(ret)

        logger.info(f"Marker calibration error: {ret:.4f} pixels")
        return self.aruco_reprojection_error

    def interpolate_all(self, detector: CharucoFrameDetector):
        """Re-interpolate board corners of every frame with the current estimate."""
        if self.camera_matrix is None:
            raise CalibrationError("Marker calibration has not run")

        self.charuco_corners = []
        self.charuco_ids = []
        for detection in self.frames:
            corners, ids = detector.interpolate_corners(
                detection, self.camera_matrix, self.dist_coeffs
            )
            self.charuco_corners.append(corners)
            self.charuco_ids.append(ids)

    def calibrate_charuco(
        self,
        detector: CharucoFrameDetector
    ) -> Tuple[float, List[np.ndarray], List[np.ndarray], int]:
        """
        Calibrate from the interpolated ChArUco corners.

        Returns:
            Tuple of (reprojection_error, rvecs, tvecs, frames_used)
        """
        self.interpolate_all(detector)

        usable = [
            (corners, ids)
            for corners, ids in zip(self.charuco_corners, self.charuco_ids)
            if len(ids) >= MIN_CORNERS_PER_FRAME
        ]
        if len(usable) < MIN_CHARUCO_FRAMES:
            raise CalibrationError("Not enough corners for calibration")

        logger.info(f"Calibrating from ChArUco corners in {len(usable)} frames...")

        ret, mtx, dist, rvecs, tvecs = calibrate_camera_charuco(
            [corners for corners, _ in usable],
            [ids for _, ids in usable],
            self.board,
            self.image_size,
            self.camera_matrix,
            self.dist_coeffs,
            flags=self.flags,
            fixed_point=top_right_corner_index(self.config)
        )

        self.camera_matrix = mtx
        self.dist_coeffs = dist
        self.reprojection_error = float(ret)

        logger.info(
            f"ChArUco calibration error: {ret:.4f} pixels "
            f"({len(dist.flatten())} distortion coefficients)"
        )
        return self.reprojection_error, list(rvecs), list(tvecs), len(usable)

    def calibrate(self, detector: CharucoFrameDetector) -> CalibrationResult:
        """
        Run marker calibration followed by ChArUco calibration.

        Args:
            detector: Detector used to re-interpolate corners

        Returns:
            CalibrationResult
        """
        aruco_error = self.calibrate_aruco()
        error, rvecs, tvecs, frames_used = self.calibrate_charuco(detector)

        return CalibrationResult(
            camera_matrix=self.camera_matrix,
            dist_coeffs=self.dist_coeffs,
            reprojection_error=error,
            aruco_reprojection_error=aruco_error,
            image_size=self.image_size,
            flags=self.flags,
            aspect_ratio=self.aspect_ratio,
            num_frames=frames_used,
            rvecs=rvecs,
            tvecs=tvecs
        )

    def clear(self):
        """Clear all collected calibration data."""
        self.frames.clear()
        self.charuco_corners.clear()
        self.charuco_ids.clear()
        self.image_size = None
        self.camera_matrix = None
        self.dist_coeffs = None
        self.aruco_reprojection_error = -1.0
        self.reprojection_error = -1.0
        logger.info("Calibration data cleared")


def save_calibration(
    filepath: str,
    result: CalibrationResult,
    board_config: Optional[CharucoBoardConfig] = None
) -> bool:
    """
    Save calibration parameters to YAML file.

    Args:
        filepath: Output file path
        result: Calibration result
        board_config: Board layout to record alongside the result

    Returns:
        True if saved successfully
    """
    dist = np.asarray(result.dist_coeffs).flatten()

    data = {
        'calibration_time': time.strftime('%c'),
        'image_width': int(result.image_size[0]),
        'image_height': int(result.image_size[1]),
    }
    if result.flags & cv2.CALIB_FIX_ASPECT_RATIO:
        data['aspect_ratio'] = float(result.aspect_ratio)

    data['flags'] = int(result.flags)
    if result.flags != 0:
        data['flags_description'] = flags_description(result.flags)

    data.update({
        'camera_matrix': {
            'rows': 3,
            'cols': 3,
            'data': np.asarray(result.camera_matrix).flatten().tolist()
        },
        'distortion_coefficients': {
            'rows': 1,
            'cols': len(dist),
            'data': dist.tolist()
        },
        'avg_reprojection_error': float(result.reprojection_error),
        'aruco_reprojection_error': float(result.aruco_reprojection_error),
        'num_frames': int(result.num_frames),
    })
    if board_config is not None:
        data['charuco_board'] = board_config.to_dict()

    try:
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        logger.error(f"Cannot save output file {filepath}: {e}")
        return False

    logger.info(f"Calibration saved to {filepath}")
    return True


def load_calibration(
    filepath: str
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Load calibration parameters from YAML file.

    Args:
        filepath: Input file path

    Returns:
        Tuple of (camera_matrix, dist_coeffs) or (None, None) on error
    """
    try:
        data = load_yaml_document(filepath)

        # Accept both {rows, cols, data} blocks and bare lists
        cm_data = data['camera_matrix']
        if isinstance(cm_data, dict) and 'data' in cm_data:
            camera_matrix = np.array(cm_data['data'], dtype=np.float64).reshape(3, 3)
        else:
            camera_matrix = np.array(cm_data, dtype=np.float64).reshape(3, 3)

        dc_data = data['distortion_coefficients']
        if isinstance(dc_data, dict) and 'data' in dc_data:
            dist_coeffs = np.array(dc_data['data'], dtype=np.float64)
        else:
            dist_coeffs = np.array(dc_data, dtype=np.float64).flatten()

    except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Failed to load calibration: {e}")
        return None, None

    logger.info(f"Loaded calibration from {filepath}")
    return camera_matrix, dist_coeffs
