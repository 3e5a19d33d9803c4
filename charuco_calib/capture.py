"""
Frame acquisition and preview windows.

Drives a camera or video stream interactively, walks an image list, and
shows the interpolated corners once calibration is done.
"""

import cv2
import numpy as np
from typing import List, Tuple, Union
import logging

from .camera_calibration import CalibrationResult, CharucoCalibration
from .detection import CharucoFrameDetector, FrameDetection

logger = logging.getLogger(__name__)

WINDOW_NAME = "out"
REVIEW_SIZE = (1280, 960)
KEY_ESC = 27
CAMERA_WAIT_MS = 10
VIDEO_WAIT_MS = 0

TEXT_COLOR = (255, 0, 0)


def open_video_source(
    video: str = "",
    camera_id: int = 0
) -> Tuple[cv2.VideoCapture, int]:
    """
    Open a video file or a camera.

    Args:
        video: Video file path (camera is used when empty)
        camera_id: Camera device ID

    Returns:
        Tuple of (capture, wait_ms); wait_ms is 0 for video so each frame waits for a key
    """
    source: Union[str, int]
    if video:
        print(f"Reading from video file {video}")
        source = video
        wait_ms = VIDEO_WAIT_MS
    else:
        print(f"Connecting to cam nr {camera_id}")
        source = camera_id
        wait_ms = CAMERA_WAIT_MS

    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        cap.release()
        raise IOError(f"Failed to open video source {source}")

    return cap, wait_ms


def _put_lines(image: np.ndarray, lines: List[str], scale: float = 1.0):
    y = 30
    for line in lines:
        cv2.putText(
            image, line, (10, y),
            cv2.FONT_HERSHEY_SIMPLEX, scale, TEXT_COLOR, 2
        )
        y += 35


def run_interactive_capture(
    cap: cv2.VideoCapture,
    detector: CharucoFrameDetector,
    calibration: CharucoCalibration,
    wait_ms: int = CAMERA_WAIT_MS,
    test_run: bool = False
) -> int:
    """
    Show live detections and capture frames on key press.

    Controls:
        c   - Capture current frame (needs detected markers)
        ESC - Finish capturing

    Returns:
        Number of captured frames
    """
    captured = 0
    try:
        while cap.grab():
            ret, image = cap.retrieve()
            if not ret:
                continue

            detection = detector.detect(image)
            display = detector.draw_detection(image, detection)
            cv2.putText(
                display,
                "Press 'c' to add current frame. 'ESC' to finish and calibrate",
                (10, 20), cv2.FONT_HERSHEY_SIMPLEX, 0.5, TEXT_COLOR, 2
            )

            cv2.imshow(WINDOW_NAME, display)
            key = cv2.waitKey(wait_ms) & 0xFF

            if key == KEY_ESC:
                break
            if key == ord('c') and not test_run:
                if calibration.add_frame(detection):
                    captured += 1
                    print("Frame captured")
    finally:
        cap.release()
        cv2.destroyAllWindows()

    return captured


def _show_test_frame(
    image_name: str,
    detector: CharucoFrameDetector,
    detection: FrameDetection
) -> bool:
    display = detector.draw_detection(detection.image, detection)
    display = cv2.resize(display, REVIEW_SIZE)
    _put_lines(display, [
        image_name,
        "Did your aruco markers get detected?",
        "Press any key to go to next image.",
        "Press ESC to stop this test",
    ])
    cv2.imshow(WINDOW_NAME, display)
    return (cv2.waitKey(0) & 0xFF) != KEY_ESC


def run_image_list(
    image_paths: List[str],
    detector: CharucoFrameDetector,
    calibration: CharucoCalibration,
    test_run: bool = False
) -> int:
    """
    Detect the board in each listed image.

    In a test run each image is shown with its detections and nothing is
    stored; otherwise every image with markers is added to the calibration.

    Returns:
        Number of frames added
    """
    added = 0
    try:
        for image_name in image_paths:
            image = cv2.imread(image_name, cv2.IMREAD_COLOR)
            if image is None:
                logger.warning(f"Could not read image {image_name}, skipping")
                continue

            detection = detector.detect(image)
            logger.info(
                f"Using image {image_name} found "
                f"{detection.num_markers} aruco tags"
            )

            if test_run:
                if not _show_test_frame(image_name, detector, detection):
                    break
                continue

            if calibration.add_frame(detection):
                added += 1
    finally:
        if test_run:
            cv2.destroyAllWindows()

    return added


def show_corners(
    calibration: CharucoCalibration,
    result: CalibrationResult
):
    """
    Show each frame undistorted with its interpolated corners.

    Any key advances, ESC stops.
    """
    try:
        for detection, corners, ids in zip(
            calibration.frames,
            calibration.charuco_corners,
            calibration.charuco_ids
        ):
            display = detection.image.copy()
            if len(ids) > 0:
                cv2.aruco.drawDetectedCornersCharuco(display, corners, ids)

            display = cv2.undistort(
                display, result.camera_matrix, result.dist_coeffs
            )
            display = cv2.resize(display, REVIEW_SIZE)
            _put_lines(display, [
                "",
                "Did the edges get straight?",
                "Press any key to go to next image.",
                "Press ESC to exit",
            ])
            cv2.imshow(WINDOW_NAME, display)
            if (cv2.waitKey(0) & 0xFF) == KEY_ESC:
                break
    finally:
        cv2.destroyAllWindows()
