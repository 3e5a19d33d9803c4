import dataclasses

import cv2
import numpy as np
import pytest
import yaml

from charuco_calib.camera_calibration import (
    CalibrationError,
    CalibrationResult,
    CharucoCalibration,
    MIN_CHARUCO_FRAMES,
    MIN_CORNERS_PER_FRAME,
    calibrate_camera_charuco,
    flags_description,
    load_calibration,
    save_calibration,
)
from charuco_calib.detection import CharucoFrameDetector, empty_corners, empty_ids

from conftest import CAMERA_MATRIX, IMAGE_SIZE, POSES, board_pose


def projected_views(board, board_config, drop_from_first=0):
    """Exact corner projections for every test pose."""
    object_points = np.asarray(board.getChessboardCorners())
    all_ids = np.arange(len(object_points), dtype=np.int32).reshape(-1, 1)

    corners, ids = [], []
    for i, (rvec, distance) in enumerate(POSES):
        rvec, tvec = board_pose(board_config, rvec, distance)
        points, _ = cv2.projectPoints(
            object_points, rvec, tvec, CAMERA_MATRIX, np.zeros(5)
        )
        frame_ids = all_ids
        if i == 0 and drop_from_first:
            points = points[drop_from_first:]
            frame_ids = all_ids[drop_from_first:]
        corners.append(points.astype(np.float32))
        ids.append(frame_ids)
    return corners, ids


def test_intrinsic_guess_skips_object_release(board, board_config):
    corners, ids = projected_views(board, board_config)
    guess = CAMERA_MATRIX.copy()
    guess[0, 0] *= 1.05
    guess[1, 1] *= 0.95
    guess[:2, 2] += 8.0

    ret, mtx, _, _, _ = calibrate_camera_charuco(
        corners, ids, board, IMAGE_SIZE, guess, np.zeros((1, 5)),
        flags=cv2.CALIB_USE_INTRINSIC_GUESS,
        fixed_point=3
    )

    assert ret < 0.05
    np.testing.assert_allclose(mtx, CAMERA_MATRIX, rtol=0.01, atol=2.0)


@pytest.mark.parametrize("drop", [0, 5])
def test_calibrate_camera_charuco_recovers_intrinsics(board, board_config, drop):
    corners, ids = projected_views(board, board_config, drop_from_first=drop)

    ret, mtx, dist, rvecs, tvecs = calibrate_camera_charuco(
        corners, ids, board, IMAGE_SIZE, None, None,
        flags=cv2.CALIB_ZERO_TANGENT_DIST,
        fixed_point=3
    )

    assert ret < 0.05
    np.testing.assert_allclose(mtx, CAMERA_MATRIX, rtol=0.01, atol=2.0)
    assert len(rvecs) == len(tvecs) == len(POSES)


def test_calibrate_camera_charuco_rejects_mismatched_input(board):
    corners = [np.zeros((4, 1, 2), np.float32)]
    with pytest.raises(ValueError):
        calibrate_camera_charuco([], [], board, IMAGE_SIZE, None, None)
    with pytest.raises(ValueError):
        calibrate_camera_charuco(corners, [], board, IMAGE_SIZE, None, None)
    with pytest.raises(ValueError):
        calibrate_camera_charuco(
            corners, [np.arange(3).reshape(-1, 1)], board, IMAGE_SIZE, None, None
        )


def test_calibrate_camera_charuco_rejects_out_of_range_id(board):
    corners = [np.zeros((4, 1, 2), np.float32)]
    ids = [np.array([[0], [1], [2], [24]], dtype=np.int32)]
    with pytest.raises(ValueError):
        calibrate_camera_charuco(corners, ids, board, IMAGE_SIZE, None, None)


def make_calibration(board, board_config, **kwargs):
    return CharucoCalibration(board, board_config, **kwargs)


def test_add_frame_requires_markers(board, board_config):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(board, board_config)

    blank = detector.detect(np.full((480, 640, 3), 255, dtype=np.uint8))

    assert not calibration.add_frame(blank)
    assert calibration.num_frames == 0
    assert calibration.image_size is None


def test_no_frames_is_not_enough(board, board_config):
    calibration = make_calibration(board, board_config)
    with pytest.raises(CalibrationError, match="Not enough captures"):
        calibration.calibrate(CharucoFrameDetector(board))


def test_too_few_frames_for_charuco(board, board_config, rendered_views):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(board, board_config)
    for image, _, _ in rendered_views[:MIN_CHARUCO_FRAMES - 1]:
        assert calibration.add_frame(detector.detect(image))

    with pytest.raises(CalibrationError, match="Not enough corners"):
        calibration.calibrate(detector)

    # Marker phase still produced an estimate
    assert calibration.camera_matrix is not None
    assert calibration.aruco_reprojection_error >= 0


def test_two_phase_calibration(board, board_config, rendered_views):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(board, board_config)
    for image, _, _ in rendered_views:
        calibration.add_frame(detector.detect(image))

    result = calibration.calibrate(detector)

    assert result.image_size == IMAGE_SIZE
    assert result.num_frames == len(rendered_views)
    assert result.reprojection_error < 1.0
    assert result.camera_matrix[0, 0] == pytest.approx(900.0, rel=0.05)
    assert result.camera_matrix[1, 1] == pytest.approx(900.0, rel=0.05)
    assert len(calibration.charuco_corners) == calibration.num_frames
    assert len(result.rvecs) == result.num_frames


def single_marker(detection):
    """The same frame with every marker but the first one removed."""
    return dataclasses.replace(
        detection,
        marker_corners=list(detection.marker_corners[:1]),
        marker_ids=detection.marker_ids[:1],
        charuco_corners=empty_corners(),
        charuco_ids=empty_ids()
    )


def test_frames_with_few_corners_are_dropped(board, board_config, rendered_views):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(board, board_config)
    for image, _, _ in rendered_views:
        calibration.add_frame(detector.detect(image))
    assert calibration.add_frame(single_marker(detector.detect(rendered_views[0][0])))

    result = calibration.calibrate(detector)

    assert calibration.num_frames == len(rendered_views) + 1
    assert len(calibration.charuco_ids[-1]) < MIN_CORNERS_PER_FRAME
    assert result.num_frames == len(rendered_views)
    assert len(result.rvecs) == len(rendered_views)


def test_dropped_frames_count_against_threshold(board, board_config, rendered_views):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(board, board_config)
    for image, _, _ in rendered_views[:MIN_CHARUCO_FRAMES - 1]:
        calibration.add_frame(detector.detect(image))
    calibration.add_frame(single_marker(detector.detect(rendered_views[3][0])))
    assert calibration.num_frames == MIN_CHARUCO_FRAMES

    with pytest.raises(CalibrationError, match="Not enough corners"):
        calibration.calibrate(detector)


@pytest.mark.parametrize("aspect_ratio", [1.0, 1.25])
def test_fixed_aspect_ratio_is_kept(board, board_config, rendered_views, aspect_ratio):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(
        board, board_config,
        flags=cv2.CALIB_FIX_ASPECT_RATIO,
        aspect_ratio=aspect_ratio
    )
    for image, _, _ in rendered_views:
        calibration.add_frame(detector.detect(image))

    result = calibration.calibrate(detector)

    fx, fy = result.camera_matrix[0, 0], result.camera_matrix[1, 1]
    assert fx / fy == pytest.approx(aspect_ratio, abs=1e-6)
    assert result.aspect_ratio == aspect_ratio


def test_clear(board, board_config, rendered_views):
    detector = CharucoFrameDetector(board)
    calibration = make_calibration(board, board_config)
    calibration.add_frame(detector.detect(rendered_views[0][0]))

    calibration.clear()

    assert calibration.num_frames == 0
    assert calibration.image_size is None
    assert calibration.camera_matrix is None


def test_flags_description():
    assert flags_description(0) == ""
    assert flags_description(cv2.CALIB_FIX_ASPECT_RATIO) == "flags: +fix_aspectRatio"
    assert flags_description(
        cv2.CALIB_ZERO_TANGENT_DIST
        | cv2.CALIB_FIX_PRINCIPAL_POINT
        | cv2.CALIB_USE_INTRINSIC_GUESS
    ) == "flags: +use_intrinsic_guess+fix_principal_point+zero_tangent_dist"


def make_result(flags=0, aspect_ratio=1.0):
    return CalibrationResult(
        camera_matrix=CAMERA_MATRIX.copy(),
        dist_coeffs=np.array([[0.1, -0.05, 0.001, 0.002, 0.0]]),
        reprojection_error=0.31,
        aruco_reprojection_error=0.87,
        image_size=IMAGE_SIZE,
        flags=flags,
        aspect_ratio=aspect_ratio,
        num_frames=12
    )


def test_save_and_load(tmp_path, board_config):
    path = tmp_path / "out" / "camera.yaml"

    assert save_calibration(str(path), make_result(), board_config)

    data = yaml.safe_load(path.read_text())
    assert data['image_width'] == 800
    assert data['image_height'] == 600
    assert data['flags'] == 0
    assert 'flags_description' not in data
    assert 'aspect_ratio' not in data
    assert data['avg_reprojection_error'] == pytest.approx(0.31)
    assert data['aruco_reprojection_error'] == pytest.approx(0.87)
    assert data['num_frames'] == 12
    assert data['charuco_board']['dictionary'] == "DICT_4X4_50"
    assert data['calibration_time']

    camera_matrix, dist_coeffs = load_calibration(str(path))
    np.testing.assert_allclose(camera_matrix, CAMERA_MATRIX)
    np.testing.assert_allclose(dist_coeffs, [0.1, -0.05, 0.001, 0.002, 0.0])


def test_save_records_flags_and_aspect_ratio(tmp_path):
    path = tmp_path / "camera.yaml"
    flags = cv2.CALIB_FIX_ASPECT_RATIO | cv2.CALIB_ZERO_TANGENT_DIST

    assert save_calibration(str(path), make_result(flags, aspect_ratio=1.25))

    data = yaml.safe_load(path.read_text())
    assert data['aspect_ratio'] == pytest.approx(1.25)
    assert data['flags'] == flags
    assert data['flags_description'] == "flags: +fix_aspectRatio+zero_tangent_dist"
    assert 'charuco_board' not in data


def test_save_to_unwritable_path(tmp_path):
    blocker = tmp_path / "file.txt"
    blocker.write_text("not a directory")

    assert not save_calibration(str(blocker / "camera.yaml"), make_result())


def test_load_bare_list_format(tmp_path):
    path = tmp_path / "camera.yaml"
    path.write_text(
        "camera_matrix: [[500, 0, 320], [0, 500, 240], [0, 0, 1]]\n"
        "distortion_coefficients: [0.0, 0.0, 0.0, 0.0, 0.0]\n"
    )

    camera_matrix, dist_coeffs = load_calibration(str(path))

    assert camera_matrix[0, 0] == 500
    assert dist_coeffs.shape == (5,)


def test_load_invalid(tmp_path):
    path = tmp_path / "camera.yaml"
    path.write_text("image_width: 640\n")

    assert load_calibration(str(path)) == (None, None)
    assert load_calibration(str(tmp_path / "missing.yaml")) == (None, None)
