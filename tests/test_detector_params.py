import logging
from pathlib import Path

import cv2
import pytest

from charuco_calib.detector_params import (
    DETECTOR_PARAMETER_KEYS,
    load_detector_parameters,
)


def test_overrides_only_listed_keys(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text(
        "adaptiveThreshWinSizeMin: 5\n"
        "minMarkerPerimeterRate: 0.01\n"
        "cornerRefinementMethod: 1\n"
    )
    defaults = cv2.aruco.DetectorParameters()

    params = load_detector_parameters(str(path))

    assert params is not None
    assert params.adaptiveThreshWinSizeMin == 5
    assert params.minMarkerPerimeterRate == pytest.approx(0.01)
    assert params.cornerRefinementMethod == cv2.aruco.CORNER_REFINE_SUBPIX
    assert params.adaptiveThreshWinSizeMax == defaults.adaptiveThreshWinSizeMax
    assert params.errorCorrectionRate == pytest.approx(defaults.errorCorrectionRate)


def test_accepts_opencv_header(tmp_path):
    path = tmp_path / "params.yml"
    path.write_text("%YAML:1.0\n---\nmarkerBorderBits: 2\nminOtsuStdDev: 4.0\n")

    params = load_detector_parameters(str(path))

    assert params.markerBorderBits == 2
    assert params.minOtsuStdDev == pytest.approx(4.0)


def test_float_written_for_int_field_is_coerced(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("cornerRefinementWinSize: 7.0\n")

    params = load_detector_parameters(str(path))

    assert params.cornerRefinementWinSize == 7


def test_fractional_value_for_int_field_is_rejected(tmp_path, caplog):
    path = tmp_path / "params.yaml"
    path.write_text("minDistanceToBorder: 3.9\n")

    with caplog.at_level(logging.ERROR):
        assert load_detector_parameters(str(path)) is None
    assert "minDistanceToBorder" in caplog.text


def test_unknown_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "params.yaml"
    path.write_text("notAParameter: 3\nminDistanceToBorder: 1\n")

    with caplog.at_level(logging.WARNING):
        params = load_detector_parameters(str(path))

    assert params.minDistanceToBorder == 1
    assert "notAParameter" in caplog.text


def test_shipped_sample_file_loads():
    sample = Path(__file__).parent.parent / "config" / "detector_params.yaml"
    params = load_detector_parameters(str(sample))
    assert params is not None
    assert params.perspectiveRemoveIgnoredMarginPerCell == pytest.approx(0.13)


@pytest.mark.parametrize("content", [
    "- just\n- a list\n",
    "adaptiveThreshWinSizeMin: many\n",
    "key: [unclosed\n",
])
def test_invalid_files(tmp_path, content):
    path = tmp_path / "params.yaml"
    path.write_text(content)
    assert load_detector_parameters(str(path)) is None


def test_missing_file(tmp_path):
    assert load_detector_parameters(str(tmp_path / "absent.yaml")) is None


def test_known_keys_exist_on_detector_parameters():
    params = cv2.aruco.DetectorParameters()
    for key in DETECTOR_PARAMETER_KEYS:
        assert hasattr(params, key)
