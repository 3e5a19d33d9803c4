"""
Shared fixtures: a small ChArUco board rendered through a known pinhole
camera, so detection and calibration run without a camera or display.
"""

import cv2
import numpy as np
import pytest

from charuco_calib.board import CharucoBoardConfig, create_board, generate_board_image

IMAGE_SIZE = (800, 600)
CAMERA_MATRIX = np.array([
    [900.0, 0.0, 400.0],
    [0.0, 900.0, 300.0],
    [0.0, 0.0, 1.0]
])
PIXELS_PER_SQUARE = 120

# (rvec, distance) pairs; the board centre stays on the optical axis
POSES = [
    ((0.0, 0.0, 0.0), 0.50),
    ((0.35, 0.0, 0.0), 0.52),
    ((-0.35, 0.0, 0.0), 0.52),
    ((0.0, 0.35, 0.0), 0.52),
    ((0.0, -0.35, 0.0), 0.52),
    ((0.25, 0.25, 0.15), 0.55),
]


def make_config() -> CharucoBoardConfig:
    return CharucoBoardConfig(
        squares_x=5,
        squares_y=7,
        square_length=0.03,
        marker_length=0.0225,
        dictionary="DICT_4X4_50"
    )


def board_pose(config: CharucoBoardConfig, rvec, distance):
    """Pose placing the board centre `distance` meters in front of the camera."""
    rvec = np.array(rvec, dtype=np.float64).reshape(3, 1)
    rmat, _ = cv2.Rodrigues(rvec)
    centre = np.array([
        config.squares_x * config.square_length / 2,
        config.squares_y * config.square_length / 2,
        0.0
    ])
    tvec = np.array([0.0, 0.0, distance]) - rmat @ centre
    return rvec, tvec.reshape(3, 1)


def render_view(board_image, config, rvec, tvec, camera_matrix=CAMERA_MATRIX):
    """Warp the flat board image as a pinhole camera would see it."""
    rmat, _ = cv2.Rodrigues(rvec)
    scale = PIXELS_PER_SQUARE / config.square_length  # board pixels per meter

    # Board pixel centres sit at (u + 0.5) / scale meters
    board_to_pixels = np.array([
        [scale, 0.0, -0.5],
        [0.0, scale, -0.5],
        [0.0, 0.0, 1.0]
    ])
    homography = (
        camera_matrix
        @ np.column_stack([rmat[:, 0], rmat[:, 1], tvec.flatten()])
        @ np.linalg.inv(board_to_pixels)
    )
    view = cv2.warpPerspective(
        board_image, homography, IMAGE_SIZE,
        flags=cv2.INTER_LINEAR, borderValue=255
    )
    return cv2.cvtColor(view, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def board_config():
    return make_config()


@pytest.fixture
def board(board_config):
    return create_board(board_config)


@pytest.fixture(scope="session")
def rendered_views():
    """List of (image, rvec, tvec) for every pose."""
    config = make_config()
    board_image = generate_board_image(config, PIXELS_PER_SQUARE)
    views = []
    for rvec, distance in POSES:
        rvec, tvec = board_pose(config, rvec, distance)
        views.append((render_view(board_image, config, rvec, tvec), rvec, tvec))
    return views


@pytest.fixture
def image_dir(tmp_path, rendered_views):
    """Rendered views written to disk with a YAML image list beside them."""
    names = []
    for i, (image, _, _) in enumerate(rendered_views):
        name = f"view_{i:02d}.png"
        cv2.imwrite(str(tmp_path / name), image)
        names.append(name)

    list_path = tmp_path / "images.yaml"
    list_path.write_text("images:\n" + "".join(f"  - {n}\n" for n in names))
    return tmp_path


@pytest.fixture
def no_gui(monkeypatch):
    """Replace the HighGUI calls; records shown window titles."""
    shown = []
    monkeypatch.setattr(cv2, "imshow", lambda name, image: shown.append(name))
    monkeypatch.setattr(cv2, "waitKey", lambda delay=0: ord(' '))
    monkeypatch.setattr(cv2, "destroyAllWindows", lambda: None)
    return shown
