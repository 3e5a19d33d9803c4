"""
ChArUco Board Module

Dictionary lookup, board geometry and board construction helpers shared by
the calibration tool and the board generator.
"""

import cv2
import numpy as np
from dataclasses import dataclass
from typing import Union
import logging

logger = logging.getLogger(__name__)

# ArUco dictionary mapping (order matches the legacy integer ids 0..16)
ARUCO_DICTIONARIES = {
    "DICT_4X4_50": cv2.aruco.DICT_4X4_50,
    "DICT_4X4_100": cv2.aruco.DICT_4X4_100,
    "DICT_4X4_250": cv2.aruco.DICT_4X4_250,
    "DICT_4X4_1000": cv2.aruco.DICT_4X4_1000,
    "DICT_5X5_50": cv2.aruco.DICT_5X5_50,
    "DICT_5X5_100": cv2.aruco.DICT_5X5_100,
    "DICT_5X5_250": cv2.aruco.DICT_5X5_250,
    "DICT_5X5_1000": cv2.aruco.DICT_5X5_1000,
    "DICT_6X6_50": cv2.aruco.DICT_6X6_50,
    "DICT_6X6_100": cv2.aruco.DICT_6X6_100,
    "DICT_6X6_250": cv2.aruco.DICT_6X6_250,
    "DICT_6X6_1000": cv2.aruco.DICT_6X6_1000,
    "DICT_7X7_50": cv2.aruco.DICT_7X7_50,
    "DICT_7X7_100": cv2.aruco.DICT_7X7_100,
    "DICT_7X7_250": cv2.aruco.DICT_7X7_250,
    "DICT_7X7_1000": cv2.aruco.DICT_7X7_1000,
    "DICT_ARUCO_ORIGINAL": cv2.aruco.DICT_ARUCO_ORIGINAL,
}

DICTIONARY_NAMES = list(ARUCO_DICTIONARIES.keys())


def resolve_dictionary(value: Union[str, int]) -> str:
    """
    Resolve a dictionary given by name or by its legacy integer index.

    Args:
        value: Dictionary name (e.g. "DICT_6X6_250") or index 0..16

    Returns:
        Canonical dictionary name
    """
    if isinstance(value, str):
        name = value.strip()
        if name.upper() in ARUCO_DICTIONARIES:
            return name.upper()
        if not name.isdigit():
            raise ValueError(f"Unknown dictionary: {value}")
        value = int(name)

    if isinstance(value, int) and 0 <= value < len(DICTIONARY_NAMES):
        return DICTIONARY_NAMES[value]

    raise ValueError(
        f"Unknown dictionary: {value} "
        f"(use a name or an index 0..{len(DICTIONARY_NAMES) - 1})"
    )


@dataclass
class CharucoBoardConfig:
    """Physical layout of a ChArUco board."""

    squares_x: int
    squares_y: int
    square_length: float          # Square side in meters
    marker_length: float          # Marker side in meters
    dictionary: str = "DICT_6X6_250"
    legacy_pattern: bool = False  # Pre-4.6 OpenCV layout for even squares_y

    def validate(self):
        """Raise ValueError if the geometry cannot describe a board."""
        if self.squares_x < 2 or self.squares_y < 2:
            raise ValueError(
                f"Board needs at least 2x2 squares, "
                f"got {self.squares_x}x{self.squares_y}"
            )
        if self.square_length <= 0 or self.marker_length <= 0:
            raise ValueError("Square and marker lengths must be positive")
        if self.marker_length >= self.square_length:
            raise ValueError(
                f"Marker length ({self.marker_length}) must be smaller "
                f"than square length ({self.square_length})"
            )
        self.dictionary = resolve_dictionary(self.dictionary)

    @property
    def num_markers(self) -> int:
        """Markers sit on every other square."""
        return (self.squares_x * self.squares_y) // 2

    @property
    def num_corners(self) -> int:
        """Inner chessboard corners."""
        return (self.squares_x - 1) * (self.squares_y - 1)

    def to_dict(self) -> dict:
        return {
            'squares_x': self.squares_x,
            'squares_y': self.squares_y,
            'square_length': self.square_length,
            'marker_length': self.marker_length,
            'dictionary': self.dictionary,
            'legacy_pattern': self.legacy_pattern,
        }


def get_dictionary(name: str) -> cv2.aruco.Dictionary:
    """Get the predefined OpenCV dictionary for a name or index."""
    return cv2.aruco.getPredefinedDictionary(
        ARUCO_DICTIONARIES[resolve_dictionary(name)]
    )


def create_board(config: CharucoBoardConfig) -> cv2.aruco.CharucoBoard:
    """
    Build an OpenCV ChArUco board from its configuration.

    Marker IDs start from 0 and fill the white squares in order. With
    ``legacy_pattern`` the board matches boards printed by OpenCV before 4.6,
    which differ when squares_y is even.
    """
    config.validate()

    aruco_dict = get_dictionary(config.dictionary)
    ids = np.arange(config.num_markers, dtype=np.int32)

    board = cv2.aruco.CharucoBoard(
        (config.squares_x, config.squares_y),
        config.square_length,
        config.marker_length,
        aruco_dict,
        ids
    )
    board.setLegacyPattern(config.legacy_pattern)

    logger.debug(
        f"Created {config.squares_x}x{config.squares_y} ChArUco board "
        f"({config.num_markers} markers, {config.num_corners} corners, "
        f"{config.dictionary}{', legacy pattern' if config.legacy_pattern else ''})"
    )
    return board


def top_right_corner_index(config: CharucoBoardConfig) -> int:
    """Index of the last chessboard corner on the first row."""
    return config.squares_x - 2


def generate_board_image(
    config: CharucoBoardConfig,
    pixels_per_square: int = 100,
    margin_px: int = 0
) -> np.ndarray:
    """
    Render a grayscale board image.

    Args:
        config: Board layout
        pixels_per_square: Side of one chessboard square in pixels
        margin_px: White border added around the board

    Returns:
        uint8 image of size (squares_y * pps + 2 * margin, squares_x * pps + 2 * margin)
    """
    board = create_board(config)

    width = config.squares_x * pixels_per_square
    height = config.squares_y * pixels_per_square
    board_img = board.generateImage((width, height))

    if margin_px <= 0:
        return board_img

    output_img = np.full(
        (height + 2 * margin_px, width + 2 * margin_px), 255, dtype=np.uint8
    )
    output_img[margin_px:margin_px + height, margin_px:margin_px + width] = board_img
    return output_img
