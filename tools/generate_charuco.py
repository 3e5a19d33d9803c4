#!/usr/bin/env python3
"""
ChArUco Board Generator

Generates a printable ChArUco calibration board matching the geometry
passed to the calibration tool.

Usage:
    python generate_charuco.py --squares 5x7 --square-size 4.0 --marker-size 3.0
    python generate_charuco.py --squares 5x7 -d DICT_6X6_250 --output boards/
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import cv2

from charuco_calib.board import CharucoBoardConfig, DICTIONARY_NAMES, generate_board_image


def generate_charuco_board(
    squares_x: int = 5,
    squares_y: int = 7,
    square_size_cm: float = 4.0,
    marker_size_cm: float = 3.0,
    dictionary: str = "DICT_6X6_250",
    output_dir: str = "boards",
    dpi: int = 300,
    legacy_pattern: bool = False
):
    """
    Generate a ChArUco board image.

    Args:
        squares_x: Number of squares in X direction
        squares_y: Number of squares in Y direction
        square_size_cm: Chessboard square size in cm
        marker_size_cm: ArUco marker size in cm (must be < square_size)
        dictionary: ArUco dictionary name or index
        output_dir: Output directory
        dpi: Image resolution
        legacy_pattern: Use the pre-4.6 OpenCV layout

    Returns:
        Path of the written image, or None on invalid geometry
    """
    config = CharucoBoardConfig(
        squares_x=squares_x,
        squares_y=squares_y,
        square_length=square_size_cm / 100.0,   # Convert to meters
        marker_length=marker_size_cm / 100.0,
        dictionary=dictionary,
        legacy_pattern=legacy_pattern
    )
    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}")
        return None

    pixels_per_cm = dpi / 2.54
    pixels_per_square = int(round(square_size_cm * pixels_per_cm))
    border_px = int(2.0 * pixels_per_cm)  # 2cm border

    output_img = generate_board_image(config, pixels_per_square, border_px)
    total_height, total_width = output_img.shape[:2]

    # Add label at bottom
    label = (
        f"ChArUco {squares_x}x{squares_y} | square {square_size_cm} cm | "
        f"marker {marker_size_cm} cm | {config.dictionary}"
    )
    font_scale = total_width / 2000
    cv2.putText(
        output_img, label,
        (border_px, total_height - border_px // 3),
        cv2.FONT_HERSHEY_SIMPLEX, max(0.4, font_scale), 0, max(1, int(font_scale * 2))
    )

    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    filename = f"charuco_{squares_x}x{squares_y}_{config.dictionary}.png"
    filepath = out_path / filename
    cv2.imwrite(str(filepath), output_img)

    print(f"Generated: {filepath}")
    print(f"  Grid:         {squares_x} x {squares_y} squares")
    print(f"  Square size:  {square_size_cm} cm")
    print(f"  Marker size:  {marker_size_cm} cm")
    print(f"  Markers:      {config.num_markers} (IDs 0 - {config.num_markers - 1})")
    print(f"  Image size:   {total_width} x {total_height} px")
    print(f"  Print size:   {squares_x * square_size_cm + 4:.1f} x {squares_y * square_size_cm + 4:.1f} cm")
    print(f"\nCalibrate with: -w {squares_x} -H {squares_y} "
          f"--sl {config.square_length} --ml {config.marker_length} "
          f"-d {config.dictionary}"
          + (" --legacy" if legacy_pattern else ""))

    return filepath


def main():
    parser = argparse.ArgumentParser(
        description="Generate a printable ChArUco calibration board"
    )
    parser.add_argument(
        '--squares',
        type=str,
        default='5x7',
        help='Board grid size WxH (default: 5x7)'
    )
    parser.add_argument(
        '--square-size',
        type=float,
        default=4.0,
        help='Chessboard square size in cm (default: 4.0)'
    )
    parser.add_argument(
        '--marker-size',
        type=float,
        default=3.0,
        help='ArUco marker size in cm (default: 3.0)'
    )
    parser.add_argument(
        '--dictionary', '-d',
        type=str,
        default='DICT_6X6_250',
        help=f"ArUco dictionary (default: DICT_6X6_250, one of {', '.join(DICTIONARY_NAMES)})"
    )
    parser.add_argument(
        '--output', '-o',
        type=str,
        default='boards',
        help='Output directory (default: boards/)'
    )
    parser.add_argument(
        '--dpi',
        type=int,
        default=300,
        help='Image DPI (default: 300)'
    )
    parser.add_argument(
        '--legacy',
        action='store_true',
        help='Use the pre-4.6 OpenCV board pattern'
    )

    args = parser.parse_args()

    try:
        sq_x, sq_y = [int(x) for x in args.squares.split('x')]
    except ValueError:
        print(f"Error: invalid squares format '{args.squares}', use WxH (e.g. 5x7)")
        sys.exit(1)

    print("=" * 50)
    print("  CHARUCO BOARD GENERATOR")
    print("=" * 50)

    filepath = generate_charuco_board(
        squares_x=sq_x,
        squares_y=sq_y,
        square_size_cm=args.square_size,
        marker_size_cm=args.marker_size,
        dictionary=args.dictionary,
        output_dir=args.output,
        dpi=args.dpi,
        legacy_pattern=args.legacy
    )
    if filepath is None:
        sys.exit(1)

    print(f"\nDone. Print at 100% scale (no fit-to-page).")


if __name__ == "__main__":
    main()
