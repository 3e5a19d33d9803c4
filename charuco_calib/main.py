"""
ChArUco Camera Calibration - Command Line Entry Point

Calibration using a ChArUco board:
  To capture a frame for calibration, press 'c'.
  If input comes from video, press any key for next frame.
  To finish capturing, press 'ESC' key and calibration starts.
"""

import argparse
import sys
import logging
from typing import List, Optional, Tuple

import cv2

from .board import CharucoBoardConfig, DICTIONARY_NAMES, create_board
from .camera_calibration import (
    CalibrationError,
    CharucoCalibration,
    load_calibration,
    save_calibration,
)
from .capture import (
    open_video_source,
    run_image_list,
    run_interactive_capture,
    show_corners,
)
from .detection import CharucoFrameDetector
from .detector_params import load_detector_parameters
from .image_list import read_image_list

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description="Camera intrinsic calibration using a ChArUco board",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        'outfile',
        help='Output file with calibrated camera parameters'
    )
    parser.add_argument(
        '-w', '--squares-x',
        type=int,
        required=True,
        help='Number of squares in X direction'
    )
    parser.add_argument(
        '-H', '--squares-y',
        type=int,
        required=True,
        help='Number of squares in Y direction'
    )
    parser.add_argument(
        '--sl', '--square-length',
        dest='square_length',
        type=float,
        required=True,
        help='Square side length (in meters)'
    )
    parser.add_argument(
        '--ml', '--marker-length',
        dest='marker_length',
        type=float,
        required=True,
        help='Marker side length (in meters)'
    )
    parser.add_argument(
        '-d', '--dictionary',
        type=str,
        default='DICT_6X6_250',
        help='ArUco dictionary name or index: '
             + ', '.join(f'{name}={i}' for i, name in enumerate(DICTIONARY_NAMES))
    )
    parser.add_argument(
        '--legacy',
        dest='legacy_pattern',
        action='store_true',
        help='Board was printed with the pre-4.6 OpenCV pattern (differs for even -H)'
    )
    parser.add_argument(
        '-v', '--video',
        type=str,
        default='',
        help='Input from video file, if omitted, input comes from camera'
    )
    parser.add_argument(
        '-l', '--image-list',
        type=str,
        default='',
        help='List of input images'
    )
    parser.add_argument(
        '--ci', '--camera',
        dest='camera',
        type=int,
        default=0,
        help="Camera id if input doesn't come from video or image list (default: 0)"
    )
    parser.add_argument(
        '--dp', '--detector-params',
        dest='detector_params',
        type=str,
        default=None,
        help='File of marker detector parameters'
    )
    parser.add_argument(
        '--rs', '--refind-strategy',
        dest='refind_strategy',
        action='store_true',
        help='Apply refind strategy'
    )
    parser.add_argument(
        '--zt', '--zero-tangent-dist',
        dest='zero_tangent_dist',
        action='store_true',
        help='Assume zero tangential distortion'
    )
    parser.add_argument(
        '-a', '--aspect-ratio',
        type=float,
        default=None,
        help='Fix aspect ratio (fx/fy) to this value'
    )
    parser.add_argument(
        '--pc', '--fix-principal-point',
        dest='fix_principal_point',
        action='store_true',
        help='Fix the principal point at the center'
    )
    parser.add_argument(
        '--intrinsic-guess',
        type=str,
        default=None,
        help='Calibration file used as initial camera estimate'
    )
    parser.add_argument(
        '--test',
        action='store_true',
        help="For an image sequence, show what got detected, don't calculate anything"
    )
    parser.add_argument(
        '--sc', '--show-corners',
        dest='show_corners',
        action='store_true',
        help='Show detected chessboard corners after calibration'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def calibration_flags(args: argparse.Namespace) -> Tuple[int, float]:
    """
    Translate command line options into OpenCV calibration flags.

    Returns:
        Tuple of (flags, aspect_ratio)
    """
    flags = 0
    aspect_ratio = 1.0

    if args.aspect_ratio is not None:
        flags |= cv2.CALIB_FIX_ASPECT_RATIO
        aspect_ratio = args.aspect_ratio
    if args.zero_tangent_dist:
        flags |= cv2.CALIB_ZERO_TANGENT_DIST
    if args.fix_principal_point:
        flags |= cv2.CALIB_FIX_PRINCIPAL_POINT

    return flags, aspect_ratio


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    if args.video and args.image_list:
        logger.error("Can't have both video and image list input")
        sys.exit(1)

    # Board
    config = CharucoBoardConfig(
        squares_x=args.squares_x,
        squares_y=args.squares_y,
        square_length=args.square_length,
        marker_length=args.marker_length,
        dictionary=args.dictionary,
        legacy_pattern=args.legacy_pattern
    )
    try:
        board = create_board(config)
    except ValueError as e:
        logger.error(f"Invalid board: {e}")
        sys.exit(1)

    detector_params = None
    if args.detector_params:
        detector_params = load_detector_parameters(args.detector_params)
        if detector_params is None:
            logger.error("Invalid detector parameters file")
            sys.exit(1)

    flags, aspect_ratio = calibration_flags(args)

    camera_matrix, dist_coeffs = None, None
    if args.intrinsic_guess:
        camera_matrix, dist_coeffs = load_calibration(args.intrinsic_guess)
        if camera_matrix is None:
            logger.error("Invalid intrinsic guess file")
            sys.exit(1)
        flags |= cv2.CALIB_USE_INTRINSIC_GUESS

    detector = CharucoFrameDetector(
        board,
        detector_params=detector_params,
        refind_strategy=args.refind_strategy
    )
    calibration = CharucoCalibration(
        board,
        config,
        flags=flags,
        aspect_ratio=aspect_ratio,
        initial_camera_matrix=camera_matrix,
        initial_dist_coeffs=dist_coeffs
    )

    # Collect data from each frame
    if args.image_list:
        print(f"Reading from image list {args.image_list}")
        image_paths = read_image_list(args.image_list)
        if image_paths is None:
            logger.error(f"Invalid image list file: {args.image_list}")
            sys.exit(1)
        run_image_list(image_paths, detector, calibration, test_run=args.test)
    else:
        try:
            cap, wait_ms = open_video_source(args.video, args.camera)
        except OSError as e:
            logger.error(str(e))
            sys.exit(1)
        run_interactive_capture(
            cap, detector, calibration, wait_ms=wait_ms, test_run=args.test
        )

    if args.test:
        print("Test run finished")
        return

    try:
        result = calibration.calibrate(detector)
    except CalibrationError as e:
        logger.error(str(e))
        sys.exit(1)
    except cv2.error as e:
        logger.error(f"Calibration failed: {e}")
        sys.exit(1)

    if not save_calibration(args.outfile, result, config):
        logger.error("Cannot save output file")
        sys.exit(1)

    print(f"Rep Error: {result.reprojection_error}")
    print(f"Rep Error Aruco: {result.aruco_reprojection_error}")
    print(f"Calibration saved to {args.outfile}")

    # Show interpolated charuco corners for debugging
    if args.show_corners:
        show_corners(calibration, result)


if __name__ == "__main__":
    main()
