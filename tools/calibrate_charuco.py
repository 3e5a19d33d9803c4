#!/usr/bin/env python3
"""
ChArUco Camera Calibration Tool

Calibrates camera intrinsic parameters from a ChArUco board seen by a
camera, in a video file or in a list of images.

Usage:
    python calibrate_charuco.py -w 5 -H 7 --sl 0.04 --ml 0.03 -d 10 camera.yaml
    python calibrate_charuco.py -w 5 -H 7 --sl 0.04 --ml 0.03 -l images.yaml camera.yaml
    python calibrate_charuco.py -w 5 -H 7 --sl 0.04 --ml 0.03 -l images.yaml --test out.yaml
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from charuco_calib.main import main


if __name__ == "__main__":
    main()
