"""
ChArUco Camera Calibration

Camera intrinsic calibration from ChArUco board images, camera or video
input, using OpenCV's ArUco module.
"""

__version__ = "0.1.0"
