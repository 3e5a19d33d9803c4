"""
Marker detector parameter overrides.

Reads a YAML file of cv2.aruco.DetectorParameters fields. Files written by
cv2.FileStorage (with a leading "%YAML:1.0" line) are accepted as well.
"""

import cv2
import yaml
from typing import Optional
import logging

from .yaml_io import load_yaml_document

logger = logging.getLogger(__name__)

DETECTOR_PARAMETER_KEYS = (
    "adaptiveThreshWinSizeMin",
    "adaptiveThreshWinSizeMax",
    "adaptiveThreshWinSizeStep",
    "adaptiveThreshConstant",
    "minMarkerPerimeterRate",
    "maxMarkerPerimeterRate",
    "polygonalApproxAccuracyRate",
    "minCornerDistanceRate",
    "minDistanceToBorder",
    "minMarkerDistanceRate",
    "cornerRefinementMethod",
    "cornerRefinementWinSize",
    "cornerRefinementMaxIterations",
    "cornerRefinementMinAccuracy",
    "markerBorderBits",
    "perspectiveRemovePixelPerCell",
    "perspectiveRemoveIgnoredMarginPerCell",
    "maxErroneousBitsInBorderRate",
    "minOtsuStdDev",
    "errorCorrectionRate",
)


def load_detector_parameters(
    filepath: str
) -> Optional[cv2.aruco.DetectorParameters]:
    """
    Load marker detector parameters from YAML file.

    Keys missing from the file keep OpenCV defaults.

    Args:
        filepath: Input file path

    Returns:
        DetectorParameters, or None if the file is invalid
    """
    try:
        data = load_yaml_document(filepath)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to read detector parameters: {e}")
        return None

    if not isinstance(data, dict):
        logger.error(f"Detector parameters file {filepath} is not a mapping")
        return None

    params = cv2.aruco.DetectorParameters()

    for key, value in data.items():
        if key not in DETECTOR_PARAMETER_KEYS:
            logger.warning(f"Ignoring unknown detector parameter '{key}'")
            continue

        # Coerce to the field's type; int fields only take whole numbers
        field_type = type(getattr(params, key))
        if field_type is int and isinstance(value, float) and not value.is_integer():
            logger.error(f"Invalid value for {key}: {value!r} (expected an integer)")
            return None
        try:
            setattr(params, key, field_type(value))
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid value for {key}: {value!r} ({e})")
            return None

    logger.info(f"Loaded detector parameters from {filepath}")
    return params
