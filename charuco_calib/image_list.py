"""
Image list reading.

The list is a YAML file whose first top-level node is a sequence of image
file names (the cv2 "images:" list layout), or a plain .txt file with one
name per line.
"""

import yaml
from pathlib import Path
from typing import List, Optional
import logging

from .yaml_io import load_yaml_document

logger = logging.getLogger(__name__)


def _resolve(name: str, base_dir: Path) -> str:
    """Prefer the name relative to the list file, fall back to it as written."""
    candidate = base_dir / name
    if not Path(name).is_absolute() and candidate.exists():
        return str(candidate)
    return name


def read_image_list(filepath: str) -> Optional[List[str]]:
    """
    Read the file names from an image list.

    Args:
        filepath: Image list file

    Returns:
        List of image paths, or None if the file can't be used
    """
    path = Path(filepath)

    try:
        if path.suffix.lower() == '.txt':
            names = [
                line.strip() for line in path.read_text().splitlines()
                if line.strip() and not line.lstrip().startswith('#')
            ]
        else:
            data = load_yaml_document(filepath)
            if isinstance(data, dict):
                data = next(iter(data.values()), None)
            names = data
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to read image list: {e}")
        return None

    if not isinstance(names, list):
        logger.error(f"Image list {filepath} does not start with a sequence")
        return None

    base_dir = path.parent
    images = [_resolve(str(name), base_dir) for name in names]

    logger.info(f"Read {len(images)} image names from {filepath}")
    return images
