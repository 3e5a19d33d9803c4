"""
YAML file reading shared by the parameter, image list and calibration files.
"""

import yaml
from pathlib import Path


def load_yaml_document(filepath: str):
    """
    Load a YAML document, skipping an OpenCV "%YAML:1.0" directive.

    Raises OSError or yaml.YAMLError on failure.
    """
    text = Path(filepath).read_text()
    lines = text.splitlines()
    if lines and lines[0].startswith('%YAML'):
        lines = lines[1:]
        if lines and lines[0].strip() == '---':
            lines = lines[1:]
    return yaml.safe_load("\n".join(lines))
