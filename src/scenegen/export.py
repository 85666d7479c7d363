"""Export scene images as a zip archive."""

import logging
import re
import zipfile
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

from .models import Scene, decode_data_url

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.yaml"


def sanitize_filename(name: str) -> str:
    """Lowercase, underscores for whitespace, only [a-z0-9_.-], max 100 chars."""
    name = re.sub(r"\s+", "_", name.lower())
    name = re.sub(r"[^a-z0-9_.-]", "", name)
    return name[:100]


def scene_filename(scene: Scene) -> str:
    return f"scene_{scene.id + 1}_{sanitize_filename(scene.prompt)}.jpeg"


def export_scenes(
    scenes: Iterable[Scene],
    output: Path,
    script: Optional[str] = None,
) -> List[str]:
    """Write every scene that has an image to a zip file.

    The archive also holds a YAML manifest listing all scenes, including
    failed ones, with the file each image was written to.

    Returns:
        Names of the image files written.
    """
    written: List[str] = []
    manifest: dict = {"scenes": []}
    if script is not None:
        manifest["script"] = script

    output.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for scene in scenes:
            entry = {
                "id": scene.id,
                "prompt": scene.prompt,
                "status": scene.status.value,
                "file": None,
            }
            if scene.error:
                entry["error"] = scene.error.value
            if scene.image:
                filename = scene_filename(scene)
                archive.writestr(filename, decode_data_url(scene.image))
                entry["file"] = filename
                written.append(filename)
            manifest["scenes"].append(entry)

        archive.writestr(
            MANIFEST_NAME,
            yaml.safe_dump(manifest, default_flow_style=False, sort_keys=False),
        )

    logger.info(f"Exported {len(written)} images to {output}")
    return written
