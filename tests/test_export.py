"""
Tests for zip export.
"""

import zipfile

import yaml

from scenegen.errors import ErrorKind
from scenegen.export import MANIFEST_NAME, export_scenes, sanitize_filename, scene_filename
from scenegen.models import Scene, SceneStatus, to_data_url


class TestSanitize:
    """Tests for filename sanitizing."""

    def test_sanitize(self):
        assert sanitize_filename("A Ship, on the  Horizon!") == "a_ship_on_the_horizon"
        assert sanitize_filename("x" * 150) == "x" * 100

    def test_scene_filename_is_one_based(self):
        scene = Scene(id=0, prompt="Red Barn", status=SceneStatus.SUCCEEDED)
        assert scene_filename(scene) == "scene_1_red_barn.jpeg"


class TestExport:
    """Tests for export_scenes()."""

    def test_writes_images_and_manifest(self, tmp_path):
        scenes = [
            Scene(id=0, prompt="red barn", image=to_data_url(b"jpeg-0"), status=SceneStatus.SUCCEEDED),
            Scene(id=1, prompt="blue sky", status=SceneStatus.FAILED, error=ErrorKind.BLOCKED_OR_EMPTY_OUTPUT),
        ]
        output = tmp_path / "out" / "scenes.zip"

        written = export_scenes(scenes, output, script="Farm")

        assert written == ["scene_1_red_barn.jpeg"]
        with zipfile.ZipFile(output) as archive:
            assert archive.read("scene_1_red_barn.jpeg") == b"jpeg-0"
            manifest = yaml.safe_load(archive.read(MANIFEST_NAME))

        assert manifest["script"] == "Farm"
        assert manifest["scenes"][0]["file"] == "scene_1_red_barn.jpeg"
        assert manifest["scenes"][1]["file"] is None
        assert manifest["scenes"][1]["error"] == "blocked_or_empty_output"
