import json

import numpy as np
import pandas as pd
import pytest
from PIL import Image

from conftest import BACKGROUND, HEALTHY_SKIN
from skin_biometrics.app import SkinScanApp, main
from skin_biometrics.config import AnalysisSettings


def write_face(path, shift=0):
    pixels = np.empty((480, 640, 3), dtype=np.uint8)
    pixels[:] = BACKGROUND
    pixels[140 + shift:340 + shift, 220:420] = HEALTHY_SKIN
    Image.fromarray(pixels).save(path)
    return str(path)


@pytest.fixture
def app():
    return SkinScanApp(settings=AnalysisSettings(refinement_url=""))


def test_process_image(app, tmp_path):
    results = app.process_image(write_face(tmp_path / "scan.png"))
    assert results['refinement_status'] == 'local'
    assert results['quality'].acceptable
    assert len(app.history_store.load('default')) == 1


def test_unreadable_image(app, tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"not an image")
    assert app.process_image(str(path)) is None


def test_strict_quality_rejects_bad_frames(tmp_path):
    app = SkinScanApp(settings=AnalysisSettings(refinement_url=""), strict_quality=True)
    path = tmp_path / "empty.png"
    Image.fromarray(np.full((240, 320, 3), BACKGROUND, dtype=np.uint8)).save(path)
    assert app.process_image(str(path)) is None


def test_visualize_to_file(app, tmp_path):
    results = app.process_image(write_face(tmp_path / "scan.png"))
    output = tmp_path / "scan_regions.png"
    app.visualize_results(results, str(output))
    assert output.exists()


def test_batch_process(app, tmp_path):
    image_dir = tmp_path / "images"
    image_dir.mkdir()
    write_face(image_dir / "day1.png")
    write_face(image_dir / "day2.png", shift=10)
    (image_dir / "notes.txt").write_text("ignored")
    output_dir = tmp_path / "out"

    results = app.batch_process(str(image_dir), str(output_dir))

    assert len(results) == 2
    summary = pd.read_csv(output_dir / "scan_summary.csv")
    assert list(summary['image']) == ["day1.png", "day2.png"]
    payload = json.loads((output_dir / "day1_metrics.json").read_text())
    assert 'overallScore' in payload
    assert payload['refinementStatus'] == 'local'


def test_main_single_image(tmp_path, monkeypatch):
    monkeypatch.delenv("SKIN_REFINEMENT_URL", raising=False)
    image = write_face(tmp_path / "scan.png")
    assert main(["--image", image, "--no_vis", "--output_dir", str(tmp_path / "out")]) == 0
    assert (tmp_path / "out" / "scan_metrics.json").exists()


def test_main_requires_input():
    with pytest.raises(SystemExit):
        main([])
