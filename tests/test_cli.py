import json

import numpy as np
import pytest
from click.testing import CliRunner
from PIL import Image

import redact
from ocr_redactor import context as context_module
from ocr_redactor.errors import ConfigurationError
from ocr_redactor.context import load_cover_image

from builders import FakeEngine, block, document, paragraph, solid, words_line


RED = (255, 0, 0, 255)
WHITE = (255, 255, 255, 255)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    images = tmp_path / "in"
    images.mkdir()
    Image.fromarray(solid(40, 200, WHITE)).save(images / "shot.jpg.png")
    cover = tmp_path / "cover.png"
    Image.fromarray(solid(4, 4, RED)).save(cover)

    doc = document(block(paragraph(words_line("foo nixos bar", y=10))))
    monkeypatch.setattr(context_module, "tesseract_factory", lambda params: (lambda: FakeEngine(doc)))
    return tmp_path, images, cover


def test_cli_redacts_directory(workspace):
    tmp_path, images, cover = workspace
    out = tmp_path / "out"

    result = CliRunner().invoke(redact.main, ["-i", str(images), "-o", str(out), "-c", str(cover)])

    assert result.exit_code == 0, result.output
    assert "Done!" in result.output
    redacted = np.array(Image.open(out / "images" / "shot.jpg.png").convert("RGBA"))
    assert np.all(redacted[10:22, 40:90] == RED)
    summary = json.loads((out / "summary.json").read_text())
    assert summary["batch_stats"]["total_regions"] == 1


def test_cli_rejects_bad_pattern(workspace):
    tmp_path, images, cover = workspace

    result = CliRunner().invoke(
        redact.main, ["-i", str(images), "-o", str(tmp_path / "out"), "-c", str(cover), "-p", "nix("]
    )

    assert result.exit_code == 2
    assert "Invalid pattern" in result.output


def test_cli_rejects_unknown_flag(workspace):
    tmp_path, images, cover = workspace

    result = CliRunner().invoke(
        redact.main, ["-i", str(images), "-o", str(tmp_path / "out"), "-c", str(cover), "--flags", "q"]
    )

    assert result.exit_code == 2
    assert "Unsupported pattern flag" in result.output


def test_cli_mirrors_input_folders(workspace):
    tmp_path, images, cover = workspace
    (images / "a").mkdir()
    (images / "b").mkdir()
    for folder in ("a", "b"):
        Image.fromarray(solid(40, 200, WHITE)).save(images / folder / "shot.png")
    out = tmp_path / "out"

    result = CliRunner().invoke(redact.main, ["-i", str(images), "-o", str(out), "-c", str(cover)])

    assert result.exit_code == 0, result.output
    assert (out / "images" / "a" / "shot.png").is_file()
    assert (out / "images" / "b" / "shot.png").is_file()
    assert (out / "images" / "shot.jpg.png").is_file()


def test_cli_missing_cover(workspace):
    tmp_path, images, _ = workspace

    result = CliRunner().invoke(
        redact.main, ["-i", str(images), "-o", str(tmp_path / "out"), "-c", str(tmp_path / "nope.png")]
    )

    assert result.exit_code == 1
    assert "Cover image does not exist" in result.output


def test_cli_no_images(tmp_path):
    (tmp_path / "empty").mkdir()

    result = CliRunner().invoke(
        redact.main, ["-i", str(tmp_path / "empty"), "-o", str(tmp_path / "out"), "-c", "cover.png"]
    )

    assert result.exit_code == 1
    assert "No images found" in result.output


def test_load_cover_image_rejects_non_image(tmp_path):
    bogus = tmp_path / "cover.png"
    bogus.write_text("not a png")

    with pytest.raises(ConfigurationError):
        load_cover_image(bogus)
