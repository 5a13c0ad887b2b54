"""Tests for the desktop front end (skipped when Qt is not available)."""
import os

import numpy as np
import pytest
from PIL import Image

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
pytest.importorskip("PySide6.QtWidgets")

from PySide6.QtWidgets import QApplication  # noqa: E402

from gui import PixelGridUpscalerApp, pil_to_qimage  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def window(qapp):
    win = PixelGridUpscalerApp()
    yield win
    win.close()


def write_art(path, scale, rows=3, cols=2):
    art = np.zeros((rows, cols, 4), dtype=np.uint8)
    for y in range(rows):
        art[y, :] = (20 + y * 50, 40, 60, 255)
    art = np.repeat(np.repeat(art, scale, axis=0), scale, axis=1)
    Image.fromarray(art).save(path)
    return str(path)


class TestPixelGridUpscalerApp:
    """Tests for loading images into the main window."""

    def test_load_detects_scale(self, window, tmp_path):
        path = write_art(tmp_path / "art.png", scale=3)

        assert window.loadImage(path) is True
        assert window.upscaler.scale == 3
        assert window.scale_label.text() == "Pixel size: 3"
        assert window.output_image.size == (6 * 24, 9 * 24)
        assert window.save_button.isEnabled()

    def test_bad_file_keeps_previous_image(self, window, tmp_path):
        path = write_art(tmp_path / "art.png", scale=2)
        window.loadImage(path)

        bad = tmp_path / "bad.png"
        bad.write_bytes(b"not an image")
        assert window.loadImage(str(bad)) is False

        assert window.current_image_path == path
        assert window.upscaler.scale == 2
        assert "Could not open" in window.status_bar.currentMessage()

    def test_save_output(self, window, tmp_path):
        path = write_art(tmp_path / "art.png", scale=2)
        window.loadImage(path)

        output_path = window.saveOutput()
        assert output_path == str(tmp_path / "art_clean_16x.png")
        with Image.open(output_path) as out:
            assert out.size == (4 * 16, 6 * 16)

    def test_save_without_image(self, window):
        assert window.saveOutput() is None


def test_pil_to_qimage(qapp):
    img = Image.new("RGBA", (3, 2), (255, 0, 0, 255))
    q_img = pil_to_qimage(img)
    assert (q_img.width(), q_img.height()) == (3, 2)
