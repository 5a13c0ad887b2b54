#!/usr/bin/env python3
import sys
import os
import logging
from PySide6.QtWidgets import (QApplication, QMainWindow, QLabel, QVBoxLayout,
                             QWidget, QPushButton, QFileDialog, QStatusBar,
                             QHBoxLayout, QGroupBox, QScrollArea)
from PySide6.QtCore import Qt
from PySide6.QtGui import QPixmap, QDragEnterEvent, QDropEvent, QImage

from cli import PixelArtUpscaler, DecodeError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif', '.bmp', '.webp')


def pil_to_qimage(image):
    """Convert a PIL image to a QImage that owns its own copy of the pixels"""
    img_data = image.convert("RGBA").tobytes("raw", "RGBA")
    q_img = QImage(img_data, image.width, image.height, image.width * 4, QImage.Format_RGBA8888)
    # QImage doesn't keep img_data alive, so detach from it
    return q_img.copy()


class ImageViewer(QLabel):
    """Shows a PIL image at an integer zoom level"""

    def __init__(self, parent=None, smooth=False):
        super().__init__(parent)
        self.setAlignment(Qt.AlignCenter)
        self.setStyleSheet("""
            QLabel {
                border: 1px solid #aaa;
                border-radius: 5px;
                background-color: #f8f8f8;
                padding: 5px;
            }
        """)
        self.setMinimumSize(300, 300)

        self.image = None
        self.zoom_factor = 1
        # The analysis preview is drawn smooth, the output always crisp
        self.smooth = smooth

    def setImage(self, image, zoom_factor=1):
        self.image = image
        self.zoom_factor = max(1, int(zoom_factor))
        self.updatePixmap()

    def updatePixmap(self):
        if self.image is None:
            return

        pixmap = QPixmap.fromImage(pil_to_qimage(self.image))
        if self.zoom_factor > 1:
            transform = Qt.SmoothTransformation if self.smooth else Qt.FastTransformation
            pixmap = pixmap.scaled(
                pixmap.width() * self.zoom_factor,
                pixmap.height() * self.zoom_factor,
                Qt.IgnoreAspectRatio,
                transform
            )

        self.setText("")
        self.setPixmap(pixmap)
        self.resize(pixmap.size())

    def wheelEvent(self, event):
        # Zoom in/out with mouse wheel
        delta = event.angleDelta().y()
        old_zoom = self.zoom_factor

        if delta > 0:
            self.zoom_factor = min(10, self.zoom_factor + 1)
        elif delta < 0:
            self.zoom_factor = max(1, self.zoom_factor - 1)

        if old_zoom != self.zoom_factor:
            self.updatePixmap()


class DropArea(ImageViewer):
    """Analysis preview that also accepts image files dropped onto it"""

    def __init__(self, main_window, parent=None):
        super().__init__(parent, smooth=True)
        self.main_window = main_window
        self.setAcceptDrops(True)
        self.setText("Drag and drop your pixel art image here")

    def dragEnterEvent(self, event: QDragEnterEvent):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event: QDropEvent):
        urls = event.mimeData().urls()
        if not urls:
            return
        # If multiple files were dropped, just use the first one
        file_path = urls[0].toLocalFile()
        if file_path.lower().endswith(IMAGE_EXTENSIONS):
            self.main_window.loadImage(file_path)
        else:
            self.main_window.status_bar.showMessage("Please drop an image file (PNG, JPG, GIF, BMP, WEBP)")


class PixelGridUpscalerApp(QMainWindow):
    def __init__(self):
        super().__init__()
        self.upscaler = PixelArtUpscaler()
        self.current_image_path = None
        self.current_image = None
        self.current_runs = []
        self.output_image = None
        self.initUI()

    def initUI(self):
        self.setWindowTitle("Pixel Grid Upscaler")
        self.setMinimumSize(1000, 700)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout(central_widget)

        # File picker
        picker_layout = QHBoxLayout()
        self.browse_button = QPushButton("Pick image file")
        self.browse_button.clicked.connect(self.browseImage)
        picker_layout.addWidget(self.browse_button)

        self.save_button = QPushButton("Save Output")
        self.save_button.setEnabled(False)  # Disabled until an image is loaded
        self.save_button.clicked.connect(self.saveOutput)
        picker_layout.addWidget(self.save_button)

        self.scale_label = QLabel("Pixel size: -")
        picker_layout.addWidget(self.scale_label)
        picker_layout.addStretch(1)
        main_layout.addLayout(picker_layout)

        viewers_layout = QHBoxLayout()

        # Left - original with change-point markers
        analysis_group = QGroupBox("Analysis (red marks = row changes)")
        analysis_layout = QVBoxLayout(analysis_group)
        self.drop_area = DropArea(self)
        analysis_scroll = QScrollArea()
        analysis_scroll.setWidget(self.drop_area)
        analysis_scroll.setAlignment(Qt.AlignCenter)
        analysis_layout.addWidget(analysis_scroll)
        viewers_layout.addWidget(analysis_group, 1)

        # Right - nearest neighbor output
        output_group = QGroupBox(f"Output ({self.upscaler.output_multiplier}x per detected pixel)")
        output_layout = QVBoxLayout(output_group)
        self.output_viewer = ImageViewer(self)
        self.output_viewer.setText("Pick an image to see the upscaled result")
        output_scroll = QScrollArea()
        output_scroll.setWidget(self.output_viewer)
        output_scroll.setAlignment(Qt.AlignCenter)
        output_layout.addWidget(output_scroll)
        viewers_layout.addWidget(output_group, 1)

        main_layout.addLayout(viewers_layout)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.status_bar.showMessage("Ready")

    def browseImage(self):
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Select Image", "", "Image Files (*.png *.jpg *.jpeg *.gif *.bmp *.webp)"
        )
        if file_path:
            self.loadImage(file_path)

    def loadImage(self, file_path):
        """Decode a file, detect its pixel size and refresh both viewers"""
        self.status_bar.showMessage(f"Loading: {os.path.basename(file_path)}")

        try:
            image = self.upscaler.load_image(file_path)
        except DecodeError as e:
            # Leave the previous image and pixel size in place
            logger.error(str(e))
            self.status_bar.showMessage(f"Could not open {os.path.basename(file_path)}")
            return False

        self.current_image_path = file_path
        self.current_image = image
        self.current_runs = self.upscaler.compute_runs(image)
        scale = self.upscaler.detect(self.current_runs)

        self.output_image = self.upscaler.upscale_image(image, scale)
        preview = self.upscaler.render_analysis_preview(image, self.current_runs)

        self.drop_area.setImage(preview, zoom_factor=2)
        self.output_viewer.setImage(self.output_image)
        self.save_button.setEnabled(True)

        self.scale_label.setText(f"Pixel size: {scale}")
        self.status_bar.showMessage(
            f"Loaded: {os.path.basename(file_path)}, pixel size {scale}, "
            f"output {self.output_image.width}x{self.output_image.height}"
        )
        return True

    def saveOutput(self):
        if self.output_image is None:
            self.status_bar.showMessage("Please load an image first")
            return None

        total = self.output_image.width // self.current_image.width
        output_path = self.upscaler.get_output_path(self.current_image_path, suffix=f"clean_{total}x")
        self.output_image.save(output_path)
        self.status_bar.showMessage(f"Saved: {os.path.basename(output_path)}")
        return output_path


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    app = QApplication(sys.argv)

    # Set application style
    app.setStyle("Fusion")

    window = PixelGridUpscalerApp()
    window.show()

    sys.exit(app.exec())

if __name__ == "__main__":
    main()
