import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw
from PyQt5.QtCore import QPoint, Qt, pyqtSignal
from PyQt5.QtGui import QColor, QImage, QPainter, QPen, QPixmap
from PyQt5.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSizePolicy,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from OE_Libs.config import EraserConfig
from OE_Libs.constants import (
    DEFAULT_WINDOW_HEIGHT,
    DEFAULT_WINDOW_WIDTH,
    PREVIEW_MIN_SIZE,
    SUPPORTED_STANDARD_IMAGES,
)
from OE_Libs.errors import BackendNotReady, InpaintingError, JobInFlight
from OE_Libs.MaskingLib.capture_surface import CaptureSurface, paint_dot, paint_segment
from OE_Libs.MaskingLib.coordinate_mapper import cursor_diameter, scale_factor, to_display, to_native
from OE_Libs.MaskingLib.pixel_buffers import PixelBuffer
from OE_Libs.ProcessingLib.backend_lifecycle import BackendState
from OE_Libs.ProcessingLib.coordinator import JobResult
from OE_Libs.ProcessingLib.session import InpaintSession
from OE_Libs.RenderingLib.result_renderer import ExportConfig, RenderedResult, ResultRenderer

logger = logging.getLogger(__name__)


def _pil_to_pixmap(image) -> QPixmap:
    rgba = image.convert("RGBA")
    data = rgba.tobytes("raw", "RGBA")
    qimage = QImage(data, rgba.width, rgba.height, rgba.width * 4, QImage.Format_RGBA8888)
    return QPixmap.fromImage(qimage)


class MaskCanvas(QLabel):
    """
    Shows the source image scaled to fit and paints strokes onto the mask.

    Strokes go to the native-resolution CaptureSurface and, mapped into
    display space, to a display-sized overlay so that painting never has to
    rescale the full mask. The overlay is rebuilt from the surface only when
    the display size changes or the mask is replaced.
    """

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setAlignment(Qt.AlignLeft | Qt.AlignTop)
        self.setMinimumSize(PREVIEW_MIN_SIZE, PREVIEW_MIN_SIZE)
        self.setStyleSheet("border: 1px solid #888;")
        self.setMouseTracking(True)
        self.setSizePolicy(QSizePolicy.Ignored, QSizePolicy.Ignored)

        self.source: Optional[Image.Image] = None
        self.surface: Optional[CaptureSurface] = None
        self._display_size = (0, 0)
        self._scaled_base = None
        self._display_overlay = None
        self._last_native = None
        self._cursor_pos: Optional[QPoint] = None
        self._drawing = False

    def set_source(self, image: Image.Image, surface: CaptureSurface) -> None:
        self.source = image
        self._scaled_base = None
        self._display_overlay = None
        self.surface = surface
        self.refresh()

    def clear_source(self) -> None:
        self.source = None
        self.surface = None
        self._display_size = (0, 0)
        self._scaled_base = None
        self._display_overlay = None
        self.clear()
        self.setText("Drop an image here or use Open Image")

    def refresh(self) -> None:
        """Redraw the scaled image with the translucent mask on top."""
        if self.source is None or self.surface is None:
            return

        available = self.contentsRect().size()
        scale = min(available.width() / self.source.width, available.height() / self.source.height, 1.0)
        display = (max(1, int(self.source.width * scale)), max(1, int(self.source.height * scale)))

        if self._scaled_base is None or self._scaled_base.size != display:
            self._scaled_base = self.source.resize(display, Image.Resampling.LANCZOS).convert("RGBA")
            self._display_overlay = None
        if self._display_overlay is None:
            self._display_overlay = self.surface.overlay_image().resize(display, Image.Resampling.NEAREST)

        self._display_size = display
        self._present()

    def reload_mask(self) -> None:
        """Rebuild the overlay after the surface mask was cleared, taken or restored."""
        self._display_overlay = None
        self.refresh()

    def _present(self) -> None:
        composed = Image.alpha_composite(self._scaled_base, self._display_overlay)
        self.setPixmap(_pil_to_pixmap(composed))

    def _paint_display(self, start, end=None) -> None:
        if self._display_overlay is None:
            return

        factor = scale_factor(self._display_size, self.source.size)
        if factor is None:
            return

        diameter = self.surface.brush_diameter * factor
        draw = ImageDraw.Draw(self._display_overlay)
        display_start = to_display(start, self._display_size, self.source.size)
        if end is None:
            paint_dot(draw, display_start, diameter)
        else:
            paint_segment(draw, display_start, to_display(end, self._display_size, self.source.size), diameter)
        self._present()

    def _native_point(self, pos: QPoint):
        if self.source is None:
            return None
        local = pos - self.contentsRect().topLeft()
        return to_native((local.x(), local.y()), self._display_size, self.source.size)

    def mousePressEvent(self, event) -> None:
        if event.button() == Qt.LeftButton and self.surface is not None:
            point = self._native_point(event.pos())
            if point is not None:
                self.surface.begin_stroke(point)
                self._drawing = True
                self._last_native = point
                self._paint_display(point)
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event) -> None:
        self._cursor_pos = event.pos()
        if self._drawing and self.surface is not None:
            point = self._native_point(event.pos())
            if point is not None:
                self.surface.extend_stroke(point)
                self._paint_display(self._last_native, point)
                self._last_native = point
        self.update()
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event) -> None:
        if event.button() == Qt.LeftButton and self.surface is not None:
            self.surface.end_stroke()
            self._drawing = False
            self._last_native = None
        super().mouseReleaseEvent(event)

    def leaveEvent(self, event) -> None:
        if self.surface is not None:
            self.surface.end_stroke()
        self._drawing = False
        self._last_native = None
        self._cursor_pos = None
        self.update()
        super().leaveEvent(event)

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        self.refresh()

    def paintEvent(self, event) -> None:
        super().paintEvent(event)
        if self._cursor_pos is None or self.surface is None or self.source is None:
            return

        size = cursor_diameter(self.surface.brush_diameter, self._display_size, self.source.size)
        if size is None:
            return

        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing)
        painter.setPen(QPen(QColor(255, 255, 255), 1))
        radius = int(round(size / 2))
        painter.drawEllipse(self._cursor_pos, radius, radius)
        painter.end()


class EraserWindow(QMainWindow):
    backend_state_changed = pyqtSignal(object, object)
    job_finished = pyqtSignal(object)

    def __init__(self, config: Optional[EraserConfig] = None) -> None:
        super().__init__()
        self.config = config or EraserConfig()
        self.setWindowTitle("Open Eraser")
        self.resize(DEFAULT_WINDOW_WIDTH, DEFAULT_WINDOW_HEIGHT)
        self.setAcceptDrops(True)

        self.session = InpaintSession(self.config)
        self.renderer = ResultRenderer(ExportConfig(
            filename_template=self.config.export_template,
            overwrite=self.config.export_overwrite,
        ))
        self.image_path: Optional[Path] = None
        self.rendered: Optional[RenderedResult] = None

        self._build_ui()
        self._connect_signals()
        self.session.lifecycle.add_state_listener(
            lambda state, reason: self.backend_state_changed.emit(state, reason)
        )
        self._update_controls()

    def _build_ui(self) -> None:
        central = QWidget(self)
        self.setCentralWidget(central)

        root = QVBoxLayout(central)
        toolbar = QHBoxLayout()
        previews = QHBoxLayout()
        actions = QHBoxLayout()

        self.btn_open = QPushButton("Open Image")
        self.btn_load_backend = QPushButton("Load Backend")
        self.btn_clear_mask = QPushButton("Clear Mask")
        self.btn_process = QPushButton("Process")
        self.btn_download = QPushButton("Download Result")
        self.btn_reset = QPushButton("Choose Another Image")

        self.brush_slider = QSlider(Qt.Horizontal)
        self.brush_slider.setRange(self.config.brush_min, self.config.brush_max)
        self.brush_slider.setValue(self.config.brush_default)
        self.label_brush = QLabel(f"Brush size: {self.config.brush_default}px")

        self.canvas = MaskCanvas()
        self.canvas.clear_source()
        self.label_result = QLabel("Paint over the watermark, then press Process")
        self.label_result.setAlignment(Qt.AlignCenter)
        self.label_result.setMinimumSize(PREVIEW_MIN_SIZE, PREVIEW_MIN_SIZE)
        self.label_result.setStyleSheet("border: 1px solid #888;")

        self.label_status = QLabel()
        self.label_image_info = QLabel()

        toolbar.addWidget(self.btn_open)
        toolbar.addWidget(self.label_brush)
        toolbar.addWidget(self.brush_slider)
        toolbar.addWidget(self.btn_clear_mask)
        toolbar.addWidget(self.btn_load_backend)

        previews.addWidget(self.canvas, stretch=1)
        previews.addWidget(self.label_result, stretch=1)

        actions.addWidget(self.btn_reset)
        actions.addWidget(self.btn_process)
        actions.addWidget(self.btn_download)

        root.addLayout(toolbar)
        root.addLayout(previews, stretch=1)
        root.addLayout(actions)
        root.addWidget(self.label_status)
        root.addWidget(self.label_image_info)

    def _connect_signals(self) -> None:
        self.btn_open.clicked.connect(self.choose_image)
        self.btn_load_backend.clicked.connect(self.load_backend)
        self.btn_clear_mask.clicked.connect(self.clear_mask)
        self.btn_process.clicked.connect(self.process)
        self.btn_download.clicked.connect(self.download_result)
        self.btn_reset.clicked.connect(self.reset_image)
        self.brush_slider.valueChanged.connect(self.on_brush_changed)
        self.backend_state_changed.connect(self.on_backend_state_changed)
        self.job_finished.connect(self.on_job_finished)

    def _update_controls(self) -> None:
        state = self.session.lifecycle.state
        has_image = self.canvas.source is not None
        busy = self.session.coordinator.is_busy

        self.btn_load_backend.setVisible(state != BackendState.READY)
        self.btn_load_backend.setEnabled(state != BackendState.LOADING)
        self.btn_load_backend.setText("Loading..." if state == BackendState.LOADING else "Load Backend")
        self.btn_process.setEnabled(has_image and state == BackendState.READY and not busy)
        self.btn_process.setText("Processing..." if busy else "Process")
        self.btn_clear_mask.setEnabled(has_image)
        self.btn_reset.setEnabled(has_image)
        self.btn_download.setEnabled(self.rendered is not None)

        if state == BackendState.READY:
            self.label_status.setText("Status: Backend ready")
        elif state == BackendState.FAILED:
            self.label_status.setText(f"Status: Backend failed ({self.session.lifecycle.failure_reason})")
        elif state == BackendState.LOADING:
            self.label_status.setText("Status: Loading backend...")
        else:
            self.label_status.setText("Status: Backend not loaded")

    def choose_image(self) -> None:
        patterns = " ".join(f"*{ext}" for ext in sorted(SUPPORTED_STANDARD_IMAGES))
        file_path, _ = QFileDialog.getOpenFileName(self, "Select Image", "", f"Images ({patterns})")
        if file_path:
            self.open_image(Path(file_path))

    def open_image(self, path: Path) -> None:
        if path.suffix.lower() not in SUPPORTED_STANDARD_IMAGES:
            QMessageBox.warning(self, "Unsupported File", f"Not a supported image: {path.name}")
            return

        try:
            image = Image.open(path).convert("RGBA")
        except (OSError, ValueError) as e:
            QMessageBox.warning(self, "Open Failed", f"Could not open {path.name}: {e}")
            return

        surface = CaptureSurface(
            image.width,
            image.height,
            brush_min=self.config.brush_min,
            brush_max=self.config.brush_max,
            brush_diameter=self.brush_slider.value(),
        )
        self.image_path = path
        self.rendered = None
        self.label_result.clear()
        self.label_result.setText("Paint over the watermark, then press Process")
        self.canvas.set_source(image, surface)

        size_kb = path.stat().st_size / 1024
        self.label_image_info.setText(f"Current image: {path.name} ({size_kb:.2f} KB)")
        logger.info(f"Opened {path} ({image.width}x{image.height})")

        if self.session.lifecycle.state not in (BackendState.READY, BackendState.LOADING):
            self.load_backend()
        self._update_controls()

    def reset_image(self) -> None:
        self.image_path = None
        self.rendered = None
        self.canvas.clear_source()
        self.label_result.clear()
        self.label_result.setText("Paint over the watermark, then press Process")
        self.label_image_info.clear()
        self._update_controls()

    def load_backend(self) -> None:
        future = self.session.request_load()
        future.add_done_callback(self._on_load_done)
        self._update_controls()

    def _on_load_done(self, future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Backend load failed: {error}")

    def on_backend_state_changed(self, state: BackendState, reason: Optional[str]) -> None:
        if state == BackendState.FAILED:
            QMessageBox.warning(self, "Backend Load Failed", f"Failed to load resources: {reason}")
        self._update_controls()

    def on_brush_changed(self, value: int) -> None:
        self.label_brush.setText(f"Brush size: {value}px")
        if self.canvas.surface is not None:
            self.canvas.surface.brush_diameter = value
        self.canvas.update()

    def clear_mask(self) -> None:
        if self.canvas.surface is not None:
            self.canvas.surface.clear()
            self.canvas.reload_mask()

    def process(self) -> None:
        if self.canvas.source is None or self.canvas.surface is None:
            return

        surface = self.canvas.surface
        if not self.session.lifecycle.is_ready:
            QMessageBox.information(self, "Backend Not Ready", "Load the backend first.")
            return
        if self.session.coordinator.is_busy:
            logger.error("Process triggered while a job is still running")
            return

        image_buffer = PixelBuffer.from_image(self.canvas.source)
        strokes = surface.strokes
        mask = surface.snapshot()
        try:
            handle = self.session.submit(image_buffer, mask)
        except InpaintingError as e:
            surface.restore(mask, strokes)
            self.canvas.reload_mask()
            if isinstance(e, BackendNotReady):
                QMessageBox.information(self, "Backend Not Ready", "Load the backend first.")
            elif isinstance(e, JobInFlight):
                logger.error(f"Process triggered while busy: {e}")
            else:
                logger.error(f"Job could not be submitted: {e}")
                QMessageBox.warning(self, "Processing Failed", str(e))
            return

        self.canvas.reload_mask()
        handle.add_done_callback(self.job_finished.emit)
        self._update_controls()

    def on_job_finished(self, result: JobResult) -> None:
        if result.success and self.canvas.source is not None:
            try:
                self.rendered = self.renderer.render(result.result, self.canvas.source.size)
            except ValueError as e:
                logger.error(f"Result could not be rendered: {e}")
                self.rendered = None
            else:
                pixmap = _pil_to_pixmap(self.rendered.image)
                self.label_result.setPixmap(pixmap.scaled(
                    self.label_result.size(), Qt.KeepAspectRatio, Qt.SmoothTransformation
                ))
        elif not result.success:
            QMessageBox.warning(self, "Processing Failed", f"Processing failed: {result.error}")
        self._update_controls()

    def download_result(self) -> None:
        if self.rendered is None:
            return

        directory = QFileDialog.getExistingDirectory(self, "Select Download Folder")
        if not directory:
            return

        try:
            saved = self.renderer.export(self.rendered, Path(directory))
        except (OSError, ValueError) as e:
            QMessageBox.warning(self, "Download Failed", str(e))
            return
        QMessageBox.information(self, "Saved", f"Saved {saved.name}")

    def dragEnterEvent(self, event) -> None:
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event) -> None:
        urls = event.mimeData().urls()
        if urls:
            self.open_image(Path(urls[0].toLocalFile()))

    def closeEvent(self, event) -> None:
        self.session.close()
        super().closeEvent(event)
