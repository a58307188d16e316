from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor, QIcon, QPixmap
from PySide6.QtWidgets import (
    QColorDialog,
    QDoubleSpinBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QPushButton,
    QSlider,
    QSplitter,
    QStatusBar,
    QVBoxLayout,
    QWidget,
)
from pyvistaqt import QtInteractor

from regions3d.api import RegionVisualizer
from regions3d.core.alignment import describe_grid
from regions3d.core.colors import to_rgb255
from regions3d.core.models import ProjectConfig
from regions3d.gui.bridge import RegionSignals
from regions3d.gui.scene import PyVistaScene
from regions3d.gui.status import StatusController
from regions3d.gui.workers import FunctionWorker, ProcessRegionsWorker

VOLUME_FILTER = "Volumes (*.nii *.nii.gz *.nrrd *.nhdr);;All files (*.*)"
PREVIEW_ACTOR = "intensity_preview"


def _swatch(color) -> QIcon:
    pixmap = QPixmap(14, 14)
    pixmap.fill(QColor(*to_rgb255(color)))
    return QIcon(pixmap)


class MainWindow(QMainWindow):
    """
    Main window for the regions3d viewer.

    Left: loading, gray window and region list. Right: the 3D view.
    """

    def __init__(
        self,
        project: Optional[ProjectConfig] = None,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)

        self.setWindowTitle("regions3d – label regions in 3D")
        self.resize(1200, 750)

        self.project = project or ProjectConfig()
        self.viz = RegionVisualizer(self.project.regions)
        self.signals = RegionSignals(self.viz.events, parent=self)

        self.status_bar: QStatusBar
        self.status_controller: StatusController
        self._items: Dict[int, QListWidgetItem] = {}

        self._create_status_bar()
        self._create_central_widgets()
        self._connect_signals()

        self.scene = PyVistaScene(self.plotter)
        self.viz.set_scene(self.scene)

        self._load_project_inputs()

    # ------------------------------------------------------------------ #
    # UI creation helpers
    # ------------------------------------------------------------------ #
    def _create_status_bar(self) -> None:
        self.status_bar = QStatusBar(self)
        self.setStatusBar(self.status_bar)
        self.status_controller = StatusController(self.status_bar, parent=self)

    def _create_central_widgets(self) -> None:
        splitter = QSplitter(Qt.Horizontal, self)

        panel = QWidget(splitter)
        layout = QVBoxLayout(panel)

        # Inputs
        inputs_group = QGroupBox("Volumes", panel)
        inputs_layout = QFormLayout(inputs_group)
        self.intensity_btn = QPushButton("Load intensity...")
        self.labels_btn = QPushButton("Load labels...")
        self.intensity_label = QLabel("none")
        self.labels_label = QLabel("none")
        inputs_layout.addRow(self.intensity_btn, self.intensity_label)
        inputs_layout.addRow(self.labels_btn, self.labels_label)
        layout.addWidget(inputs_group)

        # Gray window
        window_group = QGroupBox("Gray window", panel)
        window_layout = QFormLayout(window_group)
        self.min_gray_spin = QDoubleSpinBox()
        self.max_gray_spin = QDoubleSpinBox()
        for spin in (self.min_gray_spin, self.max_gray_spin):
            spin.setRange(-1e6, 1e6)
            spin.setDecimals(1)
        window = self.project.gray_window
        if window is not None:
            self.min_gray_spin.setValue(window.min_gray)
            self.max_gray_spin.setValue(window.max_gray)
        window_layout.addRow("Min", self.min_gray_spin)
        window_layout.addRow("Max", self.max_gray_spin)
        layout.addWidget(window_group)

        buttons = QHBoxLayout()
        self.process_btn = QPushButton("Process regions")
        self.preview_btn = QPushButton("Preview intensity")
        buttons.addWidget(self.process_btn)
        buttons.addWidget(self.preview_btn)
        layout.addLayout(buttons)

        # Regions
        regions_group = QGroupBox("Regions", panel)
        regions_layout = QVBoxLayout(regions_group)
        self.region_list = QListWidget()
        regions_layout.addWidget(self.region_list)

        opacity_row = QHBoxLayout()
        opacity_row.addWidget(QLabel("Opacity"))
        self.opacity_slider = QSlider(Qt.Horizontal)
        self.opacity_slider.setRange(0, 100)
        self.opacity_slider.setValue(100)
        self.opacity_slider.setEnabled(False)
        opacity_row.addWidget(self.opacity_slider)
        regions_layout.addLayout(opacity_row)

        row = QHBoxLayout()
        self.show_all_btn = QPushButton("Show all")
        self.hide_all_btn = QPushButton("Hide all")
        self.color_btn = QPushButton("Color...")
        row.addWidget(self.show_all_btn)
        row.addWidget(self.hide_all_btn)
        row.addWidget(self.color_btn)
        regions_layout.addLayout(row)

        row = QHBoxLayout()
        self.sort_btn = QPushButton("Sort by camera")
        self.export_btn = QPushButton("Export info...")
        row.addWidget(self.sort_btn)
        row.addWidget(self.export_btn)
        regions_layout.addLayout(row)
        layout.addWidget(regions_group, stretch=1)

        self.plotter = QtInteractor(splitter)
        self.plotter.set_background("black")
        self.plotter.add_axes()

        splitter.addWidget(panel)
        splitter.addWidget(self.plotter.interactor)
        splitter.setStretchFactor(1, 1)
        self.setCentralWidget(splitter)
        self._update_buttons()

    def _connect_signals(self) -> None:
        self.intensity_btn.clicked.connect(self._on_load_intensity)
        self.labels_btn.clicked.connect(self._on_load_labels)
        self.process_btn.clicked.connect(self._on_process)
        self.preview_btn.clicked.connect(self._on_preview)
        self.show_all_btn.clicked.connect(lambda: self.viz.set_all_regions_visible(True))
        self.hide_all_btn.clicked.connect(lambda: self.viz.set_all_regions_visible(False))
        self.color_btn.clicked.connect(self._on_pick_color)
        self.sort_btn.clicked.connect(self._on_sort)
        self.export_btn.clicked.connect(self._on_export)
        self.opacity_slider.valueChanged.connect(self._on_opacity)
        self.region_list.itemChanged.connect(self._on_item_changed)
        self.region_list.currentItemChanged.connect(self._on_current_changed)

        self.signals.error.connect(self.status_controller.show_message)
        self.signals.regionVisibilityChanged.connect(self._on_visibility_changed)

    def _update_buttons(self) -> None:
        has_regions = self.viz.has_processed_regions()
        self.process_btn.setEnabled(self.viz.has_intensity_data() and self.viz.has_label_data())
        self.preview_btn.setEnabled(self.viz.has_intensity_data())
        for btn in (self.show_all_btn, self.hide_all_btn, self.sort_btn, self.export_btn, self.color_btn):
            btn.setEnabled(has_regions)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def _load_project_inputs(self) -> None:
        if self.project.intensity_path is not None:
            self._load_intensity(self.project.intensity_path)
        if self.project.label_path is not None:
            self._load_labels(self.project.label_path)

    def _ask_path(self, title: str) -> Optional[Path]:
        path, _ = QFileDialog.getOpenFileName(self, title, "", VOLUME_FILTER)
        return Path(path) if path else None

    def _on_load_intensity(self) -> None:
        path = self._ask_path("Select intensity volume")
        if path is not None:
            self._load_intensity(path)

    def _on_load_labels(self) -> None:
        path = self._ask_path("Select label volume")
        if path is not None:
            self._load_labels(path)

    def _load_intensity(self, path: Path) -> None:
        if self.viz.load_intensity_volume(path):
            volume = self.viz.intensity_volume
            self.intensity_label.setText(path.name)
            self.intensity_label.setToolTip(describe_grid(volume, "Intensity"))
            if self.project.gray_window is None:
                vmin, vmax = volume.scalar_range
                self.min_gray_spin.setValue(vmin)
                self.max_gray_spin.setValue(vmax)
            self.status_controller.show_message(f"Loaded intensity volume {path.name}")
        self._update_buttons()

    def _load_labels(self, path: Path) -> None:
        if self.viz.load_label_volume(path):
            self.labels_label.setText(path.name)
            self.labels_label.setToolTip(describe_grid(self.viz.label_volume, "Labels"))
            self.status_controller.show_message(f"Loaded label volume {path.name}")
        self._update_buttons()

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #
    def _on_process(self) -> None:
        if self.status_controller.busy:
            return
        self.plotter.remove_actor(PREVIEW_ACTOR, render=False)
        self.viz.set_scene(None)
        worker = ProcessRegionsWorker(
            self.viz,
            self.min_gray_spin.value(),
            self.max_gray_spin.value(),
        )
        self.status_controller.run_threaded(
            worker,
            title="Building region surfaces...",
            on_success=self._on_processed,
            on_error=lambda _message: self._reattach_scene(),
        )

    def _reattach_scene(self) -> None:
        self.viz.set_scene(self.scene)
        self._populate_region_list()
        self._update_buttons()

    def _on_processed(self, ok: object) -> None:
        self._reattach_scene()
        if ok:
            self.plotter.reset_camera()
            self._on_sort()
            built = sum(1 for r in self.viz.registry if r.has_geometry)
            self.status_controller.show_message(
                f"{built} of {self.viz.region_count()} region(s) have geometry"
            )

    def _on_preview(self) -> None:
        if self.status_controller.busy:
            return
        self.viz.set_gray_window(self.min_gray_spin.value(), self.max_gray_spin.value())
        worker = FunctionWorker(self.viz.preview_intensity_surface)
        self.status_controller.run_threaded(
            worker, title="Extracting intensity preview...", on_success=self._show_preview
        )

    def _show_preview(self, surface: object) -> None:
        if surface is None:
            return
        self.plotter.add_mesh(
            surface, name=PREVIEW_ACTOR, color="white", opacity=0.3, smooth_shading=True
        )
        self.plotter.reset_camera()

    # ------------------------------------------------------------------ #
    # Region list
    # ------------------------------------------------------------------ #
    def _populate_region_list(self) -> None:
        self.region_list.blockSignals(True)
        self.region_list.clear()
        self._items.clear()
        for label in self.viz.get_all_labels():
            region = self.viz.get_region(label)
            text = f"Region {label}" if region.has_geometry else f"Region {label} (no geometry)"
            item = QListWidgetItem(_swatch(region.color), text)
            item.setData(Qt.UserRole, label)
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
            item.setCheckState(Qt.Checked if region.visible else Qt.Unchecked)
            if not region.has_geometry:
                item.setForeground(QColor("gray"))
            self.region_list.addItem(item)
            self._items[label] = item
        self.region_list.blockSignals(False)

    def _current_label(self) -> Optional[int]:
        item = self.region_list.currentItem()
        return None if item is None else int(item.data(Qt.UserRole))

    def _on_item_changed(self, item: QListWidgetItem) -> None:
        label = int(item.data(Qt.UserRole))
        self.viz.set_region_visible(label, item.checkState() == Qt.Checked)

    def _on_visibility_changed(self, label: int, visible: bool) -> None:
        item = self._items.get(label)
        if item is None:
            return
        self.region_list.blockSignals(True)
        item.setCheckState(Qt.Checked if visible else Qt.Unchecked)
        self.region_list.blockSignals(False)

    def _on_current_changed(self, current: Optional[QListWidgetItem], _previous=None) -> None:
        self.opacity_slider.setEnabled(current is not None)
        if current is None:
            return
        label = int(current.data(Qt.UserRole))
        self.opacity_slider.blockSignals(True)
        self.opacity_slider.setValue(int(round(self.viz.get_region_opacity(label) * 100)))
        self.opacity_slider.blockSignals(False)

    def _on_opacity(self, value: int) -> None:
        label = self._current_label()
        if label is not None:
            self.viz.set_region_opacity(label, value / 100.0)

    def _on_pick_color(self) -> None:
        label = self._current_label()
        if label is None:
            return
        current = QColor(*to_rgb255(self.viz.get_region_color(label)))
        color = QColorDialog.getColor(current, self, f"Color of region {label}")
        if not color.isValid():
            return
        if self.viz.set_region_color(label, (color.redF(), color.greenF(), color.blueF())):
            self._items[label].setIcon(_swatch(self.viz.get_region_color(label)))

    def _on_sort(self) -> None:
        position = self.plotter.camera_position[0]
        order = self.viz.sort_by_camera(position)
        self.status_controller.show_message(f"Draw order: {order}")

    def _on_export(self) -> None:
        path, _ = QFileDialog.getSaveFileName(
            self, "Export region info", "regions.txt", "Text files (*.txt);;All files (*.*)"
        )
        if path and self.viz.export_region_info(path):
            self.status_controller.show_message(f"Region info written to {path}")
