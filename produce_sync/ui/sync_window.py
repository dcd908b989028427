from __future__ import annotations

from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from produce_sync.domain.sync_models import SyncStatus
from produce_sync.ui.sync_status_presenter import StatusDescription, describe_status

WINDOW_TITLE = "Pedidos de compra"
SYNC_BUTTON_TEXT = "Sincronizar agora"


def pending_orders_text(count: int) -> str:
    if count == 0:
        return "Nenhum pedido pendente"
    return f"{count} pedido(s) pendente(s)"


class SyncStatusPanel(QFrame):
    """Status indicator: headline, detail line, progress bar and a manual sync button."""

    sync_requested = Signal()

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("syncStatusPanel")

        self.headline_label = QLabel()
        self.headline_label.setObjectName("syncHeadline")
        self.detail_label = QLabel()
        self.detail_label.setObjectName("syncDetail")
        self.pending_label = QLabel(pending_orders_text(0))
        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.progress_bar.setVisible(False)
        self.sync_button = QPushButton(SYNC_BUTTON_TEXT)
        self.sync_button.clicked.connect(self.sync_requested.emit)

        text_col = QVBoxLayout()
        text_col.addWidget(self.headline_label)
        text_col.addWidget(self.detail_label)
        text_col.addWidget(self.pending_label)

        root = QVBoxLayout(self)
        top = QHBoxLayout()
        top.addLayout(text_col, 1)
        top.addWidget(self.sync_button)
        root.addLayout(top)
        root.addWidget(self.progress_bar)

        self.render(SyncStatus())

    def render(self, status: SyncStatus) -> StatusDescription:
        description = describe_status(status)
        self.headline_label.setText(description.headline)
        self.detail_label.setText(description.detail)
        self.sync_button.setEnabled(description.can_trigger_sync)
        self.progress_bar.setVisible(description.show_progress)
        self.progress_bar.setValue(description.progress_percent)
        return description

    def set_pending_count(self, count: int) -> None:
        self.pending_label.setText(pending_orders_text(count))


class SyncMainWindow(QMainWindow):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle(WINDOW_TITLE)
        self.status_panel = SyncStatusPanel(self)
        self.setCentralWidget(self.status_panel)
        self.resize(520, 240)
