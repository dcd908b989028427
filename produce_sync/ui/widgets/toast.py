from __future__ import annotations

import html
import logging
from dataclasses import dataclass

from PySide6.QtCore import QPoint, Qt, QTimer, Signal
from PySide6.QtWidgets import QFrame, QGridLayout, QLabel, QToolButton, QWidget

logger = logging.getLogger(__name__)

MAX_VISIBLE_TOASTS = 3
TOAST_MARGIN_PX = 16
TOAST_SPACING_PX = 8


@dataclass(frozen=True)
class ToastLook:
    glyph: str
    accent: str
    default_duration_ms: int


LOOKS = {
    "success": ToastLook("✔", "#2E8B57", 3000),
    "warning": ToastLook("!", "#C8871E", 5000),
    "error": ToastLook("✖", "#C0392B", 8000),
}
LEVELS = tuple(LOOKS)

_STYLE = """
QFrame#syncToast {{ background: #FCFCFC; border: 1px solid #D9D9D9; border-left: 5px solid {accent}; border-radius: 6px; }}
QLabel#syncToastGlyph {{ color: {accent}; font-weight: bold; }}
QToolButton#syncToastClose {{ border: 0; }}
"""


class ToastWidget(QFrame):
    """A notification card. Hides itself after ``duration_ms``; 0 keeps it until closed."""

    closed = Signal(object)

    def __init__(
        self,
        message: str,
        level: str = "success",
        title: str | None = None,
        duration_ms: int | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        if level not in LOOKS:
            logger.warning("Unknown toast level %r shown as warning", level)
            level = "warning"
        look = LOOKS[level]
        self.level = level
        self.message = message
        self.title = title
        self.duration_ms = look.default_duration_ms if duration_ms is None else max(0, int(duration_ms))
        self._dismissed = False

        self.setObjectName("syncToast")
        self.setStyleSheet(_STYLE.format(accent=look.accent))
        self.setFixedWidth(340)

        glyph = QLabel(look.glyph)
        glyph.setObjectName("syncToastGlyph")
        body = QLabel(self._body_html())
        body.setTextFormat(Qt.TextFormat.RichText)
        body.setWordWrap(True)
        close = QToolButton()
        close.setObjectName("syncToastClose")
        close.setText("✕")
        close.clicked.connect(self.dismiss)

        grid = QGridLayout(self)
        grid.setContentsMargins(12, 8, 6, 8)
        grid.addWidget(glyph, 0, 0, Qt.AlignmentFlag.AlignTop)
        grid.addWidget(body, 0, 1)
        grid.addWidget(close, 0, 2, Qt.AlignmentFlag.AlignTop)
        grid.setColumnStretch(1, 1)

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self.dismiss)
        if self.duration_ms:
            self._timer.start(self.duration_ms)

    @property
    def auto_hide_active(self) -> bool:
        return self._timer.isActive()

    def dismiss(self) -> None:
        if self._dismissed:
            return
        self._dismissed = True
        self._timer.stop()
        self.hide()
        self.closed.emit(self)
        self.deleteLater()

    def _body_html(self) -> str:
        text = html.escape(self.message)
        if self.title:
            return f"<b>{html.escape(self.title)}</b><br>{text}"
        return text


class ToastManager:
    """Stacks toasts in the bottom-right corner of ``host``, newest at the bottom.

    ``success``, ``warning`` and ``error`` are the methods ``ToastNotifier`` calls.
    """

    def __init__(self, host: QWidget) -> None:
        self._host = host
        self._toasts: list[ToastWidget] = []

    @property
    def visible_toasts(self) -> list[ToastWidget]:
        return list(self._toasts)

    def success(self, message: str, *, title: str | None = None, duration_ms: int | None = None) -> ToastWidget:
        return self.show_toast(message, level="success", title=title, duration_ms=duration_ms)

    def warning(self, message: str, *, title: str | None = None, duration_ms: int | None = None) -> ToastWidget:
        return self.show_toast(message, level="warning", title=title, duration_ms=duration_ms)

    def error(self, message: str, *, title: str | None = None, duration_ms: int | None = None) -> ToastWidget:
        return self.show_toast(message, level="error", title=title, duration_ms=duration_ms)

    def show_toast(self, message: str, *, level: str, title: str | None = None, duration_ms: int | None = None) -> ToastWidget:
        while len(self._toasts) >= MAX_VISIBLE_TOASTS:
            self._toasts[0].dismiss()

        toast = ToastWidget(message, level=level, title=title, duration_ms=duration_ms, parent=self._host)
        toast.closed.connect(self._forget)
        self._toasts.append(toast)
        toast.show()
        toast.raise_()
        self._layout_stack()
        return toast

    def clear(self) -> None:
        for toast in list(self._toasts):
            toast.dismiss()

    def _forget(self, toast: ToastWidget) -> None:
        if toast in self._toasts:
            self._toasts.remove(toast)
            self._layout_stack()

    def _layout_stack(self) -> None:
        y = self._host.height() - TOAST_MARGIN_PX
        for toast in reversed(self._toasts):
            toast.adjustSize()
            y -= toast.height()
            x = self._host.width() - toast.width() - TOAST_MARGIN_PX
            toast.move(QPoint(max(TOAST_MARGIN_PX, x), max(TOAST_MARGIN_PX, y)))
            y -= TOAST_SPACING_PX
