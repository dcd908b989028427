from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from produce_sync.core.metrics import measure_time
from produce_sync.domain.models import QueuedOrder, now_utc

TITLE_TEXT = "Pedidos pendentes de sincronização"
INTRO_TEXT = (
    "Pedidos de compra gravados neste aparelho que ainda não chegaram ao servidor. "
    "Serão enviados automaticamente quando a conexão voltar."
)
UNIT_LABELS = {"cx": "Caixa", "kg": "Kg"}


def _ensure_pdf_extension(path: Path) -> Path:
    if path.suffix.lower() == ".pdf":
        return path
    return path.with_suffix(".pdf")


def _format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "--"
    return value.strftime("%d/%m/%Y %H:%M")


def _format_number(value: float | None) -> str:
    if value is None:
        return "--"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".replace(".", ",")


def _order_table(order: QueuedOrder) -> Table:
    data = [["Produto", "Qtd", "Unidade", "Kg estimado"]]
    for item in order.items:
        data.append(
            [
                item.product_name or item.product_id,
                _format_number(item.quantity),
                UNIT_LABELS.get(item.unit, item.unit),
                _format_number(item.estimated_kg),
            ]
        )
    data.append(["Total", "", "", _format_number(order.total_estimated_kg)])

    table = Table(data, repeatRows=1, colWidths=[8 * cm, 2.5 * cm, 2.5 * cm, 3 * cm])
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#E5E7EB")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -2), [colors.white, colors.HexColor("#F9FAFB")]),
            ]
        )
    )
    return table


class ReportlabPendingOrdersReport:
    """One table per queued order, oldest first."""

    @measure_time("latency.pdf_pending_orders_ms")
    def build_report(self, orders: Iterable[QueuedOrder], destination: Path) -> Path:
        orders_list = sorted(orders, key=lambda order: (order.created_at is None, order.created_at or now_utc()))
        if not orders_list:
            raise ValueError("Nenhum pedido pendente para gerar o PDF.")

        destination = _ensure_pdf_extension(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        doc = SimpleDocTemplate(
            str(destination),
            pagesize=A4,
            topMargin=2.0 * cm,
            bottomMargin=2.0 * cm,
            leftMargin=2.0 * cm,
            rightMargin=2.0 * cm,
            title=TITLE_TEXT,
        )
        styles = getSampleStyleSheet()
        styles.add(ParagraphStyle(name="Body", parent=styles["BodyText"], leading=14, spaceAfter=12))
        styles.add(ParagraphStyle(name="OrderHeading", parent=styles["Heading3"], spaceBefore=6, spaceAfter=4))

        story = [
            Paragraph(TITLE_TEXT, styles["Title"]),
            Paragraph(INTRO_TEXT, styles["Body"]),
            Paragraph(f"Gerado em {_format_timestamp(now_utc())} (UTC) - {len(orders_list)} pedido(s)", styles["Body"]),
        ]
        for order in orders_list:
            heading = f"Pedido {order.id[:8]} - {_format_timestamp(order.created_at)}"
            if order.supplier_id:
                heading += f" - Fornecedor {escape(order.supplier_id)}"
            block = [Paragraph(heading, styles["OrderHeading"]), _order_table(order)]
            if order.notes:
                block.append(Paragraph(f"Obs.: {escape(order.notes)}", styles["Body"]))
            story.append(KeepTogether(block))
            story.append(Spacer(1, 0.4 * cm))

        doc.build(story)
        return destination
