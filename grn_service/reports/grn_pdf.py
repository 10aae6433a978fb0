import io
import logging
from typing import List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.styles import getSampleStyleSheet

from grn_service.models.grn import GoodsReceiptNote

logger = logging.getLogger(__name__)

HEADER_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
    ('BACKGROUND', (0, 1), (-1, -1), colors.beige),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
    ('FONTSIZE', (0, 0), (-1, -1), 8),
]

def _qty(value: float) -> str:
    return f"{value:g}"

def render_grn_pdf(grn: GoodsReceiptNote) -> bytes:
    """Printable GRN: header, receipt lines with inspection outcome, transition history."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"GRN {grn.grn_no}")
    styles = getSampleStyleSheet()
    story = []

    story.append(Paragraph(f"Goods Receipt Note {grn.grn_no}", styles['Title']))
    story.append(Spacer(1, 8))

    header = [
        ["PO Number", grn.po_no, "Status", grn.status.value.replace("_", " ").title()],
        ["Supplier", grn.supplier_name or grn.supplier_id or "-", "Receipt Date", grn.receipt_date.strftime("%Y-%m-%d")],
        ["Stock Entry", grn.stock_entry_no or "-", "Created By", grn.created_by or "-"],
    ]
    t = Table(header, colWidths=[80, 170, 80, 170])
    t.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
    ]))
    story.append(t)
    if grn.rejection_reason:
        story.append(Spacer(1, 6))
        story.append(Paragraph(f"<b>Rejection reason:</b> {escape(grn.rejection_reason)}", styles['Normal']))
    story.append(Spacer(1, 12))

    # Items
    story.append(Paragraph("Items", styles['Heading2']))
    data: List[List[str]] = [["Item Code", "Item Name", "Ordered", "Received", "Accepted", "Rejected",
                              "Warehouse", "Batch", "Status"]]
    for item in grn.items:
        data.append([
            item.item_code,
            (item.item_name or "")[:30],
            _qty(item.po_qty),
            _qty(item.received_qty),
            _qty(item.accepted_qty),
            _qty(item.rejected_qty),
            item.warehouse or "-",
            item.batch_no or "-",
            item.item_status.value.replace("_", " "),
        ])
    data.append(["Total", "", "", _qty(sum(i.received_qty for i in grn.items)),
                 _qty(grn.total_accepted), _qty(grn.total_rejected), "", "", ""])
    t = Table(data, repeatRows=1)
    t.setStyle(TableStyle(HEADER_STYLE + [('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold')]))
    story.append(t)
    story.append(Spacer(1, 12))

    # Audit trail
    story.append(Paragraph("History", styles['Heading2']))
    data = [["Timestamp", "Action", "From", "To", "By", "Reason"]]
    for e in grn.logs:
        reason = e.reason or ""
        data.append([
            e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            e.action,
            e.status_from,
            e.status_to,
            e.actor.display_name,
            reason[:60] + ("..." if len(reason) > 60 else ""),
        ])
    t = Table(data, colWidths=[85, 110, 75, 75, 65, 110], repeatRows=1)
    t.setStyle(TableStyle(HEADER_STYLE))
    story.append(t)

    doc.build(story)
    logger.info(f"Rendered PDF for GRN {grn.grn_no} ({len(grn.items)} items, {len(grn.logs)} log entries)")
    return buffer.getvalue()
