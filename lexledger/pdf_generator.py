"""
LexLedger - Invoice PDF Generation

Renders an ``InvoicePrint`` (see ``lexledger.billing``) as an A4 PDF with
line items, subtotal, VAT and total.
"""

import io
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from lexledger.billing import InvoicePrint
from lexledger.config import Settings
from lexledger.timestamps import format_local


def format_money(amount: Decimal, config: Settings) -> str:
    """1234.5 -> '₺1,234.50'"""
    return f"{config.CURRENCY_SYMBOL}{Decimal(amount):,.2f}"


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='LLTitle',
        parent=styles['Title'],
        fontSize=20,
        spaceAfter=6,
    ))
    styles.add(ParagraphStyle(
        name='LLHeading',
        parent=styles['Heading2'],
        fontSize=11,
        spaceBefore=10,
        spaceAfter=4,
    ))
    styles.add(ParagraphStyle(
        name='LLBody',
        parent=styles['BodyText'],
        fontSize=9,
        leading=12,
    ))
    styles.add(ParagraphStyle(
        name='LLRight',
        parent=styles['BodyText'],
        fontSize=9,
        alignment=TA_RIGHT,
    ))
    styles.add(ParagraphStyle(
        name='LLFooter',
        parent=styles['BodyText'],
        fontSize=8,
        textColor=colors.grey,
        spaceBefore=12,
    ))
    return styles


def generate_invoice_pdf(data: InvoicePrint, config: Settings) -> bytes:
    """
    Generate the printable invoice.

    Args:
        data: Invoice, client, lines and totals from ``build_invoice_print``
        config: Settings (firm name, currency symbol)

    Returns the PDF as bytes.
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2*cm,
        leftMargin=2*cm,
        topMargin=2*cm,
        bottomMargin=2*cm,
        title=f"Invoice {data.invoice.number}",
    )
    styles = _styles()
    invoice = data.invoice
    client = data.client

    story = []

    # Header
    story.append(Paragraph(escape(config.APP_NAME), styles['LLHeading']))
    story.append(Paragraph(f"INVOICE {escape(invoice.number)}", styles['LLTitle']))
    story.append(Spacer(1, 0.3*cm))

    header_data = [
        ["Issue date:", f"{invoice.issue_date:%d.%m.%Y}", "Bill to:", client.name],
        ["Due date:", f"{invoice.due_date:%d.%m.%Y}", "Email:", client.email],
        ["Status:", invoice.status, "Tax ID:", client.tax_id or "-"],
    ]
    header_table = Table(header_data, colWidths=[2.5*cm, 4*cm, 2*cm, 8.5*cm])
    header_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
    ]))
    story.append(header_table)
    story.append(Spacer(1, 0.6*cm))

    # Line items
    rows = [["Description", "Qty", "Unit price", "Amount"]]
    for line in data.lines:
        rows.append([
            Paragraph(escape(line.description), styles['LLBody']),
            f"{line.quantity:.2f}",
            format_money(line.unit_price, config),
            format_money(line.amount, config),
        ])

    items_table = Table(rows, colWidths=[9*cm, 2*cm, 3*cm, 3*cm], repeatRows=1)
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1e3a5f')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LINEBELOW', (0, 1), (-1, -1), 0.25, colors.lightgrey),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    story.append(items_table)
    story.append(Spacer(1, 0.4*cm))

    # Totals
    totals_data = [
        ["Subtotal:", format_money(data.subtotal, config)],
        [f"VAT ({data.vat_percent}%):", format_money(data.vat_amount, config)],
        ["Total:", format_money(data.total, config)],
    ]
    totals_table = Table(totals_data, colWidths=[14*cm, 3*cm])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('LINEABOVE', (0, -1), (-1, -1), 0.75, colors.black),
    ]))
    story.append(totals_table)

    if invoice.notes:
        story.append(Paragraph("Notes", styles['LLHeading']))
        story.append(Paragraph(escape(invoice.notes), styles['LLBody']))

    story.append(Paragraph(
        f"Please quote {escape(invoice.number)} with your payment.",
        styles['LLFooter'],
    ))
    story.append(Paragraph(
        f"Printed {format_local(data.printed_at, config.TIMEZONE)}",
        styles['LLFooter'],
    ))

    doc.build(story)
    return buffer.getvalue()
