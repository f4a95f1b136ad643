"""Printable HTML rendering of a stored invoice."""
from datetime import UTC, datetime
from html import escape

from models import Invoice
from timeutils import parse_datetime


def format_date(value: datetime | str) -> str:
    """Long calendar form in UTC, e.g. "January 5, 2024"."""
    if isinstance(value, str):
        value = parse_datetime(value)
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return f"{value:%B} {value.day}, {value.year}"


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


def format_hours(hours: float) -> str:
    # 2.0 -> "2", 1.5 -> "1.5", 12345.25 -> "12345.25"
    return f"{hours:.2f}".rstrip("0").rstrip(".")


def _sub(text: str) -> str:
    return f'<p class="sub">{escape(text)}</p>' if text else ""


def _city_line(city: str, state: str, zip_code: str) -> str:
    if not (city or state or zip_code):
        return ""
    line = ", ".join(part for part in (city, state) if part)
    if zip_code:
        line = f"{line} {zip_code}" if line else zip_code
    return _sub(line)


STYLE = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; color: #1a1a1a; line-height: 1.6; padding: 40px; max-width: 800px; margin: 0 auto; }
        .header { display: flex; justify-content: space-between; align-items: flex-start; margin-bottom: 40px; padding-bottom: 20px; border-bottom: 2px solid #f97316; }
        .company-info { max-width: 300px; }
        .sub { font-size: 13px; color: #666; margin-top: 2px; }
        .logo { font-size: 28px; font-weight: 700; line-height: 32px; margin-bottom: 16px; }
        .logo span { color: #f97316; }
        .invoice-info { text-align: right; }
        .invoice-number { font-size: 24px; font-weight: 600; color: #f97316; }
        .invoice-date { color: #666; margin-top: 4px; }
        .status { display: inline-block; padding: 4px 12px; border-radius: 20px; font-size: 12px; font-weight: 600; text-transform: uppercase; margin-top: 8px; }
        .status.paid { background: #dcfce7; color: #16a34a; }
        .status.unpaid { background: #fef3c7; color: #d97706; }
        .details { display: grid; grid-template-columns: 1fr 1fr; gap: 40px; margin-bottom: 40px; }
        .detail-section h3 { font-size: 12px; text-transform: uppercase; letter-spacing: 0.5px; color: #666; margin-bottom: 8px; }
        .detail-section p { font-size: 16px; font-weight: 500; }
        table { width: 100%; border-collapse: collapse; margin-bottom: 24px; }
        th { text-align: left; padding: 12px 16px; background: #f5f5f5; font-size: 12px; text-transform: uppercase; color: #666; border-bottom: 2px solid #e5e5e5; }
        th.right, td.right { text-align: right; }
        td { padding: 12px 16px; border-bottom: 1px solid #e5e5e5; }
        .totals { display: flex; justify-content: flex-end; }
        .totals-table { width: 280px; }
        .totals-table .label { color: #666; }
        .totals-table .total-row td { font-size: 18px; font-weight: 600; border-top: 2px solid #1a1a1a; }
        .totals-table .total-row .amount { color: #f97316; }
        .footer { margin-top: 60px; padding-top: 20px; border-top: 1px solid #e5e5e5; text-align: center; color: #999; font-size: 13px; }
        @media print {
            body { padding: 20px; }
            .status { print-color-adjust: exact; -webkit-print-color-adjust: exact; }
        }
"""


def render_invoice_html(invoice: Invoice) -> str:
    """Generate printable HTML for an invoice.

    Every value comes from the stored snapshot; blank optional fields
    leave their row out entirely.
    """
    number = escape(invoice.invoice_number)
    status = escape(invoice.status)
    rate = format_currency(invoice.client_rate)

    company_name = escape(invoice.company_name) if invoice.company_name else "<span>Generic Company</span>"

    job_title = escape(invoice.job_name)
    if invoice.job_number:
        job_title += f' <span class="sub"><b>{escape(invoice.job_number)}</b></span>'

    attention = _sub(f"Attn: {invoice.contact_name}") if invoice.contact_name else ""

    rows = ""
    for item in invoice.line_items:
        rows += f"""
                    <tr>
                        <td>{format_date(item["date"])}</td>
                        <td>{escape(item["description"])}</td>
                        <td class="right">{format_hours(item["hours"])}h</td>
                        <td class="right">{format_currency(item["amount"])}</td>
                    </tr>
        """

    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Invoice {number}</title>
    <style>{STYLE}    </style>
</head>
<body>
    <div class="header">
        <div class="company-info">
            <div class="logo">{company_name}</div>
            {_sub(invoice.company_contact_name)}
            {_sub(invoice.company_street)}
            {_city_line(invoice.company_city, invoice.company_state, invoice.company_zip)}
            {_sub(invoice.company_contact_phone)}
            {_sub(invoice.company_contact_email)}
            {_sub(invoice.company_website)}
        </div>
        <div class="invoice-info">
            <div class="invoice-number">{number}</div>
            <div class="invoice-date">Issued: {format_date(invoice.created_at)}</div>
            <span class="status {status}">{status}</span>
        </div>
    </div>

    <div class="details">
        <div class="detail-section">
            <h3>Bill To</h3>
            <p>{escape(invoice.client_name)}</p>
            {_sub(invoice.client_street)}
            {_city_line(invoice.client_city, invoice.client_state, invoice.client_zip)}
        </div>
        <div class="detail-section">
            <h3>Job / Purchase Order</h3>
            <p>{job_title}</p>
            {attention}
            {_sub(invoice.contact_email)}
            {_sub(f"Period: {format_date(invoice.start_date)} - {format_date(invoice.end_date)}")}
            {_sub(f"Rate: {rate}/hour")}
        </div>
    </div>

    <table>
        <thead>
            <tr>
                <th>Date</th>
                <th>Description</th>
                <th class="right">Hours</th>
                <th class="right">Amount</th>
            </tr>
        </thead>
        <tbody>{rows}
        </tbody>
    </table>

    <div class="totals">
        <table class="totals-table">
            <tr>
                <td class="label">Total Hours</td>
                <td class="right">{format_hours(invoice.total_hours)}h</td>
            </tr>
            <tr>
                <td class="label">Rate</td>
                <td class="right">{rate}/hr</td>
            </tr>
            <tr class="total-row">
                <td>Total Due</td>
                <td class="right amount">{format_currency(invoice.total_amount)}</td>
            </tr>
        </table>
    </div>

    <div class="footer">
        <p>Thank you for your business!</p>
    </div>
</body>
</html>
"""
    return html
