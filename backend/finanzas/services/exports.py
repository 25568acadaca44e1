import csv
import io
from decimal import Decimal
from typing import Any

from fpdf import FPDF

from finanzas.core.errors import InvalidInput
from finanzas.services.currency import round_money, to_foreign, to_local

EXPORT_FORMATS = ("csv", "pdf")

DATASET_TITLES = {
    "incomes": "Reporte de ingresos",
    "expenses": "Reporte de gastos",
    "balance": "Reporte de balance",
}


def format_amount(amount: Any, currency: str) -> str:
    value = round_money(amount)
    if currency == "USD":
        return f"${value:,.2f}"
    return f"C${value:,.2f}"


def format_dual(amount_local: Decimal) -> str:
    return f"{format_amount(amount_local, 'NIO')} (~ {format_amount(to_foreign(amount_local, 'NIO'), 'USD')})"


def build_range_suffix(range_payload: dict[str, Any]) -> str:
    start = range_payload.get("from") or ""
    end = range_payload.get("to") or ""
    if not start and not end:
        return "sin-rango"
    if start and end:
        return f"{start}_a_{end}"
    if start:
        return f"desde_{start}"
    return f"hasta_{end}"


def safe_pdf_text(value: Any) -> str:
    text = str(value or "")
    text = text.replace("\n", " ").replace("\r", " ")
    try:
        text.encode("latin-1")
        return text
    except UnicodeEncodeError:
        return text.encode("latin-1", "replace").decode("latin-1")


def _summary_lines(report: dict[str, Any]) -> list[tuple[str, str]]:
    if report["dataset"] == "balance":
        breakdown = report["balance_breakdown"]
        return [
            ("Ingresos", format_dual(report["incomes"]["total"])),
            ("Gastos", format_dual(report["expenses"]["total"])),
            ("Balance", format_dual(report["balance"])),
            ("Saldo bancos", format_dual(breakdown["bank"])),
            ("Saldo efectivo", format_dual(breakdown["cash"])),
        ]
    summary = report["summary"]
    lines = [("Movimientos", str(summary["count"]))]
    for currency, total in sorted(summary["totals_by_currency"].items()):
        lines.append((f"Total {currency}", format_amount(total, currency)))
    lines.append(("Total (C$)", format_dual(summary["totals"]["total"])))
    return lines


def _table(report: dict[str, Any]) -> tuple[list[str], list[list[str]]]:
    if report["dataset"] == "balance":
        headers = ["Mes", "Ingresos", "Gastos", "Neto", "Saldo inicial", "Saldo final", "Saldo final USD"]
        rows = [
            [
                bucket["month"],
                format_amount(bucket["incomes"], "NIO"),
                format_amount(bucket["expenses"], "NIO"),
                format_amount(bucket["net"], "NIO"),
                format_amount(bucket["carry_in"], "NIO"),
                format_amount(bucket["carry_out"], "NIO"),
                format_amount(to_foreign(bucket["carry_out"], "NIO"), "USD"),
            ]
            for bucket in report["series"]["by_month"]
        ]
        return headers, rows

    headers = ["Fecha", "Origen", "Moneda", "Monto", "Monto C$", "Nota"]
    rows = [
        [
            str(row.get("date") or ""),
            "Banco" if row.get("source") == "bank" else "Efectivo",
            str(row.get("currency") or ""),
            format_amount(row.get("amount"), str(row.get("currency") or "NIO")),
            format_amount(to_local(row.get("amount"), row.get("currency")), "NIO"),
            str(row.get("note") or ""),
        ]
        for row in report["rows"]
    ]
    return headers, rows


def _accounts_table(report: dict[str, Any]) -> list[list[str]]:
    rows = []
    for entry in report.get("accounts") or []:
        account = entry.get("account") or {}
        rows.append(
            [
                str(account.get("name") or "Cuenta bancaria"),
                entry["currency"],
                format_amount(entry["net"]["native"], entry["currency"]),
                format_amount(entry["net"]["nio"], "NIO"),
                format_amount(entry["net"]["usd"], "USD"),
            ]
        )
    return rows


def export_report(report: dict[str, Any], export_format: str) -> dict[str, Any]:
    if export_format not in EXPORT_FORMATS:
        raise InvalidInput("format must be csv or pdf")
    dataset = report["dataset"]
    title = DATASET_TITLES[dataset]
    suffix = build_range_suffix(report["range"])
    headers, rows = _table(report)
    account_rows = _accounts_table(report)

    if export_format == "csv":
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow([title])
        for label, value in _summary_lines(report):
            writer.writerow([label, value])
        writer.writerow([])
        writer.writerow(headers)
        writer.writerows(rows)
        if account_rows:
            writer.writerow([])
            writer.writerow(["Cuenta", "Moneda", "Saldo", "Saldo C$", "Saldo USD"])
            writer.writerows(account_rows)
        return {
            "content": output.getvalue(),
            "media_type": "text/csv",
            "filename": f"reporte_{dataset}_{suffix}.csv",
        }

    pdf = FPDF(orientation="L", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 14)
    pdf.cell(0, 8, safe_pdf_text(title), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", size=10)
    range_payload = report["range"]
    range_text = f"Rango: {range_payload.get('from') or '-'} a {range_payload.get('to') or '-'}"
    pdf.cell(0, 6, range_text, new_x="LMARGIN", new_y="NEXT")
    for label, value in _summary_lines(report):
        pdf.cell(0, 6, safe_pdf_text(f"{label}: {value}"), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(2)

    width = 270 / max(1, len(headers))
    pdf.set_font("Helvetica", "B", 9)
    for label in headers:
        pdf.cell(width, 7, label, border=1)
    pdf.ln()
    pdf.set_font("Helvetica", size=9)
    for row in rows:
        for value in row:
            cell = safe_pdf_text(value)
            if len(cell) > 40:
                cell = cell[:37] + "..."
            pdf.cell(width, 6, cell, border=1)
        pdf.ln()

    if account_rows:
        pdf.ln(4)
        pdf.set_font("Helvetica", "B", 9)
        for label in ("Cuenta", "Moneda", "Saldo", "Saldo C$", "Saldo USD"):
            pdf.cell(54, 7, label, border=1)
        pdf.ln()
        pdf.set_font("Helvetica", size=9)
        for row in account_rows:
            for value in row:
                pdf.cell(54, 6, safe_pdf_text(value)[:30], border=1)
            pdf.ln()

    return {
        "content": bytes(pdf.output()),
        "media_type": "application/pdf",
        "filename": f"reporte_{dataset}_{suffix}.pdf",
    }
