"""
Printable vehicle report (basic or comprehensive) rendered with reportlab.

Layout coordinates are in millimetres from the top-left corner of an A4 page.
"""
from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from core.vehicles.dvla import is_mot_valid, is_tax_valid
from core.vehicles.registration import format_registration

PAGE_WIDTH, PAGE_HEIGHT = A4
LINE_HEIGHT = 7
LEFT_COLUMN = 20
RIGHT_COLUMN = 105
BOTTOM_LIMIT = 275

COLOR_BRAND = colors.HexColor("#2563EB")
RISK_COLORS = {
    "low": colors.HexColor("#008000"),
    "medium": colors.HexColor("#FFA500"),
    "high": colors.HexColor("#FF0000"),
}

REPORT_TYPES = ("basic", "comprehensive")


class _ReportCanvas:
    """Thin wrapper tracking the write position and starting new pages as needed."""

    def __init__(self, buffer: BytesIO, title: str):
        self.c = canvas.Canvas(buffer, pagesize=A4)
        self.c.setTitle(title)
        self.y = 0.0

    def _pt(self, y_mm: float) -> float:
        return PAGE_HEIGHT - y_mm * mm

    def ensure_room(self, needed: float = LINE_HEIGHT) -> None:
        if self.y + needed > BOTTOM_LIMIT:
            self.c.showPage()
            self.y = 20

    def text(self, x: float, value: str, font: str = "Helvetica", size: int = 10, color=colors.black) -> None:
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        self.c.drawString(x * mm, self._pt(self.y), value)
        self.c.setFillColor(colors.black)

    def centered(self, value: str, font: str, size: int, color=colors.black) -> None:
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        self.c.drawCentredString(PAGE_WIDTH / 2, self._pt(self.y), value)
        self.c.setFillColor(colors.black)

    def heading(self, value: str) -> None:
        self.y += 5
        self.ensure_room(20)
        self.text(LEFT_COLUMN, value, "Helvetica-Bold", 14)
        self.y += 10

    def pair(self, x: float, key: str, value) -> None:
        self.text(x, key, "Helvetica-Bold")
        self.text(x + 30, "N/A" if value in (None, "") else str(value))

    def row(self, left: tuple, right: Optional[tuple] = None) -> None:
        self.ensure_room()
        self.pair(LEFT_COLUMN, *left)
        if right:
            self.pair(RIGHT_COLUMN, *right)
        self.y += LINE_HEIGHT


def _gbp(value) -> str:
    try:
        return f"£{int(value):,}"
    except (TypeError, ValueError):
        return "N/A"


def _engine(cc) -> str:
    try:
        return f"{int(cc) / 1000:.1f}L"
    except (TypeError, ValueError):
        return "N/A"


def report_from_dvla(vehicle: dict, today: Optional[date] = None) -> dict:
    """Map a DVLA vehicle enquiry payload onto the report shape used for basic PDFs."""
    return {
        "registration": vehicle.get("registrationNumber"),
        "make": vehicle.get("make"),
        "model": vehicle.get("model"),
        "color": vehicle.get("colour"),
        "yearOfManufacture": vehicle.get("yearOfManufacture"),
        "engineSize": vehicle.get("engineCapacity"),
        "fuelType": vehicle.get("fuelType"),
        "motStatus": {"isValid": is_mot_valid(vehicle, today), "dueDate": vehicle.get("motExpiryDate")},
        "taxStatus": {"isValid": is_tax_valid(vehicle, today), "co2Emissions": vehicle.get("co2Emissions")},
    }


def build_vehicle_report_pdf(report: dict, report_type: str = "basic", today: Optional[date] = None) -> bytes:
    """
    Render a report dict (the flattened full-report shape) to PDF bytes.
    Comprehensive reports add risk, history and valuation sections when the data has them.
    """
    if report_type not in REPORT_TYPES:
        raise ValueError(f"Unknown report type: {report_type}")
    today = today or date.today()

    registration = format_registration(report.get("registration") or "")
    buffer = BytesIO()
    pdf = _ReportCanvas(buffer, f"AutoAudit vehicle report {registration}")

    pdf.y = 20
    pdf.centered(f"{report_type.upper()} VEHICLE REPORT", "Helvetica-Bold", 20, COLOR_BRAND)
    pdf.y = 30
    pdf.centered(registration or "Unknown registration", "Helvetica-Bold", 16)

    pdf.y = 35
    pdf.heading("Vehicle Details")
    pdf.row(("Make:", report.get("make")), ("Model:", report.get("model")))
    pdf.row(("Year:", report.get("yearOfManufacture")), ("Color:", report.get("color")))
    pdf.row(("Fuel Type:", report.get("fuelType")), ("Engine Size:", _engine(report.get("engineSize"))))

    mot = report.get("motStatus") or {}
    tax = report.get("taxStatus") or {}
    pdf.heading("MOT & Tax Status")
    pdf.row(
        ("MOT Status:", "Valid" if mot.get("isValid") else "Not Valid"),
        ("Tax Status:", "Valid" if tax.get("isValid") else "Not Valid"),
    )
    co2 = tax.get("co2Emissions")
    pdf.row(("MOT Due Date:", mot.get("dueDate")), ("CO2 Emissions:", f"{co2} g/km" if co2 else None))

    history = report.get("history")
    if report_type == "comprehensive" and history:
        risk = report.get("riskAssessment")
        if risk:
            pdf.heading("Risk Assessment")
            level = risk.get("level") or "low"
            pdf.text(LEFT_COLUMN, f"{level.upper()} RISK", "Helvetica-Bold", 12, RISK_COLORS.get(level, colors.black))
            pdf.y += LINE_HEIGHT
            pdf.text(LEFT_COLUMN, risk.get("description") or "")
            pdf.y += LINE_HEIGHT
            alerts = risk.get("alerts") or []
            if alerts:
                pdf.text(LEFT_COLUMN, "Alerts:")
                pdf.y += 5
                for alert in alerts:
                    pdf.ensure_room(5)
                    pdf.text(LEFT_COLUMN + 5, f"- {alert}")
                    pdf.y += 5

        pdf.heading("Vehicle History")
        write_off = f"Category {history.get('writeOffCategory')}" if history.get("isWriteOff") else "Clear"
        pdf.row(("Stolen Status:", "STOLEN" if history.get("isStolen") else "Clear"), ("Write-Off Status:", write_off))
        pdf.row(
            ("Finance:", "YES" if history.get("hasOutstandingFinance") else "No"),
            ("Mileage Issue:", "YES" if history.get("hasMileageDiscrepancy") else "No"),
        )

        valuation = report.get("valuation")
        if valuation:
            pdf.heading("Valuation")
            retail = valuation.get("retail") or {}
            trade = valuation.get("trade") or {}
            pdf.row(("Retail:", _gbp(retail.get("excellent"))), ("Trade clean:", _gbp(trade.get("clean"))))
            pdf.row(("Retail good:", _gbp(retail.get("good"))), ("Trade avg:", _gbp(trade.get("average"))))
            pdf.row(("Retail avg:", _gbp(retail.get("average"))), ("Trade below:", _gbp(trade.get("below"))))

        performance = report.get("performance")
        if performance:
            pdf.heading("Performance")
            pdf.row(("Power:", performance.get("power")), ("Top Speed:", performance.get("topSpeed")))

    pdf.c.setFont("Helvetica", 8)
    pdf.c.drawCentredString(PAGE_WIDTH / 2, PAGE_HEIGHT - 290 * mm, "Generated by AutoAudit")
    pdf.c.drawRightString(190 * mm, PAGE_HEIGHT - 290 * mm, f"Generated on: {today.strftime('%d/%m/%Y')}")
    pdf.c.showPage()
    pdf.c.save()
    return buffer.getvalue()


__all__ = ["REPORT_TYPES", "build_vehicle_report_pdf", "report_from_dvla"]
