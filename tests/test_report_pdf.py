from datetime import date

import pytest

from core.vehicles.report_pdf import build_vehicle_report_pdf, report_from_dvla
from core.vehicles.vehicle_data import PLACEHOLDER_VALUATION, assess_risk

TODAY = date(2026, 10, 19)

DVLA_VEHICLE = {
    "registrationNumber": "AB12CDE",
    "make": "FORD",
    "colour": "BLUE",
    "yearOfManufacture": 2016,
    "engineCapacity": 1596,
    "fuelType": "PETROL",
    "motStatus": "Valid",
    "motExpiryDate": "2027-03-01",
    "taxStatus": "SORN",
    "co2Emissions": 120,
}


def test_report_from_dvla_maps_status_flags():
    report = report_from_dvla(DVLA_VEHICLE, today=TODAY)
    assert report["registration"] == "AB12CDE"
    assert report["color"] == "BLUE"
    assert report["engineSize"] == 1596
    assert report["motStatus"] == {"isValid": True, "dueDate": "2027-03-01"}
    assert report["taxStatus"] == {"isValid": False, "co2Emissions": 120}


def test_basic_pdf_is_rendered():
    pdf = build_vehicle_report_pdf(report_from_dvla(DVLA_VEHICLE, today=TODAY), "basic", today=TODAY)
    assert pdf.startswith(b"%PDF")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_comprehensive_pdf_adds_history_sections():
    report = report_from_dvla(DVLA_VEHICLE, today=TODAY)
    basic = build_vehicle_report_pdf(report, "basic", today=TODAY)

    report.update(
        history={
            "isStolen": False,
            "isWriteOff": True,
            "writeOffCategory": "S",
            "hasOutstandingFinance": True,
            "hasMileageDiscrepancy": False,
        },
        riskAssessment=assess_risk(False, "S", True, True, False),
        valuation=PLACEHOLDER_VALUATION,
    )
    comprehensive = build_vehicle_report_pdf(report, "comprehensive", today=TODAY)

    assert comprehensive.startswith(b"%PDF")
    assert len(comprehensive) > len(basic)


def test_unknown_report_type_is_rejected():
    with pytest.raises(ValueError):
        build_vehicle_report_pdf({"registration": "AB12CDE"}, "deluxe")
