import json
from datetime import date

import httpx
import pytest

from core.vehicles import DVLAClient, MOTHistoryClient, VehicleApiError, VehicleDataClient
from core.vehicles.dvla import (
    driver_age,
    has_valid_entitlement,
    is_licence_valid,
    is_mot_valid,
    is_tax_valid,
    total_penalty_points,
    vehicle_age,
)
from core.vehicles.mot_history import mileage_readings, summarize_history
from core.vehicles.vehicle_data import assess_risk, transform_full_report

TODAY = date(2026, 10, 19)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


# -------- DVLA --------

def test_dvla_vehicle_lookup_sends_clean_registration():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"registrationNumber": "AB12CDE", "make": "FORD", "taxStatus": "Taxed"})

    client = DVLAClient(api_key="k", client=_client(handler))
    vehicle = client.get_vehicle("ab12 cde")

    assert vehicle["make"] == "FORD"
    assert seen == {"key": "k", "body": {"registrationNumber": "AB12CDE"}}


def test_dvla_vehicle_errors():
    client = DVLAClient(api_key="k", client=_client(lambda request: httpx.Response(404, json={})))
    with pytest.raises(VehicleApiError) as exc:
        client.get_vehicle("AB12CDE")
    assert exc.value.status_code == 404
    assert exc.value.to_dict() == {
        "error": "API_ERROR",
        "message": "Vehicle not found in DVLA database",
        "statusCode": 404,
    }

    with pytest.raises(VehicleApiError) as exc:
        client.get_vehicle("NOT A REG!")
    assert exc.value.error == "INVALID_FORMAT"
    assert exc.value.status_code == 400

    with pytest.raises(VehicleApiError) as exc:
        DVLAClient(api_key="", client=_client(lambda r: httpx.Response(200))).get_vehicle("AB12CDE")
    assert exc.value.error == "CONFIGURATION_ERROR"


def test_dvla_network_failure_is_service_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(VehicleApiError) as exc:
        DVLAClient(api_key="k", client=_client(handler)).get_vehicle("AB12CDE")
    assert exc.value.error == "NETWORK_ERROR"
    assert exc.value.status_code == 503


def test_dvla_driver_lookup_uses_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"driver": {"lastName": "MORGAN"}})

    client = DVLAClient(api_key="k", driver_api_key="dk", client=_client(handler))
    result = client.get_driver("MORGA753116SM99", include_cpc=True)

    assert result["driver"]["lastName"] == "MORGAN"
    assert seen["auth"] == "Bearer dk"
    assert seen["body"]["includeCPC"] is True
    assert seen["body"]["acceptPartialResponse"] == "false"


def test_vehicle_status_helpers():
    vehicle = {
        "taxStatus": "Taxed",
        "taxDueDate": "2027-01-01",
        "motStatus": "Valid",
        "motExpiryDate": "2026-10-01",
        "yearOfManufacture": 2016,
    }
    assert is_tax_valid(vehicle, TODAY) is True
    assert is_mot_valid(vehicle, TODAY) is False
    assert vehicle_age(vehicle, TODAY) == 10
    assert vehicle_age({}, TODAY) is None


def test_driver_helpers():
    driver = {
        "driver": {"dateOfBirth": "1990-10-20"},
        "licence": {"status": "Valid"},
        "token": {"validToDate": "2030-01-01"},
        "entitlement": [{"categoryCode": "B", "expiryDate": "2055-01-01"}],
        "endorsements": [{"penaltyPoints": 3}, {"penaltyPoints": "3"}, {}],
    }
    assert is_licence_valid(driver, TODAY) is True
    assert has_valid_entitlement(driver, "B", TODAY) is True
    assert has_valid_entitlement(driver, "C1", TODAY) is False
    assert total_penalty_points(driver) == 6
    assert driver_age(driver, TODAY) == 35


@pytest.mark.parametrize("body", [b"", b"   ", b"<html>maintenance</html>", b"[1, 2]"])
def test_dvla_vehicle_lookup_rejects_unusable_body(body):
    client = DVLAClient(api_key="k", client=_client(lambda request: httpx.Response(200, content=body)))
    with pytest.raises(VehicleApiError) as exc:
        client.get_vehicle("AB12CDE")
    assert exc.value.error == "API_ERROR"
    assert exc.value.status_code == 502


def test_dvla_driver_lookup_rejects_html_body():
    client = DVLAClient(api_key="k", client=_client(lambda request: httpx.Response(200, text="<html>oops</html>")))
    with pytest.raises(VehicleApiError) as exc:
        client.get_driver("MORGA753116SM99")
    assert exc.value.status_code == 502


def test_clients_close_their_http_client():
    http = _client(lambda request: httpx.Response(200, json={}))
    DVLAClient(api_key="k", client=http).close()
    assert http.is_closed


# -------- MOT history --------

def _mot_client(handler, clock=lambda: 0.0) -> MOTHistoryClient:
    return MOTHistoryClient(
        client_id="id",
        client_secret="secret",
        api_key="mot-key",
        scope_url="https://scope",
        token_url="https://login.example/token",
        base_url="https://mot.example/v1/trade/vehicles/registration/",
        client=_client(handler),
        clock=clock,
    )


def test_mot_history_fetches_and_caches_token():
    calls = {"token": 0, "history": 0}

    def handler(request):
        if request.url.host == "login.example":
            calls["token"] += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        calls["history"] += 1
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["x-api-key"] == "mot-key"
        assert request.url.path.endswith("/AB12CDE")
        return httpx.Response(200, json={"registration": "AB12CDE", "motTests": []})

    client = _mot_client(handler)
    client.get_history("AB12 CDE")
    client.get_history("AB12CDE")

    assert calls == {"token": 1, "history": 2}


def test_mot_token_refreshes_after_expiry():
    now = {"t": 0.0}
    tokens = []

    def handler(request):
        if request.url.host == "login.example":
            tokens.append(1)
            return httpx.Response(200, json={"access_token": f"tok{len(tokens)}", "expires_in": 120})
        return httpx.Response(200, json={"motTests": []})

    client = _mot_client(handler, clock=lambda: now["t"])
    client.get_history("AB12CDE")
    now["t"] = 61.0  # past expires_in minus the safety margin
    client.get_history("AB12CDE")
    assert len(tokens) == 2


def test_mot_oauth_failure():
    client = _mot_client(lambda request: httpx.Response(401, json={}))
    with pytest.raises(VehicleApiError) as exc:
        client.get_history("AB12CDE")
    assert exc.value.error == "OAUTH_ERROR"
    assert exc.value.message == "Unauthorized - check client ID and secret"


def test_mot_missing_credentials():
    client = MOTHistoryClient(client_id="", client_secret="", token_url="", scope_url="", client=_client(None))
    with pytest.raises(VehicleApiError) as exc:
        client.get_history("AB12CDE")
    assert exc.value.error == "CONFIGURATION_ERROR"
    assert exc.value.status_code == 401


def test_mot_token_reply_without_access_token():
    client = _mot_client(lambda request: httpx.Response(200, json={"token_type": "Bearer"}))
    with pytest.raises(VehicleApiError) as exc:
        client.get_history("AB12CDE")
    assert exc.value.error == "OAUTH_ERROR"
    assert exc.value.status_code == 502


def test_mot_token_reply_that_is_not_json():
    client = _mot_client(lambda request: httpx.Response(200, text="<html>sign in</html>"))
    with pytest.raises(VehicleApiError) as exc:
        client.get_history("AB12CDE")
    assert exc.value.error == "OAUTH_ERROR"
    assert exc.value.status_code == 502


def test_mot_history_empty_body():
    def handler(request):
        if request.url.host == "login.example":
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
        return httpx.Response(200, content=b"")

    with pytest.raises(VehicleApiError) as exc:
        _mot_client(handler).get_history("AB12CDE")
    assert exc.value.error == "API_ERROR"
    assert exc.value.status_code == 502


def test_history_summary_and_mileage_rollback():
    history = {
        "motTests": [
            {"completedDate": "2024-05-01T10:00:00", "testResult": "PASSED", "odometerValue": "52000",
             "odometerUnit": "mi", "expiryDate": "2025-05-01"},
            {"completedDate": "2025-05-02T10:00:00", "testResult": "FAILED", "odometerValue": "48000",
             "odometerUnit": "mi", "defects": [{"text": "Brake pipe", "dangerous": True}]},
            {"completedDate": "2023-05-01T10:00:00", "testResult": "PASSED", "odometerValue": "41000",
             "odometerUnit": "mi"},
            {"completedDate": "2022-05-01T10:00:00", "testResult": "PASSED", "odometerValue": "UNAVAILABLE"},
        ]
    }
    summary = summarize_history(history)
    assert summary["test_count"] == 4
    assert summary["pass_count"] == 3
    assert summary["fail_count"] == 1
    assert summary["latest_result"] == "FAILED"
    assert summary["dangerous_defects"] == 1

    readings = mileage_readings(history)
    assert [r["value"] for r in readings] == [41000, 52000, 48000]
    assert [r["rollback"] for r in readings] == [False, False, True]
    assert readings[0]["date"] == "2023-05-01"


# -------- Vehicle Data Global --------

FULL_PAYLOAD = {
    "Results": {
        "VehicleDetails": {
            "VehicleIdentification": {
                "Vrm": "AB12CDE",
                "DvlaMake": "FORD",
                "DvlaModel": "FOCUS",
                "YearOfManufacture": 2016,
                "DvlaFuelType": "PETROL",
            },
            "VehicleHistory": {
                "ColourDetails": {"CurrentColour": "BLUE"},
                "KeeperChangeList": [{"DateOfTransaction": "2020-01-01"}],
                "PlateChangeList": [],
            },
            "VehicleStatus": {"VehicleExciseDutyDetails": {"DvlaCo2": 120}},
            "DvlaTechnicalDetails": {"EngineCapacityCc": 1596},
        },
        "MotHistoryDetails": {"MotDueDate": "2027-03-01", "LatestTestDate": "2026-03-01"},
        "FinanceDetails": {"FinanceRecordList": [{"AgreementType": "HP"}]},
        "MileageCheckDetails": {"MileageAnomalyDetected": False, "MileageResultList": []},
        "MiaftrDetails": {"WriteOffRecordList": []},
        "PncDetails": {"IsStolen": False},
    }
}


def test_vehicle_data_full_report_is_flattened():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(200, json=FULL_PAYLOAD)

    report = VehicleDataClient(api_key="vdg", client=_client(handler)).lookup("ab12cde", "full")

    assert seen["path"] == "/r2/lookup"
    assert seen["params"] == {"ApiKey": "vdg", "PackageName": "VDICheck", "Vrm": "AB12CDE"}
    assert report["make"] == "FORD"
    assert report["color"] == "BLUE"
    assert report["engineSize"] == 1596
    assert report["taxStatus"] == {"isValid": True, "co2Emissions": 120}
    assert report["history"]["hasOutstandingFinance"] is True
    assert report["riskAssessment"]["level"] == "medium"
    assert report["riskAssessment"]["alerts"] == ["Outstanding finance found"]


def test_vehicle_data_errors():
    with pytest.raises(ValueError):
        VehicleDataClient(api_key="vdg", client=_client(None)).lookup("AB12CDE", "everything")

    empty = VehicleDataClient(api_key="vdg", client=_client(lambda r: httpx.Response(200, content=b"")))
    with pytest.raises(VehicleApiError) as exc:
        empty.lookup("AB12CDE")
    assert exc.value.status_code == 502

    failing = VehicleDataClient(
        api_key="vdg", client=_client(lambda r: httpx.Response(403, json={"message": "Key expired"}))
    )
    with pytest.raises(VehicleApiError) as exc:
        failing.lookup("AB12CDE", "mot")
    assert exc.value.status_code == 403
    assert exc.value.message == "Key expired"


def test_risk_assessment_levels():
    assert assess_risk(False, None, False, False, False)["level"] == "low"
    assert assess_risk(False, "S", True, False, False)["level"] == "medium"
    assert assess_risk(False, "B", True, False, True)["level"] == "high"
    stolen = assess_risk(True, None, False, True, False)
    assert stolen["level"] == "high"
    assert stolen["description"] == "Critical issues found"


def test_transform_handles_malformed_payload():
    broken = {"Results": {"VehicleDetails": {"VehicleIdentification": {"Vrm": "AB12CDE"}}, "MiaftrDetails": "x"}}
    assert transform_full_report(broken) == {"registration": "AB12CDE", "error": "Failed to parse full report"}
