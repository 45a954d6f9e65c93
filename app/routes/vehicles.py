import logging
import threading

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from app.auth_utils import get_current_user, has_report_access, json_auth_error
from app.json_utils import JsonBody, invalid_field, json_object_body
from app.layout import esc, message_page, render_page
from app.security import allow_request, attach_csrf_cookie, client_ip, issue_csrf_token, validate_csrf
from core.database import log_vehicle_lookup
from core.disputes.pricing import COMPREHENSIVE_REPORT_PRICE, format_gbp
from core.payments import CheckoutError, create_report_checkout_session
from core.vehicles import DVLAClient, MOTHistoryClient, VehicleApiError, VehicleDataClient
from core.vehicles.dvla import (
    driver_age,
    is_licence_valid,
    is_mot_valid,
    is_tax_valid,
    total_penalty_points,
    vehicle_age,
)
from core.vehicles.mot_history import summarize_history
from core.vehicles.registration import clean_registration, format_registration
from core.vehicles.report_pdf import REPORT_TYPES, build_vehicle_report_pdf, report_from_dvla

log = logging.getLogger("vehicles.routes")

router = APIRouter()

# One client per provider for the whole process; the MOT client carries the OAuth token cache.
_providers: dict = {}
_providers_lock = threading.Lock()


def _provider(name: str, factory):
    with _providers_lock:
        client = _providers.get(name)
        if client is None:
            client = _providers[name] = factory()
        return client


def dvla_client() -> DVLAClient:
    return _provider("dvla", DVLAClient)


def mot_client() -> MOTHistoryClient:
    return _provider("mot", MOTHistoryClient)


def vehicle_data_client() -> VehicleDataClient:
    return _provider("vehicle_data", VehicleDataClient)


def close_providers() -> None:
    with _providers_lock:
        clients = list(_providers.values())
        _providers.clear()
    for client in clients:
        client.close()


def _record_lookup(registration: str, data_type: str, user: dict | None) -> None:
    try:
        log_vehicle_lookup(registration, data_type, user["id"] if user else None)
    except Exception as exc:
        # History is a convenience; never fail the check because of it.
        log.warning("Could not record lookup of %s: %s", registration, exc)


def _yes_no(flag: bool, good: str = "Valid", bad: str = "Not valid") -> str:
    return f'<span class="badge good">{good}</span>' if flag else f'<span class="badge bad">{bad}</span>'


def _search_form(registration: str = "") -> str:
    return f"""
    <div class="card">
      <form method="get" action="/vehicle-check">
        <label>Registration number
          <input type="text" name="registration" value="{esc(registration)}" placeholder="e.g. AB12 CDE"
                 maxlength="10" required />
        </label>
        <button type="submit">Check vehicle</button>
      </form>
    </div>
    """


def _vehicle_card(vehicle: dict) -> str:
    age = vehicle_age(vehicle)
    co2 = vehicle.get("co2Emissions")
    return f"""
    <div class="card">
      <h2>{esc(format_registration(vehicle.get('registrationNumber') or ''))}</h2>
      <table>
        <tr><th>Make</th><td>{esc(vehicle.get('make'))}</td><th>Colour</th><td>{esc(vehicle.get('colour'))}</td></tr>
        <tr><th>Year</th><td>{esc(vehicle.get('yearOfManufacture'))}{f' ({age} years)' if age is not None else ''}</td>
            <th>Fuel</th><td>{esc(vehicle.get('fuelType'))}</td></tr>
        <tr><th>Engine</th><td>{esc(vehicle.get('engineCapacity'))} cc</td>
            <th>CO2</th><td>{f'{esc(co2)} g/km' if co2 else 'N/A'}</td></tr>
        <tr><th>Tax</th><td>{_yes_no(is_tax_valid(vehicle))} due {esc(vehicle.get('taxDueDate') or 'N/A')}</td>
            <th>MOT</th><td>{_yes_no(is_mot_valid(vehicle))} expires {esc(vehicle.get('motExpiryDate') or 'N/A')}</td></tr>
      </table>
    </div>
    """


def _mot_card(history: dict) -> str:
    summary = summarize_history(history)
    tests = sorted(history.get("motTests") or [], key=lambda t: t.get("completedDate") or "", reverse=True)
    rows = ""
    for test in tests:
        defects = test.get("defects") or []
        defect_list = "".join(
            f"<li>{esc(d.get('type'))}: {esc(d.get('text'))}{' (dangerous)' if d.get('dangerous') else ''}</li>"
            for d in defects
        )
        rows += f"""
        <tr>
          <td>{esc((test.get('completedDate') or '')[:10])}</td>
          <td>{esc(test.get('testResult'))}</td>
          <td>{esc(test.get('odometerValue'))} {esc(test.get('odometerUnit') or '')}</td>
          <td>{esc(test.get('expiryDate') or '')}</td>
          <td><ul>{defect_list}</ul></td>
        </tr>
        """
    if not rows:
        rows = '<tr><td colspan="5">No MOT tests recorded.</td></tr>'

    rollback = any(r["rollback"] for r in summary["mileage"])
    rollback_html = '<p class="error">Mileage went down between tests. Check the odometer history.</p>' if rollback else ""
    return f"""
    <div class="card">
      <h2>MOT history</h2>
      <div class="stats">
        <div class="stat"><div class="label">Tests</div><div class="value">{summary['test_count']}</div></div>
        <div class="stat"><div class="label">Passed</div><div class="value">{summary['pass_count']}</div></div>
        <div class="stat"><div class="label">Failed</div><div class="value">{summary['fail_count']}</div></div>
        <div class="stat"><div class="label">Dangerous defects</div><div class="value">{summary['dangerous_defects']}</div></div>
      </div>
      {rollback_html}
      <table>
        <thead><tr><th>Date</th><th>Result</th><th>Mileage</th><th>Expiry</th><th>Defects</th></tr></thead>
        <tbody>{rows}</tbody>
      </table>
    </div>
    """


def _error_card(heading: str, exc: VehicleApiError) -> str:
    return f'<div class="card"><h2>{esc(heading)}</h2><p class="error">{esc(exc.message)}</p></div>'


@router.get("/vehicle-check", response_class=HTMLResponse)
def vehicle_check(request: Request, registration: str = ""):
    user, _ = get_current_user(request)
    reg = clean_registration(registration)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    body = _search_form(format_registration(reg) if reg else "")

    if reg:
        if not allow_request(f"vehicle:{client_ip(request)}", limit=30, window_seconds=300):
            return HTMLResponse("Too many vehicle checks. Please try again later.", status_code=429)

        try:
            body += _vehicle_card(dvla_client().get_vehicle(reg))
        except VehicleApiError as exc:
            log.info("DVLA lookup for %s failed: %s", reg, exc.message)
            body += _error_card("Vehicle details", exc)

        try:
            body += _mot_card(mot_client().get_history(reg))
        except VehicleApiError as exc:
            log.info("MOT history for %s failed: %s", reg, exc.message)
            body += _error_card("MOT history", exc)

        _record_lookup(reg, "basic", user)
        body += f'<p><a href="/vehicle-check/report.pdf?registration={esc(reg)}&type=basic">Download basic PDF</a></p>'

        if has_report_access(user):
            upsell = f"""
              <p>Your account includes comprehensive reports.</p>
              <a href="/vehicle-check/report?registration={esc(reg)}">Open the comprehensive report</a>
            """
        elif user:
            upsell = f"""
              <p class="muted">Stolen, write-off, outstanding finance and mileage checks plus valuation.</p>
              <form method="post" action="/vehicle-check/purchase">
                <input type="hidden" name="csrf_token" value="{csrf_token}" />
                <input type="hidden" name="registration" value="{esc(reg)}" />
                <button type="submit">Buy for {format_gbp(COMPREHENSIVE_REPORT_PRICE)}</button>
              </form>
            """
        else:
            upsell = '<p class="muted"><a href="/login">Log in</a> to buy the comprehensive report.</p>'
        body += f'<div class="card"><h2>Comprehensive report</h2>{upsell}</div>'

    response = render_page("Vehicle check", body, user)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/vehicle-check/purchase")
def purchase_report(request: Request, registration: str = Form("", max_length=10), csrf_token: str = Form("")):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)
    if has_report_access(user):
        return RedirectResponse(url=f"/vehicle-check/report?registration={clean_registration(registration)}",
                                status_code=303)

    try:
        session = create_report_checkout_session(user)
    except CheckoutError as exc:
        return message_page("Payment unavailable", esc(exc.message), "/vehicle-check", "Back to vehicle check",
                            status_code=exc.status_code, user=user)
    return RedirectResponse(url=session["url"], status_code=303)


def _full_report(reg: str) -> dict:
    return vehicle_data_client().lookup(reg, "full")


@router.get("/vehicle-check/report", response_class=HTMLResponse)
def comprehensive_report(request: Request, registration: str = ""):
    user, _ = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=303)
    if not has_report_access(user):
        return message_page(
            "Comprehensive report",
            f"Comprehensive reports are a one-off purchase of {format_gbp(COMPREHENSIVE_REPORT_PRICE)}.",
            f"/vehicle-check?registration={esc(registration)}",
            "Back to vehicle check",
            status_code=403,
            user=user,
        )

    reg = clean_registration(registration)
    try:
        report = _full_report(reg)
    except VehicleApiError as exc:
        return message_page("Comprehensive report", esc(exc.message), "/vehicle-check", "Back to vehicle check",
                            status_code=exc.status_code, user=user)
    _record_lookup(reg, "full", user)

    if report.get("error"):
        return message_page("Comprehensive report", esc(report["error"]), "/vehicle-check", "Back",
                            status_code=502, user=user)

    history = report.get("history") or {}
    risk = report.get("riskAssessment") or {}
    level = risk.get("level") or "low"
    alerts = "".join(f"<li>{esc(a)}</li>" for a in risk.get("alerts") or [])
    valuation = report.get("valuation") or {}
    retail = valuation.get("retail") or {}
    trade = valuation.get("trade") or {}
    badge_class = {"low": "good", "medium": "warn", "high": "bad"}.get(level, "")
    write_off = _yes_no(
        not history.get("isWriteOff"), "Clear", f"Category {esc(history.get('writeOffCategory'))}"
    )

    body = f"""
    <div class="card">
      <h2>{esc(format_registration(report.get('registration') or reg))}:
          {esc(report.get('make'))} {esc(report.get('model'))}</h2>
      <p><span class="badge {badge_class}">{esc(level.upper())} RISK</span> {esc(risk.get('description'))}</p>
      <ul>{alerts}</ul>
    </div>
    <div class="card">
      <h2>History</h2>
      <table>
        <tr><th>Stolen</th><td>{_yes_no(not history.get('isStolen'), 'Clear', 'STOLEN')}</td></tr>
        <tr><th>Write-off</th><td>{write_off}</td></tr>
        <tr><th>Outstanding finance</th><td>{_yes_no(not history.get('hasOutstandingFinance'), 'No', 'YES')}</td></tr>
        <tr><th>Mileage discrepancy</th><td>{_yes_no(not history.get('hasMileageDiscrepancy'), 'No', 'YES')}</td></tr>
        <tr><th>Keeper changes</th><td>{len(history.get('keeperChanges') or [])}</td></tr>
        <tr><th>Plate changes</th><td>{len(history.get('plateChanges') or [])}</td></tr>
      </table>
    </div>
    <div class="card">
      <h2>Valuation</h2>
      <table>
        <tr><th>Retail (excellent / good / average)</th>
            <td>£{retail.get('excellent', 0):,} / £{retail.get('good', 0):,} / £{retail.get('average', 0):,}</td></tr>
        <tr><th>Trade (clean / average / below)</th>
            <td>£{trade.get('clean', 0):,} / £{trade.get('average', 0):,} / £{trade.get('below', 0):,}</td></tr>
      </table>
    </div>
    <p><a href="/vehicle-check/report.pdf?registration={esc(reg)}&type=comprehensive">Download PDF</a></p>
    """
    return render_page("Comprehensive report", body, user)


@router.get("/vehicle-check/report.pdf")
def report_pdf(request: Request, registration: str = "", type: str = "basic"):
    user, _ = get_current_user(request)
    reg = clean_registration(registration)
    if type not in REPORT_TYPES or not reg:
        return HTMLResponse("Unknown report.", status_code=400)

    try:
        if type == "comprehensive":
            if not user:
                return RedirectResponse(url="/login", status_code=303)
            if not has_report_access(user):
                return HTMLResponse("Forbidden", status_code=403)
            report = _full_report(reg)
        else:
            report = report_from_dvla(dvla_client().get_vehicle(reg))
    except VehicleApiError as exc:
        return message_page("Vehicle report", esc(exc.message), "/vehicle-check", "Back to vehicle check",
                            status_code=exc.status_code, user=user)

    pdf = build_vehicle_report_pdf(report, type)
    filename = f"{type}-vehicle-report-{reg}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _driver_form(csrf_token: str, licence: str = "") -> str:
    return f"""
    <div class="card form-card">
      <p class="muted">Look up entitlements, endorsements and penalty points for a UK driving licence.</p>
      <form method="post" action="/driver-check">
        <label>Driving licence number
          <input type="text" name="licence_number" value="{esc(licence)}" maxlength="20" required />
        </label>
        <label style="display:flex;gap:0.4rem;align-items:center;">
          <input type="checkbox" name="include_cpc" value="1" /> <span>Include CPC</span>
        </label>
        <label style="display:flex;gap:0.4rem;align-items:center;">
          <input type="checkbox" name="include_tacho" value="1" /> <span>Include tachograph cards</span>
        </label>
        <input type="hidden" name="csrf_token" value="{csrf_token}" />
        <button type="submit">Check licence</button>
      </form>
    </div>
    """


@router.get("/driver-check", response_class=HTMLResponse)
def driver_check_form(request: Request):
    user, _ = get_current_user(request)
    csrf_token = issue_csrf_token(request.cookies.get("csrf_token"))
    response = render_page("Driver licence check", _driver_form(csrf_token), user)
    attach_csrf_cookie(response, csrf_token)
    return response


@router.post("/driver-check", response_class=HTMLResponse)
def driver_check(
    request: Request,
    licence_number: str = Form(..., max_length=20),
    include_cpc: str = Form(""),
    include_tacho: str = Form(""),
    csrf_token: str = Form(""),
):
    user, _ = get_current_user(request)
    if not allow_request(f"driver:{client_ip(request)}", limit=10, window_seconds=300):
        return HTMLResponse("Too many licence checks. Please try again later.", status_code=429)
    if not validate_csrf(request, csrf_token):
        return HTMLResponse("Invalid or missing CSRF token.", status_code=403)

    body = _driver_form(csrf_token, licence_number)
    try:
        driver = dvla_client().get_driver(licence_number, include_cpc=bool(include_cpc), include_tacho=bool(include_tacho))
    except VehicleApiError as exc:
        body += _error_card("Licence details", exc)
        return render_page("Driver licence check", body, user, status_code=exc.status_code)

    person = driver.get("driver") or {}
    entitlements = "".join(
        f"<tr><td>{esc(e.get('categoryCode'))}</td><td>{esc(e.get('categoryType'))}</td>"
        f"<td>{esc(e.get('expiryDate') or '')}</td></tr>"
        for e in driver.get("entitlement") or []
    ) or '<tr><td colspan="3">No entitlements returned.</td></tr>'
    endorsements = "".join(
        f"<tr><td>{esc(e.get('offenceCode'))}</td><td>{esc(e.get('offenceDate') or '')}</td>"
        f"<td>{esc(e.get('penaltyPoints') or 0)}</td></tr>"
        for e in driver.get("endorsements") or []
    ) or '<tr><td colspan="3">No endorsements.</td></tr>'
    age = driver_age(driver)

    body += f"""
    <div class="card">
      <h2>{esc(person.get('firstNames'))} {esc(person.get('lastName'))}</h2>
      <p>Licence {_yes_no(is_licence_valid(driver))}
         &middot; Age {age if age is not None else 'N/A'}
         &middot; Penalty points <strong>{total_penalty_points(driver)}</strong></p>
      <h3>Entitlements</h3>
      <table><thead><tr><th>Category</th><th>Type</th><th>Expires</th></tr></thead><tbody>{entitlements}</tbody></table>
      <h3>Endorsements</h3>
      <table><thead><tr><th>Offence</th><th>Date</th><th>Points</th></tr></thead><tbody>{endorsements}</tbody></table>
    </div>
    """
    return render_page("Driver licence check", body, user)


@router.post("/api/vehicle-data")
def api_vehicle_data(request: Request, body: JsonBody = Depends(json_object_body)):
    if body.error:
        return body.error

    registration = body.data.get("registration")
    data_type = body.data.get("dataType") or "basic"
    if not registration:
        return JSONResponse({"error": "Missing registration", "message": "Field 'registration' is required"},
                            status_code=400)
    if not isinstance(registration, str):
        return invalid_field("registration", "a string")
    if not isinstance(data_type, str):
        return invalid_field("dataType", "a string")

    user, _ = get_current_user(request)
    if data_type == "full":
        denied = json_auth_error(user)
        if denied:
            return denied
        if not has_report_access(user):
            return JSONResponse(
                {"error": "Forbidden", "message": "Comprehensive report access has not been purchased"},
                status_code=403,
            )

    try:
        result = vehicle_data_client().lookup(registration, data_type)
    except ValueError as exc:
        return JSONResponse({"error": "Invalid dataType", "message": str(exc)}, status_code=400)
    except VehicleApiError as exc:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    _record_lookup(clean_registration(registration), data_type, user)
    return JSONResponse(result)


@router.post("/api/mot-history")
def api_mot_history(request: Request, body: JsonBody = Depends(json_object_body)):
    if body.error:
        return body.error
    registration = body.data.get("registration")
    if not registration:
        return JSONResponse({"error": "Missing registration number"}, status_code=400)
    if not isinstance(registration, str):
        return invalid_field("registration", "a string")

    try:
        history = mot_client().get_history(registration)
    except VehicleApiError as exc:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    user, _ = get_current_user(request)
    _record_lookup(clean_registration(registration), "mot", user)
    return JSONResponse(history)
