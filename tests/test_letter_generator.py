from datetime import date

from core.disputes.councils import format_council_address, lookup_council_address
from core.disputes.letter_generator import (
    DisputeForm,
    analyze_case_strength,
    derive_ticket_type,
    generate_enhanced_letter,
    grounds_for_appeal,
    legal_references,
)
from core.disputes.postage import calculate_postage, estimate_pages

TODAY = date(2026, 10, 19)


def _form(**overrides) -> DisputeForm:
    data = dict(
        selected_offenses=["Parking Ticket"],
        ticket_number="WM12345678",
        issue_date="2026-09-01",
        location="Oxford Street, Westminster",
        vehicle_reg="AB12CDE",
        amount="£130",
        reason="Signage unclear or missing",
        evidence="The sign was covered by a tree.",
        name="Sam Driver",
        address="1 High Street, London",
        email="sam@example.com",
    )
    data.update(overrides)
    return DisputeForm(**data)


def test_ticket_type_follows_keyword_priority():
    assert derive_ticket_type(["Speeding (Minor)", "Parking Ticket"]) == "parking"
    assert derive_ticket_type(["Speeding (Serious)"]) == "speeding"
    assert derive_ticket_type(["Bus Lane Violation"]) == "bus_lane"
    assert derive_ticket_type(["Congestion Charge"]) == "congestion"
    assert derive_ticket_type(["Dangerous Driving"]) == "other"
    assert derive_ticket_type([]) == "other"


def test_legal_references_depend_on_ticket_and_reason():
    refs = legal_references("parking", "Signage unclear or missing")
    assert refs[:2] == [
        "Traffic Management Act 2004",
        "Civil Enforcement of Parking Contraventions (England) General Regulations 2007",
    ]
    assert "Road Traffic Regulation Act 1984" in refs
    assert "Traffic Signs Regulations and General Directions 2016" in refs

    medical = legal_references("speeding", "Medical emergency")
    assert "Road Traffic Offenders Act 1988" in medical
    assert medical[-1].startswith("Human Rights Act 1998")


def test_case_strength_is_clamped():
    weak = analyze_case_strength(_form(reason="Other", evidence=""), "other")
    assert weak.score == 50
    assert weak.success_rate == 45

    strong = analyze_case_strength(
        _form(reason="Incorrect vehicle details", evidence="photo and witness " + "x" * 120), "parking"
    )
    assert strong.score == 95
    assert strong.success_rate == 86


def test_generated_letter_is_deterministic_and_complete():
    form = _form()
    first = generate_enhanced_letter(form, today=TODAY)
    second = generate_enhanced_letter(form, today=TODAY)
    assert first == second

    assert first.ticket_type == "parking"
    assert first.strength_score == 80
    assert first.estimated_success_rate == 72
    assert first.council_confidence == "high"

    content = first.letter_content
    assert content.startswith("Sam Driver\n1 High Street, London\nsam@example.com")
    assert "19 October 2026" in content
    assert "Westminster City Council" in content
    assert "Re: Formal Appeal - Parking Penalty Charge Notice WM12345678" in content
    assert "Date of Alleged Contravention: 01/09/2026" in content
    assert grounds_for_appeal("Signage unclear or missing") in content
    assert "SUPPORTING EVIDENCE" in content
    assert content.rstrip().endswith("Seek legal advice if the matter proceeds to formal adjudication")


def test_recommendations_reflect_missing_evidence():
    letter = generate_enhanced_letter(_form(reason="Payment made but not registered"), today=TODAY)
    recs = letter.recommendations
    assert "Include photographs of the location and any relevant signage" in recs
    assert "Obtain witness statements if available" in recs
    assert "Include payment receipts, bank statements, or app screenshots as evidence" in recs
    assert recs[-1] == "Submit your appeal as soon as possible within the statutory time limit"


def test_unlisted_reason_gets_generic_grounds():
    text = grounds_for_appeal("The Meter Was Broken")
    assert "on the grounds that the meter was broken." in text


def test_council_lookup_confidence_levels():
    assert lookup_council_address("Deansgate, Manchester").confidence == "high"
    assert lookup_council_address("Nowhere Lane, Smalltown").confidence == "low"

    block = format_council_address(lookup_council_address("Camden High Street"))
    assert block.splitlines()[1] == "Camden Council"
    assert "UNKNOWN" not in block


def test_postage_quote_charges_paper_per_page():
    assert estimate_pages("") == 1
    assert estimate_pages("x" * 1001) == 3

    quote = calculate_postage("uk_recorded", "premium_white", "window_dl", ["signed_for"], pages=2)
    assert str(quote["total"]) == "3.60"
    assert str(quote["breakdown"]["paper"]) == "0.16"
    assert quote["currency"] == "GBP"

    unknown = calculate_postage("carrier_pigeon", None, None, ["none"], pages=1)
    assert str(unknown["total"]) == "0.00"
