"""
Dispute letter assembly.

Everything here is a pure function of the submitted form (plus "today"), so the same
submission always produces the same letter, score and recommendations.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from core.disputes.councils import format_council_address, lookup_council_address

TICKET_TYPE_TITLES = {
    "parking": "Parking Penalty Charge Notice",
    "speeding": "Speeding Penalty Notice",
    "bus_lane": "Bus Lane Penalty Charge Notice",
    "congestion": "Congestion Charge Penalty Notice",
    "other": "Traffic Penalty Notice",
}

# (substring of an offense name, ticket type), checked in priority order
_TICKET_TYPE_KEYWORDS = (
    ("parking", "parking"),
    ("speeding", "speeding"),
    ("bus lane", "bus_lane"),
    ("congestion", "congestion"),
)

_REASON_BONUSES = {
    "Signage unclear or missing": (25, "Strong legal ground - inadequate signage"),
    "Medical emergency": (20, "Mitigating circumstances - medical emergency"),
    "Vehicle breakdown": (15, "Mitigating circumstances - vehicle breakdown"),
    "Payment made but not registered": (30, "Strong evidence - payment proof available"),
    "Incorrect vehicle details": (35, "Administrative error - incorrect details"),
    "Ticket issued incorrectly": (20, "Procedural error in ticket issuance"),
    "Let Us Decide": (25, "Expert-selected dispute strategy"),
}

_GROUNDS = {
    "Signage unclear or missing": (
        "I contend that the penalty charge notice was issued in contravention of proper signage "
        "requirements. The Traffic Signs Regulations and General Directions 2016 mandate that all "
        "traffic signs must be clearly visible, unambiguous, and properly maintained. In this instance, "
        "the signage was either absent, obscured, or failed to meet the required standards for enforceability."
    ),
    "Medical emergency": (
        "This contravention occurred during a genuine medical emergency situation. The circumstances "
        "were exceptional and beyond my control, requiring immediate action that took precedence over "
        "normal parking regulations. Under these circumstances, the enforcement of a penalty charge would "
        "be disproportionate and contrary to the principles of reasonableness and public interest."
    ),
    "Vehicle breakdown": (
        "The alleged contravention occurred as a direct result of an unexpected vehicle breakdown, which "
        "rendered the vehicle immobile and unable to be moved from the location. This constitutes "
        "exceptional circumstances beyond the driver's control, and enforcement action in such situations "
        "is generally considered inappropriate and contrary to the principles of fair enforcement."
    ),
    "Payment made but not registered": (
        "I have evidence that payment was made for parking at the relevant time and location. The failure "
        "to register this payment appears to be a technical or administrative error within the payment "
        "system. As payment was made in good faith and within the required timeframe, no actual "
        "contravention occurred."
    ),
    "Incorrect vehicle details": (
        "The penalty charge notice contains incorrect vehicle details, which fundamentally undermines its "
        "validity. The accuracy of vehicle identification is essential for the enforceability of any "
        "penalty charge notice, and errors in this regard render the notice defective and unenforceable."
    ),
    "Ticket issued incorrectly": (
        "The penalty charge notice was issued in error, either due to misinterpretation of the parking "
        "restrictions, incorrect assessment of the situation, or failure to follow proper enforcement "
        "procedures. The circumstances do not constitute a contravention of the relevant traffic "
        "regulation order."
    ),
    "Vehicle not in violation": (
        "A careful review of the circumstances and applicable regulations demonstrates that no "
        "contravention occurred. The vehicle was parked in accordance with the relevant restrictions and "
        "regulations in force at the time and location specified."
    ),
    "Let Us Decide": (
        "I am writing to formally challenge this penalty charge notice based on several grounds that I "
        "believe render it invalid or unenforceable. After careful review of the circumstances and "
        "applicable regulations, there are compelling reasons why this notice should be cancelled."
    ),
}


@dataclass
class DisputeForm:
    selected_offenses: List[str]
    ticket_number: str
    issue_date: str  # ISO yyyy-mm-dd
    location: str
    vehicle_reg: str
    amount: str
    reason: str
    evidence: str
    name: str
    address: str
    email: str
    phone: str = ""
    service_level: str = "standard"
    image_count: int = 0


@dataclass
class CaseStrength:
    score: int
    success_rate: int
    factors: List[str] = field(default_factory=list)


@dataclass
class EnhancedLetter:
    letter_content: str
    legal_references: List[str]
    strength_score: int
    recommendations: List[str]
    estimated_success_rate: int
    ticket_type: str
    council_confidence: str


def derive_ticket_type(offenses: List[str]) -> str:
    lowered = [o.lower() for o in offenses or []]
    for keyword, ticket_type in _TICKET_TYPE_KEYWORDS:
        if any(keyword in name for name in lowered):
            return ticket_type
    return "other"


def legal_references(ticket_type: str, reason: str) -> List[str]:
    refs = [
        "Traffic Management Act 2004",
        "Civil Enforcement of Parking Contraventions (England) General Regulations 2007",
    ]
    if ticket_type == "parking":
        refs.append("Road Traffic Regulation Act 1984")
        if "Signage" in reason:
            refs.append("Traffic Signs Regulations and General Directions 2016")
    elif ticket_type == "speeding":
        refs.append("Road Traffic Offenders Act 1988")
        refs.append("Road Traffic Act 1988, Section 89")
    elif ticket_type == "bus_lane":
        refs.append("Transport Act 2000")
        refs.append(
            "Bus Lane Contraventions (Penalty Charges, Adjudication and Enforcement) (England) Regulations 2005"
        )
    elif ticket_type == "congestion":
        refs.append("Greater London Authority Act 1999")
        refs.append("Road User Charging (Enforcement and Adjudication) (London) Regulations 2001")

    if "Medical emergency" in reason:
        refs.append("Human Rights Act 1998, Article 8 (Right to private and family life)")
    return refs


def analyze_case_strength(form: DisputeForm, ticket_type: str) -> CaseStrength:
    score = 50
    factors: List[str] = []

    bonus = _REASON_BONUSES.get(form.reason)
    if bonus:
        score += bonus[0]
        factors.append(bonus[1])

    evidence = form.evidence or ""
    lowered = evidence.lower()
    if len(evidence) > 100:
        score += 10
        factors.append("Detailed evidence provided")
    if "photo" in lowered or "image" in lowered:
        score += 15
        factors.append("Photographic evidence mentioned")
    if "witness" in lowered:
        score += 10
        factors.append("Witness testimony available")
    if ticket_type == "parking":
        score += 5

    score = max(15, min(score, 95))
    success_rate = int((Decimal(score) * Decimal("0.9")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return CaseStrength(score=score, success_rate=success_rate, factors=factors)


def generate_recommendations(form: DisputeForm, strength: CaseStrength, ticket_type: str) -> List[str]:
    evidence = (form.evidence or "").lower()
    recs: List[str] = []
    if strength.score < 60:
        recs.append("Consider gathering additional evidence to strengthen your case")
    if "photo" not in evidence:
        recs.append("Include photographs of the location and any relevant signage")
    if "witness" not in evidence:
        recs.append("Obtain witness statements if available")
    if form.reason == "Payment made but not registered":
        recs.append("Include payment receipts, bank statements, or app screenshots as evidence")
    if form.reason == "Medical emergency":
        recs.append("Include medical documentation or hospital records if available")
    if ticket_type == "parking":
        recs.append("Check if the Traffic Regulation Order is properly published and accessible")
    recs.append("Send your appeal by recorded delivery and keep copies of all correspondence")
    recs.append("Submit your appeal as soon as possible within the statutory time limit")
    return recs


def grounds_for_appeal(reason: str) -> str:
    return _GROUNDS.get(reason) or (
        f"I dispute this penalty charge notice on the grounds that {reason.lower()}. The circumstances "
        "of this case demonstrate that no valid contravention occurred, and the notice should be cancelled."
    )


def _legal_position(ticket_type: str, references: List[str]) -> str:
    text = (
        f"Under the {references[0]}, enforcement authorities must ensure that penalty charge notices are "
        "issued only where a clear contravention has occurred and in accordance with proper procedures.\n\n"
    )
    if ticket_type == "parking":
        text += (
            "The Civil Enforcement of Parking Contraventions (England) General Regulations 2007 require that "
            "parking restrictions must be clearly indicated and that enforcement must be carried out fairly "
            "and consistently. "
        )
    elif ticket_type == "speeding":
        text += (
            "Under the Road Traffic Offenders Act 1988, the burden of proof lies with the prosecution to "
            "demonstrate that a speeding offence occurred. "
        )
    text += (
        "The circumstances outlined above demonstrate that the requirements for a valid penalty charge "
        "notice have not been met, and the notice should therefore be cancelled."
    )
    return text


def _evidence_section(evidence: str) -> str:
    if not (evidence or "").strip():
        return ""
    return (
        "\nSUPPORTING EVIDENCE\n\nThe following evidence supports my appeal:\n\n"
        f"{evidence}\n\n"
        "I am prepared to provide additional documentation or clarification as required to support this appeal."
    )


def long_date(d: date) -> str:
    """19 October 2026"""
    return f"{d.day} {d:%B %Y}"


def short_date(value: str) -> str:
    """ISO date to dd/mm/yyyy; anything unparseable is echoed back."""
    try:
        return date.fromisoformat(value).strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        return value or ""


def generate_letter_content(
    form: DisputeForm,
    ticket_type: str,
    references: List[str],
    council_block: str,
    today: date,
) -> str:
    sender = "\n".join(line for line in (form.name, form.address, form.email, form.phone) if line and line.strip())
    return f"""{sender}

{long_date(today)}

{council_block}

Re: Formal Appeal - {TICKET_TYPE_TITLES[ticket_type]} {form.ticket_number}
Vehicle Registration: {form.vehicle_reg}
Date of Alleged Contravention: {short_date(form.issue_date)}
Location: {form.location}
Penalty Amount: {form.amount}

Dear Sir/Madam,

I am writing to formally challenge the above-referenced penalty notice under the statutory appeal process. I believe this notice was issued in error and respectfully request its immediate cancellation.

GROUNDS FOR APPEAL

{grounds_for_appeal(form.reason)}

DETAILED CIRCUMSTANCES

{form.evidence}
{_evidence_section(form.evidence)}

LEGAL POSITION

{_legal_position(ticket_type, references)}

PROCEDURAL CONSIDERATIONS

I would draw your attention to the requirement under the Traffic Management Act 2004 that penalty charge notices must be issued in accordance with proper procedures and that any contravention must be clearly evidenced. The circumstances outlined above demonstrate that either no contravention occurred or that there are compelling mitigating factors that warrant the exercise of discretion in cancelling this notice.

Furthermore, under the Civil Enforcement of Parking Contraventions (England) General Regulations 2007, enforcement authorities must consider all relevant circumstances when determining whether to pursue a penalty charge.

REQUEST FOR CANCELLATION

In light of the above circumstances and legal considerations, I formally request that you:

1. Cancel this penalty charge notice in its entirety
2. Confirm in writing that no further action will be taken
3. Remove any record of this notice from your enforcement database

I trust that upon review of the evidence and circumstances presented, you will agree that pursuing this matter further would not be appropriate or in the public interest.

I look forward to your prompt response and the cancellation of this notice within 14 days of receipt of this letter. Should you require any additional information or clarification, please do not hesitate to contact me using the details provided above.

Yours faithfully,

{form.name}

Enclosures: [List any supporting evidence documents]

---

IMPORTANT NOTES:
- This letter should be sent by recorded delivery
- Keep copies of all correspondence
- If appeal is rejected, you may have the right to appeal to an independent adjudicator
- Seek legal advice if the matter proceeds to formal adjudication"""


def generate_enhanced_letter(form: DisputeForm, today: Optional[date] = None) -> EnhancedLetter:
    today = today or date.today()
    ticket_type = derive_ticket_type(form.selected_offenses)
    references = legal_references(ticket_type, form.reason)
    strength = analyze_case_strength(form, ticket_type)
    council = lookup_council_address(form.location)
    content = generate_letter_content(form, ticket_type, references, format_council_address(council), today)
    return EnhancedLetter(
        letter_content=content,
        legal_references=references,
        strength_score=strength.score,
        recommendations=generate_recommendations(form, strength, ticket_type),
        estimated_success_rate=strength.success_rate,
        ticket_type=ticket_type,
        council_confidence=council.confidence,
    )


__all__ = [
    "TICKET_TYPE_TITLES",
    "DisputeForm",
    "CaseStrength",
    "EnhancedLetter",
    "derive_ticket_type",
    "legal_references",
    "analyze_case_strength",
    "generate_recommendations",
    "grounds_for_appeal",
    "long_date",
    "short_date",
    "generate_letter_content",
    "generate_enhanced_letter",
]
