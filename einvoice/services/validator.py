# einvoice/services/validator.py
"""
Moteur de validation EN 16931.

Les règles sont évaluées par phases dans un ordre fixe ; chaque infraction
ajoute une violation à la liste, l'évaluation ne s'arrête jamais en cours de route.
"""
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
import logging

from einvoice.errors import InvoiceValidationError
from einvoice.models import profiles
from einvoice.models.invoice import Invoice, ZERO
from einvoice.models.rules import Rule, get_rule
from einvoice.services.arithmetic import exact_sum, round2, rate_key, rollup_by_category_rate, tax_amount
from einvoice.services import vat_rules, peppol_rules, xrechnung_rules

logger = logging.getLogger(__name__)

# UNTDID 4461 : virements
CREDIT_TRANSFER_CODES = {"30", "58"}

# ISO 3166-1 alpha-2, plus EL pour la Grèce
COUNTRY_CODES = frozenset("""
AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ BL BM BN BO BQ BR BS BT BV BW
BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE EG EH ER ES ET FI
FJ FK FM FO FR GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM HN HR HT HU ID IE IL IM IN
IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN KP KR KW KY KZ LA LB LC LI LK LR LS LT LU LV LY MA MC MD ME
MF MG MH MK ML MM MN MO MP MQ MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP NR NU NZ OM PA PE PF
PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW SA SB SC SD SE SG SH SI SJ SK SL SM SN SO SR SS ST SV
SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO TR TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI VN VU WF WS YE
YT ZA ZM ZW XI EL
""".split())


class Violation(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: Rule
    text: str


class ViolationList:
    """Accumulateur ordonné des violations d'une validation."""

    def __init__(self):
        self.items: List[Violation] = []

    def add(self, code: str, text: Optional[str] = None) -> None:
        rule = get_rule(code)
        self.items.append(Violation(rule=rule, text=text or rule.description))

    def __len__(self):
        return len(self.items)


def validate_invoice(invoice: Invoice) -> Optional[InvoiceValidationError]:
    """Retourne None si aucune règle n'est enfreinte, sinon l'erreur composite."""
    violations = ViolationList()

    check_structure(invoice, violations)
    check_arithmetic(invoice, violations)
    check_cross_fields(invoice, violations)
    vat_rules.check(invoice, violations)
    if peppol_rules.is_active(invoice):
        peppol_rules.check(invoice, violations)
    if invoice.is_xrechnung():
        xrechnung_rules.check(invoice, violations)
    check_custom(invoice, violations)

    logger.info(f"Validation {invoice.number} : {len(violations)} violation(s)")
    if not violations.items:
        return None
    return InvoiceValidationError(violations.items)


def _label(line) -> str:
    return f"Line {line.line_id or '?'}"


# --- phase 1 : présence et cardinalités ---

def check_structure(inv: Invoice, v: ViolationList) -> None:
    level = inv.profile_level()
    minimum = inv.is_minimum()

    if not inv.specification_id.strip():
        v.add("BR-01", "Specification identifier (BT-24) missing")
    if not inv.number:
        v.add("BR-02", "Invoice number (BT-1) missing")
    if inv.issue_date is None:
        v.add("BR-03", "Invoice issue date (BT-2) missing")
    if not inv.type_code:
        v.add("BR-04", "Invoice type code (BT-3) missing")
    if not inv.currency:
        v.add("BR-05", "Invoice currency code (BT-5) missing")
    if not inv.seller.name:
        v.add("BR-06", "Seller name (BT-27) missing")
    if not inv.buyer.name:
        v.add("BR-07", "Buyer name (BT-44) missing")
    if inv.seller.postal_address is None:
        v.add("BR-08", "Seller postal address (BG-5) missing")
    if not inv.seller.country_id:
        v.add("BR-09", "Seller country code (BT-40) missing")
    if level >= profiles.LEVEL_BASIC_WL:
        if inv.buyer.postal_address is None:
            v.add("BR-10", "Buyer postal address (BG-8) missing")
        if not inv.buyer.country_id:
            v.add("BR-11", "Buyer country code (BT-55) missing")
    if not inv.has_line_total and not minimum:
        v.add("BR-12", "Sum of Invoice line net amount (BT-106) missing")
    if not inv.has_tax_basis_total:
        v.add("BR-13", "Invoice total amount without VAT (BT-109) missing")
    if not inv.has_grand_total:
        v.add("BR-14", "Invoice total amount with VAT (BT-112) missing")
    if not inv.has_due_payable:
        v.add("BR-15", "Amount due for payment (BT-115) missing")
    if level >= profiles.LEVEL_BASIC and not inv.lines:
        v.add("BR-16", "Invoice has no line (BG-25)")
    if inv.payee is not None and not inv.payee.name:
        v.add("BR-17", "Payee name (BT-59) missing")
    taxrep = inv.tax_representative
    if taxrep is not None:
        if not taxrep.name:
            v.add("BR-18", "Tax representative name (BT-62) missing")
        if taxrep.postal_address is None:
            v.add("BR-19", "Tax representative postal address (BG-12) missing")
        elif not taxrep.postal_address.country_id:
            v.add("BR-20", "Tax representative postal address missing country code")

    for line in inv.lines:
        _check_line_structure(line, v)

    if (inv.billing_period_start and inv.billing_period_end
            and inv.billing_period_end < inv.billing_period_start):
        v.add("BR-29", "Invoicing period end date (BT-74) before start date (BT-73)")
    for line in inv.lines:
        if (line.billing_period_start and line.billing_period_end
                and line.billing_period_end < line.billing_period_start):
            v.add("BR-30", f"{_label(line)}: period end date (BT-135) before start date (BT-134)")

    for i, ac in enumerate(inv.document_allowances, 1):
        if not ac.category_code:
            v.add("BR-32", f"Document level allowance {i}: VAT category code (BT-95) missing")
        if not ac.reason and not ac.reason_code:
            v.add("BR-33", f"Document level allowance {i}: reason (BT-97) or reason code (BT-98) missing")
    for i, ac in enumerate(inv.document_charges, 1):
        if not ac.category_code:
            v.add("BR-37", f"Document level charge {i}: VAT category code (BT-102) missing")
        if not ac.reason and not ac.reason_code:
            v.add("BR-38", f"Document level charge {i}: reason (BT-104) or reason code (BT-105) missing")
    for line in inv.lines:
        for ac in line.allowances:
            if not ac.reason and not ac.reason_code:
                v.add("BR-42", f"{_label(line)}: allowance reason (BT-139) or reason code (BT-140) missing")
        for ac in line.charges:
            if not ac.reason and not ac.reason_code:
                v.add("BR-44", f"{_label(line)}: charge reason (BT-144) or reason code (BT-145) missing")

    if inv.lines:
        expected = rollup_by_category_rate(inv)
        for tax in inv.trade_taxes:
            key = (tax.category_code, rate_key(tax.rate))
            basis = expected.get(key, {}).get("basis", ZERO)
            if round2(tax.basis_amount) != basis:
                v.add("BR-45", (
                    f"VAT breakdown {tax.category_code} {rate_key(tax.rate)}%: taxable amount (BT-116) "
                    f"{round2(tax.basis_amount)} does not match calculated {basis}"
                ))
    for tax in inv.trade_taxes:
        if not tax.has_calculated_amount:
            v.add("BR-46", f"VAT breakdown {tax.category_code}: tax amount (BT-117) missing")
    for tax in inv.trade_taxes:
        if not tax.category_code:
            v.add("BR-47", "VAT breakdown: category code (BT-118) missing")
    for tax in inv.trade_taxes:
        if tax.rate is None and tax.category_code != "O":
            v.add("BR-48", f"VAT breakdown {tax.category_code}: rate (BT-119) missing")

    for pm in inv.payment_means:
        if not pm.type_code:
            v.add("BR-49", "Payment means type code (BT-81) missing")
    for pm in inv.payment_means:
        if (pm.payee_account_name or pm.payee_bic) and not (pm.payee_iban or pm.payee_proprietary_id):
            v.add("BR-50", "Payment account identifier (BT-84) missing for credit transfer")
    for pm in inv.payment_means:
        if pm.cardholder_name and not pm.card_id:
            v.add("BR-51", "Payment card primary account number (BT-87) missing")
    for sd in inv.supporting_documents:
        if not sd.id:
            v.add("BR-52", "Supporting document reference (BT-122) missing")
    if inv.tax_currency and inv.tax_currency != inv.currency and inv.tax_total_accounting is None:
        v.add("BR-53", f"Invoice total VAT amount in accounting currency {inv.tax_currency} (BT-111) missing")
    for line in inv.lines:
        for ch in line.characteristics:
            if not ch.description or not ch.value:
                v.add("BR-54", f"{_label(line)}: item attribute name (BT-160) or value (BT-161) missing")
    for ref in inv.preceding_invoices:
        if not ref.id:
            v.add("BR-55", "Preceding invoice reference (BT-25) missing")
    if taxrep is not None and not taxrep.vat_id:
        v.add("BR-56", "Tax representative VAT identifier (BT-63) missing")
    ship_to = inv.ship_to
    if ship_to is not None and ship_to.postal_address is not None and not ship_to.postal_address.country_id:
        v.add("BR-57", "Deliver to country code (BT-80) missing")
    for pm in inv.payment_means:
        if pm.type_code in CREDIT_TRANSFER_CODES and not (pm.payee_iban or pm.payee_proprietary_id):
            v.add("BR-61", f"Payment account identifier (BT-84) missing for payment means {pm.type_code}")
    if inv.seller.electronic_address and not inv.seller.electronic_address_scheme:
        v.add("BR-62", "Seller electronic address (BT-34) has no scheme identifier")
    if inv.buyer.electronic_address and not inv.buyer.electronic_address_scheme:
        v.add("BR-63", "Buyer electronic address (BT-49) has no scheme identifier")
    for line in inv.lines:
        if line.global_id and not line.global_id_scheme:
            v.add("BR-64", f"{_label(line)}: item standard identifier (BT-157) has no scheme identifier")
    for line in inv.lines:
        for cl in line.classifications:
            if cl.class_code and not cl.list_id:
                v.add("BR-65", f"{_label(line)}: item classification identifier (BT-158) has no scheme identifier")
    if sum(1 for pm in inv.payment_means if pm.card_id) > 1:
        v.add("BR-66", "More than one payment card (BG-18)")
    if sum(1 for t in inv.payment_terms if t.direct_debit_mandate_id) > 1:
        v.add("BR-67", "More than one payment mandate (BG-19)")


def _check_line_structure(line, v: ViolationList) -> None:
    label = _label(line)
    if not line.line_id:
        v.add("BR-21", "Invoice line identifier (BT-126) missing")
    if not line.has_billed_quantity:
        v.add("BR-22", f"{label}: invoiced quantity (BT-129) missing")
    if not line.billed_quantity_unit:
        v.add("BR-23", f"{label}: invoiced quantity unit of measure (BT-130) missing")
    if not line.has_total:
        v.add("BR-24", f"{label}: line net amount (BT-131) missing")
    if not line.item_name:
        v.add("BR-25", f"{label}: item name (BT-153) missing")
    if not line.has_net_price:
        v.add("BR-26", f"{label}: item net price (BT-146) missing")
    if line.has_net_price and line.net_price < 0:
        v.add("BR-27", f"{label}: item net price (BT-146) is negative")
    if line.gross_price is not None and line.gross_price < 0:
        v.add("BR-28", f"{label}: item gross price (BT-148) is negative")


# --- phase 2 : cohérence arithmétique ---

def _mismatch(v, code, label, actual, expected):
    actual, expected = round2(actual), round2(expected)
    if actual != expected:
        v.add(code, f"{label}: {actual} does not match calculated {expected}")


def check_arithmetic(inv: Invoice, v: ViolationList) -> None:
    minimum = inv.is_minimum()
    line_sum = exact_sum(line.total for line in inv.lines)
    allowance_sum = exact_sum(ac.actual_amount for ac in inv.document_allowances)
    charge_sum = exact_sum(ac.actual_amount for ac in inv.document_charges)

    if inv.has_line_total and not minimum:
        _mismatch(v, "BR-CO-10", "Sum of Invoice line net amount (BT-106) vs Σ Invoice line net amount (BT-131)",
                  inv.line_total, line_sum)
    _mismatch(v, "BR-CO-11", "Sum of allowances on document level (BT-107)", inv.allowance_total, allowance_sum)
    _mismatch(v, "BR-CO-12", "Sum of charges on document level (BT-108)", inv.charge_total, charge_sum)
    if inv.has_tax_basis_total and not minimum:
        _mismatch(v, "BR-CO-13", "Invoice total amount without VAT (BT-109)",
                  inv.tax_basis_total, exact_sum([round2(inv.line_total), round2(inv.allowance_total).copy_negate(), round2(inv.charge_total)]))
    if not minimum:
        _mismatch(v, "BR-CO-14", "Invoice total VAT amount (BT-110)",
                  inv.tax_total, exact_sum(round2(t.calculated_amount) for t in inv.trade_taxes))
    if inv.has_grand_total:
        _mismatch(v, "BR-CO-15", "Invoice total amount with VAT (BT-112)",
                  inv.grand_total, exact_sum([round2(inv.tax_basis_total), round2(inv.tax_total)]))
    if inv.has_due_payable:
        _mismatch(v, "BR-CO-16", "Amount due for payment (BT-115)",
                  inv.due_payable, exact_sum([round2(inv.grand_total), round2(inv.prepaid).copy_negate(), round2(inv.rounding)]))
    for tax in inv.trade_taxes:
        if tax.has_calculated_amount:
            _mismatch(v, "BR-CO-17", f"VAT category tax amount (BT-117) for {tax.category_code} {rate_key(tax.rate)}%",
                      tax.calculated_amount, tax_amount(round2(tax.basis_amount), tax.rate))

    _check_decimals(inv, v)


def _too_precise(value) -> bool:
    return value is not None and value != round2(value)


def _check_decimals(inv: Invoice, v: ViolationList) -> None:
    def check(code, value, label):
        if _too_precise(value):
            v.add(code, f"{label} {value} has more than 2 decimals")

    for ac in inv.document_allowances:
        check("BR-DEC-01", ac.actual_amount, "Document level allowance amount (BT-92)")
        check("BR-DEC-02", ac.basis_amount, "Document level allowance base amount (BT-93)")
    for ac in inv.document_charges:
        check("BR-DEC-05", ac.actual_amount, "Document level charge amount (BT-99)")
        check("BR-DEC-06", ac.basis_amount, "Document level charge base amount (BT-100)")
    check("BR-DEC-09", inv.line_total, "Sum of Invoice line net amount (BT-106)")
    check("BR-DEC-10", inv.allowance_total, "Sum of allowances on document level (BT-107)")
    check("BR-DEC-11", inv.charge_total, "Sum of charges on document level (BT-108)")
    check("BR-DEC-12", inv.tax_basis_total, "Invoice total amount without VAT (BT-109)")
    check("BR-DEC-13", inv.tax_total, "Invoice total VAT amount (BT-110)")
    check("BR-DEC-14", inv.tax_total_accounting, "Invoice total VAT amount in accounting currency (BT-111)")
    check("BR-DEC-15", inv.grand_total, "Invoice total amount with VAT (BT-112)")
    check("BR-DEC-16", inv.prepaid, "Paid amount (BT-113)")
    check("BR-DEC-17", inv.rounding, "Rounding amount (BT-114)")
    check("BR-DEC-18", inv.due_payable, "Amount due for payment (BT-115)")
    for tax in inv.trade_taxes:
        check("BR-DEC-19", tax.basis_amount, "VAT category taxable amount (BT-116)")
        check("BR-DEC-20", tax.calculated_amount, "VAT category tax amount (BT-117)")
    for line in inv.lines:
        check("BR-DEC-23", line.total, f"{_label(line)}: net amount (BT-131)")
        for ac in line.allowances:
            check("BR-DEC-24", ac.actual_amount, f"{_label(line)}: allowance amount (BT-136)")
            check("BR-DEC-25", ac.basis_amount, f"{_label(line)}: allowance base amount (BT-137)")
        for ac in line.charges:
            check("BR-DEC-27", ac.actual_amount, f"{_label(line)}: charge amount (BT-141)")
            check("BR-DEC-28", ac.basis_amount, f"{_label(line)}: charge base amount (BT-142)")


# --- phase 3 : cohérence structurelle ---

def _vat_prefix_ok(vat_id: str) -> bool:
    return vat_id[:2] in COUNTRY_CODES


def check_cross_fields(inv: Invoice, v: ViolationList) -> None:
    for tax in inv.trade_taxes:
        if tax.tax_point_date is not None and tax.due_date_type_code:
            v.add("BR-CO-03", f"VAT breakdown {tax.category_code}: tax point date (BT-7) and tax point date code (BT-8) are both set")
    for line in inv.lines:
        if not line.tax_category:
            v.add("BR-CO-04", f"{_label(line)}: VAT category code (BT-151) missing")

    vat_ids = [("Seller", inv.seller.vat_id)]
    if inv.tax_representative is not None:
        vat_ids.append(("Tax representative", inv.tax_representative.vat_id))
    vat_ids.append(("Buyer", inv.buyer.vat_id))
    for role, vat_id in vat_ids:
        if vat_id and not _vat_prefix_ok(vat_id):
            v.add("BR-CO-09", f"{role} VAT identifier '{vat_id}' has no ISO 3166-1 alpha-2 country prefix")

    if not inv.trade_taxes and not inv.is_minimum():
        v.add("BR-CO-18", "Invoice has no VAT breakdown (BG-23)")
    if inv.has_billing_period and inv.billing_period_start is None and inv.billing_period_end is None:
        v.add("BR-CO-19", "Invoicing period (BG-14) has neither start date (BT-73) nor end date (BT-74)")
    for line in inv.lines:
        if line.has_billing_period and line.billing_period_start is None and line.billing_period_end is None:
            v.add("BR-CO-20", f"{_label(line)}: line period (BG-26) has neither start date (BT-134) nor end date (BT-135)")

    for i, ac in enumerate(inv.document_allowances, 1):
        if not ac.reason and not ac.reason_code:
            v.add("BR-CO-21", f"Document level allowance {i}: reason (BT-97) and reason code (BT-98) both missing")
    for i, ac in enumerate(inv.document_charges, 1):
        if not ac.reason and not ac.reason_code:
            v.add("BR-CO-22", f"Document level charge {i}: reason (BT-104) and reason code (BT-105) both missing")
    for line in inv.lines:
        for ac in line.allowances:
            if not ac.reason and not ac.reason_code:
                v.add("BR-CO-23", f"{_label(line)}: allowance reason (BT-139) and reason code (BT-140) both missing")
    for line in inv.lines:
        for ac in line.charges:
            if not ac.reason and not ac.reason_code:
                v.add("BR-CO-24", f"{_label(line)}: charge reason (BT-144) and reason code (BT-145) both missing")

    if inv.due_payable > 0:
        has_terms = any(t.due_date is not None or t.description for t in inv.payment_terms)
        if not has_terms:
            v.add("BR-CO-25", "Positive amount due (BT-115) without payment due date (BT-9) or payment terms (BT-20)")

    seller = inv.seller
    if not (seller.ids or seller.global_ids or seller.legal_id or seller.vat_id):
        v.add("BR-CO-26", "Seller identifier (BT-29), legal registration (BT-30) and VAT identifier (BT-31) all missing")
    for pm in inv.payment_means:
        if pm.payee_iban and pm.payee_proprietary_id:
            v.add("BR-CO-27", "Payment account identifier (BT-84) given both as IBAN and proprietary ID")


# --- phase 6 : règles complémentaires ---

def check_custom(inv: Invoice, v: ViolationList) -> None:
    for i, ac in enumerate(inv.document_allowances, 1):
        if ac.actual_amount < 0:
            v.add("BR-34", f"Document level allowance {i}: amount (BT-92) is negative")
        if ac.basis_amount is not None and ac.basis_amount < 0:
            v.add("BR-35", f"Document level allowance {i}: base amount (BT-93) is negative")
    for i, ac in enumerate(inv.document_charges, 1):
        if ac.actual_amount < 0:
            v.add("BR-39", f"Document level charge {i}: amount (BT-99) is negative")
        if ac.basis_amount is not None and ac.basis_amount < 0:
            v.add("BR-40", f"Document level charge {i}: base amount (BT-100) is negative")
    for currency in inv.unexpected_tax_currencies:
        v.add("UNEXPECTED-TAX-CURRENCY", (
            f"TaxTotalAmount with unexpected currency {currency} "
            f"(expected {inv.currency or '?'}{' or ' + inv.tax_currency if inv.tax_currency else ''})"
        ))
