# einvoice/services/vat_rules.py
"""
Règles par catégorie de TVA (BR-S, BR-AE, BR-E, BR-Z, BR-G, BR-IC, BR-IG, BR-IP, BR-O).

Une famille de dix règles s'applique dès que sa catégorie apparaît sur une ligne,
une remise ou une charge de document.
"""
from pydantic import BaseModel, ConfigDict
from typing import Callable

from einvoice.models.invoice import Invoice, ZERO
from einvoice.models.rules import VAT_FAMILIES
from einvoice.services.arithmetic import round2, rate_key, rollup_by_category_rate, tax_amount


# --- prédicats sur les parties ---

def seller_tax_id(inv: Invoice) -> bool:
    taxrep = inv.tax_representative
    return bool(inv.seller.vat_id or inv.seller.fc_tax_registration or (taxrep is not None and taxrep.vat_id))


def _taxrep_vat(inv: Invoice) -> str:
    return inv.tax_representative.vat_id if inv.tax_representative is not None else ""


def _seller_only(inv):
    return seller_tax_id(inv)


def _seller_and_buyer(inv):
    return seller_tax_id(inv) and bool(inv.buyer.vat_id or inv.buyer.legal_id)


def _intra_community(inv):
    return bool(inv.seller.vat_id or _taxrep_vat(inv)) and bool(inv.buyer.vat_id)


def _no_buyer_vat(inv):
    return seller_tax_id(inv) and not inv.buyer.vat_id


def _no_vat_ids(inv):
    return not (inv.seller.vat_id or _taxrep_vat(inv) or inv.buyer.vat_id)


# --- prédicats sur les taux ---

def _positive(rate):
    return rate is not None and rate > 0


def _zero(rate):
    return rate is not None and rate == 0


def _non_negative(rate):
    return rate is not None and rate >= 0


def _absent(rate):
    return rate is None


class Family(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefix: str
    category: str
    parties: Callable
    rate_ok: Callable
    rate_text: str
    taxed: bool          # montant de TVA = base x taux, sinon 0
    exemption: bool      # motif d'exonération obligatoire, sinon interdit


_MATRIX = {
    "S": (_seller_only, _positive, "must be greater than zero", True, False),
    "AE": (_seller_and_buyer, _zero, "must be 0", False, True),
    "E": (_seller_only, _zero, "must be 0", False, True),
    "Z": (_seller_only, _zero, "must be 0", False, False),
    "G": (_seller_only, _zero, "must be 0", False, True),
    "K": (_intra_community, _zero, "must be 0", False, True),
    "L": (_no_buyer_vat, _non_negative, "must be 0 or greater", True, False),
    "M": (_no_buyer_vat, _non_negative, "must be 0 or greater", True, False),
    "O": (_no_vat_ids, _absent, "must not be present", False, True),
}

_FIELDS = ("parties", "rate_ok", "rate_text", "taxed", "exemption")

FAMILIES = tuple(
    Family(prefix=prefix, category=category, **dict(zip(_FIELDS, _MATRIX[category])))
    for prefix, category, _label in VAT_FAMILIES
)


def _fmt_rate(rate) -> str:
    return "none" if rate is None else f"{rate}%"


def check(inv: Invoice, v) -> None:
    for family in FAMILIES:
        check_family(inv, family, v)
    check_split_payment(inv, v)


def is_triggered(inv: Invoice, category: str) -> bool:
    return (
        any(line.tax_category == category for line in inv.lines)
        or any(ac.category_code == category for ac in inv.allowances_charges)
    )


def check_family(inv: Invoice, family: Family, v) -> None:
    code = family.category
    if not is_triggered(inv, code):
        return
    p = f"BR-{family.prefix}"
    lines = [line for line in inv.lines if line.tax_category == code]
    allowances = [ac for ac in inv.document_allowances if ac.category_code == code]
    charges = [ac for ac in inv.document_charges if ac.category_code == code]
    breakdowns = [t for t in inv.trade_taxes if t.category_code == code]

    # 01 : ventilation présente
    if code == "O":
        if len(breakdowns) != 1:
            v.add(f"{p}-01", f"Expected exactly one VAT breakdown with category {code}, found {len(breakdowns)}")
    elif not breakdowns:
        v.add(f"{p}-01", f"No VAT breakdown with category {code}")

    # 02-04 : identifiants TVA des parties
    parties_ok = family.parties(inv)
    if lines and not parties_ok:
        v.add(f"{p}-02", f"Invoice line with category {code}: required seller/buyer VAT identifiers not satisfied")
    if allowances and not parties_ok:
        v.add(f"{p}-03", f"Document level allowance with category {code}: required seller/buyer VAT identifiers not satisfied")
    if charges and not parties_ok:
        v.add(f"{p}-04", f"Document level charge with category {code}: required seller/buyer VAT identifiers not satisfied")

    # 05-07 : taux
    for line in lines:
        if not family.rate_ok(line.tax_rate):
            v.add(f"{p}-05", f"Line {line.line_id or '?'}: VAT rate {_fmt_rate(line.tax_rate)} for category {code} {family.rate_text}")
    for ac in allowances:
        if not family.rate_ok(ac.category_rate):
            v.add(f"{p}-06", f"Document level allowance: VAT rate {_fmt_rate(ac.category_rate)} for category {code} {family.rate_text}")
    for ac in charges:
        if not family.rate_ok(ac.category_rate):
            v.add(f"{p}-07", f"Document level charge: VAT rate {_fmt_rate(ac.category_rate)} for category {code} {family.rate_text}")

    # 08 : base imposable par (catégorie, taux)
    expected = rollup_by_category_rate(inv, code)
    for tax in breakdowns:
        basis = expected.get((code, rate_key(tax.rate)), {}).get("basis", ZERO)
        if round2(tax.basis_amount) != basis:
            v.add(f"{p}-08", (
                f"VAT breakdown {code} {_fmt_rate(tax.rate)}: taxable amount {round2(tax.basis_amount)} "
                f"does not match calculated {basis}"
            ))

    # 09 : montant de TVA
    for tax in breakdowns:
        wanted = tax_amount(round2(tax.basis_amount), tax.rate) if family.taxed else ZERO
        if round2(tax.calculated_amount) != wanted:
            v.add(f"{p}-09", (
                f"VAT breakdown {code} {_fmt_rate(tax.rate)}: tax amount {round2(tax.calculated_amount)} "
                f"does not match expected {wanted}"
            ))

    # 10 : motif d'exonération
    for tax in breakdowns:
        has_reason = bool(tax.exemption_reason or tax.exemption_reason_code)
        if family.exemption and not has_reason:
            v.add(f"{p}-10", f"VAT breakdown {code}: exemption reason (BT-120) or code (BT-121) required")
        elif not family.exemption and has_reason:
            v.add(f"{p}-10", f"VAT breakdown {code}: exemption reason (BT-120) and code (BT-121) must be absent")

    if code == "K" and breakdowns:
        _check_intra_community(inv, v)
    if code == "O" and breakdowns:
        _check_not_subject(inv, v)


def _check_intra_community(inv: Invoice, v) -> None:
    if inv.delivery_date is None and inv.billing_period_start is None and inv.billing_period_end is None:
        v.add("BR-IC-11", "Intra-community supply without actual delivery date (BT-72) or invoicing period (BG-14)")
    ship_to = inv.ship_to
    if ship_to is None or not ship_to.country_id:
        v.add("BR-IC-12", "Intra-community supply without deliver to country code (BT-80)")


def _check_not_subject(inv: Invoice, v) -> None:
    others = [t.category_code for t in inv.trade_taxes if t.category_code != "O"]
    if others:
        v.add("BR-O-11", f"VAT breakdown with category O mixed with categories {', '.join(others)}")
    for line in inv.lines:
        if line.tax_category != "O":
            v.add("BR-O-12", f"Line {line.line_id or '?'}: category {line.tax_category or '?'} not allowed with category O")
    for ac in inv.document_allowances:
        if ac.category_code != "O":
            v.add("BR-O-13", f"Document level allowance: category {ac.category_code or '?'} not allowed with category O")
    for ac in inv.document_charges:
        if ac.category_code != "O":
            v.add("BR-O-14", f"Document level charge: category {ac.category_code or '?'} not allowed with category O")


# --- paiement fractionné (Italie) ---

def check_split_payment(inv: Invoice, v) -> None:
    if not is_triggered(inv, "B"):
        return
    if inv.seller.country_id != "IT" or inv.buyer.country_id != "IT":
        v.add("BR-B-01", "Split payment (category B) is only allowed for domestic Italian invoices")
    if is_triggered(inv, "S"):
        v.add("BR-B-02", "Split payment (category B) cannot be mixed with standard rated (category S) items")
