# einvoice/services/xrechnung_rules.py
"""
Règles nationales allemandes XRechnung 3.0 (BR-DE).
"""
import re

from einvoice.models.invoice import Invoice

ALLOWED_TYPE_CODES = {"326", "380", "384", "389", "381", "875", "876", "877"}
CORRECTED_INVOICE = "384"

CREDIT_TRANSFER = {"30", "58"}
PAYMENT_CARD = {"48", "54", "55"}
DIRECT_DEBIT = {"59"}
SEPA_CREDIT_TRANSFER = "58"
SEPA_DIRECT_DEBIT = "59"

SKONTO_RE = re.compile(r"^#SKONTO#TAGE=[0-9]+#PROZENT=[0-9]+\.[0-9]{2}#(BASISBETRAG=-?[0-9]+\.[0-9]{2}#)?$")
IBAN_RE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}$")


def is_valid_iban(value: str) -> bool:
    """Contrôle ISO 13616 : format puis clé modulo 97."""
    iban = (value or "").replace(" ", "").upper()
    if not IBAN_RE.match(iban):
        return False
    rotated = iban[4:] + iban[:4]
    digits = "".join(str(int(c, 36)) for c in rotated)
    return int(digits) % 97 == 1


def check(inv: Invoice, v) -> None:
    seller, buyer = inv.seller, inv.buyer

    if not inv.payment_means:
        v.add("BR-DE-01", "Payment instructions (BG-16) missing")
    if not seller.contacts:
        v.add("BR-DE-02", "Seller contact (BG-6) missing")

    address = seller.postal_address
    if address is None or not address.city:
        v.add("BR-DE-03", "Seller city (BT-37) missing")
    if address is None or not address.postcode:
        v.add("BR-DE-04", "Seller post code (BT-38) missing")

    if seller.contacts:
        contact = seller.contacts[0]
        if not contact.person_name and not contact.department_name:
            v.add("BR-DE-05", "Seller contact point (BT-41) missing")
        if not contact.phone:
            v.add("BR-DE-06", "Seller contact telephone number (BT-42) missing")
        elif sum(c.isdigit() for c in contact.phone) < 3:
            v.add("BR-DE-27", f"Seller contact telephone number '{contact.phone}' has fewer than three digits")
        if not contact.email:
            v.add("BR-DE-07", "Seller contact email address (BT-43) missing")
        elif not _email_ok(contact.email):
            v.add("BR-DE-28", f"Seller contact email address '{contact.email}' is malformed")

    address = buyer.postal_address
    if address is None or not address.city:
        v.add("BR-DE-08", "Buyer city (BT-52) missing")
    if address is None or not address.postcode:
        v.add("BR-DE-09", "Buyer post code (BT-53) missing")

    ship_to = inv.ship_to
    if ship_to is not None and ship_to.postal_address is not None:
        if not ship_to.postal_address.city:
            v.add("BR-DE-10", "Deliver to city (BT-77) missing")
        if not ship_to.postal_address.postcode:
            v.add("BR-DE-11", "Deliver to post code (BT-78) missing")

    if not inv.buyer_reference:
        v.add("BR-DE-15", "Buyer reference (BT-10) missing")
    taxrep = inv.tax_representative
    if not (seller.vat_id or seller.fc_tax_registration or taxrep is not None):
        v.add("BR-DE-16", "Seller VAT identifier (BT-31), tax registration (BT-32) and tax representative (BG-11) all missing")
    if inv.type_code not in ALLOWED_TYPE_CODES:
        v.add("BR-DE-17", f"Invoice type code {inv.type_code or '?'} not allowed")
    if inv.type_code == CORRECTED_INVOICE and not inv.preceding_invoices:
        v.add("BR-DE-26", "Corrected invoice (384) without preceding invoice reference (BG-3)")

    for terms in inv.payment_terms:
        for row in terms.description.splitlines():
            row = row.strip()
            if row.startswith("#") and not SKONTO_RE.match(row):
                v.add("BR-DE-18", f"Malformed cash discount terms '{row}'")

    filenames = [sd.attachment_filename for sd in inv.supporting_documents if sd.attachment_filename]
    for name in sorted({n for n in filenames if filenames.count(n) > 1}):
        v.add("BR-DE-22", f"Attachment filename '{name}' is used more than once")

    has_mandate = any(t.direct_debit_mandate_id for t in inv.payment_terms)
    for pm in inv.payment_means:
        _check_payment_means(inv, pm, has_mandate, v)


def _email_ok(email: str) -> bool:
    return email.count("@") == 1 and not email.startswith("@") and not email.endswith("@")


def _check_payment_means(inv: Invoice, pm, has_mandate: bool, v) -> None:
    code = pm.type_code
    transfer = bool(pm.payee_iban or pm.payee_proprietary_id)
    card = bool(pm.card_id)
    debit = bool(has_mandate or pm.payer_iban)

    if code in CREDIT_TRANSFER:
        if not transfer:
            v.add("BR-DE-23-a", f"Payment means {code}: credit transfer (BG-17) missing")
        if card or debit:
            v.add("BR-DE-23-b", f"Payment means {code}: payment card (BG-18) or direct debit (BG-19) not allowed")
    elif code in PAYMENT_CARD:
        if not card:
            v.add("BR-DE-24-a", f"Payment means {code}: payment card information (BG-18) missing")
        if transfer or debit:
            v.add("BR-DE-24-b", f"Payment means {code}: credit transfer (BG-17) or direct debit (BG-19) not allowed")
    elif code in DIRECT_DEBIT:
        if not debit:
            v.add("BR-DE-25-a", f"Payment means {code}: direct debit (BG-19) missing")
        if transfer or card:
            v.add("BR-DE-25-b", f"Payment means {code}: credit transfer (BG-17) or payment card (BG-18) not allowed")

    if code == SEPA_CREDIT_TRANSFER and pm.payee_iban and not is_valid_iban(pm.payee_iban):
        v.add("BR-DE-19", f"Payment account identifier '{pm.payee_iban}' is not a valid IBAN")
    if code == SEPA_DIRECT_DEBIT and pm.payer_iban and not is_valid_iban(pm.payer_iban):
        v.add("BR-DE-20", f"Debited account identifier '{pm.payer_iban}' is not a valid IBAN")

    if code in DIRECT_DEBIT:
        if not inv.creditor_reference:
            v.add("BR-DE-30", "Direct debit without bank assigned creditor identifier (BT-90)")
        if not pm.payer_iban:
            v.add("BR-DE-31", "Direct debit without debited account identifier (BT-91)")
