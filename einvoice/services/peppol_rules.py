# einvoice/services/peppol_rules.py
"""
Règles complémentaires PEPPOL BIS Billing 3.0.

Actives lorsque BT-24 vaut l'URN PEPPOL ou que BT-23 suit le format
de processus PEPPOL.
"""
from decimal import Decimal

from einvoice.models import profiles
from einvoice.models.invoice import Invoice
from einvoice.services.arithmetic import exact_sum, line_amount, percent_of, round2

DIRECT_DEBIT_CODE = "59"
PROJECT_DOCUMENT_TYPE = "50"


def is_active(inv: Invoice) -> bool:
    return inv.is_peppol() or profiles.is_peppol_business_process(inv.business_process.strip())


def check(inv: Invoice, v) -> None:
    process = inv.business_process.strip()
    if not process:
        v.add("PEPPOL-EN16931-R001", "Business process (BT-23) missing")
    elif not profiles.is_peppol_business_process(process):
        v.add("PEPPOL-EN16931-R007", f"Business process '{process}' does not match urn:fdc:peppol.eu:2017:poacc:billing:NN:1.0")
    if len(inv.notes) > 1:
        v.add("PEPPOL-EN16931-R002", f"{len(inv.notes)} notes on document level, at most one allowed")
    if not inv.buyer_reference and not inv.buyer_order_reference:
        v.add("PEPPOL-EN16931-R003", "Neither buyer reference (BT-10) nor purchase order reference (BT-13) provided")
    if not inv.is_peppol():
        v.add("PEPPOL-EN16931-R004", f"Specification identifier '{inv.specification_id}' is not {profiles.PEPPOL_BILLING_30}")
    if inv.tax_currency and inv.tax_currency == inv.currency:
        v.add("PEPPOL-EN16931-R005", f"VAT accounting currency (BT-6) equals invoice currency {inv.currency}")
    if not inv.buyer.electronic_address:
        v.add("PEPPOL-EN16931-R010", "Buyer electronic address (BT-49) missing")
    if not inv.seller.electronic_address:
        v.add("PEPPOL-EN16931-R020", "Seller electronic address (BT-34) missing")

    _check_allowances_charges(inv, v)

    for pm in inv.payment_means:
        if pm.type_code == DIRECT_DEBIT_CODE and not any(t.direct_debit_mandate_id for t in inv.payment_terms):
            v.add("PEPPOL-EN16931-R061", "Direct debit (59) without mandate reference (BT-89)")

    projects = sum(1 for sd in inv.supporting_documents if sd.type_code == PROJECT_DOCUMENT_TYPE)
    if inv.project_id:
        projects += 1
    if projects > 1:
        v.add("PEPPOL-EN16931-R080", f"{projects} project references on document level, at most one allowed")

    for line in inv.lines:
        _check_line(inv, line, v)


def _check_allowances_charges(inv: Invoice, v) -> None:
    items = list(inv.allowances_charges)
    for line in inv.lines:
        items.extend(line.allowances)
        items.extend(line.charges)
    for ac in items:
        kind = "charge" if ac.charge_indicator else "allowance"
        if ac.calculation_percent is not None and ac.basis_amount is None:
            v.add("PEPPOL-EN16931-R041", f"Allowance/charge percentage {ac.calculation_percent} without base amount")
        elif ac.basis_amount is not None and ac.calculation_percent is None:
            v.add("PEPPOL-EN16931-R042", f"Allowance/charge base amount {ac.basis_amount} without percentage")
        elif ac.basis_amount is not None:
            expected = percent_of(ac.basis_amount, ac.calculation_percent)
            if round2(ac.actual_amount) != expected:
                v.add("PEPPOL-EN16931-R040", (
                    f"{kind.capitalize()} amount {round2(ac.actual_amount)} does not match "
                    f"{ac.basis_amount} * {ac.calculation_percent}% = {expected}"
                ))


def _check_line(inv: Invoice, line, v) -> None:
    label = f"Line {line.line_id or '?'}"
    if (line.billing_period_start and inv.billing_period_start
            and line.billing_period_start < inv.billing_period_start):
        v.add("PEPPOL-EN16931-R110", f"{label}: period start {line.billing_period_start} before invoice period start {inv.billing_period_start}")
    if (line.billing_period_end and inv.billing_period_end
            and line.billing_period_end > inv.billing_period_end):
        v.add("PEPPOL-EN16931-R111", f"{label}: period end {line.billing_period_end} after invoice period end {inv.billing_period_end}")

    if line.basis_quantity is not None and line.basis_quantity <= 0:
        v.add("PEPPOL-EN16931-R121", f"{label}: price base quantity (BT-149) {line.basis_quantity} is not positive")
    if line.basis_quantity_unit and line.basis_quantity_unit != line.billed_quantity_unit:
        v.add("PEPPOL-EN16931-R130", (
            f"{label}: price base quantity unit {line.basis_quantity_unit} differs from "
            f"invoiced quantity unit {line.billed_quantity_unit or '?'}"
        ))

    if line.has_total and line.has_net_price:
        base = line.basis_quantity if line.basis_quantity and line.basis_quantity > 0 else Decimal(1)
        expected = round2(exact_sum(
            [line_amount(line.billed_quantity, line.net_price, base)]
            + [ac.actual_amount for ac in line.charges]
            + [ac.actual_amount.copy_negate() for ac in line.allowances]
        ))
        if round2(line.total) != expected:
            v.add("PEPPOL-EN16931-R120", f"{label}: net amount (BT-131) {round2(line.total)} does not match calculated {expected}")
