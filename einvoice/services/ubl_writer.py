# einvoice/services/ubl_writer.py
"""Génération UBL 2.1 (Invoice ou CreditNote selon BT-3) à partir du modèle EN 16931."""
from lxml import etree

from einvoice.models.invoice import Invoice, Party, PostalAddress, AllowanceCharge, ZERO
from einvoice.services.xml_utils import (
    UBL_INVOICE_NS, UBL_CREDIT_NOTE_NS, UBL_NAMESPACES, encode_binary,
    fmt_amount, fmt_percent, fmt_quantity,
)
from einvoice.services.ubl_reader import PROJECT_DOCUMENT_TYPE, SEPA_SCHEME

# codes UNTDID 1001 traités comme avoirs
CREDIT_NOTE_TYPE_CODES = {"81", "83", "381", "396", "532"}

NAMESPACES = dict(UBL_NAMESPACES)


def _e(parent, tag, text=None, ns="cbc", **attribs):
    elem = etree.SubElement(parent, f"{{{NAMESPACES[ns]}}}{tag}", **attribs)
    if text is not None:
        elem.text = str(text)
    return elem


def _c(parent, tag):
    return _e(parent, tag, ns="cac")


def _opt(parent, tag, text, **attribs):
    if text:
        return _e(parent, tag, text, **attribs)
    return None


def _attrs(**attribs):
    return {k: v for k, v in attribs.items() if v}


def is_credit_note(invoice: Invoice) -> bool:
    return invoice.type_code in CREDIT_NOTE_TYPE_CODES


def generate_ubl(invoice: Invoice) -> bytes:
    credit_note = is_credit_note(invoice)
    default_ns = UBL_CREDIT_NOTE_NS if credit_note else UBL_INVOICE_NS
    root_tag = "CreditNote" if credit_note else "Invoice"
    root = etree.Element(f"{{{default_ns}}}{root_tag}", nsmap={None: default_ns, **NAMESPACES})
    currency = invoice.currency
    first_tax = invoice.trade_taxes[0] if invoice.trade_taxes else None
    first_terms = invoice.payment_terms[0] if invoice.payment_terms else None

    _opt(root, "CustomizationID", invoice.specification_id)
    _opt(root, "ProfileID", invoice.business_process)
    _e(root, "ID", invoice.number)
    if invoice.issue_date:
        _e(root, "IssueDate", invoice.issue_date.isoformat())
    if not credit_note and first_terms is not None and first_terms.due_date:
        _e(root, "DueDate", first_terms.due_date.isoformat())
    _e(root, "CreditNoteTypeCode" if credit_note else "InvoiceTypeCode", invoice.type_code)
    for note in invoice.notes:
        _e(root, "Note", f"#{note.subject_code}#{note.text}" if note.subject_code else note.text)
    if first_tax is not None and first_tax.tax_point_date:
        _e(root, "TaxPointDate", first_tax.tax_point_date.isoformat())
    _e(root, "DocumentCurrencyCode", currency)
    _opt(root, "TaxCurrencyCode", invoice.tax_currency)
    _opt(root, "AccountingCost", invoice.accounting_account)
    _opt(root, "BuyerReference", invoice.buyer_reference)

    due_date_type_code = first_tax.due_date_type_code if first_tax is not None else ""
    _build_period(root, invoice.billing_period_start, invoice.billing_period_end,
                  invoice.has_billing_period, due_date_type_code)

    if invoice.buyer_order_reference or invoice.seller_order_reference:
        order = _c(root, "OrderReference")
        _e(order, "ID", invoice.buyer_order_reference or "NA")
        _opt(order, "SalesOrderID", invoice.seller_order_reference)
    for ref in invoice.preceding_invoices:
        doc = _c(_c(root, "BillingReference"), "InvoiceDocumentReference")
        _e(doc, "ID", ref.id)
        if ref.issue_date:
            _e(doc, "IssueDate", ref.issue_date.isoformat())
    if invoice.despatch_advice_reference:
        _e(_c(root, "DespatchDocumentReference"), "ID", invoice.despatch_advice_reference)
    if invoice.receiving_advice_reference:
        _e(_c(root, "ReceiptDocumentReference"), "ID", invoice.receiving_advice_reference)
    if invoice.contract_reference:
        _e(_c(root, "ContractDocumentReference"), "ID", invoice.contract_reference)
    for sd in invoice.supporting_documents:
        _build_document_reference(root, sd)
    if invoice.project_id:
        if credit_note:
            ref = _c(root, "AdditionalDocumentReference")
            _e(ref, "ID", invoice.project_id)
            _e(ref, "DocumentTypeCode", PROJECT_DOCUMENT_TYPE)
        else:
            _e(_c(root, "ProjectReference"), "ID", invoice.project_id)

    _build_party(_c(root, "AccountingSupplierParty"), invoice.seller, registration_name=True,
                 creditor_reference=invoice.creditor_reference)
    _build_party(_c(root, "AccountingCustomerParty"), invoice.buyer, registration_name=True)
    if invoice.payee is not None:
        _build_party(root, invoice.payee, tag="PayeeParty")
    if invoice.tax_representative is not None:
        _build_party(root, invoice.tax_representative, tag="TaxRepresentativeParty")

    _build_delivery(root, invoice)
    _build_payment(root, invoice, credit_note)

    for ac in invoice.allowances_charges:
        _build_allowance_charge(root, ac, currency)

    _build_tax_totals(root, invoice)
    _build_monetary_total(root, invoice)

    for line in invoice.lines:
        _build_line(root, line, currency, credit_note)

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def _build_period(parent, start, end, flagged, description_code=""):
    if not (flagged or start or end or description_code):
        return None
    period = _c(parent, "InvoicePeriod")
    if start:
        _e(period, "StartDate", start.isoformat())
    if end:
        _e(period, "EndDate", end.isoformat())
    _opt(period, "DescriptionCode", description_code)
    return period


def _build_document_reference(parent, sd):
    ref = _c(parent, "AdditionalDocumentReference")
    _e(ref, "ID", sd.id, **_attrs(schemeID=sd.reference_type_code))
    _opt(ref, "DocumentTypeCode", sd.type_code)
    _opt(ref, "DocumentDescription", sd.name)
    if sd.attachment is not None or sd.uri:
        att = _c(ref, "Attachment")
        if sd.attachment is not None:
            _e(att, "EmbeddedDocumentBinaryObject", encode_binary(sd.attachment),
               **_attrs(mimeCode=sd.attachment_mime_code, filename=sd.attachment_filename))
        if sd.uri:
            _e(_c(att, "ExternalReference"), "URI", sd.uri)


# --- parties ---

def _build_address(parent, tag, addr: PostalAddress):
    a = _c(parent, tag)
    _opt(a, "StreetName", addr.line1)
    _opt(a, "AdditionalStreetName", addr.line2)
    _opt(a, "CityName", addr.city)
    _opt(a, "PostalZone", addr.postcode)
    _opt(a, "CountrySubentity", addr.country_subdivision)
    if addr.line3:
        _e(_c(a, "AddressLine"), "Line", addr.line3)
    if addr.country_id:
        _e(_c(a, "Country"), "IdentificationCode", addr.country_id)
    return a


def _build_party(parent, party: Party, tag="Party", registration_name=False, creditor_reference=""):
    p = _c(parent, tag)
    if party.electronic_address:
        _e(p, "EndpointID", party.electronic_address, **_attrs(schemeID=party.electronic_address_scheme))
    for ident in party.ids:
        _e(_c(p, "PartyIdentification"), "ID", ident)
    for gid in party.global_ids:
        _e(_c(p, "PartyIdentification"), "ID", gid.id, **_attrs(schemeID=gid.scheme))
    if creditor_reference:
        _e(_c(p, "PartyIdentification"), "ID", creditor_reference, schemeID=SEPA_SCHEME)

    legal = party.legal_organization
    if registration_name:
        trading_name = legal.trading_name if legal is not None else ""
        if trading_name:
            _e(_c(p, "PartyName"), "Name", trading_name)
    elif party.name:
        _e(_c(p, "PartyName"), "Name", party.name)

    if party.postal_address is not None:
        _build_address(p, "PostalAddress", party.postal_address)
    if party.vat_id:
        scheme = _c(p, "PartyTaxScheme")
        _e(scheme, "CompanyID", party.vat_id)
        _e(_c(scheme, "TaxScheme"), "ID", "VAT")
    if party.fc_tax_registration:
        scheme = _c(p, "PartyTaxScheme")
        _e(scheme, "CompanyID", party.fc_tax_registration)
        _e(_c(scheme, "TaxScheme"), "ID", "FC")

    if registration_name or (legal is not None and legal.id) or party.description:
        entity = _c(p, "PartyLegalEntity")
        if registration_name:
            _e(entity, "RegistrationName", party.name)
        if legal is not None and legal.id:
            _e(entity, "CompanyID", legal.id, **_attrs(schemeID=legal.scheme))
        _opt(entity, "CompanyLegalForm", party.description)

    if party.contacts:
        contact = party.contacts[0]
        c = _c(p, "Contact")
        _opt(c, "Name", contact.person_name)
        _opt(c, "Telephone", contact.phone)
        _opt(c, "ElectronicMail", contact.email)
    return p


def _build_delivery(root, invoice: Invoice):
    ship_to = invoice.ship_to
    if invoice.delivery_date is None and ship_to is None:
        return
    delivery = _c(root, "Delivery")
    if invoice.delivery_date:
        _e(delivery, "ActualDeliveryDate", invoice.delivery_date.isoformat())
    if ship_to is None:
        return
    location_id, scheme = "", ""
    if ship_to.global_ids:
        location_id, scheme = ship_to.global_ids[0].id, ship_to.global_ids[0].scheme
    elif ship_to.ids:
        location_id = ship_to.ids[0]
    if location_id or ship_to.postal_address is not None:
        location = _c(delivery, "DeliveryLocation")
        _opt(location, "ID", location_id, **_attrs(schemeID=scheme))
        if ship_to.postal_address is not None:
            _build_address(location, "Address", ship_to.postal_address)
    if ship_to.name:
        _e(_c(_c(delivery, "DeliveryParty"), "PartyName"), "Name", ship_to.name)


# --- paiement ---

def _build_payment(root, invoice: Invoice, credit_note: bool):
    first_terms = invoice.payment_terms[0] if invoice.payment_terms else None
    for index, pm in enumerate(invoice.payment_means):
        el = _c(root, "PaymentMeans")
        _e(el, "PaymentMeansCode", pm.type_code, **_attrs(name=pm.information))
        if index == 0 and credit_note and first_terms is not None and first_terms.due_date:
            _e(el, "PaymentDueDate", first_terms.due_date.isoformat())
        if index == 0:
            _opt(el, "PaymentID", invoice.payment_reference)
        if pm.card_id or pm.cardholder_name:
            card = _c(el, "CardAccount")
            _e(card, "PrimaryAccountNumberID", pm.card_id)
            _e(card, "NetworkID", "NA")
            _opt(card, "HolderName", pm.cardholder_name)
        account_id = pm.payee_iban or pm.payee_proprietary_id
        if account_id:
            acc = _c(el, "PayeeFinancialAccount")
            _e(acc, "ID", account_id)
            _opt(acc, "Name", pm.payee_account_name)
            if pm.payee_bic:
                _e(_c(acc, "FinancialInstitutionBranch"), "ID", pm.payee_bic)
        mandate = first_terms.direct_debit_mandate_id if (index == 0 and first_terms is not None) else ""
        if mandate or pm.payer_iban:
            m = _c(el, "PaymentMandate")
            _opt(m, "ID", mandate)
            if pm.payer_iban:
                _e(_c(m, "PayerFinancialAccount"), "ID", pm.payer_iban)

    if first_terms is not None:
        terms = _c(root, "PaymentTerms")
        _opt(terms, "Note", first_terms.description)


def _build_allowance_charge(parent, ac: AllowanceCharge, currency, with_tax=True):
    el = _c(parent, "AllowanceCharge")
    _e(el, "ChargeIndicator", "true" if ac.charge_indicator else "false")
    _opt(el, "AllowanceChargeReasonCode", ac.reason_code)
    _opt(el, "AllowanceChargeReason", ac.reason)
    if ac.calculation_percent is not None:
        _e(el, "MultiplierFactorNumeric", fmt_percent(ac.calculation_percent))
    _e(el, "Amount", fmt_amount(ac.actual_amount), currencyID=currency)
    if ac.basis_amount is not None:
        _e(el, "BaseAmount", fmt_amount(ac.basis_amount), currencyID=currency)
    if with_tax and (ac.category_code or ac.category_rate is not None):
        _build_tax_category(el, "TaxCategory", ac.category_code, ac.category_rate, ac.tax_type)
    return el


def _build_tax_category(parent, tag, code, rate, tax_type="VAT", reason_code="", reason=""):
    cat = _c(parent, tag)
    _e(cat, "ID", code)
    if rate is not None:
        _e(cat, "Percent", fmt_percent(rate))
    _opt(cat, "TaxExemptionReasonCode", reason_code)
    _opt(cat, "TaxExemptionReason", reason)
    _e(_c(cat, "TaxScheme"), "ID", tax_type or "VAT")
    return cat


def _build_tax_totals(root, invoice: Invoice):
    currency = invoice.currency
    total = _c(root, "TaxTotal")
    _e(total, "TaxAmount", fmt_amount(invoice.tax_total), currencyID=invoice.tax_total_currency or currency)
    for tax in invoice.trade_taxes:
        sub = _c(total, "TaxSubtotal")
        _e(sub, "TaxableAmount", fmt_amount(tax.basis_amount), currencyID=currency)
        if tax.has_calculated_amount:
            _e(sub, "TaxAmount", fmt_amount(tax.calculated_amount), currencyID=currency)
        _build_tax_category(sub, "TaxCategory", tax.category_code, tax.rate, tax.type_code,
                            tax.exemption_reason_code, tax.exemption_reason)
    if invoice.tax_currency and invoice.tax_currency != currency and invoice.tax_total_accounting is not None:
        accounting = _c(root, "TaxTotal")
        _e(accounting, "TaxAmount", fmt_amount(invoice.tax_total_accounting), currencyID=invoice.tax_currency)


def _build_monetary_total(root, invoice: Invoice):
    currency = invoice.currency
    sums = _c(root, "LegalMonetaryTotal")
    if invoice.has_line_total:
        _e(sums, "LineExtensionAmount", fmt_amount(invoice.line_total), currencyID=currency)
    if invoice.has_tax_basis_total:
        _e(sums, "TaxExclusiveAmount", fmt_amount(invoice.tax_basis_total), currencyID=currency)
    if invoice.has_grand_total:
        _e(sums, "TaxInclusiveAmount", fmt_amount(invoice.grand_total), currencyID=currency)
    if invoice.allowance_total:
        _e(sums, "AllowanceTotalAmount", fmt_amount(invoice.allowance_total), currencyID=currency)
    if invoice.charge_total:
        _e(sums, "ChargeTotalAmount", fmt_amount(invoice.charge_total), currencyID=currency)
    if invoice.prepaid:
        _e(sums, "PrepaidAmount", fmt_amount(invoice.prepaid), currencyID=currency)
    if invoice.rounding:
        _e(sums, "PayableRoundingAmount", fmt_amount(invoice.rounding), currencyID=currency)
    if invoice.has_due_payable:
        _e(sums, "PayableAmount", fmt_amount(invoice.due_payable), currencyID=currency)


# --- lignes ---

def _build_line(root, line, currency, credit_note):
    li = _c(root, "CreditNoteLine" if credit_note else "InvoiceLine")
    _e(li, "ID", line.line_id)
    _opt(li, "Note", line.note)
    if line.has_billed_quantity:
        _e(li, "CreditedQuantity" if credit_note else "InvoicedQuantity",
           fmt_quantity(line.billed_quantity), **_attrs(unitCode=line.billed_quantity_unit))
    if line.has_total:
        _e(li, "LineExtensionAmount", fmt_amount(line.total), currencyID=currency)
    _opt(li, "AccountingCost", line.accounting_account)
    _build_period(li, line.billing_period_start, line.billing_period_end, line.has_billing_period)
    if line.buyer_order_line_ref:
        _e(_c(li, "OrderLineReference"), "LineID", line.buyer_order_line_ref)
    if line.object_id:
        ref = _c(li, "DocumentReference")
        _e(ref, "ID", line.object_id, **_attrs(schemeID=line.object_id_scheme))
        _e(ref, "DocumentTypeCode", "130")
    for ac in line.allowances + line.charges:
        _build_allowance_charge(li, ac, currency, with_tax=False)

    item = _c(li, "Item")
    _opt(item, "Description", line.description)
    _e(item, "Name", line.item_name)
    if line.buyer_item_id:
        _e(_c(item, "BuyersItemIdentification"), "ID", line.buyer_item_id)
    if line.seller_item_id:
        _e(_c(item, "SellersItemIdentification"), "ID", line.seller_item_id)
    if line.global_id:
        _e(_c(item, "StandardItemIdentification"), "ID", line.global_id, **_attrs(schemeID=line.global_id_scheme))
    if line.origin_country:
        _e(_c(item, "OriginCountry"), "IdentificationCode", line.origin_country)
    for cl in line.classifications:
        _e(_c(item, "CommodityClassification"), "ItemClassificationCode", cl.class_code,
           **_attrs(listID=cl.list_id, listVersionID=cl.list_version_id))
    _build_tax_category(item, "ClassifiedTaxCategory", line.tax_category, line.tax_rate, line.tax_type)
    for ch in line.characteristics:
        prop = _c(item, "AdditionalItemProperty")
        _e(prop, "Name", ch.description)
        _e(prop, "Value", ch.value)

    if line.has_net_price:
        price = _c(li, "Price")
        _e(price, "PriceAmount", fmt_quantity(line.net_price), currencyID=currency)
        if line.basis_quantity is not None:
            _e(price, "BaseQuantity", fmt_quantity(line.basis_quantity), **_attrs(unitCode=line.basis_quantity_unit))
        if line.gross_price is not None or line.price_allowances_charges:
            discount = sum((ac.actual_amount for ac in line.price_allowances_charges), ZERO)
            ac = _c(price, "AllowanceCharge")
            _e(ac, "ChargeIndicator", "false")
            _e(ac, "Amount", fmt_quantity(discount), currencyID=currency)
            if line.gross_price is not None:
                _e(ac, "BaseAmount", fmt_quantity(line.gross_price), currencyID=currency)
