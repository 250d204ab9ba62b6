# einvoice/services/cii_writer.py
"""Génération CII (CrossIndustryInvoice D16B) à partir du modèle EN 16931."""
from lxml import etree

from einvoice.models.invoice import Invoice, Party, AllowanceCharge
from einvoice.services.xml_utils import (
    CII_NAMESPACES as NAMESPACES, encode_binary, fmt_amount, fmt_percent, fmt_quantity,
)


def _e(parent, tag, text=None, ns="ram", **attribs):
    elem = etree.SubElement(parent, f"{{{NAMESPACES[ns]}}}{tag}", **attribs)
    if text is not None:
        elem.text = str(text)
    return elem


def _opt(parent, tag, text, **attribs):
    # élément facultatif : omis si vide
    if text:
        return _e(parent, tag, text, **attribs)
    return None


def _add_date(parent, tag, value, ns="udt", child="DateTimeString"):
    container = _e(parent, tag)
    dts = _e(container, child, ns=ns, format="102")
    dts.text = value.strftime("%Y%m%d")
    return container


def _attrs(**attribs):
    return {k: v for k, v in attribs.items() if v}


def generate_cii(invoice: Invoice) -> bytes:
    root = etree.Element(f"{{{NAMESPACES['rsm']}}}CrossIndustryInvoice", nsmap=NAMESPACES)

    ctx = _e(root, "ExchangedDocumentContext", ns="rsm")
    if invoice.business_process:
        bp = _e(ctx, "BusinessProcessSpecifiedDocumentContextParameter")
        _e(bp, "ID", invoice.business_process)
    gm = _e(ctx, "GuidelineSpecifiedDocumentContextParameter")
    _e(gm, "ID", invoice.specification_id)

    doc = _e(root, "ExchangedDocument", ns="rsm")
    _e(doc, "ID", invoice.number)
    _e(doc, "TypeCode", invoice.type_code)
    if invoice.issue_date:
        _add_date(doc, "IssueDateTime", invoice.issue_date)
    for note in invoice.notes:
        n = _e(doc, "IncludedNote")
        _e(n, "Content", note.text)
        _opt(n, "SubjectCode", note.subject_code)

    tx = _e(root, "SupplyChainTradeTransaction", ns="rsm")
    for line in invoice.lines:
        _build_line(tx, line)
    _build_agreement(tx, invoice)
    _build_delivery(tx, invoice)
    _build_settlement(tx, invoice)

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


# --- parties ---

def _build_party(parent, tag, party: Party):
    p = _e(parent, tag)
    for ident in party.ids:
        _e(p, "ID", ident)
    for gid in party.global_ids:
        _e(p, "GlobalID", gid.id, **_attrs(schemeID=gid.scheme))
    _opt(p, "Name", party.name)
    _opt(p, "Description", party.description)
    legal = party.legal_organization
    if legal is not None:
        lo = _e(p, "SpecifiedLegalOrganization")
        _opt(lo, "ID", legal.id, **_attrs(schemeID=legal.scheme))
        _opt(lo, "TradingBusinessName", legal.trading_name)
    for contact in party.contacts:
        c = _e(p, "DefinedTradeContact")
        _opt(c, "PersonName", contact.person_name)
        _opt(c, "DepartmentName", contact.department_name)
        if contact.phone:
            _e(_e(c, "TelephoneUniversalCommunication"), "CompleteNumber", contact.phone)
        if contact.email:
            _e(_e(c, "EmailURIUniversalCommunication"), "URIID", contact.email)
    addr = party.postal_address
    if addr is not None:
        a = _e(p, "PostalTradeAddress")
        _opt(a, "PostcodeCode", addr.postcode)
        _opt(a, "LineOne", addr.line1)
        _opt(a, "LineTwo", addr.line2)
        _opt(a, "LineThree", addr.line3)
        _opt(a, "CityName", addr.city)
        _opt(a, "CountryID", addr.country_id)
        _opt(a, "CountrySubDivisionName", addr.country_subdivision)
    if party.electronic_address:
        uri = _e(p, "URIUniversalCommunication")
        _e(uri, "URIID", party.electronic_address, **_attrs(schemeID=party.electronic_address_scheme))
    if party.vat_id:
        _e(_e(p, "SpecifiedTaxRegistration"), "ID", party.vat_id, schemeID="VA")
    if party.fc_tax_registration:
        _e(_e(p, "SpecifiedTaxRegistration"), "ID", party.fc_tax_registration, schemeID="FC")
    return p


# --- remises et charges ---

def _build_allowance_charge(parent, tag, ac: AllowanceCharge, with_tax=True):
    el = _e(parent, tag)
    _e(_e(el, "ChargeIndicator"), "Indicator", "true" if ac.charge_indicator else "false", ns="udt")
    if ac.calculation_percent is not None:
        _e(el, "CalculationPercent", fmt_percent(ac.calculation_percent))
    if ac.basis_amount is not None:
        _e(el, "BasisAmount", fmt_amount(ac.basis_amount))
    _e(el, "ActualAmount", fmt_amount(ac.actual_amount))
    _opt(el, "ReasonCode", ac.reason_code)
    _opt(el, "Reason", ac.reason)
    if with_tax and (ac.category_code or ac.category_rate is not None):
        tax = _e(el, "CategoryTradeTax")
        _e(tax, "TypeCode", ac.tax_type or "VAT")
        _opt(tax, "CategoryCode", ac.category_code)
        if ac.category_rate is not None:
            _e(tax, "RateApplicablePercent", fmt_percent(ac.category_rate))
    return el


# --- lignes ---

def _build_line(parent, line):
    li = _e(parent, "IncludedSupplyChainTradeLineItem")
    doc = _e(li, "AssociatedDocumentLineDocument")
    _e(doc, "LineID", line.line_id)
    if line.note:
        _e(_e(doc, "IncludedNote"), "Content", line.note)

    product = _e(li, "SpecifiedTradeProduct")
    _opt(product, "GlobalID", line.global_id, **_attrs(schemeID=line.global_id_scheme))
    _opt(product, "SellerAssignedID", line.seller_item_id)
    _opt(product, "BuyerAssignedID", line.buyer_item_id)
    _e(product, "Name", line.item_name)
    _opt(product, "Description", line.description)
    for ch in line.characteristics:
        c = _e(product, "ApplicableProductCharacteristic")
        _e(c, "Description", ch.description)
        _e(c, "Value", ch.value)
    for cl in line.classifications:
        c = _e(product, "DesignatedProductClassification")
        _e(c, "ClassCode", cl.class_code, **_attrs(listID=cl.list_id, listVersionID=cl.list_version_id))
    if line.origin_country:
        _e(_e(product, "OriginTradeCountry"), "ID", line.origin_country)

    agreement = _e(li, "SpecifiedLineTradeAgreement")
    if line.buyer_order_line_ref:
        _e(_e(agreement, "BuyerOrderReferencedDocument"), "LineID", line.buyer_order_line_ref)
    if line.gross_price is not None or line.price_allowances_charges:
        gross = _e(agreement, "GrossPriceProductTradePrice")
        if line.gross_price is not None:
            _e(gross, "ChargeAmount", fmt_quantity(line.gross_price))
        for ac in line.price_allowances_charges:
            _build_allowance_charge(gross, "AppliedTradeAllowanceCharge", ac, with_tax=False)
    if line.has_net_price:
        net = _e(agreement, "NetPriceProductTradePrice")
        _e(net, "ChargeAmount", fmt_quantity(line.net_price))
        if line.basis_quantity is not None:
            _e(net, "BasisQuantity", fmt_quantity(line.basis_quantity), **_attrs(unitCode=line.basis_quantity_unit))

    delivery = _e(li, "SpecifiedLineTradeDelivery")
    if line.has_billed_quantity:
        _e(delivery, "BilledQuantity", fmt_quantity(line.billed_quantity), **_attrs(unitCode=line.billed_quantity_unit))

    settlement = _e(li, "SpecifiedLineTradeSettlement")
    tax = _e(settlement, "ApplicableTradeTax")
    _e(tax, "TypeCode", line.tax_type or "VAT")
    _opt(tax, "CategoryCode", line.tax_category)
    if line.tax_rate is not None:
        _e(tax, "RateApplicablePercent", fmt_percent(line.tax_rate))
    if line.has_billing_period or line.billing_period_start or line.billing_period_end:
        period = _e(settlement, "BillingSpecifiedPeriod")
        if line.billing_period_start:
            _add_date(period, "StartDateTime", line.billing_period_start)
        if line.billing_period_end:
            _add_date(period, "EndDateTime", line.billing_period_end)
    for ac in line.allowances + line.charges:
        _build_allowance_charge(settlement, "SpecifiedTradeAllowanceCharge", ac, with_tax=False)
    sums = _e(settlement, "SpecifiedTradeSettlementLineMonetarySummation")
    if line.has_total:
        _e(sums, "LineTotalAmount", fmt_amount(line.total))
    if line.object_id:
        ref = _e(settlement, "AdditionalReferencedDocument")
        _e(ref, "IssuerAssignedID", line.object_id)
        _e(ref, "TypeCode", "130")
        _opt(ref, "ReferenceTypeCode", line.object_id_scheme)
    if line.accounting_account:
        _e(_e(settlement, "ReceivableSpecifiedTradeAccountingAccount"), "ID", line.accounting_account)


# --- en-tête ---

def _build_agreement(tx, invoice: Invoice):
    agreement = _e(tx, "ApplicableHeaderTradeAgreement")
    _opt(agreement, "BuyerReference", invoice.buyer_reference)
    _build_party(agreement, "SellerTradeParty", invoice.seller)
    _build_party(agreement, "BuyerTradeParty", invoice.buyer)
    if invoice.tax_representative is not None:
        _build_party(agreement, "SellerTaxRepresentativeTradeParty", invoice.tax_representative)
    if invoice.seller_order_reference:
        _e(_e(agreement, "SellerOrderReferencedDocument"), "IssuerAssignedID", invoice.seller_order_reference)
    if invoice.buyer_order_reference:
        _e(_e(agreement, "BuyerOrderReferencedDocument"), "IssuerAssignedID", invoice.buyer_order_reference)
    if invoice.contract_reference:
        _e(_e(agreement, "ContractReferencedDocument"), "IssuerAssignedID", invoice.contract_reference)
    for sd in invoice.supporting_documents:
        ref = _e(agreement, "AdditionalReferencedDocument")
        _e(ref, "IssuerAssignedID", sd.id)
        _opt(ref, "URIID", sd.uri)
        _opt(ref, "TypeCode", sd.type_code)
        _opt(ref, "Name", sd.name)
        if sd.attachment is not None:
            _e(ref, "AttachmentBinaryObject", encode_binary(sd.attachment),
               **_attrs(mimeCode=sd.attachment_mime_code, filename=sd.attachment_filename))
        _opt(ref, "ReferenceTypeCode", sd.reference_type_code)
    if invoice.project_id or invoice.project_name:
        project = _e(agreement, "SpecifiedProcuringProject")
        _e(project, "ID", invoice.project_id)
        _e(project, "Name", invoice.project_name)


def _build_delivery(tx, invoice: Invoice):
    delivery = _e(tx, "ApplicableHeaderTradeDelivery")
    if invoice.ship_to is not None:
        _build_party(delivery, "ShipToTradeParty", invoice.ship_to)
    if invoice.delivery_date:
        event = _e(delivery, "ActualDeliverySupplyChainEvent")
        _add_date(event, "OccurrenceDateTime", invoice.delivery_date)
    if invoice.despatch_advice_reference:
        _e(_e(delivery, "DespatchAdviceReferencedDocument"), "IssuerAssignedID", invoice.despatch_advice_reference)
    if invoice.receiving_advice_reference:
        _e(_e(delivery, "ReceivingAdviceReferencedDocument"), "IssuerAssignedID", invoice.receiving_advice_reference)


def _build_settlement(tx, invoice: Invoice):
    settlement = _e(tx, "ApplicableHeaderTradeSettlement")
    _opt(settlement, "CreditorReferenceID", invoice.creditor_reference)
    _opt(settlement, "PaymentReference", invoice.payment_reference)
    _opt(settlement, "TaxCurrencyCode", invoice.tax_currency)
    _e(settlement, "InvoiceCurrencyCode", invoice.currency)
    if invoice.payee is not None:
        _build_party(settlement, "PayeeTradeParty", invoice.payee)

    for pm in invoice.payment_means:
        _build_payment_means(settlement, pm)
    for tax in invoice.trade_taxes:
        _build_trade_tax(settlement, tax)

    if invoice.has_billing_period or invoice.billing_period_start or invoice.billing_period_end:
        period = _e(settlement, "BillingSpecifiedPeriod")
        if invoice.billing_period_start:
            _add_date(period, "StartDateTime", invoice.billing_period_start)
        if invoice.billing_period_end:
            _add_date(period, "EndDateTime", invoice.billing_period_end)

    for ac in invoice.allowances_charges:
        _build_allowance_charge(settlement, "SpecifiedTradeAllowanceCharge", ac)

    for terms in invoice.payment_terms:
        t = _e(settlement, "SpecifiedTradePaymentTerms")
        _opt(t, "Description", terms.description)
        if terms.due_date:
            _add_date(t, "DueDateDateTime", terms.due_date)
        _opt(t, "DirectDebitMandateID", terms.direct_debit_mandate_id)

    _build_totals(settlement, invoice)

    for ref in invoice.preceding_invoices:
        r = _e(settlement, "InvoiceReferencedDocument")
        _e(r, "IssuerAssignedID", ref.id)
        if ref.issue_date:
            _add_date(r, "FormattedIssueDateTime", ref.issue_date, ns="qdt")
    if invoice.accounting_account:
        _e(_e(settlement, "ReceivableSpecifiedTradeAccountingAccount"), "ID", invoice.accounting_account)


def _build_payment_means(parent, pm):
    el = _e(parent, "SpecifiedTradeSettlementPaymentMeans")
    _e(el, "TypeCode", pm.type_code)
    _opt(el, "Information", pm.information)
    if pm.card_id or pm.cardholder_name:
        card = _e(el, "ApplicableTradeSettlementFinancialCard")
        _e(card, "ID", pm.card_id)
        _opt(card, "CardholderName", pm.cardholder_name)
    if pm.payer_iban:
        _e(_e(el, "PayerPartyDebtorFinancialAccount"), "IBANID", pm.payer_iban)
    if pm.payee_iban or pm.payee_account_name or pm.payee_proprietary_id:
        acc = _e(el, "PayeePartyCreditorFinancialAccount")
        _opt(acc, "IBANID", pm.payee_iban)
        _opt(acc, "AccountName", pm.payee_account_name)
        _opt(acc, "ProprietaryID", pm.payee_proprietary_id)
    if pm.payee_bic:
        _e(_e(el, "PayeeSpecifiedCreditorFinancialInstitution"), "BICID", pm.payee_bic)


def _build_trade_tax(parent, tax):
    el = _e(parent, "ApplicableTradeTax")
    if tax.has_calculated_amount:
        _e(el, "CalculatedAmount", fmt_amount(tax.calculated_amount))
    _e(el, "TypeCode", tax.type_code or "VAT")
    _opt(el, "ExemptionReason", tax.exemption_reason)
    _e(el, "BasisAmount", fmt_amount(tax.basis_amount))
    _opt(el, "CategoryCode", tax.category_code)
    _opt(el, "ExemptionReasonCode", tax.exemption_reason_code)
    if tax.tax_point_date:
        _add_date(el, "TaxPointDate", tax.tax_point_date, child="DateString")
    _opt(el, "DueDateTypeCode", tax.due_date_type_code)
    if tax.rate is not None:
        _e(el, "RateApplicablePercent", fmt_percent(tax.rate))


def _build_totals(parent, invoice: Invoice):
    currency = invoice.currency
    minimum = invoice.is_minimum()
    sums = _e(parent, "SpecifiedTradeSettlementHeaderMonetarySummation")
    if invoice.has_line_total and not minimum:
        _e(sums, "LineTotalAmount", fmt_amount(invoice.line_total))
    if not minimum:
        _e(sums, "ChargeTotalAmount", fmt_amount(invoice.charge_total))
        _e(sums, "AllowanceTotalAmount", fmt_amount(invoice.allowance_total))
    if invoice.has_tax_basis_total:
        _e(sums, "TaxBasisTotalAmount", fmt_amount(invoice.tax_basis_total))
    _e(sums, "TaxTotalAmount", fmt_amount(invoice.tax_total), currencyID=invoice.tax_total_currency or currency)
    if invoice.tax_currency and invoice.tax_currency != currency and invoice.tax_total_accounting is not None:
        _e(sums, "TaxTotalAmount", fmt_amount(invoice.tax_total_accounting), currencyID=invoice.tax_currency)
    if invoice.rounding:
        _e(sums, "RoundingAmount", fmt_amount(invoice.rounding))
    if invoice.has_grand_total:
        _e(sums, "GrandTotalAmount", fmt_amount(invoice.grand_total))
    if invoice.prepaid and not minimum:
        _e(sums, "TotalPrepaidAmount", fmt_amount(invoice.prepaid))
    if invoice.has_due_payable:
        _e(sums, "DuePayableAmount", fmt_amount(invoice.due_payable))
