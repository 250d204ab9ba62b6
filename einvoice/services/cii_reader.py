# einvoice/services/cii_reader.py
"""Lecture d'une facture UN/CEFACT CII (CrossIndustryInvoice D16B) vers le modèle EN 16931."""
import logging

from einvoice.models.invoice import (
    Invoice, Party, PostalAddress, GlobalID, Contact, LegalOrganization,
    InvoiceLine, Characteristic, Classification, AllowanceCharge, TradeTax,
    Note, PaymentMeans, PaymentTerms, ReferencedDocument, SupportingDocument, ZERO,
)
from einvoice.services.xml_utils import CII_NAMESPACES, Node

logger = logging.getLogger(__name__)

DTS = "udt:DateTimeString"


def read_cii(root) -> Invoice:
    doc = Node(root, CII_NAMESPACES)
    inv = Invoice(schema_type="CII")

    ctx = doc.find("rsm:ExchangedDocumentContext")
    if ctx is not None:
        inv.business_process = ctx.text("ram:BusinessProcessSpecifiedDocumentContextParameter/ram:ID")
        inv.specification_id = ctx.text("ram:GuidelineSpecifiedDocumentContextParameter/ram:ID")

    header = doc.find("rsm:ExchangedDocument")
    if header is not None:
        inv.number = header.text("ram:ID")
        inv.type_code = header.text("ram:TypeCode")
        inv.issue_date = header.date(f"ram:IssueDateTime/{DTS}")
        inv.notes = [
            Note(text=n.text("ram:Content"), subject_code=n.text("ram:SubjectCode"))
            for n in header.findall("ram:IncludedNote")
        ]

    tx = doc.find("rsm:SupplyChainTradeTransaction")
    if tx is not None:
        inv.lines = [_read_line(li) for li in tx.findall("ram:IncludedSupplyChainTradeLineItem")]
        agreement = tx.find("ram:ApplicableHeaderTradeAgreement")
        if agreement is not None:
            _read_agreement(agreement, inv)
        delivery = tx.find("ram:ApplicableHeaderTradeDelivery")
        if delivery is not None:
            _read_delivery(delivery, inv)
        settlement = tx.find("ram:ApplicableHeaderTradeSettlement")
        if settlement is not None:
            _read_settlement(settlement, inv)

    logger.info(f"Facture CII lue : {inv.number}")
    return inv


# --- parties ---

def _read_party(node: Node) -> Party:
    party = Party(
        ids=[i.text() for i in node.findall("ram:ID")],
        global_ids=[GlobalID(id=g.text(), scheme=g.attr(None, "schemeID")) for g in node.findall("ram:GlobalID")],
        name=node.text("ram:Name"),
        description=node.text("ram:Description"),
    )
    legal = node.find("ram:SpecifiedLegalOrganization")
    if legal is not None:
        party.legal_organization = LegalOrganization(
            id=legal.text("ram:ID"),
            scheme=legal.attr("ram:ID", "schemeID"),
            trading_name=legal.text("ram:TradingBusinessName"),
        )
    for c in node.findall("ram:DefinedTradeContact"):
        party.contacts.append(Contact(
            person_name=c.text("ram:PersonName"),
            department_name=c.text("ram:DepartmentName"),
            phone=c.text("ram:TelephoneUniversalCommunication/ram:CompleteNumber"),
            email=c.text("ram:EmailURIUniversalCommunication/ram:URIID"),
        ))
    addr = node.find("ram:PostalTradeAddress")
    if addr is not None:
        party.postal_address = PostalAddress(
            postcode=addr.text("ram:PostcodeCode"),
            line1=addr.text("ram:LineOne"),
            line2=addr.text("ram:LineTwo"),
            line3=addr.text("ram:LineThree"),
            city=addr.text("ram:CityName"),
            country_id=addr.text("ram:CountryID"),
            country_subdivision=addr.text("ram:CountrySubDivisionName"),
        )
    party.electronic_address = node.text("ram:URIUniversalCommunication/ram:URIID")
    party.electronic_address_scheme = node.attr("ram:URIUniversalCommunication/ram:URIID", "schemeID")
    for reg in node.findall("ram:SpecifiedTaxRegistration/ram:ID"):
        if reg.attr(None, "schemeID") == "FC":
            party.fc_tax_registration = reg.text()
        else:
            party.vat_id = reg.text()
    return party


# --- remises et charges ---

def _read_allowance_charge(node: Node) -> AllowanceCharge:
    return AllowanceCharge(
        charge_indicator=node.text("ram:ChargeIndicator/udt:Indicator").lower() == "true",
        calculation_percent=node.decimal("ram:CalculationPercent"),
        basis_amount=node.decimal("ram:BasisAmount"),
        actual_amount=node.decimal("ram:ActualAmount") or ZERO,
        reason_code=node.text("ram:ReasonCode"),
        reason=node.text("ram:Reason"),
        tax_type=node.text("ram:CategoryTradeTax/ram:TypeCode") or "VAT",
        category_code=node.text("ram:CategoryTradeTax/ram:CategoryCode"),
        category_rate=node.decimal("ram:CategoryTradeTax/ram:RateApplicablePercent"),
    )


# --- lignes ---

def _read_line(li: Node) -> InvoiceLine:
    line = InvoiceLine(
        line_id=li.text("ram:AssociatedDocumentLineDocument/ram:LineID"),
        note=li.text("ram:AssociatedDocumentLineDocument/ram:IncludedNote/ram:Content"),
    )

    product = li.find("ram:SpecifiedTradeProduct")
    if product is not None:
        line.global_id = product.text("ram:GlobalID")
        line.global_id_scheme = product.attr("ram:GlobalID", "schemeID")
        line.seller_item_id = product.text("ram:SellerAssignedID")
        line.buyer_item_id = product.text("ram:BuyerAssignedID")
        line.item_name = product.text("ram:Name")
        line.description = product.text("ram:Description")
        line.characteristics = [
            Characteristic(description=c.text("ram:Description"), value=c.text("ram:Value"))
            for c in product.findall("ram:ApplicableProductCharacteristic")
        ]
        line.classifications = [
            Classification(
                class_code=c.text("ram:ClassCode"),
                list_id=c.attr("ram:ClassCode", "listID"),
                list_version_id=c.attr("ram:ClassCode", "listVersionID"),
            )
            for c in product.findall("ram:DesignatedProductClassification")
        ]
        line.origin_country = product.text("ram:OriginTradeCountry/ram:ID")

    agreement = li.find("ram:SpecifiedLineTradeAgreement")
    if agreement is not None:
        line.buyer_order_line_ref = agreement.text("ram:BuyerOrderReferencedDocument/ram:LineID")
        gross = agreement.find("ram:GrossPriceProductTradePrice")
        if gross is not None:
            line.gross_price = gross.decimal("ram:ChargeAmount")
            line.price_allowances_charges = [
                _read_allowance_charge(ac) for ac in gross.findall("ram:AppliedTradeAllowanceCharge")
            ]
        net_price = agreement.decimal("ram:NetPriceProductTradePrice/ram:ChargeAmount")
        line.has_net_price = net_price is not None
        line.net_price = net_price if net_price is not None else ZERO
        line.basis_quantity = agreement.decimal("ram:NetPriceProductTradePrice/ram:BasisQuantity")
        line.basis_quantity_unit = agreement.attr("ram:NetPriceProductTradePrice/ram:BasisQuantity", "unitCode")
    else:
        line.has_net_price = False

    qty = li.decimal("ram:SpecifiedLineTradeDelivery/ram:BilledQuantity")
    line.has_billed_quantity = qty is not None
    line.billed_quantity = qty if qty is not None else ZERO
    line.billed_quantity_unit = li.attr("ram:SpecifiedLineTradeDelivery/ram:BilledQuantity", "unitCode")

    settlement = li.find("ram:SpecifiedLineTradeSettlement")
    if settlement is not None:
        line.tax_type = settlement.text("ram:ApplicableTradeTax/ram:TypeCode") or "VAT"
        line.tax_category = settlement.text("ram:ApplicableTradeTax/ram:CategoryCode")
        line.tax_rate = settlement.decimal("ram:ApplicableTradeTax/ram:RateApplicablePercent")
        period = settlement.find("ram:BillingSpecifiedPeriod")
        if period is not None:
            line.has_billing_period = True
            line.billing_period_start = period.date(f"ram:StartDateTime/{DTS}")
            line.billing_period_end = period.date(f"ram:EndDateTime/{DTS}")
        for ac in settlement.findall("ram:SpecifiedTradeAllowanceCharge"):
            item = _read_allowance_charge(ac)
            (line.charges if item.charge_indicator else line.allowances).append(item)
        total = settlement.decimal("ram:SpecifiedTradeSettlementLineMonetarySummation/ram:LineTotalAmount")
        line.has_total = total is not None
        line.total = total if total is not None else ZERO
        line.object_id = settlement.text("ram:AdditionalReferencedDocument/ram:IssuerAssignedID")
        line.object_id_scheme = settlement.text("ram:AdditionalReferencedDocument/ram:ReferenceTypeCode")
        line.accounting_account = settlement.text("ram:ReceivableSpecifiedTradeAccountingAccount/ram:ID")
    else:
        line.has_total = False
    return line


# --- en-tête ---

def _read_agreement(agreement: Node, inv: Invoice) -> None:
    inv.buyer_reference = agreement.text("ram:BuyerReference")
    seller = agreement.find("ram:SellerTradeParty")
    if seller is not None:
        inv.seller = _read_party(seller)
    buyer = agreement.find("ram:BuyerTradeParty")
    if buyer is not None:
        inv.buyer = _read_party(buyer)
    taxrep = agreement.find("ram:SellerTaxRepresentativeTradeParty")
    if taxrep is not None:
        inv.tax_representative = _read_party(taxrep)
    inv.seller_order_reference = agreement.text("ram:SellerOrderReferencedDocument/ram:IssuerAssignedID")
    inv.buyer_order_reference = agreement.text("ram:BuyerOrderReferencedDocument/ram:IssuerAssignedID")
    inv.contract_reference = agreement.text("ram:ContractReferencedDocument/ram:IssuerAssignedID")
    for ref in agreement.findall("ram:AdditionalReferencedDocument"):
        inv.supporting_documents.append(SupportingDocument(
            id=ref.text("ram:IssuerAssignedID"),
            uri=ref.text("ram:URIID"),
            type_code=ref.text("ram:TypeCode"),
            name=ref.text("ram:Name"),
            attachment=ref.binary("ram:AttachmentBinaryObject"),
            attachment_mime_code=ref.attr("ram:AttachmentBinaryObject", "mimeCode"),
            attachment_filename=ref.attr("ram:AttachmentBinaryObject", "filename"),
            reference_type_code=ref.text("ram:ReferenceTypeCode"),
        ))
    inv.project_id = agreement.text("ram:SpecifiedProcuringProject/ram:ID")
    inv.project_name = agreement.text("ram:SpecifiedProcuringProject/ram:Name")


def _read_delivery(delivery: Node, inv: Invoice) -> None:
    ship_to = delivery.find("ram:ShipToTradeParty")
    if ship_to is not None:
        inv.ship_to = _read_party(ship_to)
    inv.delivery_date = delivery.date(f"ram:ActualDeliverySupplyChainEvent/ram:OccurrenceDateTime/{DTS}")
    inv.despatch_advice_reference = delivery.text("ram:DespatchAdviceReferencedDocument/ram:IssuerAssignedID")
    inv.receiving_advice_reference = delivery.text("ram:ReceivingAdviceReferencedDocument/ram:IssuerAssignedID")


def _read_settlement(settlement: Node, inv: Invoice) -> None:
    inv.creditor_reference = settlement.text("ram:CreditorReferenceID")
    inv.payment_reference = settlement.text("ram:PaymentReference")
    inv.tax_currency = settlement.text("ram:TaxCurrencyCode")
    inv.currency = settlement.text("ram:InvoiceCurrencyCode")

    payee = settlement.find("ram:PayeeTradeParty")
    if payee is not None:
        inv.payee = _read_party(payee)

    for pm in settlement.findall("ram:SpecifiedTradeSettlementPaymentMeans"):
        inv.payment_means.append(PaymentMeans(
            type_code=pm.text("ram:TypeCode"),
            information=pm.text("ram:Information"),
            card_id=pm.text("ram:ApplicableTradeSettlementFinancialCard/ram:ID"),
            cardholder_name=pm.text("ram:ApplicableTradeSettlementFinancialCard/ram:CardholderName"),
            payer_iban=pm.text("ram:PayerPartyDebtorFinancialAccount/ram:IBANID"),
            payee_iban=pm.text("ram:PayeePartyCreditorFinancialAccount/ram:IBANID"),
            payee_account_name=pm.text("ram:PayeePartyCreditorFinancialAccount/ram:AccountName"),
            payee_proprietary_id=pm.text("ram:PayeePartyCreditorFinancialAccount/ram:ProprietaryID"),
            payee_bic=pm.text("ram:PayeeSpecifiedCreditorFinancialInstitution/ram:BICID"),
        ))

    for tax in settlement.findall("ram:ApplicableTradeTax"):
        calculated = tax.decimal("ram:CalculatedAmount")
        inv.trade_taxes.append(TradeTax(
            calculated_amount=calculated if calculated is not None else ZERO,
            has_calculated_amount=calculated is not None,
            type_code=tax.text("ram:TypeCode") or "VAT",
            exemption_reason=tax.text("ram:ExemptionReason"),
            basis_amount=tax.decimal("ram:BasisAmount") or ZERO,
            category_code=tax.text("ram:CategoryCode"),
            exemption_reason_code=tax.text("ram:ExemptionReasonCode"),
            tax_point_date=tax.date("ram:TaxPointDate/udt:DateString"),
            due_date_type_code=tax.text("ram:DueDateTypeCode"),
            rate=tax.decimal("ram:RateApplicablePercent"),
        ))

    period = settlement.find("ram:BillingSpecifiedPeriod")
    if period is not None:
        inv.has_billing_period = True
        inv.billing_period_start = period.date(f"ram:StartDateTime/{DTS}")
        inv.billing_period_end = period.date(f"ram:EndDateTime/{DTS}")

    inv.allowances_charges = [
        _read_allowance_charge(ac) for ac in settlement.findall("ram:SpecifiedTradeAllowanceCharge")
    ]

    for terms in settlement.findall("ram:SpecifiedTradePaymentTerms"):
        inv.payment_terms.append(PaymentTerms(
            description=terms.text("ram:Description"),
            due_date=terms.date(f"ram:DueDateDateTime/{DTS}"),
            direct_debit_mandate_id=terms.text("ram:DirectDebitMandateID"),
        ))

    sums = settlement.find("ram:SpecifiedTradeSettlementHeaderMonetarySummation")
    if sums is not None:
        _read_summation(sums, inv)
    else:
        inv.has_line_total = inv.has_tax_basis_total = inv.has_grand_total = inv.has_due_payable = False

    for ref in settlement.findall("ram:InvoiceReferencedDocument"):
        inv.preceding_invoices.append(ReferencedDocument(
            id=ref.text("ram:IssuerAssignedID"),
            issue_date=ref.date("ram:FormattedIssueDateTime/qdt:DateTimeString"),
        ))
    inv.accounting_account = settlement.text("ram:ReceivableSpecifiedTradeAccountingAccount/ram:ID")


def _read_summation(sums: Node, inv: Invoice) -> None:
    def amount(tag):
        return sums.decimal(f"ram:{tag}")

    line_total = amount("LineTotalAmount")
    basis_total = amount("TaxBasisTotalAmount")
    grand_total = amount("GrandTotalAmount")
    due_payable = amount("DuePayableAmount")
    inv.has_line_total = line_total is not None
    inv.has_tax_basis_total = basis_total is not None
    inv.has_grand_total = grand_total is not None
    inv.has_due_payable = due_payable is not None
    inv.line_total = line_total if line_total is not None else ZERO
    inv.tax_basis_total = basis_total if basis_total is not None else ZERO
    inv.grand_total = grand_total if grand_total is not None else ZERO
    inv.due_payable = due_payable if due_payable is not None else ZERO
    inv.charge_total = amount("ChargeTotalAmount") or ZERO
    inv.allowance_total = amount("AllowanceTotalAmount") or ZERO
    inv.rounding = amount("RoundingAmount") or ZERO
    inv.prepaid = amount("TotalPrepaidAmount") or ZERO

    for tax_total in sums.findall("ram:TaxTotalAmount"):
        assign_tax_total(inv, tax_total.decimal(), tax_total.attr(None, "currencyID"))


def assign_tax_total(inv: Invoice, value, currency: str) -> None:
    """Affecte un montant total de TVA selon sa devise : BT-110, BT-111 ou devise inattendue."""
    currency = currency or inv.currency
    if currency == inv.currency and inv.tax_total_currency == "":
        inv.tax_total = value
        inv.tax_total_currency = currency
    elif inv.tax_currency and currency == inv.tax_currency and inv.tax_total_accounting is None:
        inv.tax_total_accounting = value
        inv.tax_total_accounting_currency = currency
    else:
        logger.warning(f"Devise de TVA inattendue : {currency}")
        inv.unexpected_tax_currencies.append(currency)
