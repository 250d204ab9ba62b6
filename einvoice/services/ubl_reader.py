# einvoice/services/ubl_reader.py
"""Lecture d'une facture ou d'un avoir OASIS UBL 2.1 vers le modèle EN 16931."""
import logging
import re

from einvoice.models.invoice import (
    Invoice, Party, PostalAddress, GlobalID, Contact, LegalOrganization,
    InvoiceLine, Characteristic, Classification, AllowanceCharge, TradeTax,
    Note, PaymentMeans, PaymentTerms, ReferencedDocument, SupportingDocument, ZERO,
)
from einvoice.services.cii_reader import assign_tax_total
from einvoice.services.xml_utils import UBL_NAMESPACES, UBL_CREDIT_NOTE_NS, Node

logger = logging.getLogger(__name__)

# "#AAI#texte" : code sujet de la note (BT-21) en tête du texte
NOTE_SUBJECT_RE = re.compile(r"^#([A-Za-z0-9]{1,3})#(.*)$", re.DOTALL)

# type de document d'un projet porté par AdditionalDocumentReference dans un avoir
PROJECT_DOCUMENT_TYPE = "50"
SEPA_SCHEME = "SEPA"


def read_ubl(root) -> Invoice:
    doc = Node(root, UBL_NAMESPACES)
    credit_note = root.tag.startswith(f"{{{UBL_CREDIT_NOTE_NS}}}")
    inv = Invoice(schema_type="UBL")

    inv.specification_id = doc.text("cbc:CustomizationID")
    inv.business_process = doc.text("cbc:ProfileID")
    inv.number = doc.text("cbc:ID")
    inv.issue_date = doc.date("cbc:IssueDate", "iso")
    if credit_note:
        inv.type_code = doc.text("cbc:CreditNoteTypeCode") or "381"
    else:
        inv.type_code = doc.text("cbc:InvoiceTypeCode")
    inv.notes = [_read_note(n.text()) for n in doc.findall("cbc:Note")]
    tax_point_date = doc.date("cbc:TaxPointDate", "iso")
    inv.currency = doc.text("cbc:DocumentCurrencyCode")
    inv.tax_currency = doc.text("cbc:TaxCurrencyCode")
    inv.accounting_account = doc.text("cbc:AccountingCost")
    inv.buyer_reference = doc.text("cbc:BuyerReference")

    due_date_type_code = ""
    period = doc.find("cac:InvoicePeriod")
    if period is not None:
        inv.billing_period_start = period.date("cbc:StartDate", "iso")
        inv.billing_period_end = period.date("cbc:EndDate", "iso")
        due_date_type_code = period.text("cbc:DescriptionCode")
        inv.has_billing_period = (
            inv.billing_period_start is not None
            or inv.billing_period_end is not None
            or not due_date_type_code
        )

    inv.buyer_order_reference = doc.text("cac:OrderReference/cbc:ID")
    inv.seller_order_reference = doc.text("cac:OrderReference/cbc:SalesOrderID")
    for ref in doc.findall("cac:BillingReference/cac:InvoiceDocumentReference"):
        inv.preceding_invoices.append(ReferencedDocument(
            id=ref.text("cbc:ID"),
            issue_date=ref.date("cbc:IssueDate", "iso"),
        ))
    inv.despatch_advice_reference = doc.text("cac:DespatchDocumentReference/cbc:ID")
    inv.receiving_advice_reference = doc.text("cac:ReceiptDocumentReference/cbc:ID")
    inv.contract_reference = doc.text("cac:ContractDocumentReference/cbc:ID")
    for ref in doc.findall("cac:AdditionalDocumentReference"):
        if credit_note and ref.text("cbc:DocumentTypeCode") == PROJECT_DOCUMENT_TYPE:
            inv.project_id = ref.text("cbc:ID")
            continue
        inv.supporting_documents.append(_read_supporting_document(ref))
    if not credit_note:
        inv.project_id = doc.text("cac:ProjectReference/cbc:ID")

    seller = doc.find("cac:AccountingSupplierParty/cac:Party")
    if seller is not None:
        inv.seller = _read_party(seller, inv, registration_name=True)
    buyer = doc.find("cac:AccountingCustomerParty/cac:Party")
    if buyer is not None:
        inv.buyer = _read_party(buyer, inv, registration_name=True)
    payee = doc.find("cac:PayeeParty")
    if payee is not None:
        inv.payee = _read_party(payee, inv)
    taxrep = doc.find("cac:TaxRepresentativeParty")
    if taxrep is not None:
        inv.tax_representative = _read_party(taxrep, inv)

    delivery = doc.find("cac:Delivery")
    if delivery is not None:
        _read_delivery(delivery, inv)

    _read_payment(doc, inv, credit_note)

    inv.allowances_charges = [_read_allowance_charge(ac) for ac in doc.findall("cac:AllowanceCharge")]

    for tax_total in doc.findall("cac:TaxTotal"):
        amount = tax_total.decimal("cbc:TaxAmount")
        if amount is not None:
            assign_tax_total(inv, amount, tax_total.attr("cbc:TaxAmount", "currencyID"))
        for sub in tax_total.findall("cac:TaxSubtotal"):
            inv.trade_taxes.append(_read_tax_subtotal(sub))
    if inv.trade_taxes:
        inv.trade_taxes[0].tax_point_date = tax_point_date
        inv.trade_taxes[0].due_date_type_code = due_date_type_code

    _read_monetary_total(doc.find("cac:LegalMonetaryTotal"), inv)

    line_tag = "cac:CreditNoteLine" if credit_note else "cac:InvoiceLine"
    inv.lines = [_read_line(li, credit_note) for li in doc.findall(line_tag)]

    logger.info(f"Facture UBL lue : {inv.number}", extra={"extra": {"credit_note": credit_note}})
    return inv


def _read_note(text: str) -> Note:
    match = NOTE_SUBJECT_RE.match(text)
    if match:
        return Note(subject_code=match.group(1), text=match.group(2))
    return Note(text=text)


def _read_supporting_document(ref: Node) -> SupportingDocument:
    return SupportingDocument(
        id=ref.text("cbc:ID"),
        reference_type_code=ref.attr("cbc:ID", "schemeID"),
        type_code=ref.text("cbc:DocumentTypeCode"),
        name=ref.text("cbc:DocumentDescription"),
        attachment=ref.binary("cac:Attachment/cbc:EmbeddedDocumentBinaryObject"),
        attachment_mime_code=ref.attr("cac:Attachment/cbc:EmbeddedDocumentBinaryObject", "mimeCode"),
        attachment_filename=ref.attr("cac:Attachment/cbc:EmbeddedDocumentBinaryObject", "filename"),
        uri=ref.text("cac:Attachment/cac:ExternalReference/cbc:URI"),
    )


# --- parties ---

def _read_address(addr: Node) -> PostalAddress:
    return PostalAddress(
        line1=addr.text("cbc:StreetName"),
        line2=addr.text("cbc:AdditionalStreetName"),
        line3=addr.text("cac:AddressLine/cbc:Line"),
        city=addr.text("cbc:CityName"),
        postcode=addr.text("cbc:PostalZone"),
        country_subdivision=addr.text("cbc:CountrySubentity"),
        country_id=addr.text("cac:Country/cbc:IdentificationCode"),
    )


def _read_party(node: Node, inv: Invoice, registration_name=False) -> Party:
    """
    Vendeur et acheteur : le nom légal est RegistrationName, PartyName porte le nom commercial.
    Bénéficiaire et représentant fiscal : le nom est PartyName.
    """
    party = Party(
        electronic_address=node.text("cbc:EndpointID"),
        electronic_address_scheme=node.attr("cbc:EndpointID", "schemeID"),
    )
    for ident in node.findall("cac:PartyIdentification/cbc:ID"):
        scheme = ident.attr(None, "schemeID")
        if scheme == SEPA_SCHEME:
            inv.creditor_reference = ident.text()
        elif scheme:
            party.global_ids.append(GlobalID(id=ident.text(), scheme=scheme))
        else:
            party.ids.append(ident.text())

    party_name = node.text("cac:PartyName/cbc:Name")
    company_id = node.text("cac:PartyLegalEntity/cbc:CompanyID")
    if registration_name:
        party.name = node.text("cac:PartyLegalEntity/cbc:RegistrationName")
        trading_name = party_name
    else:
        party.name = party_name
        trading_name = ""
    if company_id or trading_name:
        party.legal_organization = LegalOrganization(
            id=company_id,
            scheme=node.attr("cac:PartyLegalEntity/cbc:CompanyID", "schemeID"),
            trading_name=trading_name,
        )
    party.description = node.text("cac:PartyLegalEntity/cbc:CompanyLegalForm")

    addr = node.find("cac:PostalAddress")
    if addr is not None:
        party.postal_address = _read_address(addr)

    for scheme in node.findall("cac:PartyTaxScheme"):
        if scheme.text("cac:TaxScheme/cbc:ID") == "VAT":
            party.vat_id = scheme.text("cbc:CompanyID")
        else:
            party.fc_tax_registration = scheme.text("cbc:CompanyID")

    contact = node.find("cac:Contact")
    if contact is not None:
        party.contacts.append(Contact(
            person_name=contact.text("cbc:Name"),
            phone=contact.text("cbc:Telephone"),
            email=contact.text("cbc:ElectronicMail"),
        ))
    return party


def _read_delivery(delivery: Node, inv: Invoice) -> None:
    inv.delivery_date = delivery.date("cbc:ActualDeliveryDate", "iso")
    location = delivery.find("cac:DeliveryLocation")
    name = delivery.text("cac:DeliveryParty/cac:PartyName/cbc:Name")
    if location is None and not name:
        return
    ship_to = Party(name=name)
    if location is not None:
        location_id = location.text("cbc:ID")
        scheme = location.attr("cbc:ID", "schemeID")
        if location_id and scheme:
            ship_to.global_ids.append(GlobalID(id=location_id, scheme=scheme))
        elif location_id:
            ship_to.ids.append(location_id)
        addr = location.find("cac:Address")
        if addr is not None:
            ship_to.postal_address = _read_address(addr)
    inv.ship_to = ship_to


# --- paiement ---

def _read_payment(doc: Node, inv: Invoice, credit_note: bool) -> None:
    due_date = None if credit_note else doc.date("cbc:DueDate", "iso")
    mandate = ""
    for pm in doc.findall("cac:PaymentMeans"):
        means = PaymentMeans(
            type_code=pm.text("cbc:PaymentMeansCode"),
            information=pm.attr("cbc:PaymentMeansCode", "name"),
            card_id=pm.text("cac:CardAccount/cbc:PrimaryAccountNumberID"),
            cardholder_name=pm.text("cac:CardAccount/cbc:HolderName"),
            payee_iban=pm.text("cac:PayeeFinancialAccount/cbc:ID"),
            payee_account_name=pm.text("cac:PayeeFinancialAccount/cbc:Name"),
            payee_bic=pm.text("cac:PayeeFinancialAccount/cac:FinancialInstitutionBranch/cbc:ID"),
            payer_iban=pm.text("cac:PaymentMandate/cac:PayerFinancialAccount/cbc:ID"),
        )
        inv.payment_means.append(means)
        if not inv.payment_reference:
            inv.payment_reference = pm.text("cbc:PaymentID")
        if credit_note and due_date is None:
            due_date = pm.date("cbc:PaymentDueDate", "iso")
        if not mandate:
            mandate = pm.text("cac:PaymentMandate/cbc:ID")

    description = doc.text("cac:PaymentTerms/cbc:Note")
    if description or due_date is not None or mandate or doc.exists("cac:PaymentTerms"):
        inv.payment_terms.append(PaymentTerms(
            description=description,
            due_date=due_date,
            direct_debit_mandate_id=mandate,
        ))


def _read_allowance_charge(node: Node, with_tax=True) -> AllowanceCharge:
    ac = AllowanceCharge(
        charge_indicator=node.text("cbc:ChargeIndicator").lower() == "true",
        reason_code=node.text("cbc:AllowanceChargeReasonCode"),
        reason=node.text("cbc:AllowanceChargeReason"),
        calculation_percent=node.decimal("cbc:MultiplierFactorNumeric"),
        actual_amount=node.decimal("cbc:Amount") or ZERO,
        basis_amount=node.decimal("cbc:BaseAmount"),
    )
    if with_tax:
        ac.category_code = node.text("cac:TaxCategory/cbc:ID")
        ac.category_rate = node.decimal("cac:TaxCategory/cbc:Percent")
        ac.tax_type = node.text("cac:TaxCategory/cac:TaxScheme/cbc:ID") or "VAT"
    return ac


def _read_tax_subtotal(sub: Node) -> TradeTax:
    calculated = sub.decimal("cbc:TaxAmount")
    return TradeTax(
        basis_amount=sub.decimal("cbc:TaxableAmount") or ZERO,
        calculated_amount=calculated if calculated is not None else ZERO,
        has_calculated_amount=calculated is not None,
        category_code=sub.text("cac:TaxCategory/cbc:ID"),
        rate=sub.decimal("cac:TaxCategory/cbc:Percent"),
        exemption_reason_code=sub.text("cac:TaxCategory/cbc:TaxExemptionReasonCode"),
        exemption_reason=sub.text("cac:TaxCategory/cbc:TaxExemptionReason"),
        type_code=sub.text("cac:TaxCategory/cac:TaxScheme/cbc:ID") or "VAT",
    )


def _read_monetary_total(sums, inv: Invoice) -> None:
    if sums is None:
        inv.has_line_total = inv.has_tax_basis_total = inv.has_grand_total = inv.has_due_payable = False
        return
    line_total = sums.decimal("cbc:LineExtensionAmount")
    basis_total = sums.decimal("cbc:TaxExclusiveAmount")
    grand_total = sums.decimal("cbc:TaxInclusiveAmount")
    due_payable = sums.decimal("cbc:PayableAmount")
    inv.has_line_total = line_total is not None
    inv.has_tax_basis_total = basis_total is not None
    inv.has_grand_total = grand_total is not None
    inv.has_due_payable = due_payable is not None
    inv.line_total = line_total if line_total is not None else ZERO
    inv.tax_basis_total = basis_total if basis_total is not None else ZERO
    inv.grand_total = grand_total if grand_total is not None else ZERO
    inv.due_payable = due_payable if due_payable is not None else ZERO
    inv.allowance_total = sums.decimal("cbc:AllowanceTotalAmount") or ZERO
    inv.charge_total = sums.decimal("cbc:ChargeTotalAmount") or ZERO
    inv.prepaid = sums.decimal("cbc:PrepaidAmount") or ZERO
    inv.rounding = sums.decimal("cbc:PayableRoundingAmount") or ZERO


# --- lignes ---

def _read_line(li: Node, credit_note: bool) -> InvoiceLine:
    qty_tag = "cbc:CreditedQuantity" if credit_note else "cbc:InvoicedQuantity"
    total = li.decimal("cbc:LineExtensionAmount")
    qty = li.decimal(qty_tag)
    line = InvoiceLine(
        line_id=li.text("cbc:ID"),
        note=li.text("cbc:Note"),
        billed_quantity=qty if qty is not None else ZERO,
        has_billed_quantity=qty is not None,
        billed_quantity_unit=li.attr(qty_tag, "unitCode"),
        total=total if total is not None else ZERO,
        has_total=total is not None,
        accounting_account=li.text("cbc:AccountingCost"),
        buyer_order_line_ref=li.text("cac:OrderLineReference/cbc:LineID"),
        object_id=li.text("cac:DocumentReference/cbc:ID"),
        object_id_scheme=li.attr("cac:DocumentReference/cbc:ID", "schemeID"),
    )
    period = li.find("cac:InvoicePeriod")
    if period is not None:
        line.has_billing_period = True
        line.billing_period_start = period.date("cbc:StartDate", "iso")
        line.billing_period_end = period.date("cbc:EndDate", "iso")
    for ac in li.findall("cac:AllowanceCharge"):
        item = _read_allowance_charge(ac, with_tax=False)
        (line.charges if item.charge_indicator else line.allowances).append(item)

    item = li.find("cac:Item")
    if item is not None:
        line.description = item.text("cbc:Description")
        line.item_name = item.text("cbc:Name")
        line.buyer_item_id = item.text("cac:BuyersItemIdentification/cbc:ID")
        line.seller_item_id = item.text("cac:SellersItemIdentification/cbc:ID")
        line.global_id = item.text("cac:StandardItemIdentification/cbc:ID")
        line.global_id_scheme = item.attr("cac:StandardItemIdentification/cbc:ID", "schemeID")
        line.origin_country = item.text("cac:OriginCountry/cbc:IdentificationCode")
        line.classifications = [
            Classification(
                class_code=c.text(),
                list_id=c.attr(None, "listID"),
                list_version_id=c.attr(None, "listVersionID"),
            )
            for c in item.findall("cac:CommodityClassification/cbc:ItemClassificationCode")
        ]
        line.tax_category = item.text("cac:ClassifiedTaxCategory/cbc:ID")
        line.tax_rate = item.decimal("cac:ClassifiedTaxCategory/cbc:Percent")
        line.tax_type = item.text("cac:ClassifiedTaxCategory/cac:TaxScheme/cbc:ID") or "VAT"
        line.characteristics = [
            Characteristic(description=p.text("cbc:Name"), value=p.text("cbc:Value"))
            for p in item.findall("cac:AdditionalItemProperty")
        ]

    price = li.find("cac:Price")
    if price is not None:
        net_price = price.decimal("cbc:PriceAmount")
        line.has_net_price = net_price is not None
        line.net_price = net_price if net_price is not None else ZERO
        line.basis_quantity = price.decimal("cbc:BaseQuantity")
        line.basis_quantity_unit = price.attr("cbc:BaseQuantity", "unitCode")
        price_ac = price.find("cac:AllowanceCharge")
        if price_ac is not None:
            line.gross_price = price_ac.decimal("cbc:BaseAmount")
            discount = price_ac.decimal("cbc:Amount")
            if discount:
                line.price_allowances_charges.append(AllowanceCharge(charge_indicator=False, actual_amount=discount))
    else:
        line.has_net_price = False
    return line
