from datetime import date

import pytest

from einvoice.errors import InvoiceParseError
from samples import D, UBL_CREDIT_NOTE, UBL_INVOICE, read


def test_read_ubl_invoice_header():
    """En-tête UBL : profil PEPPOL, échéance, note avec code sujet."""
    inv = read(UBL_INVOICE)
    assert inv.schema_type == "UBL"
    assert inv.number == "UBL-42"
    assert inv.type_code == "380"
    assert inv.is_peppol()
    assert inv.business_process == "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
    assert inv.issue_date == date(2024, 6, 1)
    assert inv.notes[0].subject_code == "AAI"
    assert inv.notes[0].text == "Merci pour votre commande"
    assert inv.payment_terms[0].due_date == date(2024, 7, 1)
    assert inv.payment_terms[0].description == "30 jours net"
    assert inv.payment_reference == "UBL-42"


def test_read_ubl_parties():
    """Nom légal dans RegistrationName, nom commercial dans PartyName."""
    inv = read(UBL_INVOICE)
    seller = inv.seller
    assert seller.name == "Fournisseur SAS"
    assert seller.legal_organization.trading_name == "Fournisseur"
    assert seller.legal_id == "123456789"
    assert seller.legal_organization.scheme == "0002"
    assert seller.vat_id == "FR12345678901"
    assert seller.electronic_address == "7300010000001"
    assert seller.electronic_address_scheme == "0088"
    assert seller.contacts[0].email == "compta@fournisseur.fr"
    assert inv.buyer.name == "Client SA"
    assert inv.buyer.legal_organization is None
    assert inv.buyer.country_id == "BE"


def test_read_ubl_amounts():
    """Remise de document, ventilation, totaux et ligne."""
    inv = read(UBL_INVOICE)
    ac = inv.allowances_charges[0]
    assert ac.charge_indicator is False
    assert ac.calculation_percent == D("10")
    assert ac.basis_amount == D("200.00")
    assert ac.actual_amount == D("20.00")
    assert ac.category_code == "S"
    assert inv.trade_taxes[0].basis_amount == D("180.00")
    assert inv.tax_total == D("36.00")
    assert inv.allowance_total == D("20.00")
    assert inv.charge_total == D("0")
    line = inv.lines[0]
    assert line.billed_quantity == D("4")
    assert line.billed_quantity_unit == "HUR"
    assert line.net_price == D("50.00")
    assert line.tax_rate == D("20")


def test_read_ubl_fixture_is_valid():
    """La facture PEPPOL d'exemple ne viole aucune règle, surcouche PEPPOL comprise."""
    assert read(UBL_INVOICE).validate() is None


def test_read_credit_note():
    """Un avoir UBL sans CreditNoteTypeCode prend le type 381."""
    inv = read(UBL_CREDIT_NOTE)
    assert inv.schema_type == "UBL"
    assert inv.type_code == "381"
    assert inv.lines[0].billed_quantity == D("2")
    assert inv.preceding_invoices[0].id == "F-2024-001"
    assert inv.preceding_invoices[0].issue_date == date(2024, 6, 1)
    assert inv.payment_terms[0].due_date == date(2024, 7, 15)


def test_invoice_period_flag():
    """InvoicePeriod sans date ni DescriptionCode : période indiquée mais vide."""
    xml = UBL_INVOICE.replace(
        "<cbc:BuyerReference>PO-778</cbc:BuyerReference>",
        "<cbc:BuyerReference>PO-778</cbc:BuyerReference><cac:InvoicePeriod/>",
    )
    inv = read(xml)
    assert inv.has_billing_period is True
    assert inv.validate().has_rule_code("BR-CO-19")


def test_invoice_period_description_code_only():
    """InvoicePeriod avec seulement DescriptionCode : code porté par la ventilation."""
    xml = UBL_INVOICE.replace(
        "<cbc:BuyerReference>PO-778</cbc:BuyerReference>",
        "<cbc:BuyerReference>PO-778</cbc:BuyerReference>"
        "<cac:InvoicePeriod><cbc:DescriptionCode>35</cbc:DescriptionCode></cac:InvoicePeriod>",
    )
    inv = read(xml)
    assert inv.has_billing_period is False
    assert inv.trade_taxes[0].due_date_type_code == "35"


def test_invalid_ubl_amount():
    """Un montant UBL invalide lève InvoiceParseError."""
    xml = UBL_INVOICE.replace(
        '<cbc:PayableAmount currencyID="EUR">216.00</cbc:PayableAmount>',
        '<cbc:PayableAmount currencyID="EUR">deux cents</cbc:PayableAmount>',
    )
    with pytest.raises(InvoiceParseError) as exc:
        read(xml)
    assert "cbc:PayableAmount" in exc.value.path
