from io import BytesIO

import pytest
from lxml import etree

from einvoice.errors import InvoiceWriteError
from einvoice.services.writer import invoice_to_bytes, write_invoice
from einvoice.services.xml_utils import CII_NAMESPACES, UBL_NAMESPACES
from samples import CII_INVOICE, D, UBL_INVOICE, make_invoice, make_line, read


def _tags(parent):
    return [etree.QName(child).localname for child in parent]


def test_cii_header_order_and_formatting():
    """Ordre des éléments d'en-tête et formats des montants, quantités et taux."""
    root = etree.fromstring(make_invoice().to_xml())
    assert etree.QName(root).localname == "CrossIndustryInvoice"
    assert _tags(root) == ["ExchangedDocumentContext", "ExchangedDocument", "SupplyChainTradeTransaction"]

    tx = root.find("rsm:SupplyChainTradeTransaction", CII_NAMESPACES)
    assert _tags(tx) == [
        "IncludedSupplyChainTradeLineItem",
        "ApplicableHeaderTradeAgreement",
        "ApplicableHeaderTradeDelivery",
        "ApplicableHeaderTradeSettlement",
    ]
    ns = CII_NAMESPACES
    assert tx.findtext(".//ram:BilledQuantity", namespaces=ns) == "1.0000"
    assert tx.findtext(".//ram:NetPriceProductTradePrice/ram:ChargeAmount", namespaces=ns) == "100.0000"
    assert tx.findtext(".//ram:SpecifiedLineTradeSettlement//ram:RateApplicablePercent", namespaces=ns) == "19"
    sums = tx.find(".//ram:SpecifiedTradeSettlementHeaderMonetarySummation", ns)
    assert _tags(sums) == [
        "LineTotalAmount", "ChargeTotalAmount", "AllowanceTotalAmount", "TaxBasisTotalAmount",
        "TaxTotalAmount", "GrandTotalAmount", "DuePayableAmount",
    ]
    assert sums.findtext("ram:LineTotalAmount", namespaces=ns) == "100.00"
    assert sums.findtext("ram:GrandTotalAmount", namespaces=ns) == "119.00"


def test_cii_settlement_order():
    """Devise, moyens de paiement, TVA, conditions puis totaux dans la section de règlement."""
    inv = make_invoice()
    inv.payment_reference = "F-2024-001"
    xml = inv.to_xml()
    settlement = etree.fromstring(xml).find(".//ram:ApplicableHeaderTradeSettlement", CII_NAMESPACES)
    assert _tags(settlement) == [
        "PaymentReference",
        "InvoiceCurrencyCode",
        "ApplicableTradeTax",
        "SpecifiedTradePaymentTerms",
        "SpecifiedTradeSettlementHeaderMonetarySummation",
    ]


def test_scenario_c_tax_total_in_two_currencies():
    """Devise USD, devise comptable EUR : deux TaxTotalAmount, USD puis EUR."""
    inv = make_invoice()
    inv.currency = "USD"
    inv.tax_currency = "EUR"
    inv.tax_total_currency = "USD"
    inv.tax_total_accounting = D("17.50")
    inv.tax_total_accounting_currency = "EUR"
    root = etree.fromstring(inv.to_xml())
    totals = root.findall(".//ram:TaxTotalAmount", CII_NAMESPACES)
    assert [(t.get("currencyID"), t.text) for t in totals] == [("USD", "19.00"), ("EUR", "17.50")]

    back = read(inv.to_xml().decode("utf-8"))
    assert back.tax_total == D("19.00")
    assert back.tax_total_currency == "USD"
    assert back.tax_total_accounting == D("17.50")
    assert back.tax_total_accounting_currency == "EUR"


def test_no_accounting_total_without_amount():
    """Devise comptable sans montant : un seul TaxTotalAmount."""
    inv = make_invoice()
    inv.currency = "USD"
    inv.tax_currency = "EUR"
    inv.tax_total_currency = "USD"
    root = etree.fromstring(inv.to_xml())
    assert len(root.findall(".//ram:TaxTotalAmount", CII_NAMESPACES)) == 1


def test_output_is_deterministic():
    """Deux écritures du même modèle donnent les mêmes octets."""
    inv = make_invoice([make_line(1, "10.00"), make_line(2, "20.00", "Z", "0")])
    assert inv.to_xml() == inv.to_xml()
    assert invoice_to_bytes(inv, "UBL") == invoice_to_bytes(inv, "UBL")


def test_cii_round_trip():
    """Lire, écrire puis relire une facture CII redonne le même modèle."""
    first = read(CII_INVOICE)
    second = read(first.to_xml().decode("utf-8"))
    assert second.model_dump() == first.model_dump()


def test_ubl_round_trip():
    """Lire, écrire puis relire une facture UBL redonne le même modèle."""
    first = read(UBL_INVOICE)
    second = read(first.to_xml().decode("utf-8"))
    assert second.schema_type == "UBL"
    assert second.model_dump() == first.model_dump()


def test_convert_cii_to_ubl():
    """Conversion CII vers UBL : les données métier principales sont conservées."""
    inv = read(CII_INVOICE)
    ubl = invoice_to_bytes(inv, "UBL")
    root = etree.fromstring(ubl)
    assert etree.QName(root).localname == "Invoice"
    assert root.findtext("cbc:DueDate", namespaces=UBL_NAMESPACES) == "2024-07-01"

    back = read(ubl.decode("utf-8"))
    assert back.schema_type == "UBL"
    assert back.number == inv.number
    assert back.seller.vat_id == "DE123456789"
    assert back.seller.fc_tax_registration == "201/113/40209"
    assert back.grand_total == inv.grand_total
    assert back.lines[0].total == D("100.00")
    assert back.validate() is None


def test_credit_note_written_as_ubl_credit_note():
    """Type 381 : racine CreditNote, lignes CreditNoteLine avec CreditedQuantity."""
    inv = make_invoice()
    inv.type_code = "381"
    root = etree.fromstring(invoice_to_bytes(inv, "UBL"))
    assert etree.QName(root).localname == "CreditNote"
    assert root.findtext("cbc:CreditNoteTypeCode", namespaces=UBL_NAMESPACES) == "381"
    assert root.find("cbc:DueDate", UBL_NAMESPACES) is None
    assert root.findtext("cac:PaymentMeans/cbc:PaymentDueDate", namespaces=UBL_NAMESPACES) is None
    line = root.find("cac:CreditNoteLine", UBL_NAMESPACES)
    assert line.findtext("cbc:CreditedQuantity", namespaces=UBL_NAMESPACES) == "1.0000"


def test_write_invoice_to_stream():
    """write_invoice écrit le XML dans le flux fourni."""
    stream = BytesIO()
    make_invoice().write(stream)
    assert stream.getvalue().startswith(b"<?xml")
    assert b"CrossIndustryInvoice" in stream.getvalue()


def test_unknown_schema_type():
    """Syntaxe cible inconnue : InvoiceWriteError."""
    with pytest.raises(InvoiceWriteError):
        invoice_to_bytes(make_invoice(), "PDF")


class BrokenStream:
    def write(self, data):
        raise OSError("disk full")


def test_stream_failure():
    """Échec d'écriture du flux : InvoiceWriteError."""
    with pytest.raises(InvoiceWriteError) as exc:
        write_invoice(make_invoice(), BrokenStream())
    assert "disk full" in str(exc.value)
