import pymupdf
import pytest

from einvoice.errors import InvoiceParseError, UnsupportedFormatError
from einvoice.services.reader import extract_xml_from_pdf, parse_from_file, parse_from_stream
from samples import CII_INVOICE, UBL_INVOICE


def _pdf(attachments=None):
    doc = pymupdf.open()
    doc.new_page()
    for name, data in (attachments or {}).items():
        doc.embfile_add(name, data)
    pdf = doc.tobytes()
    doc.close()
    return pdf


def test_read_facturx_pdf():
    """PDF hybride : le XML factur-x.xml embarqué est lu."""
    pdf = _pdf({"factur-x.xml": CII_INVOICE.encode("utf-8")})
    inv = parse_from_stream(pdf)
    assert inv.schema_type == "CII"
    assert inv.number == "F-2024-001"


def test_known_name_preferred():
    """Le nom de pièce jointe normalisé l'emporte sur un autre fichier XML."""
    pdf = _pdf({
        "annexe.xml": b"<annexe/>",
        "xrechnung.xml": UBL_INVOICE.encode("utf-8"),
    })
    assert extract_xml_from_pdf(pdf) == UBL_INVOICE.encode("utf-8")
    assert parse_from_stream(pdf).number == "UBL-42"


def test_parse_from_file(tmp_path):
    """Lecture d'un PDF hybride depuis le disque."""
    path = tmp_path / "facture.pdf"
    path.write_bytes(_pdf({"zugferd-invoice.xml": CII_INVOICE.encode("utf-8")}))
    assert parse_from_file(path).number == "F-2024-001"


def test_parse_xml_file(tmp_path):
    """Lecture d'un fichier XML depuis le disque."""
    path = tmp_path / "facture.xml"
    path.write_text(UBL_INVOICE, encoding="utf-8")
    assert parse_from_file(str(path)).schema_type == "UBL"


def test_pdf_without_invoice():
    """PDF sans XML embarqué : UnsupportedFormatError."""
    with pytest.raises(UnsupportedFormatError):
        parse_from_stream(_pdf())


def test_unreadable_pdf():
    """Octets commençant par %PDF mais illisibles : InvoiceParseError."""
    with pytest.raises(InvoiceParseError):
        parse_from_stream(b"%PDF-1.7 garbage")
