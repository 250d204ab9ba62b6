# einvoice/services/reader.py
from lxml import etree
from pathlib import Path
import logging
import pymupdf

from einvoice.errors import InvoiceParseError, UnsupportedFormatError
from einvoice.models.invoice import Invoice
from einvoice.services.cii_reader import read_cii
from einvoice.services.ubl_reader import read_ubl
from einvoice.services.xml_utils import CII_NAMESPACES, UBL_INVOICE_NS, UBL_CREDIT_NOTE_NS, parse_xml

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"

# noms de pièces jointes Factur-X / ZUGFeRD / XRechnung
EMBEDDED_XML_NAMES = ("factur-x.xml", "zugferd-invoice.xml", "xrechnung.xml")


def parse_from_stream(stream) -> Invoice:
    """
    Lit une facture CII, UBL (Invoice ou CreditNote) ou un PDF hybride Factur-X/ZUGFeRD.
    `stream` est un objet fichier binaire ou directement des bytes.
    """
    data = stream if isinstance(stream, (bytes, bytearray)) else stream.read()
    data = bytes(data)
    if data.lstrip()[:4] == PDF_MAGIC:
        data = extract_xml_from_pdf(data)
    return parse_xml_bytes(data)


def parse_from_file(path) -> Invoice:
    with open(Path(path), "rb") as f:
        return parse_from_stream(f)


def parse_xml_bytes(data: bytes) -> Invoice:
    root = parse_xml(data)
    namespace = etree.QName(root).namespace
    if namespace == CII_NAMESPACES["rsm"]:
        logger.info("Syntaxe détectée : CII")
        return read_cii(root)
    if namespace in (UBL_INVOICE_NS, UBL_CREDIT_NOTE_NS):
        logger.info("Syntaxe détectée : UBL")
        return read_ubl(root)
    logger.error(f"Élément racine non supporté : {root.tag}")
    raise UnsupportedFormatError(f"unsupported root element: {root.tag}")


def extract_xml_from_pdf(pdf_bytes: bytes) -> bytes:
    """Extrait le XML embarqué (factur-x.xml, zugferd-invoice.xml, xrechnung.xml) d'un PDF/A-3."""
    try:
        doc = pymupdf.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.error(f"Erreur lecture PDF : {e}")
        raise InvoiceParseError(f"unreadable PDF: {e}") from e
    with doc:
        names = [doc.embfile_info(i)["name"] for i in range(doc.embfile_count())]
        known = [n for n in names if n.lower() in EMBEDDED_XML_NAMES]
        candidates = known or [n for n in names if n.lower().endswith(".xml")]
        if not candidates:
            raise UnsupportedFormatError("PDF without embedded invoice XML")
        xml_bytes = doc.embfile_get(candidates[0])
    logger.info(f"XML extrait du PDF : {candidates[0]}")
    return xml_bytes
