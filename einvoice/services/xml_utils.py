# einvoice/services/xml_utils.py
"""Outils communs aux lecteurs et générateurs XML (CII et UBL)."""
from lxml import etree
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from datetime import date, datetime
import base64
import binascii
import logging

from einvoice.errors import InvoiceParseError

logger = logging.getLogger(__name__)

CII_NAMESPACES = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "ram": "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100",
    "qdt": "urn:un:unece:uncefact:data:standard:QualifiedDataType:100",
    "udt": "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100",
    "xsi": "http://www.w3.org/2001/XMLSchema-instance",
}

UBL_INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
UBL_CREDIT_NOTE_NS = "urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2"

UBL_NAMESPACES = {
    "cac": "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2",
    "cbc": "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2",
}


def parse_xml(data: bytes):
    """Analyse le XML sans résolution d'entités ni accès réseau."""
    parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)
    try:
        return etree.fromstring(data, parser)
    except etree.XMLSyntaxError as e:
        logger.error(f"XML malformé : {e}")
        raise InvoiceParseError(f"malformed XML: {e}") from e


class Node:
    """Accès XPath relatif à un élément, avec la table d'espaces de noms du dialecte."""

    def __init__(self, element, namespaces):
        self.element = element
        self.ns = namespaces

    def find(self, path):
        found = self.element.xpath(path, namespaces=self.ns)
        return Node(found[0], self.ns) if found else None

    def findall(self, path):
        return [Node(e, self.ns) for e in self.element.xpath(path, namespaces=self.ns)]

    def exists(self, path) -> bool:
        return bool(self.element.xpath(path, namespaces=self.ns))

    def text(self, path=None) -> str:
        elem = self._elem(path)
        if elem is None or elem.text is None:
            return ""
        return elem.text.strip()

    def attr(self, path, name) -> str:
        elem = self._elem(path)
        if elem is None:
            return ""
        return (elem.get(name) or "").strip()

    def decimal(self, path=None):
        """Décimal strict ; None si l'élément est absent."""
        elem = self._elem(path)
        if elem is None:
            return None
        raw = (elem.text or "").strip()
        try:
            value = Decimal(raw)
        except InvalidOperation as e:
            raise InvoiceParseError(f"invalid decimal value '{raw}' at {self._where(elem)}", path=self._where(elem)) from e
        if not value.is_finite():
            raise InvoiceParseError(f"invalid decimal value '{raw}' at {self._where(elem)}", path=self._where(elem))
        return value

    def date(self, path=None, fmt="%Y%m%d"):
        elem = self._elem(path)
        if elem is None:
            return None
        raw = (elem.text or "").strip()
        try:
            if fmt == "iso":
                return date.fromisoformat(raw)
            return datetime.strptime(raw, fmt).date()
        except ValueError as e:
            raise InvoiceParseError(f"invalid date value '{raw}' at {self._where(elem)}", path=self._where(elem)) from e

    def binary(self, path=None):
        elem = self._elem(path)
        if elem is None:
            return None
        raw = "".join((elem.text or "").split())
        try:
            return base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvoiceParseError(f"invalid base64 attachment at {self._where(elem)}", path=self._where(elem)) from e

    def _elem(self, path):
        if path is None:
            return self.element
        found = self.element.xpath(path, namespaces=self.ns)
        return found[0] if found else None

    @staticmethod
    def _where(elem) -> str:
        # chemin lisible avec préfixes : /rsm:CrossIndustryInvoice/rsm:.../ram:X
        prefixes = {uri: p for p, uri in {**CII_NAMESPACES, **UBL_NAMESPACES}.items()}
        parts = []
        while elem is not None:
            qn = etree.QName(elem)
            prefix = prefixes.get(qn.namespace)
            parts.append(f"{prefix}:{qn.localname}" if prefix else qn.localname)
            elem = elem.getparent()
        return "/" + "/".join(reversed(parts))


# --- formatage ---

def fmt_amount(value) -> str:
    return _fmt(value, 2)


def fmt_quantity(value) -> str:
    return _fmt(value, 4)


def fmt_percent(value) -> str:
    """Pourcentage sur 4 décimales au plus, zéros finaux supprimés (19.0000 -> 19)."""
    text = _fmt(value, 4)
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _fmt(value, decimals=2):
    value = Decimal(value)
    with localcontext() as ctx:
        # montants arbitrairement grands : la précision suit la partie entière
        ctx.prec = max(ctx.prec, value.adjusted() + decimals + 2)
        q = Decimal(1).scaleb(-decimals)
        return "{:f}".format(value.quantize(q, rounding=ROUND_HALF_UP))


def encode_binary(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def sub(parent, namespace, tag, text=None, **attribs):
    elem = etree.SubElement(parent, f"{{{namespace}}}{tag}", **attribs)
    if text is not None:
        elem.text = str(text)
    return elem
