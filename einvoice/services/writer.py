# einvoice/services/writer.py
from decimal import InvalidOperation
import logging

from einvoice.errors import InvoiceWriteError
from einvoice.models.invoice import Invoice
from einvoice.services.cii_writer import generate_cii
from einvoice.services.ubl_writer import generate_ubl

logger = logging.getLogger(__name__)

GENERATORS = {
    "CII": generate_cii,
    "UBL": generate_ubl,
}


def invoice_to_bytes(invoice: Invoice, schema_type: str = None) -> bytes:
    """Sérialise la facture dans la syntaxe demandée (par défaut celle du modèle)."""
    target = (schema_type or invoice.schema_type or "").upper()
    generator = GENERATORS.get(target)
    if generator is None:
        raise InvoiceWriteError(f"unsupported schema type: {target!r}")
    try:
        xml_bytes = generator(invoice)
    except (InvalidOperation, TypeError, ValueError) as e:
        logger.error(f"Erreur génération XML {target} : {e}")
        raise InvoiceWriteError(f"cannot write invoice {invoice.number!r} as {target}: {e}") from e
    logger.info(f"XML {target} généré : {invoice.number}")
    return xml_bytes


def write_invoice(invoice: Invoice, stream, schema_type: str = None) -> None:
    xml_bytes = invoice_to_bytes(invoice, schema_type)
    try:
        stream.write(xml_bytes)
    except OSError as e:
        logger.error(f"Erreur écriture : {e}")
        raise InvoiceWriteError(f"cannot write to stream: {e}") from e
