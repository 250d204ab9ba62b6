# einvoice/main.py
from fastapi import FastAPI, APIRouter, HTTPException, Query, Request, Security
from fastapi.responses import Response, JSONResponse
from fastapi.security import APIKeyHeader
from fastapi.exceptions import RequestValidationError
from typing import Literal
import logging
import json
import os
import time

from einvoice.errors import EInvoiceError
from einvoice.models.invoice import Invoice
from einvoice.services.reader import parse_from_stream
from einvoice.services.writer import invoice_to_bytes

VERSION = "1.0.0"


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data.update(record.extra)
        return json.dumps(log_data, ensure_ascii=False)


# Supprime les handlers existants et applique le notre
root_logger = logging.getLogger()
root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
for h in root_logger.handlers[:]:
    root_logger.removeHandler(h)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
root_logger.addHandler(handler)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="EInvoice Engine",
    description="Lecture, écriture et validation de factures électroniques EN 16931 (CII, UBL)",
    version=VERSION
)

# Taille maximale des fichiers XML / PDF reçus
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Clé API
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

XML_MEDIA_TYPE = "application/xml"


# Gestionnaire erreurs de validation JSON (422)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Données invalides",
            "detail": str(exc.errors())
        }
    )


def _load_api_keys() -> dict:
    clients_json = os.getenv("CLIENTS", "{}")
    try:
        clients = json.loads(clients_json)
    except json.JSONDecodeError:
        clients = {}
    if not clients:
        clients = {"default": os.getenv("API_KEY", "dev-secret-key")}
    return clients


def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    clients = _load_api_keys()
    for client_name, client_key in clients.items():
        if api_key == client_key:
            return client_name
    raise HTTPException(
        status_code=403,
        detail={"error": "Clé API invalide ou manquante"}
    )


async def _read_document(request: Request) -> Invoice:
    body = await request.body()
    if len(body) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail={"error": f"Document trop volumineux ({len(body)} octets, maximum {MAX_UPLOAD_BYTES})"}
        )
    if not body:
        raise HTTPException(status_code=400, detail={"error": "Document vide"})
    return parse_from_stream(body)


def _violations(invoice: Invoice) -> list:
    error = invoice.validate()
    if error is None:
        return []
    return [
        {"rule": v.rule.code, "fields": list(v.rule.fields), "text": v.text}
        for v in error.violations()
    ]


def _recalculate(invoice: Invoice) -> None:
    invoice.update_applicable_trade_tax()
    invoice.update_totals()


def _elapsed(start: float) -> int:
    return round((time.time() - start) * 1000)


# Préfixe v1 pour tous les endpoints
v1 = APIRouter(prefix="/v1")


@app.get("/health")
def health_check():
    return {"status": "ok", "version": VERSION}


@v1.post("/invoice/parse")
async def parse_invoice(request: Request, api_key: str = Security(verify_api_key)):
    """Lit une facture CII / UBL (XML ou PDF hybride) et retourne le modèle sémantique."""
    try:
        start = time.time()
        invoice = await _read_document(request)
        logger.info("Facture lue", extra={"extra": {"client": api_key, "invoice_number": invoice.number, "schema_type": invoice.schema_type, "duration_ms": _elapsed(start)}})
        return invoice.model_dump(mode="json")
    except HTTPException:
        raise
    except (ValueError, EInvoiceError) as e:
        logger.error(f"Erreur lecture : {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Erreur interne : {e}")
        raise HTTPException(status_code=500, detail={"error": "Erreur interne", "message": str(e)})


@v1.post("/invoice/validate")
async def validate_invoice(request: Request, api_key: str = Security(verify_api_key)):
    """Applique les règles EN 16931 (et PEPPOL / XRechnung selon BT-24) à une facture reçue."""
    try:
        start = time.time()
        invoice = await _read_document(request)
        violations = _violations(invoice)
        duration = _elapsed(start)
        logger.info("Facture validée", extra={"extra": {"client": api_key, "invoice_number": invoice.number, "violations": len(violations), "duration_ms": duration}})
        return {
            "valid": not violations,
            "invoice_number": invoice.number,
            "schema_type": invoice.schema_type,
            "profile_level": invoice.profile_level(),
            "violations": violations,
            "duration_ms": duration
        }
    except HTTPException:
        raise
    except (ValueError, EInvoiceError) as e:
        logger.error(f"Erreur lecture : {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Erreur interne : {e}")
        raise HTTPException(status_code=500, detail={"error": "Erreur interne", "message": str(e)})


@v1.post("/invoice/convert")
async def convert_invoice(request: Request, target: Literal["cii", "ubl"] = Query(...), api_key: str = Security(verify_api_key)):
    """Convertit une facture d'une syntaxe à l'autre."""
    try:
        start = time.time()
        invoice = await _read_document(request)
        source = invoice.schema_type
        xml_bytes = invoice_to_bytes(invoice, target.upper())
        logger.info("Facture convertie", extra={"extra": {"client": api_key, "invoice_number": invoice.number, "source": source, "target": target.upper(), "duration_ms": _elapsed(start)}})
        return Response(
            content=xml_bytes,
            media_type=XML_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{invoice.number or "invoice"}_{target}.xml"'}
        )
    except HTTPException:
        raise
    except (ValueError, EInvoiceError) as e:
        logger.error(f"Erreur conversion : {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Erreur interne : {e}")
        raise HTTPException(status_code=500, detail={"error": "Erreur interne", "message": str(e)})


@v1.post("/invoice/generate")
async def generate_invoice(invoice: Invoice, target: Literal["cii", "ubl"] = "cii", recalculate: bool = True, api_key: str = Security(verify_api_key)):
    try:
        start = time.time()
        if recalculate:
            _recalculate(invoice)
        xml_bytes = invoice_to_bytes(invoice, target.upper())
        logger.info("Facture générée", extra={"extra": {"client": api_key, "invoice_number": invoice.number, "seller": invoice.seller.name, "buyer": invoice.buyer.name, "grand_total": str(invoice.grand_total), "duration_ms": _elapsed(start)}})
        return Response(
            content=xml_bytes,
            media_type=XML_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{invoice.number or "invoice"}_{target}.xml"'}
        )
    except (ValueError, EInvoiceError) as e:
        logger.error(f"Erreur génération : {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Erreur interne : {e}")
        raise HTTPException(status_code=500, detail={"error": "Erreur interne", "message": str(e)})


@v1.post("/invoice/dry-run")
async def dry_run_invoice(invoice: Invoice, target: Literal["cii", "ubl"] = "cii", api_key: str = Security(verify_api_key)):
    """Recalcule et valide une facture sans la retourner. Retourne les totaux et les violations EN 16931."""
    try:
        start = time.time()
        _recalculate(invoice)
        violations = _violations(invoice)
        xml_bytes = invoice_to_bytes(invoice, target.upper())

        duration = _elapsed(start)
        logger.info("Dry run effectué", extra={"extra": {
            "invoice_number": invoice.number,
            "violations": len(violations),
            "duration_ms": duration
        }})

        return {
            "valid": not violations,
            "invoice_number": invoice.number,
            "line_total": str(invoice.line_total),
            "tax_basis_total": str(invoice.tax_basis_total),
            "tax_total": str(invoice.tax_total),
            "grand_total": str(invoice.grand_total),
            "due_payable": str(invoice.due_payable),
            "violations": violations,
            "duration_ms": duration,
            "xml_preview": xml_bytes.decode("utf-8")[:1000]
        }
    except (ValueError, EInvoiceError) as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Erreur dry run", "message": str(e)})


# Enregistrement du router v1
app.include_router(v1)
