import pytest
from fastapi.testclient import TestClient
from lxml import etree
import os

# Configuration avant import de l'app
os.environ["CLIENTS"] = '{"test": "test-key-123"}'
os.environ["MAX_UPLOAD_BYTES"] = "200000"

from einvoice.main import app
from samples import CII_INVOICE, UBL_INVOICE

client = TestClient(app)
HEADERS = {"X-API-Key": "test-key-123"}

INVOICE_JSON = {
    "specification_id": "urn:cen.eu:en16931:2017",
    "number": "API-001",
    "issue_date": "2024-06-01",
    "currency": "EUR",
    "seller": {
        "name": "ACME SAS",
        "vat_id": "FR12345678900",
        "postal_address": {"line1": "12 rue de la Paix", "city": "Paris", "postcode": "75001", "country_id": "FR"}
    },
    "buyer": {
        "name": "CLIENT SARL",
        "postal_address": {"line1": "5 avenue Victor Hugo", "city": "Lyon", "postcode": "69001", "country_id": "FR"}
    },
    "lines": [
        {
            "line_id": "1", "item_name": "Prestation", "billed_quantity": "1", "billed_quantity_unit": "C62",
            "net_price": "100", "tax_category": "S", "tax_rate": "20", "total": "100.00"
        }
    ],
    "payment_terms": [{"description": "Virement 30 jours", "due_date": "2024-07-01"}],
    "payment_means": [{"type_code": "58", "payee_iban": "FR7630006000011234567890189"}]
}


def test_health():
    """Health check doit retourner 200."""
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_parse_cii():
    """Lecture d'une facture CII : modèle sémantique en JSON."""
    res = client.post("/v1/invoice/parse", content=CII_INVOICE.encode("utf-8"), headers=HEADERS)
    assert res.status_code == 200
    data = res.json()
    assert data["number"] == "F-2024-001"
    assert data["schema_type"] == "CII"
    assert data["seller"]["vat_id"] == "DE123456789"


def test_validate_ok():
    """Validation d'une facture conforme : valid=True sans violation."""
    res = client.post("/v1/invoice/validate", content=UBL_INVOICE.encode("utf-8"), headers=HEADERS)
    assert res.status_code == 200
    data = res.json()
    assert data["valid"] == True
    assert data["violations"] == []
    assert data["schema_type"] == "UBL"
    assert data["profile_level"] == 4


def test_validate_violations():
    """Validation d'une facture incohérente : liste des règles enfreintes."""
    xml = CII_INVOICE.replace("<ram:GrandTotalAmount>119.00", "<ram:GrandTotalAmount>120.00")
    res = client.post("/v1/invoice/validate", content=xml.encode("utf-8"), headers=HEADERS)
    assert res.status_code == 200
    data = res.json()
    assert data["valid"] == False
    rules = [v["rule"] for v in data["violations"]]
    assert "BR-CO-15" in rules
    assert "BT-112" in data["violations"][rules.index("BR-CO-15")]["fields"]


def test_convert_to_ubl():
    """Conversion CII vers UBL : document UBL Invoice."""
    res = client.post("/v1/invoice/convert?target=ubl", content=CII_INVOICE.encode("utf-8"), headers=HEADERS)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/xml")
    root = etree.fromstring(res.content)
    assert etree.QName(root).localname == "Invoice"


def test_convert_unknown_target():
    """Syntaxe cible inconnue : 422."""
    res = client.post("/v1/invoice/convert?target=pdf", content=CII_INVOICE.encode("utf-8"), headers=HEADERS)
    assert res.status_code == 422


def test_parse_no_key():
    """Sans clé API doit retourner 403."""
    res = client.post("/v1/invoice/parse", content=CII_INVOICE.encode("utf-8"))
    assert res.status_code == 403


def test_parse_wrong_key():
    """Mauvaise clé API doit retourner 403."""
    res = client.post("/v1/invoice/parse", content=CII_INVOICE.encode("utf-8"), headers={"X-API-Key": "fausse-cle"})
    assert res.status_code == 403


def test_parse_malformed_xml():
    """XML mal formé doit retourner 400."""
    res = client.post("/v1/invoice/parse", content=b"<rsm:CrossIndustryInvoice", headers=HEADERS)
    assert res.status_code == 400
    assert "malformed XML" in res.json()["detail"]["error"]


def test_parse_empty_body():
    """Corps vide doit retourner 400."""
    res = client.post("/v1/invoice/parse", content=b"", headers=HEADERS)
    assert res.status_code == 400


def test_parse_too_large():
    """Document au-delà de MAX_UPLOAD_BYTES doit retourner 413."""
    res = client.post("/v1/invoice/parse", content=b" " * 200001, headers=HEADERS)
    assert res.status_code == 413


def test_generate_invoice_ok():
    """Génération XML depuis le JSON du modèle doit retourner 200."""
    res = client.post("/v1/invoice/generate", json=INVOICE_JSON, headers=HEADERS)
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/xml")
    root = etree.fromstring(res.content)
    assert etree.QName(root).localname == "CrossIndustryInvoice"


def test_generate_invoice_ubl():
    """Génération UBL avec recalcul des totaux."""
    res = client.post("/v1/invoice/generate?target=ubl", json=INVOICE_JSON, headers=HEADERS)
    assert res.status_code == 200
    assert b"<cbc:PayableAmount currencyID=\"EUR\">120.00</cbc:PayableAmount>" in res.content


def test_generate_invoice_invalid_json():
    """JSON invalide doit retourner 422."""
    res = client.post("/v1/invoice/generate", json={"lines": "x"}, headers=HEADERS)
    assert res.status_code == 422
    assert res.json()["error"] == "Données invalides"


def test_dry_run_ok():
    """Dry run avec facture complète : totaux recalculés et aucune violation."""
    res = client.post("/v1/invoice/dry-run", json=INVOICE_JSON, headers=HEADERS)
    assert res.status_code == 200
    data = res.json()
    assert data["valid"] == True
    assert data["violations"] == []
    assert data["line_total"] == "100.00"
    assert data["tax_total"] == "20.00"
    assert data["grand_total"] == "120.00"
    assert data["xml_preview"].startswith("<?xml")


@pytest.mark.parametrize("field", ["number", "currency"])
def test_dry_run_violations(field):
    """Dry run sans champ obligatoire doit retourner des violations."""
    invoice = dict(INVOICE_JSON)
    invoice[field] = ""
    res = client.post("/v1/invoice/dry-run", json=invoice, headers=HEADERS)
    assert res.status_code == 200
    data = res.json()
    assert data["valid"] == False
    assert len(data["violations"]) > 0
