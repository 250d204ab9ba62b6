# einvoice/models/profiles.py
import re

LEVEL_UNKNOWN = 0
LEVEL_MINIMUM = 1
LEVEL_BASIC_WL = 2
LEVEL_BASIC = 3
LEVEL_EN16931 = 4
LEVEL_EXTENDED = 5

FACTURX_MINIMUM = "urn:factur-x.eu:1p0:minimum"
FACTURX_BASIC_WL = "urn:factur-x.eu:1p0:basicwl"
FACTURX_BASIC = "urn:cen.eu:en16931:2017#compliant#urn:factur-x.eu:1p0:basic"
FACTURX_BASIC_ALT = "urn:cen.eu:en16931:2017:compliant:factur-x.eu:1p0:basic"
FACTURX_EXTENDED = "urn:cen.eu:en16931:2017#conformant#urn:factur-x.eu:1p0:extended"
ZUGFERD_MINIMUM = "urn:zugferd.de:2p0:minimum"
ZUGFERD_BASIC = "urn:cen.eu:en16931:2017#compliant#urn:zugferd.de:2p0:basic"
ZUGFERD_EXTENDED = "urn:cen.eu:en16931:2017#conformant#urn:zugferd.de:2p0:extended"
EN16931 = "urn:cen.eu:en16931:2017"
XRECHNUNG_30 = "urn:cen.eu:en16931:2017#compliant#urn:xeinkauf.de:kosit:xrechnung_3.0"
PEPPOL_BILLING_30 = "urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0"

# BT-23 par défaut pour PEPPOL BIS Billing 3.0
PEPPOL_BUSINESS_PROCESS = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
PEPPOL_BUSINESS_PROCESS_RE = re.compile(r"^urn:fdc:peppol\.eu:2017:poacc:billing:\d{2}:1\.0$")

PROFILE_LEVELS = {
    FACTURX_MINIMUM: LEVEL_MINIMUM,
    ZUGFERD_MINIMUM: LEVEL_MINIMUM,
    FACTURX_BASIC_WL: LEVEL_BASIC_WL,
    FACTURX_BASIC: LEVEL_BASIC,
    FACTURX_BASIC_ALT: LEVEL_BASIC,
    ZUGFERD_BASIC: LEVEL_BASIC,
    EN16931: LEVEL_EN16931,
    XRECHNUNG_30: LEVEL_EN16931,
    PEPPOL_BILLING_30: LEVEL_EN16931,
    FACTURX_EXTENDED: LEVEL_EXTENDED,
    ZUGFERD_EXTENDED: LEVEL_EXTENDED,
}


def profile_level(specification_id: str) -> int:
    """Niveau de profil (0 à 5) pour un identifiant de spécification BT-24."""
    return PROFILE_LEVELS.get((specification_id or "").strip(), LEVEL_UNKNOWN)


def is_peppol_business_process(value: str) -> bool:
    return bool(PEPPOL_BUSINESS_PROCESS_RE.match(value or ""))
