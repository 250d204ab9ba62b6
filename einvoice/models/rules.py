# einvoice/models/rules.py
"""Catalogue des règles métier EN 16931.

Chaque règle est un descripteur immuable (code, termes métier concernés,
description). Le catalogue est une donnée statique partagée par tous les
appels du validateur ; il n'est jamais modifié à l'exécution.
"""
from pydantic import BaseModel, ConfigDict
from types import MappingProxyType
from typing import Tuple


class Rule(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    fields: Tuple[str, ...] = ()
    description: str = ""


def _r(code, fields, description):
    return Rule(code=code, fields=tuple(fields.split()), description=description)


_CORE = [
    _r("BR-01", "BT-24", "An Invoice shall have a Specification identifier (BT-24)."),
    _r("BR-02", "BT-1", "An Invoice shall have an Invoice number (BT-1)."),
    _r("BR-03", "BT-2", "An Invoice shall have an Invoice issue date (BT-2)."),
    _r("BR-04", "BT-3", "An Invoice shall have an Invoice type code (BT-3)."),
    _r("BR-05", "BT-5", "An Invoice shall have an Invoice currency code (BT-5)."),
    _r("BR-06", "BT-27", "An Invoice shall contain the Seller name (BT-27)."),
    _r("BR-07", "BT-44", "An Invoice shall contain the Buyer name (BT-44)."),
    _r("BR-08", "BG-5", "An Invoice shall contain the Seller postal address (BG-5)."),
    _r("BR-09", "BT-40", "The Seller postal address (BG-5) shall contain a Seller country code (BT-40)."),
    _r("BR-10", "BG-8", "An Invoice shall contain the Buyer postal address (BG-8)."),
    _r("BR-11", "BT-55", "The Buyer postal address shall contain a Buyer country code (BT-55)."),
    _r("BR-12", "BT-106", "An Invoice shall have the Sum of Invoice line net amount (BT-106)."),
    _r("BR-13", "BT-109", "An Invoice shall have the Invoice total amount without VAT (BT-109)."),
    _r("BR-14", "BT-112", "An Invoice shall have the Invoice total amount with VAT (BT-112)."),
    _r("BR-15", "BT-115", "An Invoice shall have the Amount due for payment (BT-115)."),
    _r("BR-16", "BG-25", "An Invoice shall have at least one Invoice line (BG-25)."),
    _r("BR-17", "BT-59 BG-10", "The Payee name (BT-59) shall be provided in the Invoice, if the Payee (BG-10) is different from the Seller (BG-4)."),
    _r("BR-18", "BT-62 BG-11", "The Seller tax representative name (BT-62) shall be provided in the Invoice, if the Seller (BG-4) has a Seller tax representative party (BG-11)."),
    _r("BR-19", "BG-12 BG-11", "The Seller tax representative postal address (BG-12) shall be provided in the Invoice, if the Seller (BG-4) has a Seller tax representative party (BG-11)."),
    _r("BR-20", "BT-69 BG-12", "The Seller tax representative postal address (BG-12) shall contain a Tax representative country code (BT-69), if the Seller (BG-4) has a Seller tax representative party (BG-11)."),
    _r("BR-21", "BT-126", "Each Invoice line (BG-25) shall have an Invoice line identifier (BT-126)."),
    _r("BR-22", "BT-129", "Each Invoice line (BG-25) shall have an Invoiced quantity (BT-129)."),
    _r("BR-23", "BT-130", "An Invoice line (BG-25) shall have an Invoiced quantity unit of measure code (BT-130)."),
    _r("BR-24", "BT-131", "Each Invoice line (BG-25) shall have an Invoice line net amount (BT-131)."),
    _r("BR-25", "BT-153", "Each Invoice line (BG-25) shall contain the Item name (BT-153)."),
    _r("BR-26", "BT-146", "Each Invoice line (BG-25) shall contain the Item net price (BT-146)."),
    _r("BR-27", "BT-146", "The Item net price (BT-146) shall NOT be negative."),
    _r("BR-28", "BT-148", "The Item gross price (BT-148) shall NOT be negative."),
    _r("BR-29", "BT-73 BT-74", "If both Invoicing period start date (BT-73) and Invoicing period end date (BT-74) are given then the Invoicing period end date (BT-74) shall be later or equal to the Invoicing period start date (BT-73)."),
    _r("BR-30", "BT-134 BT-135", "If both Invoice line period start date (BT-134) and Invoice line period end date (BT-135) are given then the Invoice line period end date (BT-135) shall be later or equal to the Invoice line period start date (BT-134)."),
    _r("BR-31", "BT-92", "Each Document level allowance (BG-20) shall have a Document level allowance amount (BT-92)."),
    _r("BR-32", "BT-95", "Each Document level allowance (BG-20) shall have a Document level allowance VAT category code (BT-95)."),
    _r("BR-33", "BT-97 BT-98", "Each Document level allowance (BG-20) shall have a Document level allowance reason (BT-97) or a Document level allowance reason code (BT-98)."),
    _r("BR-36", "BT-99", "Each Document level charge (BG-21) shall have a Document level charge amount (BT-99)."),
    _r("BR-37", "BT-102", "Each Document level charge (BG-21) shall have a Document level charge VAT category code (BT-102)."),
    _r("BR-38", "BT-104 BT-105", "Each Document level charge (BG-21) shall have a Document level charge reason (BT-104) or a Document level charge reason code (BT-105)."),
    _r("BR-41", "BT-136", "Each Invoice line allowance (BG-27) shall have an Invoice line allowance amount (BT-136)."),
    _r("BR-42", "BT-139 BT-140", "Each Invoice line allowance (BG-27) shall have an Invoice line allowance reason (BT-139) or an Invoice line allowance reason code (BT-140)."),
    _r("BR-43", "BT-141", "Each Invoice line charge (BG-28) shall have an Invoice line charge amount (BT-141)."),
    _r("BR-44", "BT-144 BT-145", "Each Invoice line charge shall have an Invoice line charge reason (BT-144) or an Invoice line charge reason code (BT-145)."),
    _r("BR-45", "BT-116 BG-23", "Each VAT breakdown (BG-23) shall have a VAT category taxable amount (BT-116) equal to the sum of line, allowance and charge amounts with the same VAT category code and rate."),
    _r("BR-46", "BT-117", "Each VAT breakdown (BG-23) shall have a VAT category tax amount (BT-117)."),
    _r("BR-47", "BT-118", "Each VAT breakdown (BG-23) shall be defined through a VAT category code (BT-118)."),
    _r("BR-48", "BT-119", "Each VAT breakdown (BG-23) shall have a VAT category rate (BT-119), except if the Invoice is not subject to VAT."),
    _r("BR-49", "BT-81", "A Payment instruction (BG-16) shall specify the Payment means type code (BT-81)."),
    _r("BR-50", "BT-84 BG-17", "A Payment account identifier (BT-84) shall be present if Credit transfer (BG-17) information is provided in the Invoice."),
    _r("BR-51", "BT-87", "The last 4 to 6 digits of the Payment card primary account number (BT-87) shall be present if Payment card information (BG-18) is provided in the Invoice."),
    _r("BR-52", "BT-122", "Each Additional supporting document (BG-24) shall contain a Supporting document reference (BT-122)."),
    _r("BR-53", "BT-6 BT-111", "If the VAT accounting currency code (BT-6) is present, then the Invoice total VAT amount in accounting currency (BT-111) shall be provided."),
    _r("BR-54", "BT-160 BT-161", "Each Item attribute (BG-32) shall contain an Item attribute name (BT-160) and an Item attribute value (BT-161)."),
    _r("BR-55", "BT-25", "Each Preceding Invoice reference (BG-3) shall contain a Preceding Invoice reference (BT-25)."),
    _r("BR-56", "BT-63", "Each Seller tax representative party (BG-11) shall have a Seller tax representative VAT identifier (BT-63)."),
    _r("BR-57", "BT-80", "Each Deliver to address (BG-15) shall contain a Deliver to country code (BT-80)."),
    _r("BR-61", "BT-81 BT-84", "If the Payment means type code (BT-81) means SEPA credit transfer, Local credit transfer or Non-SEPA international credit transfer, the Payment account identifier (BT-84) shall be present."),
    _r("BR-62", "BT-34", "The Seller electronic address (BT-34) shall have a Scheme identifier."),
    _r("BR-63", "BT-49", "The Buyer electronic address (BT-49) shall have a Scheme identifier."),
    _r("BR-64", "BT-157", "The Item standard identifier (BT-157) shall have a Scheme identifier."),
    _r("BR-65", "BT-158", "The Item classification identifier (BT-158) shall have a Scheme identifier."),
    _r("BR-66", "BG-18", "An Invoice shall contain maximum one Payment Card account (BG-18)."),
    _r("BR-67", "BG-19", "An Invoice shall contain maximum one Payment Mandate (BG-19)."),
]

# montants de remises et charges : non négatifs
_CUSTOM = [
    _r("BR-34", "BT-92", "Document level allowance amount (BT-92) shall not be negative."),
    _r("BR-35", "BT-93", "Document level allowance base amount (BT-93) shall not be negative."),
    _r("BR-39", "BT-99", "Document level charge amount (BT-99) shall not be negative."),
    _r("BR-40", "BT-100", "Document level charge base amount (BT-100) shall not be negative."),
    _r("UNEXPECTED-TAX-CURRENCY", "BT-110 BT-111", "TaxTotalAmount with unexpected currency (expected invoice currency BT-5 or accounting currency BT-6)."),
]

_CO = [
    _r("BR-CO-03", "BT-7 BT-8", "Value added tax point date (BT-7) and Value added tax point date code (BT-8) are mutually exclusive."),
    _r("BR-CO-04", "BT-151", "Each Invoice line (BG-25) shall be categorized with an Invoiced item VAT category code (BT-151)."),
    _r("BR-CO-05", "BT-97 BT-98", "Document level allowance reason code (BT-98) and Document level allowance reason (BT-97) shall indicate the same type of allowance."),
    _r("BR-CO-06", "BT-104 BT-105", "Document level charge reason code (BT-105) and Document level charge reason (BT-104) shall indicate the same type of charge."),
    _r("BR-CO-07", "BT-139 BT-140", "Invoice line allowance reason code (BT-140) and Invoice line allowance reason (BT-139) shall indicate the same type of allowance reason."),
    _r("BR-CO-08", "BT-144 BT-145", "Invoice line charge reason code (BT-145) and Invoice line charge reason (BT-144) shall indicate the same type of charge reason."),
    _r("BR-CO-09", "BT-31 BT-48 BT-63", "The Seller VAT identifier (BT-31), the Seller tax representative VAT identifier (BT-63) and the Buyer VAT identifier (BT-48) shall have a prefix in accordance with ISO code ISO 3166-1 alpha-2 by which the country of issue may be identified. Nevertheless, Greece may use the prefix 'EL'."),
    _r("BR-CO-10", "BT-106 BT-131", "Sum of Invoice line net amount (BT-106) = Σ Invoice line net amount (BT-131)."),
    _r("BR-CO-11", "BT-107 BT-92", "Sum of allowances on document level (BT-107) = Σ Document level allowance amount (BT-92)."),
    _r("BR-CO-12", "BT-108 BT-99", "Sum of charges on document level (BT-108) = Σ Document level charge amount (BT-99)."),
    _r("BR-CO-13", "BT-109 BT-131 BT-107 BT-108", "Invoice total amount without VAT (BT-109) = Σ Invoice line net amount (BT-131) - Sum of allowances on document level (BT-107) + Sum of charges on document level (BT-108)."),
    _r("BR-CO-14", "BT-110 BT-117", "Invoice total VAT amount (BT-110) = Σ VAT category tax amount (BT-117)."),
    _r("BR-CO-15", "BT-112 BT-109 BT-110", "Invoice total amount with VAT (BT-112) = Invoice total amount without VAT (BT-109) + Invoice total VAT amount (BT-110)."),
    _r("BR-CO-16", "BT-115 BT-112 BT-113 BT-114", "Amount due for payment (BT-115) = Invoice total amount with VAT (BT-112) - Paid amount (BT-113) + Rounding amount (BT-114)."),
    _r("BR-CO-17", "BT-117 BT-116 BT-119", "VAT category tax amount (BT-117) = VAT category taxable amount (BT-116) x (VAT category rate (BT-119) / 100), rounded to two decimals."),
    _r("BR-CO-18", "BG-23", "An Invoice shall at least have one VAT breakdown group (BG-23)."),
    _r("BR-CO-19", "BG-14 BT-73 BT-74", "If Invoicing period (BG-14) is used, the Invoicing period start date (BT-73) or the Invoicing period end date (BT-74) shall be filled, or both."),
    _r("BR-CO-20", "BG-26 BT-134 BT-135", "If Invoice line period (BG-26) is used, the Invoice line period start date (BT-134) or the Invoice line period end date (BT-135) shall be filled, or both."),
    _r("BR-CO-21", "BT-97 BT-98", "Each Document level allowance (BG-20) shall contain a Document level allowance reason (BT-97) or a Document level allowance reason code (BT-98), or both."),
    _r("BR-CO-22", "BT-104 BT-105", "Each Document level charge (BG-21) shall contain a Document level charge reason (BT-104) or a Document level charge reason code (BT-105), or both."),
    _r("BR-CO-23", "BT-139 BT-140", "Each Invoice line allowance (BG-27) shall contain an Invoice line allowance reason (BT-139) or an Invoice line allowance reason code (BT-140), or both."),
    _r("BR-CO-24", "BT-144 BT-145", "Each Invoice line charge (BG-28) shall contain an Invoice line charge reason (BT-144) or an Invoice line charge reason code (BT-145), or both."),
    _r("BR-CO-25", "BT-115 BT-9 BT-20", "In case the Amount due for payment (BT-115) is positive, either the Payment due date (BT-9) or the Payment terms (BT-20) shall be present."),
    _r("BR-CO-26", "BT-29 BT-30 BT-31", "In order for the buyer to automatically identify a supplier, the Seller identifier (BT-29), the Seller legal registration identifier (BT-30) and/or the Seller VAT identifier (BT-31) shall be present."),
    _r("BR-CO-27", "BT-84", "Either the IBAN or a Proprietary ID (BT-84) shall be used."),
]

_DEC_FIELDS = [
    ("01", "BT-92", "Document level allowance amount"),
    ("02", "BT-93", "Document level allowance base amount"),
    ("05", "BT-99", "Document level charge amount"),
    ("06", "BT-100", "Document level charge base amount"),
    ("09", "BT-106", "Sum of Invoice line net amount"),
    ("10", "BT-107", "Sum of allowances on document level"),
    ("11", "BT-108", "Sum of charges on document level"),
    ("12", "BT-109", "Invoice total amount without VAT"),
    ("13", "BT-110", "Invoice total VAT amount"),
    ("14", "BT-111", "Invoice total VAT amount in accounting currency"),
    ("15", "BT-112", "Invoice total amount with VAT"),
    ("16", "BT-113", "Paid amount"),
    ("17", "BT-114", "Rounding amount"),
    ("18", "BT-115", "Amount due for payment"),
    ("19", "BT-116", "VAT category taxable amount"),
    ("20", "BT-117", "VAT category tax amount"),
    ("23", "BT-131", "Invoice line net amount"),
    ("24", "BT-136", "Invoice line allowance amount"),
    ("25", "BT-137", "Invoice line allowance base amount"),
    ("27", "BT-141", "Invoice line charge amount"),
    ("28", "BT-142", "Invoice line charge base amount"),
]

_DEC = [
    _r(f"BR-DEC-{num}", field, f"The allowed maximum number of decimals for the {label} ({field}) is 2.")
    for num, field, label in _DEC_FIELDS
]


# Familles par catégorie de TVA : (préfixe, code catégorie, libellé)
VAT_FAMILIES = (
    ("S", "S", "Standard rated"),
    ("AE", "AE", "Reverse charge"),
    ("E", "E", "Exempt from VAT"),
    ("Z", "Z", "Zero rated"),
    ("G", "G", "Export outside the EU"),
    ("IC", "K", "Intra-community supply"),
    ("IG", "L", "IGIC"),
    ("IP", "M", "IPSI"),
    ("O", "O", "Not subject to VAT"),
)


_SELLER_IDS = "the Seller VAT Identifier (BT-31), the Seller tax registration identifier (BT-32) and/or the Seller tax representative VAT identifier (BT-63)"

# textes variables par famille : (identifiants exigés, contrainte de taux, base par taux, montant de TVA, motif)
_FAMILY_TEXTS = {
    "S": (f"shall contain {_SELLER_IDS}", "shall be greater than zero", True,
          "shall equal the VAT category taxable amount (BT-116) multiplied by the VAT category rate (BT-119)", False),
    "AE": (f"shall contain {_SELLER_IDS} and the Buyer VAT identifier (BT-48) and/or the Buyer legal registration identifier (BT-47)",
           "shall be 0 (zero)", False, "shall be 0 (zero)", True),
    "E": (f"shall contain {_SELLER_IDS}", "shall be 0 (zero)", True, "shall be 0 (zero)", True),
    "Z": (f"shall contain {_SELLER_IDS}", "shall be 0 (zero)", False, "shall equal 0 (zero)", False),
    "G": ("shall contain the Seller VAT Identifier (BT-31) or the Seller tax representative VAT identifier (BT-63)",
          "shall be 0 (zero)", False, "shall be 0 (zero)", True),
    "IC": ("shall contain the Seller VAT Identifier (BT-31) or the Seller tax representative VAT identifier (BT-63) and the Buyer VAT identifier (BT-48)",
           "shall be 0 (zero)", False, "shall be 0 (zero)", True),
    "IG": (f"shall contain {_SELLER_IDS}", "shall be 0 (zero) or greater than zero", True,
           "shall equal the VAT category taxable amount (BT-116) multiplied by the VAT category rate (BT-119)", False),
    "IP": (f"shall contain {_SELLER_IDS}", "shall be 0 (zero) or greater than zero", True,
           "shall equal the VAT category taxable amount (BT-116) multiplied by the VAT category rate (BT-119)", False),
    "O": ("shall not contain the Seller VAT identifier (BT-31), the Seller tax representative VAT identifier (BT-63) or the Buyer VAT identifier (BT-48)",
          None, False, "shall be 0 (zero)", True),
}


def _family_rules(prefix, category, label):
    c = f"'{label}'"
    parties, rate, per_rate, tax, exemption = _FAMILY_TEXTS[prefix]

    if prefix == "O":
        first = (f"An Invoice that contains an Invoice line (BG-25), a Document level allowance (BG-20) or a Document level charge (BG-21) where the VAT category code (BT-151, BT-95 or BT-102) is {c} shall contain exactly one VAT breakdown group (BG-23) with the VAT category code (BT-118) equal to {c}.")
        rates = [
            f"An Invoice line (BG-25) where the VAT category code (BT-151) is {c} shall not contain an Invoiced item VAT rate (BT-152).",
            f"A Document level allowance (BG-20) where VAT category code (BT-95) is {c} shall not contain a Document level allowance VAT rate (BT-96).",
            f"A Document level charge (BG-21) where the VAT category code (BT-102) is {c} shall not contain a Document level charge VAT rate (BT-103).",
        ]
    else:
        first = (f"An Invoice that contains an Invoice line (BG-25), a Document level allowance (BG-20) or a Document level charge (BG-21) where the VAT category code (BT-151, BT-95 or BT-102) is {c} shall contain in the VAT breakdown (BG-23) at least one VAT category code (BT-118) equal with {c}.")
        rates = [
            f"In an Invoice line (BG-25) where the Invoiced item VAT category code (BT-151) is {c} the Invoiced item VAT rate (BT-152) {rate}.",
            f"In a Document level allowance (BG-20) where the Document level allowance VAT category code (BT-95) is {c} the Document level allowance VAT rate (BT-96) {rate}.",
            f"In a Document level charge (BG-21) where the Document level charge VAT category code (BT-102) is {c} the Document level charge VAT rate (BT-103) {rate}.",
        ]

    if per_rate:
        basis = (f"For each different value of VAT category rate (BT-119) where the VAT category code (BT-118) is {c}, the VAT category taxable amount (BT-116) in a VAT breakdown (BG-23) shall equal the sum of Invoice line net amounts (BT-131) plus the sum of document level charge amounts (BT-99) minus the sum of document level allowance amounts (BT-92) where the VAT category code (BT-151, BT-102, BT-95) is {c} and the VAT rate (BT-152, BT-103, BT-96) equals the VAT category rate (BT-119).")
    else:
        basis = (f"In a VAT breakdown (BG-23) where the VAT category code (BT-118) is {c} the VAT category taxable amount (BT-116) shall equal the sum of Invoice line net amounts (BT-131) minus the sum of Document level allowance amounts (BT-92) plus the sum of Document level charge amounts (BT-99) where the VAT category codes (BT-151, BT-95, BT-102) are {c}.")

    if not exemption:
        reason = f"A VAT breakdown (BG-23) with VAT Category code (BT-118) {c} shall not have a VAT exemption reason code (BT-121) or VAT exemption reason text (BT-120)."
    elif prefix == "E":
        reason = f"A VAT breakdown (BG-23) with VAT Category code (BT-118) {c} shall have a VAT exemption reason code (BT-121) or a VAT exemption reason text (BT-120)."
    else:
        reason = (f"A VAT breakdown (BG-23) with VAT Category code (BT-118) {c} shall have a VAT exemption reason code (BT-121), meaning {c} or the VAT exemption reason text (BT-120) {c} (or the equivalent standard text in another language).")

    return [
        _r(f"BR-{prefix}-01", "BG-23 BT-118", first),
        _r(f"BR-{prefix}-02", "BT-151 BT-31 BT-32 BT-63 BT-48",
           f"An Invoice that contains an Invoice line (BG-25) where the Invoiced item VAT category code (BT-151) is {c} {parties}."),
        _r(f"BR-{prefix}-03", "BT-95 BT-31 BT-32 BT-63 BT-48",
           f"An Invoice that contains a Document level allowance (BG-20) where the Document level allowance VAT category code (BT-95) is {c} {parties}."),
        _r(f"BR-{prefix}-04", "BT-102 BT-31 BT-32 BT-63 BT-48",
           f"An Invoice that contains a Document level charge (BG-21) where the Document level charge VAT category code (BT-102) is {c} {parties}."),
        _r(f"BR-{prefix}-05", "BT-151 BT-152", rates[0]),
        _r(f"BR-{prefix}-06", "BT-95 BT-96", rates[1]),
        _r(f"BR-{prefix}-07", "BT-102 BT-103", rates[2]),
        _r(f"BR-{prefix}-08", "BT-116 BT-131 BT-92 BT-99", basis),
        _r(f"BR-{prefix}-09", "BT-117 BT-116 BT-119",
           f"The VAT category tax amount (BT-117) in a VAT breakdown (BG-23) where the VAT category code (BT-118) is {c} {tax}."),
        _r(f"BR-{prefix}-10", "BT-120 BT-121", reason),
    ]


_FAMILIES = [rule for family in VAT_FAMILIES for rule in _family_rules(*family)]

_FAMILY_EXTRA = [
    _r("BR-IC-11", "BG-23 BT-72 BG-14",
       "In an Invoice with a VAT breakdown (BG-23) where the VAT category code (BT-118) is 'Intra-community supply' the Actual delivery date (BT-72) or the Invoicing period (BG-14) shall not be blank."),
    _r("BR-IC-12", "BG-23 BT-80",
       "In an Invoice with a VAT breakdown (BG-23) where the VAT category code (BT-118) is 'Intra-community supply' the Deliver to country code (BT-80) shall not be blank."),
    _r("BR-O-11", "BG-23 BT-118",
       "An Invoice that contains a VAT breakdown group (BG-23) with a VAT category code (BT-118) 'Not subject to VAT' shall not contain other VAT breakdown groups (BG-23)."),
    _r("BR-O-12", "BG-23 BT-151",
       "An Invoice that contains a VAT breakdown group (BG-23) with a VAT category code (BT-118) 'Not subject to VAT' shall not contain an Invoice line (BG-25) where the Invoiced item VAT category code (BT-151) is not 'Not subject to VAT'."),
    _r("BR-O-13", "BG-23 BT-95",
       "An Invoice that contains a VAT breakdown group (BG-23) with a VAT category code (BT-118) 'Not subject to VAT' shall not contain Document level allowances (BG-20) where Document level allowance VAT category code (BT-95) is not 'Not subject to VAT'."),
    _r("BR-O-14", "BG-23 BT-102",
       "An Invoice that contains a VAT breakdown group (BG-23) with a VAT category code (BT-118) 'Not subject to VAT' shall not contain Document level charges (BG-21) where Document level charge VAT category code (BT-102) is not 'Not subject to VAT'."),
    _r("BR-B-01", "BT-151 BT-40 BT-55",
       "An Invoice where the VAT category code (BT-151, BT-95 or BT-102) is 'Split payment' shall be a domestic Italian invoice."),
    _r("BR-B-02", "BT-151",
       "An Invoice that contains an Invoice line (BG-25), a Document level allowance (BG-20) or a Document level charge (BG-21) where the VAT category code is 'Split payment' shall not contain an invoice line, a document level allowance or a document level charge where the VAT category code is 'Standard rated'."),
]

_PEPPOL = [
    _r("PEPPOL-EN16931-R001", "BT-23", "Business process MUST be provided."),
    _r("PEPPOL-EN16931-R002", "BT-22", "No more than one note is allowed on document level."),
    _r("PEPPOL-EN16931-R003", "BT-10 BT-13", "A buyer reference or purchase order reference MUST be provided."),
    _r("PEPPOL-EN16931-R004", "BT-24", "Specification identifier MUST have the value 'urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0'."),
    _r("PEPPOL-EN16931-R005", "BT-6 BT-5", "VAT accounting currency code MUST be different from invoice currency code when provided."),
    _r("PEPPOL-EN16931-R007", "BT-23", "Business process MUST be in the format 'urn:fdc:peppol.eu:2017:poacc:billing:NN:1.0' where NN indicates the process number."),
    _r("PEPPOL-EN16931-R010", "BT-49", "Buyer electronic address MUST be provided."),
    _r("PEPPOL-EN16931-R020", "BT-34", "Seller electronic address MUST be provided."),
    _r("PEPPOL-EN16931-R040", "BT-92 BT-93 BT-94", "Allowance/charge amount must equal base amount * percentage/100 if base amount and percentage exists."),
    _r("PEPPOL-EN16931-R041", "BT-93 BT-94", "Allowance/charge base amount MUST be provided when allowance/charge percentage is provided."),
    _r("PEPPOL-EN16931-R042", "BT-93 BT-94", "Allowance/charge percentage MUST be provided when allowance/charge base amount is provided."),
    _r("PEPPOL-EN16931-R061", "BT-89", "Mandate reference MUST be provided for direct debit."),
    _r("PEPPOL-EN16931-R080", "BT-11 BG-24", "Only one project reference is allowed on document level."),
    _r("PEPPOL-EN16931-R110", "BT-134 BT-73", "Start date of line period MUST be within invoice period."),
    _r("PEPPOL-EN16931-R111", "BT-135 BT-74", "End date of line period MUST be within invoice period."),
    _r("PEPPOL-EN16931-R120", "BT-131 BT-129 BT-146 BT-149", "Invoice line net amount MUST equal (Invoiced quantity * (Item net price/item price base quantity) + Sum of invoice line charge amount - sum of invoice line allowance amount."),
    _r("PEPPOL-EN16931-R121", "BT-149", "Base quantity MUST be a positive number above zero."),
    _r("PEPPOL-EN16931-R130", "BT-150 BT-130", "Unit code of price base quantity MUST be same as invoiced quantity."),
]

_XRECHNUNG = [
    _r("BR-DE-01", "BG-16", "An invoice must contain information on PAYMENT INSTRUCTIONS (BG-16)."),
    _r("BR-DE-02", "BG-6", "The element group SELLER CONTACT (BG-6) must be transmitted."),
    _r("BR-DE-03", "BT-37", "The element 'Seller city' (BT-37) must be transmitted."),
    _r("BR-DE-04", "BT-38", "The element 'Seller post code' (BT-38) must be transmitted."),
    _r("BR-DE-05", "BT-41", "The element 'Seller contact point' (BT-41) must be transmitted."),
    _r("BR-DE-06", "BT-42", "The element 'Seller contact telephone number' (BT-42) must be transmitted."),
    _r("BR-DE-07", "BT-43", "The element 'Seller contact email address' (BT-43) must be transmitted."),
    _r("BR-DE-08", "BT-52", "The element 'Buyer city' (BT-52) must be transmitted."),
    _r("BR-DE-09", "BT-53", "The element 'Buyer post code' (BT-53) must be transmitted."),
    _r("BR-DE-10", "BT-77", "The element 'Deliver to city' (BT-77) must be transmitted if the group 'DELIVER TO ADDRESS' (BG-15) is delivered."),
    _r("BR-DE-11", "BT-78", "The element 'Deliver to post code' (BT-78) must be transmitted if the group 'DELIVER TO ADDRESS' (BG-15) is delivered."),
    _r("BR-DE-15", "BT-10", "The element 'Buyer reference' (BT-10) must be transmitted."),
    _r("BR-DE-16", "BT-31 BT-32 BT-63", "At least one of the elements 'Seller VAT identifier' (BT-31), 'Seller tax registration identifier' (BT-32) or 'SELLER TAX REPRESENTATIVE PARTY' (BG-11) must be transmitted."),
    _r("BR-DE-17", "BT-3", "Only the document type codes 326, 380, 384, 389, 381, 875, 876 and 877 may be used for 'Invoice type code' (BT-3)."),
    _r("BR-DE-18", "BT-20", "Cash discount information in 'Payment terms' (BT-20) must follow the structure #SKONTO#TAGE=n#PROZENT=n.nn#[BASISBETRAG=n.nn#]."),
    _r("BR-DE-19", "BT-84", "'Payment account identifier' (BT-84) should be a correct IBAN when SEPA credit transfer (58) is used."),
    _r("BR-DE-20", "BT-91", "'Debited account identifier' (BT-91) should be a correct IBAN when SEPA direct debit (59) is used."),
    _r("BR-DE-22", "BT-125", "The 'filename' attributes of all 'Attached Document' (BT-125) elements must be unique."),
    _r("BR-DE-23-a", "BT-81 BG-17", "If 'Payment means type code' (BT-81) is a credit transfer code (30, 58), the group 'CREDIT TRANSFER' (BG-17) must be transmitted."),
    _r("BR-DE-23-b", "BT-81 BG-18 BG-19", "If 'Payment means type code' (BT-81) is a credit transfer code (30, 58), the groups 'PAYMENT CARD INFORMATION' (BG-18) and 'DIRECT DEBIT' (BG-19) must not be transmitted."),
    _r("BR-DE-24-a", "BT-81 BG-18", "If 'Payment means type code' (BT-81) is a payment card code (48, 54, 55), the group 'PAYMENT CARD INFORMATION' (BG-18) must be transmitted."),
    _r("BR-DE-24-b", "BT-81 BG-17 BG-19", "If 'Payment means type code' (BT-81) is a payment card code (48, 54, 55), the groups 'CREDIT TRANSFER' (BG-17) and 'DIRECT DEBIT' (BG-19) must not be transmitted."),
    _r("BR-DE-25-a", "BT-81 BG-19", "If 'Payment means type code' (BT-81) is direct debit (59), the group 'DIRECT DEBIT' (BG-19) must be transmitted."),
    _r("BR-DE-25-b", "BT-81 BG-17 BG-18", "If 'Payment means type code' (BT-81) is direct debit (59), the groups 'CREDIT TRANSFER' (BG-17) and 'PAYMENT CARD INFORMATION' (BG-18) must not be transmitted."),
    _r("BR-DE-26", "BT-3 BG-3", "If 'Invoice type code' (BT-3) is 384 (Corrected invoice), 'PRECEDING INVOICE REFERENCE' (BG-3) should be transmitted at least once."),
    _r("BR-DE-27", "BT-42", "'Seller contact telephone number' (BT-42) should contain at least three digits."),
    _r("BR-DE-28", "BT-43", "'Seller contact email address' (BT-43) should contain exactly one @ which is neither at the start nor at the end."),
    _r("BR-DE-30", "BT-90", "If the group 'DIRECT DEBIT' (BG-19) is delivered, the element 'Bank assigned creditor identifier' (BT-90) must be transmitted."),
    _r("BR-DE-31", "BT-91", "If the group 'DIRECT DEBIT' (BG-19) is delivered, the element 'Debited account identifier' (BT-91) must be transmitted."),
]


def _index(*groups):
    catalogue = {}
    for group in groups:
        for rule in group:
            if rule.code in catalogue:
                raise ValueError(f"Règle en double dans le catalogue : {rule.code}")
            catalogue[rule.code] = rule
    return MappingProxyType(catalogue)


CATALOGUE = _index(_CORE, _CUSTOM, _CO, _DEC, _FAMILIES, _FAMILY_EXTRA, _PEPPOL, _XRECHNUNG)


def get_rule(code: str) -> Rule:
    """Descripteur d'une règle ; KeyError si le code est inconnu."""
    return CATALOGUE[code]


def all_rules() -> Tuple[Rule, ...]:
    return tuple(CATALOGUE.values())
