# einvoice/models/invoice.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional
from decimal import Decimal
from datetime import date

from einvoice.models import profiles

ZERO = Decimal("0")


class PostalAddress(BaseModel):
    country_id: str = ""
    postcode: str = ""
    line1: str = ""
    line2: str = ""
    line3: str = ""
    city: str = ""
    country_subdivision: str = ""


class GlobalID(BaseModel):
    id: str
    scheme: str = ""


class Contact(BaseModel):
    person_name: str = ""
    department_name: str = ""
    phone: str = ""
    email: str = ""


class LegalOrganization(BaseModel):
    id: str = ""
    scheme: str = ""
    trading_name: str = ""


class Party(BaseModel):
    """Partie (vendeur, acheteur, bénéficiaire, représentant fiscal, livraison).

    Un seul type pour tous les rôles : les règles propres à chaque rôle
    sont portées par le champ qui contient la partie.
    """
    ids: List[str] = Field(default_factory=list)
    global_ids: List[GlobalID] = Field(default_factory=list)
    name: str = ""
    description: str = ""
    legal_organization: Optional[LegalOrganization] = None
    contacts: List[Contact] = Field(default_factory=list)
    postal_address: Optional[PostalAddress] = None
    electronic_address: str = ""
    electronic_address_scheme: str = ""
    vat_id: str = ""
    fc_tax_registration: str = ""

    @property
    def country_id(self) -> str:
        return self.postal_address.country_id if self.postal_address else ""

    @property
    def legal_id(self) -> str:
        return self.legal_organization.id if self.legal_organization else ""


class Characteristic(BaseModel):
    description: str = ""
    value: str = ""


class Classification(BaseModel):
    class_code: str = ""
    list_id: str = ""
    list_version_id: str = ""


class AllowanceCharge(BaseModel):
    charge_indicator: bool = False
    calculation_percent: Optional[Decimal] = None
    basis_amount: Optional[Decimal] = None
    actual_amount: Decimal = ZERO
    reason_code: str = ""
    reason: str = ""
    tax_type: str = "VAT"
    category_code: str = ""
    category_rate: Optional[Decimal] = None


class Note(BaseModel):
    text: str = ""
    subject_code: str = ""


class PaymentMeans(BaseModel):
    type_code: str = ""
    information: str = ""
    payee_iban: str = ""
    payee_account_name: str = ""
    payee_proprietary_id: str = ""
    payee_bic: str = ""
    payer_iban: str = ""
    card_id: str = ""
    cardholder_name: str = ""


class PaymentTerms(BaseModel):
    description: str = ""
    due_date: Optional[date] = None
    direct_debit_mandate_id: str = ""


class ReferencedDocument(BaseModel):
    id: str = ""
    issue_date: Optional[date] = None


class SupportingDocument(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    id: str = ""
    uri: str = ""
    type_code: str = ""
    reference_type_code: str = ""
    name: str = ""
    attachment: Optional[bytes] = None
    attachment_mime_code: str = ""
    attachment_filename: str = ""


class TradeTax(BaseModel):
    calculated_amount: Decimal = ZERO
    basis_amount: Decimal = ZERO
    type_code: str = "VAT"
    category_code: str = ""
    rate: Optional[Decimal] = None
    exemption_reason: str = ""
    exemption_reason_code: str = ""
    tax_point_date: Optional[date] = None
    due_date_type_code: str = ""
    has_calculated_amount: bool = True


class InvoiceLine(BaseModel):
    line_id: str = ""
    note: str = ""
    object_id: str = ""
    object_id_scheme: str = ""
    buyer_order_line_ref: str = ""
    accounting_account: str = ""
    global_id: str = ""
    global_id_scheme: str = ""
    seller_item_id: str = ""
    buyer_item_id: str = ""
    item_name: str = ""
    description: str = ""
    characteristics: List[Characteristic] = Field(default_factory=list)
    classifications: List[Classification] = Field(default_factory=list)
    origin_country: str = ""
    gross_price: Optional[Decimal] = None
    price_allowances_charges: List[AllowanceCharge] = Field(default_factory=list)
    net_price: Decimal = ZERO
    basis_quantity: Optional[Decimal] = None
    basis_quantity_unit: str = ""
    billed_quantity: Decimal = ZERO
    billed_quantity_unit: str = ""
    has_billed_quantity: bool = True
    allowances: List[AllowanceCharge] = Field(default_factory=list)
    charges: List[AllowanceCharge] = Field(default_factory=list)
    billing_period_start: Optional[date] = None
    billing_period_end: Optional[date] = None
    has_billing_period: bool = False
    tax_type: str = "VAT"
    tax_category: str = ""
    tax_rate: Optional[Decimal] = None
    total: Decimal = ZERO
    has_total: bool = True
    has_net_price: bool = True


class Invoice(BaseModel):
    """Modèle sémantique EN 16931 commun aux syntaxes CII et UBL."""
    schema_type: Literal["CII", "UBL"] = "CII"
    specification_id: str = ""          # BT-24
    business_process: str = ""          # BT-23
    number: str = ""                    # BT-1
    type_code: str = "380"              # BT-3
    issue_date: Optional[date] = None   # BT-2
    delivery_date: Optional[date] = None  # BT-72
    billing_period_start: Optional[date] = None
    billing_period_end: Optional[date] = None
    has_billing_period: bool = False
    currency: str = ""                  # BT-5
    tax_currency: str = ""              # BT-6
    buyer_reference: str = ""           # BT-10
    project_id: str = ""                # BT-11
    project_name: str = ""
    contract_reference: str = ""        # BT-12
    buyer_order_reference: str = ""     # BT-13
    seller_order_reference: str = ""    # BT-14
    receiving_advice_reference: str = ""  # BT-15
    despatch_advice_reference: str = ""   # BT-16
    accounting_account: str = ""        # BT-19
    payment_reference: str = ""         # BT-83
    creditor_reference: str = ""        # BT-90
    notes: List[Note] = Field(default_factory=list)
    preceding_invoices: List[ReferencedDocument] = Field(default_factory=list)
    supporting_documents: List[SupportingDocument] = Field(default_factory=list)

    seller: Party = Field(default_factory=Party)
    buyer: Party = Field(default_factory=Party)
    payee: Optional[Party] = None
    tax_representative: Optional[Party] = None
    ship_to: Optional[Party] = None

    payment_means: List[PaymentMeans] = Field(default_factory=list)
    payment_terms: List[PaymentTerms] = Field(default_factory=list)
    allowances_charges: List[AllowanceCharge] = Field(default_factory=list)
    trade_taxes: List[TradeTax] = Field(default_factory=list)
    lines: List[InvoiceLine] = Field(default_factory=list)

    line_total: Decimal = ZERO          # BT-106
    allowance_total: Decimal = ZERO     # BT-107
    charge_total: Decimal = ZERO        # BT-108
    tax_basis_total: Decimal = ZERO     # BT-109
    tax_total: Decimal = ZERO           # BT-110
    tax_total_currency: str = ""
    tax_total_accounting: Optional[Decimal] = None  # BT-111
    tax_total_accounting_currency: str = ""
    grand_total: Decimal = ZERO         # BT-112
    prepaid: Decimal = ZERO             # BT-113
    rounding: Decimal = ZERO            # BT-114
    due_payable: Decimal = ZERO         # BT-115

    has_line_total: bool = True
    has_tax_basis_total: bool = True
    has_grand_total: bool = True
    has_due_payable: bool = True
    unexpected_tax_currencies: List[str] = Field(default_factory=list)

    # --- profils ---

    def profile_level(self) -> int:
        return profiles.profile_level(self.specification_id)

    def meets_profile_level(self, level: int) -> bool:
        return self.profile_level() >= level

    def is_minimum(self) -> bool:
        return self.profile_level() == profiles.LEVEL_MINIMUM

    def is_basic_wl(self) -> bool:
        return self.profile_level() == profiles.LEVEL_BASIC_WL

    def is_basic(self) -> bool:
        return self.profile_level() == profiles.LEVEL_BASIC

    def is_en16931(self) -> bool:
        return self.profile_level() == profiles.LEVEL_EN16931

    def is_extended(self) -> bool:
        return self.profile_level() == profiles.LEVEL_EXTENDED

    def is_xrechnung(self) -> bool:
        return self.specification_id.strip() == profiles.XRECHNUNG_30

    def is_peppol(self) -> bool:
        return self.specification_id.strip() == profiles.PEPPOL_BILLING_30

    # --- sommes ---

    @property
    def document_allowances(self) -> List[AllowanceCharge]:
        return [ac for ac in self.allowances_charges if not ac.charge_indicator]

    @property
    def document_charges(self) -> List[AllowanceCharge]:
        return [ac for ac in self.allowances_charges if ac.charge_indicator]

    # --- opérations ---
    # imports différés : les services dépendent eux-mêmes de ce module

    def update_applicable_trade_tax(self, exempt_reasons: Optional[Dict[str, str]] = None) -> None:
        from einvoice.services.arithmetic import update_applicable_trade_tax
        update_applicable_trade_tax(self, exempt_reasons or {})

    def update_totals(self) -> None:
        from einvoice.services.arithmetic import update_totals
        update_totals(self)

    def validate(self):
        """Retourne None si la facture est conforme, sinon une InvoiceValidationError."""
        from einvoice.services.validator import validate_invoice
        return validate_invoice(self)

    def write(self, stream) -> None:
        from einvoice.services.writer import write_invoice
        write_invoice(self, stream)

    def to_xml(self) -> bytes:
        from einvoice.services.writer import invoice_to_bytes
        return invoice_to_bytes(self)
