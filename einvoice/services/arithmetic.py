# einvoice/services/arithmetic.py
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Dict, Iterable, List, Optional, Tuple

from einvoice.models.invoice import Invoice, TradeTax

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# catégories pour lesquelles un motif d'exonération est attendu (BT-120)
EXEMPT_CATEGORIES = ("AE", "E", "G", "K", "O")


def _digits(value: Decimal) -> int:
    # chiffres significatifs plus décimales : borne de la précision utile
    _, digits, exponent = value.as_tuple()
    if not isinstance(exponent, int):
        return 0
    return len(digits) + abs(exponent)


def exact_sum(values: Iterable) -> Decimal:
    """Somme sans arrondi, quelle que soit la précision du contexte decimal courant."""
    values = [Decimal(v) for v in values]
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, sum(_digits(v) for v in values) + 1)
        return sum(values, ZERO)


def round2(value) -> Decimal:
    """Arrondi commercial (half-up) à deux décimales, indépendant du contexte decimal."""
    if value is None:
        return ZERO
    value = Decimal(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, _digits(value) + 3)
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def rate_key(rate: Optional[Decimal]) -> Decimal:
    # un taux absent compte comme 0 dans la clé (catégorie, taux)
    if rate is None:
        return ZERO
    return Decimal(rate)


def percent_of(basis, percent) -> Decimal:
    """Base x pourcentage / 100, arrondi à deux décimales sans perte de précision intermédiaire."""
    basis, percent = Decimal(basis), Decimal(percent)
    with localcontext() as ctx:
        # le produit base x taux / 100 est exact avec cette précision
        ctx.prec = max(ctx.prec, _digits(basis) + _digits(percent) + 3)
        return round2(basis * percent / HUNDRED)


def tax_amount(basis, rate) -> Decimal:
    return percent_of(basis, rate_key(rate))


def line_amount(quantity, price, base_quantity) -> Decimal:
    """Quantité x prix / quantité de base, non arrondi."""
    quantity, price = Decimal(quantity), Decimal(price)
    with localcontext() as ctx:
        ctx.prec += _digits(quantity) + _digits(price)
        return quantity * price / base_quantity


def rollup_by_category_rate(invoice: Invoice, category: Optional[str] = None) -> Dict[Tuple[str, Decimal], Dict[str, Decimal]]:
    """
    Regroupe lignes, remises et charges de document par (catégorie, taux).
    Retourne {(catégorie, taux): {"basis": ..., "calc": ...}} dans l'ordre de première apparition.
    Si `category` est fourni, seules les entrées de cette catégorie sont retenues.
    """
    amounts: Dict[Tuple[str, Decimal], List[Decimal]] = {}

    def _add(code, rate, amount):
        if category is not None and code != category:
            return
        amounts.setdefault((code, rate_key(rate)), []).append(amount)

    for line in invoice.lines:
        _add(line.tax_category, line.tax_rate, line.total)
    for ac in invoice.allowances_charges:
        amount = ac.actual_amount if ac.charge_indicator else ac.actual_amount.copy_negate()
        _add(ac.category_code, ac.category_rate, amount)

    groups: Dict[Tuple[str, Decimal], Dict[str, Decimal]] = {}
    for (code, rate), values in amounts.items():
        basis = round2(exact_sum(values))
        groups[(code, rate)] = {"basis": basis, "calc": tax_amount(basis, rate)}
    return groups


def basis_for_category(invoice: Invoice, category: str) -> Decimal:
    """Σ lignes − Σ remises + Σ charges pour une catégorie, tous taux confondus."""
    return round2(exact_sum(s["basis"] for s in rollup_by_category_rate(invoice, category).values()))


def update_applicable_trade_tax(invoice: Invoice, exempt_reasons: Dict[str, str]) -> None:
    """Recalcule la ventilation TVA (BG-23) à partir des lignes et des remises/charges."""
    previous = {(t.category_code, rate_key(t.rate)): t for t in invoice.trade_taxes}
    taxes: List[TradeTax] = []

    for (code, rate), sums in rollup_by_category_rate(invoice).items():
        old = previous.get((code, rate))
        tax = TradeTax(
            category_code=code,
            rate=_source_rate(invoice, code, rate),
            basis_amount=sums["basis"],
            calculated_amount=sums["calc"],
            type_code="VAT",
        )
        if code in EXEMPT_CATEGORIES:
            tax.exemption_reason = exempt_reasons.get(code, "")
        if old is not None:
            tax.tax_point_date = old.tax_point_date
            tax.due_date_type_code = old.due_date_type_code
            tax.exemption_reason_code = old.exemption_reason_code
            if not tax.exemption_reason and code in EXEMPT_CATEGORIES:
                tax.exemption_reason = old.exemption_reason
        taxes.append(tax)

    invoice.trade_taxes = taxes


def _source_rate(invoice: Invoice, code: str, key: Decimal) -> Optional[Decimal]:
    # reprend le taux tel qu'il figure sur la première ligne/remise/charge de la clé
    for line in invoice.lines:
        if line.tax_category == code and rate_key(line.tax_rate) == key:
            return line.tax_rate
    for ac in invoice.allowances_charges:
        if ac.category_code == code and rate_key(ac.category_rate) == key:
            return ac.category_rate
    return key


def update_totals(invoice: Invoice) -> None:
    """Recalcule BT-106 à BT-115. Prepaid, Rounding et TaxPointDate ne sont pas modifiés."""
    invoice.line_total = round2(exact_sum(line.total for line in invoice.lines))
    invoice.allowance_total = round2(exact_sum(ac.actual_amount for ac in invoice.document_allowances))
    invoice.charge_total = round2(exact_sum(ac.actual_amount for ac in invoice.document_charges))
    invoice.tax_basis_total = round2(exact_sum([invoice.line_total, invoice.allowance_total.copy_negate(), invoice.charge_total]))
    invoice.tax_total = round2(exact_sum(t.calculated_amount for t in invoice.trade_taxes))
    invoice.grand_total = round2(exact_sum([invoice.tax_basis_total, invoice.tax_total]))
    invoice.due_payable = round2(exact_sum([invoice.grand_total, invoice.prepaid.copy_negate(), invoice.rounding]))

    if not invoice.tax_total_currency:
        invoice.tax_total_currency = invoice.currency
    invoice.has_line_total = True
    invoice.has_tax_basis_total = True
    invoice.has_grand_total = True
    invoice.has_due_payable = True
