# einvoice/errors.py


class EInvoiceError(Exception):
    """Erreur de base de la bibliothèque."""


class InvoiceParseError(EInvoiceError, ValueError):
    """XML malformé, date ou décimal invalide, pièce jointe base64 illisible."""

    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path


class UnsupportedFormatError(InvoiceParseError):
    """Élément racine inconnu ou PDF sans facture embarquée."""


class InvoiceWriteError(EInvoiceError):
    pass


class InvoiceValidationError(EInvoiceError):
    """Résultat composite du validateur : liste ordonnée des violations."""

    def __init__(self, violations):
        self._violations = list(violations)
        super().__init__(self._message())

    def _message(self) -> str:
        if not self._violations:
            return "validation failed with no violations"
        first = self._violations[0]
        if len(self._violations) == 1:
            return f"validation failed: {first.rule.code} - {first.text}"
        return (
            f"validation failed with {len(self._violations)} violations "
            f"(first: {first.rule.code} - {first.text})"
        )

    def violations(self) -> list:
        # copie : la liste interne ne doit pas être modifiée par l'appelant
        return list(self._violations)

    def count(self) -> int:
        return len(self._violations)

    def has_rule_code(self, code: str) -> bool:
        return any(v.rule.code == code for v in self._violations)

    def codes(self) -> list[str]:
        return [v.rule.code for v in self._violations]
