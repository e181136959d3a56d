"""
Reply Formatting

Renders the text sent back to the user. Replies are in Brazilian
Portuguese; currency rendering (symbol, separators, precision) is a
CurrencyFormat policy passed in from configuration.
"""

from typing import Optional

from pydantic import BaseModel, Field

from ledger_bot.models.transaction import Dimension, MessageSchema, Transaction
from ledger_bot.parsing import ParseError
from ledger_bot.validation import ValidationError, ValidationErrorKind


DIMENSION_LABELS = {
    Dimension.CATEGORY: "categoria",
    Dimension.PAYMENT_TYPE: "forma de pagamento",
}

FIELD_LABELS = {
    "description": "descrição",
    "amount": "valor",
    "category": "categoria",
    "payment_type": "forma de pagamento",
}

FORMAT_HINTS = {
    MessageSchema.FOUR_FIELD: (
        "descrição, valor, categoria, forma de pagamento",
        "Mercado, 10,50, Alimentação, Crédito",
    ),
    MessageSchema.THREE_FIELD: (
        "descrição, valor, categoria",
        "Mercado, 10,50, Alimentação",
    ),
}


class CurrencyFormat(BaseModel):
    """How money is rendered: "R$ 1.234,56" with the defaults."""

    symbol: str = "R$"
    thousands_separator: str = "."
    decimal_separator: str = ","
    decimals: int = Field(default=2, ge=0, le=6)

    def format(self, value: float) -> str:
        rounded = round(value, self.decimals)
        sign = "-" if rounded < 0 else ""
        body = f"{abs(rounded):,.{self.decimals}f}"
        # Swap the separators Python emits for the configured ones
        body = (
            body.replace(",", "\x00")
            .replace(".", self.decimal_separator)
            .replace("\x00", self.thousands_separator)
        )
        if self.symbol:
            return f"{sign}{self.symbol} {body}"
        return f"{sign}{body}"


class ReplyFormatter:
    """Builds confirmation and error replies."""

    def __init__(
        self,
        currency: Optional[CurrencyFormat] = None,
        schema: MessageSchema = MessageSchema.FOUR_FIELD,
    ):
        self._currency = currency or CurrencyFormat()
        self._schema = schema

    def money(self, value: float) -> str:
        return self._currency.format(value)

    def acknowledgement(self, transaction: Transaction) -> str:
        return (
            f"✅ Gasto registrado: {transaction.description} - "
            f"{self.money(transaction.amount)}"
        )

    def running_total(self, dimension: Dimension, value: str, total: float) -> str:
        return (
            f"💰 Total acumulado em {DIMENSION_LABELS[dimension]} "
            f"\"{value}\": {self.money(total)}"
        )

    def success(self, transaction: Transaction, dimension: Dimension, total: float) -> str:
        """Two-part confirmation: the entry, then the running total."""
        return "\n".join([
            self.acknowledgement(transaction),
            self.running_total(dimension, transaction.value_for(dimension), total),
        ])

    def wrong_arity(self) -> str:
        layout, example = FORMAT_HINTS[self._schema]
        return (
            "⚠️ Formato inválido. Envie: "
            f"{layout}\n"
            f"Exemplo: {example}"
        )

    def invalid_amount(self, raw_value: str) -> str:
        return (
            f"⚠️ Valor inválido: \"{raw_value}\". "
            "Use apenas números, por exemplo 10,50."
        )

    def empty_field(self, field: str) -> str:
        return f"⚠️ O campo \"{FIELD_LABELS.get(field, field)}\" não pode ficar vazio."

    def store_failure(self, transaction: Transaction) -> str:
        """Names the labels most likely refused by the backend."""
        return (
            "❌ Não foi possível registrar o gasto. "
            f"Verifique se a categoria \"{transaction.category}\" e a forma de "
            f"pagamento \"{transaction.payment_type}\" existem no banco de dados."
        )

    def total_unavailable(self, transaction: Transaction, dimension: Dimension) -> str:
        """The entry was recorded but its running total couldn't be read."""
        return "\n".join([
            self.acknowledgement(transaction),
            (
                "⚠️ Não foi possível calcular o total de "
                f"{DIMENSION_LABELS[dimension]} \"{transaction.value_for(dimension)}\" agora."
            ),
        ])

    def for_parse_error(self, error: ParseError) -> str:
        return self.wrong_arity()

    def for_validation_error(self, error: ValidationError) -> str:
        if error.kind == ValidationErrorKind.INVALID_AMOUNT:
            return self.invalid_amount(error.raw_value)
        return self.empty_field(error.field)
