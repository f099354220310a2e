"""
Codes deal lisibles et calcul des soldes

Format deal_id: PREFIXE(4 lettres du client) + JJMM + séquence sur 3 chiffres
    ex: "ACME1810001"
"""

import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

ADVANCE_PAYMENT_TYPE = "Advance"


def customer_prefix(customer_name: str) -> str:
    letters = re.sub(r"[^a-zA-Z]", "", customer_name or "")
    return letters[:4].upper()


def deal_code_prefix(customer_name: str, today: datetime) -> str:
    return f"{customer_prefix(customer_name)}{today.day:02d}{today.month:02d}"


def build_deal_code(customer_name: str, today: datetime, existing_count: int) -> str:
    """existing_count = nombre de deals du client déjà créés avec ce préfixe"""
    return f"{deal_code_prefix(customer_name, today)}{existing_count + 1:03d}"


def to_amount(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_amounts(values: dict) -> Tuple[Dict[str, float], List[str]]:
    """
    Convertit les montants saisis.
    Les champs vides sont ignorés; renvoie (montants, champs non numériques).
    """
    parsed, invalid = {}, []
    for field, value in values.items():
        if value is None or value == "":
            continue
        amount = to_amount(value, default=None)
        if amount is None:
            invalid.append(field)
        else:
            parsed[field] = amount
    return parsed, invalid


def initial_balance(approval_value, advance_payment, balance_amount=None) -> float:
    """Solde initial: valeur fournie sinon approbation - avance"""
    if balance_amount is not None:
        return to_amount(balance_amount)
    return round(to_amount(approval_value) - to_amount(advance_payment), 2)


def recompute_balance(approval_value, advance_payment,
                      payments: Optional[Iterable[dict]] = None) -> float:
    """
    Solde = approbation - avance - autres paiements.
    Le paiement d'avance créé avec le deal (is_deal_advance) est déjà compté via advance_payment.
    """
    paid = sum(
        to_amount(p.get("amount"))
        for p in (payments or [])
        if not p.get("is_deal_advance")
    )
    return round(to_amount(approval_value) - to_amount(advance_payment) - paid, 2)
