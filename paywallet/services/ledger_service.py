"""
GRAND LIVRE - soldes des comptes et écritures de transactions

Chaque incrément de solde s'accompagne d'une écriture Credit. L'unicité
(user_id, transaction_id) est garantie par la base: une vérification de
paiement rejouée tombe sur la contrainte et n'est pas créditée deux fois.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paywallet.exceptions import InsufficientBalanceError, NotFoundError
from paywallet.models.user_models import User
from paywallet.models.transaction_models import (
    Transaction, TransactionType, TransactionStatus,
)
from paywallet.models.settings_models import PaymentSettings

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convertir un montant (int, float, str) en Decimal à 2 décimales."""
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def paise_to_rupees(paise: int) -> Decimal:
    return (Decimal(int(paise)) / 100).quantize(CENT)


def rupees_to_paise(amount: Any) -> int:
    return int((to_decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def credit_once(
    db: Session,
    user_id: int,
    transaction_id: str,
    amount: Any,
    description: str,
    category: str,
    method: Optional[str] = None,
    customer_name: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> bool:
    """
    Insérer l'écriture Credit puis incrémenter le solde, de façon atomique.

    Retourne False si (user_id, transaction_id) existe déjà: paiement déjà
    traité, solde inchangé. Ne fait pas de commit, l'appelant valide l'unité
    de travail.
    """
    amount = to_decimal(amount)
    entry = Transaction(
        user_id=user_id,
        transaction_id=transaction_id,
        description=description,
        type=TransactionType.CREDIT,
        amount=amount,
        status=TransactionStatus.COMPLETED,
        category=category,
        method=method,
        customer_name=customer_name,
        reference_id=reference_id,
        net_amount=amount,
    )

    try:
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except IntegrityError:
        logger.info(f"🔁 Paiement déjà traité: user={user_id}, txn={transaction_id}")
        return False

    updated = (
        db.query(User)
        .filter(User.id == user_id)
        .update({User.balance: User.balance + amount})
    )
    if not updated:
        raise NotFoundError(f"User {user_id} not found")

    logger.info(f"💰 Crédit {amount} ₹ -> user={user_id} ({category}, txn={transaction_id})")
    return True


def record_pending_debit(
    db: Session,
    user_id: int,
    transaction_id: str,
    amount: Any,
    description: str,
    category: str,
    method: Optional[str] = None,
    fee: Any = 0,
    reference_id: Optional[str] = None,
    account_number: Optional[str] = None,
    ifsc_code: Optional[str] = None,
    upi_id: Optional[str] = None,
    bank_name: Optional[str] = None,
    status: str = TransactionStatus.PENDING,
) -> Transaction:
    """Écriture Debit d'une demande de retrait ou de versement."""
    amount = to_decimal(amount)
    fee = to_decimal(fee)
    entry = Transaction(
        user_id=user_id,
        transaction_id=transaction_id,
        description=description,
        type=TransactionType.DEBIT,
        amount=amount,
        status=status,
        category=category,
        method=method,
        fee=fee,
        net_amount=amount,
        reference_id=reference_id,
        account_number=account_number,
        ifsc_code=ifsc_code,
        upi_id=upi_id,
        bank_name=bank_name,
    )
    db.add(entry)
    db.flush()
    return entry


def debit_balance(db: Session, user_id: int, amount: Any) -> Decimal:
    """
    Débiter le compte après verrouillage de la ligne.
    Lève InsufficientBalanceError sans rien modifier si le solde est trop bas.
    """
    amount = to_decimal(amount)
    user = (
        db.query(User)
        .filter(User.id == user_id)
        .with_for_update()
        .first()
    )
    if not user:
        raise NotFoundError("User not found")

    balance = to_decimal(user.balance or 0)
    if balance < amount:
        raise InsufficientBalanceError(
            "Insufficient balance", balance=balance, required=amount
        )

    # Décrément conditionnel: ne passe jamais sous zéro même sans verrou de ligne
    updated = (
        db.query(User)
        .filter(User.id == user_id, User.balance >= amount)
        .update({User.balance: User.balance - amount})
    )
    if not updated:
        raise InsufficientBalanceError(
            "Insufficient balance", balance=balance, required=amount
        )

    db.refresh(user)
    logger.info(f"💸 Débit {amount} ₹ <- user={user_id}, nouveau solde={user.balance}")
    return to_decimal(user.balance)


def set_transaction_status(db: Session, user_id: int, transaction_id: str, status: str) -> Optional[Transaction]:
    entry = (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id, Transaction.transaction_id == transaction_id)
        .first()
    )
    if entry:
        entry.status = status
    return entry


def get_balance(db: Session, user_id: int) -> Decimal:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return to_decimal(user.balance or 0)


def list_transactions(db: Session, user_id: int, limit: int = 100, offset: int = 0) -> List[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_payment_settings(db: Session) -> PaymentSettings:
    """Récupérer les paramètres de paiement, les créer si absents."""
    settings_row = db.query(PaymentSettings).first()
    if not settings_row:
        settings_row = PaymentSettings()
        db.add(settings_row)
        db.commit()
        db.refresh(settings_row)
        logger.info("⚙️ Paramètres de paiement initialisés")
    return settings_row
