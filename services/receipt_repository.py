"""
Versionamento de recibos: cada nova extração vira a versão corrente.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models import Receipt
from models.extraction import ReceiptFields
from services.errors import PersistenceError


class CreateReceiptRequest(BaseModel):
    """Dados para gravar uma nova versão de recibo."""

    model_config = ConfigDict(frozen=True)

    profile_id: str
    file_id: Optional[str] = None
    file_path: str = ""
    job_id: Optional[str] = None
    fields: ReceiptFields
    category_name: str


def _parse_amount(name: str, value: Optional[str]) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise PersistenceError(f"valor inválido em {name}: {value!r}") from e


def _parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise PersistenceError(f"data inválida: {value!r}") from e


class ReceiptRepository:
    """Repositório de recibos com uma única versão corrente por identidade."""

    def __init__(self, session_factory: sessionmaker, logger: Optional[logging.Logger] = None):
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)

    def upsert_from_fields(self, request: CreateReceiptRequest) -> Receipt:
        """
        Grava uma nova versão e rebaixa a anterior na mesma transação.

        A identidade é o file_id; sem ele, a chave natural
        (perfil, estabelecimento, data, total, moeda).

        Raises:
            PersistenceError: Data/valor inválido ou falha no banco (com rollback)
        """
        fields = request.fields
        tx_date = _parse_date(fields.tx_date)
        total = _parse_amount("total", fields.total)
        now = datetime.utcnow()

        receipt = Receipt(
            profile_id=request.profile_id,
            file_id=request.file_id,
            file_path=request.file_path,
            merchant_name=fields.merchant_name,
            tx_date=tx_date,
            subtotal=_parse_amount("subtotal", fields.subtotal),
            discount=_parse_amount("discount", fields.discount),
            other_fees=_parse_amount("other_fees", fields.other_fees),
            tip=_parse_amount("tip", fields.tip),
            tax=_parse_amount("tax", fields.tax),
            total=total,
            currency_code=fields.currency_code,
            category_name=request.category_name,
            payment_method=fields.payment_method,
            payment_last4=fields.payment_last4,
            description=fields.description,
            is_current=True,
            created_at=now,
            updated_at=now,
        )

        session = self.session_factory()
        try:
            query = session.query(Receipt).filter(Receipt.is_current.is_(True))
            if request.file_id:
                query = query.filter(Receipt.file_id == request.file_id)
            else:
                query = query.filter(
                    Receipt.profile_id == request.profile_id,
                    Receipt.merchant_name == fields.merchant_name,
                    Receipt.tx_date == tx_date,
                    Receipt.total == total,
                    Receipt.currency_code == fields.currency_code,
                )
            demoted = query.update({"is_current": False, "updated_at": now}, synchronize_session=False)

            session.add(receipt)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"❌ Falha ao gravar recibo (job {request.job_id}): {e}")
            raise PersistenceError(f"falha ao gravar recibo: {e}", job_id=request.job_id) from e
        finally:
            session.close()

        self.logger.info(
            f"🧾 Recibo {receipt.id} gravado (job {request.job_id}, arquivo {request.file_id}); "
            f"versões rebaixadas: {demoted}"
        )
        return receipt

    def get_current_by_file_id(self, file_id: str) -> Optional[Receipt]:
        session = self.session_factory()
        try:
            return session.query(Receipt).filter_by(file_id=file_id, is_current=True).first()
        finally:
            session.close()

    def list_versions(self, file_id: str) -> List[Receipt]:
        """Todas as versões de um arquivo, da mais antiga para a mais nova."""
        session = self.session_factory()
        try:
            return (
                session.query(Receipt)
                .filter_by(file_id=file_id)
                .order_by(Receipt.created_at, Receipt.id)
                .all()
            )
        finally:
            session.close()

    def list_receipts(
        self,
        profile_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Receipt]:
        """Recibos correntes do perfil, ordenados por data."""
        session = self.session_factory()
        try:
            query = session.query(Receipt).filter_by(profile_id=profile_id, is_current=True)
            if from_date is not None:
                query = query.filter(Receipt.tx_date >= from_date)
            if to_date is not None:
                query = query.filter(Receipt.tx_date <= to_date)
            return query.order_by(Receipt.tx_date).all()
        finally:
            session.close()
