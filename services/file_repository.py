"""
Registro e consulta de arquivos de recibos.
"""

import hashlib
import logging
import os
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models import FileFormat, ReceiptFile
from services.errors import PersistenceError, RecordNotFoundError


def sha256_file(path: str, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


class FileRepository:
    """Repositório de arquivos ingeridos."""

    def __init__(self, session_factory: sessionmaker, logger: Optional[logging.Logger] = None):
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)

    def get_by_id(self, file_id: str) -> ReceiptFile:
        session = self.session_factory()
        try:
            receipt_file = session.get(ReceiptFile, file_id)
        finally:
            session.close()
        if receipt_file is None:
            raise RecordNotFoundError(f"arquivo não encontrado: {file_id}")
        return receipt_file

    def create(self, profile_id: str, source_path: str) -> ReceiptFile:
        """
        Registra um arquivo local (hash SHA-256, tamanho e extensão).

        Se o mesmo conteúdo já estiver registrado para o perfil, devolve o registro existente.
        """
        path = os.path.abspath(source_path)
        content_hash = sha256_file(path)

        session = self.session_factory()
        try:
            existing = session.query(ReceiptFile).filter_by(profile_id=profile_id, content_hash=content_hash).first()
            if existing is not None:
                self.logger.info(f"Arquivo já registrado: {os.path.basename(path)} ({existing.id})")
                return existing

            receipt_file = ReceiptFile(
                profile_id=profile_id,
                source_path=path,
                filename=os.path.basename(path),
                file_ext=FileFormat.normalize_ext(path),
                file_size=os.path.getsize(path),
                content_hash=content_hash,
            )
            session.add(receipt_file)
            session.commit()
            self.logger.info(f"📥 Arquivo registrado: {receipt_file.filename} ({receipt_file.id})")
            return receipt_file
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"falha ao registrar arquivo {path}: {e}") from e
        finally:
            session.close()
