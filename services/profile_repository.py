"""
Acesso a perfis de negócio.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from models import Profile
from services.errors import PersistenceError, RecordNotFoundError


class ProfileRepository:
    """Repositório de perfis."""

    def __init__(self, session_factory: sessionmaker, logger: Optional[logging.Logger] = None):
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)

    def get_by_id(self, profile_id: str) -> Profile:
        session = self.session_factory()
        try:
            profile = session.get(Profile, profile_id)
        finally:
            session.close()
        if profile is None:
            raise RecordNotFoundError(f"perfil não encontrado: {profile_id}")
        return profile

    def get_or_create_by_name(
        self,
        name: str,
        job_title: str = "",
        job_description: str = "",
        default_currency: str = "USD",
    ) -> Profile:
        """Busca o perfil pelo nome; cria se não existir."""
        session = self.session_factory()
        try:
            profile = session.query(Profile).filter_by(name=name).first()
            if profile is not None:
                return profile
            profile = Profile(
                name=name,
                job_title=job_title,
                job_description=job_description,
                default_currency=(default_currency or "USD").upper(),
                created_at=datetime.utcnow(),
                updated_at=datetime.utcnow(),
            )
            session.add(profile)
            session.commit()
            self.logger.info(f"👤 Perfil criado: {name}")
            return profile
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"falha ao criar perfil {name}: {e}") from e
        finally:
            session.close()
