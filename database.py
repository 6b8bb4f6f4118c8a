"""Inicialização do banco de dados (SQLite por padrão).

Define engine, SessionLocal e Base para uso com SQLAlchemy 2.x.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from config import config


class Base(DeclarativeBase):
    pass


def build_engine(url: str) -> Engine:
    """Cria um engine; bancos SQLite em memória compartilham uma única conexão."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    if url.startswith("sqlite"):
        # workers da fila usam a mesma engine em threads diferentes
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False, future=True)
    return create_engine(url, echo=False, future=True)


def create_session_factory(engine_: Engine) -> sessionmaker:
    # expire_on_commit=False para permitir acesso aos atributos após commit
    return sessionmaker(bind=engine_, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


engine = build_engine(config.DATABASE_URL)

SessionLocal = create_session_factory(engine)


def init_db(engine_: Optional[Engine] = None) -> None:
    """Cria as tabelas conforme modelos registrados em Base.metadata."""
    # Importações locais para registrar mapeamentos antes do create_all
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine_ or engine)
