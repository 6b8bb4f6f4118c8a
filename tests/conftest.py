"""
Fixtures compartilhadas: SQLite em memória, repositórios e dublês das ferramentas externas.
"""
import json

import pytest

from database import Base, build_engine, create_session_factory
import models  # noqa: F401
from models.extraction import ReceiptFields
from services.extraction_job_repository import ExtractionJobRepository
from services.field_extractor import FieldExtractor
from services.file_repository import FileRepository
from services.profile_repository import ProfileRepository
from services.receipt_repository import ReceiptRepository

# StaticPool: todas as conexões compartilham o mesmo banco em memória
_ENGINE = build_engine("sqlite://")
_Session = create_session_factory(_ENGINE)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def session_factory():
    return _Session


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def profiles(session_factory):
    return ProfileRepository(session_factory)


@pytest.fixture()
def files(session_factory):
    return FileRepository(session_factory)


@pytest.fixture()
def jobs(session_factory):
    return ExtractionJobRepository(session_factory)


@pytest.fixture()
def receipts(session_factory):
    return ReceiptRepository(session_factory)


@pytest.fixture()
def profile(profiles):
    return profiles.get_or_create_by_name(
        "Acme Consulting",
        job_title="Software Consultant",
        job_description="Builds web applications for clients",
        default_currency="USD",
    )


@pytest.fixture()
def make_file(tmp_path, files, profile):
    """Cria um arquivo no disco e registra no banco."""

    def _make(name, content=b"receipt"):
        path = tmp_path / name
        path.write_bytes(content)
        return files.create(profile.id, str(path))

    return _make


class FakeRunner:
    """Dublê do CommandRunner: registra chamadas e delega a resposta a um handler."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def run(self, args, deadline=None):
        self.calls.append(list(args))
        return self.handler(list(args))

    def programs(self):
        return [call[0] for call in self.calls]


@pytest.fixture()
def fake_runner():
    return FakeRunner


class FakeFieldExtractor(FieldExtractor):
    """Extrator de campos que devolve um documento fixo ou levanta um erro."""

    model_name = "fake-model"

    def __init__(self, payload=None, error=None, adjustments=None):
        self.payload = payload
        self.error = error
        self.adjustments = adjustments or []
        self.requests = []

    def extract_fields(self, request, deadline=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        fields = ReceiptFields.model_validate(self.payload)
        fields.adjustments.extend(self.adjustments)
        return fields, json.dumps(self.payload).encode("utf-8")

    def model_params(self):
        return {"temperature": 0}


@pytest.fixture()
def fake_field_extractor():
    return FakeFieldExtractor


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=None):
        self.status_code = status_code
        if content is None:
            content = json.dumps(payload if payload is not None else {}).encode("utf-8")
        self.content = content


class FakeSession:
    """Dublê de requests.Session que devolve respostas enfileiradas."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def fake_session():
    return FakeSession


@pytest.fixture()
def chat_response():
    """Monta uma resposta de chat completions com o conteúdo informado."""

    def _make(content, status_code=200):
        if not isinstance(content, str):
            content = json.dumps(content)
        return FakeResponse(status_code, {"choices": [{"message": {"role": "assistant", "content": content}}]})

    return _make


@pytest.fixture()
def fake_response():
    return FakeResponse


@pytest.fixture()
def valid_fields():
    return {
        "merchant_name": "Blue Bottle Coffee",
        "tx_date": "2024-03-14",
        "subtotal": "12.00",
        "tax": "1.08",
        "tip": "2.00",
        "total": "15.08",
        "currency_code": "USD",
        "category": "Meals",
        "payment_method": "VISA",
        "payment_last4": "4242",
        "description": "Coffee meeting with client to discuss project scope",
        "confidence": 0.92,
    }
