"""
Exceções do pipeline de extração de recibos.
"""

from typing import Optional


class PipelineError(Exception):
    """Erro base do pipeline; carrega o job e a saída bruta quando existirem."""

    def __init__(self, message: str, job_id: Optional[str] = None, raw_content: Optional[bytes] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.raw_content = raw_content


class UnsupportedFormatError(PipelineError):
    """Extensão de arquivo não reconhecida."""


class ExternalToolError(PipelineError):
    """Falha de ferramenta externa (pdftotext, pdftoppm, tesseract, conversor HEIC)."""

    def __init__(self, message: str, command: Optional[list] = None, stderr: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.command = command or []
        self.stderr = stderr


class JobTimeoutError(ExternalToolError):
    """Prazo do job expirou durante uma chamada externa."""


class SchemaValidationError(PipelineError):
    """Saída da LLM não respeita o schema mesmo após a sanitização."""


class TransportError(PipelineError):
    """Falha de rede, status não-2xx ou envelope inválido da API de inferência."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class PersistenceError(PipelineError):
    """Falha de escrita/leitura no banco."""


class RecordNotFoundError(PersistenceError):
    """Registro (arquivo, perfil, job) não encontrado."""


class InvalidTransitionError(PersistenceError):
    """Transição de status não permitida ou status concorrente divergente."""


class QueueClosedError(PipelineError):
    """Fila já foi encerrada; a requisição foi rejeitada."""
