"""
Execução de ferramentas externas (pdftotext, pdftoppm, tesseract, conversores HEIC).
"""

import logging
import subprocess
import time
from typing import List, Optional, Tuple

from services.errors import ExternalToolError, JobTimeoutError

STDERR_LOG_LIMIT = 8 * 1024


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


def remaining_seconds(deadline: Optional[float]) -> Optional[float]:
    """Tempo restante até o prazo monotônico (None = sem prazo)."""
    if deadline is None:
        return None
    return deadline - time.monotonic()


class CommandRunner:
    """Executa comandos externos respeitando o prazo do job."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def run(self, args: List[str], deadline: Optional[float] = None) -> Tuple[bytes, bytes]:
        """
        Executa o comando e devolve (stdout, stderr).

        Args:
            args: Comando e argumentos
            deadline: Prazo monotônico (time.monotonic()) do job

        Returns:
            Tupla (stdout, stderr) em bytes

        Raises:
            JobTimeoutError: Prazo expirado antes ou durante a execução
            ExternalToolError: Binário ausente ou código de saída diferente de zero
        """
        timeout = remaining_seconds(deadline)
        if timeout is not None and timeout <= 0:
            raise JobTimeoutError(f"prazo do job expirado antes de executar {args[0]}", command=args)

        self.logger.debug(f"Executando comando: {' '.join(args)}")
        start = time.monotonic()
        try:
            completed = subprocess.run(args, capture_output=True, timeout=timeout, check=False)
        except FileNotFoundError as e:
            self.logger.error(f"❌ Binário não encontrado: {args[0]}")
            raise ExternalToolError(f"binário não encontrado: {args[0]}", command=args) from e
        except subprocess.TimeoutExpired as e:
            self.logger.error(f"⏱️ Tempo esgotado em {args[0]} após {time.monotonic() - start:.1f}s")
            raise JobTimeoutError(f"tempo esgotado executando {args[0]}", command=args) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        stderr_text = completed.stderr.decode("utf-8", errors="replace")

        if completed.returncode != 0:
            self.logger.error(
                f"❌ Falha em {args[0]} (exit={completed.returncode}, {duration_ms}ms): "
                f"{truncate(stderr_text, STDERR_LOG_LIMIT)}"
            )
            raise ExternalToolError(
                f"{args[0]} saiu com código {completed.returncode}: {truncate(stderr_text.strip(), 500)}",
                command=args,
                stderr=stderr_text,
            )

        self.logger.debug(
            f"Comando ok: {args[0]} ({duration_ms}ms, stdout={len(completed.stdout)}B, stderr={len(completed.stderr)}B)"
        )
        return completed.stdout, completed.stderr
