"""
Serviço para comunicação com a API de chat completions (OpenAI ou compatível).
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import requests

from config import LLMSettings
from services.command_runner import remaining_seconds
from services.errors import JobTimeoutError, TransportError


class LLMService:
    """Cliente HTTP mínimo para chat completions com saída JSON."""

    def __init__(
        self,
        settings: LLMSettings,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def _timeout(self, deadline: Optional[float]) -> float:
        remaining = remaining_seconds(deadline)
        if remaining is None:
            return self.settings.timeout
        if remaining <= 0:
            raise JobTimeoutError("prazo do job expirado antes da chamada à LLM")
        return min(self.settings.timeout, remaining)

    def chat_json(self, messages: List[Dict[str, Any]], deadline: Optional[float] = None) -> str:
        """
        Envia as mensagens pedindo resposta em JSON e devolve o conteúdo da primeira escolha.

        Args:
            messages: Mensagens no formato chat completions
            deadline: Prazo monotônico do job

        Returns:
            Conteúdo (texto JSON) de choices[0].message.content

        Raises:
            TransportError: Falha de rede, status não-2xx, envelope inválido ou sem escolhas
        """
        if not self.settings.api_key:
            raise TransportError("OPENAI_API_KEY não configurada")

        request_id = uuid.uuid4().hex[:12]
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        data = {
            "model": self.settings.model,
            "temperature": self.settings.temperature,
            "response_format": {"type": "json_object"},
            "messages": messages,
        }
        url = f"{self.settings.base_url.rstrip('/')}/chat/completions"

        start = time.monotonic()
        try:
            response = self.session.post(url, headers=headers, json=data, timeout=self._timeout(deadline))
        except requests.RequestException as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            self.logger.error(f"❌ [{request_id}] Erro de transporte na LLM após {elapsed_ms}ms: {e}")
            raise TransportError(f"falha de transporte na LLM: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        body = response.content or b""

        if not 200 <= response.status_code < 300:
            self.logger.error(
                f"❌ [{request_id}] LLM respondeu {response.status_code} em {elapsed_ms}ms: {body[:500]!r}"
            )
            # corpo de erro HTTP não é saída do modelo: fica só no log e na mensagem
            raise TransportError(
                f"Erro OpenAI API: {response.status_code}: {body[:200].decode('utf-8', errors='replace')}",
                status_code=response.status_code,
            )

        try:
            envelope = json.loads(body)
            choices = envelope.get("choices") or []
            content = ((choices[0].get("message") or {}).get("content") or "") if choices else ""
        except (ValueError, AttributeError, TypeError) as e:
            self.logger.error(f"❌ [{request_id}] Envelope inválido da LLM ({elapsed_ms}ms): {e}")
            raise TransportError("envelope inválido da LLM", status_code=response.status_code) from e

        if not choices:
            self.logger.error(f"❌ [{request_id}] LLM sem escolhas ({elapsed_ms}ms)")
            raise TransportError("LLM não retornou escolhas", status_code=response.status_code)

        self.logger.info(
            f"🤖 [{request_id}] LLM ok: modelo={self.settings.model} status={response.status_code} "
            f"{elapsed_ms}ms req={len(json.dumps(data))}B resp={len(body)}B"
        )
        return content
