"""
Fila de processamento com pool fixo de workers, prazo por job e backpressure.
"""

import logging
import queue
import threading
import time
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from services.errors import QueueClosedError
from services.receipt_processor import ReceiptProcessor

_STOP = object()

# intervalo para o produtor bloqueado rechecar se a fila foi encerrada
ENQUEUE_POLL_SECONDS = 0.1


class ProcessRequest(BaseModel):
    """
    Pedido de processamento de um arquivo.

    force marca um arquivo que a ingestão deduplicou mas deve ser reprocessado.
    A fila nunca descarta pedidos por já existir recibo: cada pedido gera um novo
    job e uma nova versão, então force só é registrado no log.
    """

    file_id: str
    force: bool = False
    submitted_at: datetime = Field(default_factory=datetime.utcnow)


class ProcessorQueue:
    """Pool de workers consumindo uma fila limitada de ProcessRequest."""

    def __init__(
        self,
        processor: ReceiptProcessor,
        workers: int = 4,
        queue_size: int = 256,
        job_timeout: float = 180.0,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Inicializa a fila e já sobe os workers.

        Args:
            processor: Orquestrador chamado para cada arquivo
            workers: Número de workers (threads)
            queue_size: Capacidade da fila
            job_timeout: Prazo por job em segundos
            logger: Logger (opcional)
        """
        self.processor = processor
        self.workers = workers if workers > 0 else 4
        self.job_timeout = job_timeout if job_timeout > 0 else 180.0
        self.logger = logger or logging.getLogger(__name__)

        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_size if queue_size > 0 else 256)
        self._lock = threading.Lock()
        self._producers_done = threading.Condition(self._lock)
        self._waiting_producers = 0
        self._closed = False
        self._stats_lock = threading.Lock()
        self._stats = {"submitted": 0, "succeeded": 0, "failed": 0}

        self._threads: List[threading.Thread] = []
        for worker_id in range(1, self.workers + 1):
            thread = threading.Thread(
                target=self._worker,
                args=(worker_id,),
                name=f"receipt-worker-{worker_id}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, request: ProcessRequest) -> None:
        """
        Enfileira um pedido; bloqueia se a fila estiver cheia.

        A espera por espaço acontece fora do lock e é interrompida pelo shutdown.

        Raises:
            QueueClosedError: A fila já foi encerrada (antes ou durante a espera)
        """
        with self._lock:
            if self._closed:
                self.logger.warning(f"⚠️ Fila encerrada, pedido rejeitado: {request.file_id}")
                raise QueueClosedError(f"fila encerrada; arquivo {request.file_id} não foi aceito")
            try:
                self._queue.put_nowait(request)
            except queue.Full:
                self._waiting_producers += 1
            else:
                self._count("submitted")
                self.logger.info(f"📥 Arquivo {request.file_id} enfileirado (force={request.force})")
                return

        self.logger.warning(f"⚠️ Fila cheia, aplicando backpressure: {request.file_id}")
        try:
            while True:
                try:
                    self._queue.put(request, timeout=ENQUEUE_POLL_SECONDS)
                    break
                except queue.Full:
                    if self._closed:
                        self.logger.warning(f"⚠️ Fila encerrada durante a espera, pedido rejeitado: {request.file_id}")
                        raise QueueClosedError(f"fila encerrada; arquivo {request.file_id} não foi aceito")
            self._count("submitted")
        finally:
            with self._producers_done:
                self._waiting_producers -= 1
                self._producers_done.notify_all()
        self.logger.info(f"📥 Arquivo {request.file_id} enfileirado (force={request.force})")

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Encerra a fila e espera os workers drenarem os pedidos pendentes.

        Args:
            timeout: Tempo máximo de espera em segundos (None = sem limite)

        Returns:
            True se a fila foi drenada; False se a espera foi abandonada
        """
        with self._lock:
            first_call = not self._closed
            self._closed = True

        if first_call:
            # sentinelas entram numa thread à parte para não travar com a fila cheia
            feeder = threading.Thread(target=self._feed_stop_signals, name="receipt-queue-stop", daemon=True)
            feeder.start()

        end = None if timeout is None else time.monotonic() + timeout
        for thread in self._threads:
            remaining = None if end is None else max(0.0, end - time.monotonic())
            thread.join(remaining)

        drained = not any(thread.is_alive() for thread in self._threads)
        if drained:
            self.logger.info("🛑 Fila drenada, shutdown concluído")
        else:
            self.logger.warning("⚠️ Shutdown interrompido pelo timeout; workers seguem até o prazo de cada job")
        return drained

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            stats = dict(self._stats)
        stats["pending"] = self._queue.qsize()
        return stats

    def _feed_stop_signals(self) -> None:
        # sentinelas só depois dos produtores em espera: nenhum pedido aceito fica atrás delas
        with self._producers_done:
            while self._waiting_producers:
                self._producers_done.wait()
        for _ in self._threads:
            self._queue.put(_STOP)

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def _worker(self, worker_id: int) -> None:
        self.logger.info(f"Worker {worker_id} iniciado")
        while True:
            request = self._queue.get()
            try:
                if request is _STOP:
                    break
                self._handle(worker_id, request)
            finally:
                self._queue.task_done()
        self.logger.info(f"Worker {worker_id} parado")

    def _handle(self, worker_id: int, request: ProcessRequest) -> None:
        start = time.monotonic()
        deadline = start + self.job_timeout
        try:
            job_id = self.processor.process_file(request.file_id, deadline=deadline)
        except Exception as e:
            self._count("failed")
            self.logger.error(
                f"❌ Worker {worker_id}: falha ao processar {request.file_id} "
                f"({time.monotonic() - start:.2f}s): {e}"
            )
            return
        self._count("succeeded")
        self.logger.info(
            f"✅ Worker {worker_id}: arquivo {request.file_id} processado (job {job_id}, "
            f"{time.monotonic() - start:.2f}s)"
        )
