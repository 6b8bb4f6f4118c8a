"""
Conversão HEIC/HEIF -> PNG com cache por hash de conteúdo.
"""

import logging
import os
import shutil
import tempfile
from typing import Callable, List, Optional, Tuple

from config import HEIC_CONVERTERS
from services.command_runner import CommandRunner
from services.errors import ExternalToolError

Cleanup = Optional[Callable[[], None]]


def cached_png_path(cache_dir: str, content_hash_hex: str) -> str:
    """Caminho do PNG convertido no cache: {cache_dir}/{hash}.png"""
    return os.path.join(cache_dir, f"{content_hash_hex}.png")


def converter_command(converter: str, source: str, target: str) -> List[str]:
    if converter == "heif-convert":
        return ["heif-convert", source, target]
    if converter == "magick":
        return ["magick", source, target]
    if converter == "sips":
        return ["sips", "-s", "format", "png", source, "--out", target]
    raise ExternalToolError(
        f"HEIC não suportado: conversor '{converter}' desconhecido (use {' | '.join(HEIC_CONVERTERS)})"
    )


class HEICConverter:
    """Converte HEIC/HEIF para PNG usando heif-convert, magick ou sips."""

    def __init__(self, converter: str, runner: CommandRunner, logger: Optional[logging.Logger] = None):
        self.converter = converter
        self.runner = runner
        self.logger = logger or logging.getLogger(__name__)

    def to_png(
        self,
        source: str,
        cache_dir: str = "",
        content_hash_hex: str = "",
        deadline: Optional[float] = None,
    ) -> Tuple[str, Cleanup]:
        """
        Converte o arquivo e devolve (caminho_png, cleanup).

        Com cache_dir e content_hash_hex o PNG é persistido (e reutilizado) em
        {cache_dir}/{hash}.png e cleanup é None. Sem eles o PNG fica num
        diretório temporário e cleanup o remove.

        Raises:
            ExternalToolError: Conversor desconhecido, falha ou saída ausente
        """
        use_cache = bool(cache_dir and content_hash_hex)
        if use_cache:
            cached = cached_png_path(cache_dir, content_hash_hex)
            if os.path.isfile(cached):
                self.logger.debug(f"Usando PNG em cache: {cached}")
                return cached, None
            os.makedirs(cache_dir, exist_ok=True)

        tmp_dir = tempfile.mkdtemp(prefix="rt-heic-")

        def cleanup() -> None:
            shutil.rmtree(tmp_dir, ignore_errors=True)

        out = os.path.join(tmp_dir, "page.png")
        try:
            self.runner.run(converter_command(self.converter, source, out), deadline=deadline)
        except ExternalToolError:
            cleanup()
            raise

        if not os.path.isfile(out):
            cleanup()
            raise ExternalToolError(f"conversão HEIC não gerou saída ({self.converter})")

        if not use_cache:
            return out, cleanup

        try:
            os.rename(out, cached)
        except OSError:
            # outro worker já gravou o mesmo conteúdo
            if os.path.isfile(cached):
                cleanup()
                self.logger.debug(f"PNG já presente no cache: {cached}")
                return cached, None
            try:
                shutil.copyfile(out, cached)
            finally:
                cleanup()
        else:
            cleanup()

        self.logger.debug(f"PNG gravado no cache: {cached}")
        return cached, None
