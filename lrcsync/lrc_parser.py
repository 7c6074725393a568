"""
Parser y generador para formato LRC (Lyrics)

Formato LRC estándar:
[mm:ss.xx] Línea de letra
[00:12.00] Primera línea
[00:17.20] Segunda línea

Una línea puede llevar varios time-codes para el mismo texto:
[00:12.00][00:48.00] Estribillo

Tags de metadatos (opcionales, se ignoran como contenido):
[ti:Título]
[ar:Artista]
[al:Álbum]
[by:Autor del LRC]
[offset:+/-ms]
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .exceptions import NoSyncedLinesError
from .timecode import find_timecodes, format_tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncedLine:
    """Una línea de letra anclada a una posición del audio."""

    time: float  # Segundos desde el inicio de la pista
    text: str

    def to_lrc(self) -> str:
        """Retorna la línea en formato "[mm:ss.cc]texto"."""
        return f"{format_tag(self.time)}{self.text}"

    def to_dict(self) -> dict:
        return {"time": self.time, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "SyncedLine":
        return cls(time=float(data["time"]), text=str(data.get("text", "")))

    def __str__(self) -> str:
        return self.to_lrc()


@dataclass
class LrcMetadata:
    """Metadatos de un archivo LRC."""

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    author: Optional[str] = None  # Tag [by:]
    offset_ms: int = 0  # Offset global en ms


class LRCParser:
    """Parser para archivos/strings en formato LRC."""

    # Tags de metadatos: [ti:...], [ar:...], [al:...], [by:...], [offset:...]
    METADATA_PATTERN = re.compile(r"^\[(ti|ar|al|by|offset):", re.IGNORECASE)

    # Tag con valor: [tag:valor]
    TAG_VALUE_PATTERN = re.compile(r"^\[([a-zA-Z]+):([^\]]*)\]")

    LINE_BREAK_PATTERN = re.compile(r"\r?\n")

    @classmethod
    def _content_lines(cls, lrc_content: str):
        """Itera las líneas útiles: recortadas, no vacías y sin tags de metadatos."""
        for raw in cls.LINE_BREAK_PATTERN.split(lrc_content):
            line = raw.strip()
            if not line:
                continue
            if cls.METADATA_PATTERN.match(line):
                continue
            yield line

    @staticmethod
    def _text_after_brackets(line: str) -> Optional[str]:
        """Texto después del último ']' o None si la línea no tiene corchetes."""
        last_close = line.rfind("]")
        if last_close == -1:
            return None
        return line[last_close + 1:].strip()

    @classmethod
    def parse(cls, lrc_content: str, expand_repeats: bool = False) -> list[SyncedLine]:
        """
        Parsea contenido LRC a una lista ordenada de líneas sincronizadas.

        Las líneas sin time-code válido se descartan sin error. Las líneas
        con texto vacío se conservan (representan una pausa).

        Args:
            lrc_content: String con contenido en formato LRC
            expand_repeats: Si True, una línea con varios time-codes genera
                una entrada por cada uno. Si False, solo se usa el primero.

        Returns:
            Lista de SyncedLine ordenada por tiempo (orden estable).
        """
        lines: list[SyncedLine] = []
        dropped = 0

        for line in cls._content_lines(lrc_content):
            timestamps = find_timecodes(line)
            if not timestamps:
                dropped += 1
                continue

            text = cls._text_after_brackets(line) or ""

            if expand_repeats:
                for ts in timestamps:
                    lines.append(SyncedLine(time=ts, text=text))
            else:
                lines.append(SyncedLine(time=timestamps[0], text=text))

        if dropped:
            logger.debug(f"LRC: {dropped} líneas descartadas sin time-code válido")

        # sort() es estable: líneas con el mismo tiempo conservan su orden
        lines.sort(key=lambda x: x.time)
        return lines

    @classmethod
    def parse_or_raise(cls, lrc_content: str, expand_repeats: bool = False) -> list[SyncedLine]:
        """
        Igual que parse(), pero un resultado vacío se reporta como error de validación.

        Raises:
            NoSyncedLinesError: Si no se detectó ninguna línea sincronizada.
        """
        lines = cls.parse(lrc_content, expand_repeats=expand_repeats)
        if not lines:
            raise NoSyncedLinesError()
        return lines

    @classmethod
    def parse_metadata(cls, lrc_content: str) -> LrcMetadata:
        """
        Lee los tags de metadatos del contenido LRC.

        Args:
            lrc_content: String con contenido en formato LRC

        Returns:
            LrcMetadata con los tags encontrados.
        """
        metadata = LrcMetadata()

        for raw in cls.LINE_BREAK_PATTERN.split(lrc_content):
            tag_match = cls.TAG_VALUE_PATTERN.match(raw.strip())
            if not tag_match:
                continue

            tag_name = tag_match.group(1).lower()
            tag_value = tag_match.group(2).strip()

            if tag_name == "ti":
                metadata.title = tag_value
            elif tag_name == "ar":
                metadata.artist = tag_value
            elif tag_name == "al":
                metadata.album = tag_value
            elif tag_name == "by":
                metadata.author = tag_value
            elif tag_name == "offset":
                try:
                    metadata.offset_ms = int(tag_value)
                except ValueError:
                    logger.debug(f"Offset LRC inválido ignorado: {tag_value!r}")

        return metadata

    @classmethod
    def generate(
        cls,
        lines: list[SyncedLine],
        metadata: Optional[LrcMetadata] = None,
    ) -> str:
        """
        Convierte líneas sincronizadas a formato LRC string.

        Las líneas se escriben en el orden recibido (no se reordenan).
        Solo se emiten los tags de título y artista.

        Args:
            lines: Líneas a serializar
            metadata: Metadatos opcionales

        Returns:
            String en formato LRC, con salto de línea tras cada línea.
        """
        out = []

        if metadata is not None:
            if metadata.title:
                out.append(f"[ti:{metadata.title}]\n")
            if metadata.artist:
                out.append(f"[ar:{metadata.artist}]\n")

        for line in lines:
            out.append(f"{line.to_lrc()}\n")

        return "".join(out)

    @classmethod
    def extract_plain_text(cls, lrc_content: str) -> str:
        """
        Extrae solo el texto de la letra, sin time-codes ni metadatos.

        A diferencia de parse(), no exige un time-code válido: basta con
        que la línea tenga al menos un ']'. Las líneas sin corchetes no se
        consideran letra.

        Returns:
            Texto plano, una línea de letra por línea.
        """
        plain = []

        for line in cls._content_lines(lrc_content):
            text = cls._text_after_brackets(line)
            if text:
                plain.append(text)

        return "\n".join(plain)


def parse_lrc(lrc_content: str, expand_repeats: bool = False) -> list[SyncedLine]:
    return LRCParser.parse(lrc_content, expand_repeats=expand_repeats)


def generate_lrc(lines: list[SyncedLine], metadata: Optional[LrcMetadata] = None) -> str:
    return LRCParser.generate(lines, metadata)


def extract_plain_lyrics(lrc_content: str) -> str:
    return LRCParser.extract_plain_text(lrc_content)


# Ejemplo de uso
if __name__ == "__main__":
    sample_lrc = """
[ti:Sample Song]
[ar:Sample Artist]
[offset:+500]

[00:12.00]This is the first line
[00:17.20]This is the second line
[00:22.50][01:02.50]Repeated chorus
[00:28.00]The song continues here
    """

    meta = LRCParser.parse_metadata(sample_lrc)
    print(f"Title: {meta.title}")
    print(f"Artist: {meta.artist}")
    print(f"Offset: {meta.offset_ms}ms")

    for synced in LRCParser.parse(sample_lrc, expand_repeats=True):
        print(f"  {synced}")

    print(LRCParser.generate(LRCParser.parse(sample_lrc), meta))
