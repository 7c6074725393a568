"""
Códec de time-codes LRC.

Convierte entre segundos (float) y la representación textual
usada por el formato LRC:

    [mm:ss.cc]   ->  minutos, segundos, centésimas

Al codificar siempre se trunca (floor) a centésimas. Al decodificar,
la parte fraccionaria se completa con ceros a la derecha hasta 3 dígitos
y se interpreta como milisegundos (".5" -> 500ms, ".05" -> 50ms).
"""

import math
import re
from typing import Optional

# [mm:ss] o [mm:ss.f] / [mm:ss.ff] / [mm:ss.fff]
TIMECODE_PATTERN = re.compile(r"\[(\d{1,2}):(\d{2})(?:\.(\d{1,3}))?\]")

# Uno o más time-codes consecutivos al inicio de una línea
LEADING_TIMECODES_PATTERN = re.compile(
    r"^(?:\[\d{1,2}:\d{2}(?:\.\d{1,3})?\]\s*)+"
)

# Tolerancia para errores de punto flotante (1.15 se guarda como 1.1499999...)
_CENTI_EPSILON = 1e-6


def _decode_match(match: re.Match) -> float:
    minutes = int(match.group(1))
    seconds = int(match.group(2))
    fraction = match.group(3) or "0"
    milliseconds = int(fraction.ljust(3, "0"))
    return minutes * 60 + seconds + milliseconds / 1000


def format_timecode(seconds: float) -> str:
    """
    Codifica segundos como "mm:ss.cc" (sin corchetes).

    Los minutos no tienen tope: 100 minutos o más producen un campo
    de 3 dígitos en vez de un error.

    Args:
        seconds: Posición en segundos (valores negativos se tratan como 0)

    Returns:
        String "mm:ss.cc"
    """
    total_centis = int(math.floor(max(0.0, seconds) * 100 + _CENTI_EPSILON))
    minutes = total_centis // 6000
    secs = (total_centis // 100) % 60
    centis = total_centis % 100
    return f"{minutes:02d}:{secs:02d}.{centis:02d}"


def format_tag(seconds: float) -> str:
    """Codifica segundos como time-code completo "[mm:ss.cc]"."""
    return f"[{format_timecode(seconds)}]"


def parse_timecode(text: str) -> Optional[float]:
    """
    Decodifica el primer time-code "[mm:ss.fff]" encontrado en el texto.

    Args:
        text: Texto que contiene el time-code entre corchetes

    Returns:
        Segundos como float, o None si no hay un time-code válido.
    """
    match = TIMECODE_PATTERN.search(text)
    if match is None:
        return None
    return _decode_match(match)


def find_timecodes(line: str) -> list[float]:
    """
    Decodifica todos los time-codes que encabezan una línea.

    "[00:01.00][00:05.00]palabra" -> [1.0, 5.0]

    Returns:
        Lista en el orden de aparición (vacía si la línea no empieza
        con un time-code válido).
    """
    prefix = LEADING_TIMECODES_PATTERN.match(line)
    if prefix is None:
        return []
    return [_decode_match(m) for m in TIMECODE_PATTERN.finditer(prefix.group(0))]


def format_clock(seconds: float) -> str:
    """Formato corto para mostrar: "m:ss"."""
    seconds = max(0.0, seconds)
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"
