"""
Sincronización de letras con la reproducción.

Determina qué línea corresponde a la posición actual del audio:
- current_line_index(): función pura (líneas, tiempo) -> índice
- LineTracker: memoriza el último índice para el caso común de
  reproducción hacia adelante
- PlaybackFollower: consulta un reloj con QTimer, aplica el offset
  manual y notifica solo cuando cambia la línea (para auto-scroll)
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from PyQt6.QtCore import QTimer

from .clock import ClockEvent, PlaybackClock
from .lrc_parser import SyncedLine

logger = logging.getLogger(__name__)


def current_line_index(lines: Sequence[SyncedLine], t: float) -> int:
    """
    Índice i tal que lines[i].time <= t < lines[i+1].time.

    La última línea se extiende hasta +infinito.

    Returns:
        Índice de la línea actual, o -1 si t es anterior a la primera
        línea o no hay líneas.
    """
    for idx, line in enumerate(lines):
        next_time = lines[idx + 1].time if idx + 1 < len(lines) else math.inf
        if line.time <= t < next_time:
            return idx
    return -1


class LineTracker:
    """
    Selección de la línea actual con memoria del último resultado.

    Parte del último índice y avanza o retrocede desde ahí, así que con
    reproducción normal cada consulta es O(1) amortizado.
    """

    def __init__(self, lines: Sequence[SyncedLine] = ()):
        self._lines: list[SyncedLine] = list(lines)
        self._last_index: int = -1

    @property
    def lines(self) -> list[SyncedLine]:
        return self._lines

    @property
    def last_index(self) -> int:
        return self._last_index

    def set_lines(self, lines: Sequence[SyncedLine]) -> None:
        self._lines = list(lines)
        self._last_index = -1

    def locate(self, t: float) -> int:
        """Calcula el índice actual para el tiempo t (actualiza la memoria)."""
        lines = self._lines
        if not lines or t < lines[0].time:
            self._last_index = -1
            return -1

        idx = max(0, self._last_index)

        # Avanzar mientras la siguiente línea ya empezó
        while idx + 1 < len(lines) and lines[idx + 1].time <= t:
            idx += 1

        # Retroceder (seek hacia atrás)
        while idx > 0 and lines[idx].time > t:
            idx -= 1

        self._last_index = idx
        return idx

    def update(self, t: float) -> tuple[int, bool]:
        """
        Como locate(), pero indica además si el índice cambió.

        Returns:
            Tupla (índice, cambió)
        """
        previous = self._last_index
        idx = self.locate(t)
        return idx, idx != previous

    def line_status(self, index: int, current_index: Optional[int] = None) -> str:
        """Retorna "past", "current" o "future" para una línea."""
        current = self._last_index if current_index is None else current_index
        if index == current:
            return "current"
        if current >= 0 and index < current:
            return "past"
        return "future"

    def past_indices(self, t: float) -> list[int]:
        """Índices de las líneas que ya pasaron en el tiempo t."""
        idx = self.locate(t)
        return list(range(max(0, idx)))


@dataclass
class PlaybackState:
    """Estado actual de la sincronización durante la reproducción."""

    current_line_index: int
    current_line: Optional[SyncedLine]
    position: float  # segundos, sin offset
    is_playing: bool
    offset_ms: int


# Type alias para callbacks
OnLineChangedCallback = Callable[[PlaybackState], None]


class PlaybackFollower:
    """
    Sigue la reproducción y notifica la línea actual.

    Coordina un reloj de reproducción con las letras cargadas para
    determinar qué línea resaltar en cada momento.
    """

    MAX_OFFSET_MS = 10000  # ±10 segundos por defecto

    def __init__(
        self,
        clock: PlaybackClock,
        update_interval_ms: int = 50,
        max_offset_ms: int = MAX_OFFSET_MS,
    ):
        """
        Args:
            clock: Reloj de reproducción a consultar.
            update_interval_ms: Intervalo del timer de actualización.
            max_offset_ms: Límite del offset en ambos sentidos.
        """
        self.clock = clock
        self._max_offset_ms = abs(int(max_offset_ms))

        self._tracker = LineTracker()
        self._offset_ms: int = 0
        self._previous_offset_ms: int = 0

        # Control de loop con QTimer
        self._running: bool = False
        self._paused: bool = not clock.is_playing
        self._update_interval_ms: int = update_interval_ms
        self._timer: Optional[QTimer] = None

        self._on_line_changed: list[OnLineChangedCallback] = []

        clock.on_event(self._on_clock_event)

    # --- Letras ---

    def set_lines(self, lines: Sequence[SyncedLine], offset_ms: int = 0) -> None:
        """
        Establece las letras a seguir.

        Args:
            lines: Líneas ordenadas por tiempo.
            offset_ms: Offset inicial (por ejemplo del tag [offset:]).
        """
        self._tracker.set_lines(lines)
        self._offset_ms = self._clamp_offset(offset_ms)
        self._previous_offset_ms = self._offset_ms
        logger.info(f"Letras cargadas: {len(lines)} líneas, offset {self._offset_ms}ms")

    @property
    def lines(self) -> list[SyncedLine]:
        return self._tracker.lines

    @property
    def has_lines(self) -> bool:
        return bool(self._tracker.lines)

    @property
    def current_index(self) -> int:
        return self._tracker.last_index

    # --- Offset ---

    @property
    def offset_ms(self) -> int:
        return self._offset_ms

    def _clamp_offset(self, offset_ms: int) -> int:
        return max(-self._max_offset_ms, min(self._max_offset_ms, int(offset_ms)))

    def adjust_offset(self, delta_ms: int) -> int:
        """
        Ajusta el offset de sincronización.

        Args:
            delta_ms: Cambio en milisegundos (positivo = adelantar letras)

        Returns:
            Nuevo valor de offset.
        """
        self._previous_offset_ms = self._offset_ms
        self._offset_ms = self._clamp_offset(self._offset_ms + delta_ms)
        logger.info(f"Offset ajustado: {self._offset_ms}ms")
        self.refresh(force=True)
        return self._offset_ms

    def reset_offset(self) -> None:
        """Reinicia el offset a 0."""
        self._previous_offset_ms = self._offset_ms
        self._offset_ms = 0
        logger.info("Offset reiniciado a 0")
        self.refresh(force=True)

    def undo_offset(self) -> int:
        """Restaura el offset anterior."""
        self._offset_ms, self._previous_offset_ms = (
            self._previous_offset_ms,
            self._offset_ms,
        )
        logger.info(f"Offset restaurado: {self._offset_ms}ms")
        self.refresh(force=True)
        return self._offset_ms

    # --- Actualización ---

    def refresh(self, force: bool = False) -> Optional[PlaybackState]:
        """
        Recalcula la línea actual con la posición del reloj.

        Args:
            force: Notificar aunque la línea no haya cambiado.

        Returns:
            PlaybackState si se notificó, None si no hubo cambio.
        """
        if not self.has_lines:
            return None

        position = self.clock.current_time
        adjusted = position + self._offset_ms / 1000.0
        idx, changed = self._tracker.update(adjusted)

        if not changed and not force:
            return None

        state = PlaybackState(
            current_line_index=idx,
            current_line=self._tracker.lines[idx] if idx >= 0 else None,
            position=position,
            is_playing=self.clock.is_playing,
            offset_ms=self._offset_ms,
        )
        self._notify(state)
        return state

    def seek_to_line(self, line_index: int) -> None:
        """Mueve la reproducción al inicio de una línea."""
        lines = self._tracker.lines
        if not 0 <= line_index < len(lines):
            return

        target = max(0.0, lines[line_index].time - self._offset_ms / 1000.0)
        self.clock.seek(target)
        self.refresh(force=True)

    def get_context_lines(
        self, before: int = 2, after: int = 2
    ) -> list[tuple[int, SyncedLine]]:
        """
        Obtiene líneas de contexto alrededor de la línea actual.

        Returns:
            Lista de tuplas (índice_relativo, SyncedLine), 0 para la actual.
        """
        current = self._tracker.last_index
        lines = self._tracker.lines
        if current < 0:
            return []

        start_idx = max(0, current - before)
        end_idx = min(len(lines), current + after + 1)
        return [(idx - current, lines[idx]) for idx in range(start_idx, end_idx)]

    def get_progress(self) -> tuple[int, int]:
        """
        Progreso actual (línea actual / total).

        Returns:
            Tupla (línea_actual, total_líneas)
        """
        return max(0, self._tracker.last_index + 1), len(self._tracker.lines)

    # --- Control del loop ---

    def start(self) -> None:
        """Inicia el loop de seguimiento usando QTimer."""
        if self._running:
            return

        self._running = True
        self._timer = QTimer()
        self._timer.timeout.connect(self._on_timer_tick)
        self._timer.start(self._update_interval_ms)
        logger.info("PlaybackFollower iniciado")

    def stop(self) -> None:
        """Detiene el loop de seguimiento."""
        self._running = False
        if self._timer:
            self._timer.stop()
            self._timer = None
        logger.info("PlaybackFollower detenido")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    def _on_timer_tick(self) -> None:
        """Callback del timer - actualiza la línea actual."""
        if not self._running or self._paused:
            return
        self.refresh()

    def _on_clock_event(self, event: ClockEvent, position: float) -> None:
        if event == ClockEvent.PLAY:
            self._paused = False
            logger.debug("Seguimiento reanudado")
        elif event in (ClockEvent.PAUSE, ClockEvent.ENDED, ClockEvent.ERROR):
            self._paused = True
            logger.debug(f"Seguimiento pausado ({event.value})")
        elif event == ClockEvent.TIME_UPDATE and self._paused:
            # Seek con el audio pausado: reflejarlo igualmente
            self.refresh()

    # --- Callbacks públicos ---

    def on_line_changed(self, callback: OnLineChangedCallback) -> None:
        """Registra callback para cambios de línea."""
        self._on_line_changed.append(callback)

    def _notify(self, state: PlaybackState) -> None:
        for callback in self._on_line_changed:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error en callback on_line_changed: {e}")
