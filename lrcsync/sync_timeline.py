"""
Timeline de sincronización por taps (tap-to-sync).

El usuario escucha la canción y pulsa una tecla cada vez que empieza
una línea. Cada tap escribe la posición actual del reloj en la
"línea activa": la primera línea (por posición en la lista) que aún
no tiene timestamp.

Estados:
    IDLE -> LYRICS_ENTERED -> SYNCING <-> FULLY_SYNCED -> REVIEW -> COMMITTED

- Un timestamp 0.0 significa "sin sincronizar".
- Cada operación que modifica timestamps guarda antes una copia completa
  del vector en el historial; undo() restaura exactamente una copia.
- resync_line() es la única forma de retocar una línea fuera del orden
  de captura.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .clock import PlaybackClock
from .exceptions import IncompleteTimelineError, TimelineStateError, ValidationError
from .lrc_parser import LRCParser, LrcMetadata, SyncedLine
from .timecode import format_tag

logger = logging.getLogger(__name__)


class TimelineState(Enum):
    """Estado del timeline de sincronización."""

    IDLE = "idle"
    LYRICS_ENTERED = "lyrics_entered"
    SYNCING = "syncing"
    FULLY_SYNCED = "fully_synced"
    REVIEW = "review"
    COMMITTED = "committed"


# Estados en los que se pueden modificar timestamps
_EDITABLE_STATES = (TimelineState.SYNCING, TimelineState.FULLY_SYNCED)


@dataclass(frozen=True)
class TimelineSnapshot:
    """Vista inmutable del timeline, enviada a los listeners tras cada cambio."""

    state: TimelineState
    active_index: int  # -1 si no hay línea pendiente
    synced_count: int
    total_lines: int
    current_time: float
    can_undo: bool
    timestamps: tuple[float, ...]


@dataclass(frozen=True)
class TimelineRow:
    """Una fila para mostrar en la interfaz de sincronización."""

    index: int
    text: str
    time: float
    synced: bool
    active: bool

    @property
    def tag(self) -> Optional[str]:
        """Time-code "[mm:ss.cc]" o None si la línea no está sincronizada."""
        return format_tag(self.time) if self.synced else None


@dataclass(frozen=True)
class TimelineResult:
    """Resultado de confirmar el timeline."""

    lrc: str
    lines: list[SyncedLine]


OnTimelineChangedCallback = Callable[[TimelineSnapshot], None]


class SyncTimeline:
    """
    Máquina de estados de captura de timestamps.

    Se usa una instancia por sesión de edición; después de commit()
    la instancia queda en estado terminal.
    """

    DEFAULT_NUDGE_STEP = 0.1  # segundos

    def __init__(
        self,
        clock: Optional[PlaybackClock] = None,
        nudge_step: float = DEFAULT_NUDGE_STEP,
    ):
        """
        Args:
            clock: Reloj de reproducción a muestrear en cada tap. Si es None,
                se usa la última posición recibida con update_time().
            nudge_step: Paso por defecto de nudge_line().
        """
        self._clock = clock
        self.nudge_step = nudge_step

        self._state: TimelineState = TimelineState.IDLE
        self._raw_text: str = ""
        self._lines: tuple[str, ...] = ()
        self._timestamps: list[float] = []
        self._history: list[list[float]] = []
        self._current_time: float = 0.0

        self._on_changed: list[OnTimelineChangedCallback] = []

    # --- Propiedades ---

    @property
    def state(self) -> TimelineState:
        return self._state

    @property
    def lines(self) -> tuple[str, ...]:
        return self._lines

    @property
    def lyrics_text(self) -> str:
        return self._raw_text

    @property
    def timestamps(self) -> list[float]:
        """Copia del vector de timestamps (0.0 = sin sincronizar)."""
        return list(self._timestamps)

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def active_index(self) -> int:
        """Índice de la primera línea sin timestamp, o -1 si todas están sincronizadas."""
        if self._state not in _EDITABLE_STATES:
            return -1
        for idx, ts in enumerate(self._timestamps):
            if ts <= 0:
                return idx
        return -1

    @property
    def synced_count(self) -> int:
        return sum(1 for ts in self._timestamps if ts > 0)

    @property
    def is_fully_synced(self) -> bool:
        return bool(self._timestamps) and all(ts > 0 for ts in self._timestamps)

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def can_commit(self) -> bool:
        return (
            self._state in (TimelineState.FULLY_SYNCED, TimelineState.REVIEW)
            and self.is_fully_synced
        )

    def is_line_synced(self, index: int) -> bool:
        self._check_index(index)
        return self._timestamps[index] > 0

    # --- Transiciones ---

    def set_lyrics(self, text: str) -> None:
        """
        Carga la letra a sincronizar (una línea por verso).

        Las líneas vacías se descartan. Descarta cualquier timestamp previo.

        Raises:
            ValidationError: Si la letra no tiene ninguna línea.
            TimelineStateError: Si el timeline ya fue confirmado.
        """
        self._ensure_not_committed()

        lines = tuple(line.strip() for line in text.splitlines() if line.strip())
        if not lines:
            raise ValidationError("La letra está vacía")

        self._raw_text = text
        self._lines = lines
        self._timestamps = []
        self._history = []
        self._state = TimelineState.LYRICS_ENTERED
        logger.info(f"Letra cargada: {len(lines)} líneas")
        self._notify()

    def edit_lyrics(self) -> None:
        """Vuelve a la edición de la letra, descartando la sincronización en curso."""
        self._ensure_not_committed()
        if not self._lines:
            raise TimelineStateError("No hay letra cargada")

        self._timestamps = []
        self._history = []
        self._state = TimelineState.LYRICS_ENTERED
        self._notify()

    def start(self) -> None:
        """Inicia la captura: todos los timestamps a 0 e historial vacío."""
        if self._state != TimelineState.LYRICS_ENTERED:
            raise TimelineStateError(f"No se puede iniciar desde el estado {self._state.value}")

        self._timestamps = [0.0] * len(self._lines)
        self._history = []
        self._state = TimelineState.SYNCING
        logger.info("Sincronización iniciada")
        self._notify()

    def cancel(self) -> None:
        """Abandona la sincronización sin guardar nada."""
        if self._state in _EDITABLE_STATES or self._state == TimelineState.REVIEW:
            self._timestamps = []
            self._history = []
            self._state = TimelineState.LYRICS_ENTERED
            logger.info("Sincronización cancelada")
            self._notify()

    def review(self) -> None:
        """Pasa a revisión una vez que todas las líneas están sincronizadas."""
        if self._state != TimelineState.FULLY_SYNCED:
            raise TimelineStateError("Solo se puede revisar un timeline completo")
        self._state = TimelineState.REVIEW
        self._notify()

    def resume(self) -> None:
        """Vuelve a la captura desde la revisión para seguir ajustando."""
        if self._state not in (TimelineState.REVIEW, TimelineState.FULLY_SYNCED):
            raise TimelineStateError(f"No se puede reanudar desde el estado {self._state.value}")
        self._state = TimelineState.SYNCING
        self._refresh_sync_state()
        self._notify()

    def commit(self, metadata: Optional[LrcMetadata] = None) -> TimelineResult:
        """
        Confirma el timeline y genera el LRC final.

        Las líneas se emiten en el orden original de la letra.

        Raises:
            IncompleteTimelineError: Si alguna línea no tiene timestamp.
            TimelineStateError: Si no se está sincronizando/revisando.
        """
        if self._state == TimelineState.SYNCING:
            raise IncompleteTimelineError(
                f"Faltan {len(self._lines) - self.synced_count} líneas por sincronizar"
            )
        if not self.can_commit:
            raise TimelineStateError(f"No se puede confirmar desde el estado {self._state.value}")

        synced = self.to_synced_lines()
        lrc = LRCParser.generate(synced, metadata)

        self._state = TimelineState.COMMITTED
        self._history = []
        logger.info(f"Timeline confirmado: {len(synced)} líneas")
        self._notify()

        return TimelineResult(lrc=lrc, lines=synced)

    # --- Reloj ---

    def attach_clock(self, clock: Optional[PlaybackClock]) -> None:
        self._clock = clock

    def update_time(self, seconds: float) -> None:
        """Registra la última posición del reloj (tick de reproducción)."""
        self._current_time = max(0.0, seconds)

    def _sample_time(self, at: Optional[float]) -> float:
        """Lee el tiempo una sola vez para la operación en curso."""
        if at is None:
            at = self._clock.current_time if self._clock is not None else self._current_time
        at = max(0.0, float(at))
        self._current_time = at
        return at

    # --- Edición de timestamps ---

    def tap(self, at: Optional[float] = None) -> Optional[int]:
        """
        Asigna la posición actual a la línea activa.

        Args:
            at: Tiempo explícito del tap; por defecto se muestrea el reloj.

        Returns:
            Índice de la línea sincronizada, o None si no hay línea activa
            o el tiempo muestreado es 0.0.
        """
        self._ensure_editable()

        index = self.active_index
        if index < 0:
            logger.debug("Tap ignorado: todas las líneas están sincronizadas")
            return None

        time = self._sample_time(at)
        if time <= 0:
            # 0.0 es "sin sincronizar": el tap no cambiaría nada
            logger.debug(f"Tap ignorado en 0.0: la línea {index} sigue activa")
            return None

        self._push_history()
        self._timestamps[index] = time
        logger.debug(f"Tap: línea {index} -> {format_tag(time)}")

        self._after_edit()
        return index

    def undo(self) -> bool:
        """
        Deshace la última operación restaurando el vector completo.

        Returns:
            True si había algo que deshacer.
        """
        self._ensure_editable()

        if not self._history:
            return False

        self._timestamps = self._history.pop()
        logger.debug("Undo: timestamps restaurados")
        self._after_edit()
        return True

    def resync_line(self, index: int, at: Optional[float] = None) -> None:
        """
        Vuelve a sincronizar una línea ya sincronizada con el tiempo actual.

        Raises:
            IndexError: Si el índice no existe.
            ValueError: Si la línea todavía no está sincronizada.
        """
        self._ensure_editable()
        self._check_index(index)
        if self._timestamps[index] <= 0:
            raise ValueError(f"La línea {index} aún no está sincronizada")

        time = self._sample_time(at)
        self._push_history()
        self._timestamps[index] = time
        logger.debug(f"Re-sync: línea {index} -> {format_tag(time)}")
        self._after_edit()

    def clear_line(self, index: int) -> None:
        """Borra el timestamp de una línea; la captura se reanuda desde ahí si es anterior."""
        self._ensure_editable()
        self._check_index(index)

        self._push_history()
        self._timestamps[index] = 0.0
        logger.debug(f"Línea {index} borrada")
        self._after_edit()

    def clear_all(self) -> None:
        """Borra todos los timestamps (se puede deshacer)."""
        self._ensure_editable()

        self._push_history()
        self._timestamps = [0.0] * len(self._lines)
        logger.info("Todos los timestamps borrados")
        self._after_edit()

    def adjust_line(self, index: int, delta: float) -> float:
        """
        Ajusta el timestamp de una línea sincronizada en `delta` segundos.

        El resultado nunca es negativo (max(0, t + delta)).

        Raises:
            IndexError: Si el índice no existe.
            ValueError: Si la línea todavía no está sincronizada.

        Returns:
            Nuevo timestamp de la línea.
        """
        self._ensure_editable()
        self._check_index(index)
        if self._timestamps[index] <= 0:
            raise ValueError(f"La línea {index} aún no está sincronizada")

        self._push_history()
        self._timestamps[index] = max(0.0, self._timestamps[index] + delta)
        logger.debug(f"Ajuste: línea {index} {delta:+.2f}s -> {format_tag(self._timestamps[index])}")
        self._after_edit()
        return self._timestamps[index]

    def nudge_line(self, index: int, direction: int = 1) -> float:
        """Ajuste fino de ±nudge_step segundos."""
        step = self.nudge_step if direction >= 0 else -self.nudge_step
        return self.adjust_line(index, step)

    def last_synced_index(self) -> int:
        """Índice de la última línea (por posición) con timestamp, o -1."""
        for idx in range(len(self._timestamps) - 1, -1, -1):
            if self._timestamps[idx] > 0:
                return idx
        return -1

    # --- Consultas ---

    def highlighted_index(self, current_time: Optional[float] = None) -> int:
        """
        Línea a resaltar durante la captura.

        Es la última línea sincronizada cuyo tiempo ya pasó; si ninguna,
        la línea activa (o la primera si todas están sincronizadas).
        """
        if self._state not in _EDITABLE_STATES or not self._lines:
            return -1

        now = self._current_time if current_time is None else current_time

        last_timed = -1
        for idx, ts in enumerate(self._timestamps):
            if ts > 0 and now >= ts:
                last_timed = idx
        if last_timed >= 0:
            return last_timed

        active = self.active_index
        return active if active >= 0 else 0

    def to_synced_lines(self) -> list[SyncedLine]:
        """Líneas con su timestamp actual, en el orden de la letra."""
        return [
            SyncedLine(time=ts, text=text)
            for text, ts in zip(self._lines, self._timestamps)
        ]

    def rows(self) -> list[TimelineRow]:
        """Filas para mostrar la lista de líneas en la interfaz."""
        active = self.active_index
        timestamps = self._timestamps or [0.0] * len(self._lines)
        return [
            TimelineRow(index=idx, text=text, time=ts, synced=ts > 0, active=idx == active)
            for idx, (text, ts) in enumerate(zip(self._lines, timestamps))
        ]

    def snapshot(self) -> TimelineSnapshot:
        return TimelineSnapshot(
            state=self._state,
            active_index=self.active_index,
            synced_count=self.synced_count,
            total_lines=len(self._lines),
            current_time=self._current_time,
            can_undo=self.can_undo,
            timestamps=tuple(self._timestamps),
        )

    # --- Callbacks públicos ---

    def on_state_changed(self, callback: OnTimelineChangedCallback) -> None:
        """Registra callback para cambios del timeline."""
        self._on_changed.append(callback)

    # --- Helpers ---

    def _push_history(self) -> None:
        self._history.append(list(self._timestamps))

    def _after_edit(self) -> None:
        self._refresh_sync_state()
        self._notify()

    def _refresh_sync_state(self) -> None:
        """SYNCING <-> FULLY_SYNCED es automático."""
        if self._state not in _EDITABLE_STATES:
            return
        previous = self._state
        self._state = (
            TimelineState.FULLY_SYNCED if self.is_fully_synced else TimelineState.SYNCING
        )
        if previous != self._state and self._state == TimelineState.FULLY_SYNCED:
            logger.info("Todas las líneas sincronizadas")

    def _ensure_editable(self) -> None:
        if self._state not in _EDITABLE_STATES:
            raise TimelineStateError(
                f"Operación no permitida en el estado {self._state.value}"
            )

    def _ensure_not_committed(self) -> None:
        if self._state == TimelineState.COMMITTED:
            raise TimelineStateError("El timeline ya fue confirmado")

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._timestamps):
            raise IndexError(f"Línea fuera de rango: {index}")

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for callback in self._on_changed:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Error en callback on_state_changed: {e}")
