"""
Relojes de reproducción.

El núcleo nunca maneja el tiempo por sí mismo: consulta la posición
actual de un reloj externo (el audio que se está reproduciendo) en cada
tick o en cada tap. Cualquier objeto que cumpla PlaybackClock sirve.

Implementaciones:
- ManualClock: posición controlada a mano (tests, modo sin audio)
- InterpolatedClock: estima la posición por tiempo transcurrido
- MediaPlayerClock (player.py): reproduce un archivo con QMediaPlayer
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class ClockEvent(Enum):
    """Notificaciones emitidas por un reloj."""

    PLAY = "play"
    PAUSE = "pause"
    TIME_UPDATE = "time_update"
    ENDED = "ended"
    ERROR = "error"


OnClockEventCallback = Callable[[ClockEvent, float], None]


@runtime_checkable
class PlaybackClock(Protocol):
    """Contrato mínimo de una fuente de tiempo de reproducción."""

    @property
    def current_time(self) -> float: ...

    @property
    def duration(self) -> float: ...

    @property
    def is_playing(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def on_event(self, callback: OnClockEventCallback) -> None: ...


class ClockEventSource:
    """Lista de callbacks compartida por los relojes."""

    def __init__(self):
        self._callbacks: list[OnClockEventCallback] = []

    def on_event(self, callback: OnClockEventCallback) -> None:
        """Registra callback para eventos de reproducción."""
        self._callbacks.append(callback)

    def _emit(self, event: ClockEvent, position: float) -> None:
        for callback in self._callbacks:
            try:
                callback(event, position)
            except Exception as e:
                logger.error(f"Error en callback de reloj ({event.value}): {e}")


class ManualClock(ClockEventSource):
    """
    Reloj cuya posición se fija explícitamente con advance()/seek().

    Útil para tests y para sincronizar sin audio real.
    """

    def __init__(self, duration: float = 0.0):
        super().__init__()
        self._position = 0.0
        self._duration = max(0.0, duration)
        self._playing = False

    @property
    def current_time(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def is_playing(self) -> bool:
        return self._playing

    def play(self) -> None:
        if not self._playing:
            self._playing = True
            self._emit(ClockEvent.PLAY, self._position)

    def pause(self) -> None:
        if self._playing:
            self._playing = False
            self._emit(ClockEvent.PAUSE, self._position)

    def seek(self, seconds: float) -> None:
        self._position = self._clamp(seconds)
        self._emit(ClockEvent.TIME_UPDATE, self._position)

    def advance(self, seconds: float) -> float:
        """Avanza la posición y emite TIME_UPDATE (y ENDED al llegar al final)."""
        self._position = self._clamp(self._position + seconds)
        self._emit(ClockEvent.TIME_UPDATE, self._position)
        if self._duration and self._position >= self._duration:
            self._playing = False
            self._emit(ClockEvent.ENDED, self._position)
        return self._position

    def _clamp(self, seconds: float) -> float:
        seconds = max(0.0, seconds)
        if self._duration:
            seconds = min(seconds, self._duration)
        return seconds


class InterpolatedClock(ClockEventSource):
    """
    Estima la posición actual basándose en tiempo transcurrido.

    Sirve cuando el audio suena en otro reproductor y solo conocemos
    la posición en algunos instantes (al darle play, al hacer seek).
    """

    def __init__(self, duration: float = 0.0, time_source: Callable[[], float] = time.monotonic):
        super().__init__()
        self._time_source = time_source
        self._duration = max(0.0, duration)
        self._paused_position = 0.0
        self._playback_start: Optional[float] = None

    @property
    def current_time(self) -> float:
        if self._playback_start is None:
            # Pausado: retornar la posición guardada
            return self._paused_position

        # Posición = posición al pausar + tiempo transcurrido desde que se reanudó
        elapsed = self._time_source() - self._playback_start
        position = self._paused_position + elapsed
        if self._duration:
            position = min(position, self._duration)
        return position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def is_playing(self) -> bool:
        return self._playback_start is not None

    def play(self) -> None:
        if self._playback_start is None:
            self._playback_start = self._time_source()
            self._emit(ClockEvent.PLAY, self._paused_position)

    def pause(self) -> None:
        if self._playback_start is not None:
            self._paused_position = self.current_time
            self._playback_start = None
            self._emit(ClockEvent.PAUSE, self._paused_position)

    def seek(self, seconds: float) -> None:
        """Establece manualmente la posición (mantiene el estado play/pausa)."""
        self._paused_position = max(0.0, seconds)
        if self._playback_start is not None:
            self._playback_start = self._time_source()
        logger.info(f"Posición establecida manualmente: {self._paused_position:.2f}s")
        self._emit(ClockEvent.TIME_UPDATE, self._paused_position)
