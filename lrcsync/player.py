"""
Reproductor de audio local basado en QMediaPlayer.

Expone la posición de reproducción en segundos como un PlaybackClock
para el timeline de sincronización y el seguidor de reproducción.
"""

import logging
from pathlib import Path

from PyQt6.QtCore import QObject, QUrl
from PyQt6.QtMultimedia import QAudioOutput, QMediaPlayer

from .clock import ClockEvent, ClockEventSource
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


class MediaPlayerClock(QObject, ClockEventSource):
    """
    Reloj respaldado por QMediaPlayer: reproduce un archivo de audio
    local y expone su posición en segundos.
    """

    def __init__(self, max_size_mb: int = 10, parent=None):
        QObject.__init__(self, parent)
        ClockEventSource.__init__(self)

        self._max_size_bytes = max_size_mb * 1024 * 1024

        self.audio = QAudioOutput()
        self.media = QMediaPlayer()
        self.media.setAudioOutput(self.audio)
        self.audio.setVolume(0.7)

        self.media.positionChanged.connect(self._on_position_changed)
        self.media.playbackStateChanged.connect(self._on_state_changed)
        self.media.mediaStatusChanged.connect(self._on_media_status)
        self.media.errorOccurred.connect(self._on_error)

    def load(self, path: Path) -> None:
        """
        Carga un archivo de audio.

        Raises:
            ValidationError: Si el archivo no existe o supera el tamaño máximo.
        """
        path = Path(path)
        if not path.is_file():
            raise ValidationError(f"Archivo de audio no encontrado: {path}")
        if path.stat().st_size > self._max_size_bytes:
            raise ValidationError(
                f"Archivo de audio demasiado grande (máx {self._max_size_bytes // (1024 * 1024)}MB)"
            )

        self.media.setSource(QUrl.fromLocalFile(str(path.resolve())))
        logger.info(f"Audio cargado: {path.name}")

    @property
    def current_time(self) -> float:
        return self.media.position() / 1000.0

    @property
    def duration(self) -> float:
        return max(0, self.media.duration()) / 1000.0

    @property
    def is_playing(self) -> bool:
        return self.media.playbackState() == QMediaPlayer.PlaybackState.PlayingState

    def play(self) -> None:
        self.media.play()

    def pause(self) -> None:
        self.media.pause()

    def toggle(self) -> None:
        if self.is_playing:
            self.pause()
        else:
            self.play()

    def seek(self, seconds: float) -> None:
        self.media.setPosition(int(max(0.0, seconds) * 1000))

    # --- Handlers de Qt ---

    def _on_position_changed(self, position_ms: int) -> None:
        self._emit(ClockEvent.TIME_UPDATE, position_ms / 1000.0)

    def _on_state_changed(self, state: QMediaPlayer.PlaybackState) -> None:
        if state == QMediaPlayer.PlaybackState.PlayingState:
            self._emit(ClockEvent.PLAY, self.current_time)
        else:
            self._emit(ClockEvent.PAUSE, self.current_time)

    def _on_media_status(self, status: QMediaPlayer.MediaStatus) -> None:
        if status == QMediaPlayer.MediaStatus.EndOfMedia:
            self._emit(ClockEvent.ENDED, self.duration)

    def _on_error(self, error: QMediaPlayer.Error, message: str) -> None:
        logger.error(f"Error de reproducción ({error}): {message}")
        self._emit(ClockEvent.ERROR, self.current_time)
