"""
Servicio de letras sincronizadas.

Une el timeline/parser con el almacenamiento y aplica las reglas de
permisos:
- Guardar requiere un usuario autenticado.
- Reemplazar o re-sincronizar letras ya existentes requiere admin.

Los fallos de almacenamiento se devuelven como SaveResult(ok=False),
nunca se ignoran ni se reintentan automáticamente.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiohttp

from .clock import PlaybackClock
from .exceptions import ForbiddenError, StorageError, ValidationError
from .lrc_parser import LRCParser
from .settings import AppSettings
from .storage import LRC_SOURCES, LocalLyricsStore, LrcRecord, LyricsStore, SupabaseLyricsStore
from .sync_timeline import SyncTimeline, TimelineResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """Permisos del usuario actual."""

    is_authenticated: bool = False
    is_admin: bool = False
    user_id: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Capabilities":
        return cls()

    @classmethod
    def admin(cls, user_id: Optional[str] = None) -> "Capabilities":
        return cls(is_authenticated=True, is_admin=True, user_id=user_id)


@dataclass
class SaveResult:
    """Resultado de guardar letras."""

    ok: bool
    record: Optional[LrcRecord] = None
    error: Optional[str] = None


class LyricsService:
    """
    Servicio principal de letras sincronizadas.

    Gestiona el almacenamiento (local o Supabase) y los permisos.
    """

    def __init__(self, store: Optional[LyricsStore] = None, settings: Optional[AppSettings] = None):
        """
        Args:
            store: Almacenamiento a usar. Si es None, se elige según settings
                al llamar a initialize().
            settings: Configuración de la aplicación.
        """
        self.settings = settings or AppSettings()
        self.store: Optional[LyricsStore] = store
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Inicializa la sesión HTTP y el almacenamiento."""
        if self.store is not None:
            return

        if self.settings.uses_remote_storage:
            self._session = aiohttp.ClientSession()
            self.store = SupabaseLyricsStore(
                base_url=self.settings.supabase_url,
                api_key=self.settings.supabase_key,
                session=self._session,
            )
            logger.info(f"LyricsService inicializado con Supabase: {self.settings.supabase_url}")
        else:
            self.store = LocalLyricsStore(Path(self.settings.storage_dir))
            logger.info(f"LyricsService inicializado con almacenamiento local: {self.settings.storage_dir}")

    async def close(self) -> None:
        """Cierra la sesión HTTP."""
        if self.store is not None:
            await self.store.close()
        if self._session:
            await self._session.close()
            self._session = None

    def _require_store(self) -> LyricsStore:
        if self.store is None:
            raise StorageError("LyricsService no inicializado")
        return self.store

    # --- Lectura ---

    async def load(self, song_id: str) -> Optional[LrcRecord]:
        """
        Busca las letras sincronizadas de una canción.

        Returns:
            LrcRecord o None si la canción no tiene letras.

        Raises:
            StorageError: Si el almacenamiento falló.
        """
        return await self._require_store().load(song_id)

    # --- Permisos ---

    def _check_can_save(self, capabilities: Capabilities, existing: Optional[LrcRecord]) -> None:
        if not capabilities.is_authenticated:
            raise ForbiddenError("Se requiere iniciar sesión para guardar letras")
        if existing is not None and not capabilities.is_admin:
            raise ForbiddenError("Solo un admin puede reemplazar letras existentes")

    async def ensure_can_save(self, song_id: str, capabilities: Capabilities) -> Optional[LrcRecord]:
        """
        Comprueba los permisos de guardado antes de empezar a sincronizar.

        Returns:
            El registro existente de la canción, o None.

        Raises:
            ForbiddenError: Si el usuario no podrá guardar el resultado.
            StorageError: Si el almacenamiento falló.
        """
        existing = await self.load(song_id)
        self._check_can_save(capabilities, existing)
        return existing

    # --- Escritura ---

    async def save_timeline(
        self,
        song_id: str,
        result: TimelineResult,
        capabilities: Capabilities,
        source: str = "manual",
    ) -> SaveResult:
        """
        Guarda el resultado de un timeline confirmado.

        Raises:
            ForbiddenError: Si el usuario no tiene permisos.
            ValidationError: Si el resultado no tiene líneas o la fuente es inválida.
        """
        if not result.lines:
            raise ValidationError("No hay líneas sincronizadas para guardar")

        record = LrcRecord(
            song_id=song_id,
            lrc_raw=result.lrc,
            synced_lyrics=list(result.lines),
            source=source,
            created_by=capabilities.user_id,
        )
        return await self._save(record, capabilities)

    async def save_lrc_text(
        self,
        song_id: str,
        lrc_text: str,
        capabilities: Capabilities,
        source: str = "manual",
    ) -> SaveResult:
        """
        Guarda un texto LRC subido por el usuario (se conserva tal cual).

        Raises:
            NoSyncedLinesError: Si el texto no tiene líneas sincronizadas.
            ForbiddenError: Si el usuario no tiene permisos.
        """
        lines = LRCParser.parse_or_raise(lrc_text)
        record = LrcRecord(
            song_id=song_id,
            lrc_raw=lrc_text,
            synced_lyrics=lines,
            source=source,
            created_by=capabilities.user_id,
        )
        return await self._save(record, capabilities)

    async def _save(self, record: LrcRecord, capabilities: Capabilities) -> SaveResult:
        if record.source not in LRC_SOURCES:
            raise ValidationError(f"Fuente inválida: {record.source}")

        store = self._require_store()

        try:
            existing = await store.load(record.song_id)
        except StorageError as e:
            logger.warning(f"Error consultando letras existentes de {record.song_id}: {e}")
            return SaveResult(ok=False, error=str(e))

        self._check_can_save(capabilities, existing)

        try:
            saved = await store.save(record)
        except StorageError as e:
            logger.warning(f"Error guardando letras de {record.song_id}: {e}")
            return SaveResult(ok=False, error=str(e))

        logger.info(f"Letras guardadas: {record.song_id} ({len(record.synced_lyrics)} líneas)")
        return SaveResult(ok=True, record=saved)

    # --- Re-sincronización ---

    async def begin_resync(
        self,
        song_id: str,
        capabilities: Capabilities,
        clock: Optional[PlaybackClock] = None,
        nudge_step: Optional[float] = None,
    ) -> SyncTimeline:
        """
        Prepara un timeline para re-sincronizar letras ya guardadas.

        El timeline se devuelve en estado SYNCING con la letra existente.
        Las líneas con texto vacío (pausas) no pasan al timeline, que solo
        admite líneas con texto; al guardar el resultado se pierden.

        Raises:
            ForbiddenError: Si el usuario no es admin.
            ValidationError: Si la canción no tiene letras guardadas.
            StorageError: Si el almacenamiento falló.
        """
        if not capabilities.is_authenticated or not capabilities.is_admin:
            raise ForbiddenError("Solo un admin puede re-sincronizar letras existentes")

        record = await self.load(song_id)
        if record is None:
            raise ValidationError(f"La canción {song_id} no tiene letras guardadas")

        if record.synced_lyrics:
            text = "\n".join(line.text for line in record.synced_lyrics)
        else:
            text = LRCParser.extract_plain_text(record.lrc_raw)

        timeline = SyncTimeline(
            clock=clock,
            nudge_step=nudge_step if nudge_step is not None else self.settings.nudge_step_s,
        )
        timeline.set_lyrics(text)
        if record.synced_lyrics and len(timeline.lines) != len(record.synced_lyrics):
            logger.warning(
                f"Re-sincronización de {song_id}: "
                f"{len(record.synced_lyrics) - len(timeline.lines)} líneas vacías descartadas"
            )
        timeline.start()
        logger.info(f"Re-sincronización iniciada para {song_id}")
        return timeline
