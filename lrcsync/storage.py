"""
Almacenamiento de letras sincronizadas.

Cada canción (identificada por un song_id opaco) tiene como máximo un
registro LRC: el texto LRC crudo y la lista de líneas sincronizadas.

Implementaciones:
- LocalLyricsStore: un archivo JSON por canción en disco
- SupabaseLyricsStore: tabla `lrc_files` vía la API REST de Supabase
"""

import asyncio
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import aiohttp

from .exceptions import StorageError
from .lrc_parser import SyncedLine

logger = logging.getLogger(__name__)

LRC_SOURCES = ("manual", "ai", "hybrid")


@dataclass
class LrcRecord:
    """Registro LRC persistido de una canción."""

    song_id: str
    lrc_raw: str
    synced_lyrics: list[SyncedLine] = field(default_factory=list)
    source: str = "manual"
    created_by: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "song_id": self.song_id,
            "lrc_raw": self.lrc_raw,
            "synced_lyrics": [line.to_dict() for line in self.synced_lyrics],
            "source": self.source,
            "created_by": self.created_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LrcRecord":
        try:
            return cls(
                song_id=str(data["song_id"]),
                lrc_raw=data.get("lrc_raw") or "",
                synced_lyrics=[
                    SyncedLine.from_dict(item) for item in data.get("synced_lyrics") or []
                ],
                source=data.get("source") or "manual",
                created_by=data.get("created_by"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Registro LRC inválido: {e}") from e


class LyricsStore(ABC):
    """Almacenamiento clave-valor de registros LRC por song_id."""

    @abstractmethod
    async def save(self, record: LrcRecord) -> LrcRecord:
        """
        Guarda (o reemplaza) el registro de una canción.

        Raises:
            StorageError: Si no se pudo guardar.
        """
        raise NotImplementedError

    @abstractmethod
    async def load(self, song_id: str) -> Optional[LrcRecord]:
        """
        Busca el registro de una canción.

        Returns:
            LrcRecord o None si no existe.

        Raises:
            StorageError: Si el almacenamiento falló.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Libera recursos (sesiones HTTP, etc.)."""


class LocalLyricsStore(LyricsStore):
    """Registros LRC en disco, un archivo JSON por canción."""

    def __init__(self, storage_dir: Path):
        """
        Args:
            storage_dir: Directorio de almacenamiento (se crea si no existe).
        """
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _get_key(self, song_id: str) -> str:
        """Genera un nombre de archivo seguro para el song_id."""
        return hashlib.md5(song_id.strip().encode("utf-8")).hexdigest()

    def _get_path(self, song_id: str) -> Path:
        return self.storage_dir / f"{self._get_key(song_id)}.json"

    async def save(self, record: LrcRecord) -> LrcRecord:
        path = self._get_path(record.song_id)
        try:
            path.write_text(
                json.dumps(record.to_dict(), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise StorageError(f"No se pudo guardar la letra de {record.song_id}: {e}") from e

        logger.debug(f"Letra guardada: {record.song_id} -> {path.name}")
        return record

    async def load(self, song_id: str) -> Optional[LrcRecord]:
        path = self._get_path(song_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"No se pudo leer la letra de {song_id}: {e}") from e

        return LrcRecord.from_dict(data)

    def clear(self) -> int:
        """
        Elimina todos los registros.

        Returns:
            Número de archivos eliminados.
        """
        count = 0
        for file in self.storage_dir.glob("*.json"):
            try:
                file.unlink()
                count += 1
            except OSError as e:
                logger.warning(f"No se pudo eliminar {file.name}: {e}")
        logger.info(f"Almacenamiento limpiado: {count} archivos eliminados")
        return count


class SupabaseLyricsStore(LyricsStore):
    """
    Registros LRC en la tabla `lrc_files` de Supabase (PostgREST).

    Un registro por song_id: save() hace upsert sobre esa columna.
    """

    TABLE = "lrc_files"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
        access_token: Optional[str] = None,
    ):
        """
        Args:
            base_url: URL del proyecto (https://xxxx.supabase.co)
            api_key: Clave anónima/pública del proyecto
            session: Sesión HTTP compartida; si es None se crea una propia.
            access_token: JWT del usuario autenticado (por defecto, la api_key)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self._session = session
        self._owns_session = session is None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.TABLE}"

    def _headers(self) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def save(self, record: LrcRecord) -> LrcRecord:
        headers = self._headers()
        headers["Prefer"] = "return=representation,resolution=merge-duplicates"

        try:
            async with self._get_session().post(
                self.endpoint,
                params={"on_conflict": "song_id"},
                json=record.to_dict(),
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=10),
            ) as response:
                if response.status not in (200, 201):
                    body = await response.text()
                    raise StorageError(
                        f"Supabase respondió {response.status} al guardar {record.song_id}: {body}"
                    )
                rows = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StorageError(f"Error de red guardando {record.song_id}: {e}") from e

        logger.info(f"Letra guardada en Supabase: {record.song_id}")
        if isinstance(rows, list) and rows:
            return LrcRecord.from_dict(rows[0])
        return record

    async def load(self, song_id: str) -> Optional[LrcRecord]:
        try:
            async with self._get_session().get(
                self.endpoint,
                params={"song_id": f"eq.{song_id}", "select": "*", "limit": "1"},
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=10),
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise StorageError(
                        f"Supabase respondió {response.status} al leer {song_id}: {body}"
                    )
                rows = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StorageError(f"Error de red leyendo {song_id}: {e}") from e

        if not rows:
            return None
        return LrcRecord.from_dict(rows[0])

    async def close(self) -> None:
        """Cierra la sesión HTTP si es propia."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
