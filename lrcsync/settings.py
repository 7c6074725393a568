"""
Configuración de lrcsync.

Se guarda como JSON en ~/.lrcsync/settings.json. Los campos que faltan
toman su valor por defecto y los que están fuera de rango se recortan
al cargar. SUPABASE_URL y SUPABASE_KEY del entorno tienen prioridad
sobre el archivo.
"""

import json
import logging
import os
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".lrcsync"
DEFAULT_SETTINGS_PATH = CONFIG_DIR / "settings.json"
DEFAULT_STORAGE_DIR = CONFIG_DIR / "lyrics"


def _clamp(value, low, high, cast):
    return max(low, min(high, cast(value)))


@dataclass
class AppSettings:
    # Captura
    nudge_step_s: float = 0.1  # paso de nudge_line()
    tick_interval_ms: int = 50  # muestreo del reloj en modo reproducción
    offset_step_ms: int = 500
    max_offset_ms: int = 10000

    # Audio
    max_audio_size_mb: int = 10

    # Almacenamiento: sin URL de Supabase se guarda en storage_dir
    storage_dir: str = str(DEFAULT_STORAGE_DIR)
    supabase_url: str = ""
    supabase_key: str = ""

    # Atajos
    hotkeys_enabled: bool = True
    hotkeys: dict = field(default_factory=dict)  # acción -> "ctrl+alt+tecla"

    def validate(self) -> None:
        """Recorta los valores numéricos a su rango y normaliza el resto."""
        self.nudge_step_s = _clamp(self.nudge_step_s, 0.01, 5.0, float)
        self.tick_interval_ms = _clamp(self.tick_interval_ms, 10, 1000, int)
        self.offset_step_ms = _clamp(self.offset_step_ms, 10, 2000, int)
        self.max_offset_ms = _clamp(self.max_offset_ms, 1000, 60000, int)
        self.max_audio_size_mb = _clamp(self.max_audio_size_mb, 1, 500, int)
        self.supabase_url = str(self.supabase_url or "").rstrip("/")
        self.supabase_key = str(self.supabase_key or "")
        self.hotkeys_enabled = bool(self.hotkeys_enabled)
        if not isinstance(self.hotkeys, dict):
            raise ConfigError("'hotkeys' debe ser un objeto acción -> atajo")
        self.hotkeys = {str(k): str(v) for k, v in self.hotkeys.items()}

    @property
    def uses_remote_storage(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


class SettingsManager:
    """Lectura y escritura de AppSettings en disco."""

    ENV_OVERRIDES = {
        "SUPABASE_URL": "supabase_url",
        "SUPABASE_KEY": "supabase_key",
    }

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else DEFAULT_SETTINGS_PATH
        self._settings = AppSettings()
        self.load()

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict:
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ConfigError(f"{self._path} no contiene un objeto JSON")
        return data

    def load(self) -> None:
        """
        Relee el archivo. Un archivo ilegible o con valores inválidos se
        registra como warning y deja la configuración por defecto.
        """
        settings = AppSettings()

        if not self._path.exists():
            logger.info(f"Sin {self._path.name}, configuración por defecto")
        else:
            try:
                data = self._read_file()
                known = {f.name for f in fields(AppSettings)}
                for key, value in data.items():
                    if key in known:
                        setattr(settings, key, value)
                    else:
                        logger.debug(f"Clave de configuración ignorada: {key}")
                settings.validate()
                logger.info(f"Configuración leída de {self._path}")
            except (OSError, ValueError, TypeError, ConfigError) as e:
                logger.warning(f"Configuración inválida en {self._path} ({e}), se usan los valores por defecto")
                settings = AppSettings()

        for env_name, attr in self.ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                setattr(settings, attr, value)
        settings.validate()

        self._settings = settings

    def save(self) -> None:
        """Escribe la configuración actual (validada) en disco."""
        self._settings.validate()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(asdict(self._settings), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(f"No se pudo escribir {self._path}: {e}")
            return
        logger.debug(f"Configuración escrita en {self._path}")

    def reset(self) -> None:
        self._settings = AppSettings()
        self.save()
        logger.info("Configuración por defecto restaurada")
