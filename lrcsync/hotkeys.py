"""
Atajos de teclado globales para sincronizar sin mirar la pantalla.

El listener de pynput recibe las teclas aunque la terminal no tenga
el foco, así se puede marcar cada línea mientras suena el audio.

Atajos por defecto (se pueden cambiar en settings.json, clave "hotkeys"):
- Ctrl+Alt+Space: tap en la línea activa
- Ctrl+Alt+Z: deshacer
- Ctrl+Alt+Left / Right: mover la última línea marcada -/+ un paso fino
- Ctrl+Alt+Backspace: desmarcar la última línea
- Ctrl+Alt+P: play / pausa
- Ctrl+Alt+S: confirmar y guardar
- Ctrl+Alt+Up / Down: offset +/- (modo reproducción)
- Ctrl+Alt+R: offset a 0
- Ctrl+Shift+Q: salir
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


class HotkeyAction(Enum):
    TAP = "tap"
    UNDO = "undo"
    NUDGE_BACK = "nudge_back"
    NUDGE_FORWARD = "nudge_forward"
    CLEAR_LAST = "clear_last"
    TOGGLE_PLAY = "toggle_play"
    COMMIT = "commit"
    OFFSET_INCREASE = "offset_increase"
    OFFSET_DECREASE = "offset_decrease"
    OFFSET_RESET = "offset_reset"
    QUIT_APP = "quit_app"


# Nombre de tecla de pynput -> modificador normalizado
MODIFIER_NAMES = {
    'ctrl': 'ctrl', 'ctrl_l': 'ctrl', 'ctrl_r': 'ctrl',
    'shift': 'shift', 'shift_l': 'shift', 'shift_r': 'shift',
    'alt': 'alt', 'alt_l': 'alt', 'alt_r': 'alt', 'alt_gr': 'alt',
    'cmd': 'win', 'cmd_l': 'win', 'cmd_r': 'win',
}
MODIFIERS = frozenset(MODIFIER_NAMES.values())


@dataclass(frozen=True)
class Hotkey:
    """Atajo: modificadores + una tecla, asociado a una acción."""
    action: HotkeyAction
    modifiers: frozenset
    key: str  # 'z', 'space', 'left'...
    description: str

    @property
    def combo(self) -> tuple[frozenset, str]:
        return self.modifiers, self.key

    def __str__(self) -> str:
        parts = [m.capitalize() for m in sorted(self.modifiers)]
        parts.append(self.key.upper() if len(self.key) == 1 else self.key.capitalize())
        return '+'.join(parts)


HotkeyCallback = Callable[[HotkeyAction], None]


def key_name(key: Any) -> Optional[str]:
    """
    Nombre normalizado de una tecla de pynput.

    KeyCode da su carácter en minúsculas y Key su nombre ('space', 'left').
    Con Ctrl pulsado algunos sistemas envían caracteres de control
    ('\\x1a' en vez de 'z'); se traducen a la letra.
    """
    char = getattr(key, 'char', None)
    if char:
        if len(char) == 1 and ord(char) < 32:
            return chr(ord(char) + 96)
        return char.lower()
    name = getattr(key, 'name', None)
    return name.lower() if name else None


def parse_combo(text: str) -> tuple[frozenset, str]:
    """
    "ctrl+alt+space" -> (frozenset({'ctrl', 'alt'}), 'space')

    Raises:
        ConfigError: Si falta la tecla final o sobra alguna.
    """
    parts = [p.strip().lower() for p in text.split('+') if p.strip()]
    modifiers = {MODIFIER_NAMES.get(p, p) for p in parts if MODIFIER_NAMES.get(p, p) in MODIFIERS}
    keys = [p for p in parts if MODIFIER_NAMES.get(p, p) not in MODIFIERS]
    if len(keys) != 1:
        raise ConfigError(f"Atajo inválido: {text!r}")
    return frozenset(modifiers), keys[0]


DEFAULT_HOTKEYS = (
    Hotkey(HotkeyAction.TAP, frozenset({'ctrl', 'alt'}), 'space', "Marcar la línea activa"),
    Hotkey(HotkeyAction.UNDO, frozenset({'ctrl', 'alt'}), 'z', "Deshacer"),
    Hotkey(HotkeyAction.NUDGE_BACK, frozenset({'ctrl', 'alt'}), 'left', "Última línea antes"),
    Hotkey(HotkeyAction.NUDGE_FORWARD, frozenset({'ctrl', 'alt'}), 'right', "Última línea después"),
    Hotkey(HotkeyAction.CLEAR_LAST, frozenset({'ctrl', 'alt'}), 'backspace', "Desmarcar la última línea"),
    Hotkey(HotkeyAction.TOGGLE_PLAY, frozenset({'ctrl', 'alt'}), 'p', "Play / pausa"),
    Hotkey(HotkeyAction.COMMIT, frozenset({'ctrl', 'alt'}), 's', "Confirmar y guardar"),
    Hotkey(HotkeyAction.OFFSET_INCREASE, frozenset({'ctrl', 'alt'}), 'up', "Offset +"),
    Hotkey(HotkeyAction.OFFSET_DECREASE, frozenset({'ctrl', 'alt'}), 'down', "Offset -"),
    Hotkey(HotkeyAction.OFFSET_RESET, frozenset({'ctrl', 'alt'}), 'r', "Offset a 0"),
    Hotkey(HotkeyAction.QUIT_APP, frozenset({'ctrl', 'shift'}), 'q', "Salir"),
)


def apply_overrides(
    hotkeys: tuple[Hotkey, ...], overrides: Mapping[str, str]
) -> tuple[Hotkey, ...]:
    """
    Reemplaza combinaciones según un mapa acción -> "ctrl+alt+tecla".

    Las acciones desconocidas o los atajos mal escritos se registran
    y se ignoran; se conserva el atajo por defecto.
    """
    result = []
    for hotkey in hotkeys:
        text = overrides.get(hotkey.action.value)
        if text is None:
            result.append(hotkey)
            continue
        try:
            modifiers, key = parse_combo(text)
        except ConfigError as e:
            logger.warning(f"{e}; se mantiene {hotkey}")
            result.append(hotkey)
            continue
        result.append(replace(hotkey, modifiers=modifiers, key=key))

    known = {action.value for action in HotkeyAction}
    for name in overrides:
        if name not in known:
            logger.warning(f"Acción de atajo desconocida: {name}")
    return tuple(result)


class HotkeyManager:
    """
    Escucha el teclado con pynput y traduce combinaciones a acciones.

    Los callbacks corren en el hilo del listener: quien necesite tocar
    objetos de Qt debe reenviarlos (ver HotkeyBridge en main.py).
    """

    def __init__(self, hotkeys: tuple[Hotkey, ...] = DEFAULT_HOTKEYS):
        self._listener = None
        self._held: set[str] = set()
        self._callbacks: list[HotkeyCallback] = []
        self._enabled = True
        self._hotkeys = tuple(hotkeys)
        self._by_combo: dict[tuple[frozenset, str], Hotkey] = {}
        for hotkey in self._hotkeys:
            if hotkey.combo in self._by_combo:
                logger.warning(f"Atajo repetido {hotkey}: gana {self._by_combo[hotkey.combo].action.value}")
                continue
            self._by_combo[hotkey.combo] = hotkey

    @property
    def hotkeys(self) -> tuple[Hotkey, ...]:
        return self._hotkeys

    def _on_press(self, key: Any) -> None:
        if not self._enabled:
            return

        name = key_name(key)
        if name in MODIFIER_NAMES:
            self._held.add(MODIFIER_NAMES[name])
            return

        hotkey = self._by_combo.get((frozenset(self._held), name))
        if hotkey is not None:
            logger.debug(f"Atajo: {hotkey} -> {hotkey.action.value}")
            self._dispatch(hotkey.action)

    def _on_release(self, key: Any) -> None:
        name = key_name(key)
        if name in MODIFIER_NAMES:
            self._held.discard(MODIFIER_NAMES[name])

    def _dispatch(self, action: HotkeyAction) -> None:
        for callback in self._callbacks:
            try:
                callback(action)
            except Exception as e:
                logger.error(f"Error procesando el atajo {action.value}: {e}")

    def on_hotkey(self, callback: HotkeyCallback) -> None:
        """Registra un callback que recibe la HotkeyAction disparada."""
        self._callbacks.append(callback)

    def start(self) -> None:
        """Arranca el listener (idempotente) y muestra los atajos."""
        if self._listener is not None:
            return

        # pynput necesita un servidor gráfico; se importa solo al arrancar
        from pynput import keyboard

        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()
        logger.info("Listener de atajos activo")

        print("\n📌 Atajos:")
        for hotkey in self._hotkeys:
            print(f"   {str(hotkey):<22} {hotkey.description}")
        print()

    def stop(self) -> None:
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None
        self._held.clear()
        logger.info("Listener de atajos detenido")

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value
        if not value:
            self._held.clear()
        logger.info(f"Atajos {'activados' if value else 'desactivados'}")

    def get_hotkey_for_action(self, action: HotkeyAction) -> Optional[Hotkey]:
        return next((h for h in self._hotkeys if h.action == action), None)

    def get_hotkey_string(self, action: HotkeyAction) -> str:
        """Texto del atajo, p.ej. "Alt+Ctrl+Space" ("" si no hay)."""
        hotkey = self.get_hotkey_for_action(action)
        return str(hotkey) if hotkey else ""
