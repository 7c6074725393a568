"""
lrcsync - Aplicación principal

Sincronización de letras por taps sobre un archivo de audio local.

Subcomandos:
- sync: reproduce el audio y captura un timestamp por línea con hotkeys
- resync: re-sincroniza letras ya guardadas (solo admin)
- play: reproduce el audio siguiendo un LRC línea por línea
- check: valida un archivo LRC
- plain: extrae el texto plano de un LRC
- import: guarda un archivo LRC existente para una canción
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from .clock import ClockEvent
from .exceptions import LrcSyncError, NoSyncedLinesError, TimelineStateError
from .hotkeys import DEFAULT_HOTKEYS, HotkeyAction, HotkeyManager, apply_overrides
from .lrc_parser import LRCParser, LrcMetadata
from .lyrics_service import Capabilities, LyricsService
from .playback_sync import PlaybackFollower, PlaybackState
from .settings import AppSettings, SettingsManager
from .sync_timeline import SyncTimeline, TimelineResult, TimelineSnapshot, TimelineState
from .timecode import format_clock, format_tag

if TYPE_CHECKING:
    from PyQt6.QtWidgets import QApplication

    from .player import MediaPlayerClock

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configura el logging de la aplicación."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


class HotkeyBridge(QObject):
    """Lleva las acciones del hilo de pynput al hilo de Qt."""

    triggered = pyqtSignal(object)


class LrcSyncApp:
    """
    Aplicación que orquesta reproductor, timeline, hotkeys y almacenamiento.
    """

    def __init__(self, settings: AppSettings, capabilities: Capabilities):
        self.settings = settings
        self.capabilities = capabilities

        # Componentes
        self.clock: Optional["MediaPlayerClock"] = None
        self.timeline: Optional[SyncTimeline] = None
        self.follower: Optional[PlaybackFollower] = None
        self.lyrics_service: Optional[LyricsService] = None
        self.hotkey_manager: Optional[HotkeyManager] = None
        self.bridge: Optional[HotkeyBridge] = None

        # Sesión actual
        self.song_id: Optional[str] = None
        self.out_path: Optional[Path] = None
        self.metadata = LrcMetadata()
        self.exit_code: int = 0

        # Estado
        self._running: bool = False
        self._saving: bool = False
        self._save_task: Optional["asyncio.Future"] = None

        # Qt App
        self.app: Optional["QApplication"] = None

    async def initialize(self, audio_path: Path) -> bool:
        """
        Inicializa reproductor, almacenamiento y hotkeys.

        Returns:
            True si la inicialización fue exitosa.
        """
        logger.info("Inicializando lrcsync...")

        try:
            from .player import MediaPlayerClock

            self.clock = MediaPlayerClock(max_size_mb=self.settings.max_audio_size_mb)
            self.clock.load(audio_path)

            self.lyrics_service = LyricsService(settings=self.settings)
            await self.lyrics_service.initialize()

            self.bridge = HotkeyBridge()
            self.bridge.triggered.connect(self._on_hotkey)

            self.hotkey_manager = HotkeyManager(
                apply_overrides(DEFAULT_HOTKEYS, self.settings.hotkeys)
            )
            self.hotkey_manager.enabled = self.settings.hotkeys_enabled
            self.hotkey_manager.on_hotkey(self.bridge.triggered.emit)

            logger.info("✓ Inicialización completa")
            return True

        except LrcSyncError as e:
            logger.error(f"Error durante la inicialización: {e}")
            return False

    # --- Modo sincronización ---

    async def start_sync(self, lyrics_text: str) -> None:
        """
        Comprueba que se podrá guardar y empieza la captura.

        Con song_id se revisan los permisos antes de sincronizar, para no
        descubrir al final que el resultado no se puede guardar.

        Raises:
            ForbiddenError: Si las capacidades no permiten guardar esa canción.
            StorageError: Si no se pudo leer el registro existente.
        """
        if self.song_id:
            await self.lyrics_service.ensure_can_save(self.song_id, self.capabilities)
        self.prepare_sync(lyrics_text)

    def prepare_sync(self, lyrics_text: str) -> None:
        """Crea un timeline nuevo con la letra y empieza la captura."""
        self.timeline = SyncTimeline(clock=self.clock, nudge_step=self.settings.nudge_step_s)
        self.timeline.on_state_changed(self._on_timeline_changed)
        self.timeline.set_lyrics(lyrics_text)
        self.timeline.start()

    def attach_timeline(self, timeline: SyncTimeline) -> None:
        """Usa un timeline ya preparado (re-sincronización)."""
        self.timeline = timeline
        timeline.attach_clock(self.clock)
        timeline.on_state_changed(self._on_timeline_changed)
        self._print_timeline()

    def _on_timeline_changed(self, snapshot: TimelineSnapshot) -> None:
        """Callback cuando cambia el timeline."""
        logger.debug(
            f"Timeline {snapshot.state.value}: {snapshot.synced_count}/{snapshot.total_lines}"
        )
        if snapshot.state in (TimelineState.SYNCING, TimelineState.FULLY_SYNCED):
            self._print_timeline()
        if snapshot.state == TimelineState.FULLY_SYNCED:
            print("✓ Todas las líneas sincronizadas. Ctrl+Alt+S para guardar.")

    def _print_timeline(self) -> None:
        if self.timeline is None:
            return
        print()
        for row in self.timeline.rows():
            marker = "▶" if row.active else " "
            tag = row.tag or "[--:--.--]"
            print(f" {marker} {tag} {row.text}")

    def _handle_sync_action(self, action: HotkeyAction) -> None:
        timeline = self.timeline
        if action == HotkeyAction.TAP:
            index = timeline.tap()
            if index is not None:
                print(f"  tap {index + 1}: {format_tag(timeline.timestamps[index])}")

        elif action == HotkeyAction.UNDO:
            if not timeline.undo():
                print("  Nada que deshacer")

        elif action in (HotkeyAction.NUDGE_BACK, HotkeyAction.NUDGE_FORWARD):
            last = timeline.last_synced_index()
            if last >= 0:
                direction = -1 if action == HotkeyAction.NUDGE_BACK else 1
                timeline.nudge_line(last, direction)

        elif action == HotkeyAction.CLEAR_LAST:
            last = timeline.last_synced_index()
            if last >= 0:
                timeline.clear_line(last)

        elif action == HotkeyAction.COMMIT:
            if not timeline.can_commit:
                missing = len(timeline.lines) - timeline.synced_count
                print(f"  Faltan {missing} líneas por sincronizar")
                return
            self._save_task = asyncio.ensure_future(self._commit_and_save())
            self._save_task.add_done_callback(self._on_save_done)

    def _on_save_done(self, task: "asyncio.Future") -> None:
        """Registra los errores que escapen del guardado en segundo plano."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error inesperado guardando la letra: {error!r}")
            self.exit_code = 1

    async def _commit_and_save(self) -> None:
        """Confirma el timeline, escribe el LRC y lo guarda si hay song_id."""
        if self._saving or self.timeline is None:
            return
        self._saving = True

        try:
            if self.timeline.state == TimelineState.FULLY_SYNCED:
                self.timeline.review()
            result = self.timeline.commit(self.metadata)
        except TimelineStateError as e:
            logger.warning(f"No se pudo confirmar: {e}")
            self._saving = False
            return

        # El timeline ya está confirmado: pase lo que pase, se cierra la app
        try:
            self._write_result(result)
            if self.song_id:
                await self._save_result(result)
        finally:
            self._saving = False
            self._quit()

    def _write_result(self, result: TimelineResult) -> None:
        if self.out_path:
            try:
                self.out_path.write_text(result.lrc, encoding="utf-8")
            except OSError as e:
                logger.error(f"No se pudo escribir {self.out_path}: {e}")
                self.exit_code = 1
                # Que el resultado no se pierda
                print("\n" + result.lrc)
                return
            logger.info(f"LRC escrito en {self.out_path}")
        else:
            print("\n" + result.lrc)

    async def _save_result(self, result: TimelineResult) -> None:
        try:
            saved = await self.lyrics_service.save_timeline(
                self.song_id, result, self.capabilities
            )
        except LrcSyncError as e:
            logger.error(f"No se pudo guardar: {e}")
            self.exit_code = 1
            return

        if saved.ok:
            print(f"✓ Guardado para la canción {self.song_id}")
        else:
            logger.error(f"Error guardando: {saved.error}")
            self.exit_code = 1

    # --- Modo reproducción ---

    def prepare_playback(self, lrc_text: str) -> None:
        """Sigue la reproducción de un LRC existente."""
        lines = LRCParser.parse_or_raise(lrc_text)
        metadata = LRCParser.parse_metadata(lrc_text)

        self.follower = PlaybackFollower(
            self.clock,
            update_interval_ms=self.settings.tick_interval_ms,
            max_offset_ms=self.settings.max_offset_ms,
        )
        self.follower.set_lines(lines, offset_ms=metadata.offset_ms)
        self.follower.on_line_changed(self._on_line_changed)

    def _on_line_changed(self, state: PlaybackState) -> None:
        """Callback cuando cambia la línea actual."""
        current, total = self.follower.get_progress()
        if state.current_line is None:
            print(f"  [{format_clock(state.position)}] ...")
            return
        print(f"  [{format_clock(state.position)}] ({current}/{total}) {state.current_line.text}")

    def _handle_play_action(self, action: HotkeyAction) -> None:
        step = self.settings.offset_step_ms
        if action == HotkeyAction.OFFSET_INCREASE:
            self.follower.adjust_offset(step)
        elif action == HotkeyAction.OFFSET_DECREASE:
            self.follower.adjust_offset(-step)
        elif action == HotkeyAction.OFFSET_RESET:
            self.follower.reset_offset()
        elif action == HotkeyAction.UNDO:
            self.follower.undo_offset()

    # --- Hotkeys ---

    def _on_hotkey(self, action: HotkeyAction) -> None:
        """Callback cuando se activa un hotkey (hilo de Qt)."""
        logger.debug(f"Hotkey: {action.value}")

        if action == HotkeyAction.QUIT_APP:
            self._quit()
            return

        if action == HotkeyAction.TOGGLE_PLAY:
            self.clock.toggle()
            return

        try:
            if self.timeline is not None:
                self._handle_sync_action(action)
            elif self.follower is not None:
                self._handle_play_action(action)
        except (LrcSyncError, IndexError, ValueError) as e:
            logger.warning(f"Acción {action.value} ignorada: {e}")

    # --- Ciclo de vida ---

    def _quit(self) -> None:
        """Cierra la aplicación de forma segura."""
        logger.info("Cerrando aplicación...")
        self._running = False

        if self.clock:
            self.clock.pause()

        if self.app:
            QTimer.singleShot(100, self.app.quit)

    async def run(self) -> None:
        """Ejecuta la aplicación hasta que el usuario salga."""
        self._running = True

        self.hotkey_manager.start()

        if self.follower is not None:
            self.follower.start()

        self.clock.on_event(self._on_clock_event)
        self.clock.play()

        try:
            while self._running:
                await asyncio.sleep(0.1)
        finally:
            await self.cleanup()

    def _on_clock_event(self, event: ClockEvent, position: float) -> None:
        if event == ClockEvent.TIME_UPDATE and self.timeline is not None:
            self.timeline.update_time(position)
        elif event == ClockEvent.ENDED:
            logger.info("Fin del audio")
            if self.timeline is None:
                self._quit()
        elif event == ClockEvent.ERROR:
            self.exit_code = 1
            self._quit()

    async def cleanup(self) -> None:
        """Limpia recursos."""
        if self.follower:
            self.follower.stop()

        if self.hotkey_manager:
            self.hotkey_manager.stop()

        if self.lyrics_service:
            await self.lyrics_service.close()
            self.lyrics_service = None

        logger.info("Aplicación cerrada")


# --- CLI ---


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lrcsync", description="Sincronización de letras LRC")
    p.add_argument("-v", "--verbose", action="store_true", help="Logging detallado.")
    p.add_argument("--settings", type=Path, default=None, help="Archivo de configuración JSON.")
    p.add_argument("--user", default=None, help="ID del usuario autenticado.")
    p.add_argument("--admin", action="store_true", help="El usuario es administrador.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sync = sub.add_parser("sync", help="Sincronizar una letra con taps.")
    sync.add_argument("audio", type=Path, help="Archivo de audio.")
    sync.add_argument("lyrics", type=Path, help="Letra en texto plano, una línea por verso.")
    sync.add_argument("--out", type=Path, default=None, help="Archivo .lrc de salida.")
    sync.add_argument("--song-id", default=None, help="Guardar el resultado para esta canción.")
    sync.add_argument("--title", default=None)
    sync.add_argument("--artist", default=None)

    resync = sub.add_parser("resync", help="Re-sincronizar letras guardadas (admin).")
    resync.add_argument("song_id")
    resync.add_argument("audio", type=Path)
    resync.add_argument("--out", type=Path, default=None)

    play = sub.add_parser("play", help="Reproducir audio siguiendo un LRC.")
    play.add_argument("audio", type=Path)
    play.add_argument("lrc", type=Path)

    check = sub.add_parser("check", help="Validar un archivo LRC.")
    check.add_argument("lrc", type=Path)

    plain = sub.add_parser("plain", help="Extraer el texto plano de un LRC.")
    plain.add_argument("lrc", type=Path)

    imp = sub.add_parser("import", help="Guardar un archivo LRC para una canción.")
    imp.add_argument("song_id")
    imp.add_argument("lrc", type=Path)

    return p


def capabilities_from_args(args: argparse.Namespace) -> Capabilities:
    return Capabilities(
        is_authenticated=bool(args.user),
        is_admin=bool(args.user) and args.admin,
        user_id=args.user,
    )


def cmd_check(args: argparse.Namespace) -> int:
    text = args.lrc.read_text(encoding="utf-8")
    try:
        lines = LRCParser.parse_or_raise(text)
    except NoSyncedLinesError as e:
        print(f"✗ {args.lrc.name}: {e}")
        return 1

    meta = LRCParser.parse_metadata(text)
    print(f"✓ {args.lrc.name}: {len(lines)} líneas sincronizadas")
    if meta.title or meta.artist:
        print(f"  {meta.artist or '?'} - {meta.title or '?'}")
    print(f"  {format_tag(lines[0].time)} -> {format_tag(lines[-1].time)}")
    return 0


def cmd_plain(args: argparse.Namespace) -> int:
    print(LRCParser.extract_plain_text(args.lrc.read_text(encoding="utf-8")))
    return 0


async def cmd_import(args: argparse.Namespace, settings: AppSettings) -> int:
    service = LyricsService(settings=settings)
    await service.initialize()
    try:
        result = await service.save_lrc_text(
            args.song_id,
            args.lrc.read_text(encoding="utf-8"),
            capabilities_from_args(args),
        )
    finally:
        await service.close()

    if not result.ok:
        print(f"✗ {result.error}")
        return 1
    print(f"✓ {len(result.record.synced_lyrics)} líneas guardadas para {args.song_id}")
    return 0


def run_interactive(args: argparse.Namespace, settings: AppSettings) -> int:
    """Ejecuta los subcomandos que reproducen audio (sync, resync, play)."""
    # QtWidgets y QtMultimedia solo se cargan en los modos con audio
    import qasync
    from PyQt6.QtWidgets import QApplication

    app = QApplication(sys.argv[:1])
    app.setApplicationName("lrcsync")

    # Crear event loop con qasync
    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)

    lrcsync_app = LrcSyncApp(settings, capabilities_from_args(args))
    lrcsync_app.app = app

    async def run_app():
        if not await lrcsync_app.initialize(args.audio):
            lrcsync_app.exit_code = 1
            app.quit()
            return

        try:
            if args.cmd == "sync":
                lrcsync_app.song_id = args.song_id
                lrcsync_app.out_path = args.out
                lrcsync_app.metadata = LrcMetadata(title=args.title, artist=args.artist)
                await lrcsync_app.start_sync(args.lyrics.read_text(encoding="utf-8"))
            elif args.cmd == "resync":
                lrcsync_app.song_id = args.song_id
                lrcsync_app.out_path = args.out
                timeline = await lrcsync_app.lyrics_service.begin_resync(
                    args.song_id,
                    lrcsync_app.capabilities,
                    nudge_step=settings.nudge_step_s,
                )
                lrcsync_app.attach_timeline(timeline)
            else:
                lrcsync_app.prepare_playback(args.lrc.read_text(encoding="utf-8"))
        except (LrcSyncError, OSError) as e:
            logger.error(f"{e}")
            lrcsync_app.exit_code = 1
            await lrcsync_app.cleanup()
            app.quit()
            return

        await lrcsync_app.run()

    with loop:
        try:
            loop.run_until_complete(run_app())
        except KeyboardInterrupt:
            logger.info("Interrupción de teclado")

    return lrcsync_app.exit_code


def main(argv: Optional[list[str]] = None) -> int:
    """Punto de entrada principal."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    settings = SettingsManager(args.settings).settings

    try:
        if args.cmd == "check":
            return cmd_check(args)
        if args.cmd == "plain":
            return cmd_plain(args)
        if args.cmd == "import":
            return asyncio.run(cmd_import(args, settings))
    except (LrcSyncError, OSError) as e:
        print(f"✗ {e}")
        return 1

    return run_interactive(args, settings)


if __name__ == "__main__":
    sys.exit(main())
