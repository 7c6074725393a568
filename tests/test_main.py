import asyncio
import json

import pytest

from lrcsync.clock import ManualClock
from lrcsync.exceptions import ForbiddenError, StorageError
from lrcsync.hotkeys import HotkeyAction
from lrcsync.lyrics_service import Capabilities, LyricsService
from lrcsync.main import LrcSyncApp, build_parser, capabilities_from_args, main
from lrcsync.settings import AppSettings
from lrcsync.storage import LocalLyricsStore, LyricsStore
from lrcsync.sync_timeline import TimelineState

LRC_TEXT = "[ti:Song]\n[ar:Artist]\n[offset:+1000]\n[00:01.00]first\n[00:04.50]second\n"

USER = Capabilities(is_authenticated=True, user_id="user-1")


class BrokenStore(LyricsStore):
    def __init__(self, error):
        self.error = error

    async def save(self, record):
        raise self.error

    async def load(self, song_id):
        return None


@pytest.fixture
def lrc_file(tmp_path):
    path = tmp_path / "song.lrc"
    path.write_text(LRC_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"storage_dir": str(tmp_path / "lyrics")}), encoding="utf-8")
    return path


class TestCli:
    def test_parser(self):
        args = build_parser().parse_args(["--user", "u1", "--admin", "sync", "a.mp3", "l.txt", "--song-id", "s1"])
        assert args.cmd == "sync"
        assert args.song_id == "s1"
        assert args.out is None

    def test_capabilities_from_args(self):
        parser = build_parser()
        assert capabilities_from_args(parser.parse_args(["check", "x.lrc"])) == Capabilities()
        assert capabilities_from_args(
            parser.parse_args(["--admin", "check", "x.lrc"])
        ) == Capabilities()
        assert capabilities_from_args(
            parser.parse_args(["--user", "u1", "--admin", "check", "x.lrc"])
        ) == Capabilities.admin("u1")

    def test_check_valid_file(self, lrc_file, settings_file, capsys):
        assert main(["--settings", str(settings_file), "check", str(lrc_file)]) == 0
        out = capsys.readouterr().out
        assert "2 líneas sincronizadas" in out
        assert "Artist - Song" in out
        assert "[00:01.00] -> [00:04.50]" in out

    def test_check_without_synced_lines(self, tmp_path, settings_file, capsys):
        path = tmp_path / "plain.lrc"
        path.write_text("just\nwords\n", encoding="utf-8")
        assert main(["--settings", str(settings_file), "check", str(path)]) == 1
        assert "no synchronized lines" in capsys.readouterr().out

    def test_plain(self, lrc_file, settings_file, capsys):
        assert main(["--settings", str(settings_file), "plain", str(lrc_file)]) == 0
        assert capsys.readouterr().out.endswith("first\nsecond\n")

    def test_missing_file(self, tmp_path, settings_file, capsys):
        missing = str(tmp_path / "missing.lrc")
        assert main(["--settings", str(settings_file), "check", missing]) == 1
        assert main(["--settings", str(settings_file), "plain", missing]) == 1
        assert main(["--settings", str(settings_file), "--user", "u1", "import", "s1", missing]) == 1
        assert "✗" in capsys.readouterr().out

    def test_import_requires_user(self, lrc_file, settings_file, capsys):
        assert main(["--settings", str(settings_file), "import", "s1", str(lrc_file)]) == 1
        assert "✗" in capsys.readouterr().out

    def test_import(self, tmp_path, lrc_file, settings_file, capsys):
        argv = ["--settings", str(settings_file), "--user", "u1", "import", "s1", str(lrc_file)]
        assert main(argv) == 0
        assert "2 líneas guardadas" in capsys.readouterr().out
        assert len(list((tmp_path / "lyrics").glob("*.json"))) == 1

        # La segunda vez ya existe y el usuario no es admin
        assert main(argv) == 1


class TestSyncMode:
    def make_app(self, tmp_path):
        app = LrcSyncApp(AppSettings(storage_dir=str(tmp_path)), Capabilities())
        app.prepare_sync("first\nsecond")
        return app

    def test_hotkeys_drive_timeline(self, tmp_path, capsys):
        app = self.make_app(tmp_path)

        app.timeline.update_time(1.0)
        app._on_hotkey(HotkeyAction.TAP)
        app.timeline.update_time(2.0)
        app._on_hotkey(HotkeyAction.TAP)
        assert app.timeline.timestamps == [1.0, 2.0]
        assert app.timeline.state == TimelineState.FULLY_SYNCED

        app._on_hotkey(HotkeyAction.NUDGE_FORWARD)
        assert app.timeline.timestamps[1] == pytest.approx(2.1)

        app._on_hotkey(HotkeyAction.UNDO)
        app._on_hotkey(HotkeyAction.CLEAR_LAST)
        assert app.timeline.timestamps == [1.0, 0.0]
        assert "Todas las líneas sincronizadas" in capsys.readouterr().out

    def test_commit_incomplete_is_refused(self, tmp_path, capsys):
        app = self.make_app(tmp_path)
        app._on_hotkey(HotkeyAction.COMMIT)
        assert "Faltan 2 líneas" in capsys.readouterr().out
        assert app.timeline.state == TimelineState.SYNCING

    def test_commit_writes_lrc(self, tmp_path):
        app = self.make_app(tmp_path)
        app.out_path = tmp_path / "out.lrc"
        app.timeline.tap(at=1.5)
        app.timeline.tap(at=3.0)

        asyncio.run(app._commit_and_save())

        assert app.timeline.state == TimelineState.COMMITTED
        assert app.out_path.read_text(encoding="utf-8") == "[00:01.50]first\n[00:03.00]second\n"
        assert app.exit_code == 0

    def test_commit_to_unwritable_path(self, tmp_path, capsys):
        app = self.make_app(tmp_path)
        app.out_path = tmp_path  # un directorio
        app.timeline.tap(at=1.5)
        app.timeline.tap(at=3.0)

        asyncio.run(app._commit_and_save())

        assert app.timeline.state == TimelineState.COMMITTED
        assert app.exit_code == 1
        assert not app._saving
        assert "[00:01.50]first" in capsys.readouterr().out

    def test_commit_with_failed_save(self, tmp_path):
        app = LrcSyncApp(AppSettings(), USER)
        app.lyrics_service = LyricsService(store=BrokenStore(StorageError("disk full")))
        app.song_id = "song"
        app.out_path = tmp_path / "out.lrc"
        app.prepare_sync("first\nsecond")
        app.timeline.tap(at=1.5)
        app.timeline.tap(at=3.0)

        asyncio.run(app._commit_and_save())

        assert app.out_path.exists()
        assert app.exit_code == 1
        assert not app._saving

    def test_unexpected_save_error_is_logged(self, tmp_path):
        app = LrcSyncApp(AppSettings(), USER)
        app.lyrics_service = LyricsService(store=BrokenStore(RuntimeError("boom")))
        app.song_id = "song"
        app.out_path = tmp_path / "out.lrc"
        app.prepare_sync("first\nsecond")
        app.timeline.tap(at=1.5)
        app.timeline.tap(at=3.0)

        async def scenario():
            app._on_hotkey(HotkeyAction.COMMIT)
            with pytest.raises(RuntimeError):
                await app._save_task
            await asyncio.sleep(0)

        asyncio.run(scenario())

        assert app.exit_code == 1
        assert not app._saving
        assert app.timeline.state == TimelineState.COMMITTED

    def test_start_sync_checks_permissions_first(self, tmp_path):
        app = LrcSyncApp(AppSettings(), Capabilities())
        app.lyrics_service = LyricsService(store=LocalLyricsStore(tmp_path))
        app.song_id = "song"

        with pytest.raises(ForbiddenError):
            asyncio.run(app.start_sync("first\nsecond"))
        assert app.timeline is None

    def test_start_sync_for_allowed_user(self, tmp_path):
        app = LrcSyncApp(AppSettings(), USER)
        app.lyrics_service = LyricsService(store=LocalLyricsStore(tmp_path))
        app.song_id = "song"

        asyncio.run(app.start_sync("first\nsecond"))
        assert app.timeline.state == TimelineState.SYNCING

class TestPlayMode:
    def test_offset_hotkeys(self, capsys):
        app = LrcSyncApp(AppSettings(), Capabilities())
        app.clock = ManualClock(duration=60.0)
        app.prepare_playback(LRC_TEXT)
        assert app.follower.offset_ms == 1000

        app._on_hotkey(HotkeyAction.OFFSET_INCREASE)
        assert app.follower.offset_ms == 1500
        app._on_hotkey(HotkeyAction.OFFSET_RESET)
        assert app.follower.offset_ms == 0
        app._on_hotkey(HotkeyAction.UNDO)
        assert app.follower.offset_ms == 1500

        app.clock.seek(4.0)
        assert "(2/2) second" in capsys.readouterr().out
