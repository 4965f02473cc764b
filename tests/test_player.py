"""Test the playback controller"""

import pytest

from conftest import make_track
from demotape.player.controller import PlaybackController, PlaybackStatus


@pytest.fixture
def finished():
    return []


@pytest.fixture
def errors():
    return []


@pytest.fixture
def controller(audio_engine, temp_dir, finished, errors):
    return PlaybackController(
        audio_engine,
        temp_dir,
        on_finish=lambda: finished.append(True),
        on_error=errors.append,
    )


class TestInitializeSound:
    """Test loading and unloading sounds"""

    def test_loads_downloaded_track(self, controller, audio_engine, temp_dir):
        assert controller.initialize_sound(make_track(status=100), should_play=False)
        assert audio_engine.sounds[0].uri == str(temp_dir / "abc_3.mp3")
        assert controller.is_loaded

    def test_skips_incomplete_track(self, controller, audio_engine):
        assert not controller.initialize_sound(make_track(status=99), should_play=True)
        assert not controller.initialize_sound(None, should_play=True)
        assert audio_engine.sounds == []

    def test_unloads_previous_first(self, controller, audio_engine):
        controller.initialize_sound(make_track(status=100), should_play=True)
        controller.initialize_sound(make_track("def", "1", status=100), should_play=True)
        assert audio_engine.sounds[0].calls == ['unload']
        assert controller.track.id == "def"

    def test_failing_unload_does_not_block(self, controller, audio_engine):
        controller.initialize_sound(make_track(status=100), should_play=True)
        audio_engine.sounds[0].unload_error = RuntimeError("already released")
        assert controller.initialize_sound(make_track("def", "1", status=100), should_play=True)
        assert len(audio_engine.sounds) == 2

    def test_load_failure_reported(self, controller, audio_engine, errors):
        audio_engine.load_error = OSError("unsupported format")
        assert not controller.initialize_sound(make_track(status=100), should_play=True)
        assert errors[0].message == "Cannot play My Song.mp3"
        assert not controller.is_loaded


class TestStatusUpdates:
    def test_position_tracking(self, controller):
        controller.initialize_sound(make_track(status=100), should_play=True)
        controller.handle_status_update(PlaybackStatus(is_loaded=True, position_millis=30000, duration_millis=120000, is_playing=True))
        assert controller.position == 0.25
        assert controller.is_playing

    def test_finish_callback(self, controller, finished):
        controller.handle_status_update(PlaybackStatus(is_loaded=True, did_just_finish=True))
        assert finished == [True]

    def test_error_callback(self, controller, errors):
        controller.handle_status_update(PlaybackStatus(error="device lost"))
        assert errors[0].message == "Playback failed: device lost"


class TestSeeking:
    """Test seeking within a track"""

    @pytest.fixture
    def loaded(self, controller, audio_engine):
        controller.initialize_sound(make_track(status=100), should_play=True)
        controller.handle_status_update(PlaybackStatus(is_loaded=True, duration_millis=200000))
        return audio_engine.sounds[0]

    def test_seek_while_playing(self, controller, loaded):
        controller.seek_to(0.5)
        assert loaded.calls == [('play_from_position', 100000)]

    def test_seek_while_paused(self, controller, loaded):
        controller.set_playing(False)
        controller.seek_to(0.25)
        assert loaded.calls == ['pause', ('set_position', 50000)]

    def test_seek_clamped(self, controller, loaded):
        controller.seeking(1.7)
        assert controller.is_seeking and controller.position == 1.0
        controller.seek_to(-3)
        assert loaded.calls == [('play_from_position', 0)]
        assert not controller.is_seeking

    def test_seek_without_sound(self, controller):
        controller.seek_to(0.5)
        assert controller.position == 0.5
