"""
Playback control over an external audio engine

The audio engine is a capability supplied by the host application: it loads a
local file and returns a handle with play/pause/seek/unload primitives, and it
reports status changes through a callback. PlaybackController owns the single
"currently loaded" handle:

- Switching tracks always unloads the previous handle before loading the next
  one. A failing unload is logged and the switch goes ahead.
- Only completely downloaded tracks are loaded.
- A status update that reports the end of the track calls ``on_finish``; a
  status update carrying an error calls ``on_error`` with a PlaybackError.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ..storage.exceptions import PlaybackError
from ..storage.models import Track
from ..storage.naming import get_file_path
from ..utils.logger import get_logger


@dataclass
class PlaybackStatus:
    """Status notification from the audio engine"""
    is_loaded: bool = False
    position_millis: int = 0
    duration_millis: Optional[int] = None
    is_buffering: bool = False
    is_playing: bool = False
    did_just_finish: bool = False
    error: Optional[str] = None


StatusCallback = Callable[[PlaybackStatus], None]


class SoundHandle(ABC):
    """A loaded sound"""

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def set_position(self, millis: int) -> None: ...

    @abstractmethod
    def play_from_position(self, millis: int) -> None: ...

    @abstractmethod
    def set_on_status_update(self, callback: Optional[StatusCallback]) -> None: ...

    @abstractmethod
    def unload(self) -> None: ...


class AudioEngine(ABC):
    """Loads sounds from local files"""

    @abstractmethod
    def load(self, uri: str, initial_status: Dict[str, Any], on_status: StatusCallback) -> SoundHandle: ...


class PlaybackController:
    """Keeps one sound loaded and mirrors its status"""

    def __init__(
        self,
        engine: AudioEngine,
        document_root: Union[str, Path],
        on_finish: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[PlaybackError], None]] = None,
    ):
        self.engine = engine
        self.document_root = Path(document_root)
        self.on_finish = on_finish
        self.on_error = on_error
        self.logger = get_logger(__name__)

        self._lock = threading.RLock()
        self.sound: Optional[SoundHandle] = None
        self.track: Optional[Track] = None
        self.should_play = False

        self.current_time = 0
        self.duration: Optional[int] = None
        self.position = 0.0
        self.is_buffering = False
        self.is_playing = False
        self.is_seeking = False

    @property
    def is_loaded(self) -> bool:
        return self.sound is not None

    def unload(self) -> None:
        """Release the current sound; failures are logged, never raised"""
        with self._lock:
            sound, self.sound = self.sound, None
            self.track = None
            self.is_playing = False
            self.current_time = 0
            self.position = 0.0
        if sound is None:
            return
        try:
            sound.set_on_status_update(None)
            sound.unload()
        except Exception as e:
            self.logger.error(f"Failed to unload sound: {e}", exc_info=True)

    def initialize_sound(self, track: Optional[Track], should_play: bool) -> bool:
        """
        Replace the loaded sound with the given track

        Args:
            track: Track to load; nothing is loaded unless it is fully downloaded
            should_play: Start playing once loaded

        Returns:
            True if a sound was loaded
        """
        self.unload()
        self.should_play = should_play

        if track is None or not track.is_downloaded:
            return False

        uri = str(get_file_path(track, self.document_root))
        initial_status = {'rate': 1.0, 'should_play': should_play, 'volume': 1.0}

        try:
            sound = self.engine.load(uri, initial_status, self.handle_status_update)
        except Exception as e:
            self.logger.error(f"Failed to load {uri}: {e}", exc_info=True)
            self._report_error(PlaybackError(f"Cannot play {track.name}", details={'uri': uri, 'original_error': str(e)}))
            return False

        with self._lock:
            self.sound = sound
            self.track = track
        self.logger.debug(f"Loaded {track.name}")
        return True

    def handle_status_update(self, status: PlaybackStatus) -> None:
        """Callback given to the audio engine"""
        if status.is_loaded:
            with self._lock:
                self.current_time = status.position_millis
                self.duration = status.duration_millis
                self.is_buffering = status.is_buffering
                self.is_playing = status.is_playing
                if not self.is_seeking and status.duration_millis:
                    self.position = status.position_millis / status.duration_millis
            if status.did_just_finish and self.on_finish:
                self.on_finish()
        elif status.error:
            self.logger.error(f"Player Error: {status.error}")
            self._report_error(PlaybackError(f"Playback failed: {status.error}", details={'track': self.track.name if self.track else None}))

    def set_playing(self, should_play: bool) -> None:
        """Play or pause the loaded sound"""
        self.should_play = should_play
        sound = self.sound
        if sound is None:
            return
        if should_play:
            sound.play()
        else:
            sound.pause()

    def seeking(self, position: float) -> None:
        """Track a seek gesture without moving the sound yet"""
        with self._lock:
            self.is_seeking = True
            self.position = _clamp_fraction(position)

    def seek_to(self, position: float) -> None:
        """
        Move playback to a fraction (0..1) of the track duration

        Keeps playing if the sound was playing, otherwise only moves the position.
        """
        position = _clamp_fraction(position)
        sound = self.sound
        if sound is not None and self.duration:
            millis = int(position * self.duration)
            if self.should_play:
                sound.play_from_position(millis)
            else:
                sound.set_position(millis)
        with self._lock:
            self.is_seeking = False
            self.position = position

    def _report_error(self, error: PlaybackError) -> None:
        if self.on_error:
            self.on_error(error)


def _clamp_fraction(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
