"""Playback control over a host-supplied audio engine"""

from .controller import AudioEngine, PlaybackController, PlaybackStatus, SoundHandle

__all__ = [
    'AudioEngine',
    'PlaybackController',
    'PlaybackStatus',
    'SoundHandle'
]
