"""Alert chime synthesis and playback.

The chime is a fixed sequence of three sine tones rendered into one buffer
with numpy and played through the pygame mixer. Playback never raises: an
unusable audio device only costs the sound, not the alert.
"""

import logging
import os
from dataclasses import dataclass

import numpy as np

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
import pygame  # noqa: E402

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100
PEAK_GAIN = 0.2
FLOOR_GAIN = 0.01
ATTACK_SECONDS = 0.01


@dataclass(frozen=True)
class Tone:
    """One beep: pitch in Hz, length and start offset in seconds."""

    frequency: float
    duration: float
    delay: float = 0.0


ALERT_TONES = (
    Tone(800, 0.2, 0.0),
    Tone(1000, 0.2, 0.3),
    Tone(800, 0.3, 0.6),
)


class AudioUnavailable(Exception):
    """Raised when the audio output cannot be opened or used."""


def render_tone(tone: Tone, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Render a tone with a short linear attack and exponential decay."""
    n = int(tone.duration * sample_rate)
    if n <= 0:
        return np.zeros(0)

    t = np.arange(n) / sample_rate
    wave = np.sin(2 * np.pi * tone.frequency * t)

    attack = min(n, int(ATTACK_SECONDS * sample_rate))
    envelope = np.empty(n)
    envelope[:attack] = np.linspace(0.0, PEAK_GAIN, attack, endpoint=False)
    decay = n - attack
    if decay:
        envelope[attack:] = PEAK_GAIN * np.power(
            FLOOR_GAIN / PEAK_GAIN, np.linspace(0.0, 1.0, decay)
        )

    return wave * envelope


def render_sequence(
    tones=ALERT_TONES, sample_rate: int = SAMPLE_RATE, channels: int = 2
) -> np.ndarray:
    """Mix tones at their delays into one 16-bit PCM buffer.

    Returns:
        int16 array shaped (samples,) for mono or (samples, channels)
    """
    total = max(
        int(tone.delay * sample_rate) + int(tone.duration * sample_rate)
        for tone in tones
    )
    buffer = np.zeros(total)

    for tone in tones:
        start = int(tone.delay * sample_rate)
        wave = render_tone(tone, sample_rate)
        end = min(total, start + len(wave))
        buffer[start:end] += wave[: end - start]

    audio = (np.clip(buffer, -1.0, 1.0) * 32767).astype(np.int16)
    if channels == 1:
        return audio
    return np.ascontiguousarray(np.repeat(audio.reshape(-1, 1), channels, axis=1))


class Chime:
    """Plays the alert tone sequence on the local audio device.

    The mixer is opened on first use and reused. If it has been shut down
    since, it is reopened before the next playback.
    """

    def __init__(self, tones=ALERT_TONES, enabled: bool = True):
        self.tones = tuple(tones)
        self.enabled = enabled
        self._sound = None

    def _ensure_mixer(self) -> tuple:
        init = pygame.mixer.get_init()
        if init is None:
            try:
                pygame.mixer.init(
                    frequency=SAMPLE_RATE, size=-16, channels=2, buffer=512
                )
            except pygame.error as e:
                raise AudioUnavailable(str(e)) from e
            # Sounds are bound to the mixer that created them
            self._sound = None
            init = pygame.mixer.get_init()
            if init is None:
                raise AudioUnavailable("mixer did not initialise")
            logger.debug(f"Audio mixer opened: {init}")
        return init

    def _load(self, frequency: int, channels: int):
        if self._sound is None:
            samples = render_sequence(self.tones, frequency, channels)
            try:
                self._sound = pygame.sndarray.make_sound(samples)
            except (pygame.error, ValueError) as e:
                raise AudioUnavailable(str(e)) from e
        return self._sound

    def play(self) -> bool:
        """Start the chime without waiting for it to finish.

        Returns:
            True if playback started
        """
        if not self.enabled:
            return False

        try:
            frequency, _, channels = self._ensure_mixer()
            sound = self._load(frequency, channels)
            sound.play()
        except AudioUnavailable as e:
            logger.warning(f"Could not play alert sound: {e}")
            return False
        except Exception:
            # pygame raises NotImplementedError when built without a mixer
            logger.exception("Could not play alert sound")
            return False

        return True
