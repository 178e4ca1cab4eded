"""Alert side effects and their rate limiting.

Two suppression layers are stacked on purpose:
  * ``AlertGate`` lets one alert episode through and stays closed until the
    audio cue reports that it has finished playing.
  * ``Notifier`` drops notifications inside its own cooldown window, so a
    delayed or lost cue-finished signal still cannot flood the desktop.
"""
from __future__ import annotations
import platform
import shutil
import subprocess
import sys
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from .logging_utils import log

if sys.platform == "win32":  # pragma: no cover
    import winsound
    try:
        from win10toast import ToastNotifier  # type: ignore[import-untyped]
    except ImportError:
        ToastNotifier = None  # type: ignore


class AlertState(Enum):
    ARMED = 'armed'
    COOLING_DOWN = 'cooling_down'


class Cue(Protocol):
    def play(self, on_finished: Callable[[], None]) -> None: ...


class NotificationChannel(Protocol):
    def notify(self, title: str, body: str) -> bool: ...


class SoundCue:
    """Plays a sound file on a worker thread and reports when it is done."""

    PLAYERS = {
        'Darwin': ['afplay'],
        'Linux': ['paplay', 'aplay'],
    }

    def __init__(self, sound_path: Optional[str] = None, *, bell_seconds: float = 1.5, timeout_seconds: float = 30.0,
                 log_level: str = 'info'):
        self.sound_path = sound_path
        self.bell_seconds = bell_seconds
        self.timeout_seconds = timeout_seconds
        self.log_level = log_level
        self.platform = platform.system()

    def _command(self) -> Optional[List[str]]:
        for exe in self.PLAYERS.get(self.platform, []):
            if shutil.which(exe):
                return [exe, str(self.sound_path)]
        return None

    def _play_blocking(self) -> None:
        if self.platform == 'Windows':  # pragma: no cover
            winsound.PlaySound(str(self.sound_path), winsound.SND_FILENAME)
            return
        cmd = self._command()
        if cmd is None:
            log(f'No audio player found on {self.platform}; ringing terminal bell', 'warn', cfg_level=self.log_level)
            self._bell()
            return
        subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True,
                       timeout=self.timeout_seconds)

    def _bell(self) -> None:
        # the bell has no length of its own; hold the episode open for bell_seconds
        print('\a', end='', flush=True)
        time.sleep(self.bell_seconds)

    def play(self, on_finished: Callable[[], None]) -> None:
        play = self._play_blocking if self.sound_path else self._bell

        def run():
            try:
                play()
            except Exception as e:
                log(f'Alert sound failed: {e}', 'error', cfg_level=self.log_level)
            finally:
                on_finished()
        threading.Thread(target=run, name='alert-cue', daemon=True).start()


def _in_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, name='alert-notify', daemon=True).start()


class Notifier:
    """Desktop notifications with a cooldown window and delivery history.

    Delivery happens through ``dispatch`` (a daemon thread by default) so the
    caller never waits on the notification daemon.
    """

    def __init__(self, cooldown_ms: int = 3000, *, log_level: str = 'info', clock: Callable[[], float] = time.monotonic,
                 dispatch: Callable[[Callable[[], None]], None] = _in_thread):
        self.cooldown_ms = cooldown_ms
        self.log_level = log_level
        self.platform = platform.system()
        self._clock = clock
        self._dispatch = dispatch
        self._lock = threading.Lock()
        self._last_sent: Optional[float] = None
        self._history: List[Dict[str, Any]] = []
        self.suppressed = 0

    def _rate_limit_check(self) -> bool:
        now = self._clock()
        if self._last_sent is not None and (now - self._last_sent) * 1000 < self.cooldown_ms:
            return False
        self._last_sent = now
        return True

    def _deliver(self, title: str, body: str) -> bool:
        if self.platform == 'Windows':  # pragma: no cover
            if ToastNotifier is None:
                return False
            ToastNotifier().show_toast(title, body, duration=5, threaded=True)
            return True
        if self.platform == 'Darwin':
            def q(s: str) -> str:
                return '"' + s.replace('\\', '\\\\').replace('"', '\\"') + '"'
            cmd = ['osascript', '-e', f'display notification {q(body)} with title {q(title)}']
        else:
            cmd = ['notify-send', title, body]
        if not shutil.which(cmd[0]):
            return False
        subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False, timeout=5)
        return True

    def notify(self, title: str, body: str) -> bool:
        """Returns False when the cooldown window swallowed the notification."""
        with self._lock:
            if not self._rate_limit_check():
                self.suppressed += 1
                log(f'Notification suppressed (cooldown {self.cooldown_ms} ms)', 'debug', cfg_level=self.log_level)
                return False
            entry: Dict[str, Any] = {'title': title, 'body': body, 'timestamp': time.time(), 'delivered': None}
            self._history.append(entry)

        def send():
            try:
                delivered = self._deliver(title, body)
            except (OSError, subprocess.SubprocessError) as e:
                log(f'Notification delivery failed: {e}', 'error', cfg_level=self.log_level)
                delivered = False
            if not delivered:
                log(f'{title}: {body}', 'warn', cfg_level=self.log_level)
            entry['delivered'] = delivered
        self._dispatch(send)
        return True

    def get_notification_history(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._history]


class AlertGate:
    """One sound per alert episode; every touched frame is offered to the notifier.

    The cue only plays on the ARMED -> COOLING_DOWN transition. The notifier is
    asked on every ``fire()`` regardless of state and applies its own cooldown,
    so notifications keep coming even if the cue never reports completion.
    """

    def __init__(self, cue: Cue, notifier: NotificationChannel, *, title: str, body: str, log_level: str = 'info'):
        self.cue = cue
        self.notifier = notifier
        self.title = title
        self.body = body
        self.log_level = log_level
        self._lock = threading.Lock()
        self._state = AlertState.ARMED
        self.episodes = 0

    @property
    def state(self) -> AlertState:
        with self._lock:
            return self._state

    def _notify(self) -> None:
        try:
            self.notifier.notify(self.title, self.body)
        except Exception as e:
            log(f'Notifier raised: {e}', 'error', cfg_level=self.log_level)

    def fire(self) -> bool:
        """Returns True when this call started a new episode (and its cue)."""
        with self._lock:
            start = self._state is AlertState.ARMED
            if start:
                self._state = AlertState.COOLING_DOWN
                self.episodes += 1
        self._notify()
        if not start:
            return False
        log(f'Alert episode {self.episodes}: {self.title}', cfg_level=self.log_level)
        try:
            self.cue.play(on_finished=self.cue_finished)
        except Exception as e:
            log(f'Could not start alert cue ({e}); re-arming', 'error', cfg_level=self.log_level)
            self.cue_finished()
        return True

    def cue_finished(self) -> None:
        with self._lock:
            if self._state is AlertState.ARMED:
                return
            self._state = AlertState.ARMED
        log('Alert cue finished; gate re-armed', 'debug', cfg_level=self.log_level)

    def reset(self) -> None:
        with self._lock:
            self._state = AlertState.ARMED
