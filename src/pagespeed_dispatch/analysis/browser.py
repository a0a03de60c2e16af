"""
Headless Chrome для Lighthouse.

Правила:
- один экземпляр Chrome на процесс воркера (слот ёмкостью 1)
- захват в начале обработки записи, освобождение на любом пути выхода
  (успех, исключение, таймаут) до чтения следующей записи
"""

from __future__ import annotations

import shutil
import socket
import subprocess
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass

from pagespeed_dispatch.common.config import get_settings, parse_csv
from pagespeed_dispatch.common.errors import AnalysisUnreachable
from pagespeed_dispatch.common.logging import get_project_logger

log = get_project_logger()


@dataclass
class ChromeInstance:
    port: int
    process: subprocess.Popen | None = None
    user_data_dir: str | None = None

    def kill(self) -> None:
        proc = self.process
        if proc is not None and proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                with suppress(subprocess.TimeoutExpired):
                    proc.wait(timeout=5)
        if self.user_data_dir:
            shutil.rmtree(self.user_data_dir, ignore_errors=True)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def _wait_port(port: int, *, proc: subprocess.Popen, timeout_sec: float) -> bool:
    deadline = time.monotonic() + timeout_sec
    while time.monotonic() < deadline:
        if proc.poll() is not None:
            return False
        with suppress(OSError), socket.create_connection(("127.0.0.1", port), timeout=0.5):
            return True
        time.sleep(0.1)
    return False


def launch_chrome() -> ChromeInstance:
    """
    Запуск Chrome с remote debugging на свободном порту.
    """
    s = get_settings()
    port = _free_port()
    user_data_dir = tempfile.mkdtemp(prefix="pagespeed-chrome-")
    cmd = [
        s.chrome_bin,
        f"--remote-debugging-port={port}",
        f"--user-data-dir={user_data_dir}",
        *parse_csv(s.chrome_flags),
        "about:blank",
    ]
    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        shutil.rmtree(user_data_dir, ignore_errors=True)
        raise AnalysisUnreachable(
            "Не удалось запустить Chrome", details={"bin": s.chrome_bin, "err": str(e)[:200]}
        ) from e

    chrome = ChromeInstance(port=port, process=proc, user_data_dir=user_data_dir)
    if not _wait_port(port, proc=proc, timeout_sec=float(s.chrome_startup_timeout_sec)):
        chrome.kill()
        raise AnalysisUnreachable(
            "Chrome не поднял remote debugging порт", details={"port": port}
        )
    log.info("chrome_launched", extra={"payload": {"port": port, "pid": proc.pid}})
    return chrome


class BrowserSlot:
    """
    Эксклюзивный доступ к одному экземпляру Chrome.
    """

    def __init__(self, launcher: Callable[[], ChromeInstance] | None = None) -> None:
        self._launcher = launcher or launch_chrome
        self._lock = threading.Lock()
        self._active: ChromeInstance | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def acquire(self) -> Iterator[ChromeInstance]:
        self._lock.acquire()
        try:
            self._active = self._launcher()
            try:
                yield self._active
            finally:
                chrome, self._active = self._active, None
                chrome.kill()
                log.info("chrome_released", extra={"payload": {"port": chrome.port}})
        finally:
            self._lock.release()


_slot: BrowserSlot | None = None


def browser_slot() -> BrowserSlot:
    """
    Слот процесса (singleton).
    """
    global _slot
    if _slot is None:
        _slot = BrowserSlot()
    return _slot
