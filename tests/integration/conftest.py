from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest


class PathCollector:
    """Thread-safe helper for waiting on watcher callbacks."""

    def __init__(self) -> None:
        self.paths: list[Path] = []
        self._condition = threading.Condition()

    def add(self, path: Path) -> None:
        with self._condition:
            self.paths.append(path)
            self._condition.notify_all()

    def wait_for(self, count: int, timeout: float = 10.0) -> bool:
        """Wait until at least ``count`` paths have been reported."""

        deadline = time.monotonic() + timeout
        with self._condition:
            while len(self.paths) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._condition.wait(timeout=remaining)
            return True


def write_message(
    path: Path,
    *,
    sender: str,
    subject: str,
    body: str,
    return_path: str | None = None,
    auth: str = "spf=pass; dkim=pass; dmarc=pass",
) -> Path:
    lines = [
        f"From: {sender}",
        "To: inbox@example.com",
        f"Subject: {subject}",
        f"Return-Path: <{return_path or sender}>",
        f"Authentication-Results: mx.example.com; {auth}",
        f"Message-ID: <{path.stem}@example.com>",
        "",
        body,
        "",
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines), encoding="utf-8")
    return path


@pytest.fixture
def collector() -> PathCollector:
    return PathCollector()
