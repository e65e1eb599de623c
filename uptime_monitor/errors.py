from __future__ import annotations


class UptimeMonitorError(Exception):
    pass


class ConfigError(UptimeMonitorError, ValueError):
    pass


class SnapshotWriteError(UptimeMonitorError):
    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"Failed to write snapshot path={path}: {type(cause).__name__}: {cause}")
        self.path = path
        self.cause = cause
