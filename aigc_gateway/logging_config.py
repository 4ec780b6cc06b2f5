import datetime
import logging
import shutil
from pathlib import Path
from typing import Callable, TextIO
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import settings

_LOGGING_CONFIGURED = False

LOGGER_NAME = "aigc_gateway"


def _resolve_tzinfo(timezone_name: str | None) -> datetime.tzinfo:
    if timezone_name:
        try:
            return ZoneInfo(timezone_name)
        except ZoneInfoNotFoundError:
            pass
    # Fallback to system local timezone
    return datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc


class LocalTimezoneFormatter(logging.Formatter):
    """
    Logging formatter that forces timestamps into a configured timezone.
    Defaults to the system local timezone when LOG_TIMEZONE is not set
    or when the provided timezone is invalid.
    """

    def __init__(self, *args, timezone_name: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._tzinfo = _resolve_tzinfo(timezone_name)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")


def _project_root() -> Path:
    # aigc_gateway/logging_config.py -> aigc_gateway -> project root
    return Path(__file__).resolve().parents[1]


def _resolve_log_dir(value: str | Path) -> Path:
    p = value if isinstance(value, Path) else Path(value)
    if p.is_absolute():
        return p
    return _project_root() / p


def infer_log_surface(record: logging.LogRecord) -> str:
    """
    Map a log record back to the caller-facing surface that produced it.

    Every module logs through the shared `logger` instance, so the
    callsite path is the only reliable hint.
    """
    name = record.name or ""
    if name.startswith("uvicorn.access"):
        return "access"
    if name.startswith("uvicorn"):
        return "server"

    path = (record.pathname or "").replace("\\", "/")
    if "video" in path:
        return "video"
    if "kling" in path:
        return "kling"
    if "gemini" in path:
        return "gemini"
    if "chat" in path:
        return "chat"
    if "/aigc_gateway/upstream/" in path:
        return "upstream"
    return "gateway"


class DailyFolderFileHandler(logging.Handler):
    """
    Writes logs to: <log_dir>/<YYYY-MM-DD>/<surface>.log
    and keeps at most backup_days date folders.
    """

    def __init__(
        self,
        log_dir: Path,
        backup_days: int = 7,
        encoding: str = "utf-8",
        timezone_name: str | None = None,
        now_fn: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        super().__init__()
        self.log_dir = log_dir
        self.backup_days = backup_days
        self.encoding = encoding
        self.terminator = "\n"
        self._tzinfo = _resolve_tzinfo(timezone_name)
        # now_fn is mainly for tests.
        self._now_fn = now_fn
        self._current_date: datetime.date | None = None
        self._streams: dict[str, TextIO] = {}

    def _today(self) -> datetime.date:
        if self._now_fn is not None:
            now = self._now_fn()
        else:
            now = datetime.datetime.now(tz=self._tzinfo)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self._tzinfo)
        return now.date()

    def _cleanup_old_dirs(self) -> None:
        if self.backup_days <= 0:
            return
        try:
            dirs = [p for p in self.log_dir.iterdir() if p.is_dir()]
        except OSError:
            return

        dated: list[tuple[datetime.date, Path]] = []
        for p in dirs:
            try:
                day = datetime.date.fromisoformat(p.name)
            except ValueError:
                continue
            dated.append((day, p))

        dated.sort(key=lambda x: x[0])
        if len(dated) <= self.backup_days:
            return
        for _, old_dir in dated[: len(dated) - self.backup_days]:
            shutil.rmtree(old_dir, ignore_errors=True)

    def _close_all_streams(self) -> None:
        for stream in self._streams.values():
            try:
                stream.close()
            except OSError:
                pass
        self._streams.clear()

    def _stream_for(self, surface: str) -> TextIO:
        today = self._today()
        if self._current_date != today:
            # Date changed or first use: rotate every open file.
            self._close_all_streams()
            self._current_date = today
            self._cleanup_old_dirs()

        stream = self._streams.get(surface)
        if stream is None:
            file_path = self.log_dir / today.isoformat() / f"{surface}.log"
            file_path.parent.mkdir(parents=True, exist_ok=True)
            stream = open(file_path, "a", encoding=self.encoding)
            self._streams[surface] = stream
        return stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            surface = getattr(record, "surface", None) or infer_log_surface(record)
            stream = self._stream_for(surface)
            stream.write(self.format(record) + self.terminator)
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            self._close_all_streams()
        finally:
            super().close()


class EnsureSurfaceFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not hasattr(record, "surface"):
            setattr(record, "surface", infer_log_surface(record))
        return True


def setup_logging() -> None:
    """
    Configure application logging.
    Writes logs to a daily rotating folder under LOG_DIR (default: ./logs/),
    with one file per surface, e.g. logs/2025-12-12/kling.log.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    log_dir = _resolve_log_dir(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    app_logger = logging.getLogger(LOGGER_NAME)

    level_value = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    if not isinstance(level_value, int):
        level_value = logging.INFO

    formatter = LocalTimezoneFormatter(
        "%(asctime)s [%(levelname)s] [%(surface)s] %(name)s - %(message)s",
        timezone_name=settings.log_timezone,
    )

    file_handler = DailyFolderFileHandler(
        log_dir=log_dir,
        backup_days=settings.log_backup_days,
        encoding="utf-8",
        timezone_name=settings.log_timezone,
    )
    file_handler.setFormatter(formatter)
    file_handler.addFilter(EnsureSurfaceFilter())
    app_logger.setLevel(level_value)
    app_logger.propagate = True  # let logs also go to root/uvicorn handlers (console)
    app_logger.addHandler(file_handler)

    # Console handler: attach to root so that uvicorn and gateway logs are
    # visible in the terminal.
    root_logger.setLevel(level_value)
    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root_logger.handlers
    )
    if not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.addFilter(EnsureSurfaceFilter())
        root_logger.addHandler(console_handler)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger(LOGGER_NAME)
