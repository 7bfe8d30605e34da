"""
Markdown-based storage for session ledgers.

Each session is one markdown file with YAML frontmatter. The frontmatter is
the machine-readable state; the body is a rendering for humans and agents
that want to see what the dispatcher remembers about a session.

Writes go to a temporary file that is renamed over the old one, so a crash
never leaves a half-written ledger behind.
"""

import fcntl
import hashlib
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

import yaml

from ..errors import LedgerIOError
from ..logger import logger
from .types import SessionLedger, TodoItem

FRONTMATTER_PATTERN = re.compile(r"\A---\n(.*?)\n---[ \t]*\n", re.DOTALL)
SAFE_ID_PATTERN = re.compile(r"[^A-Za-z0-9_.-]")

TodoRef = Union[int, str]


class LedgerStore:
    """Markdown file store for session ledgers, one file per session."""

    def __init__(self, storage_path: str, idle_timeout: Optional[float] = None):
        """
        Initialize the ledger store.

        Args:
            storage_path: Root directory for ledger storage (e.g. ".hookwarden")
            idle_timeout: Seconds after which an untouched ledger is discarded
        """
        self.storage_path = Path(storage_path)
        self.idle_timeout = idle_timeout
        self._guard = threading.Lock()
        self._session_locks: Dict[str, threading.Lock] = {}

    @property
    def sessions_dir(self) -> Path:
        return self.storage_path / "sessions"

    @property
    def locks_dir(self) -> Path:
        return self.storage_path / "locks"

    def _init_structure(self, session_id: str) -> None:
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            self.locks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LedgerIOError(session_id, f"cannot create {self.storage_path}: {e}") from e

    @staticmethod
    def _file_stem(session_id: str) -> str:
        safe = SAFE_ID_PATTERN.sub("_", session_id)
        if safe != session_id or safe.startswith("."):
            digest = hashlib.sha1(session_id.encode("utf-8")).hexdigest()[:8]
            safe = f"{safe.lstrip('.')}-{digest}"
        return safe

    def session_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{self._file_stem(session_id)}.md"

    def _lock_path(self, session_id: str) -> Path:
        return self.locks_dir / f"{self._file_stem(session_id)}.lock"

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """
        Serialize all ledger access for one session.

        Holds an in-process lock for the session plus an exclusive advisory
        file lock, so separate hook processes for the same session also wait
        for each other. Both are released on every exit path.
        """
        with self._guard:
            thread_lock = self._session_locks.setdefault(session_id, threading.Lock())

        with thread_lock:
            self._init_structure(session_id)
            try:
                handle = open(self._lock_path(session_id), "a+")
            except OSError as e:
                raise LedgerIOError(session_id, f"cannot open lock file: {e}") from e
            try:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                except OSError as e:
                    raise LedgerIOError(session_id, f"cannot lock ledger: {e}") from e
                try:
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            finally:
                handle.close()

    def exists(self, session_id: str) -> bool:
        return self.session_path(session_id).exists()

    def load(self, session_id: str, now: Optional[datetime] = None) -> SessionLedger:
        """
        Load the ledger for a session, creating a fresh one if none exists.

        A ledger idle for longer than ``idle_timeout`` is discarded and
        replaced with a fresh one.

        Raises:
            LedgerIOError: If the file exists but cannot be read or parsed
        """
        now = now or datetime.now()
        ledger = self._read(session_id)
        if ledger is None:
            return SessionLedger(session_id=session_id, created=now, updated=now)

        if ledger.is_idle(now, self.idle_timeout):
            logger.info(f"[ledger] Discarding idle ledger for {session_id} (last update {ledger.updated.isoformat()})")
            self.delete(session_id)
            return SessionLedger(session_id=session_id, created=now, updated=now)

        return ledger

    def _read(self, session_id: str) -> Optional[SessionLedger]:
        path = self.session_path(session_id)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LedgerIOError(session_id, f"cannot read {path}: {e}") from e

        match = FRONTMATTER_PATTERN.match(content)
        if not match:
            raise LedgerIOError(session_id, f"{path} has no ledger frontmatter")

        try:
            state = yaml.safe_load(match.group(1))
            if not isinstance(state, dict):
                raise ValueError("frontmatter is not a mapping")
            state.setdefault("session_id", session_id)
            return SessionLedger.from_dict(state)
        except (yaml.YAMLError, ValueError, KeyError, TypeError) as e:
            raise LedgerIOError(session_id, f"corrupt ledger {path}: {e}") from e

    def save(self, ledger: SessionLedger) -> str:
        """
        Atomically write a ledger to its markdown file.

        Returns:
            Path to the ledger file

        Raises:
            LedgerIOError: If the file cannot be written
        """
        self._init_structure(ledger.session_id)
        path = self.session_path(ledger.session_id)
        content = self._render(ledger)

        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.sessions_dir,
                prefix=f".{path.stem}.", suffix=".tmp", delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise LedgerIOError(ledger.session_id, f"cannot write {path}: {e}") from e

        logger.debug(f"[ledger] Saved {ledger.session_id} to {path}")
        return str(path)

    def _render(self, ledger: SessionLedger) -> str:
        state = ledger.to_dict()
        frontmatter_str = yaml.safe_dump(state, default_flow_style=False, sort_keys=False)

        if ledger.todos:
            todos = "\n".join(f"- [{'x' if t.done else ' '}] {t.text}" for t in ledger.todos)
        else:
            todos = "- No todos recorded"
        skills = "\n".join(f"- {s}" for s in state["reminded_skills"]) or "- None"
        keywords = "\n".join(
            f"- {keyword}: {hit['count']} hit(s), first seen {hit['first_seen']}"
            for keyword, hit in state["seen_keywords"].items()
        ) or "- None"

        return f"""---
{frontmatter_str}---

# Session Ledger: {ledger.session_id}

## Todos
{todos}

## Reminded Skills
{skills}

## Seen Keywords
{keywords}

---
*Last updated: {state['updated']}*
"""

    def delete(self, session_id: str) -> bool:
        """
        Delete a session ledger.

        Returns:
            True if deleted, False if not found
        """
        path = self.session_path(session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LedgerIOError(session_id, f"cannot delete {path}: {e}") from e
        logger.debug(f"[ledger] Deleted ledger for {session_id}")
        return True

    def list_sessions(self) -> List[dict]:
        """
        List all stored ledgers, most recently updated first.

        Unreadable files are reported with status "corrupt" rather than raising.
        """
        sessions = []
        if not self.sessions_dir.is_dir():
            return sessions

        for session_file in self.sessions_dir.glob("*.md"):
            try:
                content = session_file.read_text(encoding="utf-8")
                match = FRONTMATTER_PATTERN.match(content)
                state = yaml.safe_load(match.group(1)) if match else None
                ledger = SessionLedger.from_dict(state)
            except (OSError, yaml.YAMLError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"[ledger] Skipping unreadable ledger {session_file}: {e}")
                sessions.append({"id": session_file.stem, "status": "corrupt", "path": str(session_file)})
                continue

            sessions.append({
                "id": ledger.session_id,
                "status": "active",
                "created": ledger.created.isoformat(),
                "updated": ledger.updated.isoformat(),
                "todos": len(ledger.todos),
                "outstanding": len(ledger.outstanding_todos),
                "path": str(session_file),
            })

        sessions.sort(key=lambda x: x.get("updated", ""), reverse=True)
        return sessions

    def collect_idle(self, now: Optional[datetime] = None) -> List[str]:
        """
        Delete every ledger idle for longer than ``idle_timeout``.

        Returns:
            Session ids whose ledgers were removed
        """
        now = now or datetime.now()
        removed = []
        if not self.idle_timeout:
            return removed

        for info in self.list_sessions():
            if info["status"] != "active":
                continue
            session_id = info["id"]
            with self.lock(session_id):
                ledger = self._read(session_id)
                if ledger is not None and ledger.is_idle(now, self.idle_timeout):
                    self.delete(session_id)
                    removed.append(session_id)

        if removed:
            logger.info(f"[ledger] Collected {len(removed)} idle ledger(s)")
        return removed

    def _mutate_todos(self, session_id: str, mutate) -> SessionLedger:
        with self.lock(session_id):
            ledger = self.load(session_id)
            mutate(ledger.todos)
            ledger.updated = datetime.now()
            self.save(ledger)
            return ledger

    @staticmethod
    def _find_todo(todos: List[TodoItem], ref: TodoRef) -> int:
        if isinstance(ref, int):
            if 0 <= ref < len(todos):
                return ref
            raise ValueError(f"No todo at index {ref}")
        for i, todo in enumerate(todos):
            if todo.text == ref:
                return i
        raise ValueError(f"No todo named {ref!r}")

    def add_todo(self, session_id: str, text: str) -> SessionLedger:
        """Append an open todo item to the session."""
        if not text.strip():
            raise ValueError("Todo text must not be empty")
        return self._mutate_todos(session_id, lambda todos: todos.append(TodoItem(text=text)))

    def complete_todo(self, session_id: str, ref: TodoRef) -> SessionLedger:
        """Mark a todo (by 0-based index or exact text) as done."""
        def mutate(todos):
            todos[self._find_todo(todos, ref)].done = True
        return self._mutate_todos(session_id, mutate)

    def cancel_todo(self, session_id: str, ref: TodoRef) -> SessionLedger:
        """Remove a todo the assistant decided not to do."""
        def mutate(todos):
            del todos[self._find_todo(todos, ref)]
        return self._mutate_todos(session_id, mutate)

    def set_todos(self, session_id: str, items: Sequence[TodoItem]) -> SessionLedger:
        """Replace the session's todo list with a full snapshot from the host."""
        def mutate(todos):
            todos[:] = [TodoItem(item.text, item.done) for item in items]
        return self._mutate_todos(session_id, mutate)
