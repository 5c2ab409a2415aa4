"""Message store for chat threads.

Keeps every persisted thread, with its messages, in a JSONL archive
(one thread record per line).

Uses atomic writes and file locking for data integrity.
"""

import json
import logging
import os
import sys
import tempfile
import shutil
from typing import Dict, List, Optional, Iterator
from pathlib import Path
from datetime import datetime
from contextlib import contextmanager

from . import ChatMessage, ChatThread

logger = logging.getLogger(__name__)


class MessageStore:
    """Durable home of threads and their messages.

    Draft threads live only in memory: appends and removals on a draft
    touch the thread object but nothing is written until it is promoted.

    Uses atomic writes (temp file + rename) and file locking
    to prevent data corruption from concurrent access.
    """

    def __init__(self, archive_path: Path) -> None:
        """Initialize the message store.

        Args:
            archive_path: Path to the JSONL archive file
        """
        self._archive_path = archive_path
        self._archive_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock_path = archive_path.with_suffix('.lock')
        self._threads: Dict[str, ChatThread] = {}

    @contextmanager
    def _file_lock(self):
        """Cross-platform file locking context manager."""
        lock_file = None
        try:
            lock_file = open(self._lock_path, 'w')

            if sys.platform == 'win32':
                import msvcrt
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_LOCK, 1)
            else:
                import fcntl
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)

            yield

        finally:
            if lock_file:
                if sys.platform == 'win32':
                    import msvcrt
                    try:
                        msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)
                    except OSError:
                        pass  # Already unlocked
                else:
                    import fcntl
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

                lock_file.close()

    def _atomic_write(self, records: List[Dict]) -> None:
        """Atomically replace the archive with the given thread records.

        Args:
            records: Serialized threads to write
        """
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self._archive_path.parent,
            suffix='.tmp'
        )

        try:
            with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                for record in records:
                    json.dump(record, f)
                    f.write('\n')
                f.flush()
                os.fsync(f.fileno())

            shutil.move(temp_path, str(self._archive_path))

        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def _write_thread(self, thread: ChatThread) -> None:
        """Insert or replace one thread record in the archive."""
        record = thread.to_dict()
        with self._file_lock():
            records = list(self._iter_records_unlocked())
            for i, existing in enumerate(records):
                if existing.get("thread_id") == thread.thread_id:
                    records[i] = record
                    break
            else:
                records.append(record)
            self._atomic_write(records)

    # ==================== Thread Operations ====================

    def load_threads(self) -> List[ChatThread]:
        """Load every persisted thread from disk.

        Returns:
            Threads, newest first
        """
        threads: Dict[str, ChatThread] = {}
        with self._file_lock():
            for line_num, data in enumerate(self._iter_records_unlocked(), 1):
                try:
                    thread = ChatThread.from_dict(data)
                except (KeyError, ValueError, TypeError) as e:
                    logger.warning("Skipping unreadable thread record %d: %s", line_num, e)
                    continue
                threads[thread.thread_id] = thread

        self._threads = threads
        return self.list_threads()

    def list_threads(self) -> List[ChatThread]:
        """Get the loaded persisted threads, newest first."""
        return sorted(self._threads.values(), key=lambda t: t.created_at, reverse=True)

    def get_thread(self, thread_id: str) -> Optional[ChatThread]:
        """Get a persisted thread by ID.

        Args:
            thread_id: The thread ID to find

        Returns:
            ChatThread if found, None otherwise
        """
        return self._threads.get(thread_id)

    def promote_draft(self, thread: ChatThread) -> bool:
        """Make a draft thread durable.

        The thread gets a fresh creation time. Promotion happens once;
        later calls are no-ops.

        Args:
            thread: The draft thread

        Returns:
            True if the thread was promoted by this call
        """
        if not thread.is_draft:
            return False

        thread.is_draft = False
        thread.created_at = datetime.now()
        self._threads[thread.thread_id] = thread
        self._write_thread(thread)
        logger.debug("Promoted draft thread %s", thread.thread_id)
        return True

    def save_thread(self, thread: ChatThread) -> None:
        """Persist the current state of a thread (title, messages, flags).

        Drafts and threads already deleted from the store are not written.

        Args:
            thread: The thread to save
        """
        if thread.is_draft or thread.thread_id not in self._threads:
            return
        self._write_thread(thread)

    def delete_thread(self, thread_id: str) -> bool:
        """Delete a thread and its messages.

        Args:
            thread_id: The thread ID to delete

        Returns:
            True if deleted, False if not found
        """
        self._threads.pop(thread_id, None)

        with self._file_lock():
            records = list(self._iter_records_unlocked())
            original_count = len(records)

            records = [r for r in records if r.get("thread_id") != thread_id]

            if len(records) == original_count:
                return False

            self._atomic_write(records)
            return True

    # ==================== Message Operations ====================

    def append(self, thread: ChatThread, message: ChatMessage) -> None:
        """Append a message to a thread.

        Args:
            thread: The owning thread
            message: The message to add
        """
        thread.messages.append(message)
        self.save_thread(thread)

    def remove(self, thread: ChatThread, message_id: str) -> bool:
        """Remove a message from a thread.

        Args:
            thread: The owning thread
            message_id: ID of the message to remove

        Returns:
            True if removed, False if not found
        """
        for i, message in enumerate(thread.messages):
            if message.message_id == message_id:
                del thread.messages[i]
                self.save_thread(thread)
                return True
        return False

    def remove_many(self, thread: ChatThread, message_ids: List[str]) -> int:
        """Remove several messages with a single write.

        Args:
            thread: The owning thread
            message_ids: IDs of the messages to remove

        Returns:
            Number of messages removed
        """
        doomed = set(message_ids)
        before = len(thread.messages)
        thread.messages[:] = [m for m in thread.messages if m.message_id not in doomed]
        removed = before - len(thread.messages)
        if removed:
            self.save_thread(thread)
        return removed

    # ==================== Archive Reading ====================

    def _iter_records_unlocked(self) -> Iterator[Dict]:
        """Iterate over raw thread records without acquiring lock.

        Use only when lock is already held.

        Yields:
            Decoded JSON records
        """
        if not self._archive_path.exists():
            return

        with open(self._archive_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    yield json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning("Skipping malformed line %d: %s", line_num, e)
                    continue
