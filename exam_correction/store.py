"""
Storage collaborators of the correction engine.

The submission store's update is the single place a submission changes:
it applies a mutation to the currently stored document and persists the
result as one atomic step, so concurrent corrections of different
questions never overwrite each other.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from exam_correction.errors import DuplicateSubmissionError, NotFoundError
from exam_correction.models import Exam, Notification, Submission

logger = logging.getLogger(__name__)

SubmissionMutation = Callable[[Submission], Submission]


class ExamStore(ABC):
    """Read access to exams."""

    @abstractmethod
    def get_exam(self, exam_id: str) -> Exam | None: ...


class SubmissionStore(ABC):
    """Read and atomic update access to submissions."""

    @abstractmethod
    def get_submission(self, exam_id: str, user_id: str) -> Submission | None: ...

    @abstractmethod
    def get_submission_by_id(self, submission_id: str) -> Submission | None: ...

    @abstractmethod
    def insert_submission(self, submission: Submission) -> Submission:
        """
        Store a new submission.

        Raises:
            DuplicateSubmissionError: If the learner already submitted the exam.
        """
        ...

    @abstractmethod
    def update(
        self, submission_id: str, mutate: SubmissionMutation
    ) -> tuple[Submission, Submission]:
        """
        Atomically apply a mutation to the stored submission.

        The mutation receives the current stored document, never a caller's
        copy, and no other update of the same submission runs in between.

        Args:
            submission_id: Submission to update.
            mutate: Pure function from the current document to the new one.

        Returns:
            Tuple of (before, after).

        Raises:
            NotFoundError: If the submission does not exist.
        """
        ...


class NotificationSink(ABC):
    """Destination of learner notifications."""

    @abstractmethod
    def enqueue(self, notification: Notification) -> None: ...


class InMemoryStore(ExamStore, SubmissionStore, NotificationSink):
    """
    Process-local store for exams, submissions and notifications.

    Updates of one submission are serialized by a lock dedicated to that
    submission; updates of different submissions run independently.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._submission_locks: dict[str, threading.Lock] = {}
        self._exams: dict[str, Exam] = {}
        self._submissions: dict[str, Submission] = {}
        self._by_exam_user: dict[tuple[str, str], str] = {}
        self._notifications: list[Notification] = []

    # ------------------------------------------------------------------ exams

    def add_exam(self, exam: Exam) -> None:
        with self._lock:
            self._exams[exam.id] = exam
            self._persist()

    def get_exam(self, exam_id: str) -> Exam | None:
        with self._lock:
            return self._exams.get(exam_id)

    # ------------------------------------------------------------ submissions

    def get_submission(self, exam_id: str, user_id: str) -> Submission | None:
        with self._lock:
            submission_id = self._by_exam_user.get((exam_id, user_id))
            return self._submissions.get(submission_id) if submission_id else None

    def get_submission_by_id(self, submission_id: str) -> Submission | None:
        with self._lock:
            return self._submissions.get(submission_id)

    def insert_submission(self, submission: Submission) -> Submission:
        key = (submission.exam_id, submission.user_id)
        with self._lock:
            if key in self._by_exam_user:
                raise DuplicateSubmissionError(
                    f"User '{submission.user_id}' already submitted exam '{submission.exam_id}'"
                )
            self._submissions[submission.id] = submission
            self._by_exam_user[key] = submission.id
            self._persist()
        return submission

    def update(
        self, submission_id: str, mutate: SubmissionMutation
    ) -> tuple[Submission, Submission]:
        with self._lock_for(submission_id):
            with self._lock:
                before = self._submissions.get(submission_id)
            if before is None:
                raise NotFoundError(f"Submission '{submission_id}' not found")

            after = mutate(before)
            if after is not before:
                with self._lock:
                    self._submissions[submission_id] = after
                    self._persist()
            return before, after

    def _lock_for(self, submission_id: str) -> threading.Lock:
        with self._lock:
            return self._submission_locks.setdefault(submission_id, threading.Lock())

    # ---------------------------------------------------------- notifications

    def enqueue(self, notification: Notification) -> None:
        with self._lock:
            self._notifications.append(notification)
            self._persist()

    @property
    def notifications(self) -> list[Notification]:
        with self._lock:
            return list(self._notifications)

    # ------------------------------------------------------------ persistence

    def _persist(self) -> None:
        """Hook called with the store lock held after every write."""

    def _snapshot(self) -> dict[str, Any]:
        return {
            "exams": [e.model_dump(mode="json") for e in self._exams.values()],
            "submissions": [s.model_dump(mode="json") for s in self._submissions.values()],
            "notifications": [n.model_dump(mode="json") for n in self._notifications],
        }

    def _restore(self, data: dict[str, Any]) -> None:
        for raw in data.get("exams", []):
            exam = Exam.model_validate(raw)
            self._exams[exam.id] = exam
        for raw in data.get("submissions", []):
            submission = Submission.model_validate(raw)
            self._submissions[submission.id] = submission
            self._by_exam_user[(submission.exam_id, submission.user_id)] = submission.id
        for raw in data.get("notifications", []):
            self._notifications.append(Notification.model_validate(raw))


class JsonFileStore(InMemoryStore):
    """
    In-memory store mirrored to a JSON file.

    The whole state is rewritten after every write. Only one process may
    use a given file at a time.
    """

    def __init__(self, path: Path):
        super().__init__()
        self._path = Path(path)
        if self._path.exists():
            data = json.loads(self._path.read_text(encoding="utf-8"))
            self._restore(data)
            logger.debug(
                "Loaded %d exams and %d submissions from %s",
                len(self._exams),
                len(self._submissions),
                self._path,
            )

    @property
    def path(self) -> Path:
        return self._path

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._snapshot(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)
