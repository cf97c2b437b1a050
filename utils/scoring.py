"""Scoring engine: record one student's marks for one exam subject.

Authorization is decided by the assignment store alone. The teacher_id copies
on exams and mark entries may lag behind a reassignment and are only
refreshed here, never trusted.
"""

import logging
import math
from datetime import datetime, timezone

from utils.access import get_active_student, verify_subject_teacher
from utils.db_conn import commit_session
from utils.errors import MarksOutOfRange, NotFound, ValidationError
from utils.exam_store import get_exam
from utils.mark_store import (
    build_exam_entry,
    build_subject_entry,
    get_or_create_mark_record,
)

logger = logging.getLogger(__name__)


def _clean_marks(value) -> float:
    if value is None:
        raise ValidationError("marks_scored is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("marks_scored must be a number")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError("marks_scored must be a finite number")
    return float(value)


def submit_marks(
    class_id: int,
    student_id: int,
    exam_id: int,
    subject_id: int,
    marks_scored,
    caller_id: int,
) -> dict:
    """Store marks_scored for (student, exam, subject) and return the subject entry.

    Missing pieces of the student's mark record are rebuilt from the exam
    definition before the score is written. A record created here holds only
    this exam.
    """
    marks = _clean_marks(marks_scored)

    get_active_student(class_id, student_id)
    exam = get_exam(class_id, exam_id)
    exam_subject = exam.find_subject(subject_id)
    if exam_subject is None:
        raise NotFound(
            "Subject not found in this exam", exam_id=exam_id, subject_id=subject_id
        )

    canonical = verify_subject_teacher(caller_id, class_id, subject_id)

    full_marks = exam_subject.full_marks
    if marks < 0 or marks > full_marks:
        raise MarksOutOfRange(
            f"Marks must be between 0 and {full_marks:g}",
            marks_scored=marks,
            full_marks=full_marks,
        )

    healed = []
    record, created = get_or_create_mark_record(student_id, exam)
    if created:
        healed.append("record")

    entry = record.find_exam(exam_id)
    if entry is None:
        entry = build_exam_entry(exam)
        record.exams.append(entry)
        healed.append("exam")

    subject_entry = entry.find_subject(subject_id)
    if subject_entry is None:
        subject_entry = build_subject_entry(exam_subject)
        entry.subjects.append(subject_entry)
        healed.append("subject")

    subject_entry.marks_scored = marks
    subject_entry.scored_by = caller_id
    subject_entry.scored_at = datetime.now(timezone.utc).replace(tzinfo=None)
    subject_entry.teacher_id = canonical.teacher_id
    commit_session("submit_marks")

    if healed:
        logger.warning(
            f"Rebuilt missing mark {', '.join(healed)} entry for student {student_id}, exam {exam_id}"
        )
    logger.info(
        f"Marks submitted: student {student_id}, exam {exam_id}, subject {subject_id}, "
        f"{marks:g}/{full_marks:g} by teacher {caller_id}"
    )
    return subject_entry.to_dict()
