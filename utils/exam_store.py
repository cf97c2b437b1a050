"""Exam store: exam headers plus a snapshot of the examined subjects.

Subject names, teacher ids and default credits are copied from the
assignment store when a subject is added to an exam. Creating an exam and
seeding its mark entries is one unit: if seeding fails the exam is deleted
again.
"""

import logging
from datetime import date, datetime, timezone

from flask import current_app

from models import Exam, ExamSubject, MarkExam, MarkRecord, db
from utils.access import get_class, verify_class_admin
from utils.assignment_store import get_subject_assignment
from utils.db_conn import commit_session
from utils.errors import (
    ExamNotInClass,
    MarkInitializationFailed,
    NotFound,
    PropagationFailure,
    ValidationError,
)
from utils.mark_store import initialize_exam_marks
from utils.propagation import propagate_exam_header

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["exam_name", "exam_code", "exam_date", "duration", "subjects"]


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_exam_date(value) -> datetime:
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return _naive_utc(
                datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            )
        except ValueError:
            pass
    raise ValidationError("Invalid exam date format", exam_date=str(value))


def _clean_duration(value) -> int:
    minimum = current_app.config.get("MIN_EXAM_DURATION", 30)
    if isinstance(value, bool):
        raise ValidationError("Duration must be a number of minutes")
    try:
        duration = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Duration must be a number of minutes")
    if duration < minimum:
        raise ValidationError(f"Exam duration must be at least {minimum} minutes")
    return duration


def _clean_text(data, field, label) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


def _clean_full_marks(value, subject_id) -> float:
    max_full_marks = current_app.config.get("MAX_FULL_MARKS", 200)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            "Full marks must be a number", subject_id=subject_id
        )
    if not 1 <= value <= max_full_marks:
        raise ValidationError(
            f"Full marks must be between 1 and {max_full_marks:g}",
            subject_id=subject_id,
        )
    return float(value)


def _active_exams(class_id, exclude_id=None):
    query = Exam.query.filter_by(class_id=class_id, is_active=True)
    if exclude_id is not None:
        query = query.filter(Exam.id != exclude_id)
    return query.all()


def _check_unique_header(class_id, exam_name=None, exam_code=None, exclude_id=None):
    for other in _active_exams(class_id, exclude_id):
        if exam_name is not None and other.exam_name.lower() == exam_name.lower():
            raise ValidationError(
                "Exam with this name already exists in this class", exam_name=exam_name
            )
        if exam_code is not None and other.exam_code.upper() == exam_code:
            raise ValidationError(
                "Exam with this code already exists in this class", exam_code=exam_code
            )


def build_exam_subjects(class_id: int, subjects, existing_ids=()) -> list[ExamSubject]:
    """Validate subject specs and snapshot them from the assignment store."""
    if not isinstance(subjects, list) or not subjects:
        raise ValidationError("At least one subject is required")

    assignment = get_subject_assignment(class_id)
    seen = set(existing_ids)
    built = []
    for spec in subjects:
        if not isinstance(spec, dict) or spec.get("subject_id") is None:
            raise ValidationError("Each subject needs a subject_id")
        subject_id = spec["subject_id"]
        if subject_id in seen:
            raise ValidationError(
                "Subject is listed more than once in this exam", subject_id=subject_id
            )
        seen.add(subject_id)

        subject = assignment.find_subject(subject_id)
        if subject is None:
            raise ValidationError(
                "Subject is not part of this class", subject_id=subject_id
            )

        credits = spec.get("credits")
        if credits is None:
            credits = max(subject.credits or 0, 1)
        elif isinstance(credits, bool) or not isinstance(credits, int) or credits < 1:
            raise ValidationError(
                "Credits must be a whole number of at least 1", subject_id=subject_id
            )

        built.append(
            ExamSubject(
                subject_id=subject.id,
                subject_name=subject.name,
                teacher_id=subject.teacher_id,
                credits=credits,
                full_marks=_clean_full_marks(spec.get("full_marks"), subject_id),
            )
        )
    return built


def create_exam(class_id: int, data: dict, caller_id: int):
    """Create an exam and seed marks for every active student.

    Returns (exam, initialization summary). If seeding fails the exam is
    deleted and MarkInitializationFailed is raised.
    """
    missing = [field for field in REQUIRED_FIELDS if data.get(field) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}", missing=missing
        )

    class_obj = verify_class_admin(caller_id, class_id)

    exam_name = _clean_text(data, "exam_name", "Exam name")
    exam_code = _clean_text(data, "exam_code", "Exam code").upper()
    exam_date = _parse_exam_date(data["exam_date"])
    duration = _clean_duration(data["duration"])
    _check_unique_header(class_id, exam_name, exam_code)
    exam_subjects = build_exam_subjects(class_id, data["subjects"])

    exam = Exam(
        class_id=class_id,
        school_id=class_obj.school_id,
        class_admin_id=class_obj.class_admin_id,
        exam_name=exam_name,
        exam_code=exam_code,
        exam_date=exam_date,
        duration=duration,
        is_active=True,
    )
    exam.subjects.extend(exam_subjects)
    db.session.add(exam)
    commit_session("create_exam")
    exam_id = exam.id
    logger.info(f"Exam {exam_code} ({exam_id}) created in class {class_id}")

    try:
        summary = initialize_exam_marks(exam_id)
    except MarkInitializationFailed:
        logger.error(
            f"Mark initialization failed for exam {exam_id}; removing the exam"
        )
        _discard_exam(exam_id)
        raise

    return exam, summary


def _discard_exam(exam_id: int):
    """Delete a just-created exam and any mark entries already seeded for it."""
    exam = db.session.get(Exam, exam_id)
    if exam is None:
        return
    seeded = (
        MarkExam.query.join(MarkRecord)
        .filter(MarkExam.exam_id == exam_id, MarkRecord.class_id == exam.class_id)
        .all()
    )
    for entry in seeded:
        db.session.delete(entry)
    db.session.delete(exam)
    commit_session("discard_exam")
    logger.info(
        f"Exam {exam_id} removed after failed initialization ({len(seeded)} seeded entries dropped)"
    )


def get_exams_by_class(class_id: int, caller_id: int, include_inactive=False) -> list[Exam]:
    verify_class_admin(caller_id, class_id)
    query = Exam.query.filter_by(class_id=class_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Exam.exam_date, Exam.id).all()


def get_exam(class_id: int, exam_id: int) -> Exam:
    exam = db.session.get(Exam, exam_id)
    if exam is None or exam.class_id != class_id:
        raise ExamNotInClass(
            "Exam not found in this class", class_id=class_id, exam_id=exam_id
        )
    return exam


def update_exam(class_id: int, exam_id: int, data: dict, caller_id: int):
    """Edit the exam header. Returns (exam, warnings)."""
    verify_class_admin(caller_id, class_id)
    exam = get_exam(class_id, exam_id)

    changes = {}
    if data.get("exam_name") is not None:
        changes["exam_name"] = _clean_text(data, "exam_name", "Exam name")
    if data.get("exam_code") is not None:
        changes["exam_code"] = _clean_text(data, "exam_code", "Exam code").upper()
    if data.get("exam_date") is not None:
        changes["exam_date"] = _parse_exam_date(data["exam_date"])
    if data.get("duration") is not None:
        changes["duration"] = _clean_duration(data["duration"])
    if data.get("is_active") is not None:
        changes["is_active"] = bool(data["is_active"])

    if changes.get("is_active", exam.is_active):
        _check_unique_header(
            class_id,
            changes.get("exam_name", exam.exam_name),
            changes.get("exam_code", exam.exam_code),
            exclude_id=exam.id,
        )

    header_changed = any(
        field in changes and changes[field] != getattr(exam, field)
        for field in ("exam_name", "exam_code", "exam_date")
    )
    for field, value in changes.items():
        setattr(exam, field, value)
    commit_session("update_exam")
    logger.info(f"Exam {exam_id} updated in class {class_id}")

    warnings = propagate_exam_header(exam) if header_changed else []
    return exam, warnings


def delete_exam(class_id: int, exam_id: int, caller_id: int) -> dict:
    """Delete the exam. Mark records keep their entries for it."""
    verify_class_admin(caller_id, class_id)
    exam = get_exam(class_id, exam_id)
    exam_name = exam.exam_name
    db.session.delete(exam)
    commit_session("delete_exam")
    logger.info(f"Exam {exam_id} deleted from class {class_id}")
    return {"deleted_exam_id": exam_id, "exam_name": exam_name}


def add_subjects_to_exam(class_id: int, exam_id: int, subjects, caller_id: int):
    """Add subjects and seed their mark entries. Returns (exam, summary, warnings)."""
    verify_class_admin(caller_id, class_id)
    exam = get_exam(class_id, exam_id)

    existing_ids = {s.subject_id for s in exam.subjects}
    if isinstance(subjects, list):
        for spec in subjects:
            if isinstance(spec, dict) and spec.get("subject_id") in existing_ids:
                raise ValidationError(
                    "Subject already exists in this exam",
                    subject_id=spec["subject_id"],
                )
    exam.subjects.extend(build_exam_subjects(class_id, subjects, existing_ids))
    commit_session("add_subjects_to_exam")
    logger.info(f"{len(subjects)} subjects added to exam {exam_id}")

    warnings = []
    summary = None
    try:
        summary = initialize_exam_marks(exam_id)
    except MarkInitializationFailed as e:
        logger.error(f"Mark entries for new subjects of exam {exam_id} not seeded: {e}")
        warnings.append(
            PropagationFailure(
                "Subjects added but mark entries could not be created",
                step="mark initialization",
                class_id=class_id,
                exam_id=exam_id,
            )
        )
    return exam, summary, warnings


def remove_subject_from_exam(class_id: int, exam_id: int, subject_id: int, caller_id: int) -> dict:
    verify_class_admin(caller_id, class_id)
    exam = get_exam(class_id, exam_id)
    exam_subject = exam.find_subject(subject_id)
    if exam_subject is None:
        raise NotFound(
            "Subject not found in this exam", exam_id=exam_id, subject_id=subject_id
        )
    exam.subjects.remove(exam_subject)
    commit_session("remove_subject_from_exam")
    logger.info(f"Subject {subject_id} removed from exam {exam_id}")
    return {
        "exam_id": exam_id,
        "removed_subject_id": subject_id,
        "remaining_subjects": len(exam.subjects),
    }


def get_exams_by_teacher(teacher_id: int) -> list[dict]:
    """Active exams listing the subjects whose copy names teacher_id."""
    exams = (
        Exam.query.join(ExamSubject)
        .filter(ExamSubject.teacher_id == teacher_id, Exam.is_active.is_(True))
        .order_by(Exam.exam_date, Exam.id)
        .distinct()
        .all()
    )
    listing = []
    for exam in exams:
        entry = exam.to_dict()
        entry["class_name"] = _class_label(exam.class_id)
        entry["subjects"] = [
            s.to_dict() for s in exam.subjects if s.teacher_id == teacher_id
        ]
        listing.append(entry)
    return listing


def _class_label(class_id):
    try:
        class_obj = get_class(class_id)
    except NotFound:
        return None
    return f"{class_obj.name} {class_obj.section}"
