"""Mark store: one MarkRecord per (student, class).

Rows here are copies of exam definitions made at seeding time; they are
refreshed by utils.propagation, and created lazily either by
initialize_exam_marks() or by the scoring engine's self-healing path.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import Exam, MarkExam, MarkRecord, MarkSubject, db
from utils.access import active_students
from utils.errors import MarkInitializationFailed, NotFound

logger = logging.getLogger(__name__)


def find_mark_record(student_id: int, class_id: int) -> MarkRecord | None:
    return MarkRecord.query.filter_by(student_id=student_id, class_id=class_id).first()


def get_mark_record(student_id: int, class_id: int) -> MarkRecord:
    record = find_mark_record(student_id, class_id)
    if record is None:
        raise NotFound(
            "No marks found for this student", student_id=student_id, class_id=class_id
        )
    return record


def list_mark_records(class_id: int) -> list[MarkRecord]:
    return (
        MarkRecord.query.filter_by(class_id=class_id)
        .order_by(MarkRecord.student_id)
        .all()
    )


def class_exams(class_id: int) -> list[Exam]:
    return (
        Exam.query.filter_by(class_id=class_id, is_active=True)
        .order_by(Exam.exam_date, Exam.id)
        .all()
    )


def build_subject_entry(exam_subject) -> MarkSubject:
    return MarkSubject(
        subject_id=exam_subject.subject_id,
        subject_name=exam_subject.subject_name,
        teacher_id=exam_subject.teacher_id,
        full_marks=exam_subject.full_marks,
        marks_scored=None,
        scored_by=None,
        scored_at=None,
    )


def build_exam_entry(exam: Exam) -> MarkExam:
    entry = MarkExam(
        exam_id=exam.id,
        exam_name=exam.exam_name,
        exam_code=exam.exam_code,
        exam_date=exam.exam_date,
    )
    for exam_subject in exam.subjects:
        entry.subjects.append(build_subject_entry(exam_subject))
    return entry


def new_mark_record(student_id: int, exam: Exam) -> MarkRecord:
    return MarkRecord(
        student_id=student_id,
        class_id=exam.class_id,
        school_id=exam.school_id,
        class_admin_id=exam.class_admin_id,
    )


def get_or_create_mark_record(student_id: int, exam: Exam) -> tuple[MarkRecord, bool]:
    """Return the student's record in exam's class, creating an empty one if missing.

    A record another writer created after the lookup is reused. That path
    rolls the session back, so call this before making other changes.
    """
    class_id = exam.class_id
    record = find_mark_record(student_id, class_id)
    if record is not None:
        return record, False

    record = new_mark_record(student_id, exam)
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.warning(
            f"Mark record for student {student_id} in class {class_id} already exists, reusing it"
        )
        return get_mark_record(student_id, class_id), False
    return record, True


def fill_missing_subjects(entry: MarkExam, exam: Exam) -> int:
    """Append subject entries the exam has and the entry lacks. Scored rows are untouched."""
    added = 0
    for exam_subject in exam.subjects:
        if entry.find_subject(exam_subject.subject_id) is None:
            entry.subjects.append(build_subject_entry(exam_subject))
            added += 1
    return added


def seed_student_marks(student_id: int, exam: Exam, exams_in_class: list[Exam]) -> dict:
    """Bring one student's record up to date with exam. Does not commit."""
    counts = {"record_created": False, "exam_entries": 0, "subject_entries": 0}
    record = find_mark_record(student_id, exam.class_id)

    if record is None:
        record = new_mark_record(student_id, exam)
        seed = list(exams_in_class)
        if all(e.id != exam.id for e in seed):
            seed.append(exam)
        for class_exam in seed:
            entry = build_exam_entry(class_exam)
            record.exams.append(entry)
            counts["exam_entries"] += 1
            counts["subject_entries"] += len(entry.subjects)
        db.session.add(record)
        counts["record_created"] = True
        return counts

    entry = record.find_exam(exam.id)
    if entry is None:
        entry = build_exam_entry(exam)
        record.exams.append(entry)
        counts["exam_entries"] = 1
        counts["subject_entries"] = len(entry.subjects)
    else:
        counts["subject_entries"] = fill_missing_subjects(entry, exam)
    return counts


def _changed(counts) -> bool:
    return bool(counts["record_created"] or counts["exam_entries"] or counts["subject_entries"])


def _seed_and_commit(student_id: int, exam: Exam, exams_in_class: list[Exam]) -> dict:
    counts = seed_student_marks(student_id, exam, exams_in_class)
    if not _changed(counts):
        return counts
    try:
        db.session.commit()
    except IntegrityError:
        # created by another writer since the lookup; seed into that one
        db.session.rollback()
        logger.warning(
            f"Mark record for student {student_id} appeared while seeding exam {exam.id}, retrying"
        )
        counts = seed_student_marks(student_id, exam, exams_in_class)
        if _changed(counts):
            db.session.commit()
    return counts


def initialize_exam_marks(exam_id: int) -> dict:
    """Seed mark entries for every active student of the exam's class.

    One commit per student. Safe to re-run: students, exams and subjects that
    already have entries are skipped. Raises MarkInitializationFailed on a
    database error; students committed before the failure stay seeded.
    """
    exam = db.session.get(Exam, exam_id)
    if exam is None:
        raise NotFound("Exam not found", exam_id=exam_id)

    students = active_students(exam.class_id)
    exams_in_class = class_exams(exam.class_id)
    summary = {
        "exam_id": exam.id,
        "students_count": len(students),
        "records_created": 0,
        "exam_entries_added": 0,
        "subject_entries_added": 0,
    }

    for student in students:
        try:
            counts = _seed_and_commit(student.id, exam, exams_in_class)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(
                f"Error initializing marks for student {student.id}, exam {exam_id}: {str(e)}"
            )
            raise MarkInitializationFailed(
                "Failed to initialize mark records",
                exam_id=exam_id,
                student_id=student.id,
                seeded_records=summary["records_created"],
            ) from e

        summary["records_created"] += int(counts["record_created"])
        summary["exam_entries_added"] += counts["exam_entries"]
        summary["subject_entries_added"] += counts["subject_entries"]

    logger.info(
        f"Marks initialized for {len(students)} students for exam: {exam.exam_name} "
        f"({summary['records_created']} new records, {summary['subject_entries_added']} subject entries)"
    )
    return summary
