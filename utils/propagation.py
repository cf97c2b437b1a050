"""Propagation engine.

The assignment store owns the fact "who teaches subject S in class C". Exam
subjects and mark subjects carry copies of it for listing. After the
canonical row is committed, the copies are refreshed with one bulk UPDATE per
table, each in its own transaction:

    step 0  canonical write (assignment_store)        always stands
    step 1  exam_subjects.teacher_id                  may fail alone
    step 2  mark_subjects.teacher_id (+ scored_by)    may fail alone

A failed step is rolled back, logged, and reported as a PropagationFailure
in the result's "warnings"; it never undoes step 0. Every step writes the
value read from the canonical row, so re-running is harmless, and
sync_assignments() re-derives all copies when something was missed.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from models import Exam, ExamSubject, MarkExam, MarkRecord, MarkSubject, db
from utils import assignment_store
from utils.access import verify_class_admin
from utils.errors import ConsistencyRepairNeeded, PropagationFailure

logger = logging.getLogger(__name__)


def _class_exam_ids(class_id):
    return db.select(Exam.id).where(Exam.class_id == class_id)


def _class_mark_exam_ids(class_id):
    return (
        db.select(MarkExam.id)
        .join(MarkRecord, MarkExam.record_id == MarkRecord.id)
        .where(MarkRecord.class_id == class_id)
    )


def _run_step(step: str, class_id: int, subject_id, statement, warnings: list) -> int:
    """Execute one bulk update in its own transaction. Returns rows matched."""
    try:
        result = db.session.execute(statement)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(
            f"Propagation step '{step}' failed for class {class_id}, subject {subject_id}: {str(e)}"
        )
        warnings.append(
            PropagationFailure(
                f"Could not update {step}; run sync_assignments to repair",
                step=step,
                class_id=class_id,
                subject_id=subject_id,
            )
        )
        return 0
    return result.rowcount or 0


def propagate_exam_teacher(class_id: int, subject_id: int, teacher_id, warnings: list) -> int:
    statement = (
        db.update(ExamSubject)
        .where(
            ExamSubject.subject_id == subject_id,
            ExamSubject.exam_id.in_(_class_exam_ids(class_id)),
        )
        .values(teacher_id=teacher_id)
        .execution_options(synchronize_session=False)
    )
    return _run_step("exam subjects", class_id, subject_id, statement, warnings)


def propagate_mark_teacher(class_id: int, subject_id: int, teacher_id, warnings: list) -> int:
    values = {"teacher_id": teacher_id}
    if teacher_id is None:
        # Unassigning detaches the scorer; the recorded score stays.
        values["scored_by"] = None
    statement = (
        db.update(MarkSubject)
        .where(
            MarkSubject.subject_id == subject_id,
            MarkSubject.mark_exam_id.in_(_class_mark_exam_ids(class_id)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return _run_step("mark subjects", class_id, subject_id, statement, warnings)


def propagate_teacher_change(class_id: int, subject_id: int, teacher_id) -> dict:
    """Fan the canonical teacher_id out to exam and mark copies (steps 1 and 2)."""
    warnings = []
    exams_updated = propagate_exam_teacher(class_id, subject_id, teacher_id, warnings)
    marks_updated = propagate_mark_teacher(class_id, subject_id, teacher_id, warnings)
    db.session.expire_all()
    logger.info(
        f"Propagated teacher {teacher_id} for subject {subject_id} in class {class_id}: "
        f"{exams_updated} exam subjects, {marks_updated} mark subjects"
    )
    return {
        "exam_subjects_updated": exams_updated,
        "mark_subjects_updated": marks_updated,
        "warnings": warnings,
    }


def assign_teacher(class_id: int, subject_id: int, teacher_id: int, caller_id: int) -> dict:
    subject, previous = assignment_store.assign_teacher(
        class_id, subject_id, teacher_id, caller_id
    )
    result = propagate_teacher_change(class_id, subject_id, teacher_id)
    result.update(
        {
            "subject": subject,
            "teacher_id": teacher_id,
            "previous_teacher_id": previous,
        }
    )
    return result


def remove_teacher(class_id: int, subject_id: int, caller_id: int) -> dict:
    subject, previous = assignment_store.remove_teacher(class_id, subject_id, caller_id)
    result = propagate_teacher_change(class_id, subject_id, None)
    result.update(
        {
            "subject": subject,
            "teacher_id": None,
            "previous_teacher_id": previous,
        }
    )
    return result


def update_subject(class_id: int, subject_id: int, data: dict, caller_id: int) -> dict:
    """Edit a subject; a rename is copied to exam and mark subject names."""
    subject, old_name = assignment_store.update_subject(
        class_id, subject_id, data, caller_id
    )
    warnings = []
    if subject.name != old_name:
        new_name = subject.name
        _run_step(
            "exam subject names",
            class_id,
            subject_id,
            db.update(ExamSubject)
            .where(
                ExamSubject.subject_id == subject_id,
                ExamSubject.exam_id.in_(_class_exam_ids(class_id)),
            )
            .values(subject_name=new_name)
            .execution_options(synchronize_session=False),
            warnings,
        )
        _run_step(
            "mark subject names",
            class_id,
            subject_id,
            db.update(MarkSubject)
            .where(
                MarkSubject.subject_id == subject_id,
                MarkSubject.mark_exam_id.in_(_class_mark_exam_ids(class_id)),
            )
            .values(subject_name=new_name)
            .execution_options(synchronize_session=False),
            warnings,
        )
        db.session.expire_all()
    return {"subject": subject, "warnings": warnings}


def propagate_exam_header(exam: Exam) -> list:
    """Copy exam name/code/date onto the exam entries of every mark record."""
    warnings = []
    rows = _run_step(
        "mark exam headers",
        exam.class_id,
        None,
        db.update(MarkExam)
        .where(
            MarkExam.exam_id == exam.id,
            MarkExam.record_id.in_(
                db.select(MarkRecord.id).where(MarkRecord.class_id == exam.class_id)
            ),
        )
        .values(
            exam_name=exam.exam_name,
            exam_code=exam.exam_code,
            exam_date=exam.exam_date,
        )
        .execution_options(synchronize_session=False),
        warnings,
    )
    db.session.expire_all()
    logger.info(f"Exam {exam.id} header copied to {rows} mark entries")
    return warnings


def sync_assignments(class_id: int, caller_id: int | None = None) -> dict:
    """Re-derive every exam and mark subject's teacher_id from the assignment store.

    Subjects that are unassigned, or no longer exist canonically, lose their
    teacher_id and scored_by copies. caller_id, when given, must be the class
    admin; maintenance scripts pass None.
    """
    if caller_id is not None:
        verify_class_admin(caller_id, class_id)

    canonical = assignment_store.canonical_teacher_map(class_id)

    exam_subjects_fixed = 0
    exams = Exam.query.filter_by(class_id=class_id).all()
    for exam in exams:
        for exam_subject in exam.subjects:
            expected = canonical.get(exam_subject.subject_id)
            if exam_subject.teacher_id != expected:
                exam_subject.teacher_id = expected
                exam_subjects_fixed += 1
    if exam_subjects_fixed:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Exam sync failed for class {class_id}: {str(e)}")
            raise

    records = MarkRecord.query.filter_by(class_id=class_id).all()
    updated_records = 0
    updated_subjects = 0
    for record in records:
        record_fixed = 0
        for entry in record.exams:
            for mark_subject in entry.subjects:
                expected = canonical.get(mark_subject.subject_id)
                changed = False
                if mark_subject.teacher_id != expected:
                    mark_subject.teacher_id = expected
                    changed = True
                if expected is None and mark_subject.scored_by is not None:
                    mark_subject.scored_by = None
                    changed = True
                if changed:
                    record_fixed += 1
        if record_fixed:
            # one commit per record, like any other single-document write
            try:
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(
                    f"Mark sync failed for record {record.id} in class {class_id}: {str(e)}"
                )
                raise
            updated_records += 1
            updated_subjects += record_fixed

    report = {
        "class_id": class_id,
        "total_records": len(records),
        "updated_records": updated_records,
        "updated_subjects": updated_subjects,
        "exam_subjects_updated": exam_subjects_fixed,
        "notices": [],
    }
    if updated_subjects or exam_subjects_fixed:
        report["notices"].append(
            ConsistencyRepairNeeded(
                "Denormalized teacher assignments had drifted and were repaired",
                class_id=class_id,
                updated_subjects=updated_subjects,
                exam_subjects_updated=exam_subjects_fixed,
            )
        )
        logger.warning(
            f"Sync repaired class {class_id}: {updated_records} records, "
            f"{updated_subjects} mark subjects, {exam_subjects_fixed} exam subjects"
        )
    else:
        logger.info(f"Sync found class {class_id} consistent ({len(records)} records)")
    return report
