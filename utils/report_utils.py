"""On-read mark reports. Nothing computed here is stored.

Listings use the teacher_id copies on exams and mark entries; the teacher
subject report decides which subjects belong to the caller from the
assignment store.
"""

import logging

from models import Student, db
from utils.access import (
    active_students,
    get_active_student,
    get_teacher,
    verify_class_admin,
    verify_class_teacher,
)
from utils.assignment_store import find_subject_assignment
from utils.grade_scale import (
    get_pass_percentage,
    grade_for_percentage,
    percentage_of,
    ratio_percentage,
)
from utils.mark_store import class_exams, find_mark_record, get_mark_record, list_mark_records

logger = logging.getLogger(__name__)


def summarize_exam_entry(entry: dict) -> dict:
    """Add totals, percentage, grade and completion to a rendered exam entry."""
    total_scored = 0.0
    total_full = 0.0
    completed = 0
    for subject in entry["subjects"]:
        total_full += subject["full_marks"]
        if subject["marks_scored"] is not None:
            total_scored += subject["marks_scored"]
            completed += 1

    ratio = ratio_percentage(total_scored, total_full)
    summary = dict(entry)
    summary.update(
        {
            "total_marks_scored": total_scored,
            "total_full_marks": total_full,
            "percentage": round(ratio, 2),
            "grade": grade_for_percentage(ratio),
            "completed_subjects": completed,
            "total_subjects": len(entry["subjects"]),
            "is_completed": completed == len(entry["subjects"]),
        }
    )
    return summary


def _class_info(class_obj):
    return {"id": class_obj.id, "name": class_obj.name, "section": class_obj.section}


def _student_info(student_id, student=None):
    if student is None:
        student = db.session.get(Student, student_id)
    return {
        "id": student_id,
        "name": student.name if student else "Unknown",
        "student_number": student.student_number if student else None,
    }


def get_student_detailed_marks(class_id: int, student_id: int, caller_id: int) -> dict:
    class_obj = verify_class_teacher(caller_id, class_id)
    record = get_mark_record(student_id, class_id)
    exams = [summarize_exam_entry(entry.to_dict()) for entry in record.exams]
    return {
        "student_info": _student_info(student_id),
        "class_info": _class_info(class_obj),
        "exams": exams,
        "total_exams": len(exams),
    }


def get_class_marks_summary(class_id: int, caller_id: int) -> dict:
    """Per student, per exam totals for the whole class. Class admin only."""
    class_obj = verify_class_admin(caller_id, class_id)
    records = list_mark_records(class_id)
    students = {
        s.id: s
        for s in Student.query.filter(
            Student.id.in_([r.student_id for r in records])
        ).all()
    }

    rows = []
    for record in records:
        info = _student_info(record.student_id, students.get(record.student_id))
        exams = []
        for entry in record.exams:
            summary = summarize_exam_entry(entry.to_dict())
            summary.pop("subjects")
            exams.append(summary)
        rows.append(
            {
                "student_id": record.student_id,
                "student_name": info["name"],
                "student_number": info["student_number"],
                "exams": exams,
            }
        )
    rows.sort(key=lambda row: (row["student_name"].lower(), row["student_id"]))

    logger.info(f"Class marks summary for class {class_id}: {len(rows)} students")
    return {
        "class_info": _class_info(class_obj),
        "students": rows,
        "total_students": len(rows),
    }


def _teacher_exam_entries(exam_entries, teacher_id):
    """Keep only subjects whose copy names teacher_id; drop exams left empty."""
    filtered = []
    for entry in exam_entries:
        subjects = [s for s in entry["subjects"] if s["teacher_id"] == teacher_id]
        if subjects:
            filtered.append(dict(entry, subjects=subjects))
    return filtered


def _placeholder_entry(exam_entry):
    return dict(
        exam_entry,
        subjects=[
            {
                "subject_id": s["subject_id"],
                "subject_name": s["subject_name"],
                "teacher_id": s["teacher_id"],
                "full_marks": s["full_marks"],
                "marks_scored": None,
                "scored_by": None,
                "scored_at": None,
            }
            for s in exam_entry["subjects"]
        ],
    )


def get_students_for_scoring(class_id: int, caller_id: int) -> dict:
    """Students with the exam subjects the caller is listed on, for a marks sheet."""
    class_obj = verify_class_teacher(caller_id, class_id)
    teacher = get_teacher(caller_id)
    result = {
        "students": [],
        "class_info": _class_info(class_obj),
        "teacher_info": {"id": teacher.id, "name": teacher.name},
        "total_students": 0,
    }

    students = active_students(class_id)
    if not students:
        return result

    exams = class_exams(class_id)
    if not exams:
        result["message"] = "No exams created for this class yet"
        return result

    teacher_exams = _teacher_exam_entries(
        [
            {
                "exam_id": exam.id,
                "exam_name": exam.exam_name,
                "exam_code": exam.exam_code,
                "exam_date": exam.exam_date.isoformat(),
                "subjects": [s.to_dict() for s in exam.subjects],
            }
            for exam in exams
        ],
        caller_id,
    )
    if not teacher_exams:
        result["message"] = "No subjects assigned to you in any exams for this class"
        return result

    for student in students:
        record = find_mark_record(student.id, class_id)
        if record is None:
            exam_entries = [_placeholder_entry(entry) for entry in teacher_exams]
        else:
            exam_entries = _teacher_exam_entries(
                [entry.to_dict() for entry in record.exams], caller_id
            )
        if not exam_entries:
            continue
        result["students"].append(
            {
                "student_id": student.id,
                "student_name": student.name,
                "student_number": student.student_number,
                "exams": exam_entries,
            }
        )

    result["total_students"] = len(result["students"])
    return result


def _subject_performance(subject, students, records, pass_percentage):
    performance = []
    scored_entries = 0
    total_entries = 0
    for student in students:
        record = records.get(student.id)
        exams = []
        total_scored = 0.0
        total_full = 0.0
        for entry in record.exams if record else []:
            mark = entry.find_subject(subject.id)
            if mark is None:
                continue
            total_entries += 1
            if mark.marks_scored is not None:
                scored_entries += 1
                total_scored += mark.marks_scored
                total_full += mark.full_marks
            exams.append(
                {
                    "exam_id": entry.exam_id,
                    "exam_name": entry.exam_name,
                    "marks_scored": mark.marks_scored,
                    "full_marks": mark.full_marks,
                    "percentage": percentage_of(mark.marks_scored, mark.full_marks)
                    if mark.marks_scored is not None
                    else None,
                }
            )
        ratio = ratio_percentage(total_scored, total_full) if total_full else None
        performance.append(
            {
                "student_id": student.id,
                "student_name": student.name,
                "exams": exams,
                "percentage": round(ratio, 2) if ratio is not None else None,
                "grade": grade_for_percentage(ratio) if ratio is not None else None,
                "passed": ratio >= pass_percentage if ratio is not None else None,
            }
        )

    percentages = [p["percentage"] for p in performance if p["percentage"] is not None]
    verdicts = [p["passed"] for p in performance if p["passed"] is not None]
    summary = {
        "students": len(students),
        "students_scored": len(percentages),
        "average": round(sum(percentages) / len(percentages), 2) if percentages else 0.0,
        "completion_rate": percentage_of(scored_entries, total_entries),
        "highest": max(percentages) if percentages else None,
        "lowest": min(percentages) if percentages else None,
        "passed": sum(1 for passed in verdicts if passed),
        "failed": sum(1 for passed in verdicts if not passed),
    }
    return performance, summary


def get_teacher_subject_report(class_id: int, caller_id: int) -> dict:
    """Performance in every subject the assignment store gives the caller."""
    class_obj = verify_class_teacher(caller_id, class_id)
    assignment = find_subject_assignment(class_id)
    subjects = [
        s
        for s in (assignment.subjects if assignment else [])
        if s.teacher_id == caller_id and s.is_active
    ]

    students = active_students(class_id)
    records = {r.student_id: r for r in list_mark_records(class_id)}
    pass_percentage = get_pass_percentage()

    report = []
    for subject in subjects:
        performance, summary = _subject_performance(
            subject, students, records, pass_percentage
        )
        report.append(
            {
                "subject_id": subject.id,
                "subject_name": subject.name,
                "subject_code": subject.code,
                "students": performance,
                "summary": summary,
            }
        )

    logger.info(
        f"Teacher {caller_id} subject report for class {class_id}: {len(report)} subjects"
    )
    return {
        "class_info": _class_info(class_obj),
        "teacher_id": caller_id,
        "subjects": report,
        "pass_percentage": pass_percentage,
    }


def get_student_academic_report(class_id: int, student_id: int) -> dict:
    """A student's own view: every exam summarized plus an overall grade."""
    student = get_active_student(class_id, student_id)
    record = find_mark_record(student_id, class_id)
    exams = [summarize_exam_entry(e.to_dict()) for e in record.exams] if record else []

    total_scored = sum(e["total_marks_scored"] for e in exams)
    total_full = sum(e["total_full_marks"] for e in exams)
    overall = ratio_percentage(total_scored, total_full)
    return {
        "student_info": _student_info(student_id, student),
        "exams": exams,
        "total_exams": len(exams),
        "overall": {
            "total_marks_scored": total_scored,
            "total_full_marks": total_full,
            "percentage": round(overall, 2),
            "grade": grade_for_percentage(overall),
            "completed_exams": sum(1 for e in exams if e["is_completed"]),
        },
    }
