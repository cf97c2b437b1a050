import numpy as np
from scipy.stats import skew

from models import MarkExam, MarkRecord, MarkSubject
from utils.access import active_students, verify_class_teacher
from utils.errors import NotFound
from utils.exam_store import get_exam
from utils.grade_scale import (
    get_pass_percentage,
    grade_bands_with_ranges,
    grade_for_percentage,
    percentage_of,
    ratio_percentage,
)


def get_subject_scores(class_id, exam_id, subject_id):
    # Returns {student_id: marks_scored or None} for every mark entry of the subject
    rows = (
        MarkSubject.query.join(MarkExam, MarkSubject.mark_exam_id == MarkExam.id)
        .join(MarkRecord, MarkExam.record_id == MarkRecord.id)
        .filter(
            MarkRecord.class_id == class_id,
            MarkExam.exam_id == exam_id,
            MarkSubject.subject_id == subject_id,
        )
        .with_entities(MarkRecord.student_id, MarkSubject.marks_scored)
        .all()
    )
    return {student_id: marks for student_id, marks in rows}


def _score_holder(scores, students, index):
    student = students[index]
    return {
        "marks": round(float(scores[index]), 2),
        "student_id": student.id,
        "student_name": student.name,
    }


def exam_subject_statistics(class_id, exam_id, subject_id, caller_id=None):
    """Class statistics for one subject of one exam, over active students.

    Unscored entries count towards completion but not towards the figures.
    Skewness needs at least three scores. When caller_id is given the caller
    must be the class admin or one of its teachers.
    """
    if caller_id is not None:
        verify_class_teacher(caller_id, class_id)
    exam = get_exam(class_id, exam_id)
    exam_subject = exam.find_subject(subject_id)
    if exam_subject is None:
        raise NotFound(
            "Subject not found in this exam", exam_id=exam_id, subject_id=subject_id
        )
    full_marks = exam_subject.full_marks
    pass_percentage = get_pass_percentage()

    students = active_students(class_id)
    marks_by_student = get_subject_scores(class_id, exam_id, subject_id)
    scored_students = [
        s for s in students if marks_by_student.get(s.id) is not None
    ]
    scores = np.array(
        [marks_by_student[s.id] for s in scored_students], dtype=float
    )

    # Grade distribution, one bucket per band including F
    histogram = grade_bands_with_ranges(full_marks)
    for band in histogram:
        band["count"] = 0
    percentages = [ratio_percentage(m, full_marks) for m in scores]
    for pct in percentages:
        grade = grade_for_percentage(pct)
        for band in histogram:
            if band["grade"] == grade:
                band["count"] += 1
                break

    stats = {
        "class_id": class_id,
        "exam_id": exam.id,
        "exam_name": exam.exam_name,
        "subject_id": subject_id,
        "subject_name": exam_subject.subject_name,
        "full_marks": full_marks,
        "pass_percentage": pass_percentage,
        "total_students": len(students),
        "count": len(scores),
        "completion_ratio": round(len(scores) / len(students), 4) if students else 0.0,
        "mean": None,
        "median": None,
        "std_dev": None,
        "skewness": None,
        "mean_percentage": None,
        "highest": None,
        "lowest": None,
        "passed": sum(1 for pct in percentages if pct >= pass_percentage),
        "failed": sum(1 for pct in percentages if pct < pass_percentage),
        "grade_distribution": histogram,
    }
    if not len(scores):
        return stats

    stats["mean"] = round(float(np.mean(scores)), 2)
    stats["median"] = round(float(np.median(scores)), 2)
    stats["std_dev"] = round(float(np.std(scores)), 2)
    stats["mean_percentage"] = percentage_of(float(np.mean(scores)), full_marks)
    if len(scores) >= 3:
        skewness = float(skew(scores))
        # identical scores have no defined skew
        stats["skewness"] = None if np.isnan(skewness) else round(skewness, 3)
    stats["highest"] = _score_holder(scores, scored_students, int(np.argmax(scores)))
    stats["lowest"] = _score_holder(scores, scored_students, int(np.argmin(scores)))
    return stats
