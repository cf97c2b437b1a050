import pytest

from models import db
from utils import exam_store, mark_store, report_utils
from utils.errors import NotFound, StudentNotInClass, Unauthorized
from utils.scoring import submit_marks


@pytest.fixture
def scored(school, subjects, midterm):
    submit_marks(school.class_id, school.alice_id, midterm, subjects.math_id, 90, school.t1_id)
    submit_marks(school.class_id, school.alice_id, midterm, subjects.english_id, 30, school.t2_id)
    submit_marks(school.class_id, school.bob_id, midterm, subjects.math_id, 20, school.t1_id)
    return school


def test_summarize_exam_entry():
    entry = {
        "exam_id": 1,
        "subjects": [
            {"full_marks": 100, "marks_scored": 90},
            {"full_marks": 50, "marks_scored": 30},
            {"full_marks": 50, "marks_scored": None},
        ],
    }
    summary = report_utils.summarize_exam_entry(entry)
    assert summary["total_marks_scored"] == 120
    assert summary["total_full_marks"] == 200
    assert summary["percentage"] == 60.0
    assert summary["grade"] == "B"
    assert summary["completed_subjects"] == 2
    assert summary["total_subjects"] == 3
    assert summary["is_completed"] is False


@pytest.mark.parametrize(
    "marks_scored,percentage,grade",
    [(65.995, 33.0, "F"), (66, 33.0, "D"), (179.992, 90.0, "A"), (180, 90.0, "A+")],
)
def test_summary_grade_uses_unrounded_percentage(marks_scored, percentage, grade):
    entry = {"exam_id": 1, "subjects": [{"full_marks": 200, "marks_scored": marks_scored}]}
    summary = report_utils.summarize_exam_entry(entry)
    assert summary["percentage"] == percentage
    assert summary["grade"] == grade


def test_student_detailed_marks(scored, midterm):
    school = scored
    report = report_utils.get_student_detailed_marks(
        school.class_id, school.alice_id, school.t1_id
    )
    assert report["student_info"]["name"] == "Alice"
    assert report["total_exams"] == 1
    exam = report["exams"][0]
    assert exam["exam_id"] == midterm
    assert exam["percentage"] == 80.0
    assert exam["grade"] == "A"
    assert exam["is_completed"] is True

    with pytest.raises(Unauthorized):
        report_utils.get_student_detailed_marks(
            school.class_id, school.alice_id, school.outsider_id
        )
    with pytest.raises(NotFound):
        report_utils.get_student_detailed_marks(
            school.class_id, school.inactive_id, school.admin_id
        )


def test_class_marks_summary_is_admin_only(scored):
    school = scored
    summary = report_utils.get_class_marks_summary(school.class_id, school.admin_id)
    assert [row["student_name"] for row in summary["students"]] == ["Alice", "Bob"]
    bob = summary["students"][1]["exams"][0]
    assert bob["completed_subjects"] == 1
    assert bob["percentage"] == 13.33
    assert "subjects" not in bob

    with pytest.raises(Unauthorized):
        report_utils.get_class_marks_summary(school.class_id, school.t1_id)


def test_students_for_scoring_uses_placeholders(scored, subjects, midterm):
    school = scored
    record = mark_store.get_mark_record(school.bob_id, school.class_id)
    db.session.delete(record)
    db.session.commit()

    sheet = report_utils.get_students_for_scoring(school.class_id, school.t1_id)

    assert sheet["teacher_info"]["name"] == "Tomas One"
    assert sheet["total_students"] == 2
    by_name = {s["student_name"]: s for s in sheet["students"]}
    alice_subjects = by_name["Alice"]["exams"][0]["subjects"]
    assert [s["subject_id"] for s in alice_subjects] == [subjects.math_id]
    assert alice_subjects[0]["marks_scored"] == 90
    bob_subjects = by_name["Bob"]["exams"][0]["subjects"]
    assert bob_subjects[0]["marks_scored"] is None
    assert bob_subjects[0]["full_marks"] == 100


def test_students_for_scoring_without_exams(school, subjects):
    sheet = report_utils.get_students_for_scoring(school.class_id, school.t1_id)
    assert sheet["students"] == []
    assert sheet["message"] == "No exams created for this class yet"


def test_teacher_subject_report(scored, subjects):
    school = scored
    report = report_utils.get_teacher_subject_report(school.class_id, school.t1_id)

    assert [s["subject_id"] for s in report["subjects"]] == [subjects.math_id]
    math = report["subjects"][0]
    summary = math["summary"]
    assert summary["students"] == 2
    assert summary["average"] == 55.0
    assert summary["completion_rate"] == 100.0
    assert summary["highest"] == 90.0
    assert summary["lowest"] == 20.0
    assert summary["passed"] == 1
    assert summary["failed"] == 1
    bob = next(s for s in math["students"] if s["student_name"] == "Bob")
    assert bob["grade"] == "F"
    assert bob["passed"] is False


def test_student_academic_report(scored, midterm):
    school = scored
    report = report_utils.get_student_academic_report(school.class_id, school.bob_id)
    assert report["total_exams"] == 1
    assert report["overall"]["total_marks_scored"] == 20
    assert report["overall"]["total_full_marks"] == 150
    assert report["overall"]["percentage"] == 13.33
    assert report["overall"]["grade"] == "F"
    assert report["overall"]["completed_exams"] == 0

    with pytest.raises(StudentNotInClass):
        report_utils.get_student_academic_report(school.class_id, school.inactive_id)


def test_subject_report_fails_score_just_below_pass_mark(school, subjects, exam_payload):
    exam, _ = exam_store.create_exam(
        school.class_id,
        exam_payload(subjects=[{"subject_id": subjects.math_id, "full_marks": 200}]),
        school.admin_id,
    )
    submit_marks(school.class_id, school.alice_id, exam.id, subjects.math_id, 65.995, school.t1_id)

    report = report_utils.get_teacher_subject_report(school.class_id, school.t1_id)

    math = report["subjects"][0]
    alice = next(s for s in math["students"] if s["student_name"] == "Alice")
    assert alice["percentage"] == 33.0
    assert alice["grade"] == "F"
    assert alice["passed"] is False
    assert math["summary"]["passed"] == 0
    assert math["summary"]["failed"] == 1

    overall = report_utils.get_student_academic_report(school.class_id, school.alice_id)
    assert overall["overall"]["grade"] == "F"
