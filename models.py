from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class ClassRoom(db.Model):
    """A class (grade + section) within a school.

    class_admin_id is the teacher with elevated rights over this class.
    """

    __tablename__ = "class_rooms"

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, nullable=False, index=True)
    class_admin_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)  # e.g., "Grade 8"
    section = db.Column(db.String(10), nullable=False)  # e.g., "B"
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<ClassRoom {self.name} {self.section}>"


class Teacher(db.Model):
    __tablename__ = "teachers"

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(100), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="active"
    )  # active, suspended
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<Teacher {self.name} ({self.status})>"

    @property
    def is_active(self):
        """Check if teacher account is active"""
        return self.status == "active"


class ClassTeacher(db.Model):
    """Teachers attached to a class (many-to-many relationship)"""

    __tablename__ = "class_teachers"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey("class_rooms.id"), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey("teachers.id"), nullable=False)
    joined_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    __table_args__ = (
        db.UniqueConstraint("class_id", "teacher_id", name="unique_class_teacher"),
    )

    def __repr__(self):
        return f"<ClassTeacher class:{self.class_id} teacher:{self.teacher_id}>"


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(
        db.Integer, db.ForeignKey("class_rooms.id"), nullable=False, index=True
    )
    school_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    student_number = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<Student {self.name} class:{self.class_id}>"


# ---------------------------------------------------------------------------
# Assignment store: one SubjectAssignment per class, canonical teacher per subject
# ---------------------------------------------------------------------------


class SubjectAssignment(db.Model):
    __tablename__ = "subject_assignments"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, unique=True, nullable=False)
    school_id = db.Column(db.Integer, nullable=False, index=True)
    class_admin_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    subjects = db.relationship(
        "AssignedSubject",
        backref="assignment",
        cascade="all, delete-orphan",
        order_by="AssignedSubject.id",
    )

    def __repr__(self):
        return f"<SubjectAssignment class:{self.class_id}>"

    def find_subject(self, subject_id):
        for subject in self.subjects:
            if subject.id == subject_id:
                return subject
        return None

    def to_dict(self):
        return {
            "class_id": self.class_id,
            "school_id": self.school_id,
            "class_admin_id": self.class_admin_id,
            "subjects": [s.to_dict() for s in self.subjects],
        }


class AssignedSubject(db.Model):
    __tablename__ = "assigned_subjects"

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(
        db.Integer, db.ForeignKey("subject_assignments.id"), nullable=False
    )
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), nullable=False)  # stored upper-cased
    description = db.Column(db.String(255), nullable=False, default="")
    teacher_id = db.Column(db.Integer, nullable=True, index=True)  # null = unassigned
    credits = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<AssignedSubject {self.code} teacher:{self.teacher_id}>"

    def to_dict(self):
        return {
            "subject_id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "teacher_id": self.teacher_id,
            "credits": self.credits,
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------------
# Exam store: exam header + snapshot of examined subjects
# ---------------------------------------------------------------------------


class Exam(db.Model):
    __tablename__ = "exams"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, nullable=False, index=True)
    school_id = db.Column(db.Integer, nullable=False)
    class_admin_id = db.Column(db.Integer, nullable=False)
    exam_name = db.Column(db.String(100), nullable=False)
    exam_code = db.Column(db.String(20), nullable=False)  # stored upper-cased
    exam_date = db.Column(db.DateTime, nullable=False)
    duration = db.Column(db.Integer, nullable=False)  # minutes
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    subjects = db.relationship(
        "ExamSubject",
        backref="exam",
        cascade="all, delete-orphan",
        order_by="ExamSubject.id",
    )

    def __repr__(self):
        return f"<Exam {self.exam_code} class:{self.class_id}>"

    def find_subject(self, subject_id):
        for subject in self.subjects:
            if subject.subject_id == subject_id:
                return subject
        return None

    def to_dict(self):
        return {
            "exam_id": self.id,
            "class_id": self.class_id,
            "school_id": self.school_id,
            "class_admin_id": self.class_admin_id,
            "exam_name": self.exam_name,
            "exam_code": self.exam_code,
            "exam_date": self.exam_date.isoformat() if self.exam_date else None,
            "duration": self.duration,
            "is_active": self.is_active,
            "subjects": [s.to_dict() for s in self.subjects],
        }


class ExamSubject(db.Model):
    __tablename__ = "exam_subjects"

    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(db.Integer, db.ForeignKey("exams.id"), nullable=False)
    # refers to AssignedSubject.id; no FK so exams survive subject removal
    subject_id = db.Column(db.Integer, nullable=False, index=True)
    subject_name = db.Column(db.String(100), nullable=False)
    teacher_id = db.Column(db.Integer, nullable=True, index=True)  # copy
    credits = db.Column(db.Integer, nullable=False, default=1)
    full_marks = db.Column(db.Float(precision=53), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("exam_id", "subject_id", name="unique_exam_subject"),
    )

    def __repr__(self):
        return f"<ExamSubject exam:{self.exam_id} subject:{self.subject_id}>"

    def to_dict(self):
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "teacher_id": self.teacher_id,
            "credits": self.credits,
            "full_marks": self.full_marks,
        }


# ---------------------------------------------------------------------------
# Mark store: one record per (student, class), one entry per exam, one per subject
# ---------------------------------------------------------------------------


class MarkRecord(db.Model):
    __tablename__ = "mark_records"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, nullable=False, index=True)
    class_id = db.Column(db.Integer, nullable=False, index=True)
    school_id = db.Column(db.Integer, nullable=False)
    class_admin_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    exams = db.relationship(
        "MarkExam",
        backref="record",
        cascade="all, delete-orphan",
        order_by="MarkExam.id",
    )

    __table_args__ = (
        db.UniqueConstraint("student_id", "class_id", name="unique_student_marks"),
    )

    def __repr__(self):
        return f"<MarkRecord student:{self.student_id} class:{self.class_id}>"

    def find_exam(self, exam_id):
        for entry in self.exams:
            if entry.exam_id == exam_id:
                return entry
        return None

    def to_dict(self):
        return {
            "student_id": self.student_id,
            "class_id": self.class_id,
            "school_id": self.school_id,
            "class_admin_id": self.class_admin_id,
            "exams": [e.to_dict() for e in self.exams],
        }


class MarkExam(db.Model):
    __tablename__ = "mark_exams"

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("mark_records.id"), nullable=False)
    exam_id = db.Column(db.Integer, nullable=False, index=True)
    exam_name = db.Column(db.String(100), nullable=False)
    exam_code = db.Column(db.String(20), nullable=False)
    exam_date = db.Column(db.DateTime, nullable=False)

    subjects = db.relationship(
        "MarkSubject",
        backref="exam_entry",
        cascade="all, delete-orphan",
        order_by="MarkSubject.id",
    )

    __table_args__ = (
        db.UniqueConstraint("record_id", "exam_id", name="unique_record_exam"),
    )

    def __repr__(self):
        return f"<MarkExam record:{self.record_id} exam:{self.exam_id}>"

    def find_subject(self, subject_id):
        for subject in self.subjects:
            if subject.subject_id == subject_id:
                return subject
        return None

    def to_dict(self):
        return {
            "exam_id": self.exam_id,
            "exam_name": self.exam_name,
            "exam_code": self.exam_code,
            "exam_date": self.exam_date.isoformat() if self.exam_date else None,
            "subjects": [s.to_dict() for s in self.subjects],
        }


class MarkSubject(db.Model):
    __tablename__ = "mark_subjects"

    id = db.Column(db.Integer, primary_key=True)
    mark_exam_id = db.Column(db.Integer, db.ForeignKey("mark_exams.id"), nullable=False)
    subject_id = db.Column(db.Integer, nullable=False, index=True)
    subject_name = db.Column(db.String(100), nullable=False)
    teacher_id = db.Column(db.Integer, nullable=True, index=True)  # copy
    full_marks = db.Column(db.Float(precision=53), nullable=False)
    marks_scored = db.Column(db.Float(precision=53), nullable=True)  # null = not scored yet
    scored_by = db.Column(db.Integer, nullable=True)
    scored_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("mark_exam_id", "subject_id", name="unique_entry_subject"),
    )

    def __repr__(self):
        return f"<MarkSubject subject:{self.subject_id} marks:{self.marks_scored}>"

    def to_dict(self):
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "teacher_id": self.teacher_id,
            "full_marks": self.full_marks,
            "marks_scored": self.marks_scored,
            "scored_by": self.scored_by,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
        }
