from datetime import datetime, timezone
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from app import db


RUN_STATUSES = ('open', 'closed')
EXECUTION_STATUSES = ('untested', 'pass', 'fail', 'blocked')


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    """사용자 모델"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), default='')
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='tester')  # admin, qa, tester
    is_active = db.Column(db.Boolean, default=True, nullable=False)  # 계정 활성화 여부
    created_at = db.Column(db.DateTime, default=utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name,
            'role': self.role,
        }

    def __repr__(self):
        return f'<User {self.username}>'


class Project(db.Model):
    """프로젝트 모델"""
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    # Relationships
    runs = db.relationship('Run', backref='project', lazy='dynamic', cascade='all, delete-orphan')
    cases = db.relationship('Case', backref='project', lazy='dynamic', cascade='all, delete-orphan')
    suites = db.relationship('Suite', backref='project', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Project {self.name}>'


class Suite(db.Model):
    """스위트(트리 구조) 모델"""
    __tablename__ = 'suites'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('suites.id', ondelete='SET NULL'), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('project_id', 'name', name='uq_project_suite_name'),
    )

    # Self-referential relationship for tree structure
    children = db.relationship('Suite', backref=db.backref('parent', remote_side=[id]), lazy='dynamic')
    cases = db.relationship('Case', backref='suite', lazy='dynamic', cascade='all, delete-orphan')

    def get_full_path(self):
        """스위트 전체 경로 (예: 'Parent > Child > Current')"""
        path = [self.name]
        current = self
        while current.parent:
            current = current.parent
            path.insert(0, current.name)
        return ' > '.join(path)

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'name': self.name,
            'parent_id': self.parent_id,
            'full_path': self.get_full_path(),
        }

    def __repr__(self):
        return f'<Suite {self.name}>'


class Case(db.Model):
    """테스트 케이스 모델 (최신 버전을 가리키는 head 포인터 + 최신 버전 메타데이터 미러)"""
    __tablename__ = 'test_cases'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    suite_id = db.Column(db.Integer, db.ForeignKey('suites.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(500), nullable=False)
    quality_attribute = db.Column(db.String(200), default='')
    category_large = db.Column(db.String(200), default='')
    category_medium = db.Column(db.String(200), default='')
    preconditions = db.Column(db.Text, default='')
    priority = db.Column(db.String(20), default='Medium')
    tags = db.Column(db.JSON, nullable=False, default=list)
    # 버전 테이블과 순환 참조: 버전 삭제 시 NULL
    current_version_id = db.Column(
        db.Integer,
        db.ForeignKey('test_case_versions.id', ondelete='SET NULL', use_alter=True,
                      name='fk_test_cases_current_version_id'),
        nullable=True,
    )
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('suite_id', 'title', name='uq_suite_case_title'),
    )

    # Relationships
    versions = db.relationship(
        'CaseVersion', backref='case', lazy='dynamic',
        cascade='all, delete-orphan', foreign_keys='CaseVersion.case_id',
    )
    run_cases = db.relationship('RunCase', backref='case', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'suite_id': self.suite_id,
            'title': self.title,
            'quality_attribute': self.quality_attribute or '',
            'category_large': self.category_large or '',
            'category_medium': self.category_medium or '',
            'preconditions': self.preconditions or '',
            'priority': self.priority,
            'tags': list(self.tags or []),
            'current_version_id': self.current_version_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Case {self.title}>'


class CaseVersion(db.Model):
    """케이스 버전 (생성 후 변경 불가 스냅샷)"""
    __tablename__ = 'test_case_versions'

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(db.Integer, db.ForeignKey('test_cases.id', ondelete='CASCADE'), nullable=False, index=True)
    version_no = db.Column(db.Integer, nullable=False)
    snapshot = db.Column(db.JSON, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('case_id', 'version_no', name='uq_case_version_no'),
    )

    steps = db.relationship(
        'Step', backref='version', lazy='select',
        cascade='all, delete-orphan', order_by='Step.step_no',
    )

    def __repr__(self):
        return f'<CaseVersion case_id={self.case_id} v{self.version_no}>'


class Step(db.Model):
    """버전에 속한 스텝 (step_no 순서로 실행)"""
    __tablename__ = 'test_steps'

    id = db.Column(db.Integer, primary_key=True)
    case_version_id = db.Column(
        db.Integer, db.ForeignKey('test_case_versions.id', ondelete='CASCADE'), nullable=False, index=True
    )
    step_no = db.Column(db.Integer, nullable=False)
    action = db.Column(db.Text, nullable=False, default='')
    input_data = db.Column(db.Text, default='')
    expected_result = db.Column(db.Text, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('case_version_id', 'step_no', name='uq_version_step_no'),
    )

    def to_dict(self):
        return {
            'step_no': self.step_no,
            'action': self.action or '',
            'input_data': self.input_data or '',
            'expected_result': self.expected_result or '',
        }

    def __repr__(self):
        return f'<Step {self.step_no} of version_id={self.case_version_id}>'


class Run(db.Model):
    """테스트 런 모델"""
    __tablename__ = 'test_runs'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    release_version = db.Column(db.String(100), default='')
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    status = db.Column(db.String(10), nullable=False, default='open')  # open, closed

    __table_args__ = (
        db.CheckConstraint("status IN ('open', 'closed')", name='ck_test_runs_status'),
    )

    # Relationships
    run_cases = db.relationship('RunCase', backref='run', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'name': self.name,
            'release_version': self.release_version or '',
            'status': self.status,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Run {self.name}>'


class RunCase(db.Model):
    """런에 포함된 케이스 (생성 시점의 버전에 고정)"""
    __tablename__ = 'test_run_cases'

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey('test_runs.id', ondelete='CASCADE'), nullable=False, index=True)
    case_id = db.Column(db.Integer, db.ForeignKey('test_cases.id', ondelete='CASCADE'), nullable=False, index=True)
    case_version_id = db.Column(
        db.Integer, db.ForeignKey('test_case_versions.id', ondelete='RESTRICT'), nullable=False
    )
    status = db.Column(db.String(10), nullable=False, default='untested')

    __table_args__ = (
        db.UniqueConstraint('run_id', 'case_id', name='uq_run_case'),
        db.CheckConstraint(
            "status IN ('untested', 'pass', 'fail', 'blocked')", name='ck_test_run_cases_status'
        ),
    )

    case_version = db.relationship('CaseVersion')
    result = db.relationship(
        'Result', backref='run_case', uselist=False, cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'run_id': self.run_id,
            'case_id': self.case_id,
            'case_version_id': self.case_version_id,
            'status': self.status,
        }

    def __repr__(self):
        return f'<RunCase run_id={self.run_id} case_id={self.case_id}>'


class Result(db.Model):
    """런케이스 실행 결과 (런케이스당 최대 1개, 저장 시 덮어쓰기)"""
    __tablename__ = 'test_results'

    id = db.Column(db.Integer, primary_key=True)
    run_case_id = db.Column(
        db.Integer, db.ForeignKey('test_run_cases.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    overall_status = db.Column(db.String(10), nullable=False)
    comment = db.Column(db.Text, default='')
    executed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    executed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "overall_status IN ('untested', 'pass', 'fail', 'blocked')", name='ck_test_results_status'
        ),
    )

    step_results = db.relationship(
        'StepResult', backref='result', lazy='select',
        cascade='all, delete-orphan', order_by='StepResult.step_no',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'overall_status': self.overall_status,
            'comment': self.comment or '',
            'executed_by': self.executed_by,
            'executed_at': _iso(self.executed_at),
            'step_results': [sr.to_dict() for sr in self.step_results],
        }

    def __repr__(self):
        return f'<Result {self.overall_status} for run_case_id={self.run_case_id}>'


class StepResult(db.Model):
    """스텝별 실행 결과"""
    __tablename__ = 'test_step_results'

    id = db.Column(db.Integer, primary_key=True)
    result_id = db.Column(db.Integer, db.ForeignKey('test_results.id', ondelete='CASCADE'), nullable=False, index=True)
    step_no = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(10), nullable=False)
    comment = db.Column(db.Text, default='')

    __table_args__ = (
        db.UniqueConstraint('result_id', 'step_no', name='uq_result_step_no'),
        db.CheckConstraint(
            "status IN ('untested', 'pass', 'fail', 'blocked')", name='ck_test_step_results_status'
        ),
    )

    def to_dict(self):
        return {'step_no': self.step_no, 'status': self.status, 'comment': self.comment or ''}


class ImportLog(db.Model):
    """CSV 가져오기 실행 로그"""
    __tablename__ = 'import_logs'

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(300), nullable=False)
    total_rows = db.Column(db.Integer, nullable=False, default=0)
    success_count = db.Column(db.Integer, nullable=False, default=0)
    fail_count = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    rows = db.relationship(
        'ImportLogRow', backref='import_log', lazy='dynamic', cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'file_name': self.file_name,
            'total_rows': self.total_rows,
            'success_count': self.success_count,
            'fail_count': self.fail_count,
            'created_at': _iso(self.created_at),
        }


class ImportLogRow(db.Model):
    """CSV 행 단위 가져오기 결과"""
    __tablename__ = 'import_log_rows'

    id = db.Column(db.Integer, primary_key=True)
    import_log_id = db.Column(
        db.Integer, db.ForeignKey('import_logs.id', ondelete='CASCADE'), nullable=False, index=True
    )
    row_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(10), nullable=False)  # success, fail
    error_message = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'row_number': self.row_number,
            'status': self.status,
            'error_message': self.error_message,
        }
