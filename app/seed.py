"""
샘플 데이터 생성 (flask init-db).

이미 있는 데이터는 건너뛰므로 여러 번 실행해도 된다.
케이스는 case_service.create_case를 통해 만들어 버전 1이 함께 생긴다.
"""
import logging

from app import db
from app.models import Case, Project, Suite, User
from app.services.case_service import create_case

logger = logging.getLogger(__name__)

SAMPLE_USERS = [
    # username, display_name, role, password
    ('admin', 'Admin User', 'admin', 'admin123'),
    ('qa1', 'QA One', 'qa', 'qa1pass'),
    ('qa2', 'QA Two', 'qa', 'qa2pass'),
]

SAMPLE_PROJECT = 'TMT Demo Project'
SAMPLE_SUITES = ['API', 'UI', 'Regression']

# suite, title, quality_attribute, category_large, category_medium, preconditions, priority, tags, steps
SAMPLE_CASES = [
    ('API', 'Login API returns token', 'Security', 'Auth', 'Login', 'User account exists', 'High', ['auth', 'api'], [
        ('Send POST /login', 'valid credentials', '200 OK'),
        ('Verify token field', 'response body', 'token exists'),
        ('Call /me with token', 'Authorization header', 'user profile returned'),
    ]),
    ('API', 'Login API rejects bad password', 'Reliability', 'Auth', 'Negative', 'Known user account', 'High',
     ['auth', 'negative'], [
        ('Send POST /login', 'wrong password', '401 Unauthorized'),
        ('Check error code', 'response body', 'error code exists'),
        ('Check no token', 'response body', 'token is absent'),
    ]),
    ('API', 'CSV import validates required columns', 'Usability', 'Import', 'Validation', 'User logged in', 'Medium',
     ['import', 'csv'], [
        ('Upload invalid CSV', 'missing headers', 'validation errors shown'),
        ('Check failed rows', 'preview result', 'row errors visible'),
        ('Fix headers and retry', 'valid template', 'preview success'),
    ]),
    ('UI', 'Suite tree loads and expands', 'Usability', 'Navigation', 'Suite', 'Project has suites', 'Medium',
     ['ui', 'suite'], [
        ('Open Test Cases page', 'sidebar click', 'suite tree visible'),
        ('Expand suite', 'click arrow', 'child items visible'),
        ('Select suite', 'click suite row', 'case list filtered'),
    ]),
    ('UI', 'Case detail edits create new version', 'Reliability', 'Versioning', 'Case Update',
     'Existing case present', 'High', ['version', 'history'], [
        ('Open case detail', 'case row click', 'detail panel opens'),
        ('Edit title and save', 'new text', 'save success'),
        ('Open history tab', 'tab click', 'version count incremented'),
    ]),
    ('UI', 'Version diff highlights step changes', 'Usability', 'Versioning', 'Diff',
     'At least two versions exist', 'Medium', ['diff', 'steps'], [
        ('Select base and target version', 'history tab', 'both versions selected'),
        ('Click compare', 'compare action', 'field diff displayed'),
        ('Inspect steps diff', 'step section', 'added/removed/changed listed'),
    ]),
    ('Regression', 'Run creation snapshots current versions', 'Reliability', 'Run', 'Snapshot',
     'Multiple cases exist', 'High', ['run', 'snapshot'], [
        ('Select cases and create run', 'run form', 'run created'),
        ('Update one case', 'case edit', 'new case version created'),
        ('Check run case version', 'run details', 'version id unchanged'),
    ]),
    ('Regression', 'Step result drives overall status', 'Reliability', 'Execution', 'Result', 'Open run exists',
     'High', ['execution', 'status'], [
        ('Mark first step pass', 'step 1', 'step saved'),
        ('Mark second step fail', 'step 2', 'step saved'),
        ('Save result', 'run case', 'overall status fail'),
    ]),
    ('Regression', 'Import log captures row-level errors', 'Reliability', 'Import', 'Logging', 'CSV file prepared',
     'Medium', ['import', 'log'], [
        ('Upload malformed CSV', 'bad rows', 'preview shows errors'),
        ('Execute import', 'import action', 'log created'),
        ('Open import log', 'logs table', 'failed row reasons shown'),
    ]),
    ('Regression', 'Reports show failure and priority breakdown', 'Usability', 'Reporting', 'Dashboard',
     'Run results exist', 'Low', ['reports'], [
        ('Open Reports page', 'sidebar', 'summary cards rendered'),
        ('Check failures table', 'reports', 'failed items listed'),
        ('Check priority chart', 'reports', 'priority counts shown'),
    ]),
]


def seed_users():
    created = 0
    for username, display_name, role, password in SAMPLE_USERS:
        if User.query.filter_by(username=username).first():
            continue
        user = User(username=username, display_name=display_name, role=role, email='')
        user.set_password(password)
        db.session.add(user)
        created += 1
    db.session.commit()
    return created


def seed_project():
    """샘플 프로젝트 + 스위트. 반환: (project_id, {suite_name: suite_id})"""
    project = Project.query.filter_by(name=SAMPLE_PROJECT).first()
    if project is None:
        project = Project(name=SAMPLE_PROJECT)
        db.session.add(project)
        db.session.flush()

    suites = {}
    for name in SAMPLE_SUITES:
        suite = Suite.query.filter_by(project_id=project.id, name=name).first()
        if suite is None:
            suite = Suite(project_id=project.id, name=name)
            db.session.add(suite)
            db.session.flush()
        suites[name] = suite.id
    db.session.commit()
    return project.id, suites


def seed_cases(project_id, suites, actor_id=None):
    created = 0
    for suite, title, qa, large, medium, preconditions, priority, tags, steps in SAMPLE_CASES:
        if Case.query.filter_by(suite_id=suites[suite], title=title).first():
            continue
        create_case(project_id, {
            'suite_id': suites[suite],
            'title': title,
            'quality_attribute': qa,
            'category_large': large,
            'category_medium': medium,
            'preconditions': preconditions,
            'priority': priority,
            'tags': tags,
            'steps': [
                {'step_no': no, 'action': action, 'input_data': input_data, 'expected_result': expected}
                for no, (action, input_data, expected) in enumerate(steps, start=1)
            ],
        }, actor_id=actor_id)
        created += 1
    return created


def run_seed():
    """사용자 → 프로젝트/스위트 → 케이스 순서로 생성"""
    users = seed_users()
    admin = User.query.filter_by(username='admin').first()
    project_id, suites = seed_project()
    cases = seed_cases(project_id, suites, actor_id=admin.id if admin else None)
    logger.info(f'샘플 데이터 생성: 사용자 {users}명, 케이스 {cases}개 (project_id={project_id})')
    return {'users': users, 'cases': cases, 'project_id': project_id}
