from datetime import date

from flask import Blueprint, Response, jsonify, request
from flask_login import current_user, login_required

from app.exceptions import NotFound, ValidationFailed, VersionNotFound
from app.models import EXECUTION_STATUSES, utcnow
from app.services import case_service, diff_service, import_service, report_service, run_service
from app.services.case_service import coerce_int

bp = Blueprint('api', __name__, url_prefix='/api')


def _json():
    return request.get_json(silent=True) or {}


def _require_name(data, message='name is required'):
    name = str(data.get('name') or '').strip()
    if not name:
        raise ValidationFailed(message, details={'name': 'required'})
    return name


@bp.route('/health', methods=['GET'])
def health():
    return jsonify({'ok': True, 'now': utcnow().isoformat()})


# ============ Project API ============

@bp.route('/projects', methods=['GET', 'POST'])
@login_required
def projects():
    """프로젝트 목록 조회 / 생성"""
    if request.method == 'GET':
        return jsonify({'projects': case_service.list_projects()})

    project_id = case_service.create_project(_require_name(_json()))
    return jsonify({'project_id': project_id}), 201


@bp.route('/projects/<int:project_id>', methods=['PATCH', 'DELETE'])
@login_required
def manage_project(project_id):
    """프로젝트 이름 변경 / 삭제"""
    if request.method == 'DELETE':
        case_service.delete_project(project_id)
        return jsonify({'ok': True})

    case_service.update_project(project_id, _require_name(_json()))
    return jsonify({'ok': True})


# ============ Suite API ============

@bp.route('/projects/<int:project_id>/suites', methods=['GET', 'POST'])
@login_required
def suites(project_id):
    """스위트 목록 조회 / 생성"""
    if request.method == 'GET':
        return jsonify({'suites': case_service.list_suites(project_id)})

    data = _json()
    suite_id = case_service.create_suite(project_id, _require_name(data), data.get('parent_id'))
    return jsonify({'suite_id': suite_id}), 201


@bp.route('/suites/<int:suite_id>', methods=['PATCH', 'DELETE'])
@login_required
def manage_suite(suite_id):
    """스위트 수정 / 삭제"""
    if request.method == 'DELETE':
        case_service.delete_suite(suite_id)
        return jsonify({'ok': True})

    data = _json()
    case_service.update_suite(suite_id, _require_name(data), data.get('parent_id'))
    return jsonify({'ok': True})


# ============ Case API ============

@bp.route('/projects/<int:project_id>/cases', methods=['GET', 'POST'])
@login_required
def cases(project_id):
    """케이스 목록 조회 / 생성 (버전 1)"""
    if request.method == 'GET':
        suite_id = request.args.get('suite_id', type=int)
        return jsonify({'cases': case_service.list_cases(project_id, suite_id)})

    data = _json()
    case_service.validate_case_input(data)
    result = case_service.create_case(project_id, data, actor_id=current_user.id)
    return jsonify(result), 201


@bp.route('/projects/<int:project_id>/cases/export', methods=['GET'])
@login_required
def export_cases(project_id):
    """케이스 CSV 내보내기 (현재 버전 기준)"""
    suite_id = request.args.get('suite_id', type=int)
    csv_text = import_service.export_cases_csv(project_id, suite_id)
    filename = f'tmt-cases-{project_id}-{date.today().isoformat()}.csv'
    return Response(
        csv_text,
        content_type='text/csv; charset=utf-8',
        headers={
            'Content-Disposition': f'attachment; filename="{filename}"',
        },
    )


def _merge_case_payload(detail, data):
    """PUT 입력을 현재 케이스 위에 덮어쓴다 (없는 필드는 현재 값 유지)"""
    case = detail['case']
    current_version = detail['current_version']
    merged = {
        key: data[key] if data.get(key) is not None else case[key]
        for key in (
            'suite_id', 'title', 'quality_attribute', 'category_large',
            'category_medium', 'preconditions', 'priority',
        )
    }
    merged['tags'] = data['tags'] if isinstance(data.get('tags'), list) else case['tags']
    if isinstance(data.get('steps'), list):
        merged['steps'] = data['steps']
    else:
        merged['steps'] = current_version['snapshot']['steps'] if current_version else []
    return merged


@bp.route('/cases/<int:case_id>', methods=['GET', 'PUT', 'DELETE'])
@login_required
def case_detail(case_id):
    """케이스 상세 / 수정(새 버전) / 삭제"""
    if request.method == 'DELETE':
        case_service.delete_case(case_id)
        return jsonify({'ok': True})

    detail = case_service.get_case_detail(case_id)
    if detail is None:
        raise NotFound('case', case_id)

    if request.method == 'GET':
        return jsonify(detail)

    data = _json()
    payload = _merge_case_payload(detail, data)
    case_service.validate_case_input(payload)

    expected_version_no = data.get('expected_version_no')
    if expected_version_no is not None and coerce_int(expected_version_no) is None:
        raise ValidationFailed('expected_version_no must be an integer',
                               details={'expected_version_no': expected_version_no})

    result = case_service.create_version(
        case_id,
        payload,
        actor_id=current_user.id,
        expected_version_no=coerce_int(expected_version_no),
    )
    return jsonify(result)


@bp.route('/cases/<int:case_id>/versions/<int:version_id>', methods=['GET'])
@login_required
def case_version(case_id, version_id):
    """케이스 특정 버전 조회"""
    version = case_service.get_version(version_id)
    if version is None or version['case_id'] != case_id:
        raise VersionNotFound(version_id)
    return jsonify({'version': version})


@bp.route('/cases/<int:case_id>/diff', methods=['GET'])
@login_required
def case_diff(case_id):
    """두 버전 비교"""
    from_version_id = request.args.get('from_version_id', type=int)
    to_version_id = request.args.get('to_version_id', type=int)
    if not from_version_id or not to_version_id:
        raise ValidationFailed('from_version_id and to_version_id are required')

    diff = diff_service.diff_versions(from_version_id, to_version_id, case_id=case_id)
    return jsonify({'diff': diff})


# ============ Import API ============

def _csv_text(data):
    csv_text = str(data.get('csv_text') or '')
    if not csv_text.strip():
        raise ValidationFailed('csv_text is required', details={'csv_text': 'required'})
    return csv_text


@bp.route('/import/preview', methods=['POST'])
@login_required
def import_preview():
    """CSV 미리보기 (저장 안 함)"""
    return jsonify(import_service.preview_import(_csv_text(_json())))


@bp.route('/import/execute', methods=['POST'])
@login_required
def import_execute():
    """CSV 가져오기 실행"""
    data = _json()
    project_id = coerce_int(data.get('project_id'))
    if not project_id:
        raise ValidationFailed('project_id is required', details={'project_id': 'required'})

    result = import_service.execute_import(
        project_id,
        str(data.get('file_name') or 'import.csv'),
        _csv_text(data),
        actor_id=current_user.id,
    )
    return jsonify(result)


@bp.route('/import/logs', methods=['GET', 'DELETE'])
@login_required
def import_logs():
    """가져오기 로그 목록 / 전체 삭제"""
    if request.method == 'DELETE':
        import_service.clear_import_logs()
        return jsonify({'ok': True})
    return jsonify({'logs': import_service.list_import_logs()})


@bp.route('/import/logs/<int:log_id>/rows', methods=['GET'])
@login_required
def import_log_rows(log_id):
    return jsonify({'rows': import_service.list_import_log_rows(log_id)})


@bp.route('/import/logs/<int:log_id>', methods=['DELETE'])
@login_required
def delete_import_log(log_id):
    import_service.delete_import_log(log_id)
    return jsonify({'ok': True})


# ============ Run API ============

@bp.route('/runs', methods=['POST'])
@login_required
def create_run():
    """런 생성 (선택한 케이스의 현재 버전으로 고정)"""
    data = _json()
    project_id = coerce_int(data.get('project_id'))
    name = str(data.get('name') or '').strip()
    case_ids = data.get('case_ids') if isinstance(data.get('case_ids'), list) else []
    case_ids = [cid for cid in (coerce_int(c) for c in case_ids) if cid is not None]

    if not project_id or not name or not case_ids:
        return jsonify({'error': 'invalid_run_payload',
                        'message': 'project_id, name and case_ids are required'}), 400

    run_id = run_service.create_run(
        project_id, name, data.get('release_version'), case_ids, actor_id=current_user.id,
    )
    return jsonify({'run_id': run_id}), 201


@bp.route('/projects/<int:project_id>/runs', methods=['GET'])
@login_required
def project_runs(project_id):
    return jsonify({'runs': run_service.list_runs(project_id)})


@bp.route('/runs/<int:run_id>', methods=['GET', 'PATCH', 'DELETE'])
@login_required
def run_detail(run_id):
    """런 상세 / 이름 변경 / 삭제"""
    if request.method == 'DELETE':
        run_service.delete_run(run_id)
        return jsonify({'ok': True})

    if request.method == 'PATCH':
        data = _json()
        run_service.update_run(run_id, _require_name(data), data.get('release_version'))
        return jsonify({'ok': True})

    detail = run_service.get_run_detail(run_id)
    if detail is None:
        raise NotFound('run', run_id)
    return jsonify(detail)


@bp.route('/runs/<int:run_id>/status', methods=['PATCH'])
@login_required
def run_status(run_id):
    """런 open / closed 전환"""
    run_service.update_run_status(run_id, str(_json().get('status') or ''))
    return jsonify({'ok': True})


# ============ Run Execution API ============

@bp.route('/run-cases/<int:run_case_id>', methods=['GET'])
@login_required
def run_case_execution(run_case_id):
    """실행 화면 데이터 (고정된 버전의 스텝 + 저장된 결과)"""
    payload = run_service.get_run_case_execution(run_case_id)
    if payload is None:
        raise NotFound('run_case', run_case_id)
    return jsonify(payload)


@bp.route('/run-cases/<int:run_case_id>/result', methods=['POST'])
@login_required
def save_run_case_result(run_case_id):
    """결과 저장 (알 수 없는 스텝 상태는 untested로 저장)"""
    data = _json()
    raw_steps = data.get('step_results') if isinstance(data.get('step_results'), list) else []

    step_results = []
    for row in raw_steps:
        if not isinstance(row, dict):
            continue
        status = str(row.get('status') or 'untested')
        step_results.append({
            'step_no': row.get('step_no'),
            'status': status if status in EXECUTION_STATUSES else 'untested',
            'comment': str(row.get('comment') or ''),
        })

    result = run_service.save_result(
        run_case_id, str(data.get('comment') or ''), step_results, actor_id=current_user.id,
    )
    return jsonify(result)


# ============ Report API ============

@bp.route('/reports/<int:project_id>/summary', methods=['GET'])
@login_required
def report_summary(project_id):
    return jsonify(report_service.summary(project_id))


@bp.route('/reports/<int:project_id>/failures', methods=['GET'])
@login_required
def report_failures(project_id):
    return jsonify({'failures': report_service.failures(project_id)})


@bp.route('/reports/<int:project_id>/priority', methods=['GET'])
@login_required
def report_priority(project_id):
    return jsonify({'priorities': report_service.priority_breakdown(project_id)})
