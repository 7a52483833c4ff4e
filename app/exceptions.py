"""
서비스 계층 예외 정의.

서비스 함수는 아래 예외만 발생시키고, api 블루프린트의 에러 핸들러가
status_code / code 로 HTTP 응답을 만든다.

    from app.exceptions import NotFound, ValidationFailed

    raise NotFound('case', case_id)
    raise ValidationFailed('title is required', details={'title': 'required'})
"""


class ServiceError(Exception):
    """서비스 계층 예외의 공통 부모"""

    status_code = 500
    code = 'internal_error'

    def to_dict(self):
        return {'error': self.code, 'message': str(self)}


class NotFound(ServiceError):
    """대상(case/version/run/run-case/project/suite 등)이 존재하지 않음"""

    status_code = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.code = f'{resource}_not_found'
        msg = f'{resource}'
        if resource_id is not None:
            msg += f' id={resource_id}'
        super().__init__(msg + ' not found')


class VersionNotFound(NotFound):
    """케이스 버전 id가 존재하지 않음 (diff / 버전 조회)"""

    def __init__(self, version_id: int | None = None) -> None:
        super().__init__('version', version_id)


class ValidationFailed(ServiceError):
    """입력값 검증 실패. 쓰기 전에 발생하므로 부분 저장이 남지 않는다.

    Args:
        message: 사람이 읽는 설명
        details: 필드별 오류 (예: {'steps[0].step_no': 'must be a positive integer'})
    """

    status_code = 400
    code = 'validation_failed'

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_dict(self):
        payload = super().to_dict()
        if self.details:
            payload['details'] = self.details
        return payload


class ConstraintViolation(ServiceError):
    """DB 제약조건 위반 (suite 내 제목 중복, 버전 번호 중복 등). 트랜잭션 전체 롤백."""

    status_code = 409
    code = 'constraint_violation'


class VersionConflict(ConstraintViolation):
    """expected_version_no 가 현재 head 버전과 다름 (다른 편집자가 먼저 저장)"""

    code = 'version_conflict'

    def __init__(self, case_id: int, expected: int, actual: int | None) -> None:
        self.case_id = case_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f'case id={case_id} is at version {actual}, expected {expected}'
        )
