"""
로깅 설정.

- development / testing: 사람이 읽기 쉬운 한 줄 포맷
- production: JSON 한 줄 포맷 (로그 수집기용)
- 레벨: LOG_LEVEL 환경변수 (미지정 시 production INFO, 그 외 DEBUG)
"""

import json
import logging
import sys
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """production용 JSON 포맷터"""

    EXTRA_KEYS = ('method', 'path', 'status', 'project_id', 'case_id', 'run_id', 'user_id')

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        for key in self.EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """개발용 포맷터"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime('%H:%M:%S')
        base = f'{ts} {record.levelname:<8} {record.name}: {record.getMessage()}'
        if record.exc_info and record.exc_info[0] is not None:
            base += '\n' + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """루트 로거에 핸들러 1개를 설치한다 (기존 핸들러는 제거)."""
    is_testing = app.config.get('TESTING', False)
    is_prod = not app.config.get('DEBUG', False) and not is_testing

    level_name = app.config.get('LOG_LEVEL') or ('INFO' if is_prod else 'DEBUG')
    level = getattr(logging, str(level_name).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ('werkzeug', 'sqlalchemy.engine', 'alembic'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info('Logging configured: level=%s format=%s',
                        level_name, 'JSON' if is_prod else 'readable')
