import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _default_sqlite_db_url() -> str:
    # 표준 DB 위치: <project_root>/instance/tmt.db (절대경로로 고정: CWD 영향 제거)
    root = Path(__file__).resolve().parent
    db_path = (root / "instance" / "tmt.db").resolve()
    return f"sqlite:///{db_path.as_posix()}"


def _normalize_db_url(db_url: str | None) -> str:
    """DB URL 정규화.

    - 미지정이면 instance/tmt.db
    - 상대 경로 sqlite URL(sqlite:///tmt.db 등)은 프로젝트 루트 기준 절대경로로 변환
    """
    if not db_url:
        return _default_sqlite_db_url()

    if db_url.startswith("sqlite:///") and not db_url.startswith("sqlite:////"):
        rel = db_url[len("sqlite:///") :]
        if rel == ":memory:" or Path(rel).is_absolute():
            return db_url
        root = Path(__file__).resolve().parent
        return f"sqlite:///{(root / rel).resolve().as_posix()}"

    return db_url


class Config:
    """Base configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_DATABASE_URI = _normalize_db_url(os.environ.get('DATABASE_URL'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSV import 요청 최대 크기(기본 5MB)
    # - TMT_IMPORT_MAX_CSV_MB=5  (정수)
    _max_import_mb = int(os.environ.get('TMT_IMPORT_MAX_CSV_MB', '5') or '5')
    MAX_CONTENT_LENGTH = max(1, _max_import_mb) * 1024 * 1024

    # LOG_LEVEL 미지정 시 configure_logging에서 환경별 기본값 사용
    LOG_LEVEL = os.environ.get('LOG_LEVEL')

    # Session settings
    SESSION_COOKIE_NAME = 'tmt_sid'
    SESSION_COOKIE_SECURE = False  # Set True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 604800  # 7 days


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get('SQLALCHEMY_ECHO') in ('1', 'true', 'True')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    """Testing configuration (in-memory SQLite)"""
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'testing-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
