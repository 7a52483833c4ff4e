import logging
import os
from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine
from config import config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()

logger = logging.getLogger(__name__)


@event.listens_for(Engine, 'connect')
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite 연결마다 FK 제약(ON DELETE CASCADE 등) 활성화"""
    if 'sqlite' in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def create_app(config_name='default'):
    """Application factory pattern"""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    from app.logging_config import configure_logging
    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    # SQLite 파일 DB면 instance 폴더 생성
    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///') and ':memory:' not in uri:
        os.makedirs(os.path.dirname(uri[len('sqlite:///'):]), exist_ok=True)

    # Register blueprints
    from app.routes import auth, api
    app.register_blueprint(auth.bp)
    app.register_blueprint(api.bp)

    # User loader
    from app.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'unauthorized'}), 401

    register_error_handlers(app)

    return app


def register_error_handlers(app):
    """서비스 예외 → JSON 응답 매핑"""
    from app.exceptions import ServiceError

    @app.errorhandler(ServiceError)
    def service_error(e):
        logger.warning(f'{request.method} {request.path} -> {e.code}: {e}')
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'not_found', 'path': request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'method_not_allowed'}), 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'500 error on {request.method} {request.path}: {e}', exc_info=True)
        return jsonify({'error': 'internal_error'}), 500
