import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from app import db
from app.exceptions import ConstraintViolation, ValidationFailed
from app.models import User
from app.utils.db import atomic

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@bp.route('/login', methods=['POST'])
def login():
    """로그인"""
    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or '').strip()
    password = str(data.get('password') or '')
    remember = bool(data.get('remember', False))

    if not username or not password:
        raise ValidationFailed('username and password are required')

    user = User.query.filter_by(username=username).first()
    if user is None or not user.check_password(password):
        logger.info(f'로그인 실패: username={username}')
        return jsonify({'error': 'invalid_credentials', 'message': '아이디 또는 비밀번호가 올바르지 않습니다.'}), 401

    # 계정 활성화 체크
    if not user.is_active:
        return jsonify({'error': 'inactive_user', 'message': '비활성화된 계정입니다. 관리자에게 문의하세요.'}), 403

    login_user(user, remember=remember)
    logger.info(f'로그인: user_id={user.id} username={user.username}')
    return jsonify({'user': user.to_dict()})


@bp.route('/register', methods=['POST'])
def register():
    """사용자 등록 (tester 권한으로 생성 후 바로 로그인)"""
    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or '').strip()
    display_name = str(data.get('display_name') or '').strip()
    email = str(data.get('email') or '').strip()
    password = str(data.get('password') or '')

    if not username or not display_name or not password:
        raise ValidationFailed('username, display_name and password are required')

    # 비밀번호 길이 체크
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f'password must be at least {MIN_PASSWORD_LENGTH} characters',
            details={'password': 'too_short'},
        )

    with atomic():
        # 아이디 중복 체크 (동시 등록은 unique 제약으로 409)
        if User.query.filter_by(username=username).first():
            raise ConstraintViolation(f'username already exists: {username}')

        user = User(username=username, display_name=display_name, email=email, role='tester', is_active=True)
        user.set_password(password)
        db.session.add(user)

    login_user(user)
    logger.info(f'사용자 등록: user_id={user.id} username={username}')
    return jsonify({'user': user.to_dict()}), 201


@bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """로그아웃"""
    logout_user()
    return jsonify({'ok': True})


@bp.route('/me', methods=['GET'])
@login_required
def me():
    """현재 사용자 정보"""
    return jsonify({'user': current_user.to_dict()})
