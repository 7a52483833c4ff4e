#!/usr/bin/env python
"""
TMT - Flask 애플리케이션 실행 스크립트
"""
import os
from app import create_app, db
from app.models import User, Project, Suite, Case, CaseVersion, Run, RunCase, Result
from app.seed import SAMPLE_USERS, run_seed

# 환경 설정
config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)


@app.shell_context_processor
def make_shell_context():
    """Flask shell에서 사용할 컨텍스트"""
    return {
        'db': db,
        'User': User,
        'Project': Project,
        'Suite': Suite,
        'Case': Case,
        'CaseVersion': CaseVersion,
        'Run': Run,
        'RunCase': RunCase,
        'Result': Result,
    }


@app.cli.command()
def init_db():
    """데이터베이스 초기화 및 샘플 데이터 생성"""
    print('데이터베이스 초기화 중...')
    db.create_all()

    result = run_seed()
    if result['users']:
        print('✓ 샘플 사용자 생성 완료')
        for username, _, _, password in SAMPLE_USERS:
            print(f'  - {username} / {password}')
    else:
        print('✓ 사용자가 이미 존재합니다')

    if result['cases']:
        print(f"✓ 샘플 케이스 {result['cases']}개 생성 완료")
    else:
        print('✓ 샘플 케이스가 이미 존재합니다')

    print('데이터베이스 초기화 완료!')


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
