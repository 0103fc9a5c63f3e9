#!/usr/bin/env python3
"""
테스트 실행 스크립트

Usage:
    python run_tests.py                  # 전체
    python run_tests.py unit             # tests/unit
    python run_tests.py integration      # tests/integration
    python run_tests.py realtime         # 변경 피드 / ChatSession / InboxWatcher
    python run_tests.py all --coverage   # 커버리지 리포트 포함
    python run_tests.py unit -k typing   # pytest -k 전달
    python run_tests.py --install        # pip install -e .[test] 후 실행
"""

import argparse
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent

SUITES = {
    "all": (["tests/"], "전체 테스트"),
    "unit": (["tests/unit/"], "단위 테스트"),
    "integration": (["tests/integration/"], "통합 테스트"),
    "realtime": (
        [
            "tests/unit/test_realtime_feed.py",
            "tests/unit/test_chat_session.py",
            "tests/unit/test_inbox.py",
        ],
        "실시간 피드 / 클라이언트 세션 테스트"
    ),
}


def run_command(cmd, description):
    print(f"\n{'=' * 60}\n🚀 {description}\n{'=' * 60}")
    print(f"$ {' '.join(cmd)}\n")

    result = subprocess.run(cmd, cwd=PROJECT_ROOT)
    if result.returncode == 0:
        print(f"\n✅ {description} 성공")
        return True
    print(f"\n❌ {description} 실패 (exit code: {result.returncode})")
    return False


def build_pytest_command(paths, args):
    cmd = [sys.executable, "-m", "pytest", *paths, "-v", "--tb=short"]
    if args.quick:
        cmd.append("-x")
    if args.keyword:
        cmd += ["-k", args.keyword]
    if args.coverage:
        cmd += ["--cov=carmarket", "--cov-report=term-missing", "--cov-report=html:htmlcov"]
    return cmd


def main():
    parser = argparse.ArgumentParser(description="carmarket 테스트 실행")
    parser.add_argument("suite", nargs="?", default="all", choices=sorted(SUITES))
    parser.add_argument("-k", dest="keyword", help="pytest -k 표현식")
    parser.add_argument("--coverage", action="store_true", help="커버리지 리포트 생성")
    parser.add_argument("--quick", action="store_true", help="첫 실패에서 중단")
    parser.add_argument("--install", action="store_true", help="테스트 의존성 설치 후 실행")
    args = parser.parse_args()

    if args.install:
        install = [sys.executable, "-m", "pip", "install", "-e", ".[test]"]
        if not run_command(install, "테스트 의존성 설치"):
            return 1

    paths, description = SUITES[args.suite]
    success = run_command(build_pytest_command(paths, args), description)

    if success and args.coverage:
        print("\n📊 커버리지 리포트: htmlcov/index.html")
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
