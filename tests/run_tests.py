#!/usr/bin/env python3
"""
Test runner for Auto Classifier

    python tests/run_tests.py                  # unit tests
    python tests/run_tests.py --integration    # fake LLM server + temp vaults
    python tests/run_tests.py --all -k vault -x
"""
import subprocess
import sys
import argparse
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent

SUITES = {
    "unit": ("🧪", "tests/unit/"),
    "integration": ("🔗", "tests/integration/"),
}


def run_suite(name, pytest_args):
    """Run one suite, return True when it passed"""
    icon, path = SUITES[name]
    print(f"{icon} Running {name} tests...")
    result = subprocess.run(
        [sys.executable, "-m", "pytest", path, "-v", "--tb=short", *pytest_args],
        cwd=PROJECT_ROOT,
    )
    return result.returncode == 0


def main():
    parser = argparse.ArgumentParser(description="Run Auto Classifier tests")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--unit", action="store_true", help="Run unit tests only (default)")
    group.add_argument("--integration", action="store_true", help="Run integration tests only")
    group.add_argument("--all", action="store_true", help="Run all tests")
    parser.add_argument("-k", dest="keyword", help="Only tests matching this pytest expression")
    parser.add_argument("-x", "--exitfirst", action="store_true", help="Stop at the first failure")

    args = parser.parse_args()

    pytest_args = []
    if args.keyword:
        pytest_args += ["-k", args.keyword]
    if args.exitfirst:
        pytest_args.append("-x")

    if args.all:
        suites = list(SUITES)
    elif args.integration:
        suites = ["integration"]
    else:
        suites = ["unit"]

    failed = [name for name in suites if not run_suite(name, pytest_args)]

    if len(suites) > 1:
        print("✅ All tests passed!" if not failed else f"❌ Failed suites: {', '.join(failed)}")

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
