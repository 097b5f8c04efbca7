#!/usr/bin/env python3
"""
Simple test runner for the content dashboard API.
Run this to execute all tests.
"""

import os
import subprocess
import sys


def run_tests():
    """Run the test suite"""
    print("Running Content Dashboard Tests")
    print("=" * 40)

    # Change to project directory
    os.chdir(os.path.dirname(os.path.abspath(__file__)))

    # In-process cache / queue so no Redis is needed
    env = dict(os.environ, CACHE_BACKEND="memory", QUEUE_BACKEND="memory")

    try:
        subprocess.run(
            [sys.executable, "-m", "pytest", "tests/", "-v", "--tb=short", *sys.argv[1:]],
            check=True,
            env=env,
        )
        print("\nAll tests passed!")
        return 0

    except subprocess.CalledProcessError as e:
        print(f"\nTests failed with exit code {e.returncode}")
        return e.returncode
    except FileNotFoundError:
        print("pytest not found. Install with: pip install -e '.[test]'")
        return 1


if __name__ == "__main__":
    sys.exit(run_tests())
