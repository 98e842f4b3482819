import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "snpgl", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "snpgl" in cp.stdout.lower()
    assert "call" in cp.stdout
