import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "chipislands", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "ChIPIslands" in cp.stdout or "chipislands" in cp.stdout.lower()
