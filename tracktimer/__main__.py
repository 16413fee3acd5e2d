from __future__ import annotations

from tracktimer.cli import app

if __name__ == "__main__":
    app()
