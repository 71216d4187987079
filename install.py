#!/usr/bin/env python3
"""Set up a local virtualenv for mimic-bot.

Usage:
    python install.py          # runtime dependencies only
    python install.py --dev    # plus pytest and pytest-asyncio
"""

import platform
import shutil
import subprocess
import sys
from pathlib import Path

MIN_PYTHON = (3, 11)
PROJECT_DIR = Path(__file__).resolve().parent
VENV_DIR = PROJECT_DIR / ".venv"
TEMPLATES = {"config.yaml": "config.example.yaml", ".env": ".env.example"}


def _venv_executable(name: str) -> Path:
    if platform.system() == "Windows":
        return VENV_DIR / "Scripts" / f"{name}.exe"
    return VENV_DIR / "bin" / name


def _ensure_venv() -> Path:
    if VENV_DIR.is_dir():
        print(f"Reusing virtualenv at {VENV_DIR}")
    else:
        print(f"Creating virtualenv at {VENV_DIR}")
        subprocess.check_call([sys.executable, "-m", "venv", str(VENV_DIR)])
    return _venv_executable("python")


def _install_package(python: Path, dev: bool) -> None:
    subprocess.check_call([str(python), "-m", "pip", "install", "--upgrade", "pip"])
    target = "-e .[dev]" if dev else "."
    print(f"pip install {target}")
    subprocess.check_call(
        [str(python), "-m", "pip", "install", *target.split()], cwd=PROJECT_DIR
    )


def _seed_local_files() -> None:
    (PROJECT_DIR / "data").mkdir(exist_ok=True)
    for target, template in TEMPLATES.items():
        target_path = PROJECT_DIR / target
        template_path = PROJECT_DIR / template
        if target_path.exists():
            print(f"Keeping existing {target}")
        elif template_path.exists():
            shutil.copy(template_path, target_path)
            print(f"Wrote {target} from {template}")


def _print_next_steps() -> None:
    activate = (
        r".\.venv\Scripts\activate"
        if platform.system() == "Windows"
        else "source .venv/bin/activate"
    )
    print(
        "\nmimic-bot is installed. Before the first start:\n"
        "  - put ANTHROPIC_API_KEY and TELEGRAM_BOT_TOKEN into .env\n"
        "  - pick a wake word and write the persona prompt in config.yaml\n"
        "  - in Telegram open Settings > Telegram Business > Chatbots and add the bot\n"
        f"Then run `{activate}` followed by `mimic-bot config-check` and `mimic-bot`.\n"
    )


def main() -> None:
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"mimic-bot needs Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+, "
            f"found {sys.version_info.major}.{sys.version_info.minor}"
        )

    python = _ensure_venv()
    _install_package(python, dev="--dev" in sys.argv)
    _seed_local_files()
    _print_next_steps()


if __name__ == "__main__":
    main()
