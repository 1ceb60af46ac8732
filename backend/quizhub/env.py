# .env loading for local runs.
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]


# Populate missing environment variables from the repo-root .env file.
def load_environment(dotenv_path: Optional[Path] = None) -> bool:
    path = dotenv_path or ROOT_DIR / ".env"
    return load_dotenv(dotenv_path=path, override=False)
