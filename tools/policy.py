from pathlib import Path
import yaml

POLICY_PATH = Path(__file__).resolve().parent.parent / "config" / "assumptions.yaml"

def load_policy(path: Path = POLICY_PATH) -> dict:
    if path.exists():
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return {}

def policy_section(name: str) -> dict:
    return load_policy().get(name, {}) or {}
