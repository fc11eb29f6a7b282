import pytest

from assistant.intent import IntentAction
from tools.store import FinancialStore


@pytest.fixture
def store(tmp_path):
    s = FinancialStore(tmp_path / "finance.duckdb")
    yield s
    s.close()


@pytest.fixture
def make_action():
    def _make(verb, entity, target, amount=None, **metadata):
        return IntentAction(
            id=f"{verb}-{target}",
            verb=verb,
            entity=entity,
            target=target,
            amount=amount,
            currency=None,
            raw=f"{verb} {target}",
            metadata=metadata,
        )
    return _make
