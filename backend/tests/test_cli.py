"""Tests for CLI

验证命令行入口（init-db / frameworks / recalculate / close / verify / summary / check）。
"""

import json
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker
from typer.testing import CliRunner

from decisionledger.cli import app
from decisionledger.database.config import get_db, init_db, make_engine
from decisionledger.database.models import DecisionEvidenceRecord, EvidenceVault, PRState

runner = CliRunner()

DESCRIPTION = (
    "Adds exponential backoff to the payment retry worker so that transient "
    "gateway failures no longer page on-call. Fixes PAY-1234."
)


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    engine = make_engine(url)
    init_db(engine)
    yield url
    engine.dispose()


@pytest.fixture
def record_id(db_url):
    engine = make_engine(db_url)
    Session = sessionmaker(bind=engine)
    db = Session()
    try:
        record = DecisionEvidenceRecord(
            pr_number=12,
            pr_title="Add retry backoff",
            pr_author="alice",
            description=DESCRIPTION,
        )
        db.add(record)
        db.commit()
        yield str(record.id)
    finally:
        db.close()
        engine.dispose()


def _vault_id(db_url) -> str:
    engine = make_engine(db_url)
    db = sessionmaker(bind=engine)()
    try:
        return str(db.query(EvidenceVault).one().id)
    finally:
        db.close()
        engine.dispose()


class TestCli:
    """CLI 测试"""

    def test_init_db(self, tmp_path):
        result = runner.invoke(app, ["init-db", "--db-url", f"sqlite:///{tmp_path / 'new.db'}"])
        assert result.exit_code == 0
        assert (tmp_path / "new.db").exists()

    def test_frameworks(self):
        result = runner.invoke(app, ["frameworks"])
        assert result.exit_code == 0
        assert "soc2" in result.output
        assert "dora" in result.output
        assert "iso27001" in result.output

    def test_recalculate(self, db_url, record_id):
        result = runner.invoke(app, ["recalculate", record_id, "--db-url", db_url])
        assert result.exit_code == 0
        assert "Score 50/100" in result.output
        assert "MISSING_REVIEW" in result.output

    def test_recalculate_unknown_record(self, db_url):
        result = runner.invoke(app, ["recalculate", str(uuid4()), "--db-url", db_url])
        assert result.exit_code == 1

    def test_close_verify_summary(self, db_url, record_id):
        result = runner.invoke(app, ["close", record_id, "--merged-by", "dave", "--db-url", db_url])
        assert result.exit_code == 0
        assert PRState.MERGED.value in result.output

        vault_id = _vault_id(db_url)

        verify = runner.invoke(app, ["verify", vault_id, "--db-url", db_url])
        assert verify.exit_code == 0
        assert "integrity verified" in verify.output

        summary = runner.invoke(app, ["summary", vault_id, "--db-url", db_url])
        assert summary.exit_code == 0
        assert json.loads(summary.output)["pr_number"] == 12

    def test_close_unknown_record(self, db_url):
        result = runner.invoke(app, ["close", str(uuid4()), "--db-url", db_url])
        assert result.exit_code == 1

    def test_verify_unknown_vault(self, db_url):
        result = runner.invoke(app, ["verify", str(uuid4()), "--db-url", db_url])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_check(self, db_url, record_id):
        runner.invoke(app, ["recalculate", record_id, "--db-url", db_url])
        result = runner.invoke(app, ["check", record_id, "--db-url", db_url])
        assert result.exit_code == 0
        assert "NEUTRAL" in result.output


class TestGetDb:
    """会话生成器"""

    def test_session_closed_on_exit(self):
        closed = []

        class _FakeSession:
            def close(self):
                closed.append(True)

        gen = get_db(_FakeSession)
        assert isinstance(next(gen), _FakeSession)
        gen.close()
        assert closed == [True]

    def test_session_closed_on_error(self):
        closed = []

        class _FakeSession:
            def close(self):
                closed.append(True)

        gen = get_db(_FakeSession)
        next(gen)
        with pytest.raises(RuntimeError):
            gen.throw(RuntimeError("boom"))
        assert closed == [True]
