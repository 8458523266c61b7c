"""Operator CLIs."""

from config.database import create_db_engine, make_session_factory
from modules.repository.unit_of_work import UnitOfWork
from modules.seed.service import seed_database
from scripts.init_db import main


def test_init_db_creates_schema_and_reports_counts(tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    assert main(["--url", url]) == 0

    out = capsys.readouterr().out
    assert "Products" in out and "OrderItems" in out
    assert "0 rows" in out

    db_engine = create_db_engine(url)
    with UnitOfWork(make_session_factory(db_engine)) as unit:
        assert seed_database(unit) is True
    db_engine.dispose()

    main(["--url", url])
    out = capsys.readouterr().out
    assert any(line.split()[:2] == ["Products", "8"] for line in out.splitlines() if line.strip())
    assert any(line.split()[:2] == ["OrderItems", "8"] for line in out.splitlines() if line.strip())


def test_init_db_drop_requires_confirmation(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda prompt: "no")
    assert main(["--url", f"sqlite:///{tmp_path / 'x.db'}", "--drop"]) == 1
    assert "Aborted." in capsys.readouterr().out
