"""Tests for engine URL resolution and session scopes."""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from trademate import db
from trademate.models import Base, Profile


class TestDatabaseUrl:
    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRADEMATE_DATABASE_URL", "postgresql://elsewhere/db")
        assert db.database_url(tmp_path / "x.db") == f"sqlite:///{tmp_path / 'x.db'}"

    def test_env_url(self, monkeypatch):
        monkeypatch.setenv("TRADEMATE_DATABASE_URL", "sqlite:///:memory:")
        assert db.database_url() == "sqlite:///:memory:"

    def test_env_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TRADEMATE_DATABASE_URL", raising=False)
        monkeypatch.setenv("TRADEMATE_DB_PATH", str(tmp_path / "nested" / "t.db"))
        assert db.database_url() == f"sqlite:///{tmp_path / 'nested' / 't.db'}"
        assert (tmp_path / "nested").is_dir()


class TestSessionScope:
    @pytest.fixture()
    def factory(self):
        engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(engine)
        return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def test_rolls_back_on_error(self, factory):
        with pytest.raises(RuntimeError):
            with db.session_scope(factory) as session:
                session.add(Profile(user_id="u1"))
                session.flush()
                raise RuntimeError("boom")
        with db.session_scope(factory) as session:
            assert session.execute(select(Profile)).scalars().first() is None

    def test_init_db_creates_tables(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TRADEMATE_DATABASE_URL", raising=False)
        db.init_db(tmp_path / "init.db")
        with db.session_scope() as session:
            session.add(Profile(user_id="u1"))
            session.commit()
        with db.session_scope() as session:
            assert session.execute(select(Profile.user_id)).scalar_one() == "u1"
