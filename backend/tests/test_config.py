from sajubot.config import Settings


def test_default_database_url_is_not_a_configured_credential(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    credentials = Settings(_env_file=None).required_credentials()
    assert credentials == {"openai": False, "database_url": False}


def test_supplied_credentials_are_reported(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://saju:secret@db/saju")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    credentials = Settings(_env_file=None).required_credentials()
    assert credentials == {"openai": True, "database_url": True}


def test_blank_database_url_is_missing():
    assert Settings(_env_file=None, database_url="  ").required_credentials()["database_url"] is False
