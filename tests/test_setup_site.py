import yaml

import setup_site


def answers(*values):
    replies = iter(values)
    return lambda prompt: next(replies)


def test_non_interactive_writes_defaults(tmp_path):
    output = tmp_path / "config.yaml"

    assert setup_site.main(["--non-interactive", "--output", str(output)]) == 0

    text = output.read_text(encoding="utf-8")
    assert text.startswith("# Portfolio server configuration")
    written = yaml.safe_load(text)
    assert written["server"]["port"] == 3000
    assert written["session"]["ttl_seconds"] == 28800
    assert written["storage"]["database_url"] == ""


def test_existing_file_is_kept_without_force(tmp_path):
    output = tmp_path / "config.yaml"
    output.write_text("server: {port: 1}\n", encoding="utf-8")

    assert setup_site.main(["--non-interactive", "--output", str(output)]) == 1
    assert output.read_text(encoding="utf-8") == "server: {port: 1}\n"

    assert setup_site.main(["--non-interactive", "--force", "--output", str(output)]) == 0
    assert yaml.safe_load(output.read_text(encoding="utf-8"))["server"]["port"] == 3000


def test_declined_overwrite(tmp_path):
    output = tmp_path / "config.yaml"
    output.write_text("keep: me\n", encoding="utf-8")

    assert setup_site.main(["--output", str(output)], input_func=answers("n")) == 1
    assert output.read_text(encoding="utf-8") == "keep: me\n"


def test_configure_github():
    cfg = setup_site.build_default_config()

    cfg = setup_site.configure_github(
        cfg, answers("y", "client-123", "secret-456", "OctoCat")
    )

    assert cfg["oauth"]["github_client_id"] == "client-123"
    assert cfg["oauth"]["github_client_secret"] == "secret-456"
    assert cfg["oauth"]["admin_users"] == ["octocat"]
    assert cfg["oauth"]["callback_url"] == "http://localhost:3000/auth/github/callback"


def test_configure_github_skipped():
    cfg = setup_site.configure_github(setup_site.build_default_config(), answers("y", ""))
    assert "github_client_id" not in cfg["oauth"]


def test_interactive_customize(tmp_path):
    output = tmp_path / "config.yaml"
    replies = answers(
        "y", "cid", "secret", "",  # GitHub
        "y", "8080", "https://me.dev", "sqlite:///site.db",  # customize
    )

    assert setup_site.main(["--output", str(output)], input_func=replies) == 0

    written = yaml.safe_load(output.read_text(encoding="utf-8"))
    assert written["server"]["port"] == 8080
    assert written["server"]["base_url"] == "https://me.dev"
    assert written["oauth"]["callback_url"] == "https://me.dev/auth/github/callback"
    assert written["storage"]["database_url"] == "sqlite:///site.db"
    assert "admin_users" not in written["oauth"]


def test_docker_database_url(tmp_path):
    output = tmp_path / "config.yaml"

    assert setup_site.main(["--non-interactive", "--docker-db", "--output", str(output)]) == 0

    url = yaml.safe_load(output.read_text(encoding="utf-8"))["storage"]["database_url"]
    assert url.startswith("postgresql://portfolio:")
    assert url.endswith("@db:5432/portfolio")
    password = url[len("postgresql://portfolio:"):].split("@")[0]
    assert len(password) == 32
    assert password != setup_site.docker_database_url().split(":")[2].split("@")[0]
