#!/usr/bin/env python3
"""
First-run setup for the portfolio server.

Writes config.yaml at the project root with server defaults and,
optionally, GitHub OAuth credentials.

Usage:
    python setup_site.py [--force] [--non-interactive] [--output PATH]
"""

import argparse
import os
import secrets
import sys
from datetime import datetime, timezone

import yaml

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
CONFIG_FILE = os.path.join(PROJECT_ROOT, "config.yaml")


def github_callback_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/auth/github/callback"


def docker_database_url(host: str = "db", name: str = "portfolio", password: str = None) -> str:
    """Postgres URL for the compose `db` service, with a generated password."""
    password = password or secrets.token_hex(16)
    return f"postgresql://{name}:{password}@{host}:5432/{name}"


def build_default_config() -> dict:
    return {
        "server": {
            "env": "development",
            "host": "0.0.0.0",
            "port": 3000,
            "base_url": "http://localhost:3000",
        },
        "session": {
            "ttl_seconds": 28800,  # 8 hours
        },
        "oauth": {
            "user_agent": "Portfolio-Site/1.0",
        },
        "storage": {
            "database_url": "",
        },
    }


def ask(prompt: str, default: str = "", input_func=input) -> str:
    suffix = f" ({default})" if default else ""
    answer = input_func(f"{prompt}{suffix}: ").strip()
    return answer or default


def confirm(prompt: str, input_func=input) -> bool:
    return input_func(f"{prompt} (y/N): ").strip().lower() in ("y", "yes")


def configure_github(cfg: dict, input_func=input) -> dict:
    print("\nGitHub OAuth allows admin login. You can skip this and add it later.")
    if not confirm("Configure GitHub OAuth now?", input_func):
        print("Skipping GitHub OAuth setup")
        return cfg

    base_url = cfg["server"]["base_url"]
    print("1. Go to https://github.com/settings/applications/new")
    print(f"2. Homepage URL: {base_url}")
    print(f"3. Authorization callback URL: {github_callback_url(base_url)}")

    client_id = ask("GitHub Client ID (leave empty to skip)", input_func=input_func)
    if not client_id:
        print("Skipping GitHub OAuth setup")
        return cfg

    oauth = cfg["oauth"]
    oauth["github_client_id"] = client_id
    oauth["github_client_secret"] = ask("GitHub Client Secret", input_func=input_func)
    admin = ask("Admin GitHub username (optional)", input_func=input_func)
    if admin:
        oauth["admin_users"] = [admin.lower()]
    oauth["callback_url"] = github_callback_url(base_url)
    return cfg


def customize(cfg: dict, input_func=input) -> dict:
    if not confirm("\nCustomize port, base URL or database?", input_func):
        return cfg

    server = cfg["server"]
    port = ask("Server port", str(server["port"]), input_func)
    server["port"] = int(port) if port.isdigit() else server["port"]

    base_url = ask("Base URL", server["base_url"], input_func)
    if base_url != server["base_url"]:
        server["base_url"] = base_url
        if cfg["oauth"].get("callback_url"):
            cfg["oauth"]["callback_url"] = github_callback_url(base_url)

    cfg["storage"]["database_url"] = ask(
        "Database URL (empty for JSON file storage)", cfg["storage"]["database_url"], input_func
    )
    return cfg


def write_config(cfg: dict, path: str = CONFIG_FILE) -> str:
    header = (
        "# Portfolio server configuration\n"
        f"# Generated on {datetime.now(timezone.utc).isoformat()}\n"
        "# Environment variables (PORT, DATABASE_URL, GITHUB_CLIENT_ID, ...) override these values.\n"
    )
    with open(path, "w", encoding="utf-8") as f:
        f.write(header)
        yaml.safe_dump(cfg, f, sort_keys=False, default_flow_style=False)
    return path


def show_next_steps(cfg: dict) -> None:
    print("\nSetup complete!")
    print("1. Start the server:   python -m src.api.main")
    print(f"2. Open your browser:  {cfg['server']['base_url']}")
    if not cfg["oauth"].get("github_client_id"):
        print("\nNote: GitHub OAuth is not configured; editing projects will be unavailable.")


def main(argv=None, input_func=input) -> int:
    parser = argparse.ArgumentParser(description="Create config.yaml for the portfolio server")
    parser.add_argument("--force", action="store_true", help="overwrite an existing config.yaml")
    parser.add_argument(
        "--non-interactive", action="store_true", help="write defaults without prompting"
    )
    parser.add_argument(
        "--docker-db", action="store_true", help="use a Postgres URL with a generated password"
    )
    parser.add_argument("--output", default=CONFIG_FILE, help="where to write the file")
    args = parser.parse_args(argv)

    if os.path.exists(args.output) and not args.force:
        if args.non_interactive or not confirm(f"{args.output} already exists. Overwrite?", input_func):
            print("Setup cancelled.")
            return 1

    cfg = build_default_config()
    if args.docker_db:
        cfg["storage"]["database_url"] = docker_database_url()
    if not args.non_interactive:
        cfg = configure_github(cfg, input_func)
        cfg = customize(cfg, input_func)

    write_config(cfg, args.output)
    print(f"Wrote {args.output}")
    show_next_steps(cfg)
    return 0


if __name__ == "__main__":
    sys.exit(main())
