"""
Tests for typed backend configuration.
"""
import pytest
from pydantic import ValidationError

from shared.config import (
    DEFAULT_BACKUP_TABLES,
    BackendConfig,
    load_env_file_values,
    runtime_environ,
    validate_environment_integrity,
)


def test_defaults():
    cfg = BackendConfig()
    assert cfg.backup_bucket == "database-backups"
    assert cfg.backup_page_size == 1000
    assert cfg.backup_max_rows_per_table == 2000
    assert cfg.backup_signed_url_ttl_seconds == 604800
    assert cfg.config_cache_ttl_seconds == 300
    assert cfg.backup_candidate_tables == list(DEFAULT_BACKUP_TABLES)


def test_backup_tables_parsed_from_comma_list():
    cfg = BackendConfig(BACKUP_TABLES=" profiles, videos ,,")
    assert cfg.backup_candidate_tables == ["profiles", "videos"]


def test_legacy_row_cap_alias():
    assert BackendConfig(MAX_ROWS_PER_TABLE="50").backup_max_rows_per_table == 50


def test_invalid_page_size_rejected():
    with pytest.raises(ValidationError):
        BackendConfig(BACKUP_PAGE_SIZE="0")


def test_admin_handle_prefers_generic_url():
    cfg = BackendConfig(SUPABASE_URL="https://a.supabase.co/", MOBILE_SUPABASE_URL="https://b.supabase.co")
    assert cfg.admin_supabase_url == "https://a.supabase.co"
    assert BackendConfig(MOBILE_SUPABASE_URL="https://b.supabase.co").admin_supabase_url == "https://b.supabase.co"


def test_production_requires_strong_admin_key():
    with pytest.raises(RuntimeError):
        validate_environment_integrity(BackendConfig(APP_ENV="production", ADMIN_API_KEY="changeme"))
    validate_environment_integrity(BackendConfig(APP_ENV="production", ADMIN_API_KEY="x" * 32))


def test_env_file_values_follow_config_loader(tmp_path, monkeypatch):
    service_env = tmp_path / "service.env"
    root_env = tmp_path / "root.env"
    service_env.write_text("SUPABASE_ANON_KEY=service-key\nADMOB_APP_ID=ca-app-pub-1\nEMPTY_KEY\n", encoding="utf-8")
    root_env.write_text("SUPABASE_ANON_KEY=root-key\n", encoding="utf-8")
    monkeypatch.setattr(
        "shared.config._env_file_candidates",
        lambda service_dir: [service_env, root_env, tmp_path / "missing.env"],
    )

    values = load_env_file_values()

    assert values == {"SUPABASE_ANON_KEY": "root-key", "ADMOB_APP_ID": "ca-app-pub-1"}


def test_runtime_environ_prefers_process_environment(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("SUPABASE_URL=https://from-file.supabase.co\nFEATURE_VIP_ENABLED=false\n", encoding="utf-8")
    monkeypatch.setenv("SUPABASE_URL", "https://from-process.supabase.co")

    environ = runtime_environ(env_file=env_file)

    assert environ["SUPABASE_URL"] == "https://from-process.supabase.co"
    assert environ["FEATURE_VIP_ENABLED"] == "false"
    assert BackendConfig(_env_file=env_file).supabase_url == "https://from-process.supabase.co"
