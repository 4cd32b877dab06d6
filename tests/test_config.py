import pytest

from config import ConfigError, build_config, load_config_file


def test_defaults():
    cfg = build_config(None, None, env={})
    assert cfg.output_dir == 'data'
    assert cfg.resolved_cache_path.endswith('cache.db')
    assert cfg.github.member_org == 'vmware'
    assert (cfg.github.target_org, cfg.github.target_repo) == ('kubernetes', 'kubernetes')
    assert cfg.github.api_max == 10
    assert cfg.github.retries == 3
    assert cfg.git.max == 10
    assert cfg.workers == 32


def test_precedence_file_env_cli(tmp_path):
    path = tmp_path / 'enrich.yaml'
    path.write_text('workers: 4\ngithub:\n  token: from-file\n  api_max: 5\n  member_org: acme\n', encoding='utf-8')
    data = load_config_file(str(path))
    cfg = build_config(data, {'github': {'api_max': 2, 'member_org': None}}, env={'GITHUB_API_KEY': 'from-env'})
    assert cfg.workers == 4
    assert cfg.github.token == 'from-env'
    assert cfg.github.api_max == 2
    assert cfg.github.member_org == 'acme'


def test_env_debug_and_ldap_credentials():
    cfg = build_config(None, None, env={'DEBUG': 'true', 'LDAP_USER': 'svc', 'LDAP_PASS': 'pw', 'GITHUB_TOKEN': 't'})
    assert cfg.verbose
    assert cfg.ldap.user == 'svc'
    assert cfg.ldap.password == 'pw'
    assert cfg.github.token == 't'


def test_unknown_keys_rejected():
    with pytest.raises(ConfigError):
        build_config({'github': {'tokn': 'x'}}, None, env={})


def test_empty_config_file(tmp_path):
    path = tmp_path / 'empty.yaml'
    path.write_text('', encoding='utf-8')
    assert load_config_file(str(path)) == {}


def test_non_mapping_config_file(tmp_path):
    path = tmp_path / 'list.yaml'
    path.write_text('- a\n- b\n', encoding='utf-8')
    with pytest.raises(ConfigError):
        load_config_file(str(path))


def test_resume_requires_single_login():
    cfg = build_config(None, {'run': {'logins': ('a', 'b'), 'resume': True}, 'git': {'disabled': True}, 'github': {'token': 't'}}, env={})
    with pytest.raises(ConfigError):
        cfg.validate()
    assert cfg.resume_anchor == 'a'
    assert not cfg.named_mode


def test_token_required_unless_fully_offline():
    online = build_config(None, {'git': {'disabled': True}}, env={})
    with pytest.raises(ConfigError):
        online.validate()
    offline = build_config(None, {'git': {'disabled': True}, 'github': {'no_fetch_users': True, 'no_fetch_issues': True}}, env={})
    offline.validate()


def test_git_dir_must_exist(tmp_path):
    cfg = build_config(None, {'github': {'token': 't'}, 'git': {'git_dir': str(tmp_path / 'missing')}}, env={})
    with pytest.raises(ConfigError):
        cfg.validate()
    ok = build_config(None, {'github': {'token': 't'}, 'git': {'git_dir': str(tmp_path)}}, env={})
    ok.validate()


def test_concurrency_limits_validated():
    cfg = build_config(None, {'github': {'token': 't', 'api_max': 0}, 'git': {'disabled': True}}, env={})
    with pytest.raises(ConfigError):
        cfg.validate()


def test_logins_deduplicated():
    cfg = build_config({'logins': ['a', 'b', 'a']}, None, env={})
    assert cfg.logins == ('a', 'b')
    assert cfg.named_mode
