from sandwatch.config import DEFAULT_CONFIG, load_config


def test_defaults_without_path():
    cfg = load_config(None)
    assert cfg == DEFAULT_CONFIG
    assert cfg is not DEFAULT_CONFIG


def test_defaults_are_not_mutated(tmp_path):
    path = tmp_path / "cfg.yml"
    path.write_text("policy:\n  exclusions: [foo]\n")
    load_config(str(path))
    assert "foo" not in DEFAULT_CONFIG["policy"]["exclusions"]


def test_policy_merged_one_level_deep(tmp_path):
    path = tmp_path / "cfg.yml"
    path.write_text(
        "init_pid: 7\n"
        "skip_seccomp: true\n"
        "policy:\n"
        "  baseline:\n"
        "    - {name: powerd, user: power, features: [restrict_caps]}\n"
        "  exclusions: [bash]\n"
    )

    cfg = load_config(str(path))

    assert cfg["init_pid"] == 7
    assert cfg["skip_seccomp"] is True
    assert cfg["policy"]["baseline"] == [{"name": "powerd", "user": "power", "features": ["restrict_caps"]}]
    assert cfg["policy"]["exclusions"] == ["bash"]
    assert cfg["policy"]["ignored_ancestors"] == DEFAULT_CONFIG["policy"]["ignored_ancestors"]
    assert cfg["test_image_mounts"] == DEFAULT_CONFIG["test_image_mounts"]


def test_unreadable_config_keeps_defaults(tmp_path, capsys):
    cfg = load_config(str(tmp_path / "missing.yml"))
    assert cfg == DEFAULT_CONFIG
    assert "Could not load config" in capsys.readouterr().err


def test_invalid_yaml_keeps_defaults(tmp_path, capsys):
    path = tmp_path / "cfg.yml"
    path.write_text("policy: [unclosed\n")
    assert load_config(str(path)) == DEFAULT_CONFIG
    assert "Warning" in capsys.readouterr().err


def test_non_mapping_policy_keeps_defaults(tmp_path):
    path = tmp_path / "cfg.yml"
    path.write_text("init_pid: 9\npolicy: [a, b]\n")
    assert load_config(str(path)) == DEFAULT_CONFIG
