import json

from frostbot import config_loader


def write_conf(directory, name, data):
    (directory / name).write_text(json.dumps(data), encoding='utf-8')


def test_defaults_without_files():
    config = config_loader.load_config()

    assert config['max_idle_minutes'] == 15
    assert config['adb'] == {'host': '127.0.0.1', 'port': 5037}
    assert config['profiles'] == {}
    assert config_loader.get_option('missing', 'fallback') == 'fallback'


def test_master_overrides_and_nested_merge(tmp_path):
    write_conf(tmp_path, 'master.conf', {'max_idle_minutes': 30, 'adb': {'port': 5555}})
    config_loader.reload_config()

    assert config_loader.get_option('max_idle_minutes') == 30
    assert config_loader.get_option('adb') == {'host': '127.0.0.1', 'port': 5555}


def test_defaults_are_not_mutated(tmp_path):
    write_conf(tmp_path, 'master.conf', {'adb': {'port': 5555}})
    config_loader.reload_config()

    assert config_loader.DEFAULTS['adb']['port'] == 5037


def test_profile_definitions_merge_task_defaults_and_overlays(tmp_path):
    write_conf(tmp_path, 'master.conf', {'profiles': {
        'Main': {'emulator': 0, 'priority': 90, 'config': {'GATHER_RESOURCES_BOOL': True}},
        'Farm': {'emulator': 1},
    }})
    write_conf(tmp_path, 'whiteout_survival.conf', {
        'tasks': {'MAIL_REWARDS_BOOL': True, 'GATHER_RESOURCES_BOOL': False},
        'profiles': {'Farm': {'MAIL_REWARDS_BOOL': False}},
    })
    config_loader.reload_config()

    profiles = config_loader.get_profile_definitions()

    assert profiles['Main']['priority'] == 90
    assert profiles['Main']['config'] == {'MAIL_REWARDS_BOOL': True, 'GATHER_RESOURCES_BOOL': True}
    assert profiles['Farm']['config'] == {'MAIL_REWARDS_BOOL': False, 'GATHER_RESOURCES_BOOL': False}
    assert config_loader.get_available_profiles() == ['Main', 'Farm']


def test_game_conf_overrides_top_level_options(tmp_path):
    write_conf(tmp_path, 'whiteout_survival.conf', {'max_idle_minutes': 45})
    config_loader.reload_config()

    assert config_loader.get_option('max_idle_minutes') == 45
    assert config_loader.load_config(None)['max_idle_minutes'] == 15


def test_config_is_cached_until_reload(tmp_path):
    assert config_loader.get_option('max_idle_minutes') == 15

    write_conf(tmp_path, 'master.conf', {'max_idle_minutes': 20})
    assert config_loader.get_option('max_idle_minutes') == 15

    config_loader.reload_config()
    assert config_loader.get_option('max_idle_minutes') == 20


def test_resolve_path(tmp_path):
    assert config_loader.resolve_path('state/x.db') == str(tmp_path / 'state' / 'x.db')
    absolute = str(tmp_path / 'abs.db')
    assert config_loader.resolve_path(absolute) == absolute
