import pytest

from autoql import AutoQLSettings


def test_defaults():
    s = AutoQLSettings()
    assert s.default_page_size == 100
    assert s.max_page_size == 1000
    assert s.include_total_count is True
    assert s.input_suffix == "Input"


def test_from_env_reads_overrides():
    env = {
        'AUTOQL_DEFAULT_PAGE_SIZE': '25',
        'AUTOQL_MAX_PAGE_SIZE': '50',
        'AUTOQL_INCLUDE_TOTAL_COUNT': 'off',
        'AUTOQL_INPUT_SUFFIX': 'Payload',
    }
    s = AutoQLSettings.from_env(env)
    assert (s.default_page_size, s.max_page_size) == (25, 50)
    assert s.include_total_count is False
    assert s.input_suffix == 'Payload'


def test_from_env_ignores_unset_and_empty():
    s = AutoQLSettings.from_env({'AUTOQL_MAX_PAGE_SIZE': ''})
    assert s == AutoQLSettings()


@pytest.mark.parametrize('env', [
    {'AUTOQL_INCLUDE_TOTAL_COUNT': 'maybe'},
    {'AUTOQL_DEFAULT_PAGE_SIZE': 'ten'},
    {'AUTOQL_DEFAULT_PAGE_SIZE': '0'},
    {'AUTOQL_DEFAULT_PAGE_SIZE': '200', 'AUTOQL_MAX_PAGE_SIZE': '100'},
])
def test_from_env_rejects_malformed(env):
    with pytest.raises(ValueError):
        AutoQLSettings.from_env(env)
