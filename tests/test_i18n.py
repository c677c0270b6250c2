import pytest

from gatequeue.i18n import CATALOGUE, resolve_locale, translate


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "en-US"),
        ("", "en-US"),
        ("zh-CN", "zh-CN"),
        ("zh-CN,zh;q=0.9,en;q=0.8", "zh-CN"),
        ("zh-TW", "zh-CN"),
        ("en-GB", "en-US"),
        ("fr-FR,de;q=0.5", "en-US"),
        ("fr-FR, zh;q=0.5", "zh-CN"),
    ],
)
def test_resolve_locale(value, expected) -> None:
    assert resolve_locale(value) == expected


def test_resolve_locale_custom_default() -> None:
    assert resolve_locale("fr", default="zh-CN") == "zh-CN"


def test_catalogues_share_keys() -> None:
    assert set(CATALOGUE["en-US"]) == set(CATALOGUE["zh-CN"])


def test_translate_formats_parameters() -> None:
    assert translate("queue.created", "en-US", queue="email") == "Queue email created"
    assert translate("queue.created", "zh-CN", queue="email") == "队列 email 已创建"


def test_translate_falls_back_to_key() -> None:
    assert translate("no.such.key", "zh-CN") == "no.such.key"


def test_translate_missing_parameter_returns_template() -> None:
    assert translate("queue.created") == "Queue {queue} created"
