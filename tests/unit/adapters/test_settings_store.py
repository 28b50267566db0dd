from barfeed.adapters.settings_store import FileSettingsStore


def test_missing_file_returns_none(tmp_path):
    store = FileSettingsStore(tmp_path / "settings.json")
    assert store.get_setting() is None


def test_save_then_get(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    store = FileSettingsStore(path)

    store.save_setting('{"refresh_token":"r1"}')

    assert store.get_setting() == '{"refresh_token":"r1"}'
    assert not path.with_suffix(".json.tmp").exists()


def test_save_overwrites(tmp_path):
    store = FileSettingsStore(str(tmp_path / "settings.json"))

    store.save_setting("first")
    store.save_setting("second")

    assert store.get_setting() == "second"
