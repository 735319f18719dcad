from datetime import datetime
from pathlib import Path

from tts_gateway.client.state import StateStore
from tts_gateway.schemas.client_state import MAX_HISTORY, AppState, HistoryEntry
from tts_gateway.schemas.tts import ProviderConfig


def _entry(number: int) -> HistoryEntry:
    return HistoryEntry(
        timestamp=datetime(2024, 1, 1, 12, 0, 0),
        speaker="en-US-JennyNeural",
        request_info=f"#{number}(1/1)",
        text="Hello w...",
    )


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    state = StateStore(tmp_path / "state.json").load()

    assert state == AppState()
    assert state.last_mode == "chat"
    assert state.chat_settings.model == "gpt-3.5-turbo"


def test_state_round_trips_through_disk(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "state.json"
    store = StateStore(path)
    state = store.load()
    state.last_mode = "tts"
    state.request_counter = 7
    state.custom_providers["mine"] = ProviderConfig(
        id="mine", name="Mine", endpoint="https://tts.example/v1/audio/speech"
    )
    store.record_history(state, _entry(7))
    store.save(state)

    reloaded = StateStore(path).load()

    assert reloaded.last_mode == "tts"
    assert reloaded.request_counter == 7
    assert reloaded.custom_providers["mine"].endpoint.endswith("/audio/speech")
    assert reloaded.generation_history[0].request_info == "#7(1/1)"


def test_corrupt_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    assert StateStore(path).load() == AppState()


def test_history_is_bounded_and_newest_first(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.json")
    state = store.load()

    for number in range(1, MAX_HISTORY + 6):
        store.record_history(state, _entry(number))

    assert len(state.generation_history) == MAX_HISTORY
    assert state.generation_history[0].request_info == f"#{MAX_HISTORY + 5}(1/1)"
    assert state.generation_history[-1].request_info == "#6(1/1)"


def test_environment_overrides_default_path(tmp_path: Path, monkeypatch) -> None:
    target = tmp_path / "custom.json"
    monkeypatch.setenv("TTS_GATEWAY_STATE", str(target))

    assert StateStore().path == target
