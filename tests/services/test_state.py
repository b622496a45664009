import json

import pytest

from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.models import LifecycleState
from jenkinsdeploy.services.state import StateService


def test_state_service_creates_and_advances_state(tmp_path, dummy_logger):
    state_file = tmp_path / "foundational-state.json"
    service = StateService(str(state_file), logger=dummy_logger)

    state = service.initialize("foundational")
    service.advance(state, LifecycleState.IMAGE_READY, "ensure_image")
    service.advance(state, LifecycleState.VOLUME_READY, "ensure_volume")
    service.set_value(state, "container_id", "abc123")

    loaded = json.loads(state_file.read_text(encoding="utf-8"))
    assert loaded["status"] == "volume_ready"
    assert loaded["data"]["container_id"] == "abc123"
    assert [item["to"] for item in loaded["transitions"]] == ["image_ready", "volume_ready"]


def test_state_service_never_moves_backward(tmp_path, dummy_logger):
    service = StateService(str(tmp_path / "state.json"), logger=dummy_logger)
    state = service.initialize("foundational")
    service.advance(state, LifecycleState.RUNNING, "run_instance")

    result = service.advance(state, LifecycleState.IMAGE_READY, "ensure_image")

    assert result == LifecycleState.RUNNING
    assert state["status"] == "running"


def test_state_service_allows_running_reentry_on_restart(tmp_path, dummy_logger):
    service = StateService(str(tmp_path / "state.json"), logger=dummy_logger)
    state = service.initialize("foundational")
    service.advance(state, LifecycleState.CONFIGURED, "retrieve_secret")

    assert service.advance(state, LifecycleState.RUNNING, "run_instance") == LifecycleState.CONFIGURED
    assert service.advance(state, LifecycleState.RUNNING, "run_instance", restart=True) == LifecycleState.RUNNING


def test_state_service_starts_fresh_after_removal(tmp_path, dummy_logger):
    state_file = tmp_path / "state.json"
    service = StateService(str(state_file), logger=dummy_logger)
    state = service.initialize("complex")
    service.advance(state, LifecycleState.REMOVED, "teardown")

    with pytest.raises(DeployError, match="start a new deployment"):
        service.advance(state, LifecycleState.IMAGE_READY, "ensure_image")

    fresh = StateService(str(state_file), logger=dummy_logger).initialize("complex")
    assert fresh["status"] == "absent"
    assert fresh["transitions"] == []


def test_state_service_records_setup_flag(tmp_path, dummy_logger):
    service = StateService(str(tmp_path / "state.json"), logger=dummy_logger)
    state = service.initialize("foundational")

    service.record_setup(state, configured=True, source="sentinel")

    reloaded = service.load()
    assert reloaded["setup"]["configured"] is True
    assert reloaded["setup"]["source"] == "sentinel"


def test_state_service_rejects_corrupt_file(tmp_path, dummy_logger):
    state_file = tmp_path / "state.json"
    state_file.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(DeployError, match="invalid format"):
        StateService(str(state_file), logger=dummy_logger).load()
