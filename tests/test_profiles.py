import pytest

from jenkinsdeploy.errors import DeployError
from jenkinsdeploy.profiles import TIERS, build_profile


def test_default_names_per_tier():
    names = {tier: build_profile(tier) for tier in TIERS}

    assert names["foundational"].container_name == "jenkins_foundational"
    assert names["advanced"].volume_name == "jenkins_data_advanced"
    assert names["advanced"].use_compose is True
    assert names["complex"].image == "jenkins-custom-complex:latest"
    assert names["complex"].casc_enabled is True
    assert [profile.readiness_timeout for profile in names.values()] == [30, 45, 60]


def test_overrides_replace_ports_and_names():
    profile = build_profile(
        "foundational",
        {"http_port": 9090, "container_name": "ci", "readiness_timeout": "5", "image": None},
    )

    assert profile.url == "http://localhost:9090"
    assert profile.ports[1].host_port == 50000
    assert profile.container_name == "ci"
    assert profile.readiness_timeout == 5.0
    assert profile.image == "jenkins/jenkins:lts"


def test_custom_image_replaces_owned_tags():
    profile = build_profile("complex", {"image": "registry.local/jenkins:2"})

    assert profile.image_refs == ["registry.local/jenkins:2"]


def test_unknown_tier_is_rejected():
    with pytest.raises(DeployError, match="Unknown tier"):
        build_profile("kubernetes")
