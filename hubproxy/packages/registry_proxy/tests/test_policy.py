from dataclasses import replace

import pytest

from hubproxy.packages.registry_proxy import ProxyPolicy, check_access, resolve_target


@pytest.fixture
def restricted_policy(policy: ProxyPolicy) -> ProxyPolicy:
    return replace(policy, restrict_paths=True, allowed_paths=("library",))


@pytest.mark.parametrize(
    "path",
    [
        "/https://evil.example.com/payload",
        "/https://github.com.evil.example/o/r",
        "/https://sub.github.com/o/r",
        "/https://example.org",
    ],
)
def test_unknown_host_rejected_with_400(policy: ProxyPolicy, path: str):
    target = resolve_target(path, policy)

    decision = check_access(target, path, policy)

    assert not decision.allowed
    assert decision.status_on_reject == 400


def test_allowed_host_passes(policy: ProxyPolicy):
    path = "/https://github.com/owner/repo/archive/main.zip"
    target = resolve_target(path, policy)

    assert check_access(target, path, policy).allowed


def test_path_restriction_disabled_by_default(policy: ProxyPolicy):
    target = resolve_target("/user/foo", policy)

    assert check_access(target, "/user/foo", policy).allowed


def test_restricted_registry_path_rejected_with_403(restricted_policy: ProxyPolicy):
    target = resolve_target("/user/foo", restricted_policy)

    decision = check_access(target, "/user/foo", restricted_policy)

    assert not decision.allowed
    assert decision.status_on_reject == 403


def test_restricted_registry_path_allowed(restricted_policy: ProxyPolicy):
    target = resolve_target("/library/foo", restricted_policy)

    assert check_access(target, "/library/foo", restricted_policy).allowed


def test_registry_check_uses_normalized_path(restricted_policy: ProxyPolicy):
    # "/foo" only contains "library" after normalization
    target = resolve_target("/v2/foo/manifests/latest", restricted_policy)

    assert check_access(target, "/v2/foo/manifests/latest", restricted_policy).allowed


def test_keywords_are_case_insensitive(policy: ProxyPolicy):
    policy = replace(policy, restrict_paths=True, allowed_paths=("My-Org",))
    path = "/https://github.com/my-org/repo"
    target = resolve_target(path, policy)

    assert check_access(target, path, policy).allowed


def test_non_registry_check_uses_raw_path(policy: ProxyPolicy):
    policy = replace(policy, restrict_paths=True, allowed_paths=("https://github.com/ok",))
    path = "/https://github.com/ok/repo"
    target = resolve_target(path, policy)

    assert check_access(target, path, policy).allowed
    other = "/https://github.com/other/repo"
    assert not check_access(resolve_target(other, policy), other, policy).allowed
