"""Tests for the object-set apply engine."""

from __future__ import annotations

import pytest

from kube_user_operator.apply import (
    ObjectSetApplier,
    contains,
    content_hash,
    decorate,
    is_owned_by,
    owner_set_hash,
)
from kube_user_operator.builders.rbac import (
    build_cluster_role_binding,
    build_role_binding,
    build_service_account,
    build_token_secret,
)
from kube_user_operator.constants import (
    ANNOTATION_APPLIED_HASH,
    ANNOTATION_OWNER_NAME,
    ANNOTATION_SET_ID,
    LABEL_SET_HASH,
)
from kube_user_operator.services.kube.kinds import KUBECONFIG, SERVICE_ACCOUNT, USER_OUTPUT_KINDS
from kube_user_operator.utils.errors import ApplyError

NS = "kube-user-system"

OWNER = {
    "apiVersion": "access.cloud37.dev/v1alpha1",
    "kind": "User",
    "metadata": {"name": "alice", "uid": "uid-alice"},
}


def desired_for(*roles: str) -> list[dict]:
    objects = [build_service_account("alice", NS), build_token_secret("alice", NS)]
    objects.extend(build_cluster_role_binding("alice", NS, r) for r in roles)
    return objects


@pytest.fixture
def applier(kube_store):
    return ObjectSetApplier(kube_store, USER_OUTPUT_KINDS)


class TestDecorate:
    """Test cases for ownership tagging."""

    def test_labels_and_annotations(self):
        """Test that ownership is recorded on the object."""
        obj = decorate(build_service_account("alice", NS), OWNER, "user")
        meta = obj["metadata"]
        assert meta["labels"][LABEL_SET_HASH] == owner_set_hash("user", OWNER)
        assert meta["annotations"][ANNOTATION_SET_ID] == "user"
        assert meta["annotations"][ANNOTATION_OWNER_NAME] == "alice"
        assert is_owned_by(obj, OWNER, "user")
        assert not is_owned_by(obj, OWNER, "secret")

    def test_owner_reference_for_cluster_scoped_owner(self):
        """Test that a cluster-scoped owner gets an owner reference."""
        obj = decorate(build_service_account("alice", NS), OWNER, "user")
        ref = obj["metadata"]["ownerReferences"][0]
        assert ref["uid"] == "uid-alice"
        assert ref["kind"] == "User"
        assert ref["controller"] is True

    def test_no_owner_reference_across_scopes(self):
        """Test that a namespaced owner cannot own a cluster-scoped object."""
        secret_owner = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": "alice", "namespace": NS, "uid": "uid-secret"},
        }
        obj = decorate({"apiVersion": "x/v1", "kind": "Kubeconfig", "metadata": {"name": "alice"}}, secret_owner, "secret")
        assert "ownerReferences" not in obj["metadata"]

    def test_does_not_mutate_input(self):
        """Test that decorate copies its input."""
        sa = build_service_account("alice", NS)
        decorate(sa, OWNER, "user")
        assert "labels" not in sa["metadata"]

    def test_hash_tracks_content(self):
        """Test that the applied hash changes with content."""
        a = decorate(build_cluster_role_binding("alice", NS, "view"), OWNER, "user")
        b = decorate(build_cluster_role_binding("alice", "other", "view"), OWNER, "user")
        assert a["metadata"]["annotations"][ANNOTATION_APPLIED_HASH] != b["metadata"]["annotations"][ANNOTATION_APPLIED_HASH]

    def test_content_hash_is_key_order_independent(self):
        """Test canonical hashing."""
        assert content_hash({"a": 1, "b": 2}) == content_hash({"b": 2, "a": 1})


class TestObjectSetApplier:
    """Test cases for ObjectSetApplier."""

    def test_creates_everything_on_first_apply(self, applier, kube_store):
        """Test that a first apply creates all desired objects."""
        plan = applier.apply(OWNER, desired_for("view"), "user")
        assert len(plan.create) == 3
        assert kube_store.find("ServiceAccount", "alice", NS) is not None
        assert kube_store.find("Secret", "alice", NS) is not None
        assert len(kube_store.of_kind("ClusterRoleBinding")) == 1

    def test_second_apply_is_noop(self, applier, kube_store):
        """Test that re-applying the same set writes nothing."""
        applier.apply(OWNER, desired_for("view"), "user")
        writes_before = len(kube_store.writes)

        plan = applier.apply(OWNER, desired_for("view"), "user")

        assert plan.empty
        assert len(kube_store.writes) == writes_before

    def test_prunes_objects_no_longer_desired(self, applier, kube_store):
        """Test that owned objects missing from the desired set are deleted."""
        applier.apply(OWNER, desired_for("view", "edit"), "user")
        plan = applier.apply(OWNER, desired_for("view"), "user")

        assert len(plan.delete) == 1
        remaining = kube_store.of_kind("ClusterRoleBinding")
        assert [b["roleRef"]["name"] for b in remaining] == ["view"]

    def test_empty_desired_set_removes_everything(self, applier, kube_store):
        """Test cascade delete via an empty set."""
        applier.apply(OWNER, desired_for("view"), "user")
        applier.apply(OWNER, [], "user")
        assert kube_store.objects == {}

    def test_updates_changed_objects(self, applier, kube_store):
        """Test that content changes are patched."""
        applier.apply(OWNER, desired_for(), "user")
        changed = desired_for()
        changed[0]["metadata"]["annotations"]["extra"] = "yes"

        plan = applier.apply(OWNER, changed, "user")

        assert [o["kind"] for o in plan.update] == ["ServiceAccount"]
        assert kube_store.find("ServiceAccount", "alice", NS)["metadata"]["annotations"]["extra"] == "yes"

    def test_reverts_hand_edited_objects(self, applier, kube_store):
        """Test that live edits are converged back even with the hash untouched."""
        applier.apply(OWNER, desired_for("view"), "user")
        key = next(k for k in kube_store.objects if k[0] == "ClusterRoleBinding")
        kube_store.objects[key]["subjects"] = [{"kind": "ServiceAccount", "name": "mallory", "namespace": "default"}]

        plan = applier.apply(OWNER, desired_for("view"), "user")

        assert [o["kind"] for o in plan.update] == ["ClusterRoleBinding"]
        assert kube_store.objects[key]["subjects"] == [{"kind": "ServiceAccount", "name": "alice", "namespace": NS}]
        assert applier.apply(OWNER, desired_for("view"), "user").empty

    def test_removes_added_list_entries(self, applier, kube_store):
        """Test that extra subjects added by hand are dropped."""
        applier.apply(OWNER, desired_for("view"), "user")
        key = next(k for k in kube_store.objects if k[0] == "ClusterRoleBinding")
        kube_store.objects[key]["subjects"].append({"kind": "User", "name": "mallory"})

        applier.apply(OWNER, desired_for("view"), "user")

        assert len(kube_store.objects[key]["subjects"]) == 1

    def test_server_added_fields_are_not_drift(self, applier, kube_store):
        """Test that fields only the server sets do not cause updates."""
        applier.apply(OWNER, desired_for(), "user")
        secret = kube_store.objects[("Secret", NS, "alice")]
        secret["data"] = {"token": "dG9rZW4="}
        secret["metadata"]["annotations"]["kubernetes.io/service-account.uid"] = "uid-sa"

        assert applier.apply(OWNER, desired_for(), "user").empty

    def test_leaves_other_owners_alone(self, applier, kube_store):
        """Test that objects of another owner are never pruned."""
        other = {**OWNER, "metadata": {"name": "bob", "uid": "uid-bob"}}
        applier.apply(other, [build_cluster_role_binding("bob", NS, "view")], "user")
        applier.apply(OWNER, [], "user")
        assert len(kube_store.of_kind("ClusterRoleBinding")) == 1

    def test_leaves_other_sets_of_same_owner_alone(self, kube_store):
        """Test that set ids partition an owner's objects."""
        applier = ObjectSetApplier(kube_store, USER_OUTPUT_KINDS)
        applier.apply(OWNER, [build_service_account("alice", NS)], "user")
        applier.apply(OWNER, [], "other")
        assert kube_store.find("ServiceAccount", "alice", NS) is not None

    def test_principals_created_before_bindings(self, applier, kube_store):
        """Test dependency order on create."""
        desired = list(reversed(desired_for("view")))
        applier.apply(OWNER, desired, "user")
        created = [kind for op, kind, _ in kube_store.writes if op == "create"]
        assert created == ["ServiceAccount", "Secret", "ClusterRoleBinding"]

    def test_bindings_deleted_before_principals(self, applier, kube_store):
        """Test dependency order on delete."""
        applier.apply(OWNER, desired_for("view"), "user")
        kube_store.calls.clear()
        applier.apply(OWNER, [], "user")
        deleted = [kind for op, kind, _ in kube_store.writes if op == "delete"]
        assert deleted == ["ClusterRoleBinding", "Secret", "ServiceAccount"]

    def test_adopts_existing_object_on_conflict(self, applier, kube_store):
        """Test that an unlabelled object with the desired name is taken over."""
        kube_store.add(SERVICE_ACCOUNT, {"metadata": {"name": "alice", "namespace": NS}})
        applier.apply(OWNER, [build_service_account("alice", NS)], "user")

        sa = kube_store.find("ServiceAccount", "alice", NS)
        assert is_owned_by(sa, OWNER, "user")
        assert applier.apply(OWNER, [build_service_account("alice", NS)], "user").empty

    def test_delete_of_missing_object_is_ignored(self, applier, kube_store):
        """Test that a 404 on delete counts as done."""
        applier.apply(OWNER, desired_for(), "user")
        kube_store.fail("delete", "Secret", status=404, reason="NotFound")
        applier.apply(OWNER, [build_service_account("alice", NS)], "user")

    def test_first_error_stops_batch_and_keeps_progress(self, applier, kube_store):
        """Test partial failure semantics."""
        kube_store.fail("create", "ClusterRoleBinding")

        with pytest.raises(ApplyError) as exc_info:
            applier.apply(OWNER, desired_for("view", "edit"), "user")

        assert exc_info.value.kind == "ClusterRoleBinding"
        assert kube_store.find("ServiceAccount", "alice", NS) is not None
        create_attempts = [c for c in kube_store.calls if c[:2] == ("create", "ClusterRoleBinding")]
        assert len(create_attempts) == 1

    def test_resumes_after_failure(self, applier, kube_store):
        """Test that the next apply converges after a failed one."""
        kube_store.fail("create", "ClusterRoleBinding")
        with pytest.raises(ApplyError):
            applier.apply(OWNER, desired_for("view"), "user")
        kube_store.failures.clear()

        plan = applier.apply(OWNER, desired_for("view"), "user")

        assert [o["kind"] for o in plan.create] == ["ClusterRoleBinding"]

    def test_list_failure_raises_apply_error(self, applier, kube_store):
        """Test that a failed lookup of the owned set is an apply error."""
        kube_store.fail("list", "Secret")
        with pytest.raises(ApplyError):
            applier.apply(OWNER, desired_for(), "user")
        assert kube_store.writes == []

    def test_rejects_unsupported_kind(self, applier, kube_store):
        """Test that kinds outside the applier are refused before writing."""
        with pytest.raises(ApplyError):
            applier.apply(OWNER, [{"kind": KUBECONFIG.kind, "metadata": {"name": "alice"}}], "user")
        assert kube_store.writes == []

    def test_rejects_duplicates(self, applier):
        """Test that duplicate desired objects are refused."""
        with pytest.raises(ApplyError):
            applier.apply(OWNER, [build_service_account("alice", NS)] * 2, "user")

    def test_namespaced_role_binding(self, applier, kube_store):
        """Test that role bindings land in their namespace."""
        applier.apply(OWNER, [build_role_binding("alice", NS, "dev", role="edit")], "user")
        binding = kube_store.of_kind("RoleBinding")[0]
        assert binding["metadata"]["namespace"] == "dev"


class TestContains:
    """Test cases for the live content check."""

    def test_extra_live_fields_ignored(self):
        """Test that fields missing from desired are not compared."""
        assert contains({"a": 1, "b": {"c": 2, "uid": "x"}}, {"b": {"c": 2}})

    def test_changed_value(self):
        """Test that differing values are detected."""
        assert not contains({"roleRef": {"name": "admin"}}, {"roleRef": {"name": "view"}})

    def test_list_length_and_items(self):
        """Test that lists are compared element by element."""
        assert contains({"s": [{"name": "a", "apiGroup": ""}]}, {"s": [{"name": "a"}]})
        assert not contains({"s": [{"name": "a"}, {"name": "b"}]}, {"s": [{"name": "a"}]})

    def test_empty_desired_matches_absent(self):
        """Test that empty desired maps and lists match missing live fields."""
        assert contains({}, {"labels": {}, "subjects": []})
        assert not contains({}, {"labels": {"a": "b"}})
