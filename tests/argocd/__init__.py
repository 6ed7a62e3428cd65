"""Test helpers for the argocd-update step."""

from typing import Any

from promotion_steps.manifest import (
    ANNOTATION_KEY_AUTHORIZED_STAGE,
    PROMOTION_INFO_KEY,
    Application,
)
from promotion_steps.promotion import StepContext

PROJECT = "fake-project"
STAGE = "fake-stage"
PROMOTION = "fake-promotion"
GIT_REPO = "https://github.com/example/guestbook.git"
CHART_REPO = "https://charts.example.com"


def step_context(
    config: dict[str, Any] | None = None,
    actor: str | None = None,
    promotion: str = PROMOTION,
) -> StepContext:
    """Return the context of a step run for the fake Stage."""
    return StepContext(
        project=PROJECT,
        stage=STAGE,
        promotion=promotion,
        config=config or {},
        promotion_actor=actor,
    )


def operation_state(
    phase: str,
    promotion: str | None = PROMOTION,
    revision: str | None = None,
    revisions: list[str] | None = None,
    initiated_by: str = "kargo-controller",
    message: str | None = None,
    sync_result: bool = True,
) -> dict[str, Any]:
    """Return a raw operation state as recorded by the Application controller."""
    info = [{"name": "Reason", "value": "testing"}]
    if promotion is not None:
        info.append({"name": PROMOTION_INFO_KEY, "value": promotion})
    state: dict[str, Any] = {
        "operation": {
            "initiatedBy": {"username": initiated_by},
            "info": info,
            "sync": {},
        },
        "phase": phase,
    }
    if message is not None:
        state["message"] = message
    if sync_result:
        result: dict[str, Any] = {}
        if revision is not None:
            result["revision"] = revision
        if revisions is not None:
            result["revisions"] = revisions
        state["syncResult"] = result
    return state


def app_doc(
    name: str = "guestbook",
    namespace: str = "argocd",
    source: dict[str, Any] | None = None,
    sources: list[dict[str, Any]] | None = None,
    labels: dict[str, str] | None = None,
    authorized_stage: str | None = f"{PROJECT}:{STAGE}",
    state: dict[str, Any] | None = None,
    spec: dict[str, Any] | None = None,
    status: bool = True,
) -> dict[str, Any]:
    """Return a raw Application document."""
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if labels is not None:
        metadata["labels"] = labels
    if authorized_stage is not None:
        metadata["annotations"] = {ANNOTATION_KEY_AUTHORIZED_STAGE: authorized_stage}
    doc_spec: dict[str, Any] = {
        "project": "default",
        "destination": {"server": "https://kubernetes.default.svc", "namespace": name},
    }
    if source is not None:
        doc_spec["source"] = source
    if sources is not None:
        doc_spec["sources"] = sources
    doc_spec.update(spec or {})
    doc: dict[str, Any] = {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": metadata,
        "spec": doc_spec,
    }
    if status:
        doc["status"] = {"sync": {"status": "Synced"}}
        if state is not None:
            doc["status"]["operationState"] = state
    return doc


def application(**kwargs: Any) -> Application:
    """Return a parsed Application, see `app_doc` for the arguments."""
    app = Application.parse_doc(app_doc(**kwargs))
    app.resource_version = "1"
    return app
