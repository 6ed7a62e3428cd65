"""Tests for selecting the Applications a Stage may update."""

import pytest

from promotion_steps.argocd.authorize import (
    authorize_application_update,
    get_authorized_applications,
)
from promotion_steps.argocd.config import ArgoCDAppUpdate
from promotion_steps.exceptions import (
    AuthorizationException,
    ObjectNotFoundError,
    PromotionException,
    SelectorException,
)
from promotion_steps.selector import AppSelector, build_label_selector
from promotion_steps.store import InMemoryStore

from . import PROJECT, STAGE, app_doc, application, step_context


def test_authorized() -> None:
    """Test an Application naming the Stage may be updated."""
    authorize_application_update(
        step_context(), application(authorized_stage=f"{PROJECT}:{STAGE}")
    )


@pytest.mark.parametrize(
    ("annotation", "match"),
    [
        (None, "does not permit mutation by Kargo Stage fake-stage in namespace fake-project"),
        (f"{PROJECT}:other-stage", "does not permit mutation"),
        (f"other-project:{STAGE}", "does not permit mutation"),
        (STAGE, "unable to parse value of annotation"),
        (f"{PROJECT}:*", "has deprecated glob expression"),
        (f"*:{STAGE}", "has deprecated glob expression"),
        ("fake-*:fake-stage", "has deprecated glob expression"),
    ],
)
def test_not_authorized(annotation: str | None, match: str) -> None:
    """Test Applications that do not grant access to the Stage."""
    with pytest.raises(AuthorizationException, match=match):
        authorize_application_update(
            step_context(), application(authorized_stage=annotation)
        )


def test_stage_containing_colon() -> None:
    """Test only the first colon separates the project from the stage."""
    app = application(authorized_stage=f"{PROJECT}:{STAGE}:extra")
    with pytest.raises(AuthorizationException, match="does not permit mutation"):
        authorize_application_update(step_context(), app)


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_object(app_doc("guestbook-a", labels={"app": "guestbook"}))
    store.add_object(
        app_doc("guestbook-b", labels={"app": "guestbook"}, authorized_stage=None)
    )
    store.add_object(app_doc("guestbook-c", labels={"app": "guestbook"}))
    store.add_object(
        app_doc("locked", labels={"app": "locked"}, authorized_stage="other:stage")
    )
    store.add_object(app_doc("guestbook", namespace="apps"))
    return store


async def test_select_by_label(store: InMemoryStore) -> None:
    """Test unauthorized Applications are skipped."""
    apps = await get_authorized_applications(
        store,
        step_context(),
        ArgoCDAppUpdate(selector=AppSelector(match_labels={"app": "guestbook"})),
        build_label_selector,
        "argocd",
    )
    assert [app.name for app in apps] == ["guestbook-a", "guestbook-c"]


async def test_select_by_name(store: InMemoryStore) -> None:
    """Test selecting an Application by name in the default and given namespace."""
    apps = await get_authorized_applications(
        store,
        step_context(),
        ArgoCDAppUpdate(name="guestbook-a"),
        build_label_selector,
        "argocd",
    )
    assert [app.namespaced_name for app in apps] == ["argocd/guestbook-a"]

    apps = await get_authorized_applications(
        store,
        step_context(),
        ArgoCDAppUpdate(name="guestbook", namespace="apps"),
        build_label_selector,
        "argocd",
    )
    assert [app.namespaced_name for app in apps] == ["apps/guestbook"]


async def test_name_not_found(store: InMemoryStore) -> None:
    """Test selecting an Application that doesn't exist."""
    with pytest.raises(
        ObjectNotFoundError,
        match="unable to find Argo CD Application 'missing' in namespace 'argocd'",
    ):
        await get_authorized_applications(
            store,
            step_context(),
            ArgoCDAppUpdate(name="missing"),
            build_label_selector,
            "argocd",
        )


async def test_name_not_authorized(store: InMemoryStore) -> None:
    """Test selecting an Application by name that doesn't grant access."""
    with pytest.raises(
        AuthorizationException,
        match="Argo CD Application 'locked' in namespace 'argocd' is not authorized",
    ):
        await get_authorized_applications(
            store,
            step_context(),
            ArgoCDAppUpdate(name="locked"),
            build_label_selector,
            "argocd",
        )


async def test_selector_no_match(store: InMemoryStore) -> None:
    """Test a selector matching nothing."""
    with pytest.raises(
        PromotionException,
        match="no Argo CD Applications found matching selector in namespace 'argocd'",
    ):
        await get_authorized_applications(
            store,
            step_context(),
            ArgoCDAppUpdate(selector=AppSelector(match_labels={"app": "missing"})),
            build_label_selector,
            "argocd",
        )


async def test_selector_none_authorized(store: InMemoryStore) -> None:
    """Test a selector matching only Applications that don't grant access."""
    with pytest.raises(
        AuthorizationException,
        match=(
            "found 1 Application\\(s\\) matching selector in namespace 'argocd', "
            "but none are authorized for Stage fake-project:fake-stage"
        ),
    ):
        await get_authorized_applications(
            store,
            step_context(),
            ArgoCDAppUpdate(selector=AppSelector(match_labels={"app": "locked"})),
            build_label_selector,
            "argocd",
        )


async def test_invalid_selector(store: InMemoryStore) -> None:
    """Test an empty selector is a configuration error."""
    with pytest.raises(SelectorException, match="error building label selector"):
        await get_authorized_applications(
            store,
            step_context(),
            ArgoCDAppUpdate(selector=AppSelector()),
            build_label_selector,
            "argocd",
        )
