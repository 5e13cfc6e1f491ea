import html
import json
import time

import pytest

from conftest import make_bundle
from preview_bridge import topics
from preview_bridge.mailbox import Mailbox
from preview_bridge.messages import DatasourceCommit, UpdateProperties, encode_message
from widget_runtime.config import PreviewConfig
from widget_runtime.controller import SandboxController
from widget_runtime.errors import WidgetRuntimeError
from widget_runtime.sandbox import HOST_SOURCE, SANDBOX_SOURCE, Sandbox
from widget_runtime.types import LifecycleState

LABEL_SPEC = [{"key": "label", "type": "string"}]
DS_SPEC = [
    {"key": "ds", "type": "datasource", "isList": True},
    {"key": "nameAttr", "type": "attribute", "dataSource": "ds"},
]

ECHO_BUNDLE = """
    import json

    def Foo(props):
        return React.create_element("pre", None, json.dumps(props, sort_keys=True))
"""

LIST_BUNDLE = """
    def Foo(props):
        items = props["ds"].items
        return React.create_element(
            "ul",
            None,
            [React.create_element("li", {"key": item.guid}, item.get("name")) for item in items],
        )
"""

CREATE_BUNDLE = """
    def Foo(props):
        started = React.use_ref(False)

        def add_item():
            if started.current:
                return
            started.current = True

            def on_created(obj):
                obj.set("name", "c")
                mx.data.commit(obj)

            mx.data.create("Preview.ds", on_created)

        React.use_effect(add_item, [])
        return React.create_element("span", None, str(len(props["ds"].items)))
"""


def _mount(controller: SandboxController, source: str, values, spec) -> None:
    controller.load(make_bundle(source))
    controller.update_properties(values, spec)
    assert controller.wait_until_ready(5.0)
    assert controller.sync(5.0)


def test_global_component_receives_string_property(controller) -> None:
    controller.load(make_bundle(ECHO_BUNDLE))
    assert controller.state is LifecycleState.LOADING
    assert controller.update_properties({"label": "hi"}, LABEL_SPEC) is False

    assert controller.wait_until_ready(5.0)
    assert controller.sync(5.0)

    assert html.unescape(controller.surface.html) == '<pre>{"label": "hi"}</pre>'
    assert controller.update_properties({"label": "bye"}) is True
    controller.sync(5.0)
    assert "bye" in html.unescape(controller.surface.html)


def test_datasource_items_get_stable_guids(controller) -> None:
    values = {"ds": '[{"name":"a"},{"name":"b"}]', "nameAttr": "name"}
    _mount(controller, LIST_BUNDLE, values, DS_SPEC)

    layer = controller.sandbox.data_layer
    datasource = layer.datasource("ds")
    assert datasource.attribute_schema == {"name": {"type": "String"}}
    guids = [item.guid for item in datasource.items]
    assert len(set(guids)) == 2
    assert controller.surface.html.count("<li>") == 2

    version = controller.surface.version
    controller.update_properties(values, DS_SPEC)
    controller.sync(5.0)
    assert [item.guid for item in layer.datasource("ds").items] == guids
    assert controller.surface.version == version


def test_create_then_commit_reports_full_lists(controller, commits) -> None:
    values = {"ds": '[{"name":"a"},{"name":"b"}]'}
    _mount(controller, CREATE_BUNDLE, values, DS_SPEC)

    assert [key for key, _ in commits.calls] == ["ds", "ds"]
    created = json.loads(commits.calls[0][1])
    committed = json.loads(commits.calls[1][1])
    assert len(created) == 3
    assert [item["name"] for item in committed] == ["a", "b", "c"]
    assert all("id" in item for item in committed)

    # caller loops the merged list back in
    controller.update_properties({"ds": commits.calls[1][1]}, DS_SPEC)
    controller.sync(5.0)
    items = controller.sandbox.data_layer.datasource("ds").items
    assert [item.guid for item in items] == [record["id"] for record in committed]
    assert len(commits.calls) == 2

    controller.update_properties({"ds": commits.calls[1][1]}, DS_SPEC)
    controller.sync(5.0)
    assert len(commits.calls) == 2


def test_new_bundle_replaces_sandbox_and_ignores_stale_messages(controller, commits) -> None:
    _mount(controller, CREATE_BUNDLE, {"ds": '[{"name":"a"}]'}, DS_SPEC)
    old_generation = controller.generation
    old_sandbox = controller.sandbox
    assert len(commits.calls) == 2

    _mount(controller, ECHO_BUNDLE, {"label": "hi"}, LABEL_SPEC)
    assert controller.generation == old_generation + 1
    assert controller.sandbox is not old_sandbox
    assert controller.sandbox.data_layer.object_count() == 0
    assert old_sandbox.inbox.closed

    stale = encode_message(DatasourceCommit(datasource_key="ds", items=[]), source=SANDBOX_SOURCE, generation=old_generation)
    controller.host_mailbox.post(stale)
    assert controller.process_messages() == 1
    assert len(commits.calls) == 2

    deadline = time.monotonic() + 2.0
    while old_sandbox.alive and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not old_sandbox.alive


def test_same_handle_is_rebuilt_unless_reuse_enabled(commits) -> None:
    controller = SandboxController(on_datasource_commit=commits)
    try:
        bundle = make_bundle(ECHO_BUNDLE)
        controller.load(bundle)
        assert controller.wait_until_ready(5.0)
        controller.load(bundle)
        assert controller.generation == 2
        assert controller.state is LifecycleState.LOADING
    finally:
        controller.destroy()

    reuse = SandboxController(config=PreviewConfig(reuse_identical_bundles=True))
    try:
        reuse.load(make_bundle(ECHO_BUNDLE))
        assert reuse.wait_until_ready(5.0)
        reuse.load(make_bundle(ECHO_BUNDLE))
        assert reuse.generation == 1
        assert reuse.is_ready
    finally:
        reuse.destroy()


def test_bundle_failure_reports_error_and_reload_retries(controller) -> None:
    errors, states = [], []
    controller.bus.subscribe(topics.PREVIEW_ERROR, errors.append)
    controller.bus.subscribe(topics.PREVIEW_STATE_CHANGED, lambda payload: states.append(payload["state"]))

    controller.load(make_bundle("raise RuntimeError('bad bundle')\n"))
    assert controller.wait_until_ready(5.0) is False
    assert controller.last_error.error_type == "BundleEvaluationError"
    assert "bad bundle" in controller.last_error.message
    assert "Failed to load widget" in controller.surface.html
    assert errors and errors[0]["error_type"] == "BundleEvaluationError"
    assert states == ["loading"]

    assert controller.reload() == 2
    assert controller.last_error is None
    assert controller.wait_until_ready(5.0) is False


def test_missing_component_reports_not_found(controller) -> None:
    controller.load(make_bundle("x = 1\n", name="Nope"))
    assert controller.wait_until_ready(5.0) is False
    assert controller.last_error.error_type == "ComponentNotFoundError"
    assert "Widget not found" in controller.surface.html


def test_ready_publishes_state_and_ready_topics(controller) -> None:
    states, ready = [], []
    controller.bus.subscribe(topics.PREVIEW_STATE_CHANGED, lambda payload: states.append(payload["state"]))
    controller.bus.subscribe(topics.PREVIEW_READY, ready.append)
    _mount(controller, ECHO_BUNDLE, {"label": "x"}, LABEL_SPEC)
    assert states == ["loading", "ready"]
    assert ready == [{"generation": 1, "component_name": "Foo"}]


def test_destroy_is_terminal(controller) -> None:
    _mount(controller, ECHO_BUNDLE, {"label": "x"}, LABEL_SPEC)
    controller.destroy()
    assert controller.state is LifecycleState.DESTROYED
    assert controller.sandbox is None
    with pytest.raises(WidgetRuntimeError):
        controller.load(make_bundle(ECHO_BUNDLE))


def test_invalid_spec_rejected_before_sending(controller) -> None:
    with pytest.raises(ValueError):
        controller.update_properties({"a": 1}, [{"key": "a", "type": "string"}, {"key": "a", "type": "string"}])


def test_sandbox_coalesces_queued_updates() -> None:
    sandbox = Sandbox(make_bundle(ECHO_BUNDLE), 1, Mailbox("host"))
    assert sandbox._evaluate()
    batch = [
        encode_message(UpdateProperties(properties={"label": "1"}, spec={}), source=HOST_SOURCE, generation=1),
        encode_message(UpdateProperties(properties={"label": "2"}, spec={}), source=HOST_SOURCE, generation=1),
        encode_message(UpdateProperties(properties={"label": "old"}, spec={}), source=HOST_SOURCE, generation=0),
    ]
    sandbox._handle_batch(batch)
    assert sandbox.surface.version == 1
    assert '"label": "2"' in html.unescape(sandbox.surface.html)

    sandbox._handle_batch(batch[1:2])
    assert sandbox.surface.version == 1
