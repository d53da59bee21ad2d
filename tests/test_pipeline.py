from __future__ import annotations

import copy
from dataclasses import replace

import openai
import pytest

from scriptboard.errors import ConfigurationError, RemoteServiceError, ValidationError
from scriptboard.models import (
    ImageSettings,
    ItemStatus,
    PromptListSource,
    ScriptSource,
    StoryboardItem,
)
from scriptboard.pipeline import Pipeline

from conftest import FakeClient, completion, image_message, instruction_text, png_data_url, prompts_reply


def _image_client(fail_on=()):
    """Image-only fake that fails for prompts listed in fail_on."""

    def handler(**kwargs):
        text = instruction_text(kwargs)
        if any(f'"{p}"' in text for p in fail_on):
            return openai.APIConnectionError(request=None)
        return completion(image_message(png_data_url()))

    return FakeClient(handler)


def _assert_invariants(storyboard):
    for item in storyboard:
        assert item.status in set(ItemStatus)
        assert (item.image_url is not None) == (item.status == ItemStatus.SUCCESS)
        assert (item.error_message is not None) == (item.status == ItemStatus.ERROR)


def test_pipeline_init_without_key(cfg):
    p = Pipeline(replace(cfg, openrouter_api_key=""))
    # construction should not raise; remote work fails fast
    with pytest.raises(ConfigurationError):
        p.run(PromptListSource("a prompt"), ImageSettings())
    assert p.storyboard == []


def test_script_source_builds_storyboard_from_generated_prompts(cfg):
    prompt = "A hero walks into a dark forest, lit by moonlight."

    def handler(**kwargs):
        if kwargs["model"] == cfg.prompt_model:
            return prompts_reply([prompt])
        return completion(image_message(png_data_url()))

    client = FakeClient(handler)
    p = Pipeline(cfg, client=client)
    seen = []
    p.run(
        ScriptSource(script="A hero walks into a dark forest.", niche="fantasy"),
        ImageSettings(),
        on_item=lambda i, item: seen.append((i, item.status)),
    )

    assert p.generated_prompts == [prompt]
    assert [item.prompt for item in p.storyboard] == [prompt]
    assert seen[0] == (0, ItemStatus.PENDING)
    assert seen[1:] == [(0, ItemStatus.GENERATING), (0, ItemStatus.SUCCESS)]
    assert p.storyboard[0].image_url == png_data_url()


def test_resolve_prompts_from_script_preserves_order(cfg):
    prompts = ["one", "two", "three"]
    p = Pipeline(cfg, client=FakeClient(lambda **kw: prompts_reply(prompts)))
    assert p.resolve_prompts(ScriptSource(script="text")) == prompts
    p.initialize_storyboard(prompts)
    assert [item.prompt for item in p.storyboard] == prompts
    assert all(item.status == ItemStatus.PENDING for item in p.storyboard)


def test_empty_script_is_rejected_without_remote_call(cfg):
    client = FakeClient(lambda **kw: prompts_reply(["x"]))
    p = Pipeline(cfg, client=client)
    with pytest.raises(ValidationError, match="Script content cannot be empty"):
        p.run(ScriptSource(script="   \n"), ImageSettings())
    assert client.calls == []


def test_script_without_prompts_key_reports_no_prompts(cfg):
    client = FakeClient(lambda **kw: prompts_reply(None))
    p = Pipeline(cfg, client=client)
    with pytest.raises(ValidationError, match="did not yield any prompts"):
        p.run(ScriptSource(script="Some script"), ImageSettings())
    assert p.storyboard == []
    assert len(client.calls) == 1


def test_stage_one_failure_aborts_run(cfg):
    client = FakeClient(lambda **kw: openai.APIConnectionError(request=None))
    p = Pipeline(cfg, client=client)
    p.storyboard = [StoryboardItem(prompt="old")]
    with pytest.raises(RemoteServiceError):
        p.run(ScriptSource(script="Some script"), ImageSettings())
    assert p.storyboard == []
    assert len(client.calls) == 1


def test_prompt_list_splits_lines_and_drops_blanks(cfg):
    p = Pipeline(cfg, client=_image_client())
    assert p.resolve_prompts(PromptListSource("cat on a roof\n\nfox in snow\n")) == ["cat on a roof", "fox in snow"]
    assert p.resolve_prompts(PromptListSource("a\r\n  \r\nb")) == ["a", "b"]


@pytest.mark.parametrize(
    "text, message",
    [
        ("", "Prompts cannot be empty"),
        ("  \n \n", "Prompts cannot be empty"),
    ],
)
def test_prompt_list_rejects_blank_input(cfg, text, message):
    client = _image_client()
    p = Pipeline(cfg, client=client)
    with pytest.raises(ValidationError, match=message):
        p.run(PromptListSource(text), ImageSettings())
    assert client.calls == []


def test_image_failure_is_isolated_to_its_item(cfg):
    client = _image_client(fail_on=("first",))
    p = Pipeline(cfg, client=client)
    storyboard = p.run(PromptListSource("first\nsecond\nthird"), ImageSettings())

    assert [item.status for item in storyboard] == [ItemStatus.ERROR, ItemStatus.SUCCESS, ItemStatus.SUCCESS]
    assert storyboard[0].error_message
    _assert_invariants(storyboard)
    # strictly sequential, in storyboard order
    assert ['"first"' in instruction_text(c) for c in client.calls] == [True, False, False]
    assert '"third"' in instruction_text(client.calls[2])


def test_every_status_transition_keeps_invariants(cfg):
    p = Pipeline(cfg, client=_image_client(fail_on=("b",)))

    def check(_index, _item):
        _assert_invariants(p.storyboard)

    p.run(PromptListSource("a\nb\nc"), ImageSettings(), on_item=check)


def test_unexpected_exception_gets_generic_message(cfg):
    def handler(**kwargs):
        return RuntimeError()

    p = Pipeline(cfg, client=FakeClient(handler))
    p.run(PromptListSource("only"), ImageSettings())
    assert p.storyboard[0].status == ItemStatus.ERROR
    assert p.storyboard[0].error_message == "An unknown error occurred."


def test_new_run_replaces_previous_storyboard(cfg):
    p = Pipeline(cfg, client=_image_client())
    p.run(PromptListSource("a\nb"), ImageSettings())
    p.run(PromptListSource("c"), ImageSettings())
    assert [item.prompt for item in p.storyboard] == ["c"]


def test_retry_regenerates_failed_item_only(cfg):
    failing = {"enabled": True}

    def handler(**kwargs):
        if failing["enabled"] and '"b"' in instruction_text(kwargs):
            return openai.APIConnectionError(request=None)
        return completion(image_message(png_data_url()))

    client = FakeClient(handler)
    p = Pipeline(cfg, client=client)
    p.run(PromptListSource("a\nb\nc"), ImageSettings(aspect_ratio="1:1"))
    assert p.storyboard[1].status == ItemStatus.ERROR
    others = copy.deepcopy([p.storyboard[0], p.storyboard[2]])

    failing["enabled"] = False
    assert p.retry_item(1, settings=ImageSettings(aspect_ratio="9:16", style_keywords="ink"))

    assert p.storyboard[1].status == ItemStatus.SUCCESS
    assert p.storyboard[1].error_message is None
    assert [p.storyboard[0], p.storyboard[2]] == others
    last = client.calls[-1]
    assert '"b"' in instruction_text(last)
    assert "9:16" in instruction_text(last)
    assert "ink" in instruction_text(last)


def test_retry_uses_stored_settings_when_none_given(cfg):
    client = _image_client(fail_on=("a",))
    p = Pipeline(cfg, client=client)
    p.run(PromptListSource("a"), ImageSettings(aspect_ratio="4:3"))
    assert p.retry_item(0)
    assert "4:3" in instruction_text(client.calls[-1])
    assert p.storyboard[0].status == ItemStatus.ERROR


@pytest.mark.parametrize("index", [0, -1, 5])
def test_retry_is_noop_unless_item_failed(cfg, index):
    client = _image_client()
    p = Pipeline(cfg, client=client)
    p.run(PromptListSource("a\nb"), ImageSettings())
    before = copy.deepcopy(p.storyboard)
    calls = len(client.calls)

    assert p.retry_item(index) is False
    assert p.storyboard == before
    assert len(client.calls) == calls


def test_retry_on_empty_storyboard_is_noop(cfg):
    p = Pipeline(cfg, client=_image_client())
    assert p.retry_item(0) is False


def test_unknown_source_type_raises(cfg):
    p = Pipeline(cfg, client=_image_client())
    with pytest.raises(TypeError):
        p.resolve_prompts("just a string")


def test_logs_progress(cfg, logs):
    p = Pipeline(cfg, on_log=logs.append, client=_image_client())
    p.run(PromptListSource("a\nb"), ImageSettings())
    assert any("Generating image 2 of 2" in line for line in logs)
    assert any("2/2 images generated" in line for line in logs)


@pytest.mark.parametrize(
    "source, message",
    [
        (ScriptSource(script="  "), "Script content cannot be empty"),
        (PromptListSource(""), "Prompts cannot be empty"),
    ],
)
def test_blank_input_is_reported_before_missing_key(cfg, source, message):
    p = Pipeline(replace(cfg, openrouter_api_key=""))
    with pytest.raises(ValidationError, match=message):
        p.run(source, ImageSettings())
    assert p.storyboard == []
