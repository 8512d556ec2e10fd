"""Tests for {{Placeholder}} templating."""

from relaybot.auto_reply.templating import MsgContext, TemplateContext, apply_template


def _ctx(**kwargs) -> TemplateContext:
    return TemplateContext.build(MsgContext(**kwargs))


class TestApplyTemplate:
    def test_no_placeholders_unchanged(self):
        ctx = _ctx(body="hi", from_="+1555")
        for template in ["", "plain text", "{ single }", "{{ not closed", "100% {literal}"]:
            assert apply_template(template, ctx) == template

    def test_body_substitution(self):
        assert apply_template("Echo: {{Body}}", _ctx(body="hi")) == "Echo: hi"

    def test_whitespace_inside_braces(self):
        assert apply_template("{{  From }}->{{To}}", _ctx(from_="a", to="b")) == "a->b"

    def test_unknown_field_is_empty(self):
        assert apply_template("[{{Nope}}]", _ctx(body="x")) == "[]"

    def test_null_field_is_empty(self):
        assert apply_template("[{{MediaUrl}}]", _ctx(body="x")) == "[]"

    def test_repeated_placeholder(self):
        assert apply_template("{{Body}} {{Body}}", _ctx(body="yo")) == "yo yo"

    def test_booleans_and_numbers_stringified(self):
        ctx = TemplateContext.build(MsgContext(body="x", is_mentioned=True), is_new_session=False)
        assert apply_template("{{isMentioned}}/{{IsNewSession}}", ctx) == "true/false"
        assert apply_template("n={{n}}", {"n": 3}) == "n=3"

    def test_no_recursive_expansion(self):
        ctx = _ctx(body="{{From}}", from_="secret")
        assert apply_template("{{Body}}", ctx) == "{{From}}"

    def test_derived_fields(self):
        ctx = TemplateContext.build(
            MsgContext(body="/new hello"),
            body_stripped="hello",
            session_id="abc",
            is_new_session=True,
        )
        out = apply_template("{{BodyStripped}}|{{SessionId}}|{{IsNewSession}}", ctx)
        assert out == "hello|abc|true"

    def test_list_field_joined(self):
        ctx = _ctx(body="x", raw_mentions=("1", "2"))
        assert apply_template("{{rawMentions}}", ctx) == "1,2"

    def test_plain_mapping_context(self):
        assert apply_template("{{a}}-{{b}}", {"a": "x", "b": None}) == "x-"


class TestTemplateContext:
    def test_build_strips_body_by_default(self):
        ctx = TemplateContext.build(MsgContext(body="  hi  "))
        assert ctx.body == "  hi  "
        assert ctx.body_stripped == "hi"

    def test_with_body_replaces_both(self):
        ctx = TemplateContext.build(MsgContext(body="hi")).with_body("prefixed hi")
        assert ctx.fields()["Body"] == "prefixed hi"
        assert ctx.fields()["BodyStripped"] == "prefixed hi"
