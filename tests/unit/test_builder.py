"""Tests for request context construction."""

from __future__ import annotations

import asyncio

import pytest
from conftest import ALICE_TOKEN, API_KEY, BOB_TOKEN, make_request

from graphql_context.builder import ContextBuilder
from graphql_context.config import Settings
from graphql_context.context import BuildStage, CollectionSlot, RequestContext
from graphql_context.errors import ContextBuildError, FrozenContextError, StartupConfigurationError
from graphql_context.registry import CollectionRegistry


class TestIdentity:
    """Tests for user and admin resolution."""

    @pytest.mark.asyncio
    async def test_anonymous_without_headers(self, make_builder) -> None:
        context = await make_builder().build(make_request())

        assert context.user_id is None
        assert context.current_user is None

    @pytest.mark.asyncio
    async def test_valid_token_resolves_user(self, make_builder, alice) -> None:
        context = await make_builder().build(make_request({"og_authorization": ALICE_TOKEN}))

        assert context.current_user == alice
        assert context.user_id == "alice"

    @pytest.mark.asyncio
    async def test_verifier_receives_the_request_token(self, make_builder, token_verifier) -> None:
        await make_builder().build(make_request({"og_authorization": BOB_TOKEN}))

        assert token_verifier.seen == [BOB_TOKEN]

    @pytest.mark.asyncio
    async def test_garbled_token_degrades_to_anonymous(self, make_builder) -> None:
        context = await make_builder().build(make_request({"og_authorization": "garbage"}))

        assert context.user_id is None
        assert context.current_user is None
        assert context.stage == BuildStage.FINALIZED

    @pytest.mark.asyncio
    async def test_standard_authorization_header_is_ignored(self, make_builder) -> None:
        context = await make_builder().build(
            make_request({"authorization": f"Bearer {ALICE_TOKEN}"})
        )

        assert context.current_user is None

    @pytest.mark.asyncio
    async def test_custom_auth_header_name(self, make_builder, alice) -> None:
        settings = Settings(api_key=API_KEY, auth_header="x-session-token")
        context = await make_builder(settings=settings).build(
            make_request({"x-session-token": ALICE_TOKEN})
        )

        assert context.current_user == alice

    @pytest.mark.asyncio
    async def test_api_key_grants_admin(self, make_builder) -> None:
        context = await make_builder().build(make_request({"apikey": API_KEY}))

        assert context.current_user == {"isAdmin": True, "isApiUser": True}
        assert context.is_admin

    @pytest.mark.asyncio
    async def test_api_key_overrides_valid_user(self, make_builder) -> None:
        context = await make_builder().build(
            make_request({"og_authorization": ALICE_TOKEN, "apikey": API_KEY})
        )

        assert context.current_user == {"isAdmin": True, "isApiUser": True}
        assert context.user_id == "alice"

    @pytest.mark.asyncio
    async def test_api_key_with_invalid_token_still_admin(self, make_builder) -> None:
        context = await make_builder().build(
            make_request({"og_authorization": "garbage", "apikey": API_KEY})
        )

        assert context.is_admin

    @pytest.mark.asyncio
    async def test_wrong_api_key_is_not_admin(self, make_builder) -> None:
        context = await make_builder().build(make_request({"apikey": API_KEY + "x"}))

        assert context.current_user is None

    @pytest.mark.asyncio
    async def test_non_ascii_api_key_grants_admin(self, make_builder) -> None:
        builder = make_builder(settings=Settings(api_key="clé-secrète"))

        context = await builder.build(make_request({"apikey": "clé-secrète"}))

        assert context.is_admin

    @pytest.mark.asyncio
    async def test_unconfigured_api_key_never_matches(self, make_builder) -> None:
        context = await make_builder(settings=Settings()).build(make_request({"apikey": ""}))

        assert context.current_user is None

    @pytest.mark.asyncio
    async def test_identify_notification_is_sent(self, make_builder, events, alice) -> None:
        identified = []
        events.add_callback("events.identify", identified.append)

        await make_builder().build(make_request({"og_authorization": ALICE_TOKEN}))
        await events.drain()

        assert identified == [alice]

    @pytest.mark.asyncio
    async def test_failing_identify_callback_does_not_fail_build(self, make_builder, events) -> None:
        def explode(user):
            raise RuntimeError("analytics down")

        events.add_callback("events.identify", explode)

        context = await make_builder().build(make_request({"og_authorization": ALICE_TOKEN}))
        await events.drain()

        assert context.user_id == "alice"


class TestLocale:
    """Tests for locale resolution during the build."""

    @pytest.mark.asyncio
    async def test_user_locale_wins_over_header(self, make_builder) -> None:
        context = await make_builder().build(
            make_request({"og_authorization": ALICE_TOKEN, "accept-language": "en"})
        )

        assert context.locale == "fr"

    @pytest.mark.asyncio
    async def test_header_locale_without_user_preference(self, make_builder) -> None:
        context = await make_builder().build(
            make_request({"og_authorization": BOB_TOKEN, "accept-language": "en"})
        )

        assert context.locale == "en"

    @pytest.mark.asyncio
    async def test_default_locale(self, make_builder) -> None:
        context = await make_builder().build(make_request())

        assert context.locale == "en-US"

    @pytest.mark.asyncio
    async def test_lang_attribute_registered(self, make_builder) -> None:
        request = make_request({"accept-language": "de-DE,de;q=0.9"})

        await make_builder().build(request)

        assert request.state.html_attributes.render() == {"lang": "de-DE"}


class TestLoaders:
    """Tests for loaders attached to the context."""

    @pytest.mark.asyncio
    async def test_every_collection_gets_a_slot(self, make_builder, posts) -> None:
        context = await make_builder().build(make_request())

        assert list(context.collections) == ["Posts", "Comments"]
        assert isinstance(context["Posts"], CollectionSlot)
        assert context["Posts"].collection is posts

    @pytest.mark.asyncio
    async def test_same_id_fetched_once_per_request(self, make_builder, posts) -> None:
        context = await make_builder().build(make_request())
        slot = context.collection("Posts")

        first, second = await asyncio.gather(slot.load("p1"), slot.load("p1"))
        third = await slot.load("p1")

        assert first == second == third == {"_id": "p1", "title": "First"}
        assert posts.fetch_calls == [["p1"]]

    @pytest.mark.asyncio
    async def test_concurrent_requests_have_independent_loaders(self, make_builder, posts) -> None:
        builder = make_builder()
        context_a, context_b = await asyncio.gather(
            builder.build(make_request()),
            builder.build(make_request()),
        )

        assert context_a.collection("Posts").loader is not context_b.collection("Posts").loader

        await context_a.collection("Posts").load("p1")
        await context_b.collection("Posts").load("p1")

        assert posts.fetch_calls == [["p1"], ["p1"]]

    @pytest.mark.asyncio
    async def test_loaders_do_not_reference_the_context(self, make_builder) -> None:
        context = await make_builder().build(make_request())

        for slot in context.collections.values():
            assert all(value is not context for value in vars(slot.loader).values())


class TestBaseContext:
    """Tests for static and per-request context values."""

    @pytest.mark.asyncio
    async def test_static_and_override_values(self, make_builder) -> None:
        builder = make_builder(
            static_context={"service": "static", "region": "eu"},
            context_from_request=lambda request: {"region": request.headers.get("x-region")},
        )

        context = await builder.build(make_request({"x-region": "us"}))

        assert context["service"] == "static"
        assert context["region"] == "us"

    @pytest.mark.asyncio
    async def test_async_override(self, make_builder) -> None:
        async def override(request):
            return {"tenant": "acme"}

        context = await make_builder(context_from_request=override).build(make_request())

        assert context.get("tenant") == "acme"

    @pytest.mark.asyncio
    async def test_override_replacing_collection_gets_no_loader(self, make_builder) -> None:
        builder = make_builder(context_from_request=lambda request: {"Comments": "disabled"})

        context = await builder.build(make_request())

        assert "Comments" not in context.collections
        assert context["Comments"] == "disabled"

    @pytest.mark.asyncio
    async def test_headers_and_request_attached(self, make_builder) -> None:
        request = make_request({"X-Trace": "abc"})

        context = await make_builder().build(request)

        assert context.req is request
        assert context.headers["x-trace"] == "abc"

    @pytest.mark.asyncio
    async def test_plain_header_mapping(self, make_builder, alice) -> None:
        class PlainRequest:
            headers = {"OG_Authorization": ALICE_TOKEN}

        context = await make_builder().build(PlainRequest())

        assert context.current_user == alice


class TestLifecycle:
    """Tests for startup checks and finalization."""

    def test_empty_registry_fails_fast(self, make_builder) -> None:
        with pytest.raises(StartupConfigurationError):
            make_builder(registry=CollectionRegistry())

    def test_empty_registry_allowed_when_not_required(self, make_builder) -> None:
        builder = make_builder(
            registry=CollectionRegistry(),
            settings=Settings(require_collections=False),
        )

        assert isinstance(builder, ContextBuilder)

    @pytest.mark.asyncio
    async def test_context_is_frozen(self, make_builder) -> None:
        context = await make_builder().build(make_request())

        with pytest.raises(FrozenContextError):
            context.current_user = {"isAdmin": True}
        with pytest.raises(TypeError):
            context.extras["injected"] = True

    def test_stage_order_is_enforced(self) -> None:
        context = RequestContext()

        with pytest.raises(ContextBuildError):
            ContextBuilder._advance(context, BuildStage.AUTH_RESOLVED)

    @pytest.mark.asyncio
    async def test_unexpected_failure_aborts_build(self, make_builder) -> None:
        def broken(request):
            raise RuntimeError("override failed")

        with pytest.raises(RuntimeError):
            await make_builder(context_from_request=broken).build(make_request())
