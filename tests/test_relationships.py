import pytest

from cdk_compose.errors import (
    InvalidRelationshipError,
    KindMismatchError,
    RelationshipArityError,
    UnresolvedNameError,
)
from cdk_compose.relationships import (
    GRANT,
    SUBSCRIPTION,
    declare_relationship,
    order_by_role,
)
from cdk_compose.units import RelationshipDeclaration


def test_users_api_grant(users_stack):
    (grant,) = users_stack.manifest.relationships()
    assert isinstance(grant, RelationshipDeclaration)
    assert [h.kind for h in grant.handles] == ["table", "function"]
    assert grant.names == ("users", "users-api")
    assert grant.attribute("access") == "read-write"
    assert grant.as_dict() == {
        "relationship": "grant",
        "participants": {"resource": "users", "grantee": "users-api"},
        "attributes": {"access": "read-write"},
    }


def test_grant_before_function_is_unresolved(ctx, fn_fields):
    ctx.table("users", partition_key=("id", "STRING"))
    with pytest.raises(UnresolvedNameError) as err:
        ctx.grant(table="users", function="users-api", access="read-write")
    assert err.value.name == "users-api"
    ctx.function("users-api", **fn_fields)
    assert len(ctx.units) == 2


def test_keyword_order_does_not_matter(ctx, fn_fields):
    ctx.table("users", partition_key=("id", "STRING"))
    ctx.function("users-api", **fn_fields)
    grant = ctx.grant(function="users-api", table="users", access="read")
    assert grant.names == ("users", "users-api")


def test_handles_come_from_the_registry(ctx, fn_fields):
    table = ctx.table("users", partition_key=("id", "STRING"))
    function = ctx.function("users-api", **fn_fields)
    grant = ctx.grant(table="users", function="users-api", access="read")
    assert grant.handles == (table, function)


class TestKindSafety:

    def test_registered_kind_differs(self, ctx, fn_fields):
        ctx.queue("users")
        ctx.function("users-api", **fn_fields)
        with pytest.raises(KindMismatchError) as err:
            ctx.relate("grant", ("users", "table"), ("users-api", "function"), access="read")
        assert err.value.actual == "queue"
        assert err.value.role is None

    def test_kind_not_allowed_in_role(self, ctx):
        ctx.queue("a")
        ctx.queue("b")
        with pytest.raises(KindMismatchError) as err:
            ctx.relate("grant", ("a", "queue"), ("b", "queue"), access="send")
        assert err.value.role == "grant.grantee"
        assert err.value.expected == frozenset({"function", "role"})
        assert err.value.actual == "queue"
        assert str(err.value).startswith("Role 'grant.grantee'")
        assert len(ctx.units) == 2

    def test_handle_participant_is_checked(self, ctx):
        topic = ctx.topic("events")
        with pytest.raises(KindMismatchError):
            ctx.relate("dead_letter", topic, ("events", "topic"), max_receives=3)


class TestAtomicity:

    def test_arity(self, ctx):
        ctx.queue("orders")
        with pytest.raises(RelationshipArityError) as err:
            ctx.relate("dead_letter", ("orders", "queue"), max_receives=3)
        assert err.value.expected == "2"
        assert err.value.actual == 1
        assert len(ctx.units) == 1

    def test_optional_role_arity(self, ctx):
        with pytest.raises(RelationshipArityError) as err:
            ctx.relate("subscription", ("t", "topic"))
        assert err.value.expected == "2 to 3"

    def test_second_participant_unresolved(self, ctx):
        ctx.queue("orders")
        with pytest.raises(UnresolvedNameError):
            ctx.dead_letter("orders", "orders-dlq", 3)
        assert len(ctx.units) == 1

    def test_unknown_relationship(self, ctx):
        with pytest.raises(InvalidRelationshipError):
            declare_relationship(ctx, "peering", [])


class TestGrantAccess:

    @pytest.mark.parametrize("access", ["send", "consume", "purge", "read-write"])
    def test_queue_access(self, ctx, fn_fields, access):
        ctx.queue("orders")
        ctx.function("worker", **fn_fields)
        assert ctx.grant(queue="orders", function="worker", access=access)

    def test_invalid_access(self, ctx, fn_fields):
        ctx.topic("events")
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.grant(topic="events", function="worker", access="read")

    def test_stream_read_needs_stream(self, ctx):
        ctx.table("users", partition_key=("id", "STRING"))
        ctx.role("reader", assumed_by="lambda.amazonaws.com")
        with pytest.raises(InvalidRelationshipError):
            ctx.grant(table="users", role="reader", access="stream-read")

    def test_access_required(self, ctx):
        ctx.bucket("receipts")
        ctx.role("reader", assumed_by="lambda.amazonaws.com")
        with pytest.raises(InvalidRelationshipError):
            ctx.relate("grant", ("receipts", "bucket"), ("reader", "role"))


class TestSubscription:

    def test_queue_subscription(self, ctx):
        ctx.topic("events")
        ctx.queue("orders")
        ctx.queue("orders-dlq")
        sub = ctx.subscribe(
            topic="events",
            queue="orders",
            dead_letter_queue="orders-dlq",
            filter_policy={"type": ["created", "updated"]},
            raw_message_delivery=True,
        )
        assert sub.roles == ("topic", "endpoint", "dead_letter")
        assert sub.participant("dead_letter").name == "orders-dlq"
        assert sub.attribute("filter_policy") == (("type", ("created", "updated")),)
        assert sub.attribute("raw_message_delivery") is True

    def test_fifo_topic_to_standard_queue(self, ctx):
        ctx.topic("events", fifo=True)
        ctx.queue("orders")
        with pytest.raises(InvalidRelationshipError):
            ctx.subscribe(topic="events", queue="orders")

    def test_fifo_topic_to_function(self, ctx, fn_fields):
        ctx.topic("events", fifo=True)
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.subscribe(topic="events", function="worker")

    def test_raw_delivery_needs_queue(self, ctx, fn_fields):
        ctx.topic("events")
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.subscribe(topic="events", function="worker", raw_message_delivery=True)

    def test_empty_filter_policy(self, ctx):
        ctx.topic("events")
        ctx.queue("orders")
        with pytest.raises(InvalidRelationshipError):
            ctx.subscribe(topic="events", queue="orders", filter_policy={})

    def test_dead_letter_queue_alone_is_not_an_endpoint(self, ctx):
        ctx.topic("events")
        ctx.queue("orders-dlq")
        with pytest.raises(InvalidRelationshipError):
            ctx.subscribe(topic="events", dead_letter_queue="orders-dlq")
        assert len(ctx.units) == 2

    def test_queue_and_function_together(self, ctx, fn_fields):
        ctx.topic("events")
        ctx.queue("orders")
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.subscribe(topic="events", queue="orders", function="worker")
        assert len(ctx.units) == 3

    def test_function_endpoint_with_dead_letter_queue(self, ctx, fn_fields):
        ctx.topic("events")
        ctx.function("worker", **fn_fields)
        ctx.queue("worker-dlq")
        sub = ctx.subscribe(topic="events", function="worker", dead_letter_queue="worker-dlq")
        assert sub.participant("endpoint").name == "worker"
        assert sub.participant("dead_letter").name == "worker-dlq"


class TestAddressSubscription:

    def test_email(self, ctx):
        ctx.topic("events")
        sub = ctx.notify("events", protocol="email", address="ops@example.com")
        assert sub.attribute("protocol") == "email"

    def test_https_needs_url(self, ctx):
        ctx.topic("events")
        with pytest.raises(InvalidRelationshipError):
            ctx.notify("events", protocol="https", address="example.com/hook")

    def test_unknown_protocol(self, ctx):
        ctx.topic("events")
        with pytest.raises(InvalidRelationshipError):
            ctx.notify("events", protocol="pigeon", address="loft")


class TestDeadLetter:

    @pytest.mark.parametrize("max_receives", [0, 1001, "5"])
    def test_max_receives_range(self, ctx, max_receives):
        ctx.queue("orders-dlq")
        ctx.queue("orders")
        with pytest.raises(InvalidRelationshipError):
            ctx.dead_letter("orders", "orders-dlq", max_receives)

    def test_fifo_mismatch(self, ctx):
        ctx.queue("orders-dlq")
        ctx.queue("orders", fifo=True)
        with pytest.raises(InvalidRelationshipError):
            ctx.dead_letter("orders", "orders-dlq", 3)

    def test_own_dead_letter_queue(self, ctx):
        ctx.queue("orders")
        with pytest.raises(InvalidRelationshipError):
            ctx.dead_letter("orders", "orders", 3)

    def test_second_dead_letter_queue_after_link(self, ctx):
        ctx.queue("orders-dlq")
        ctx.queue("other-dlq")
        ctx.queue("orders", dead_letter_target="orders-dlq", max_receives=5)
        with pytest.raises(InvalidRelationshipError):
            ctx.dead_letter("orders", "other-dlq", 3)
        assert [u.kind for u in ctx.units].count("dead_letter") == 1

    def test_second_explicit_dead_letter_queue(self, ctx):
        ctx.queue("orders-dlq")
        ctx.queue("orders")
        ctx.dead_letter("orders", "orders-dlq", 3)
        with pytest.raises(InvalidRelationshipError):
            ctx.dead_letter("orders", "orders-dlq", 4)

    def test_shared_dead_letter_queue(self, ctx):
        ctx.queue("orders-dlq")
        ctx.queue("a")
        ctx.queue("b")
        ctx.dead_letter("a", "orders-dlq", 3)
        assert ctx.dead_letter("b", "orders-dlq", 3).names == ("b", "orders-dlq")


class TestEventSource:

    def test_queue_source(self, ctx, fn_fields):
        ctx.queue("orders")
        ctx.function("worker", **fn_fields)
        source = ctx.event_source(function="worker", queue="orders")
        assert source.names == ("orders", "worker")
        assert source.attribute("batch_size") == 10

    def test_table_needs_stream(self, ctx, fn_fields):
        ctx.table("users", partition_key=("id", "STRING"))
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.event_source(function="worker", table="users")

    def test_fifo_batch_limit(self, ctx, fn_fields):
        ctx.queue("orders", fifo=True)
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.event_source(function="worker", queue="orders", batch_size=11)

    def test_needs_exactly_one_source(self, ctx, fn_fields):
        ctx.queue("orders")
        ctx.table("users", partition_key=("id", "STRING"), stream="NEW_IMAGE")
        ctx.function("worker", **fn_fields)
        with pytest.raises(InvalidRelationshipError):
            ctx.event_source(function="worker")
        with pytest.raises(InvalidRelationshipError):
            ctx.event_source(function="worker", queue="orders", table="users")
        assert len(ctx.units) == 3


class TestOrderByRole:

    def test_reorders_by_kind(self):
        assert order_by_role(GRANT, {"function": "api", "table": "users"}) == (
            ("users", "table"),
            ("api", "function"),
        )

    def test_no_fit_keeps_order(self):
        given = {"queue": "a", "table": "b"}
        assert order_by_role(SUBSCRIPTION, given) == (("a", "queue"), ("b", "table"))
