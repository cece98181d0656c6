"""Module to declare the orders stack.

Users API backed by a table, an order queue with its dead-letter queue, an
event topic fanning out to the queue, an auditor function and an email
address, and the grants tying them together.
"""

from pathlib import Path

from cdk_compose.context import StackContext

ASSET_DIR = str(Path(__file__).resolve().parent / "assets" / "orders")
RUNTIME = "python3.12"


def declare_resources(orders: StackContext) -> None:
    orders.table("users", partition_key=("id", "STRING"))
    orders.table(
        "orders-table",
        partition_key=("order_id", "STRING"),
        sort_key=("created_at", "NUMBER"),
        stream="NEW_AND_OLD_IMAGES",
        time_to_live_attribute="expires_at",
        global_secondary_indexes=[
            {"index_name": "by-customer", "partition_key": ("customer_id", "STRING")},
        ],
    )
    orders.bucket(
        "receipts",
        lifecycle_rules=[{"id": "expire-receipts", "expiration_days": 365}],
    )

    orders.queue("orders-dlq", retention_period=1209600)
    orders.queue("orders", dead_letter_target="orders-dlq", max_receives=5)
    orders.topic("order-events", display_name="Order events")

    for name in ("users-api", "order-processor", "order-auditor"):
        orders.function(
            name,
            handler="index.handler",
            runtime=RUNTIME,
            code=ASSET_DIR,
            environment={"SERVICE": name},
        )

    orders.role(
        "reporting",
        assumed_by="glue.amazonaws.com",
        description="Reads order data for reporting jobs",
    )
    orders.certificate(
        "api-cert",
        domain_name="api.orders.example.com",
        subject_alternative_names=["orders.example.com"],
    )


def declare_relationships(orders: StackContext) -> None:
    orders.grant(table="users", function="users-api", access="read-write")
    orders.grant(topic="order-events", function="users-api", access="publish")
    orders.grant(bucket="receipts", function="order-processor", access="write")
    orders.grant(table="orders-table", role="reporting", access="read")

    orders.subscribe(
        topic="order-events",
        queue="orders",
        filter_policy={"type": ["created", "updated"]},
        raw_message_delivery=True,
    )
    orders.subscribe(
        topic="order-events",
        function="order-auditor",
        dead_letter_queue="orders-dlq",
    )
    orders.notify("order-events", protocol="email", address="orders-team@example.com")

    orders.event_source(function="order-processor", queue="orders", batch_size=5)
    orders.event_source(function="order-auditor", table="orders-table")


def declare(orders: StackContext) -> None:
    declare_resources(orders)
    declare_relationships(orders)
